import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from api import VOCABULARY_PATHS, ResultServiceClient
from errors import ExportInProgressError, FilteredFetchError, FilterFetchError, RosterFetchError
from models import FILTER_FIELDS, FilterSelection, FilterVocabulary, Student

logger = logging.getLogger(__name__)

ROSTER_ERROR = "Failed to fetch students"
FILTER_ERROR = "No record found"

IDLE, LOADING, SUCCESS, ERROR = "idle", "loading", "success", "error"

ROSTER_COLUMNS = ["S/N", "Surname", "Firstname", "Age", "Gender", "Level", "State"]


class RosterController:
    """Holds the roster, the filter selection and the pending export.

    Roster-writing fetches capture the generation counter when they start and
    drop their result if ``cancel()`` (or a newer fetch) has moved it on.
    Filter options keep their own counter, which only ``cancel()`` moves.
    """

    def __init__(self, client: ResultServiceClient):
        self.client = client
        self.students: Tuple[Student, ...] = ()
        self.selection = FilterSelection()
        self.vocabulary = FilterVocabulary()
        self.error: Optional[str] = None
        self.statuses: Dict[str, str] = {"roster": IDLE, "vocabulary": IDLE, "filter": IDLE}
        self.pending_export: Any = None
        self._generation = 0
        self._vocab_generation = 0
        self._lock = threading.Lock()

    # ---- generation bookkeeping ----
    def _begin(self, op: str) -> int:
        with self._lock:
            self._generation += 1
            self.statuses[op] = LOADING
            return self._generation

    def _is_current(self, token: int) -> bool:
        return token == self._generation

    def cancel(self):
        with self._lock:
            self._generation += 1
            self._vocab_generation += 1
            for op, status in self.statuses.items():
                if status == LOADING:
                    self.statuses[op] = IDLE
        logger.debug("Cancelled in-flight fetches (generation %d)", self._generation)

    # ---- roster ----
    def load_roster(self) -> bool:
        token = self._begin("roster")
        try:
            students = self.client.fetch_students()
        except RosterFetchError as e:
            logger.warning("Roster fetch failed: %s", e)
            with self._lock:
                if not self._is_current(token):
                    return False
                self.students = ()
                self.error = ROSTER_ERROR
                self.statuses["roster"] = ERROR
            return False
        with self._lock:
            if not self._is_current(token):
                logger.debug("Discarding stale roster response")
                return False
            self.students = tuple(students)
            self.error = None
            self.statuses["roster"] = SUCCESS
        logger.info("Loaded %d students", len(students))
        return True

    def load_filter_vocabulary(self) -> FilterVocabulary:
        with self._lock:
            token = self._vocab_generation
            self.statuses["vocabulary"] = LOADING
        names = list(VOCABULARY_PATHS)

        def fetch(name: str) -> Tuple[str, ...]:
            try:
                return self.client.fetch_vocabulary(name)
            except FilterFetchError as e:
                logger.warning("Could not load %s options: %s", name, e)
                return ()

        with ThreadPoolExecutor(max_workers=len(names)) as executor:
            results = dict(zip(names, executor.map(fetch, names)))

        with self._lock:
            if token != self._vocab_generation:
                logger.debug("Discarding stale filter options")
                self.statuses["vocabulary"] = IDLE
            else:
                self.vocabulary = FilterVocabulary(**results)
                self.statuses["vocabulary"] = SUCCESS
        return self.vocabulary

    # ---- filtering ----
    def set_filter(self, name: str, value: str):
        if name not in FILTER_FIELDS:
            raise ValueError(f"unknown filter {name!r}; expected one of {', '.join(FILTER_FIELDS)}")
        self.selection = replace(self.selection, **{name: "" if value is None else str(value)})

    def apply_filters(self, selection: Optional[FilterSelection] = None) -> bool:
        if selection is not None:
            self.selection = selection
        if self.selection.is_empty():
            return False

        token = self._begin("filter")
        with self._lock:
            self.error = None
        try:
            students = self.client.filter_students(self.selection)
        except FilteredFetchError as e:
            logger.warning("Filter request failed: %s", e)
            with self._lock:
                if self._is_current(token):
                    self.error = FILTER_ERROR
                    self.statuses["filter"] = ERROR
            return False
        with self._lock:
            if not self._is_current(token):
                logger.debug("Discarding stale filter response")
                return False
            self.students = tuple(students)
            self.statuses["filter"] = SUCCESS
        logger.info("Filter %s matched %d students", self.selection.as_payload(), len(students))
        return True

    def reset_filters(self) -> bool:
        self.selection = FilterSelection()
        with self._lock:
            self.error = None
        return self.load_roster()

    # ---- export selection ----
    def select_for_export(self, student_id: Any):
        with self._lock:
            if self.pending_export is not None:
                raise ExportInProgressError(
                    f"export for student {self.pending_export} is still in progress"
                )
            self.pending_export = student_id

    def complete_export(self, *_):
        with self._lock:
            self.pending_export = None

    dismiss_export = complete_export


def format_roster_table(students: Sequence[Student], error: Optional[str] = None) -> str:
    if error:
        return error
    if not students:
        return "(no students)"
    rows: List[List[str]] = [ROSTER_COLUMNS]
    for i, s in enumerate(students, start=1):
        rows.append([str(i), s.surname, s.firstname, str(s.age), s.gender, s.level, s.state])
    widths = [max(len(r[c]) for r in rows) for c in range(len(ROSTER_COLUMNS))]
    lines = ["  ".join(cell.ljust(w) for cell, w in zip(r, widths)).rstrip() for r in rows]
    lines.insert(1, "  ".join("-" * w for w in widths))
    return "\n".join(lines)
