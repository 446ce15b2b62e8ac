import logging
from typing import Any, Dict, List, Optional, Tuple, Type

import requests

from config import Settings
from errors import (
    FilterFetchError, FilteredFetchError, ImageResolutionError,
    ResultFetchError, ResultServiceError, RosterFetchError,
)
from models import FilterSelection, FilterVocabulary, ResultRecord, Student

logger = logging.getLogger(__name__)

ROSTER_PATH = "/api/viewAllData"
FILTER_PATH = "/api/filterData"
RESULT_PATH = "/api/viewResult/{student_id}"
VOCABULARY_PATHS = {
    "ages": "/api/viewAllAges",
    "states": "/api/viewAllStates",
    "levels": "/api/viewAllLevels",
    "genders": "/api/viewAllGender",
}


class ResultServiceClient:
    """Client for the student records service.

    Every call goes through one ``requests.Session`` and uses the timeout
    from ``Settings``. Transport failures, non-2xx statuses and payloads of
    the wrong shape are raised as the error type given by the caller, chained
    from the underlying exception.
    """

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()

    def close(self):
        self.session.close()

    def _request_json(self, method: str, path: str, error: Type[ResultServiceError],
                      json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self.settings.url(path)
        try:
            r = self.session.request(method, url, json=json, timeout=self.settings.timeout)
            r.raise_for_status()
            body = r.json()
        except (requests.RequestException, ValueError) as e:
            raise error(f"{method} {url} failed: {e}") from e
        if not isinstance(body, dict):
            raise error(f"{method} {url} returned {type(body).__name__}, expected an object")
        return body

    @staticmethod
    def _students(body: Dict[str, Any], error: Type[ResultServiceError]) -> List[Student]:
        data = body.get("data")
        rows = data.get("students") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise error("response has no data.students list")
        if not all(isinstance(r, dict) for r in rows):
            raise error("data.students must hold student objects")
        return [Student.from_api(r) for r in rows]

    def fetch_students(self) -> List[Student]:
        body = self._request_json("GET", ROSTER_PATH, RosterFetchError)
        return self._students(body, RosterFetchError)

    def filter_students(self, selection: FilterSelection) -> List[Student]:
        body = self._request_json("POST", FILTER_PATH, FilteredFetchError, json=selection.as_payload())
        return self._students(body, FilteredFetchError)

    def fetch_vocabulary(self, name: str) -> Tuple[str, ...]:
        if name not in VOCABULARY_PATHS:
            raise ValueError(f"unknown filter vocabulary {name!r}")
        body = self._request_json("GET", VOCABULARY_PATHS[name], FilterFetchError)
        items = body.get("data")
        if not isinstance(items, list):
            raise FilterFetchError(f"{name}: response has no data list")
        return FilterVocabulary.options_from_api(name, items)

    def fetch_result(self, student_id: Any) -> ResultRecord:
        path = RESULT_PATH.format(student_id=student_id)
        body = self._request_json("POST", path, ResultFetchError)
        try:
            return ResultRecord.from_api(body)
        except ValueError as e:
            raise ResultFetchError(f"malformed result for student {student_id}: {e}") from e

    def fetch_image(self, url: str) -> Tuple[bytes, str]:
        """Download an image; returns (content, mime type)."""
        if not url:
            raise ImageResolutionError("no image URL")
        try:
            r = self.session.get(url, timeout=self.settings.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise ImageResolutionError(f"GET {url} failed: {e}") from e
        if not r.content:
            raise ImageResolutionError(f"GET {url} returned an empty body")
        mime = (r.headers.get("Content-Type") or "").split(";")[0].strip().lower()
        logger.debug("Fetched %s (%d bytes, %s)", url, len(r.content), mime or "unknown type")
        return r.content, mime
