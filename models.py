from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Tuple

FILTER_FIELDS = ("age", "state", "level", "gender")

# key under which each vocabulary endpoint carries its option value
VOCABULARY_VALUE_KEYS = {
    "ages": "age",
    "states": "name",
    "levels": "level",
    "genders": "gender",
}


def sget(data: Dict[str, Any], key: str, default: str = "") -> str:
    v = data.get(key)
    if v is None: return default
    if isinstance(v, list): return ", ".join(str(x) for x in v if str(x).strip())
    return str(v)


@dataclass(frozen=True)
class Student:
    id: Any
    surname: str
    firstname: str
    age: Any
    gender: str
    level: str
    state: str

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "Student":
        return cls(
            id=row.get("id"),
            surname=sget(row, "surname"),
            firstname=sget(row, "firstname"),
            age=row.get("age", ""),
            gender=sget(row, "gender"),
            level=sget(row, "level"),
            state=sget(row, "state"),
        )


@dataclass(frozen=True)
class FilterSelection:
    age: str = ""
    state: str = ""
    level: str = ""
    gender: str = ""

    def is_empty(self) -> bool:
        return all(getattr(self, f) == "" for f in FILTER_FIELDS)

    def as_payload(self) -> Dict[str, str]:
        return {f: getattr(self, f) for f in FILTER_FIELDS}


@dataclass(frozen=True)
class FilterVocabulary:
    ages: Tuple[str, ...] = ()
    states: Tuple[str, ...] = ()
    levels: Tuple[str, ...] = ()
    genders: Tuple[str, ...] = ()

    @staticmethod
    def options_from_api(name: str, items: List[Dict[str, Any]]) -> Tuple[str, ...]:
        key = VOCABULARY_VALUE_KEYS[name]
        return tuple(sget(item, key) for item in items if isinstance(item, dict))


@dataclass(frozen=True)
class CourseResult:
    coursecode: str
    title: str
    credit_unit: str
    grade: str
    total_point: str

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "CourseResult":
        return cls(*(sget(row, f.name) for f in fields(cls)))


@dataclass(frozen=True)
class CumulativeSummary:
    unts: str = ""
    untd: str = ""
    gpts: str = ""
    gptd: str = ""
    gpats: str = ""
    gpatd: str = ""
    remarks: str = ""

    NUMERIC_FIELDS = ("unts", "untd", "gpts", "gptd", "gpats", "gpatd")

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "CumulativeSummary":
        return cls(*(sget(row, f.name) for f in fields(cls)))

    def numeric_row(self) -> List[str]:
        return [getattr(self, f) for f in self.NUMERIC_FIELDS]


@dataclass(frozen=True)
class ResultRecord:
    """One student's statement of result.

    ``logo`` and ``profile_picture`` hold remote URLs as fetched; once the
    record has been resolved they hold ``data:`` URIs, or "" when the image
    could not be retrieved.
    """
    surname: str
    firstname: str
    level: str
    reg_no: str
    session: str
    courses: Tuple[CourseResult, ...] = ()
    cumulative: CumulativeSummary = field(default_factory=CumulativeSummary)
    logo: str = ""
    profile_picture: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.surname} {self.firstname}".strip()

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "ResultRecord":
        data = payload.get("data")
        if not isinstance(data, dict):
            raise ValueError("result payload has no 'data' object")
        courses = data.get("result") or []
        if not isinstance(courses, list) or not all(isinstance(c, dict) for c in courses):
            raise ValueError("'result' must be a list of course objects")
        cumulative = data.get("cummulative") or {}
        if not isinstance(cumulative, dict):
            raise ValueError("'cummulative' must be an object")
        return cls(
            surname=sget(data, "surname"),
            firstname=sget(data, "firstname"),
            level=sget(data, "level"),
            reg_no=sget(data, "reg_no"),
            session=sget(data, "session"),
            courses=tuple(CourseResult.from_api(c) for c in courses),
            cumulative=CumulativeSummary.from_api(cumulative),
            logo=sget(payload, "logo"),
            profile_picture=sget(payload, "profile_picture"),
        )
