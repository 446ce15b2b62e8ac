import io
from typing import Any, Dict, List, Optional, Tuple

import pytest
import requests
from PIL import Image as PILImage

from api import ResultServiceClient
from config import Settings

BASE = "http://results.test"


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, content: bytes = b"",
                 headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self._body = body
        self.content = content
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class FakeSession:
    """Answers requests from a (method, url) -> response-or-exception table."""

    def __init__(self, routes: Optional[Dict[Tuple[str, str], Any]] = None):
        self.routes = dict(routes or {})
        self.calls: List[Tuple[str, str, Any]] = []
        self.closed = False

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json))
        try:
            answer = self.routes[(method, url)]
        except KeyError:
            raise requests.ConnectionError(f"no route for {method} {url}")
        if isinstance(answer, Exception):
            raise answer
        return answer

    def get(self, url, timeout=None):
        return self.request("GET", url, timeout=timeout)

    def close(self):
        self.closed = True


def png_bytes(color=(13, 117, 144), size=(40, 30)) -> bytes:
    buf = io.BytesIO()
    PILImage.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def student_row(id=1, surname="Doe", firstname="Jane", age=20, gender="F", level="100", state="Lagos"):
    return {"id": id, "surname": surname, "firstname": firstname, "age": age,
            "gender": gender, "level": level, "state": state}


def result_payload(courses=None, logo=f"{BASE}/img/logo.png", photo=f"{BASE}/img/photo.png"):
    return {
        "message": "Successful",
        "logo": logo,
        "profile_picture": photo,
        "data": {
            "id": 1,
            "surname": "Doe",
            "firstname": "Jane",
            "level": "100",
            "reg_no": "FCE/PGDE/0001",
            "session": "2022/2023",
            "result": courses if courses is not None else [
                {"coursecode": "EDU101", "title": "Intro", "credit_unit": 3,
                 "grade": "A", "total_point": 12},
            ],
            "cummulative": {"unts": 3, "untd": 3, "gpts": 12, "gptd": 12,
                            "gpats": "4.00", "gpatd": "4.00", "remarks": "Good standing"},
        },
    }


@pytest.fixture
def settings(tmp_path):
    return Settings(base_url=BASE, timeout=5, output_dir=str(tmp_path / "out"))


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(settings, session):
    return ResultServiceClient(settings, session=session)
