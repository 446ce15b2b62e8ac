import base64
import logging
from dataclasses import replace

import pytest
import requests

import result_pdf
from conftest import BASE, FakeResponse, png_bytes, result_payload, student_row
from errors import ExportError, ResultFetchError
from models import ResultRecord
from result_pdf import (
    COURSE_HEADER, EXPORT_FAILED, FETCH_FAILED, RenderedResult, ResultExport,
    assemble, decode_data_uri, export, render, result_filename, to_data_uri,
)
from roster import RosterController


def serve_result(session, student_id=1, **kwargs):
    session.routes[("POST", f"{BASE}/api/viewResult/{student_id}")] = FakeResponse(body=result_payload(**kwargs))


def serve_images(session, logo=True, photo=True):
    if logo:
        session.routes[("GET", f"{BASE}/img/logo.png")] = FakeResponse(
            content=png_bytes(), headers={"Content-Type": "image/png"})
    if photo:
        session.routes[("GET", f"{BASE}/img/photo.png")] = FakeResponse(
            content=png_bytes((200, 200, 200)), headers={"Content-Type": "image/png"})


def test_to_data_uri_sniffs_missing_mime():
    uri = to_data_uri(png_bytes())
    assert uri.startswith("data:image/png;base64,")
    assert decode_data_uri(uri) == png_bytes()


def test_decode_data_uri_rejects_urls():
    with pytest.raises(ValueError):
        decode_data_uri("http://example.com/a.png")


def test_assemble_inlines_both_images(client, session):
    serve_result(session)
    serve_images(session)
    record = assemble(client, 1)
    assert record.logo.startswith("data:image/png;base64,")
    assert base64.b64decode(record.logo.split(",", 1)[1]) == png_bytes()
    assert record.profile_picture.startswith("data:image/png;base64,")
    assert record.full_name == "Doe Jane"


def test_assemble_degrades_when_one_image_fails(client, session, caplog):
    serve_result(session)
    serve_images(session, photo=False)
    with caplog.at_level(logging.WARNING):
        record = assemble(client, 1)
    assert record.logo.startswith("data:image/png;base64,")
    assert record.profile_picture == ""
    assert "profile picture" in caplog.text


def test_assemble_degrades_on_non_image_body(client, session):
    serve_result(session)
    serve_images(session, logo=False)
    session.routes[("GET", f"{BASE}/img/logo.png")] = FakeResponse(content=b"<html>not found</html>")
    assert assemble(client, 1).logo == ""


def test_fetch_failure_stops_before_render(client, session, settings, monkeypatch):
    session.routes[("POST", f"{BASE}/api/viewResult/1")] = requests.ConnectionError("offline")
    rendered = []
    monkeypatch.setattr(result_pdf, "render", lambda *a, **k: rendered.append(a))

    job = ResultExport(client, settings)
    with pytest.raises(ResultFetchError):
        job.run(1)
    assert rendered == []
    assert job.error == FETCH_FAILED


def test_export_requires_rendered_document(settings):
    with pytest.raises(ExportError):
        export(None, 1, settings)
    record = ResultRecord("Doe", "Jane", "100", "R1", "2022/2023")
    with pytest.raises(ExportError):
        export(RenderedResult(record=record), 1, settings)


def test_export_writes_named_pdf(client, session, settings):
    serve_result(session, student_id=7)
    serve_images(session)
    rendered = render(assemble(client, 7), settings)
    path = export(rendered, 7, settings)
    assert path.name == "student-result-7.pdf" == result_filename(7)
    assert path.read_bytes().startswith(b"%PDF")


def test_render_without_images(settings):
    record = ResultRecord.from_api(result_payload(logo="", photo=""))
    rendered = render(record, settings)
    assert rendered.ready
    assert export(rendered, 3, settings).exists()


def test_render_skips_corrupt_inline_image(settings):
    record = replace(ResultRecord.from_api(result_payload()),
                     logo="data:image/png;base64,AAAA", profile_picture="")
    rendered = render(record, settings)
    assert rendered.ready


def test_render_keeps_course_order(settings):
    courses = [
        {"coursecode": "EDU205", "title": "Curriculum", "credit_unit": 2, "grade": "B", "total_point": 6},
        {"coursecode": "EDU101", "title": "Intro & Basics", "credit_unit": 3, "grade": "A", "total_point": 12},
    ]
    rendered = render(ResultRecord.from_api(result_payload(courses=courses)), settings)
    assert [r[:2] for r in rendered.course_rows] == [["1", "EDU205"], ["2", "EDU101"]]
    assert rendered.course_rows[1][2] == "Intro & Basics"


def test_layout_failure_is_export_error(client, session, settings, monkeypatch):
    serve_result(session)
    serve_images(session)

    def broken_build(self, flowables, **kwargs):
        raise RuntimeError("no renderable surface")

    monkeypatch.setattr(result_pdf.SimpleDocTemplate, "build", broken_build)
    job = ResultExport(client, settings)
    with pytest.raises(ExportError):
        job.run(1)
    assert job.error == EXPORT_FAILED


def test_end_to_end_single_course(client, session, settings):
    session.routes[("GET", f"{BASE}/api/viewAllData")] = FakeResponse(
        body={"data": {"students": [student_row()]}})
    serve_result(session)
    serve_images(session)

    controller = RosterController(client)
    controller.load_roster()
    assert [s.id for s in controller.students] == [1]

    controller.select_for_export(controller.students[0].id)
    completed = []

    def on_complete(path):
        completed.append(path)
        controller.complete_export()

    job = ResultExport(client, settings, on_complete=on_complete)
    path = job.run(1)

    assert completed == [path]
    assert controller.pending_export is None
    assert path.name == "student-result-1.pdf"
    assert job.rendered.course_rows == [["1", "EDU101", "Intro", "3", "A", "12"]]
    assert len(COURSE_HEADER) == len(job.rendered.course_rows[0])
    assert job.rendered.summary_row == ["3", "3", "12", "12", "4.00", "4.00"]
    assert job.error is None


def test_summary_table_uses_statement_labels(settings):
    rendered = render(ResultRecord.from_api(result_payload(logo="", photo="")), settings)
    header_rows = [list(f._cellvalues[0]) for f in rendered.story if isinstance(f, result_pdf.PdfTable)]
    assert ["Units", "UntD", "GPTs", "GPTD", "GPATs", "GPATD"] in header_rows


def bomb(*args, **kwargs):
    raise result_pdf.PILImage.DecompressionBombError("image too large")


def test_oversized_download_degrades_to_empty_image(client, session, monkeypatch):
    serve_result(session)
    session.routes[("GET", f"{BASE}/img/logo.png")] = FakeResponse(content=b"\x89PNG huge")
    monkeypatch.setattr(result_pdf.PILImage, "open", bomb)
    assert assemble(client, 1).logo == ""


def test_oversized_inline_image_is_skipped_at_render(settings, monkeypatch):
    record = replace(ResultRecord.from_api(result_payload()),
                     logo=to_data_uri(png_bytes(), "image/png"), profile_picture="")
    monkeypatch.setattr(result_pdf.PILImage, "open", bomb)
    rendered = render(record, settings)
    assert rendered.ready
