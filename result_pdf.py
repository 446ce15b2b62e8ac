import base64
import binascii
import io
import logging
import pathlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Optional, Tuple
from xml.sax.saxutils import escape

from PIL import Image as PILImage, UnidentifiedImageError
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape, letter, portrait
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    Flowable, Image, Paragraph, SimpleDocTemplate, Spacer, Table as PdfTable, TableStyle,
)

from api import ResultServiceClient
from config import ExportOptions, Settings
from errors import ExportError, ImageResolutionError, ResultFetchError
from models import ResultRecord

logger = logging.getLogger(__name__)

# ========= THEME =========
ACCENT_HEX = "#0D7590"
ACCENT   = colors.HexColor(ACCENT_HEX)
INK      = colors.HexColor("#4F4F4F")
ROW_ALT  = colors.HexColor("#F2F2F2")
RULE     = colors.HexColor("#BFBFBF")

PAGE_SIZES = {"letter": letter, "a4": A4}

COURSE_HEADER  = ["S/N", "Course Code", "Course Title", "Unit", "Grade", "Total Point"]
SUMMARY_HEADER = ["Units", "UntD", "GPTs", "GPTD", "GPATs", "GPATD"]

HEADER_IMAGE_PT = 60  # logo / profile picture box, in points

FETCH_FAILED  = "Failed to fetch result data"
EXPORT_FAILED = "Failed to generate PDF"


def result_filename(student_id: Any) -> str:
    return f"student-result-{student_id}.pdf"


# ========= IMAGE RESOLUTION =========
def to_data_uri(content: bytes, mime: str = "") -> str:
    if not mime.startswith("image/"):
        try:
            with PILImage.open(io.BytesIO(content)) as img:
                fmt = (img.format or "png").lower()
        except (UnidentifiedImageError, PILImage.DecompressionBombError, OSError) as e:
            raise ImageResolutionError(f"content is not an image: {e}") from e
        mime = "image/jpeg" if fmt == "jpeg" else f"image/{fmt}"
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def decode_data_uri(uri: str) -> bytes:
    head, sep, payload = (uri or "").partition(",")
    if not sep or not head.startswith("data:") or not head.endswith(";base64"):
        raise ValueError("not a base64 data URI")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"bad base64 payload: {e}") from e


def resolve_image(client: ResultServiceClient, url: str, label: str) -> str:
    """Inline one remote image; "" when it cannot be retrieved."""
    try:
        content, mime = client.fetch_image(url)
        return to_data_uri(content, mime)
    except ImageResolutionError as e:
        logger.warning("Could not resolve %s image: %s", label, e)
        return ""


def assemble(client: ResultServiceClient, student_id: Any) -> ResultRecord:
    """Fetch one student's result and inline its logo and profile picture.

    Raises ResultFetchError when the result itself cannot be fetched. The two
    images are downloaded concurrently and each falls back to "" on failure.
    """
    record = client.fetch_result(student_id)
    logger.info("Fetched result for student %s (%d courses)", student_id, len(record.courses))

    jobs = [(record.logo, "logo"), (record.profile_picture, "profile picture")]
    with ThreadPoolExecutor(max_workers=len(jobs)) as executor:
        logo, photo = executor.map(lambda job: resolve_image(client, *job), jobs)

    return replace(record, logo=logo, profile_picture=photo)


# ========= RENDER =========
class SignatureLine(Flowable):
    def __init__(self, width=200, thickness=0.8):
        super().__init__()
        self.width, self.thickness = width, thickness
        self.height = 3
    def draw(self):
        self.canv.setStrokeColor(colors.Color(0, 0, 0, alpha=0.5))
        self.canv.setLineWidth(self.thickness)
        self.canv.line(0, 0, self.width, 0)


def page_geometry(options: ExportOptions) -> Tuple[Tuple[float, float], float, float]:
    """Return (pagesize, margin in points, usable frame width)."""
    try:
        size = PAGE_SIZES[options.page_size.lower()]
    except KeyError:
        raise ExportError(f"unsupported paper size {options.page_size!r}")
    size = landscape(size) if options.orientation.lower() == "landscape" else portrait(size)
    margin = options.margin_in * inch
    return size, margin, size[0] - 2 * margin


def fit_image(data_uri: str, max_w: float, max_h: float, options: ExportOptions) -> Optional[Image]:
    """Re-encode an inlined image as JPEG, sized to fit the box at the export scale."""
    if not data_uri:
        return None
    try:
        with PILImage.open(io.BytesIO(decode_data_uri(data_uri))) as src:
            img = src.convert("RGB")
    except (ValueError, UnidentifiedImageError, PILImage.DecompressionBombError, OSError) as e:
        logger.warning("Skipping unreadable embedded image: %s", e)
        return None

    img.thumbnail((int(max_w * options.image_scale), int(max_h * options.image_scale)))
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=int(round(options.image_quality * 100)))
    buf.seek(0)

    iw, ih = img.size
    scale = min(max_w / iw, max_h / ih)
    return Image(buf, width=iw * scale, height=ih * scale)


@dataclass
class RenderedResult:
    """A laid-out statement of result, ready for export once ``ready`` is set."""
    record: ResultRecord
    story: List[Any] = field(default_factory=list)
    course_rows: List[List[str]] = field(default_factory=list)
    summary_row: List[str] = field(default_factory=list)
    ready: bool = False


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle("rs_small", fontName="Helvetica",      fontSize=9,  textColor=INK, leading=11, alignment=TA_CENTER))
    styles.add(ParagraphStyle("rs_body",  fontName="Helvetica",      fontSize=10, textColor=INK, leading=13))
    styles.add(ParagraphStyle("rs_h1",    fontName="Helvetica-Bold", fontSize=13, textColor=INK, leading=16, alignment=TA_CENTER))
    styles.add(ParagraphStyle("rs_h2",    fontName="Helvetica-Bold", fontSize=15, textColor=INK, leading=19, alignment=TA_CENTER))
    styles.add(ParagraphStyle("rs_h3",    parent=styles["rs_small"], fontName="Helvetica-Bold"))
    styles.add(ParagraphStyle("rs_cell",  fontName="Helvetica",      fontSize=9,  textColor=INK, leading=11))
    return styles


def _grid_style(header_rows: int = 1) -> TableStyle:
    return TableStyle([
        ("BACKGROUND", (0,0), (-1,header_rows-1), ACCENT),
        ("TEXTCOLOR", (0,0), (-1,header_rows-1), colors.white),
        ("FONTNAME", (0,0), (-1,header_rows-1), "Helvetica-Bold"),
        ("FONTSIZE", (0,0), (-1,-1), 9),
        ("TEXTCOLOR", (0,header_rows), (-1,-1), INK),
        ("ALIGN", (0,0), (-1,-1), "LEFT"),
        ("VALIGN", (0,0), (-1,-1), "MIDDLE"),
        ("LINEBELOW", (0,header_rows), (-1,-1), 0.6, RULE),
        ("ROWBACKGROUNDS", (0,header_rows), (-1,-1), [ROW_ALT, colors.white]),
        ("LEFTPADDING", (0,0), (-1,-1), 6),
        ("RIGHTPADDING", (0,0), (-1,-1), 6),
        ("TOPPADDING", (0,0), (-1,-1), 5),
        ("BOTTOMPADDING", (0,0), (-1,-1), 5),
    ])


def render(record: ResultRecord, settings: Settings) -> RenderedResult:
    opts = settings.export
    _, _, W = page_geometry(opts)
    styles = _styles()
    out = RenderedResult(record=record)
    story = out.story

    # Header band: logo | institution | profile picture
    logo  = fit_image(record.logo, HEADER_IMAGE_PT, HEADER_IMAGE_PT, opts) or ""
    photo = fit_image(record.profile_picture, HEADER_IMAGE_PT, HEADER_IMAGE_PT, opts) or ""
    centre = [
        Paragraph(escape(settings.school_name), styles["rs_h1"]),
        Paragraph(escape(settings.school_address), styles["rs_small"]),
        Paragraph(escape(settings.programme_title), styles["rs_h2"]),
        Paragraph(escape(settings.statement_title), styles["rs_h3"]),
    ]
    side = W * 0.17
    header = PdfTable([[logo, centre, photo]], colWidths=[side, W - 2 * side, side])
    header.setStyle(TableStyle([
        ("VALIGN", (0,0), (-1,-1), "MIDDLE"),
        ("ALIGN", (0,0), (0,0), "LEFT"),
        ("ALIGN", (-1,0), (-1,0), "RIGHT"),
    ]))
    story.append(header)
    story.append(Spacer(1, 20))

    # Identity block
    def label(name, value):
        return Paragraph(f"<b>{name}:</b>&nbsp;&nbsp;&nbsp;{escape(value)}", styles["rs_body"])

    ident = PdfTable([
        [label("Name", record.full_name), label("Reg No", record.reg_no)],
        [label("Level", record.level), label("Session", record.session)],
    ], colWidths=[W * 0.6, W * 0.4])
    ident.setStyle(TableStyle([
        ("LEFTPADDING", (0,0), (-1,-1), 8),
        ("BOTTOMPADDING", (0,0), (-1,-1), 2),
    ]))
    story.append(ident)
    story.append(Spacer(1, 20))

    # Courses, in the order the service returned them
    for i, c in enumerate(record.courses, start=1):
        out.course_rows.append([str(i), c.coursecode, c.title, c.credit_unit, c.grade, c.total_point])
    body = [row[:2] + [Paragraph(escape(row[2]), styles["rs_cell"])] + row[3:] for row in out.course_rows]
    cw = [0.08*W, 0.17*W, 0.45*W, 0.09*W, 0.09*W, 0.12*W]
    courses = PdfTable([COURSE_HEADER] + body, colWidths=cw, repeatRows=1)
    courses.setStyle(_grid_style())
    story.append(courses)
    story.append(Spacer(1, 20))

    # Cumulative summary
    out.summary_row = record.cumulative.numeric_row()
    summary = PdfTable([SUMMARY_HEADER, out.summary_row], colWidths=[W / 6] * 6)
    summary.setStyle(_grid_style())
    story.append(summary)
    story.append(Spacer(1, 12))

    story.append(Paragraph(
        f'<b>Remarks:</b> <font color="{ACCENT_HEX}">{escape(record.cumulative.remarks)}</font>',
        styles["rs_body"],
    ))
    story.append(Spacer(1, 60))

    # Signature
    story.append(SignatureLine(width=200))
    story.append(Spacer(1, 6))
    story.append(Paragraph(escape(settings.signatory_title), styles["rs_body"]))

    out.ready = True
    return out


# ========= EXPORT =========
def export(rendered: Optional[RenderedResult], student_id: Any, settings: Settings) -> pathlib.Path:
    if rendered is None or not rendered.ready:
        raise ExportError(f"result for student {student_id} has not been rendered")

    size, margin, _ = page_geometry(settings.export)
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=size,
        leftMargin=margin, rightMargin=margin,
        topMargin=margin, bottomMargin=margin,
        title=f"Statement of Result - {rendered.record.full_name}",
    )
    try:
        doc.build(list(rendered.story))
    except Exception as e:
        raise ExportError(f"PDF layout failed for student {student_id}: {e}") from e

    out = pathlib.Path(settings.output_dir)
    out.mkdir(parents=True, exist_ok=True)
    pdf_path = out / result_filename(student_id)
    pdf_path.write_bytes(buf.getvalue())
    logger.info("Generated result statement -> %s", pdf_path)
    return pdf_path


class ResultExport:
    """Runs assemble -> render -> export for one student.

    ``on_complete`` receives the written path. On failure ``error`` holds the
    message to show the user and the exception is re-raised; nothing retries.
    """

    def __init__(self, client: ResultServiceClient, settings: Settings,
                 on_complete: Optional[Callable[[pathlib.Path], None]] = None):
        self.client = client
        self.settings = settings
        self.on_complete = on_complete
        self.error: Optional[str] = None
        self.rendered: Optional[RenderedResult] = None

    def run(self, student_id: Any) -> pathlib.Path:
        self.error = None
        try:
            record = assemble(self.client, student_id)
        except ResultFetchError as e:
            logger.error("Result fetch failed for student %s: %s", student_id, e)
            self.error = FETCH_FAILED
            raise

        try:
            self.rendered = render(record, self.settings)
            path = export(self.rendered, student_id, self.settings)
        except ExportError as e:
            logger.error("Export failed for student %s: %s", student_id, e)
            self.error = EXPORT_FAILED
            raise

        if self.on_complete:
            self.on_complete(path)
        return path
