import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_BASE_URL = "https://test.omniswift.com.ng"


@dataclass(frozen=True)
class ExportOptions:
    margin_in: float = 1.0
    image_quality: float = 0.98
    image_scale: float = 2.0
    page_size: str = "letter"
    orientation: str = "portrait"


@dataclass(frozen=True)
class Settings:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0
    output_dir: str = "output"

    school_name: str = "FREMONT COLLEGE OF EDUCATION"
    school_address: str = "No.5 Raymond Osuman Street, PMB 2191 Maitama, Abuja, Nigeria."
    programme_title: str = "Post Graduate Diploma in Education"
    statement_title: str = "Student First Semester Statement Of Result"
    signatory_title: str = "Registrar"

    export: ExportOptions = field(default_factory=ExportOptions)
    log_level: str = "INFO"

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables (os.environ by default)."""
    env = os.environ if env is None else env
    d = Settings()
    export = ExportOptions(
        margin_in=_float(env, "PDF_MARGIN_IN", d.export.margin_in),
        image_quality=_float(env, "PDF_IMAGE_QUALITY", d.export.image_quality),
        image_scale=_float(env, "PDF_IMAGE_SCALE", d.export.image_scale),
    )
    return Settings(
        base_url=env.get("RESULT_API_BASE_URL", d.base_url),
        timeout=_float(env, "RESULT_API_TIMEOUT", d.timeout),
        output_dir=env.get("OUTPUT_DIR", d.output_dir),
        school_name=env.get("SCHOOL_NAME", d.school_name),
        school_address=env.get("SCHOOL_ADDRESS", d.school_address),
        programme_title=env.get("PROGRAMME_TITLE", d.programme_title),
        statement_title=env.get("STATEMENT_TITLE", d.statement_title),
        signatory_title=env.get("SIGNATORY_TITLE", d.signatory_title),
        export=export,
        log_level=env.get("LOG_LEVEL", d.log_level).upper(),
    )
