import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _get_float_env(var_name: str, default_value: float) -> float:
    raw = os.environ.get(var_name)
    if raw is None or not raw.strip():
        return default_value
    try:
        return float(raw.strip())
    except ValueError:
        return default_value


def _get_int_env(var_name: str, default_value: int) -> int:
    return int(_get_float_env(var_name, default_value))


def _get_cors_origins() -> List[str]:
    """
    Comma-separated origins, e.g.
      CORS_ORIGINS="https://itinerary.example.com,http://localhost:3333"
    Falls back to a wildcard for local development.
    """
    raw = os.environ.get("CORS_ORIGINS", "").strip()
    if not raw:
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


# Secret key for JWT
SECRET_KEY = os.environ.get(
    "JWT_SECRET_KEY", "6f1c2a0f3b8e4d7a9c5e2b1f0d4a8c3e7b6a5f9d2c1e0b4a7d3f8e6c2b9a1d5"
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _get_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = _get_cors_origins()

DATA_DIR = Path(os.environ.get("DATA_DIR", "data"))


@dataclass(frozen=True)
class Settings:
    """Paths, backends and remote endpoints wired into the application."""

    data_dir: Path = DATA_DIR
    store_backend: str = "json"
    database_url: str = ""
    template_path: Path = DATA_DIR / "templates" / "itinerary.docx"
    default_cover_path: Path = DATA_DIR / "public" / "default-cover.jpg"
    screenshots_dir: Path = DATA_DIR / "img" / "itinerary"
    temp_store_dir: Path = DATA_DIR / "temp" / "tempStore"
    upload_dir: Path = DATA_DIR / "img" / "pp"

    screenshot_base_url: str = "https://www.screenshotmachine.com"
    map_frame_url: str = "https://map-framer-orpin.vercel.app/#"
    pdf24_base_url: str = "https://filetools27.pdf24.org/client.php"
    convert_poll_interval: float = 2.0
    convert_max_attempts: int = 30
    http_timeout_seconds: float = 60.0
    max_finished_jobs: int = 100

    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def resolved_database_url(self) -> str:
        return self.database_url or f"sqlite:///{self.data_dir / 'itinerary.db'}"


def get_settings() -> Settings:
    """Build a Settings snapshot from the current environment."""
    data_dir = Path(os.environ.get("DATA_DIR", str(DATA_DIR)))

    def _path(var_name: str, default: Path) -> Path:
        value = os.environ.get(var_name)
        return Path(value) if value else default

    return Settings(
        data_dir=data_dir,
        store_backend=os.environ.get("STORE_BACKEND", "json").lower(),
        database_url=os.environ.get("DATABASE_URL", ""),
        template_path=_path("TEMPLATE_PATH", data_dir / "templates" / "itinerary.docx"),
        default_cover_path=_path(
            "DEFAULT_COVER_PATH", data_dir / "public" / "default-cover.jpg"
        ),
        screenshots_dir=_path("SCREENSHOTS_DIR", data_dir / "img" / "itinerary"),
        temp_store_dir=_path("TEMP_STORE_DIR", data_dir / "temp" / "tempStore"),
        upload_dir=_path("UPLOAD_DIR", data_dir / "img" / "pp"),
        screenshot_base_url=os.environ.get(
            "SCREENSHOT_BASE_URL", "https://www.screenshotmachine.com"
        ),
        map_frame_url=os.environ.get(
            "MAP_FRAME_URL", "https://map-framer-orpin.vercel.app/#"
        ),
        pdf24_base_url=os.environ.get(
            "PDF24_BASE_URL", "https://filetools27.pdf24.org/client.php"
        ),
        convert_poll_interval=_get_float_env("CONVERT_POLL_INTERVAL", 2.0),
        convert_max_attempts=_get_int_env("CONVERT_MAX_ATTEMPTS", 30),
        http_timeout_seconds=_get_float_env("HTTP_TIMEOUT_SECONDS", 60.0),
        max_finished_jobs=_get_int_env("MAX_FINISHED_JOBS", 100),
        cors_origins=CORS_ORIGINS,
    )
