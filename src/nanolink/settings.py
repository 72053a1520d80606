"""Configuration helpers for nanolink."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_LIBRARY_ROOT = Path.home() / "nanolink-library"
DEFAULT_TEMPLATE_URL = "https://w3id.org/np/RA24onqmqTMsraJ7ypYFOuckmNWpo4Zv5gsLqhXt7xYPU"


class Settings(BaseModel):
    """Runtime configuration loaded from env vars with sensible defaults."""

    data_dir: Path = Field(default_factory=lambda: DEFAULT_LIBRARY_ROOT)
    db_filename: str = "library.sqlite3"
    log_level: str = "INFO"
    purl_prefix: str = "https://w3id.org/np/"
    document_host: str = "https://np.knowledgepixels.com/"
    document_suffix: str = ".trig"
    query_endpoint: str = "https://query.petapico.org/repo/full"
    nanodash_url: str = "https://nanodash.knowledgepixels.com/publish"
    template_url: str = DEFAULT_TEMPLATE_URL
    request_timeout: float = 30.0
    prompt_timeout: float | None = None
    max_results: int = 100

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    def ensure_directories(self) -> None:
        """Create data directories if they are missing."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(cls) -> "Settings":
        load_dotenv()
        data_dir = Path(os.environ.get("NANOLINK_DATA_DIR", DEFAULT_LIBRARY_ROOT))
        prompt_timeout = os.environ.get("NANOLINK_PROMPT_TIMEOUT")
        return cls(
            data_dir=data_dir,
            db_filename=os.environ.get("NANOLINK_DB_FILENAME", "library.sqlite3"),
            log_level=os.environ.get("NANOLINK_LOG_LEVEL", "INFO"),
            purl_prefix=os.environ.get("NANOLINK_PURL_PREFIX", "https://w3id.org/np/"),
            document_host=os.environ.get(
                "NANOLINK_DOCUMENT_HOST", "https://np.knowledgepixels.com/"
            ),
            document_suffix=os.environ.get("NANOLINK_DOCUMENT_SUFFIX", ".trig"),
            query_endpoint=os.environ.get(
                "NANOLINK_QUERY_ENDPOINT", "https://query.petapico.org/repo/full"
            ),
            nanodash_url=os.environ.get(
                "NANOLINK_NANODASH_URL", "https://nanodash.knowledgepixels.com/publish"
            ),
            template_url=os.environ.get("NANOLINK_TEMPLATE_URL", DEFAULT_TEMPLATE_URL),
            request_timeout=float(os.environ.get("NANOLINK_REQUEST_TIMEOUT", "30")),
            prompt_timeout=float(prompt_timeout) if prompt_timeout else None,
            max_results=int(os.environ.get("NANOLINK_MAX_RESULTS", "100")),
        )


def get_settings() -> Settings:
    """Convenience accessor for lazy modules."""
    settings = Settings.load()
    settings.ensure_directories()
    return settings


def configure_logging(level: str) -> None:
    """Route structlog output through a level filter taken from settings."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )
