"""Runtime configuration for feed ingestion and content extraction."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
MAX_EXTRACTION_WORKERS = 16


@dataclass(slots=True)
class HttpSettings:
    """Outbound HTTP settings shared by feed and page fetches."""

    timeout_seconds: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT


@dataclass(slots=True)
class IngestionSettings:
    """Article ingestion and extraction settings."""

    extraction_enabled: bool = True
    extraction_workers: int = 4
    articles_page_size: int = 50


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".feedline.db")
    http: HttpSettings = field(default_factory=HttpSettings)
    ingestion: IngestionSettings = field(default_factory=IngestionSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local use."""

        return cls(
            db_path=db_path or Path(os.getenv("FEEDLINE_DB_PATH", ".feedline.db")),
            http=HttpSettings(
                timeout_seconds=float(os.getenv("FEEDLINE_HTTP_TIMEOUT_SECONDS", "30.0")),
                user_agent=os.getenv("FEEDLINE_HTTP_USER_AGENT", "").strip()
                or DEFAULT_USER_AGENT,
            ),
            ingestion=IngestionSettings(
                extraction_enabled=_env_bool("FEEDLINE_EXTRACTION_ENABLED", default=True),
                extraction_workers=int(os.getenv("FEEDLINE_EXTRACTION_WORKERS", "4")),
                articles_page_size=int(os.getenv("FEEDLINE_ARTICLES_PAGE_SIZE", "50")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any value is out of range."""

        if self.http.timeout_seconds <= 0:
            raise ValueError("FEEDLINE_HTTP_TIMEOUT_SECONDS must be > 0.")
        if not 1 <= self.ingestion.extraction_workers <= MAX_EXTRACTION_WORKERS:
            raise ValueError(
                f"FEEDLINE_EXTRACTION_WORKERS must be between 1 and {MAX_EXTRACTION_WORKERS}.",
            )
        if self.ingestion.articles_page_size <= 0:
            raise ValueError("FEEDLINE_ARTICLES_PAGE_SIZE must be a positive integer.")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
