"""Error taxonomy shared by fetcher, parser, storage, and registry."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class FeedlineError(Exception):
    """Base error for all feed ingestion failures."""

    message: str
    code: str = "feedline_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class InvalidUrlError(FeedlineError):
    """Malformed feed or page URL. Not retryable: the input must be corrected."""

    code: str = "invalid_url"


@dataclass(slots=True)
class NetworkError(FeedlineError):
    """Connection, timeout, or non-2xx failure. Retryable by the caller."""

    code: str = "network"
    status_code: int | None = None


@dataclass(slots=True)
class ParseError(FeedlineError):
    """Malformed or unrecognized feed document."""

    code: str = "parse"


@dataclass(slots=True)
class FeedNotFoundError(FeedlineError):
    code: str = "feed_not_found"


@dataclass(slots=True)
class ArticleNotFoundError(FeedlineError):
    code: str = "article_not_found"


@dataclass(slots=True)
class FeedAlreadyExistsError(FeedlineError):
    code: str = "feed_already_exists"


@dataclass(slots=True)
class StorageError(FeedlineError):
    """Underlying persistence failure, carrying the driver message verbatim."""

    code: str = "storage"


@dataclass(slots=True)
class ValidationError(FeedlineError):
    code: str = "validation"
