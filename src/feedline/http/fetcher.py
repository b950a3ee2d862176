"""HTTP client with bounded timeout and explicit user-agent."""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx

from feedline.config import DEFAULT_USER_AGENT
from feedline.errors import InvalidUrlError, NetworkError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
FEED_ACCEPT_HEADER = (
    "application/rss+xml, application/atom+xml, application/feed+json, "
    "application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8"
)


@dataclass(slots=True)
class FetchResult:
    """Result of an HTTP fetch operation."""

    url: str
    status_code: int
    content: bytes
    content_type: str
    encoding: str | None
    is_success: bool
    error: str | None = None

    @property
    def text(self) -> str | None:
        """Body decoded with the charset from ``Content-Type``.

        ``None`` when the header names no charset or one Python does not know, so
        callers can hand :attr:`content` to a parser that sniffs the document itself.
        """

        if not self.encoding:
            return None
        try:
            codecs.lookup(self.encoding)
        except LookupError:
            logger.debug("Unknown charset %r for %s", self.encoding, self.url)
            return None
        return self.content.decode(self.encoding, errors="replace")


class HttpFetcher:
    """Single-attempt HTTP client wrapper with timeout and user-agent configuration."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = httpx.Timeout(timeout_seconds)
        base_headers = {"User-Agent": user_agent}
        if headers:
            base_headers.update(headers)
        self._client = httpx.Client(
            timeout=self._timeout,
            headers=base_headers,
            transport=transport,
            follow_redirects=True,
        )

    def fetch(self, url: str) -> FetchResult:
        """Fetch URL content, returning structured result."""

        try:
            response = self._client.get(url)
            content_type = response.headers.get("content-type", "")
            return FetchResult(
                url=url,
                status_code=response.status_code,
                content=response.content,
                content_type=content_type,
                encoding=response.charset_encoding,
                is_success=response.is_success,
                error=None if response.is_success else f"HTTP {response.status_code}",
            )
        except httpx.TimeoutException:
            logger.warning("Timeout fetching %s", url)
            return _failed(url, "timeout")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("HTTP error fetching %s: %s", url, exc)
            return _failed(url, str(exc) or exc.__class__.__name__)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class FeedFetcher:
    """Retrieves raw feed bytes. One attempt per call; retries are the caller's business."""

    def __init__(self, http: HttpFetcher) -> None:
        self._http = http

    def fetch(self, url: str) -> bytes:
        result = self._http.fetch(url)
        if not result.is_success:
            raise NetworkError(
                message=f"Failed to fetch feed {url}: {result.error}",
                status_code=result.status_code or None,
            )
        logger.debug("Fetched feed %s (%d bytes)", url, len(result.content))
        return result.content

    def close(self) -> None:
        self._http.close()


def build_feed_http_fetcher(
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    user_agent: str = DEFAULT_USER_AGENT,
    transport: httpx.BaseTransport | None = None,
) -> HttpFetcher:
    return HttpFetcher(
        timeout_seconds=timeout_seconds,
        user_agent=user_agent,
        headers={"Accept": FEED_ACCEPT_HEADER},
        transport=transport,
    )


def validate_http_url(value: str) -> str:
    """Return the stripped URL or raise if it is not an absolute http(s) URL."""

    candidate = value.strip()
    try:
        parsed = urlparse(candidate)
    except ValueError as error:
        raise InvalidUrlError(message=f"Invalid URL: {value!r}") from error
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise InvalidUrlError(
            message=(
                f"Invalid URL: {value!r}. Expected an absolute URL with http:// or https:// scheme."
            ),
        )
    return candidate


def _failed(url: str, error: str) -> FetchResult:
    return FetchResult(
        url=url,
        status_code=0,
        content=b"",
        content_type="",
        encoding=None,
        is_success=False,
        error=error,
    )
