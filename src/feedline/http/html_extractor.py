"""Readable article body extraction with an ordered fallback chain.

Strategies run in fixed priority order and the first one producing a
non-trivial result wins:

1. ``readability``: trafilatura main-content extraction anchored to the page URL.
2. ``selectors``: first matching semantic container whose text exceeds 100 chars.
3. ``paragraphs``: every ``<p>`` longer than 20 chars, joined by a blank line.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import trafilatura
from bs4 import BeautifulSoup, Tag

from feedline.http.fetcher import HttpFetcher

logger = logging.getLogger(__name__)

SEMANTIC_SELECTORS = (
    "article",
    ".post-content",
    ".entry-content",
    ".content",
    "main",
    ".article-body",
    "#content",
    ".post-body",
    ".article-content",
    ".post",
    '[role="main"]',
)
SELECTOR_MIN_CHARS = 100
PARAGRAPH_MIN_CHARS = 20
PARAGRAPH_SEPARATOR = "\n\n"

# Markup is bytes when the response charset is unknown; bs4 and trafilatura sniff it.
Strategy = Callable[[str | bytes, str | None], str | None]


@dataclass(slots=True)
class ExtractionResult:
    """Result of page body extraction."""

    text: str
    is_success: bool
    strategy: str | None = None
    error: str | None = None


def readability_strategy(html: str | bytes, base_url: str | None) -> str | None:
    text = trafilatura.extract(
        html,
        url=base_url,
        include_tables=True,
        include_links=False,
        favor_precision=True,
        deduplicate=True,
    )
    if not text:
        text = trafilatura.extract(
            html,
            url=base_url,
            include_tables=True,
            include_links=False,
            favor_recall=True,
        )
    if text and text.strip():
        return text.strip()
    return None


def selector_strategy(html: str | bytes, base_url: str | None) -> str | None:  # noqa: ARG001
    soup = _parse_html(html)
    for selector in SEMANTIC_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element_text(element)
        if len(text) > SELECTOR_MIN_CHARS:
            logger.debug("Selector %r matched (%d chars)", selector, len(text))
            return text
    return None


def paragraph_strategy(html: str | bytes, base_url: str | None) -> str | None:  # noqa: ARG001
    soup = _parse_html(html)
    paragraphs = [element_text(element) for element in soup.find_all("p")]
    kept = [text for text in paragraphs if len(text) > PARAGRAPH_MIN_CHARS]
    if not kept:
        return None
    return PARAGRAPH_SEPARATOR.join(kept)


DEFAULT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("readability", readability_strategy),
    ("selectors", selector_strategy),
    ("paragraphs", paragraph_strategy),
)


def element_text(element: Tag) -> str:
    """All text nodes of an element joined by single spaces, trimmed."""

    return element.get_text(" ").strip()


class ContentExtractor:
    """Fetches a page and extracts its readable body. Never raises to the caller."""

    def __init__(
        self,
        http: HttpFetcher,
        *,
        strategies: tuple[tuple[str, Strategy], ...] = DEFAULT_STRATEGIES,
    ) -> None:
        self._http = http
        self._strategies = strategies

    def close(self) -> None:
        self._http.close()

    def extract(self, page_url: str) -> ExtractionResult:
        try:
            response = self._http.fetch(page_url)
            if not response.is_success:
                logger.warning("Page fetch failed for %s: %s", page_url, response.error)
                return ExtractionResult(text="", is_success=False, error=response.error)
            markup = response.text if response.text is not None else response.content
            return self.extract_from_html(markup, base_url=page_url)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Content extraction failed for %s: %s", page_url, exc)
            return ExtractionResult(text="", is_success=False, error=str(exc))

    def extract_from_html(
        self,
        html: str | bytes,
        *,
        base_url: str | None = None,
    ) -> ExtractionResult:
        if not html or not html.strip():
            return ExtractionResult(text="", is_success=False, error="empty HTML input")

        for name, strategy in self._strategies:
            try:
                text = strategy(html, base_url)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Extraction strategy %s failed for %s: %s",
                    name,
                    base_url or "<unknown>",
                    exc,
                )
                continue
            if text:
                logger.debug(
                    "Extracted %d chars from %s using %s",
                    len(text),
                    base_url or "<unknown>",
                    name,
                )
                return ExtractionResult(text=text, is_success=True, strategy=name)

        logger.info("No readable content found for %s", base_url or "<unknown>")
        return ExtractionResult(text="", is_success=False, error="no content extracted")


def _parse_html(html: str | bytes) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")
