"""Per-entry deduplicated persistence with body backfill from the source page."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime

from feedline.http.html_extractor import ContentExtractor
from feedline.ingestion.models import FeedEntry, NewArticle
from feedline.ingestion.repository import SQLiteRepository

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTION_WORKERS = 4

EntryCallback = Callable[[int, int, str], None]


class ArticleIngestor:
    """Turns parsed entries into articles, inserting only those not seen before.

    Entries already stored for the feed are skipped without touching the stored
    row, so read/starred flags and lazily filled bodies survive re-ingestion.
    Missing bodies are extracted on a bounded worker pool; inserts happen in
    entry order on the calling thread.
    """

    def __init__(
        self,
        *,
        repository: SQLiteRepository,
        extractor: ContentExtractor | None,
        max_workers: int = DEFAULT_EXTRACTION_WORKERS,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.repository = repository
        self.extractor = extractor
        self.max_workers = max_workers

    def ingest_entries(
        self,
        feed_id: str,
        entries: list[FeedEntry],
        now: datetime,
        *,
        on_entry: EntryCallback | None = None,
    ) -> int:
        """Persist new entries and return how many rows were actually inserted."""

        unique_entries = _first_occurrences(entries)
        known = self.repository.existing_guids(feed_id, [entry.id for entry in unique_entries])
        pending = [entry for entry in unique_entries if entry.id not in known]
        logger.info(
            "Feed %s: %d entries, %d already stored, %d to ingest",
            feed_id,
            len(entries),
            len(known),
            len(pending),
        )
        if not pending:
            return 0

        inserted = 0
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(pending)),
            thread_name_prefix="feedline-extract",
        )
        try:
            bodies: list[Future[str | None] | None] = [
                executor.submit(self._extract_body, entry)
                if self._needs_extraction(entry)
                else None
                for entry in pending
            ]
            for index, (entry, body) in enumerate(zip(pending, bodies, strict=True), start=1):
                content = body.result() if body is not None else _inline_body(entry)
                article = NewArticle(
                    feed_id=feed_id,
                    guid=entry.id,
                    title=entry.title,
                    link=entry.link,
                    description=entry.summary,
                    content=content,
                    author=entry.author,
                    published_at=entry.published,
                )
                if self.repository.insert_article_if_absent(article, now=now):
                    inserted += 1
                if on_entry is not None:
                    on_entry(index, len(pending), entry.title)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        return inserted

    def _needs_extraction(self, entry: FeedEntry) -> bool:
        return self.extractor is not None and _inline_body(entry) is None and bool(entry.link)

    def _extract_body(self, entry: FeedEntry) -> str | None:
        if self.extractor is None or not entry.link:
            return None
        result = self.extractor.extract(entry.link)
        if not result.is_success:
            logger.info("No body extracted for %s: %s", entry.link, result.error)
            return None
        return result.text


def _inline_body(entry: FeedEntry) -> str | None:
    if entry.content and entry.content.strip():
        return entry.content
    return None


def _first_occurrences(entries: list[FeedEntry]) -> list[FeedEntry]:
    seen: set[str] = set()
    unique: list[FeedEntry] = []
    for entry in entries:
        if entry.id in seen:
            logger.debug("Duplicate entry id %s in one document, keeping the first", entry.id)
            continue
        seen.add(entry.id)
        unique.append(entry)
    return unique
