"""Feed registry: subscription lifecycle, refresh orchestration, and reader queries."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime

import httpx

from feedline.config import Settings
from feedline.errors import (
    ArticleNotFoundError,
    FeedAlreadyExistsError,
    FeedNotFoundError,
    ValidationError,
)
from feedline.http.fetcher import (
    FeedFetcher,
    HttpFetcher,
    build_feed_http_fetcher,
    validate_http_url,
)
from feedline.http.html_extractor import ContentExtractor
from feedline.ingestion.ingestor import ArticleIngestor
from feedline.ingestion.models import (
    Article,
    Feed,
    FeedDocument,
    FetchProgress,
    FetchStatus,
    Statistics,
)
from feedline.ingestion.parser import parse_feed
from feedline.ingestion.progress import ProgressReporter
from feedline.ingestion.repository import DEFAULT_PAGE_SIZE, SQLiteRepository
from feedline.ingestion.storage.common import utc_now

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "interrupted"


def refresh_message(new_articles: int) -> str:
    return f"Refreshed successfully. {new_articles} new articles added."


class FeedRegistry:
    """Entry point for every feed and article operation.

    Synchronous operations raise :mod:`feedline.errors` exceptions to the caller.
    The ``*_async`` variants run ingestion on a background thread that reports
    the outcome only through :class:`ProgressReporter` events, ending every run
    with exactly one terminal ``completed`` or ``failed`` event.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: SQLiteRepository,
        feed_fetcher: FeedFetcher,
        ingestor: ArticleIngestor,
        extractor: ContentExtractor | None = None,
        reporter: ProgressReporter | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.feed_fetcher = feed_fetcher
        self.ingestor = ingestor
        self.extractor = extractor
        self.reporter = reporter or ProgressReporter()
        self.page_size = page_size
        self._clock = clock
        self._threads: list[threading.Thread] = []
        self._threads_lock = threading.Lock()

    def close(self) -> None:
        self.wait_for_background()
        self.feed_fetcher.close()
        if self.extractor is not None:
            self.extractor.close()

    # -- feeds ------------------------------------------------------------------

    def add_feed(self, url: str) -> Feed:
        """Register a feed and ingest its current entries before returning."""

        feed, document = self._register(url)
        with self._run_reported(feed, total_articles=len(document.entries)):
            self._ingest_document(feed, document)
        return self._require_feed(feed.id)

    def add_feed_async(self, url: str) -> Feed:
        """Register a feed now and ingest its entries on a background thread.

        Validation, fetch, parse and the feed insert still happen before this
        returns, so their errors reach the caller directly.
        """

        feed, document = self._register(url)
        self._start_background(
            feed,
            lambda: self._ingest_document(feed, document),
            total_articles=len(document.entries),
        )
        return feed

    def refresh_feed(self, feed_id: str) -> str:
        feed = self._require_feed(feed_id)
        with self._run_reported(feed):
            new_articles = self._ingest_document(feed, self._fetch_document(feed.url))
        return refresh_message(new_articles)

    def refresh_feed_async(self, feed_id: str) -> None:
        feed = self._require_feed(feed_id)

        def run() -> None:
            self._ingest_document(feed, self._fetch_document(feed.url))

        self._start_background(feed, run)

    def delete_feed(self, feed_id: str) -> None:
        if not self.repository.delete_feed(feed_id):
            raise FeedNotFoundError(message=f"Feed not found: {feed_id}")
        logger.info("Deleted feed %s", feed_id)

    def list_feeds(self) -> list[Feed]:
        return self.repository.list_feeds()

    def get_feed(self, feed_id: str) -> Feed:
        return self._require_feed(feed_id)

    def wait_for_background(self, timeout: float | None = None) -> None:
        """Join background runs started so far."""

        with self._threads_lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)
        with self._threads_lock:
            self._threads = [thread for thread in self._threads if thread.is_alive()]

    # -- articles ---------------------------------------------------------------

    def list_articles(
        self,
        *,
        feed_id: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Article]:
        effective_limit = self.page_size if limit is None else limit
        effective_offset = 0 if offset is None else offset
        if effective_limit <= 0:
            raise ValidationError(message="limit must be a positive integer")
        if effective_offset < 0:
            raise ValidationError(message="offset must not be negative")
        return self.repository.list_articles(
            feed_id=feed_id,
            limit=effective_limit,
            offset=effective_offset,
        )

    def get_article_content(self, article_id: str) -> Article:
        """Return the article, extracting and storing its body on first read if missing."""

        article = self._require_article(article_id)
        if _has_body(article.content) or not article.link or self.extractor is None:
            return article

        result = self.extractor.extract(article.link)
        if not result.is_success or not result.text:
            logger.info("Body of article %s is still empty: %s", article_id, result.error)
            return article
        if self.repository.fill_article_content(article_id, result.text):
            logger.info(
                "Stored %d chars for article %s via %s",
                len(result.text),
                article_id,
                result.strategy,
            )
        # Another reader may have filled it first; the stored body wins.
        return self._require_article(article_id)

    def update_article_flags(
        self,
        article_id: str,
        *,
        is_read: bool | None = None,
        is_starred: bool | None = None,
    ) -> Article:
        if is_read is None and is_starred is None:
            raise ValidationError(message="At least one of is_read or is_starred is required")
        if not self.repository.update_article_flags(
            article_id,
            is_read=is_read,
            is_starred=is_starred,
        ):
            raise ArticleNotFoundError(message=f"Article not found: {article_id}")
        return self._require_article(article_id)

    def get_statistics(self) -> Statistics:
        return self.repository.statistics()

    # -- internals --------------------------------------------------------------

    def _register(self, url: str) -> tuple[Feed, FeedDocument]:
        feed_url = validate_http_url(url)
        if self.repository.find_feed_by_url(feed_url) is not None:
            raise FeedAlreadyExistsError(message=f"Feed already exists: {feed_url}")

        document = self._fetch_document(feed_url)
        feed = self.repository.insert_feed(
            url=feed_url,
            title=document.title,
            description=document.description,
            website_url=document.website_url,
            last_updated=None,
            now=self._clock(),
        )
        logger.info("Registered feed %s (%s) with id %s", feed.title, feed_url, feed.id)
        return feed, document

    def _fetch_document(self, url: str) -> FeedDocument:
        return parse_feed(self.feed_fetcher.fetch(url))

    def _ingest_document(self, feed: Feed, document: FeedDocument) -> int:
        total = len(document.entries)

        def on_entry(index: int, pending: int, title: str) -> None:
            self._emit(
                feed,
                FetchStatus.IN_PROGRESS,
                total_articles=total,
                fetched_articles=index,
                pending_articles=pending,
                current_article_title=title,
            )

        now = self._clock()
        new_articles = self.ingestor.ingest_entries(
            feed.id,
            document.entries,
            now,
            on_entry=on_entry,
        )
        self.repository.mark_feed_synced(feed.id, now=now)

        logger.info("Feed %s: %d new articles out of %d entries", feed.id, new_articles, total)
        self._emit(
            feed,
            FetchStatus.COMPLETED,
            total_articles=total,
            fetched_articles=new_articles,
        )
        return new_articles

    def _start_background(
        self,
        feed: Feed,
        run: Callable[[], object],
        *,
        total_articles: int = 0,
    ) -> None:
        thread = threading.Thread(
            target=self._run_background,
            args=(feed, run),
            kwargs={"total_articles": total_articles},
            name=f"feedline-ingest-{feed.id}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads.append(thread)
        thread.start()

    def _run_background(
        self,
        feed: Feed,
        run: Callable[[], object],
        *,
        total_articles: int = 0,
    ) -> None:
        try:
            with self._run_reported(feed, total_articles=total_articles):
                run()
        except Exception:
            logger.exception("Background ingestion failed for feed %s", feed.id)

    @contextmanager
    def _run_reported(self, feed: Feed, *, total_articles: int = 0) -> Iterator[None]:
        """Bracket one add/refresh run with ``started`` and exactly one terminal event.

        ``completed`` is emitted by the run itself. Exceptions become ``failed``
        with their message; anything that unwinds the run otherwise, such as
        ``KeyboardInterrupt``, becomes ``failed`` with :data:`INTERRUPTED_ERROR`.
        Errors always propagate.
        """

        self._emit(feed, FetchStatus.STARTED, total_articles=total_articles)
        finished = False
        try:
            yield
            finished = True
        except Exception as error:
            finished = True
            self._emit(feed, FetchStatus.FAILED, error=str(error))
            raise
        finally:
            if not finished:
                self._emit(feed, FetchStatus.FAILED, error=INTERRUPTED_ERROR)

    def _emit(  # noqa: PLR0913
        self,
        feed: Feed,
        status: FetchStatus,
        *,
        total_articles: int = 0,
        fetched_articles: int = 0,
        pending_articles: int = 0,
        current_article_title: str | None = None,
        error: str | None = None,
    ) -> None:
        self.reporter.emit(
            FetchProgress(
                feed_id=feed.id,
                feed_title=feed.title,
                status=status,
                total_articles=total_articles,
                fetched_articles=fetched_articles,
                pending_articles=pending_articles,
                current_article_title=current_article_title,
                error=error,
            ),
        )

    def _require_feed(self, feed_id: str) -> Feed:
        feed = self.repository.get_feed(feed_id)
        if feed is None:
            raise FeedNotFoundError(message=f"Feed not found: {feed_id}")
        return feed

    def _require_article(self, article_id: str) -> Article:
        article = self.repository.get_article(article_id)
        if article is None:
            raise ArticleNotFoundError(message=f"Article not found: {article_id}")
        return article


def build_registry(
    settings: Settings,
    repository: SQLiteRepository,
    *,
    reporter: ProgressReporter | None = None,
    transport: httpx.BaseTransport | None = None,
) -> FeedRegistry:
    """Wire fetcher, extractor, ingestor and reporter from settings around ``repository``."""

    feed_fetcher = FeedFetcher(
        build_feed_http_fetcher(
            timeout_seconds=settings.http.timeout_seconds,
            user_agent=settings.http.user_agent,
            transport=transport,
        ),
    )
    extractor: ContentExtractor | None = None
    if settings.ingestion.extraction_enabled:
        extractor = ContentExtractor(
            HttpFetcher(
                timeout_seconds=settings.http.timeout_seconds,
                user_agent=settings.http.user_agent,
                transport=transport,
            ),
        )
    return FeedRegistry(
        repository=repository,
        feed_fetcher=feed_fetcher,
        ingestor=ArticleIngestor(
            repository=repository,
            extractor=extractor,
            max_workers=settings.ingestion.extraction_workers,
        ),
        extractor=extractor,
        reporter=reporter,
        page_size=settings.ingestion.articles_page_size,
    )


def _has_body(content: str | None) -> bool:
    return bool(content and content.strip())
