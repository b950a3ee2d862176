from __future__ import annotations

import threading
from datetime import UTC, datetime

import allure
import pytest

from feedline.http.html_extractor import ExtractionResult
from feedline.ingestion.ingestor import ArticleIngestor
from feedline.ingestion.models import Feed, FeedEntry
from feedline.ingestion.repository import SQLiteRepository

pytestmark = [
    allure.epic("Feed Ingestion"),
    allure.feature("Article Ingestion"),
]

NOW = datetime(2026, 2, 17, 12, 0, tzinfo=UTC)


class RecordingExtractor:
    """Stands in for ContentExtractor; returns canned bodies per URL."""

    def __init__(self, bodies: dict[str, str]) -> None:
        self.bodies = bodies
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def extract(self, page_url: str) -> ExtractionResult:
        with self._lock:
            self.calls.append(page_url)
        body = self.bodies.get(page_url)
        if body is None:
            return ExtractionResult(text="", is_success=False, error="HTTP 404")
        return ExtractionResult(text=body, is_success=True, strategy="selectors")


@pytest.fixture()
def feed(repository: SQLiteRepository) -> Feed:
    return repository.insert_feed(
        url="https://news.example.com/feed.xml",
        title="Example News",
        description=None,
        website_url=None,
        last_updated=None,
        now=NOW,
    )


def _entries() -> list[FeedEntry]:
    return [
        FeedEntry(
            id="inline",
            title="Inline body",
            links=["https://news.example.com/inline"],
            content="<p>Already here</p>",
        ),
        FeedEntry(id="remote", title="Remote body", links=["https://news.example.com/remote"]),
        FeedEntry(id="linkless", title="No link", summary="Only a summary"),
        FeedEntry(id="broken", title="Broken page", links=["https://news.example.com/broken"]),
    ]


def test_ingest_stores_new_entries_and_backfills_bodies(
    repository: SQLiteRepository,
    feed: Feed,
) -> None:
    extractor = RecordingExtractor({"https://news.example.com/remote": "Extracted body"})
    ingestor = ArticleIngestor(repository=repository, extractor=extractor, max_workers=3)

    inserted = ingestor.ingest_entries(feed.id, _entries(), NOW)

    assert inserted == 4
    bodies = {article.guid: article.content for article in repository.list_articles()}
    assert bodies == {
        "inline": "<p>Already here</p>",
        "remote": "Extracted body",
        "linkless": None,
        "broken": None,
    }
    assert sorted(extractor.calls) == [
        "https://news.example.com/broken",
        "https://news.example.com/remote",
    ]


def test_reingestion_is_idempotent_and_skips_extraction(
    repository: SQLiteRepository,
    feed: Feed,
) -> None:
    extractor = RecordingExtractor({})
    ingestor = ArticleIngestor(repository=repository, extractor=extractor)

    assert ingestor.ingest_entries(feed.id, _entries(), NOW) == 4
    calls_after_first_run = len(extractor.calls)

    assert ingestor.ingest_entries(feed.id, _entries(), NOW) == 0
    assert len(extractor.calls) == calls_after_first_run
    assert repository.count_articles(feed.id) == 4


def test_reingestion_keeps_reader_flags(repository: SQLiteRepository, feed: Feed) -> None:
    ingestor = ArticleIngestor(repository=repository, extractor=None)
    ingestor.ingest_entries(feed.id, [FeedEntry(id="a", title="Original")], NOW)
    (article,) = repository.list_articles()
    repository.update_article_flags(article.id, is_read=True, is_starred=True)

    ingestor.ingest_entries(feed.id, [FeedEntry(id="a", title="Edited upstream")], NOW)

    stored = repository.get_article(article.id)
    assert stored.title == "Original"
    assert stored.is_read
    assert stored.is_starred


def test_duplicate_ids_in_one_document_keep_first(
    repository: SQLiteRepository,
    feed: Feed,
) -> None:
    ingestor = ArticleIngestor(repository=repository, extractor=None)
    entries = [FeedEntry(id="dup", title="First"), FeedEntry(id="dup", title="Second")]

    assert ingestor.ingest_entries(feed.id, entries, NOW) == 1
    (article,) = repository.list_articles()
    assert article.title == "First"


def test_on_entry_reports_each_processed_entry_in_order(
    repository: SQLiteRepository,
    feed: Feed,
) -> None:
    ingestor = ArticleIngestor(repository=repository, extractor=None)
    ingestor.ingest_entries(feed.id, [FeedEntry(id="seen", title="Seen")], NOW)
    seen: list[tuple[int, int, str]] = []

    ingestor.ingest_entries(
        feed.id,
        [
            FeedEntry(id="seen", title="Seen"),
            FeedEntry(id="n-1", title="New one"),
            FeedEntry(id="n-2", title="New two"),
        ],
        NOW,
        on_entry=lambda index, total, title: seen.append((index, total, title)),
    )

    assert seen == [(1, 2, "New one"), (2, 2, "New two")]


def test_without_extractor_bodies_stay_empty(repository: SQLiteRepository, feed: Feed) -> None:
    ingestor = ArticleIngestor(repository=repository, extractor=None)
    entry = FeedEntry(id="remote", title="Remote", links=["https://news.example.com/remote"])

    assert ingestor.ingest_entries(feed.id, [entry], NOW) == 1
    assert repository.list_articles()[0].content is None


def test_worker_count_must_be_positive(repository: SQLiteRepository) -> None:
    with pytest.raises(ValueError, match="max_workers"):
        ArticleIngestor(repository=repository, extractor=None, max_workers=0)
