from __future__ import annotations

import allure
import pytest

from feedline.errors import (
    ArticleNotFoundError,
    FeedAlreadyExistsError,
    FeedNotFoundError,
    InvalidUrlError,
    NetworkError,
    ParseError,
    ValidationError,
)
from feedline.http.fetcher import FeedFetcher, build_feed_http_fetcher
from feedline.ingestion.models import FetchProgress, FetchStatus
from feedline.ingestion.registry import INTERRUPTED_ERROR, FeedRegistry, refresh_message
from feedline.ingestion.repository import SQLiteRepository

from feed_samples import FEED_URL, FakeWeb, rss_document, rss_item

pytestmark = [
    allure.epic("Feed Ingestion"),
    allure.feature("Feed Registry"),
]

_PAGE = (
    "<html><body><article>"
    "Beta is the second story and its page carries a body long enough to be accepted "
    "by the semantic container rule."
    "</article></body></html>"
)


def _two_item_feed() -> str:
    return rss_document(
        rss_item("a-1", "Alpha", content="<p>Alpha body</p>"),
        rss_item("a-2", "Beta", pub_date="Wed, 18 Feb 2026 08:00:00 +0000"),
    )


def _record(registry: FeedRegistry) -> list[FetchProgress]:
    events: list[FetchProgress] = []
    registry.reporter.subscribe(events.append)
    return events


def test_add_feed_stores_metadata_articles_and_reports_progress(
    registry: FeedRegistry,
    web: FakeWeb,
) -> None:
    web.serve(FEED_URL, _two_item_feed())
    web.serve("https://news.example.com/a-2", _PAGE, content_type="text/html")
    events = _record(registry)

    feed = registry.add_feed(FEED_URL)

    assert feed.title == "Example News"
    assert feed.description == "Daily example headlines"
    assert feed.website_url == "https://news.example.com/"
    assert feed.last_updated is not None
    assert registry.list_feeds() == [feed]

    articles = registry.list_articles(feed_id=feed.id)
    assert [article.guid for article in articles] == ["a-2", "a-1"]
    assert articles[0].content.startswith("Beta is the second story")
    assert articles[1].content == "<p>Alpha body</p>"
    assert not any(article.is_read or article.is_starred for article in articles)

    assert [event.status for event in events] == [
        FetchStatus.STARTED,
        FetchStatus.IN_PROGRESS,
        FetchStatus.IN_PROGRESS,
        FetchStatus.COMPLETED,
    ]
    assert [event.current_article_title for event in events[1:3]] == ["Alpha", "Beta"]
    assert [event.fetched_articles for event in events[1:3]] == [1, 2]
    assert {event.total_articles for event in events} == {2}
    assert {event.pending_articles for event in events[1:3]} == {2}
    assert events[-1].fetched_articles == 2
    assert events[-1].total_articles == 2


def test_refresh_adds_only_new_articles(registry: FeedRegistry, web: FakeWeb) -> None:
    web.serve(FEED_URL, _two_item_feed())
    feed = registry.add_feed(FEED_URL)
    web.serve(
        FEED_URL,
        rss_document(
            rss_item("a-1", "Alpha", content="<p>Alpha body</p>"),
            rss_item("a-2", "Beta"),
            rss_item("a-3", "Gamma", content="<p>Gamma body</p>"),
        ),
    )

    message = registry.refresh_feed(feed.id)

    assert message == "Refreshed successfully. 1 new articles added."
    assert message == refresh_message(1)
    assert len(registry.list_articles(feed_id=feed.id)) == 3
    assert registry.refresh_feed(feed.id) == refresh_message(0)
    assert registry.get_feed(feed.id).updated_at >= feed.updated_at


def test_refresh_unknown_feed(registry: FeedRegistry) -> None:
    with pytest.raises(FeedNotFoundError):
        registry.refresh_feed("missing")


def test_duplicate_feed_is_rejected_before_fetching(registry: FeedRegistry, web: FakeWeb) -> None:
    web.serve(FEED_URL, _two_item_feed())
    registry.add_feed(FEED_URL)
    requests_before = len(web.requests)

    with pytest.raises(FeedAlreadyExistsError):
        registry.add_feed(f"  {FEED_URL} ")

    assert len(web.requests) == requests_before


def test_invalid_url_makes_no_request(registry: FeedRegistry, web: FakeWeb) -> None:
    with pytest.raises(InvalidUrlError):
        registry.add_feed("feed.example.com/rss")
    assert web.requests == []


def test_fetch_and_parse_failures_leave_nothing_behind(
    registry: FeedRegistry,
    web: FakeWeb,
) -> None:
    with pytest.raises(NetworkError):
        registry.add_feed(FEED_URL)

    web.serve(FEED_URL, "<rss><channel>")
    with pytest.raises(ParseError):
        registry.add_feed(FEED_URL)

    assert registry.list_feeds() == []


def test_delete_feed_removes_articles(registry: FeedRegistry, web: FakeWeb) -> None:
    web.serve(FEED_URL, _two_item_feed())
    feed = registry.add_feed(FEED_URL)

    registry.delete_feed(feed.id)

    assert registry.list_feeds() == []
    assert registry.list_articles() == []
    with pytest.raises(FeedNotFoundError):
        registry.delete_feed(feed.id)


def test_update_article_flags_scenario(registry: FeedRegistry, web: FakeWeb) -> None:
    web.serve(FEED_URL, _two_item_feed())
    feed = registry.add_feed(FEED_URL)
    article = registry.list_articles(feed_id=feed.id)[0]

    read = registry.update_article_flags(article.id, is_read=True)
    assert read.is_read
    assert not read.is_starred

    starred = registry.update_article_flags(article.id, is_starred=True)
    assert starred.is_read
    assert starred.is_starred

    with pytest.raises(ValidationError):
        registry.update_article_flags(article.id)
    with pytest.raises(ArticleNotFoundError):
        registry.update_article_flags("missing", is_read=True)

    stats = registry.get_statistics()
    assert stats.total_articles == 2
    assert stats.unread_articles == 1
    assert stats.starred_articles == 1
    assert stats.total_feeds == 1


def test_article_content_is_extracted_once_on_demand(registry: FeedRegistry, web: FakeWeb) -> None:
    web.serve(FEED_URL, _two_item_feed())
    feed = registry.add_feed(FEED_URL)
    beta = next(a for a in registry.list_articles(feed_id=feed.id) if a.guid == "a-2")
    assert beta.content is None

    web.serve("https://news.example.com/a-2", _PAGE, content_type="text/html")
    filled = registry.get_article_content(beta.id)
    assert filled.content.startswith("Beta is the second story")

    del web.pages["https://news.example.com/a-2"]
    requests_before = len(web.requests)
    assert registry.get_article_content(beta.id).content == filled.content
    assert len(web.requests) == requests_before

    with pytest.raises(ArticleNotFoundError):
        registry.get_article_content("missing")


def test_list_articles_paging(registry: FeedRegistry, web: FakeWeb) -> None:
    web.serve(FEED_URL, _two_item_feed())
    registry.add_feed(FEED_URL)

    assert [a.guid for a in registry.list_articles(limit=1)] == ["a-2"]
    assert [a.guid for a in registry.list_articles(limit=1, offset=1)] == ["a-1"]
    with pytest.raises(ValidationError):
        registry.list_articles(limit=0)
    with pytest.raises(ValidationError):
        registry.list_articles(offset=-1)


def test_add_feed_async_completes_in_background(registry: FeedRegistry, web: FakeWeb) -> None:
    web.serve(FEED_URL, _two_item_feed())

    feed = registry.add_feed_async(FEED_URL)
    registry.wait_for_background()

    last = registry.reporter.last_event(feed.id)
    assert last is not None
    assert last.status is FetchStatus.COMPLETED
    assert last.fetched_articles == 2
    assert len(registry.list_articles(feed_id=feed.id)) == 2


def test_refresh_feed_async_reports_failure(registry: FeedRegistry, web: FakeWeb) -> None:
    web.serve(FEED_URL, _two_item_feed())
    feed = registry.add_feed(FEED_URL)
    web.serve(FEED_URL, "maintenance", status_code=500)
    events = _record(registry)

    registry.refresh_feed_async(feed.id)
    registry.wait_for_background()

    assert [event.status for event in events] == [FetchStatus.STARTED, FetchStatus.FAILED]
    assert "HTTP 500" in (events[-1].error or "")
    assert len(registry.list_articles(feed_id=feed.id)) == 2


def test_refresh_feed_async_unknown_feed_raises_immediately(registry: FeedRegistry) -> None:
    with pytest.raises(FeedNotFoundError):
        registry.refresh_feed_async("missing")


class _ExplodingIngestor:
    def ingest_entries(self, *args: object, **kwargs: object) -> int:
        raise RuntimeError("disk on fire")


def test_sync_ingestion_failure_emits_failed_and_propagates(
    repository: SQLiteRepository,
    web: FakeWeb,
) -> None:
    web.serve(FEED_URL, _two_item_feed())
    registry = FeedRegistry(
        repository=repository,
        feed_fetcher=FeedFetcher(build_feed_http_fetcher(transport=web.transport)),
        ingestor=_ExplodingIngestor(),  # type: ignore[arg-type]
    )
    events = _record(registry)

    with pytest.raises(RuntimeError, match="disk on fire"):
        registry.add_feed(FEED_URL)

    assert [event.status for event in events] == [FetchStatus.STARTED, FetchStatus.FAILED]
    assert events[-1].error == "disk on fire"
    registry.close()


def test_refresh_emits_started_before_fetching(registry: FeedRegistry, web: FakeWeb) -> None:
    web.serve(FEED_URL, _two_item_feed())
    feed = registry.add_feed(FEED_URL)
    del web.pages[FEED_URL]
    events = _record(registry)

    with pytest.raises(NetworkError):
        registry.refresh_feed(feed.id)

    assert [event.status for event in events] == [FetchStatus.STARTED, FetchStatus.FAILED]
    assert "HTTP 404" in (events[-1].error or "")


def test_refresh_reports_pending_separately_from_total(
    registry: FeedRegistry,
    web: FakeWeb,
) -> None:
    web.serve(FEED_URL, _two_item_feed())
    feed = registry.add_feed(FEED_URL)
    web.serve(
        FEED_URL,
        rss_document(
            rss_item("a-1", "Alpha", content="<p>Alpha body</p>"),
            rss_item("a-2", "Beta"),
            rss_item("a-3", "Gamma", content="<p>Gamma body</p>"),
        ),
    )
    events = _record(registry)

    registry.refresh_feed(feed.id)

    in_progress = [event for event in events if event.status is FetchStatus.IN_PROGRESS]
    assert [(e.total_articles, e.pending_articles, e.fetched_articles) for e in in_progress] == [
        (3, 1, 1),
    ]
    assert events[-1].status is FetchStatus.COMPLETED
    assert events[-1].total_articles == 3
    assert events[-1].fetched_articles == 1


class _InterruptedIngestor:
    def ingest_entries(self, *args: object, **kwargs: object) -> int:
        raise KeyboardInterrupt


def test_sync_interruption_emits_interrupted_failure(
    repository: SQLiteRepository,
    web: FakeWeb,
) -> None:
    web.serve(FEED_URL, _two_item_feed())
    registry = FeedRegistry(
        repository=repository,
        feed_fetcher=FeedFetcher(build_feed_http_fetcher(transport=web.transport)),
        ingestor=_InterruptedIngestor(),  # type: ignore[arg-type]
    )
    events = _record(registry)

    with pytest.raises(KeyboardInterrupt):
        registry.add_feed(FEED_URL)

    assert [event.status for event in events] == [FetchStatus.STARTED, FetchStatus.FAILED]
    assert events[-1].error == INTERRUPTED_ERROR
    registry.close()


def test_background_interruption_emits_interrupted_failure(
    registry: FeedRegistry,
    web: FakeWeb,
) -> None:
    web.serve(FEED_URL, _two_item_feed())
    feed = registry.add_feed(FEED_URL)
    events = _record(registry)

    def interrupted_run() -> None:
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        registry._run_background(feed, interrupted_run)  # noqa: SLF001

    assert [event.status for event in events] == [FetchStatus.STARTED, FetchStatus.FAILED]
    last = registry.reporter.last_event(feed.id)
    assert last is not None
    assert last.error == INTERRUPTED_ERROR
