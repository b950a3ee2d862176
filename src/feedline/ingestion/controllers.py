"""Controllers for feed and article CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import httpx

from feedline.config import Settings
from feedline.ingestion.models import Article, Feed, FetchProgress, FetchStatus
from feedline.ingestion.progress import ProgressReporter
from feedline.ingestion.registry import FeedRegistry, build_registry
from feedline.ingestion.repository import SQLiteRepository

CONTENT_PREVIEW_CHARS = 2000


@dataclass(slots=True)
class AddFeedCommand:
    """CLI inputs for feed registration."""

    db_path: Path | None
    url: str
    background: bool = False


@dataclass(slots=True)
class FeedIdCommand:
    """CLI inputs for commands addressing one feed."""

    db_path: Path | None
    feed_id: str


@dataclass(slots=True)
class ListArticlesCommand:
    """CLI inputs for article listing."""

    db_path: Path | None
    feed_id: str | None
    limit: int | None
    offset: int | None


@dataclass(slots=True)
class ShowArticleCommand:
    db_path: Path | None
    article_id: str


@dataclass(slots=True)
class MarkArticleCommand:
    """CLI inputs for read/starred flag updates."""

    db_path: Path | None
    article_id: str
    is_read: bool | None
    is_starred: bool | None


class FeedCliController:
    """Coordinates feed and article command execution.

    ``transport`` replaces the network layer of every outgoing request; it is
    only set by tests.
    """

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        self.transport = transport

    def add_feed(self, command: AddFeedCommand) -> list[str]:
        reporter = ProgressReporter()
        events: list[FetchProgress] = []
        reporter.subscribe(events.append)
        with self._registry(command.db_path, reporter=reporter) as registry:
            if command.background:
                feed = registry.add_feed_async(command.url)
                registry.wait_for_background()
            else:
                feed = registry.add_feed(command.url)
            feed = registry.get_feed(feed.id)

        lines = [f"Added feed: {_feed_line(feed)}"]
        lines.extend(_progress_line(event) for event in events if event.is_terminal)
        return lines

    def list_feeds(self, db_path: Path | None) -> list[str]:
        with self._registry(db_path) as registry:
            feeds = registry.list_feeds()
        if not feeds:
            return ["No feeds registered."]
        return [_feed_line(feed) for feed in feeds]

    def refresh_feed(self, command: FeedIdCommand) -> list[str]:
        with self._registry(command.db_path) as registry:
            return [registry.refresh_feed(command.feed_id)]

    def delete_feed(self, command: FeedIdCommand) -> list[str]:
        with self._registry(command.db_path) as registry:
            registry.delete_feed(command.feed_id)
        return [f"Deleted feed {command.feed_id}."]

    def list_articles(self, command: ListArticlesCommand) -> list[str]:
        with self._registry(command.db_path) as registry:
            articles = registry.list_articles(
                feed_id=command.feed_id,
                limit=command.limit,
                offset=command.offset,
            )
        if not articles:
            return ["No articles found."]
        return [_article_line(article) for article in articles]

    def show_article(self, command: ShowArticleCommand) -> list[str]:
        with self._registry(command.db_path) as registry:
            article = registry.get_article_content(command.article_id)

        lines = [
            f"id={article.id}",
            f"title={article.title}",
            f"link={article.link or '-'}",
            f"author={article.author or '-'}",
            f"published_at={_format_dt(article.published_at)}",
            f"read={'yes' if article.is_read else 'no'} "
            f"starred={'yes' if article.is_starred else 'no'}",
            "",
        ]
        body = article.content or article.description
        if not body:
            lines.append("(no content)")
        elif len(body) > CONTENT_PREVIEW_CHARS:
            lines.append(body[:CONTENT_PREVIEW_CHARS] + "...")
        else:
            lines.append(body)
        return lines

    def mark_article(self, command: MarkArticleCommand) -> list[str]:
        with self._registry(command.db_path) as registry:
            article = registry.update_article_flags(
                command.article_id,
                is_read=command.is_read,
                is_starred=command.is_starred,
            )
        return [_article_line(article)]

    def stats(self, db_path: Path | None) -> list[str]:
        with self._registry(db_path) as registry:
            stats = registry.get_statistics()

        lines = [
            f"feeds={stats.total_feeds} articles={stats.total_articles} "
            f"unread={stats.unread_articles} starred={stats.starred_articles}",
        ]
        lines.extend(
            f"  feed={item.feed_id} unread={item.unread_count} title={item.title}"
            for item in stats.feed_stats
        )
        return lines

    @contextmanager
    def _registry(
        self,
        db_path: Path | None,
        *,
        reporter: ProgressReporter | None = None,
    ) -> Iterator[FeedRegistry]:
        settings = Settings.from_env(db_path=db_path)
        settings.validate()
        with _repository(settings) as repository:
            registry = build_registry(
                settings,
                repository,
                reporter=reporter,
                transport=self.transport,
            )
            try:
                yield registry
            finally:
                registry.close()


@contextmanager
def _repository(settings: Settings) -> Iterator[SQLiteRepository]:
    repository = SQLiteRepository(settings.db_path)
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


def _feed_line(feed: Feed) -> str:
    return (
        f"{feed.id} title={feed.title} url={feed.url} "
        f"last_updated={_format_dt(feed.last_updated)}"
    )


def _article_line(article: Article) -> str:
    flags = ("R" if article.is_read else "-") + ("*" if article.is_starred else "-")
    return f"{article.id} [{flags}] {_format_dt(article.published_at)} {article.title}"


def _progress_line(event: FetchProgress) -> str:
    if event.status is FetchStatus.FAILED:
        return f"Ingestion failed for {event.feed_title}: {event.error}"
    return (
        f"Ingestion completed for {event.feed_title}: "
        f"{event.fetched_articles} new of {event.total_articles} entries"
    )


def _format_dt(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.isoformat(timespec="seconds")
