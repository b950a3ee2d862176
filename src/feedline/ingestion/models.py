"""Domain models for feed parsing, storage, and progress reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

UNTITLED_FEED = "Untitled Feed"
UNTITLED_ARTICLE = "Untitled Article"


class FetchStatus(str, Enum):
    """Lifecycle states for one ingestion run."""

    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class FeedEntry:
    """One parsed feed item."""

    id: str
    title: str = UNTITLED_ARTICLE
    links: list[str] = field(default_factory=list)
    summary: str | None = None
    content: str | None = None
    authors: list[str] = field(default_factory=list)
    published: datetime | None = None

    @property
    def link(self) -> str | None:
        return self.links[0] if self.links else None

    @property
    def author(self) -> str | None:
        return self.authors[0] if self.authors else None


@dataclass(slots=True)
class FeedDocument:
    """Normalized feed: feed-level metadata plus entries in source order."""

    title: str = UNTITLED_FEED
    description: str | None = None
    links: list[str] = field(default_factory=list)
    entries: list[FeedEntry] = field(default_factory=list)

    @property
    def website_url(self) -> str | None:
        return self.links[0] if self.links else None


@dataclass(slots=True)
class Feed:
    """Persisted feed subscription."""

    id: str
    title: str
    url: str
    description: str | None
    website_url: str | None
    last_updated: datetime | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Article:
    """Persisted article."""

    id: str
    feed_id: str
    title: str
    link: str | None
    description: str | None
    content: str | None
    author: str | None
    published_at: datetime | None
    guid: str
    is_read: bool
    is_starred: bool
    created_at: datetime


@dataclass(slots=True)
class NewArticle:
    """Article payload ready for insert-if-absent persistence."""

    feed_id: str
    guid: str
    title: str
    link: str | None
    description: str | None
    content: str | None
    author: str | None
    published_at: datetime | None


@dataclass(slots=True)
class FetchProgress:
    """Progress event for one add/refresh run."""

    feed_id: str
    feed_title: str
    status: FetchStatus
    total_articles: int = 0
    fetched_articles: int = 0
    pending_articles: int = 0
    current_article_title: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (FetchStatus.COMPLETED, FetchStatus.FAILED)


@dataclass(slots=True)
class FeedUnreadCount:
    feed_id: str
    title: str
    unread_count: int


@dataclass(slots=True)
class Statistics:
    """Aggregated reading statistics."""

    total_articles: int = 0
    unread_articles: int = 0
    starred_articles: int = 0
    total_feeds: int = 0
    feed_stats: list[FeedUnreadCount] = field(default_factory=list)
