"""SQLModel ORM tables for feed storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    false,
    true,
)
from sqlmodel import Field, SQLModel

from feedline.ingestion.storage.common import UtcIsoDateTime


class Feed(SQLModel, table=True):
    __tablename__ = "feeds"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    title: str
    url: str = Field(sa_column=Column(String, nullable=False, unique=True))
    description: str | None = Field(default=None, sa_column=Column(Text))
    website_url: str | None = None
    last_updated: datetime | None = Field(default=None, sa_column=Column(UtcIsoDateTime()))
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default=true()),
    )
    created_at: datetime = Field(sa_column=Column(UtcIsoDateTime(), nullable=False, index=True))
    updated_at: datetime = Field(sa_column=Column(UtcIsoDateTime(), nullable=False))


class Article(SQLModel, table=True):
    __tablename__ = "articles"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("feed_id", "guid", name="uq_articles_feed_guid"),
        Index("idx_articles_published_created", "published_at", "created_at"),
    )

    id: str = Field(primary_key=True)
    feed_id: str = Field(
        sa_column=Column(
            ForeignKey("feeds.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    title: str
    link: str | None = None
    description: str | None = Field(default=None, sa_column=Column(Text))
    content: str | None = Field(default=None, sa_column=Column(Text))
    author: str | None = None
    published_at: datetime | None = Field(default=None, sa_column=Column(UtcIsoDateTime()))
    guid: str
    is_read: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=false(), index=True),
    )
    is_starred: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=false(), index=True),
    )
    created_at: datetime = Field(sa_column=Column(UtcIsoDateTime(), nullable=False))
