"""SQLModel-backed storage facade for feeds and articles."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy import and_, func, or_
from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, delete, select

from feedline.errors import FeedAlreadyExistsError, StorageError
from feedline.ingestion.models import (
    Article,
    Feed,
    FeedUnreadCount,
    NewArticle,
    Statistics,
)
from feedline.ingestion.storage.alembic_runner import upgrade_head
from feedline.ingestion.storage.common import build_sqlite_engine, connect_sqlite, utc_now
from feedline.ingestion.storage.sqlmodel_models import Article as ArticleRow
from feedline.ingestion.storage.sqlmodel_models import Feed as FeedRow

logger = logging.getLogger(__name__)
DEFAULT_PAGE_SIZE = 50


class SQLiteRepository:
    """Facade that persists feeds and articles using SQLModel and Alembic.

    ``(feed_id, guid)`` uniqueness is enforced by the schema; article inserts use
    ``ON CONFLICT DO NOTHING`` so concurrent refreshes of one feed never duplicate
    rows and never clobber existing ones.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

        # Keep low-level connection for tests and ad-hoc debugging queries.
        self._connection = connect_sqlite(db_path)

    def close(self) -> None:
        self._connection.close()
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    # -- feeds ------------------------------------------------------------------

    def insert_feed(  # noqa: PLR0913
        self,
        *,
        url: str,
        title: str,
        description: str | None,
        website_url: str | None,
        last_updated: datetime | None,
        now: datetime | None = None,
    ) -> Feed:
        created_at = now or utc_now()
        row = FeedRow(
            id=str(uuid4()),
            title=title,
            url=url,
            description=description,
            website_url=website_url,
            last_updated=last_updated,
            is_active=True,
            created_at=created_at,
            updated_at=created_at,
        )
        with _storage_errors(), Session(self.engine) as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise FeedAlreadyExistsError(message=f"Feed already exists: {url}") from error
            session.refresh(row)
            return _feed_view(row)

    def get_feed(self, feed_id: str) -> Feed | None:
        with _storage_errors(), Session(self.engine) as session:
            row = session.get(FeedRow, feed_id)
            return _feed_view(row) if row is not None else None

    def find_feed_by_url(self, url: str) -> Feed | None:
        with _storage_errors(), Session(self.engine) as session:
            row = session.exec(select(FeedRow).where(FeedRow.url == url)).one_or_none()
            return _feed_view(row) if row is not None else None

    def list_feeds(self) -> list[Feed]:
        with _storage_errors(), Session(self.engine) as session:
            rows = session.exec(
                select(FeedRow).order_by(col(FeedRow.created_at).desc()),
            ).all()
            return [_feed_view(row) for row in rows]

    def mark_feed_synced(self, feed_id: str, *, now: datetime) -> bool:
        with _storage_errors(), Session(self.engine) as session:
            result = session.exec(
                sa_update(FeedRow)
                .where(col(FeedRow.id) == feed_id)
                .values(last_updated=now, updated_at=now),
            )
            session.commit()
            return bool(result.rowcount)

    def delete_feed(self, feed_id: str) -> bool:
        """Delete a feed row; its articles go with it through ON DELETE CASCADE."""

        with _storage_errors(), Session(self.engine) as session:
            result = session.exec(delete(FeedRow).where(col(FeedRow.id) == feed_id))
            session.commit()
            return bool(result.rowcount)

    # -- articles ---------------------------------------------------------------

    def existing_guids(self, feed_id: str, guids: list[str]) -> set[str]:
        if not guids:
            return set()
        with _storage_errors(), Session(self.engine) as session:
            rows = session.exec(
                select(ArticleRow.guid).where(
                    ArticleRow.feed_id == feed_id,
                    col(ArticleRow.guid).in_(guids),
                ),
            ).all()
            return set(rows)

    def insert_article_if_absent(self, article: NewArticle, *, now: datetime) -> bool:
        """Insert unless ``(feed_id, guid)`` exists. Returns whether a row was inserted."""

        statement = (
            sqlite_insert(ArticleRow)
            .values(
                id=str(uuid4()),
                feed_id=article.feed_id,
                title=article.title,
                link=article.link,
                description=article.description,
                content=article.content,
                author=article.author,
                published_at=article.published_at,
                guid=article.guid,
                is_read=False,
                is_starred=False,
                created_at=now,
            )
            .on_conflict_do_nothing(index_elements=["feed_id", "guid"])
        )
        with _storage_errors(), Session(self.engine) as session:
            result = session.exec(statement)
            session.commit()
            inserted = result.rowcount == 1
        if not inserted:
            logger.debug("Article %s already stored for feed %s", article.guid, article.feed_id)
        return inserted

    def get_article(self, article_id: str) -> Article | None:
        with _storage_errors(), Session(self.engine) as session:
            row = session.get(ArticleRow, article_id)
            return _article_view(row) if row is not None else None

    def list_articles(
        self,
        *,
        feed_id: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[Article]:
        statement = select(ArticleRow)
        if feed_id is not None:
            statement = statement.where(ArticleRow.feed_id == feed_id)
        statement = (
            statement.order_by(
                col(ArticleRow.published_at).desc(),
                col(ArticleRow.created_at).desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        with _storage_errors(), Session(self.engine) as session:
            return [_article_view(row) for row in session.exec(statement).all()]

    def count_articles(self, feed_id: str | None = None) -> int:
        statement = select(func.count()).select_from(ArticleRow)
        if feed_id is not None:
            statement = statement.where(ArticleRow.feed_id == feed_id)
        with _storage_errors(), Session(self.engine) as session:
            return int(session.exec(statement).one())

    def fill_article_content(self, article_id: str, content: str) -> bool:
        """Store an extracted body only while the stored body is still empty."""

        with _storage_errors(), Session(self.engine) as session:
            result = session.exec(
                sa_update(ArticleRow)
                .where(
                    col(ArticleRow.id) == article_id,
                    or_(
                        col(ArticleRow.content).is_(None),
                        func.trim(col(ArticleRow.content)) == "",
                    ),
                )
                .values(content=content),
            )
            session.commit()
            return bool(result.rowcount)

    def update_article_flags(
        self,
        article_id: str,
        *,
        is_read: bool | None = None,
        is_starred: bool | None = None,
    ) -> bool:
        values: dict[str, bool] = {}
        if is_read is not None:
            values["is_read"] = is_read
        if is_starred is not None:
            values["is_starred"] = is_starred
        if not values:
            raise ValueError("At least one of is_read/is_starred must be provided")

        with _storage_errors(), Session(self.engine) as session:
            result = session.exec(
                sa_update(ArticleRow).where(col(ArticleRow.id) == article_id).values(**values),
            )
            session.commit()
            return bool(result.rowcount)

    def statistics(self) -> Statistics:
        with _storage_errors(), Session(self.engine) as session:
            total_articles = session.exec(select(func.count()).select_from(ArticleRow)).one()
            unread_articles = session.exec(
                select(func.count())
                .select_from(ArticleRow)
                .where(col(ArticleRow.is_read).is_(False)),
            ).one()
            starred_articles = session.exec(
                select(func.count())
                .select_from(ArticleRow)
                .where(col(ArticleRow.is_starred).is_(True)),
            ).one()
            total_feeds = session.exec(
                select(func.count()).select_from(FeedRow).where(col(FeedRow.is_active).is_(True)),
            ).one()
            per_feed = session.exec(
                select(FeedRow.id, FeedRow.title, func.count(col(ArticleRow.id)))
                .select_from(FeedRow)
                .outerjoin(
                    ArticleRow,
                    and_(
                        col(ArticleRow.feed_id) == col(FeedRow.id),
                        col(ArticleRow.is_read).is_(False),
                    ),
                )
                .where(col(FeedRow.is_active).is_(True))
                .group_by(col(FeedRow.id), col(FeedRow.title))
                .order_by(col(FeedRow.title)),
            ).all()

        return Statistics(
            total_articles=int(total_articles),
            unread_articles=int(unread_articles),
            starred_articles=int(starred_articles),
            total_feeds=int(total_feeds),
            feed_stats=[
                FeedUnreadCount(feed_id=feed_id, title=title, unread_count=int(count))
                for feed_id, title, count in per_feed
            ],
        )


@contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as error:
        logger.exception("Storage operation failed")
        raise StorageError(message=str(error)) from error


def _feed_view(row: FeedRow) -> Feed:
    return Feed(
        id=row.id,
        title=row.title,
        url=row.url,
        description=row.description,
        website_url=row.website_url,
        last_updated=row.last_updated,
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _article_view(row: ArticleRow) -> Article:
    return Article(
        id=row.id,
        feed_id=row.feed_id,
        title=row.title,
        link=row.link,
        description=row.description,
        content=row.content,
        author=row.author,
        published_at=row.published_at,
        guid=row.guid,
        is_read=row.is_read,
        is_starred=row.is_starred,
        created_at=row.created_at,
    )
