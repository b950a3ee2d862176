from pathlib import Path

import allure

from feedline.ingestion.repository import SQLiteRepository
from feedline.ingestion.storage.alembic_runner import head_revision

pytestmark = [
    allure.epic("Feed Ingestion"),
    allure.feature("Article Storage"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = SQLiteRepository(tmp_path / "migrations.db")
    repository.init_schema()

    row = repository._connection.execute(
        "SELECT version_num FROM alembic_version LIMIT 1"
    ).fetchone()
    assert row is not None
    assert str(row["version_num"]) == head_revision() == "20261019_0001"

    tables = repository._connection.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table' AND name IN ('feeds', 'articles')
        ORDER BY name
        """
    ).fetchall()
    assert [str(row["name"]) for row in tables] == ["articles", "feeds"]

    article_indexes = {
        str(row["name"])
        for row in repository._connection.execute("PRAGMA index_list('articles')").fetchall()
    }
    assert {
        "ix_articles_feed_id",
        "ix_articles_is_read",
        "ix_articles_is_starred",
        "idx_articles_published_created",
    } <= article_indexes

    foreign_keys = repository._connection.execute(
        "PRAGMA foreign_key_list('articles')"
    ).fetchall()
    assert [(str(fk["table"]), str(fk["on_delete"])) for fk in foreign_keys] == [
        ("feeds", "CASCADE"),
    ]
    repository.close()


def test_init_schema_is_idempotent(tmp_path: Path) -> None:
    repository = SQLiteRepository(tmp_path / "twice.db")
    repository.init_schema()
    repository.init_schema()

    count = repository._connection.execute("SELECT COUNT(*) AS n FROM alembic_version").fetchone()
    assert count["n"] == 1
    repository.close()
