"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from feedline.http.fetcher import FeedFetcher, HttpFetcher, build_feed_http_fetcher
from feedline.http.html_extractor import ContentExtractor
from feedline.ingestion.ingestor import ArticleIngestor
from feedline.ingestion.progress import ProgressReporter
from feedline.ingestion.registry import FeedRegistry
from feedline.ingestion.repository import SQLiteRepository

from feed_samples import OFFLINE_STRATEGIES, FakeWeb


@pytest.fixture()
def web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[SQLiteRepository]:
    repo = SQLiteRepository(tmp_path / "feedline.db")
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def extractor(web: FakeWeb) -> Iterator[ContentExtractor]:
    content_extractor = ContentExtractor(
        HttpFetcher(transport=web.transport),
        strategies=OFFLINE_STRATEGIES,
    )
    yield content_extractor
    content_extractor.close()


@pytest.fixture()
def registry(
    repository: SQLiteRepository,
    web: FakeWeb,
    extractor: ContentExtractor,
) -> Iterator[FeedRegistry]:
    feed_registry = FeedRegistry(
        repository=repository,
        feed_fetcher=FeedFetcher(build_feed_http_fetcher(transport=web.transport)),
        ingestor=ArticleIngestor(repository=repository, extractor=extractor, max_workers=2),
        extractor=extractor,
        reporter=ProgressReporter(),
    )
    yield feed_registry
    feed_registry.close()
