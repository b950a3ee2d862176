"""CLI entrypoint for feedline."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from feedline import __version__
from feedline.errors import FeedlineError
from feedline.ingestion.controllers import (
    AddFeedCommand,
    FeedCliController,
    FeedIdCommand,
    ListArticlesCommand,
    MarkArticleCommand,
    ShowArticleCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = FeedCliController()

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path. Defaults to FEEDLINE_DB_PATH or .feedline.db.",
)


@click.group()
@click.version_option(version=__version__, prog_name="feedline")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log to stderr.")
def feedline(verbose: bool) -> None:
    """Feed subscriptions and article reading from the command line."""

    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@feedline.group()
def feeds() -> None:
    """Feed subscription commands."""


@feeds.command("add")
@db_path_option
@click.argument("url")
@click.option(
    "--background/--no-background",
    default=False,
    show_default=True,
    help="Ingest entries on a background worker and report progress when it ends.",
)
def feeds_add(db_path: Path | None, url: str, background: bool) -> None:
    """Register an RSS, Atom, RDF or JSON feed and ingest its entries."""

    _emit_lines(
        lambda: CONTROLLER.add_feed(
            AddFeedCommand(db_path=db_path, url=url, background=background),
        ),
    )


@feeds.command("list")
@db_path_option
def feeds_list(db_path: Path | None) -> None:
    """List registered feeds, newest first."""

    _emit_lines(lambda: CONTROLLER.list_feeds(db_path))


@feeds.command("refresh")
@db_path_option
@click.argument("feed_id")
def feeds_refresh(db_path: Path | None, feed_id: str) -> None:
    """Fetch a feed again and store entries not seen before."""

    _emit_lines(lambda: CONTROLLER.refresh_feed(FeedIdCommand(db_path=db_path, feed_id=feed_id)))


@feeds.command("delete")
@db_path_option
@click.argument("feed_id")
def feeds_delete(db_path: Path | None, feed_id: str) -> None:
    """Delete a feed together with its articles."""

    _emit_lines(lambda: CONTROLLER.delete_feed(FeedIdCommand(db_path=db_path, feed_id=feed_id)))


@feedline.group()
def articles() -> None:
    """Article reading commands."""


@articles.command("list")
@db_path_option
@click.option("--feed-id", default=None, help="Only show articles of this feed.")
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Page size. Defaults to FEEDLINE_ARTICLES_PAGE_SIZE.",
)
@click.option("--offset", type=click.IntRange(min=0), default=None, help="Rows to skip.")
def articles_list(
    db_path: Path | None,
    feed_id: str | None,
    limit: int | None,
    offset: int | None,
) -> None:
    """List articles, most recently published first."""

    _emit_lines(
        lambda: CONTROLLER.list_articles(
            ListArticlesCommand(db_path=db_path, feed_id=feed_id, limit=limit, offset=offset),
        ),
    )


@articles.command("show")
@db_path_option
@click.argument("article_id")
def articles_show(db_path: Path | None, article_id: str) -> None:
    """Show one article, extracting its body from the web page when missing."""

    _emit_lines(
        lambda: CONTROLLER.show_article(ShowArticleCommand(db_path=db_path, article_id=article_id)),
    )


@articles.command("mark")
@db_path_option
@click.argument("article_id")
@click.option("--read/--unread", "is_read", default=None, help="Set the read flag.")
@click.option("--starred/--unstarred", "is_starred", default=None, help="Set the starred flag.")
def articles_mark(
    db_path: Path | None,
    article_id: str,
    is_read: bool | None,
    is_starred: bool | None,
) -> None:
    """Update read and starred flags of one article."""

    _emit_lines(
        lambda: CONTROLLER.mark_article(
            MarkArticleCommand(
                db_path=db_path,
                article_id=article_id,
                is_read=is_read,
                is_starred=is_starred,
            ),
        ),
    )


@feedline.command("stats")
@db_path_option
def stats(db_path: Path | None) -> None:
    """Show article counts and unread articles per feed."""

    _emit_lines(lambda: CONTROLLER.stats(db_path))


def _emit_lines(produce: Callable[[], list[str]]) -> None:
    try:
        lines = produce()
    except FeedlineError as error:
        raise click.ClickException(f"{error.message} [{error.code}]") from error
    except ValueError as error:
        raise click.ClickException(f"Invalid configuration: {error}") from error
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    feedline()
