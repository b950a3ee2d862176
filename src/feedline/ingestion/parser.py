"""Syndication feed parser: RSS 0.9x/2.0, RSS 1.0 (RDF), Atom, and JSON Feed."""

from __future__ import annotations

import copy
import hashlib
import html
import json
import logging
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from defusedxml import DefusedXmlException, ElementTree

from feedline.errors import ParseError
from feedline.ingestion.models import (
    UNTITLED_ARTICLE,
    UNTITLED_FEED,
    FeedDocument,
    FeedEntry,
)

logger = logging.getLogger(__name__)

_BOM = b"\xef\xbb\xbf"
_ALTERNATE_RELS = frozenset({"", "alternate"})


def parse_feed(raw: bytes) -> FeedDocument:
    """Decode raw feed bytes, auto-detecting the format from the content."""

    payload = raw.removeprefix(_BOM).lstrip()
    if not payload:
        raise ParseError(message="Empty feed document", code="empty_feed")
    if payload[:1] in (b"{", b"["):
        return _parse_json_feed(payload)
    return _parse_xml_feed(payload)


def _parse_xml_feed(payload: bytes) -> FeedDocument:
    try:
        root = ElementTree.fromstring(payload)
    except (ElementTree.ParseError, DefusedXmlException) as error:
        raise ParseError(message=f"Invalid feed XML: {error}", code="invalid_feed_xml") from error

    root_name = _local_name(root.tag)
    if root_name == "rss":
        return _parse_rss(root)
    if root_name == "rdf":
        return _parse_rdf(root)
    if root_name == "feed":
        return _parse_atom(root)

    # Best effort: some feeds omit top-level conventions.
    channel = _first_descendant(root, "channel")
    if channel is not None and _first_descendant(root, "item") is not None:
        return _parse_rss(root)
    if _first_descendant(root, "entry") is not None:
        return _parse_atom(root)

    raise ParseError(
        message=f"Unsupported feed format (root element <{root_name}>)",
        code="unsupported_feed_format",
    )


def _parse_rss(root: ElementTree.Element) -> FeedDocument:
    channel = _first_descendant(root, "channel")
    container = channel if channel is not None else root
    items = [child for child in container if _local_name(child.tag) == "item"]
    if not items:
        items = [element for element in root.iter() if _local_name(element.tag) == "item"]
    return FeedDocument(
        title=_child_text(container, "title") or UNTITLED_FEED,
        description=_child_text(container, "description"),
        links=_links(container),
        entries=[_rss_entry(item) for item in items],
    )


def _parse_rdf(root: ElementTree.Element) -> FeedDocument:
    channel = _first_child(root, "channel")
    container = channel if channel is not None else root
    items = [child for child in root if _local_name(child.tag) == "item"]
    return FeedDocument(
        title=_child_text(container, "title") or UNTITLED_FEED,
        description=_child_text(container, "description"),
        links=_links(container),
        entries=[_rss_entry(item) for item in items],
    )


def _rss_entry(item: ElementTree.Element) -> FeedEntry:
    title = _child_text(item, "title")
    links = _links(item)
    summary = _child_markup(item, "description")
    content = _child_markup(item, "encoded")
    raw_published = (
        _child_text(item, "pubDate") or _child_text(item, "date") or _child_text(item, "issued")
    )
    published = _parse_datetime(raw_published)
    authors = [
        text
        for text in (_child_text(item, "author"), _child_text(item, "creator"))
        if text is not None
    ]
    guid = _child_text(item, "guid") or _about(item)
    return FeedEntry(
        id=guid or _fallback_entry_id(links, title, summary, raw_published),
        title=title or UNTITLED_ARTICLE,
        links=links,
        summary=summary,
        content=content,
        authors=authors,
        published=published,
    )


def _parse_atom(root: ElementTree.Element) -> FeedDocument:
    entries = [
        _atom_entry(element) for element in root.iter() if _local_name(element.tag) == "entry"
    ]
    return FeedDocument(
        title=_child_text(root, "title") or UNTITLED_FEED,
        description=_child_text(root, "subtitle"),
        links=_links(root),
        entries=entries,
    )


def _atom_entry(entry: ElementTree.Element) -> FeedEntry:
    title = _child_text(entry, "title")
    links = _links(entry)
    summary = _child_markup(entry, "summary")
    content = _child_markup(entry, "content")
    raw_published = _child_text(entry, "published") or _child_text(entry, "updated")
    authors = []
    for child in entry:
        if _local_name(child.tag) != "author":
            continue
        name = _child_text(child, "name") or _child_text(child, "email")
        if name:
            authors.append(name)
    entry_id = _child_text(entry, "id")
    return FeedEntry(
        id=entry_id or _fallback_entry_id(links, title, summary, raw_published),
        title=title or UNTITLED_ARTICLE,
        links=links,
        summary=summary,
        content=content,
        authors=authors,
        published=_parse_datetime(raw_published),
    )


def _parse_json_feed(payload: bytes) -> FeedDocument:
    try:
        document = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise ParseError(message=f"Invalid JSON feed: {error}", code="invalid_json_feed") from error

    if not isinstance(document, dict) or "jsonfeed.org" not in str(document.get("version", "")):
        raise ParseError(
            message="Unsupported feed format (JSON without a JSON Feed version)",
            code="unsupported_feed_format",
        )
    items = document.get("items") or []
    if not isinstance(items, list):
        raise ParseError(message="JSON feed 'items' must be a list", code="invalid_json_feed")

    links = [
        str(value)
        for value in (document.get("home_page_url"), document.get("feed_url"))
        if isinstance(value, str) and value.strip()
    ]
    return FeedDocument(
        title=_nullable_string(document.get("title")) or UNTITLED_FEED,
        description=_nullable_string(document.get("description")),
        links=links,
        entries=[_json_entry(item) for item in items if isinstance(item, dict)],
    )


def _json_entry(item: dict[str, object]) -> FeedEntry:
    title = _nullable_string(item.get("title"))
    links = [
        str(value).strip()
        for value in (item.get("url"), item.get("external_url"))
        if isinstance(value, str) and value.strip()
    ]
    summary = _nullable_string(item.get("summary"))
    content = _nullable_string(item.get("content_html")) or _nullable_string(
        item.get("content_text"),
    )
    raw_published = _nullable_string(item.get("date_published")) or _nullable_string(
        item.get("date_modified"),
    )
    raw_authors = item.get("authors")
    if not isinstance(raw_authors, list):
        raw_authors = [item["author"]] if isinstance(item.get("author"), dict) else []
    authors: list[str] = []
    for author in raw_authors:
        name = _nullable_string(author.get("name")) if isinstance(author, dict) else None
        if name:
            authors.append(name)
    entry_id = _nullable_string(item.get("id"))
    return FeedEntry(
        id=entry_id or _fallback_entry_id(links, title, summary, raw_published),
        title=title or UNTITLED_ARTICLE,
        links=links,
        summary=summary,
        content=content,
        authors=authors,
        published=_parse_datetime(raw_published),
    )


def _links(element: ElementTree.Element) -> list[str]:
    """Child link targets with alternate links ahead of self/related/enclosure links."""

    preferred: list[str] = []
    others: list[str] = []
    for child in element:
        if _local_name(child.tag) != "link":
            continue
        href = (child.attrib.get("href") or child.text or "").strip()
        if not href:
            continue
        rel = child.attrib.get("rel", "").strip().lower()
        target = preferred if rel in _ALTERNATE_RELS else others
        if href not in preferred and href not in others:
            target.append(href)
    return preferred + others


def _about(element: ElementTree.Element) -> str | None:
    for key, value in element.attrib.items():
        if _local_name(key) == "about" and value.strip():
            return value.strip()
    return None


def _fallback_entry_id(
    links: list[str],
    title: str | None,
    summary: str | None,
    raw_published: str | None,
) -> str:
    if links:
        return links[0]
    raw = json.dumps(
        {
            "title": title or "",
            "summary": summary or "",
            "published": (raw_published or "").strip(),
        },
        sort_keys=True,
        ensure_ascii=True,
    )
    digest = hashlib.sha1(raw.encode("utf-8"), usedforsecurity=False).hexdigest()  # noqa: S324
    logger.debug("Entry without id or link, using generated id %s", digest)
    return f"generated:{digest}"


def _child_text(element: ElementTree.Element, name: str) -> str | None:
    target = name.lower()
    for child in element:
        if _local_name(child.tag) != target:
            continue
        if child.text and child.text.strip():
            return child.text.strip()
        full_text = "".join(child.itertext()).strip()
        if full_text:
            return full_text
    return None


def _child_markup(element: ElementTree.Element, name: str) -> str | None:
    """Body field kept verbatim: plain text as-is, inline elements re-serialized.

    Atom ``type="xhtml"`` bodies arrive wrapped in a single ``<div>``, which is dropped.
    """

    target = name.lower()
    for child in element:
        if _local_name(child.tag) != target:
            continue
        nodes = list(child)
        if not nodes:
            if child.text and child.text.strip():
                return child.text.strip()
            continue
        container = child
        if (
            len(nodes) == 1
            and _local_name(nodes[0].tag) == "div"
            and not (child.text or "").strip()
            and not (nodes[0].tail or "").strip()
        ):
            container = nodes[0]
        markup = html.escape(container.text or "", quote=False) + "".join(
            _serialize_without_namespaces(node) for node in container
        )
        if markup.strip():
            return markup.strip()
    return None


def _serialize_without_namespaces(node: ElementTree.Element) -> str:
    clone = copy.deepcopy(node)
    for element in clone.iter():
        if isinstance(element.tag, str):
            element.tag = element.tag.rsplit("}", 1)[-1]
        attributes = {key.rsplit("}", 1)[-1]: value for key, value in element.attrib.items()}
        element.attrib.clear()
        element.attrib.update(attributes)
    # tostring() also writes the tail text that follows the element.
    return ElementTree.tostring(clone, encoding="unicode")


def _first_child(element: ElementTree.Element, name: str) -> ElementTree.Element | None:
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def _first_descendant(element: ElementTree.Element, name: str) -> ElementTree.Element | None:
    for descendant in element.iter():
        if descendant is not element and _local_name(descendant.tag) == name:
            return descendant
    return None


def _local_name(tag: str) -> str:
    if "}" in tag:
        return tag.rsplit("}", 1)[1].lower()
    return tag.lower()


def _nullable_string(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_datetime(raw_value: str | None) -> datetime | None:
    if not raw_value:
        return None

    try:
        parsed = parsedate_to_datetime(raw_value)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    except (TypeError, ValueError, IndexError):
        pass

    try:
        iso = datetime.fromisoformat(raw_value.strip())
    except ValueError:
        logger.debug("Unparseable feed date %r", raw_value)
        return None
    if iso.tzinfo is None:
        return iso.replace(tzinfo=UTC)
    return iso.astimezone(UTC)
