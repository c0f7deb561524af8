"""Forgiving accessors over the loosely-typed item property bag.

Source items carry arbitrary property names and shapes.  ``PropertyBag``
reads them through typed accessors that return a safe default on any
missing or malformed value instead of raising.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Property names understood by the header composer and article builder.
LINK_PROPERTY = "LinkStart"
FROM_PROPERTY = "From"
AUTHOR_PROPERTY = "Author"
TAG_PROPERTY = "FeatureTag"
RATING_PROPERTY = "ExpectationsRate"
ENGINE_PROPERTY = "Engine"
ADDED_PROPERTY = "AddedTime"
COVER_PROPERTIES = ("Cover", "MainImage", "Main Image")


def _first_text(runs: Any) -> str:
    if isinstance(runs, list) and runs:
        first = runs[0]
        if isinstance(first, dict):
            value = first.get("plain_text") or first.get("text") or ""
            if isinstance(value, dict):
                value = value.get("content", "")
            return value if isinstance(value, str) else ""
        if isinstance(first, str):
            return first
    return ""


def _file_url(entry: Any) -> str:
    """URL of a ``{"type": "file"|"external", ...}`` object."""
    if not isinstance(entry, dict):
        return ""
    for kind in (entry.get("type"), "external", "file"):
        inner = entry.get(kind) if isinstance(kind, str) else None
        if isinstance(inner, dict) and isinstance(inner.get("url"), str):
            return inner["url"]
    url = entry.get("url")
    return url if isinstance(url, str) else ""


class PropertyBag:
    """Typed optional-field view over a raw property mapping.

    Args:
        properties: Raw mapping of property name to property object.
    """

    def __init__(self, properties: dict[str, Any] | None) -> None:
        self._props = properties if isinstance(properties, dict) else {}

    def raw(self, name: str) -> dict[str, Any] | None:
        value = self._props.get(name)
        return value if isinstance(value, dict) else None

    def text(self, name: str) -> str:
        """First rich-text (or title) run of *name*."""
        prop = self.raw(name)
        if prop is None:
            return ""
        return _first_text(prop.get("rich_text")) or _first_text(
            prop.get("title")
        )

    def url(self, name: str) -> str:
        """``url`` field of *name*, falling back to its first text run."""
        prop = self.raw(name)
        if prop is None:
            return ""
        value = prop.get("url")
        if isinstance(value, str) and value:
            return value
        return self.text(name)

    def select(self, name: str) -> str:
        prop = self.raw(name)
        if prop is None:
            return ""
        selected = prop.get("select")
        if isinstance(selected, dict):
            value = selected.get("name")
            return value if isinstance(value, str) else ""
        return ""

    def tags(self, name: str) -> list[str]:
        """Names of a select or multi-select property."""
        prop = self.raw(name)
        if prop is None:
            return []
        single = self.select(name)
        if single:
            return [single]
        options = prop.get("multi_select")
        if not isinstance(options, list):
            return []
        return [
            opt["name"]
            for opt in options
            if isinstance(opt, dict) and isinstance(opt.get("name"), str)
        ]

    def number(self, name: str) -> float | None:
        prop = self.raw(name)
        if prop is None:
            return None
        value = prop.get("number")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value

    def date(self, name: str) -> str:
        """``date.start`` or ``created_time`` of *name* as an ISO string."""
        prop = self.raw(name)
        if prop is None:
            return ""
        date = prop.get("date")
        if isinstance(date, dict) and isinstance(date.get("start"), str):
            return date["start"]
        created = prop.get("created_time")
        return created if isinstance(created, str) else ""

    def files_url(self, name: str) -> str:
        """URL of the first file of a files property."""
        prop = self.raw(name)
        if prop is None:
            return ""
        files = prop.get("files")
        if isinstance(files, list) and files:
            return _file_url(files[0])
        return ""


def resolve_cover_url(
    cover: dict[str, Any] | None, properties: dict[str, Any] | None
) -> str:
    """Find the cover image URL of an item.

    Order: page-level cover, then the ``Cover`` property, then
    ``MainImage``.  Each property may be a files, url, or rich-text
    property.  Returns ``""`` when nothing resolves.
    """
    url = _file_url(cover) if cover else ""
    if url:
        return url

    bag = PropertyBag(properties)
    for name in COVER_PROPERTIES:
        if bag.raw(name) is None:
            continue
        url = bag.files_url(name) or bag.url(name)
        if url:
            return url
        logger.warning("Property %s present but holds no cover URL", name)
    return ""
