"""Article header composition and final article assembly.

Assembly order is fixed: notice banner, metadata table, cover image, body.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel

from crosspost.sync.models import ContentBlock, ItemMetadata
from crosspost.sync.properties import (
    ADDED_PROPERTY,
    AUTHOR_PROPERTY,
    ENGINE_PROPERTY,
    FROM_PROPERTY,
    LINK_PROPERTY,
    RATING_PROPERTY,
    TAG_PROPERTY,
    PropertyBag,
    resolve_cover_url,
)

from .html import escape_html, has_visible_text, transform
from .styles import StyleProfile, Theme

logger = logging.getLogger(__name__)

MEDIA_ONLY_NOTICE = "This article contains media content."


class ArticleSettings(BaseModel):
    """Per-target text that is not part of the item itself."""

    notice: str = ""
    author: str = ""

    model_config = {"frozen": True}


class Article(BaseModel):
    """A fully rendered article ready to hand to a target."""

    title: str
    content: str
    author: str = ""
    digest: str = ""
    source_url: str = ""
    cover_url: str = ""
    tags: list[str] = []

    model_config = {"frozen": True}


# =============================================================================
# Helpers
# =============================================================================


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut *text* to at most *max_bytes* UTF-8 bytes without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    result = encoded[:max_bytes].decode("utf-8", errors="ignore")
    logger.warning(
        "Title exceeds %d bytes, truncated from %d to %d characters",
        max_bytes,
        len(text),
        len(result),
    )
    return result


def format_added_date(value: str) -> str:
    """Format an ISO date or datetime as ``YYYY/MM/DD``; unparsable input is returned as is."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return parsed.strftime("%Y/%m/%d")


def full_url(url: str) -> str:
    """Prefix scheme-less URLs with ``https://``.

    Protocol-relative URLs (``//host/path``) get ``https:`` only.
    """
    if url.startswith("//"):
        return f"https:{url}"
    if urlparse(url).scheme in ("http", "https"):
        return url
    return f"https://{url}"


def _format_rating(value: float) -> str:
    return f"{value:g}/10"


# =============================================================================
# Header sections
# =============================================================================


def render_notice(text: str, theme: Theme) -> str:
    """Notice banner; text is escaped and newlines become ``<br>``."""
    body = escape_html(text.strip()).replace("\n", "<br>")
    return (
        '<section style="margin: 0 0 1.2em 0; padding: 0.8em 1em; '
        f"background-color: {theme.notice_background}; "
        f'border-left: 4px solid {theme.notice_border}; border-radius: 4px;">'
        f'<p style="margin: 0; color: {theme.notice_color}; font-size: 14px; '
        f'line-height: 1.6; font-weight: bold;">{body}</p></section>'
    )


def metadata_rows(metadata: ItemMetadata) -> list[tuple[str, str]]:
    """(label, HTML value) rows for the present item properties, in display order."""
    bag = PropertyBag(metadata.properties)
    rows: list[tuple[str, str]] = []

    if metadata.title:
        rows.append(("Title", escape_html(metadata.title)))
    link = bag.url(LINK_PROPERTY)
    if link:
        url = escape_html(link)
        rows.append(
            ("Link", f'<a href="{url}" style="color: #1890ff; text-decoration: none;">{url}</a>')
        )
    source = bag.text(FROM_PROPERTY)
    if source:
        rows.append(("Source", escape_html(source)))
    author = bag.text(AUTHOR_PROPERTY)
    if author:
        rows.append(("Author", escape_html(author)))
    tags = bag.tags(TAG_PROPERTY)
    if tags:
        rows.append(("Tags", escape_html(", ".join(tags))))
    rating = bag.number(RATING_PROPERTY)
    if rating is not None:
        rows.append(("Expectation", _format_rating(rating)))
    engine = bag.select(ENGINE_PROPERTY) or bag.text(ENGINE_PROPERTY)
    if engine:
        rows.append(("Engine", escape_html(engine)))
    added = bag.date(ADDED_PROPERTY)
    if added:
        rows.append(("Added", escape_html(format_added_date(added))))
    return rows


def render_metadata_table(metadata: ItemMetadata) -> str:
    rows = metadata_rows(metadata)
    if not rows:
        return ""
    body = "".join(
        '<tr><td style="padding: 4px 8px; vertical-align: top; width: 80px; color: #666;">'
        f'<strong>{label}</strong></td><td style="padding: 4px 8px; color: #333;">{value}</td></tr>'
        for label, value in rows
    )
    return (
        '<section style="margin: 0 0 1.5em 0; padding: 0.8em; background-color: #fafafa; '
        'border-radius: 4px;"><table style="width: 100%; border-collapse: collapse; '
        f'font-size: 14px; line-height: 1.6;"><tbody>{body}</tbody></table></section>'
    )


def render_cover(url: str) -> str:
    return (
        '<p style="text-align: center; margin: 1em 0 1.5em 0;">'
        f'<img src="{escape_html(full_url(url))}" alt="cover" '
        'style="max-width: 100%; height: auto; border-radius: 4px; display: block; '
        'margin: 0 auto;" /></p>'
    )


def compose_header(
    metadata: ItemMetadata,
    profile: StyleProfile,
    *,
    notice: str = "",
    cover_url: str = "",
) -> str:
    """Build notice, metadata table and cover, in that order.

    Sections are included only when present and enabled by *profile*.
    """
    sections: list[str] = []
    if notice.strip():
        sections.append(render_notice(notice, profile.colors))
    if profile.show_metadata_table:
        table = render_metadata_table(metadata)
        if table:
            sections.append(table)
    if profile.show_cover_in_body and cover_url:
        sections.append(render_cover(cover_url))
    return "\n\n".join(sections)


# =============================================================================
# Article assembly
# =============================================================================


def build_article(
    metadata: ItemMetadata,
    blocks: Sequence[ContentBlock | Mapping[str, Any]],
    rewrite_map: Mapping[str, str] | None,
    profile: StyleProfile,
    settings: ArticleSettings | None = None,
    *,
    cover_url: str | None = None,
) -> Article:
    """Render an item into a complete ``Article`` for one target.

    Args:
        metadata: Item title and properties.
        blocks: Block tree in document order.
        rewrite_map: Original media URL -> rehosted URL.
        profile: Target style profile.
        settings: Notice text and author override.
        cover_url: Cover to use (e.g. the rehosted one).  Resolved from the
            item when ``None``.

    Raises:
        ValidationError: On malformed blocks.
    """
    settings = settings or ArticleSettings()
    bag = PropertyBag(metadata.properties)
    if cover_url is None:
        cover_url = resolve_cover_url(metadata.cover, metadata.properties)

    body = transform(blocks, rewrite_map, profile)
    if blocks and not has_visible_text(body):
        logger.info("Item %s has no visible text, adding media notice", metadata.item_id)
        body = f"<p>{MEDIA_ONLY_NOTICE}</p>\n{body}" if body else f"<p>{MEDIA_ONLY_NOTICE}</p>"

    header = compose_header(metadata, profile, notice=settings.notice, cover_url=cover_url)
    content = f"{header}\n\n{body}" if header else body
    if profile.wrap_body:
        content = (
            '<section style="font-size: 16px; line-height: 1.75; '
            f'color: {profile.colors.text_color}; word-wrap: break-word;">{content}</section>'
        )

    title = metadata.title
    if profile.title_max_bytes:
        title = truncate_utf8(title, profile.title_max_bytes)

    fallback = metadata.title
    if profile.excerpt_max_chars:
        fallback = metadata.title[: profile.excerpt_max_chars]

    return Article(
        title=title,
        content=content,
        author=settings.author or bag.text(AUTHOR_PROPERTY),
        digest=bag.text(FROM_PROPERTY) or fallback,
        source_url=bag.url(LINK_PROPERTY),
        cover_url=full_url(cover_url) if cover_url else "",
        tags=bag.tags(TAG_PROPERTY),
    )
