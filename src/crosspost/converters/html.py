"""Content block tree to HTML conversion.

``transform`` is a pure function: no network, no disk.  It fails fast on
malformed input (a block without a type tag) rather than dropping content.
"""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

import pydantic

from crosspost.errors import ValidationError
from crosspost.sync.models import ContentBlock, RichTextRun

from .styles import StyleProfile, get_profile

logger = logging.getLogger(__name__)

LIST_KINDS = {
    "bulleted_list_item": "bulleted",
    "numbered_list_item": "numbered",
}

_YOUTUBE_EMBED = re.compile(r"youtube(?:-nocookie)?\.com/embed/([^?/#]+)")
_TAG = re.compile(r"<[^>]+>")


def escape_html(text: str) -> str:
    """Escape ``& < > " '`` for use in element content and attributes."""
    return html.escape(text, quote=True)


def has_visible_text(markup: str) -> bool:
    """Return ``True`` if *markup* has any text outside of tags."""
    text = html.unescape(_TAG.sub("", markup))
    return bool(text.replace("\xa0", "").strip())


def youtube_watch_url(url: str) -> str:
    """Rewrite a YouTube ``/embed/<id>`` URL to its ``watch?v=<id>`` form."""
    match = _YOUTUBE_EMBED.search(url)
    if match:
        return f"https://www.youtube.com/watch?v={match.group(1)}"
    return url


class HtmlBlockRenderer:
    """Render content blocks to inline-styled HTML for one target profile.

    One ``render_*`` method per block type; unknown types go through
    ``render_fallback``.  The renderer holds no per-call state, so the
    same instance renders identical input to identical output.

    Args:
        profile: Style profile of the target.
        rewrite_map: Original media URL -> rehosted URL.
    """

    #: Types with a dedicated ``render_<type>`` method.
    BLOCK_TYPES = frozenset(
        {
            "paragraph",
            "image",
            "video",
            "file",
            "pdf",
            "embed",
            "bookmark",
            "link_preview",
            "quote",
            "code",
            "divider",
            "to_do",
        }
    )

    def __init__(
        self,
        profile: StyleProfile,
        rewrite_map: Mapping[str, str] | None = None,
    ) -> None:
        self.profile = profile
        self.theme = profile.colors
        self.rewrite_map = dict(rewrite_map or {})

    # ------------------------------------------------------------------
    # Inline
    # ------------------------------------------------------------------

    def render_rich_text(self, runs: Sequence[RichTextRun]) -> str:
        """Render runs one by one.

        Text is escaped first, then wrapped innermost-out in code,
        strikethrough, underline, bold and italic, then in the link.
        """
        return "".join(self.render_run(run) for run in runs)

    def render_run(self, run: RichTextRun) -> str:
        content = escape_html(run.text)
        if run.code:
            content = (
                f'<code style="background-color: {self.theme.inline_code_background}; '
                "padding: 3px 6px; border-radius: 3px; "
                "font-family: 'SF Mono', Consolas, Monaco, monospace; "
                f'font-size: 0.9em; color: {self.theme.inline_code_color};">'
                f"{content}</code>"
            )
        if run.strikethrough:
            content = f"<s>{content}</s>"
        if run.underline:
            content = f"<u>{content}</u>"
        if run.bold:
            content = f"<strong>{content}</strong>"
        if run.italic:
            content = f"<em>{content}</em>"
        if run.href:
            content = self.render_link(content, run.href)
        return content

    def render_link(self, content: str, href: str) -> str:
        """Wrap already-rendered *content* in a link to *href*."""
        url = escape_html(href)
        color = self.theme.link_color
        if not self.profile.two_line_links:
            return (
                f'<a href="{url}" style="color: {color}; '
                f'text-decoration: none;">{content}</a>'
            )
        # Label line plus a visible URL line.
        return (
            '<span style="display: inline-block; margin: 0.3em 0; vertical-align: top;">'
            f'<a href="{url}" style="color: {color}; text-decoration: none; '
            f'border-bottom: 1px solid {color}; font-weight: 500; display: block;">'
            f"{content}</a>"
            '<span style="color: #999; font-size: 12px; display: block; '
            f'margin-top: 0.2em; line-height: 1.4;">{url}</span></span>'
        )

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def render_block(self, block: ContentBlock) -> str:
        """Render one block according to its type tag."""
        if block.type in ("heading_1", "heading_2", "heading_3"):
            return self.render_heading(block, int(block.type[-1]))
        if block.type in LIST_KINDS:
            return self.render_list_item(block)
        if block.type in self.BLOCK_TYPES:
            return getattr(self, f"render_{block.type}")(block)
        return self.render_fallback(block)

    def render_paragraph(self, block: ContentBlock) -> str:
        if not block.rich_text:
            return '<p style="margin: 1em 0; line-height: 1.8;">&nbsp;</p>'
        return (
            '<p style="margin: 1em 0; line-height: 1.8; letter-spacing: 0.5px; '
            f'color: {self.theme.text_color}; font-size: 15px;">'
            f"{self.render_rich_text(block.rich_text)}</p>"
        )

    def render_heading(self, block: ContentBlock, level: int) -> str:
        sizes = {1: "1.75em", 2: "1.4em", 3: "1.2em"}
        borders = {1: 6, 2: 4, 3: 3}
        return (
            f'<h{level} style="margin: 1.3em 0 0.7em 0; padding-left: 0.6em; '
            f"font-size: {sizes[level]}; font-weight: 700; line-height: 1.4; "
            f"color: {self.theme.heading_color}; "
            f'border-left: {borders[level]}px solid {self.theme.heading_border};">'
            f"{self.render_rich_text(block.rich_text)}</h{level}>"
        )

    def render_image(self, block: ContentBlock) -> str:
        url = block.media_url or ""
        caption = block.caption_text
        if url:
            url = self.rewrite_map.get(url, url)
            src = escape_html(url)
            img_style = (
                "max-width: 100%; height: auto; border-radius: 8px; "
                "box-shadow: 0 4px 12px rgba(0,0,0,0.1); "
            )
            if caption:
                alt = escape_html(caption)
                return (
                    '<figure style="margin: 2em 0; text-align: center;">'
                    f'<img src="{src}" alt="{alt}" style="{img_style}'
                    'display: block; margin: 0 auto;" />'
                    '<figcaption style="margin-top: 1em; padding: 0.5em 1em; '
                    "font-size: 14px; color: #7f8c8d; background-color: #f8f9fa; "
                    f'border-radius: 4px; display: inline-block;">{alt}</figcaption>'
                    "</figure>"
                )
            return (
                '<p style="text-align: center; margin: 2em 0;">'
                f'<img src="{src}" alt="image" style="{img_style}'
                'display: inline-block;" /></p>'
            )
        if caption:
            logger.warning("Image block %s has no URL, rendering caption only", block.id)
            return (
                '<p style="margin: 1em 0; line-height: 1.8; text-align: center; '
                f'color: #999; font-size: 0.9em;"><em>{escape_html(caption)}</em></p>'
            )
        logger.warning("Image block %s has neither URL nor caption", block.id)
        return ""

    def _link_card(
        self, url: str, label: str, background: str, border: str, color: str
    ) -> str:
        return (
            f'<p style="margin: 1.2em 0; padding: 0.8em 1em; background-color: {background}; '
            f'border-left: 4px solid {border}; border-radius: 4px;">'
            f'<a href="{escape_html(url)}" style="color: {color}; text-decoration: none; '
            f'font-weight: 500;">{escape_html(label)}</a></p>'
        )

    def render_video(self, block: ContentBlock) -> str:
        url = block.media_url or ""
        caption = block.caption_text
        if not url:
            return (
                '<p style="margin: 1em 0; padding: 1em; background-color: #f7f7f7; '
                'border-radius: 6px; color: #666; text-align: center;">'
                f"[Video: {escape_html(caption or 'video content')}]</p>"
            )
        link = escape_html(url)
        anchor = (
            f'<a href="{link}" style="color: rgb(0, 82, 255); '
            f'text-decoration: underline; font-weight: bold;">'
        )
        if caption:
            return (
                '<p style="margin: 1.2em 0; line-height: 1.8;">'
                f"<strong>🎬 {escape_html(caption)}</strong><br/>{anchor}{link}</a></p>"
            )
        return f'<p style="margin: 1.2em 0; line-height: 1.8;">{anchor}🎬 {link}</a></p>'

    def render_file(self, block: ContentBlock) -> str:
        if not block.media_url:
            return ""
        label = f"📎 {block.caption_text or 'Download file'}"
        return self._link_card(block.media_url, label, "#f0f7ff", "#1890ff", "#1890ff")

    def render_pdf(self, block: ContentBlock) -> str:
        if not block.media_url:
            return ""
        label = f"📄 {block.caption_text or 'PDF document'}"
        return self._link_card(block.media_url, label, "#fff3e0", "#ff9800", "#ff6f00")

    def render_embed(self, block: ContentBlock) -> str:
        caption = block.caption_text
        if not block.media_url:
            if caption:
                return f'<p style="margin: 1em 0; line-height: 1.8;">{escape_html(caption)}</p>'
            return ""
        url = youtube_watch_url(block.media_url)
        if caption:
            return (
                '<div style="margin: 1.5em 0; padding: 1.2em; '
                "background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); "
                'border-radius: 8px;">'
                '<p style="margin: 0 0 0.8em 0; font-weight: 600; color: #fff;">'
                f"📌 {escape_html(caption)}</p>"
                f'<p style="margin: 0;"><a href="{escape_html(url)}" style="color: #fff; '
                "text-decoration: none; background-color: rgba(255,255,255,0.2); "
                'padding: 8px 16px; border-radius: 4px; display: inline-block;">'
                "View content →</a></p></div>"
            )
        return self._link_card(url, f"🔗 {url}", "#f0f7ff", "#1890ff", "#1890ff")

    def render_bookmark(self, block: ContentBlock) -> str:
        if not block.media_url:
            return ""
        label = f"🔖 {block.caption_text or block.media_url}"
        return self._link_card(block.media_url, label, "#fff9e6", "#faad14", "#d48806")

    def render_link_preview(self, block: ContentBlock) -> str:
        if not block.media_url:
            return ""
        label = f"🔗 {block.media_url}"
        return self._link_card(block.media_url, label, "#f0f7ff", "#1890ff", "#1890ff")

    def render_list_item(self, block: ContentBlock) -> str:
        return (
            '<li style="margin: 0.5em 0; line-height: 1.8; color: #555;">'
            f"{self.render_rich_text(block.rich_text)}</li>"
        )

    def render_list(self, kind: str, items: Sequence[str]) -> str:
        """Wrap buffered ``<li>`` items in one list container."""
        body = "".join(items)
        if kind == "numbered":
            return f'<ol style="margin: 1em 0; padding-left: 2em;">{body}</ol>'
        return (
            '<ul style="margin: 1em 0; padding-left: 2em; list-style-type: disc;">'
            f"{body}</ul>"
        )

    def render_quote(self, block: ContentBlock) -> str:
        return (
            f'<blockquote style="margin: 1.2em 0; padding: 1em 1.2em; '
            f"background-color: {self.theme.quote_background}; "
            f"border-left: 4px solid {self.theme.quote_border}; border-radius: 4px; "
            f'color: {self.theme.quote_color}; font-style: italic; line-height: 1.8;">'
            f"{self.render_rich_text(block.rich_text)}</blockquote>"
        )

    def render_code(self, block: ContentBlock) -> str:
        """Code block with a language label and a numbered gutter."""
        lines = escape_html(block.plain_text).split("\n")
        gutter = "".join(
            '<li style="list-style: none; padding: 0 10px 0 0; margin: 0; '
            f'color: #999; text-align: right; min-width: 30px;">{number}</li>'
            for number in range(1, len(lines) + 1)
        )
        code = "".join(
            f'<code style="display: block; padding: 0; margin: 0;">{line or " "}</code>'
            for line in lines
        )
        label = ""
        if block.language:
            label = (
                '<div style="padding: 8px 12px; background: #e8eaed; color: #666; '
                "font-size: 12px; border-bottom: 1px solid #e1e4e8; "
                f'font-family: Consolas, Monaco, monospace;">{escape_html(block.language)}</div>'
            )
        return (
            '<section style="margin: 16px 0; background: #f6f8fa; border-radius: 6px; '
            'overflow: hidden; font-size: 14px; border: 1px solid #e1e4e8;">'
            f"{label}"
            '<div style="display: flex; overflow-x: auto;">'
            '<ul style="margin: 0; padding: 10px 0; list-style: none; '
            f'background: #f0f0f0; border-right: 1px solid #e1e4e8;">{gutter}</ul>'
            '<pre style="margin: 0; padding: 10px 12px; flex: 1; overflow-x: auto; '
            "font-family: Consolas, Monaco, 'Courier New', monospace; line-height: 1.6; "
            f'color: #24292e; white-space: pre;"><code style="font-family: inherit;">{code}</code></pre>'
            "</div></section>"
        )

    def render_divider(self, block: ContentBlock) -> str:
        return (
            '<hr style="margin: 2em 0; border: 0; height: 1px; '
            'background: linear-gradient(to right, transparent, #cbd5e0, transparent);" />'
        )

    def render_to_do(self, block: ContentBlock) -> str:
        if block.checked:
            icon, icon_color, background = "✓", "#4caf50", "#e8f5e9"
            text_style = "text-decoration: line-through; color: #999;"
        else:
            icon, icon_color, background = "○", "#ff9800", "#fff3e0"
            text_style = "color: #555;"
        return (
            '<div style="margin: 0.8em 0; padding: 0.8em 1em; '
            f"background-color: {background}; border-left: 3px solid {icon_color}; "
            'border-radius: 4px;">'
            '<span style="display: inline-block; width: 20px; margin-right: 0.8em; '
            f'font-weight: bold; color: {icon_color};">{icon}</span>'
            f'<span style="{text_style} line-height: 1.6;">'
            f"{self.render_rich_text(block.rich_text)}</span></div>"
        )

    def render_fallback(self, block: ContentBlock) -> str:
        """Unrecognized type: plain text, or a placeholder if it has children."""
        text = block.plain_text
        if text.strip():
            return f"<p>{escape_html(text)}</p>"
        if block.has_children:
            return f"<p>[{escape_html(block.type)} block with nested content]</p>"
        return ""

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    def render(self, blocks: Sequence[ContentBlock]) -> str:
        """Render *blocks* in order, grouping consecutive list items."""
        parts: list[str] = []
        list_kind: str | None = None
        items: list[str] = []

        for block in blocks:
            kind = LIST_KINDS.get(block.type)
            if kind is not None:
                if kind != list_kind and items:
                    parts.append(self.render_list(list_kind, items))
                    items = []
                list_kind = kind
                items.append(self.render_list_item(block))
                continue

            if items:
                parts.append(self.render_list(list_kind, items))
                items = []
                list_kind = None
            rendered = self.render_block(block)
            if rendered:
                parts.append(rendered)

        if items:
            parts.append(self.render_list(list_kind, items))
        return "\n".join(parts)


def coerce_blocks(blocks: Sequence[ContentBlock | Mapping[str, Any]]) -> list[ContentBlock]:
    """Validate raw block mappings into ``ContentBlock`` objects.

    Raises:
        ValidationError: If any block lacks a type tag or is malformed.
    """
    result: list[ContentBlock] = []
    for index, block in enumerate(blocks):
        if not isinstance(block, ContentBlock):
            try:
                block = ContentBlock.model_validate(block)
            except pydantic.ValidationError as exc:
                raise ValidationError(
                    f"block {index} is malformed: {exc.errors()[0]['msg']}"
                ) from exc
        if not block.type:
            raise ValidationError(f"block {index} ({block.id or 'no id'}) has no type tag")
        result.append(block)
    return result


def transform(
    blocks: Sequence[ContentBlock | Mapping[str, Any]],
    rewrite_map: Mapping[str, str] | None = None,
    profile: StyleProfile | str = "wechat",
) -> str:
    """Turn an ordered block tree into target HTML.

    Args:
        blocks: Flattened blocks in document order.
        rewrite_map: Original media URL -> rehosted URL.  URLs missing from
            the map are emitted unchanged.
        profile: Target style profile, or the name of a built-in one.

    Returns:
        The body markup (no header, no wrapper).

    Raises:
        ValidationError: On a block without a type tag.
    """
    if isinstance(profile, str):
        profile = get_profile(profile)
    validated = coerce_blocks(blocks)
    return HtmlBlockRenderer(profile, rewrite_map).render(validated)
