"""Color themes and per-target style profiles for HTML rendering.

A ``StyleProfile`` captures every target-specific rendering decision:
whether links render as a two-line unit (label + visible URL), whether
the body is wrapped in a styled ``<section>``, and whether the cover image
and metadata table are placed in the body.  The ``Theme`` supplies colors.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# =============================================================================
# Themes
# =============================================================================


class Theme(BaseModel):
    """Color palette used by the block renderer and header composer."""

    name: str
    text_color: str = "#333"
    heading_color: str = "#2c2c2c"
    heading_border: str = "#e8e8e8"
    link_color: str = "#576b95"
    inline_code_background: str = "#f5f5f5"
    inline_code_color: str = "#d73a49"
    quote_background: str = "#fef9e7"
    quote_border: str = "#f39c12"
    quote_color: str = "#7f8c8d"
    notice_background: str = "#f0f4ff"
    notice_border: str = "#576b95"
    notice_color: str = "#576b95"

    model_config = {"frozen": True}


def _accent_theme(
    name: str,
    accent: str,
    code_background: str,
    code_color: str,
    quote_background: str,
    text_color: str = "#333",
) -> Theme:
    """Build a theme whose headings, links, quote and notice share one accent."""
    return Theme(
        name=name,
        text_color=text_color,
        heading_color=accent,
        heading_border=accent,
        link_color=accent,
        inline_code_background=code_background,
        inline_code_color=code_color,
        quote_background=quote_background,
        quote_border=accent,
        quote_color="#666",
        notice_background=quote_background,
        notice_border=accent,
        notice_color=accent,
    )


THEMES: dict[str, Theme] = {
    "default": Theme(name="default"),
    "wechat": Theme(
        name="wechat",
        text_color="#3a3a3a",
        heading_color="#07c160",
        heading_border="#07c160",
        link_color="#576b95",
        inline_code_background="#eef9f0",
        inline_code_color="#07c160",
        quote_background="#eef9f0",
        quote_border="#07c160",
        quote_color="#5a5a5a",
        notice_background="#eef9f0",
        notice_border="#07c160",
        notice_color="#07c160",
    ),
    "hongfei": _accent_theme("hongfei", "#e63946", "#ffe5e8", "#e63946", "#fff5f6"),
    "jianhei": _accent_theme(
        "jianhei", "#000", "#f0f0f0", "#000", "#f5f5f5", text_color="#2c2c2c"
    ),
    "shanchui": _accent_theme(
        "shanchui", "#ff9800", "#fff8e1", "#ff6f00", "#fffaf0", text_color="#3a3a3a"
    ),
    "chengxin": _accent_theme("chengxin", "#ff5722", "#ffe8e1", "#ff5722", "#fff3e0"),
}


def get_theme(name: str | None) -> Theme:
    """Return the theme called *name*, falling back to ``default``."""
    return THEMES.get(name or "default", THEMES["default"])


# =============================================================================
# Style profiles
# =============================================================================


class StyleProfile(BaseModel):
    """Target-specific rendering switches.

    Attributes:
        name: Profile name (usually the target name).
        theme: Theme name, see ``THEMES``.
        two_line_links: Render a linked run as a label line plus a visible
            URL line (messaging platforms hide link targets).
        wrap_body: Wrap the whole article in a styled ``<section>``.
        show_cover_in_body: Insert the cover image after the metadata table.
        show_metadata_table: Insert the item property table.
        title_max_bytes: UTF-8 byte budget for titles (``None`` = no limit).
        excerpt_max_chars: Length of the title-derived excerpt fallback.
    """

    name: str
    theme: str = "default"
    two_line_links: bool = False
    wrap_body: bool = False
    show_cover_in_body: bool = True
    show_metadata_table: bool = True
    title_max_bytes: int | None = Field(default=None, ge=1)
    excerpt_max_chars: int | None = Field(default=None, ge=1)

    model_config = {"frozen": True}

    @property
    def colors(self) -> Theme:
        return get_theme(self.theme)


PROFILES: dict[str, StyleProfile] = {
    "wechat": StyleProfile(
        name="wechat",
        theme="default",
        two_line_links=True,
        wrap_body=True,
        show_cover_in_body=True,
        title_max_bytes=64,
    ),
    "wordpress": StyleProfile(
        name="wordpress",
        theme="default",
        two_line_links=False,
        wrap_body=False,
        # The cover becomes the featured image instead.
        show_cover_in_body=False,
        excerpt_max_chars=150,
    ),
    "bilibili": StyleProfile(
        name="bilibili",
        theme="default",
        two_line_links=False,
        wrap_body=False,
        show_cover_in_body=False,
        show_metadata_table=False,
        title_max_bytes=240,
    ),
}


def get_profile(name: str, theme: str | None = None) -> StyleProfile:
    """Return the built-in profile *name* (or a plain one), with an optional theme override."""
    profile = PROFILES.get(name) or StyleProfile(name=name)
    if theme:
        profile = profile.model_copy(update={"theme": theme})
    return profile
