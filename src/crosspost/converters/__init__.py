"""Content converters: block tree to target HTML, headers and articles."""

from .header import Article, ArticleSettings, build_article, compose_header, truncate_utf8
from .html import HtmlBlockRenderer, escape_html, transform
from .styles import PROFILES, THEMES, StyleProfile, Theme, get_profile, get_theme

__all__ = [
    "Article",
    "ArticleSettings",
    "HtmlBlockRenderer",
    "PROFILES",
    "StyleProfile",
    "THEMES",
    "Theme",
    "build_article",
    "compose_header",
    "escape_html",
    "get_profile",
    "get_theme",
    "transform",
    "truncate_utf8",
]
