"""Content source reading items from a directory of Markdown files.

Each item is ``<item_id>.md``: optional YAML front matter followed by a
Markdown body.  Front matter supplies the title, the cover and the item
properties; the body is parsed with mistune's AST renderer and flattened
into ``ContentBlock``s in document order.

Front matter example::

    ---
    title: A new engine
    cover: https://example.com/cover.png
    LinkStart: https://github.com/example/engine
    From: GitHub
    FeatureTag: [rendering, rust]
    ExpectationsRate: 8
    AddedTime: 2024-05-01
    ---
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import mistune
import yaml

from crosspost.core.async_utils import run_sync
from crosspost.errors import NotFoundError, SyncError, UnauthorizedError, ValidationError
from crosspost.file_handler import item_path, read_file_with_encoding, write_file
from crosspost.sync.models import ContentBlock, ItemMetadata, RichTextRun
from crosspost.sync.properties import LINK_PROPERTY

logger = logging.getLogger(__name__)

FRONT_MATTER_DELIMITER = "---"
_RESERVED_KEYS = {"title", "cover"}

_markdown = mistune.create_markdown(
    renderer="ast", plugins=["strikethrough", "task_lists", "url"]
)


# =============================================================================
# Front matter
# =============================================================================


def split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """Split ``---``-delimited YAML front matter from the body.

    Raises:
        ValidationError: If the front matter is not a YAML mapping.
    """
    lines = text.lstrip("\ufeff").splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        return {}, text
    for index in range(1, len(lines)):
        if lines[index].strip() == FRONT_MATTER_DELIMITER:
            header = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            break
    else:
        return {}, text

    try:
        data = yaml.safe_load(header) or {}
    except yaml.YAMLError as exc:
        raise ValidationError(f"invalid front matter: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError("front matter must be a mapping")
    return data, body


def to_property(name: str, value: Any) -> dict[str, Any] | None:
    """Express a front matter value in the property bag's shapes."""
    match value:
        case None:
            return None
        case dict():
            return value
        case bool():
            return {"checkbox": value}
        case int() | float():
            return {"number": value}
        case datetime() | date():
            return {"date": {"start": value.isoformat()}}
        case list():
            return {"multi_select": [{"name": str(item)} for item in value]}
        case str() if name == LINK_PROPERTY:
            return {"url": value}
        case _:
            return {"rich_text": [{"plain_text": str(value)}]}


# =============================================================================
# Markdown body -> blocks
# =============================================================================


class BlockTreeBuilder:
    """Flatten a mistune AST into ``ContentBlock``s.

    Nested list items follow their parent item, which is marked
    ``has_children``.  Images inside paragraphs become separate image
    blocks at their position, splitting the surrounding text.
    """

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        self.blocks: list[ContentBlock] = []

    def build(self, tokens: list[dict[str, Any]]) -> list[ContentBlock]:
        for token in tokens:
            self._block(token)
        return self.blocks

    def _add(self, type_: str, **fields: Any) -> None:
        block_id = f"{self.item_id}-{len(self.blocks) + 1}"
        self.blocks.append(ContentBlock(id=block_id, type=type_, **fields))

    def _block(self, token: dict[str, Any]) -> None:
        kind = token.get("type")
        attrs = token.get("attrs") or {}
        children = token.get("children") or []

        match kind:
            case "heading":
                level = min(int(attrs.get("level", 1)), 3)
                self._add(f"heading_{level}", rich_text=self._inline(children))
            case "paragraph" | "block_text":
                self._paragraph(children)
            case "block_code":
                self._add(
                    "code",
                    rich_text=[RichTextRun(text=token.get("raw", "").rstrip("\n"))],
                    language=(attrs.get("info") or "").split(" ")[0] or None,
                )
            case "block_quote":
                runs: list[RichTextRun] = []
                for child in children:
                    if runs:
                        runs.append(RichTextRun(text="\n"))
                    runs.extend(self._inline(child.get("children") or []))
                self._add("quote", rich_text=runs)
            case "thematic_break":
                self._add("divider")
            case "list":
                self._list(token)
            case "blank_line" | None:
                pass
            case _:
                text = token.get("raw") or ""
                self._add(kind, rich_text=[RichTextRun(text=text)] if text else [])

    def _paragraph(self, children: list[dict[str, Any]]) -> None:
        pending: list[dict[str, Any]] = []
        for child in children:
            if child.get("type") != "image":
                pending.append(child)
                continue
            if self._has_text(pending):
                self._add("paragraph", rich_text=self._inline(pending))
            pending = []
            alt = self._plain(child.get("children") or [])
            self._add(
                "image",
                media_url=(child.get("attrs") or {}).get("url"),
                caption=[RichTextRun(text=alt)] if alt else [],
            )
        if not children or (pending and self._has_text(pending)):
            self._add("paragraph", rich_text=self._inline(pending))

    def _list(self, token: dict[str, Any]) -> None:
        ordered = (token.get("attrs") or {}).get("ordered", False)
        for item in token.get("children") or []:
            inline: list[dict[str, Any]] = []
            nested: list[dict[str, Any]] = []
            for child in item.get("children") or []:
                if child.get("type") == "list":
                    nested.append(child)
                else:
                    inline.extend(child.get("children") or [])

            if item.get("type") == "task_list_item":
                self._add(
                    "to_do",
                    rich_text=self._inline(inline),
                    checked=bool((item.get("attrs") or {}).get("checked")),
                    has_children=bool(nested),
                )
            else:
                self._add(
                    "numbered_list_item" if ordered else "bulleted_list_item",
                    rich_text=self._inline(inline),
                    has_children=bool(nested),
                )
            for child in nested:
                self._list(child)

    # ------------------------------------------------------------------
    # Inline
    # ------------------------------------------------------------------

    def _inline(
        self, tokens: list[dict[str, Any]], **marks: Any
    ) -> list[RichTextRun]:
        runs: list[RichTextRun] = []
        for token in tokens:
            kind = token.get("type")
            children = token.get("children") or []
            match kind:
                case "text":
                    runs.append(RichTextRun(text=token.get("raw", ""), **marks))
                case "codespan":
                    runs.append(RichTextRun(text=token.get("raw", ""), code=True, **marks))
                case "strong":
                    runs.extend(self._inline(children, **{**marks, "bold": True}))
                case "emphasis":
                    runs.extend(self._inline(children, **{**marks, "italic": True}))
                case "strikethrough":
                    runs.extend(self._inline(children, **{**marks, "strikethrough": True}))
                case "link":
                    href = (token.get("attrs") or {}).get("url")
                    runs.extend(self._inline(children, **{**marks, "href": href}))
                case "softbreak":
                    runs.append(RichTextRun(text=" ", **marks))
                case "linebreak":
                    runs.append(RichTextRun(text="\n", **marks))
                case "image":
                    runs.append(RichTextRun(text=self._plain(children), **marks))
                case _:
                    raw = token.get("raw")
                    if raw:
                        runs.append(RichTextRun(text=raw, **marks))
                    elif children:
                        runs.extend(self._inline(children, **marks))
        return runs

    def _plain(self, tokens: list[dict[str, Any]]) -> str:
        return "".join(run.text for run in self._inline(tokens))

    def _has_text(self, tokens: list[dict[str, Any]]) -> bool:
        return bool(self._plain(tokens).strip())


def parse_blocks(item_id: str, body: str) -> list[ContentBlock]:
    """Parse a Markdown body into flattened blocks."""
    tokens = _markdown(body)
    return BlockTreeBuilder(item_id).build(tokens)  # type: ignore[arg-type]


# =============================================================================
# Adapter
# =============================================================================


class MarkdownDirectorySource:
    """``ContentSource`` over ``<directory>/<item_id>.md`` files.

    Args:
        directory: Directory holding the items.
        published_directory: Where ``mark_published`` writes
            ``<item_id>.published`` markers.  Markers are skipped when unset.
    """

    def __init__(
        self, directory: Path, published_directory: Path | None = None
    ) -> None:
        self.directory = directory
        self.published_directory = published_directory

    def _read(self, item_id: str) -> tuple[dict[str, Any], str]:
        try:
            path = item_path(self.directory, item_id)
        except ValueError as exc:
            raise NotFoundError(str(exc)) from exc
        try:
            text, encoding = read_file_with_encoding(path)
        except FileNotFoundError as exc:
            raise NotFoundError(f"item {item_id} not found in {self.directory}") from exc
        except PermissionError as exc:
            raise UnauthorizedError(f"no permission to read item {item_id}") from exc
        except OSError as exc:
            raise SyncError(f"cannot read item {item_id}: {exc}") from exc
        if encoding != "utf-8":
            logger.debug("Item %s decoded as %s", item_id, encoding)
        return split_front_matter(text)

    def _metadata(self, item_id: str) -> ItemMetadata:
        front, _ = self._read(item_id)
        properties = {
            name: prop
            for name, value in front.items()
            if name not in _RESERVED_KEYS
            and (prop := to_property(name, value)) is not None
        }
        cover = front.get("cover")
        return ItemMetadata(
            item_id=item_id,
            title=str(front.get("title") or ""),
            properties=properties,
            cover={"type": "external", "external": {"url": cover}} if cover else None,
        )

    def _blocks(self, item_id: str) -> list[ContentBlock]:
        _, body = self._read(item_id)
        return parse_blocks(item_id, body)

    async def fetch_metadata(self, item_id: str) -> ItemMetadata:
        return await run_sync(self._metadata, item_id)

    async def fetch_block_tree(self, item_id: str) -> list[ContentBlock]:
        return await run_sync(self._blocks, item_id)

    async def mark_published(self, item_id: str) -> None:
        if self.published_directory is None:
            return
        marker = item_path(self.published_directory, item_id, suffix=".published")
        stamp = datetime.now(timezone.utc).isoformat()
        await run_sync(write_file, marker, stamp + "\n")
        logger.info("Marked %s as published", item_id)
