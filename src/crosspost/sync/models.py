"""Pydantic models for the sync engine.

Defines the core data contracts used across all sync modules:

- ``SyncStatus``: lifecycle of one sync key.
- ``SyncState``: persisted record for one sync key.
- ``RichTextRun`` / ``ContentBlock``: the ordered content tree fetched
  from the source.
- ``ItemMetadata``: title, loosely-typed properties and cover of an item.
- ``PublishMode`` / ``PublishRequest``: what is handed to a target.
- ``SyncOutcome``: final state plus reporting details for one run.

Content and state models are frozen (immutable).
"""

from __future__ import annotations

import time
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class SyncStatus(str, Enum):
    """Lifecycle of one sync key.  ``PENDING`` is never persisted."""

    PENDING = "pending"
    SYNCING = "syncing"
    SUCCESS = "success"
    FAILED = "failed"


class PublishMode(str, Enum):
    """How the caller wants the item to land on the target."""

    PUBLISH = "publish"
    DRAFT = "draft"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class SyncState(BaseModel):
    """Persisted state of one (item, target) pair.

    Attributes:
        key: Sync key (see ``crosspost.sync.keys``).
        status: Current status.
        last_transition_time: Epoch milliseconds of the last transition.
        error: Failure message; present iff ``status`` is ``FAILED``.
        result_url: Published link; only set on ``SUCCESS``.
    """

    key: str
    status: SyncStatus
    last_transition_time: int = Field(default_factory=now_ms)
    error: str | None = None
    result_url: str | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_error_invariant(self) -> SyncState:
        if self.status == SyncStatus.FAILED and not self.error:
            raise ValueError("failed state requires an error message")
        if self.status != SyncStatus.FAILED and self.error is not None:
            raise ValueError(
                f"error is only allowed on failed state, got {self.status.value}"
            )
        if self.status != SyncStatus.SUCCESS and self.result_url:
            raise ValueError("result_url is only allowed on success state")
        return self


class RichTextRun(BaseModel):
    """One run of inline text with formatting flags.

    A link (``href``) may combine with any of the formatting flags.
    """

    text: str = ""
    href: str | None = None
    bold: bool = False
    italic: bool = False
    code: bool = False
    strikethrough: bool = False
    underline: bool = False

    model_config = {"frozen": True}


class ContentBlock(BaseModel):
    """One node of the flattened, document-ordered content tree.

    Attributes:
        id: Source block id.
        type: Block type tag (``paragraph``, ``heading_1``, ``image`` ...).
            Required; a block without it is malformed input.
        rich_text: Inline runs.
        media_url: URL for image/video/file/embed style blocks.
        caption: Caption runs for media blocks.
        has_children: Whether the source block had children (they follow
            it in the flattened sequence).
        language: Code block language.
        checked: Checklist item state.
    """

    id: str = ""
    type: str
    rich_text: list[RichTextRun] = []
    media_url: str | None = None
    caption: list[RichTextRun] = []
    has_children: bool = False
    language: str | None = None
    checked: bool = False

    model_config = {"frozen": True}

    @property
    def plain_text(self) -> str:
        """Concatenated text of all runs, without formatting."""
        return "".join(run.text for run in self.rich_text)

    @property
    def caption_text(self) -> str:
        """Text of the first caption run, or ``""``."""
        return self.caption[0].text if self.caption else ""


class ItemMetadata(BaseModel):
    """Title and property bag of a source item.

    ``properties`` is kept as a raw mapping because property names and
    shapes vary per item; read it through ``PropertyBag``.
    """

    item_id: str
    title: str = ""
    properties: dict[str, Any] = {}
    cover: dict[str, Any] | None = None

    model_config = {"frozen": True}


class PublishRequest(BaseModel):
    """Everything a target adapter needs to publish one item.

    Attributes:
        item_id: Source item id.
        title: Final (possibly truncated) title.
        content: Transformed markup.
        mode: Effective publish mode after the draft policy.
        author: Author line.
        digest: Short summary / excerpt.
        source_url: Link back to the original content.
        cover_url: Rehosted cover URL, or the original if re-hosting failed.
        tags: Tag names.
        scheduled_at: Delayed publish time for targets without drafts.
    """

    item_id: str
    title: str
    content: str
    mode: PublishMode = PublishMode.PUBLISH
    author: str = ""
    digest: str = ""
    source_url: str = ""
    cover_url: str = ""
    tags: list[str] = []
    scheduled_at: datetime | None = None

    model_config = {"frozen": True}


class SyncOutcome(BaseModel):
    """Result of one ``run_sync`` invocation.

    Attributes:
        state: Final persisted state.
        target: Target name.
        published_link: Link returned by the target, if any.
        failed_media: Media URLs that could not be rehosted.
    """

    state: SyncState
    target: str
    published_link: str | None = None
    failed_media: list[str] = []

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        return self.state.status == SyncStatus.SUCCESS
