"""Interfaces of the external collaborators consumed by the orchestrator.

Adapters implement these structurally; nothing needs to inherit from them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .cancellation import CancellationToken
    from .models import ContentBlock, ItemMetadata, PublishRequest


@runtime_checkable
class ContentSource(Protocol):
    """Where items come from.

    Both fetch methods raise ``NotFoundError`` / ``UnauthorizedError``
    (fatal) or ``NetworkTransientError`` (retried by the orchestrator).
    """

    async def fetch_metadata(self, item_id: str) -> ItemMetadata: ...

    async def fetch_block_tree(self, item_id: str) -> list[ContentBlock]:
        """Blocks recursively expanded, in document order."""
        ...


@runtime_checkable
class PublishingSource(ContentSource, Protocol):
    """A source that can record that an item was published."""

    async def mark_published(self, item_id: str) -> None: ...


@runtime_checkable
class PublishTarget(Protocol):
    """Where items go to.

    Attributes:
        name: Target name, also used for the sync key and style profile.
        supports_draft: ``False`` for platforms without a draft concept.
    """

    name: str
    supports_draft: bool

    async def upload_media(self, url: str, token: CancellationToken) -> str:
        """Rehost *url* and return the new URL.

        Raises:
            MediaUploadError: On any failure.
        """
        ...

    async def publish(self, request: PublishRequest, token: CancellationToken) -> str:
        """Publish or save the article; return the published link.

        Raises:
            ValidationError: Rejected content (fatal).
            PublishError: Any other target-side failure.
        """
        ...
