"""Draft handling for targets without a draft concept.

Some platforms only accept published content.  For them a ``draft``
request is turned into a ``publish`` scheduled far enough in the future
that the author can still review or withdraw it.  This is a deliberate
substitution with a fixed offset and is logged every time it happens.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .models import PublishMode

logger = logging.getLogger(__name__)

DRAFT_SCHEDULE_OFFSET = timedelta(days=14)


@dataclass(frozen=True, slots=True)
class DraftDecision:
    """Effective mode and optional scheduled publish time."""

    mode: PublishMode
    scheduled_at: datetime | None = None


class DraftPolicy:
    """Map a requested publish mode to what the target can actually do.

    Args:
        offset: Delay used when a draft is simulated by a scheduled publish.
    """

    def __init__(self, offset: timedelta = DRAFT_SCHEDULE_OFFSET) -> None:
        self.offset = offset

    def resolve(
        self,
        mode: PublishMode,
        target_name: str,
        supports_draft: bool,
        now: datetime | None = None,
    ) -> DraftDecision:
        if mode != PublishMode.DRAFT or supports_draft:
            return DraftDecision(mode=mode)

        now = now or datetime.now(timezone.utc)
        scheduled = now + self.offset
        logger.warning(
            "%s has no drafts; scheduling publish at %s instead",
            target_name,
            scheduled.isoformat(),
        )
        return DraftDecision(mode=PublishMode.PUBLISH, scheduled_at=scheduled)
