"""Media re-hosting: collect image URLs, upload them, build the rewrite map."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from crosspost.errors import SyncCancelledError, SyncError, SyncTimeoutError

from .models import ContentBlock

if TYPE_CHECKING:
    from .cancellation import CancellationToken
    from .ports import PublishTarget

logger = logging.getLogger(__name__)

IMAGE_BLOCK_TYPES = frozenset({"image"})


class ImageUploadCoordinator:
    """Upload the images of one item to one target, one at a time.

    Uploads are sequential.  The token is checked before every upload;
    an individual failure is recorded and the batch continues.
    """

    @staticmethod
    def collect_urls(blocks: Iterable[ContentBlock]) -> list[str]:
        """Distinct image URLs in document order."""
        seen: dict[str, None] = {}
        for block in blocks:
            if block.type in IMAGE_BLOCK_TYPES and block.media_url:
                seen.setdefault(block.media_url, None)
        return list(seen)

    async def upload_all(
        self,
        urls: Sequence[str],
        target: PublishTarget,
        token: CancellationToken,
    ) -> tuple[dict[str, str], list[str]]:
        """Rehost every URL in *urls* on *target*.

        Args:
            urls: Distinct original URLs.
            target: Target adapter providing ``upload_media``.
            token: Cancellation token of the running operation.

        Returns:
            ``(rewrite_map, failed_urls)``.  URLs in ``failed_urls`` are
            absent from the map.

        Raises:
            SyncCancelledError | SyncTimeoutError: If the token is aborted
                before or during the batch.  Remaining URLs are not
                uploaded.
        """
        rewrite_map: dict[str, str] = {}
        failed: list[str] = []
        total = len(urls)

        for index, url in enumerate(urls, start=1):
            token.raise_if_aborted()
            try:
                rehosted = await target.upload_media(url, token)
            except (SyncCancelledError, SyncTimeoutError):
                raise
            except SyncError as exc:
                logger.warning(
                    "Image %d/%d upload to %s failed: %s", index, total, target.name, exc
                )
                failed.append(url)
                continue
            except Exception:
                logger.exception(
                    "Image %d/%d upload to %s raised unexpectedly", index, total, target.name
                )
                failed.append(url)
                continue

            if not rehosted:
                logger.warning(
                    "Image %d/%d upload to %s returned no URL", index, total, target.name
                )
                failed.append(url)
                continue
            rewrite_map[url] = rehosted
            logger.debug("Image %d/%d rehosted: %s -> %s", index, total, url, rehosted)

        # An abort during the last upload must not be mistaken for success.
        token.raise_if_aborted()
        if failed:
            logger.warning(
                "%d of %d images failed to upload to %s", len(failed), total, target.name
            )
        else:
            logger.info("Uploaded %d images to %s", total, target.name)
        return rewrite_map, failed
