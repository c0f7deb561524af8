"""Sync orchestrator: the state machine behind "publish item X to target T".

The ``SyncOrchestrator`` ties together the state store, the cancellation
registry, the media coordinator and the converters.  For one run it:

1. Computes the sync key and supersedes any in-flight run for it.
2. Records ``syncing`` and arms the timeout timer.
3. Runs the pipeline stages in order, checking the token before each:
   fetch metadata, fetch block tree, upload images, transform, publish.
4. Records ``success`` or ``failed`` and disarms the timer.

The timeout and an explicit cancel share one path: both abort the token,
and ``race_abort`` surfaces the abort reason immediately.  A run only
records its own outcome while its token is still the registered one, so
a superseded run never overwrites the state of the run that replaced it.

Error handling is per target: a failure in one target of a multi-target
run does not affect the others, and no failure escapes without a
persisted ``failed`` record.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from crosspost.config import Config, validate_config
from crosspost.converters.header import Article, ArticleSettings, build_article
from crosspost.converters.html import coerce_blocks
from crosspost.converters.styles import StyleProfile, get_profile
from crosspost.core.async_utils import gather_settled, race_abort
from crosspost.core.retry import retry_transient
from crosspost.errors import (
    CANCELLED_MESSAGE,
    FORCED_CANCEL_MESSAGE,
    STUCK_MESSAGE,
    PublishError,
    SyncCancelledError,
    SyncError,
    SyncTimeoutError,
    ValidationError,
)

from .cancellation import CancellationRegistry, CancellationToken
from .keys import sync_key
from .media import ImageUploadCoordinator
from .models import (
    ContentBlock,
    ItemMetadata,
    PublishMode,
    PublishRequest,
    SyncOutcome,
    SyncState,
    SyncStatus,
)
from .policies import DraftPolicy
from .ports import ContentSource, PublishTarget
from .properties import resolve_cover_url
from .state import SyncStateStore

logger = logging.getLogger(__name__)

#: Seconds ``aclose`` waits for abandoned pipelines to reach a checkpoint.
DRAIN_TIMEOUT = 10.0


@dataclass
class _RunReport:
    """Details collected by one pipeline run for the outcome."""

    published_link: str | None = None
    failed_media: list[str] = field(default_factory=list)


class SyncOrchestrator:
    """Run, cancel and query syncs of source items to publishing targets.

    All collaborators are injected so tests can build isolated instances.

    Args:
        store: State store (single writer of sync state).
        source: Content source adapter.
        targets: Target adapters, as a name mapping or an iterable of
            adapters with a ``name`` attribute.
        config: Timing and key settings.
        registry: Cancellation registry; created over *store* if omitted.
        profiles: Style profile overrides per target name.
        article_settings: Notice/author settings per target name.
        draft_policy: Draft substitution policy.
        media: Image upload coordinator.
    """

    def __init__(
        self,
        store: SyncStateStore,
        source: ContentSource,
        targets: Mapping[str, PublishTarget] | Iterable[PublishTarget],
        config: Config | None = None,
        *,
        registry: CancellationRegistry | None = None,
        profiles: Mapping[str, StyleProfile] | None = None,
        article_settings: Mapping[str, ArticleSettings] | None = None,
        draft_policy: DraftPolicy | None = None,
        media: ImageUploadCoordinator | None = None,
    ) -> None:
        self.config = config or Config()
        validate_config(self.config)
        self.store = store
        self.registry = registry or CancellationRegistry(store)
        self.source = source
        if isinstance(targets, Mapping):
            self.targets = dict(targets)
        else:
            self.targets = {target.name: target for target in targets}
        self.profiles = dict(profiles or {})
        self.article_settings = dict(article_settings or {})
        self.draft_policy = draft_policy or DraftPolicy()
        self.media = media or ImageUploadCoordinator()

        self._draining: set[asyncio.Task] = set()
        self._sweeper: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self, sweep_interval: float | None = None, recover: bool = True
    ) -> None:
        """Load persisted state, sweep once and start the sweeper.

        With *recover*, records left in ``syncing`` by a previous process
        are failed as interrupted.  Pass ``False`` when another process
        may own in-flight runs on the same state file.
        """
        if recover:
            self.store.load()
        else:
            self.store.refresh()
        self.sweep()
        self.start_sweeper(sweep_interval)

    async def aclose(self) -> None:
        """Stop the sweeper, cancel in-flight runs and drain abandoned pipelines."""
        self.stop_sweeper()
        for key in self.registry.active_keys():
            self.cancel_sync(key)
        if self._draining:
            _, pending = await asyncio.wait(
                set(self._draining), timeout=DRAIN_TIMEOUT
            )
            for task in pending:
                logger.warning("Pipeline %r did not wind down, cancelling", task)
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> SyncOrchestrator:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Stuck sweep
    # ------------------------------------------------------------------

    def sweep(self) -> list[str]:
        """Fail ``syncing`` records older than the stuck threshold.

        Any token still registered for a swept key is aborted and dropped;
        the store already holds the final record.
        """
        threshold_ms = int(self.config.stuck_threshold_seconds * 1000)
        stuck = self.store.sweep_stuck(threshold_ms)
        for key in stuck:
            if self.registry.get(key) is not None:
                self.registry.cancel(key, SyncError(STUCK_MESSAGE))
        return stuck

    def start_sweeper(self, interval: float | None = None) -> None:
        """Run ``sweep`` every *interval* seconds on the running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        interval = interval or self.config.sweep_interval_seconds
        self._sweeper = asyncio.get_running_loop().create_task(
            self._sweep_loop(interval), name="crosspost-stuck-sweeper"
        )
        logger.debug("Stuck sweeper started (every %gs)", interval)

    def stop_sweeper(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except OSError:
                logger.exception("Stuck sweep failed")

    # ------------------------------------------------------------------
    # Queries and control
    # ------------------------------------------------------------------

    def key_for(self, item_id: str, target: str) -> str:
        return sync_key(item_id, target, self.config.primary_target)

    def get_state(self, key: str) -> SyncState | None:
        """Return the record for *key*; ``None`` means pending."""
        return self.store.get(key)

    def get_all_states(self) -> dict[str, SyncState]:
        return self.store.get_all()

    def cancel_sync(self, key: str) -> bool:
        """Cancel the in-flight run for *key*.

        Records ``failed`` with the cancellation message.  When no token
        exists but the store still shows ``syncing``, the record is forced
        to ``failed`` as well.

        Returns:
            ``True`` if anything was cancelled.
        """
        had_token = self.registry.get(key) is not None
        if not self.registry.cancel(key):
            return False
        message = CANCELLED_MESSAGE if had_token else FORCED_CANCEL_MESSAGE
        self.store.set(key, SyncStatus.FAILED, message)
        return True

    def reset_sync(self, key: str) -> bool:
        """Forget *key*: abort any in-flight run and delete its record.

        Returns:
            ``True`` if a record existed.
        """
        if self.registry.get(key) is not None:
            self.registry.cancel(key)
        return self.store.reset(key)

    def profile_for(self, target: str) -> StyleProfile:
        return self.profiles.get(target) or get_profile(target)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run_sync(
        self,
        item_id: str,
        target: str,
        mode: PublishMode | str = PublishMode.PUBLISH,
    ) -> SyncState:
        """Sync *item_id* to *target* and return the final state."""
        outcome = await self.run_sync_detailed(item_id, target, mode)
        return outcome.state

    async def run_sync_detailed(
        self,
        item_id: str,
        target: str,
        mode: PublishMode | str = PublishMode.PUBLISH,
    ) -> SyncOutcome:
        """Like ``run_sync`` but also report the link and failed media.

        Raises:
            ValueError: On an empty item id, an invalid target name or an
                unknown mode.  Nothing is recorded in that case.
        """
        mode = PublishMode(mode)
        key = self.key_for(item_id, target)

        adapter = self.targets.get(target)
        if adapter is None:
            logger.error("Sync %s: unknown target %r", key, target)
            state = self.store.set(
                key, SyncStatus.FAILED, f"unknown target '{target}'"
            )
            return SyncOutcome(state=state, target=target)

        token = self.registry.begin(key)
        self.store.set(key, SyncStatus.SYNCING)
        logger.info(
            "Sync %s started (%s)", key, mode.value, extra={"sync_key": key}
        )

        timeout = self.config.timeout_seconds
        timer = asyncio.get_running_loop().call_later(
            timeout, self._on_timeout, token, timeout
        )
        report = _RunReport()
        error: str | None = None
        try:
            await race_abort(
                self._pipeline(item_id, adapter, mode, token, report),
                token,
                on_orphan=self._track_orphan,
            )
        except SyncError as exc:
            error = exc.message
        except asyncio.CancelledError:
            token.abort()
            self._settle(key, token, CANCELLED_MESSAGE, None)
            raise
        except Exception as exc:
            logger.exception("Sync %s failed unexpectedly", key)
            error = f"{type(exc).__name__}: {exc}"
        finally:
            timer.cancel()

        state = self._settle(key, token, error, report.published_link)
        if state.status == SyncStatus.SUCCESS:
            await self._mark_published(item_id)
        return SyncOutcome(
            state=state,
            target=target,
            published_link=report.published_link,
            failed_media=report.failed_media,
        )

    async def run_multi_target(
        self,
        item_id: str,
        targets: Sequence[str],
        mode: PublishMode | str = PublishMode.PUBLISH,
    ) -> dict[str, SyncState]:
        """Sync *item_id* to every target concurrently.

        All runs settle independently; one failing never cancels another.

        Returns:
            Mapping of target name to final state.

        Raises:
            ValueError: If any target name or the mode is invalid (checked
                before anything starts).
        """
        mode = PublishMode(mode)
        names = list(dict.fromkeys(targets))
        for name in names:
            self.key_for(item_id, name)

        semaphore = asyncio.Semaphore(self.config.max_parallel_targets)

        async def run_one(name: str) -> SyncState:
            async with semaphore:
                return await self.run_sync(item_id, name, mode)

        results = await gather_settled([run_one(name) for name in names])
        states: dict[str, SyncState] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                raise result
            states[name] = result

        succeeded = sum(1 for s in states.values() if s.status == SyncStatus.SUCCESS)
        logger.info(
            "Multi-target sync of %s: %d/%d succeeded", item_id, succeeded, len(states)
        )
        return states

    async def preview(self, item_id: str, target: str) -> Article:
        """Fetch and render an item for *target* without uploading anything."""
        token = CancellationToken(self.key_for(item_id, target))
        metadata, blocks = await self._fetch_item(item_id, token)
        return build_article(
            metadata,
            blocks,
            {},
            self.profile_for(target),
            self.article_settings.get(target),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _on_timeout(self, token: CancellationToken, seconds: float) -> None:
        if token.abort(SyncTimeoutError(seconds)):
            logger.warning("Sync %s timed out after %gs, aborting", token.key, seconds)

    def _track_orphan(self, task: asyncio.Task) -> None:
        self._draining.add(task)
        task.add_done_callback(self._draining.discard)

    def _settle(
        self,
        key: str,
        token: CancellationToken,
        error: str | None,
        link: str | None,
    ) -> SyncState:
        """Record the outcome of a run if it still owns *key*."""
        if not self.registry.is_current(key, token):
            # Cancelled or superseded: the cancel or the newer run owns the record.
            reason = token.reason.message if token.reason else CANCELLED_MESSAGE
            logger.info("Sync %s no longer current (%s), not recording", key, reason)
            return SyncState(key=key, status=SyncStatus.FAILED, error=error or reason)

        self.registry.end(key, token)
        if error is None:
            logger.info(
                "Sync %s succeeded: %s",
                key,
                link or "(no link)",
                extra={"sync_key": key},
            )
            return self.store.set(key, SyncStatus.SUCCESS, result_url=link or None)
        logger.error("Sync %s failed: %s", key, error, extra={"sync_key": key})
        return self.store.set(key, SyncStatus.FAILED, error)

    async def _fetch_item(
        self, item_id: str, token: CancellationToken
    ) -> tuple[ItemMetadata, list[ContentBlock]]:
        attempts = self.config.fetch_attempts
        delay = self.config.fetch_retry_delay

        token.raise_if_aborted()
        metadata = await retry_transient(
            lambda: self.source.fetch_metadata(item_id),
            attempts=attempts,
            base_delay=delay,
            token=token,
            description=f"metadata of {item_id}",
        )
        if not metadata.title.strip():
            raise ValidationError(f"item {item_id} has an empty title")

        token.raise_if_aborted()
        raw_blocks = await retry_transient(
            lambda: self.source.fetch_block_tree(item_id),
            attempts=attempts,
            base_delay=delay,
            token=token,
            description=f"content of {item_id}",
        )
        blocks = coerce_blocks(raw_blocks)
        if not blocks:
            raise ValidationError(f"item {item_id} has no content")
        logger.debug("Fetched %s: %d blocks", item_id, len(blocks))
        return metadata, blocks

    async def _pipeline(
        self,
        item_id: str,
        target: PublishTarget,
        mode: PublishMode,
        token: CancellationToken,
        report: _RunReport,
    ) -> str | None:
        metadata, blocks = await self._fetch_item(item_id, token)

        token.raise_if_aborted()
        cover = resolve_cover_url(metadata.cover, metadata.properties)
        urls = self.media.collect_urls(blocks)
        rewrite_map, failed = await self.media.upload_all(urls, target, token)
        report.failed_media.extend(failed)
        cover_url = await self._upload_cover(cover, target, token, report, rewrite_map)

        token.raise_if_aborted()
        article = build_article(
            metadata,
            blocks,
            rewrite_map,
            self.profile_for(target.name),
            self.article_settings.get(target.name),
            cover_url=cover_url,
        )

        token.raise_if_aborted()
        decision = self.draft_policy.resolve(
            mode, target.name, getattr(target, "supports_draft", True)
        )
        request = PublishRequest(
            item_id=item_id,
            title=article.title,
            content=article.content,
            mode=decision.mode,
            author=article.author,
            digest=article.digest,
            source_url=article.source_url,
            cover_url=article.cover_url,
            tags=article.tags,
            scheduled_at=decision.scheduled_at,
        )
        try:
            link = await target.publish(request, token)
        except (SyncCancelledError, SyncTimeoutError):
            raise
        except SyncError as exc:
            raise PublishError(
                f"{decision.mode.value} to {target.name} failed: {exc.message}"
            ) from exc
        report.published_link = link or None
        return report.published_link

    async def _upload_cover(
        self,
        cover: str,
        target: PublishTarget,
        token: CancellationToken,
        report: _RunReport,
        rewrite_map: dict[str, str],
    ) -> str:
        """Rehost the cover once; on failure keep the original URL.

        A cover that also appears in the body was handled by the batch and
        is not uploaded again.
        """
        if not cover:
            return ""
        if cover in rewrite_map:
            return rewrite_map[cover]
        if cover in report.failed_media:
            return cover
        token.raise_if_aborted()
        try:
            rehosted = await target.upload_media(cover, token)
        except (SyncCancelledError, SyncTimeoutError):
            raise
        except SyncError as exc:
            logger.warning("Cover upload to %s failed: %s", target.name, exc)
            report.failed_media.append(cover)
            return cover
        return rehosted or cover

    async def _mark_published(self, item_id: str) -> None:
        mark = getattr(self.source, "mark_published", None)
        if mark is None:
            return
        try:
            await mark(item_id)
        except Exception:
            # The publish already happened; the marker is cosmetic.
            logger.exception("Could not mark %s as published", item_id)
