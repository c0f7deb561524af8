"""Shared pytest fixtures and fakes for crosspost tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from crosspost.config import Config
from crosspost.errors import MediaUploadError, NotFoundError
from crosspost.sync.engine import SyncOrchestrator
from crosspost.sync.models import ContentBlock, ItemMetadata, PublishRequest, RichTextRun
from crosspost.sync.state import SyncStateStore

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeSource:
    """In-memory ContentSource.

    ``block_gate`` makes ``fetch_block_tree`` wait, so tests can act while
    a run is in flight.  ``metadata_errors`` are raised one per call before
    metadata is returned.
    """

    def __init__(self, items: dict | None = None):
        self.items: dict[str, tuple[ItemMetadata, list[ContentBlock]]] = dict(items or {})
        self.metadata_errors: list[Exception] = []
        self.block_gate: asyncio.Event | None = None
        self.metadata_calls = 0
        self.published: list[str] = []

    async def fetch_metadata(self, item_id: str) -> ItemMetadata:
        self.metadata_calls += 1
        if self.metadata_errors:
            raise self.metadata_errors.pop(0)
        if item_id not in self.items:
            raise NotFoundError(f"item {item_id} not found")
        return self.items[item_id][0]

    async def fetch_block_tree(self, item_id: str) -> list[ContentBlock]:
        if self.block_gate is not None:
            await self.block_gate.wait()
        return list(self.items[item_id][1])

    async def mark_published(self, item_id: str) -> None:
        self.published.append(item_id)


class FakeTarget:
    """In-memory PublishTarget recording uploads and publish requests."""

    def __init__(self, name: str, supports_draft: bool = True):
        self.name = name
        self.supports_draft = supports_draft
        self.link = f"https://{name}.example.com/posts/1"
        self.upload_failures: set[str] = set()
        self.publish_error: Exception | None = None
        self.uploads: list[str] = []
        self.requests: list[PublishRequest] = []

    @staticmethod
    def rehosted(url: str) -> str:
        return "https://cdn.example.com/" + url.rsplit("/", 1)[-1]

    async def upload_media(self, url: str, token) -> str:
        self.uploads.append(url)
        if url in self.upload_failures:
            raise MediaUploadError(f"upload of {url} failed")
        return self.rehosted(url)

    async def publish(self, request: PublishRequest, token) -> str:
        token.raise_if_aborted()
        if self.publish_error is not None:
            raise self.publish_error
        self.requests.append(request)
        return self.link


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_item(
    item_id: str = "A1",
    title: str = "Intro to engines",
    blocks: list[ContentBlock] | None = None,
    properties: dict | None = None,
    cover: dict | None = None,
) -> tuple[ItemMetadata, list[ContentBlock]]:
    """Metadata and blocks; the default blocks are heading, paragraph, image."""
    if blocks is None:
        blocks = [
            ContentBlock(id="b1", type="heading_1", rich_text=[RichTextRun(text="Intro")]),
            ContentBlock(
                id="b2",
                type="paragraph",
                rich_text=[
                    RichTextRun(text="hello "),
                    RichTextRun(text="world", bold=True),
                ],
            ),
            ContentBlock(id="b3", type="image", media_url="http://x/1.png"),
        ]
    metadata = ItemMetadata(
        item_id=item_id,
        title=title,
        properties=properties or {},
        cover=cover,
    )
    return metadata, blocks


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until *predicate()* is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def state_file(tmp_path: Path) -> Path:
    return tmp_path / "state" / "sync-states.json"


@pytest.fixture
def fast_config(state_file: Path) -> Config:
    """Config with short timers and no retry delay."""
    return Config(
        state_file=state_file,
        timeout_seconds=5.0,
        stuck_threshold_seconds=6.0,
        sweep_interval_seconds=60.0,
        primary_target="wechat",
        max_parallel_targets=3,
        fetch_attempts=3,
        fetch_retry_delay=0.0,
    )


@pytest.fixture
def store(state_file: Path) -> SyncStateStore:
    return SyncStateStore(state_file)


@pytest.fixture
def source() -> FakeSource:
    return FakeSource({"A1": make_item()})


@pytest.fixture
def wechat() -> FakeTarget:
    return FakeTarget("wechat")


@pytest.fixture
def blog() -> FakeTarget:
    return FakeTarget("blog")


@pytest.fixture
def orchestrator(store, source, wechat, blog, fast_config) -> SyncOrchestrator:
    return SyncOrchestrator(store, source, [wechat, blog], fast_config)


CROSSPOST_ENV_VARS = (
    "CROSSPOST_CONFIG",
    "CROSSPOST_STATE_FILE",
    "CROSSPOST_TIMEOUT",
    "CROSSPOST_STUCK_THRESHOLD",
    "CROSSPOST_SWEEP_INTERVAL",
    "CROSSPOST_PRIMARY_TARGET",
    "CROSSPOST_MAX_PARALLEL_TARGETS",
    "CROSSPOST_DEBUG",
)


@pytest.fixture
def isolated_env(tmp_path: Path, monkeypatch) -> Path:
    """Empty working dir and fake HOME with no crosspost env vars set."""
    for name in CROSSPOST_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir
