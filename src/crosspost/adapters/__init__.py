"""Reference adapters and their construction from configuration."""

from __future__ import annotations

from pathlib import Path

from crosspost.config_schema import SourceConfig, TargetConfig

from .markdown_source import MarkdownDirectorySource
from .webhook import WebhookTarget

__all__ = [
    "MarkdownDirectorySource",
    "WebhookTarget",
    "build_source",
    "build_targets",
]


def build_source(config: SourceConfig) -> MarkdownDirectorySource:
    published = config.published_directory
    return MarkdownDirectorySource(
        Path(config.directory).expanduser(),
        Path(published).expanduser() if published else None,
    )


def build_targets(targets: dict[str, TargetConfig]) -> dict[str, WebhookTarget]:
    return {
        name: WebhookTarget(
            name,
            publish_url=cfg.publish_url,
            media_url=cfg.media_url,
            api_key=cfg.api_key,
            supports_draft=cfg.supports_draft,
            request_timeout=cfg.request_timeout,
        )
        for name, cfg in targets.items()
    }
