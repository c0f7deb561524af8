"""Unified configuration schema for crosspost.

Defines Pydantic models for the YAML config structure with sections for
the sync engine, the content source, the publishing targets and logging.

Usage:
    from crosspost.config_schema import UnifiedConfig, build_config, to_runtime_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_runtime_config(unified, cli_overrides={"timeout": 120})
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from .config import Config, load_config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SyncConfig(BaseModel):
    """Engine timing and key settings.

    All fields are optional so env vars and CLI args can supply them.
    """

    state_file: str | None = Field(
        default=None, description="Path of the sync state JSON document"
    )
    timeout_seconds: float | None = Field(
        default=None, gt=0, description="Per-run timeout in seconds"
    )
    stuck_threshold_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Age after which a syncing record is swept (>= timeout)",
    )
    sweep_interval_seconds: float | None = Field(
        default=None, gt=0, description="Seconds between stuck sweeps"
    )
    primary_target: str | None = Field(
        default=None, description="Target whose sync key is the bare item id"
    )
    max_parallel_targets: int | None = Field(
        default=None,
        ge=1,
        le=20,
        description="Concurrent targets in a multi-target run (1-20)",
    )
    fetch_attempts: int = Field(
        default=3, ge=1, le=10, description="Attempts for transient fetch failures"
    )
    fetch_retry_delay: float = Field(
        default=1.0, ge=0, description="Backoff increment between fetch attempts"
    )

    model_config = {"frozen": True}


class SourceConfig(BaseModel):
    """Where items are read from."""

    kind: Literal["markdown"] = Field(
        default="markdown", description="Content source adapter"
    )
    directory: str = Field(
        default="content", description="Directory holding <item_id>.md files"
    )
    published_directory: str | None = Field(
        default=None,
        description="Directory where published markers are written",
    )

    model_config = {"frozen": True}


class TargetConfig(BaseModel):
    """One publishing target.

    Attributes:
        kind: Adapter type.
        media_url: Endpoint receiving media uploads.
        publish_url: Endpoint receiving articles.
        api_key: Bearer token sent with every request.
        supports_draft: ``False`` for platforms without drafts.
        profile: Built-in style profile name (defaults to the target name).
        theme: Color theme override.
        notice: Notice banner text placed above the article.
        author: Author override.
        request_timeout: HTTP timeout in seconds.
    """

    kind: Literal["webhook"] = "webhook"
    media_url: str | None = None
    publish_url: str
    api_key: str | None = None
    supports_draft: bool = True
    profile: str | None = None
    theme: str | None = None
    notice: str = ""
    author: str = ""
    request_timeout: float = Field(default=30.0, gt=0)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    valid; it simply has no targets.
    """

    sync: SyncConfig = Field(default_factory=SyncConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    targets: dict[str, TargetConfig] = Field(default_factory=dict)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_target_names(self) -> UnifiedConfig:
        for name in self.targets:
            if not name or ":" in name:
                raise ValueError(
                    f"Invalid target name '{name}': must be non-empty without ':'"
                )
        return self


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> runtime Config dataclass
# ---------------------------------------------------------------------------


def to_runtime_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Resolve the runtime ``Config`` from the YAML ``sync`` section plus
    CLI overrides, with environment variables in between.

    CLI overrides dict keys: state_file, timeout, primary_target, debug.

    Raises:
        ValueError: If the resolved values are invalid.
    """
    overrides = cli_overrides or {}
    fallbacks = {
        k: v for k, v in unified.sync.model_dump().items() if v is not None
    }

    return load_config(
        state_file=overrides.get("state_file"),
        timeout=overrides.get("timeout"),
        primary_target=overrides.get("primary_target"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=fallbacks,
    )
