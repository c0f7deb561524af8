"""Application bootstrap shared by the CLI and the MCP server.

Loads settings with unified precedence and wires the configured source
and targets into a ``SyncOrchestrator``:

    CLI args > env vars (.env loaded first) > YAML config > defaults
"""

from __future__ import annotations

import logging
from typing import Any

import yaml
from dotenv import load_dotenv

from .adapters import build_source, build_targets
from .config import Config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, to_runtime_config
from .converters.header import ArticleSettings
from .converters.styles import get_profile
from .sync.engine import SyncOrchestrator
from .sync.state import SyncStateStore

logger = logging.getLogger(__name__)


def load_settings(
    cli_overrides: dict[str, Any] | None = None,
) -> tuple[UnifiedConfig, Config]:
    """Resolve the unified YAML config and the runtime ``Config``.

    Args:
        cli_overrides: Values from command-line flags (state_file,
            timeout, primary_target, debug).

    Returns:
        Tuple of (unified config, runtime config).

    Raises:
        ValueError: If a config file or a resolved value is invalid.
        OSError: If a config file or an include cannot be read.
    """
    # .env first so ${VAR} interpolation in YAML sees its values
    load_dotenv()

    config_files = discover_config_files()
    try:
        raw = load_hierarchical_config()
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid config file: {e}") from e
    unified = build_config(raw)
    config = to_runtime_config(unified, cli_overrides)

    if config_files:
        logger.info("Configuration loaded from: %s", config_files[0])
    else:
        logger.info("No config file found, using environment and defaults")
    logger.info(
        "State file: %s, targets: %s",
        config.state_file,
        ", ".join(unified.targets) or "(none)",
    )
    return unified, config


def create_orchestrator(unified: UnifiedConfig, config: Config) -> SyncOrchestrator:
    """Build an orchestrator over the configured source and targets.

    A target's style profile is its ``profile`` setting, or the profile
    named like the target itself.
    """
    profiles = {
        name: get_profile(target.profile or name, target.theme)
        for name, target in unified.targets.items()
    }
    article_settings = {
        name: ArticleSettings(notice=target.notice, author=target.author)
        for name, target in unified.targets.items()
    }
    return SyncOrchestrator(
        SyncStateStore(config.state_file),
        build_source(unified.source),
        build_targets(unified.targets),
        config,
        profiles=profiles,
        article_settings=article_settings,
    )
