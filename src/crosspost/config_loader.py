"""
Hierarchical YAML configuration loading for crosspost.

Config files are discovered by convention, may pull in other files with
``!include``, and may reference environment variables as ``${VAR}`` or
``${VAR:-default}``.  Project-level files win over global ones.

Usage:
    from crosspost.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CROSSPOST_CONFIG"
PROJECT_CONFIG_DIR = ".crosspost"

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Substitute ``${VAR}`` / ``${VAR:-default}`` in *value*.

    An unset or empty variable yields its default, or ``""`` without one.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_tree(obj: Any) -> Any:
    match obj:
        case str():
            return interpolate_env_vars(obj)
        case dict():
            return {key: _interpolate_tree(val) for key, val in obj.items()}
        case list():
            return [_interpolate_tree(item) for item in obj]
        case _:
            return obj


# ---------------------------------------------------------------------------
# YAML loading with !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` with an ``!include`` tag.

    A subclass keeps the global ``yaml.SafeLoader`` untouched.  Each
    loader instance carries the chain of files being loaded so that
    circular includes are reported instead of recursing forever.
    """

    include_chain: list[Path]


def _resolve_include(loader: ConfigLoader, relative: str) -> Path:
    path = Path(relative).expanduser()
    if not path.is_absolute():
        path = Path(loader.name).resolve().parent / path
    return path.resolve()


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    path = _resolve_include(loader, loader.construct_scalar(node))
    chain = loader.include_chain
    if path in chain:
        cycle = " -> ".join(str(p) for p in [*chain, path])
        raise ValueError(f"Circular include detected: {cycle}")
    if not path.exists():
        raise FileNotFoundError(
            f"Include file not found: {path} (referenced from {chain[-1]})"
        )
    return load_yaml_file(path, include_chain=[*chain, path])


ConfigLoader.add_constructor("!include", _include_constructor)


def load_yaml_file(path: Path, include_chain: list[Path] | None = None) -> Any:
    """Parse one YAML file, following ``!include`` directives."""
    path = path.resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_chain = include_chain or [path]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def candidate_config_paths() -> list[Path]:
    """All config locations, highest precedence first (existing or not).

    1. ``$CROSSPOST_CONFIG``
    2. ``.crosspost/config.yml`` then ``.crosspost/config.yaml`` in CWD
    3. ``~/.config/crosspost/config.yml``
    """
    candidates: list[Path] = []
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())
    project = Path.cwd() / PROJECT_CONFIG_DIR
    candidates.append(project / "config.yml")
    candidates.append(project / "config.yaml")
    candidates.append(Path.home() / ".config" / "crosspost" / "config.yml")
    return candidates


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first."""
    return [p for p in candidate_config_paths() if p.exists()]


_STARTER_CONFIG = """\
# crosspost configuration
#
# Values may reference environment variables: ${VAR} or ${VAR:-default}.
# Other files can be pulled in with: key: !include other.yml
#
# sync:
#   state_file: ~/.crosspost/sync-states.json
#   timeout_seconds: 300
#   stuck_threshold_seconds: 360     # never below timeout_seconds
#   sweep_interval_seconds: 60
#   primary_target: wechat
#   max_parallel_targets: 3
#
# source:
#   kind: markdown
#   directory: content
#
# targets:
#   wordpress:
#     publish_url: https://blog.example.com/hooks/publish
#     media_url: https://blog.example.com/hooks/media
#     api_key: ${WORDPRESS_TOKEN}
#     notice: "Reposted from my newsletter."
#   bilibili:
#     publish_url: https://example.com/bilibili/publish
#     supports_draft: false
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists."""
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied from lowest to highest precedence; top-level keys of
    a later file replace those of earlier ones.  Env vars are interpolated
    after merging.  Returns ``{}`` when there is no config file.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = load_yaml_file(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_tree(merged)
