"""Runtime configuration for the sync engine.

Reads engine settings from CLI args, environment variables, .env files,
and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CROSSPOST_STATE_FILE: Path of the sync state JSON document
        (default: ~/.crosspost/sync-states.json)
    CROSSPOST_TIMEOUT: Per-run timeout in seconds (default: 300)
    CROSSPOST_STUCK_THRESHOLD: Age in seconds after which a ``syncing``
        record is swept (default: 360, never below the timeout)
    CROSSPOST_SWEEP_INTERVAL: Seconds between stuck sweeps (default: 60)
    CROSSPOST_PRIMARY_TARGET: Target whose keys are the bare item id
        (default: wechat)
    CROSSPOST_MAX_PARALLEL_TARGETS: Concurrent targets in a multi-target
        run (default: 3)
    CROSSPOST_DEBUG: Enable debug logging (default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "sync-states.json"


def default_state_file() -> Path:
    return Path.home() / ".crosspost" / STATE_FILE_NAME


@dataclass
class Config:
    state_file: Path = field(default_factory=default_state_file)
    timeout_seconds: float = 300.0
    stuck_threshold_seconds: float = 360.0
    sweep_interval_seconds: float = 60.0
    primary_target: str = "wechat"
    max_parallel_targets: int = 3
    fetch_attempts: int = 3
    fetch_retry_delay: float = 1.0
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a value is out of range, or the stuck threshold is
            shorter than the timeout (a live run could then be swept).
    """
    if config.timeout_seconds <= 0:
        raise ValueError(
            f"Invalid timeout {config.timeout_seconds:g}s: must be positive"
        )

    if config.stuck_threshold_seconds < config.timeout_seconds:
        raise ValueError(
            f"Stuck threshold {config.stuck_threshold_seconds:g}s is shorter than "
            f"the timeout {config.timeout_seconds:g}s; live syncs would be swept"
        )

    if config.sweep_interval_seconds <= 0:
        raise ValueError(
            f"Invalid sweep interval {config.sweep_interval_seconds:g}s: must be positive"
        )

    if not config.primary_target.strip() or ":" in config.primary_target:
        raise ValueError(
            f"Invalid primary target '{config.primary_target}': "
            "must be non-empty and must not contain ':'"
        )

    if not (1 <= config.max_parallel_targets <= 20):
        raise ValueError(
            f"Invalid max_parallel_targets {config.max_parallel_targets}: "
            "must be a number between 1 and 20"
        )

    if not (1 <= config.fetch_attempts <= 10):
        raise ValueError(
            f"Invalid fetch_attempts {config.fetch_attempts}: "
            "must be a number between 1 and 10"
        )

    if config.fetch_retry_delay < 0:
        raise ValueError("fetch_retry_delay cannot be negative")


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _resolve_number(
    cli_value: float | None,
    env_name: str,
    fb: dict[str, Any],
    fb_key: str,
    default: float,
    cast: Callable[[str], Any],
) -> Any:
    """Resolve a numeric field: CLI > env > YAML > default."""
    if cli_value is not None:
        return cli_value
    raw = os.getenv(env_name)
    if raw is not None:
        try:
            return cast(raw)
        except ValueError:
            raise ValueError(
                f"Invalid {env_name} '{raw}': must be a number"
            ) from None
    if fb.get(fb_key) is not None:
        return cast(fb[fb_key])
    return default


def load_config(
    state_file: str | Path | None = None,
    timeout: float | None = None,
    primary_target: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        state_file: Override state document path.
        timeout: Override per-run timeout in seconds.
        primary_target: Override primary target name.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``sync`` section.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If any resolved value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- Path and string fields: CLI > env > YAML > default ---

    raw_state_file = (
        state_file or os.getenv("CROSSPOST_STATE_FILE") or fb.get("state_file")
    )
    final_state_file = (
        Path(raw_state_file).expanduser() if raw_state_file else default_state_file()
    )

    final_primary = (
        primary_target
        or os.getenv("CROSSPOST_PRIMARY_TARGET")
        or fb.get("primary_target")
        or "wechat"
    ).strip()

    # --- Boolean fields: CLI > env > YAML > default ---

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("CROSSPOST_DEBUG")
        final_debug = (
            env_debug if env_debug is not None else bool(fb.get("debug", False))
        )

    # --- Numeric fields ---

    final_timeout = _resolve_number(
        timeout, "CROSSPOST_TIMEOUT", fb, "timeout_seconds", 300.0, float
    )
    final_stuck = _resolve_number(
        None,
        "CROSSPOST_STUCK_THRESHOLD",
        fb,
        "stuck_threshold_seconds",
        max(360.0, final_timeout * 1.2),
        float,
    )
    final_sweep = _resolve_number(
        None, "CROSSPOST_SWEEP_INTERVAL", fb, "sweep_interval_seconds", 60.0, float
    )
    final_parallel = _resolve_number(
        None, "CROSSPOST_MAX_PARALLEL_TARGETS", fb, "max_parallel_targets", 3, int
    )

    config = Config(
        state_file=final_state_file,
        timeout_seconds=final_timeout,
        stuck_threshold_seconds=final_stuck,
        sweep_interval_seconds=final_sweep,
        primary_target=final_primary,
        max_parallel_targets=final_parallel,
        fetch_attempts=int(fb.get("fetch_attempts", 3)),
        fetch_retry_delay=float(fb.get("fetch_retry_delay", 1.0)),
        debug=final_debug,
    )

    validate_config(config)

    return config
