"""Sync key construction.

A bare item id denotes the primary target; every other target uses the
``<target>:<item_id>`` form.  Keys are case-sensitive.
"""

from __future__ import annotations

KEY_SEPARATOR = ":"


def sync_key(item_id: str, target: str, primary_target: str) -> str:
    """Return the sync key for *item_id* on *target*.

    Raises:
        ValueError: If *item_id* or *target* is empty, or *target*
            contains the key separator.
    """
    if not item_id:
        raise ValueError("item_id cannot be empty")
    if not target:
        raise ValueError("target cannot be empty")
    if KEY_SEPARATOR in target:
        raise ValueError(f"target name cannot contain '{KEY_SEPARATOR}'")
    if target == primary_target:
        return item_id
    return f"{target}{KEY_SEPARATOR}{item_id}"


def parse_sync_key(key: str, primary_target: str) -> tuple[str, str]:
    """Inverse of ``sync_key``: return ``(item_id, target)``."""
    target, sep, item_id = key.partition(KEY_SEPARATOR)
    if not sep:
        return key, primary_target
    return item_id, target
