"""File handling for the local adapters: item paths and encoding-aware I/O."""

import re
from pathlib import Path

from charset_normalizer import from_bytes

_ITEM_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

# =============================================================================
# Path Validation
# =============================================================================


def item_path(directory: Path, item_id: str, suffix: str = ".md") -> Path:
    """Path of *item_id* inside *directory*.

    Item ids are plain file stems, so an id can never escape *directory*.

    Raises:
        ValueError: If *item_id* contains path separators or other
            characters outside ``[A-Za-z0-9._-]``.
    """
    if not _ITEM_ID.match(item_id) or ".." in item_id:
        raise ValueError(f"Invalid item id: {item_id!r}")
    return directory / f"{item_id}{suffix}"


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a text file, detecting its encoding with charset-normalizer.

    Empty files and undetectable content fall back to UTF-8.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    best = from_bytes(raw).best()
    if best is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")

    # ascii is a strict subset of utf-8
    encoding = "utf-8" if best.encoding == "ascii" else best.encoding
    return (str(best), encoding)


def write_file(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Write *content*, creating parent directories; return bytes written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode(encoding)
    path.write_bytes(data)
    return len(data)
