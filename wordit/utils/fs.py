"""File system utilities for WordIt.

Provides safe file names, hashing, and atomic writes.
"""

import hashlib
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any

from wordit.utils.logging import get_logger

log = get_logger(__name__)


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(filename: str, max_length: int = 200) -> str:
    """Create a safe filename by replacing problematic characters.

    Args:
        filename: Original filename (e.g. a document id)
        max_length: Maximum filename length

    Returns:
        Safe filename
    """
    replacements = {
        "/": "_",
        "\\": "_",
        ":": "_",
        "*": "_",
        "?": "_",
        '"': "_",
        "<": "_",
        ">": "_",
        "|": "_",
        "\0": "",
    }

    result = filename
    for old, new in replacements.items():
        result = result.replace(old, new)

    result = "".join(c for c in result if ord(c) >= 32)
    result = result.strip(". ")

    if len(result) > max_length:
        stem = Path(result).stem
        suffix = Path(result).suffix
        result = stem[: max_length - len(suffix)] + suffix

    return result


def compute_content_hash(content: str | bytes, algorithm: str = "sha256") -> str:
    """Compute the hex digest of text or bytes."""
    data = content.encode("utf-8") if isinstance(content, str) else content
    return hashlib.new(algorithm, data).hexdigest()


@contextmanager
def atomic_write(
    file_path: Path,
    mode: str = "w",
    encoding: str | None = "utf-8",
) -> Iterator[IO[Any]]:
    """Context manager for atomic file writes.

    Writes to a temp file in the target directory, then renames over the target.

    Args:
        file_path: Target file path
        mode: File mode ('w' or 'wb')
        encoding: File encoding (ignored for binary mode)

    Yields:
        File handle
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_name = tempfile.mkstemp(
        dir=file_path.parent,
        prefix=f".{file_path.name}.",
        suffix=".tmp",
    )
    temp_path = Path(temp_name)

    try:
        os.close(temp_fd)

        if "b" in mode:
            with open(temp_path, mode) as f:
                yield f
        else:
            with open(temp_path, mode, encoding=encoding) as f:
                yield f

        temp_path.replace(file_path)

    except BaseException:
        if temp_path.exists():
            temp_path.unlink()
        raise


def format_size(size: int | float) -> str:
    """Format byte size as human-readable string (two decimals)."""
    size_f = float(size)
    for unit in ["B", "KB", "MB", "GB"]:
        if size_f < 1024:
            return f"{size_f:.2f} {unit}"
        size_f /= 1024
    return f"{size_f:.2f} TB"
