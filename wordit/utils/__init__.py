"""Utility module for WordIt."""

from wordit.utils.fs import (
    atomic_write,
    compute_content_hash,
    ensure_directory,
    format_size,
    safe_filename,
)

__all__ = [
    "ensure_directory",
    "safe_filename",
    "compute_content_hash",
    "atomic_write",
    "format_size",
]
