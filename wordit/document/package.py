"""Structural validation of Word packages."""

import io
import zipfile

from wordit.exceptions import StructuralCorruptionError

DOCX_MAGIC = b"PK\x03\x04"

REQUIRED_PARTS = ("[Content_Types].xml", "word/document.xml")


def check_package(data: bytes) -> str | None:
    """Return why ``data`` is not a Word package, or None if it is one."""
    if not data:
        return "empty payload"
    if not data.startswith(DOCX_MAGIC):
        return "missing zip signature"
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            names = set(archive.namelist())
            bad_member = archive.testzip()
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError) as e:
        return f"unreadable zip container: {e}"
    if bad_member is not None:
        return f"corrupt member: {bad_member}"
    missing = [part for part in REQUIRED_PARTS if part not in names]
    if missing:
        return f"missing parts: {', '.join(missing)}"
    return None


def is_valid_package(data: bytes) -> bool:
    return check_package(data) is None


def validate_package(data: bytes, document_id: str = "") -> None:
    """Check magic bytes, zip readability and the required parts.

    Raises:
        StructuralCorruptionError: If any check fails
    """
    reason = check_package(data)
    if reason is not None:
        raise StructuralCorruptionError(document_id, reason)
