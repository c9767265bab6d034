"""Word document assembly and package validation."""

from wordit.document.assembler import AssemblyReport, DocumentAssembler, image_extent
from wordit.document.package import DOCX_MAGIC, check_package, is_valid_package, validate_package

__all__ = [
    "DocumentAssembler",
    "AssemblyReport",
    "image_extent",
    "DOCX_MAGIC",
    "check_package",
    "is_valid_package",
    "validate_package",
]
