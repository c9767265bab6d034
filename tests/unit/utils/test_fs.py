"""Tests for filesystem utilities module."""

import pytest

from wordit.utils.fs import (
    atomic_write,
    compute_content_hash,
    ensure_directory,
    format_size,
    safe_filename,
)


class TestEnsureDirectory:
    """Tests for ensure_directory function."""

    def test_creates_nested_directories(self, tmp_path):
        """Test creating nested directories."""
        nested_dir = tmp_path / "level1" / "level2"
        assert ensure_directory(nested_dir) == nested_dir
        assert nested_dir.is_dir()

    def test_existing_directory(self, tmp_path):
        """Test with existing directory."""
        assert ensure_directory(tmp_path) == tmp_path


class TestSafeFilename:
    """Tests for safe_filename function."""

    def test_removes_path_separators(self):
        """Test removing path separators."""
        assert safe_filename("file/name") == "file_name"
        assert safe_filename("file\\name") == "file_name"

    def test_removes_reserved_characters(self):
        assert safe_filename('a:b*c?d"e<f>g|h') == "a_b_c_d_e_f_g_h"

    def test_strips_control_characters_and_dots(self):
        assert safe_filename("..\x01name\x00.") == "name"

    def test_document_ids_pass_through(self):
        assert safe_filename("doc-42") == "doc-42"

    def test_truncates_long_names(self):
        result = safe_filename("a" * 300 + ".docx", max_length=50)
        assert len(result) == 50
        assert result.endswith(".docx")


class TestComputeContentHash:
    """Tests for compute_content_hash function."""

    def test_text_and_bytes_agree(self):
        assert compute_content_hash("héllo") == compute_content_hash("héllo".encode())

    def test_sha256_by_default(self):
        assert len(compute_content_hash("x")) == 64
        assert compute_content_hash("x", algorithm="md5") != compute_content_hash("x")

    def test_different_content(self):
        assert compute_content_hash("<p>a</p>") != compute_content_hash("<p>b</p>")


class TestAtomicWrite:
    """Tests for atomic_write context manager."""

    def test_atomic_write_text(self, tmp_path):
        """Test atomic write for text files."""
        file_path = tmp_path / "meta.json"

        with atomic_write(file_path) as f:
            f.write("{}")

        assert file_path.read_text() == "{}"

    def test_atomic_write_binary_replaces(self, tmp_path):
        """Test atomic write replacing an existing binary file."""
        file_path = tmp_path / "doc.docx"
        file_path.write_bytes(b"old")

        with atomic_write(file_path, mode="wb") as f:
            f.write(b"new")

        assert file_path.read_bytes() == b"new"
        assert [p.name for p in tmp_path.iterdir()] == ["doc.docx"]

    def test_atomic_write_creates_parent_dirs(self, tmp_path):
        """Test that atomic write creates parent directories."""
        file_path = tmp_path / "new_dir" / "test.txt"

        with atomic_write(file_path) as f:
            f.write("content")

        assert file_path.exists()

    def test_error_keeps_previous_content(self, tmp_path):
        """Test that a failed write leaves the target and no temp file."""
        file_path = tmp_path / "doc.docx"
        file_path.write_bytes(b"old")

        with pytest.raises(ValueError), atomic_write(file_path, mode="wb") as f:
            f.write(b"partial")
            raise ValueError("test error")

        assert file_path.read_bytes() == b"old"
        assert [p.name for p in tmp_path.iterdir()] == ["doc.docx"]


class TestFormatSize:
    """Tests for format_size function."""

    @pytest.mark.parametrize(
        "size,expected",
        [
            (500, "500.00 B"),
            (2048, "2.00 KB"),
            (1024 * 1024 * 2, "2.00 MB"),
            (1024**3 * 3, "3.00 GB"),
            (1024**4 * 5, "5.00 TB"),
        ],
    )
    def test_units(self, size, expected):
        assert format_size(size) == expected
