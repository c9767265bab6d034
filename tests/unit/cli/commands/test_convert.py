"""Tests for convert command."""

import base64
import io
from unittest.mock import AsyncMock

import pytest
from docx import Document
from typer.testing import CliRunner

from wordit.cli.main import app
from wordit.core.supervisor import GenerationSupervisor
from wordit.exceptions import GenerationTimeoutError, WriteFailureError
from wordit.storage.store import FileArtifactStore


def cached(workdir, document_id):
    return FileArtifactStore(workdir / "cache").path_for(document_id)


class TestConvertCommand:
    """Tests for the convert CLI command."""

    @pytest.fixture
    def runner(self):
        """Create CLI test runner."""
        return CliRunner()

    @pytest.fixture
    def workdir(self, tmp_path, monkeypatch):
        """Run in an isolated directory so logs and wordit.yaml stay local."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("WORDIT_GENERATION_TIMEOUT", raising=False)
        return tmp_path

    @pytest.fixture
    def page(self, workdir, png_bytes):
        """HTML page with an inline image."""
        uri = "data:image/png;base64," + base64.b64encode(png_bytes).decode()
        page = workdir / "page.html"
        page.write_text(f'<h1>Report</h1><p>Hello <b>world</b></p><img src="{uri}">', encoding="utf-8")
        return page

    def invoke(self, runner, workdir, *args):
        return runner.invoke(app, ["convert", *map(str, args), "--cache-dir", str(workdir / "cache")])

    def test_convert(self, runner, workdir, page):
        result = self.invoke(runner, workdir, page)

        assert result.exit_code == 0, result.output
        assert "Conversion completed!" in result.output

        output = workdir / "page.docx"
        doc = Document(io.BytesIO(output.read_bytes()))
        assert doc.core_properties.title == "page"
        assert [p.text for p in doc.paragraphs][:2] == ["Report", "Hello world"]
        assert len(doc.inline_shapes) == 1
        assert cached(workdir, "page").read_bytes() == output.read_bytes()

    def test_options(self, runner, workdir, page):
        out_dir = workdir / "out"

        result = self.invoke(runner, workdir, page, "--doc-id", "doc-7", "--title", "Quarterly", "-o", out_dir)

        assert result.exit_code == 0, result.output
        doc = Document(io.BytesIO((out_dir / "doc-7.docx").read_bytes()))
        assert doc.core_properties.title == "Quarterly"
        assert cached(workdir, "doc-7").exists()

    def test_cached_artifact_is_reused(self, runner, workdir, page, monkeypatch):
        assert self.invoke(runner, workdir, page).exit_code == 0

        render = AsyncMock()
        monkeypatch.setattr(GenerationSupervisor, "render", render)
        result = self.invoke(runner, workdir, page)

        assert result.exit_code == 0, result.output
        render.assert_not_awaited()

    def test_force_regenerates(self, runner, workdir, page, monkeypatch):
        assert self.invoke(runner, workdir, page).exit_code == 0
        original = (workdir / "page.docx").read_bytes()

        render = AsyncMock(return_value=original)
        monkeypatch.setattr(GenerationSupervisor, "render", render)
        result = self.invoke(runner, workdir, page, "--force")

        assert result.exit_code == 0, result.output
        render.assert_awaited_once()

    def test_empty_page_gets_placeholder(self, runner, workdir):
        page = workdir / "blank.html"
        page.write_text("<script>nothing()</script>", encoding="utf-8")

        result = self.invoke(runner, workdir, page, "--title", "Blank")

        assert result.exit_code == 0, result.output
        paragraphs = Document(io.BytesIO((workdir / "blank.docx").read_bytes())).paragraphs
        assert [p.text for p in paragraphs] == ["Blank"]

    def test_timeout_exit_code(self, runner, workdir, page, monkeypatch):
        monkeypatch.setattr(
            GenerationSupervisor, "render", AsyncMock(side_effect=GenerationTimeoutError("page", 0.5))
        )

        result = self.invoke(runner, workdir, page, "--timeout", "0.5")

        assert result.exit_code == 2
        assert "Timed out" in result.output
        assert not (workdir / "page.docx").exists()
        assert not cached(workdir, "page").exists()

    def test_write_failure_exit_code(self, runner, workdir, page, monkeypatch):
        monkeypatch.setattr(
            "wordit.storage.store.FileArtifactStore.write_atomic",
            AsyncMock(side_effect=WriteFailureError("page", "disk full")),
        )

        result = self.invoke(runner, workdir, page)

        assert result.exit_code == 1
        assert "Conversion failed" in result.output

    def test_invalid_configuration(self, runner, workdir, page, monkeypatch):
        monkeypatch.setenv("WORDIT_GENERATION_TIMEOUT", "-1")

        result = self.invoke(runner, workdir, page)

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_missing_input(self, runner, workdir):
        result = self.invoke(runner, workdir, workdir / "missing.html")
        assert result.exit_code != 0

    def test_writes_task_log(self, runner, workdir, page):
        assert self.invoke(runner, workdir, page).exit_code == 0
        assert list((workdir / ".logs").glob("convert_*.log"))
