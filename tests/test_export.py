"""
Unit tests for the export pipeline (preview, download, print).
"""

import pytest

from core.errors import OperationInProgressError, RenderError
from core.models.document import Invoice, Quotation
from core.rendering.export import ExportPipeline, export_filename
from core.rendering.raster import RenderBackend


class FakeRenderBackend(RenderBackend):
    """Returns marker bitmaps and writes small files."""

    def __init__(self):
        self.scales = []
        self.printed = []
        self.fail_with = None
        self.on_render = None

    def render(self, layout, scale):
        self.scales.append(scale)
        if self.on_render:
            self.on_render()
        if self.fail_with:
            raise self.fail_with
        return {"layout": layout, "scale": scale}

    def write_pdf(self, bitmap, path):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"%PDF-1.4")
        return path

    def write_png(self, bitmap, path):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x89PNG")
        return path

    def print_bitmap(self, bitmap):
        self.printed.append(bitmap)
        return True


@pytest.fixture
def render_backend():
    return FakeRenderBackend()


@pytest.fixture
def pipeline(render_backend, settings):
    return ExportPipeline(render_backend, settings)


@pytest.fixture
def doc():
    return Invoice(document_id="INV-2026-0001")


class TestFilenames:
    """Tests for download file names."""

    def test_saved_invoice(self, doc):
        assert export_filename(doc) == "invoice-INV-2026-0001.pdf"

    def test_quotation_png(self):
        assert export_filename(Quotation(document_id="QUO-2026-0002"), "png") == "quotation-QUO-2026-0002.png"

    def test_unsaved_is_draft(self):
        assert export_filename(Invoice()) == "invoice-draft.pdf"


class TestOutputs:
    """Tests for each output path and its scale."""

    def test_preview_scale(self, pipeline, render_backend, doc):
        pipeline.preview(doc)
        assert render_backend.scales == [0.85]

    def test_pdf_export(self, pipeline, render_backend, doc, settings):
        path = pipeline.export_file(doc)
        assert path == settings.exports_dir / "invoice-INV-2026-0001.pdf"
        assert path.read_bytes().startswith(b"%PDF")
        assert render_backend.scales == [2.0]

    def test_png_export_to_directory(self, pipeline, doc, tmp_path):
        path = pipeline.export_file(doc, directory=tmp_path / "out", fmt="png")
        assert path.name == "invoice-INV-2026-0001.png"
        assert path.exists()

    def test_print(self, pipeline, render_backend, doc):
        assert pipeline.print_document(doc) is True
        assert render_backend.printed[0]["scale"] == 2.0


class TestBusyAndErrors:
    """Tests for the shared busy flag and error banner state."""

    def test_print_refused_during_export(self, pipeline, render_backend, doc):
        refused = []

        def reenter():
            with pytest.raises(OperationInProgressError):
                pipeline.print_document(doc)
            refused.append(True)

        render_backend.on_render = reenter
        pipeline.export_file(doc)

        assert refused == [True]
        assert render_backend.printed == []

    def test_busy_listener(self, pipeline, doc):
        seen = []
        pipeline.on_busy_changed(seen.append)
        pipeline.export_file(doc)
        assert seen == [True, False]
        assert pipeline.is_busy is False

    def test_render_error_recorded_and_flag_released(self, pipeline, render_backend, doc):
        render_backend.fail_with = RenderError("Template image not found: bg.png")

        with pytest.raises(RenderError):
            pipeline.print_document(doc)

        assert pipeline.last_error == "Template image not found: bg.png"
        assert pipeline.is_busy is False

        pipeline.dismiss_error()
        assert pipeline.last_error is None

    def test_os_error_wrapped(self, pipeline, render_backend, doc):
        render_backend.fail_with = PermissionError("read-only")
        with pytest.raises(RenderError):
            pipeline.export_file(doc)
        assert pipeline.last_error.startswith("Export failed")

    def test_unexpected_error_recorded_as_render_error(self, pipeline, render_backend, doc):
        render_backend.fail_with = RuntimeError("painter not active")
        with pytest.raises(RenderError) as exc:
            pipeline.export_file(doc)
        assert isinstance(exc.value.__cause__, RuntimeError)
        assert pipeline.last_error == "Export failed: painter not active"
        assert pipeline.is_busy is False

    def test_success_clears_previous_error(self, pipeline, render_backend, doc):
        render_backend.fail_with = RenderError("boom")
        with pytest.raises(RenderError):
            pipeline.preview(doc)
        render_backend.fail_with = None
        pipeline.preview(doc)
        assert pipeline.last_error is None
