from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Callable, Literal, Optional

from core.errors import RenderError
from core.models.document import Document
from core.services.gate import BusyGate
from core.settings import Settings
from .layout import PageLayout, build_layout
from .raster import RenderBackend

log = logging.getLogger(__name__)

ExportFormat = Literal["pdf", "png"]


def export_filename(doc: Document, fmt: ExportFormat = "pdf") -> str:
    return f"{doc.kind}-{doc.document_id or 'draft'}.{fmt}"


class ExportPipeline:
    """
    Preview, download and print for a finalized document.

    Print and download share one busy flag: while one runs, the other is
    refused with OperationInProgressError. Failures are kept in last_error
    for the banner until dismissed; the busy flag is always released.
    """

    def __init__(self, backend: RenderBackend, settings: Optional[Settings] = None):
        self.backend = backend
        self.settings = settings or Settings()
        self.gate = BusyGate("export")
        self.last_error: Optional[str] = None

    @property
    def is_busy(self) -> bool:
        return self.gate.is_processing

    def on_busy_changed(self, callback: Callable[[bool], None]) -> None:
        self.gate.subscribe(callback)

    def dismiss_error(self) -> None:
        self.last_error = None

    def layout(self, doc: Document) -> PageLayout:
        layout = build_layout(doc, self.settings)
        if layout.truncated_rows:
            log.warning(
                "%s %s: %d item rows do not fit the page and are not rendered",
                doc.kind, doc.document_id, layout.truncated_rows,
            )
        return layout

    def preview(self, doc: Document) -> Any:
        return self._run(lambda: self.backend.render(self.layout(doc), self.settings.scales.preview), "preview")

    def export_file(self, doc: Document, directory: Optional[Path] = None, fmt: ExportFormat = "pdf") -> Path:
        target = Path(directory or self.settings.exports_dir) / export_filename(doc, fmt)
        with self.gate.hold():
            def _do() -> Path:
                bitmap = self.backend.render(self.layout(doc), self.settings.scales.export)
                if fmt == "png":
                    return self.backend.write_png(bitmap, target)
                return self.backend.write_pdf(bitmap, target)
            return self._run(_do, "export")

    def print_document(self, doc: Document) -> bool:
        with self.gate.hold():
            return self._run(
                lambda: self.backend.print_bitmap(self.backend.render(self.layout(doc), self.settings.scales.print)),
                "print",
            )

    def _run(self, fn: Callable[[], Any], what: str) -> Any:
        try:
            result = fn()
        except RenderError as e:
            self.last_error = e.message
            log.error("%s failed: %s", what.capitalize(), e.message)
            raise
        except Exception as e:
            self.last_error = f"{what.capitalize()} failed: {e}"
            log.exception(self.last_error)
            raise RenderError(self.last_error) from e
        self.last_error = None
        return result
