from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Optional

from PySide6.QtCore import QMarginsF, QRect, QRectF, Qt
from PySide6.QtGui import QColor, QFont, QImage, QPageLayout, QPageSize, QPainter, QPdfWriter, QPen
from PySide6.QtPrintSupport import QPrintDialog, QPrinter
from PySide6.QtWidgets import QDialog

from core.errors import RenderError
from .layout import PageLayout
from .raster import ImageLoader, Rasterizer, RenderBackend, Surface

log = logging.getLogger(__name__)

FONT_FAMILY = "Helvetica"

_ALIGN = {
    "left": Qt.AlignmentFlag.AlignLeft,
    "right": Qt.AlignmentFlag.AlignRight,
    "center": Qt.AlignmentFlag.AlignHCenter,
}


class QtImageSurface(Surface):
    """QImage + QPainter. finish() ends the painter and returns the QImage."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.image = QImage(width, height, QImage.Format.Format_ARGB32)
        self.painter = QPainter(self.image)
        self.painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        self.painter.setRenderHint(QPainter.RenderHint.TextAntialiasing, True)
        self.painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, True)

    def fill(self, color: str) -> None:
        self.image.fill(QColor(color))

    def fill_rect(self, x, y, w, h, color) -> None:
        self.painter.fillRect(QRectF(x, y, w, h), QColor(color))

    def draw_line(self, x1, y1, x2, y2, color, width) -> None:
        self.painter.setPen(QPen(QColor(color), width))
        self.painter.drawLine(int(x1), int(y1), int(x2), int(y2))

    def draw_text(self, x, y, w, h, text, *, size, bold, italic, color, align) -> None:
        font = QFont(FONT_FAMILY)
        font.setPixelSize(max(1, round(size)))
        font.setBold(bold)
        font.setItalic(italic)
        self.painter.setFont(font)
        self.painter.setPen(QColor(color))
        rect = QRectF(x, y, w, h)
        # overflowing text is elided rather than spilling into the next block
        elided = self.painter.fontMetrics().elidedText(text, Qt.TextElideMode.ElideRight, int(w))
        self.painter.drawText(rect, _ALIGN[align] | Qt.AlignmentFlag.AlignVCenter, elided)

    def draw_image(self, x, y, w, h, image) -> None:
        self.painter.drawImage(QRectF(x, y, w, h), image)

    def finish(self) -> QImage:
        if self.painter.isActive():
            self.painter.end()
        return self.image


class QtImageLoader(ImageLoader):
    def load(self, path: str) -> QImage:
        img = QImage(str(path))
        if img.isNull():
            raise RenderError(f"Could not decode template image {path}")
        return img


class QtRenderBackend(RenderBackend):
    """
    Rasterize-then-embed: the page is painted into a QImage which is then
    written as a single A4 PDF page, a PNG, or sent to a printer.
    """

    def __init__(self, parent_widget: Any = None, interactive_print: bool = True):
        self.rasterizer = Rasterizer(QtImageLoader())
        self.parent_widget = parent_widget
        self.interactive_print = interactive_print

    def render(self, layout: PageLayout, scale: float) -> QImage:
        return self.rasterizer.render(layout, QtImageSurface, scale)

    def write_pdf(self, bitmap: QImage, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        writer = QPdfWriter(str(path))
        writer.setPageSize(QPageSize(QPageSize.PageSizeId.A4))
        writer.setPageMargins(QMarginsF(0, 0, 0, 0), QPageLayout.Unit.Millimeter)
        writer.setResolution(max(96, round(96 * bitmap.width() / 794)))
        painter = QPainter()
        if not painter.begin(writer):
            raise RenderError(f"Could not open {path} for writing")
        try:
            target = QRect(0, 0, writer.width(), writer.height())
            painter.drawImage(target, bitmap)
        finally:
            painter.end()
        log.info("PDF written to %s", path)
        return path

    def write_png(self, bitmap: QImage, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if not bitmap.save(str(path), "PNG"):
            raise RenderError(f"Could not write {path}")
        log.info("PNG written to %s", path)
        return path

    def print_bitmap(self, bitmap: QImage, printer: Optional[QPrinter] = None) -> bool:
        # the printer is a second surface; it is closed as soon as the page is painted
        printer = printer or QPrinter(QPrinter.PrinterMode.HighResolution)
        printer.setPageSize(QPageSize(QPageSize.PageSizeId.A4))
        printer.setFullPage(True)
        if self.interactive_print:
            dlg = QPrintDialog(printer, self.parent_widget)
            if dlg.exec() != QDialog.Accepted:
                log.info("Print cancelled")
                return False
        painter = QPainter()
        if not painter.begin(printer):
            raise RenderError("Could not start the print job")
        try:
            rect = painter.viewport()
            size = bitmap.size().scaled(rect.size(), Qt.AspectRatioMode.KeepAspectRatio)
            painter.setViewport(rect.x(), rect.y(), size.width(), size.height())
            painter.setWindow(bitmap.rect())
            painter.drawImage(0, 0, bitmap)
        finally:
            painter.end()
        return True
