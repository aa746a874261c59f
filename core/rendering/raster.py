from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from core.errors import RenderError
from .layout import ImageBlock, LineBlock, PageLayout, RectBlock, TextBlock

log = logging.getLogger(__name__)

CSS_DPI = 96.0
MM_PER_INCH = 25.4


def mm_to_px(mm: float, scale: float = 1.0) -> float:
    return mm * CSS_DPI / MM_PER_INCH * scale


def page_pixel_size(scale: float = 1.0, width_mm: float = 210.0, height_mm: float = 297.0) -> Tuple[int, int]:
    """A4 at 96 dpi is 794 x 1123 px at scale 1."""
    return round(mm_to_px(width_mm, scale)), round(mm_to_px(height_mm, scale))


# ---------- Abstractions ---------- #

class Surface(ABC):
    """Pixel canvas the rasterizer paints on. Coordinates are device pixels."""

    width: int
    height: int

    @abstractmethod
    def fill(self, color: str) -> None: ...

    @abstractmethod
    def fill_rect(self, x: float, y: float, w: float, h: float, color: str) -> None: ...

    @abstractmethod
    def draw_line(self, x1: float, y1: float, x2: float, y2: float, color: str, width: float) -> None: ...

    @abstractmethod
    def draw_text(self, x: float, y: float, w: float, h: float, text: str, *, size: float,
                  bold: bool, italic: bool, color: str, align: str) -> None: ...

    @abstractmethod
    def draw_image(self, x: float, y: float, w: float, h: float, image: Any) -> None: ...

    @abstractmethod
    def finish(self) -> Any:
        """Release painting resources and return the bitmap."""


class ImageLoader(ABC):
    @abstractmethod
    def load(self, path: str) -> Any:
        """Return a decoded image or raise RenderError."""


class RenderBackend(ABC):
    """Bitmap production plus the two output sinks (file and printer)."""

    @abstractmethod
    def render(self, layout: PageLayout, scale: float) -> Any: ...

    @abstractmethod
    def write_pdf(self, bitmap: Any, path: Path) -> Path: ...

    @abstractmethod
    def write_png(self, bitmap: Any, path: Path) -> Path: ...

    @abstractmethod
    def print_bitmap(self, bitmap: Any) -> bool:
        """Send to a printer; False when the operator cancels the print dialog."""


# ---------- Rasterizer ---------- #

class Rasterizer:
    """
    Paints a PageLayout onto a Surface at a given scale. Every image is
    decoded before the first stroke, so a missing template fails the whole
    render instead of producing a page without its background.
    """

    def __init__(self, loader: ImageLoader):
        self.loader = loader

    def preload(self, layout: PageLayout) -> Dict[str, Any]:
        images: Dict[str, Any] = {}
        for block in layout.images():
            if block.path in images:
                continue
            if not Path(block.path).is_file():
                raise RenderError(f"Template image not found: {block.path}")
            images[block.path] = self.loader.load(block.path)
        return images

    def paint(self, layout: PageLayout, surface: Surface, scale: float, images: Optional[Dict[str, Any]] = None) -> Any:
        if images is None:
            images = self.preload(layout)
        px = lambda mm: mm_to_px(mm, scale)  # noqa: E731

        try:
            surface.fill("#ffffff")
            for b in layout.blocks:
                if isinstance(b, ImageBlock):
                    surface.draw_image(px(b.x), px(b.y), px(b.width), px(b.height), images[b.path])
                elif isinstance(b, RectBlock):
                    surface.fill_rect(px(b.x), px(b.y), px(b.width), px(b.height), b.fill)
                elif isinstance(b, LineBlock):
                    surface.draw_line(px(b.x1), px(b.y1), px(b.x2), px(b.y2), b.color, max(1.0, px(b.width_mm)))
                elif isinstance(b, TextBlock):
                    surface.draw_text(
                        px(b.x), px(b.y), px(b.width), px(b.height), b.text,
                        size=b.size_px * scale, bold=b.bold, italic=b.italic, color=b.color, align=b.align,
                    )
        except Exception:
            surface.finish()
            raise
        return surface.finish()

    def render(self, layout: PageLayout, surface_factory: Callable[[int, int], Surface], scale: float) -> Any:
        w, h = page_pixel_size(scale, layout.width_mm, layout.height_mm)
        log.debug("Rasterizing %s %s at %.2fx (%dx%d)", layout.document_kind, layout.document_id, scale, w, h)
        images = self.preload(layout)
        return self.paint(layout, surface_factory(w, h), scale, images)
