"""Export canvases to PNG and PDF."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple, Union

import cairo

from infinitecanvas.config import CanvasConfig, get_data_dir
from infinitecanvas.model import GraphModel
from infinitecanvas.renderer import SceneRenderer, VisualState

logger = logging.getLogger(__name__)

PADDING = 50

# Page sizes in points (72 points = 1 inch)
PAGE_SIZES = {
    "A4": (595, 842),
    "Letter": (612, 792),
}


def graph_bounds(model: GraphModel) -> Optional[Tuple[float, float, float, float]]:
    """Bounding box (min_x, min_y, max_x, max_y) of all nodes."""
    if not model.nodes:
        return None
    # Leave room for provenance badges above nodes
    top_margin = 24 if any(n.provenance for n in model.nodes) else 0
    return (
        min(n.x for n in model.nodes),
        min(n.y for n in model.nodes) - top_margin,
        max(n.x + n.width for n in model.nodes),
        max(n.y + n.height for n in model.nodes),
    )


class CanvasExporter:
    """Renders a whole graph, independent of the on-screen viewport."""

    def __init__(self, config: Optional[CanvasConfig] = None):
        self.config = config or CanvasConfig()
        # Own renderer so the live hit-region table is left alone
        self.renderer = SceneRenderer(self.config)

    def _draw(self, cr, model: GraphModel):
        cr.set_source_rgb(*SceneRenderer.COLORS['background'])
        cr.paint()
        self.renderer.draw_scene(cr, model, VisualState(), show_grid=False,
                                 interactive=False)

    def export_png(self, model: GraphModel, filepath: Union[str, Path],
                   scale: float = 2.0) -> bool:
        """Export the graph to a PNG image."""
        bounds = graph_bounds(model)
        if bounds is None:
            return False
        min_x, min_y, max_x, max_y = bounds

        width = int((max_x - min_x + PADDING * 2) * scale)
        height = int((max_y - min_y + PADDING * 2) * scale)

        surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
        cr = cairo.Context(surface)
        cr.scale(scale, scale)
        cr.translate(-min_x + PADDING, -min_y + PADDING)
        self._draw(cr, model)

        surface.write_to_png(str(filepath))
        logger.info("Exported PNG %s (%dx%d)", filepath, width, height)
        return True

    def export_pdf(self, model: GraphModel, filepath: Union[str, Path],
                   page_size: str = "Auto", title: str = "Canvas") -> bool:
        """Export the graph to a PDF, fitted to a page or sized to the graph."""
        bounds = graph_bounds(model)
        if bounds is None:
            return False
        min_x, min_y, max_x, max_y = bounds

        graph_width = max_x - min_x + PADDING * 2
        graph_height = max_y - min_y + PADDING * 2

        if page_size in PAGE_SIZES:
            width, height = PAGE_SIZES[page_size]
            scale = min((width - 40) / graph_width, (height - 40) / graph_height, 1.0)
        else:
            width, height = graph_width, graph_height
            scale = 1.0

        surface = cairo.PDFSurface(str(filepath), width, height)
        surface.set_metadata(cairo.PDF_METADATA_TITLE, title)
        surface.set_metadata(cairo.PDF_METADATA_CREATE_DATE,
                             datetime.now().isoformat(timespec="seconds"))
        cr = cairo.Context(surface)

        cr.translate(width / 2, height / 2)
        cr.scale(scale, scale)
        cr.translate(-(min_x + max_x) / 2, -(min_y + max_y) / 2)
        self._draw(cr, model)

        surface.finish()
        logger.info("Exported PDF %s", filepath)
        return True


def get_export_dir() -> Path:
    """Get the default export directory."""
    export_dir = get_data_dir() / "exports"
    export_dir.mkdir(exist_ok=True)
    return export_dir
