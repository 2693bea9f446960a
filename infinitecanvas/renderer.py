"""Scene renderer: draws the graph with cairo and records hit regions."""

import math
import logging
from dataclasses import dataclass
from typing import Optional, List, Tuple

import cairo

from infinitecanvas.config import CanvasConfig
from infinitecanvas.formatting import tokenize, LineKind, LineStyle, StyledLine
from infinitecanvas.geometry import (
    connection_point, connection_points, connection_endpoints, pull_back, arrow_head
)
from infinitecanvas.hit_regions import (
    HitRegionTable, HandleType, ResizeHandle, Rect, ScrollbarBounds, ButtonBounds
)
from infinitecanvas.model import GraphModel, Node, Connection, ContentState

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]

# JSON Canvas color presets
PRESET_COLORS = {
    "1": "#fb464c",  # red
    "2": "#e9973f",  # orange
    "3": "#e0de71",  # yellow
    "4": "#44cf6e",  # green
    "5": "#53dfdd",  # cyan
    "6": "#a882ff",  # purple
}


def parse_hex_color(value: str, fallback: Color = (0.8, 0.8, 0.8)) -> Color:
    """Parse '#rgb' or '#rrggbb' (or a preset number) into cairo floats."""
    if not isinstance(value, str):
        return fallback
    value = PRESET_COLORS.get(value, value).strip().lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if len(value) != 6:
        return fallback
    try:
        return tuple(int(value[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
    except ValueError:
        return fallback


@dataclass
class VisualState:
    """Transient interaction state the renderer needs to draw overlays.

    Points and rectangles are in graph coordinates.
    """
    hovered_node_id: Optional[str] = None
    hovered_side: Optional[str] = None
    connecting_from_id: Optional[str] = None
    connecting_from_side: Optional[str] = None
    preview_end: Optional[Tuple[float, float]] = None
    rubber_band: Optional[Tuple[float, float, float, float]] = None

    @property
    def is_connecting(self) -> bool:
        return self.connecting_from_id is not None


class SceneRenderer:
    """Draws nodes, connections and overlays in graph space."""

    COLORS = {
        'background': (0.118, 0.118, 0.118),     # #1e1e1e
        'grid': (0.2, 0.2, 0.2),                 # #333333
        'selection': (0.0, 0.498, 0.831),        # #007fd4
        'connection': (0.337, 0.612, 0.839),     # #569cd6
        'connection_selected': (0.129, 0.588, 0.953),  # #2196f3
        'arrow_border': (0.31, 0.275, 0.898),    # #4f46e5
        'point': (0.133, 0.773, 0.369),          # #22c55e
        'point_hover': (0.063, 0.725, 0.506),    # #10b981
        'handle_border': (1.0, 1.0, 1.0),
        'scroll_track': (0.165, 0.165, 0.165),   # #2a2a2a
        'scroll_thumb': (0.4, 0.4, 0.4),         # #666666
        'header': (0.118, 0.118, 0.118),         # #1e1e1e
        'header_text': (0.941, 0.941, 0.941),    # #f0f0f0
        'path_text': (0.6, 0.6, 0.6),            # #999999
        'button': (0.29, 0.29, 0.29),            # #4a4a4a
        'button_active': (0.055, 0.455, 0.565),  # #0e7490
        'button_border': (0.4, 0.4, 0.4),        # #666666
        'loading_bg': (0.227, 0.227, 0.227),     # #3a3a3a
        'editing_bg': (0.149, 0.275, 0.325),     # #264653
        'editing_text': (0.165, 0.616, 0.561),   # #2a9d8f
        'error_bg': (0.29, 0.118, 0.118),        # #4a1e1e
        'error_text': (1.0, 0.42, 0.42),         # #ff6b6b
        'badge': (0.31, 0.765, 0.969),           # #4fc3f7
        'badge_border': (0.161, 0.714, 0.965),   # #29b6f6
        'rubber_band': (0.0, 0.498, 0.831),
    }

    FONT_FAMILY = "Sans"
    MONO_FAMILY = "Monospace"

    HEADER_HEIGHT = 40.0
    TEXT_PADDING = 10.0
    SCROLLBAR_WIDTH = 8.0
    MIN_THUMB_HEIGHT = 20.0
    POINT_RADIUS = 12.0
    ARROW_OFFSET = 16.0
    ARROW_LENGTH = 18.0
    EDIT_BUTTON = (60.0, 8.0, 50.0, 24.0)  # right inset, top inset, w, h

    def __init__(self, config: Optional[CanvasConfig] = None):
        self.config = config or CanvasConfig()
        self.hit_regions = HitRegionTable()
        self._interactive = True

    # ==================== Frame ====================

    def render(self, cr, width: float, height: float, model: GraphModel,
               visual: Optional[VisualState] = None):
        """Draw a full frame in screen space."""
        visual = visual or VisualState()
        viewport = model.viewport

        cr.save()
        cr.set_source_rgb(*self.COLORS['background'])
        cr.paint()

        cr.translate(viewport.offset_x, viewport.offset_y)
        cr.scale(viewport.scale, viewport.scale)

        x0, y0 = viewport.to_graph(0, 0)
        x1, y1 = viewport.to_graph(width, height)
        self.draw_scene(cr, model, visual, (x0, y0, x1, y1), viewport.scale)

        cr.restore()

    def draw_scene(self, cr, model: GraphModel, visual: VisualState,
                   visible: Optional[Tuple[float, float, float, float]] = None,
                   scale: float = 1.0, show_grid: Optional[bool] = None,
                   interactive: bool = True):
        """Draw the graph into a context already in graph space.

        With `interactive` off, selection and editing affordances are left
        out, which is what exports want.
        """
        self.hit_regions.begin_frame()
        self._interactive = interactive

        if show_grid is None:
            show_grid = self.config.show_grid
        if show_grid and visible:
            self._draw_grid(cr, visible, scale)

        for conn in model.connections:
            self._draw_connection(cr, model, conn,
                                  interactive and conn is model.selected_connection)

        for node in model.nodes:
            show_points = interactive and (
                node.is_selected or visual.is_connecting or
                (visual.hovered_node_id == node.id and visual.hovered_side is not None)
            )
            if node.is_reference:
                self._draw_reference_node(cr, node, visual, show_points)
            else:
                self._draw_content_node(cr, node, visual, show_points)

        if interactive and visual.is_connecting:
            self._draw_connection_preview(cr, model, visual)

        if interactive and visual.rubber_band:
            self._draw_rubber_band(cr, visual.rubber_band, scale)

    # ==================== Background ====================

    def _draw_grid(self, cr, visible: Tuple[float, float, float, float], scale: float):
        """Draw line grid covering the visible graph area."""
        start_x, start_y, end_x, end_y = visible
        size = self.config.grid_size

        cr.save()
        cr.set_source_rgb(*self.COLORS['grid'])
        cr.set_line_width(1.0 / scale)

        x = math.floor(start_x / size) * size
        while x <= end_x:
            cr.move_to(x, start_y)
            cr.line_to(x, end_y)
            x += size
        y = math.floor(start_y / size) * size
        while y <= end_y:
            cr.move_to(start_x, y)
            cr.line_to(end_x, y)
            y += size
        cr.stroke()
        cr.restore()

    # ==================== Connections ====================

    def _draw_connection(self, cr, model: GraphModel, conn: Connection, selected: bool):
        from_node = model.get_node(conn.from_id)
        to_node = model.get_node(conn.to_id)
        if from_node is None or to_node is None:
            return

        start, end = connection_endpoints(from_node, to_node, conn)
        tip = pull_back(start, end, self.ARROW_OFFSET)

        if selected:
            color = self.COLORS['connection_selected']
        elif "color" in conn.extra:
            color = parse_hex_color(conn.extra["color"], self.COLORS['connection'])
        else:
            color = self.COLORS['connection']

        cr.save()
        cr.set_source_rgb(*color)
        cr.set_line_width(3 if selected else 2)
        cr.set_dash([5, 5] if selected else [])
        cr.move_to(*start)
        cr.line_to(*tip)
        cr.stroke()
        cr.set_dash([])

        if tip != start:
            points = arrow_head(tip, start, self.ARROW_LENGTH)
            cr.move_to(*points[0])
            for point in points[1:]:
                cr.line_to(*point)
            cr.close_path()
            cr.set_source_rgb(*color)
            cr.fill_preserve()
            cr.set_source_rgb(*self.COLORS['arrow_border'])
            cr.set_line_width(1)
            cr.stroke()
        cr.restore()

    def _draw_connection_preview(self, cr, model: GraphModel, visual: VisualState):
        source = model.get_node(visual.connecting_from_id)
        if source is None or visual.preview_end is None:
            return
        if visual.connecting_from_side:
            start = connection_point(source, visual.connecting_from_side)
        else:
            start = source.center

        cr.save()
        cr.set_source_rgb(*self.COLORS['point_hover'])
        cr.set_line_width(2)
        cr.set_dash([5, 5])
        cr.move_to(*start)
        cr.line_to(*visual.preview_end)
        cr.stroke()
        cr.restore()

    # ==================== Nodes ====================

    def _node_colors(self, node: Node) -> Tuple[Color, Color, Color]:
        background = parse_hex_color(node.style.background)
        text = parse_hex_color(node.style.text)
        border = parse_hex_color(node.style.border)
        if "color" in node.extra:
            border = parse_hex_color(node.extra["color"], border)
        return background, text, border

    def _draw_frame(self, cr, node: Node, background: Color, border: Color,
                    base_width: float):
        cr.rectangle(node.x, node.y, node.width, node.height)
        cr.set_source_rgb(*background)
        cr.fill()

        cr.rectangle(node.x, node.y, node.width, node.height)
        if node.is_selected and self._interactive:
            cr.set_source_rgb(*self.COLORS['selection'])
            cr.set_line_width(base_width + 1)
        else:
            cr.set_source_rgb(*border)
            cr.set_line_width(base_width)
        cr.stroke()

    def _draw_content_node(self, cr, node: Node, visual: VisualState,
                           show_points: bool):
        """Draw an inline-text node."""
        # The host shows an editor overlay instead
        if node.is_editing and self._interactive:
            return

        background, text_color, border = self._node_colors(node)

        cr.save()
        self._draw_frame(cr, node, background, border, 1)
        if node.provenance:
            self._draw_badge(cr, node)

        self._draw_text_area(cr, node, node.text, node.y, node.height, text_color)
        cr.restore()

        self._draw_decorations(cr, node, visual, show_points,
                               area_top=node.y, area_height=node.height)

    def _draw_reference_node(self, cr, node: Node, visual: VisualState,
                             show_points: bool):
        """Draw a file-backed node with header, edit button and preview."""
        background, text_color, border = self._node_colors(node)
        header = min(self.HEADER_HEIGHT, node.height)

        cr.save()
        self._draw_frame(cr, node, background, border, 2)

        cr.rectangle(node.x, node.y, node.width, header)
        cr.set_source_rgb(*self.COLORS['header'])
        cr.fill()

        if node.provenance:
            self._draw_badge(cr, node)

        path = node.file or ""
        name = path.replace("\\", "/").rsplit("/", 1)[-1] or path
        cr.save()
        cr.rectangle(node.x, node.y, max(0.0, node.width - 70), header)
        cr.clip()
        cr.select_font_face(self.FONT_FAMILY, cairo.FONT_SLANT_NORMAL,
                            cairo.FONT_WEIGHT_BOLD)
        cr.set_font_size(14)
        cr.set_source_rgb(*self.COLORS['header_text'])
        cr.move_to(node.x + 12, node.y + (header / 2 if name == path else 18))
        cr.show_text(name)
        if name != path:
            cr.select_font_face(self.FONT_FAMILY, cairo.FONT_SLANT_NORMAL,
                                cairo.FONT_WEIGHT_NORMAL)
            cr.set_font_size(11)
            cr.set_source_rgb(*self.COLORS['path_text'])
            cr.move_to(node.x + 12, node.y + header - 6)
            cr.show_text(path)
        cr.restore()

        self._draw_edit_button(cr, node)

        area_top = node.y + header
        area_height = node.height - header
        if node.is_editing and self._interactive:
            self._draw_placeholder(cr, node, area_top, area_height, "Editing…",
                                   self.COLORS['editing_bg'], self.COLORS['editing_text'])
        elif node.content_state is ContentState.LOADED:
            self._draw_text_area(cr, node, node.content or "", area_top,
                                 area_height, text_color)
        elif node.content_state is ContentState.UNAVAILABLE:
            self._draw_placeholder(cr, node, area_top, area_height, "File not found",
                                   self.COLORS['error_bg'], self.COLORS['error_text'])
        else:
            self._draw_placeholder(cr, node, area_top, area_height, "Loading…",
                                   self.COLORS['loading_bg'], text_color)
        cr.restore()

        self._draw_decorations(cr, node, visual, show_points, area_top, area_height)

    def _draw_edit_button(self, cr, node: Node):
        inset_right, inset_top, bw, bh = self.EDIT_BUTTON
        bx = node.x + node.width - inset_right
        by = node.y + inset_top
        self.hit_regions.regions_for(node.id).buttons.append(
            ButtonBounds("edit", Rect(bx, by, bw, bh))
        )

        cr.rectangle(bx, by, bw, bh)
        cr.set_source_rgb(*(self.COLORS['button_active'] if node.is_editing
                            else self.COLORS['button']))
        cr.fill_preserve()
        cr.set_source_rgb(*self.COLORS['button_border'])
        cr.set_line_width(1)
        cr.stroke()

        label = "Editing" if node.is_editing else "Edit"
        cr.select_font_face(self.FONT_FAMILY, cairo.FONT_SLANT_NORMAL,
                            cairo.FONT_WEIGHT_NORMAL)
        cr.set_font_size(10)
        extents = cr.text_extents(label)
        cr.set_source_rgb(1, 1, 1)
        cr.move_to(bx + (bw - extents.width) / 2 - extents.x_bearing,
                   by + (bh - extents.height) / 2 - extents.y_bearing)
        cr.show_text(label)

    def _draw_placeholder(self, cr, node: Node, top: float, height: float,
                          label: str, background: Color, foreground: Color):
        node.content_height = 0.0
        node.max_scroll = 0.0
        node.scroll_y = 0.0
        if height <= 0:
            return

        cr.save()
        cr.rectangle(node.x + 1, top, node.width - 2, height - 1)
        cr.set_source_rgb(*background)
        cr.fill()

        cr.select_font_face(self.FONT_FAMILY, cairo.FONT_SLANT_NORMAL,
                            cairo.FONT_WEIGHT_NORMAL)
        cr.set_font_size(14)
        extents = cr.text_extents(label)
        cr.set_source_rgb(*foreground)
        cr.move_to(node.x + (node.width - extents.width) / 2 - extents.x_bearing,
                   top + (height - extents.height) / 2 - extents.y_bearing)
        cr.show_text(label)
        cr.restore()

    def _draw_badge(self, cr, node: Node):
        """Small provenance tag above the node's top-right corner."""
        cr.save()
        cr.select_font_face(self.FONT_FAMILY, cairo.FONT_SLANT_NORMAL,
                            cairo.FONT_WEIGHT_NORMAL)
        cr.set_font_size(9)
        extents = cr.text_extents(node.provenance)
        badge_w = extents.x_advance + 12
        badge_h = 16
        badge_x = node.x + node.width - badge_w - 8
        badge_y = node.y - badge_h - 4

        cr.rectangle(badge_x, badge_y, badge_w, badge_h)
        cr.set_source_rgba(*self.COLORS['badge'], 0.9)
        cr.fill_preserve()
        cr.set_source_rgb(*self.COLORS['badge_border'])
        cr.set_line_width(1)
        cr.stroke()

        cr.set_source_rgb(1, 1, 1)
        cr.move_to(badge_x + 6, badge_y + (badge_h - extents.height) / 2 - extents.y_bearing)
        cr.show_text(node.provenance)
        cr.restore()

    # ==================== Text ====================

    def _set_line_font(self, cr, style: LineStyle):
        family = self.MONO_FAMILY if style.monospace else self.FONT_FAMILY
        slant = cairo.FONT_SLANT_ITALIC if style.italic else cairo.FONT_SLANT_NORMAL
        weight = cairo.FONT_WEIGHT_BOLD if style.bold else cairo.FONT_WEIGHT_NORMAL
        cr.select_font_face(family, slant, weight)
        cr.set_font_size(style.font_size)

    def _wrap(self, cr, text: str, max_width: float) -> List[str]:
        """Greedy word wrap using the current font."""
        words = text.split(" ")
        lines: List[str] = []
        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if cr.text_extents(candidate).x_advance <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
        return lines

    def layout_text(self, cr, text: str,
                    max_width: float) -> List[Tuple[StyledLine, LineStyle, str]]:
        """Tokenize and wrap text into drawable rows."""
        rows: List[Tuple[StyledLine, LineStyle, str]] = []
        for line in tokenize(text):
            style = line.style
            if line.kind in (LineKind.BLANK, LineKind.FENCE, LineKind.RULE):
                rows.append((line, style, ""))
                continue
            self._set_line_font(cr, style)
            body = f"{line.marker} {line.text}" if line.marker else line.text
            if line.kind is LineKind.CODE:
                rows.append((line, style, body))
                continue
            for piece in self._wrap(cr, body, max(1.0, max_width - style.indent)):
                rows.append((line, style, piece))
        return rows

    def _draw_text_area(self, cr, node: Node, text: str, top: float,
                        height: float, color: Color):
        """Draw scrolled, clipped text and refresh the node's scroll metrics."""
        pad = self.TEXT_PADDING
        text_width = node.width - pad * 2 - self.SCROLLBAR_WIDTH

        cr.save()
        rows = self.layout_text(cr, text, text_width)
        node.content_height = sum(style.line_height for _, style, _ in rows) + pad * 2
        node.max_scroll = max(0.0, node.content_height - height)
        node.scroll_y = max(0.0, min(node.scroll_y, node.max_scroll))

        if height > 4:
            cr.rectangle(node.x + 2, top + 2, node.width - 4, height - 4)
            cr.clip()

        y = top + pad - node.scroll_y
        for line, style, piece in rows:
            if y + style.line_height >= top and y <= top + height:
                if line.kind is LineKind.RULE:
                    cr.set_source_rgb(*parse_hex_color(style.color or "#555555"))
                    cr.set_line_width(1)
                    cr.move_to(node.x + pad, y + style.line_height / 2)
                    cr.line_to(node.x + node.width - pad, y + style.line_height / 2)
                    cr.stroke()
                elif piece:
                    self._set_line_font(cr, style)
                    if style.color:
                        cr.set_source_rgb(*parse_hex_color(style.color, color))
                    else:
                        cr.set_source_rgb(*color)
                    # Baseline sits at roughly 80% of the line box
                    cr.move_to(node.x + pad + style.indent,
                               y + (style.line_height + style.font_size) / 2 - 2)
                    cr.show_text(piece)
            y += style.line_height
        cr.restore()

    # ==================== Overlays ====================

    def _draw_decorations(self, cr, node: Node, visual: VisualState,
                          show_points: bool, area_top: float, area_height: float):
        if node.max_scroll > 0:
            self._draw_scrollbar(cr, node, area_top, area_height)
        if show_points:
            self._draw_connection_points(cr, node, visual)
        if node.is_selected and self._interactive:
            self._draw_resize_handles(cr, node)

    def _draw_scrollbar(self, cr, node: Node, area_top: float, area_height: float):
        width = self.SCROLLBAR_WIDTH
        track = Rect(node.x + node.width - width - 2, area_top + 2,
                     width, max(0.0, area_height - 4))
        visible_ratio = area_height / node.content_height if node.content_height else 1.0
        thumb_h = min(track.height, max(self.MIN_THUMB_HEIGHT, track.height * visible_ratio))
        ratio = node.scroll_y / node.max_scroll if node.max_scroll else 0.0
        thumb = Rect(track.x + 1, track.y + (track.height - thumb_h) * ratio,
                     width - 2, thumb_h)
        self.hit_regions.regions_for(node.id).scrollbar = ScrollbarBounds(track, thumb)

        cr.save()
        cr.rectangle(track.x, track.y, track.width, track.height)
        cr.set_source_rgb(*self.COLORS['scroll_track'])
        cr.fill()
        cr.rectangle(thumb.x, thumb.y, thumb.width, thumb.height)
        cr.set_source_rgb(*(self.COLORS['selection'] if node.is_selected
                            else self.COLORS['scroll_thumb']))
        cr.fill()
        cr.restore()

    def _draw_connection_points(self, cr, node: Node, visual: VisualState):
        cr.save()
        for side, (px, py) in connection_points(node).items():
            hovered = visual.hovered_node_id == node.id and visual.hovered_side == side
            radius = self.POINT_RADIUS + 4 if hovered else self.POINT_RADIUS

            cr.arc(px, py, radius, 0, 2 * math.pi)
            cr.set_source_rgb(*(self.COLORS['point_hover'] if hovered
                                else self.COLORS['point']))
            cr.fill()

            cr.arc(px, py, 4 if hovered else 3, 0, 2 * math.pi)
            cr.set_source_rgb(1, 1, 1)
            cr.fill()
        cr.restore()

    def _draw_resize_handles(self, cr, node: Node):
        size = self.config.handle_size
        half = size / 2
        xs = {"w": node.x, "c": node.x + node.width / 2, "e": node.x + node.width}
        ys = {"n": node.y, "c": node.y + node.height / 2, "s": node.y + node.height}
        placement = {
            HandleType.NW: ("w", "n"), HandleType.N: ("c", "n"),
            HandleType.NE: ("e", "n"), HandleType.E: ("e", "c"),
            HandleType.SE: ("e", "s"), HandleType.S: ("c", "s"),
            HandleType.SW: ("w", "s"), HandleType.W: ("w", "c"),
        }

        regions = self.hit_regions.regions_for(node.id)
        cr.save()
        for handle_type, (hx, hy) in placement.items():
            rect = Rect(xs[hx] - half, ys[hy] - half, size, size)
            regions.handles.append(ResizeHandle(handle_type, rect))

            cr.rectangle(rect.x, rect.y, size, size)
            cr.set_source_rgb(*self.COLORS['selection'])
            cr.fill_preserve()
            cr.set_source_rgb(*self.COLORS['handle_border'])
            cr.set_line_width(1)
            cr.stroke()
        cr.restore()

    def _draw_rubber_band(self, cr, rect: Tuple[float, float, float, float], scale: float):
        x, y, w, h = rect
        cr.save()
        cr.rectangle(x, y, w, h)
        cr.set_source_rgba(*self.COLORS['rubber_band'], 0.15)
        cr.fill_preserve()
        cr.set_source_rgba(*self.COLORS['rubber_band'], 0.8)
        cr.set_line_width(1.0 / scale)
        cr.set_dash([4.0 / scale, 4.0 / scale])
        cr.stroke()
        cr.restore()
