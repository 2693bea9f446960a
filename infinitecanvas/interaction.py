"""Interaction controller: turns typed input events into model mutations."""

import logging
from enum import Enum
from typing import Optional, List, Dict, Any, Callable, Tuple

from infinitecanvas.config import CanvasConfig
from infinitecanvas.events import (
    InputEvent, PointerDown, PointerMove, PointerUp, DoubleClick, Wheel,
    KeyPress, PointerLeave, FocusLost, FileDrop, Modifier, PointerButton,
)
from infinitecanvas.geometry import (
    connection_point, connection_point_at, connection_endpoints, closest_side,
    distance_to_segment, normalize_rect,
)
from infinitecanvas.hit_regions import HitRegionTable, HandleType, Rect
from infinitecanvas.model import GraphModel, Node, Connection, NodeKind
from infinitecanvas.renderer import VisualState

logger = logging.getLogger(__name__)

CONNECT_MODIFIER = Modifier.SHIFT
EXTEND_MODIFIER = Modifier.SHIFT
TOGGLE_MODIFIER = Modifier.CONTROL | Modifier.META
PAN_MODIFIER = Modifier.ALT

NEW_NODE_TEXT = "New Node"


class Mode(Enum):
    """Mutually exclusive pointer modes."""
    IDLE = "idle"
    CONNECTING = "connecting"
    RESIZING = "resizing"
    SCROLLBAR_DRAG = "scrollbar_drag"
    NODE_DRAG = "node_drag"
    RUBBER_BAND = "rubber_band"
    PANNING = "panning"


class InteractionController:
    """Pointer, wheel and keyboard state machine over a GraphModel.

    Hit regions come from the renderer's side table, so input is resolved
    against what was last drawn.
    """

    def __init__(self, model: GraphModel, hit_regions: HitRegionTable,
                 config: Optional[CanvasConfig] = None):
        self.model = model
        self.hit_regions = hit_regions
        self.config = config or model.config

        self.mode = Mode.IDLE
        self.cursor = "default"
        self.view_width = 0.0
        self.view_height = 0.0

        # Last pointer position (screen)
        self.last_x = 0.0
        self.last_y = 0.0

        # Hover state
        self.hovered_node: Optional[Node] = None
        self.hovered_side: Optional[str] = None

        # Press state
        self._press_x = 0.0
        self._press_y = 0.0
        self._press_button = PointerButton.PRIMARY
        self._press_modifiers = Modifier.NONE
        self._press_node: Optional[Node] = None
        self._moved = False
        self._deferred_click = False

        # Connecting
        self._connect_source: Optional[Node] = None
        self._connect_side: Optional[str] = None
        self._preview_end: Optional[Tuple[float, float]] = None

        # Resizing
        self._resize_handle: Optional[HandleType] = None
        self._resize_start: Tuple[float, float, float, float] = (0, 0, 0, 0)

        # Scrollbar drag
        self._scroll_track: Optional[Rect] = None
        self._scroll_thumb_height = 0.0
        self._scroll_grab = 0.0

        # Node drag
        self._drag_anchor = (0.0, 0.0)

        # Rubber band (graph coordinates)
        self._band_start = (0.0, 0.0)
        self._band_end = (0.0, 0.0)

        # Text editing
        self.editing_node: Optional[Node] = None

        # Clipboard
        self._clipboard: List[Dict[str, Any]] = []
        self._clipboard_size = (0.0, 0.0)
        self._paste_count = 0

        # Callbacks
        self.on_repaint: Optional[Callable[[], None]] = None
        self.on_cursor_changed: Optional[Callable[[str], None]] = None
        self.on_edit_requested: Optional[Callable[[Node, str], None]] = None
        self.on_edit_finished: Optional[Callable[[Node], None]] = None
        self.on_content_edited: Optional[Callable[[Node, str], None]] = None
        self.on_save_requested: Optional[Callable[[], None]] = None

    # ==================== Helpers ====================

    def set_view_size(self, width: float, height: float):
        self.view_width = width
        self.view_height = height

    def _request_repaint(self):
        if self.on_repaint:
            self.on_repaint()

    def _set_cursor(self, name: str):
        if name != self.cursor:
            self.cursor = name
            if self.on_cursor_changed:
                self.on_cursor_changed(name)

    def _set_mode(self, mode: Mode):
        if mode is not self.mode:
            logger.debug("Mode %s -> %s", self.mode.value, mode.value)
            self.mode = mode

    def _to_graph(self, x: float, y: float) -> Tuple[float, float]:
        return self.model.viewport.to_graph(x, y)

    def _point_hit(self, gx: float, gy: float,
                   exclude: Optional[Node] = None) -> Tuple[Optional[Node], Optional[str]]:
        """Topmost node with a connection point under the pointer."""
        radius = self.config.connection_point_radius
        for node in reversed(self.model.nodes):
            if node is exclude:
                continue
            side = connection_point_at(node, gx, gy, radius)
            if side:
                return node, side
        return None, None

    def _handle_hit(self, gx: float, gy: float) -> Tuple[Optional[Node], Optional[HandleType]]:
        for node in reversed(self.model.selected_nodes):
            regions = self.hit_regions.get(node.id)
            if regions is None:
                continue
            handle = regions.handle_at(gx, gy)
            if handle:
                return node, handle.type
        return None, None

    def connection_at(self, gx: float, gy: float) -> Optional[Connection]:
        """Topmost connection whose line passes within the hit tolerance."""
        tolerance = self.config.connection_hit_tolerance
        for conn in reversed(self.model.connections):
            from_node = self.model.get_node(conn.from_id)
            to_node = self.model.get_node(conn.to_id)
            if from_node is None or to_node is None:
                continue
            start, end = connection_endpoints(from_node, to_node, conn)
            if distance_to_segment((gx, gy), start, end) <= tolerance:
                return conn
        return None

    def visual_state(self) -> VisualState:
        """Snapshot of the transient state the renderer draws."""
        state = VisualState(
            hovered_node_id=self.hovered_node.id if self.hovered_node else None,
            hovered_side=self.hovered_side,
        )
        if self.mode is Mode.CONNECTING and self._connect_source:
            state.connecting_from_id = self._connect_source.id
            state.connecting_from_side = self._connect_side
            state.preview_end = self._preview_end
        elif self.mode is Mode.RUBBER_BAND and self._moved:
            state.rubber_band = normalize_rect(*self._band_start, *self._band_end)
        return state

    # ==================== Dispatch ====================

    def handle_input(self, event: InputEvent):
        """Single entry point for every input event."""
        if isinstance(event, PointerDown):
            self._on_pointer_down(event)
        elif isinstance(event, PointerMove):
            self._on_pointer_move(event)
        elif isinstance(event, PointerUp):
            self._on_pointer_up(event)
        elif isinstance(event, DoubleClick):
            self._on_double_click(event)
        elif isinstance(event, Wheel):
            self._on_wheel(event)
        elif isinstance(event, KeyPress):
            self._on_key(event)
        elif isinstance(event, (PointerLeave, FocusLost)):
            self.reset()
        elif isinstance(event, FileDrop):
            self._on_file_drop(event)

    def reset(self):
        """Abandon any gesture in progress and return to idle."""
        if self.mode in (Mode.CONNECTING, Mode.RUBBER_BAND):
            logger.debug("Discarding %s gesture", self.mode.value)
        self._set_mode(Mode.IDLE)
        self._connect_source = None
        self._connect_side = None
        self._preview_end = None
        self._press_node = None
        self._moved = False
        self._deferred_click = False
        self.hovered_node = None
        self.hovered_side = None
        self._set_cursor("default")
        self._request_repaint()

    # ==================== Pointer ====================

    def _on_pointer_down(self, ev: PointerDown):
        self.last_x, self.last_y = ev.x, ev.y
        if self.mode is not Mode.IDLE:
            return

        self._press_x, self._press_y = ev.x, ev.y
        self._press_button = ev.button
        self._press_modifiers = ev.modifiers
        self._moved = False
        self._deferred_click = False
        gx, gy = self._to_graph(ev.x, ev.y)

        if ev.button == PointerButton.MIDDLE:
            self._begin_pan()
            return
        if ev.button != PointerButton.PRIMARY:
            return

        # 1. Connection point with the connect modifier
        if ev.modifiers & CONNECT_MODIFIER:
            node, side = self._point_hit(gx, gy)
            if node is not None:
                self._connect_source = node
                self._connect_side = side
                self._preview_end = (gx, gy)
                self._set_mode(Mode.CONNECTING)
                self._set_cursor("crosshair")
                self._request_repaint()
                return

        # 2. Resize handle of a selected node
        node, handle = self._handle_hit(gx, gy)
        if node is not None:
            self._press_node = node
            self._resize_handle = handle
            self._resize_start = (node.x, node.y, node.width, node.height)
            self._set_mode(Mode.RESIZING)
            self._set_cursor(handle.cursor)
            return

        node = self.model.node_at(gx, gy)
        regions = self.hit_regions.get(node.id) if node else None

        # 3. Scrollbar track
        if node is not None and regions and regions.scrollbar:
            bar = regions.scrollbar
            if bar.track.contains(gx, gy):
                self._begin_scrollbar_drag(node, bar.track, bar.thumb, gy)
                return

        # 4. In-node buttons
        if node is not None and regions:
            button = regions.button_at(gx, gy)
            if button is not None:
                self._on_node_button(node, button.action)
                return

        # 5. Node body
        if node is not None:
            self._begin_node_drag(node, gx, gy, ev.modifiers)
            return

        # 6. Connection line on empty canvas
        conn = self.connection_at(gx, gy)
        if conn is not None:
            self.model.select_connection(conn)
            return

        # 7. Pan modifier, else rubber band
        if ev.modifiers & PAN_MODIFIER:
            self._begin_pan()
            return

        self._band_start = (gx, gy)
        self._band_end = (gx, gy)
        self._set_mode(Mode.RUBBER_BAND)

    def _begin_pan(self):
        self._set_mode(Mode.PANNING)
        self._set_cursor("grabbing")

    def _begin_scrollbar_drag(self, node: Node, track: Rect, thumb: Rect, gy: float):
        self._press_node = node
        self._scroll_track = track
        self._scroll_thumb_height = thumb.height
        if thumb.contains(thumb.x, gy):
            self._scroll_grab = gy - thumb.y
        else:
            # Clicking the bare track centres the thumb on the pointer
            self._scroll_grab = thumb.height / 2
            self._apply_scrollbar(gy)
        self._set_mode(Mode.SCROLLBAR_DRAG)

    def _apply_scrollbar(self, gy: float):
        node = self._press_node
        track = self._scroll_track
        if node is None or track is None:
            return
        travel = track.height - self._scroll_thumb_height
        if travel <= 0:
            return
        ratio = (gy - self._scroll_grab - track.y) / travel
        ratio = max(0.0, min(1.0, ratio))
        self.model.set_scroll(node, ratio * node.max_scroll)

    def _begin_node_drag(self, node: Node, gx: float, gy: float, modifiers: Modifier):
        self._press_node = node
        self._drag_anchor = (gx - node.x, gy - node.y)
        if node.is_selected:
            # Decided on release: a click may still narrow the selection
            self._deferred_click = True
        elif modifiers & TOGGLE_MODIFIER:
            self.model.toggle_selection(node)
        elif modifiers & EXTEND_MODIFIER:
            self.model.add_to_selection(node)
        else:
            self.model.select_node(node)
        self._set_mode(Mode.NODE_DRAG)
        self._set_cursor("grabbing")

    def _on_node_button(self, node: Node, action: str):
        if action == "edit":
            if node.is_editing:
                return
            self.model.select_node(node)
            self.begin_edit(node)

    def _passed_threshold(self, x: float, y: float) -> bool:
        dx = x - self._press_x
        dy = y - self._press_y
        return (dx * dx + dy * dy) ** 0.5 >= self.config.drag_threshold

    def _on_pointer_move(self, ev: PointerMove):
        dx = ev.x - self.last_x
        dy = ev.y - self.last_y
        self.last_x, self.last_y = ev.x, ev.y
        gx, gy = self._to_graph(ev.x, ev.y)

        if self.mode is Mode.IDLE:
            self._update_hover(gx, gy, ev.modifiers)

        elif self.mode is Mode.CONNECTING:
            self._preview_end = (gx, gy)
            target, side = self._point_hit(gx, gy, exclude=self._connect_source)
            self.hovered_node, self.hovered_side = target, side
            self._request_repaint()

        elif self.mode is Mode.RESIZING:
            self._apply_resize(ev.x, ev.y)

        elif self.mode is Mode.SCROLLBAR_DRAG:
            self._apply_scrollbar(gy)

        elif self.mode is Mode.NODE_DRAG:
            if not self._moved and not self._passed_threshold(ev.x, ev.y):
                return
            self._moved = True
            node = self._press_node
            if node is None:
                return
            delta_x = (gx - self._drag_anchor[0]) - node.x
            delta_y = (gy - self._drag_anchor[1]) - node.y
            moving = self.model.selected_nodes if node.is_selected else [node]
            self.model.move_nodes(moving, delta_x, delta_y)

        elif self.mode is Mode.RUBBER_BAND:
            if not self._moved and not self._passed_threshold(ev.x, ev.y):
                return
            self._moved = True
            self._band_end = (gx, gy)
            self._request_repaint()

        elif self.mode is Mode.PANNING:
            self.model.viewport.pan(dx, dy)
            self._request_repaint()

    def _apply_resize(self, x: float, y: float):
        node = self._press_node
        handle = self._resize_handle
        if node is None or handle is None:
            return
        scale = self.model.viewport.scale
        ddx = (x - self._press_x) / scale
        ddy = (y - self._press_y) / scale
        start_x, start_y, start_w, start_h = self._resize_start
        min_w = self.config.min_node_width
        min_h = self.config.min_node_height

        new_x, new_y, new_w, new_h = start_x, start_y, start_w, start_h
        if handle.moves_right:
            new_w = max(min_w, start_w + ddx)
        elif handle.moves_left:
            new_w = max(min_w, start_w - ddx)
            new_x = start_x + start_w - new_w
        if handle.moves_bottom:
            new_h = max(min_h, start_h + ddy)
        elif handle.moves_top:
            new_h = max(min_h, start_h - ddy)
            new_y = start_y + start_h - new_h

        self.model.set_node_bounds(node, new_x, new_y, new_w, new_h)

    def _update_hover(self, gx: float, gy: float, modifiers: Modifier):
        node = self.model.node_at(gx, gy)
        point_node, side = self._point_hit(gx, gy)
        if point_node is not None:
            node = point_node

        changed = node is not self.hovered_node or side != self.hovered_side
        self.hovered_node = node
        self.hovered_side = side

        _, handle = self._handle_hit(gx, gy)
        if side and modifiers & CONNECT_MODIFIER:
            self._set_cursor("crosshair")
        elif handle is not None:
            self._set_cursor(handle.cursor)
        elif side:
            self._set_cursor("copy")
        elif node is not None:
            self._set_cursor("grab")
        else:
            self._set_cursor("default")

        if changed:
            self._request_repaint()

    def _on_pointer_up(self, ev: PointerUp):
        self.last_x, self.last_y = ev.x, ev.y
        if self.mode is Mode.IDLE or ev.button != self._press_button:
            return
        gx, gy = self._to_graph(ev.x, ev.y)

        if self.mode is Mode.CONNECTING:
            self._finish_connection(gx, gy)

        elif self.mode is Mode.NODE_DRAG and not self._moved:
            node = self._press_node
            if node is not None and self._deferred_click:
                if self._press_modifiers & TOGGLE_MODIFIER:
                    self.model.toggle_selection(node)
                elif not self._press_modifiers & EXTEND_MODIFIER:
                    self.model.select_node(node)

        elif self.mode is Mode.RUBBER_BAND:
            extend = bool(self._press_modifiers & (EXTEND_MODIFIER | TOGGLE_MODIFIER))
            if self._moved:
                x, y, w, h = normalize_rect(*self._band_start, gx, gy)
                self.model.select_multiple(self.model.nodes_in_rect(x, y, w, h),
                                           extend=extend)
            elif not extend:
                self.model.clear_selection()

        self._set_mode(Mode.IDLE)
        self._press_node = None
        self._connect_source = None
        self._connect_side = None
        self._preview_end = None
        self._scroll_track = None
        self._moved = False
        self._update_hover(gx, gy, ev.modifiers)
        self._request_repaint()

    def _finish_connection(self, gx: float, gy: float):
        source = self._connect_source
        if source is None or not self.model.contains(source):
            return

        target, target_side = self._point_hit(gx, gy, exclude=source)
        if target is None:
            target = self.model.node_at(gx, gy)
            if target is None or target is source:
                logger.debug("Connection from %s dropped on empty canvas", source.id)
                return
            anchor = connection_point(source, self._connect_side)
            target_side = closest_side(target, anchor)

        self.model.create_connection(source, target, self._connect_side, target_side)

    # ==================== Double click, wheel, drop ====================

    def _on_double_click(self, ev: DoubleClick):
        # The second press of a double click has already started a gesture
        if self.mode in (Mode.NODE_DRAG, Mode.RUBBER_BAND) and not self._moved:
            self.reset()
        if self.mode is not Mode.IDLE:
            return
        gx, gy = self._to_graph(ev.x, ev.y)
        node = self.model.node_at(gx, gy)
        if node is not None:
            self.model.select_node(node)
            self.begin_edit(node)
            return
        node = self.model.create_node(NEW_NODE_TEXT, gx - 100, gy - 50)
        self.model.select_node(node)

    def _on_wheel(self, ev: Wheel):
        gx, gy = self._to_graph(ev.x, ev.y)
        zoom_modifier = bool(ev.modifiers & TOGGLE_MODIFIER)
        vertical = abs(ev.dy) > abs(ev.dx) * self.config.vertical_dominance

        node = self.model.node_at(gx, gy)
        if node is not None and node.max_scroll > 0 and vertical and not zoom_modifier:
            self.model.scroll_node(node, ev.dy * self.config.scroll_speed)
            return

        viewport = self.model.viewport
        if (zoom_modifier or vertical) and ev.dy != 0:
            factor = self.config.zoom_in_factor if ev.dy < 0 else self.config.zoom_out_factor
            if viewport.zoom_at(ev.x, ev.y, factor,
                                self.config.min_scale, self.config.max_scale):
                self._request_repaint()
            return

        viewport.pan(-ev.dx, -ev.dy)
        self._request_repaint()

    def _on_file_drop(self, ev: FileDrop):
        if not ev.paths:
            return
        gx, gy = self._to_graph(ev.x, ev.y)
        step = self.config.drop_stack_offset
        created = []
        for i, path in enumerate(ev.paths):
            created.append(self.model.create_reference_node(path, gx + i * step, gy + i * step))
        self.model.select_multiple(created)
        logger.info("Dropped %d file(s) onto the canvas", len(created))

    # ==================== Keyboard ====================

    def _on_key(self, ev: KeyPress):
        if self.editing_node is not None:
            return

        key = ev.key
        command = bool(ev.modifiers & TOGGLE_MODIFIER)

        if key in ("Delete", "BackSpace"):
            self.delete_selection()
        elif key == "Escape":
            if self.mode in (Mode.CONNECTING, Mode.RUBBER_BAND):
                self._set_mode(Mode.IDLE)
                self._connect_source = None
                self._preview_end = None
                self._moved = False
                self._request_repaint()
        elif command and key.lower() == "c":
            self.copy_selection()
        elif command and key.lower() == "v":
            self.paste()
        elif command and key.lower() == "a":
            self.model.select_all()

    def delete_selection(self):
        """Delete the selected connection, else every selected node."""
        if self.model.selected_connection is not None:
            self.model.delete_connection(self.model.selected_connection)
        elif self.model.selected_nodes:
            self.model.delete_nodes(list(self.model.selected_nodes))

    def copy_selection(self):
        """Copy selected nodes (not their connections) to the clipboard."""
        nodes = self.model.selected_nodes
        if not nodes:
            return
        min_x = min(n.x for n in nodes)
        min_y = min(n.y for n in nodes)
        max_x = max(n.x + n.width for n in nodes)
        max_y = max(n.y + n.height for n in nodes)
        self._clipboard = [
            {
                "kind": n.kind,
                "text": n.text,
                "file": n.file,
                "dx": n.x - min_x,
                "dy": n.y - min_y,
                "width": n.width,
                "height": n.height,
            }
            for n in nodes
        ]
        self._clipboard_size = (max_x - min_x, max_y - min_y)
        self._paste_count = 0
        logger.debug("Copied %d nodes", len(self._clipboard))

    def paste(self) -> List[Node]:
        """Paste clipboard nodes near the viewport centre with fresh ids."""
        if not self._clipboard:
            return []
        self._paste_count += 1
        offset = self.config.paste_offset * self._paste_count
        cx, cy = self._to_graph(self.view_width / 2, self.view_height / 2)
        origin_x = cx - self._clipboard_size[0] / 2 + offset
        origin_y = cy - self._clipboard_size[1] / 2 + offset

        pasted = []
        for entry in self._clipboard:
            x = origin_x + entry["dx"]
            y = origin_y + entry["dy"]
            if entry["kind"] is NodeKind.REFERENCE:
                node = self.model.create_reference_node(
                    entry["file"], x, y, entry["width"], entry["height"])
            else:
                node = self.model.create_node(
                    entry["text"], x, y, entry["width"], entry["height"])
            pasted.append(node)
        self.model.select_multiple(pasted)
        return pasted

    # ==================== Text editing ====================

    def begin_edit(self, node: Node) -> bool:
        """Start editing a node's text through the host overlay."""
        if self.editing_node is node:
            return False
        if self.editing_node is not None:
            self.cancel_edit()
        if self.mode is not Mode.IDLE:
            self.reset()

        self.editing_node = node
        self.model.set_editing(node, True)
        initial = (node.content or "") if node.is_reference else node.text
        logger.debug("Editing %s", node.id)
        if self.on_edit_requested:
            self.on_edit_requested(node, initial)
        return True

    def commit_edit(self, text: str):
        """Write edited text back and ask the host to save."""
        node = self.editing_node
        if node is None:
            return
        self.editing_node = None
        self.model.set_editing(node, False)

        if node.is_reference:
            self.model.update_node_content(node.id, text)
            if self.on_content_edited:
                self.on_content_edited(node, text)
        else:
            self.model.set_node_text(node, text if text.strip() else NEW_NODE_TEXT)

        if self.on_edit_finished:
            self.on_edit_finished(node)
        if self.on_save_requested:
            self.on_save_requested()

    def cancel_edit(self):
        """Discard the edit in progress."""
        node = self.editing_node
        if node is None:
            return
        self.editing_node = None
        self.model.set_editing(node, False)
        if self.on_edit_finished:
            self.on_edit_finished(node)
