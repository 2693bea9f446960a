"""GTK canvas widget that hosts the engine."""

import logging
import threading
from typing import Optional, Set

import gi

gi.require_version("Gtk", "4.0")
gi.require_version("Gdk", "4.0")
from gi.repository import Gtk, Gdk, GLib

from infinitecanvas.engine import CanvasEngine
from infinitecanvas.events import (
    PointerDown, PointerMove, PointerUp, DoubleClick, Wheel, KeyPress,
    PointerLeave, FocusLost, FileDrop, Modifier, PointerButton,
)
from infinitecanvas.model import Node

logger = logging.getLogger(__name__)

# Pixels per wheel notch for non-smooth scroll devices
WHEEL_STEP = 50.0

HANDLED_KEYS = {"Delete", "BackSpace", "Escape"}
COMMAND_KEYS = {"c", "v", "a"}


def modifiers_from_state(state: Gdk.ModifierType) -> Modifier:
    """Map GDK modifier state to engine modifiers."""
    mods = Modifier.NONE
    if state & Gdk.ModifierType.SHIFT_MASK:
        mods |= Modifier.SHIFT
    if state & Gdk.ModifierType.CONTROL_MASK:
        mods |= Modifier.CONTROL
    if state & Gdk.ModifierType.ALT_MASK:
        mods |= Modifier.ALT
    if state & (Gdk.ModifierType.META_MASK | Gdk.ModifierType.SUPER_MASK):
        mods |= Modifier.META
    return mods


class GLibScheduler:
    """Engine scheduler backed by GLib main-loop sources.

    Worker threads may call `call_later`; callbacks always run on the main loop.
    """

    def __init__(self):
        self._active: Set[int] = set()
        self._lock = threading.Lock()

    def call_later(self, delay: float, callback) -> int:
        source = [0]

        def _run():
            with self._lock:
                self._active.discard(source[0])
            callback()
            return GLib.SOURCE_REMOVE

        # Hold the lock until the id is recorded so _run cannot miss it
        with self._lock:
            if delay <= 0:
                source[0] = GLib.idle_add(_run)
            else:
                source[0] = GLib.timeout_add(int(delay * 1000), _run)
            self._active.add(source[0])
        return source[0]

    def cancel(self, handle: int):
        with self._lock:
            if handle not in self._active:
                return
            self._active.discard(handle)
        GLib.source_remove(handle)


class GraphCanvas(Gtk.DrawingArea):
    """Drawing area that turns GTK input into engine events."""

    def __init__(self, engine: CanvasEngine):
        super().__init__()

        self.engine = engine
        self.set_draw_func(self._on_draw)
        self.set_focusable(True)
        self.set_hexpand(True)
        self.set_vexpand(True)

        # Last pointer position, for wheel events
        self.last_mouse_x = 0.0
        self.last_mouse_y = 0.0

        # Drag gesture state
        self._drag_start_x = 0.0
        self._drag_start_y = 0.0
        self._drag_button = PointerButton.PRIMARY

        # Editor overlay
        self._editor: Optional[Gtk.Popover] = None
        self._editor_view: Optional[Gtk.TextView] = None
        self._editor_node: Optional[Node] = None

        engine.on_repaint = self.queue_draw
        engine.on_cursor_changed = self.set_cursor_from_name
        engine.on_edit_requested = self._show_editor
        engine.on_edit_finished = self._on_edit_finished

        self.connect("resize", self._on_resize)
        self._setup_event_controllers()

    def _setup_event_controllers(self):
        """Setup mouse, keyboard and drop controllers."""
        # Press, drag and release for every button
        drag_ctrl = Gtk.GestureDrag()
        drag_ctrl.set_button(0)
        drag_ctrl.connect("drag-begin", self._on_drag_begin)
        drag_ctrl.connect("drag-update", self._on_drag_update)
        drag_ctrl.connect("drag-end", self._on_drag_end)
        self.add_controller(drag_ctrl)

        # Double click
        click_ctrl = Gtk.GestureClick()
        click_ctrl.set_button(Gdk.BUTTON_PRIMARY)
        click_ctrl.connect("pressed", self._on_click)
        self.add_controller(click_ctrl)

        # Mouse motion
        motion_ctrl = Gtk.EventControllerMotion()
        motion_ctrl.connect("motion", self._on_motion)
        motion_ctrl.connect("leave", self._on_leave)
        self.add_controller(motion_ctrl)

        # Scroll (zoom, pan, node scroll)
        scroll_ctrl = Gtk.EventControllerScroll()
        scroll_ctrl.set_flags(Gtk.EventControllerScrollFlags.BOTH_AXES)
        scroll_ctrl.connect("scroll", self._on_scroll)
        self.add_controller(scroll_ctrl)

        # Keyboard
        key_ctrl = Gtk.EventControllerKey()
        key_ctrl.connect("key-pressed", self._on_key_pressed)
        self.add_controller(key_ctrl)

        # Focus
        focus_ctrl = Gtk.EventControllerFocus()
        focus_ctrl.connect("leave", lambda c: self.engine.handle_input(FocusLost()))
        self.add_controller(focus_ctrl)

        # Files dropped from a file manager
        drop_target = Gtk.DropTarget.new(Gdk.FileList, Gdk.DragAction.COPY)
        drop_target.connect("drop", self._on_drop)
        self.add_controller(drop_target)

    def _on_draw(self, area, cr, width, height):
        """Main drawing function."""
        self.engine.draw(cr, width, height)

    def _on_resize(self, area, width, height):
        self.engine.set_view_size(width, height)

    # ==================== Pointer ====================

    def _on_drag_begin(self, gesture, start_x, start_y):
        """Handle button press."""
        self.grab_focus()
        self._drag_start_x = start_x
        self._drag_start_y = start_y
        button = gesture.get_current_button()
        self._drag_button = (PointerButton(button) if button in (1, 2, 3)
                             else PointerButton.SECONDARY)
        state = gesture.get_current_event_state()
        self.engine.handle_input(PointerDown(
            start_x, start_y, self._drag_button, modifiers_from_state(state)))

    def _on_drag_update(self, gesture, offset_x, offset_y):
        """Handle movement with a button held."""
        x = self._drag_start_x + offset_x
        y = self._drag_start_y + offset_y
        self.last_mouse_x, self.last_mouse_y = x, y
        state = gesture.get_current_event_state()
        self.engine.handle_input(PointerMove(x, y, modifiers_from_state(state)))

    def _on_drag_end(self, gesture, offset_x, offset_y):
        """Handle button release."""
        x = self._drag_start_x + offset_x
        y = self._drag_start_y + offset_y
        state = gesture.get_current_event_state()
        self.engine.handle_input(PointerUp(
            x, y, self._drag_button, modifiers_from_state(state)))

    def _on_click(self, gesture, n_press, x, y):
        """Forward double clicks."""
        if n_press == 2:
            state = gesture.get_current_event_state()
            self.engine.handle_input(DoubleClick(x, y, modifiers_from_state(state)))

    def _on_motion(self, controller, x, y):
        """Handle mouse motion."""
        if x == self.last_mouse_x and y == self.last_mouse_y:
            return
        self.last_mouse_x = x
        self.last_mouse_y = y
        state = controller.get_current_event_state()
        self.engine.handle_input(PointerMove(x, y, modifiers_from_state(state)))

    def _on_leave(self, controller):
        """Handle mouse leaving canvas."""
        self.engine.handle_input(PointerLeave())

    def _on_scroll(self, controller, dx, dy):
        """Handle wheel and touchpad scrolling."""
        if controller.get_unit() == Gdk.ScrollUnit.WHEEL:
            dx *= WHEEL_STEP
            dy *= WHEEL_STEP
        state = controller.get_current_event_state()
        self.engine.handle_input(Wheel(
            self.last_mouse_x, self.last_mouse_y, dx, dy, modifiers_from_state(state)))
        return True

    def _on_drop(self, target, value, x, y):
        """Create reference nodes for dropped files."""
        paths = tuple(f.get_path() for f in value.get_files() if f.get_path())
        if not paths:
            return False
        self.engine.handle_input(FileDrop(x, y, paths))
        return True

    # ==================== Keyboard ====================

    def _on_key_pressed(self, controller, keyval, keycode, state):
        """Forward canvas shortcuts."""
        name = Gdk.keyval_name(keyval) or ""
        mods = modifiers_from_state(state)
        command = bool(mods & (Modifier.CONTROL | Modifier.META))
        if name not in HANDLED_KEYS and not (command and name.lower() in COMMAND_KEYS):
            return False
        self.engine.handle_input(KeyPress(name, mods))
        return True

    # ==================== Editor overlay ====================

    def _node_screen_rect(self, node: Node) -> Gdk.Rectangle:
        viewport = self.engine.model.viewport
        x, y = viewport.to_screen(node.x, node.y)
        rect = Gdk.Rectangle()
        rect.x = int(x)
        rect.y = int(y)
        rect.width = max(1, int(node.width * viewport.scale))
        rect.height = max(1, int(node.height * viewport.scale))
        return rect

    def _show_editor(self, node: Node, text: str):
        """Open a text editor popover over the node."""
        self._close_editor()
        self._editor_node = node

        view = Gtk.TextView()
        view.set_wrap_mode(Gtk.WrapMode.WORD_CHAR)
        view.set_monospace(node.is_reference)
        view.get_buffer().set_text(text)

        key_ctrl = Gtk.EventControllerKey()
        key_ctrl.connect("key-pressed", self._on_editor_key)
        view.add_controller(key_ctrl)

        scroller = Gtk.ScrolledWindow()
        scroller.set_child(view)
        scroller.set_size_request(max(240, int(node.width)), max(120, int(node.height)))

        popover = Gtk.Popover()
        popover.set_child(scroller)
        popover.set_parent(self)
        popover.set_pointing_to(self._node_screen_rect(node))
        popover.set_position(Gtk.PositionType.BOTTOM)
        popover.connect("closed", self._on_editor_closed)

        self._editor = popover
        self._editor_view = view
        popover.popup()
        view.grab_focus()

    def _editor_text(self) -> str:
        buffer = self._editor_view.get_buffer()
        return buffer.get_text(buffer.get_start_iter(), buffer.get_end_iter(), False)

    def _on_editor_key(self, controller, keyval, keycode, state):
        """Ctrl+Enter commits, Escape cancels."""
        if keyval == Gdk.KEY_Escape:
            self._editor_node = None
            self.engine.cancel_edit()
            return True
        if keyval in (Gdk.KEY_Return, Gdk.KEY_KP_Enter) and state & Gdk.ModifierType.CONTROL_MASK:
            self._commit_editor()
            return True
        return False

    def _commit_editor(self):
        if self._editor_node is None or self._editor_view is None:
            return
        text = self._editor_text()
        self._editor_node = None
        self.engine.commit_edit(text)

    def _on_editor_closed(self, popover):
        # Closing by clicking elsewhere counts as a commit
        self._commit_editor()

        def _do_unparent():
            if popover.get_parent() is not None:
                popover.unparent()
            return GLib.SOURCE_REMOVE

        GLib.idle_add(_do_unparent)
        if self._editor is popover:
            self._editor = None
            self._editor_view = None
        self.grab_focus()

    def _on_edit_finished(self, node: Node):
        self._editor_node = None
        self._close_editor()

    def _close_editor(self):
        if self._editor is not None:
            self._editor.popdown()
