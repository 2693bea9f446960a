import pytest

from infinitecanvas.events import (
    PointerDown, PointerMove, PointerUp, DoubleClick, Wheel, KeyPress,
    PointerLeave, FocusLost, FileDrop, Modifier, PointerButton,
)
from infinitecanvas.hit_regions import HandleType
from infinitecanvas.interaction import Mode, NEW_NODE_TEXT
from infinitecanvas.model import NodeKind

from tests.conftest import render


def drag(engine, start, end, modifiers=Modifier.NONE, button=PointerButton.PRIMARY,
         steps=1):
    engine.handle_input(PointerDown(*start, button, modifiers))
    for i in range(1, steps + 1):
        x = start[0] + (end[0] - start[0]) * i / steps
        y = start[1] + (end[1] - start[1]) * i / steps
        engine.handle_input(PointerMove(x, y, modifiers))
    engine.handle_input(PointerUp(*end, button, modifiers))


def click(engine, x, y, modifiers=Modifier.NONE):
    engine.handle_input(PointerDown(x, y, PointerButton.PRIMARY, modifiers))
    engine.handle_input(PointerUp(x, y, PointerButton.PRIMARY, modifiers))


@pytest.fixture
def pair(engine):
    n1 = engine.model.create_node("N1", 100, 100)
    n2 = engine.model.create_node("N2", 400, 100)
    return n1, n2


# ==================== Dragging and resizing ====================

def test_drag_selected_node(engine, pair):
    n1, n2 = pair
    engine.model.select_node(n1)
    render(engine)

    drag(engine, (150, 150), (200, 130))

    assert (n1.x, n1.y) == (150, 80)
    assert (n2.x, n2.y) == (400, 100)
    assert engine.controller.mode is Mode.IDLE


def test_drag_moves_whole_selection(engine, pair):
    n1, n2 = pair
    engine.model.select_all()
    render(engine)

    drag(engine, (150, 150), (180, 170), steps=3)

    assert (n1.x, n1.y) == pytest.approx((130, 120))
    assert (n2.x, n2.y) == pytest.approx((430, 120))


def test_drag_below_threshold_does_not_move(engine, pair):
    n1, _ = pair
    render(engine)

    drag(engine, (150, 150), (151, 150))

    assert (n1.x, n1.y) == (100, 100)
    assert engine.model.selected_nodes == [n1]


def test_drag_respects_zoom(engine, pair):
    n1, _ = pair
    engine.model.viewport.scale = 2.0
    render(engine)

    # (150,150) graph is (300,300) on screen
    drag(engine, (300, 300), (400, 300))

    assert n1.x == pytest.approx(150)


def test_resize_se_handle_and_floor(engine, pair):
    n1, _ = pair
    engine.model.select_node(n1)
    render(engine)

    drag(engine, (350, 220), (380, 230))

    assert (n1.width, n1.height) == (280, 130)
    assert (n1.x, n1.y) == (100, 100)

    render(engine)
    drag(engine, (380, 230), (100, 230))

    assert n1.width == 100
    assert n1.x == 100


def test_resize_nw_handle_keeps_opposite_corner(engine, pair):
    n1, _ = pair
    engine.model.select_node(n1)
    render(engine)

    drag(engine, (100, 100), (80, 90))

    assert (n1.x, n1.y) == (80, 90)
    assert (n1.width, n1.height) == (270, 130)

    render(engine)
    drag(engine, (80, 90), (500, 400))

    assert (n1.width, n1.height) == (100, 60)
    # Right and bottom edges stay where they were
    assert n1.x + n1.width == 350
    assert n1.y + n1.height == 220


@pytest.mark.parametrize("handle", list(HandleType))
def test_resize_floor_for_every_handle(engine, pair, handle):
    n1, _ = pair
    engine.model.select_node(n1)
    render(engine)

    xs = {"w": 100, "c": 225, "e": 350}
    ys = {"n": 100, "c": 160, "s": 220}
    hx = "e" if handle.moves_right else "w" if handle.moves_left else "c"
    hy = "s" if handle.moves_bottom else "n" if handle.moves_top else "c"
    start = (xs[hx], ys[hy])
    # Pull far past the opposite edges
    dx = -1000 if handle.moves_right else 1000 if handle.moves_left else 0
    dy = -1000 if handle.moves_bottom else 1000 if handle.moves_top else 0

    drag(engine, start, (start[0] + dx, start[1] + dy), steps=3)

    assert n1.width >= 100
    assert n1.height >= 60
    if handle.moves_right:
        assert (n1.x, n1.width) == (100, 100)
    elif handle.moves_left:
        assert (n1.x + n1.width, n1.width) == (350, 100)
    else:
        assert (n1.x, n1.width) == (100, 250)
    if handle.moves_bottom:
        assert (n1.y, n1.height) == (100, 60)
    elif handle.moves_top:
        assert (n1.y + n1.height, n1.height) == (220, 60)
    else:
        assert (n1.y, n1.height) == (100, 120)


def test_handles_only_for_selected_nodes(engine, pair):
    n1, _ = pair
    render(engine)

    # Not selected: pressing the corner starts a node drag instead
    drag(engine, (349, 219), (400, 260))

    assert (n1.width, n1.height) == (250, 120)
    assert (n1.x, n1.y) == (151, 141)


# ==================== Connecting ====================

def test_connect_between_points(engine, pair):
    n1, n2 = pair
    render(engine)

    drag(engine, (350, 160), (400, 160), modifiers=Modifier.SHIFT, steps=2)

    assert len(engine.model.connections) == 1
    conn = engine.model.connections[0]
    assert (conn.from_id, conn.to_id) == (n1.id, n2.id)
    assert (conn.from_side, conn.to_side) == ("right", "left")
    assert (n1.x, n2.x) == (100, 400)


def test_connect_modifier_wins_over_resize_handle(engine, pair):
    n1, n2 = pair
    engine.model.select_node(n1)
    render(engine)

    # The east handle of a selected node sits on its right connection point
    engine.handle_input(PointerDown(350, 160, PointerButton.PRIMARY, Modifier.SHIFT))
    assert engine.controller.mode is Mode.CONNECTING

    engine.handle_input(PointerMove(400, 160, Modifier.SHIFT))
    engine.handle_input(PointerUp(400, 160, PointerButton.PRIMARY, Modifier.SHIFT))

    assert [(c.from_id, c.to_id) for c in engine.model.connections] == [(n1.id, n2.id)]
    assert (n1.width, n1.height) == (250, 120)


def test_resize_handle_without_connect_modifier(engine, pair):
    n1, _ = pair
    engine.model.select_node(n1)
    render(engine)

    engine.handle_input(PointerDown(350, 160, PointerButton.PRIMARY))

    assert engine.controller.mode is Mode.RESIZING


def test_connect_onto_node_body_picks_closest_side(engine, pair):
    n1, n2 = pair
    render(engine)

    drag(engine, (350, 160), (600, 200), modifiers=Modifier.SHIFT)

    conn = engine.model.connections[0]
    assert conn.to_id == n2.id
    assert conn.to_side == "left"


def test_connect_to_empty_canvas_discards(engine, pair):
    render(engine)

    drag(engine, (350, 160), (360, 500), modifiers=Modifier.SHIFT)

    assert engine.model.connections == []
    assert engine.controller.mode is Mode.IDLE


def test_connect_to_self_is_ignored(engine, pair):
    render(engine)

    drag(engine, (350, 160), (225, 220), modifiers=Modifier.SHIFT)

    assert engine.model.connections == []


def test_escape_cancels_connecting(engine, pair):
    render(engine)
    engine.handle_input(PointerDown(350, 160, PointerButton.PRIMARY, Modifier.SHIFT))
    assert engine.controller.mode is Mode.CONNECTING

    engine.handle_input(KeyPress("Escape"))
    engine.handle_input(PointerUp(400, 160, PointerButton.PRIMARY, Modifier.SHIFT))

    assert engine.controller.mode is Mode.IDLE
    assert engine.model.connections == []


@pytest.mark.parametrize("event", [PointerLeave(), FocusLost()])
def test_leave_resets_gesture(engine, pair, event):
    render(engine)
    engine.handle_input(PointerDown(350, 160, PointerButton.PRIMARY, Modifier.SHIFT))

    engine.handle_input(event)
    engine.handle_input(PointerUp(400, 160, PointerButton.PRIMARY, Modifier.SHIFT))

    assert engine.controller.mode is Mode.IDLE
    assert engine.model.connections == []


def test_visual_state_while_connecting(engine, pair):
    n1, _ = pair
    render(engine)
    engine.handle_input(PointerDown(350, 160, PointerButton.PRIMARY, Modifier.SHIFT))
    engine.handle_input(PointerMove(370, 180, Modifier.SHIFT))

    state = engine.controller.visual_state()

    assert state.connecting_from_id == n1.id
    assert state.connecting_from_side == "right"
    assert state.preview_end == (370, 180)


# ==================== Selection ====================

def test_click_connection_selects_it(engine, pair):
    n1, n2 = pair
    conn = engine.model.create_connection(n1, n2, "right", "left")
    render(engine)

    click(engine, 375, 163)

    assert engine.model.selected_connection is conn
    assert engine.model.selected_nodes == []


def test_delete_removes_selected_connection_first(engine, pair):
    n1, n2 = pair
    conn = engine.model.create_connection(n1, n2, "right", "left")
    engine.model.select_connection(conn)

    engine.handle_input(KeyPress("Delete"))

    assert engine.model.connections == []
    assert len(engine.model.nodes) == 2


def test_backspace_deletes_selected_nodes(engine, pair):
    n1, n2 = pair
    engine.model.create_connection(n1, n2)
    engine.model.select_node(n1)

    engine.handle_input(KeyPress("BackSpace"))

    assert engine.model.nodes == [n2]
    assert engine.model.connections == []


def test_rubber_band_selects_intersecting_nodes(engine, pair):
    n1, n2 = pair
    far = engine.model.create_node("far", 100, 400)
    render(engine)

    drag(engine, (50, 50), (420, 150), steps=4)

    assert engine.model.selected_nodes == [n1, n2]
    assert far not in engine.model.selected_nodes


def test_rubber_band_extends_with_shift(engine, pair):
    n1, n2 = pair
    far = engine.model.create_node("far", 100, 400)
    engine.model.select_node(far)
    render(engine)

    drag(engine, (50, 50), (200, 150), modifiers=Modifier.SHIFT, steps=2)

    assert engine.model.selected_nodes == [far, n1]


def test_click_empty_canvas_clears_selection(engine, pair):
    n1, _ = pair
    engine.model.select_node(n1)
    render(engine)

    click(engine, 700, 500)

    assert engine.model.selected_nodes == []


def test_control_click_toggles(engine, pair):
    n1, n2 = pair
    engine.model.select_node(n1)
    render(engine)

    click(engine, 450, 150, Modifier.CONTROL)
    assert engine.model.selected_nodes == [n1, n2]

    render(engine)
    click(engine, 150, 150, Modifier.CONTROL)
    assert engine.model.selected_nodes == [n2]


def test_plain_click_on_selected_narrows_selection(engine, pair):
    n1, n2 = pair
    engine.model.select_all()
    render(engine)

    click(engine, 150, 150)

    assert engine.model.selected_nodes == [n1]


def test_control_a_selects_all(engine, pair):
    engine.handle_input(KeyPress("a", Modifier.CONTROL))
    assert engine.model.selected_nodes == list(pair)


# ==================== Viewport ====================

def test_middle_button_pans(engine, pair):
    n1, _ = pair
    render(engine)

    drag(engine, (150, 150), (190, 120), button=PointerButton.MIDDLE)

    assert (engine.model.viewport.offset_x, engine.model.viewport.offset_y) == (40, -30)
    assert (n1.x, n1.y) == (100, 100)


def test_alt_drag_on_empty_canvas_pans(engine):
    render(engine)
    drag(engine, (600, 500), (610, 520), modifiers=Modifier.ALT)
    assert (engine.model.viewport.offset_x, engine.model.viewport.offset_y) == (10, 20)


def test_wheel_zooms_around_pointer(engine):
    viewport = engine.model.viewport
    engine.handle_input(Wheel(200, 100, 0, -10))

    assert viewport.scale == pytest.approx(1.1)
    assert viewport.offset_x == pytest.approx(-20)
    assert viewport.offset_y == pytest.approx(-10)

    engine.handle_input(Wheel(200, 100, 0, 10))
    assert viewport.scale == pytest.approx(0.99)


def test_horizontal_wheel_pans(engine):
    engine.handle_input(Wheel(200, 100, 30, 5))
    viewport = engine.model.viewport
    assert (viewport.offset_x, viewport.offset_y) == (-30, -5)
    assert viewport.scale == 1.0


def test_wheel_scrolls_overflowing_node(engine):
    node = engine.model.create_node("\n".join(f"line {i}" for i in range(40)), 100, 100)
    render(engine)
    assert node.max_scroll > 0

    engine.handle_input(Wheel(150, 150, 0, 40))

    assert node.scroll_y == 20
    assert engine.model.viewport.scale == 1.0


def test_control_wheel_over_node_zooms(engine):
    node = engine.model.create_node("\n".join(f"line {i}" for i in range(40)), 100, 100)
    render(engine)

    engine.handle_input(Wheel(150, 150, 0, -10, Modifier.CONTROL))

    assert node.scroll_y == 0
    assert engine.model.viewport.scale == pytest.approx(1.1)


def test_scrollbar_drag(engine):
    node = engine.model.create_node("\n".join(f"line {i}" for i in range(60)), 100, 100)
    render(engine)
    bar = engine.renderer.hit_regions.get(node.id).scrollbar
    assert bar is not None
    track, thumb = bar.track, bar.thumb
    grab_x = thumb.x + thumb.width / 2

    drag(engine, (grab_x, thumb.y + 1), (grab_x, track.y + track.height + 50))

    assert node.scroll_y == pytest.approx(node.max_scroll)
    assert (node.x, node.y) == (100, 100)


# ==================== Creation and editing ====================

def test_double_click_empty_canvas_creates_node(engine):
    engine.handle_input(DoubleClick(300, 300))

    node = engine.model.nodes[0]
    assert node.text == NEW_NODE_TEXT
    assert (node.x, node.y) == (200, 250)
    assert engine.model.selected_nodes == [node]


def test_double_click_node_edits_and_commit(engine, pair):
    n1, _ = pair
    requested = []
    finished = []
    engine.on_edit_requested = lambda node, text: requested.append((node, text))
    engine.on_edit_finished = finished.append

    engine.handle_input(DoubleClick(150, 150))
    assert requested == [(n1, "N1")]
    assert n1.is_editing

    # Editing nodes do not move and ignore keys
    engine.handle_input(KeyPress("Delete"))
    assert engine.model.get_node(n1.id) is n1

    engine.commit_edit("  ")
    assert n1.text == NEW_NODE_TEXT
    assert not n1.is_editing
    assert finished == [n1]


def test_double_click_sequence_on_empty_canvas_creates_node(engine):
    click(engine, 300, 300)
    engine.handle_input(PointerDown(300, 300, PointerButton.PRIMARY))
    engine.handle_input(DoubleClick(300, 300))
    engine.handle_input(PointerUp(300, 300, PointerButton.PRIMARY))

    assert [n.text for n in engine.model.nodes] == [NEW_NODE_TEXT]
    assert engine.model.selected_nodes == engine.model.nodes
    assert engine.controller.mode is Mode.IDLE


def test_double_click_sequence_on_node_starts_edit(engine, pair):
    n1, _ = pair
    requested = []
    engine.on_edit_requested = lambda node, text: requested.append(node)
    render(engine)

    click(engine, 150, 150)
    engine.handle_input(PointerDown(150, 150, PointerButton.PRIMARY))
    engine.handle_input(DoubleClick(150, 150))
    engine.handle_input(PointerUp(150, 150, PointerButton.PRIMARY))

    assert requested == [n1]
    assert engine.controller.editing_node is n1
    assert (n1.x, n1.y) == (100, 100)


def test_cancel_edit_keeps_text(engine, pair):
    n1, _ = pair
    engine.handle_input(DoubleClick(150, 150))
    engine.cancel_edit()
    assert n1.text == "N1"
    assert not n1.is_editing


def test_edit_button_on_reference_node(engine, host):
    ref = engine.model.create_reference_node("notes.md", 100, 100)
    cid = host.content_requests[-1][1]
    engine.content_loaded(cid, "hello")
    render(engine)
    button = engine.renderer.hit_regions.get(ref.id).buttons[0]
    requested = []
    engine.on_edit_requested = lambda node, text: requested.append(text)

    click(engine, button.bounds.x + 5, button.bounds.y + 5)

    assert requested == ["hello"]
    engine.commit_edit("changed")
    assert ref.content == "changed"
    assert host.saved == [("notes.md", "changed")]


def test_file_drop_stacks_reference_nodes(engine, host):
    engine.handle_input(FileDrop(100, 100, ("a.md", "b.md")))

    nodes = engine.model.nodes
    assert [n.kind for n in nodes] == [NodeKind.REFERENCE, NodeKind.REFERENCE]
    assert [(n.x, n.y) for n in nodes] == [(100, 100), (130, 130)]
    assert engine.model.selected_nodes == nodes
    assert [path for path, _ in host.content_requests] == ["a.md", "b.md"]


def test_copy_paste_creates_fresh_nodes(engine, pair):
    n1, n2 = pair
    engine.model.create_connection(n1, n2)
    engine.model.select_all()

    engine.handle_input(KeyPress("c", Modifier.CONTROL))
    engine.handle_input(KeyPress("v", Modifier.CONTROL))

    pasted = engine.model.selected_nodes
    assert len(engine.model.nodes) == 4
    assert [n.text for n in pasted] == ["N1", "N2"]
    assert {n.id for n in pasted}.isdisjoint({n1.id, n2.id})
    assert pasted[1].x - pasted[0].x == 300
    # Connections are not copied
    assert len(engine.model.connections) == 1


def test_hover_cursor(engine, pair):
    cursors = []
    engine.on_cursor_changed = cursors.append
    render(engine)

    engine.handle_input(PointerMove(150, 150))
    engine.handle_input(PointerMove(350, 160))
    engine.handle_input(PointerMove(700, 500))

    assert cursors == ["grab", "copy", "default"]
