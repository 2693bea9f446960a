import pytest

from infinitecanvas.model import (
    GraphModel, NodeKind, ContentState, ChangeKind, Viewport,
)


@pytest.fixture
def changes(model):
    seen = []
    model.on_changed = seen.append
    return seen


def test_create_node_uses_defaults_and_unique_ids(model, changes):
    a = model.create_node("A", 100, 100)
    b = model.create_node("B", 400, 100)

    assert (a.width, a.height) == (250, 120)
    assert a.kind is NodeKind.CONTENT
    assert a.id != b.id
    assert changes == [ChangeKind.STRUCTURE, ChangeKind.STRUCTURE]


def test_create_node_floors_size(model):
    node = model.create_node("tiny", 0, 0, width=10, height=10)
    assert (node.width, node.height) == (100, 60)


def test_reference_node_requests_content(model):
    requested = []
    model.on_content_requested = requested.append

    node = model.create_reference_node("notes/idea.md", 0, 0)

    assert node.kind is NodeKind.REFERENCE
    assert node.id.startswith("file_")
    assert (node.width, node.height) == (400, 400)
    assert node.content_state is ContentState.LOADING
    assert requested == [node]


def test_delete_node_cascades_connections(model):
    a = model.create_node("A", 0, 0)
    b = model.create_node("B", 400, 0)
    c = model.create_node("C", 800, 0)
    model.create_connection(a, b)
    keep = model.create_connection(b, c)
    model.create_connection(c, a)
    deleted = []
    model.on_node_deleted = deleted.append

    model.delete_node(a)

    assert model.get_node(a.id) is None
    assert model.connections == [keep]
    assert deleted == [a]


def test_delete_nodes_emits_once(model, changes):
    a = model.create_node("A", 0, 0)
    b = model.create_node("B", 400, 0)
    model.create_connection(a, b)
    changes.clear()

    model.delete_nodes([a, b])

    assert model.nodes == []
    assert model.connections == []
    assert changes == [ChangeKind.STRUCTURE]


def test_connection_rejects_self_and_foreign_nodes(model):
    a = model.create_node("A", 0, 0)
    other = GraphModel().create_node("elsewhere", 0, 0)

    assert model.create_connection(a, a) is None
    assert model.create_connection(a, other) is None
    assert model.connections == []


def test_parallel_connections_are_kept(model):
    a = model.create_node("A", 0, 0)
    b = model.create_node("B", 400, 0)

    first = model.create_connection(a, b, "right", "left")
    second = model.create_connection(a, b, "right", "left")

    assert first.id != second.id
    assert len(model.connections) == 2


def test_connection_drops_unknown_sides(model):
    a = model.create_node("A", 0, 0)
    b = model.create_node("B", 400, 0)
    conn = model.create_connection(a, b, "middle", "left")
    assert conn.from_side is None
    assert conn.to_side == "left"


def test_move_skips_editing_nodes(model):
    a = model.create_node("A", 0, 0)
    b = model.create_node("B", 400, 0)
    b.is_editing = True

    model.move_nodes([a, b], 10, 5)

    assert (a.x, a.y) == (10, 5)
    assert (b.x, b.y) == (400, 0)


def test_set_node_bounds_floors_size(model, changes):
    node = model.create_node("A", 0, 0)
    changes.clear()

    model.set_node_bounds(node, 5, 6, 50, 20)

    assert (node.x, node.y, node.width, node.height) == (5, 6, 100, 60)
    assert changes == [ChangeKind.GEOMETRY]


def test_scroll_is_clamped(model):
    node = model.create_node("A", 0, 0)
    node.max_scroll = 40

    model.scroll_node(node, 100)
    assert node.scroll_y == 40
    model.scroll_node(node, -500)
    assert node.scroll_y == 0


def test_selection_operations(model, changes):
    a = model.create_node("A", 0, 0)
    b = model.create_node("B", 400, 0)
    conn = model.create_connection(a, b)
    changes.clear()

    model.select_node(a)
    assert model.selected_nodes == [a] and a.is_selected

    model.toggle_selection(b)
    assert model.selected_nodes == [a, b]

    model.toggle_selection(a)
    assert model.selected_nodes == [b] and not a.is_selected

    model.select_connection(conn)
    assert model.selected_nodes == [] and model.selected_connection is conn
    assert not b.is_selected

    model.select_all()
    assert model.selected_nodes == [a, b]
    assert model.selected_connection is None

    model.clear_selection()
    assert model.selected_nodes == []
    assert all(kind is ChangeKind.SELECTION for kind in changes)


def test_select_multiple_extend(model):
    a = model.create_node("A", 0, 0)
    b = model.create_node("B", 400, 0)
    c = model.create_node("C", 800, 0)
    model.select_node(a)

    model.select_multiple([b, c], extend=True)
    assert model.selected_nodes == [a, b, c]

    model.select_multiple([c])
    assert model.selected_nodes == [c]


def test_nodes_in_rect_accepts_negative_size(model):
    a = model.create_node("A", 0, 0)
    model.create_node("B", 1000, 1000)

    assert model.nodes_in_rect(300, 200, -350, -250) == [a]


def test_node_at_prefers_topmost(model):
    model.create_node("below", 0, 0)
    top = model.create_node("above", 50, 50)
    assert model.node_at(60, 60) is top


def test_ancestors_oldest_first(model):
    root = model.create_node("root", 0, 0)
    mid = model.create_node("mid", 0, 200)
    leaf = model.create_node("leaf", 0, 400)
    model.create_connection(root, mid)
    model.create_connection(mid, leaf)
    # A cycle must not loop forever
    model.create_connection(leaf, root)

    assert model.ancestors_of(leaf) == [root, mid]


def test_update_content_ignores_missing_and_content_nodes(model):
    text_node = model.create_node("A", 0, 0)
    assert not model.update_node_content(text_node.id, "x")
    assert not model.update_node_content("file_99", "x")

    ref = model.create_reference_node("a.md", 0, 0)
    assert model.update_node_content(ref.id, "# Title")
    assert ref.content == "# Title"
    assert ref.content_state is ContentState.LOADED

    assert model.mark_content_unavailable(ref.id)
    assert ref.content is None
    assert ref.content_state is ContentState.UNAVAILABLE


def test_load_advances_id_counters(model):
    model.load_graph({
        "nodes": [{"id": "node_7", "type": "text", "text": "x",
                   "x": 0, "y": 0, "width": 250, "height": 120}],
        "edges": [],
    })

    node = model.create_node("fresh", 0, 0)
    assert node.id == "node_8"


def test_load_keeps_viewport_without_one_in_document(model):
    model.viewport.pan(30, 40)
    model.load_graph({"nodes": [], "edges": []})
    assert (model.viewport.offset_x, model.viewport.offset_y) == (30, 40)


def test_load_replaces_selection_and_requests_references(model):
    old = model.create_node("old", 0, 0)
    model.select_node(old)
    requested = []
    model.on_content_requested = requested.append

    report = model.load_graph({
        "nodes": [{"id": "file_1", "type": "file", "file": "a.md",
                   "x": 0, "y": 0, "width": 400, "height": 400}],
        "edges": [],
    })

    assert report.nodes_loaded == 1
    assert model.selected_nodes == []
    assert [n.id for n in requested] == ["file_1"]


def test_viewport_zoom_keeps_pointer_fixed():
    viewport = Viewport(offset_x=10, offset_y=20, scale=1.0)
    before = viewport.to_graph(300, 200)

    assert viewport.zoom_at(300, 200, 1.1, 0.1, 5.0)

    after = viewport.to_graph(300, 200)
    assert after[0] == pytest.approx(before[0])
    assert after[1] == pytest.approx(before[1])
    assert viewport.scale == pytest.approx(1.1)


def test_viewport_zoom_clamps():
    viewport = Viewport(scale=5.0)
    assert not viewport.zoom_at(0, 0, 1.1, 0.1, 5.0)
    assert viewport.scale == 5.0
