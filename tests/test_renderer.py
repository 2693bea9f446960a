import cairo
import pytest

from infinitecanvas.hit_regions import HandleType, HitRegionTable
from infinitecanvas.model import ContentState
from infinitecanvas.renderer import SceneRenderer, VisualState, parse_hex_color


def _frame(renderer, model, visual=None, width=800, height=600):
    surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
    cr = cairo.Context(surface)
    renderer.render(cr, width, height, model, visual or VisualState())
    return surface


@pytest.fixture
def renderer(config):
    return SceneRenderer(config)


def test_selected_node_gets_eight_handles(renderer, model):
    node = model.create_node("A", 100, 100)
    model.select_node(node)

    _frame(renderer, model)

    handles = renderer.hit_regions.get(node.id).handles
    assert {h.type for h in handles} == set(HandleType)
    se = next(h for h in handles if h.type is HandleType.SE)
    assert se.bounds.contains(350, 220)


def test_unselected_node_has_no_handles(renderer, model):
    node = model.create_node("A", 100, 100)
    _frame(renderer, model)
    regions = renderer.hit_regions.get(node.id)
    assert regions is None or regions.handles == []


def test_regions_are_rebuilt_each_frame(renderer, model):
    node = model.create_node("A", 100, 100)
    model.select_node(node)
    _frame(renderer, model)
    assert node.id in renderer.hit_regions

    model.clear_selection()
    _frame(renderer, model)
    assert node.id not in renderer.hit_regions


def test_overflowing_text_gets_scrollbar(renderer, model):
    node = model.create_node("\n".join(f"row {i}" for i in range(30)), 100, 100)

    _frame(renderer, model)

    assert node.content_height == pytest.approx(30 * 18 + 20)
    assert node.max_scroll == pytest.approx(node.content_height - node.height)
    bar = renderer.hit_regions.get(node.id).scrollbar
    assert bar.track.x == pytest.approx(node.x + node.width - 10)
    assert bar.thumb.height >= SceneRenderer.MIN_THUMB_HEIGHT


def test_scroll_is_reclamped_after_layout(renderer, model):
    node = model.create_node("short", 100, 100)
    node.scroll_y = 500

    _frame(renderer, model)

    assert node.max_scroll == 0
    assert node.scroll_y == 0


def test_reference_node_registers_edit_button(renderer, model):
    node = model.create_reference_node("docs/readme.md", 0, 0)

    _frame(renderer, model)

    button = renderer.hit_regions.get(node.id).buttons[0]
    assert button.action == "edit"
    assert button.bounds.contains(node.x + node.width - 40, node.y + 15)


@pytest.mark.parametrize("state", list(ContentState))
def test_reference_states_render(renderer, model, state):
    node = model.create_reference_node("a.md", 0, 0)
    node.content_state = state
    node.content = "# Heading\n\n- item\n\n```\ncode\n```" if state is ContentState.LOADED else None

    _frame(renderer, model)


def test_connections_and_overlays_render(renderer, model):
    a = model.create_node("**bold** and `code`", 0, 0)
    b = model.create_node("> quote", 400, 200)
    model.create_connection(a, b, "right", None).extra["color"] = "3"
    model.select_connection(model.connections[0])
    visual = VisualState(
        hovered_node_id=b.id, hovered_side="left",
        connecting_from_id=a.id, connecting_from_side="right",
        preview_end=(380, 260), rubber_band=(10, 10, 100, 50),
    )

    surface = _frame(renderer, model, visual)

    assert surface.get_width() == 800


def test_zoomed_frame_renders(renderer, model):
    model.create_node("A", 0, 0, provenance="anthropic/claude")
    model.viewport.scale = 0.25
    model.viewport.offset_x = -100
    _frame(renderer, model)


def test_wrapping_splits_long_lines(renderer):
    surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, 10, 10)
    cr = cairo.Context(surface)

    rows = renderer.layout_text(cr, "word " * 60, 120)

    assert len(rows) > 1


def test_parse_hex_color():
    assert parse_hex_color("#ff0000") == (1.0, 0.0, 0.0)
    assert parse_hex_color("#fff") == (1.0, 1.0, 1.0)
    assert parse_hex_color("4") == parse_hex_color("#44cf6e")
    assert parse_hex_color("nope", (0.1, 0.2, 0.3)) == (0.1, 0.2, 0.3)
    assert parse_hex_color(None, (0, 0, 0)) == (0, 0, 0)


def test_hit_region_table():
    table = HitRegionTable()
    table.regions_for("a")
    assert "a" in table and len(table) == 1
    table.discard("a")
    assert table.get("a") is None
    table.regions_for("b")
    table.begin_frame()
    assert len(table) == 0

