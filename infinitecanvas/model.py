"""Graph model: nodes, connections, viewport and selection."""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any, Callable, Iterable, Tuple

from infinitecanvas.config import CanvasConfig

logger = logging.getLogger(__name__)

SIDES = ("top", "right", "bottom", "left")

_NODE_ID_RE = re.compile(r"^(?:node_|file_)(\d+)$")
_EDGE_ID_RE = re.compile(r"^edge_(\d+)$")


class NodeKind(Enum):
    """Node kinds, valued by their wire `type`."""
    CONTENT = "text"
    REFERENCE = "file"


class ContentState(Enum):
    """Load state of a reference node's external content."""
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    UNAVAILABLE = "unavailable"


class ChangeKind(Enum):
    """What a model mutation touched."""
    STRUCTURE = "structure"
    GEOMETRY = "geometry"
    CONTENT = "content"
    SELECTION = "selection"
    VIEWPORT = "viewport"


@dataclass
class NodeStyle:
    """Colors for a node."""
    background: str = "#3c3c3c"
    text: str = "#cccccc"
    border: str = "#414141"

    @classmethod
    def for_kind(cls, kind: NodeKind) -> "NodeStyle":
        if kind is NodeKind.REFERENCE:
            return cls(background="#2d2d2d", text="#cccccc", border="#4a5568")
        return cls()


@dataclass(eq=False)
class Node:
    """A rectangular block on the canvas."""
    id: str
    kind: NodeKind = NodeKind.CONTENT
    x: float = 0.0
    y: float = 0.0
    width: float = 250.0
    height: float = 120.0
    text: str = ""
    file: Optional[str] = None

    # Reference content, filled in by the host
    content: Optional[str] = None
    content_state: ContentState = ContentState.UNLOADED

    # Text scrolling; content_height and max_scroll are recomputed every frame
    scroll_y: float = 0.0
    content_height: float = 0.0
    max_scroll: float = 0.0

    is_selected: bool = False
    is_editing: bool = False
    style: NodeStyle = field(default_factory=NodeStyle)
    provenance: Optional[str] = None

    # Unknown wire fields, written back unchanged
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_reference(self) -> bool:
        return self.kind is NodeKind.REFERENCE

    @property
    def display_text(self) -> str:
        """Text shown inside the node body."""
        if self.is_reference:
            return self.content or ""
        return self.text

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def contains_point(self, px: float, py: float) -> bool:
        """Check if a point is inside this node."""
        return (self.x <= px <= self.x + self.width and
                self.y <= py <= self.y + self.height)

    def intersects(self, x: float, y: float, w: float, h: float) -> bool:
        """Check if this node overlaps the given rectangle."""
        return not (self.x + self.width < x or self.x > x + w or
                    self.y + self.height < y or self.y > y + h)


@dataclass(eq=False)
class Connection:
    """A directed link between two nodes."""
    id: str
    from_id: str
    to_id: str
    from_side: Optional[str] = None
    to_side: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def touches(self, node_id: str) -> bool:
        return self.from_id == node_id or self.to_id == node_id


@dataclass
class Viewport:
    """Screen transform: screen = graph * scale + offset."""
    offset_x: float = 0.0
    offset_y: float = 0.0
    scale: float = 1.0

    def to_graph(self, sx: float, sy: float) -> Tuple[float, float]:
        return ((sx - self.offset_x) / self.scale,
                (sy - self.offset_y) / self.scale)

    def to_screen(self, gx: float, gy: float) -> Tuple[float, float]:
        return (gx * self.scale + self.offset_x,
                gy * self.scale + self.offset_y)

    def pan(self, dx: float, dy: float):
        self.offset_x += dx
        self.offset_y += dy

    def zoom_at(self, sx: float, sy: float, factor: float,
                min_scale: float, max_scale: float) -> bool:
        """Zoom around a screen point, keeping it fixed. Returns True if changed."""
        new_scale = max(min_scale, min(max_scale, self.scale * factor))
        if new_scale == self.scale:
            return False
        ratio = (new_scale - self.scale) / self.scale
        self.offset_x -= (sx - self.offset_x) * ratio
        self.offset_y -= (sy - self.offset_y) * ratio
        self.scale = new_scale
        return True


@dataclass
class LoadReport:
    """Outcome of loading a graph document."""
    nodes_loaded: int = 0
    nodes_skipped: int = 0
    edges_loaded: int = 0
    edges_skipped: int = 0
    viewport_applied: bool = False


class GraphModel:
    """Authoritative owner of the graph.

    Every successful mutation emits exactly one `on_changed(kind)`.
    """

    def __init__(self, config: Optional[CanvasConfig] = None):
        self.config = config or CanvasConfig()
        self.nodes: List[Node] = []
        self.connections: List[Connection] = []
        self.viewport = Viewport()
        self.selected_nodes: List[Node] = []
        self.selected_connection: Optional[Connection] = None

        # Top-level document keys we don't interpret
        self.extra: Dict[str, Any] = {}

        self._node_counter = 0
        self._edge_counter = 0

        # Callbacks
        self.on_changed: Optional[Callable[[ChangeKind], None]] = None
        self.on_content_requested: Optional[Callable[[Node], None]] = None
        self.on_node_deleted: Optional[Callable[[Node], None]] = None
        self.on_graph_loaded: Optional[Callable[[LoadReport], None]] = None

    def _emit(self, kind: ChangeKind):
        if self.on_changed:
            self.on_changed(kind)

    # ==================== Lookup ====================

    def get_node(self, node_id: str) -> Optional[Node]:
        """Find a node by id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        """Find a connection by id."""
        for conn in self.connections:
            if conn.id == connection_id:
                return conn
        return None

    def contains(self, node: Node) -> bool:
        return any(n is node for n in self.nodes)

    def node_at(self, x: float, y: float) -> Optional[Node]:
        """Topmost node containing a graph point."""
        for node in reversed(self.nodes):
            if node.contains_point(x, y):
                return node
        return None

    def nodes_in_rect(self, x: float, y: float, w: float, h: float) -> List[Node]:
        """Nodes intersecting a graph rectangle."""
        if w < 0:
            x, w = x + w, -w
        if h < 0:
            y, h = y + h, -h
        return [n for n in self.nodes if n.intersects(x, y, w, h)]

    def connections_for(self, node: Node) -> List[Connection]:
        return [c for c in self.connections if c.touches(node.id)]

    def ancestors_of(self, node: Node) -> List[Node]:
        """Nodes reachable through incoming connections, oldest first."""
        visited = {node.id}
        result: List[Node] = []

        def visit(current: Node):
            for conn in self.connections:
                if conn.to_id != current.id or conn.from_id in visited:
                    continue
                parent = self.get_node(conn.from_id)
                if parent is None:
                    continue
                visited.add(parent.id)
                visit(parent)
                result.append(parent)

        visit(node)
        return result

    # ==================== Ids ====================

    def _next_node_id(self, prefix: str) -> str:
        while True:
            self._node_counter += 1
            candidate = f"{prefix}_{self._node_counter}"
            if self.get_node(candidate) is None:
                return candidate

    def _next_edge_id(self) -> str:
        while True:
            self._edge_counter += 1
            candidate = f"edge_{self._edge_counter}"
            if self.get_connection(candidate) is None:
                return candidate

    def _advance_counters(self):
        for node in self.nodes:
            match = _NODE_ID_RE.match(node.id)
            if match:
                self._node_counter = max(self._node_counter, int(match.group(1)))
        for conn in self.connections:
            match = _EDGE_ID_RE.match(conn.id)
            if match:
                self._edge_counter = max(self._edge_counter, int(match.group(1)))

    # ==================== Nodes ====================

    def create_node(self, text: str, x: float, y: float,
                    width: Optional[float] = None,
                    height: Optional[float] = None,
                    provenance: Optional[str] = None) -> Node:
        """Create a content node."""
        node = Node(
            id=self._next_node_id("node"),
            kind=NodeKind.CONTENT,
            x=x, y=y,
            width=max(self.config.min_node_width, width or self.config.text_node_width),
            height=max(self.config.min_node_height, height or self.config.text_node_height),
            text=text,
            style=NodeStyle.for_kind(NodeKind.CONTENT),
            provenance=provenance,
        )
        self.nodes.append(node)
        logger.debug("Created node %s at (%.0f, %.0f)", node.id, x, y)
        self._emit(ChangeKind.STRUCTURE)
        return node

    def create_reference_node(self, path: str, x: float, y: float,
                              width: Optional[float] = None,
                              height: Optional[float] = None) -> Node:
        """Create a node backed by an external file and ask for its content."""
        node = Node(
            id=self._next_node_id("file"),
            kind=NodeKind.REFERENCE,
            x=x, y=y,
            width=max(self.config.min_node_width, width or self.config.file_node_width),
            height=max(self.config.min_node_height, height or self.config.file_node_height),
            file=path,
            style=NodeStyle.for_kind(NodeKind.REFERENCE),
        )
        self.nodes.append(node)
        logger.debug("Created reference node %s for %s", node.id, path)
        self.request_content(node)
        self._emit(ChangeKind.STRUCTURE)
        return node

    def request_content(self, node: Node):
        """Mark a reference node loading and hand it to the host."""
        if not node.is_reference:
            return
        node.content_state = ContentState.LOADING
        if self.on_content_requested:
            self.on_content_requested(node)

    def delete_node(self, node: Node):
        """Delete a node together with its connections."""
        if not self.contains(node):
            return
        self.nodes = [n for n in self.nodes if n is not node]
        self.connections = [c for c in self.connections if not c.touches(node.id)]
        self.selected_nodes = [n for n in self.selected_nodes if n is not node]
        if (self.selected_connection is not None and
                self.selected_connection not in self.connections):
            self.selected_connection = None
        node.is_selected = False
        logger.debug("Deleted node %s", node.id)
        if self.on_node_deleted:
            self.on_node_deleted(node)
        self._emit(ChangeKind.STRUCTURE)

    def delete_nodes(self, nodes: Iterable[Node]):
        """Delete several nodes with a single notification."""
        doomed = [n for n in nodes if self.contains(n)]
        if not doomed:
            return
        doomed_ids = {n.id for n in doomed}
        self.nodes = [n for n in self.nodes if n.id not in doomed_ids]
        self.connections = [
            c for c in self.connections
            if c.from_id not in doomed_ids and c.to_id not in doomed_ids
        ]
        self.selected_nodes = [n for n in self.selected_nodes if n.id not in doomed_ids]
        if (self.selected_connection is not None and
                self.selected_connection not in self.connections):
            self.selected_connection = None
        for node in doomed:
            node.is_selected = False
            if self.on_node_deleted:
                self.on_node_deleted(node)
        logger.debug("Deleted %d nodes", len(doomed))
        self._emit(ChangeKind.STRUCTURE)

    def move_nodes(self, nodes: Iterable[Node], dx: float, dy: float):
        """Translate nodes; nodes being edited stay put."""
        moved = False
        for node in nodes:
            if node.is_editing:
                continue
            node.x += dx
            node.y += dy
            moved = True
        if moved:
            self._emit(ChangeKind.GEOMETRY)

    def set_node_bounds(self, node: Node, x: float, y: float,
                        width: float, height: float):
        """Set position and size, flooring the size at the minimums."""
        node.x = x
        node.y = y
        node.width = max(self.config.min_node_width, width)
        node.height = max(self.config.min_node_height, height)
        self._emit(ChangeKind.GEOMETRY)

    def set_scroll(self, node: Node, scroll_y: float):
        """Set a node's text scroll, clamped to its scroll range."""
        node.scroll_y = max(0.0, min(node.max_scroll, scroll_y))
        self._emit(ChangeKind.VIEWPORT)

    def scroll_node(self, node: Node, dy: float):
        self.set_scroll(node, node.scroll_y + dy)

    def set_node_text(self, node: Node, text: str):
        """Replace the text of a content node."""
        node.text = text
        node.scroll_y = 0.0
        self._emit(ChangeKind.CONTENT)

    def update_node_content(self, node_id: str, content: str) -> bool:
        """Store loaded content for a reference node."""
        node = self.get_node(node_id)
        if node is None or not node.is_reference:
            return False
        node.content = content
        node.content_state = ContentState.LOADED
        node.scroll_y = min(node.scroll_y, node.max_scroll)
        self._emit(ChangeKind.CONTENT)
        return True

    def mark_content_unavailable(self, node_id: str) -> bool:
        node = self.get_node(node_id)
        if node is None or not node.is_reference:
            return False
        node.content = None
        node.content_state = ContentState.UNAVAILABLE
        self._emit(ChangeKind.CONTENT)
        return True

    def set_editing(self, node: Node, editing: bool):
        node.is_editing = editing
        self._emit(ChangeKind.SELECTION)

    # ==================== Connections ====================

    def create_connection(self, from_node: Node, to_node: Node,
                          from_side: Optional[str] = None,
                          to_side: Optional[str] = None) -> Optional[Connection]:
        """Link two distinct nodes. Parallel duplicates are allowed."""
        if from_node is to_node:
            return None
        if not self.contains(from_node) or not self.contains(to_node):
            return None
        conn = Connection(
            id=self._next_edge_id(),
            from_id=from_node.id,
            to_id=to_node.id,
            from_side=from_side if from_side in SIDES else None,
            to_side=to_side if to_side in SIDES else None,
        )
        self.connections.append(conn)
        logger.debug("Connected %s -> %s", from_node.id, to_node.id)
        self._emit(ChangeKind.STRUCTURE)
        return conn

    def delete_connection(self, connection: Connection):
        if connection not in self.connections:
            return
        self.connections.remove(connection)
        if self.selected_connection is connection:
            self.selected_connection = None
        self._emit(ChangeKind.STRUCTURE)

    # ==================== Selection ====================

    def _apply_selection(self, nodes: List[Node],
                         connection: Optional[Connection] = None):
        for node in self.selected_nodes:
            node.is_selected = False
        unique: List[Node] = []
        for node in nodes:
            if node not in unique and self.contains(node):
                unique.append(node)
        self.selected_nodes = unique
        for node in unique:
            node.is_selected = True
        self.selected_connection = connection
        self._emit(ChangeKind.SELECTION)

    def select_node(self, node: Node):
        """Make a node the only selection."""
        self._apply_selection([node])

    def toggle_selection(self, node: Node):
        if node in self.selected_nodes:
            self._apply_selection([n for n in self.selected_nodes if n is not node])
        else:
            self._apply_selection(self.selected_nodes + [node])

    def add_to_selection(self, node: Node):
        self._apply_selection(self.selected_nodes + [node])

    def select_multiple(self, nodes: Iterable[Node], extend: bool = False):
        """Select several nodes, replacing or extending the selection."""
        base = list(self.selected_nodes) if extend else []
        self._apply_selection(base + list(nodes))

    def select_all(self):
        self._apply_selection(list(self.nodes))

    def select_connection(self, connection: Connection):
        """Select one connection, clearing any node selection."""
        self._apply_selection([], connection)

    def clear_selection(self):
        self._apply_selection([])

    # ==================== Serialization ====================

    def export_graph(self, include_viewport: bool = False) -> Dict[str, Any]:
        """Build the JSON Canvas document for the current graph."""
        from infinitecanvas.canvas_format import encode_graph

        viewport = self.viewport if include_viewport else None
        return encode_graph(self.nodes, self.connections, self.extra, viewport)

    def load_graph(self, data: Any) -> LoadReport:
        """Replace the graph with a decoded JSON Canvas document.

        Invalid entries are dropped one by one. The viewport is kept
        unless the document carries one.
        """
        from infinitecanvas.canvas_format import decode_graph

        decoded = decode_graph(data, self.config)

        for node in self.selected_nodes:
            node.is_selected = False
        self.selected_nodes = []
        self.selected_connection = None

        self.nodes = decoded.nodes
        self.connections = decoded.connections
        self.extra = decoded.extra
        if decoded.viewport is not None:
            self.viewport = decoded.viewport
        self._advance_counters()

        report = decoded.report
        logger.info(
            "Loaded graph: %d nodes (%d skipped), %d edges (%d skipped)",
            report.nodes_loaded, report.nodes_skipped,
            report.edges_loaded, report.edges_skipped,
        )
        if self.on_graph_loaded:
            self.on_graph_loaded(report)

        for node in self.nodes:
            if node.is_reference:
                self.request_content(node)

        self._emit(ChangeKind.STRUCTURE)
        return report
