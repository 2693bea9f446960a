"""JSON Canvas (.canvas) reading and writing.

Output is deterministic: known keys come first in a fixed order, unknown
keys follow in the order they were read, indentation is a single tab and
there is no trailing newline. Re-serializing a loaded document therefore
yields the same text.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

from infinitecanvas.config import CanvasConfig
from infinitecanvas.model import (
    Node, Connection, Viewport, NodeKind, NodeStyle, LoadReport, SIDES
)

logger = logging.getLogger(__name__)

NODE_KEYS = ("id", "type", "text", "file", "x", "y", "width", "height", "aiModel")
EDGE_KEYS = ("id", "fromNode", "fromSide", "toNode", "toSide")
DOCUMENT_KEYS = ("nodes", "edges", "viewport")


class GraphFormatError(ValueError):
    """The document as a whole is not a readable canvas."""


@dataclass
class DecodedGraph:
    """Validated contents of a canvas document."""
    nodes: List[Node] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)
    viewport: Optional[Viewport] = None
    report: LoadReport = field(default_factory=LoadReport)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _number_out(value: float) -> Union[int, float]:
    """Write whole numbers without a fractional part."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# ==================== Decoding ====================

def _decode_node(raw: Any, seen: set) -> Optional[Node]:
    if not isinstance(raw, dict):
        return None

    node_id = raw.get("id")
    if not isinstance(node_id, str) or not node_id or node_id in seen:
        return None

    for key in ("x", "y", "width", "height"):
        if not _is_number(raw.get(key)):
            return None
    if raw["width"] <= 0 or raw["height"] <= 0:
        return None

    wire_type = raw.get("type", "text")
    try:
        kind = NodeKind(wire_type)
    except ValueError:
        return None

    node = Node(
        id=node_id,
        kind=kind,
        x=float(raw["x"]),
        y=float(raw["y"]),
        width=float(raw["width"]),
        height=float(raw["height"]),
        style=NodeStyle.for_kind(kind),
        extra={k: v for k, v in raw.items() if k not in NODE_KEYS},
    )

    if kind is NodeKind.REFERENCE:
        path = raw.get("file")
        if not isinstance(path, str) or not path:
            return None
        node.file = path
    else:
        text = raw.get("text", "")
        node.text = text if isinstance(text, str) else str(text)

    provenance = raw.get("aiModel")
    if isinstance(provenance, str) and provenance:
        node.provenance = provenance

    return node


def _decode_side(value: Any) -> Optional[str]:
    return value if value in SIDES else None


def _decode_edge(raw: Any, node_ids: set, seen: set) -> Optional[Connection]:
    if not isinstance(raw, dict):
        return None

    edge_id = raw.get("id")
    if not isinstance(edge_id, str) or not edge_id or edge_id in seen:
        return None

    from_id = raw.get("fromNode")
    to_id = raw.get("toNode")
    if not (isinstance(from_id, str) and isinstance(to_id, str)):
        return None
    if from_id not in node_ids or to_id not in node_ids:
        return None

    return Connection(
        id=edge_id,
        from_id=from_id,
        to_id=to_id,
        from_side=_decode_side(raw.get("fromSide")),
        to_side=_decode_side(raw.get("toSide")),
        extra={k: v for k, v in raw.items() if k not in EDGE_KEYS},
    )


def _decode_viewport(raw: Any, config: CanvasConfig) -> Optional[Viewport]:
    if not isinstance(raw, dict):
        return None
    x, y, zoom = raw.get("x", 0), raw.get("y", 0), raw.get("zoom", 1)
    if not (_is_number(x) and _is_number(y) and _is_number(zoom)) or zoom <= 0:
        return None
    scale = max(config.min_scale, min(config.max_scale, float(zoom)))
    return Viewport(offset_x=float(x), offset_y=float(y), scale=scale)


def decode_graph(data: Any, config: Optional[CanvasConfig] = None) -> DecodedGraph:
    """Validate a parsed document, dropping bad entries one at a time."""
    config = config or CanvasConfig()
    if not isinstance(data, dict):
        raise GraphFormatError("Canvas document must be a JSON object")

    decoded = DecodedGraph(
        extra={k: v for k, v in data.items() if k not in DOCUMENT_KEYS}
    )
    report = decoded.report

    raw_nodes = data.get("nodes", [])
    if not isinstance(raw_nodes, list):
        logger.warning("Ignoring 'nodes': expected a list, got %s",
                       type(raw_nodes).__name__)
        raw_nodes = []

    seen_nodes: set = set()
    for raw in raw_nodes:
        node = _decode_node(raw, seen_nodes)
        if node is None:
            report.nodes_skipped += 1
            logger.warning("Skipping invalid node entry: %.80r", raw)
            continue
        seen_nodes.add(node.id)
        decoded.nodes.append(node)
    report.nodes_loaded = len(decoded.nodes)

    raw_edges = data.get("edges", [])
    if not isinstance(raw_edges, list):
        logger.warning("Ignoring 'edges': expected a list, got %s",
                       type(raw_edges).__name__)
        raw_edges = []

    seen_edges: set = set()
    for raw in raw_edges:
        conn = _decode_edge(raw, seen_nodes, seen_edges)
        if conn is None:
            report.edges_skipped += 1
            logger.warning("Skipping invalid or dangling edge: %.80r", raw)
            continue
        seen_edges.add(conn.id)
        decoded.connections.append(conn)
    report.edges_loaded = len(decoded.connections)

    if "viewport" in data:
        decoded.viewport = _decode_viewport(data["viewport"], config)
        report.viewport_applied = decoded.viewport is not None
        if decoded.viewport is None:
            logger.warning("Ignoring invalid viewport: %.80r", data["viewport"])

    return decoded


# ==================== Encoding ====================

def encode_node(node: Node) -> Dict[str, Any]:
    """Wire form of a node."""
    out: Dict[str, Any] = {"id": node.id, "type": node.kind.value}
    if node.is_reference:
        out["file"] = node.file or ""
    else:
        out["text"] = node.text
    out["x"] = _number_out(node.x)
    out["y"] = _number_out(node.y)
    out["width"] = _number_out(node.width)
    out["height"] = _number_out(node.height)
    if node.provenance:
        out["aiModel"] = node.provenance
    for key, value in node.extra.items():
        out.setdefault(key, value)
    return out


def encode_connection(conn: Connection) -> Dict[str, Any]:
    """Wire form of a connection; sides only when set."""
    out: Dict[str, Any] = {"id": conn.id, "fromNode": conn.from_id}
    if conn.from_side:
        out["fromSide"] = conn.from_side
    out["toNode"] = conn.to_id
    if conn.to_side:
        out["toSide"] = conn.to_side
    for key, value in conn.extra.items():
        out.setdefault(key, value)
    return out


def encode_graph(nodes: List[Node], connections: List[Connection],
                 extra: Optional[Dict[str, Any]] = None,
                 viewport: Optional[Viewport] = None) -> Dict[str, Any]:
    """Build a document from model objects."""
    out: Dict[str, Any] = {
        "nodes": [encode_node(n) for n in nodes],
        "edges": [encode_connection(c) for c in connections],
    }
    if viewport is not None:
        out["viewport"] = {
            "x": _number_out(viewport.offset_x),
            "y": _number_out(viewport.offset_y),
            "zoom": _number_out(viewport.scale),
        }
    for key, value in (extra or {}).items():
        out.setdefault(key, value)
    return out


# ==================== Text and files ====================

def loads(text: str) -> Dict[str, Any]:
    """Parse canvas text into a document dict."""
    if not text.strip():
        return {"nodes": [], "edges": []}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GraphFormatError(f"Not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise GraphFormatError("Canvas document must be a JSON object")
    return data


def dumps(data: Dict[str, Any]) -> str:
    """Serialize a document in the stable canvas layout."""
    return json.dumps(data, indent="\t", ensure_ascii=False)


def read_canvas(path: Union[str, Path]) -> Dict[str, Any]:
    """Read and parse a .canvas file."""
    return loads(Path(path).read_text(encoding="utf-8"))


def write_canvas(path: Union[str, Path], data: Dict[str, Any]):
    """Write a document to a .canvas file."""
    Path(path).write_text(dumps(data), encoding="utf-8")
