"""Geometry helpers for anchors, connection routing and hit tests."""

import math
from typing import Optional, Tuple, Dict, List

from infinitecanvas.model import Node, Connection, SIDES

Point = Tuple[float, float]


def connection_point(node: Node, side: str) -> Point:
    """Midpoint of one side of a node."""
    if side == "top":
        return (node.x + node.width / 2, node.y)
    if side == "right":
        return (node.x + node.width, node.y + node.height / 2)
    if side == "bottom":
        return (node.x + node.width / 2, node.y + node.height)
    if side == "left":
        return (node.x, node.y + node.height / 2)
    raise ValueError(f"Unknown side: {side}")


def connection_points(node: Node) -> Dict[str, Point]:
    """All four side midpoints keyed by side."""
    return {side: connection_point(node, side) for side in SIDES}


def distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def connection_point_at(node: Node, x: float, y: float,
                        radius: float) -> Optional[str]:
    """Side whose point lies within `radius` of (x, y), nearest first."""
    best_side = None
    best_dist = radius
    for side, point in connection_points(node).items():
        d = distance(point, (x, y))
        if d <= best_dist:
            best_side, best_dist = side, d
    return best_side


def closest_side(node: Node, target: Point) -> str:
    """Side of `node` whose point is nearest to `target`."""
    return min(SIDES, key=lambda s: distance(connection_point(node, s), target))


def best_anchor_pair(from_node: Node, to_node: Node,
                     from_side: Optional[str] = None,
                     to_side: Optional[str] = None) -> Tuple[str, str]:
    """Pick the sides to draw a connection between.

    Known sides are used as given; missing ones are chosen to minimise the
    distance between the two anchors.
    """
    if from_side and to_side:
        return from_side, to_side
    if from_side:
        start = connection_point(from_node, from_side)
        return from_side, closest_side(to_node, start)
    if to_side:
        end = connection_point(to_node, to_side)
        return closest_side(from_node, end), to_side

    best = ("right", "left")
    best_dist = math.inf
    for fs in SIDES:
        start = connection_point(from_node, fs)
        for ts in SIDES:
            d = distance(start, connection_point(to_node, ts))
            if d < best_dist:
                best, best_dist = (fs, ts), d
    return best


def connection_endpoints(from_node: Node, to_node: Node,
                         conn: Optional[Connection] = None) -> Tuple[Point, Point]:
    """Start and end anchors of a connection."""
    fs, ts = best_anchor_pair(
        from_node, to_node,
        conn.from_side if conn else None,
        conn.to_side if conn else None,
    )
    return connection_point(from_node, fs), connection_point(to_node, ts)


def pull_back(start: Point, end: Point, amount: float) -> Point:
    """Move `end` towards `start` by `amount`."""
    length = distance(start, end)
    if length <= amount or length == 0:
        return end
    t = (length - amount) / length
    return (start[0] + (end[0] - start[0]) * t,
            start[1] + (end[1] - start[1]) * t)


def distance_to_segment(p: Point, a: Point, b: Point) -> float:
    """Shortest distance from a point to a line segment."""
    ax, ay = a
    bx, by = b
    px, py = p
    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return distance(p, a)
    t = max(0.0, min(1.0, ((px - ax) * dx + (py - ay) * dy) / length_sq))
    return distance(p, (ax + t * dx, ay + t * dy))


def arrow_head(tip: Point, tail: Point, length: float = 18.0,
               angle: float = math.pi / 6) -> List[Point]:
    """Triangle for an arrowhead pointing at `tip`."""
    direction = math.atan2(tip[1] - tail[1], tip[0] - tail[0])
    return [
        tip,
        (tip[0] - length * math.cos(direction - angle),
         tip[1] - length * math.sin(direction - angle)),
        (tip[0] - length * math.cos(direction + angle),
         tip[1] - length * math.sin(direction + angle)),
    ]


def normalize_rect(x1: float, y1: float, x2: float,
                   y2: float) -> Tuple[float, float, float, float]:
    """Rectangle (x, y, w, h) spanned by two corners."""
    return (min(x1, x2), min(y1, y2), abs(x2 - x1), abs(y2 - y1))
