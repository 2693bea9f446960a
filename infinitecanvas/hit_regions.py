"""Per-frame hit regions written by the renderer and read on input."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def contains(self, px: float, py: float) -> bool:
        return (self.x <= px <= self.x + self.width and
                self.y <= py <= self.y + self.height)


class HandleType(Enum):
    """Resize handles by compass direction."""
    NW = "nw"
    N = "n"
    NE = "ne"
    E = "e"
    SE = "se"
    S = "s"
    SW = "sw"
    W = "w"

    @property
    def cursor(self) -> str:
        return f"{self.value}-resize"

    @property
    def moves_left(self) -> bool:
        return "w" in self.value

    @property
    def moves_right(self) -> bool:
        return "e" in self.value

    @property
    def moves_top(self) -> bool:
        return "n" in self.value

    @property
    def moves_bottom(self) -> bool:
        return "s" in self.value


@dataclass(frozen=True)
class ResizeHandle:
    type: HandleType
    bounds: Rect


@dataclass(frozen=True)
class ScrollbarBounds:
    track: Rect
    thumb: Rect


@dataclass(frozen=True)
class ButtonBounds:
    """A clickable control drawn inside a node."""
    action: str
    bounds: Rect


@dataclass
class HitRegions:
    """Hit regions of one node, in graph coordinates."""
    handles: List[ResizeHandle] = field(default_factory=list)
    scrollbar: Optional[ScrollbarBounds] = None
    buttons: List[ButtonBounds] = field(default_factory=list)

    def handle_at(self, x: float, y: float) -> Optional[ResizeHandle]:
        for handle in self.handles:
            if handle.bounds.contains(x, y):
                return handle
        return None

    def button_at(self, x: float, y: float) -> Optional[ButtonBounds]:
        for button in self.buttons:
            if button.bounds.contains(x, y):
                return button
        return None


class HitRegionTable:
    """Side table of node id to hit regions, rebuilt every frame."""

    def __init__(self):
        self._regions: Dict[str, HitRegions] = {}

    def begin_frame(self):
        self._regions = {}

    def regions_for(self, node_id: str) -> HitRegions:
        """Regions for a node, created empty on first use this frame."""
        regions = self._regions.get(node_id)
        if regions is None:
            regions = HitRegions()
            self._regions[node_id] = regions
        return regions

    def get(self, node_id: str) -> Optional[HitRegions]:
        return self._regions.get(node_id)

    def discard(self, node_id: str):
        self._regions.pop(node_id, None)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._regions

    def __len__(self) -> int:
        return len(self._regions)
