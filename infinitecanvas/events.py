"""Typed input events consumed by the interaction controller.

Coordinates are widget-relative screen pixels. Hosts translate their
toolkit's events into these; tests construct them directly.
"""

from dataclasses import dataclass
from enum import Flag, IntEnum, auto
from typing import Tuple, Union


class Modifier(Flag):
    NONE = 0
    SHIFT = auto()
    CONTROL = auto()
    ALT = auto()
    META = auto()


class PointerButton(IntEnum):
    PRIMARY = 1
    MIDDLE = 2
    SECONDARY = 3


@dataclass(frozen=True)
class PointerDown:
    x: float
    y: float
    button: PointerButton = PointerButton.PRIMARY
    modifiers: Modifier = Modifier.NONE


@dataclass(frozen=True)
class PointerMove:
    x: float
    y: float
    modifiers: Modifier = Modifier.NONE


@dataclass(frozen=True)
class PointerUp:
    x: float
    y: float
    button: PointerButton = PointerButton.PRIMARY
    modifiers: Modifier = Modifier.NONE


@dataclass(frozen=True)
class DoubleClick:
    x: float
    y: float
    modifiers: Modifier = Modifier.NONE


@dataclass(frozen=True)
class Wheel:
    """Scroll delta in pixels; positive dy scrolls down."""
    x: float
    y: float
    dx: float
    dy: float
    modifiers: Modifier = Modifier.NONE


@dataclass(frozen=True)
class KeyPress:
    """A key by name: "Delete", "BackSpace", "Escape", "c", "v", ..."""
    key: str
    modifiers: Modifier = Modifier.NONE


@dataclass(frozen=True)
class PointerLeave:
    pass


@dataclass(frozen=True)
class FocusLost:
    pass


@dataclass(frozen=True)
class FileDrop:
    x: float
    y: float
    paths: Tuple[str, ...] = ()


InputEvent = Union[
    PointerDown, PointerMove, PointerUp, DoubleClick, Wheel,
    KeyPress, PointerLeave, FocusLost, FileDrop,
]
