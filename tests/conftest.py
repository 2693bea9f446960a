import itertools
import sys
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import cairo
import pytest


def _ensure_project_root_on_path() -> None:
    project_root = Path(__file__).resolve().parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


_ensure_project_root_on_path()

from infinitecanvas.config import CanvasConfig  # noqa: E402
from infinitecanvas.engine import CanvasEngine  # noqa: E402
from infinitecanvas.model import GraphModel  # noqa: E402

VIEW_WIDTH = 800
VIEW_HEIGHT = 600


class ManualScheduler:
    """Scheduler driven by an explicit clock."""

    def __init__(self):
        self.now = 0.0
        self._tasks: Dict[int, Tuple[float, int, Callable[[], None]]] = {}
        self._ids = itertools.count(1)

    def call_later(self, delay: float, callback: Callable[[], None]) -> int:
        handle = next(self._ids)
        self._tasks[handle] = (self.now + max(0.0, delay), handle, callback)
        return handle

    def cancel(self, handle: int) -> None:
        self._tasks.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def advance(self, seconds: float = 0.0) -> None:
        """Run everything due within `seconds`, in due order."""
        target = self.now + seconds
        while True:
            due = [task for task in self._tasks.values() if task[0] <= target]
            if not due:
                break
            when, handle, callback = min(due, key=lambda t: (t[0], t[1]))
            del self._tasks[handle]
            self.now = when
            callback()
        self.now = target


class FakeHost:
    """Records engine requests; tests answer them by hand."""

    def __init__(self):
        self.on_content_loaded: Optional[Callable[[str, str], None]] = None
        self.on_content_unavailable: Optional[Callable[[str], None]] = None
        self.content_requests: List[Tuple[str, str]] = []
        self.saved: List[Tuple[str, str]] = []
        self.persisted: List[str] = []
        self.generation_requests: List[Tuple[Any, Future]] = []

    def request_content(self, path: str, correlation_id: str) -> None:
        self.content_requests.append((path, correlation_id))

    def save_content(self, path: str, text: str) -> None:
        self.saved.append((path, text))

    def persist(self, serialized: str) -> None:
        self.persisted.append(serialized)

    def request_generation(self, context) -> Future:
        future: Future = Future()
        self.generation_requests.append((context, future))
        return future


def render(engine: CanvasEngine, width: int = VIEW_WIDTH, height: int = VIEW_HEIGHT):
    """Paint one frame offscreen so hit regions are current."""
    surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
    cr = cairo.Context(surface)
    engine.draw(cr, width, height)
    return surface


@pytest.fixture
def config() -> CanvasConfig:
    return CanvasConfig()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def model(config) -> GraphModel:
    return GraphModel(config)


@pytest.fixture
def engine(config, scheduler, host) -> CanvasEngine:
    engine = CanvasEngine(config, scheduler, host)
    engine.set_view_size(VIEW_WIDTH, VIEW_HEIGHT)
    return engine
