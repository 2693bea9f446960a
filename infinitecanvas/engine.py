"""Canvas engine: wires model, controller, renderer and host together."""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from infinitecanvas import canvas_format
from infinitecanvas.config import CanvasConfig
from infinitecanvas.content_loader import ContentLoader
from infinitecanvas.events import InputEvent
from infinitecanvas.generation import IdeaGenerator
from infinitecanvas.host import HostCollaborator
from infinitecanvas.interaction import InteractionController
from infinitecanvas.model import GraphModel, Node, ChangeKind, LoadReport
from infinitecanvas.renderer import SceneRenderer
from infinitecanvas.scheduler import Scheduler, RepaintScheduler, Debouncer

logger = logging.getLogger(__name__)

PERSISTED_CHANGES = (ChangeKind.STRUCTURE, ChangeKind.GEOMETRY, ChangeKind.CONTENT)


class CanvasEngine:
    """Composition root for one canvas document.

    Toolkit-independent: the host feeds events into `handle_input`, calls
    `draw` from its paint handler and listens on the `on_*` callbacks.
    """

    def __init__(self, config: CanvasConfig, scheduler: Scheduler,
                 host: HostCollaborator):
        self.config = config
        self.scheduler = scheduler
        self.host = host

        self.model = GraphModel(config)
        self.renderer = SceneRenderer(config)
        self.controller = InteractionController(self.model, self.renderer.hit_regions, config)
        self.loader = ContentLoader(self.model, scheduler, config.content_load_timeout,
                                    host.request_content)
        self.generator = IdeaGenerator(self.model, scheduler, config,
                                       host.request_generation)
        self.repaint = RepaintScheduler(scheduler, self._fire_repaint)
        self.autosave = Debouncer(scheduler, config.autosave_delay, self.save_now)

        # Callbacks for the host UI
        self.on_repaint: Optional[Callable[[], None]] = None
        self.on_notification: Optional[Callable[[str, str], None]] = None
        self.on_cursor_changed: Optional[Callable[[str], None]] = None
        self.on_edit_requested: Optional[Callable[[Node, str], None]] = None
        self.on_edit_finished: Optional[Callable[[Node], None]] = None

        self._wire()

    def _wire(self):
        model = self.model
        model.on_changed = self._on_model_changed
        model.on_content_requested = self.loader.load
        model.on_node_deleted = self._on_node_deleted
        model.on_graph_loaded = self._on_graph_loaded

        controller = self.controller
        controller.on_repaint = self.repaint.request
        controller.on_cursor_changed = self._on_cursor_changed
        controller.on_edit_requested = self._on_edit_requested
        controller.on_edit_finished = self._on_edit_finished
        controller.on_content_edited = self._on_content_edited
        controller.on_save_requested = self.save_now

        self.generator.on_notification = self.notify

        self.host.on_content_loaded = self.content_loaded
        self.host.on_content_unavailable = self.content_unavailable
        if hasattr(self.host, "on_error"):
            self.host.on_error = lambda message: self.notify(message, "error")

    # ==================== Callbacks ====================

    def _fire_repaint(self):
        if self.on_repaint:
            self.on_repaint()

    def notify(self, message: str, level: str = "info"):
        logger.info("[%s] %s", level, message)
        if self.on_notification:
            self.on_notification(message, level)

    def _on_model_changed(self, kind: ChangeKind):
        self.repaint.request()
        if kind in PERSISTED_CHANGES:
            self.autosave.trigger()

    def _on_node_deleted(self, node: Node):
        self.loader.cancel_for_node(node.id)
        if self.controller.editing_node is node:
            self.controller.cancel_edit()

    def _on_graph_loaded(self, report: LoadReport):
        self.loader.cancel_all()
        self.generator.cancel_all()
        editing = self.controller.editing_node
        self.controller.editing_node = None
        if editing is not None:
            self._on_edit_finished(editing)
        self.controller.reset()

    def _on_cursor_changed(self, name: str):
        if self.on_cursor_changed:
            self.on_cursor_changed(name)

    def _on_edit_requested(self, node: Node, text: str):
        if self.on_edit_requested:
            self.on_edit_requested(node, text)

    def _on_edit_finished(self, node: Node):
        if self.on_edit_finished:
            self.on_edit_finished(node)

    def _on_content_edited(self, node: Node, text: str):
        if node.file:
            self.host.save_content(node.file, text)

    # ==================== Input and drawing ====================

    def handle_input(self, event: InputEvent):
        self.controller.handle_input(event)

    def draw(self, cr, width: float, height: float):
        """Paint a frame; also refreshes hit regions for the next input."""
        self.controller.set_view_size(width, height)
        self.renderer.render(cr, width, height, self.model, self.controller.visual_state())

    def set_view_size(self, width: float, height: float):
        self.controller.set_view_size(width, height)

    def commit_edit(self, text: str):
        self.controller.commit_edit(text)

    def cancel_edit(self):
        self.controller.cancel_edit()

    # ==================== Documents ====================

    def open_text(self, text: str) -> LoadReport:
        """Load a document from canvas text. Raises GraphFormatError."""
        report = self.model.load_graph(canvas_format.loads(text))
        # Loading is not an edit
        self.autosave.cancel()
        if report.nodes_skipped or report.edges_skipped:
            self.notify(
                f"Skipped {report.nodes_skipped} invalid node(s) and "
                f"{report.edges_skipped} invalid edge(s)", "warning")
        return report

    def open_file(self, path: Union[str, Path]) -> LoadReport:
        """Load a .canvas file. Raises OSError or GraphFormatError."""
        return self.open_text(Path(path).read_text(encoding="utf-8"))

    def serialize(self) -> str:
        return canvas_format.dumps(self.model.export_graph())

    def save_now(self):
        """Persist immediately, superseding any pending autosave."""
        self.autosave.cancel()
        self.host.persist(self.serialize())

    # ==================== Host responses ====================

    def content_loaded(self, correlation_id: str, text: str):
        self.loader.resolve(correlation_id, text)

    def content_unavailable(self, correlation_id: str):
        self.loader.reject(correlation_id)

    # ==================== Generation ====================

    def generate_ideas(self) -> bool:
        return self.generator.generate()

    def close(self):
        """Flush pending work before the host goes away."""
        self.autosave.flush()
        self.repaint.cancel()
        self.loader.cancel_all()
        self.generator.cancel_all()
