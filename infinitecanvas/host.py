"""Host collaborator: file access, persistence and model calls."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Union

from infinitecanvas.config import CanvasConfig
from infinitecanvas.generation import PromptContext
from infinitecanvas.openrouter import OpenRouterClient
from infinitecanvas.scheduler import Scheduler

logger = logging.getLogger(__name__)


class HostCollaborator(Protocol):
    """What the engine needs from its surroundings.

    `request_content` answers later through the `on_content_loaded` /
    `on_content_unavailable` hooks that the engine installs.
    """
    on_content_loaded: Optional[Callable[[str, str], None]]
    on_content_unavailable: Optional[Callable[[str], None]]

    def request_content(self, path: str, correlation_id: str) -> None:
        ...

    def save_content(self, path: str, text: str) -> None:
        ...

    def persist(self, serialized: str) -> None:
        ...

    def request_generation(self, context: PromptContext) -> "Future[List[str]]":
        ...


class FileHost:
    """Local-filesystem host for a single .canvas document.

    Reference paths are resolved against the canvas file's directory.
    Reads and model calls run on a small thread pool; their completions
    are delivered back on the main loop through the scheduler.
    """

    def __init__(self, config: CanvasConfig, scheduler: Scheduler,
                 canvas_path: Optional[Union[str, Path]] = None,
                 client: Optional[OpenRouterClient] = None,
                 max_workers: int = 4):
        self.config = config
        self.scheduler = scheduler
        self.canvas_path: Optional[Path] = Path(canvas_path) if canvas_path else None
        self.client = client or OpenRouterClient(config)
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="infinitecanvas")

        # Installed by the engine
        self.on_content_loaded: Optional[Callable[[str, str], None]] = None
        self.on_content_unavailable: Optional[Callable[[str], None]] = None
        # Failures the user should hear about
        self.on_error: Optional[Callable[[str], None]] = None

    @property
    def base_dir(self) -> Path:
        if self.canvas_path is not None:
            return self.canvas_path.parent
        return Path.cwd()

    def resolve(self, path: str) -> Path:
        """Absolute location of a reference path."""
        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return candidate
        return self.base_dir / candidate

    def _report(self, message: str):
        logger.warning(message)
        if self.on_error:
            self.on_error(message)

    # ==================== Content ====================

    def request_content(self, path: str, correlation_id: str):
        future = self._executor.submit(self._read, path)
        future.add_done_callback(
            lambda f: self.scheduler.call_later(
                0, lambda: self._deliver(correlation_id, f)))

    def _read(self, path: str) -> str:
        return self.resolve(path).read_text(encoding="utf-8")

    def _deliver(self, correlation_id: str, future: "Future[str]"):
        try:
            text = future.result()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read reference content: %s", exc)
            if self.on_content_unavailable:
                self.on_content_unavailable(correlation_id)
            return
        if self.on_content_loaded:
            self.on_content_loaded(correlation_id, text)

    def save_content(self, path: str, text: str):
        target = self.resolve(path)
        try:
            target.write_text(text, encoding="utf-8")
            logger.info("Saved %s", target)
        except OSError as exc:
            self._report(f"Could not save {path}: {exc}")

    # ==================== Persistence ====================

    def persist(self, serialized: str):
        if self.canvas_path is None:
            logger.debug("No canvas file yet; skipping save")
            return
        try:
            self.canvas_path.write_text(serialized, encoding="utf-8")
            logger.debug("Saved canvas to %s", self.canvas_path)
        except OSError as exc:
            self._report(f"Could not save canvas: {exc}")

    # ==================== Generation ====================

    def request_generation(self, context: PromptContext) -> "Future[List[str]]":
        return self._executor.submit(self._generate, context)

    def _generate(self, context: PromptContext) -> List[str]:
        return [self.client.complete(context.model, context.messages())]

    def close(self, wait: bool = False):
        self._executor.shutdown(wait=wait, cancel_futures=True)
