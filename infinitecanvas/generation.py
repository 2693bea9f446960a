"""Idea generation: ask language models to expand the selected node."""

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from infinitecanvas.config import CanvasConfig
from infinitecanvas.model import GraphModel, Node
from infinitecanvas.openrouter import describe_generation_error
from infinitecanvas.scheduler import Scheduler

logger = logging.getLogger(__name__)

CHILD_SPACING = 500.0
VERTICAL_OFFSET = 150.0


@dataclass(frozen=True)
class PromptContext:
    """Everything one model request needs."""
    model: str
    source_text: str
    ancestors: Tuple[str, ...] = ()

    def messages(self) -> List[Dict[str, str]]:
        """Ancestors oldest first, then the source, as user turns."""
        history = [{"role": "user", "content": text} for text in self.ancestors if text]
        history.append({"role": "user", "content": self.source_text})
        return history


def prompt_text(node: Node) -> str:
    """Text a node contributes to a prompt."""
    if node.is_reference:
        return node.content or node.file or ""
    return node.text


@dataclass
class GenerationRun:
    """Bookkeeping for one generate request across its models."""
    source_id: str
    models: List[str]
    remaining: int = 0
    created: List[Node] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class IdeaGenerator:
    """Fans a prompt out to each configured model and adds the replies.

    Results arrive on worker threads and are moved onto the main loop via
    `scheduler.call_later(0, ...)` before the model is touched.
    """

    def __init__(self, model: GraphModel, scheduler: Scheduler,
                 config: CanvasConfig,
                 request: Callable[[PromptContext], "Future[List[str]]"]):
        self.model = model
        self.scheduler = scheduler
        self.config = config
        self.request = request
        self.runs: Dict[str, GenerationRun] = {}

        # Callbacks
        self.on_notification: Optional[Callable[[str, str], None]] = None
        self.on_finished: Optional[Callable[[GenerationRun], None]] = None

    def _notify(self, message: str, level: str = "info"):
        if self.on_notification:
            self.on_notification(message, level)

    def is_generating(self, node: Node) -> bool:
        return node.id in self.runs

    def cancel_all(self):
        """Forget every run in flight; their replies are discarded."""
        if self.runs:
            logger.debug("Cancelling %d generation run(s)", len(self.runs))
        self.runs.clear()

    def generate(self) -> bool:
        """Start generation for the single selected node."""
        selected = self.model.selected_nodes
        if not selected:
            self._notify("Select a node to generate connected ideas", "warning")
            return False
        if len(selected) > 1:
            self._notify("Select only one node to generate ideas", "warning")
            return False

        source = selected[0]
        if source.id in self.runs:
            self._notify("Generation already in progress for this node", "info")
            return False

        text = prompt_text(source).strip()
        if not text:
            self._notify("Selected node has no content to generate ideas from", "warning")
            return False

        models = [m.strip() for m in self.config.models if m and m.strip()]
        if not models:
            self._notify("No models configured for idea generation", "warning")
            return False

        ancestors = tuple(prompt_text(n) for n in self.model.ancestors_of(source))
        run = GenerationRun(source_id=source.id, models=models, remaining=len(models))
        self.runs[source.id] = run
        logger.info("Generating ideas for %s with %d model(s), %d ancestor(s)",
                    source.id, len(models), len(ancestors))
        self._notify(f"Generating ideas with {len(models)} model(s)…", "info")

        for model_name in models:
            context = PromptContext(model=model_name, source_text=text, ancestors=ancestors)
            try:
                future = self.request(context)
            except RuntimeError as exc:
                logger.warning("Could not start %s: %s", model_name, exc)
                self._on_result(run, context, None, exc)
                continue
            future.add_done_callback(
                lambda f, ctx=context: self.scheduler.call_later(
                    0, lambda: self._on_future_done(run, ctx, f)))
        return True

    def _on_future_done(self, run: GenerationRun, context: PromptContext,
                        future: "Future[List[str]]"):
        if self.runs.get(run.source_id) is not run:
            logger.debug("Discarding reply from %s: run for %s was cancelled",
                         context.model, run.source_id)
            return
        try:
            ideas = future.result()
        except Exception as exc:  # pylint: disable=broad-except
            self._on_result(run, context, None, exc)
            return
        self._on_result(run, context, ideas, None)

    def _on_result(self, run: GenerationRun, context: PromptContext,
                   ideas: Optional[List[str]], error: Optional[BaseException]):
        run.remaining -= 1
        source = self.model.get_node(run.source_id)

        if error is not None:
            run.failed.append(context.model)
            logger.warning("%s failed: %s", context.model, error)
            self._notify(f"{short_model_name(context.model)}: "
                         f"{describe_generation_error(error)}", "error")
        elif source is None:
            logger.debug("Discarding ideas from %s: source %s was deleted",
                         context.model, run.source_id)
        else:
            self._add_ideas(run, source, context.model, ideas or [])

        if run.remaining <= 0:
            self._finish(run)

    def _add_ideas(self, run: GenerationRun, source: Node, model_name: str,
                   ideas: List[str]):
        for idea in ideas:
            idea = idea.strip()
            if not idea:
                continue
            index = len(run.created)
            x = source.x + source.width / 2 - 200 + index * CHILD_SPACING
            y = source.y + source.height + VERTICAL_OFFSET
            node = self.model.create_node(idea, x, y, provenance=model_name)
            self.model.create_connection(source, node)
            run.created.append(node)
        logger.info("%s produced %d idea(s)", model_name, len(ideas))

    def _finish(self, run: GenerationRun):
        self.runs.pop(run.source_id, None)
        created = len(run.created)
        succeeded = len(run.models) - len(run.failed)

        if created:
            message = f"Created {created} idea(s) from {succeeded} model(s)"
            if run.failed:
                message += f" ({len(run.failed)} model(s) failed)"
            self._notify(message, "success")
        elif run.failed and len(run.failed) == len(run.models):
            self._notify(f"No ideas generated. All {len(run.models)} model(s) failed.", "error")

        if self.on_finished:
            self.on_finished(run)


def short_model_name(model: str) -> str:
    return model.rsplit("/", 1)[-1] or model
