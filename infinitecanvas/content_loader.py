"""Tracks outstanding reference-content requests to the host."""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from infinitecanvas.model import GraphModel, Node
from infinitecanvas.scheduler import Scheduler

logger = logging.getLogger(__name__)


@dataclass
class PendingLoad:
    node_id: str
    path: str
    timer: Any = None


class ContentLoader:
    """Pending-request map from correlation id to node, with timeouts.

    A response is applied only while its correlation id is still pending,
    so answers for deleted nodes, superseded requests or a replaced graph
    are dropped.
    """

    def __init__(self, model: GraphModel, scheduler: Scheduler, timeout: float,
                 request: Callable[[str, str], None]):
        self.model = model
        self.scheduler = scheduler
        self.timeout = timeout
        self.request = request
        self.pending: Dict[str, PendingLoad] = {}
        self._ids = itertools.count(1)

    def load(self, node: Node) -> Optional[str]:
        """Ask the host for a node's content. Returns the correlation id."""
        if not node.is_reference or not node.file:
            return None
        self.cancel_for_node(node.id)

        correlation_id = f"load_{next(self._ids)}"
        pending = PendingLoad(node_id=node.id, path=node.file)
        pending.timer = self.scheduler.call_later(
            self.timeout, lambda: self._on_timeout(correlation_id))
        self.pending[correlation_id] = pending

        logger.debug("Requesting %s for %s (%s)", node.file, node.id, correlation_id)
        self.request(node.file, correlation_id)
        return correlation_id

    def resolve(self, correlation_id: str, content: str) -> bool:
        """Apply loaded content. False when the request is no longer pending."""
        pending = self._take(correlation_id)
        if pending is None:
            logger.debug("Ignoring stale content response %s", correlation_id)
            return False
        return self.model.update_node_content(pending.node_id, content)

    def reject(self, correlation_id: str) -> bool:
        """Mark the requested node's content unavailable."""
        pending = self._take(correlation_id)
        if pending is None:
            logger.debug("Ignoring stale failure response %s", correlation_id)
            return False
        logger.warning("Content for %s is unavailable", pending.path)
        return self.model.mark_content_unavailable(pending.node_id)

    def _on_timeout(self, correlation_id: str):
        pending = self.pending.pop(correlation_id, None)
        if pending is None:
            return
        logger.warning("Timed out loading %s after %.1fs", pending.path, self.timeout)
        self.model.mark_content_unavailable(pending.node_id)

    def _take(self, correlation_id: str) -> Optional[PendingLoad]:
        pending = self.pending.pop(correlation_id, None)
        if pending is not None and pending.timer is not None:
            self.scheduler.cancel(pending.timer)
        return pending

    def cancel_for_node(self, node_id: str):
        for correlation_id in [cid for cid, p in self.pending.items()
                               if p.node_id == node_id]:
            self._take(correlation_id)

    def cancel_all(self):
        for correlation_id in list(self.pending):
            self._take(correlation_id)
