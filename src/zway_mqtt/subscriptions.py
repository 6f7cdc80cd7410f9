"""Observer bookkeeping for the Z-Way data tree.

Every node reachable from the tree root gets exactly one change observer,
including nodes that appear while the bridge is running.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from typing import TYPE_CHECKING

from zway_mqtt import metrics
from zway_mqtt.logging_abstraction import get_logger

if TYPE_CHECKING:
    from zway_mqtt.structs import BridgeContext, DataNodeProtocol
    from zway_mqtt.zway.adapter import ControllerAdapter

__all__ = ["SubscriptionManager", "SubscriptionSet"]

logger = get_logger(__name__)


class SubscriptionSet:
    """Paths of the nodes that already carry an observer.

    Entries are never removed. ``add`` is an atomic test-and-set so that two
    concurrent walks cannot both claim the same node.
    """

    def __init__(self) -> None:
        self._paths: set[str] = set()
        self._lock = threading.Lock()

    def add(self, path: str) -> bool:
        """Record ``path``; return False if it was already present."""
        with self._lock:
            if path in self._paths:
                return False
            self._paths.add(path)
            size = len(self._paths)
        metrics.record_subscribed_nodes(size)
        return True

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(sorted(self._paths))


class SubscriptionManager:
    """Walks (sub)trees and attaches one observer per node."""

    lp: str = "subscriptions:"

    def __init__(self, context: BridgeContext, adapter: ControllerAdapter) -> None:
        self.context = context
        self.adapter = adapter

    @property
    def subscribed(self) -> SubscriptionSet:
        return self.context.subscriptions

    def subscribe(self, node: DataNodeProtocol) -> int:
        """Observe ``node`` and every node below it that is not observed yet.

        Pre-order walk over an explicit stack, children in their natural
        order. A node whose path is already in the set is skipped together
        with its subtree: that subtree was walked when the node was first
        added, and later growth arrives as child-created events.

        Returns:
            Number of nodes that got a new observer

        """
        lp = f"{self.lp}subscribe:"
        added = 0
        stack: list[DataNodeProtocol] = [node]
        while stack:
            current = stack.pop()
            path = current.path
            if not self.subscribed.add(path):
                continue

            logger.debug("%s Subscribe to %s", lp, path or "<root>")
            try:
                self.adapter.watch(current)
            except Exception as exc:
                logger.critical("%s Failed to add data callback for %s: %s", lp, path, exc, extra={"path": path})
            else:
                added += 1

            stack.extend(reversed(list(current.children)))

        if added:
            logger.info("%s %d new node(s) observed under %s", lp, added, node.path or "<root>")
        return added

    def subscribe_tree(self) -> int:
        """Walk the whole data tree from the controller's root."""
        return self.subscribe(self.context.controller.data_root())
