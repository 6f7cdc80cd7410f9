"""Controller-facing adapter.

Z-Way invokes data and device callbacks from its own driver thread. The
adapter turns each callback into a ``DataEvent`` / ``DeviceEvent`` and posts
it to the bridge's event queue; all processing then happens on the
dispatcher.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from zway_mqtt.logging_abstraction import get_logger
from zway_mqtt.structs import (
    DataChangeType,
    DataEvent,
    DataNodeProtocol,
    DeviceChangeType,
    DeviceEvent,
)

if TYPE_CHECKING:
    from zway_mqtt.structs import BridgeContext

__all__ = ["ControllerAdapter"]

logger = get_logger(__name__)


class ControllerAdapter:
    lp: str = "zway_adapter:"

    def __init__(self, context: BridgeContext) -> None:
        self.context = context

    def watch(self, node: DataNodeProtocol) -> None:
        """Attach the bridge's data callback to a single node."""
        self.context.controller.add_data_callback(node, self._on_data_change)

    def register_device_observer(self) -> None:
        """Subscribe to device lifecycle events, replaying what already exists."""
        mask = DeviceChangeType.all_events()
        logger.debug("%s Registering device callback (mask=0x%02x)", self.lp, int(mask))
        self.context.controller.add_device_callback(mask, self._on_device_change)

    def _on_data_change(self, change: DataChangeType, node: DataNodeProtocol) -> None:
        # driver thread
        self.context.post_event(DataEvent(change=DataChangeType(change), node=node))

    def _on_device_change(
        self,
        change: DeviceChangeType,
        device_id: int,
        instance_id: int,
        command_class_id: int,
    ) -> None:
        # driver thread
        self.context.post_event(
            DeviceEvent(
                change=DeviceChangeType(change),
                device_id=device_id,
                instance_id=instance_id,
                command_class_id=command_class_id,
            ),
        )
