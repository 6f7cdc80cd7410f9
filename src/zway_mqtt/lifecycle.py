"""Device lifecycle handling.

Only "command class added" changes what the bridge observes: the command
class data root is subscribed so its values start flowing to MQTT. The other
lifecycle events are informational.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from zway_mqtt.logging_abstraction import get_logger
from zway_mqtt.structs import DeviceChangeType

if TYPE_CHECKING:
    from zway_mqtt.structs import BridgeContext, DeviceEvent
    from zway_mqtt.subscriptions import SubscriptionManager

__all__ = ["LifecycleCoordinator"]

logger = get_logger(__name__)


class LifecycleCoordinator:
    lp: str = "lifecycle:"

    def __init__(self, context: BridgeContext, subscriptions: SubscriptionManager) -> None:
        self.context = context
        self.subscriptions = subscriptions

    def handle(self, event: DeviceEvent) -> int:
        """React to one device lifecycle event.

        Returns:
            Number of data nodes newly observed because of the event

        """
        lp = f"{self.lp}handle:"
        if event.device_id == self.context.settings.controller_node_id:
            logger.debug("%s Ignoring %r for the controller node %d", lp, event.change, event.device_id)
            return 0

        change = event.change
        if change & DeviceChangeType.DEVICE_ADDED:
            logger.info("%s New device added: %d", lp, event.device_id)
        if change & DeviceChangeType.DEVICE_REMOVED:
            logger.info("%s Device removed: %d", lp, event.device_id)
        if change & DeviceChangeType.INSTANCE_ADDED:
            logger.info("%s New instance added to device %d: %d", lp, event.device_id, event.instance_id)
        if change & DeviceChangeType.INSTANCE_REMOVED:
            logger.info("%s Instance removed from device %d: %d", lp, event.device_id, event.instance_id)
        if change & DeviceChangeType.COMMAND_REMOVED:
            logger.info(
                "%s Command class removed from device %d:%d: %d",
                lp,
                event.device_id,
                event.instance_id,
                event.command_class_id,
            )
        if change & DeviceChangeType.COMMAND_ADDED:
            logger.info(
                "%s New command class added to device %d:%d: %d",
                lp,
                event.device_id,
                event.instance_id,
                event.command_class_id,
            )
            return self._subscribe_command_class(event)
        return 0

    def _subscribe_command_class(self, event: DeviceEvent) -> int:
        lp = f"{self.lp}command_added:"
        controller = self.context.controller
        with controller.data_lock():
            node = controller.find_command_class_data(event.device_id, event.instance_id, event.command_class_id)
            if node is None:
                logger.warning(
                    "%s No data for command class %d on device %d:%d",
                    lp,
                    event.command_class_id,
                    event.device_id,
                    event.instance_id,
                )
                return 0
            return self.subscriptions.subscribe(node)
