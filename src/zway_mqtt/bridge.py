"""Bridge wiring and the event dispatcher.

All controller callbacks and inbound MQTT messages arrive on one asyncio
queue. ``ZWayMQTTBridge.run`` is its only consumer, so components never see
two events at once.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from zway_mqtt import metrics
from zway_mqtt.correlation import correlation_context
from zway_mqtt.exceptions import ControllerFailureError
from zway_mqtt.lifecycle import LifecycleCoordinator
from zway_mqtt.logging_abstraction import get_logger
from zway_mqtt.mqtt import CommandRouter, MQTTClient, Publisher
from zway_mqtt.structs import DataChangeType, DataEvent, DeviceEvent, InboundMessage
from zway_mqtt.subscriptions import SubscriptionManager
from zway_mqtt.zway.adapter import ControllerAdapter

if TYPE_CHECKING:
    from zway_mqtt.structs import BridgeContext, BridgeEvent

__all__ = ["ZWayMQTTBridge"]

logger = get_logger(__name__)


class ZWayMQTTBridge:
    lp: str = "bridge:"

    def __init__(self, context: BridgeContext) -> None:
        self.context = context
        self.mqtt_client: MQTTClient | None = None
        if context.transport is None:
            self.mqtt_client = MQTTClient(context)
            context.transport = self.mqtt_client

        self.adapter = ControllerAdapter(context)
        self.subscriptions = SubscriptionManager(context, self.adapter)
        self.publisher = Publisher(context)
        self.lifecycle = LifecycleCoordinator(context, self.subscriptions)
        self.router = CommandRouter(context)
        self.run_task: asyncio.Task[None] | None = None
        self.running = False

    async def start(self) -> None:
        """Bring the controller up, observe the tree and connect to MQTT.

        Raises:
            ControllerFailureError: The controller failed to start or discover

        """
        lp = f"{self.lp}start:"
        context = self.context
        context.loop = asyncio.get_running_loop()
        controller = context.controller

        for stage, step in (("start", controller.start), ("discover", controller.discover)):
            try:
                step()
            except ControllerFailureError:
                raise
            except Exception as exc:
                raise ControllerFailureError(stage, str(exc)) from exc
            logger.debug("%s Controller %s done", lp, stage)

        with controller.data_lock():
            if context.settings.walk_on_start:
                _ = self.subscriptions.subscribe_tree()
            self.adapter.register_device_observer()
        logger.info("%s Observing %d data node(s)", lp, len(context.subscriptions))

        if self.mqtt_client is not None:
            self.mqtt_client.start_task = asyncio.create_task(self.mqtt_client.start())
        self.running = True

    async def run(self) -> None:
        """Consume the event queue until cancelled."""
        lp = f"{self.lp}run:"
        logger.info("%s Dispatcher started", lp)
        events = self.context.events
        while True:
            event = await events.get()
            try:
                await self.dispatch(event)
            finally:
                events.task_done()

    async def drain(self) -> int:
        """Dispatch every event queued so far, including the ones they queue."""
        handled = 0
        events = self.context.events
        while not events.empty():
            event = events.get_nowait()
            try:
                await self.dispatch(event)
            finally:
                events.task_done()
            handled += 1
        return handled

    async def dispatch(self, event: BridgeEvent) -> None:
        lp = f"{self.lp}dispatch:"
        with correlation_context():
            metrics.record_event(type(event).__name__)
            try:
                if isinstance(event, DataEvent):
                    await self._on_data_event(event)
                elif isinstance(event, DeviceEvent):
                    _ = self.lifecycle.handle(event)
                elif isinstance(event, InboundMessage):
                    _ = self.router.handle_message(event.topic, event.payload)
                else:
                    logger.warning("%s Unknown event type: %r", lp, event)
            except Exception:
                logger.exception("%s Error while handling %s", lp, type(event).__name__)

    async def _on_data_event(self, event: DataEvent) -> None:
        lp = f"{self.lp}data:"
        change = event.change
        node = event.node
        if change & DataChangeType.CHILD_CREATED:
            with self.context.controller.data_lock():
                _ = self.subscriptions.subscribe(node)
        if change & DataChangeType.UPDATED:
            _ = await self.publisher.publish_node(node)
        if change & (DataChangeType.INVALIDATED | DataChangeType.DELETED):
            # no retained-message cleanup for removed or invalidated values
            logger.debug("%s %r for %s", lp, change, node.path)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        self.running = False
        if self.mqtt_client is not None:
            await self.mqtt_client.stop()
        try:
            self.context.controller.stop()
        except Exception as exc:
            logger.warning("%s Controller stop failed: %s", lp, exc)
        if self.run_task and not self.run_task.done():
            _ = self.run_task.cancel()
        logger.info("%s Bridge stopped", lp)
