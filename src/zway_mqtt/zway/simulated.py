"""In-memory Z-Way controller.

Implements ``ZWayControllerProtocol`` without a radio: a data tree made of
``DataHolder`` nodes, device lifecycle callbacks and the two command class
setters the bridge drives. Used with ``--simulate`` and by the test suite.

Callbacks fire synchronously on the thread that mutates the tree, the same
contract the native driver has.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from zway_mqtt.const import COMMAND_CLASS_CONFIGURATION, COMMAND_CLASS_SWITCH_BINARY
from zway_mqtt.exceptions import CommandRejectedError, InvalidTypeError
from zway_mqtt.logging_abstraction import get_logger
from zway_mqtt.structs import DataChangeType, DataType, DeviceChangeType

if TYPE_CHECKING:
    from zway_mqtt.structs import BridgeSettings, DataCallback, DeviceCallback

__all__ = ["DataHolder", "SimulatedZWay", "create_controller"]

logger = get_logger(__name__)

# Python types accepted by each data holder type
VALUE_TYPES: dict[DataType, tuple[type, ...]] = {
    DataType.BOOLEAN: (bool,),
    DataType.INTEGER: (int,),
    DataType.FLOAT: (int, float),
    DataType.STRING: (str,),
    DataType.BINARY: (bytes, bytearray),
}


class DataHolder:
    """A node of the simulated data tree.

    The type is fixed at creation. Children keep insertion order.
    """

    def __init__(
        self,
        name: str,
        data_type: DataType = DataType.EMPTY,
        value: Any = None,
        parent: DataHolder | None = None,
    ) -> None:
        self.name = name
        self._type = DataType(data_type)
        self._value = value
        self.parent = parent
        self._children: dict[str, DataHolder] = {}
        self._callbacks: list[DataCallback] = []

    def __repr__(self) -> str:
        return f"DataHolder(path={self.path!r}, type={self._type.name}, value={self._value!r})"

    @property
    def path(self) -> str:
        if self.parent is None:
            return ""
        parent_path = self.parent.path
        return f"{parent_path}.{self.name}" if parent_path else self.name

    @property
    def type(self) -> DataType:
        return self._type

    @property
    def value(self) -> Any:
        return self._value

    @property
    def children(self) -> list[DataHolder]:
        return list(self._children.values())

    @property
    def callback_count(self) -> int:
        return len(self._callbacks)

    def add_callback(self, callback: DataCallback) -> None:
        self._callbacks.append(callback)

    def child(self, name: str | int) -> DataHolder | None:
        return self._children.get(str(name))

    def find(self, path: str) -> DataHolder | None:
        """Resolve a dotted path relative to this node."""
        node: DataHolder | None = self
        for segment in path.split(".") if path else []:
            if node is None:
                return None
            node = node.child(segment)
        return node

    def add_child(
        self,
        name: str | int,
        data_type: DataType = DataType.EMPTY,
        value: Any = None,
    ) -> DataHolder:
        """Create a child, or return the existing one with that name."""
        key = str(name)
        existing = self._children.get(key)
        if existing is not None:
            return existing
        node = DataHolder(key, data_type, value, parent=self)
        self._children[key] = node
        self._notify(DataChangeType.CHILD_CREATED, node)
        return node

    def attach(self, node: DataHolder) -> DataHolder:
        """Attach a pre-built subtree as a child in one step."""
        if node.name in self._children:
            msg = f"{self.path}.{node.name} already exists"
            raise ValueError(msg)
        node.parent = self
        self._children[node.name] = node
        self._notify(DataChangeType.CHILD_CREATED, node)
        return node

    def set_value(self, value: Any) -> None:
        if self._type is DataType.EMPTY or self._type.is_array:
            msg = f"{self.path} holds {self._type.name}, cannot set a value"
            raise InvalidTypeError(msg)
        expected = VALUE_TYPES[self._type]
        if not isinstance(value, expected) or (self._type is not DataType.BOOLEAN and isinstance(value, bool)):
            msg = f"{self.path} holds {self._type.name}, got {type(value).__name__}"
            raise InvalidTypeError(msg)
        self._value = value
        self._notify(DataChangeType.UPDATED, self)

    def invalidate(self) -> None:
        self._notify(DataChangeType.INVALIDATED, self)

    def remove_child(self, name: str | int) -> DataHolder | None:
        node = self._children.pop(str(name), None)
        if node is not None:
            for descendant in node.walk():
                descendant._notify(DataChangeType.DELETED, descendant)
        return node

    def walk(self) -> Iterator[DataHolder]:
        """Pre-order iteration over this node and its subtree."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def _notify(self, change: DataChangeType, node: DataHolder) -> None:
        # CHILD_CREATED goes to the parent's observers with the new child as node
        for callback in list(self._callbacks):
            callback(change, node)


class SimulatedZWay:
    """Controller with an in-memory network.

    Tree layout mirrors Z-Way's:
    ``devices.<id>.instances.<id>.commandClasses.<id>.data.<...>``
    """

    lp: str = "zway_sim:"

    def __init__(self, node_id: int = 1) -> None:
        self.node_id = node_id
        self._lock = threading.RLock()
        self._root = DataHolder("")
        self._device_callbacks: list[tuple[DeviceChangeType, DeviceCallback]] = []
        self.controller_data = self._root.add_child("controller")
        self.controller_data.add_child("nodeId", DataType.INTEGER, node_id)
        self.devices = self._root.add_child("devices")
        self.running = False
        self.discovered = False
        self.inclusion_active = False
        self.exclusion_active = False

    # --- controller interface -------------------------------------------------

    def data_root(self) -> DataHolder:
        return self._root

    def data_lock(self) -> threading.RLock:
        return self._lock

    def find_command_class_data(self, device_id: int, instance_id: int, command_class_id: int) -> DataHolder | None:
        return self._root.find(f"devices.{device_id}.instances.{instance_id}.commandClasses.{command_class_id}")

    def add_data_callback(self, node: DataHolder, callback: DataCallback) -> None:
        node.add_callback(callback)

    def add_device_callback(self, mask: DeviceChangeType, callback: DeviceCallback) -> None:
        with self._lock:
            self._device_callbacks.append((mask, callback))
            if not mask & DeviceChangeType.ENUMERATE_EXISTING:
                return
            for change, device_id, instance_id, cc_id in self._existing():
                if mask & change:
                    callback(change, device_id, instance_id, cc_id)

    def switch_binary_set(self, device_id: int, instance_id: int, value: bool) -> None:
        with self._lock:
            cc = self._command_class(device_id, instance_id, COMMAND_CLASS_SWITCH_BINARY)
            level = cc.find("data.level")
            if level is None:
                level = cc.add_child("data").add_child("level", DataType.BOOLEAN, False)
            level.set_value(bool(value))

    def configuration_set(
        self,
        device_id: int,
        instance_id: int,
        parameter: int,
        value: int,
        size: int = 0,
    ) -> None:
        if size not in (0, 1, 2, 4):
            msg = f"unsupported configuration size {size}"
            raise CommandRejectedError(msg)
        with self._lock:
            cc = self._command_class(device_id, instance_id, COMMAND_CLASS_CONFIGURATION)
            data = cc.add_child("data")
            param = data.child(parameter)
            if param is None:
                # build the whole parameter subtree before it becomes visible
                param = DataHolder(str(parameter))
                param._children["val"] = DataHolder("val", DataType.INTEGER, value, parent=param)
                param._children["size"] = DataHolder("size", DataType.INTEGER, size or 4, parent=param)
                data.attach(param)
                return
            val = param.child("val") or param.add_child("val", DataType.INTEGER, value)
            val.set_value(value)

    def add_node_to_network(self, start: bool, high_power: bool = True) -> None:
        with self._lock:
            self.inclusion_active = bool(start)
            logger.info("%s Inclusion %s (high_power=%s)", self.lp, "started" if start else "stopped", high_power)

    def remove_node_from_network(self, start: bool, high_power: bool = True) -> None:
        with self._lock:
            self.exclusion_active = bool(start)
            logger.info("%s Exclusion %s (high_power=%s)", self.lp, "started" if start else "stopped", high_power)

    def start(self) -> None:
        self.running = True
        logger.info("%s Controller started", self.lp)

    def discover(self) -> None:
        if not self.running:
            msg = "controller not started"
            raise RuntimeError(msg)
        self.discovered = True
        logger.info("%s Discovery done, %d device(s)", self.lp, len(self.devices.children))

    def stop(self) -> None:
        self.running = False
        logger.info("%s Controller stopped", self.lp)

    # --- network building ------------------------------------------------------

    def add_device(self, device_id: int) -> DataHolder:
        with self._lock:
            device = self.devices.child(device_id)
            if device is None:
                device = self.devices.add_child(device_id)
                device.add_child("data").add_child("nodeId", DataType.INTEGER, device_id)
                device.add_child("instances")
                self._fire(DeviceChangeType.DEVICE_ADDED, device_id)
            return device

    def add_instance(self, device_id: int, instance_id: int) -> DataHolder:
        with self._lock:
            instances = self.add_device(device_id).add_child("instances")
            instance = instances.child(instance_id)
            if instance is None:
                instance = instances.add_child(instance_id)
                instance.add_child("commandClasses")
                self._fire(DeviceChangeType.INSTANCE_ADDED, device_id, instance_id)
            return instance

    def add_command_class(self, device_id: int, instance_id: int, command_class_id: int) -> DataHolder:
        """Add a command class with its default data and announce it."""
        with self._lock:
            classes = self.add_instance(device_id, instance_id).add_child("commandClasses")
            cc = classes.child(command_class_id)
            if cc is not None:
                return cc
            cc = DataHolder(str(command_class_id))
            data = DataHolder("data", parent=cc)
            cc._children["data"] = data
            data._children["supported"] = DataHolder("supported", DataType.BOOLEAN, True, parent=data)
            if command_class_id == COMMAND_CLASS_SWITCH_BINARY:
                data._children["level"] = DataHolder("level", DataType.BOOLEAN, False, parent=data)
            classes.attach(cc)
            self._fire(DeviceChangeType.COMMAND_ADDED, device_id, instance_id, command_class_id)
            return cc

    def remove_device(self, device_id: int) -> None:
        with self._lock:
            if self.devices.remove_child(device_id) is not None:
                self._fire(DeviceChangeType.DEVICE_REMOVED, device_id)

    def _command_class(self, device_id: int, instance_id: int, command_class_id: int) -> DataHolder:
        cc = self.find_command_class_data(device_id, instance_id, command_class_id)
        if cc is None:
            msg = f"device {device_id}:{instance_id} has no command class {command_class_id}"
            raise CommandRejectedError(msg)
        return cc

    def _existing(self) -> Iterator[tuple[DeviceChangeType, int, int, int]]:
        for device in self.devices.children:
            device_id = int(device.name)
            yield DeviceChangeType.DEVICE_ADDED, device_id, 0, 0
            instances = device.child("instances")
            for instance in instances.children if instances else []:
                instance_id = int(instance.name)
                yield DeviceChangeType.INSTANCE_ADDED, device_id, instance_id, 0
                classes = instance.child("commandClasses")
                for cc in classes.children if classes else []:
                    yield DeviceChangeType.COMMAND_ADDED, device_id, instance_id, int(cc.name)

    def _fire(self, change: DeviceChangeType, device_id: int, instance_id: int = 0, cc_id: int = 0) -> None:
        for mask, callback in list(self._device_callbacks):
            if mask & change:
                callback(change, device_id, instance_id, cc_id)


def create_controller(settings: BridgeSettings | None = None) -> SimulatedZWay:
    """Build a simulated controller with a small demo network.

    Device 2 is a binary switch, device 3 a switch with configuration
    parameters.
    """
    node_id = settings.controller_node_id if settings is not None else 1
    zway = SimulatedZWay(node_id=node_id)
    zway.add_command_class(2, 0, COMMAND_CLASS_SWITCH_BINARY)
    zway.add_command_class(3, 0, COMMAND_CLASS_SWITCH_BINARY)
    zway.add_command_class(3, 0, COMMAND_CLASS_CONFIGURATION)
    zway.configuration_set(3, 0, 1, 0)
    return zway
