"""
Shared fixtures for unit tests.

This module provides reusable fixtures for testing the Z-Way MQTT bridge.
"""

from contextlib import nullcontext
from unittest.mock import AsyncMock, MagicMock

import pytest

from zway_mqtt.structs import BridgeContext, BridgeSettings
from zway_mqtt.zway.simulated import SimulatedZWay


@pytest.fixture
def settings():
    """Bridge settings that never touch the environment's broker."""
    return BridgeSettings(mqtt_host="broker.test", mqtt_conn_delay=1, controller_node_id=1, walk_on_start=True)


@pytest.fixture
def mock_controller():
    """
    Mock Z-Way controller.

    ``data_lock`` returns a real (no-op) context manager so code under test
    can use it in a ``with`` statement.
    """
    controller = MagicMock()
    controller.data_lock = MagicMock(side_effect=lambda: nullcontext())
    controller.find_command_class_data = MagicMock(return_value=None)
    return controller


@pytest.fixture
def mock_transport():
    """
    Mock MQTT transport.

    Returns an AsyncMock whose ``publish`` reports success.
    """
    transport = AsyncMock()
    transport.publish = AsyncMock(return_value=True)
    return transport


@pytest.fixture
def context(settings, mock_controller, mock_transport):
    """BridgeContext wired to mocks."""
    return BridgeContext(settings=settings, controller=mock_controller, transport=mock_transport)


@pytest.fixture
def zway():
    """
    Simulated controller with one binary switch (device 2).

    The switch's ``level`` starts False.
    """
    controller = SimulatedZWay(node_id=1)
    controller.add_command_class(2, 0, 37)
    return controller


@pytest.fixture
def sim_context(settings, zway, mock_transport):
    """BridgeContext wired to the simulated controller and a mock transport."""
    return BridgeContext(settings=settings, controller=zway, transport=mock_transport)


@pytest.fixture
def set_topic():
    """Build a ``zwave/set/...`` topic."""

    def _build(device: int, instance: int, cc: int, rest: str) -> str:
        return f"zwave/set/devices/{device}/instances/{instance}/commandClasses/{cc}/data/{rest}"

    return _build
