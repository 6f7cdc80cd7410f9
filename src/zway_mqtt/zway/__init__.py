"""Z-Way controller side: callback adapter and an in-memory controller."""

from zway_mqtt.zway.adapter import ControllerAdapter
from zway_mqtt.zway.simulated import DataHolder, SimulatedZWay, create_controller

__all__ = [
    "ControllerAdapter",
    "DataHolder",
    "SimulatedZWay",
    "create_controller",
]
