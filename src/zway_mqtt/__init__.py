"""Z-Way to MQTT bridge.

Mirrors the Z-Way data tree onto ``zwave/get/...`` topics and turns
``zwave/set/...`` and ``zwave/control/...`` messages into controller calls.
"""

__version__ = "0.3.0"
