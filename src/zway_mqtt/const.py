import os

from zway_mqtt import __version__

__all__ = [
    "COMMAND_CLASS_CONFIGURATION",
    "COMMAND_CLASS_SWITCH_BINARY",
    "CONTROL_TOPIC_PREFIX",
    "GET_TOPIC_PREFIX",
    "SET_TOPIC_PREFIX",
    "SUBSCRIBE_TOPICS",
    "YES_ANSWER",
    "ZWAY_CONFIG_DIR",
    "ZWAY_MQTT_CLIENT_ID",
    "ZWAY_MQTT_CONN_DELAY",
    "ZWAY_MQTT_CONTROLLER_FACTORY",
    "ZWAY_MQTT_CONTROLLER_NODE_ID",
    "ZWAY_MQTT_DEBUG",
    "ZWAY_MQTT_HOST",
    "ZWAY_MQTT_KEEPALIVE",
    "ZWAY_MQTT_LOG_FORMAT",
    "ZWAY_MQTT_LOG_HUMAN_OUTPUT",
    "ZWAY_MQTT_LOG_JSON_FILE",
    "ZWAY_MQTT_METRICS_PORT",
    "ZWAY_MQTT_PASS",
    "ZWAY_MQTT_PORT",
    "ZWAY_MQTT_USER",
    "ZWAY_MQTT_VERSION",
    "ZWAY_MQTT_WALK_ON_START",
    "ZWAY_PORT",
    "ZWAY_TRANSLATIONS_DIR",
    "ZWAY_ZDDX_DIR",
    "bool_env",
    "int_env",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
ZWAY_MQTT_VERSION: str = __version__

# Wire contract, not configurable
GET_TOPIC_PREFIX: str = "zwave/get/"
SET_TOPIC_PREFIX: str = "zwave/set/devices/"
CONTROL_TOPIC_PREFIX: str = "zwave/control/"
SUBSCRIBE_TOPICS: tuple[str, ...] = ("zwave/set/#", "zwave/control/#")

COMMAND_CLASS_SWITCH_BINARY: int = 37
COMMAND_CLASS_CONFIGURATION: int = 112


def int_env(name: str, default: int) -> int:
    """Integer from the environment; unset, empty or non-numeric gives ``default``."""
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.casefold() in YES_ANSWER


# MQTT broker
ZWAY_MQTT_HOST: str = os.environ.get("ZWAY_MQTT_HOST", "localhost")
ZWAY_MQTT_PORT: int = int_env("ZWAY_MQTT_PORT", 1883)
ZWAY_MQTT_USER: str | None = os.environ.get("ZWAY_MQTT_USER") or None
ZWAY_MQTT_PASS: str | None = os.environ.get("ZWAY_MQTT_PASS") or None
ZWAY_MQTT_CLIENT_ID: str = os.environ.get("ZWAY_MQTT_CLIENT_ID", "z-way")
ZWAY_MQTT_KEEPALIVE: int = int_env("ZWAY_MQTT_KEEPALIVE", 300)
ZWAY_MQTT_CONN_DELAY: int = int_env("ZWAY_MQTT_CONN_DELAY", 10)

# Z-Way controller
ZWAY_PORT: str = os.environ.get("ZWAY_PORT", "/dev/ttyAMA0")
ZWAY_CONFIG_DIR: str = os.environ.get("ZWAY_CONFIG_DIR", "/opt/z-way-server/config")
ZWAY_TRANSLATIONS_DIR: str = os.environ.get("ZWAY_TRANSLATIONS_DIR", "/opt/z-way-server/translations")
ZWAY_ZDDX_DIR: str = os.environ.get("ZWAY_ZDDX_DIR", "/opt/z-way-server/ZDDX")
ZWAY_MQTT_CONTROLLER_FACTORY: str | None = os.environ.get("ZWAY_MQTT_CONTROLLER_FACTORY") or None
# the controller's own node id, lifecycle events for it are ignored
ZWAY_MQTT_CONTROLLER_NODE_ID: int = int_env("ZWAY_MQTT_CONTROLLER_NODE_ID", 1)
ZWAY_MQTT_WALK_ON_START: bool = bool_env("ZWAY_MQTT_WALK_ON_START", True)

ZWAY_MQTT_METRICS_PORT: int = int_env("ZWAY_MQTT_METRICS_PORT", 0)
ZWAY_MQTT_DEBUG: bool = bool_env("ZWAY_MQTT_DEBUG", False)

# Logging Configuration
ZWAY_MQTT_LOG_FORMAT: str = os.environ.get("ZWAY_MQTT_LOG_FORMAT", "human")  # "json", "human", or "both"
ZWAY_MQTT_LOG_JSON_FILE: str | None = os.environ.get("ZWAY_MQTT_LOG_JSON_FILE") or None
ZWAY_MQTT_LOG_HUMAN_OUTPUT: str = os.environ.get("ZWAY_MQTT_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path
