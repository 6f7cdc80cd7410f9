"""Prometheus metrics for the bridge."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

zway_mqtt_publish_total: Final = Counter(  # type: ignore[assignment]
    "zway_mqtt_publish_total",
    "Total retained value publishes",
    ["outcome"],
)

zway_mqtt_command_total: Final = Counter(  # type: ignore[assignment]
    "zway_mqtt_command_total",
    "Total inbound set/control commands",
    ["kind", "command_class", "outcome"],
)

zway_mqtt_event_total: Final = Counter(  # type: ignore[assignment]
    "zway_mqtt_event_total",
    "Total events taken off the dispatcher queue",
    ["event"],
)

zway_mqtt_subscribed_nodes: Final = Gauge(  # type: ignore[assignment]
    "zway_mqtt_subscribed_nodes",
    "Number of data tree nodes carrying an observer",
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_publish(outcome: str) -> None:
    zway_mqtt_publish_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_command(kind: str, command_class: int | str, outcome: str) -> None:
    zway_mqtt_command_total.labels(  # type: ignore[no-untyped-call]
        kind=kind,
        command_class=str(command_class),
        outcome=outcome,
    ).inc()


def record_event(event: str) -> None:
    zway_mqtt_event_total.labels(event=event).inc()  # type: ignore[no-untyped-call]


def record_subscribed_nodes(count: int) -> None:
    zway_mqtt_subscribed_nodes.set(count)  # type: ignore[no-untyped-call]
