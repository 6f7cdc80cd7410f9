from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import dotenv
import uvloop

from zway_mqtt import metrics
from zway_mqtt.bridge import ZWayMQTTBridge
from zway_mqtt.const import ZWAY_MQTT_DEBUG, ZWAY_MQTT_VERSION
from zway_mqtt.correlation import correlation_context, ensure_correlation_id
from zway_mqtt.exceptions import ControllerFailureError
from zway_mqtt.logging_abstraction import get_logger, set_bridge_log_level
from zway_mqtt.structs import BridgeContext, BridgeSettings, ZWayControllerProtocol
from zway_mqtt.utils import load_callable
from zway_mqtt.zway.simulated import create_controller

logger = get_logger(__name__)

# Suppress verbose MQTT library warnings
mqtt_logger = logging.getLogger("mqtt")
mqtt_logger.setLevel(logging.ERROR)
mqtt_logger.propagate = False


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Z-Way to MQTT bridge")
    parser.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Run against the in-memory simulated controller",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port (0 disables)",
    )
    args = parser.parse_args(argv)

    if args.debug:
        set_bridge_log_level(logging.DEBUG)
        logger.info("Debug mode enabled via CLI argument")

    if args.env:
        load_env_file(args.env)
    return args


def load_env_file(path: Path) -> bool:
    """Load ``ZWAY_*`` settings from a dotenv file, overriding the environment."""
    env_path = path.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False
    loaded_any = dotenv.load_dotenv(env_path, override=True)
    if loaded_any:
        logger.info(" Environment variables loaded", extra={"source": str(env_path)})
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return loaded_any


def build_controller(settings: BridgeSettings, simulate: bool = False) -> ZWayControllerProtocol:
    """Create the controller binding.

    Raises:
        ControllerFailureError: No factory configured, or it failed

    """
    if simulate:
        logger.info("Using the simulated Z-Way controller")
        return create_controller(settings)

    if not settings.controller_factory:
        msg = "ZWAY_MQTT_CONTROLLER_FACTORY is not set (use --simulate to run without hardware)"
        raise ControllerFailureError("load", msg)

    try:
        factory = load_callable(settings.controller_factory)
        controller = factory(settings)
    except Exception as exc:
        raise ControllerFailureError("init", f"{settings.controller_factory}: {exc}") from exc
    logger.info("Controller created", extra={"factory": settings.controller_factory, "port": settings.zway_port})
    return controller


async def run_bridge(bridge: ZWayMQTTBridge) -> None:
    """Start the bridge and dispatch events until SIGINT/SIGTERM."""
    _ = ensure_correlation_id()
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    logger.debug("Signal handlers configured for SIGINT & SIGTERM")

    await bridge.start()
    bridge.run_task = asyncio.create_task(bridge.run())
    try:
        _ = await stop_event.wait()
        logger.info("Shutdown signal received, stopping...")
    finally:
        await bridge.stop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            _ = loop.remove_signal_handler(sig)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Z-Way MQTT bridge."""
    with correlation_context():
        logger.info("Starting Z-Way MQTT bridge", extra={"version": ZWAY_MQTT_VERSION})
        args = parse_cli(argv)

        if ZWAY_MQTT_DEBUG:
            logger.info("Debug logging enabled via configuration")
            set_bridge_log_level(logging.DEBUG)

        settings = BridgeSettings.from_env()
        if args.metrics_port is not None:
            settings = settings.model_copy(update={"metrics_port": args.metrics_port})

        try:
            controller = build_controller(settings, simulate=args.simulate)
            if settings.metrics_port > 0:
                metrics.start_metrics_server(settings.metrics_port)
                logger.info("Metrics exported", extra={"port": settings.metrics_port})
            bridge = ZWayMQTTBridge(BridgeContext(settings=settings, controller=controller))
            uvloop.run(run_bridge(bridge))
        except ControllerFailureError as exc:
            logger.critical("Z-Way controller failure: %s", exc, extra={"stage": exc.stage})
            sys.exit(1)
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")

        logger.info("Z-Way MQTT bridge stopped")


if __name__ == "__main__":
    main()
