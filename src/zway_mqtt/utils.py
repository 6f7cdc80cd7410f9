from __future__ import annotations

import importlib
import os
import signal
from collections.abc import Callable
from typing import Any

from zway_mqtt.logging_abstraction import get_logger

logger = get_logger(__name__)


def send_signal(signal_num: int):
    """Send a signal to the current process.

    Args:
        signal_num (int): The signal number to send.

    """
    try:
        logger.debug("Sending signal %s to process %s", signal_num, os.getpid())
        os.kill(os.getpid(), signal_num)
    except OSError:
        logger.exception("Failed to send signal %s to process", signal_num)
        raise


def send_sigterm():
    """Send a SIGTERM signal to the current process.
    This is typically used to request termination of the application.
    """
    send_signal(signal.SIGTERM)


def load_callable(reference: str) -> Callable[..., Any]:
    """Resolve a ``package.module:attribute`` reference.

    Raises:
        ValueError: ``reference`` is not of the ``module:attribute`` form
        ImportError: The module cannot be imported
        AttributeError: The module has no such attribute

    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        msg = f"expected 'module:callable', got {reference!r}"
        raise ValueError(msg)
    module = importlib.import_module(module_name)
    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part)
    if not callable(target):
        msg = f"{reference} is not callable"
        raise ValueError(msg)
    return target
