"""Common utilities for PRISM HUD."""

from prismhud.common.errors import (
    AudioDecodeError,
    BusyError,
    DeviceError,
    NetworkError,
    NotReadyError,
    PrismError,
    SchemaError,
    ServiceError,
)
from prismhud.common.events import Event, EventBus, get_event_bus
from prismhud.common.logging import get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "Event",
    "EventBus",
    "get_event_bus",
    "PrismError",
    "DeviceError",
    "NotReadyError",
    "NetworkError",
    "ServiceError",
    "SchemaError",
    "AudioDecodeError",
    "BusyError",
]
