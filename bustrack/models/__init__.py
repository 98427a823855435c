"""Database models for the bus fleet tracker."""

from .base import Base
from .bus import Bus
from .driver import Driver
from .route import Route, RouteStop
from .prediction import ArrivalPrediction
from .system_log import SystemLog

__all__ = [
    "Base",
    "Bus",
    "Driver",
    "Route",
    "RouteStop",
    "ArrivalPrediction",
    "SystemLog",
]
