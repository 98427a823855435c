"""Domain services for fleet data, predictions and live tracking."""

from .arrival_predictor import ArrivalPredictor, FactorSnapshot, PredictorConfig
from .fleet_service import (
    CapacityError,
    BusNotFoundError,
    DriverNotFoundError,
    DuplicateRecordError,
    FleetService,
    NotFoundError,
    RouteNotFoundError,
    TripStateError,
)
from .geo_service import GeoService
from .prediction_service import PredictionNotFoundError, PredictionService, PredictionStateError
from .tracking_hub import TrackingHub, tracking_hub

__all__ = [
    "ArrivalPredictor",
    "FactorSnapshot",
    "PredictorConfig",
    "FleetService",
    "CapacityError",
    "NotFoundError",
    "BusNotFoundError",
    "RouteNotFoundError",
    "DriverNotFoundError",
    "DuplicateRecordError",
    "TripStateError",
    "GeoService",
    "PredictionService",
    "PredictionNotFoundError",
    "PredictionStateError",
    "TrackingHub",
    "tracking_hub",
]
