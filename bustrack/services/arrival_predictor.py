"""Deterministic arrival-time prediction and accuracy reconciliation."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

TRAFFIC_LEVELS = ("low", "medium", "high")
WEATHER_CONDITIONS = ("clear", "rainy", "snowy", "foggy")
TIMES_OF_DAY = ("morning", "afternoon", "evening", "night")
DAYS_OF_WEEK = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_MS_PER_MINUTE = 60_000


@dataclass(frozen=True)
class PredictorConfig:
    """Tunable constants of the predictor."""

    default_base_minutes: float = 30.0
    baseline_speed_kmh: float = 30.0
    accuracy_penalty_per_minute: float = 2.0
    accurate_threshold: int = 80

    @classmethod
    def from_settings(cls, settings: Any) -> "PredictorConfig":
        return cls(
            default_base_minutes=settings.prediction_default_base_minutes,
            baseline_speed_kmh=settings.prediction_baseline_speed_kmh,
            accurate_threshold=settings.prediction_accurate_threshold,
        )


@dataclass(frozen=True)
class FactorSnapshot:
    """Conditions captured when a prediction is made."""

    time_of_day: str
    day_of_week: str
    distance_to_stop: float
    traffic_conditions: str = "medium"
    weather_conditions: str = "clear"
    current_speed: float = 0.0
    number_of_stops: int = 0
    passenger_load: float = 0.0
    fuel_level: float = 100.0
    temperature: float = 25.0

    def merged(self, updates: Dict[str, Any]) -> "FactorSnapshot":
        """Return a copy with the non-null values of ``updates`` applied."""
        changes = {key: value for key, value in updates.items() if value is not None}
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_time_of_day(moment: datetime) -> str:
    """Bucket the wall-clock hour of ``moment``."""
    hour = moment.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def day_of_week(moment: datetime) -> str:
    return DAYS_OF_WEEK[moment.weekday()]


def resolve_base_time(history_minutes: Iterable[float], config: PredictorConfig) -> float:
    """
    Return the mean of past travel durations, or the configured default.

    Args:
        history_minutes: Recorded durations for the same route, in minutes.
        config: Predictor configuration holding the fallback.

    Returns:
        Base travel time in minutes.
    """
    durations = list(history_minutes)
    if not durations:
        return config.default_base_minutes
    return sum(durations) / len(durations)


class ArrivalPredictor:
    """Applies independent multiplicative adjustments to a base travel time."""

    TRAFFIC_MULTIPLIER = {
        "low": 0.8,
        "medium": 1.0,
        "high": 1.5,
    }

    # foggy has no modeled effect
    WEATHER_MULTIPLIER = {
        "clear": 1.0,
        "rainy": 1.3,
        "snowy": 1.3,
        "foggy": 1.0,
    }

    # peak hours
    TIME_OF_DAY_MULTIPLIER = {
        "morning": 1.2,
        "afternoon": 1.0,
        "evening": 1.2,
        "night": 1.0,
    }

    def __init__(self, config: Optional[PredictorConfig] = None):
        self.config = config or PredictorConfig()

    def speed_multiplier(self, current_speed: float) -> float:
        """Scale linearly against the baseline speed; 0 means unknown and is neutral."""
        if current_speed <= 0:
            return 1.0
        return self.config.baseline_speed_kmh / current_speed

    def adjusted_minutes(self, base_time: float, factors: FactorSnapshot) -> float:
        """Return the travel time in minutes after every factor is applied."""
        minutes = base_time
        minutes *= self.TRAFFIC_MULTIPLIER[factors.traffic_conditions]
        minutes *= self.WEATHER_MULTIPLIER[factors.weather_conditions]
        minutes *= self.TIME_OF_DAY_MULTIPLIER[factors.time_of_day]
        minutes *= self.speed_multiplier(factors.current_speed)
        return minutes

    def compute(self, base_time: float, factors: FactorSnapshot, now: datetime) -> datetime:
        """Return the predicted arrival timestamp at the target stop."""
        return now + timedelta(minutes=self.adjusted_minutes(base_time, factors))

    def reconcile(self, predicted: datetime, actual: datetime) -> int:
        """
        Score a prediction against the observed arrival.

        Each minute of deviation (in either direction) costs
        ``accuracy_penalty_per_minute`` points; the score is clamped at 0 and
        rounded half up to an integer percentage.
        """
        difference_ms = abs(predicted - actual) // timedelta(milliseconds=1)
        difference_minutes = difference_ms / _MS_PER_MINUTE
        accuracy = max(0.0, 100 - self.config.accuracy_penalty_per_minute * difference_minutes)
        return int(math.floor(accuracy + 0.5))

    def is_accurate(self, accuracy: Optional[float]) -> bool:
        return accuracy is not None and accuracy >= self.config.accurate_threshold
