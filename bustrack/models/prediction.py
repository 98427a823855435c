"""Arrival prediction records and their factor snapshot."""

from sqlalchemy import String, Integer, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Any, Dict, Optional

from .base import Base, TimestampMixin


PREDICTION_STATUSES = ("pending", "in_transit", "arrived", "cancelled")
OPEN_STATUSES = ("pending", "in_transit")


class ArrivalPrediction(Base, TimestampMixin):
    """
    One predicted arrival of a bus at a stop of a route.

    Records are appended, never upserted: several predictions may coexist for
    the same (bus, route, stop) with different creation times. The
    ``cancelled`` status is never set by the service layer.
    """

    __tablename__ = "arrival_predictions"
    __table_args__ = (
        Index("ix_arrival_predictions_bus_route_stop", "bus_id", "route_id", "stop_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    bus_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("buses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    route_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    driver_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("drivers.id", ondelete="SET NULL"),
        nullable=True
    )
    stop_id: Mapped[int] = mapped_column(Integer, nullable=False)

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    predicted_arrival_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True
    )
    actual_arrival_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    prediction_accuracy: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 0-100

    # Factor snapshot
    traffic_conditions: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    weather_conditions: Mapped[str] = mapped_column(String(10), nullable=False, default="clear")
    time_of_day: Mapped[str] = mapped_column(String(10), nullable=False)
    day_of_week: Mapped[str] = mapped_column(String(10), nullable=False)
    current_speed: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    distance_to_stop: Mapped[float] = mapped_column(Float, nullable=False)
    number_of_stops: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passenger_load: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    fuel_level: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
    temperature: Mapped[float] = mapped_column(Float, nullable=False, default=25.0)

    historical_average_minutes: Mapped[float] = mapped_column(Float, nullable=False)
    algorithm: Mapped[str] = mapped_column(String(32), nullable=False, default="multiplicative")
    model_version: Mapped[str] = mapped_column(String(20), nullable=False, default="1.0.0")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)

    def factors(self) -> Dict[str, Any]:
        """Return the factor snapshot as a plain dictionary."""
        return {
            "traffic_conditions": self.traffic_conditions,
            "weather_conditions": self.weather_conditions,
            "time_of_day": self.time_of_day,
            "day_of_week": self.day_of_week,
            "current_speed": self.current_speed,
            "distance_to_stop": self.distance_to_stop,
            "number_of_stops": self.number_of_stops,
            "passenger_load": self.passenger_load,
            "fuel_level": self.fuel_level,
            "temperature": self.temperature,
        }

    def __repr__(self) -> str:
        return (
            f"<ArrivalPrediction(id={self.id}, bus_id={self.bus_id}, "
            f"stop_id={self.stop_id}, status={self.status})>"
        )
