"""Bus model for fleet vehicles and their live telemetry."""

from sqlalchemy import String, Integer, Float, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from typing import Optional

from .base import Base, TimestampMixin

BUS_STATUSES = ("active", "maintenance", "inactive", "on_trip")


class Bus(Base, TimestampMixin):
    """A vehicle of the fleet, with its most recent reported position."""

    __tablename__ = "buses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bus_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    registration_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    bus_type: Mapped[str] = mapped_column(String(20), nullable=False, default="Local")
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="inactive", index=True)

    # Telemetry
    latitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    speed: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # km/h
    direction: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # degrees
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    last_location_update: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    current_route_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("routes.id", ondelete="SET NULL"),
        nullable=True
    )
    current_driver_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("drivers.id", ondelete="SET NULL"),
        nullable=True
    )

    @property
    def available_seats(self) -> int:
        return self.capacity - self.current_capacity

    def __repr__(self) -> str:
        return f"<Bus(id={self.id}, number={self.bus_number}, status={self.status})>"
