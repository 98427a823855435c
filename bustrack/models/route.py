"""Route and stop models."""

from sqlalchemy import String, Integer, Float, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Optional, List

from .base import Base, TimestampMixin


class Route(Base, TimestampMixin):
    """A bus route made of ordered stops."""

    __tablename__ = "routes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    route_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    route_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    total_distance: Mapped[float] = mapped_column(Float, nullable=False)  # km
    estimated_duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes
    average_speed: Mapped[float] = mapped_column(Float, nullable=False, default=30.0)  # km/h
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)

    # Relationships
    stops: Mapped[List["RouteStop"]] = relationship(
        "RouteStop",
        back_populates="route",
        cascade="all, delete-orphan",
        order_by="RouteStop.stop_number",
        lazy="selectin"
    )

    def get_stop(self, stop_number: int) -> Optional["RouteStop"]:
        return next((stop for stop in self.stops if stop.stop_number == stop_number), None)

    def __repr__(self) -> str:
        return f"<Route(number={self.route_number}, name={self.route_name})>"


class RouteStop(Base):
    """A stop along a route, identified by its position number."""

    __tablename__ = "route_stops"
    __table_args__ = (
        UniqueConstraint("route_id", "stop_number", name="uq_route_stop_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    route_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    stop_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # minutes from start
    is_terminal: Mapped[bool] = mapped_column(default=False, nullable=False)

    route: Mapped["Route"] = relationship("Route", back_populates="stops")

    def __repr__(self) -> str:
        return f"<RouteStop(route_id={self.route_id}, stop_number={self.stop_number}, name={self.name})>"
