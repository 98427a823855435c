"""Service helpers for buses, routes, drivers and trips."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.bus import BUS_STATUSES, Bus
from ..models.driver import Driver
from ..models.route import Route, RouteStop
from .geo_service import GeoService

logger = logging.getLogger(__name__)


class NotFoundError(Exception):
    """Raised when a referenced record does not exist."""


class BusNotFoundError(NotFoundError):
    """Raised when a bus id cannot be resolved."""


class RouteNotFoundError(NotFoundError):
    """Raised when a route id cannot be resolved."""


class DriverNotFoundError(NotFoundError):
    """Raised when a driver id cannot be resolved."""


class DuplicateRecordError(Exception):
    """Raised when a unique business key is already taken."""


class TripStateError(Exception):
    """Raised when a trip transition is not allowed in the current state."""


class CapacityError(Exception):
    """Raised when a passenger count exceeds the bus capacity."""


class FleetService:
    """Resolve and persist fleet reference data and live bus telemetry."""

    def __init__(self, db: AsyncSession, geo_service: Optional[GeoService] = None):
        self._db = db
        self._geo = geo_service or GeoService()

    # Buses ---------------------------------------------------------------

    async def get_bus(self, bus_id: int) -> Bus:
        bus = await self._db.get(Bus, bus_id)
        if bus is None:
            raise BusNotFoundError(f"Bus {bus_id} not found")
        return bus

    async def list_buses(self, status: Optional[str] = None) -> List[Bus]:
        stmt = select(Bus).order_by(Bus.bus_number)
        if status:
            stmt = stmt.where(Bus.status == status)
        result = await self._db.execute(stmt)
        return list(result.scalars())

    async def create_bus(self, **fields: Any) -> Bus:
        existing = await self._db.execute(
            select(Bus.id).where(
                or_(
                    Bus.bus_number == fields["bus_number"],
                    Bus.registration_number == fields["registration_number"],
                )
            )
        )
        if existing.first() is not None:
            raise DuplicateRecordError(
                f"Bus {fields['bus_number']} or registration {fields['registration_number']} already exists"
            )

        bus = Bus(**fields)
        self._db.add(bus)
        await self._db.flush()
        await self._db.refresh(bus)
        logger.info("Registered bus %s", bus.bus_number, extra={"bus_id": bus.id})
        return bus

    async def update_location(
        self,
        bus_id: int,
        latitude: float,
        longitude: float,
        speed: Optional[float] = None,
        direction: Optional[float] = None,
    ) -> Bus:
        """Store the latest reported position of a bus."""
        bus = await self.get_bus(bus_id)
        bus.latitude = latitude
        bus.longitude = longitude
        if speed is not None:
            bus.speed = speed
        if direction is not None:
            bus.direction = direction
        bus.last_location_update = datetime.now(timezone.utc)
        await self._db.flush()
        return bus

    async def update_status(self, bus_id: int, status: str) -> Bus:
        """Move a bus between active, maintenance and inactive outside of a trip."""
        if status not in BUS_STATUSES or status == "on_trip":
            raise ValueError(f"Unsupported bus status: {status}")

        bus = await self.get_bus(bus_id)
        if bus.status == "on_trip":
            raise TripStateError("Cannot change status while the bus is on a trip")

        bus.status = status
        await self._db.flush()
        logger.info("Bus %s is now %s", bus.bus_number, status, extra={"bus_id": bus.id})
        return bus

    async def update_passenger_count(self, bus_id: int, passenger_count: int) -> Bus:
        """Record how many passengers are aboard a bus on a trip."""
        bus = await self.get_bus(bus_id)
        if bus.status != "on_trip":
            raise TripStateError("No active trip found")
        if passenger_count > bus.capacity:
            raise CapacityError(
                f"Passenger count {passenger_count} exceeds capacity {bus.capacity}"
            )

        bus.current_capacity = passenger_count
        await self._db.flush()
        return bus

    async def nearby_buses(
        self,
        latitude: float,
        longitude: float,
        max_distance_km: float = 5.0,
        max_results: int = 20,
    ) -> List[Tuple[Bus, float]]:
        """Return online buses on a trip within ``max_distance_km``, nearest first."""
        result = await self._db.execute(
            select(Bus).where(Bus.is_online.is_(True), Bus.status == "on_trip")
        )
        return self._geo.find_nearest(
            latitude,
            longitude,
            list(result.scalars()),
            max_results=max_results,
            max_distance_km=max_distance_km,
        )

    # Routes --------------------------------------------------------------

    async def get_route(self, route_id: int) -> Route:
        route = await self._db.get(Route, route_id)
        if route is None:
            raise RouteNotFoundError(f"Route {route_id} not found")
        return route

    async def list_routes(self, status: Optional[str] = None) -> List[Route]:
        stmt = select(Route).order_by(Route.route_number)
        if status:
            stmt = stmt.where(Route.status == status)
        result = await self._db.execute(stmt)
        return list(result.scalars())

    async def create_route(self, stops: Iterable[Dict[str, Any]] = (), **fields: Any) -> Route:
        existing = await self._db.execute(
            select(Route.id).where(Route.route_number == fields["route_number"])
        )
        if existing.first() is not None:
            raise DuplicateRecordError(f"Route {fields['route_number']} already exists")

        route = Route(**fields)
        route.stops = [RouteStop(**stop) for stop in stops]
        self._db.add(route)
        await self._db.flush()
        await self._db.refresh(route, attribute_names=["stops"])
        logger.info("Created route %s with %d stops", route.route_number, len(route.stops))
        return route

    # Drivers -------------------------------------------------------------

    async def get_driver(self, driver_id: int) -> Driver:
        driver = await self._db.get(Driver, driver_id)
        if driver is None:
            raise DriverNotFoundError(f"Driver {driver_id} not found")
        return driver

    async def list_drivers(self) -> List[Driver]:
        result = await self._db.execute(select(Driver).order_by(Driver.last_name, Driver.first_name))
        return list(result.scalars())

    async def create_driver(self, **fields: Any) -> Driver:
        existing = await self._db.execute(
            select(Driver.id).where(
                or_(
                    Driver.email == fields["email"],
                    Driver.license_number == fields["license_number"],
                )
            )
        )
        if existing.first() is not None:
            raise DuplicateRecordError("A driver with this email or license number already exists")

        driver = Driver(**fields)
        self._db.add(driver)
        await self._db.flush()
        await self._db.refresh(driver)
        return driver

    # Trips ---------------------------------------------------------------

    async def start_trip(self, bus_id: int, route_id: int, driver_id: int) -> Tuple[Bus, Route]:
        """Put an active bus on an active route with a driver on duty."""
        bus = await self.get_bus(bus_id)
        route = await self.get_route(route_id)
        driver = await self.get_driver(driver_id)

        if bus.status != "active":
            raise TripStateError("Bus is not available for trip")
        if route.status != "active":
            raise TripStateError("Route is not active")
        if not driver.is_active:
            raise TripStateError("Driver account is deactivated")

        bus.status = "on_trip"
        bus.current_route_id = route.id
        bus.current_driver_id = driver.id
        bus.is_online = True
        driver.is_on_duty = True
        await self._db.flush()

        logger.info(
            "Trip started for bus %s on route %s",
            bus.bus_number,
            route.route_number,
            extra={"bus_id": bus.id, "route_id": route.id, "driver_id": driver.id},
        )
        return bus, route

    async def end_trip(self, bus_id: int) -> Bus:
        """Return a bus from its trip and take its driver off duty."""
        bus = await self.get_bus(bus_id)
        if bus.status != "on_trip":
            raise TripStateError("No active trip found")

        if bus.current_driver_id is not None:
            driver = await self.get_driver(bus.current_driver_id)
            driver.is_on_duty = False
            driver.total_trips += 1

        bus.status = "active"
        bus.current_route_id = None
        bus.current_driver_id = None
        bus.is_online = False
        bus.current_capacity = 0
        await self._db.flush()

        logger.info("Trip ended for bus %s", bus.bus_number, extra={"bus_id": bus.id})
        return bus
