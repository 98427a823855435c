"""API routes for buses, trips and live positions."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db_session
from ..models.base import as_utc
from ..models.bus import Bus
from ..services.fleet_service import (
    CapacityError,
    DuplicateRecordError,
    FleetService,
    NotFoundError,
    TripStateError,
)
from ..services.geo_service import GeoService
from ..services.tracking_hub import LOCATION_UPDATE_EVENT, bus_room, tracking_hub
from .security import require_admin_token

router = APIRouter()

BusType = Literal["AC", "Non-AC", "Express", "Local", "Premium"]
BusStatus = Literal["active", "maintenance", "inactive", "on_trip"]


class BusCreate(BaseModel):
    """Schema for registering a bus."""
    bus_number: str = Field(..., min_length=1, max_length=20)
    registration_number: str = Field(..., min_length=1, max_length=30)
    bus_type: BusType
    capacity: int = Field(..., ge=1, le=100)
    status: BusStatus = "inactive"


class LocationUpdate(BaseModel):
    """Telemetry pushed by the bus while on a trip."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    speed: Optional[float] = Field(default=None, ge=0, le=120)
    direction: Optional[float] = Field(default=None, ge=0, le=360)


class BusStatusUpdate(BaseModel):
    """Status change outside of a trip; trips move buses to and from on_trip."""
    status: Literal["active", "maintenance", "inactive"]


class PassengerCountUpdate(BaseModel):
    passenger_count: int = Field(..., ge=0)


class TripStart(BaseModel):
    route_id: int = Field(..., ge=1)
    driver_id: int = Field(..., ge=1)


class BusResponse(BaseModel):
    """Schema for bus response."""
    id: int
    bus_number: str
    registration_number: str
    bus_type: str
    capacity: int
    available_seats: int
    status: str
    current_location: Dict[str, Any]
    speed: float
    direction: float
    is_online: bool
    current_route_id: Optional[int] = None
    current_driver_id: Optional[int] = None
    last_location_update: datetime


def _serialize_bus(bus: Bus) -> BusResponse:
    return BusResponse(
        id=bus.id,
        bus_number=bus.bus_number,
        registration_number=bus.registration_number,
        bus_type=bus.bus_type,
        capacity=bus.capacity,
        available_seats=bus.available_seats,
        status=bus.status,
        current_location=GeoService.to_point(bus.latitude, bus.longitude),
        speed=bus.speed,
        direction=bus.direction,
        is_online=bus.is_online,
        current_route_id=bus.current_route_id,
        current_driver_id=bus.current_driver_id,
        last_location_update=as_utc(bus.last_location_update),
    )


def location_event(bus: Bus) -> Dict[str, Any]:
    """Payload re-emitted to subscribers of the bus room."""
    return {
        "bus_id": bus.id,
        "location": GeoService.to_point(bus.latitude, bus.longitude),
        "speed": bus.speed,
        "direction": bus.direction,
        "last_update": as_utc(bus.last_location_update).isoformat(),
    }


@router.get("")
async def list_buses(
    bus_status: Optional[BusStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db_session)
):
    """List buses, optionally filtered by status."""
    try:
        buses = await FleetService(db).list_buses(bus_status)
        return {
            "buses": [_serialize_bus(bus).model_dump(mode="json") for bus in buses],
            "count": len(buses),
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/nearby")
async def find_nearby_buses(
    lat: float = Query(..., ge=-90, le=90, description="Latitude"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude"),
    radius: float = Query(5, ge=0.1, le=50, description="Search radius in km"),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Find buses currently on a trip around a location.

    Returns buses sorted by distance.
    """
    try:
        nearby = await FleetService(db).nearby_buses(lat, lon, max_distance_km=radius)
        result = [
            {
                "bus": _serialize_bus(bus).model_dump(mode="json"),
                "distance_km": round(distance, 2),
                "distance_m": round(distance * 1000, 0),
            }
            for bus, distance in nearby
        ]
        return {"results": result, "count": len(result)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{bus_id}", response_model=BusResponse)
async def get_bus(bus_id: int, db: AsyncSession = Depends(get_db_session)):
    """Get a single bus."""
    try:
        return _serialize_bus(await FleetService(db).get_bus(bus_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "",
    response_model=BusResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin_token)],
)
async def create_bus(bus: BusCreate, db: AsyncSession = Depends(get_db_session)):
    """Register a new bus in the fleet."""
    try:
        created = await FleetService(db).create_bus(**bus.model_dump())
        return _serialize_bus(created)
    except DuplicateRecordError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{bus_id}/location")
async def update_bus_location(
    bus_id: int,
    update: LocationUpdate,
    db: AsyncSession = Depends(get_db_session)
):
    """
    Store the latest position of a bus and push it to live subscribers.

    Subscribers of the ``bus-{id}`` room receive a ``bus-location-update``
    event; delivery is best effort.
    """
    try:
        bus = await FleetService(db).update_location(
            bus_id,
            update.latitude,
            update.longitude,
            speed=update.speed,
            direction=update.direction,
        )
        # subscribers only see positions that were committed
        await db.commit()
        event = location_event(bus)
        delivered = await tracking_hub.emit(bus_room(bus.id), LOCATION_UPDATE_EVENT, event)
        return {"message": "Location updated successfully", "location": event, "delivered": delivered}
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{bus_id}/trip/start")
async def start_trip(
    bus_id: int,
    trip: TripStart,
    db: AsyncSession = Depends(get_db_session)
):
    """Start a trip of an active bus on an active route."""
    try:
        bus, route = await FleetService(db).start_trip(bus_id, trip.route_id, trip.driver_id)
        return {
            "message": "Trip started successfully",
            "bus": _serialize_bus(bus).model_dump(mode="json"),
            "route": {"id": route.id, "route_number": route.route_number, "route_name": route.route_name},
        }
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TripStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{bus_id}/trip/end")
async def end_trip(bus_id: int, db: AsyncSession = Depends(get_db_session)):
    """End the current trip of a bus."""
    try:
        bus = await FleetService(db).end_trip(bus_id)
        return {"message": "Trip ended successfully", "bus": _serialize_bus(bus).model_dump(mode="json")}
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TripStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{bus_id}/status", dependencies=[Depends(require_admin_token)])
async def update_bus_status(
    bus_id: int,
    update: BusStatusUpdate,
    db: AsyncSession = Depends(get_db_session)
):
    """Put a bus in or out of service; not allowed while it is on a trip."""
    try:
        bus = await FleetService(db).update_status(bus_id, update.status)
        return {"message": "Bus status updated successfully", "bus": _serialize_bus(bus).model_dump(mode="json")}
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TripStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{bus_id}/passengers")
async def update_passenger_count(
    bus_id: int,
    update: PassengerCountUpdate,
    db: AsyncSession = Depends(get_db_session)
):
    """Record the passengers aboard a bus that is on a trip."""
    try:
        bus = await FleetService(db).update_passenger_count(bus_id, update.passenger_count)
        return {
            "message": "Passenger count updated successfully",
            "current_capacity": bus.current_capacity,
            "available_seats": bus.available_seats,
        }
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (TripStateError, CapacityError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
