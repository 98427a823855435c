"""API routes for bus routes and their stops."""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db_session
from ..models.route import Route
from ..services.fleet_service import DuplicateRecordError, FleetService, NotFoundError
from .security import require_admin_token

router = APIRouter()

RouteStatus = Literal["active", "inactive", "maintenance"]


class StopIn(BaseModel):
    stop_number: int = Field(..., ge=1)
    name: str = Field(..., min_length=1, max_length=200)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    estimated_time: int = Field(default=0, ge=0, description="Minutes from route start")
    is_terminal: bool = False


class RouteCreate(BaseModel):
    """Schema for creating a route."""
    route_number: str = Field(..., min_length=1, max_length=20)
    route_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    total_distance: float = Field(..., ge=0)
    estimated_duration: int = Field(..., ge=1)
    average_speed: float = Field(default=30, ge=1, le=100)
    status: RouteStatus = "active"
    stops: List[StopIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_stop_numbers(self) -> "RouteCreate":
        numbers = [stop.stop_number for stop in self.stops]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Stop numbers must be unique within a route")
        return self


class StopResponse(StopIn):
    pass


class RouteResponse(BaseModel):
    """Schema for route response."""
    id: int
    route_number: str
    route_name: str
    description: Optional[str] = None
    total_distance: float
    estimated_duration: int
    average_speed: float
    status: str
    stops: List[StopResponse]


def _serialize_route(route: Route) -> RouteResponse:
    return RouteResponse(
        id=route.id,
        route_number=route.route_number,
        route_name=route.route_name,
        description=route.description,
        total_distance=route.total_distance,
        estimated_duration=route.estimated_duration,
        average_speed=route.average_speed,
        status=route.status,
        stops=[
            StopResponse(
                stop_number=stop.stop_number,
                name=stop.name,
                latitude=stop.latitude,
                longitude=stop.longitude,
                estimated_time=stop.estimated_time,
                is_terminal=stop.is_terminal,
            )
            for stop in route.stops
        ],
    )


@router.get("")
async def list_routes(
    route_status: Optional[RouteStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db_session)
):
    """List routes with their stops."""
    try:
        routes = await FleetService(db).list_routes(route_status)
        return {
            "routes": [_serialize_route(route).model_dump() for route in routes],
            "count": len(routes),
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{route_id}", response_model=RouteResponse)
async def get_route(route_id: int, db: AsyncSession = Depends(get_db_session)):
    """Get a single route."""
    try:
        return _serialize_route(await FleetService(db).get_route(route_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "",
    response_model=RouteResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin_token)],
)
async def create_route(route: RouteCreate, db: AsyncSession = Depends(get_db_session)):
    """Create a route and its ordered stops."""
    payload = route.model_dump()
    stops = payload.pop("stops")
    try:
        created = await FleetService(db).create_route(stops=stops, **payload)
        return _serialize_route(created)
    except DuplicateRecordError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
