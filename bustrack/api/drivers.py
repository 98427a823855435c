"""API routes for drivers."""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db_session
from ..models.driver import Driver
from ..services.fleet_service import DuplicateRecordError, FleetService, NotFoundError
from .security import require_admin_token

router = APIRouter()


class DriverCreate(BaseModel):
    """Schema for registering a driver."""
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., max_length=120, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    license_number: str = Field(..., min_length=1, max_length=40)


class DriverResponse(BaseModel):
    """Schema for driver response."""
    id: int
    first_name: str
    last_name: str
    email: str
    license_number: str
    is_active: bool
    is_on_duty: bool
    total_trips: int


def _serialize_driver(driver: Driver) -> DriverResponse:
    return DriverResponse(
        id=driver.id,
        first_name=driver.first_name,
        last_name=driver.last_name,
        email=driver.email,
        license_number=driver.license_number,
        is_active=driver.is_active,
        is_on_duty=driver.is_on_duty,
        total_trips=driver.total_trips,
    )


@router.get("")
async def list_drivers(db: AsyncSession = Depends(get_db_session)):
    """List all drivers."""
    try:
        drivers = await FleetService(db).list_drivers()
        return {
            "drivers": [_serialize_driver(driver).model_dump() for driver in drivers],
            "count": len(drivers),
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{driver_id}", response_model=DriverResponse)
async def get_driver(driver_id: int, db: AsyncSession = Depends(get_db_session)):
    """Get a single driver."""
    try:
        return _serialize_driver(await FleetService(db).get_driver(driver_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "",
    response_model=DriverResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin_token)],
)
async def create_driver(driver: DriverCreate, db: AsyncSession = Depends(get_db_session)):
    """Register a driver."""
    try:
        created = await FleetService(db).create_driver(**driver.model_dump())
        return _serialize_driver(created)
    except DuplicateRecordError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
