"""API routes for arrival predictions."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db_session
from ..models.base import as_utc
from ..models.prediction import ArrivalPrediction
from ..services.fleet_service import NotFoundError
from ..services.prediction_service import (
    DEFAULT_ANALYTICS_PERIOD,
    PredictionService,
    PredictionStateError,
    period_start,
)

router = APIRouter()

TrafficLevel = Literal["low", "medium", "high"]
WeatherCondition = Literal["clear", "rainy", "snowy", "foggy"]
PredictionStatus = Literal["pending", "in_transit", "arrived", "cancelled"]


class Location(BaseModel):
    """WGS84 position of the bus."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class FactorsIn(BaseModel):
    """Conditions reported with a prediction request."""
    traffic_conditions: TrafficLevel = "medium"
    weather_conditions: WeatherCondition = "clear"
    current_speed: float = Field(default=0, ge=0, le=120, description="km/h, 0 when unknown")
    distance_to_stop: float = Field(..., ge=0, description="Remaining distance in km")
    number_of_stops: int = Field(default=0, ge=0)
    passenger_load: float = Field(default=0, ge=0, le=100)
    fuel_level: float = Field(default=100, ge=0, le=100)
    temperature: float = 25


class FactorsUpdate(BaseModel):
    """Partial factor update; omitted fields keep their stored value."""
    traffic_conditions: Optional[TrafficLevel] = None
    weather_conditions: Optional[WeatherCondition] = None
    current_speed: Optional[float] = Field(default=None, ge=0, le=120)
    distance_to_stop: Optional[float] = Field(default=None, ge=0)
    number_of_stops: Optional[int] = Field(default=None, ge=0)
    passenger_load: Optional[float] = Field(default=None, ge=0, le=100)
    fuel_level: Optional[float] = Field(default=None, ge=0, le=100)
    temperature: Optional[float] = None


class PredictionCreate(BaseModel):
    """Schema for requesting a new prediction."""
    bus_id: int = Field(..., ge=1)
    route_id: int = Field(..., ge=1)
    stop_id: int = Field(..., ge=1)
    current_location: Location
    factors: FactorsIn


class ActualArrival(BaseModel):
    """Schema for reporting the observed arrival."""
    actual_arrival_time: datetime


class PredictionResponse(BaseModel):
    """Schema for prediction response."""
    id: int
    bus_id: int
    route_id: int
    driver_id: Optional[int] = None
    stop_id: int
    current_location: Dict[str, Any]
    predicted_arrival_time: datetime
    actual_arrival_time: Optional[datetime] = None
    prediction_accuracy: Optional[int] = None
    factors: Dict[str, Any]
    status: str
    algorithm: str
    model_version: str
    created_at: datetime


def _serialize_prediction(prediction: ArrivalPrediction) -> PredictionResponse:
    """Convert ORM objects into response schema."""
    return PredictionResponse(
        id=prediction.id,
        bus_id=prediction.bus_id,
        route_id=prediction.route_id,
        driver_id=prediction.driver_id,
        stop_id=prediction.stop_id,
        current_location={
            "type": "Point",
            "coordinates": [prediction.longitude, prediction.latitude],
        },
        predicted_arrival_time=as_utc(prediction.predicted_arrival_time),
        actual_arrival_time=as_utc(prediction.actual_arrival_time),
        prediction_accuracy=prediction.prediction_accuracy,
        factors=prediction.factors(),
        status=prediction.status,
        algorithm=prediction.algorithm,
        model_version=prediction.model_version,
        created_at=as_utc(prediction.created_at),
    )


@router.post("/generate", response_model=PredictionResponse, status_code=status.HTTP_201_CREATED)
async def generate_prediction(
    payload: PredictionCreate,
    db: AsyncSession = Depends(get_db_session)
):
    """
    Generate a prediction of when a bus reaches a stop.

    Time of day and day of week are taken from the server clock.
    """
    try:
        service = PredictionService(db)
        prediction = await service.generate(
            payload.bus_id,
            payload.route_id,
            payload.stop_id,
            (payload.current_location.latitude, payload.current_location.longitude),
            payload.factors.model_dump(),
        )
        return _serialize_prediction(prediction)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{prediction_id}/actual", response_model=PredictionResponse)
async def report_actual_arrival(
    prediction_id: int,
    payload: ActualArrival,
    db: AsyncSession = Depends(get_db_session)
):
    """Record the actual arrival time and compute the prediction accuracy."""
    try:
        service = PredictionService(db)
        prediction = await service.report_actual(prediction_id, payload.actual_arrival_time)
        return _serialize_prediction(prediction)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{prediction_id}/factors", response_model=PredictionResponse)
async def refresh_prediction(
    prediction_id: int,
    payload: FactorsUpdate,
    db: AsyncSession = Depends(get_db_session)
):
    """Apply updated factors to an open prediction and recompute its arrival from now."""
    try:
        service = PredictionService(db)
        prediction = await service.refresh(prediction_id, payload.model_dump(exclude_none=True))
        return _serialize_prediction(prediction)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PredictionStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/stop/{stop_id}")
async def get_stop_predictions(
    stop_id: int,
    route_id: int = Query(..., description="Route the stop belongs to"),
    db: AsyncSession = Depends(get_db_session)
):
    """Upcoming arrivals at a stop, soonest first."""
    try:
        predictions = await PredictionService(db).predictions_for_stop(stop_id, route_id)
        return {
            "stop_id": stop_id,
            "route_id": route_id,
            "predictions": [_serialize_prediction(p).model_dump(mode="json") for p in predictions],
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/bus/{bus_id}")
async def get_bus_predictions(
    bus_id: int,
    prediction_status: Optional[PredictionStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db_session)
):
    """Predictions made for a bus, optionally filtered by status."""
    try:
        predictions = await PredictionService(db).predictions_for_bus(bus_id, prediction_status)
        return {
            "bus_id": bus_id,
            "predictions": [_serialize_prediction(p).model_dump(mode="json") for p in predictions],
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/analytics")
async def get_prediction_analytics(
    period: str = Query(DEFAULT_ANALYTICS_PERIOD, description="24h, 7d or 30d"),
    bus_id: Optional[int] = Query(None),
    route_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db_session)
):
    """Average accuracy, prediction counts and average delay over a period."""
    try:
        service = PredictionService(db)
        since = period_start(period, datetime.now().astimezone())
        analytics = await service.analytics(since, bus_id=bus_id, route_id=route_id)
        return {"period": period, "analytics": analytics}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/accuracy/{bus_id}/{route_id}")
async def get_historical_accuracy(
    bus_id: int,
    route_id: int,
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db_session)
) -> Dict[str, Any]:
    """Accuracy summary for one bus on one route over the last ``days`` days."""
    try:
        accuracy = await PredictionService(db).historical_accuracy(bus_id, route_id, days)
        return {"bus_id": bus_id, "route_id": route_id, "days": days, "accuracy": accuracy}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
