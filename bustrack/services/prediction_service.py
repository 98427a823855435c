"""Persistence-facing operations around the arrival predictor."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.base import as_utc
from ..models.prediction import OPEN_STATUSES, ArrivalPrediction
from .arrival_predictor import (
    ArrivalPredictor,
    FactorSnapshot,
    PredictorConfig,
    classify_time_of_day,
    day_of_week,
    resolve_base_time,
)
from .fleet_service import FleetService, NotFoundError

logger = logging.getLogger(__name__)

ANALYTICS_PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_ANALYTICS_PERIOD = "7d"
STOP_PREDICTIONS_LIMIT = 10
BUS_PREDICTIONS_LIMIT = 20


class PredictionNotFoundError(NotFoundError):
    """Raised when a prediction id cannot be resolved."""


class PredictionStateError(Exception):
    """Raised when a prediction is no longer open for changes."""


def _local_now() -> datetime:
    return datetime.now().astimezone()


def period_start(period: str, now: datetime) -> datetime:
    """Translate a ``24h``/``7d``/``30d`` period into a cutoff; unknown periods mean 7 days."""
    window = ANALYTICS_PERIODS.get(period, ANALYTICS_PERIODS[DEFAULT_ANALYTICS_PERIOD])
    return now - window


class PredictionService:
    """Generate, reconcile and aggregate arrival predictions."""

    def __init__(
        self,
        db: AsyncSession,
        predictor: Optional[ArrivalPredictor] = None,
        clock: Callable[[], datetime] = _local_now,
    ):
        self._db = db
        self._predictor = predictor or ArrivalPredictor(PredictorConfig.from_settings(settings))
        self._fleet = FleetService(db)
        self._clock = clock

    @property
    def config(self) -> PredictorConfig:
        return self._predictor.config

    async def get(self, prediction_id: int) -> ArrivalPrediction:
        prediction = await self._db.get(ArrivalPrediction, prediction_id)
        if prediction is None:
            raise PredictionNotFoundError(f"Prediction {prediction_id} not found")
        return prediction

    async def historical_durations(self, bus_id: int, route_id: int) -> List[float]:
        """Minutes between creation and actual arrival of past predictions for the pair."""
        result = await self._db.execute(
            select(ArrivalPrediction.created_at, ArrivalPrediction.actual_arrival_time).where(
                ArrivalPrediction.bus_id == bus_id,
                ArrivalPrediction.route_id == route_id,
                ArrivalPrediction.actual_arrival_time.is_not(None),
            )
        )
        durations = []
        for created_at, actual in result.all():
            minutes = (as_utc(actual) - as_utc(created_at)).total_seconds() / 60
            if minutes > 0:
                durations.append(minutes)
        return durations

    async def generate(
        self,
        bus_id: int,
        route_id: int,
        stop_id: int,
        location: Tuple[float, float],
        factors: Dict[str, Any],
    ) -> ArrivalPrediction:
        """
        Create a pending prediction for a bus reaching a stop.

        Args:
            bus_id: Bus identifier, must exist.
            route_id: Route identifier, must exist.
            stop_id: Stop number along the route.
            location: Current ``(latitude, longitude)`` of the bus.
            factors: Caller-supplied factors (traffic, weather, speed, distance...).

        Raises:
            BusNotFoundError, RouteNotFoundError: If a reference does not resolve.
        """
        bus = await self._fleet.get_bus(bus_id)
        await self._fleet.get_route(route_id)

        now = self._clock()
        snapshot = FactorSnapshot(
            time_of_day=classify_time_of_day(now),
            day_of_week=day_of_week(now),
            **{key: value for key, value in factors.items() if value is not None},
        )
        base_time = resolve_base_time(await self.historical_durations(bus_id, route_id), self.config)
        predicted = self._predictor.compute(base_time, snapshot, now)

        latitude, longitude = location
        prediction = ArrivalPrediction(
            bus_id=bus.id,
            route_id=route_id,
            driver_id=bus.current_driver_id,
            stop_id=stop_id,
            latitude=latitude,
            longitude=longitude,
            predicted_arrival_time=predicted.astimezone(timezone.utc),
            historical_average_minutes=base_time,
            model_version=settings.prediction_model_version,
            status="pending",
            created_at=now.astimezone(timezone.utc),
            **snapshot.to_dict(),
        )
        self._db.add(prediction)
        await self._db.flush()
        await self._db.refresh(prediction)

        logger.info(
            "Predicted bus %s at stop %s of route %s in %.1f minutes",
            bus_id,
            stop_id,
            route_id,
            (predicted - now).total_seconds() / 60,
            extra={"prediction_id": prediction.id, "base_minutes": base_time},
        )
        return prediction

    async def report_actual(self, prediction_id: int, actual_arrival_time: datetime) -> ArrivalPrediction:
        """Record the observed arrival and score the prediction. A repeated call overwrites."""
        prediction = await self.get(prediction_id)
        if prediction.actual_arrival_time is not None:
            logger.warning(
                "Overwriting actual arrival of prediction %s",
                prediction_id,
                extra={"prediction_id": prediction_id},
            )

        actual = as_utc(actual_arrival_time)
        prediction.actual_arrival_time = actual
        prediction.status = "arrived"
        prediction.prediction_accuracy = self._predictor.reconcile(
            as_utc(prediction.predicted_arrival_time), actual
        )
        await self._db.flush()

        logger.info(
            "Prediction %s reconciled with accuracy %s%%",
            prediction_id,
            prediction.prediction_accuracy,
            extra={"prediction_id": prediction_id},
        )
        return prediction

    async def refresh(self, prediction_id: int, factor_updates: Dict[str, Any]) -> ArrivalPrediction:
        """
        Merge new factors and recompute the predicted arrival from now.

        Time of day and day of week are re-derived from the service clock.
        Only open (pending or in-transit) predictions can be refreshed: an
        arrived prediction keeps the arrival time its accuracy was scored on.

        Raises:
            PredictionNotFoundError: If the id does not resolve.
            PredictionStateError: If the prediction is no longer open.
        """
        prediction = await self.get(prediction_id)
        if prediction.status not in OPEN_STATUSES:
            raise PredictionStateError(
                f"Prediction {prediction_id} is {prediction.status} and can no longer be refreshed"
            )

        now = self._clock()
        snapshot = FactorSnapshot(**prediction.factors()).merged(
            {
                **factor_updates,
                "time_of_day": classify_time_of_day(now),
                "day_of_week": day_of_week(now),
            }
        )

        predicted = self._predictor.compute(prediction.historical_average_minutes, snapshot, now)
        for key, value in snapshot.to_dict().items():
            setattr(prediction, key, value)
        prediction.predicted_arrival_time = predicted.astimezone(timezone.utc)
        await self._db.flush()
        return prediction

    async def predictions_for_stop(self, stop_id: int, route_id: int) -> List[ArrivalPrediction]:
        """Upcoming open predictions at a stop, soonest first."""
        now = self._clock().astimezone(timezone.utc)
        result = await self._db.execute(
            select(ArrivalPrediction)
            .where(
                ArrivalPrediction.stop_id == stop_id,
                ArrivalPrediction.route_id == route_id,
                ArrivalPrediction.status.in_(OPEN_STATUSES),
                ArrivalPrediction.predicted_arrival_time >= now,
            )
            .order_by(ArrivalPrediction.predicted_arrival_time)
            .limit(STOP_PREDICTIONS_LIMIT)
        )
        return list(result.scalars())

    async def predictions_for_bus(self, bus_id: int, status: Optional[str] = None) -> List[ArrivalPrediction]:
        stmt = select(ArrivalPrediction).where(ArrivalPrediction.bus_id == bus_id)
        if status:
            stmt = stmt.where(ArrivalPrediction.status == status)
        result = await self._db.execute(
            stmt.order_by(ArrivalPrediction.predicted_arrival_time).limit(BUS_PREDICTIONS_LIMIT)
        )
        return list(result.scalars())

    async def analytics(
        self,
        since: datetime,
        bus_id: Optional[int] = None,
        route_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Aggregate accuracy over reconciled predictions created since ``since``.

        The reduction runs in the database; an empty window yields zeros.
        """
        accuracy = ArrivalPrediction.prediction_accuracy
        delay = func.abs(
            self._minutes_between(
                ArrivalPrediction.actual_arrival_time, ArrivalPrediction.predicted_arrival_time
            )
        )
        stmt = select(
            func.count(ArrivalPrediction.id),
            func.avg(func.coalesce(accuracy, 0)),
            func.sum(case((accuracy >= self.config.accurate_threshold, 1), else_=0)),
            func.avg(delay),
        ).where(
            ArrivalPrediction.created_at >= since.astimezone(timezone.utc),
            ArrivalPrediction.actual_arrival_time.is_not(None),
        )
        if bus_id is not None:
            stmt = stmt.where(ArrivalPrediction.bus_id == bus_id)
        if route_id is not None:
            stmt = stmt.where(ArrivalPrediction.route_id == route_id)

        total, average_accuracy, accurate, average_delay = (await self._db.execute(stmt)).one()
        if not total:
            return {
                "average_accuracy": 0,
                "total_predictions": 0,
                "accurate_predictions": 0,
                "average_delay_minutes": 0,
            }
        return {
            "average_accuracy": float(average_accuracy),
            "total_predictions": total,
            "accurate_predictions": int(accurate or 0),
            "average_delay_minutes": float(average_delay or 0),
        }

    async def historical_accuracy(self, bus_id: int, route_id: int, days: int = 30) -> Dict[str, Any]:
        since = self._clock() - timedelta(days=days)
        return await self.analytics(since, bus_id=bus_id, route_id=route_id)

    def _minutes_between(self, later: Any, earlier: Any) -> Any:
        """SQL expression for ``later - earlier`` in minutes."""
        if self._db.get_bind().dialect.name == "sqlite":
            return (func.julianday(later) - func.julianday(earlier)) * 1440.0
        return func.extract("epoch", later - earlier) / 60.0
