"""System endpoints for operators."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db_session
from ..models import SystemLog
from ..services.tracking_hub import bus_room, tracking_hub
from .security import require_admin_token

router = APIRouter()


@router.get("/logs", dependencies=[Depends(require_admin_token)])
async def recent_logs(
    level: Optional[str] = Query(None, description="Filter by level name, e.g. WARNING"),
    service: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    """Most recent centrally persisted log entries."""
    stmt = select(SystemLog).order_by(desc(SystemLog.created_at)).limit(limit)
    if level:
        stmt = stmt.where(SystemLog.level == level.upper())
    if service:
        stmt = stmt.where(SystemLog.service == service)
    result = await db.execute(stmt)
    entries = [row.to_dict() for row in result.scalars()]
    return {"logs": entries, "count": len(entries)}


@router.get("/tracking/{bus_id}")
async def tracking_subscribers(bus_id: int) -> Dict[str, Any]:
    """Number of live subscribers for a bus."""
    room = bus_room(bus_id)
    return {"room": room, "subscribers": tracking_hub.subscribers(room)}
