"""Shared request guards."""

from typing import Optional

from fastapi import Header, HTTPException

from ..config import settings


async def require_admin_token(x_api_key: Optional[str] = Header(default=None)) -> None:
    """Reject writes to reference data when ADMIN_API_TOKEN is set and not presented."""
    token = settings.admin_api_token.strip()
    if not token:
        return
    if x_api_key != token:
        raise HTTPException(status_code=401, detail="Invalid API key")
