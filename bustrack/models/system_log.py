"""Persisted log records from the API process."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, as_utc


class SystemLog(Base):
    """One log record written by the centralized log writer."""

    __tablename__ = "system_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    level: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    logger_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    extra: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    traceback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True
    )

    def to_dict(self) -> Dict[str, Any]:
        created_at = as_utc(self.created_at)
        return {
            "id": self.id,
            "service": self.service,
            "level": self.level,
            "logger_name": self.logger_name,
            "message": self.message,
            "created_at": created_at.isoformat() if created_at else None,
            "extra": self.extra or {},
            "traceback": self.traceback,
        }

    def __repr__(self) -> str:
        return f"<SystemLog(id={self.id}, level={self.level}, logger={self.logger_name})>"
