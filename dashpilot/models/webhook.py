"""Webhook subscription model definition."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, Text, func, true
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

# Sentinel event filter entry that matches every event type.
ALL_EVENTS = "*"

DEFAULT_MAX_RETRIES = 3


class Webhook(Base):
    """An outbound destination subscribed to one or more domain event types."""

    __tablename__ = "webhooks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="Webhook")
    url: Mapped[str] = mapped_column(Text, nullable=False)
    events: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    max_retries: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_MAX_RETRIES, server_default=str(DEFAULT_MAX_RETRIES)
    )
    last_triggered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def listens_to(self, event_type: str) -> bool:
        """Return True if this subscription's event filter covers the event type."""
        events = self.events or []
        return event_type in events or ALL_EVENTS in events

    @property
    def attempt_limit(self) -> int:
        """Upper bound on delivery attempts per event; never below one."""
        return max(1, self.max_retries or 1)
