"""Append-only log of webhook delivery attempts."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Text, false, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class DeliveryState(str, Enum):
    """States of a single (event, subscription) delivery.

    PENDING -> ATTEMPTING -> SUCCEEDED | RETRYING | EXHAUSTED, where RETRYING
    loops back to ATTEMPTING. Attempt rows record the state an attempt ended in.
    """

    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryState.SUCCEEDED, DeliveryState.EXHAUSTED)


class DeliveryAttempt(Base):
    """One HTTP POST against a destination. Rows are inserted once and never updated."""

    __tablename__ = "webhook_delivery_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    webhook_id: Mapped[int] = mapped_column(Integer, ForeignKey("webhooks.id"), nullable=False)
    delivery_id: Mapped[str] = mapped_column(Text, nullable=False)
    event_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    response_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    state: Mapped[str] = mapped_column(Text, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_webhook_delivery_attempts_webhook_id", "webhook_id"),
        Index("ix_webhook_delivery_attempts_event_type", "event_type"),
        Index("ix_webhook_delivery_attempts_success", "success"),
        Index("ix_webhook_delivery_attempts_delivery_id", "delivery_id"),
    )
