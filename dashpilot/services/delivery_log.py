"""Append-only store for webhook delivery attempts."""
from __future__ import annotations

from typing import Sequence

from sqlalchemy.orm import Session

from dashpilot.models.webhook_delivery import DeliveryAttempt, DeliveryState


class DeliveryLogStore:
    """Inserts and queries DeliveryAttempt rows.

    Every write is a fresh insert, so concurrent workers never contend on a
    read-modify-write. There is no update or delete API.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def record_attempt(
        self,
        *,
        webhook_id: int,
        delivery_id: str,
        event_type: str,
        payload: str,
        attempt_number: int,
        state: DeliveryState,
        success: bool,
        event_id: str | None = None,
        response_status: int | None = None,
        response_body: str | None = None,
        error_message: str | None = None,
    ) -> DeliveryAttempt:
        """Append one attempt row and commit it.

        Returns:
            The persisted DeliveryAttempt
        """
        attempt = DeliveryAttempt(
            webhook_id=webhook_id,
            delivery_id=delivery_id,
            event_id=event_id,
            event_type=event_type,
            payload=payload,
            response_status=response_status,
            response_body=response_body,
            attempt_number=attempt_number,
            success=success,
            state=state.value,
            error_message=error_message,
        )
        self._session.add(attempt)
        self._session.commit()
        self._session.refresh(attempt)
        return attempt

    def list_for_webhook(
        self,
        webhook_id: int,
        *,
        success: bool | None = None,
        event_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[DeliveryAttempt], int]:
        """Get attempts for a webhook, newest first, with optional filters.

        Returns:
            Tuple of (attempts sequence, total count)
        """
        query = self._session.query(DeliveryAttempt).filter(DeliveryAttempt.webhook_id == webhook_id)
        if success is not None:
            query = query.filter(DeliveryAttempt.success.is_(success))
        if event_type is not None:
            query = query.filter(DeliveryAttempt.event_type == event_type)

        total = query.count()
        attempts = (
            query.order_by(DeliveryAttempt.created_at.desc(), DeliveryAttempt.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return attempts, total

    def list_for_delivery(self, delivery_id: str) -> Sequence[DeliveryAttempt]:
        """Return the full audit trail of one (event, subscription) delivery in attempt order."""
        return (
            self._session.query(DeliveryAttempt)
            .filter(DeliveryAttempt.delivery_id == delivery_id)
            .order_by(DeliveryAttempt.attempt_number.asc(), DeliveryAttempt.id.asc())
            .all()
        )
