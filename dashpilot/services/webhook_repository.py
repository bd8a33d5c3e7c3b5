"""Destination registry: database access for webhook subscriptions."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Sequence

from sqlalchemy import update
from sqlalchemy.orm import Session

from dashpilot.models.webhook import Webhook
from dashpilot.schemas.webhook import WebhookCreate, WebhookUpdate


class WebhookRepository:
    """Handles database operations for Webhook entities."""

    def __init__(self, session: Session) -> None:
        """Initialize repository with a SQLAlchemy session.

        Args:
            session: Active database session for executing queries
        """
        self._session = session

    def create(self, webhook: WebhookCreate) -> Webhook:
        """Create a new webhook.

        Args:
            webhook: WebhookCreate schema with webhook data

        Returns:
            Created Webhook instance
        """
        db_webhook = Webhook(
            name=webhook.name,
            url=webhook.url,
            events=webhook.events,
            active=webhook.active,
            secret=webhook.secret,
            max_retries=webhook.max_retries,
        )
        self._session.add(db_webhook)
        self._session.commit()
        self._session.refresh(db_webhook)
        return db_webhook

    def get_by_id(self, webhook_id: int) -> Webhook | None:
        """Fetch a webhook by its database ID.

        Args:
            webhook_id: Database identifier

        Returns:
            Webhook instance if found, None otherwise
        """
        return self._session.get(Webhook, webhook_id)

    def get_all(self) -> Sequence[Webhook]:
        """Fetch all webhooks, newest first."""
        return self._session.query(Webhook).order_by(Webhook.created_at.desc(), Webhook.id.desc()).all()

    def update(self, webhook_id: int, webhook: WebhookUpdate) -> Webhook | None:
        """Update a webhook by ID.

        Args:
            webhook_id: Database identifier
            webhook: WebhookUpdate schema with fields to update

        Returns:
            Updated Webhook instance if found, None otherwise
        """
        db_webhook = self.get_by_id(webhook_id)
        if db_webhook is None:
            return None

        # Update only provided fields
        if webhook.name is not None:
            db_webhook.name = webhook.name
        if webhook.url is not None:
            db_webhook.url = webhook.url
        if webhook.events is not None:
            db_webhook.events = webhook.events
        if webhook.active is not None:
            db_webhook.active = webhook.active
        if webhook.max_retries is not None:
            db_webhook.max_retries = webhook.max_retries
        if webhook.secret is not None:
            # An empty string switches the destination to unsigned delivery
            db_webhook.secret = webhook.secret or None

        self._session.commit()
        self._session.refresh(db_webhook)
        return db_webhook

    def get_active_webhooks_for_event(self, event_type: str) -> Sequence[Webhook]:
        """Get all active webhooks whose event filter covers an event type.

        A filter containing '*' matches every event type.

        Args:
            event_type: Event type to filter by (e.g., "alert_created")

        Returns:
            Sequence of active Webhook instances that subscribe to this event
        """
        # Event filters are JSON arrays; filtering in Python keeps the query
        # portable across PostgreSQL and SQLite.
        active_webhooks = (
            self._session.query(Webhook)
            .filter(Webhook.active.is_(True))
            .all()
        )

        return [wh for wh in active_webhooks if wh.listens_to(event_type)]

    def mark_triggered(self, webhook_ids: Iterable[int], when: datetime | None = None) -> None:
        """Stamp last_triggered_at on every webhook a delivery was enqueued for.

        Does not commit; the surrounding transaction owns the write.
        """
        self._session.execute(
            update(Webhook)
            .where(Webhook.id.in_(list(webhook_ids)))
            .values(last_triggered_at=when or datetime.now(timezone.utc))
        )
