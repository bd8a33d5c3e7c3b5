"""Event router: picks the subscriptions a domain event fans out to."""
from __future__ import annotations

import logging

from dashpilot.core.exceptions import InvalidEventError
from dashpilot.models.webhook import Webhook
from dashpilot.schemas.events import DomainEvent
from dashpilot.services.webhook_repository import WebhookRepository

logger = logging.getLogger(__name__)


class EventRouter:
    """Selects active subscriptions whose event filter matches an event."""

    def __init__(self, repository: WebhookRepository) -> None:
        self._repository = repository

    def route(self, event: DomainEvent) -> list[Webhook]:
        """Return the subscriptions interested in ``event``.

        No ordering is guaranteed. An event nobody listens to yields an
        empty list.

        Raises:
            InvalidEventError: If the event type is empty.
        """
        if not event.event_type or not event.event_type.strip():
            raise InvalidEventError("Event type must not be empty")

        webhooks = list(self._repository.get_active_webhooks_for_event(event.event_type))
        logger.debug(f"Routed event '{event.event_type}' ({event.event_id}) to {len(webhooks)} webhook(s)")
        return webhooks
