"""Webhook service: turns domain events into queued delivery tasks."""
from __future__ import annotations

import logging
from typing import Any, Callable, ContextManager, Iterable
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dashpilot.core.config import get_settings
from dashpilot.core.db import session_scope
from dashpilot.core.exceptions import WebhookConfigurationError, WebhookDispatchError
from dashpilot.models.webhook import Webhook
from dashpilot.schemas.events import ALERT_CREATED, ALERT_RESOLVED, AlertData, DomainEvent
from dashpilot.schemas.webhook import validate_endpoint_url, validate_secret
from dashpilot.services.event_router import EventRouter
from dashpilot.services.webhook_repository import WebhookRepository
from dashpilot.tasks.webhook_tasks import deliver_webhook_task

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Enqueues one delivery task per (event, subscription) pair.

    Returns as soon as the tasks are on the queue; delivery outcomes are only
    visible in the delivery log. The caller's session is never written to.
    """

    def __init__(
        self,
        *,
        task: Any = None,
        allow_private_hosts: bool | None = None,
        session_factory: Callable[[], ContextManager[Session]] | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            task: Celery task to enqueue (defaults to deliver_webhook_task)
            allow_private_hosts: Override for the private-host endpoint check
            session_factory: Transaction scope used to stamp last_triggered_at
                (defaults to session_scope)
        """
        settings = get_settings()
        self._task = task or deliver_webhook_task
        self._session_factory = session_factory or session_scope
        self._queue = settings.webhook_queue
        self._allow_private = (
            settings.webhook_allow_private_hosts if allow_private_hosts is None else allow_private_hosts
        )

    def configuration_problem(self, webhook: Webhook) -> str | None:
        """Return why a subscription cannot be delivered to, or None if it can."""
        try:
            validate_endpoint_url(webhook.url, allow_private=self._allow_private)
            validate_secret(webhook.secret)
        except ValueError as e:
            return str(e)
        return None

    def _mark_triggered(self, webhook_ids: list[int]) -> None:
        """Stamp last_triggered_at in a transaction of its own, never the caller's."""
        if not webhook_ids:
            return
        try:
            with self._session_factory() as session:
                WebhookRepository(session).mark_triggered(webhook_ids)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to update last_triggered_at for webhooks {webhook_ids}: {e}")

    def dispatch(self, event: DomainEvent, subscriptions: Iterable[Webhook]) -> list[str]:
        """Enqueue a delivery task for each subscription.

        Misconfigured subscriptions are skipped and reported together once the
        valid ones are queued.

        Returns:
            Delivery (correlation) ids of the enqueued tasks

        Raises:
            WebhookConfigurationError: If any subscription has an invalid endpoint or secret
            WebhookDispatchError: If the task queue refused any enqueue
        """
        problems: dict[int | None, str] = {}
        failed: list[int] = []
        last_error: Exception | None = None
        delivery_ids: list[str] = []
        enqueued_ids: list[int] = []
        task_event = event.to_task_payload()

        for webhook in subscriptions:
            problem = self.configuration_problem(webhook)
            if problem is not None:
                logger.error(f"Not dispatching '{event.event_type}' to webhook {webhook.id}: {problem}")
                problems[webhook.id] = problem
                continue

            delivery_id = uuid4().hex
            try:
                self._task.apply_async(
                    kwargs={
                        "webhook_id": webhook.id,
                        "event": task_event,
                        "delivery_id": delivery_id,
                    },
                    queue=self._queue,
                )
            except Exception as e:
                logger.error(
                    f"Failed to enqueue webhook delivery task for webhook {webhook.id}: {e}",
                    exc_info=True,
                )
                failed.append(webhook.id)
                last_error = e
                continue

            logger.debug(
                f"Enqueued webhook delivery {delivery_id} for webhook {webhook.id} (event: {event.event_type})"
            )
            delivery_ids.append(delivery_id)
            enqueued_ids.append(webhook.id)

        self._mark_triggered(enqueued_ids)

        if problems:
            raise WebhookConfigurationError(problems)
        if failed:
            raise WebhookDispatchError(failed, str(last_error)) from last_error
        return delivery_ids


class WebhookService:
    """Entry point used by application code to publish domain events."""

    def __init__(self, session: Session, *, dispatcher: WebhookDispatcher | None = None) -> None:
        """Initialize webhook service with a database session.

        Args:
            session: Active database session, only read from
            dispatcher: Optional dispatcher (defaults to one enqueuing Celery tasks)
        """
        self._session = session
        self._repository = WebhookRepository(session)
        self._router = EventRouter(self._repository)
        self._dispatcher = dispatcher or WebhookDispatcher()

    def publish(self, event: DomainEvent) -> list[str]:
        """Route an event to its subscriptions and enqueue deliveries.

        Returns:
            Delivery ids of the enqueued tasks (empty if nobody listens)
        """
        webhooks = self._router.route(event)

        if not webhooks:
            logger.debug(f"No active webhooks found for event type: {event.event_type}")
            return []

        logger.info(f"Publishing event '{event.event_type}' to {len(webhooks)} webhook(s)")
        return self._dispatcher.dispatch(event, webhooks)

    def trigger_event(self, event_type: str, entity: AlertData | dict[str, Any] | Any) -> list[str]:
        """Build a domain event for ``entity`` and publish it."""
        return self.publish(DomainEvent.for_alert(event_type, entity))

    def notify_alert_created(self, alert: AlertData | dict[str, Any] | Any) -> list[str]:
        """Publish alert_created; every new alert is announced."""
        return self.trigger_event(ALERT_CREATED, alert)

    def notify_alert_updated(self, alert: AlertData | dict[str, Any] | Any, *, was_resolved: bool) -> list[str]:
        """Publish alert_resolved when an update flips the alert to resolved."""
        event = DomainEvent.for_alert(ALERT_RESOLVED, alert)
        if not event.entity.is_resolved or was_resolved:
            return []
        return self.publish(event)
