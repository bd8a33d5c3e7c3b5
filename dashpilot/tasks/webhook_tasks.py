"""Celery tasks for webhook delivery."""
from __future__ import annotations

import logging
from typing import Any

from celery.exceptions import Reject
from sqlalchemy.exc import SQLAlchemyError
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dashpilot.core.db import session_scope
from dashpilot.models.webhook import Webhook
from dashpilot.models.webhook_delivery import DeliveryState
from dashpilot.schemas.events import DomainEvent
from dashpilot.services.delivery_log import DeliveryLogStore
from dashpilot.services.delivery_worker import AttemptOutcome, DeliveryWorker
from dashpilot.services.webhook_repository import WebhookRepository
from dashpilot.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _build_worker() -> DeliveryWorker:
    return DeliveryWorker.from_settings()


def _log_write_retry(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None:
        logger.warning(
            f"Writing delivery attempt failed (try {retry_state.attempt_number}), retrying: "
            f"{retry_state.outcome.exception()}"
        )


# The HTTP attempt already happened; retry the row write, never the POST
@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(SQLAlchemyError),
    before_sleep=_log_write_retry,
    reraise=True,
)
def _write_attempt(
    worker: DeliveryWorker,
    *,
    webhook: Webhook,
    event: DomainEvent,
    delivery_id: str,
    attempt_number: int,
    outcome: AttemptOutcome,
) -> DeliveryState:
    """Append the attempt row in its own transaction."""
    with session_scope() as session:
        state = worker.record(
            DeliveryLogStore(session),
            webhook=webhook,
            event=event,
            delivery_id=delivery_id,
            attempt_number=attempt_number,
            outcome=outcome,
        )
    return state


def _write_unscheduled_retry(
    *,
    webhook: Webhook,
    event: DomainEvent,
    delivery_id: str,
    attempt_number: int,
    outcome: AttemptOutcome,
    reason: str,
) -> None:
    """Close a delivery whose next attempt could not be queued with an exhausted row."""
    with session_scope() as session:
        DeliveryLogStore(session).record_attempt(
            webhook_id=webhook.id,
            delivery_id=delivery_id,
            event_id=event.event_id,
            event_type=event.event_type,
            payload=outcome.payload,
            attempt_number=attempt_number,
            state=DeliveryState.EXHAUSTED,
            success=False,
            response_status=outcome.response_status,
            error_message=f"Retry could not be scheduled: {reason}",
        )


@celery_app.task(
    name="deliver_webhook",
    bind=True,
    acks_late=True,
    reject_on_worker_lost=True,
    max_retries=None,
)
def deliver_webhook_task(
    self,
    webhook_id: int,
    event: dict[str, Any],
    delivery_id: str,
) -> dict:
    """Make one delivery attempt for an (event, webhook) pair.

    Task Flow:
    1. Load the webhook from the registry (skip if removed or deactivated)
    2. Render, sign and POST the payload
    3. Append exactly one DeliveryAttempt row for this attempt, retrying the
       write on database errors
    4. If the attempt failed and attempts remain, re-schedule this task with
       an exponential countdown; otherwise stop

    Attempt N+1 is scheduled only after attempt N's row is committed. If the
    retry cannot be queued, an exhausted row closes the delivery.

    Args:
        webhook_id: Database ID of the webhook configuration
        event: Domain event serialized with DomainEvent.to_task_payload()
        delivery_id: Correlation id shared by every attempt of this delivery

    Returns:
        dict with the state reached by this attempt
    """
    attempt_number = self.request.retries + 1
    domain_event = DomainEvent.model_validate(event)

    with session_scope() as session:
        webhook = WebhookRepository(session).get_by_id(webhook_id)

        if webhook is None:
            logger.error(f"Webhook {webhook_id} not found, dropping delivery {delivery_id}")
            return {"status": "skipped", "reason": "webhook_not_found", "delivery_id": delivery_id}

        if not webhook.active:
            logger.info(f"Webhook {webhook_id} is inactive, skipping delivery {delivery_id}")
            return {"status": "skipped", "reason": "webhook_inactive", "delivery_id": delivery_id}

    logger.info(
        f"Attempting webhook delivery {delivery_id} to webhook {webhook_id} "
        f"(event: {domain_event.event_type}, attempt {attempt_number}/{webhook.attempt_limit})"
    )

    worker = _build_worker()
    outcome = worker.send(webhook, domain_event, delivery_id=delivery_id)

    try:
        state = _write_attempt(
            worker,
            webhook=webhook,
            event=domain_event,
            delivery_id=delivery_id,
            attempt_number=attempt_number,
            outcome=outcome,
        )
    except SQLAlchemyError as e:
        logger.error(
            f"Could not write attempt {attempt_number} of delivery {delivery_id} "
            f"for webhook {webhook_id}: {e}",
            exc_info=True,
        )
        raise

    if state is DeliveryState.RETRYING:
        countdown = worker.backoff_delay(attempt_number)
        logger.info(f"Retrying webhook delivery {delivery_id} in {countdown}s")
        try:
            raise self.retry(countdown=countdown, max_retries=webhook.attempt_limit - 1)
        except Reject as e:
            logger.error(f"Could not schedule retry of delivery {delivery_id} for webhook {webhook_id}: {e}")
            _write_unscheduled_retry(
                webhook=webhook,
                event=domain_event,
                delivery_id=delivery_id,
                attempt_number=attempt_number,
                outcome=outcome,
                reason=str(e.reason),
            )
            state = DeliveryState.EXHAUSTED

    return {
        "status": state.value,
        "webhook_id": webhook_id,
        "delivery_id": delivery_id,
        "event_type": domain_event.event_type,
        "attempt_number": attempt_number,
        "response_status": outcome.response_status,
        "response_time_ms": outcome.response_time_ms,
    }
