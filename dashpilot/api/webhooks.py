"""Webhook configuration and delivery log API endpoints."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from dashpilot.core.db import get_session
from dashpilot.models.webhook import Webhook
from dashpilot.schemas.events import AlertData, DomainEvent, SiteRef
from dashpilot.schemas.webhook import (
    DeliveryAttemptPage,
    DeliveryAttemptResponse,
    WebhookCreate,
    WebhookResponse,
    WebhookTestResponse,
    WebhookUpdate,
)
from dashpilot.services.delivery_log import DeliveryLogStore
from dashpilot.services.delivery_worker import DeliveryWorker
from dashpilot.services.webhook_repository import WebhookRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

TEST_EVENT_TYPE = "webhook_test"


def get_webhook_repository(session: Session = Depends(get_session)) -> WebhookRepository:
    """Dependency to get WebhookRepository instance."""
    return WebhookRepository(session)


def get_delivery_log(session: Session = Depends(get_session)) -> DeliveryLogStore:
    """Dependency to get DeliveryLogStore instance."""
    return DeliveryLogStore(session)


def get_delivery_worker() -> DeliveryWorker:
    """Dependency to get a DeliveryWorker configured from settings."""
    return DeliveryWorker.from_settings()


def _get_webhook_or_404(repository: WebhookRepository, webhook_id: int) -> Webhook:
    webhook = repository.get_by_id(webhook_id)
    if webhook is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Webhook with ID {webhook_id} not found",
        )
    return webhook


def build_test_event() -> DomainEvent:
    """Sample alert event used by the test endpoint."""
    now = datetime.now(timezone.utc)
    return DomainEvent(
        event_type=TEST_EVENT_TYPE,
        occurred_at=now,
        entity=AlertData(
            title="Test alert",
            type="test",
            severity="low",
            status="open",
            message="This is a test webhook from DashPilot",
            created_at=now,
            site=SiteRef(name="DashPilot", url="https://example.com"),
        ),
    )


@router.get(
    "",
    response_model=list[WebhookResponse],
    status_code=status.HTTP_200_OK,
    summary="List all webhooks",
)
def list_webhooks(
    repository: WebhookRepository = Depends(get_webhook_repository),
) -> list[WebhookResponse]:
    """List all webhook subscriptions. Secrets are never returned."""
    return [WebhookResponse.from_model(w) for w in repository.get_all()]


@router.post(
    "",
    response_model=WebhookResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new webhook",
)
def create_webhook(
    webhook: WebhookCreate,
    repository: WebhookRepository = Depends(get_webhook_repository),
) -> WebhookResponse:
    """
    Create a new webhook.

    Args:
        webhook: WebhookCreate schema with webhook data
        repository: WebhookRepository instance (injected)

    Returns:
        Created WebhookResponse
    """
    try:
        created_webhook = repository.create(webhook)
        return WebhookResponse.from_model(created_webhook)
    except Exception as e:
        logger.exception(f"Unexpected error creating webhook: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create webhook",
        ) from e


@router.get(
    "/{webhook_id}",
    response_model=WebhookResponse,
    status_code=status.HTTP_200_OK,
    summary="Get webhook by ID",
)
def get_webhook(
    webhook_id: int,
    repository: WebhookRepository = Depends(get_webhook_repository),
) -> WebhookResponse:
    """Get a webhook by ID, 404 if it does not exist."""
    return WebhookResponse.from_model(_get_webhook_or_404(repository, webhook_id))


@router.put(
    "/{webhook_id}",
    response_model=WebhookResponse,
    status_code=status.HTTP_200_OK,
    summary="Update a webhook",
    description="Update a webhook by ID. All fields in WebhookUpdate are optional.",
)
def update_webhook(
    webhook_id: int,
    webhook: WebhookUpdate,
    repository: WebhookRepository = Depends(get_webhook_repository),
) -> WebhookResponse:
    """
    Update a webhook by ID.

    Raises:
        HTTPException: 404 if webhook not found
    """
    try:
        updated_webhook = repository.update(webhook_id, webhook)
        if updated_webhook is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Webhook with ID {webhook_id} not found",
            )
        return WebhookResponse.from_model(updated_webhook)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error updating webhook {webhook_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update webhook",
        ) from e


@router.post(
    "/{webhook_id}/test",
    response_model=WebhookTestResponse,
    status_code=status.HTTP_200_OK,
    summary="Test a webhook",
    description=(
        "Send a signed sample alert to the webhook synchronously, in the destination's format. "
        "Test deliveries are not written to the delivery log."
    ),
)
def test_webhook(
    webhook_id: int,
    repository: WebhookRepository = Depends(get_webhook_repository),
    worker: DeliveryWorker = Depends(get_delivery_worker),
) -> WebhookTestResponse:
    """Test a webhook by sending a sample event synchronously."""
    webhook = _get_webhook_or_404(repository, webhook_id)

    outcome = worker.send(webhook, build_test_event(), delivery_id=f"test-{uuid4().hex}")

    return WebhookTestResponse(
        success=outcome.success,
        response_code=outcome.response_status,
        response_time_ms=outcome.response_time_ms,
        response_body=outcome.response_body,
        error=outcome.error_message,
    )


@router.get(
    "/{webhook_id}/deliveries",
    response_model=DeliveryAttemptPage,
    status_code=status.HTTP_200_OK,
    summary="Get webhook delivery attempts",
    description="Delivery attempts for a webhook, newest first, filterable by success and event type.",
)
def get_webhook_deliveries(
    webhook_id: int,
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(default=50, ge=1, le=100, description="Items per page (max 100)"),
    success: bool | None = Query(default=None, description="Only successful or only failed attempts"),
    event_type: str | None = Query(default=None, description="Only attempts for this event type"),
    repository: WebhookRepository = Depends(get_webhook_repository),
    delivery_log: DeliveryLogStore = Depends(get_delivery_log),
) -> DeliveryAttemptPage:
    """
    Get delivery attempts for a webhook.

    Raises:
        HTTPException: 404 if webhook not found
    """
    _get_webhook_or_404(repository, webhook_id)

    offset = (page - 1) * page_size
    attempts, total = delivery_log.list_for_webhook(
        webhook_id,
        success=success,
        event_type=event_type,
        limit=page_size,
        offset=offset,
    )

    return DeliveryAttemptPage(
        items=[DeliveryAttemptResponse.model_validate(a) for a in attempts],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/deliveries/{delivery_id}",
    response_model=list[DeliveryAttemptResponse],
    status_code=status.HTTP_200_OK,
    summary="Get the attempts of one delivery",
)
def get_delivery_attempts(
    delivery_id: str,
    delivery_log: DeliveryLogStore = Depends(get_delivery_log),
) -> list[DeliveryAttemptResponse]:
    """Full attempt sequence of one (event, webhook) delivery, 404 if unknown."""
    attempts = delivery_log.list_for_delivery(delivery_id)
    if not attempts:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Delivery {delivery_id} not found",
        )
    return [DeliveryAttemptResponse.model_validate(a) for a in attempts]
