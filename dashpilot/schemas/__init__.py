"""Public schema exports."""

from .events import ALERT_CREATED, ALERT_RESOLVED, AlertData, DomainEvent, SiteRef
from .webhook import (
    DeliveryAttemptPage,
    DeliveryAttemptResponse,
    WebhookCreate,
    WebhookResponse,
    WebhookTestResponse,
    WebhookUpdate,
)

__all__ = [
    "ALERT_CREATED",
    "ALERT_RESOLVED",
    "AlertData",
    "DomainEvent",
    "SiteRef",
    "DeliveryAttemptPage",
    "DeliveryAttemptResponse",
    "WebhookCreate",
    "WebhookResponse",
    "WebhookTestResponse",
    "WebhookUpdate",
]
