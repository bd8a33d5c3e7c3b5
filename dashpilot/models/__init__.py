"""ORM models exposed for external modules."""
from .base import Base
from .webhook import ALL_EVENTS, Webhook
from .webhook_delivery import DeliveryAttempt, DeliveryState

__all__ = [
    "ALL_EVENTS",
    "Base",
    "DeliveryAttempt",
    "DeliveryState",
    "Webhook",
]
