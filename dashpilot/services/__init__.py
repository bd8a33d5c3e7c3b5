"""Services module for webhook routing, rendering, signing and delivery."""
from __future__ import annotations

from .delivery_log import DeliveryLogStore
from .delivery_worker import AttemptOutcome, DeliveryWorker
from .event_router import EventRouter
from .payload_renderer import PayloadFormat, PayloadRenderer, render_payload
from .signer import compute_signature, sign, verify_signature
from .webhook_repository import WebhookRepository

__all__ = [
    "AttemptOutcome",
    "DeliveryLogStore",
    "DeliveryWorker",
    "EventRouter",
    "PayloadFormat",
    "PayloadRenderer",
    "WebhookRepository",
    "compute_signature",
    "render_payload",
    "sign",
    "verify_signature",
]
