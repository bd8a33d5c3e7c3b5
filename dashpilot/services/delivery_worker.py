"""HTTP delivery of rendered webhook payloads and the retry policy around it."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx

from dashpilot.core.config import Settings, get_settings
from dashpilot.models.webhook import Webhook
from dashpilot.models.webhook_delivery import DeliveryState
from dashpilot.schemas.events import DomainEvent
from dashpilot.services.delivery_log import DeliveryLogStore
from dashpilot.services.payload_renderer import PayloadRenderer, default_renderer
from dashpilot.services.signer import signature_headers

logger = logging.getLogger(__name__)

ERROR_BODY_PREVIEW_LENGTH = 200


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of a single HTTP attempt, before it is written to the log."""

    payload: str
    success: bool
    response_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    response_time_ms: int | None = None


class DeliveryWorker:
    """Performs one delivery attempt at a time and decides what happens next.

    The worker renders and signs the payload, POSTs it with a bounded timeout,
    and turns every failure (timeouts, connection errors, non-2xx responses,
    payload or signature build failures) into an AttemptOutcome instead of
    raising.
    """

    def __init__(
        self,
        *,
        renderer: PayloadRenderer | None = None,
        timeout_seconds: float = 10.0,
        signature_header: str = "X-Signature",
        user_agent: str = "DashPilot/1.0",
        max_response_body: int = 1000,
        backoff_base_seconds: int = 60,
        backoff_max_seconds: int = 900,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._renderer = renderer or default_renderer
        self._timeout = timeout_seconds
        self._signature_header = signature_header
        self._user_agent = user_agent
        self._max_response_body = max_response_body
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides) -> "DeliveryWorker":
        """Build a worker from application settings."""
        settings = settings or get_settings()
        options = {
            "timeout_seconds": settings.webhook_timeout_seconds,
            "signature_header": settings.webhook_signature_header,
            "user_agent": settings.webhook_user_agent,
            "max_response_body": settings.webhook_max_response_body,
            "backoff_base_seconds": settings.webhook_backoff_base_seconds,
            "backoff_max_seconds": settings.webhook_backoff_max_seconds,
        }
        options.update(overrides)
        return cls(**options)

    def backoff_delay(self, attempt_number: int) -> int:
        """Seconds to wait after a failed attempt: base * 2^(n-1), capped."""
        exponent = max(attempt_number, 1) - 1
        return min(self._backoff_base * (2 ** exponent), self._backoff_max)

    @staticmethod
    def next_state(success: bool, attempt_number: int, max_attempts: int) -> DeliveryState:
        """State a delivery moves to after an attempt."""
        if success:
            return DeliveryState.SUCCEEDED
        if attempt_number < max(max_attempts, 1):
            return DeliveryState.RETRYING
        return DeliveryState.EXHAUSTED

    def _truncate(self, text: str) -> str:
        if len(text) > self._max_response_body:
            return text[: self._max_response_body] + "... (truncated)"
        return text

    def build_request(self, webhook: Webhook, event: DomainEvent, *, delivery_id: str) -> tuple[bytes, dict[str, str]]:
        """Render the body and headers for a delivery.

        The signature is computed over the returned bytes, which are sent
        unchanged.
        """
        body = self._renderer.render(event, webhook)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            "X-Webhook-Event": event.event_type,
            "X-Webhook-Delivery": delivery_id,
        }
        headers.update(signature_headers(body, webhook.secret, self._signature_header))
        return body, headers

    def send(self, webhook: Webhook, event: DomainEvent, *, delivery_id: str) -> AttemptOutcome:
        """Make one HTTP POST to the webhook endpoint and report what happened."""
        try:
            body, headers = self.build_request(webhook, event, delivery_id=delivery_id)
        except Exception as e:
            logger.error(f"Failed to build payload for webhook {webhook.id} (delivery {delivery_id}): {e}", exc_info=True)
            return AttemptOutcome(payload="", success=False, error_message=f"Payload build failed: {e}")

        payload_text = body.decode("utf-8")
        start_time = time.monotonic()

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(webhook.url, content=body, headers=headers)
        except httpx.TimeoutException:
            return AttemptOutcome(
                payload=payload_text,
                success=False,
                error_message=f"Webhook request timed out after {self._timeout}s",
                response_time_ms=int((time.monotonic() - start_time) * 1000),
            )
        except httpx.RequestError as e:
            return AttemptOutcome(
                payload=payload_text,
                success=False,
                error_message=f"Webhook request failed: {e}",
                response_time_ms=int((time.monotonic() - start_time) * 1000),
            )
        except Exception as e:
            logger.error(f"Unexpected error delivering webhook {webhook.id}: {e}", exc_info=True)
            return AttemptOutcome(
                payload=payload_text,
                success=False,
                error_message=f"Unexpected error during webhook delivery: {e}",
                response_time_ms=int((time.monotonic() - start_time) * 1000),
            )

        response_time_ms = int((time.monotonic() - start_time) * 1000)
        response_body = self._truncate(response.text) if response.text else None
        is_success = 200 <= response.status_code < 300

        error_message = None
        if not is_success:
            preview = (response.text or "")[:ERROR_BODY_PREVIEW_LENGTH]
            error_message = f"HTTP {response.status_code}: {preview}" if preview else f"HTTP {response.status_code}"

        return AttemptOutcome(
            payload=payload_text,
            success=is_success,
            response_status=response.status_code,
            response_body=response_body,
            error_message=error_message,
            response_time_ms=response_time_ms,
        )

    def record(
        self,
        log_store: DeliveryLogStore,
        *,
        webhook: Webhook,
        event: DomainEvent,
        delivery_id: str,
        attempt_number: int,
        outcome: AttemptOutcome,
    ) -> DeliveryState:
        """Write the attempt row for ``outcome`` and return the resulting state."""
        state = self.next_state(outcome.success, attempt_number, webhook.attempt_limit)

        log_store.record_attempt(
            webhook_id=webhook.id,
            delivery_id=delivery_id,
            event_id=event.event_id,
            event_type=event.event_type,
            payload=outcome.payload,
            attempt_number=attempt_number,
            state=state,
            success=outcome.success,
            response_status=outcome.response_status,
            response_body=outcome.response_body,
            error_message=outcome.error_message,
        )

        context = (
            f"webhook {webhook.id}, event '{event.event_type}', delivery {delivery_id}, "
            f"attempt {attempt_number}/{webhook.attempt_limit}"
        )
        if state is DeliveryState.SUCCEEDED:
            logger.info(
                f"Webhook delivered ({context}, status: {outcome.response_status}, "
                f"time: {outcome.response_time_ms}ms)"
            )
        elif state is DeliveryState.RETRYING:
            logger.warning(f"Webhook delivery failed, will retry ({context}): {outcome.error_message}")
        else:
            logger.warning(f"Webhook delivery exhausted ({context}): {outcome.error_message}")
        return state
