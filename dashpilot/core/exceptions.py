"""Exception hierarchy for webhook routing and dispatch.

Only configuration and enqueue problems surface to the caller that raised a
domain event. Failures on the delivery path are recorded as delivery attempts
by the worker and never raised.
"""
from __future__ import annotations

from typing import Iterable


class WebhookError(Exception):
    """Base exception for webhook subsystem errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "webhook_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class InvalidEventError(WebhookError):
    """Domain event cannot be routed (e.g. empty event type)."""

    code: str = "invalid_event"


class WebhookConfigurationError(WebhookError):
    """One or more subscriptions have an unusable endpoint URL or secret.

    Attributes:
        problems: Mapping of webhook id to the reason it was rejected.
    """

    code: str = "webhook_configuration_error"

    def __init__(self, problems: dict[int | None, str]) -> None:
        self.problems = dict(problems)
        details = "; ".join(f"webhook {webhook_id}: {reason}" for webhook_id, reason in self.problems.items())
        super().__init__(f"Invalid webhook configuration ({details})")

    @property
    def webhook_ids(self) -> list[int | None]:
        return list(self.problems)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "webhooks": {str(key): value for key, value in self.problems.items()},
            }
        }


class WebhookDispatchError(WebhookError):
    """The task queue refused one or more delivery tasks."""

    code: str = "webhook_dispatch_error"

    def __init__(self, webhook_ids: Iterable[int], cause: str) -> None:
        self.failed_webhook_ids = list(webhook_ids)
        super().__init__(
            f"Failed to enqueue delivery for webhook(s) {self.failed_webhook_ids}: {cause}"
        )
