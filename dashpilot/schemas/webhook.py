"""Pydantic schemas for webhook subscriptions and delivery attempts."""
from __future__ import annotations

import ipaddress
from datetime import datetime
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dashpilot.core.config import get_settings
from dashpilot.models.webhook import Webhook

BLOCKED_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1"})


def validate_endpoint_url(url: str, *, allow_private: bool = False) -> str:
    """Validate that a webhook endpoint is a deliverable HTTP(S) URL.

    Hosts that are localhost or private/reserved IP literals are rejected
    unless ``allow_private`` is set. Hostnames are not resolved.

    Raises:
        ValueError: If the URL cannot be used as a delivery endpoint.
    """
    if not isinstance(url, str) or not url.strip():
        raise ValueError("URL must not be empty")
    value = url.strip()
    if not value.startswith(("http://", "https://")):
        raise ValueError("URL must start with http:// or https://")

    try:
        host = urlsplit(value).hostname
    except ValueError as e:
        raise ValueError(f"URL is malformed: {e}") from e
    if not host:
        raise ValueError("URL must include a host")

    if allow_private:
        return value

    if host.lower() in BLOCKED_HOSTS or host.lower().endswith(".localhost"):
        raise ValueError("URL cannot point to localhost or private addresses")
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return value
    if address.is_private or address.is_reserved or address.is_loopback or address.is_link_local:
        raise ValueError("URL cannot point to private or reserved IP addresses")
    return value


def validate_secret(secret: str | None) -> str | None:
    """Validate a signing secret. None or empty means unsigned delivery.

    Raises:
        ValueError: If the secret is whitespace-only or contains control characters.
    """
    if secret is None or secret == "":
        return None
    if not secret.strip():
        raise ValueError("Secret must not be blank")
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in secret):
        raise ValueError("Secret must not contain control characters")
    return secret


def _allow_private_hosts() -> bool:
    return get_settings().webhook_allow_private_hosts


class WebhookBase(BaseModel):
    """Shared attributes for webhook payloads."""

    name: str = Field(default="Webhook", max_length=255, description="Display label")
    url: str = Field(description="Webhook URL to receive POST requests")
    events: list[str] = Field(description="Event types to subscribe to ('*' for all)")
    active: bool = Field(default=True, description="Whether the webhook is active")
    max_retries: int = Field(
        default_factory=lambda: get_settings().webhook_default_max_retries,
        ge=1,
        le=10,
        description="Maximum delivery attempts per event",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Validate that URL is a deliverable HTTP/HTTPS URL."""
        return validate_endpoint_url(value, allow_private=_allow_private_hosts())

    @field_validator("events")
    @classmethod
    def validate_events(cls, value: list[str]) -> list[str]:
        """Validate that events list is not empty."""
        cleaned = [event.strip() for event in value if event and event.strip()]
        if not cleaned:
            raise ValueError("Events list cannot be empty")
        return cleaned


class WebhookCreate(WebhookBase):
    """Payload used when creating a webhook."""

    secret: str | None = Field(default=None, description="Shared secret for HMAC-SHA256 signatures")

    @field_validator("secret")
    @classmethod
    def check_secret(cls, value: str | None) -> str | None:
        return validate_secret(value)


class WebhookUpdate(BaseModel):
    """Payload used when updating a webhook (all fields optional)."""

    name: str | None = Field(default=None, max_length=255)
    url: str | None = Field(default=None, description="Webhook URL to receive POST requests")
    events: list[str] | None = Field(default=None, description="Event types to subscribe to")
    active: bool | None = Field(default=None, description="Whether the webhook is active")
    secret: str | None = Field(default=None, description="New secret; empty string removes signing")
    max_retries: int | None = Field(default=None, ge=1, le=10)

    @field_validator("url", mode="before")
    @classmethod
    def validate_url(cls, value: str | None) -> str | None:
        """Validate that URL is a deliverable HTTP/HTTPS URL."""
        if value is not None:
            return validate_endpoint_url(value, allow_private=_allow_private_hosts())
        return value

    @field_validator("events")
    @classmethod
    def validate_events(cls, value: list[str] | None) -> list[str] | None:
        """Validate that events list is not empty if provided."""
        if value is not None:
            value = [event.strip() for event in value if event and event.strip()]
            if not value:
                raise ValueError("Events list cannot be empty")
        return value

    @field_validator("secret")
    @classmethod
    def check_secret(cls, value: str | None) -> str | None:
        if value == "":
            return value
        return validate_secret(value)


class WebhookResponse(BaseModel):
    """Response model returned by API endpoints. The secret is never echoed."""

    id: int = Field(description="Database identifier")
    name: str
    url: str
    events: list[str]
    active: bool
    max_retries: int
    has_secret: bool = Field(default=False, description="Whether deliveries are signed")
    last_triggered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, webhook: Webhook) -> "WebhookResponse":
        response = cls.model_validate(webhook)
        return response.model_copy(update={"has_secret": bool(webhook.secret)})


class WebhookTestResponse(BaseModel):
    """Response model for webhook test endpoint."""

    success: bool = Field(description="Whether the webhook call succeeded")
    response_code: int | None = Field(description="HTTP status code from webhook endpoint")
    response_time_ms: int | None = Field(description="Response time in milliseconds")
    response_body: str | None = Field(description="Response body (truncated)")
    error: str | None = Field(default=None, description="Error message if call failed")


class DeliveryAttemptResponse(BaseModel):
    """Response model for one logged delivery attempt."""

    id: int
    webhook_id: int
    delivery_id: str
    event_id: str | None
    event_type: str
    payload: str = Field(description="Exact body sent to the endpoint")
    response_status: int | None
    response_body: str | None
    attempt_number: int
    success: bool
    state: str
    error_message: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeliveryAttemptPage(BaseModel):
    """Paginated delivery attempt listing."""

    items: list[DeliveryAttemptResponse]
    total: int
    page: int
    page_size: int
