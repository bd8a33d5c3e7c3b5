"""Core application utilities and infrastructure."""
from .config import Settings, get_settings
from .exceptions import (
    InvalidEventError,
    WebhookConfigurationError,
    WebhookDispatchError,
    WebhookError,
)

__all__ = [
    "Settings",
    "get_settings",
    "InvalidEventError",
    "WebhookConfigurationError",
    "WebhookDispatchError",
    "WebhookError",
]
