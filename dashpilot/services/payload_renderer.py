"""Destination-specific payload rendering for webhook deliveries.

The destination format is chosen by an ordered list of strategies. Each
strategy pairs a predicate over the endpoint URL with a body builder; the first
strategy whose predicate matches wins and the generic envelope closes the list
as the default.

Rendering is a pure function of the event and the destination URL. Missing
entity fields are replaced with placeholder text so delivery always proceeds.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Protocol, Sequence
from urllib.parse import urlsplit

from dashpilot.schemas.events import ALERT_CREATED, ALERT_RESOLVED, AlertData, DomainEvent

UNKNOWN_SITE = "Unknown Site"
NOT_AVAILABLE = "N/A"
DEFAULT_TYPE = "General"
DEFAULT_SEVERITY = "low"

SLACK_COLORS: Mapping[str, str] = {
    "critical": "#dc2626",  # red
    "high": "#f59e0b",  # amber
    "medium": "#eab308",  # yellow
}
SLACK_DEFAULT_COLOR = "#6b7280"  # gray

DISCORD_COLORS: Mapping[str, int] = {
    "critical": 15158332,  # red
    "high": 16776960,  # yellow
    "medium": 16776960,
}
DISCORD_DEFAULT_COLOR = 9807270  # gray


class Destination(Protocol):
    url: str


@dataclass(frozen=True)
class PayloadFormat:
    """A rendering strategy: URL predicate plus body builder."""

    name: str
    matches: Callable[[str], bool]
    build: Callable[[DomainEvent], dict[str, Any]]


def _host(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def _host_is(url: str, *domains: str) -> bool:
    host = _host(url)
    return any(host == domain or host.endswith(f".{domain}") for domain in domains)


def severity_color(severity: str | None, table: Mapping[str, Any], default: Any) -> Any:
    """Look up a severity color; unknown or missing severities get the default."""
    if not isinstance(severity, str):
        return default
    return table.get(severity.strip().lower(), default)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _ucfirst(value: str) -> str:
    return value[:1].upper() + value[1:]


def _headline(event: DomainEvent) -> str:
    site_name = _site_name(event.entity)
    if event.event_type == ALERT_RESOLVED:
        return f"\u2705 Alert Resolved: {site_name}"
    if event.event_type == ALERT_CREATED:
        return f"\U0001f6a8 Alert: {site_name}"
    label = _ucfirst(event.event_type.replace("_", " "))
    return f"\U0001f514 {label}: {site_name}"


def _site_name(alert: AlertData) -> str:
    if alert.site is not None and alert.site.name:
        return alert.site.name
    return UNKNOWN_SITE


def _site_url(alert: AlertData) -> str:
    if alert.site is not None and alert.site.url:
        return alert.site.url
    return NOT_AVAILABLE


def _summary_fields(alert: AlertData) -> list[tuple[str, str, bool]]:
    """(label, value, short) tuples shared by both chat formats."""
    return [
        ("Type", alert.type or DEFAULT_TYPE, True),
        ("Severity", _ucfirst(alert.severity or DEFAULT_SEVERITY), True),
        ("Message", alert.message or NOT_AVAILABLE, False),
        ("Site URL", _site_url(alert), False),
    ]


def _event_time(event: DomainEvent) -> datetime:
    created_at = event.entity.created_at or event.occurred_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at


def build_slack_payload(event: DomainEvent) -> dict[str, Any]:
    """Slack incoming-webhook message with a flat attachment field list."""
    alert = event.entity
    return {
        "text": _headline(event),
        "attachments": [
            {
                "color": severity_color(alert.severity, SLACK_COLORS, SLACK_DEFAULT_COLOR),
                "fields": [
                    {"title": label, "value": value, "short": short}
                    for label, value, short in _summary_fields(alert)
                ],
                "ts": int(_event_time(event).timestamp()),
            }
        ],
    }


def build_discord_payload(event: DomainEvent) -> dict[str, Any]:
    """Discord webhook message with a nested embed."""
    alert = event.entity
    return {
        "embeds": [
            {
                "title": _headline(event),
                "description": alert.message or NOT_AVAILABLE,
                "color": severity_color(alert.severity, DISCORD_COLORS, DISCORD_DEFAULT_COLOR),
                "fields": [
                    {"name": label, "value": value, "inline": short}
                    for label, value, short in _summary_fields(alert)
                    if label != "Message"
                ],
                "timestamp": _iso(_event_time(event)),
            }
        ],
    }


def build_generic_payload(event: DomainEvent) -> dict[str, Any]:
    """Stable machine-readable envelope for custom integrations."""
    alert = event.entity
    site = alert.site
    return {
        "event": event.event_type,
        "event_id": event.event_id,
        "timestamp": _iso(event.occurred_at),
        "entity": {
            "id": alert.id,
            "title": alert.title,
            "type": alert.type,
            "severity": alert.severity,
            "status": alert.status,
            "message": alert.message,
            "is_resolved": alert.is_resolved,
            "created_at": _iso(alert.created_at),
            "resolved_at": _iso(alert.resolved_at),
            "resolved_by": alert.resolved_by,
            "resolution_notes": alert.resolution_notes,
            "site": {
                "id": site.id if site else None,
                "name": site.name if site else None,
                "url": site.url if site else None,
            },
        },
    }


SLACK_FORMAT = PayloadFormat(
    name="slack",
    matches=lambda url: _host(url) == "hooks.slack.com",
    build=build_slack_payload,
)
DISCORD_FORMAT = PayloadFormat(
    name="discord",
    matches=lambda url: _host_is(url, "discord.com", "discordapp.com"),
    build=build_discord_payload,
)
GENERIC_FORMAT = PayloadFormat(
    name="generic",
    matches=lambda url: True,
    build=build_generic_payload,
)

DEFAULT_FORMATS: tuple[PayloadFormat, ...] = (SLACK_FORMAT, DISCORD_FORMAT, GENERIC_FORMAT)


def serialize(body: Mapping[str, Any]) -> bytes:
    """Serialize a payload to the exact bytes that get signed and sent."""
    return json.dumps(body, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class PayloadRenderer:
    """Renders a domain event into the body expected by a destination."""

    def __init__(self, formats: Sequence[PayloadFormat] = DEFAULT_FORMATS) -> None:
        if not formats:
            raise ValueError("At least one payload format is required")
        self._formats = tuple(formats)
        self._default = self._formats[-1]

    def select(self, url: str) -> PayloadFormat:
        """Return the first format whose predicate matches the URL."""
        for payload_format in self._formats:
            if payload_format.matches(url):
                return payload_format
        return self._default

    def render(self, event: DomainEvent, destination: Destination) -> bytes:
        """Render ``event`` for ``destination`` and serialize it to bytes."""
        payload_format = self.select(destination.url)
        return serialize(payload_format.build(event))


default_renderer = PayloadRenderer()


def render_payload(event: DomainEvent, destination: Destination) -> bytes:
    """Render with the default format list."""
    return default_renderer.render(event, destination)
