"""Domain events consumed by the webhook delivery engine.

Events are immutable value objects built by the code that raises them. They
are serialised to plain JSON when handed to the task queue, so the worker never
shares mutable state with the caller.
"""
from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidatorFunctionWrapHandler, field_validator

logger = logging.getLogger(__name__)

ALERT_CREATED = "alert_created"
ALERT_RESOLVED = "alert_resolved"

KNOWN_EVENT_TYPES = (ALERT_CREATED, ALERT_RESOLVED)


class SiteRef(BaseModel):
    """Reference to the monitored site an alert belongs to."""

    model_config = ConfigDict(frozen=True, extra="ignore", from_attributes=True)

    id: int | str | None = None
    name: str | None = None
    url: str | None = None

    @field_validator("id", "name", "url", mode="wrap")
    @classmethod
    def drop_invalid(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        try:
            return handler(value)
        except ValidationError:
            return None


class AlertData(BaseModel):
    """Read-only snapshot of an alert, the entity carried by alert events.

    Every field is optional: renderers substitute placeholders instead of
    failing when the host application hands over a partial record.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", from_attributes=True)

    id: int | str | None = None
    title: str | None = None
    type: str | None = None
    severity: str | None = None
    status: str | None = None
    message: str | None = None
    is_resolved: bool = False
    created_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: int | str | None = None
    resolution_notes: str | None = None
    site: SiteRef | None = None

    @field_validator(
        "id",
        "title",
        "type",
        "severity",
        "status",
        "message",
        "created_at",
        "resolved_at",
        "resolved_by",
        "resolution_notes",
        mode="wrap",
    )
    @classmethod
    def drop_invalid(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        """Replace values of the wrong shape with None so renderers fall back to placeholders."""
        try:
            return handler(value)
        except ValidationError:
            return None

    @field_validator("is_resolved", mode="wrap")
    @classmethod
    def resolved_flag(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> bool:
        try:
            return handler(value)
        except ValidationError:
            return False

    @field_validator("site", mode="wrap")
    @classmethod
    def site_reference(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> SiteRef | None:
        try:
            return handler(value)
        except ValidationError:
            # A bare string is taken as the site name
            if isinstance(value, str) and value.strip():
                return SiteRef(name=value)
            return None


class DomainEvent(BaseModel):
    """Something that happened in the host application, plus the entity it concerns."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: uuid4().hex)
    event_type: str = Field(min_length=1)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    entity: AlertData = Field(default_factory=AlertData)

    @classmethod
    def for_alert(cls, event_type: str, alert: AlertData | dict[str, Any] | Any) -> "DomainEvent":
        """Build an event from an alert snapshot, a dict, or an ORM-like object."""
        if isinstance(alert, AlertData):
            entity = alert
        elif alert is None:
            entity = AlertData()
        else:
            try:
                if isinstance(alert, dict):
                    entity = AlertData.model_validate(alert)
                else:
                    entity = AlertData.model_validate(alert, from_attributes=True)
            except ValidationError as e:
                logger.warning(f"Unusable entity for '{event_type}' event, sending placeholders: {e}")
                entity = AlertData()
        return cls(event_type=event_type, entity=entity)

    def to_task_payload(self) -> dict[str, Any]:
        """Return a JSON-safe dict suitable for a Celery task argument."""
        return self.model_dump(mode="json")
