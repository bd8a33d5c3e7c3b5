"""Tests for WebhookDispatcher and WebhookService."""
from __future__ import annotations

import json
from contextlib import contextmanager
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from dashpilot.core.exceptions import InvalidEventError, WebhookConfigurationError, WebhookDispatchError
from dashpilot.schemas.events import AlertData, DomainEvent
from dashpilot.models.webhook import Webhook
from dashpilot.services.payload_renderer import render_payload
from dashpilot.services.webhook_service import WebhookDispatcher, WebhookService


@pytest.fixture
def mock_task() -> MagicMock:
    """Stand-in for the Celery delivery task."""
    return MagicMock()


@pytest.fixture
def make_dispatcher(mock_task: MagicMock, isolated_session_scope):
    """Build dispatchers enqueueing on the mock task and stamping through the test database."""

    def _make_dispatcher(**kwargs) -> WebhookDispatcher:
        return WebhookDispatcher(task=mock_task, session_factory=isolated_session_scope, **kwargs)

    return _make_dispatcher


@pytest.fixture
def service(db_session: Session, make_dispatcher) -> WebhookService:
    return WebhookService(db_session, dispatcher=make_dispatcher())


SLACK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"


def _enqueued(mock_task: MagicMock) -> list[dict]:
    return [call.kwargs["kwargs"] for call in mock_task.apply_async.call_args_list]


class TestWebhookDispatcher:
    """Tests for enqueueing delivery tasks."""

    def test_enqueues_one_task_per_subscription(self, make_webhook, mock_task, make_dispatcher):
        """Test each subscription gets its own task and delivery id."""
        first = make_webhook()
        second = make_webhook(url="https://example.org/hook")
        dispatcher = make_dispatcher()
        event = DomainEvent(event_type="alert_created")

        delivery_ids = dispatcher.dispatch(event, [first, second])

        assert len(delivery_ids) == 2
        assert len(set(delivery_ids)) == 2
        enqueued = _enqueued(mock_task)
        assert [kwargs["webhook_id"] for kwargs in enqueued] == [first.id, second.id]
        assert [kwargs["delivery_id"] for kwargs in enqueued] == delivery_ids
        assert enqueued[0]["event"] == event.to_task_payload()
        assert mock_task.apply_async.call_args.kwargs["queue"] == "webhooks"

    def test_marks_webhooks_triggered(self, db_session: Session, make_webhook, make_dispatcher):
        """Test enqueued subscriptions get last_triggered_at in a transaction of their own."""
        webhook = make_webhook()
        skipped = make_webhook(url="ftp://example.com/hook")

        with pytest.raises(WebhookConfigurationError):
            make_dispatcher().dispatch(DomainEvent(event_type="alert_created"), [webhook, skipped])

        assert not db_session.dirty
        db_session.expire_all()
        assert db_session.get(Webhook, webhook.id).last_triggered_at is not None
        assert db_session.get(Webhook, skipped.id).last_triggered_at is None

    def test_stamp_failure_does_not_fail_dispatch(self, make_webhook, mock_task):
        """Test a database error while stamping is logged, not raised."""
        webhook = make_webhook()

        @contextmanager
        def broken_scope():
            raise OperationalError("UPDATE webhooks", {}, Exception("database is locked"))
            yield

        dispatcher = WebhookDispatcher(task=mock_task, session_factory=broken_scope)

        assert len(dispatcher.dispatch(DomainEvent(event_type="alert_created"), [webhook])) == 1

    def test_misconfigured_subscription_not_enqueued(self, make_webhook, mock_task, make_dispatcher):
        """Test invalid endpoints are reported while valid ones are still queued."""
        good = make_webhook()
        bad = make_webhook(url="ftp://example.com/hook")
        dispatcher = make_dispatcher()

        with pytest.raises(WebhookConfigurationError) as exc_info:
            dispatcher.dispatch(DomainEvent(event_type="alert_created"), [good, bad])

        assert exc_info.value.webhook_ids == [bad.id]
        assert [kwargs["webhook_id"] for kwargs in _enqueued(mock_task)] == [good.id]

    def test_private_host_rejected(self, make_webhook, mock_task, make_dispatcher):
        """Test private address endpoints are refused unless allowed."""
        webhook = make_webhook(url="http://10.0.0.5/hook")

        with pytest.raises(WebhookConfigurationError):
            make_dispatcher().dispatch(
                DomainEvent(event_type="alert_created"), [webhook]
            )
        mock_task.apply_async.assert_not_called()

        allowed = make_dispatcher(allow_private_hosts=True)
        assert len(allowed.dispatch(DomainEvent(event_type="alert_created"), [webhook])) == 1

    def test_invalid_secret_rejected(self, make_webhook, mock_task, make_dispatcher):
        """Test secrets with control characters are a configuration error."""
        webhook = make_webhook(secret="bad\nsecret")
        dispatcher = make_dispatcher()

        with pytest.raises(WebhookConfigurationError):
            dispatcher.dispatch(DomainEvent(event_type="alert_created"), [webhook])

    def test_enqueue_failure_raises_dispatch_error(self, make_webhook, mock_task, make_dispatcher):
        """Test a broker failure surfaces to the caller."""
        webhook = make_webhook()
        mock_task.apply_async.side_effect = ConnectionError("broker down")
        dispatcher = make_dispatcher()

        with pytest.raises(WebhookDispatchError) as exc_info:
            dispatcher.dispatch(DomainEvent(event_type="alert_created"), [webhook])

        assert exc_info.value.failed_webhook_ids == [webhook.id]
        assert "broker down" in exc_info.value.message


class TestWebhookService:
    """Tests for publishing domain events."""

    def test_publish_routes_to_active_subscribers(self, service: WebhookService, make_webhook, mock_task):
        """Test inactive and non-matching webhooks are excluded."""
        subscribed = make_webhook(events=["alert_created"])
        make_webhook(events=["alert_created"], active=False)
        make_webhook(events=["alert_resolved"])

        delivery_ids = service.publish(DomainEvent(event_type="alert_created"))

        assert len(delivery_ids) == 1
        assert [kwargs["webhook_id"] for kwargs in _enqueued(mock_task)] == [subscribed.id]

    def test_publish_without_subscribers(self, service: WebhookService, mock_task):
        """Test nothing is enqueued when nobody listens."""
        assert service.publish(DomainEvent(event_type="alert_created")) == []
        mock_task.apply_async.assert_not_called()

    def test_publish_blank_event_type(self, service: WebhookService):
        """Test blank event types are rejected."""
        with pytest.raises(InvalidEventError):
            service.publish(DomainEvent(event_type=" "))

    def test_trigger_event_accepts_dict(self, service: WebhookService, make_webhook, mock_task):
        """Test trigger_event builds the event from a plain dict."""
        make_webhook(events=["*"])

        service.trigger_event("site_checked", {"id": 5, "title": "Check", "site": {"name": "Shop"}})

        event = _enqueued(mock_task)[0]["event"]
        assert event["event_type"] == "site_checked"
        assert event["entity"]["id"] == 5
        assert event["entity"]["site"]["name"] == "Shop"

    def test_notify_alert_created(self, service: WebhookService, make_webhook, mock_task, sample_alert: AlertData):
        """Test new alerts publish alert_created."""
        make_webhook(events=["alert_created"])

        service.notify_alert_created(sample_alert)

        assert _enqueued(mock_task)[0]["event"]["event_type"] == "alert_created"

    def test_notify_alert_updated_publishes_on_resolution(
        self, service: WebhookService, make_webhook, mock_task, sample_alert: AlertData
    ):
        """Test alert_resolved is published when an alert becomes resolved."""
        make_webhook(events=["alert_resolved"])
        resolved = sample_alert.model_copy(update={"is_resolved": True})

        delivery_ids = service.notify_alert_updated(resolved, was_resolved=False)

        assert len(delivery_ids) == 1
        assert _enqueued(mock_task)[0]["event"]["event_type"] == "alert_resolved"

    def test_notify_alert_updated_ignores_other_updates(
        self, service: WebhookService, make_webhook, mock_task, sample_alert: AlertData
    ):
        """Test unresolved or already-resolved alerts publish nothing."""
        make_webhook(events=["alert_resolved"])
        resolved = sample_alert.model_copy(update={"is_resolved": True})

        assert service.notify_alert_updated(sample_alert, was_resolved=False) == []
        assert service.notify_alert_updated(resolved, was_resolved=True) == []
        mock_task.apply_async.assert_not_called()

    def test_publish_does_not_commit_caller_session(self, db_session: Session, service: WebhookService, make_webhook):
        """Test the caller's pending work is still rolled back after publishing."""
        make_webhook(events=["alert_created"])
        db_session.add(Webhook(name="caller-pending", url="https://example.com/pending", events=["*"]))

        service.trigger_event("alert_created", {"id": 1})
        db_session.rollback()

        assert [w.name for w in db_session.query(Webhook).all()] == ["Ops channel"]


class TestMalformedEntities:
    """Entities of an unexpected shape degrade to placeholders instead of raising."""

    @pytest.mark.parametrize(
        "entity",
        [
            {"id": 1, "severity": 3, "message": "disk full"},
            {"id": 1, "site": "Shop", "message": "disk full"},
            {"id": 1, "created_at": "yesterday", "message": "disk full"},
            {"id": 1, "type": 12, "message": "disk full"},
            {"id": 1, "site": {"name": ["not", "a", "name"]}, "is_resolved": "maybe", "message": "disk full"},
        ],
    )
    def test_trigger_event_enqueues_malformed_entity(
        self, service: WebhookService, make_webhook, mock_task, entity: dict
    ):
        """Test a malformed entity is still enqueued and renders."""
        make_webhook(events=["alert_created"])

        delivery_ids = service.trigger_event("alert_created", entity)

        assert len(delivery_ids) == 1
        event = DomainEvent.model_validate(_enqueued(mock_task)[0]["event"])
        payload = json.loads(render_payload(event, SimpleNamespace(url=SLACK_URL)))
        fields = {field["title"]: field["value"] for field in payload["attachments"][0]["fields"]}
        assert fields["Message"] == "disk full"
        assert event.entity.id == 1

    def test_wrongly_typed_fields_fall_back_to_placeholders(self):
        """Test unusable values render as the default placeholders."""
        event = DomainEvent.for_alert(
            "alert_created",
            {"severity": 3, "type": 12, "created_at": "yesterday", "is_resolved": "maybe"},
        )

        payload = json.loads(render_payload(event, SimpleNamespace(url=SLACK_URL)))

        assert event.entity.severity is None
        assert event.entity.created_at is None
        assert event.entity.is_resolved is False
        assert payload["text"] == "\U0001f6a8 Alert: Unknown Site"
        assert payload["attachments"][0]["color"] == "#6b7280"
        fields = {field["title"]: field["value"] for field in payload["attachments"][0]["fields"]}
        assert fields["Type"] == "General"
        assert fields["Severity"] == "Low"

    def test_string_site_is_used_as_name(self):
        """Test a bare string site becomes the site name."""
        event = DomainEvent.for_alert("alert_created", {"site": "Shop"})

        assert event.entity.site.name == "Shop"
        assert event.entity.site.url is None

    @pytest.mark.parametrize("entity", [None, 42, "alert"])
    def test_unusable_entity_becomes_empty_snapshot(self, entity):
        """Test entities that are not records at all yield an empty snapshot."""
        event = DomainEvent.for_alert("alert_created", entity)

        assert event.entity.id is None
        assert event.entity.message is None

    def test_object_entity_read_from_attributes(self):
        """Test ORM-like objects are read attribute by attribute."""
        alert = SimpleNamespace(id=9, severity="high", message="slow", site=SimpleNamespace(name="Blog", url=None))

        event = DomainEvent.for_alert("alert_created", alert)

        assert event.entity.severity == "high"
        assert event.entity.site.name == "Blog"
