"""Tasks module for background webhook delivery."""
from __future__ import annotations

from .celery_app import celery_app, get_celery_app
from .webhook_tasks import deliver_webhook_task

__all__ = [
    "celery_app",
    "deliver_webhook_task",
    "get_celery_app",
]
