"""Health check endpoints for the delivery service and its dependencies."""
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text

from dashpilot.core.config import get_settings
from dashpilot.core.db import engine
from dashpilot.core.redis_manager import get_redis_client
from dashpilot.tasks.celery_app import celery_app

router = APIRouter(tags=["health"])
settings = get_settings()


def _component(healthy: bool, message: str, **extra: Any) -> dict[str, Any]:
    return {"status": "healthy" if healthy else "unhealthy", "message": message, **extra}


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint for load balancers."""
    return {"status": "ok"}


@router.get("/health/detailed")
async def detailed_health_check() -> dict[str, Any]:
    """Detailed health check for all service dependencies.

    Checks:
    - Database connectivity (subscriptions and delivery log)
    - Redis connectivity (Celery result backend)
    - Celery workers consuming the webhook queue

    Returns:
        Detailed health status for each component
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "components": {},
    }
    components = health_status["components"]

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        components["database"] = _component(True, "Database connection successful")
    except Exception as e:
        health_status["status"] = "unhealthy"
        components["database"] = _component(False, f"Database connection failed: {str(e)}")

    try:
        redis_client = get_redis_client()
        try:
            await redis_client.ping()
        finally:
            await redis_client.aclose()
        components["redis"] = _component(True, "Redis connection successful")
    except Exception as e:
        health_status["status"] = "unhealthy"
        components["redis"] = _component(False, f"Redis connection failed: {str(e)}")

    # Webhook deliveries stall silently without a consumer on the queue
    try:
        inspect = celery_app.control.inspect(timeout=2.0)
        active_queues = inspect.active_queues() or {}
        consumers = [
            worker
            for worker, queues in active_queues.items()
            if any(queue.get("name") == settings.webhook_queue for queue in queues or [])
        ]
        if consumers:
            components["celery"] = _component(
                True,
                f"{len(consumers)} worker(s) consuming '{settings.webhook_queue}'",
                workers=consumers,
            )
        else:
            if health_status["status"] == "healthy":
                health_status["status"] = "degraded"
            components["celery"] = {
                "status": "degraded",
                "message": f"No Celery workers consuming '{settings.webhook_queue}'",
            }
    except Exception as e:
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"
        components["celery"] = {
            "status": "degraded",
            "message": f"Failed to inspect Celery workers: {str(e)}",
        }

    return health_status
