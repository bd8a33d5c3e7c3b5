"""Entrypoint for the FastAPI application."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dashpilot.api import health, webhooks
from dashpilot.core.config import get_settings
from dashpilot.core.exceptions import InvalidEventError, WebhookConfigurationError, WebhookError

settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Outbound webhook delivery for DashPilot alerts, with background delivery via Celery",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.exception_handler(WebhookError)
async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
    """Map webhook subsystem errors to client-facing responses."""
    status_code = 422 if isinstance(exc, (WebhookConfigurationError, InvalidEventError)) else 503
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Register API routers
app.include_router(health.router)  # Health checks at root level
app.include_router(webhooks.router, prefix=settings.api_prefix)
