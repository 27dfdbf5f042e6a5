"""FastAPI application factory for the payment webhook receiver.

The host supplies the session registry (so it shares the same durable
store as its activation hooks) and a dispatcher that forwards accepted
payment events into the workflow.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from paygate import __version__
from paygate.clients import PaymentServiceClient
from paygate.config import Settings, get_settings
from paygate.sessions.registry import SessionRegistry
from paygate.sessions.store import InMemorySessionStore
from paygate.webhooks.events import PaymentEvent
from paygate.webhooks.handlers import PaymentDispatcher, register_webhook_routes

logger = logging.getLogger(__name__)


def _log_dispatch(instance_id: str, event: PaymentEvent) -> None:
    logger.info(
        "Payment accepted: instance=%s tx=%s amount=%s %s authenticated=%s",
        instance_id,
        event.tx_hash or "-",
        event.amount,
        event.currency,
        event.authenticated,
    )


def create_app(
    registry: SessionRegistry | None = None,
    dispatch: PaymentDispatcher | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the webhook receiver app.

    Without a registry, an in-memory one is created (single-process use).
    Without a dispatcher, accepted events are only logged.
    """
    settings = settings or get_settings()
    if registry is None:
        registry = SessionRegistry(
            PaymentServiceClient.from_settings(settings),
            InMemorySessionStore(),
            settings=settings,
        )

    app = FastAPI(title="paygate", version=__version__)
    app.state.registry = registry

    @app.get("/health")
    async def health():
        return {"status": "ok", "environment": settings.environment}

    register_webhook_routes(app, registry, dispatch or _log_dispatch, settings)
    return app
