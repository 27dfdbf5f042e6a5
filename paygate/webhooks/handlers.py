"""Webhook HTTP handlers: FastAPI routes for inbound payment confirmations.

Each POST:
1. Reads the raw body (needed for HMAC verification)
2. Answers info probes (empty body or ``_getInfo``) without triggering
3. Verifies signature and freshness against the instance's session
4. Parses the payment event and hands it to the host dispatcher
5. Returns 200 {"success": true}

Security contract:
- Verification failure -> 401 {"error": <reason code>}, nothing dispatched
- No exception text is ever returned to the caller
- Every request produces one WEBHOOK_AUDIT log line
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from typing import Any, Awaitable, Callable, Union

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from paygate.config import Settings, get_settings
from paygate.sessions.models import CheckoutSession
from paygate.sessions.registry import SessionRegistry, is_degraded
from paygate.webhooks.events import PaymentEvent, is_info_probe, parse_payment_event
from paygate.webhooks.verification import (
    VerificationMode,
    extract_signature_headers,
    verify_payment_webhook,
)

logger = logging.getLogger(__name__)

PaymentDispatcher = Callable[[str, PaymentEvent], Union[Awaitable[None], None]]

# Webhook outcome counter for monitoring (in-memory)
_webhook_counts: dict[str, int] = {}


def _log_webhook(instance_id: str, checkout_id: str, status: str) -> None:
    """Audit log for webhook activity."""
    _webhook_counts[status] = _webhook_counts.get(status, 0) + 1
    logger.info(
        "WEBHOOK_AUDIT instance=%s checkout=%s status=%s count=%d",
        instance_id,
        checkout_id or "-",
        status,
        _webhook_counts[status],
    )


def _info_response(session: CheckoutSession | None) -> dict[str, Any]:
    test_mode = bool(session and session.test_mode)
    if test_mode:
        instructions = (
            'Test mode is ON. Send a POST with {"payment": {"amount": 1}, '
            '"input": {"email": "test@example.com"}} to simulate a payment.'
        )
    else:
        instructions = (
            "Share the form_url with customers. When they pay, this webhook "
            "will receive the payment data."
        )
    return {
        "message": "paygate trigger is listening",
        "form_url": session.checkout_url if session else None,
        "checkout_id": session.checkout_id if session else None,
        "status": session.status.value if session else "retired",
        "degraded": bool(session and is_degraded(session.state)),
        "test_mode": test_mode,
        "instructions": instructions,
    }


def _decode(body: bytes) -> Any:
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


async def handle_payment_webhook(
    request: Request,
    instance_id: str,
    registry: SessionRegistry,
    dispatch: PaymentDispatcher,
    settings: Settings,
) -> JSONResponse:
    """Verify and dispatch one payment confirmation for *instance_id*."""
    start = time.time()
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}

    session = registry.get(instance_id)
    checkout_id = session.checkout_id if session else ""

    decoded = _decode(body)
    if decoded is not None and is_info_probe(decoded):
        _log_webhook(instance_id, checkout_id, "info")
        return JSONResponse(_info_response(session), status_code=200)

    mode = VerificationMode.TEST if session and session.test_mode else VerificationMode.LIVE
    signature, timestamp = extract_signature_headers(headers)
    result = verify_payment_webhook(
        body,
        signature,
        timestamp,
        registry.state(instance_id),
        mode,
        tolerance_seconds=settings.signature_tolerance_seconds,
    )
    if not result.accepted:
        reason = result.reason.value if result.reason else "unauthorized"
        _log_webhook(instance_id, checkout_id, f"rejected:{reason}")
        return JSONResponse({"error": reason}, status_code=401)

    if not isinstance(decoded, dict):
        _log_webhook(instance_id, checkout_id, "invalid_json")
        return JSONResponse({"error": "invalid_json"}, status_code=400)

    event = parse_payment_event(
        decoded, checkout_id=checkout_id, authenticated=result.authenticated
    )

    try:
        outcome = dispatch(instance_id, event)
        if inspect.isawaitable(outcome):
            await outcome
        _log_webhook(instance_id, checkout_id, "dispatched")
    except Exception:
        logger.exception("Failed to dispatch payment event for instance %s", instance_id)
        _log_webhook(instance_id, checkout_id, "dispatch_failed")

    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: instance=%s", elapsed_ms, instance_id)
    return JSONResponse({"success": True}, status_code=200)


def register_webhook_routes(
    app: FastAPI,
    registry: SessionRegistry,
    dispatch: PaymentDispatcher,
    settings: Settings | None = None,
) -> None:
    """Register the payment webhook routes on *app*."""
    settings = settings or get_settings()

    @app.post("/webhooks/{instance_id}")
    async def payment_webhook(request: Request, instance_id: str):
        """Receive a payment confirmation (signature-verified)."""
        return await handle_payment_webhook(request, instance_id, registry, dispatch, settings)

    @app.get("/webhooks/{instance_id}")
    async def webhook_info(instance_id: str):
        """Listener info for the instance's checkout session."""
        return _info_response(registry.get(instance_id))

    logger.info("Webhook routes registered: /webhooks/{instance_id}")
