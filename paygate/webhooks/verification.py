"""Payment webhook verification: constant-time HMAC plus a freshness window.

Security contract:
- Signing input is ``f"{timestamp}."`` + the raw request body bytes, exactly as
  received. The body is never re-serialized before hashing.
- Comparison uses hmac.compare_digest() (constant-time)
- Timestamp tolerance: 300s either direction, to bound replay of a leaked
  signature
- Only an Active session can authenticate a request. A Retired (or absent)
  session rejects live traffic.

UNSAFE FOR REAL PAYMENTS: test mode and local-fallback sessions bypass
verification entirely and accept any payload. Such results are flagged
``authenticated=False`` so the host can tell them apart.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from enum import Enum

from paygate.exceptions import AuthVerificationFailure, RejectionReason
from paygate.sessions.models import Active, LocalFallback, SessionState

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-signature"
TIMESTAMP_HEADER = "x-timestamp"
# Header names used by earlier Payment Service releases
_LEGACY_SIGNATURE_HEADER = "x-xpay-signature"
_LEGACY_TIMESTAMP_HEADER = "x-xpay-timestamp"

SIGNATURE_PREFIX = "sha256="

DEFAULT_TOLERANCE_SECONDS = 300


class VerificationMode(str, Enum):
    TEST = "test"
    LIVE = "live"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one inbound webhook."""

    accepted: bool
    payload: bytes | None = None
    reason: RejectionReason | None = None
    authenticated: bool = False

    @classmethod
    def accept(cls, payload: bytes, authenticated: bool) -> VerificationResult:
        return cls(accepted=True, payload=payload, authenticated=authenticated)

    @classmethod
    def reject(cls, reason: RejectionReason) -> VerificationResult:
        return cls(accepted=False, reason=reason)

    def raise_for_rejection(self) -> None:
        if not self.accepted:
            raise AuthVerificationFailure(self.reason or RejectionReason.BAD_SIGNATURE)


def compute_signature(secret: str, timestamp: str | int, body: bytes) -> str:
    """HMAC-SHA256 hex digest over ``f"{timestamp}."`` + body."""
    signed_payload = f"{timestamp}.".encode("utf-8") + body
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def signature_headers(secret: str, body: bytes, timestamp: int | None = None) -> dict[str, str]:
    """Headers a sender attaches to *body*. Used by tests and local simulators."""
    ts = int(time.time()) if timestamp is None else timestamp
    return {
        "X-Signature": SIGNATURE_PREFIX + compute_signature(secret, ts, body),
        "X-Timestamp": str(ts),
    }


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two strings without leaking the mismatch position."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def extract_signature_headers(headers: dict[str, str]) -> tuple[str | None, str | None]:
    """Pull (signature, timestamp) from lowercase-keyed request headers."""
    signature = headers.get(SIGNATURE_HEADER) or headers.get(_LEGACY_SIGNATURE_HEADER)
    timestamp = headers.get(TIMESTAMP_HEADER) or headers.get(_LEGACY_TIMESTAMP_HEADER)
    return signature, timestamp


def verify_payment_webhook(
    body: bytes,
    signature: str | None,
    timestamp: str | None,
    state: SessionState,
    mode: VerificationMode = VerificationMode.LIVE,
    *,
    now: float | None = None,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
) -> VerificationResult:
    """Verify an inbound payment confirmation for one checkout session.

    Args:
        body: Raw request body bytes
        signature: Value of X-Signature (``sha256=<hex>`` or bare hex)
        timestamp: Value of X-Timestamp (unix seconds)
        state: The owning session's state
        mode: TEST bypasses verification
        now: Current unix time (defaults to time.time())
        tolerance_seconds: Freshness window

    Returns:
        VerificationResult; ``accepted`` is True only if both the signature
        and the freshness checks pass (or verification is bypassed)
    """
    if mode == VerificationMode.TEST or isinstance(state, LocalFallback):
        return VerificationResult.accept(body, authenticated=False)

    if not isinstance(state, Active):
        logger.warning("Webhook for retired or unknown checkout session rejected")
        return VerificationResult.reject(RejectionReason.UNKNOWN_SESSION)

    if not signature or not timestamp:
        return VerificationResult.reject(RejectionReason.MISSING_HEADERS)

    received = signature.strip()
    if received.startswith(SIGNATURE_PREFIX):
        received = received[len(SIGNATURE_PREFIX):]

    expected = compute_signature(state.secret, timestamp.strip(), body)
    if not constant_time_equals(expected, received):
        return VerificationResult.reject(RejectionReason.BAD_SIGNATURE)

    try:
        ts = int(timestamp.strip())
    except ValueError:
        logger.warning("Webhook timestamp is not an integer: %r", timestamp[:32])
        return VerificationResult.reject(RejectionReason.STALE_TIMESTAMP)

    current = time.time() if now is None else now
    try:
        skew = abs(current - ts)
    except OverflowError:
        # Too large to compare with a float clock; far outside any window
        skew = float("inf")
    if skew > tolerance_seconds:
        logger.warning("Webhook timestamp outside %ds window: %s", tolerance_seconds, ts)
        return VerificationResult.reject(RejectionReason.STALE_TIMESTAMP)

    return VerificationResult.accept(body, authenticated=True)
