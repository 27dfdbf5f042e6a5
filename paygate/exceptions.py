"""paygate exception hierarchy.

Only ``AuthVerificationFailure`` and ``ApiError`` ever reach a caller
directly. The others are raised at the API boundary and converted by the
component that owns the recovery policy:

- RegistrationFailure -> local-fallback session (SessionRegistry.create)
- TeardownFailure     -> logged and swallowed (SessionRegistry.delete)
- SubmissionFailure   -> Failed run (ExecutionPoller.submit)
- PollTimeout         -> TimedOut run (ExecutionPoller.await_completion)
"""

from __future__ import annotations

from enum import Enum


class RejectionReason(str, Enum):
    """Why an inbound webhook was not accepted."""

    MISSING_HEADERS = "missing_headers"
    BAD_SIGNATURE = "bad_signature"
    STALE_TIMESTAMP = "stale_timestamp"
    UNKNOWN_SESSION = "unknown_session"


class PaygateError(Exception):
    """Base class for all paygate errors."""


class ApiError(PaygateError):
    """A remote API call failed (transport error or non-2xx status)."""

    def __init__(self, operation: str, message: str, status_code: int | None = None):
        self.operation = operation
        self.status_code = status_code
        super().__init__(message)


class InvalidCheckoutConfig(PaygateError, ValueError):
    """Checkout configuration failed validation before any remote call."""


class RegistrationFailure(PaygateError):
    """The Payment Service refused or could not be reached for registration."""


class TeardownFailure(PaygateError):
    """The Payment Service could not retire a checkout session."""


class AuthVerificationFailure(PaygateError):
    """An inbound webhook failed authenticity or freshness checks."""

    def __init__(self, reason: RejectionReason):
        self.reason = reason
        super().__init__(f"Webhook verification failed: {reason.value}")


class SubmissionFailure(PaygateError):
    """The execution service did not accept a submitted job."""


class PollTimeout(PaygateError):
    """A run did not reach a terminal status before the deadline."""

    def __init__(self, run_id: str, timeout: float):
        self.run_id = run_id
        self.timeout = timeout
        super().__init__(
            f"Execution did not complete within {timeout:g} seconds "
            f"(run {run_id} may still be running)"
        )


class InvalidRunTransition(PaygateError):
    """A run status change that the run state machine does not allow."""

    def __init__(self, run_id: str, current: str, target: str):
        self.run_id = run_id
        self.current = current
        self.target = target
        super().__init__(f"Run {run_id}: invalid transition {current} -> {target}")
