"""Outbound API clients for the Payment Service and the execution router.

All calls are authenticated with a bearer API key and carry no retry logic:
a failed call is reported once and the owning component decides what to do
with it (fallback, swallow, or surface as a Failed run).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from paygate.config import Settings, get_settings
from paygate.exceptions import ApiError, RegistrationFailure, TeardownFailure

logger = logging.getLogger(__name__)

# Endpoint paths
REGISTER_WEBHOOK = "/v1/webhooks/register"
WEBHOOK = "/v1/webhooks"  # + /{checkout_id}
RUN = "/run"
RUN_ASYNC = "/run/async"
RUN_STATUS = "/run/status"  # + /{run_id}
ACCOUNT_RUNS = "/account/runs"  # + /{run_id}/rerun

_STATUS_MESSAGES = {
    401: "Authentication failed for {operation}. Please check your API key.",
    402: "Payment required for {operation}. Please check your wallet balance.",
    403: "Access denied for {operation}. You may not have permission.",
    404: "Resource not found for {operation}.",
    429: "Rate limit exceeded for {operation}. Please try again later.",
}


def describe_api_error(operation: str, status_code: int | None, detail: str) -> str:
    """Map a failed call to a human-readable message.

    Args:
        operation: Name of the operation that failed (e.g. "register_checkout")
        status_code: HTTP status, or None for transport errors
        detail: Error text from the response body or the exception

    Returns:
        Message suitable for logs and for the host's error output
    """
    template = _STATUS_MESSAGES.get(status_code or 0)
    if template:
        return template.format(operation=operation)
    return f"{operation} failed: {detail or 'Unknown error'}"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or "")
    return ""


class ApiClient:
    """Minimal JSON-over-HTTP client bound to one base URL."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        operation: str,
        json: dict[str, Any] | None = None,
        base_url: str | None = None,
    ) -> dict[str, Any]:
        """Send one request and return the decoded JSON body.

        *base_url* overrides the client's own base URL for this call only.

        Raises:
            ApiError: on transport failure or a non-2xx response
        """
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=(base_url or self.base_url).rstrip("/"),
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, endpoint, json=json, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = describe_api_error(operation, status, _error_detail(e.response))
            raise ApiError(operation, message, status_code=status) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            message = describe_api_error(operation, None, f"{type(e).__name__}: {e}")
            raise ApiError(operation, message) from e

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise ApiError(operation, f"{operation} failed: response is not JSON") from e
        return body if isinstance(body, dict) else {"data": body}


class PaymentServiceClient(ApiClient):
    """Checkout session registration and teardown."""

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "PaymentServiceClient":
        settings = settings or get_settings()
        return cls(
            settings.payment_service_base_url(),
            settings.api_key,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def register_checkout(self, callback_url: str, config: dict[str, Any]) -> dict[str, str]:
        """Register a checkout session for *callback_url*.

        Returns:
            Dict with checkout_id, checkout_url and webhook_secret

        Raises:
            RegistrationFailure: if the call fails or the response is incomplete
        """
        try:
            body = await self.request(
                "POST",
                REGISTER_WEBHOOK,
                operation="register_checkout",
                json={"callback_url": callback_url, "config": config},
            )
        except ApiError as e:
            raise RegistrationFailure(str(e)) from e

        missing = [k for k in ("checkout_id", "webhook_secret") if not body.get(k)]
        if missing:
            raise RegistrationFailure(
                f"register_checkout failed: response missing {', '.join(missing)}"
            )
        return {
            "checkout_id": str(body["checkout_id"]),
            "checkout_url": str(body.get("checkout_url") or ""),
            "webhook_secret": str(body["webhook_secret"]),
        }

    async def delete_checkout(self, checkout_id: str, base_url: str | None = None) -> None:
        """Retire a checkout session.

        Args:
            checkout_id: Session to retire
            base_url: Payment Service the session was registered with, when it
                differs from this client's

        Raises:
            TeardownFailure: if the call fails
        """
        try:
            await self.request(
                "DELETE",
                f"{WEBHOOK}/{checkout_id}",
                operation="delete_checkout",
                base_url=base_url,
            )
        except ApiError as e:
            raise TeardownFailure(str(e)) from e


class RunnerClient(ApiClient):
    """Job execution router: synchronous runs, async runs and status reads."""

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "RunnerClient":
        settings = settings or get_settings()
        return cls(
            settings.router_base_url(),
            settings.api_key,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def run(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.request("POST", RUN, operation="run", json=payload)

    async def run_async(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.request("POST", RUN_ASYNC, operation="run_async", json=payload)

    async def get_run_status(self, run_id: str) -> dict[str, Any]:
        return await self.request("GET", f"{RUN_STATUS}/{run_id}", operation="get_status")


class CoreClient(ApiClient):
    """Account-level operations on past runs."""

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "CoreClient":
        settings = settings or get_settings()
        return cls(
            settings.core_base_url(),
            settings.api_key,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def rerun(self, run_id: str) -> dict[str, Any]:
        return await self.request(
            "POST", f"{ACCOUNT_RUNS}/{run_id}/rerun", operation="rerun"
        )
