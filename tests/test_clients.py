"""Tests for the outbound API clients (httpx.MockTransport, no network)."""

from __future__ import annotations

import json

import httpx
import pytest

from paygate.clients import (
    ApiClient,
    CoreClient,
    PaymentServiceClient,
    RunnerClient,
    describe_api_error,
)
from paygate.config import PAYMENT_SERVICE_URLS, ROUTER_URLS, Settings
from paygate.exceptions import ApiError, RegistrationFailure, TeardownFailure


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class TestDescribeApiError:
    @pytest.mark.parametrize(
        "status,fragment",
        [
            (401, "Authentication failed"),
            (402, "Payment required"),
            (403, "Access denied"),
            (404, "Resource not found"),
            (429, "Rate limit exceeded"),
        ],
    )
    def test_known_statuses(self, status, fragment):
        assert fragment in describe_api_error("run", status, "ignored")

    def test_other_status_uses_detail(self):
        assert describe_api_error("run", 500, "boom") == "run failed: boom"

    def test_no_detail(self):
        assert describe_api_error("run", None, "") == "run failed: Unknown error"


class TestApiClient:
    @pytest.mark.asyncio
    async def test_sends_bearer_and_json(self):
        rec = Recorder(httpx.Response(200, json={"ok": True}))
        client = ApiClient("https://api.example/", "key-123", transport=rec.transport)

        body = await client.request("POST", "/things", operation="make", json={"a": 1})

        assert body == {"ok": True}
        request = rec.requests[0]
        assert str(request.url) == "https://api.example/things"
        assert request.headers["Authorization"] == "Bearer key-123"
        assert json.loads(request.content) == {"a": 1}

    @pytest.mark.asyncio
    async def test_http_error_maps_to_api_error(self):
        rec = Recorder(httpx.Response(402, json={"error": "insufficient"}))
        client = ApiClient("https://api.example", "k", transport=rec.transport)
        with pytest.raises(ApiError) as exc_info:
            await client.request("GET", "/x", operation="get_x")
        assert exc_info.value.status_code == 402
        assert "Payment required" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_body_detail(self):
        rec = Recorder(httpx.Response(500, json={"error": "exploded"}))
        client = ApiClient("https://api.example", "k", transport=rec.transport)
        with pytest.raises(ApiError, match="get_x failed: exploded"):
            await client.request("GET", "/x", operation="get_x")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        rec = Recorder(httpx.ConnectError("refused"))
        client = ApiClient("https://api.example", "k", transport=rec.transport)
        with pytest.raises(ApiError) as exc_info:
            await client.request("GET", "/x", operation="get_x")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_empty_body(self):
        rec = Recorder(httpx.Response(204))
        client = ApiClient("https://api.example", "k", transport=rec.transport)
        assert await client.request("DELETE", "/x", operation="del") == {}

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        rec = Recorder(httpx.Response(200, text="<html>"))
        client = ApiClient("https://api.example", "k", transport=rec.transport)
        with pytest.raises(ApiError, match="not JSON"):
            await client.request("GET", "/x", operation="get_x")


class TestPaymentServiceClient:
    @pytest.mark.asyncio
    async def test_register(self, settings):
        rec = Recorder(
            httpx.Response(
                200,
                json={"checkout_id": "chk_1", "checkout_url": "https://pay/chk_1", "webhook_secret": "s3cr3t"},
            )
        )
        client = PaymentServiceClient.from_settings(settings, transport=rec.transport)

        result = await client.register_checkout("https://host/cb", {"price": 5, "currency": "USDC"})

        assert result == {"checkout_id": "chk_1", "checkout_url": "https://pay/chk_1", "webhook_secret": "s3cr3t"}
        request = rec.requests[0]
        assert request.method == "POST"
        assert str(request.url) == PAYMENT_SERVICE_URLS["sandbox"] + "/v1/webhooks/register"
        assert json.loads(request.content) == {
            "callback_url": "https://host/cb",
            "config": {"price": 5, "currency": "USDC"},
        }

    @pytest.mark.asyncio
    async def test_register_non_2xx(self, settings):
        rec = Recorder(httpx.Response(503, json={"error": "maintenance"}))
        client = PaymentServiceClient.from_settings(settings, transport=rec.transport)
        with pytest.raises(RegistrationFailure):
            await client.register_checkout("https://host/cb", {})

    @pytest.mark.asyncio
    async def test_register_missing_secret(self, settings):
        rec = Recorder(httpx.Response(200, json={"checkout_id": "chk_1"}))
        client = PaymentServiceClient.from_settings(settings, transport=rec.transport)
        with pytest.raises(RegistrationFailure, match="webhook_secret"):
            await client.register_checkout("https://host/cb", {})

    @pytest.mark.asyncio
    async def test_delete(self, settings):
        rec = Recorder(httpx.Response(200, json={"deleted": True}))
        client = PaymentServiceClient.from_settings(settings, transport=rec.transport)
        await client.delete_checkout("chk_1")
        assert rec.requests[0].method == "DELETE"
        assert rec.requests[0].url.path.endswith("/v1/webhooks/chk_1")

    @pytest.mark.asyncio
    async def test_delete_failure(self, settings):
        rec = Recorder(httpx.ReadTimeout("slow"))
        client = PaymentServiceClient.from_settings(settings, transport=rec.transport)
        with pytest.raises(TeardownFailure):
            await client.delete_checkout("chk_1")

    def test_url_override(self):
        settings = Settings(payment_service_url="http://localhost:9000", _env_file=None)
        assert PaymentServiceClient.from_settings(settings).base_url == "http://localhost:9000"


class TestRunnerClient:
    @pytest.mark.asyncio
    async def test_endpoints(self, settings):
        rec = Recorder(
            httpx.Response(200, json={"runId": "r", "success": True}),
            httpx.Response(200, json={"accepted": True, "runId": "r"}),
            httpx.Response(200, json={"runId": "r", "status": "processing"}),
        )
        client = RunnerClient.from_settings(settings, transport=rec.transport)

        await client.run({"jobSlug": "j"})
        await client.run_async({"jobSlug": "j"})
        await client.get_run_status("r")

        assert [(r.method, r.url.path) for r in rec.requests] == [
            ("POST", "/dev/run"),
            ("POST", "/dev/run/async"),
            ("GET", "/dev/run/status/r"),
        ]
        assert str(rec.requests[0].url).startswith(ROUTER_URLS["sandbox"])


class TestCoreClient:
    @pytest.mark.asyncio
    async def test_rerun(self, settings):
        rec = Recorder(httpx.Response(200, json={"runId": "r2"}))
        client = CoreClient.from_settings(settings, transport=rec.transport)
        assert await client.rerun("r1") == {"runId": "r2"}
        assert rec.requests[0].url.path.endswith("/account/runs/r1/rerun")


class TestRequestEdgeCases:
    @pytest.mark.asyncio
    async def test_invalid_url_maps_to_api_error(self):
        rec = Recorder()
        client = ApiClient("https://api.example", "k", transport=rec.transport)
        with pytest.raises(ApiError) as exc_info:
            await client.request("DELETE", "/v1/webhooks/chk\x01bad", operation="delete_checkout")
        assert exc_info.value.status_code is None
        assert rec.requests == []

    @pytest.mark.asyncio
    async def test_delete_against_other_base_url(self, settings):
        rec = Recorder(httpx.Response(200, json={"deleted": True}))
        client = PaymentServiceClient.from_settings(settings, transport=rec.transport)
        await client.delete_checkout("chk_1", base_url=PAYMENT_SERVICE_URLS["staging"])
        assert str(rec.requests[0].url) == PAYMENT_SERVICE_URLS["staging"] + "/v1/webhooks/chk_1"


class TestSettingsUrls:
    def test_environment_lookup(self):
        settings = Settings(environment="production", payment_service_url="http://override", _env_file=None)
        assert settings.payment_service_base_url() == "http://override"
        assert settings.payment_service_base_url("production") == "http://override"
        assert settings.payment_service_base_url("staging") == PAYMENT_SERVICE_URLS["staging"]
