"""Shared fixtures for the paygate test suite."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from paygate.clients import PaymentServiceClient, RunnerClient
from paygate.config import Settings
from paygate.sessions.registry import SessionRegistry
from paygate.sessions.store import InMemorySessionStore

WALLET = "0x742d35Cc6634C0532925a3b844Bc9e7595f8fE00"


class FakeClock:
    """Deterministic clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture()
def settings() -> Settings:
    return Settings(api_key="xpay_sk_test", environment="sandbox", _env_file=None)


@pytest.fixture()
def checkout_config() -> dict:
    return {
        "product_name": "Premium SEO Audit",
        "description": "One-off audit",
        "price": 5,
        "currency": "USDC",
        "network": "base",
        "recipient_wallet": WALLET,
        "fields": [{"name": "email", "label": "Email", "type": "email", "required": True}],
        "test_mode": False,
    }


@pytest.fixture()
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def payment_client() -> AsyncMock:
    client = AsyncMock(spec=PaymentServiceClient)
    client.register_checkout.return_value = {
        "checkout_id": "chk_1",
        "checkout_url": "https://pay.example/chk_1",
        "webhook_secret": "s3cr3t",
    }
    client.delete_checkout.return_value = None
    return client


@pytest.fixture()
def registry(payment_client, store, settings) -> SessionRegistry:
    return SessionRegistry(payment_client, store, settings=settings)


@pytest.fixture()
def runner_client() -> AsyncMock:
    return AsyncMock(spec=RunnerClient)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
