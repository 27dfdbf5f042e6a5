"""Payment event parsing: normalizes a verified webhook body for the host.

Accepts both camelCase and snake_case spellings the Payment Service has
used (``txHash``/``tx_hash``, ``payer``/``payer_address``,
``input``/``customer_input``).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

DEFAULT_CURRENCY = "USDC"
DEFAULT_NETWORK = "base"


@dataclass(frozen=True)
class PaymentEvent:
    """An accepted payment confirmation. Immutable; never persisted here."""

    tx_hash: str
    amount: float
    currency: str
    payer: str
    network: str
    timestamp: int
    input: Mapping[str, Any] = field(default_factory=dict)
    checkout_id: str = ""
    received_at: str = ""
    authenticated: bool = False

    def to_workflow_item(self) -> dict[str, Any]:
        """Shape handed to the host for forwarding into the workflow."""
        return {
            "payment": {
                "txHash": self.tx_hash,
                "amount": self.amount,
                "currency": self.currency,
                "payer": self.payer,
                "network": self.network,
                "timestamp": self.timestamp,
            },
            "input": dict(self.input),
            "metadata": {
                "checkoutId": self.checkout_id,
                "receivedAt": self.received_at,
                "authenticated": self.authenticated,
            },
        }


def _as_amount(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def is_info_probe(body: Any) -> bool:
    """Empty body or ``_getInfo`` flag: the caller wants listener info, not a trigger."""
    return not body or (isinstance(body, dict) and bool(body.get("_getInfo")))


def parse_payment_event(
    body: dict[str, Any],
    *,
    checkout_id: str = "",
    authenticated: bool = False,
    now: float | None = None,
) -> PaymentEvent:
    """Build a PaymentEvent from a decoded webhook body.

    Missing fields fall back to defaults (currency USDC, network base,
    amount 0, timestamp = now in milliseconds).
    """
    current = time.time() if now is None else now
    payment = body.get("payment") or {}
    if not isinstance(payment, dict):
        payment = {}
    customer_input = body.get("input") or body.get("customer_input") or {}
    if not isinstance(customer_input, dict):
        customer_input = {"value": customer_input}

    raw_ts = payment.get("timestamp")
    try:
        timestamp = int(raw_ts) if raw_ts is not None else int(current * 1000)
    except (TypeError, ValueError):
        timestamp = int(current * 1000)

    return PaymentEvent(
        tx_hash=str(payment.get("txHash") or payment.get("tx_hash") or ""),
        amount=_as_amount(payment.get("amount", 0)),
        currency=str(payment.get("currency") or DEFAULT_CURRENCY),
        payer=str(payment.get("payer") or payment.get("payer_address") or ""),
        network=str(payment.get("network") or DEFAULT_NETWORK),
        timestamp=timestamp,
        input=MappingProxyType(dict(customer_input)),
        checkout_id=checkout_id,
        received_at=datetime.fromtimestamp(current, tz=timezone.utc).isoformat(),
        authenticated=authenticated,
    )
