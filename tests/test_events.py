"""Tests for payment event parsing."""

from __future__ import annotations

import pytest

from paygate.webhooks.events import PaymentEvent, is_info_probe, parse_payment_event

NOW = 1_700_000_000.0


class TestParsePaymentEvent:
    def test_camel_case_body(self):
        event = parse_payment_event(
            {
                "payment": {
                    "txHash": "0xabc",
                    "amount": 5,
                    "currency": "USDC",
                    "payer": "0xpayer",
                    "network": "base",
                    "timestamp": 1_699_999_999_000,
                },
                "input": {"email": "a@b.co"},
            },
            checkout_id="chk_1",
            authenticated=True,
            now=NOW,
        )
        assert event.tx_hash == "0xabc"
        assert event.amount == 5.0
        assert event.payer == "0xpayer"
        assert event.timestamp == 1_699_999_999_000
        assert event.input == {"email": "a@b.co"}
        assert event.checkout_id == "chk_1"
        assert event.authenticated is True
        assert event.received_at.startswith("2023-11-14T22:13:20")

    def test_snake_case_aliases(self):
        event = parse_payment_event(
            {
                "payment": {"tx_hash": "0xdef", "payer_address": "0xp", "amount": "2.5"},
                "customer_input": {"name": "Ada"},
            },
            now=NOW,
        )
        assert event.tx_hash == "0xdef"
        assert event.payer == "0xp"
        assert event.amount == 2.5
        assert event.input == {"name": "Ada"}

    def test_defaults(self):
        event = parse_payment_event({"payment": {}}, now=NOW)
        assert event.currency == "USDC"
        assert event.network == "base"
        assert event.amount == 0.0
        assert event.timestamp == int(NOW * 1000)
        assert event.authenticated is False

    @pytest.mark.parametrize("amount", ["lots", None, [1]])
    def test_unparseable_amount_is_zero(self, amount):
        assert parse_payment_event({"payment": {"amount": amount}}, now=NOW).amount == 0.0

    def test_non_dict_input_is_wrapped(self):
        assert parse_payment_event({"input": "hello"}, now=NOW).input == {"value": "hello"}

    def test_event_is_immutable(self):
        event = parse_payment_event({"input": {"k": "v"}}, now=NOW)
        with pytest.raises(AttributeError):
            event.amount = 10  # type: ignore[misc]
        with pytest.raises(TypeError):
            event.input["k"] = "changed"  # type: ignore[index]

    def test_workflow_item_shape(self):
        event = parse_payment_event(
            {"payment": {"txHash": "0xabc", "amount": 1}, "input": {"email": "a@b.co"}},
            checkout_id="chk_1",
            now=NOW,
        )
        item = event.to_workflow_item()
        assert item["payment"]["txHash"] == "0xabc"
        assert item["input"] == {"email": "a@b.co"}
        assert item["metadata"] == {
            "checkoutId": "chk_1",
            "receivedAt": event.received_at,
            "authenticated": False,
        }


class TestInfoProbe:
    @pytest.mark.parametrize("body", [{}, None, {"_getInfo": True}])
    def test_probe(self, body):
        assert is_info_probe(body) is True

    @pytest.mark.parametrize("body", [{"payment": {}}, {"_getInfo": False, "input": {}}])
    def test_not_probe(self, body):
        assert is_info_probe(body) is False


def test_payment_event_defaults():
    event = PaymentEvent(tx_hash="", amount=0, currency="USDC", payer="", network="base", timestamp=0)
    assert event.input == {}
    assert event.authenticated is False
