"""Inbound payment webhooks.

Receives payment confirmations from the Payment Service. Each one is
signature- and freshness-verified against the owning checkout session
before it is handed to the host.
"""
