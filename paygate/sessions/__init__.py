"""Checkout sessions: registration, teardown and workflow-scoped storage."""
