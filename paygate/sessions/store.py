"""Workflow-scoped durable session storage.

Each workflow trigger instance owns exactly one slot, keyed by its instance
id. The store only reads, writes and clears whole records; it has no
opinion about session semantics (that is SessionRegistry's job).
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Protocol, runtime_checkable

import redis

from paygate.config import get_settings
from paygate.sessions.models import CheckoutSession

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionStore(Protocol):
    """Key-value store of checkout sessions keyed by workflow instance id."""

    def get(self, instance_id: str) -> CheckoutSession | None:
        ...

    def put(self, instance_id: str, session: CheckoutSession) -> None:
        ...

    def clear(self, instance_id: str) -> None:
        ...


class InMemorySessionStore:
    """Thread-safe in-memory store.

    Suitable for tests and single-process hosts.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, CheckoutSession] = {}

    def get(self, instance_id: str) -> CheckoutSession | None:
        with self._lock:
            return self._sessions.get(instance_id)

    def put(self, instance_id: str, session: CheckoutSession) -> None:
        with self._lock:
            self._sessions[instance_id] = session

    def clear(self, instance_id: str) -> None:
        with self._lock:
            self._sessions.pop(instance_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class RedisSessionStore:
    """Redis-backed store. Records are JSON under ``paygate:session:{instance_id}``.

    Errors from Redis propagate: losing a session record silently would
    leave a registered checkout without its secret.
    """

    PREFIX = "paygate:session:"

    def __init__(self, redis_url: str | None = None, client: redis.Redis | None = None):
        if client is None:
            client = redis.from_url(redis_url or get_settings().redis_url, decode_responses=True)
        self._redis = client

    def _key(self, instance_id: str) -> str:
        return f"{self.PREFIX}{instance_id}"

    def get(self, instance_id: str) -> CheckoutSession | None:
        raw = self._redis.get(self._key(instance_id))
        if raw is None:
            return None
        try:
            return CheckoutSession.from_dict(json.loads(raw))
        except (ValueError, KeyError):
            logger.warning("Corrupt session record for instance %s, ignoring", instance_id)
            return None

    def put(self, instance_id: str, session: CheckoutSession) -> None:
        self._redis.set(self._key(instance_id), json.dumps(session.to_dict()))

    def clear(self, instance_id: str) -> None:
        self._redis.delete(self._key(instance_id))
