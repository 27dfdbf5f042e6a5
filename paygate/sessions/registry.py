"""Session registry: registers and retires checkout sessions.

Called by the host on workflow activation (create) and deactivation
(delete). Neither operation is allowed to fail the host's flow because of
the Payment Service:

- create: registration failure -> local-fallback session, still succeeds
- delete: teardown failure -> logged and swallowed, state always cleared
"""

from __future__ import annotations

import logging
from typing import Any

from paygate.clients import PaymentServiceClient
from paygate.config import Settings, get_settings
from paygate.exceptions import RegistrationFailure, TeardownFailure
from paygate.sessions.models import (
    Active,
    CheckoutConfig,
    CheckoutSession,
    LocalFallback,
    Retired,
    SessionState,
    local_fallback_session,
)
from paygate.sessions.store import SessionStore

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Lifecycle of the checkout session belonging to each workflow instance."""

    def __init__(
        self,
        client: PaymentServiceClient,
        store: SessionStore,
        settings: Settings | None = None,
    ):
        self._client = client
        self._store = store
        self._settings = settings or get_settings()

    def exists(self, instance_id: str) -> bool:
        """True iff a session identifier is stored for *instance_id*. No network call."""
        session = self._store.get(instance_id)
        return session is not None and bool(session.checkout_id)

    def get(self, instance_id: str) -> CheckoutSession | None:
        return self._store.get(instance_id)

    def state(self, instance_id: str) -> SessionState:
        """Current session state; an absent session reads as Retired."""
        session = self._store.get(instance_id)
        if session is None:
            return Retired()
        return session.state

    async def create(
        self,
        instance_id: str,
        callback_url: str,
        config: CheckoutConfig | dict[str, Any],
    ) -> bool:
        """Register a checkout session for *instance_id*.

        Args:
            instance_id: Workflow trigger instance that owns the session
            callback_url: Where the Payment Service posts confirmations
            config: Product/pricing configuration

        Returns:
            True. A second call without an intervening delete is a no-op.

        Raises:
            InvalidCheckoutConfig: if *config* fails validation
            RegistrationFailure: only when allow_local_fallback is disabled
        """
        if not isinstance(config, CheckoutConfig):
            config = CheckoutConfig.parse(config)

        if self.exists(instance_id):
            logger.info("Checkout session already registered for instance %s", instance_id)
            return True

        try:
            result = await self._client.register_checkout(callback_url, config.to_payload())
        except RegistrationFailure:
            if not self._settings.allow_local_fallback:
                logger.error("Checkout registration failed for instance %s", instance_id)
                raise
            logger.warning(
                "Checkout registration failed for instance %s; activating with "
                "local-fallback session (unsigned/test traffic only)",
                instance_id,
                exc_info=True,
            )
            self._store.put(instance_id, local_fallback_session(callback_url, config.test_mode))
            return True

        session = CheckoutSession(
            checkout_id=result["checkout_id"],
            callback_url=callback_url,
            state=Active(secret=result["webhook_secret"]),
            checkout_url=result["checkout_url"],
            test_mode=config.test_mode,
            environment=self._settings.environment,
        )
        self._store.put(instance_id, session)
        logger.info(
            "Checkout session registered: instance=%s checkout=%s product=%r price=%s %s (%s) url=%s",
            instance_id,
            session.checkout_id,
            config.product_name,
            config.price,
            config.currency,
            config.pricing_model.value,
            session.checkout_url or "-",
        )
        return True

    async def delete(self, instance_id: str) -> bool:
        """Retire the session for *instance_id* and clear its durable state.

        Always returns True; repeat calls are no-ops.
        """
        session = self._store.get(instance_id)
        if session is None or not isinstance(session.state, Active):
            # Missing, retired or local-fallback: nothing registered remotely
            self._store.clear(instance_id)
            return True

        # Retire against the service the session was registered with
        base_url = self._settings.payment_service_base_url(session.environment)
        try:
            await self._client.delete_checkout(session.checkout_id, base_url=base_url)
            logger.info(
                "Checkout session retired: instance=%s checkout=%s environment=%s",
                instance_id,
                session.checkout_id,
                session.environment,
            )
        except TeardownFailure:
            logger.warning(
                "Failed to retire checkout %s for instance %s; clearing local state anyway",
                session.checkout_id,
                instance_id,
                exc_info=True,
            )
        except Exception:
            # Deactivation must complete whatever the client raised
            logger.warning(
                "Unexpected error retiring checkout %s for instance %s; clearing local state anyway",
                session.checkout_id,
                instance_id,
                exc_info=True,
            )
        finally:
            self._store.clear(instance_id)
        return True


def is_degraded(state: SessionState) -> bool:
    """True when the session can only accept unauthenticated traffic."""
    return isinstance(state, LocalFallback)
