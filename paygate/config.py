"""paygate configuration."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

Environment = Literal["sandbox", "staging", "production"]

# Pay-to-run checkout API (session registration/teardown)
PAYMENT_SERVICE_URLS: dict[str, str] = {
    "sandbox": "https://cja09z457f.execute-api.us-east-1.amazonaws.com/dev",
    "staging": "https://hkrqani0b0.execute-api.us-east-1.amazonaws.com/staging",
    "production": "https://m8efqvrb1b.execute-api.us-east-1.amazonaws.com/prod",
}

# Execution router (run, run/async, run/status)
ROUTER_URLS: dict[str, str] = {
    "sandbox": "https://zn3nt9p4tf.execute-api.us-east-1.amazonaws.com/dev",
    "staging": "https://zn3nt9p4tf.execute-api.us-east-1.amazonaws.com/dev",
    "production": "https://zn3nt9p4tf.execute-api.us-east-1.amazonaws.com/dev",
}

# Core API (account runs, rerun)
CORE_URLS: dict[str, str] = {
    "sandbox": "https://7qzahhyw77.execute-api.us-east-1.amazonaws.com/dev",
    "staging": "https://7qzahhyw77.execute-api.us-east-1.amazonaws.com/dev",
    "production": "https://7qzahhyw77.execute-api.us-east-1.amazonaws.com/dev",
}


class Settings(BaseSettings):
    """Environment-driven settings for paygate."""

    api_key: str = ""
    environment: Environment = "sandbox"

    # Override the per-environment base URLs (empty = use the defaults)
    payment_service_url: str = ""
    router_url: str = ""
    core_url: str = ""

    http_timeout_seconds: float = 30.0

    poll_interval_seconds: float = 2.0
    poll_timeout_seconds: float = 180.0

    signature_tolerance_seconds: int = 300

    # Degrade to an unauthenticated local session when registration fails
    allow_local_fallback: bool = True

    redis_url: str = "redis://localhost:6381/0"

    model_config = {"env_prefix": "PAYGATE_", "env_file": ".env", "extra": "ignore"}

    def payment_service_base_url(self, environment: str | None = None) -> str:
        """Payment Service URL for *environment* (default: the configured one).

        The URL override only applies to the configured environment; sessions
        registered under another environment resolve to that environment's
        default URL.
        """
        if environment is None or environment == self.environment:
            return self.payment_service_url or PAYMENT_SERVICE_URLS[self.environment]
        return PAYMENT_SERVICE_URLS.get(environment, PAYMENT_SERVICE_URLS["sandbox"])

    def router_base_url(self) -> str:
        return self.router_url or ROUTER_URLS[self.environment]

    def core_base_url(self) -> str:
        return self.core_url or CORE_URLS[self.environment]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-level settings instance."""
    return Settings()
