"""Checkout session data models.

Security contract:
- A session's secret is fixed at creation (frozen dataclasses, no setters)
- Session state is a tagged union: Active(secret) | LocalFallback | Retired
- Only Active sessions can authenticate signed webhook traffic
- LocalFallback carries a fixed, publicly known secret and must never be
  treated as authenticating real payments
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from paygate.exceptions import InvalidCheckoutConfig

# Sentinel values written when remote registration fails
LOCAL_FALLBACK_CHECKOUT_ID = "local-test"
LOCAL_FALLBACK_SECRET = "test-secret"

_WALLET_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class SessionStatus(str, Enum):
    """Checkout session lifecycle states."""
    ACTIVE = "active"
    RETIRED = "retired"
    LOCAL_FALLBACK = "local-fallback"


@dataclass(frozen=True)
class Active:
    """Registered with the Payment Service; holds the shared HMAC secret."""
    secret: str
    status: ClassVar[SessionStatus] = SessionStatus.ACTIVE

    def __repr__(self) -> str:
        return "Active(secret=***)"


@dataclass(frozen=True)
class LocalFallback:
    """Degraded session written when registration failed."""
    status: ClassVar[SessionStatus] = SessionStatus.LOCAL_FALLBACK


@dataclass(frozen=True)
class Retired:
    """Torn down (or never registered)."""
    status: ClassVar[SessionStatus] = SessionStatus.RETIRED


SessionState = Union[Active, LocalFallback, Retired]


@dataclass(frozen=True)
class CheckoutSession:
    """A checkout session owned by one workflow trigger instance."""
    checkout_id: str
    callback_url: str
    state: SessionState
    checkout_url: str = ""
    test_mode: bool = False
    environment: str = "sandbox"
    created_at: float = field(default_factory=time.time)

    @property
    def status(self) -> SessionStatus:
        return self.state.status

    @property
    def secret(self) -> str | None:
        if isinstance(self.state, Active):
            return self.state.secret
        if isinstance(self.state, LocalFallback):
            return LOCAL_FALLBACK_SECRET
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the durable session store."""
        return {
            "checkout_id": self.checkout_id,
            "checkout_url": self.checkout_url,
            "callback_url": self.callback_url,
            "webhook_secret": self.secret,
            "status": self.status.value,
            "test_mode": self.test_mode,
            "environment": self.environment,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckoutSession:
        status = SessionStatus(data.get("status", SessionStatus.ACTIVE.value))
        state: SessionState
        if status == SessionStatus.ACTIVE:
            state = Active(secret=str(data["webhook_secret"]))
        elif status == SessionStatus.LOCAL_FALLBACK:
            state = LocalFallback()
        else:
            state = Retired()
        return cls(
            checkout_id=str(data["checkout_id"]),
            callback_url=str(data.get("callback_url", "")),
            state=state,
            checkout_url=str(data.get("checkout_url") or ""),
            test_mode=bool(data.get("test_mode", False)),
            environment=str(data.get("environment") or "sandbox"),
            created_at=float(data.get("created_at") or 0.0),
        )


def local_fallback_session(callback_url: str, test_mode: bool = True) -> CheckoutSession:
    """Build the degraded session used when registration fails."""
    return CheckoutSession(
        checkout_id=LOCAL_FALLBACK_CHECKOUT_ID,
        callback_url=callback_url,
        state=LocalFallback(),
        test_mode=test_mode,
    )


class FormField(BaseModel):
    """A customer-facing form field collected on the checkout page."""
    name: str
    label: str = ""
    type: str = "text"
    required: bool = False


class PricingModel(str, Enum):
    """How the charge for one workflow run is computed."""
    FLAT = "flat"
    TOKEN_BASED = "token-based"
    DYNAMIC = "dynamic"
    TIME_BASED = "time-based"
    PER_UNIT = "per-unit"
    TIERED = "tiered"


class _PricingParams(BaseModel):
    # Wire names are camelCase; hosts may use either spelling
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class TokenPricing(_PricingParams):
    price_per_input_token: float = Field(0.00003, ge=0, alias="pricePerInputToken")
    price_per_output_token: float = Field(0.00006, ge=0, alias="pricePerOutputToken")
    estimated_tokens: int = Field(1000, gt=0, alias="estimatedTokens")


class DynamicPricing(_PricingParams):
    base_price: float = Field(1.0, gt=0, alias="basePrice")
    complexity_range: tuple[float, float] = Field((1.0, 3.0), alias="complexityRange")
    pricing_description: str = Field("", alias="pricingDescription")

    @field_validator("complexity_range")
    @classmethod
    def _check_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        low, high = value
        if low <= 0 or high < low:
            raise ValueError("complexityRange must be [min, max] with 0 < min <= max")
        return value


class TimePricing(_PricingParams):
    price_per_minute: float = Field(0.10, gt=0, alias="pricePerMinute")
    minimum_minutes: int = Field(1, ge=0, alias="minimumMinutes")
    estimated_minutes: int = Field(5, gt=0, alias="estimatedMinutes")


class UnitPricing(_PricingParams):
    price_per_unit: float = Field(0.50, gt=0, alias="pricePerUnit")
    unit_label: str = Field("document", min_length=1, alias="unitLabel")
    estimated_units: int = Field(10, gt=0, alias="estimatedUnits")


# flat and tiered take no parameters
_PRICING_PARAMS: dict[PricingModel, type[_PricingParams]] = {
    PricingModel.TOKEN_BASED: TokenPricing,
    PricingModel.DYNAMIC: DynamicPricing,
    PricingModel.TIME_BASED: TimePricing,
    PricingModel.PER_UNIT: UnitPricing,
}


class CheckoutConfig(BaseModel):
    """Product and pricing configuration sent with a registration request."""

    product_name: str = Field(min_length=1, description="What customers are paying for")
    description: str = ""
    price: float = Field(gt=0, description="Price in `currency` units")
    currency: str = "USDC"
    network: str = "base"
    recipient_wallet: str = Field(description="0x-prefixed 20-byte wallet address")
    fields: list[FormField] = Field(default_factory=list)
    redirect_url: str = ""
    test_mode: bool = True
    pricing_model: PricingModel = PricingModel.FLAT
    pricing_config: dict[str, Any] = Field(default_factory=dict)
    bundles_enabled: bool = False

    @field_validator("recipient_wallet")
    @classmethod
    def _check_wallet(cls, value: str) -> str:
        if not _WALLET_RE.match(value or ""):
            raise ValueError(
                "Invalid wallet address. Must be 42 characters starting with 0x"
            )
        return value

    @model_validator(mode="after")
    def _check_pricing(self) -> CheckoutConfig:
        """Validate pricing_config against the chosen model and fill its defaults."""
        params = _PRICING_PARAMS.get(self.pricing_model)
        if params is None:
            if self.pricing_config:
                raise ValueError(
                    f"pricing_config is not used by the {self.pricing_model.value} pricing model"
                )
            return self
        self.pricing_config = params.model_validate(self.pricing_config).model_dump(
            mode="json", by_alias=True
        )
        return self

    @classmethod
    def parse(cls, data: dict[str, Any]) -> CheckoutConfig:
        """Validate raw host parameters.

        Raises:
            InvalidCheckoutConfig: if any field fails validation
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidCheckoutConfig(str(e)) from e

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json")
        # Tiered pricing is sold as bundles
        payload["bundles_enabled"] = self.bundles_enabled or self.pricing_model == PricingModel.TIERED
        return payload
