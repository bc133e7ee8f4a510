"""Payment types: requirements, challenge and signed payload."""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field, field_validator

from .base import X402_VERSION, BaseX402Model, Network


class ResourceInfo(BaseX402Model):
    """Describes the resource being paid for."""

    url: str
    description: str = ""
    mime_type: str = ""


class AssetAmount(BaseX402Model):
    """An amount in an asset's smallest unit."""

    amount: str
    asset: str
    extra: dict[str, Any] | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        try:
            int(v)
        except ValueError:
            raise ValueError("amount must be an integer encoded as a string")
        return v


class PaymentRequirements(BaseX402Model):
    """One acceptable way to pay for a resource.

    Immutable once built. ``amount`` is an integer string in the asset's
    smallest unit; ``extra`` carries scheme-specific data (for exact EVM,
    the EIP-712 domain ``name`` and ``version`` of the token).
    """

    model_config = ConfigDict(frozen=True)

    scheme: str
    network: Network
    asset: str
    amount: str
    pay_to: str
    max_timeout_seconds: int = 300
    resource: str | None = None
    description: str | None = None
    mime_type: str | None = None
    extra: dict[str, Any] | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        try:
            int(v)
        except ValueError:
            raise ValueError("amount must be an integer encoded as a string")
        return v


class PaymentRequired(BaseX402Model):
    """402 challenge: the ordered list of accepted payment requirements.

    The first entry of ``accepts`` is the server's default.
    """

    x402_version: int = X402_VERSION
    error: str | None = None
    resource: ResourceInfo | None = None
    accepts: list[PaymentRequirements] = Field(default_factory=list)
    extensions: dict[str, Any] | None = None


class PaymentPayload(BaseX402Model):
    """Signed payment authorization sent by the client on retry.

    ``accepted`` is the requirement the client chose to pay; ``payload``
    is the scheme-defined authorization body.
    """

    x402_version: int = X402_VERSION
    payload: dict[str, Any]
    accepted: PaymentRequirements
    resource: ResourceInfo | None = None
    extensions: dict[str, Any] | None = None

    def get_scheme(self) -> str:
        return self.accepted.scheme

    def get_network(self) -> Network:
        return self.accepted.network
