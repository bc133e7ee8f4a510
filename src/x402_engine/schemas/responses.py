"""Facilitator response types."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from .base import X402_VERSION, BaseX402Model, Network


class VerifyResponse(BaseX402Model):
    """Result of verifying a payment payload against requirements."""

    is_valid: bool
    invalid_reason: str | None = None
    payer: str | None = None


class SettleResponse(BaseX402Model):
    """Settlement receipt.

    ``transaction`` is an opaque reference produced by the settlement
    backend; it is ``None`` while a settlement is pending or failed.
    """

    success: bool
    error_reason: str | None = None
    transaction: str | None = None
    network: Network | None = None
    payer: str | None = None
    payee: str | None = None


class SettlementStatusResponse(BaseX402Model):
    """Answer to a settlement status query for one authorization."""

    settled: bool
    settlement: SettleResponse | None = None


class SupportedKind(BaseX402Model):
    """A (scheme, network) pair a facilitator can verify and settle."""

    x402_version: int = X402_VERSION
    scheme: str
    network: Network
    extra: dict[str, Any] | None = None


class SupportedResponse(BaseX402Model):
    """Facilitator capabilities returned by ``/supported``."""

    kinds: list[SupportedKind] = Field(default_factory=list)
    extensions: list[str] = Field(default_factory=list)
    signers: dict[str, list[str]] = Field(default_factory=dict)
