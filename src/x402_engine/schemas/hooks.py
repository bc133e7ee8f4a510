"""Lifecycle hook contexts and hook results."""

from __future__ import annotations

from dataclasses import dataclass

from .payments import PaymentPayload, PaymentRequired, PaymentRequirements
from .responses import SettleResponse, VerifyResponse


@dataclass
class AbortResult:
    """Returned by a before-hook to abort the operation."""

    reason: str


@dataclass
class RecoveredVerifyResult:
    """Returned by a verify-failure hook to substitute a result."""

    result: VerifyResponse


@dataclass
class RecoveredSettleResult:
    """Returned by a settle-failure hook to substitute a result."""

    result: SettleResponse


@dataclass
class RecoveredPayloadResult:
    """Returned by a payment-creation-failure hook to substitute a payload."""

    payload: PaymentPayload


# Server / facilitator contexts


@dataclass
class VerifyContext:
    payment_payload: PaymentPayload
    requirements: PaymentRequirements


@dataclass
class VerifyResultContext(VerifyContext):
    result: VerifyResponse


@dataclass
class VerifyFailureContext(VerifyContext):
    error: Exception


@dataclass
class SettleContext:
    payment_payload: PaymentPayload
    requirements: PaymentRequirements


@dataclass
class SettleResultContext(SettleContext):
    result: SettleResponse


@dataclass
class SettleFailureContext(SettleContext):
    error: Exception


# Client contexts


@dataclass
class PaymentCreationContext:
    payment_required: PaymentRequired
    selected_requirements: PaymentRequirements


@dataclass
class PaymentCreatedContext(PaymentCreationContext):
    payment_payload: PaymentPayload


@dataclass
class PaymentCreationFailureContext(PaymentCreationContext):
    error: Exception
