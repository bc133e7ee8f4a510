"""x402 wire types, configuration types and errors."""

from .base import X402_VERSION, BaseX402Model, Network
from .config import Money, Price, ResourceConfig
from .errors import (
    REASON_FACILITATOR_UNAVAILABLE,
    REASON_MALFORMED_PAYMENT,
    REASON_MISSING_PAYMENT,
    REASON_NONCE_ALREADY_USED,
    REASON_PAYMENT_REJECTED,
    REASON_SETTLEMENT_FAILED,
    REASON_UNMATCHED_REQUIREMENT,
    REASON_VERIFICATION_FAILED,
    FacilitatorUnreachableError,
    MalformedPaymentError,
    NoAcceptableRequirementError,
    PaymentAbortedError,
    PaymentError,
    PaymentRejectedError,
    SettlementFailedError,
    UnmatchedRequirementError,
    UnsupportedSchemeError,
    VerificationFailedError,
)
from .helpers import (
    derive_network_pattern,
    find_schemes_by_network,
    matches_network_pattern,
    network_family,
)
from .hooks import (
    AbortResult,
    PaymentCreatedContext,
    PaymentCreationContext,
    PaymentCreationFailureContext,
    RecoveredPayloadResult,
    RecoveredSettleResult,
    RecoveredVerifyResult,
    SettleContext,
    SettleFailureContext,
    SettleResultContext,
    VerifyContext,
    VerifyFailureContext,
    VerifyResultContext,
)
from .payments import (
    AssetAmount,
    PaymentPayload,
    PaymentRequired,
    PaymentRequirements,
    ResourceInfo,
)
from .responses import (
    SettlementStatusResponse,
    SettleResponse,
    SupportedKind,
    SupportedResponse,
    VerifyResponse,
)

__all__ = [
    # Base
    "X402_VERSION",
    "BaseX402Model",
    "Network",
    # Config
    "Money",
    "Price",
    "ResourceConfig",
    # Payments
    "AssetAmount",
    "PaymentPayload",
    "PaymentRequired",
    "PaymentRequirements",
    "ResourceInfo",
    # Responses
    "SettleResponse",
    "SettlementStatusResponse",
    "SupportedKind",
    "SupportedResponse",
    "VerifyResponse",
    # Hooks
    "AbortResult",
    "PaymentCreatedContext",
    "PaymentCreationContext",
    "PaymentCreationFailureContext",
    "RecoveredPayloadResult",
    "RecoveredSettleResult",
    "RecoveredVerifyResult",
    "SettleContext",
    "SettleFailureContext",
    "SettleResultContext",
    "VerifyContext",
    "VerifyFailureContext",
    "VerifyResultContext",
    # Helpers
    "derive_network_pattern",
    "find_schemes_by_network",
    "matches_network_pattern",
    "network_family",
    # Errors
    "REASON_FACILITATOR_UNAVAILABLE",
    "REASON_MALFORMED_PAYMENT",
    "REASON_MISSING_PAYMENT",
    "REASON_NONCE_ALREADY_USED",
    "REASON_PAYMENT_REJECTED",
    "REASON_SETTLEMENT_FAILED",
    "REASON_UNMATCHED_REQUIREMENT",
    "REASON_VERIFICATION_FAILED",
    "FacilitatorUnreachableError",
    "MalformedPaymentError",
    "NoAcceptableRequirementError",
    "PaymentAbortedError",
    "PaymentError",
    "PaymentRejectedError",
    "SettlementFailedError",
    "UnmatchedRequirementError",
    "UnsupportedSchemeError",
    "VerificationFailedError",
]
