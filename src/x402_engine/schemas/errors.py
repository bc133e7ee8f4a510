"""Payment error taxonomy.

Every error carries a machine-readable ``reason``. Client-side errors also
carry the HTTP ``response`` that triggered them, when there is one.
"""

from __future__ import annotations

from typing import Any

# Reason codes reported in PaymentRequired.error
REASON_MISSING_PAYMENT = "missing_payment"
REASON_MALFORMED_PAYMENT = "invalid_payment_header"
REASON_UNMATCHED_REQUIREMENT = "no_matching_payment_requirements"
REASON_VERIFICATION_FAILED = "verification_failed"
REASON_SETTLEMENT_FAILED = "settlement_failed"
REASON_FACILITATOR_UNAVAILABLE = "facilitator_unavailable"
REASON_PAYMENT_REJECTED = "payment_rejected"
REASON_NONCE_ALREADY_USED = "nonce_already_used"


class PaymentError(Exception):
    """Base class for payment errors."""

    default_reason = "payment_error"

    def __init__(
        self,
        message: str | None = None,
        reason: str | None = None,
        response: Any = None,
    ) -> None:
        self.reason = reason or self.default_reason
        self.response = response
        super().__init__(message or self.reason)


class MalformedPaymentError(PaymentError):
    """Payment header could not be decoded or failed schema validation."""

    default_reason = REASON_MALFORMED_PAYMENT


class UnmatchedRequirementError(PaymentError):
    """Payment payload matches none of the route's requirements."""

    default_reason = REASON_UNMATCHED_REQUIREMENT


class VerificationFailedError(PaymentError):
    """Facilitator judged the payment invalid."""

    default_reason = REASON_VERIFICATION_FAILED


class SettlementFailedError(PaymentError):
    """Settlement did not complete.

    ``indeterminate`` is True when the outcome is unknown (timeout or
    cancellation mid-flight); such settlements must be reconciled, never
    assumed successful.
    """

    default_reason = REASON_SETTLEMENT_FAILED

    def __init__(
        self,
        message: str | None = None,
        reason: str | None = None,
        response: Any = None,
        indeterminate: bool = False,
    ) -> None:
        super().__init__(message, reason, response)
        self.indeterminate = indeterminate


class FacilitatorUnreachableError(PaymentError):
    """Transient failure talking to the facilitator (timeout, transport, 5xx)."""

    default_reason = REASON_FACILITATOR_UNAVAILABLE

    def __init__(
        self,
        message: str | None = None,
        reason: str | None = None,
        response: Any = None,
        indeterminate: bool = False,
    ) -> None:
        super().__init__(message, reason, response)
        self.indeterminate = indeterminate


class UnsupportedSchemeError(PaymentError):
    """No registered scheme handles the requested (scheme, network)."""

    default_reason = "unsupported_scheme"

    def __init__(
        self,
        scheme: str | None = None,
        network: str | None = None,
        message: str | None = None,
        response: Any = None,
    ) -> None:
        self.scheme = scheme
        self.network = network
        if message is None and scheme is not None:
            message = f"No scheme registered for '{scheme}' on network '{network}'"
        super().__init__(message, response=response)


class NoAcceptableRequirementError(PaymentError):
    """Client policies filtered out every offered requirement."""

    default_reason = "no_acceptable_requirement"


class PaymentRejectedError(PaymentError):
    """Server answered the paid retry with another 402."""

    default_reason = REASON_PAYMENT_REJECTED


class PaymentAbortedError(PaymentError):
    """A before-hook aborted the operation."""

    default_reason = "payment_aborted"
