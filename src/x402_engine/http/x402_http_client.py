"""HTTP-specific client for x402 payment protocol."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Callable

from ..schemas import (
    REASON_PAYMENT_REJECTED,
    PaymentPayload,
    PaymentRejectedError,
    PaymentRequired,
    SettleResponse,
)
from .constants import (
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_RESPONSE_HEADER,
    PAYMENT_SIGNATURE_HEADER,
    X_PAYMENT_HEADER,
    X_PAYMENT_RESPONSE_HEADER,
)
from .utils import (
    decode_payment_required_header,
    decode_payment_response_header,
    encode_payment_signature_header,
)

if TYPE_CHECKING:
    from ..client import x402Client


class x402HTTPClient:
    """HTTP-specific client for x402 payment protocol.

    Wraps a x402Client to provide HTTP-specific encoding/decoding
    and automatic payment handling.
    """

    def __init__(self, client: x402Client) -> None:
        """Create x402HTTPClient.

        Args:
            client: Underlying x402Client for payment logic.
        """
        self._client = client

    @property
    def client(self) -> x402Client:
        return self._client

    # =========================================================================
    # Header Encoding/Decoding
    # =========================================================================

    def encode_payment_signature_header(self, payload: PaymentPayload) -> dict[str, str]:
        """Encode payment payload into HTTP headers.

        Returns:
            ``{"PAYMENT-SIGNATURE": base64}`` for V2, ``{"X-PAYMENT": base64}`` for V1.
        """
        encoded = encode_payment_signature_header(payload)

        if payload.x402_version == 2:
            return {PAYMENT_SIGNATURE_HEADER: encoded}
        elif payload.x402_version == 1:
            return {X_PAYMENT_HEADER: encoded}
        else:
            raise ValueError(f"Unsupported x402 version: {payload.x402_version}")

    def get_payment_required_response(
        self,
        get_header: Callable[[str], str | None],
        body: Any = None,
    ) -> PaymentRequired:
        """Extract the challenge from a 402 response.

        Reads the PAYMENT-REQUIRED header first, then falls back to the JSON body.

        Args:
            get_header: Function to get header by name (case-insensitive).
            body: Parsed JSON body or raw bytes.

        Raises:
            ValueError: If no payment required info found.
        """
        header = get_header(PAYMENT_REQUIRED_HEADER)
        if header:
            return decode_payment_required_header(header)

        if isinstance(body, (bytes, str)) and body:
            try:
                body = json.loads(body)
            except ValueError:
                body = None
        if isinstance(body, dict) and "accepts" in body:
            return PaymentRequired.model_validate(body)

        raise ValueError("Invalid payment required response")

    def get_payment_settle_response(
        self,
        get_header: Callable[[str], str | None],
    ) -> SettleResponse:
        """Extract the settlement receipt from HTTP headers.

        Raises:
            ValueError: If no payment response header found.
        """
        header = get_header(PAYMENT_RESPONSE_HEADER)
        if header:
            return decode_payment_response_header(header)

        header = get_header(X_PAYMENT_RESPONSE_HEADER)
        if header:
            return decode_payment_response_header(header)

        raise ValueError("Payment response header not found")

    # =========================================================================
    # Payment Creation (delegates to x402Client)
    # =========================================================================

    def create_payment_payload(self, payment_required: PaymentRequired) -> PaymentPayload:
        """Create payment payload for the given challenge."""
        return self._client.create_payment_payload(payment_required)

    # =========================================================================
    # Convenience Methods
    # =========================================================================

    def handle_402_response(
        self,
        headers: dict[str, str],
        body: bytes | None,
    ) -> tuple[dict[str, str], PaymentPayload]:
        """Handle a 402 response and create payment headers.

        Returns:
            Tuple of (headers_to_add, payment_payload).
        """
        get_header = self._header_getter(headers)

        body_data = None
        if body:
            try:
                body_data = json.loads(body)
            except (ValueError, TypeError):
                pass

        payment_required = self.get_payment_required_response(get_header, body_data)
        payment_payload = self.create_payment_payload(payment_required)
        payment_headers = self.encode_payment_signature_header(payment_payload)

        return payment_headers, payment_payload

    def payment_rejected(
        self,
        headers: dict[str, str],
        body: bytes | None,
        response: Any,
    ) -> PaymentRejectedError:
        """Build the error for a paid retry that was answered with another 402."""
        reason = REASON_PAYMENT_REJECTED
        try:
            challenge = self.get_payment_required_response(self._header_getter(headers), body)
            reason = challenge.error or reason
        except ValueError:
            pass
        return PaymentRejectedError(
            f"Payment rejected by server: {reason}", reason=reason, response=response
        )

    @staticmethod
    def _header_getter(headers: Any) -> Callable[[str], str | None]:
        normalized = {k.upper(): v for k, v in dict(headers).items()}

        def get_header(name: str) -> str | None:
            return normalized.get(name.upper())

        return get_header
