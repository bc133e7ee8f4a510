"""Base64 JSON header encoding for x402 objects."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Union

from pydantic import ValidationError

from ..schemas import (
    BaseX402Model,
    MalformedPaymentError,
    PaymentPayload,
    PaymentRequired,
    SettleResponse,
)


def safe_base64_encode(data: Union[str, bytes]) -> str:
    """Encode string or bytes to base64 string."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def safe_base64_decode(data: str) -> str:
    """Decode base64 string to UTF-8 string.

    Accepts missing padding and the URL-safe alphabet.

    Raises:
        ValueError: If the data is not valid base64 or UTF-8.
    """
    cleaned = data.strip()
    padded = cleaned + "=" * (-len(cleaned) % 4)
    try:
        if "-" in padded or "_" in padded:
            raw = base64.urlsafe_b64decode(padded)
        else:
            raw = base64.b64decode(padded, validate=True)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid base64 data: {e}") from e


def _encode_model(model: BaseX402Model) -> str:
    return safe_base64_encode(json.dumps(model.to_wire(), separators=(",", ":")))


def encode_payment_signature_header(payload: PaymentPayload) -> str:
    return _encode_model(payload)


def encode_payment_required_header(payment_required: PaymentRequired) -> str:
    return _encode_model(payment_required)


def encode_payment_response_header(settle_response: SettleResponse) -> str:
    return _encode_model(settle_response)


def decode_payment_signature_header(header: str) -> PaymentPayload:
    """Decode a PAYMENT-SIGNATURE (or X-PAYMENT) header.

    Raises:
        MalformedPaymentError: If the header is not base64 JSON of a
            valid PaymentPayload.
    """
    try:
        data = json.loads(safe_base64_decode(header))
        return PaymentPayload.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise MalformedPaymentError(f"Invalid payment header: {e}") from e


def decode_payment_required_header(header: str) -> PaymentRequired:
    """Decode a PAYMENT-REQUIRED header.

    Raises:
        ValueError: If the header is malformed.
    """
    return PaymentRequired.model_validate(json.loads(safe_base64_decode(header)))


def decode_payment_response_header(header: str) -> SettleResponse:
    """Decode a PAYMENT-RESPONSE header.

    Raises:
        ValueError: If the header is malformed.
    """
    return SettleResponse.model_validate(json.loads(safe_base64_decode(header)))
