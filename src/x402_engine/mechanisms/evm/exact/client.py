"""Exact scheme client implementation for EVM (EIP-3009)."""

from __future__ import annotations

from typing import Any

from ....schemas import PaymentRequirements
from ..constants import AUTHORIZATION_PRIMARY_TYPE, AUTHORIZATION_TYPES, SCHEME_EXACT
from ..types import ClientEvmSigner, ExactEIP3009Authorization, ExactEvmPayload
from ..utils import (
    authorization_typed_data,
    build_authorization_domain,
    bytes_to_hex,
    create_nonce,
    create_validity_window,
    normalize_address,
)


class ExactEvmScheme:
    """Client scheme that signs EIP-3009 transferWithAuthorization payloads.

    The authorization transfers exactly ``requirements.amount`` to
    ``requirements.pay_to`` and is valid for ``max_timeout_seconds``.
    """

    def __init__(self, signer: ClientEvmSigner):
        self.signer = signer
        self.scheme = SCHEME_EXACT

    def create_payment_payload(self, requirements: PaymentRequirements) -> dict[str, Any]:
        """Create a signed exact EVM payload.

        Args:
            requirements: Selected payment requirements.

        Returns:
            Inner payload dict with ``signature`` and ``authorization``.

        Raises:
            ValueError: If the token's EIP-712 domain cannot be determined.
        """
        domain = build_authorization_domain(
            str(requirements.network), requirements.asset, requirements.extra
        )
        if domain is None:
            raise ValueError(
                f"EIP-712 domain name/version missing for asset {requirements.asset}"
            )

        valid_after, valid_before = create_validity_window(requirements.max_timeout_seconds)
        authorization = ExactEIP3009Authorization(
            from_=self.signer.address,
            to=normalize_address(requirements.pay_to),
            value=requirements.amount,
            valid_after=str(valid_after),
            valid_before=str(valid_before),
            nonce=create_nonce(),
        )

        _, _, _, message = authorization_typed_data(domain, authorization)
        signature = self.signer.sign_typed_data(
            domain, AUTHORIZATION_TYPES, AUTHORIZATION_PRIMARY_TYPE, message
        )

        return ExactEvmPayload(
            signature=bytes_to_hex(signature),
            authorization=authorization,
        ).to_dict()
