"""Scheme protocols for the three payment roles.

A scheme is registered per network (or network family wildcard) and is
keyed by its ``scheme`` identifier, so dispatch never branches on types.
"""

from __future__ import annotations

from typing import Any, Protocol

from .schemas import (
    AssetAmount,
    Network,
    PaymentPayload,
    PaymentRequirements,
    Price,
    SettleResponse,
    SupportedKind,
    VerifyResponse,
)


class SchemeNetworkClient(Protocol):
    """Client-side scheme: builds the authorization for a requirement."""

    scheme: str

    def create_payment_payload(self, requirements: PaymentRequirements) -> dict[str, Any]:
        """Sign an authorization satisfying the requirements.

        Returns:
            Scheme-defined inner payload for PaymentPayload.payload.
        """
        ...


class SchemeNetworkServer(Protocol):
    """Server-side scheme: prices resources and completes requirements."""

    scheme: str

    def parse_price(self, price: Price, network: Network) -> AssetAmount:
        """Convert a configured price to an amount of the network's asset."""
        ...

    def enhance_payment_requirements(
        self,
        requirements: PaymentRequirements,
        supported_kind: SupportedKind | None,
    ) -> PaymentRequirements:
        """Add scheme-specific data (e.g. token domain) to requirements."""
        ...


class SchemeNetworkFacilitator(Protocol):
    """Facilitator-side scheme: verifies and settles authorizations.

    ``verify`` and ``settle`` report failure through ``is_valid=False`` and
    ``success=False`` instead of raising.
    """

    scheme: str
    caip_family: str

    def get_extra(self, network: Network) -> dict[str, Any] | None:
        ...

    def get_signers(self, network: Network) -> list[str]:
        ...

    def verify(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        ...

    def settle(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> SettleResponse:
        ...

    def settlement_key(self, payload: PaymentPayload) -> tuple[str, str, str] | None:
        """Identify the authorization as (payer, network, nonce).

        Returns None when the payload is too malformed to identify.
        """
        ...
