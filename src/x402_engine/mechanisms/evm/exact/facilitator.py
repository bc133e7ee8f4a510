"""Exact scheme facilitator implementation for EVM (EIP-3009)."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from eth_account import Account
from eth_account.messages import encode_typed_data
from pydantic import ValidationError

from ....schemas import (
    Network,
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
)
from ..constants import (
    ERR_AMOUNT_MISMATCH,
    ERR_FAILED_TO_GET_NETWORK_CONFIG,
    ERR_INSUFFICIENT_AMOUNT,
    ERR_INVALID_PAYLOAD,
    ERR_INVALID_SIGNATURE,
    ERR_MISSING_EIP712_DOMAIN,
    ERR_NETWORK_MISMATCH,
    ERR_RECIPIENT_MISMATCH,
    ERR_TRANSACTION_FAILED,
    ERR_UNSUPPORTED_SCHEME,
    ERR_VALID_AFTER_FUTURE,
    ERR_VALID_BEFORE_EXPIRED,
    SCHEME_EXACT,
)
from ..types import ExactEvmPayload, FacilitatorEvmSigner
from ..utils import (
    addresses_equal,
    authorization_key,
    authorization_typed_data,
    build_authorization_domain,
    hex_to_bytes,
)

logger = logging.getLogger(__name__)


class ExactEvmScheme:
    """Facilitator scheme for exact EVM payments.

    Verification is pure: it checks the authorization against the
    requirements and recovers the signer. Settlement re-verifies, then
    hands the authorization to the settlement backend.
    """

    def __init__(
        self,
        signer: FacilitatorEvmSigner,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize facilitator scheme.

        Args:
            signer: Settlement backend executing authorizations.
            clock: Returns the current Unix time.
        """
        self.signer = signer
        self.scheme = SCHEME_EXACT
        self.caip_family = "eip155:*"
        self._clock = clock

    def get_extra(self, network: Network) -> dict[str, Any] | None:
        return None

    def get_signers(self, network: Network) -> list[str]:
        return self.signer.get_addresses()

    def settlement_key(self, payload: PaymentPayload) -> tuple[str, str, str] | None:
        return authorization_key(payload)

    def verify(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        """Verify an exact EVM payment payload.

        Args:
            payload: Payment payload with signed authorization.
            requirements: Requirements the server asked for.

        Returns:
            VerifyResponse with the first failing check as invalid_reason.
        """
        if payload.get_scheme() != SCHEME_EXACT or requirements.scheme != SCHEME_EXACT:
            return VerifyResponse(is_valid=False, invalid_reason=ERR_UNSUPPORTED_SCHEME)

        network = str(requirements.network)
        if str(payload.get_network()) != network:
            return VerifyResponse(is_valid=False, invalid_reason=ERR_NETWORK_MISMATCH)

        try:
            evm_payload = ExactEvmPayload.from_dict(payload.payload)
        except ValidationError:
            return VerifyResponse(is_valid=False, invalid_reason=ERR_INVALID_PAYLOAD)

        authorization = evm_payload.authorization
        payer = authorization.from_

        if not addresses_equal(authorization.to, requirements.pay_to):
            return VerifyResponse(
                is_valid=False, invalid_reason=ERR_RECIPIENT_MISMATCH, payer=payer
            )

        value = int(authorization.value)
        required = int(requirements.amount)
        if value < required:
            return VerifyResponse(
                is_valid=False, invalid_reason=ERR_INSUFFICIENT_AMOUNT, payer=payer
            )
        if value > required:
            return VerifyResponse(is_valid=False, invalid_reason=ERR_AMOUNT_MISMATCH, payer=payer)

        now = int(self._clock())
        if now < int(authorization.valid_after):
            return VerifyResponse(
                is_valid=False, invalid_reason=ERR_VALID_AFTER_FUTURE, payer=payer
            )
        if now > int(authorization.valid_before):
            return VerifyResponse(
                is_valid=False, invalid_reason=ERR_VALID_BEFORE_EXPIRED, payer=payer
            )

        try:
            domain = build_authorization_domain(network, requirements.asset, requirements.extra)
        except ValueError:
            return VerifyResponse(
                is_valid=False, invalid_reason=ERR_FAILED_TO_GET_NETWORK_CONFIG, payer=payer
            )
        if domain is None:
            return VerifyResponse(
                is_valid=False, invalid_reason=ERR_MISSING_EIP712_DOMAIN, payer=payer
            )

        try:
            domain_data, types, _, message = authorization_typed_data(domain, authorization)
            signable = encode_typed_data(
                domain_data=domain_data,
                message_types=types,
                message_data=message,
            )
            recovered = Account.recover_message(
                signable, signature=hex_to_bytes(evm_payload.signature)
            )
        except Exception as e:
            logger.debug("Signature recovery failed: %s", e)
            return VerifyResponse(is_valid=False, invalid_reason=ERR_INVALID_SIGNATURE, payer=payer)

        if not addresses_equal(recovered, payer):
            return VerifyResponse(is_valid=False, invalid_reason=ERR_INVALID_SIGNATURE, payer=payer)

        return VerifyResponse(is_valid=True, payer=payer)

    def settle(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> SettleResponse:
        """Settle an exact EVM payment.

        Re-verifies before executing; never raises for settlement failures.
        """
        network = str(requirements.network)
        verification = self.verify(payload, requirements)
        if not verification.is_valid:
            return SettleResponse(
                success=False,
                error_reason=verification.invalid_reason,
                network=network,
                payer=verification.payer,
                payee=requirements.pay_to,
            )

        evm_payload = ExactEvmPayload.from_dict(payload.payload)
        try:
            transaction = self.signer.transfer_with_authorization(
                network,
                requirements.asset,
                evm_payload.authorization,
                evm_payload.signature,
            )
        except Exception as e:
            logger.error("transferWithAuthorization failed on %s: %s", network, e)
            return SettleResponse(
                success=False,
                error_reason=ERR_TRANSACTION_FAILED,
                network=network,
                payer=verification.payer,
                payee=requirements.pay_to,
            )

        return SettleResponse(
            success=True,
            transaction=transaction,
            network=network,
            payer=verification.payer,
            payee=requirements.pay_to,
        )
