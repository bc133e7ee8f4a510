"""Helpers for exact EVM payments signed with throwaway eth_account keys."""

from __future__ import annotations

from eth_account import Account
from eth_account.signers.local import LocalAccount

from x402_engine.mechanisms.evm import EthAccountSigner
from x402_engine.mechanisms.evm.exact import ExactEvmClientScheme
from x402_engine.schemas import PaymentPayload, PaymentRequirements

BASE_NETWORK = "eip155:8453"
BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
PAY_TO = "0x3e3cb10859cCBbb7c9aB0780b1F90Ae8e0456737"
OTHER_PAY_TO = "0x1111111111111111111111111111111111111111"


def new_account() -> LocalAccount:
    return Account.create()


def make_evm_requirements(
    amount: str = "1000",
    pay_to: str = PAY_TO,
    network: str = BASE_NETWORK,
    asset: str = BASE_USDC,
) -> PaymentRequirements:
    return PaymentRequirements(
        scheme="exact",
        network=network,
        asset=asset,
        amount=amount,
        pay_to=pay_to,
        max_timeout_seconds=300,
        extra={"name": "USD Coin", "version": "2"},
    )


def make_evm_payload(
    account: LocalAccount,
    requirements: PaymentRequirements,
    signed_requirements: PaymentRequirements | None = None,
) -> PaymentPayload:
    """Sign a payload for ``requirements``.

    ``signed_requirements`` lets a test sign for different terms than the
    ones the payload claims to accept (underpaying, wrong payee).
    """
    scheme = ExactEvmClientScheme(EthAccountSigner(account))
    inner = scheme.create_payment_payload(signed_requirements or requirements)
    return PaymentPayload(payload=inner, accepted=requirements)
