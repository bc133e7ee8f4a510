"""Mock implementations for testing."""

from .cash import (
    CASH_NETWORK,
    CashSchemeNetworkClient,
    CashSchemeNetworkFacilitator,
    CashSchemeNetworkServer,
    build_cash_facilitator,
    build_cash_payment_requirements,
)
from .evm import (
    BASE_NETWORK,
    BASE_USDC,
    OTHER_PAY_TO,
    PAY_TO,
    make_evm_payload,
    make_evm_requirements,
    new_account,
)
from .facilitator import PAYER, ScriptedFacilitatorClient, hang

__all__ = [
    "CASH_NETWORK",
    "CashSchemeNetworkClient",
    "CashSchemeNetworkFacilitator",
    "CashSchemeNetworkServer",
    "build_cash_facilitator",
    "build_cash_payment_requirements",
    "BASE_NETWORK",
    "BASE_USDC",
    "OTHER_PAY_TO",
    "PAY_TO",
    "make_evm_payload",
    "make_evm_requirements",
    "new_account",
    "PAYER",
    "ScriptedFacilitatorClient",
    "hang",
]
