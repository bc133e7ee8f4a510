"""Exact EVM payment scheme (EIP-3009 transferWithAuthorization)."""

from .client import ExactEvmScheme as ExactEvmClientScheme
from .facilitator import ExactEvmScheme as ExactEvmFacilitatorScheme
from .register import (
    register_exact_evm_client,
    register_exact_evm_facilitator,
    register_exact_evm_server,
)
from .server import ExactEvmScheme as ExactEvmServerScheme

ExactEvmScheme = ExactEvmClientScheme

__all__ = [
    "ExactEvmScheme",
    "ExactEvmClientScheme",
    "ExactEvmServerScheme",
    "ExactEvmFacilitatorScheme",
    "register_exact_evm_client",
    "register_exact_evm_server",
    "register_exact_evm_facilitator",
]
