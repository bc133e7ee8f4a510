"""EVM payment mechanisms."""

from .constants import NETWORK_CONFIGS, SCHEME_EXACT
from .signers import EthAccountSigner, LedgerSettlementSigner, RecordedTransfer
from .types import (
    ClientEvmSigner,
    ExactEIP3009Authorization,
    ExactEvmPayload,
    FacilitatorEvmSigner,
    TypedDataDomain,
    TypedDataField,
)

__all__ = [
    "NETWORK_CONFIGS",
    "SCHEME_EXACT",
    "ClientEvmSigner",
    "EthAccountSigner",
    "ExactEIP3009Authorization",
    "ExactEvmPayload",
    "FacilitatorEvmSigner",
    "LedgerSettlementSigner",
    "RecordedTransfer",
    "TypedDataDomain",
    "TypedDataField",
]
