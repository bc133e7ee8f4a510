"""EVM signer implementations.

``EthAccountSigner`` signs client authorizations with an eth_account
LocalAccount. ``LedgerSettlementSigner`` is an in-process settlement
backend that records executed authorizations instead of submitting them
on chain.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from eth_utils import keccak

from .types import ExactEIP3009Authorization, TypedDataDomain, TypedDataField
from .utils import bytes_to_hex

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)


class EthAccountSigner:
    """Client-side EVM signer using eth_account library.

    Implements the ClientEvmSigner protocol for use with eth_account's
    LocalAccount (from private key or mnemonic).

    Example:
        ```python
        from eth_account import Account
        from x402_engine import x402Client
        from x402_engine.mechanisms.evm.exact import register_exact_evm_client
        from x402_engine.mechanisms.evm.signers import EthAccountSigner

        signer = EthAccountSigner(Account.from_key("0x..."))
        client = register_exact_evm_client(x402Client(), signer)
        ```
    """

    def __init__(self, account: "LocalAccount") -> None:
        """Initialize signer with eth_account LocalAccount.

        Args:
            account: eth_account LocalAccount instance (from Account.from_key,
                Account.from_mnemonic, etc.).
        """
        self._account = account

    @property
    def address(self) -> str:
        """The signer's checksummed Ethereum address."""
        return self._account.address

    def sign_typed_data(
        self,
        domain: TypedDataDomain | dict[str, Any],
        types: dict[str, list[TypedDataField] | list[dict[str, str]]],
        primary_type: str,
        message: dict[str, Any],
    ) -> bytes:
        """Sign EIP-712 typed data.

        Args:
            domain: EIP-712 domain separator.
            types: Type definitions, without EIP712Domain.
            primary_type: Primary type name (unused, inferred by eth_account).
            message: Message data.

        Returns:
            65-byte ECDSA signature (r, s, v).
        """
        types_dict: dict[str, list[dict[str, str]]] = {}
        for type_name, fields in types.items():
            types_dict[type_name] = [
                {"name": f.name, "type": f.type} if isinstance(f, TypedDataField) else f
                for f in fields
            ]

        domain_dict = domain.to_dict() if isinstance(domain, TypedDataDomain) else domain

        signed = self._account.sign_typed_data(
            domain_data=domain_dict,
            message_types=types_dict,
            message_data=message,
        )
        return bytes(signed.signature)


@dataclass
class RecordedTransfer:
    """An authorization executed by the ledger backend."""

    network: str
    asset: str
    payer: str
    payee: str
    value: int
    nonce: str
    transaction: str


class LedgerSettlementSigner:
    """Settlement backend that records transfers in memory.

    Transaction references are deterministic: the keccak hash of
    (network, asset, payer, nonce), so re-executing an authorization
    yields the same reference.
    """

    def __init__(self, address: str = "0x0000000000000000000000000000000000000000") -> None:
        self._address = address
        self._lock = threading.Lock()
        self.transfers: list[RecordedTransfer] = []

    def get_addresses(self) -> list[str]:
        return [self._address]

    def transfer_with_authorization(
        self,
        network: str,
        asset: str,
        authorization: ExactEIP3009Authorization,
        signature: str,
    ) -> str:
        key = f"{network}|{asset.lower()}|{authorization.from_.lower()}|{authorization.nonce.lower()}"
        transaction = bytes_to_hex(keccak(text=key))

        with self._lock:
            self.transfers.append(
                RecordedTransfer(
                    network=network,
                    asset=asset,
                    payer=authorization.from_,
                    payee=authorization.to,
                    value=int(authorization.value),
                    nonce=authorization.nonce,
                    transaction=transaction,
                )
            )

        logger.info(
            "Recorded transfer of %s from %s to %s on %s (%s)",
            authorization.value,
            authorization.from_,
            authorization.to,
            network,
            transaction,
        )
        return transaction
