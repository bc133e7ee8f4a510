"""EVM payload types and signer protocols."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from eth_utils import is_hex_address
from pydantic import Field, field_validator

from ...schemas import BaseX402Model


@dataclass
class TypedDataField:
    """One field of an EIP-712 struct type."""

    name: str
    type: str


@dataclass
class TypedDataDomain:
    """EIP-712 domain separator."""

    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


class ExactEIP3009Authorization(BaseX402Model):
    """EIP-3009 transferWithAuthorization parameters.

    Integer fields travel as decimal strings; ``nonce`` is a 0x-prefixed
    32-byte hex string.
    """

    from_: str = Field(alias="from")
    to: str
    value: str
    valid_after: str
    valid_before: str
    nonce: str

    @field_validator("from_", "to")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not is_hex_address(v):
            raise ValueError("address must be 20 bytes of hex")
        return v

    @field_validator("value", "valid_after", "valid_before")
    @classmethod
    def validate_integer(cls, v: str) -> str:
        try:
            int(v)
        except ValueError:
            raise ValueError("value must be an integer encoded as a string")
        return v

    @field_validator("nonce")
    @classmethod
    def validate_nonce(cls, v: str) -> str:
        raw = v.removeprefix("0x")
        if len(raw) != 64:
            raise ValueError("nonce must be 32 bytes")
        try:
            bytes.fromhex(raw)
        except ValueError:
            raise ValueError("nonce must be hex encoded")
        return v


class ExactEvmPayload(BaseX402Model):
    """Inner payload of an exact EVM payment."""

    signature: str
    authorization: ExactEIP3009Authorization

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExactEvmPayload:
        return cls.model_validate(data)


class ClientEvmSigner(Protocol):
    """Signing capability held by a paying client."""

    @property
    def address(self) -> str:
        ...

    def sign_typed_data(
        self,
        domain: TypedDataDomain,
        types: dict[str, list[TypedDataField]],
        primary_type: str,
        message: dict[str, Any],
    ) -> bytes:
        ...


class FacilitatorEvmSigner(Protocol):
    """Settlement backend that executes signed authorizations.

    Returns an opaque transaction reference.
    """

    def get_addresses(self) -> list[str]:
        ...

    def transfer_with_authorization(
        self,
        network: str,
        asset: str,
        authorization: ExactEIP3009Authorization,
        signature: str,
    ) -> str:
        ...
