"""EVM utility functions for address, amount, nonce and typed data handling."""

import os
import re
import time
from decimal import Decimal, InvalidOperation
from typing import Any

from eth_utils import to_checksum_address
from pydantic import ValidationError

from ...schemas import PaymentPayload
from .constants import (
    AUTHORIZATION_PRIMARY_TYPE,
    AUTHORIZATION_TYPES,
    DEFAULT_DECIMALS,
    DEFAULT_VALIDITY_BUFFER,
    NETWORK_CONFIGS,
    AssetInfo,
    NetworkConfig,
)
from .types import ExactEIP3009Authorization, ExactEvmPayload, TypedDataDomain


def get_evm_chain_id(network: str) -> int:
    """Extract chain ID from a CAIP-2 network identifier (eip155:CHAIN_ID).

    Args:
        network: Network identifier in CAIP-2 format (e.g., "eip155:8453").

    Returns:
        Numeric chain ID.

    Raises:
        ValueError: If network format is invalid.
    """
    if network.startswith("eip155:"):
        try:
            return int(network.split(":")[1])
        except (IndexError, ValueError) as e:
            raise ValueError(f"Invalid CAIP-2 network format: {network}") from e

    raise ValueError(f"Unsupported network format: {network} (expected eip155:CHAIN_ID)")


def get_network_config(network: str) -> NetworkConfig:
    """Get configuration for a CAIP-2 network identifier.

    Returns a full config for known networks, or a minimal config (chain_id only)
    for any valid but unknown eip155 network.

    Raises:
        ValueError: If the network format is invalid or not an eip155 network.
    """
    if network in NETWORK_CONFIGS:
        return NETWORK_CONFIGS[network]

    return {"chain_id": get_evm_chain_id(network)}


def get_asset_info(network: str, asset_address: str) -> AssetInfo:
    """Get asset info by address.

    Returns the full default asset info if the address matches the network's
    default asset, otherwise a minimal AssetInfo with just the address.
    """
    config = get_network_config(network)
    default = config.get("default_asset")

    if default and default["address"].lower() == asset_address.lower():
        return default

    return {"address": asset_address, "name": "", "version": "", "decimals": DEFAULT_DECIMALS}


def create_nonce() -> str:
    """Generate random 32-byte nonce as hex string (0x...)."""
    return "0x" + os.urandom(32).hex()


def normalize_address(address: str) -> str:
    """Normalize Ethereum address to EIP-55 checksummed format.

    Raises:
        ValueError: If address is invalid.
    """
    addr = address.lower().removeprefix("0x")

    if len(addr) != 40:
        raise ValueError(f"Invalid address length: {len(addr)}")

    try:
        int(addr, 16)
    except ValueError as e:
        raise ValueError(f"Invalid hex in address: {address}") from e

    return to_checksum_address("0x" + addr)


def addresses_equal(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def authorization_key(payload: PaymentPayload) -> tuple[str, str, str] | None:
    """Identify an exact EVM authorization as (payer, network, nonce).

    Returns None when the inner payload is not a well-formed authorization.
    """
    try:
        evm_payload = ExactEvmPayload.from_dict(payload.payload)
    except ValidationError:
        return None

    authorization = evm_payload.authorization
    return (
        authorization.from_.lower(),
        str(payload.get_network()),
        authorization.nonce.lower(),
    )


def parse_amount(amount: str | Decimal, decimals: int) -> int:
    """Convert decimal amount to smallest unit.

    Args:
        amount: Decimal amount (e.g., "1.50").
        decimals: Token decimals.

    Returns:
        Amount in smallest unit.

    Raises:
        ValueError: If the amount has more precision than the token supports.
    """
    d = Decimal(amount)
    scaled = d * Decimal(10**decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} exceeds {decimals} decimal places")
    return int(scaled)


def parse_money_to_decimal(money: str | float | int) -> Decimal:
    """Parse Money to Decimal.

    Handles formats like "$1.50", "1.50 USDC", 1.50.

    Raises:
        ValueError: If the value is not a non-negative number.
    """
    if isinstance(money, (int, float)):
        clean = str(money)
    else:
        clean = money.strip()
        clean = clean.lstrip("$")
        clean = re.sub(r"\s*(USD|USDC|usd|usdc)\s*$", "", clean)
        clean = clean.strip()

    try:
        value = Decimal(clean)
    except InvalidOperation as e:
        raise ValueError(f"Invalid money value: {money!r}") from e

    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid money value: {money!r}")
    return value


def create_validity_window(
    max_timeout_seconds: int,
    buffer: int = DEFAULT_VALIDITY_BUFFER,
    now: int | None = None,
) -> tuple[int, int]:
    """Create valid_after/valid_before timestamps.

    Args:
        max_timeout_seconds: How long the authorization stays valid.
        buffer: Seconds before now for valid_after (clock skew).
        now: Current Unix time, defaults to the system clock.

    Returns:
        (valid_after, valid_before) as Unix timestamps.
    """
    if now is None:
        now = int(time.time())
    return (now - buffer, now + max_timeout_seconds)


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string to bytes (handles 0x prefix)."""
    return bytes.fromhex(hex_str.removeprefix("0x"))


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def build_authorization_domain(
    network: str,
    asset: str,
    extra: dict[str, Any] | None,
) -> TypedDataDomain | None:
    """Build the token's EIP-712 domain from requirements data.

    Returns None if the token name/version are unknown.
    """
    extra = extra or {}
    name = extra.get("name")
    version = extra.get("version")

    if not name or not version:
        info = get_asset_info(network, asset)
        name = name or info["name"]
        version = version or info["version"]

    if not name or not version:
        return None

    return TypedDataDomain(
        name=name,
        version=version,
        chain_id=get_evm_chain_id(network),
        verifying_contract=normalize_address(asset),
    )


def build_authorization_message(authorization: ExactEIP3009Authorization) -> dict[str, Any]:
    """Build the typed-data message for an authorization."""
    return {
        "from": normalize_address(authorization.from_),
        "to": normalize_address(authorization.to),
        "value": int(authorization.value),
        "validAfter": int(authorization.valid_after),
        "validBefore": int(authorization.valid_before),
        "nonce": hex_to_bytes(authorization.nonce),
    }


def authorization_typed_data(
    domain: TypedDataDomain,
    authorization: ExactEIP3009Authorization,
) -> tuple[dict[str, Any], dict[str, list[dict[str, str]]], str, dict[str, Any]]:
    """Return (domain, types, primary_type, message) for signing or recovery."""
    return (
        domain.to_dict(),
        AUTHORIZATION_TYPES,
        AUTHORIZATION_PRIMARY_TYPE,
        build_authorization_message(authorization),
    )
