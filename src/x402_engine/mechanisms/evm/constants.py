"""Exact EVM scheme constants: supported networks, EIP-3009 typed data and reason codes."""

from typing import TypedDict

SCHEME_EXACT = "exact"

# USDC and most EIP-3009 stablecoins use 6 decimals
DEFAULT_DECIMALS = 6

# valid_after is backdated by this many seconds to absorb clock skew
DEFAULT_VALIDITY_BUFFER = 60

# Verification reasons. Authorization checks share the payload prefix so
# clients can group them.
_PAYLOAD = "invalid_exact_evm_payload"
_AUTHORIZATION = f"{_PAYLOAD}_authorization"

ERR_INVALID_PAYLOAD = _PAYLOAD
ERR_INVALID_SIGNATURE = f"{_PAYLOAD}_signature"
ERR_RECIPIENT_MISMATCH = f"{_PAYLOAD}_recipient_mismatch"
ERR_INSUFFICIENT_AMOUNT = f"{_AUTHORIZATION}_value"
ERR_AMOUNT_MISMATCH = f"{_AUTHORIZATION}_value_mismatch"
ERR_VALID_BEFORE_EXPIRED = f"{_AUTHORIZATION}_valid_before"
ERR_VALID_AFTER_FUTURE = f"{_AUTHORIZATION}_valid_after"
ERR_FAILED_TO_GET_NETWORK_CONFIG = "invalid_exact_evm_failed_to_get_network_config"
ERR_MISSING_EIP712_DOMAIN = "missing_eip712_domain"
ERR_NETWORK_MISMATCH = "network_mismatch"
ERR_UNSUPPORTED_SCHEME = "unsupported_scheme"

# Settlement reason
ERR_TRANSACTION_FAILED = "transaction_failed"


class AssetInfo(TypedDict):
    """An EIP-3009 token and its EIP-712 domain name and version."""

    address: str
    name: str
    version: str
    decimals: int


class _NetworkConfigRequired(TypedDict):
    chain_id: int


class NetworkConfig(_NetworkConfigRequired, total=False):
    """A supported chain and the stablecoin dollar prices convert to."""

    default_asset: AssetInfo


BASE_USDC: AssetInfo = {
    "address": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    "name": "USD Coin",
    "version": "2",
    "decimals": DEFAULT_DECIMALS,
}

BASE_SEPOLIA_USDC: AssetInfo = {
    "address": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
    "name": "USDC",
    "version": "2",
    "decimals": DEFAULT_DECIMALS,
}

# Keyed by CAIP-2 identifier
NETWORK_CONFIGS: dict[str, NetworkConfig] = {
    f"eip155:{chain_id}": {"chain_id": chain_id, "default_asset": asset}
    for chain_id, asset in ((8453, BASE_USDC), (84532, BASE_SEPOLIA_USDC))
}

AUTHORIZATION_PRIMARY_TYPE = "TransferWithAuthorization"

# EIP712Domain is added by eth_account from the domain itself
AUTHORIZATION_TYPES: dict[str, list[dict[str, str]]] = {
    AUTHORIZATION_PRIMARY_TYPE: [
        {"name": name, "type": solidity_type}
        for name, solidity_type in (
            ("from", "address"),
            ("to", "address"),
            ("value", "uint256"),
            ("validAfter", "uint256"),
            ("validBefore", "uint256"),
            ("nonce", "bytes32"),
        )
    ]
}
