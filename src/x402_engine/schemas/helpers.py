"""Network pattern helpers for scheme registries."""

from __future__ import annotations

from typing import TypeVar

from .base import Network

T = TypeVar("T")


def network_family(network: Network) -> str:
    """Return the CAIP-2 namespace of a network ("eip155" for "eip155:8453")."""
    return network.split(":", 1)[0]


def matches_network_pattern(network: Network, pattern: Network) -> bool:
    """Check whether a concrete network matches a pattern.

    A pattern is either a concrete network or a family wildcard such as
    "eip155:*".
    """
    if pattern == network:
        return True
    if pattern.endswith(":*"):
        return network_family(network) == network_family(pattern)
    return False


def derive_network_pattern(networks: list[Network]) -> Network:
    """Derive the narrowest pattern covering all given networks."""
    if not networks:
        raise ValueError("At least one network is required")
    if len(networks) == 1:
        return networks[0]

    families = {network_family(n) for n in networks}
    if len(families) != 1:
        raise ValueError(f"Networks span multiple families: {sorted(families)}")
    return f"{families.pop()}:*"


def find_schemes_by_network(
    registry: dict[Network, dict[str, T]],
    network: Network,
) -> dict[str, T] | None:
    """Look up the schemes registered for a network.

    An exact registration takes precedence over the family wildcard.
    """
    if network in registry:
        return registry[network]

    wildcard = f"{network_family(network)}:*"
    return registry.get(wildcard)
