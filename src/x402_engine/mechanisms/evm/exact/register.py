"""Registration helpers for EVM exact payment schemes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ....client import x402Client
    from ....facilitator import x402Facilitator
    from ....server import x402ResourceServer

from ..constants import NETWORK_CONFIGS
from ..types import ClientEvmSigner, FacilitatorEvmSigner
from .client import ExactEvmScheme as ExactEvmClientScheme
from .facilitator import ExactEvmScheme as ExactEvmFacilitatorScheme
from .server import ExactEvmScheme as ExactEvmServerScheme


def register_exact_evm_client(
    client: x402Client,
    signer: ClientEvmSigner,
    networks: str | list[str] | None = None,
    policies: list[Any] | None = None,
) -> x402Client:
    """Register EVM exact payment schemes to x402Client.

    Args:
        client: x402Client instance.
        signer: EVM signer for payment authorizations.
        networks: Optional specific network(s) (default: eip155:* wildcard).
        policies: Optional payment policies.

    Returns:
        Client for chaining.
    """
    scheme = ExactEvmClientScheme(signer)

    if networks:
        if isinstance(networks, str):
            networks = [networks]
        for network in networks:
            client.register(network, scheme)
    else:
        client.register("eip155:*", scheme)

    if policies:
        for policy in policies:
            client.register_policy(policy)

    return client


def register_exact_evm_server(
    server: x402ResourceServer,
    networks: str | list[str] | None = None,
) -> x402ResourceServer:
    """Register EVM exact payment schemes to x402ResourceServer.

    Args:
        server: x402ResourceServer instance.
        networks: Optional specific network(s) (default: eip155:* wildcard).

    Returns:
        Server for chaining.
    """
    scheme = ExactEvmServerScheme()

    if networks:
        if isinstance(networks, str):
            networks = [networks]
        for network in networks:
            server.register(network, scheme)
    else:
        server.register("eip155:*", scheme)

    return server


def register_exact_evm_facilitator(
    facilitator: x402Facilitator,
    signer: FacilitatorEvmSigner,
    networks: str | list[str] | None = None,
) -> x402Facilitator:
    """Register EVM exact payment schemes to x402Facilitator.

    Args:
        facilitator: x402Facilitator instance.
        signer: Settlement backend executing authorizations.
        networks: Optional specific network(s) (default: all configured networks).

    Returns:
        Facilitator for chaining.
    """
    scheme = ExactEvmFacilitatorScheme(signer)

    if networks:
        if isinstance(networks, str):
            networks = [networks]
        facilitator.register(networks, scheme)
    else:
        facilitator.register(list(NETWORK_CONFIGS), scheme)

    return facilitator
