"""Environment-driven settings for the demo server, facilitator and agent."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from ..http.constants import DEFAULT_FACILITATOR_URL

DEFAULT_PORT = 4021
DEFAULT_FACILITATOR_PORT = 4022
DEFAULT_NETWORK = "eip155:8453"  # Base mainnet
DEFAULT_PAYEE_ADDRESS = "0x3e3cb10859cCBbb7c9aB0780b1F90Ae8e0456737"

AGENT_NAME = "Booeliever"
AGENT_IDENTITY = "ERC-8004 #14511"


@dataclass
class DemoSettings:
    port: int = DEFAULT_PORT
    network: str = DEFAULT_NETWORK
    payee_address: str = DEFAULT_PAYEE_ADDRESS
    facilitator_url: str = DEFAULT_FACILITATOR_URL
    facilitator_port: int = DEFAULT_FACILITATOR_PORT
    resource_server_url: str = f"http://localhost:{DEFAULT_PORT}"
    agent_private_key: str | None = None

    @classmethod
    def from_env(cls, dotenv: bool = True) -> DemoSettings:
        """Read settings from the environment, loading ``.env`` first."""
        if dotenv:
            load_dotenv()

        port = int(os.getenv("PORT", str(DEFAULT_PORT)))
        return cls(
            port=port,
            network=os.getenv("NETWORK", DEFAULT_NETWORK),
            payee_address=os.getenv("PAYEE_ADDRESS", DEFAULT_PAYEE_ADDRESS),
            facilitator_url=os.getenv("FACILITATOR_URL", DEFAULT_FACILITATOR_URL),
            facilitator_port=int(os.getenv("FACILITATOR_PORT", str(DEFAULT_FACILITATOR_PORT))),
            resource_server_url=os.getenv("RESOURCE_SERVER_URL", f"http://localhost:{port}"),
            agent_private_key=os.getenv("AGENT_PRIVATE_KEY") or None,
        )
