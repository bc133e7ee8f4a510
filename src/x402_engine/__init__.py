"""x402 engine - HTTP 402 payment protocol implementation.

Provides client-side, server-side, and facilitator components for
pay-per-request HTTP resources.

Quick Start:
    ```python
    from x402_engine import x402Client, x402ResourceServer, x402Facilitator

    # Client-side: Create payment payloads
    client = x402Client()
    client.register("eip155:8453", ExactEvmScheme(signer=my_signer))
    payload = client.create_payment_payload(payment_required)

    # Server-side: Protect resources
    server = x402ResourceServer(facilitator_client)
    server.register("eip155:8453", ExactEvmServerScheme())
    await server.initialize()
    requirements = server.build_payment_requirements(config)

    # Facilitator: Verify and settle payments
    facilitator = x402Facilitator()
    facilitator.register(["eip155:8453"], ExactEvmFacilitatorScheme(signer))
    result = await facilitator.verify(payload, requirements)
    ```
"""

# Core components
from .client import (
    default_payment_selector,
    max_amount,
    prefer_network,
    prefer_scheme,
    x402Client,
)
from .facilitator import SettlementLedger, x402Facilitator

# Interfaces (for implementing custom schemes)
from .interfaces import (
    SchemeNetworkClient,
    SchemeNetworkFacilitator,
    SchemeNetworkServer,
)
from .reconciliation import PendingSettlement, ReconcileResult, SettlementOutbox

# Types (re-export commonly used types)
from .schemas import (
    X402_VERSION,
    AssetAmount,
    FacilitatorUnreachableError,
    MalformedPaymentError,
    Money,
    Network,
    NoAcceptableRequirementError,
    PaymentAbortedError,
    PaymentError,
    PaymentPayload,
    PaymentRejectedError,
    PaymentRequired,
    PaymentRequirements,
    Price,
    ResourceConfig,
    ResourceInfo,
    SettlementFailedError,
    SettlementStatusResponse,
    SettleResponse,
    SupportedKind,
    SupportedResponse,
    UnmatchedRequirementError,
    UnsupportedSchemeError,
    VerificationFailedError,
    VerifyResponse,
)
from .server import FacilitatorClient, RetryPolicy, x402ResourceServer

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Core
    "x402Client",
    "x402ResourceServer",
    "x402Facilitator",
    "FacilitatorClient",
    "RetryPolicy",
    "SettlementLedger",
    "SettlementOutbox",
    "PendingSettlement",
    "ReconcileResult",
    # Client policies
    "default_payment_selector",
    "prefer_network",
    "prefer_scheme",
    "max_amount",
    # Interfaces
    "SchemeNetworkClient",
    "SchemeNetworkServer",
    "SchemeNetworkFacilitator",
    # Types
    "X402_VERSION",
    "Network",
    "Money",
    "Price",
    "AssetAmount",
    "ResourceConfig",
    "ResourceInfo",
    "PaymentPayload",
    "PaymentRequired",
    "PaymentRequirements",
    "VerifyResponse",
    "SettleResponse",
    "SettlementStatusResponse",
    "SupportedKind",
    "SupportedResponse",
    # Errors
    "PaymentError",
    "MalformedPaymentError",
    "UnmatchedRequirementError",
    "VerificationFailedError",
    "SettlementFailedError",
    "FacilitatorUnreachableError",
    "UnsupportedSchemeError",
    "NoAcceptableRequirementError",
    "PaymentRejectedError",
    "PaymentAbortedError",
]
