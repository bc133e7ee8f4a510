"""x402Client - Client-side component for creating payment payloads.

Manages scheme registration, policy-based filtering, and payload creation.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from typing_extensions import Self

from .interfaces import SchemeNetworkClient
from .schemas import (
    X402_VERSION,
    AbortResult,
    Network,
    NoAcceptableRequirementError,
    PaymentAbortedError,
    PaymentCreatedContext,
    PaymentCreationContext,
    PaymentCreationFailureContext,
    PaymentPayload,
    PaymentRequired,
    PaymentRequirements,
    RecoveredPayloadResult,
    ResourceInfo,
    UnsupportedSchemeError,
    find_schemes_by_network,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Type Aliases
# ============================================================================

# Policy: filter/reorder requirements list (e.g., prefer_network, max_amount)
PaymentPolicy = Callable[[int, list[PaymentRequirements]], list[PaymentRequirements]]

# Selector: choose final requirement from filtered list
PaymentRequirementsSelector = Callable[[int, list[PaymentRequirements]], PaymentRequirements]

# Hook types
BeforePaymentCreationHook = Callable[[PaymentCreationContext], None | AbortResult]
AfterPaymentCreationHook = Callable[[PaymentCreatedContext], None]
OnPaymentCreationFailureHook = Callable[
    [PaymentCreationFailureContext], None | RecoveredPayloadResult
]


# ============================================================================
# Default Implementations
# ============================================================================


def default_payment_selector(
    version: int,
    requirements: list[PaymentRequirements],
) -> PaymentRequirements:
    """Default selector: return first requirement (the server's default)."""
    return requirements[0]


# ============================================================================
# Built-in Policies
# ============================================================================


def prefer_network(network: Network) -> PaymentPolicy:
    """Create policy that moves requirements on a network to the front."""

    def policy(version: int, reqs: list[PaymentRequirements]) -> list[PaymentRequirements]:
        preferred = [r for r in reqs if r.network == network]
        others = [r for r in reqs if r.network != network]
        return preferred + others

    return policy


def prefer_scheme(scheme: str) -> PaymentPolicy:
    """Create policy that moves requirements with a scheme to the front."""

    def policy(version: int, reqs: list[PaymentRequirements]) -> list[PaymentRequirements]:
        preferred = [r for r in reqs if r.scheme == scheme]
        others = [r for r in reqs if r.scheme != scheme]
        return preferred + others

    return policy


def max_amount(max_value: int) -> PaymentPolicy:
    """Create policy that drops requirements above a maximum amount.

    Args:
        max_value: Maximum amount in the asset's smallest unit.
    """

    def policy(version: int, reqs: list[PaymentRequirements]) -> list[PaymentRequirements]:
        return [r for r in reqs if int(r.amount) <= max_value]

    return policy


# ============================================================================
# x402Client
# ============================================================================


class x402Client:
    """Client-side component for creating payment payloads.

    Example:
        ```python
        from x402_engine import x402Client, prefer_network
        from x402_engine.mechanisms.evm.exact import ExactEvmScheme

        client = x402Client()
        client.register("eip155:8453", ExactEvmScheme(signer=my_signer))
        client.register_policy(prefer_network("eip155:8453"))

        payload = client.create_payment_payload(payment_required)
        ```
    """

    def __init__(
        self,
        payment_requirements_selector: PaymentRequirementsSelector | None = None,
    ) -> None:
        """Initialize x402Client.

        Args:
            payment_requirements_selector: Custom selector for choosing
                from filtered requirements. Defaults to first match.
        """
        self._selector = payment_requirements_selector or default_payment_selector
        self._schemes: dict[Network, dict[str, SchemeNetworkClient]] = {}
        self._policies: list[PaymentPolicy] = []

        # Hooks
        self._before_payment_creation_hooks: list[BeforePaymentCreationHook] = []
        self._after_payment_creation_hooks: list[AfterPaymentCreationHook] = []
        self._on_payment_creation_failure_hooks: list[OnPaymentCreationFailureHook] = []

    # ========================================================================
    # Registration
    # ========================================================================

    def register(self, network: Network, client: SchemeNetworkClient) -> Self:
        """Register a scheme client for a network.

        Args:
            network: Network to register for (e.g., "eip155:8453" or "eip155:*").
            client: Scheme client implementation.

        Returns:
            Self for chaining.
        """
        if network not in self._schemes:
            self._schemes[network] = {}
        self._schemes[network][client.scheme] = client
        return self

    def register_policy(self, policy: PaymentPolicy) -> Self:
        """Add a requirement filter policy.

        Policies are applied in registration order to filter and reorder
        payment requirements before selection.
        """
        self._policies.append(policy)
        return self

    def supports(self, requirements: PaymentRequirements) -> bool:
        """Check whether a registered scheme can pay the requirements."""
        schemes = find_schemes_by_network(self._schemes, requirements.network)
        return schemes is not None and requirements.scheme in schemes

    # ========================================================================
    # Hook Registration
    # ========================================================================

    def on_before_payment_creation(self, hook: BeforePaymentCreationHook) -> Self:
        """Register hook to run before payment creation.

        Hook can return AbortResult to abort the operation.
        """
        self._before_payment_creation_hooks.append(hook)
        return self

    def on_after_payment_creation(self, hook: AfterPaymentCreationHook) -> Self:
        self._after_payment_creation_hooks.append(hook)
        return self

    def on_payment_creation_failure(self, hook: OnPaymentCreationFailureHook) -> Self:
        """Register hook to run on payment creation failure.

        Hook can return RecoveredPayloadResult to recover with a payload.
        """
        self._on_payment_creation_failure_hooks.append(hook)
        return self

    # ========================================================================
    # Payment Creation
    # ========================================================================

    def select_requirements(self, payment_required: PaymentRequired) -> PaymentRequirements:
        """Pick the requirement to pay.

        Keeps only requirements with a registered scheme, applies policies,
        then the selector.

        Raises:
            UnsupportedSchemeError: If no requirement has a registered scheme.
            NoAcceptableRequirementError: If policies filtered out everything.
        """
        version = payment_required.x402_version

        supported = [r for r in payment_required.accepts if self.supports(r)]
        if not supported:
            offered = ", ".join(f"{r.scheme}@{r.network}" for r in payment_required.accepts)
            raise UnsupportedSchemeError(
                message=f"No registered scheme for any offered requirement ({offered or 'none'})"
            )

        filtered = supported
        for policy in self._policies:
            filtered = policy(version, filtered)

        if not filtered:
            raise NoAcceptableRequirementError(
                "All payment requirements were rejected by client policies"
            )

        return self._selector(version, filtered)

    def create_payment_payload(
        self,
        payment_required: PaymentRequired,
        resource: ResourceInfo | None = None,
        extensions: dict[str, Any] | None = None,
    ) -> PaymentPayload:
        """Create a payment payload for the given 402 challenge.

        Args:
            payment_required: The 402 challenge from the server.
            resource: Optional resource info to include.
            extensions: Optional extensions to include.

        Returns:
            Signed PaymentPayload.

        Raises:
            UnsupportedSchemeError: If no requirement has a registered scheme.
            NoAcceptableRequirementError: If policies filtered out everything.
            PaymentAbortedError: If a before hook aborts the operation.
        """
        selected = self.select_requirements(payment_required)

        context = PaymentCreationContext(
            payment_required=payment_required,
            selected_requirements=selected,
        )
        for hook in self._before_payment_creation_hooks:
            result = hook(context)
            if isinstance(result, AbortResult):
                raise PaymentAbortedError(result.reason, reason=result.reason)

        try:
            schemes = find_schemes_by_network(self._schemes, selected.network)
            if schemes is None or selected.scheme not in schemes:
                raise UnsupportedSchemeError(selected.scheme, selected.network)

            inner_payload = schemes[selected.scheme].create_payment_payload(selected)

            payload = PaymentPayload(
                x402_version=X402_VERSION,
                payload=inner_payload,
                accepted=selected,
                resource=resource or payment_required.resource,
                extensions=extensions or payment_required.extensions,
            )
        except Exception as e:
            failure_context = PaymentCreationFailureContext(
                payment_required=payment_required,
                selected_requirements=selected,
                error=e,
            )
            for hook in self._on_payment_creation_failure_hooks:
                recovered = hook(failure_context)
                if isinstance(recovered, RecoveredPayloadResult):
                    return recovered.payload
            raise

        logger.debug(
            "Created %s payment of %s on %s", selected.scheme, selected.amount, selected.network
        )
        result_context = PaymentCreatedContext(
            payment_required=payment_required,
            selected_requirements=selected,
            payment_payload=payload,
        )
        for hook in self._after_payment_creation_hooks:
            hook(result_context)

        return payload
