"""x402ResourceServer - Server-side component for protecting resources.

Builds payment requirements, verifies payments, and settles transactions
via facilitator clients.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Hashable
from dataclasses import dataclass
from typing import Any, Callable, Protocol, TypeVar

from typing_extensions import Self

from .interfaces import SchemeNetworkServer
from .reconciliation import ReconcileResult, SettlementOutbox, settlement_entry_key
from .schemas import (
    X402_VERSION,
    AbortResult,
    FacilitatorUnreachableError,
    Network,
    PaymentAbortedError,
    PaymentError,
    PaymentPayload,
    PaymentRequired,
    PaymentRequirements,
    RecoveredSettleResult,
    RecoveredVerifyResult,
    ResourceConfig,
    ResourceInfo,
    SettleContext,
    SettleFailureContext,
    SettlementFailedError,
    SettlementStatusResponse,
    SettleResponse,
    SettleResultContext,
    SupportedKind,
    SupportedResponse,
    UnsupportedSchemeError,
    VerifyContext,
    VerifyFailureContext,
    VerifyResponse,
    VerifyResultContext,
    find_schemes_by_network,
    matches_network_pattern,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

REASON_SETTLEMENT_CANCELLED = "settlement_cancelled"

# ============================================================================
# FacilitatorClient Protocol
# ============================================================================


class FacilitatorClient(Protocol):
    """Protocol for facilitator clients (HTTP or local).

    Implemented by HTTPFacilitatorClient for remote facilitators and by
    x402Facilitator in-process. ``verify`` and ``settle`` report rejection
    through the response objects; transport problems raise
    FacilitatorUnreachableError.

    Clients may also provide ``get_settlement_status(payload, requirements)``
    returning a SettlementStatusResponse; it is queried before retrying a
    settlement whose outcome is unknown.
    """

    async def verify(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> VerifyResponse:
        ...

    async def settle(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        ...

    async def get_supported(self) -> SupportedResponse:
        ...


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class RetryPolicy:
    """Bounds for facilitator round trips.

    Each attempt is limited to ``timeout`` seconds. Transient failures are
    retried up to ``max_retries`` times with exponential backoff.
    """

    timeout: float = 10.0
    max_retries: int = 2
    backoff: float = 0.25
    max_backoff: float = 2.0

    def delay(self, attempt: int) -> float:
        return min(self.backoff * 2 ** (attempt - 1), self.max_backoff)


# ============================================================================
# Type Aliases
# ============================================================================

BeforeVerifyHook = Callable[[VerifyContext], None | AbortResult]
AfterVerifyHook = Callable[[VerifyResultContext], None]
OnVerifyFailureHook = Callable[[VerifyFailureContext], None | RecoveredVerifyResult]

BeforeSettleHook = Callable[[SettleContext], None | AbortResult]
AfterSettleHook = Callable[[SettleResultContext], None]
OnSettleFailureHook = Callable[[SettleFailureContext], None | RecoveredSettleResult]


# ============================================================================
# x402ResourceServer
# ============================================================================


class x402ResourceServer:
    """Server-side component for protecting resources.

    Example:
        ```python
        from x402_engine import x402ResourceServer
        from x402_engine.http import HTTPFacilitatorClient
        from x402_engine.mechanisms.evm.exact import ExactEvmServerScheme

        facilitator = HTTPFacilitatorClient(FacilitatorConfig(url="https://x402.org/facilitator"))
        server = x402ResourceServer(facilitator)
        server.register("eip155:8453", ExactEvmServerScheme())
        await server.initialize()

        requirements = server.build_payment_requirements(
            ResourceConfig(scheme="exact", network="eip155:8453", pay_to="0x...", price="$0.001")
        )
        result = await server.verify_payment(payload, requirements[0])
        ```
    """

    def __init__(
        self,
        facilitator_clients: FacilitatorClient | list[FacilitatorClient] | None = None,
        retry_policy: RetryPolicy | None = None,
        outbox: SettlementOutbox | None = None,
    ) -> None:
        """Initialize x402ResourceServer.

        Args:
            facilitator_clients: Facilitator client(s) for verify/settle.
                Earlier clients take precedence for a (network, scheme).
            retry_policy: Timeout and retry bounds for facilitator calls.
            outbox: Where failed post-delivery settlements are recorded.
        """
        if facilitator_clients is None:
            self._facilitator_clients: list[FacilitatorClient] = []
        elif isinstance(facilitator_clients, list):
            self._facilitator_clients = facilitator_clients
        else:
            self._facilitator_clients = [facilitator_clients]

        self._retry_policy = retry_policy or RetryPolicy()
        self._outbox = outbox if outbox is not None else SettlementOutbox()

        # Scheme servers: network -> scheme -> server
        self._schemes: dict[Network, dict[str, SchemeNetworkServer]] = {}

        # Facilitator client map: network -> scheme -> client
        self._facilitator_clients_map: dict[Network, dict[str, FacilitatorClient]] = {}

        # Supported kinds from facilitators: network -> scheme -> kind
        self._supported_kinds: dict[Network, dict[str, SupportedKind]] = {}

        # Payments between verification and settlement
        self._claims: set[Hashable] = set()

        # Hooks
        self._before_verify_hooks: list[BeforeVerifyHook] = []
        self._after_verify_hooks: list[AfterVerifyHook] = []
        self._on_verify_failure_hooks: list[OnVerifyFailureHook] = []

        self._before_settle_hooks: list[BeforeSettleHook] = []
        self._after_settle_hooks: list[AfterSettleHook] = []
        self._on_settle_failure_hooks: list[OnSettleFailureHook] = []

        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def outbox(self) -> SettlementOutbox:
        return self._outbox

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    # ========================================================================
    # Registration
    # ========================================================================

    def register(self, network: Network, server: SchemeNetworkServer) -> Self:
        """Register a scheme server for a network.

        Args:
            network: Network to register for (e.g., "eip155:8453" or "eip155:*").
            server: Scheme server implementation.

        Returns:
            Self for chaining.
        """
        if network not in self._schemes:
            self._schemes[network] = {}
        self._schemes[network][server.scheme] = server
        return self

    def has_registered_scheme(self, network: Network, scheme: str) -> bool:
        """Check if a scheme is registered for a network or its wildcard."""
        schemes = find_schemes_by_network(self._schemes, network)
        return schemes is not None and scheme in schemes

    def get_supported_kind(self, network: Network, scheme: str) -> SupportedKind | None:
        """Get the facilitator's SupportedKind for a network/scheme.

        Returns:
            SupportedKind if a facilitator supports it, None otherwise.
        """
        for kind_network, schemes in self._supported_kinds.items():
            if scheme in schemes and matches_network_pattern(network, kind_network):
                return schemes[scheme]
        return None

    # ========================================================================
    # Hook Registration
    # ========================================================================

    def on_before_verify(self, hook: BeforeVerifyHook) -> Self:
        """Register hook to run before verification.

        Args:
            hook: Hook function. Can return AbortResult to abort.

        Returns:
            Self for chaining.
        """
        self._before_verify_hooks.append(hook)
        return self

    def on_after_verify(self, hook: AfterVerifyHook) -> Self:
        """Register hook to run after successful verification."""
        self._after_verify_hooks.append(hook)
        return self

    def on_verify_failure(self, hook: OnVerifyFailureHook) -> Self:
        """Register hook to run on verification failure.

        Args:
            hook: Hook function. Can return RecoveredVerifyResult to recover.

        Returns:
            Self for chaining.
        """
        self._on_verify_failure_hooks.append(hook)
        return self

    def on_before_settle(self, hook: BeforeSettleHook) -> Self:
        """Register hook to run before settlement."""
        self._before_settle_hooks.append(hook)
        return self

    def on_after_settle(self, hook: AfterSettleHook) -> Self:
        """Register hook to run after successful settlement."""
        self._after_settle_hooks.append(hook)
        return self

    def on_settle_failure(self, hook: OnSettleFailureHook) -> Self:
        """Register hook to run on settlement failure.

        Args:
            hook: Hook function. Can return RecoveredSettleResult to recover.

        Returns:
            Self for chaining.
        """
        self._on_settle_failure_hooks.append(hook)
        return self

    # ========================================================================
    # Initialization
    # ========================================================================

    async def initialize(self) -> None:
        """Initialize server by fetching supported kinds from facilitators.

        Must be called before building requirements, verifying or settling.
        Earlier facilitators in the list get precedence.

        Raises:
            FacilitatorUnreachableError: If a facilitator cannot be reached.
        """
        for client in self._facilitator_clients:
            supported = await self._call_with_retry("get_supported", client.get_supported)

            for kind in supported.kinds:
                network = kind.network
                scheme = kind.scheme

                self._facilitator_clients_map.setdefault(network, {}).setdefault(scheme, client)
                self._supported_kinds.setdefault(network, {}).setdefault(scheme, kind)

        self._initialized = True

    # ========================================================================
    # Build Requirements
    # ========================================================================

    def build_payment_requirements(
        self,
        config: ResourceConfig,
        resource: ResourceInfo | None = None,
    ) -> list[PaymentRequirements]:
        """Build payment requirements for a protected resource.

        Args:
            config: Resource pricing configuration.
            resource: Optional resource description copied into requirements.

        Returns:
            List of payment requirements (usually one).

        Raises:
            UnsupportedSchemeError: If the scheme is not registered or not
                supported by any facilitator.
            RuntimeError: If not initialized.
        """
        if not self._initialized:
            raise RuntimeError("Server not initialized. Call initialize() first.")

        schemes = find_schemes_by_network(self._schemes, config.network)
        if schemes is None or config.scheme not in schemes:
            raise UnsupportedSchemeError(config.scheme, config.network)

        server = schemes[config.scheme]

        supported_kind = self.get_supported_kind(config.network, config.scheme)
        if supported_kind is None:
            raise UnsupportedSchemeError(config.scheme, config.network)

        asset_amount = server.parse_price(config.price, config.network)

        extra = dict(asset_amount.extra or {})
        extra.update(config.extra or {})

        requirements = PaymentRequirements(
            scheme=config.scheme,
            network=config.network,
            asset=asset_amount.asset,
            amount=asset_amount.amount,
            pay_to=config.pay_to,
            max_timeout_seconds=config.max_timeout_seconds or 300,
            resource=resource.url if resource else None,
            description=resource.description if resource else None,
            mime_type=resource.mime_type if resource else None,
            extra=extra,
        )

        return [server.enhance_payment_requirements(requirements, supported_kind)]

    def create_payment_required_response(
        self,
        requirements: list[PaymentRequirements],
        resource: ResourceInfo | None = None,
        error: str | None = None,
        extensions: dict[str, Any] | None = None,
    ) -> PaymentRequired:
        """Create a 402 Payment Required challenge."""
        return PaymentRequired(
            x402_version=X402_VERSION,
            error=error,
            resource=resource,
            accepts=requirements,
            extensions=extensions,
        )

    # ========================================================================
    # Find Matching Requirements
    # ========================================================================

    def find_matching_requirements(
        self,
        available: list[PaymentRequirements],
        payload: PaymentPayload,
    ) -> PaymentRequirements | None:
        """Find the configured requirement matching a payload's scheme and network.

        Amount, payee and asset are deliberately not compared here; they are
        checked by the facilitator so that an underpayment yields a precise
        verification reason.

        Returns:
            Matching requirements, or None if not found.
        """
        for req in available:
            if payload.get_scheme() == req.scheme and payload.get_network() == req.network:
                return req

        return None

    # ========================================================================
    # Verify Payment
    # ========================================================================

    async def verify_payment(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> VerifyResponse:
        """Verify a payment via facilitator.

        Returns:
            VerifyResponse with is_valid=True or is_valid=False.

        Raises:
            UnsupportedSchemeError: If no facilitator for scheme/network.
            FacilitatorUnreachableError: If the facilitator did not answer
                within the retry policy.
            PaymentAbortedError: If a before hook aborts.
            RuntimeError: If not initialized.
        """
        if not self._initialized:
            raise RuntimeError("Server not initialized. Call initialize() first.")

        context = VerifyContext(payment_payload=payload, requirements=requirements)
        for hook in self._before_verify_hooks:
            result = hook(context)
            if isinstance(result, AbortResult):
                raise PaymentAbortedError(result.reason, reason=result.reason)

        try:
            client = self._get_facilitator_client(payload.get_network(), payload.get_scheme())
            verify_result = await self._call_with_retry(
                "verify", lambda: client.verify(payload, requirements)
            )
        except PaymentError as e:
            failure_context = VerifyFailureContext(
                payment_payload=payload, requirements=requirements, error=e
            )
            for hook in self._on_verify_failure_hooks:
                recovered = hook(failure_context)
                if isinstance(recovered, RecoveredVerifyResult):
                    return recovered.result
            raise

        if not verify_result.is_valid:
            logger.warning(
                "Payment verification failed for %s: %s",
                verify_result.payer or "unknown payer",
                verify_result.invalid_reason,
            )
            failure_context = VerifyFailureContext(
                payment_payload=payload,
                requirements=requirements,
                error=Exception(verify_result.invalid_reason or "Verification failed"),
            )
            for hook in self._on_verify_failure_hooks:
                recovered = hook(failure_context)
                if isinstance(recovered, RecoveredVerifyResult):
                    return recovered.result
            return verify_result

        result_context = VerifyResultContext(
            payment_payload=payload, requirements=requirements, result=verify_result
        )
        for hook in self._after_verify_hooks:
            hook(result_context)

        return verify_result

    # ========================================================================
    # Payment Claims
    # ========================================================================

    def claim_payment(self, payload: PaymentPayload) -> bool:
        """Reserve a verified payment until it is settled or released.

        A facilitator only rejects an authorization once it has settled, so
        two requests carrying the same payment can both verify. The first
        claim wins; later ones get False until the claim is released.

        Claims stay held while a failed settlement waits in the outbox and
        are released when reconciliation resolves or gives up on it.
        """
        key = self._claim_key(payload)
        if key in self._claims:
            return False
        self._claims.add(key)
        return True

    def release_payment(self, payload: PaymentPayload) -> None:
        """Drop the claim on a payment that will not be settled now."""
        self._claims.discard(self._claim_key(payload))

    @property
    def active_claims(self) -> int:
        return len(self._claims)

    def _claim_key(self, payload: PaymentPayload) -> Hashable:
        schemes = find_schemes_by_network(self._schemes, payload.get_network())
        scheme_server = schemes.get(payload.get_scheme()) if schemes else None
        identify = getattr(scheme_server, "settlement_key", None)
        key = identify(payload) if identify is not None else None
        return key if key is not None else settlement_entry_key(payload)

    # ========================================================================
    # Settle Payment
    # ========================================================================

    async def settle_payment(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        """Settle a payment via facilitator.

        A failed or interrupted settlement is recorded in the outbox for
        reconciliation.

        Returns:
            SettleResponse with success=True or success=False.

        Raises:
            SettlementFailedError: If the facilitator could not be reached or
                the settlement was cancelled; ``indeterminate`` tells whether
                the transfer may have happened.
            UnsupportedSchemeError: If no facilitator for scheme/network.
            PaymentAbortedError: If a before hook aborts.
            RuntimeError: If not initialized.
        """
        if not self._initialized:
            raise RuntimeError("Server not initialized. Call initialize() first.")

        context = SettleContext(payment_payload=payload, requirements=requirements)
        for hook in self._before_settle_hooks:
            result = hook(context)
            if isinstance(result, AbortResult):
                self.release_payment(payload)
                raise PaymentAbortedError(result.reason, reason=result.reason)

        client = self._get_facilitator_client(payload.get_network(), payload.get_scheme())

        try:
            settle_result = await self._settle_with_retry(client, payload, requirements)
        except asyncio.CancelledError:
            self._outbox.add(payload, requirements, REASON_SETTLEMENT_CANCELLED, True)
            logger.error("Settlement cancelled mid-flight; outcome unknown, queued for reconciliation")
            raise SettlementFailedError(
                "Settlement cancelled before completion",
                reason=REASON_SETTLEMENT_CANCELLED,
                indeterminate=True,
            ) from None
        except FacilitatorUnreachableError as e:
            self._outbox.add(payload, requirements, e.reason, e.indeterminate)
            logger.error("Settlement failed, facilitator unreachable: %s", e)
            error = SettlementFailedError(str(e), reason=e.reason, indeterminate=e.indeterminate)
            failure_context = SettleFailureContext(
                payment_payload=payload, requirements=requirements, error=error
            )
            for hook in self._on_settle_failure_hooks:
                recovered = hook(failure_context)
                if isinstance(recovered, RecoveredSettleResult):
                    return recovered.result
            raise error from e

        if not settle_result.success:
            reason = settle_result.error_reason or "Settlement failed"
            self._outbox.add(payload, requirements, reason, False)
            logger.error("Settlement rejected by facilitator: %s", reason)
            failure_context = SettleFailureContext(
                payment_payload=payload,
                requirements=requirements,
                error=Exception(reason),
            )
            for hook in self._on_settle_failure_hooks:
                recovered = hook(failure_context)
                if isinstance(recovered, RecoveredSettleResult):
                    return recovered.result
            return settle_result

        logger.info(
            "Settled payment from %s on %s: %s",
            settle_result.payer,
            settle_result.network,
            settle_result.transaction,
        )
        self.release_payment(payload)
        result_context = SettleResultContext(
            payment_payload=payload, requirements=requirements, result=settle_result
        )
        for hook in self._after_settle_hooks:
            hook(result_context)

        return settle_result

    async def get_settlement_status(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettlementStatusResponse | None:
        """Ask the facilitator whether a payment has been settled.

        Returns:
            The status, or None if the facilitator cannot answer.
        """
        client = self._get_facilitator_client(payload.get_network(), payload.get_scheme())
        return await self._query_settlement_status(client, payload, requirements)

    # ========================================================================
    # Reconciliation
    # ========================================================================

    async def reconcile(self) -> list[ReconcileResult]:
        """Retry settlements recorded in the outbox.

        Each entry is first looked up with a settlement status query, then
        re-settled (idempotently) if it is not known to be settled. Entries
        that keep failing are dropped after the outbox's max_attempts.
        """
        results: list[ReconcileResult] = []

        for entry in self._outbox.pending():
            entry.attempts += 1
            result: ReconcileResult
            try:
                client = self._get_facilitator_client(
                    entry.payload.get_network(), entry.payload.get_scheme()
                )
                status = await self._query_settlement_status(
                    client, entry.payload, entry.requirements
                )
                if status is not None and status.settled:
                    receipt = status.settlement or SettleResponse(
                        success=True, network=entry.requirements.network
                    )
                else:
                    receipt = await self._settle_with_retry(
                        client, entry.payload, entry.requirements
                    )
            except PaymentError as e:
                result = ReconcileResult(entry=entry, resolved=False, error=str(e))
            else:
                if receipt.success:
                    result = ReconcileResult(entry=entry, resolved=True, receipt=receipt)
                else:
                    result = ReconcileResult(
                        entry=entry,
                        resolved=False,
                        receipt=receipt,
                        error=receipt.error_reason,
                    )

            if result.resolved:
                logger.info("Reconciled settlement %s", entry.key[:16])
                self._outbox.resolve(entry)
                self.release_payment(entry.payload)
            elif entry.attempts >= self._outbox.max_attempts:
                logger.error(
                    "Giving up on settlement %s after %d attempts: %s",
                    entry.key[:16],
                    entry.attempts,
                    result.error,
                )
                self._outbox.resolve(entry)
                self.release_payment(entry.payload)

            results.append(result)

        return results

    # ========================================================================
    # Internal
    # ========================================================================

    def _get_facilitator_client(self, network: Network, scheme: str) -> FacilitatorClient:
        clients = find_schemes_by_network(self._facilitator_clients_map, network)
        if clients is None or scheme not in clients:
            raise UnsupportedSchemeError(scheme, network)
        return clients[scheme]

    async def _call_with_retry(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        indeterminate: bool = False,
    ) -> T:
        """Run a facilitator call with timeout and bounded retries.

        Raises:
            FacilitatorUnreachableError: When every attempt failed transiently.
        """
        policy = self._retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                return await asyncio.wait_for(call(), timeout=policy.timeout)
            except asyncio.TimeoutError:
                error = FacilitatorUnreachableError(
                    f"Facilitator {operation} timed out after {policy.timeout}s",
                    indeterminate=indeterminate,
                )
            except FacilitatorUnreachableError as e:
                error = e

            if attempt > policy.max_retries:
                raise error

            delay = policy.delay(attempt)
            logger.warning(
                "Facilitator %s attempt %d failed (%s), retrying in %.2fs",
                operation,
                attempt,
                error,
                delay,
            )
            await asyncio.sleep(delay)

    async def _settle_with_retry(
        self,
        client: FacilitatorClient,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        """Settle with bounded retries, checking status before each retry."""
        policy = self._retry_policy
        attempt = 0
        while True:
            attempt += 1
            if attempt > 1:
                status = await self._query_settlement_status(client, payload, requirements)
                if status is not None and status.settled and status.settlement is not None:
                    return status.settlement

            try:
                return await asyncio.wait_for(
                    client.settle(payload, requirements), timeout=policy.timeout
                )
            except asyncio.TimeoutError:
                error = FacilitatorUnreachableError(
                    f"Facilitator settle timed out after {policy.timeout}s",
                    indeterminate=True,
                )
            except FacilitatorUnreachableError as e:
                error = e

            if attempt > policy.max_retries:
                raise error

            delay = policy.delay(attempt)
            logger.warning(
                "Facilitator settle attempt %d failed (%s), retrying in %.2fs",
                attempt,
                error,
                delay,
            )
            await asyncio.sleep(delay)

    async def _query_settlement_status(
        self,
        client: FacilitatorClient,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettlementStatusResponse | None:
        query = getattr(client, "get_settlement_status", None)
        if query is None:
            return None

        try:
            return await asyncio.wait_for(
                query(payload, requirements), timeout=self._retry_policy.timeout
            )
        except (asyncio.TimeoutError, FacilitatorUnreachableError) as e:
            logger.warning("Settlement status query failed: %s", e)
            return None
