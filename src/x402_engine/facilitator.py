"""x402Facilitator - Payment verification and settlement component.

Runs in-process or behind an HTTP service, dispatches to registered scheme
mechanisms and enforces settlement idempotency per authorization.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from typing_extensions import Self

from .interfaces import SchemeNetworkFacilitator
from .schemas import (
    REASON_NONCE_ALREADY_USED,
    AbortResult,
    Network,
    PaymentAbortedError,
    PaymentPayload,
    PaymentRequirements,
    RecoveredSettleResult,
    RecoveredVerifyResult,
    SettleContext,
    SettleFailureContext,
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
    derive_network_pattern,
    matches_network_pattern,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Type Aliases
# ============================================================================

SettlementKey = tuple[str, str, str]  # (payer, network, nonce)

BeforeVerifyHook = Callable[[VerifyContext], None | AbortResult]
AfterVerifyHook = Callable[[VerifyResultContext], None]
OnVerifyFailureHook = Callable[[VerifyFailureContext], None | RecoveredVerifyResult]

BeforeSettleHook = Callable[[SettleContext], None | AbortResult]
AfterSettleHook = Callable[[SettleResultContext], None]
OnSettleFailureHook = Callable[[SettleFailureContext], None | RecoveredSettleResult]


# ============================================================================
# Internal Types
# ============================================================================


@dataclass
class _SchemeData:
    """Internal storage for registered schemes."""

    facilitator: SchemeNetworkFacilitator
    networks: set[Network]
    pattern: Network  # Wildcard like "eip155:*"


# ============================================================================
# Settlement Ledger
# ============================================================================


class SettlementLedger:
    """Record of successful settlements keyed by (payer, network, nonce).

    Each key has its own asyncio.Lock so concurrent settles of the same
    authorization are serialized while unrelated settles proceed in
    parallel. A key's lock lives only while some settle holds or awaits it.
    """

    def __init__(self) -> None:
        self._receipts: dict[SettlementKey, SettleResponse] = {}
        self._locks: dict[SettlementKey, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def locked(self, key: SettlementKey) -> AsyncIterator[None]:
        lock, users = self._locks.get(key, (asyncio.Lock(), 0))
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users == 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    def get(self, key: SettlementKey) -> SettleResponse | None:
        return self._receipts.get(key)

    def record(self, key: SettlementKey, receipt: SettleResponse) -> None:
        self._receipts[key] = receipt

    def __contains__(self, key: object) -> bool:
        return key in self._receipts

    def __len__(self) -> int:
        return len(self._receipts)


# ============================================================================
# x402Facilitator
# ============================================================================


class x402Facilitator:
    """Payment verification and settlement component.

    Implements the FacilitatorClient protocol, so a resource server can use
    it directly without an HTTP hop.

    Example:
        ```python
        from x402_engine import x402Facilitator
        from x402_engine.mechanisms.evm.exact import ExactEvmFacilitatorScheme
        from x402_engine.mechanisms.evm.signers import LedgerSettlementSigner

        facilitator = x402Facilitator()
        facilitator.register(
            ["eip155:8453", "eip155:84532"],
            ExactEvmFacilitatorScheme(LedgerSettlementSigner()),
        )

        result = await facilitator.verify(payload, requirements)
        receipt = await facilitator.settle(payload, requirements)
        ```
    """

    def __init__(self, ledger: SettlementLedger | None = None) -> None:
        """Initialize x402Facilitator.

        Args:
            ledger: Settlement ledger, shared when several facilitator
                instances front the same backend.
        """
        self._schemes: list[_SchemeData] = []
        self._extensions: list[str] = []
        self._ledger = ledger if ledger is not None else SettlementLedger()

        # Hooks
        self._before_verify_hooks: list[BeforeVerifyHook] = []
        self._after_verify_hooks: list[AfterVerifyHook] = []
        self._on_verify_failure_hooks: list[OnVerifyFailureHook] = []

        self._before_settle_hooks: list[BeforeSettleHook] = []
        self._after_settle_hooks: list[AfterSettleHook] = []
        self._on_settle_failure_hooks: list[OnSettleFailureHook] = []

    @property
    def ledger(self) -> SettlementLedger:
        return self._ledger

    # ========================================================================
    # Registration
    # ========================================================================

    def register(
        self,
        networks: list[Network],
        facilitator: SchemeNetworkFacilitator,
    ) -> Self:
        """Register a scheme facilitator for one or more networks.

        Args:
            networks: List of networks to register for.
            facilitator: Scheme facilitator implementation.

        Returns:
            Self for chaining.
        """
        pattern = derive_network_pattern(networks)
        self._schemes.append(
            _SchemeData(
                facilitator=facilitator,
                networks=set(networks),
                pattern=pattern,
            )
        )
        return self

    def register_extension(self, extension: str) -> Self:
        if extension not in self._extensions:
            self._extensions.append(extension)
        return self

    # ========================================================================
    # Hook Registration
    # ========================================================================

    def on_before_verify(self, hook: BeforeVerifyHook) -> Self:
        self._before_verify_hooks.append(hook)
        return self

    def on_after_verify(self, hook: AfterVerifyHook) -> Self:
        self._after_verify_hooks.append(hook)
        return self

    def on_verify_failure(self, hook: OnVerifyFailureHook) -> Self:
        self._on_verify_failure_hooks.append(hook)
        return self

    def on_before_settle(self, hook: BeforeSettleHook) -> Self:
        self._before_settle_hooks.append(hook)
        return self

    def on_after_settle(self, hook: AfterSettleHook) -> Self:
        self._after_settle_hooks.append(hook)
        return self

    def on_settle_failure(self, hook: OnSettleFailureHook) -> Self:
        self._on_settle_failure_hooks.append(hook)
        return self

    # ========================================================================
    # Supported
    # ========================================================================

    async def get_supported(self) -> SupportedResponse:
        """Describe the (scheme, network) pairs this facilitator handles."""
        kinds: list[SupportedKind] = []
        signers: dict[str, list[str]] = {}

        for data in self._schemes:
            mechanism = data.facilitator
            for network in sorted(data.networks):
                kinds.append(
                    SupportedKind(
                        scheme=mechanism.scheme,
                        network=network,
                        extra=mechanism.get_extra(network),
                    )
                )
                family_signers = signers.setdefault(mechanism.caip_family, [])
                for address in mechanism.get_signers(network):
                    if address not in family_signers:
                        family_signers.append(address)

        return SupportedResponse(
            kinds=kinds,
            extensions=list(self._extensions),
            signers=signers,
        )

    # ========================================================================
    # Verify
    # ========================================================================

    async def verify(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> VerifyResponse:
        """Verify a payment without side effects.

        A payment whose authorization has already been settled is reported
        invalid with ``nonce_already_used``.

        Raises:
            UnsupportedSchemeError: If no mechanism handles the payload.
            PaymentAbortedError: If a before hook aborts.
        """
        context = VerifyContext(payment_payload=payload, requirements=requirements)
        for hook in self._before_verify_hooks:
            result = hook(context)
            if isinstance(result, AbortResult):
                raise PaymentAbortedError(result.reason, reason=result.reason)

        mechanism = self._find_mechanism(payload.get_scheme(), payload.get_network())

        verify_result = mechanism.verify(payload, requirements)
        if verify_result.is_valid:
            key = mechanism.settlement_key(payload)
            if key is not None and key in self._ledger:
                verify_result = VerifyResponse(
                    is_valid=False,
                    invalid_reason=REASON_NONCE_ALREADY_USED,
                    payer=verify_result.payer,
                )

        if not verify_result.is_valid:
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
            payment_payload=payload,
            requirements=requirements,
            result=verify_result,
        )
        for hook in self._after_verify_hooks:
            hook(result_context)

        return verify_result

    # ========================================================================
    # Settle
    # ========================================================================

    async def settle(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        """Settle a payment exactly once per (payer, network, nonce).

        Repeating a settle, sequentially or concurrently, returns the stored
        receipt and never executes the transfer twice.

        Raises:
            UnsupportedSchemeError: If no mechanism handles the payload.
            PaymentAbortedError: If a before hook aborts.
        """
        context = SettleContext(payment_payload=payload, requirements=requirements)
        for hook in self._before_settle_hooks:
            result = hook(context)
            if isinstance(result, AbortResult):
                raise PaymentAbortedError(result.reason, reason=result.reason)

        mechanism = self._find_mechanism(payload.get_scheme(), payload.get_network())
        key = mechanism.settlement_key(payload)

        if key is None:
            settle_result = mechanism.settle(payload, requirements)
        else:
            async with self._ledger.locked(key):
                existing = self._ledger.get(key)
                if existing is not None:
                    logger.info("Settlement replay for nonce %s on %s", key[2], key[1])
                    return existing

                settle_result = mechanism.settle(payload, requirements)
                if settle_result.success:
                    self._ledger.record(key, settle_result)

        if not settle_result.success:
            failure_context = SettleFailureContext(
                payment_payload=payload,
                requirements=requirements,
                error=Exception(settle_result.error_reason or "Settlement failed"),
            )
            for hook in self._on_settle_failure_hooks:
                recovered = hook(failure_context)
                if isinstance(recovered, RecoveredSettleResult):
                    return recovered.result
            return settle_result

        result_context = SettleResultContext(
            payment_payload=payload,
            requirements=requirements,
            result=settle_result,
        )
        for hook in self._after_settle_hooks:
            hook(result_context)

        return settle_result

    async def get_settlement_status(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettlementStatusResponse:
        """Report whether the payload's authorization has been settled."""
        mechanism = self._find_mechanism(payload.get_scheme(), payload.get_network())
        key = mechanism.settlement_key(payload)
        receipt = self._ledger.get(key) if key is not None else None
        return SettlementStatusResponse(settled=receipt is not None, settlement=receipt)

    # ========================================================================
    # Internal
    # ========================================================================

    def _find_mechanism(self, scheme: str, network: Network) -> SchemeNetworkFacilitator:
        for data in self._schemes:
            if data.facilitator.scheme != scheme:
                continue
            if network in data.networks or matches_network_pattern(network, data.pattern):
                return data.facilitator

        raise UnsupportedSchemeError(scheme, network)
