"""Tests for x402Facilitator dispatch, hooks and settlement idempotency."""

import asyncio

import pytest

from x402_engine import x402Facilitator
from x402_engine.mechanisms.evm import LedgerSettlementSigner
from x402_engine.mechanisms.evm.exact import register_exact_evm_facilitator
from x402_engine.schemas import (
    AbortResult,
    PaymentAbortedError,
    PaymentPayload,
    RecoveredVerifyResult,
    UnsupportedSchemeError,
    VerifyResponse,
)

from ..mocks import (
    BASE_NETWORK,
    CASH_NETWORK,
    CashSchemeNetworkClient,
    build_cash_facilitator,
    build_cash_payment_requirements,
    make_evm_payload,
    make_evm_requirements,
    new_account,
)


def cash_payment(payer: str = "John"):
    requirements = build_cash_payment_requirements("Company Co.", "USD", "1")
    inner = CashSchemeNetworkClient(payer).create_payment_payload(requirements)
    return PaymentPayload(payload=inner, accepted=requirements), requirements


def evm_facilitator():
    signer = LedgerSettlementSigner("0x4444444444444444444444444444444444444444")
    return register_exact_evm_facilitator(x402Facilitator(), signer), signer


# =============================================================================
# Registration and supported kinds
# =============================================================================


class TestSupported:
    @pytest.mark.asyncio
    async def test_lists_registered_kinds(self):
        facilitator, _ = build_cash_facilitator()

        supported = await facilitator.get_supported()

        assert [(k.scheme, k.network) for k in supported.kinds] == [("cash", CASH_NETWORK)]

    @pytest.mark.asyncio
    async def test_lists_evm_networks_and_signers(self):
        facilitator, _ = evm_facilitator()

        supported = await facilitator.get_supported()

        networks = {k.network for k in supported.kinds}
        assert networks == {"eip155:8453", "eip155:84532"}
        assert supported.signers == {"eip155:*": ["0x4444444444444444444444444444444444444444"]}

    @pytest.mark.asyncio
    async def test_extensions(self):
        facilitator, _ = build_cash_facilitator()
        facilitator.register_extension("bazaar").register_extension("bazaar")

        supported = await facilitator.get_supported()

        assert supported.extensions == ["bazaar"]

    @pytest.mark.asyncio
    async def test_unsupported_scheme_raises(self):
        facilitator, _ = evm_facilitator()
        payload, requirements = cash_payment()

        with pytest.raises(UnsupportedSchemeError) as exc_info:
            await facilitator.verify(payload, requirements)

        assert exc_info.value.scheme == "cash"
        assert exc_info.value.network == CASH_NETWORK


# =============================================================================
# Verify
# =============================================================================


class TestVerify:
    @pytest.mark.asyncio
    async def test_valid_payment(self):
        facilitator, _ = build_cash_facilitator()
        payload, requirements = cash_payment()

        result = await facilitator.verify(payload, requirements)

        assert result.is_valid is True
        assert result.payer == "~John"

    @pytest.mark.asyncio
    async def test_verify_has_no_side_effects(self):
        facilitator, mechanism = build_cash_facilitator()
        payload, requirements = cash_payment()

        await facilitator.verify(payload, requirements)
        await facilitator.verify(payload, requirements)

        assert mechanism.settled == []
        assert len(facilitator.ledger) == 0

    @pytest.mark.asyncio
    async def test_settled_nonce_is_reported_as_used(self):
        facilitator, _ = evm_facilitator()
        requirements = make_evm_requirements()
        payload = make_evm_payload(new_account(), requirements)

        await facilitator.settle(payload, requirements)
        result = await facilitator.verify(payload, requirements)

        assert result.is_valid is False
        assert result.invalid_reason == "nonce_already_used"

    @pytest.mark.asyncio
    async def test_before_hook_aborts(self):
        facilitator, _ = build_cash_facilitator()
        facilitator.on_before_verify(lambda ctx: AbortResult(reason="blocked_payer"))
        payload, requirements = cash_payment()

        with pytest.raises(PaymentAbortedError) as exc_info:
            await facilitator.verify(payload, requirements)

        assert exc_info.value.reason == "blocked_payer"

    @pytest.mark.asyncio
    async def test_failure_hook_can_recover(self):
        facilitator, _ = build_cash_facilitator()
        recovered = VerifyResponse(is_valid=True, payer="override")
        facilitator.on_verify_failure(lambda ctx: RecoveredVerifyResult(result=recovered))
        payload, requirements = cash_payment()
        forged = PaymentPayload(
            payload={**payload.payload, "signature": "~Mallory"}, accepted=requirements
        )

        assert await facilitator.verify(forged, requirements) is recovered

    @pytest.mark.asyncio
    async def test_after_hook_sees_result(self):
        facilitator, _ = build_cash_facilitator()
        seen = []
        facilitator.on_after_verify(lambda ctx: seen.append(ctx.result.payer))
        payload, requirements = cash_payment()

        await facilitator.verify(payload, requirements)

        assert seen == ["~John"]


# =============================================================================
# Settle
# =============================================================================


class TestSettle:
    @pytest.mark.asyncio
    async def test_settle_returns_receipt(self):
        facilitator, mechanism = build_cash_facilitator()
        payload, requirements = cash_payment()

        receipt = await facilitator.settle(payload, requirements)

        assert receipt.success is True
        assert receipt.transaction == "John transferred 1 USD to Company Co."
        assert mechanism.settled == [receipt.transaction]

    @pytest.mark.asyncio
    async def test_repeated_settle_is_idempotent(self):
        facilitator, signer = evm_facilitator()
        requirements = make_evm_requirements()
        payload = make_evm_payload(new_account(), requirements)

        first = await facilitator.settle(payload, requirements)
        second = await facilitator.settle(payload, requirements)

        assert first.success is True
        assert second == first
        assert len(signer.transfers) == 1

    @pytest.mark.asyncio
    async def test_concurrent_settles_execute_once(self):
        facilitator, signer = evm_facilitator()
        requirements = make_evm_requirements()
        payload = make_evm_payload(new_account(), requirements)

        receipts = await asyncio.gather(
            *(facilitator.settle(payload, requirements) for _ in range(5))
        )

        assert {r.transaction for r in receipts} == {receipts[0].transaction}
        assert all(r.success for r in receipts)
        assert len(signer.transfers) == 1
        assert facilitator.ledger.active_locks == 0

    @pytest.mark.asyncio
    async def test_distinct_authorizations_settle_independently(self):
        facilitator, signer = evm_facilitator()
        requirements = make_evm_requirements()
        account = new_account()

        await facilitator.settle(make_evm_payload(account, requirements), requirements)
        await facilitator.settle(make_evm_payload(account, requirements), requirements)

        assert len(signer.transfers) == 2

    @pytest.mark.asyncio
    async def test_failed_settle_is_not_recorded(self):
        facilitator, signer = evm_facilitator()
        requirements = make_evm_requirements()
        payload = make_evm_payload(
            new_account(), requirements, signed_requirements=make_evm_requirements(amount="1")
        )

        receipt = await facilitator.settle(payload, requirements)

        assert receipt.success is False
        assert len(facilitator.ledger) == 0
        assert signer.transfers == []
        assert facilitator.ledger.active_locks == 0

    @pytest.mark.asyncio
    async def test_before_settle_hook_aborts(self):
        facilitator, mechanism = build_cash_facilitator()
        facilitator.on_before_settle(lambda ctx: AbortResult(reason="maintenance"))
        payload, requirements = cash_payment()

        with pytest.raises(PaymentAbortedError):
            await facilitator.settle(payload, requirements)

        assert mechanism.settled == []


class TestSettlementStatus:
    @pytest.mark.asyncio
    async def test_status_before_and_after_settle(self):
        facilitator, _ = evm_facilitator()
        requirements = make_evm_requirements()
        payload = make_evm_payload(new_account(), requirements)

        before = await facilitator.get_settlement_status(payload, requirements)
        receipt = await facilitator.settle(payload, requirements)
        after = await facilitator.get_settlement_status(payload, requirements)

        assert before.settled is False
        assert before.settlement is None
        assert after.settled is True
        assert after.settlement == receipt

    @pytest.mark.asyncio
    async def test_shared_ledger_spans_instances(self):
        first, _ = evm_facilitator()
        second = register_exact_evm_facilitator(
            x402Facilitator(ledger=first.ledger), LedgerSettlementSigner()
        )
        requirements = make_evm_requirements(network=BASE_NETWORK)
        payload = make_evm_payload(new_account(), requirements)

        await first.settle(payload, requirements)

        assert (await second.get_settlement_status(payload, requirements)).settled is True

    @pytest.mark.asyncio
    async def test_shared_ledger_settles_once_across_instances(self):
        backend = LedgerSettlementSigner()
        first = register_exact_evm_facilitator(x402Facilitator(), backend)
        second = register_exact_evm_facilitator(x402Facilitator(ledger=first.ledger), backend)
        requirements = make_evm_requirements()
        payload = make_evm_payload(new_account(), requirements)

        one, two = await asyncio.gather(
            first.settle(payload, requirements), second.settle(payload, requirements)
        )

        assert second.ledger is first.ledger
        assert one.transaction == two.transaction
        assert len(backend.transfers) == 1
