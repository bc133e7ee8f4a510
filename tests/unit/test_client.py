"""Tests for x402Client requirement selection, policies and hooks."""

import pytest

from x402_engine import (
    NoAcceptableRequirementError,
    PaymentAbortedError,
    PaymentPayload,
    PaymentRequired,
    ResourceInfo,
    UnsupportedSchemeError,
    max_amount,
    prefer_network,
    prefer_scheme,
    x402Client,
)
from x402_engine.mechanisms.evm import EthAccountSigner, ExactEvmPayload
from x402_engine.mechanisms.evm.exact import register_exact_evm_client
from x402_engine.schemas import AbortResult, RecoveredPayloadResult

from ..mocks import (
    BASE_NETWORK,
    CASH_NETWORK,
    CashSchemeNetworkClient,
    build_cash_payment_requirements,
    make_evm_requirements,
    new_account,
)


def challenge(*accepts, **kwargs):
    return PaymentRequired(accepts=list(accepts), **kwargs)


def cash_client(payer: str = "John") -> x402Client:
    return x402Client().register(CASH_NETWORK, CashSchemeNetworkClient(payer))


# =============================================================================
# Selection
# =============================================================================


class TestSelectRequirements:
    def test_default_selector_takes_servers_first_choice(self):
        client = cash_client()
        first = build_cash_payment_requirements("A", "USD", "1")
        second = build_cash_payment_requirements("B", "USD", "1")

        assert client.select_requirements(challenge(first, second)) is first

    def test_skips_unregistered_schemes(self):
        client = cash_client()
        evm = make_evm_requirements()
        cash = build_cash_payment_requirements("A", "USD", "1")

        assert client.select_requirements(challenge(evm, cash)) is cash

    def test_nothing_registered_raises(self):
        client = cash_client()

        with pytest.raises(UnsupportedSchemeError) as exc_info:
            client.select_requirements(challenge(make_evm_requirements()))

        assert "exact@eip155:8453" in str(exc_info.value)

    def test_wildcard_registration(self):
        client = register_exact_evm_client(x402Client(), EthAccountSigner(new_account()))

        assert client.supports(make_evm_requirements(network="eip155:84532"))
        assert not client.supports(build_cash_payment_requirements("A", "USD", "1"))

    def test_custom_selector(self):
        client = x402Client(payment_requirements_selector=lambda version, reqs: reqs[-1])
        client.register(CASH_NETWORK, CashSchemeNetworkClient("John"))
        first = build_cash_payment_requirements("A", "USD", "1")
        last = build_cash_payment_requirements("B", "USD", "1")

        assert client.select_requirements(challenge(first, last)) is last


class TestPolicies:
    def test_prefer_network(self):
        client = register_exact_evm_client(
            x402Client(), EthAccountSigner(new_account()), policies=[prefer_network(BASE_NETWORK)]
        )
        testnet = make_evm_requirements(network="eip155:84532")
        mainnet = make_evm_requirements()

        assert client.select_requirements(challenge(testnet, mainnet)) is mainnet

    def test_prefer_scheme(self):
        client = cash_client()
        register_exact_evm_client(client, EthAccountSigner(new_account()))
        client.register_policy(prefer_scheme("cash"))
        evm = make_evm_requirements()
        cash = build_cash_payment_requirements("A", "USD", "1")

        assert client.select_requirements(challenge(evm, cash)) is cash

    def test_max_amount_filters(self):
        client = cash_client().register_policy(max_amount(5))
        expensive = build_cash_payment_requirements("A", "USD", "10")
        cheap = build_cash_payment_requirements("B", "USD", "5")

        assert client.select_requirements(challenge(expensive, cheap)) is cheap

    def test_everything_filtered_raises(self):
        client = cash_client().register_policy(max_amount(1))

        with pytest.raises(NoAcceptableRequirementError):
            client.select_requirements(challenge(build_cash_payment_requirements("A", "USD", "2")))

    def test_policies_apply_in_order(self):
        client = cash_client()
        client.register_policy(lambda v, reqs: list(reversed(reqs)))
        client.register_policy(lambda v, reqs: reqs[:1])
        first = build_cash_payment_requirements("A", "USD", "1")
        second = build_cash_payment_requirements("B", "USD", "1")

        assert client.select_requirements(challenge(first, second)) is second


# =============================================================================
# Payload creation
# =============================================================================


class TestCreatePaymentPayload:
    def test_payload_echoes_accepted_requirement(self):
        requirements = build_cash_payment_requirements("Company Co.", "USD", "1")
        resource = ResourceInfo(url="http://localhost/weather")

        payload = cash_client().create_payment_payload(challenge(requirements, resource=resource))

        assert payload.x402_version == 2
        assert payload.accepted == requirements
        assert payload.resource == resource
        assert payload.payload["signature"] == "~John"

    def test_exact_evm_payload(self):
        account = new_account()
        client = register_exact_evm_client(x402Client(), EthAccountSigner(account))

        payload = client.create_payment_payload(challenge(make_evm_requirements(amount="1000")))

        evm_payload = ExactEvmPayload.from_dict(payload.payload)
        assert evm_payload.authorization.from_ == account.address
        assert evm_payload.authorization.value == "1000"

    def test_before_hook_aborts(self):
        client = cash_client().on_before_payment_creation(
            lambda ctx: AbortResult(reason="budget_exceeded")
        )

        with pytest.raises(PaymentAbortedError) as exc_info:
            client.create_payment_payload(
                challenge(build_cash_payment_requirements("A", "USD", "1"))
            )

        assert exc_info.value.reason == "budget_exceeded"

    def test_after_hook_sees_payload(self):
        seen = []
        client = cash_client().on_after_payment_creation(
            lambda ctx: seen.append(ctx.payment_payload)
        )

        payload = client.create_payment_payload(
            challenge(build_cash_payment_requirements("A", "USD", "1"))
        )

        assert seen == [payload]

    def test_failure_hook_can_recover(self):
        class BrokenScheme:
            scheme = "cash"

            def create_payment_payload(self, requirements):
                raise RuntimeError("wallet locked")

        requirements = build_cash_payment_requirements("A", "USD", "1")
        fallback = PaymentPayload(payload={"signature": "~fallback"}, accepted=requirements)
        client = x402Client().register(CASH_NETWORK, BrokenScheme())
        client.on_payment_creation_failure(lambda ctx: RecoveredPayloadResult(payload=fallback))

        assert client.create_payment_payload(challenge(requirements)) is fallback

    def test_failure_without_recovery_propagates(self):
        class BrokenScheme:
            scheme = "cash"

            def create_payment_payload(self, requirements):
                raise RuntimeError("wallet locked")

        client = x402Client().register(CASH_NETWORK, BrokenScheme())

        with pytest.raises(RuntimeError, match="wallet locked"):
            client.create_payment_payload(
                challenge(build_cash_payment_requirements("A", "USD", "1"))
            )
