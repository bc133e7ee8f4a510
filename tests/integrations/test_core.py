"""Core integration tests for x402Client, x402ResourceServer, and x402Facilitator.

These tests run the full payment flow in process using the mock "cash"
scheme and the exact EVM scheme with throwaway keys.
"""

import asyncio

import pytest

from x402_engine import x402Client, x402Facilitator, x402ResourceServer
from x402_engine.http import (
    RESULT_PAYMENT_ERROR,
    RESULT_PAYMENT_VERIFIED,
    HTTPRequestContext,
    PaymentOption,
    RouteConfig,
    decode_payment_response_header,
    x402HTTPClient,
    x402HTTPResourceServer,
)
from x402_engine.mechanisms.evm import EthAccountSigner, LedgerSettlementSigner
from x402_engine.mechanisms.evm.exact import (
    register_exact_evm_client,
    register_exact_evm_facilitator,
    register_exact_evm_server,
)
from x402_engine.schemas import ResourceInfo

from ..mocks import (
    BASE_NETWORK,
    CASH_NETWORK,
    PAY_TO,
    CashSchemeNetworkClient,
    CashSchemeNetworkFacilitator,
    CashSchemeNetworkServer,
    build_cash_payment_requirements,
    new_account,
)


class HeaderAdapter:
    def __init__(self, path: str, headers: dict[str, str] | None = None) -> None:
        self.path = path
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}

    def get_header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def get_method(self) -> str:
        return "GET"

    def get_path(self) -> str:
        return self.path

    def get_url(self) -> str:
        return f"https://company.co{self.path}"


def context(path: str, headers: dict[str, str] | None = None) -> HTTPRequestContext:
    return HTTPRequestContext(adapter=HeaderAdapter(path, headers), path=path, method="GET")


class TestCoreIntegration:
    """Integration tests for the core x402 components."""

    def setup_method(self) -> None:
        self.client = x402Client().register(CASH_NETWORK, CashSchemeNetworkClient("John"))

        self.mechanism = CashSchemeNetworkFacilitator()
        self.facilitator = x402Facilitator().register([CASH_NETWORK], self.mechanism)

        self.server = x402ResourceServer(self.facilitator)
        self.server.register(CASH_NETWORK, CashSchemeNetworkServer())

    @pytest.mark.asyncio
    async def test_server_verifies_and_settles_cash_payment_from_client(self):
        await self.server.initialize()
        accepts = [build_cash_payment_requirements("Company Co.", "USD", "1")]
        resource = ResourceInfo(
            url="https://company.co",
            description="Company Co. resource",
            mime_type="application/json",
        )
        payment_required = self.server.create_payment_required_response(accepts, resource)

        payment_payload = self.client.create_payment_payload(payment_required)

        accepted = self.server.find_matching_requirements(accepts, payment_payload)
        assert accepted is not None

        verify_response = await self.server.verify_payment(payment_payload, accepted)
        assert verify_response.is_valid is True
        assert verify_response.payer == "~John"

        settle_response = await self.server.settle_payment(payment_payload, accepted)
        assert settle_response.success is True
        assert "John transferred 1 USD to Company Co." in settle_response.transaction

    @pytest.mark.asyncio
    async def test_tampered_signature_fails_verification(self):
        await self.server.initialize()
        requirements = build_cash_payment_requirements("Recipient", "USD", "5")
        payment_required = self.server.create_payment_required_response([requirements])
        payload = self.client.create_payment_payload(payment_required)

        payload.payload["signature"] = "~Hacker"

        verify_result = await self.server.verify_payment(payload, requirements)
        assert verify_result.is_valid is False
        assert verify_result.invalid_reason == "invalid_signature"

    @pytest.mark.asyncio
    async def test_concurrent_settlement_moves_funds_once(self):
        await self.server.initialize()
        requirements = build_cash_payment_requirements("Recipient", "USD", "5")
        payload = self.client.create_payment_payload(
            self.server.create_payment_required_response([requirements])
        )

        receipts = await asyncio.gather(
            *(self.server.settle_payment(payload, requirements) for _ in range(4))
        )

        assert len({r.transaction for r in receipts}) == 1
        assert len(self.mechanism.settled) == 1

    @pytest.mark.asyncio
    async def test_http_round_trip(self):
        routes = {
            "GET /report": RouteConfig(
                accepts=PaymentOption(
                    scheme="cash", pay_to="Company Co.", price="$2", network=CASH_NETWORK
                )
            )
        }
        http_server = x402HTTPResourceServer(self.server, routes)
        await http_server.initialize()
        http_client = x402HTTPClient(self.client)

        challenge = await http_server.process_http_request(context("/report"))
        assert challenge.type == RESULT_PAYMENT_ERROR
        assert challenge.response.status == 402

        headers, _ = http_client.handle_402_response(challenge.response.headers, None)
        verified = await http_server.process_http_request(context("/report", headers))
        assert verified.type == RESULT_PAYMENT_VERIFIED

        settled = await http_server.process_settlement(
            verified.payment_payload, verified.payment_requirements
        )
        assert settled.success is True
        receipt = http_client.get_payment_settle_response(settled.headers.get)
        assert receipt.transaction == "John transferred 2 USD to Company Co."

        replay = await http_server.process_http_request(context("/report", headers))
        assert replay.type == RESULT_PAYMENT_ERROR
        assert replay.response.body["error"] == "nonce_already_used"


class TestExactEvmIntegration:
    def setup_method(self) -> None:
        self.account = new_account()
        self.client = register_exact_evm_client(x402Client(), EthAccountSigner(self.account))

        self.ledger = LedgerSettlementSigner()
        self.facilitator = register_exact_evm_facilitator(x402Facilitator(), self.ledger)

        self.server = register_exact_evm_server(x402ResourceServer(self.facilitator))

    @pytest.mark.asyncio
    async def test_usdc_payment_flow(self):
        routes = {
            "GET /weather": RouteConfig(
                accepts=PaymentOption(
                    scheme="exact", pay_to=PAY_TO, price="$0.001", network=BASE_NETWORK
                )
            )
        }
        http_server = x402HTTPResourceServer(self.server, routes)
        await http_server.initialize()
        http_client = x402HTTPClient(self.client)

        challenge = await http_server.process_http_request(context("/weather"))
        assert challenge.response.body["accepts"][0]["amount"] == "1000"

        headers, payload = http_client.handle_402_response(challenge.response.headers, None)
        assert payload.payload["authorization"]["from"].lower() == self.account.address.lower()

        verified = await http_server.process_http_request(context("/weather", headers))
        assert verified.type == RESULT_PAYMENT_VERIFIED

        settled = await http_server.process_settlement(
            verified.payment_payload, verified.payment_requirements
        )
        receipt = decode_payment_response_header(settled.headers["PAYMENT-RESPONSE"])
        assert receipt.success is True
        assert receipt.network == BASE_NETWORK
        assert len(self.ledger.transfers) == 1
        assert self.ledger.transfers[0].network == BASE_NETWORK
