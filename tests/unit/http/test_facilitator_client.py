"""Tests for HTTPFacilitatorClient against a respx-mocked facilitator."""

import json

import httpx
import pytest
import respx

from x402_engine.http import FacilitatorConfig, HTTPFacilitatorClient
from x402_engine.schemas import FacilitatorUnreachableError, PaymentPayload

from ...mocks import BASE_NETWORK, PAYER, make_evm_requirements

FACILITATOR_URL = "https://facilitator.test"


def payment():
    requirements = make_evm_requirements()
    return PaymentPayload(payload={"signature": "0xsig"}, accepted=requirements), requirements


def client(**kwargs) -> HTTPFacilitatorClient:
    return HTTPFacilitatorClient(FacilitatorConfig(url=FACILITATOR_URL + "/", **kwargs))


class TestConfig:
    def test_trailing_slash_is_stripped(self):
        assert client().url == FACILITATOR_URL
        assert client().identifier == FACILITATOR_URL

    def test_dict_config(self):
        facilitator = HTTPFacilitatorClient({"url": "https://other.test/", "timeout": 5})

        assert facilitator.url == "https://other.test"


class TestVerify:
    @pytest.mark.asyncio
    @respx.mock
    async def test_posts_wire_body(self):
        route = respx.post(f"{FACILITATOR_URL}/verify").mock(
            return_value=httpx.Response(200, json={"isValid": True, "payer": PAYER})
        )
        payload, requirements = payment()

        result = await client().verify(payload, requirements)

        assert result.is_valid is True
        assert result.payer == PAYER
        body = json.loads(route.calls.last.request.content)
        assert body["x402Version"] == 2
        assert body["paymentPayload"]["accepted"]["network"] == BASE_NETWORK
        assert body["paymentRequirements"]["payTo"] == requirements.pay_to

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_payment(self):
        respx.post(f"{FACILITATOR_URL}/verify").mock(
            return_value=httpx.Response(
                200,
                json={"isValid": False, "invalidReason": "invalid_exact_evm_payload_signature"},
            )
        )
        payload, requirements = payment()

        result = await client().verify(payload, requirements)

        assert result.is_valid is False
        assert result.invalid_reason == "invalid_exact_evm_payload_signature"

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_error_body_becomes_invalid_result(self):
        respx.post(f"{FACILITATOR_URL}/verify").mock(
            return_value=httpx.Response(400, json={"error": "invalid_payload"})
        )
        payload, requirements = payment()

        result = await client().verify(payload, requirements)

        assert result.is_valid is False
        assert result.invalid_reason == "facilitator_error_400"

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_is_unreachable(self):
        respx.post(f"{FACILITATOR_URL}/verify").mock(return_value=httpx.Response(502))
        payload, requirements = payment()

        with pytest.raises(FacilitatorUnreachableError):
            await client().verify(payload, requirements)

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error_is_unreachable(self):
        respx.post(f"{FACILITATOR_URL}/verify").mock(side_effect=httpx.ConnectError)
        payload, requirements = payment()

        with pytest.raises(FacilitatorUnreachableError) as exc_info:
            await client().verify(payload, requirements)

        assert exc_info.value.indeterminate is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_auth_headers(self):
        route = respx.post(f"{FACILITATOR_URL}/verify").mock(
            return_value=httpx.Response(200, json={"isValid": True})
        )
        facilitator = HTTPFacilitatorClient(
            {
                "url": FACILITATOR_URL,
                "create_headers": lambda: {"verify": {"Authorization": "Bearer v"}},
            }
        )
        payload, requirements = payment()

        await facilitator.verify(payload, requirements)

        assert route.calls.last.request.headers["Authorization"] == "Bearer v"


class TestSettle:
    @pytest.mark.asyncio
    @respx.mock
    async def test_receipt(self):
        respx.post(f"{FACILITATOR_URL}/settle").mock(
            return_value=httpx.Response(
                200,
                json={
                    "success": True,
                    "transaction": "0xabc",
                    "network": BASE_NETWORK,
                    "payer": PAYER,
                },
            )
        )
        payload, requirements = payment()

        receipt = await client().settle(payload, requirements)

        assert receipt.success is True
        assert receipt.transaction == "0xabc"

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_is_indeterminate(self):
        respx.post(f"{FACILITATOR_URL}/settle").mock(side_effect=httpx.ReadTimeout)
        payload, requirements = payment()

        with pytest.raises(FacilitatorUnreachableError) as exc_info:
            await client().settle(payload, requirements)

        assert exc_info.value.indeterminate is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_connect_error_is_not_indeterminate(self):
        respx.post(f"{FACILITATOR_URL}/settle").mock(side_effect=httpx.ConnectError)
        payload, requirements = payment()

        with pytest.raises(FacilitatorUnreachableError) as exc_info:
            await client().settle(payload, requirements)

        assert exc_info.value.indeterminate is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_garbage_success_body_is_indeterminate(self):
        respx.post(f"{FACILITATOR_URL}/settle").mock(
            return_value=httpx.Response(200, text="<html>ok</html>")
        )
        payload, requirements = payment()

        with pytest.raises(FacilitatorUnreachableError) as exc_info:
            await client().settle(payload, requirements)

        assert exc_info.value.indeterminate is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_error_becomes_failed_receipt(self):
        respx.post(f"{FACILITATOR_URL}/settle").mock(return_value=httpx.Response(422, text="no"))
        payload, requirements = payment()

        receipt = await client().settle(payload, requirements)

        assert receipt.success is False
        assert receipt.error_reason == "facilitator_error_422"
        assert receipt.payee == requirements.pay_to


class TestSettlementStatus:
    @pytest.mark.asyncio
    @respx.mock
    async def test_settled(self):
        respx.post(f"{FACILITATOR_URL}/settlement-status").mock(
            return_value=httpx.Response(
                200, json={"settled": True, "settlement": {"success": True, "transaction": "0x1"}}
            )
        )
        payload, requirements = payment()

        status = await client().get_settlement_status(payload, requirements)

        assert status.settled is True
        assert status.settlement.transaction == "0x1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_endpoint_returns_none(self):
        respx.post(f"{FACILITATOR_URL}/settlement-status").mock(return_value=httpx.Response(404))
        payload, requirements = payment()

        assert await client().get_settlement_status(payload, requirements) is None


class TestSupported:
    @pytest.mark.asyncio
    @respx.mock
    async def test_supported(self):
        respx.get(f"{FACILITATOR_URL}/supported").mock(
            return_value=httpx.Response(
                200,
                json={
                    "kinds": [{"x402Version": 2, "scheme": "exact", "network": BASE_NETWORK}],
                    "extensions": [],
                    "signers": {"eip155:*": ["0x4444444444444444444444444444444444444444"]},
                },
            )
        )

        supported = await client().get_supported()

        assert supported.kinds[0].scheme == "exact"
        assert supported.kinds[0].network == BASE_NETWORK

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_is_unreachable(self):
        respx.get(f"{FACILITATOR_URL}/supported").mock(return_value=httpx.Response(503))

        with pytest.raises(FacilitatorUnreachableError):
            await client().get_supported()

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_error_raises_value_error(self):
        respx.get(f"{FACILITATOR_URL}/supported").mock(return_value=httpx.Response(401))

        with pytest.raises(ValueError):
            await client().get_supported()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        facilitator = client()
        facilitator._get_client()

        async with facilitator:
            pass

        assert facilitator._http_client is None
