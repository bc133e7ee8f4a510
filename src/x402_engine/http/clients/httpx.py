"""httpx wrapper with automatic x402 payment handling.

Provides an async transport and a convenience AsyncClient subclass.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from ...schemas import MalformedPaymentError, PaymentError

if TYPE_CHECKING:
    from ...client import x402Client
    from ..x402_http_client import x402HTTPClient

logger = logging.getLogger(__name__)


# ============================================================================
# Transport Implementation
# ============================================================================


class x402AsyncTransport(httpx.AsyncBaseTransport):
    """Async transport that answers 402 Payment Required responses.

    On a 402 the transport reads the challenge, creates a payment with the
    wrapped client and retries the request once. A second 402 raises
    PaymentRejectedError; the retry flag travels in request extensions so
    concurrent requests never share state.
    """

    RETRY_KEY = "_x402_is_retry"

    def __init__(
        self,
        client: x402Client | x402HTTPClient,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize payment transport.

        Args:
            client: x402Client or x402HTTPClient for payments.
            transport: Underlying transport. Defaults to AsyncHTTPTransport.
        """
        from ..x402_http_client import x402HTTPClient as HTTPClient

        if isinstance(client, HTTPClient):
            self._http_client = client
        else:
            self._http_client = HTTPClient(client)

        self._client = client
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """Send request, paying and retrying once on 402.

        Raises:
            UnsupportedSchemeError: No registered scheme matches the challenge.
            NoAcceptableRequirementError: Client policies rejected every option.
            PaymentRejectedError: The paid retry was answered with another 402.
            MalformedPaymentError: The 402 challenge could not be parsed.
        """
        response = await self._transport.handle_async_request(request)

        if response.status_code != 402 or request.extensions.get(self.RETRY_KEY):
            return response

        await response.aread()

        try:
            payment_headers, payment_payload = self._http_client.handle_402_response(
                dict(response.headers), response.content
            )
        except PaymentError as e:
            e.response = response
            raise
        except ValueError as e:
            raise MalformedPaymentError(
                f"Invalid 402 challenge: {e}", response=response
            ) from e

        logger.debug(
            "Retrying %s %s with %s payment on %s",
            request.method,
            request.url,
            payment_payload.get_scheme(),
            payment_payload.get_network(),
        )

        headers = httpx.Headers(request.headers)
        headers.update(payment_headers)
        headers["Access-Control-Expose-Headers"] = "PAYMENT-RESPONSE,X-PAYMENT-RESPONSE"
        retry_request = httpx.Request(
            method=request.method,
            url=request.url,
            headers=headers,
            content=request.content,
            extensions={**request.extensions, self.RETRY_KEY: True},
        )

        retry_response = await self._transport.handle_async_request(retry_request)

        if retry_response.status_code == 402:
            await retry_response.aread()
            raise self._http_client.payment_rejected(
                dict(retry_response.headers), retry_response.content, retry_response
            )

        return retry_response

    async def aclose(self) -> None:
        """Close underlying transport."""
        await self._transport.aclose()


def x402_httpx_transport(
    client: x402Client | x402HTTPClient,
    transport: httpx.AsyncBaseTransport | None = None,
) -> x402AsyncTransport:
    """Create an httpx transport with 402 payment handling.

    Example:
        ```python
        import httpx
        from x402_engine.http.clients import x402_httpx_transport

        async with httpx.AsyncClient(transport=x402_httpx_transport(client)) as http:
            response = await http.get("https://api.example.com/paid")
        ```
    """
    return x402AsyncTransport(client, transport)


# ============================================================================
# Wrapper Functions
# ============================================================================


def wrapHttpxWithPayment(
    client: x402Client | x402HTTPClient,
    **httpx_kwargs: Any,
) -> httpx.AsyncClient:
    """Create an httpx AsyncClient with automatic 402 payment handling.

    Args:
        client: x402Client or x402HTTPClient for payments.
        **httpx_kwargs: Additional arguments for AsyncClient.
    """
    transport = x402AsyncTransport(client, httpx_kwargs.pop("transport", None))
    return httpx.AsyncClient(transport=transport, **httpx_kwargs)


class x402HttpxClient(httpx.AsyncClient):
    """AsyncClient with built-in x402 payment handling.

    Example:
        ```python
        async with x402HttpxClient(client) as http:
            response = await http.get("https://api.example.com/paid")
        ```
    """

    def __init__(
        self,
        client: x402Client | x402HTTPClient,
        **kwargs: Any,
    ) -> None:
        transport = x402AsyncTransport(client, kwargs.pop("transport", None))
        super().__init__(transport=transport, **kwargs)
