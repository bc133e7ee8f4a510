"""Paying HTTP clients.

A 402 answer is paid with the wrapped x402Client and the request is sent
once more with the payment attached; a second 402 raises
PaymentRejectedError.

    async with x402HttpxClient(client) as http:    # httpx, async
        await http.get(url)

    session = x402_requests(client)                # requests, sync
    session.get(url)
"""

from .httpx import (
    wrapHttpxWithPayment,
    x402_httpx_transport,
    x402AsyncTransport,
    x402HttpxClient,
)
from .requests import (
    wrapRequestsWithPayment,
    x402_http_adapter,
    x402_requests,
    x402HTTPAdapter,
)

__all__ = [
    "wrapHttpxWithPayment",
    "wrapRequestsWithPayment",
    "x402AsyncTransport",
    "x402HTTPAdapter",
    "x402HttpxClient",
    "x402_http_adapter",
    "x402_httpx_transport",
    "x402_requests",
]
