"""
FastAPI middleware for x402 payment requirements.

Usage:
    from fastapi import FastAPI
    from x402_engine.fastapi import payment_middleware

    app = FastAPI()
    app.middleware("http")(payment_middleware(routes, server))
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from ..http import (
    RESULT_NO_PAYMENT_REQUIRED,
    RESULT_PAYMENT_ERROR,
    HTTPRequestContext,
    HTTPResponseInstructions,
    RoutesConfig,
    x402HTTPResourceServer,
)
from ..http.constants import HTTP_STATUS_SERVICE_UNAVAILABLE
from ..schemas import FacilitatorUnreachableError
from ..server import x402ResourceServer

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]


class FastAPIAdapter:
    """HTTPAdapter over a FastAPI/Starlette request."""

    def __init__(self, request: Request) -> None:
        self._request = request

    def get_header(self, name: str) -> str | None:
        return self._request.headers.get(name)

    def get_method(self) -> str:
        return self._request.method

    def get_path(self) -> str:
        return self._request.url.path

    def get_url(self) -> str:
        return str(self._request.url)


def _to_response(instructions: HTTPResponseInstructions) -> JSONResponse:
    headers = {k: v for k, v in instructions.headers.items() if k.lower() != "content-type"}
    return JSONResponse(
        content=instructions.body,
        status_code=instructions.status,
        headers=headers,
    )


def payment_middleware(
    routes: RoutesConfig,
    server: x402ResourceServer,
    sync_facilitator_on_start: bool = True,
) -> Callable[[Request, CallNext], Awaitable[Response]]:
    """Create a FastAPI HTTP middleware that gates routes behind payment.

    Args:
        routes: Priced routes, e.g. ``{"GET /weather": RouteConfig(...)}``.
        server: Resource server with schemes and facilitator clients registered.
        sync_facilitator_on_start: Initialize (fetch facilitator support and
            validate routes) on the first priced request.

    Returns:
        Middleware for ``app.middleware("http")``.

    Settlement runs after the handler, only when it answered below 400.
    The PAYMENT-RESPONSE header is attached whether settlement succeeded or
    not; a failed settlement never withholds the already produced response.
    A payment whose handler fails or raises is released so it can be reused.
    """
    http_server = x402HTTPResourceServer(server, routes)
    init_lock = asyncio.Lock()
    state: dict[str, Any] = {"initialized": not sync_facilitator_on_start}

    async def ensure_initialized() -> None:
        if state["initialized"]:
            return
        async with init_lock:
            if not state["initialized"]:
                await http_server.initialize()
                state["initialized"] = True

    async def middleware(request: Request, call_next: CallNext) -> Response:
        context = HTTPRequestContext(
            adapter=FastAPIAdapter(request),
            path=request.url.path,
            method=request.method,
        )

        if not http_server.requires_payment(context):
            return await call_next(request)

        try:
            await ensure_initialized()
        except FacilitatorUnreachableError as e:
            logger.error("x402 initialization failed: %s", e)
            return JSONResponse(
                content={"error": e.reason, "message": str(e)},
                status_code=HTTP_STATUS_SERVICE_UNAVAILABLE,
                headers={"Retry-After": str(max(1, int(server.retry_policy.timeout)))},
            )

        result = await http_server.process_http_request(context)

        if result.type == RESULT_NO_PAYMENT_REQUIRED:
            return await call_next(request)

        if result.type == RESULT_PAYMENT_ERROR:
            assert result.response is not None
            return _to_response(result.response)

        assert result.payment_payload is not None
        assert result.payment_requirements is not None

        request.state.payment_payload = result.payment_payload
        request.state.payment_requirements = result.payment_requirements

        try:
            response = await call_next(request)
        except BaseException:
            http_server.release_payment(result.payment_payload)
            raise

        if response.status_code >= 400:
            http_server.release_payment(result.payment_payload)
            return response

        settle_result = await http_server.process_settlement(
            result.payment_payload, result.payment_requirements
        )
        if not settle_result.success:
            logger.error(
                "Settlement failed after serving %s %s: %s",
                request.method,
                request.url.path,
                settle_result.error_reason,
            )

        for key, value in settle_result.headers.items():
            response.headers[key] = value

        return response

    return middleware
