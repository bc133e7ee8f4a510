"""Local facilitator service.

Exposes an x402Facilitator over HTTP (``/verify``, ``/settle``,
``/supported``, ``/settlement-status``). Settlement is recorded by
LedgerSettlementSigner instead of being submitted on chain, so the demo
runs without funds. Point the demo server's FACILITATOR_URL at it.
"""

from __future__ import annotations

import logging
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ..facilitator import x402Facilitator
from ..mechanisms.evm import LedgerSettlementSigner
from ..mechanisms.evm.exact import register_exact_evm_facilitator
from ..schemas import (
    PaymentAbortedError,
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    UnsupportedSchemeError,
    VerifyResponse,
)
from .config import DemoSettings

logger = logging.getLogger(__name__)


class FacilitatorRequest(BaseModel):
    """Verify/settle/status request body."""

    x402Version: int = 2
    paymentPayload: dict[str, Any]
    paymentRequirements: dict[str, Any]


def build_local_facilitator(address: str | None = None) -> x402Facilitator:
    """Create a facilitator for the configured EVM networks backed by an in-memory ledger."""
    signer = LedgerSettlementSigner(address) if address else LedgerSettlementSigner()
    facilitator = x402Facilitator()
    register_exact_evm_facilitator(facilitator, signer)
    return facilitator


def _parse(request: FacilitatorRequest) -> tuple[PaymentPayload, PaymentRequirements]:
    return (
        PaymentPayload.model_validate(request.paymentPayload),
        PaymentRequirements.model_validate(request.paymentRequirements),
    )


def create_facilitator_app(facilitator: x402Facilitator | None = None) -> FastAPI:
    """Build the facilitator HTTP app around ``facilitator``."""
    facilitator = facilitator or build_local_facilitator()

    app = FastAPI(
        title="Local x402 Facilitator",
        description="Verifies and settles x402 payments against an in-memory ledger",
        version="1.0.0",
    )
    app.state.facilitator = facilitator

    @app.post("/verify")
    async def verify(request: FacilitatorRequest) -> Any:
        try:
            payload, requirements = _parse(request)
            response = await facilitator.verify(payload, requirements)
        except ValidationError as e:
            logger.warning("Rejected malformed verify request: %s", e)
            return JSONResponse(
                status_code=400,
                content=VerifyResponse(is_valid=False, invalid_reason="invalid_payload").to_wire(),
            )
        except (UnsupportedSchemeError, PaymentAbortedError) as e:
            return JSONResponse(
                status_code=400,
                content=VerifyResponse(is_valid=False, invalid_reason=e.reason).to_wire(),
            )
        return response.to_wire()

    @app.post("/settle")
    async def settle(request: FacilitatorRequest) -> Any:
        network = request.paymentRequirements.get("network", "unknown")
        try:
            payload, requirements = _parse(request)
            response = await facilitator.settle(payload, requirements)
        except ValidationError as e:
            logger.warning("Rejected malformed settle request: %s", e)
            return JSONResponse(
                status_code=400,
                content=SettleResponse(
                    success=False, error_reason="invalid_payload", network=network
                ).to_wire(),
            )
        except (UnsupportedSchemeError, PaymentAbortedError) as e:
            return JSONResponse(
                status_code=400,
                content=SettleResponse(
                    success=False, error_reason=e.reason, network=network
                ).to_wire(),
            )
        return response.to_wire()

    @app.post("/settlement-status")
    async def settlement_status(request: FacilitatorRequest) -> Any:
        try:
            payload, requirements = _parse(request)
            response = await facilitator.get_settlement_status(payload, requirements)
        except (ValidationError, UnsupportedSchemeError) as e:
            return JSONResponse(status_code=400, content={"error": str(e)})
        return response.to_wire()

    @app.get("/supported")
    async def supported() -> Any:
        response = await facilitator.get_supported()
        return response.to_wire()

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = DemoSettings.from_env()

    facilitator = build_local_facilitator()
    app = create_facilitator_app(facilitator)

    logger.info("Local facilitator listening on http://0.0.0.0:%d", settings.facilitator_port)
    uvicorn.run(app, host="0.0.0.0", port=settings.facilitator_port)


if __name__ == "__main__":
    main()
