"""x402 Agent Commerce demo server.

A paid weather API: AI agents pay per request in USDC on Base to access it.
Run with ``python -m x402_engine.demo.server``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import FastAPI

from ..fastapi import payment_middleware
from ..http import FacilitatorConfig, HTTPFacilitatorClient, PaymentOption, RouteConfig
from ..mechanisms.evm.exact import register_exact_evm_server
from ..server import FacilitatorClient, RetryPolicy, x402ResourceServer
from .config import AGENT_IDENTITY, AGENT_NAME, DemoSettings

logger = logging.getLogger(__name__)

REGISTRY_ADDRESS = "0x8004A169FB4a3325136EB29fA0ceB6D2e539a432"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_routes(settings: DemoSettings) -> dict[str, RouteConfig]:
    """Priced routes: weather at $0.001, premium data at $0.01."""
    return {
        "GET /weather": RouteConfig(
            accepts=PaymentOption(
                scheme="exact",
                pay_to=settings.payee_address,
                price="$0.001",
                network=settings.network,
            ),
            description=f"Get current weather data - powered by {AGENT_NAME} AI Agent",
            mime_type="application/json",
        ),
        "GET /premium-data": RouteConfig(
            accepts=PaymentOption(
                scheme="exact",
                pay_to=settings.payee_address,
                price="$0.01",
                network=settings.network,
            ),
            description="Get premium market data analysis",
            mime_type="application/json",
        ),
    }


def create_app(
    settings: DemoSettings | None = None,
    facilitator: FacilitatorClient | None = None,
    retry_policy: RetryPolicy | None = None,
) -> FastAPI:
    """Build the demo app.

    Args:
        settings: Demo settings, defaults to built-in values.
        facilitator: Facilitator client; defaults to an HTTP client for
            ``settings.facilitator_url``.
        retry_policy: Timeout and retry bounds for facilitator calls.
    """
    settings = settings or DemoSettings()
    if facilitator is None:
        facilitator = HTTPFacilitatorClient(FacilitatorConfig(url=settings.facilitator_url))

    server = x402ResourceServer(facilitator, retry_policy=retry_policy)
    register_exact_evm_server(server)

    app = FastAPI(
        title=f"{AGENT_NAME} Agent Commerce Gateway",
        description="AI agent providing paid API services via x402 protocol",
        version="1.0.0",
    )
    app.state.x402_server = server
    app.middleware("http")(payment_middleware(build_routes(settings), server))

    @app.get("/weather")
    async def weather() -> dict[str, Any]:
        logger.info("Weather request served | Payment received")
        return {
            "location": "San Francisco, CA",
            "temperature": 65,
            "unit": "fahrenheit",
            "conditions": "Partly Cloudy",
            "humidity": 72,
            "wind": "12 mph NW",
            "timestamp": _timestamp(),
            "provider": f"{AGENT_NAME} Weather Service",
            "agentId": AGENT_IDENTITY,
        }

    @app.get("/premium-data")
    async def premium_data() -> dict[str, Any]:
        logger.info("Premium data request served | Payment received")
        return {
            "market": "Ethereum Ecosystem",
            "sentiment": "Bullish",
            "trending": ["x402 Protocol", "ERC-8004", "Agent Commerce"],
            "insight": "AI agents are becoming economic actors on-chain",
            "timestamp": _timestamp(),
            "provider": f"{AGENT_NAME} Market Intelligence",
            "agentId": AGENT_IDENTITY,
        }

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "agent": AGENT_NAME,
            "identity": AGENT_IDENTITY,
            "network": settings.network,
            "payee": settings.payee_address,
            "version": "1.0.0",
        }

    @app.get("/")
    async def info() -> dict[str, Any]:
        return {
            "name": f"{AGENT_NAME} Agent Commerce Gateway",
            "description": "AI agent providing paid API services via x402 protocol",
            "identity": {
                "type": "ERC-8004",
                "tokenId": "#14511",
                "chain": "Base",
                "registry": REGISTRY_ADDRESS,
            },
            "endpoints": [
                {"path": "/weather", "price": "$0.001", "description": "Weather data"},
                {"path": "/premium-data", "price": "$0.01", "description": "Market intelligence"},
                {"path": "/health", "price": "free", "description": "Health check"},
            ],
            "payment": {
                "protocol": "x402",
                "network": settings.network,
                "asset": "USDC",
            },
        }

    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = DemoSettings.from_env()

    logger.info("%s Agent Commerce Server", AGENT_NAME)
    logger.info("Payee: %s", settings.payee_address)
    logger.info("Network: %s", settings.network)
    logger.info("Facilitator: %s", settings.facilitator_url)
    logger.info("Paid endpoints: GET /weather ($0.001 USDC), GET /premium-data ($0.01 USDC)")
    logger.info("Free endpoints: GET / (agent info), GET /health")

    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
