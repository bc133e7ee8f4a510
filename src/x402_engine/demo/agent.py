"""Autonomous agent client for the demo server.

Checks the server's health, then buys weather and premium market data,
paying each 402 challenge with an EIP-3009 authorization signed by
AGENT_PRIVATE_KEY. Run with ``python -m x402_engine.demo.agent``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import httpx
from eth_account import Account

from ..client import x402Client
from ..http import x402HTTPClient
from ..http.clients import x402HttpxClient
from ..mechanisms.evm import EthAccountSigner
from ..mechanisms.evm.exact import register_exact_evm_client
from ..schemas import PaymentError
from .config import AGENT_IDENTITY, AGENT_NAME, DemoSettings

logger = logging.getLogger(__name__)

PAID_ENDPOINTS = (
    ("/weather", "weather data", "$0.001"),
    ("/premium-data", "premium market data", "$0.01"),
)


async def fetch_paid(
    http: httpx.AsyncClient,
    receipts: x402HTTPClient,
    url: str,
    label: str,
) -> dict:
    """GET a paid endpoint and log the settlement receipt."""
    response = await http.get(url)
    response.raise_for_status()
    body = response.json()

    logger.info("%s received:\n%s", label.capitalize(), json.dumps(body, indent=2))

    try:
        receipt = receipts.get_payment_settle_response(lambda name: response.headers.get(name))
    except ValueError:
        logger.warning("No payment receipt returned for %s", url)
        return body

    if receipt.success:
        logger.info(
            "Payment settled: transaction=%s network=%s",
            receipt.transaction or "pending",
            receipt.network,
        )
    else:
        logger.warning("Payment not settled: %s", receipt.error_reason)
    return body


async def run_agent(settings: DemoSettings) -> int:
    """Run the agent flow; returns a process exit code."""
    if not settings.agent_private_key:
        logger.error("AGENT_PRIVATE_KEY environment variable is required")
        return 1

    account = Account.from_key(settings.agent_private_key)
    base_url = settings.resource_server_url.rstrip("/")
    logger.info("%s agent (%s) wallet: %s", AGENT_NAME, AGENT_IDENTITY, account.address)
    logger.info("Target server: %s", base_url)

    client = x402Client()
    register_exact_evm_client(client, EthAccountSigner(account))
    receipts = x402HTTPClient(client)

    async with httpx.AsyncClient() as plain:
        try:
            health = await plain.get(f"{base_url}/health")
            health.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Server not reachable: %s", e)
            return 1
        logger.info("Server healthy: %s", health.json())

    async with x402HttpxClient(client, timeout=30.0) as http:
        for path, label, price in PAID_ENDPOINTS:
            logger.info("Requesting %s (paid endpoint: %s)", label, price)
            try:
                await fetch_paid(http, receipts, f"{base_url}{path}", label)
            except PaymentError as e:
                logger.error("Payment for %s failed (%s): %s", path, e.reason, e)
                return 1
            except httpx.HTTPError as e:
                logger.error("Request to %s failed: %s", path, e)
                return 1

    logger.info("Demo complete: endpoints discovered, payments signed, responses received")
    return 0


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(run_agent(DemoSettings.from_env())))


if __name__ == "__main__":
    main()
