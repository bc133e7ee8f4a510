"""Demo runner.

1. Starts the paid API server as a child process
2. Waits for its health endpoint
3. Runs the agent client against it
4. Shuts the server down, also on SIGINT/SIGTERM or failure
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import httpx

from .config import DemoSettings

logger = logging.getLogger(__name__)

SERVER_MODULE = "x402_engine.demo.server"
AGENT_MODULE = "x402_engine.demo.agent"

HEALTH_ATTEMPTS = 30
HEALTH_INTERVAL = 1.0
STARTUP_GRACE = 2.0
SHUTDOWN_TIMEOUT = 10.0


def wait_for_server(
    url: str,
    max_attempts: int = HEALTH_ATTEMPTS,
    interval: float = HEALTH_INTERVAL,
) -> bool:
    """Poll ``{url}/health`` until it answers 200 or attempts run out."""
    for _ in range(max_attempts):
        try:
            if httpx.get(f"{url}/health", timeout=interval).status_code == 200:
                return True
        except httpx.HTTPError:
            pass
        time.sleep(interval)
    return False


@contextmanager
def running_server(env: dict[str, str] | None = None) -> Iterator[subprocess.Popen]:
    """Run the demo server for the duration of the block."""
    process = subprocess.Popen([sys.executable, "-m", SERVER_MODULE], env=env)
    try:
        yield process
    finally:
        if process.poll() is None:
            logger.info("Shutting down server...")
            process.terminate()
            try:
                process.wait(timeout=SHUTDOWN_TIMEOUT)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()


def run_demo(settings: DemoSettings, startup_grace: float = STARTUP_GRACE) -> int:
    """Run server and agent; returns a process exit code."""
    env = dict(os.environ)
    server_url = settings.resource_server_url.rstrip("/")

    logger.info("Step 1: starting x402 payment server")
    with running_server(env):
        logger.info("Waiting for server to be ready...")
        if not wait_for_server(server_url):
            logger.error("Server failed to start")
            return 1

        logger.info("Server is ready")
        time.sleep(startup_grace)

        logger.info("Step 2: running autonomous agent client")
        result = subprocess.run([sys.executable, "-m", AGENT_MODULE], env=env)
        if result.returncode != 0:
            logger.error("Client exited with code %d", result.returncode)
            return result.returncode

    logger.info(
        "Demo complete: the agent discovered paid endpoints, signed payment "
        "authorizations and received responses after settlement"
    )
    return 0


def _exit_on_signal(signum: int, frame: Any) -> None:
    # SystemExit unwinds running_server, which stops the child.
    raise SystemExit(0)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    signal.signal(signal.SIGINT, _exit_on_signal)
    signal.signal(signal.SIGTERM, _exit_on_signal)
    sys.exit(run_demo(DemoSettings.from_env()))


if __name__ == "__main__":
    main()
