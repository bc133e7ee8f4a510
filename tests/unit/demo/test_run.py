"""Tests for the demo runner."""

import signal
import subprocess
from unittest.mock import MagicMock, patch

import httpx
import pytest
import respx

from x402_engine.demo import run
from x402_engine.demo.config import DemoSettings

SERVER_URL = "http://localhost:4021"


class TestWaitForServer:
    @respx.mock
    def test_ready_on_first_attempt(self):
        respx.get(f"{SERVER_URL}/health").mock(return_value=httpx.Response(200, json={}))

        assert run.wait_for_server(SERVER_URL, max_attempts=2, interval=0) is True

    @respx.mock
    def test_retries_after_connection_error(self):
        route = respx.get(f"{SERVER_URL}/health").mock(
            side_effect=[httpx.ConnectError("refused"), httpx.Response(200, json={})]
        )

        assert run.wait_for_server(SERVER_URL, max_attempts=3, interval=0) is True
        assert route.call_count == 2

    @respx.mock
    def test_gives_up(self):
        route = respx.get(f"{SERVER_URL}/health").mock(return_value=httpx.Response(503))

        assert run.wait_for_server(SERVER_URL, max_attempts=2, interval=0) is False
        assert route.call_count == 2


class TestRunningServer:
    def test_terminates_live_process(self):
        process = MagicMock()
        process.poll.return_value = None

        with patch.object(run.subprocess, "Popen", return_value=process) as popen:
            with run.running_server({}):
                pass

        assert popen.call_args.args[0][-1] == run.SERVER_MODULE
        process.terminate.assert_called_once()
        process.kill.assert_not_called()

    def test_kills_process_that_ignores_terminate(self):
        process = MagicMock()
        process.poll.return_value = None
        process.wait.side_effect = [subprocess.TimeoutExpired("server", 10), 0]

        with patch.object(run.subprocess, "Popen", return_value=process):
            with run.running_server({}):
                pass

        process.kill.assert_called_once()

    def test_stops_server_when_block_raises(self):
        process = MagicMock()
        process.poll.return_value = None

        with patch.object(run.subprocess, "Popen", return_value=process):
            with pytest.raises(SystemExit):
                with run.running_server({}):
                    run._exit_on_signal(signal.SIGTERM, None)

        process.terminate.assert_called_once()

    def test_exited_process_is_left_alone(self):
        process = MagicMock()
        process.poll.return_value = 0

        with patch.object(run.subprocess, "Popen", return_value=process):
            with run.running_server({}):
                pass

        process.terminate.assert_not_called()


class TestRunDemo:
    def test_server_never_ready(self):
        with (
            patch.object(run, "running_server") as server,
            patch.object(run, "wait_for_server", return_value=False),
            patch.object(run.subprocess, "run") as agent,
        ):
            assert run.run_demo(DemoSettings(), startup_grace=0) == 1

        server.assert_called_once()
        agent.assert_not_called()

    def test_agent_exit_code_is_returned(self):
        with (
            patch.object(run, "running_server"),
            patch.object(run, "wait_for_server", return_value=True),
            patch.object(
                run.subprocess, "run", return_value=subprocess.CompletedProcess([], 3)
            ) as agent,
        ):
            assert run.run_demo(DemoSettings(), startup_grace=0) == 3

        assert agent.call_args.args[0][-1] == run.AGENT_MODULE

    def test_success(self):
        with (
            patch.object(run, "running_server"),
            patch.object(run, "wait_for_server", return_value=True) as wait,
            patch.object(run.subprocess, "run", return_value=subprocess.CompletedProcess([], 0)),
        ):
            assert run.run_demo(DemoSettings(), startup_grace=0) == 0

        wait.assert_called_once_with("http://localhost:4021")
