"""
Pytest configuration and fixtures for Servicing tests.
"""

import subprocess
import tempfile
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from servicing.dispatcher import Dispatcher
from servicing.runtime import ServicingContext
from servicing.settings import ServicingSettings


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def settings(temp_dir):
    """Settings pointing at a temporary cache directory with fast polling."""
    return ServicingSettings(
        cache_dir=temp_dir / ".servicing",
        poll_interval=0.01,
        http_timeout=1.0,
    )


@pytest.fixture
def context():
    """An isolated cache and worker runtime."""
    ctx = ServicingContext()
    yield ctx
    ctx.close()


class ProbeServer:
    """Scripted responses for readiness probes.

    Each request pops the next entry of ``responses``; the last entry is
    repeated once the list is exhausted. An entry that is an exception
    instance is raised instead of answered.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or ["ok"]
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        entry = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(entry, Exception):
            raise entry
        return httpx.Response(200, text=entry)


@pytest.fixture
def probe():
    return ProbeServer("ok")


@pytest.fixture
def client(probe):
    return httpx.AsyncClient(transport=httpx.MockTransport(probe))


@pytest.fixture
def dispatcher(context, settings, client):
    return Dispatcher(context=context, settings=settings, client=client)


class FakeSky:
    """Stand-in for the ``sky`` executable.

    Records every invocation and answers ``serve status`` with a line
    containing ``endpoint``.
    """

    def __init__(self, endpoint="10.0.0.5:30000", up_code=0, down_code=0, status_code=0):
        self.endpoint = endpoint
        self.up_code = up_code
        self.down_code = down_code
        self.status_code = status_code
        self.calls = []
        self.on_up = None

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        action = cmd[2]
        if action == "up":
            if self.on_up is not None:
                self.on_up(cmd)
            return subprocess.CompletedProcess(cmd, self.up_code, "", "")
        if action == "down":
            return subprocess.CompletedProcess(cmd, self.down_code, "", "")
        if action == "status":
            stdout = "Services\nNAME  STATUS  ENDPOINT\n"
            if self.endpoint:
                stdout += f"{cmd[3]}  READY  {self.endpoint}\n"
            return subprocess.CompletedProcess(cmd, self.status_code, stdout, "")
        raise AssertionError(f"unexpected command {cmd}")

    def count(self, action):
        return sum(1 for call in self.calls if call[2] == action)


@pytest.fixture
def sky():
    """Patch the SkyPilot tool lookup and subprocess calls."""
    fake = FakeSky()
    with patch("servicing.orchestrator.sky.check_tool_installed", return_value=True), \
         patch("servicing.orchestrator.sky.subprocess.run", side_effect=fake):
        yield fake
