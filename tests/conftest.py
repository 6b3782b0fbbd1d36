"""
Pytest configuration for Switchback tests.
"""
import asyncio
import os

import pytest
from httpx import ASGITransport, AsyncClient
from sse_starlette.sse import AppStatus

# Keep the developer's shell configuration out of the tests
for key in list(os.environ):
    if key.startswith("SWITCHBACK_"):
        del os.environ[key]

from switchback.broker import Broker
from switchback.core.config import Settings
from switchback.main import create_app
from switchback.server import Server


def make_settings(**kwargs) -> Settings:
    kwargs.setdefault("bind_addr", "127.0.0.1:0")
    kwargs.setdefault("log_level", "debug")
    kwargs.setdefault("stream_heartbeat_interval", 1.0)
    kwargs.setdefault("shutdown_timeout", 5.0)
    return Settings(_env_file=None, **kwargs)


@pytest.fixture
def broker():
    """A fresh broker with the default mailbox size and blocking policy."""
    return Broker()


@pytest.fixture
def settings_factory():
    """Build test settings, overriding any field."""
    return make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings, broker):
    return create_app(settings, broker)


@pytest.fixture
async def async_client(app):
    """In-process client; suitable for calls that complete (not open streams)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def server():
    """A real server on an ephemeral port, shut down after the test."""
    server = Server(make_settings())
    task = asyncio.create_task(server.serve())

    while not server.started:
        if task.done():
            task.result()
        await asyncio.sleep(0.05)

    yield server

    server.shutdown()
    await asyncio.wait_for(server.wait_closed(), timeout=10)
    await asyncio.wait_for(task, timeout=1)


@pytest.fixture
def endpoint(server):
    host, port = server.address
    return f"{host}:{port}"


@pytest.fixture(autouse=True)
def reset_sse_exit_event():
    """sse-starlette keeps a process-wide exit event bound to the first loop."""
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    AppStatus.should_exit = False
    yield
