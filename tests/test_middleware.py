"""Tests for the availability gate."""

import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from switchback.core.middleware import MAINTENANCE_DETAIL, AvailabilityGate


def make_app(maintenance: bool, calls: list) -> FastAPI:
    app = FastAPI()

    @app.get("/status")
    async def status():
        calls.append("status")
        return {"status": "ok"}

    @app.get("/other")
    async def other():
        calls.append("other")
        return {"other": True}

    @app.get("/stream")
    async def stream():
        calls.append("stream")
        return {"stream": True}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    app.add_middleware(
        AvailabilityGate,
        maintenance=maintenance,
        exempt_paths=["/status", "/stream"],
        streaming_paths=["/stream"],
    )
    return app


async def get(app: FastAPI, path: str):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path)


class TestAvailabilityGate:
    """Test suite for AvailabilityGate."""

    @pytest.mark.asyncio
    async def test_all_calls_pass_when_available(self):
        calls = []
        app = make_app(maintenance=False, calls=calls)

        for path in ("/status", "/other", "/stream"):
            assert (await get(app, path)).status_code == 200

        assert calls == ["status", "other", "stream"]

    @pytest.mark.asyncio
    async def test_maintenance_allows_exempt_unary(self):
        calls = []
        app = make_app(maintenance=True, calls=calls)

        response = await get(app, "/status")
        assert response.status_code == 200
        assert calls == ["status"]

    @pytest.mark.asyncio
    async def test_maintenance_rejects_unary(self):
        calls = []
        app = make_app(maintenance=True, calls=calls)

        response = await get(app, "/other")
        assert response.status_code == 503
        assert response.json() == {"detail": MAINTENANCE_DETAIL}
        assert calls == []

    @pytest.mark.asyncio
    async def test_maintenance_rejects_streams_even_if_exempt(self):
        """Streams never open in maintenance mode, exemptions only cover unary calls."""
        calls = []
        app = make_app(maintenance=True, calls=calls)

        response = await get(app, "/stream")
        assert response.status_code == 503
        assert calls == []

    @pytest.mark.asyncio
    async def test_calls_are_timed(self, caplog):
        app = make_app(maintenance=True, calls=[])

        with caplog.at_level(logging.DEBUG, logger="switchback.core.middleware"):
            await get(app, "/status")
            await get(app, "/stream")

        messages = [r.getMessage() for r in caplog.records if r.name == "switchback.core.middleware"]
        assert len(messages) == 2
        assert "http unary request method=GET path=/status status=200" in messages[0]
        assert "latency=" in messages[0]
        assert "http stream request method=GET path=/stream status=503" in messages[1]

    @pytest.mark.asyncio
    async def test_errors_are_recorded_and_propagated(self, caplog):
        app = make_app(maintenance=False, calls=[])

        with caplog.at_level(logging.DEBUG, logger="switchback.core.middleware"):
            response = await get(app, "/boom")

        assert response.status_code == 500
        messages = [r.getMessage() for r in caplog.records if r.name == "switchback.core.middleware"]
        assert "RuntimeError('boom')" in messages[-1]

    def test_allowed(self):
        gate = AvailabilityGate(app=None, maintenance=True, exempt_paths=["/status"], streaming_paths=["/s"])
        assert gate.allowed("/status")
        assert not gate.allowed("/s")
        assert not gate.allowed("/anything")

        gate.maintenance = False
        assert gate.allowed("/anything")
