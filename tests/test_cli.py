"""Tests for the switchback CLI."""

import asyncio

import click
import pytest
from typer.testing import CliRunner

from switchback import __version__
from switchback.cli import main as cli
from switchback.cli.main import app, generate_events
from switchback.client import Unavailable
from switchback.models import PublishResponse, ServiceState


runner = CliRunner()


def strip_ansi(text: str) -> str:
    """Strip ANSI escape codes from text."""
    return click.unstyle(text)


class FakeClient:
    """Stands in for SwitchbackClient; records the calls made on it."""

    instances = []

    def __init__(self, endpoint):
        self.endpoint = endpoint
        self.published = []
        FakeClient.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    async def status(self, timeout):
        return ServiceState(status="ok", uptime="0:00:01", version=__version__)

    async def publish(self, events):
        async for event in events:
            self.published.append(event)
        return PublishResponse(success=True, events=len(self.published), message="ok")


class UnavailableClient(FakeClient):
    async def status(self, timeout):
        raise Unavailable(503, "server is in maintenance mode")


@pytest.fixture
def fake_client(monkeypatch):
    FakeClient.instances = []
    monkeypatch.setattr(cli, "SwitchbackClient", FakeClient)
    return FakeClient


class TestVersion:
    """Tests for the version command."""

    def test_version_shows_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"Switchback v{__version__}" in result.stdout


class TestHelp:
    """Tests for help output."""

    def test_main_help(self):
        result = runner.invoke(app, ["--help"])
        output = strip_ansi(result.stdout)
        assert result.exit_code == 0
        for command in ("serve", "status", "sub", "random", "version"):
            assert command in output

    def test_sub_help(self):
        result = runner.invoke(app, ["sub", "--help"])
        output = strip_ansi(result.stdout)
        assert result.exit_code == 0
        assert "--topic" in output
        assert "--group" in output
        assert "--endpoint" in output


class TestStatus:
    """Tests for the status command."""

    def test_status_prints_state(self, fake_client):
        result = runner.invoke(app, ["status", "-e", "example:9999"])

        assert result.exit_code == 0
        assert '"status": "ok"' in result.stdout
        assert fake_client.instances[0].endpoint == "example:9999"

    def test_status_error_exits_nonzero(self, monkeypatch):
        monkeypatch.setattr(cli, "SwitchbackClient", UnavailableClient)
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "maintenance" in result.output


class TestRandom:
    """Tests for the random command."""

    def test_publishes_count_events(self, fake_client):
        result = runner.invoke(app, ["random", "-t", "ticks", "-i", "0", "-n", "3"])

        assert result.exit_code == 0
        assert '"events": 3' in result.stdout
        published = fake_client.instances[0].published
        assert [event.topic for event in published] == ["ticks"] * 3

    def test_rejects_negative_interval(self, fake_client):
        result = runner.invoke(app, ["random", "-i", "-1"])
        assert result.exit_code != 0
        assert fake_client.instances == []


class TestGenerateEvents:
    """Tests for the timestamp event generator."""

    async def test_yields_timestamps(self):
        events = [event async for event in generate_events("default", 0, count=2)]

        assert len(events) == 2
        for event in events:
            assert event.topic == "default"
            # e.g. "Mon, 19 Oct 2026 10:00:00 +0000"
            text = event.data.decode()
            assert text[3:5] == ", "
            assert text[-5] in "+-"

    async def test_unlimited_until_closed(self):
        stream = generate_events("default", 0)
        for _ in range(5):
            await stream.__anext__()
        await stream.aclose()
