"""
Switchback CLI - Main entry point.

Commands:
    switchback serve    - Run the broker server
    switchback status   - Query the status of a running server
    switchback sub      - Print events from a topic as they arrive
    switchback random   - Publish timestamp events to a topic periodically
    switchback version  - Show the version
"""
import asyncio
from datetime import datetime, timezone
from typing import AsyncIterator, NoReturn, Optional

import httpx
import typer
from pydantic import BaseModel, ValidationError

from switchback import __version__
from switchback.client import DEFAULT_ENDPOINT, STATUS_TIMEOUT, ClientError, SwitchbackClient
from switchback.models import Event

app = typer.Typer(
    name="switchback",
    help="A pub/sub server for simple eventing interactions.",
    no_args_is_help=True,
)

# RFC 1123 with numeric zone
TIMESTAMP_FORMAT = "%a, %d %b %Y %H:%M:%S %z"

CLIENT_ERRORS = (ClientError, httpx.HTTPError, OSError)

EndpointOption = typer.Option(
    DEFAULT_ENDPOINT, "--endpoint", "-e", help="The endpoint to connect to the switchback server on."
)


def print_json(model: BaseModel) -> None:
    typer.echo(model.model_dump_json(indent=2))


def fail(err: Exception) -> NoReturn:
    typer.echo(f"Error: {err}", err=True)
    raise typer.Exit(1)


@app.command()
def serve():
    """
    Serve the switchback server (configured from SWITCHBACK_* environment variables).
    """
    from switchback.core.config import Settings
    from switchback.server import Server, ServerError

    try:
        server = Server(Settings())
    except ValidationError as e:
        fail(e)

    try:
        asyncio.run(server.serve())
    except ServerError as e:
        fail(e)
    except KeyboardInterrupt:
        pass


@app.command()
def status(endpoint: str = EndpointOption):
    """
    Get the status of a running switchback server.
    """
    async def _status():
        async with SwitchbackClient(endpoint) as client:
            return await client.status(timeout=STATUS_TIMEOUT)

    try:
        print_json(asyncio.run(_status()))
    except CLIENT_ERRORS as e:
        fail(e)


@app.command()
def sub(
    endpoint: str = EndpointOption,
    topic: str = typer.Option("default", "--topic", "-t", help="The topic to subscribe to events for."),
    group: Optional[str] = typer.Option(None, "--group", "-g", help="The group the client is a part of."),
):
    """
    Print events from the stream as they come in.
    """
    async def _subscribe():
        async with SwitchbackClient(endpoint) as client:
            async for event in client.subscribe(topic, group=group):
                print_json(event)

    try:
        asyncio.run(_subscribe())
    except CLIENT_ERRORS as e:
        fail(e)
    except KeyboardInterrupt:
        pass


async def generate_events(topic: str, interval: float, count: int = 0) -> AsyncIterator[Event]:
    """Yield one timestamp event every ``interval`` seconds; ``count`` 0 means forever."""
    sent = 0
    while count <= 0 or sent < count:
        await asyncio.sleep(interval)
        ts = datetime.now(timezone.utc).astimezone()
        yield Event(topic=topic, data=ts.strftime(TIMESTAMP_FORMAT).encode("utf-8"))
        sent += 1


@app.command()
def random(
    endpoint: str = EndpointOption,
    topic: str = typer.Option("default", "--topic", "-t", help="The topic to generate events on."),
    interval: float = typer.Option(2.5, "--interval", "-i", min=0.0, help="Seconds between events."),
    count: int = typer.Option(0, "--count", "-n", min=0, help="Number of events to send (0 for no limit)."),
):
    """
    Randomly generate events in the specified topic and publish them.
    """
    async def _simulate():
        async with SwitchbackClient(endpoint) as client:
            return await client.publish(generate_events(topic, interval, count))

    try:
        print_json(asyncio.run(_simulate()))
    except CLIENT_ERRORS as e:
        fail(e)
    except KeyboardInterrupt:
        pass


@app.command()
def version():
    """
    Show the Switchback version.
    """
    typer.echo(f"Switchback v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
