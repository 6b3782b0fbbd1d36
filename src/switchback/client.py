"""
Client for a Switchback server.

Usage:
    from switchback.client import SwitchbackClient

    async with SwitchbackClient("localhost:7773") as client:
        state = await client.status()

        async for event in client.subscribe("orders", group="billing"):
            print(event.data)
"""
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Iterable, List, Optional, Union

import httpx

from .models import Event, PublishResponse, ServiceState

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "localhost:7773"
STATUS_TIMEOUT = 20.0

Events = Union[Iterable[Event], AsyncIterable[Event]]


class ClientError(ConnectionError):
    """Raised when the server answers a call with an error."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class Unavailable(ClientError):
    """Raised when the server refuses a call (maintenance mode or shutdown)."""
    pass


def endpoint_url(endpoint: str) -> str:
    """Turn ``host:port`` into a base URL; full URLs are kept as given."""
    if "://" not in endpoint:
        endpoint = f"http://{endpoint}"
    return endpoint.rstrip("/")


async def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return

    await response.aread()
    try:
        detail = response.json().get("detail", response.text)
    except ValueError:
        detail = response.text

    if not isinstance(detail, str):
        detail = json.dumps(detail)

    if response.status_code == 503:
        raise Unavailable(response.status_code, detail)
    raise ClientError(response.status_code, detail)


class SwitchbackClient:
    """
    Async client for the status, publish and subscribe calls.

    Publishing and subscribing use long-lived HTTP streams, so reads on this
    client have no timeout unless one is passed per call.
    """

    def __init__(self, endpoint: str = DEFAULT_ENDPOINT, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = endpoint_url(endpoint)
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(connect=10.0, read=None, write=30.0, pool=None),
        )

    async def status(self, timeout: float = STATUS_TIMEOUT) -> ServiceState:
        """Fetch the server state within ``timeout`` seconds."""
        response = await self._http_client.get("/v1/status", timeout=timeout)
        await _raise_for_status(response)
        return ServiceState.model_validate(response.json())

    async def publish(self, events: Events) -> PublishResponse:
        """
        Stream events to the server and return its acknowledgment.

        ``events`` may be a plain or async iterable; the request body stays
        open until it is exhausted.
        """
        response = await self._http_client.post(
            "/v1/events/publish",
            content=self._encode(events),
            headers={"Content-Type": "application/x-ndjson"},
        )
        await _raise_for_status(response)
        return PublishResponse.model_validate(response.json())

    async def _encode(self, events: Events) -> AsyncIterator[bytes]:
        if isinstance(events, AsyncIterable):
            async for event in events:
                yield event.model_dump_json().encode("utf-8") + b"\n"
        else:
            for event in events:
                yield event.model_dump_json().encode("utf-8") + b"\n"

    async def subscribe(self, topic: str, group: Optional[str] = None) -> AsyncIterator[Event]:
        """
        Yield events from a topic until the server ends the stream.

        Raises:
            Unavailable: If the server refuses the subscription
        """
        params = {"topic": topic}
        if group:
            params["group"] = group

        async with self._http_client.stream("GET", "/v1/events/subscribe", params=params) as response:
            await _raise_for_status(response)

            event_type = None
            data_lines: List[str] = []

            async for line in response.aiter_lines():
                line = line.strip()

                if not line:
                    # Empty line = end of event
                    if event_type and data_lines:
                        event = self._handle_sse_event(event_type, "\n".join(data_lines))
                        if event is not None:
                            yield event
                    event_type = None
                    data_lines = []
                    continue

                if line.startswith("event:"):
                    event_type = line[6:].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[5:].strip())
                # Ignore comments and other fields (id, retry, etc.)

    def _handle_sse_event(self, event_type: str, data: str) -> Optional[Event]:
        if event_type == "message":
            return Event.model_validate_json(data)

        if event_type == "connected":
            info: Any = json.loads(data)
            logger.info(f"Subscribed to {info.get('topic')} as consumer {info.get('consumer_id')} [group: {info.get('group')}]")
        elif event_type == "heartbeat":
            logger.debug("Received heartbeat")
        else:
            logger.debug(f"Unknown SSE event type: {event_type}")
        return None

    async def close(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "SwitchbackClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
