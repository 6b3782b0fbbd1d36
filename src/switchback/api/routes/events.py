import asyncio
import json
import logging
from typing import AsyncGenerator, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from starlette.requests import ClientDisconnect

from ...broker import Broker, BrokerClosed, MailboxClosed
from ...core.config import Settings
from ...core.dependencies import get_broker, get_settings
from ...models import Event, PublishResponse, Subscription

router = APIRouter(tags=["Events"])
logger = logging.getLogger(__name__)


async def iter_lines(request: Request) -> AsyncIterator[bytes]:
    """Split a streamed request body into non-empty lines."""
    buffer = b""
    async for chunk in request.stream():
        buffer += chunk
        *lines, buffer = buffer.split(b"\n")
        for line in lines:
            if line.strip():
                yield line
    if buffer.strip():
        yield buffer


@router.post("/publish", response_model=PublishResponse)
async def publish_events(request: Request, broker: Broker = Depends(get_broker)) -> PublishResponse:
    """
    Publish a stream of events.

    The request body is newline-delimited JSON, one event per line, and may
    stay open for as long as the publisher has events to send. Each event is
    routed as soon as its line arrives; the response is the acknowledgment
    sent once the publisher closes the body.
    """
    count = 0
    logger.info("Publisher connected")

    try:
        async for line in iter_lines(request):
            try:
                event = Event.model_validate_json(line)
            except ValidationError as e:
                logger.error(f"Could not decode event {count + 1} from publish stream: {e}")
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid event on line {count + 1} ({count} events published): {e}",
                )

            count += 1
            await broker.publish(event)
    except ClientDisconnect:
        logger.error(f"Publisher disconnected mid-stream after {count} events")
        raise

    logger.info(f"Publish stream closed after {count} events")
    return PublishResponse(
        success=True,
        events=count,
        message=f"Received {count} events",
    )


async def stream_subscription(
    broker: Broker,
    subscription: Subscription,
    heartbeat_interval: float,
) -> AsyncGenerator[Dict[str, str], None]:
    """
    Generator that registers a consumer and yields its events as SSE messages.

    The consumer is detached from its group when the stream ends for any
    reason: client disconnect, cancellation, or broker shutdown.
    """
    try:
        consumer = broker.connect(subscription)
    except BrokerClosed:
        logger.warning(f"Refused subscription to {subscription.topic}: broker is shutting down")
        return

    # One read stays pending across heartbeats so a timeout never discards
    # an event the read has already taken off the mailbox
    pending: Optional[asyncio.Task] = None
    try:
        yield {
            "event": "connected",
            "data": json.dumps({
                "consumer_id": str(consumer.id),
                "topic": consumer.topic,
                "group": consumer.group,
            }),
        }

        while True:
            if pending is None:
                pending = asyncio.create_task(consumer.mailbox.get())

            done, _ = await asyncio.wait({pending}, timeout=heartbeat_interval)
            if not done:
                # Send heartbeat to keep connection alive
                yield {
                    "event": "heartbeat",
                    "data": json.dumps({"consumer_id": str(consumer.id)}),
                }
                continue

            read, pending = pending, None
            try:
                event = read.result()
            except MailboxClosed:
                logger.info(f"Subscription {consumer.id} ended by the broker")
                break

            yield {
                "event": "message",
                "data": event.model_dump_json(),
            }
    finally:
        if pending is not None:
            pending.cancel()
        broker.disconnect(consumer)


@router.get("/subscribe")
async def subscribe(
    topic: str = Query(..., description="Topic to subscribe to"),
    group: Optional[str] = Query(
        None,
        description="Consumer group; omit to receive every event on the topic",
    ),
    broker: Broker = Depends(get_broker),
    settings: Settings = Depends(get_settings),
) -> EventSourceResponse:
    """
    Subscribe to a topic via Server-Sent Events (SSE).

    Subscribers sharing a group split the topic's events round robin; a
    subscriber without a group gets a private group and sees every event.

    Response (SSE format):
        event: connected
        data: {"consumer_id": "...", "topic": "orders", "group": "g1"}

        event: message
        data: {"topic": "orders", "data": "<base64>"}
    """
    if broker.closed:
        raise HTTPException(status_code=503, detail="the broker is shutting down")

    return EventSourceResponse(
        stream_subscription(
            broker,
            Subscription(topic=topic, group=group),
            settings.stream_heartbeat_interval,
        )
    )
