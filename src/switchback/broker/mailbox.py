"""
Bounded per-consumer event queue.

The mailbox is the only back-pressure point in the broker: a blocking put
into a full mailbox suspends the dispatching group until the consumer
drains an event.
"""
import asyncio
from typing import AsyncIterator

from ..models import Event
from .errors import MailboxClosed, MailboxFull

DEFAULT_MAILBOX_SIZE = 32

# Wakes a reader blocked on an empty mailbox when it is closed
_CLOSED = object()


class Mailbox:
    """
    FIFO queue of events with a fixed capacity.

    The broker side puts events in; the subscriber side drains them with
    ``get()`` or ``async for``. Closing the mailbox discards unread events,
    releases a blocked producer and ends iteration on the reader side.
    """

    def __init__(self, maxsize: int = DEFAULT_MAILBOX_SIZE):
        if maxsize <= 0:
            raise ValueError("mailbox size must be positive")

        # Capacity is enforced here so the close sentinel never needs a slot
        self._queue: asyncio.Queue = asyncio.Queue()
        self._maxsize = maxsize
        self._space = asyncio.Event()
        self._space.set()
        self._closed = False

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return 0 if self._closed else self._queue.qsize()

    def full(self) -> bool:
        return self.qsize() >= self._maxsize

    async def put(self, event: Event) -> None:
        """
        Enqueue an event, waiting for space while the mailbox is full.

        Raises:
            MailboxClosed: If the mailbox is (or becomes) closed
        """
        while True:
            if self._closed:
                raise MailboxClosed("mailbox is closed")

            if not self.full():
                self._queue.put_nowait(event)
                return

            self._space.clear()
            await self._space.wait()

    def put_nowait(self, event: Event) -> None:
        """
        Enqueue an event without waiting.

        Raises:
            MailboxClosed: If the mailbox is closed
            MailboxFull: If the mailbox is at capacity
        """
        if self._closed:
            raise MailboxClosed("mailbox is closed")

        if self.full():
            raise MailboxFull(f"mailbox is at capacity ({self._maxsize})")

        self._queue.put_nowait(event)

    async def get(self) -> Event:
        """
        Wait for the next event.

        Raises:
            MailboxClosed: Once the mailbox has been closed
        """
        if self._closed:
            raise MailboxClosed("mailbox is closed")

        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise MailboxClosed("mailbox is closed")

        self._space.set()
        return item

    def close(self) -> None:
        """Close the mailbox, dropping unread events. Idempotent."""
        if self._closed:
            return

        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

        self._queue.put_nowait(_CLOSED)
        self._space.set()

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[Event]:
        while True:
            try:
                yield await self.get()
            except MailboxClosed:
                return
