"""
In-memory topic/group/consumer directory and round-robin dispatch.

Locking is split in two domains:

- the broker's directory lock guards the topic -> group -> Group mapping and
  is only held for structural changes, never while dispatching;
- each group serializes its own dispatches, so a consumer that stops
  draining stalls only the group it belongs to.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from ..models import Event, Subscription
from .errors import BrokerClosed, BrokerError, NoConsumers
from .mailbox import DEFAULT_MAILBOX_SIZE, Mailbox

logger = logging.getLogger(__name__)


class Backpressure(str, Enum):
    """What a dispatch does when the selected consumer's mailbox is full."""
    BLOCK = "block"
    DROP = "drop"


@dataclass(eq=False)
class Consumer:
    """One live subscriber connection and its inbound mailbox."""
    topic: str
    group: str
    mailbox: Mailbox
    id: UUID = field(default_factory=uuid4)
    private: bool = False

    def __aiter__(self):
        return self.mailbox.__aiter__()

    def __repr__(self) -> str:
        return f"Consumer(id={self.id}, topic={self.topic!r}, group={self.group!r})"


class Group:
    """
    Named pool of consumers sharing one topic's events in strict rotation.

    The consumer list and the cursor are only touched under ``_state``;
    ``_dispatch`` serializes whole dispatches (selection plus enqueue) so the
    per-consumer order follows publish order.
    """

    def __init__(self, id: str, private: bool = False):
        self.id = id
        self.private = private
        self._consumers: List[Consumer] = []
        self._cursor = 0
        self._state = threading.Lock()
        self._dispatch = asyncio.Lock()

    def __len__(self) -> int:
        with self._state:
            return len(self._consumers)

    @property
    def consumers(self) -> List[Consumer]:
        with self._state:
            return list(self._consumers)

    @property
    def cursor(self) -> int:
        with self._state:
            return self._cursor

    def add(self, consumer: Consumer) -> None:
        with self._state:
            self._consumers.append(consumer)

    def remove(self, consumer: Consumer) -> bool:
        """
        Detach a consumer, keeping the cursor on whoever was due next.

        Returns:
            True if the consumer was a member of this group
        """
        with self._state:
            try:
                index = self._consumers.index(consumer)
            except ValueError:
                return False

            del self._consumers[index]
            if index < self._cursor:
                self._cursor -= 1
            if self._cursor >= len(self._consumers):
                self._cursor = 0
            return True

    def _next(self) -> Consumer:
        with self._state:
            if not self._consumers:
                raise NoConsumers(self.id)

            consumer = self._consumers[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._consumers)
            return consumer

    async def dispatch(self, event: Event, block: bool = True) -> Consumer:
        """
        Deliver an event to the next consumer in rotation.

        The cursor moves past the selected consumer before the enqueue, so a
        delivery that fails with ``MailboxFull`` or ``MailboxClosed`` still
        uses up that consumer's turn.

        Args:
            event: The event to deliver
            block: Wait for mailbox space instead of raising ``MailboxFull``

        Returns:
            The consumer the event was handed to

        Raises:
            NoConsumers: If the group is empty (the cursor is left as is)
            MailboxFull: If not blocking and the selected mailbox is full
            MailboxClosed: If the selected consumer disconnected meanwhile
        """
        async with self._dispatch:
            consumer = self._next()
            if block:
                await consumer.mailbox.put(event)
            else:
                consumer.mailbox.put_nowait(event)
            return consumer


class Broker:
    """
    Directory of topics and consumer groups; routes publishes and subscribes.

    Subscribers without a group get a freshly generated private group, so
    every such subscriber sees every event on the topic. Subscribers sharing
    a group split the topic's events round robin.
    """

    def __init__(
        self,
        mailbox_size: int = DEFAULT_MAILBOX_SIZE,
        backpressure: Backpressure | str = Backpressure.BLOCK,
    ):
        self.mailbox_size = mailbox_size
        self.backpressure = Backpressure(backpressure)
        self._topics: Dict[str, Dict[str, Group]] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def connect(self, subscription: Subscription) -> Consumer:
        """
        Register a new consumer for a topic and group.

        The returned consumer's mailbox is the subscriber's event feed; pass
        the consumer to ``disconnect()`` when the subscriber goes away.

        Raises:
            BrokerClosed: If the broker is shutting down
        """
        private = not subscription.group
        group_id = str(uuid4()) if private else subscription.group

        with self._lock:
            if self._closed:
                raise BrokerClosed("the broker is shutting down")

            groups = self._topics.setdefault(subscription.topic, {})
            group = groups.get(group_id)
            if group is None:
                group = groups[group_id] = Group(group_id, private=private)
                logger.debug(f"Created group {group_id} on topic {subscription.topic}")

            consumer = Consumer(
                topic=subscription.topic,
                group=group_id,
                mailbox=Mailbox(self.mailbox_size),
                private=private,
            )
            group.add(consumer)

        logger.info(f"Consumer {consumer.id} joined topic {subscription.topic} [group: {group_id}]")
        return consumer

    def disconnect(self, consumer: Consumer) -> None:
        """Detach a consumer from its group and close its mailbox. Idempotent."""
        with self._lock:
            groups = self._topics.get(consumer.topic, {})
            group = groups.get(consumer.group)
            removed = group.remove(consumer) if group is not None else False

            # Nobody can rejoin a generated group id
            if group is not None and group.private and len(group) == 0:
                del groups[consumer.group]

        consumer.mailbox.close()
        if removed:
            logger.info(f"Consumer {consumer.id} left topic {consumer.topic} [group: {consumer.group}]")

    async def publish(self, event: Event) -> int:
        """
        Dispatch an event to every group subscribed to its topic.

        Delivery is best effort and at most once per group: a failing group is
        logged and skipped, it never fails the publish or its siblings.

        Returns:
            Number of groups that accepted the event
        """
        with self._lock:
            groups = list(self._topics.get(event.topic, {}).values())

        if not groups:
            logger.debug(f"No groups for topic {event.topic}, dropping event")
            return 0

        block = self.backpressure is Backpressure.BLOCK
        results = await asyncio.gather(
            *(group.dispatch(event, block=block) for group in groups),
            return_exceptions=True,
        )

        delivered = 0
        for group, result in zip(groups, results):
            if isinstance(result, BrokerError):
                logger.error(f"Could not publish event to topic {event.topic} group {group.id}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                delivered += 1
        return delivered

    def close(self) -> None:
        """Refuse new subscribers and end every open subscription. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            consumers = [
                consumer
                for groups in self._topics.values()
                for group in groups.values()
                for consumer in group.consumers
            ]

        for consumer in consumers:
            consumer.mailbox.close()
        logger.info(f"Broker closed, ended {len(consumers)} subscriptions")

    def topics(self) -> Dict[str, Dict[str, int]]:
        """Snapshot of topic -> group -> consumer count."""
        with self._lock:
            return {
                topic: {group_id: len(group) for group_id, group in groups.items()}
                for topic, groups in self._topics.items()
            }
