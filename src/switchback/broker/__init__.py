"""
In-memory broker engine: mailboxes, consumer groups and the topic directory.
"""
from .errors import BrokerClosed, BrokerError, MailboxClosed, MailboxFull, NoConsumers
from .mailbox import DEFAULT_MAILBOX_SIZE, Mailbox
from .pubsub import Backpressure, Broker, Consumer, Group

__all__ = [
    "Backpressure",
    "Broker",
    "BrokerClosed",
    "BrokerError",
    "Consumer",
    "DEFAULT_MAILBOX_SIZE",
    "Group",
    "Mailbox",
    "MailboxClosed",
    "MailboxFull",
    "NoConsumers",
]
