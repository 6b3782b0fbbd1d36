"""
Broker exceptions.

Dispatch failures are scoped to a single group: ``Broker.publish`` logs them
and carries on with the sibling groups.
"""


class BrokerError(Exception):
    """Base exception for broker errors."""
    pass


class BrokerClosed(BrokerError):
    """Raised when subscribing to a broker that is shutting down."""
    pass


class NoConsumers(BrokerError):
    """Raised when dispatching to a group that has no consumers."""

    def __init__(self, group: str):
        super().__init__(f"no available consumers in group {group!r}")
        self.group = group


class MailboxFull(BrokerError):
    """Raised by a non-blocking enqueue into a mailbox at capacity."""
    pass


class MailboxClosed(BrokerError):
    """Raised when using a mailbox after its consumer disconnected."""
    pass
