from .schemas import Event, PublishResponse, ServiceState, Subscription, TopicsResponse

__all__ = [
    "Event",
    "PublishResponse",
    "ServiceState",
    "Subscription",
    "TopicsResponse",
]
