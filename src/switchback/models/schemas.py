"""
Wire models for the broker API.

Events carry an opaque binary payload; in JSON it travels base64-encoded.
"""
import base64
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class Event(BaseModel):
    """An event published to a topic. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    topic: str = Field(..., description="Topic the event is published to")
    data: bytes = Field(default=b"", description="Opaque payload (base64 in JSON)")

    @field_validator("data", mode="before")
    @classmethod
    def decode_data(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except ValueError as e:
                raise ValueError(f"data must be base64 encoded: {e}") from e
        return value

    @field_serializer("data", when_used="json")
    def encode_data(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")


class Subscription(BaseModel):
    """A request to join a topic, optionally as part of a consumer group."""
    topic: str = Field(..., description="Topic to subscribe to")
    group: Optional[str] = Field(
        default=None,
        description="Consumer group; omit for a private group that sees every event",
    )


class PublishResponse(BaseModel):
    """Acknowledgment sent when a publish stream closes."""
    success: bool = Field(..., description="Whether the stream was consumed")
    events: int = Field(..., description="Number of events received on the stream")
    message: str = Field(default="", description="Status message")


class ServiceState(BaseModel):
    """Status response."""
    status: str = Field(..., description="'ok' or 'maintenance'")
    uptime: str = Field(..., description="Time since the server started serving")
    version: str = Field(..., description="Server version")


class TopicsResponse(BaseModel):
    """Snapshot of the broker directory: topic -> group -> consumer count."""
    count: int = Field(..., description="Number of topics")
    topics: Dict[str, Dict[str, int]] = Field(default_factory=dict)
