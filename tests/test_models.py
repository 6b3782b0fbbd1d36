"""Tests for the wire models."""

import json

import pytest
from pydantic import ValidationError

from switchback.models import Event, Subscription


class TestEvent:
    """Tests for Event."""

    def test_payload_is_base64_in_json(self):
        event = Event(topic="orders", data=b"\x00\xffhello")
        body = json.loads(event.model_dump_json())

        assert body == {"topic": "orders", "data": "AP9oZWxsbw=="}
        assert Event.model_validate_json(event.model_dump_json()) == event

    def test_python_dump_keeps_bytes(self):
        assert Event(topic="orders", data=b"raw").model_dump()["data"] == b"raw"

    def test_empty_payload(self):
        event = Event.model_validate_json('{"topic": "orders"}')
        assert event.data == b""

    def test_invalid_base64(self):
        with pytest.raises(ValidationError):
            Event.model_validate_json('{"topic": "orders", "data": "not base64!"}')

    def test_topic_required(self):
        with pytest.raises(ValidationError):
            Event.model_validate_json('{"data": ""}')

    def test_frozen(self):
        event = Event(topic="orders", data=b"1")
        with pytest.raises(ValidationError):
            event.topic = "billing"


def test_subscription_group_optional():
    assert Subscription(topic="x").group is None
    assert Subscription(topic="x", group="g1").group == "g1"
