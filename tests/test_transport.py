import json

import pytest
from pydantic import TypeAdapter

from backend.models.stream_events import (
    DoneEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
    TokenEvent,
)
from backend.services.transport import to_json_frame, to_oneof, to_sse


class TestJsonFrame:
    def test_start_frame_is_camel_case(self):
        frame = to_json_frame(StartEvent(conversation_id="c1", message_id="m1"))
        assert frame == {"type": "start", "conversationId": "c1", "messageId": "m1"}

    def test_done_frame(self):
        frame = to_json_frame(DoneEvent(message_id="m1", model="gemini-1.5-flash", tokens_used=4, latency_ms=12))
        assert frame == {
            "type": "done",
            "messageId": "m1",
            "model": "gemini-1.5-flash",
            "tokensUsed": 4,
            "latencyMs": 12,
        }

    def test_frames_parse_back_through_discriminator(self):
        adapter = TypeAdapter(StreamEvent)
        event = adapter.validate_python({"type": "error", "code": "RATE_LIMITED", "message": "slow down"})
        assert isinstance(event, ErrorEvent)
        assert event.code == "RATE_LIMITED"


class TestSse:
    def test_event_name_matches_type(self):
        sse = to_sse(TokenEvent(content="Hola"))
        assert sse["event"] == "token"
        assert json.loads(sse["data"]) == {"type": "token", "content": "Hola"}


class TestOneof:
    @pytest.mark.parametrize("event,key", [
        (StartEvent(conversation_id="c", message_id="m"), "start"),
        (TokenEvent(content="x"), "token"),
        (DoneEvent(message_id="m", model="x", tokens_used=0, latency_ms=0), "done"),
        (ErrorEvent(code="UNKNOWN", message="oops"), "error"),
    ])
    def test_single_tag(self, event, key):
        message = to_oneof(event)
        assert list(message) == [key]
        assert "type" not in message[key]

    def test_same_content_as_json_frame(self):
        event = ErrorEvent(code="NETWORK_ERROR", message="retry")
        frame = to_json_frame(event)
        frame.pop("type")
        assert to_oneof(event)["error"] == frame
