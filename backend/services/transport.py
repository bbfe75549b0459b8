"""Envelopes for stream events.

Both shapes carry the same fields; they differ only in how the event kind
is tagged.
"""
import json

from backend.models.stream_events import StreamEvent


def to_json_frame(event: StreamEvent) -> dict:
    """Flat camelCase object with a ``type`` discriminator."""
    return event.model_dump(by_alias=True)


def to_sse(event: StreamEvent) -> dict:
    """Server-sent event dict as accepted by ``EventSourceResponse``."""
    return {"event": event.type, "data": json.dumps(to_json_frame(event))}


def to_oneof(event: StreamEvent) -> dict:
    """Tagged-oneof shape used by bidirectional RPC stream adapters."""
    payload = event.model_dump(by_alias=True, exclude={"type"})
    return {event.type: payload}
