"""Frames a lazy fragment stream as start / token* / (done | error) events.

A producer task pulls fragments from the source and pushes them through a
bounded queue; the consumer side (``StreamBridge.run``) turns each one into a
``token`` event. Closing the event iterator cancels the producer, which in
turn closes the source, so a disconnected client stops generation promptly.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable

from backend.models.stream_events import (
    DoneEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
    TokenEvent,
)
from backend.services.providers.errors import ErrorCode, ProviderError
from backend.services.token_estimator import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 32
UNKNOWN_MODEL = "unknown"


@dataclass
class StoredMessage:
    id: str
    conversation_id: str
    content: str
    model: str
    tokens_used: int
    latency_ms: int


PersistFn = Callable[[StoredMessage], Awaitable[None]]


class _End:
    pass


@dataclass
class _Failure:
    error: Exception


_END = _End()


class StreamBridge:
    def __init__(self, persist: PersistFn | None = None, queue_size: int = DEFAULT_QUEUE_SIZE):
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self._persist = persist
        self._queue_size = queue_size

    async def run(self, source: AsyncIterator[str], conversation_id: str) -> AsyncIterator[StreamEvent]:
        message_id = str(uuid.uuid4())
        started = time.monotonic()
        yield StartEvent(conversation_id=conversation_id, message_id=message_id)

        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        producer = asyncio.create_task(_produce(source, queue))
        parts: list[str] = []
        failure: _Failure | None = None
        try:
            while True:
                item = await _next_item(queue, producer)
                if item is _END:
                    break
                if isinstance(item, _Failure):
                    failure = item
                    yield _error_event(item.error, conversation_id)
                    return
                parts.append(item)
                yield TokenEvent(content=item)

            content = "".join(parts)
            message = StoredMessage(
                id=message_id,
                conversation_id=conversation_id,
                content=content,
                model=getattr(source, "model", None) or UNKNOWN_MODEL,
                tokens_used=estimate_tokens(content),
                latency_ms=int((time.monotonic() - started) * 1000),
            )
            if self._persist is not None:
                try:
                    await self._persist(message)
                except Exception:
                    logger.exception("Failed to persist streamed message %s", message_id)
                    yield ErrorEvent(code=ErrorCode.UNKNOWN.value, message="Failed to save response")
                    return

            yield DoneEvent(
                message_id=message.id,
                model=message.model,
                tokens_used=message.tokens_used,
                latency_ms=message.latency_ms,
            )
        finally:
            if not producer.done():
                producer.cancel()
                await asyncio.wait({producer})
            if not producer.cancelled():
                error = producer.exception()
                if error is not None and (failure is None or failure.error is not error):
                    logger.error(
                        "Stream source for conversation %s failed while closing",
                        conversation_id, exc_info=error,
                    )


async def _produce(source: AsyncIterator[str], queue: asyncio.Queue) -> None:
    try:
        async for fragment in source:
            await queue.put(fragment)
    except Exception as e:
        await queue.put(_Failure(e))
    else:
        await queue.put(_END)
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


async def _next_item(queue: asyncio.Queue, producer: asyncio.Task):
    """Next queued item, or a failure if the producer died without ending the stream."""
    if not queue.empty():
        return queue.get_nowait()
    getter = asyncio.ensure_future(queue.get())
    try:
        await asyncio.wait({getter, producer}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if not getter.done():
            getter.cancel()
    if getter.done() and not getter.cancelled():
        return getter.result()
    if not queue.empty():
        return queue.get_nowait()
    if producer.cancelled():
        return _Failure(RuntimeError("Stream producer was cancelled"))
    return _Failure(producer.exception() or RuntimeError("Stream producer exited without finishing"))


def _error_event(error: Exception, conversation_id: str) -> ErrorEvent:
    if isinstance(error, ProviderError):
        logger.warning(
            "Stream for conversation %s failed: %s (%s)",
            conversation_id, error.code.value, error.provider,
        )
        return ErrorEvent(code=error.code.value, message=error.message)
    logger.error("Streaming response failed for conversation %s", conversation_id, exc_info=error)
    return ErrorEvent(code=ErrorCode.UNKNOWN.value, message="Failed to generate response")
