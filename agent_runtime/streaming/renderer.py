"""Reference renderers for stream events.

Renderers implement ``handle_event(event) -> None``. The engine treats them
as fire-and-forget: ``handle_event`` must not block, and any exception it
raises is logged and discarded by the caller.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from ..logging import get_logger
from .events import StreamEvent, TextChunk, TextStart, ThinkingChunk, ThinkingStart
from .ordering import TextChunkState, apply_text_chunk_ordered

logger = get_logger(__name__)


class NullRenderer:
    """Renderer that drops every event."""

    def handle_event(self, event: StreamEvent) -> None:
        return None


class QueueRenderer:
    """Forward every event onto an ``asyncio.Queue`` without waiting.

    Useful for handing events to a separate consumer such as a web socket
    writer. When the queue is full the event is dropped and counted.
    """

    def __init__(self, queue: Optional[asyncio.Queue] = None):
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()
        self.dropped = 0

    def handle_event(self, event: StreamEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1


class BufferedRenderer:
    """Record every event and keep the latest text in sequence order.

    Out-of-order or duplicate chunks never move the rendered text backwards.
    A ``text_start``/``thinking_start`` begins a new block and resets the
    corresponding state.
    """

    def __init__(self):
        self.events: list[StreamEvent] = []
        self.text_state = TextChunkState()
        self.thinking_state = TextChunkState()

    @property
    def text(self) -> str:
        return self.text_state.live_text

    @property
    def thinking(self) -> str:
        return self.thinking_state.live_text

    def events_of_type(self, event_type: str) -> list[StreamEvent]:
        return [e for e in self.events if e.type == event_type]

    def handle_event(self, event: StreamEvent) -> None:
        self.events.append(event)
        if isinstance(event, TextStart):
            self.text_state = TextChunkState()
        elif isinstance(event, ThinkingStart):
            self.thinking_state = TextChunkState()
        elif isinstance(event, TextChunk):
            self.text_state = apply_text_chunk_ordered(self.text_state, event)
        elif isinstance(event, ThinkingChunk):
            self.thinking_state = apply_text_chunk_ordered(self.thinking_state, event)


def dispatch_event(renderer: Optional[object], event: StreamEvent) -> None:
    """Hand ``event`` to ``renderer``, logging and discarding any failure."""
    if renderer is None:
        return
    try:
        renderer.handle_event(event)
    except Exception as e:
        logger.warning(
            "Renderer failed to handle event",
            event_type=event.type,
            error=str(e),
            error_type=type(e).__name__,
        )
