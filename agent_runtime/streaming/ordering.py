"""Order-tolerant application of streamed text chunks.

Chunks may arrive late or out of order. Because each chunk carries the
full accumulated text, a consumer only needs to keep the chunk with the
highest sequence number seen so far.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .events import TextChunk, ThinkingChunk

MAX_LIVE_TEXT_CHARS = 1_000_000


@dataclass(frozen=True)
class TextChunkState:
    live_text: str = ""
    last_applied_sequence: int = -1


def apply_text_chunk_ordered(
    state: TextChunkState,
    event: Union[TextChunk, ThinkingChunk],
) -> TextChunkState:
    """Apply a chunk if it is newer than anything already applied.

    Args:
        state: Current render state.
        event: A text or thinking chunk.

    Returns:
        ``state`` unchanged when ``event.sequence`` is not greater than
        ``state.last_applied_sequence``, otherwise a new state holding the
        chunk's accumulated text (bounded to the last ``MAX_LIVE_TEXT_CHARS``).
    """
    if event.sequence <= state.last_applied_sequence:
        return state
    text = event.accumulated if isinstance(event, TextChunk) else event.content
    if len(text) > MAX_LIVE_TEXT_CHARS:
        text = text[-MAX_LIVE_TEXT_CHARS:]
    return TextChunkState(live_text=text, last_applied_sequence=event.sequence)
