"""Stream event types, ordered chunk application and reference renderers."""

from .events import (
    CompleteEvent,
    ErrorEvent,
    StreamEvent,
    StreamMetrics,
    StreamStart,
    TextChunk,
    TextStart,
    ThinkingChunk,
    ThinkingComplete,
    ThinkingStart,
    ToolCallEvent,
    ToolExecutionComplete,
    ToolExecutionStart,
    event_to_dict,
)
from .ordering import MAX_LIVE_TEXT_CHARS, TextChunkState, apply_text_chunk_ordered
from .renderer import BufferedRenderer, NullRenderer, QueueRenderer, dispatch_event

__all__ = [
    # Events
    'StreamEvent',
    'StreamStart',
    'ThinkingStart',
    'ThinkingChunk',
    'ThinkingComplete',
    'TextStart',
    'TextChunk',
    'ToolCallEvent',
    'ToolExecutionStart',
    'ToolExecutionComplete',
    'ErrorEvent',
    'CompleteEvent',
    'StreamMetrics',
    'event_to_dict',
    # Ordering
    'MAX_LIVE_TEXT_CHARS',
    'TextChunkState',
    'apply_text_chunk_ordered',
    # Renderers
    'NullRenderer',
    'QueueRenderer',
    'BufferedRenderer',
    'dispatch_event',
]
