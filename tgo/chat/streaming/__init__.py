"""
Streaming package for the chat engine.

This package provides the fragment types yielded by model backends and the
accumulator that reassembles them.
"""

from .fragments import Fragment, TextDelta, ReasoningDelta, ToolCallDelta
from .accumulator import StreamAccumulator, AccumulatedResponse, ToolCallDraft

__all__ = [
    "Fragment",
    "TextDelta",
    "ReasoningDelta",
    "ToolCallDelta",
    "StreamAccumulator",
    "AccumulatedResponse",
    "ToolCallDraft",
]
