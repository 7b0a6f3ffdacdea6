"""
Fragments of a streamed model response.

A model backend yields a sequence of these; the stream accumulator turns
them back into an answer and a list of tool calls.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class TextDelta:
    """A piece of the answer text."""
    text: str


@dataclass(frozen=True)
class ReasoningDelta:
    """A piece of the model's reasoning, shown to the user only."""
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """A piece of the tool call at ``index``.

    Deltas for different indices may interleave; each field only ever
    appends to the call already collected for that index.
    """
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


Fragment = Union[TextDelta, ReasoningDelta, ToolCallDelta]
