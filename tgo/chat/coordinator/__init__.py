"""
Chat coordination module.

This module provides the tool call loop that drives a single generation and
the runtime that owns the engine's long-lived components.
"""

from .tool_call_loop import ToolCallLoop, GenerationRequest
from .chat_runtime import ChatRuntime

__all__ = [
    "ToolCallLoop",
    "GenerationRequest",
    "ChatRuntime",
]
