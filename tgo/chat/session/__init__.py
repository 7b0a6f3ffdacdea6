"""
Session package for the chat engine.

This package provides chat sessions and the registry that owns them.
"""

from .chat_session import ChatSession
from .session_registry import SessionRegistry

__all__ = [
    "ChatSession",
    "SessionRegistry",
]
