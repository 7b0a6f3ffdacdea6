"""
In-memory implementations of the chat engine's storage interfaces.
"""

from .in_memory_config_store import InMemoryConfigStore

__all__ = [
    "InMemoryConfigStore",
]
