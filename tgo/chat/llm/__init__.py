"""
Model backends for the chat engine.
"""

from .openai_backend import OpenAIModelBackend, build_openai_client, map_backend_error

__all__ = [
    "OpenAIModelBackend",
    "build_openai_client",
    "map_backend_error",
]
