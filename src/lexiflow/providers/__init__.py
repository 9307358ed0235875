"""
Model providers speaking vendor HTTP APIs over a shared httpx client.
"""

from .anthropic import AnthropicProvider
from .base import (
    ChatMessage,
    ContentPart,
    ModelProvider,
    StreamEvent,
    StreamFinished,
    TextDelta,
    TextResult,
    TokenStream,
)
from .factory import ModelRoute, ProviderFactory
from .openai import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "ChatMessage",
    "ContentPart",
    "ModelProvider",
    "ModelRoute",
    "OpenAIProvider",
    "ProviderFactory",
    "StreamEvent",
    "StreamFinished",
    "TextDelta",
    "TextResult",
    "TokenStream",
]
