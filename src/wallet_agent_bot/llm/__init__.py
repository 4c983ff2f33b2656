"""LLM provider abstraction layer.

Provides a unified interface for the reasoning backend (Anthropic, OpenAI,
and any OpenAI-compatible endpoint) through a common set of data
structures and a routing layer.
"""

from wallet_agent_bot.llm.base import (
    BaseLLMProvider,
    LLMMessage,
    LLMResponse,
    ToolCall,
    ToolDefinition,
)
from wallet_agent_bot.llm.router import LLMRouter

__all__ = [
    "BaseLLMProvider",
    "LLMMessage",
    "LLMResponse",
    "LLMRouter",
    "ToolCall",
    "ToolDefinition",
]
