"""Per-user reasoning agent sessions and their conversation memory."""

from wallet_agent_bot.agent.memory import ConversationMemory
from wallet_agent_bot.agent.session import (
    AgentSession,
    AgentSessionFactory,
    ChunkSource,
    ResponseChunk,
)

__all__ = [
    "AgentSession",
    "AgentSessionFactory",
    "ChunkSource",
    "ConversationMemory",
    "ResponseChunk",
]
