"""Durable conversation memory, one thread per chat user."""

from __future__ import annotations

import json
import logging

from wallet_agent_bot.llm.base import LLMMessage, ToolCall
from wallet_agent_bot.storage.database import Database
from wallet_agent_bot.storage.models import StoredMessage

logger = logging.getLogger("wallet_agent_bot.agent.memory")


class ConversationMemory:
    """Checkpointed message history stored in the ``agent_messages`` table.

    Messages are written one reasoning step at a time (the assistant turn
    together with its tool results), so a stored thread never ends in a tool
    call without its answer.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def load(self, thread_id: str, limit: int = 0) -> list[LLMMessage]:
        """Return the last *limit* messages of a thread (all if ``limit <= 0``).

        The window is trimmed to begin at a user message so it never opens
        with an orphaned tool result.
        """
        rows = await self.db.fetch_all(
            "SELECT * FROM ("
            "  SELECT * FROM agent_messages WHERE thread_id = ? "
            "  ORDER BY id DESC LIMIT ?"
            ") ORDER BY id ASC",
            (thread_id, limit if limit > 0 else -1),
        )
        messages = [self._to_message(StoredMessage.model_validate(r)) for r in rows]
        while messages and messages[0].role != "user":
            messages.pop(0)
        return messages

    async def append(self, thread_id: str, messages: list[LLMMessage]) -> None:
        """Store *messages* for *thread_id* in a single commit."""
        if not messages:
            return
        await self.db.executemany(
            "INSERT INTO agent_messages "
            "(thread_id, role, content, tool_calls_json, tool_call_id) "
            "VALUES (?, ?, ?, ?, ?)",
            [
                (
                    thread_id,
                    m.role,
                    m.content or "",
                    json.dumps([tc.to_dict() for tc in m.tool_calls]) if m.tool_calls else None,
                    m.tool_call_id,
                )
                for m in messages
            ],
        )

    async def clear(self, thread_id: str) -> int:
        cursor = await self.db.execute(
            "DELETE FROM agent_messages WHERE thread_id = ?", (thread_id,)
        )
        logger.info(f"Cleared {cursor.rowcount} messages from thread {thread_id}")
        return cursor.rowcount

    @staticmethod
    def _to_message(stored: StoredMessage) -> LLMMessage:
        tool_calls = None
        if stored.tool_calls_json:
            tool_calls = [ToolCall.from_dict(d) for d in json.loads(stored.tool_calls_json)]
        return LLMMessage(
            role=stored.role,
            content=stored.content,
            tool_calls=tool_calls,
            tool_call_id=stored.tool_call_id,
        )
