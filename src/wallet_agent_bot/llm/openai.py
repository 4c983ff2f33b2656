"""OpenAI Chat Completions backend (also any OpenAI-compatible endpoint)."""

from __future__ import annotations

import json
import logging
from typing import Any

from wallet_agent_bot.llm.base import (
    BaseLLMProvider,
    LLMMessage,
    LLMResponse,
    ToolCall,
    ToolDefinition,
)

logger = logging.getLogger(__name__)


def _decode_arguments(raw: str | None) -> dict[str, Any]:
    """Tool arguments arrive as a JSON string; anything unparsable becomes ``{}``."""
    try:
        decoded = json.loads(raw or "{}")
    except (json.JSONDecodeError, TypeError):
        logger.warning("Discarding malformed tool arguments: %r", raw)
        return {}
    return decoded if isinstance(decoded, dict) else {}


class OpenAIProvider(BaseLLMProvider):
    """Talks to :class:`openai.AsyncOpenAI`; ``base_url`` selects a compatible server."""

    def __init__(self, api_key: str, model: str, **kwargs: Any):
        super().__init__(api_key, model, **kwargs)

        import openai

        self._client = openai.AsyncOpenAI(**self._client_kwargs())

    @staticmethod
    def _convert_message(msg: LLMMessage) -> dict:
        if msg.role == "tool":
            return {"role": "tool", "content": msg.content, "tool_call_id": msg.tool_call_id or ""}
        if msg.role == "assistant" and msg.tool_calls:
            return {
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in msg.tool_calls
                ],
            }
        return {"role": msg.role, "content": msg.content}

    @classmethod
    def _convert_messages(cls, messages: list[LLMMessage]) -> list[dict]:
        return [cls._convert_message(m) for m in messages]

    @staticmethod
    def _convert_tools(tools: list[ToolDefinition]) -> list[dict]:
        return [
            {
                "type": "function",
                "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
            }
            for t in tools
        ]

    @staticmethod
    def _parse_response(response) -> LLMResponse:
        choice = response.choices[0]
        calls = [
            ToolCall(id=tc.id, name=tc.function.name, arguments=_decode_arguments(tc.function.arguments))
            for tc in choice.message.tool_calls or []
        ]
        usage = None
        if response.usage:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }
        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=calls or None,
            usage=usage,
            stop_reason=choice.finish_reason,
        )

    async def complete(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
    ) -> LLMResponse:
        request: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": self._convert_messages(messages),
        }
        if tools:
            request["tools"] = self._convert_tools(tools)
        if self.temperature is not None:
            request["temperature"] = self.temperature

        try:
            response = await self._client.chat.completions.create(**request)
        except Exception as exc:
            logger.error("OpenAI request for %s failed: %s", self.model, exc)
            raise
        return self._parse_response(response)
