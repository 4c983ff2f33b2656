"""Anthropic Messages API backend."""

from __future__ import annotations

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


class AnthropicProvider(BaseLLMProvider):
    """Talks to Claude models through :class:`anthropic.AsyncAnthropic`.

    The system prompt travels as the top-level ``system`` parameter and
    tool results are sent back as ``tool_result`` blocks inside a user turn.
    """

    def __init__(self, api_key: str, model: str, **kwargs: Any):
        super().__init__(api_key, model, **kwargs)

        import anthropic

        self._client = anthropic.AsyncAnthropic(**self._client_kwargs())

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_system(messages: list[LLMMessage]) -> tuple[str | None, list[LLMMessage]]:
        system_parts = [m.content for m in messages if m.role == "system"]
        rest = [m for m in messages if m.role != "system"]
        return ("\n".join(system_parts) if system_parts else None), rest

    @staticmethod
    def _assistant_turn(msg: LLMMessage) -> dict:
        blocks: list[dict] = []
        if msg.content:
            blocks.append({"type": "text", "text": msg.content})
        blocks.extend(
            {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
            for call in msg.tool_calls or []
        )
        return {"role": "assistant", "content": blocks}

    @classmethod
    def _convert_messages(cls, messages: list[LLMMessage]) -> list[dict]:
        """Map a conversation onto Anthropic turns.

        All results for one assistant turn must arrive in a single user turn,
        so consecutive ``tool`` messages share one list of result blocks.
        Assistant turns with neither text nor tool calls are dropped, and a
        user message that follows another user turn is merged into it.
        """
        turns: list[dict] = []
        pending_results: list[dict] | None = None
        for msg in messages:
            if msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id or "",
                    "content": msg.content,
                }
                if pending_results is None:
                    pending_results = [block]
                    turns.append({"role": "user", "content": pending_results})
                else:
                    pending_results.append(block)
                continue

            pending_results = None
            if msg.role == "assistant":
                if msg.tool_calls:
                    turns.append(cls._assistant_turn(msg))
                elif msg.content:
                    turns.append({"role": "assistant", "content": msg.content})
            elif turns and turns[-1]["role"] == "user":
                cls._extend_user_turn(turns[-1], msg.content)
            else:
                turns.append({"role": msg.role, "content": msg.content})
        return turns

    @staticmethod
    def _extend_user_turn(turn: dict, text: str) -> None:
        if isinstance(turn["content"], str):
            turn["content"] = [{"type": "text", "text": turn["content"]}]
        turn["content"].append({"type": "text", "text": text})

    @staticmethod
    def _convert_tools(tools: list[ToolDefinition]) -> list[dict]:
        return [
            {"name": t.name, "description": t.description, "input_schema": t.parameters}
            for t in tools
        ]

    def _request(self, messages: list[LLMMessage], tools: list[ToolDefinition] | None) -> dict:
        system_text, conversation = self._extract_system(messages)
        request: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": self._convert_messages(conversation),
        }
        if system_text:
            request["system"] = system_text
        if tools:
            request["tools"] = self._convert_tools(tools)
        if self.temperature is not None:
            request["temperature"] = self.temperature
        return request

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_response(response) -> LLMResponse:
        texts = [block.text for block in response.content if block.type == "text"]
        calls = [
            ToolCall(
                id=block.id,
                name=block.name,
                arguments=block.input if isinstance(block.input, dict) else {},
            )
            for block in response.content
            if block.type == "tool_use"
        ]
        usage = None
        if response.usage:
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }
        return LLMResponse(
            content="\n".join(texts),
            tool_calls=calls or None,
            usage=usage,
            stop_reason=response.stop_reason,
        )

    async def complete(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
    ) -> LLMResponse:
        try:
            response = await self._client.messages.create(**self._request(messages, tools))
        except Exception as exc:
            logger.error("Anthropic request for %s failed: %s", self.model, exc)
            raise
        return self._parse_response(response)
