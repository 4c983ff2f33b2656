"""Provider-neutral message types and the interface every LLM backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ToolDefinition:
    """A tool offered to the model, described by a JSON schema."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        return cls(id=data["id"], name=data["name"], arguments=data.get("arguments") or {})


@dataclass
class LLMMessage:
    """One entry of a conversation.

    ``tool_calls`` is set on assistant turns that requested tools;
    ``tool_call_id`` links a ``tool`` message to the call it answers.
    """

    role: str  # 'system', 'user', 'assistant', 'tool'
    content: str = ""
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None


@dataclass
class LLMResponse:
    content: str = ""
    tool_calls: Optional[list[ToolCall]] = None
    usage: Optional[dict[str, int]] = None
    stop_reason: Optional[str] = None


class BaseLLMProvider(ABC):
    """Shared settings and the single call the agent loop makes."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"api_key": self.api_key}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        return kwargs

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
    ) -> LLMResponse:
        """Run one model turn and return text and/or tool calls."""
