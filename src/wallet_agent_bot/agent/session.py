"""Agent sessions - a user's signer wired to the reasoning loop.

A session is cheap and rebuilt for every message; the conversation itself
lives in :class:`ConversationMemory` under ``thread_id = user_id``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, AsyncIterator

from wallet_agent_bot.config import AgentConfig
from wallet_agent_bot.errors import AgentTimeoutError, AgentUnavailableError
from wallet_agent_bot.llm.base import BaseLLMProvider, LLMMessage, LLMResponse, ToolCall
from wallet_agent_bot.tools.registry import ToolRegistry, ToolResult
from wallet_agent_bot.tools.wallet_tools import WalletContext, build_wallet_tools

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from wallet_agent_bot.agent.memory import ConversationMemory
    from wallet_agent_bot.wallet.provider import Web3Provider

logger = logging.getLogger("wallet_agent_bot.agent")

STEP_LIMIT_NOTICE = (
    "I couldn't finish that request within my step limit. "
    "Please try rephrasing or splitting it up."
)


class ChunkSource(str, Enum):
    AGENT = "agent"
    TOOLS = "tools"


@dataclass
class ResponseChunk:
    """One step of a streamed reply.

    ``AGENT`` chunks hold model text (and the tool calls it requested);
    ``TOOLS`` chunks hold a tool's result and are internal bookkeeping.
    """

    source: ChunkSource
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    tool_name: str | None = None

    @property
    def is_user_facing(self) -> bool:
        return self.source is ChunkSource.AGENT and bool(self.content.strip())


class AgentSession:
    """A tool-augmented reasoning loop bound to one user."""

    def __init__(
        self,
        thread_id: str,
        llm: BaseLLMProvider,
        tools: ToolRegistry,
        memory: ConversationMemory,
        config: AgentConfig,
    ):
        self.thread_id = thread_id
        self.llm = llm
        self.tools = tools
        self.memory = memory
        self.config = config
        self._tool_definitions = tools.definitions()

    async def stream_respond(self, user_text: str) -> AsyncIterator[ResponseChunk]:
        """Run the reasoning loop for one user message, yielding each step.

        Raises
        ------
        AgentUnavailableError
            If the reasoning backend fails.
        AgentTimeoutError
            If a model or tool call exceeds its timeout.
        """
        history = await self.memory.load(self.thread_id, self.config.history_messages)
        user_message = LLMMessage(role="user", content=user_text)
        messages = [
            LLMMessage(role="system", content=self.config.system_prompt),
            *history,
            user_message,
        ]
        unsaved: list[LLMMessage] = [user_message]

        for _ in range(self.config.max_iterations):
            response = await self._complete(messages)

            assistant = LLMMessage(
                role="assistant",
                content=response.content or "",
                tool_calls=response.tool_calls,
            )
            # Empty final answers are kept out of the history.
            if assistant.content or assistant.tool_calls:
                messages.append(assistant)
                unsaved.append(assistant)

            if response.content:
                logger.debug(f"[{self.thread_id}] agent: {response.content[:200]}")
            yield ResponseChunk(
                source=ChunkSource.AGENT,
                content=response.content or "",
                tool_calls=response.tool_calls,
            )

            if not response.tool_calls:
                await self.memory.append(self.thread_id, unsaved)
                return

            for tc in response.tool_calls:
                result = await self._run_tool(tc)
                tool_message = LLMMessage(role="tool", content=result.render(), tool_call_id=tc.id)
                messages.append(tool_message)
                unsaved.append(tool_message)
                yield ResponseChunk(
                    source=ChunkSource.TOOLS,
                    content=tool_message.content,
                    tool_name=tc.name,
                )

            await self.memory.append(self.thread_id, unsaved)
            unsaved = []

        logger.warning(
            f"[{self.thread_id}] stopped after {self.config.max_iterations} iterations"
        )
        yield ResponseChunk(source=ChunkSource.AGENT, content=STEP_LIMIT_NOTICE)

    async def _complete(self, messages: list[LLMMessage]) -> LLMResponse:
        try:
            return await asyncio.wait_for(
                self.llm.complete(messages=messages, tools=self._tool_definitions),
                timeout=self.config.llm_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                f"[{self.thread_id}] LLM call exceeded {self.config.llm_timeout_seconds}s"
            )
            raise AgentTimeoutError("Reasoning backend timed out") from exc
        except Exception as exc:
            logger.error(f"[{self.thread_id}] LLM error: {exc}")
            raise AgentUnavailableError(f"Reasoning backend failed: {exc}") from exc

    async def _run_tool(self, call: ToolCall) -> ToolResult:
        logger.info(f"[{self.thread_id}] calling tool: {call.name}({call.arguments})")
        try:
            result = await asyncio.wait_for(
                self.tools.run(call), timeout=self.config.tool_timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                f"[{self.thread_id}] tool {call.name} exceeded "
                f"{self.config.tool_timeout_seconds}s"
            )
            raise AgentTimeoutError(f"Tool {call.name} timed out") from exc
        if not result.ok:
            logger.info(f"[{self.thread_id}] tool {call.name} returned error: {result.error}")
        return result


class AgentSessionFactory:
    """Builds per-user sessions sharing one LLM client, chain provider and memory."""

    def __init__(
        self,
        llm: BaseLLMProvider,
        chain_provider: Web3Provider,
        memory: ConversationMemory,
        config: AgentConfig,
        max_transfer_amount: Decimal | float = 0,
    ):
        self.llm = llm
        self.chain_provider = chain_provider
        self.memory = memory
        self.config = config
        self.max_transfer_amount = Decimal(str(max_transfer_amount))

    def build_session(self, user_id: str, account: LocalAccount) -> AgentSession:
        ctx = WalletContext(
            account=account,
            provider=self.chain_provider,
            max_transfer_amount=self.max_transfer_amount,
        )
        return AgentSession(
            thread_id=user_id,
            llm=self.llm,
            tools=build_wallet_tools(ctx),
            memory=self.memory,
            config=self.config,
        )
