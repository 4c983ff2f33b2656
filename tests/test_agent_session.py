"""Tests for the streaming reasoning loop and its conversation memory."""

import json
from decimal import Decimal

import pytest
from eth_account import Account

from fakes import ScriptedLLM, call, text

from wallet_agent_bot.agent.session import STEP_LIMIT_NOTICE, AgentSessionFactory, ChunkSource
from wallet_agent_bot.config import AgentConfig
from wallet_agent_bot.errors import AgentTimeoutError, AgentUnavailableError
from wallet_agent_bot.llm.base import LLMMessage, ToolCall

OWNER = Account.from_key("44" * 32)
RECIPIENT = Account.from_key("55" * 32).address


async def _collect(session, message):
    return [chunk async for chunk in session.stream_respond(message)]


class TestStreamRespond:
    """Tests for ``AgentSession.stream_respond``."""

    @pytest.mark.asyncio
    async def test_plain_answer(self, sessions, llm):
        llm.queue(text("Hi there!"))

        chunks = await _collect(sessions.build_session("u1", OWNER), "hello")

        assert [(c.source, c.content) for c in chunks] == [(ChunkSource.AGENT, "Hi there!")]
        assert chunks[0].is_user_facing
        system, user = llm.calls[0]
        assert system.role == "system"
        assert user.role == "user" and user.content == "hello"

    @pytest.mark.asyncio
    async def test_balance_question_runs_tool(self, sessions, llm, chain):
        """The model asks for the balance tool and answers from its result."""
        chain.balances[OWNER.address] = Decimal("1.25")
        llm.queue(call("get_balance"), text("You have 1.25 ETH."))

        chunks = await _collect(sessions.build_session("u1", OWNER), "what's my balance?")

        assert [c.source for c in chunks] == [ChunkSource.AGENT, ChunkSource.TOOLS, ChunkSource.AGENT]
        assert not chunks[0].is_user_facing
        assert chunks[1].tool_name == "get_balance"
        assert json.loads(chunks[1].content)["balance"] == "1.25"
        assert not chunks[1].is_user_facing
        assert chunks[2].content == "You have 1.25 ETH."

        tool_message = llm.calls[1][-1]
        assert tool_message.role == "tool"
        assert tool_message.tool_call_id == "call-1"
        assert {d.name for d in llm.tools_seen[0]} >= {"get_balance", "transfer"}

    @pytest.mark.asyncio
    async def test_tool_error_is_fed_back_to_model(self, sessions, llm, chain):
        chain.balances[OWNER.address] = Decimal("100")
        llm.queue(
            call("transfer", {"to_address": RECIPIENT, "amount": "50"}),
            lambda messages: text(f"Sorry: {json.loads(messages[-1].content)['error']}"),
        )

        chunks = await _collect(sessions.build_session("u1", OWNER), "send 50 ETH")

        assert "per-transfer limit" in chunks[-1].content
        assert chain.sent == []

    @pytest.mark.asyncio
    async def test_history_survives_new_sessions(self, sessions, llm):
        llm.queue(text("Nice to meet you, Ana."), text("Your name is Ana."))

        await _collect(sessions.build_session("u1", OWNER), "my name is Ana")
        await _collect(sessions.build_session("u1", OWNER), "what's my name?")

        contents = [m.content for m in llm.calls[1]]
        assert contents[1:] == ["my name is Ana", "Nice to meet you, Ana.", "what's my name?"]

    @pytest.mark.asyncio
    async def test_threads_are_isolated(self, sessions, llm):
        llm.queue(text("one"), text("two"))

        await _collect(sessions.build_session("u1", OWNER), "secret of u1")
        await _collect(sessions.build_session("u2", OWNER), "hello")

        assert all("secret of u1" != m.content for m in llm.calls[1])

    @pytest.mark.asyncio
    async def test_backend_failure_after_partial_output(self, sessions, llm, memory):
        llm.queue(call("get_balance", content="Let me check."), RuntimeError("backend down"))

        seen = []
        with pytest.raises(AgentUnavailableError):
            async for chunk in sessions.build_session("u1", OWNER).stream_respond("balance?"):
                seen.append(chunk)

        assert seen[0].content == "Let me check."
        assert [c.source for c in seen] == [ChunkSource.AGENT, ChunkSource.TOOLS]
        # The completed step was checkpointed before the failure.
        stored = await memory.load("u1")
        assert [m.role for m in stored] == ["user", "assistant", "tool"]

    @pytest.mark.asyncio
    async def test_backend_failure_before_output(self, sessions, llm):
        llm.queue(RuntimeError("backend down"))

        with pytest.raises(AgentUnavailableError):
            await _collect(sessions.build_session("u1", OWNER), "hello")

    @pytest.mark.asyncio
    async def test_llm_timeout(self, chain, memory):
        slow = ScriptedLLM([text("too late")], delay=0.5)
        factory = AgentSessionFactory(
            llm=slow,
            chain_provider=chain,
            memory=memory,
            config=AgentConfig(llm_timeout_seconds=0.05),
        )

        with pytest.raises(AgentTimeoutError):
            await _collect(factory.build_session("u1", OWNER), "hello")

    @pytest.mark.asyncio
    async def test_slow_tool_times_out(self, llm, chain, memory):
        chain.delay = 0.3
        llm.queue(call("get_gas_price"))
        factory = AgentSessionFactory(
            llm=llm,
            chain_provider=chain,
            memory=memory,
            config=AgentConfig(tool_timeout_seconds=0.05),
        )

        with pytest.raises(AgentTimeoutError):
            await _collect(factory.build_session("u1", OWNER), "gas?")

    @pytest.mark.asyncio
    async def test_empty_answer_is_not_stored(self, sessions, llm, memory):
        """A reply with no text and no tool calls leaves only the user turn in memory."""
        llm.queue(text(""), text("Hi again."))

        chunks = await _collect(sessions.build_session("u1", OWNER), "hi")
        assert not chunks[0].is_user_facing
        assert [m.role for m in await memory.load("u1")] == ["user"]

        await _collect(sessions.build_session("u1", OWNER), "hello?")
        assert [m.content for m in llm.calls[1]][1:] == ["hi", "hello?"]

    @pytest.mark.asyncio
    async def test_step_limit(self, sessions, llm, agent_config):
        llm.queue(*[call("get_gas_price", call_id=f"c{i}") for i in range(agent_config.max_iterations)])

        chunks = await _collect(sessions.build_session("u1", OWNER), "loop forever")

        assert len(llm.calls) == agent_config.max_iterations
        assert chunks[-1].content == STEP_LIMIT_NOTICE
        assert chunks[-1].is_user_facing


class TestConversationMemory:
    """Tests for ``ConversationMemory``."""

    @pytest.mark.asyncio
    async def test_roundtrip_keeps_tool_calls(self, memory):
        await memory.append(
            "t1",
            [
                LLMMessage(role="user", content="hi"),
                LLMMessage(
                    role="assistant",
                    tool_calls=[ToolCall(id="c1", name="get_balance", arguments={"address": "0x1"})],
                ),
                LLMMessage(role="tool", content="{}", tool_call_id="c1"),
            ],
        )

        loaded = await memory.load("t1")

        assert loaded[1].tool_calls == [ToolCall(id="c1", name="get_balance", arguments={"address": "0x1"})]
        assert loaded[2].tool_call_id == "c1"

    @pytest.mark.asyncio
    async def test_window_starts_at_user_message(self, memory):
        await memory.append(
            "t1",
            [
                LLMMessage(role="user", content="first"),
                LLMMessage(role="assistant", tool_calls=[ToolCall(id="c1", name="get_gas_price")]),
                LLMMessage(role="tool", content="{}", tool_call_id="c1"),
                LLMMessage(role="assistant", content="done"),
                LLMMessage(role="user", content="second"),
                LLMMessage(role="assistant", content="ok"),
            ],
        )

        loaded = await memory.load("t1", limit=4)

        assert [m.content for m in loaded] == ["second", "ok"]

    @pytest.mark.asyncio
    async def test_clear(self, memory):
        await memory.append("t1", [LLMMessage(role="user", content="hi")])
        await memory.append("t2", [LLMMessage(role="user", content="hi")])

        assert await memory.clear("t1") == 1
        assert await memory.load("t1") == []
        assert len(await memory.load("t2")) == 1
