"""Test doubles for the LLM backend, the chain client and the transport."""

from __future__ import annotations

import asyncio
import time
from decimal import Decimal
from typing import Any, Optional

from wallet_agent_bot.bot.dispatcher import Keyboard
from wallet_agent_bot.errors import PrivateChatUnavailableError
from wallet_agent_bot.llm.base import BaseLLMProvider, LLMMessage, LLMResponse, ToolCall, ToolDefinition
from wallet_agent_bot.wallet.chains import get_chain


class ScriptedLLM(BaseLLMProvider):
    """Returns queued responses in order.

    A queued item may be an ``LLMResponse``, an exception instance (raised),
    or a callable taking the message list and returning either.
    """

    def __init__(self, script: Optional[list[Any]] = None, delay: float = 0.0):
        super().__init__(api_key="test", model="scripted")
        self.script = list(script or [])
        self.delay = delay
        self.calls: list[list[LLMMessage]] = []
        self.tools_seen: list[list[ToolDefinition]] = []
        self.active = 0
        self.max_active = 0

    def queue(self, *items: Any) -> None:
        self.script.extend(items)

    async def complete(self, messages, tools=None) -> LLMResponse:
        self.calls.append(list(messages))
        self.tools_seen.append(list(tools or []))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            item = self.script.pop(0) if self.script else LLMResponse(content="ok")
            if callable(item) and not isinstance(item, LLMResponse):
                item = item(messages)
            if isinstance(item, BaseException):
                raise item
            return item
        finally:
            self.active -= 1


def text(content: str) -> LLMResponse:
    return LLMResponse(content=content)


def call(name: str, arguments: Optional[dict] = None, call_id: str = "call-1", content: str = "") -> LLMResponse:
    return LLMResponse(content=content, tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments or {})])


class FakeChainProvider:
    """Stands in for ``Web3Provider`` without touching the network."""

    def __init__(self, chain_name: str = "sepolia"):
        self.chain = get_chain(chain_name)
        self.balances: dict[str, Decimal] = {}
        self.sent: list[tuple[str, str, Decimal]] = []
        self.fail_with: Optional[Exception] = None
        self.delay = 0.0

    def get_native_balance(self, address: str) -> Decimal:
        if self.fail_with:
            raise self.fail_with
        return self.balances.get(address, Decimal("0"))

    def gas_price(self) -> Decimal:
        # Runs in a worker thread, like the real blocking web3 call.
        if self.delay:
            time.sleep(self.delay)
        return Decimal("12.5")

    def estimate_transfer(self, from_address: str, to_address: str, amount) -> dict:
        return {"gas": 21000, "fee_per_gas_gwei": "20", "max_fee": "0.00042", "symbol": self.chain.native_symbol}

    def get_transaction_status(self, tx_hash: str) -> dict:
        return {"tx_hash": tx_hash, "status": "success"}

    def send_transfer(self, account, to_address: str, amount) -> str:
        if self.fail_with:
            raise self.fail_with
        self.sent.append((account.address, to_address, Decimal(str(amount))))
        return "0x" + "ab" * 32


class FakeResponder:
    """Records everything the dispatcher sends back."""

    def __init__(self, fail_after: Optional[int] = None, private_chat_open: bool = True):
        self.replies: list[str] = []
        self.buttons: list[Optional[Keyboard]] = []
        self.private: list[str] = []
        self.events: list[str] = []
        self.fail_after = fail_after
        self.private_chat_open = private_chat_open

    async def reply(self, text: str, *, buttons: Optional[Keyboard] = None, html: bool = False) -> None:
        if self.fail_after is not None and len(self.replies) >= self.fail_after:
            raise ConnectionError("transport closed")
        self.replies.append(text)
        self.buttons.append(buttons)
        self.events.append("reply")

    async def reply_private(self, text: str, *, html: bool = False) -> None:
        if not self.private_chat_open:
            raise PrivateChatUnavailableError("user never opened a private chat")
        self.private.append(text)
        self.events.append("private")

    async def start_typing(self) -> None:
        self.events.append("typing:start")

    async def stop_typing(self) -> None:
        self.events.append("typing:stop")
