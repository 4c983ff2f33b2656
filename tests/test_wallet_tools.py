"""Tests for the wallet toolset and the tool registry."""

import json
from decimal import Decimal

import pytest
from eth_account import Account

from fakes import FakeChainProvider

from wallet_agent_bot.llm.base import ToolCall
from wallet_agent_bot.tools import ToolResult
from wallet_agent_bot.tools.registry import ToolCatalog, _extract_parameters
from wallet_agent_bot.tools.wallet_tools import WalletContext, build_wallet_tools, wallet_tools

OWNER = Account.from_key("22" * 32)
RECIPIENT = Account.from_key("33" * 32).address


@pytest.fixture
def provider():
    return FakeChainProvider()


@pytest.fixture
def registry(provider):
    ctx = WalletContext(account=OWNER, provider=provider, max_transfer_amount=Decimal("5"))
    return build_wallet_tools(ctx)


async def _run(registry, name, **arguments) -> ToolResult:
    return await registry.run(ToolCall(id="t1", name=name, arguments=arguments))


class TestCatalog:
    def test_exposes_wallet_tools(self):
        assert set(wallet_tools.names()) == {
            "get_wallet_address",
            "get_balance",
            "get_gas_price",
            "estimate_gas",
            "get_transaction_status",
            "transfer",
        }

    def test_definitions_hide_bound_context(self, registry):
        definitions = {d.name: d for d in registry.definitions()}
        assert definitions["transfer"].parameters["required"] == ["to_address", "amount"]
        assert definitions["get_wallet_address"].parameters["properties"] == {}

    def test_extract_parameters_skips_context(self):
        def handler(ctx, to: str, count: int, note: str = ""):
            pass

        schema = _extract_parameters(handler, skip=1)
        assert schema["properties"] == {
            "to": {"type": "string"},
            "count": {"type": "integer"},
            "note": {"type": "string"},
        }
        assert schema["required"] == ["to", "count"]

    @pytest.mark.asyncio
    async def test_sync_tools_and_bad_arguments(self):
        catalog = ToolCatalog()

        @catalog.tool("echo", "Echo the text back")
        def echo(ctx, text: str) -> str:
            return f"{ctx}:{text}"

        registry = catalog.bind("ctx")
        assert (await _run(registry, "echo", text="hi")).output == "ctx:hi"

        result = await _run(registry, "echo", wrong="hi")
        assert not result.ok
        assert "Invalid arguments" in result.error

    @pytest.mark.asyncio
    async def test_type_error_inside_handler_is_not_an_argument_error(self):
        catalog = ToolCatalog()

        @catalog.tool("add", "Add one to a number")
        def add(ctx, value: str) -> int:
            return value + 1

        result = await _run(catalog.bind("ctx"), "add", value="2")

        assert not result.ok
        assert result.error.startswith("TypeError:")
        assert "Invalid arguments" not in result.error

    @pytest.mark.asyncio
    async def test_unknown_tool_is_an_error_result(self, registry):
        result = await _run(registry, "drain_everything")
        assert not result.ok
        assert json.loads(result.render()) == {"error": "Unknown tool 'drain_everything'"}


class TestQueries:
    @pytest.mark.asyncio
    async def test_wallet_address(self, registry):
        result = await _run(registry, "get_wallet_address")
        assert result.output == {"address": OWNER.address, "chain": "sepolia"}

    @pytest.mark.asyncio
    async def test_balance_defaults_to_own_wallet(self, registry, provider):
        provider.balances[OWNER.address] = Decimal("1.25")

        result = await _run(registry, "get_balance")

        assert result.ok
        assert result.output["address"] == OWNER.address
        assert result.output["balance"] == "1.25"
        assert result.output["symbol"] == "ETH"

    @pytest.mark.asyncio
    async def test_balance_of_other_address_is_checksummed(self, registry, provider):
        provider.balances[RECIPIENT] = Decimal("3")

        result = await _run(registry, "get_balance", address=RECIPIENT.lower())

        assert result.output["address"] == RECIPIENT
        assert result.output["balance"] == "3"

    @pytest.mark.asyncio
    async def test_invalid_address_is_reported(self, registry):
        result = await _run(registry, "get_balance", address="not-an-address")
        assert not result.ok
        assert "not a valid address" in result.error

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_error_result(self, registry, provider):
        provider.fail_with = ConnectionError("rpc down")

        result = await _run(registry, "get_balance")

        assert not result.ok
        assert result.error == "ConnectionError: rpc down"

    @pytest.mark.asyncio
    async def test_gas_price_and_estimate(self, registry):
        price = await _run(registry, "get_gas_price")
        assert price.output["gas_price_gwei"] == "12.5"

        estimate = await _run(registry, "estimate_gas", to_address=RECIPIENT, amount="0.1")
        assert estimate.output["gas"] == 21000
        assert estimate.output["amount"] == "0.1"
        assert estimate.output["to_address"] == RECIPIENT

    @pytest.mark.asyncio
    async def test_transaction_status(self, registry):
        result = await _run(registry, "get_transaction_status", tx_hash=" 0xabc ")
        assert result.output == {"tx_hash": "0xabc", "status": "success"}


class TestTransfer:
    @pytest.mark.asyncio
    async def test_sends_and_returns_explorer_link(self, registry, provider):
        provider.balances[OWNER.address] = Decimal("2")

        result = await _run(registry, "transfer", to_address=RECIPIENT, amount="0.5")

        assert result.ok
        assert provider.sent == [(OWNER.address, RECIPIENT, Decimal("0.5"))]
        assert result.output["status"] == "submitted"
        assert result.output["explorer_url"] == f"https://sepolia.etherscan.io/tx/{result.output['tx_hash']}"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "NaN"])
    async def test_rejects_bad_amounts(self, registry, provider, amount):
        provider.balances[OWNER.address] = Decimal("2")

        result = await _run(registry, "transfer", to_address=RECIPIENT, amount=amount)

        assert not result.ok
        assert provider.sent == []

    @pytest.mark.asyncio
    async def test_rejects_amount_over_limit(self, registry, provider):
        provider.balances[OWNER.address] = Decimal("100")

        result = await _run(registry, "transfer", to_address=RECIPIENT, amount="6")

        assert not result.ok
        assert "per-transfer limit" in result.error
        assert provider.sent == []

    @pytest.mark.asyncio
    async def test_rejects_insufficient_balance(self, registry, provider):
        provider.balances[OWNER.address] = Decimal("0.1")

        result = await _run(registry, "transfer", to_address=RECIPIENT, amount="1")

        assert not result.ok
        assert "Insufficient balance" in result.error
        assert provider.sent == []

    @pytest.mark.asyncio
    async def test_rejects_self_transfer(self, registry, provider):
        provider.balances[OWNER.address] = Decimal("2")

        result = await _run(registry, "transfer", to_address=OWNER.address, amount="1")

        assert not result.ok
        assert provider.sent == []

    @pytest.mark.asyncio
    async def test_zero_limit_means_unlimited(self, provider):
        provider.balances[OWNER.address] = Decimal("1000")
        registry = build_wallet_tools(WalletContext(account=OWNER, provider=provider))

        result = await _run(registry, "transfer", to_address=RECIPIENT, amount="500")

        assert result.ok
