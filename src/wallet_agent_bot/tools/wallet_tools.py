"""Agent-facing wallet tools.

Each tool runs against the signing identity of the user whose session the
catalog is bound to. Blocking web3 calls run in a worker thread so one
user's RPC round-trip never stalls another user's conversation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from web3 import Web3

from wallet_agent_bot.errors import ToolError
from wallet_agent_bot.tools.registry import ToolCatalog, ToolRegistry

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from wallet_agent_bot.wallet.provider import Web3Provider

logger = logging.getLogger("wallet_agent_bot.tools.wallet")


@dataclass
class WalletContext:
    """What every wallet tool is bound to: one user's signer and the chain."""

    account: LocalAccount
    provider: Web3Provider
    max_transfer_amount: Decimal = Decimal(0)  # 0 = unlimited

    @property
    def symbol(self) -> str:
        return self.provider.chain.native_symbol

    @property
    def chain_name(self) -> str:
        return self.provider.chain.name


wallet_tools: ToolCatalog[WalletContext] = ToolCatalog()


def build_wallet_tools(ctx: WalletContext) -> ToolRegistry:
    """Return the wallet toolset bound to *ctx*."""
    return wallet_tools.bind(ctx)


def _parse_amount(raw: object) -> Decimal:
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ToolError(f"'{raw}' is not a valid amount.")
    if not amount.is_finite() or amount <= 0:
        raise ToolError("Amount must be a positive number.")
    return amount


def _require_address(raw: str) -> str:
    if not Web3.is_address(raw):
        raise ToolError(f"'{raw}' is not a valid address.")
    return Web3.to_checksum_address(raw)


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------


@wallet_tools.tool(
    "get_wallet_address",
    "Return the user's own wallet address and the chain it is used on.",
)
async def get_wallet_address(ctx: WalletContext) -> dict:
    return {"address": ctx.account.address, "chain": ctx.chain_name}


@wallet_tools.tool(
    "get_balance",
    "Check the native token balance of the user's wallet, or of another address.",
    {
        "type": "object",
        "properties": {
            "address": {
                "type": "string",
                "description": "Address to check. Omit to check the user's own wallet.",
            },
        },
    },
)
async def get_balance(ctx: WalletContext, address: str = "") -> dict:
    target = _require_address(address) if address else ctx.account.address
    balance = await asyncio.to_thread(ctx.provider.get_native_balance, target)
    return {
        "address": target,
        "balance": str(balance),
        "symbol": ctx.symbol,
        "chain": ctx.chain_name,
    }


@wallet_tools.tool(
    "get_gas_price",
    "Return the current network gas price in gwei.",
)
async def get_gas_price(ctx: WalletContext) -> dict:
    price = await asyncio.to_thread(ctx.provider.gas_price)
    return {"gas_price_gwei": str(price), "chain": ctx.chain_name}


@wallet_tools.tool(
    "estimate_gas",
    "Estimate the gas and maximum network fee for sending native tokens from the user's wallet.",
    {
        "type": "object",
        "properties": {
            "to_address": {"type": "string", "description": "Recipient address (0x...)"},
            "amount": {"type": "string", "description": "Amount in native units, e.g. '0.05'"},
        },
        "required": ["to_address", "amount"],
    },
)
async def estimate_gas(ctx: WalletContext, to_address: str, amount: str) -> dict:
    recipient = _require_address(to_address)
    value = _parse_amount(amount)
    estimate = await asyncio.to_thread(
        ctx.provider.estimate_transfer, ctx.account.address, recipient, value
    )
    return {"to_address": recipient, "amount": str(value), **estimate}


@wallet_tools.tool(
    "get_transaction_status",
    "Check whether a previously sent transaction is pending, succeeded or failed.",
    {
        "type": "object",
        "properties": {
            "tx_hash": {"type": "string", "description": "Transaction hash (0x...)"},
        },
        "required": ["tx_hash"],
    },
)
async def get_transaction_status(ctx: WalletContext, tx_hash: str) -> dict:
    return await asyncio.to_thread(ctx.provider.get_transaction_status, tx_hash.strip())


# ----------------------------------------------------------------------
# Transfers
# ----------------------------------------------------------------------


@wallet_tools.tool(
    "transfer",
    "Send native tokens from the user's wallet to another address. "
    "Only call this after the user has clearly asked to send funds.",
    {
        "type": "object",
        "properties": {
            "to_address": {"type": "string", "description": "Recipient address (0x...)"},
            "amount": {"type": "string", "description": "Amount in native units, e.g. '0.05'"},
        },
        "required": ["to_address", "amount"],
    },
)
async def transfer(ctx: WalletContext, to_address: str, amount: str) -> dict:
    recipient = _require_address(to_address)
    value = _parse_amount(amount)
    if recipient == ctx.account.address:
        raise ToolError("Recipient is the user's own wallet.")
    if ctx.max_transfer_amount and value > ctx.max_transfer_amount:
        raise ToolError(
            f"Amount {value} {ctx.symbol} exceeds the per-transfer limit of "
            f"{ctx.max_transfer_amount} {ctx.symbol}."
        )

    balance = await asyncio.to_thread(ctx.provider.get_native_balance, ctx.account.address)
    if balance < value:
        raise ToolError(
            f"Insufficient balance: wallet holds {balance} {ctx.symbol}, "
            f"transfer needs {value} {ctx.symbol} plus gas."
        )

    tx_hash = await asyncio.to_thread(ctx.provider.send_transfer, ctx.account, recipient, value)
    return {
        "status": "submitted",
        "tx_hash": tx_hash,
        "to_address": recipient,
        "amount": str(value),
        "symbol": ctx.symbol,
        "explorer_url": ctx.provider.chain.tx_url(tx_hash),
    }
