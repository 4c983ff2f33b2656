"""Tools the reasoning agent can call mid-conversation."""

from wallet_agent_bot.tools.registry import Tool, ToolCatalog, ToolRegistry, ToolResult  # noqa: F401
from wallet_agent_bot.tools.wallet_tools import WalletContext, build_wallet_tools  # noqa: F401
