"""Message dispatch: import gating, commands, and agent conversations."""

from wallet_agent_bot.bot.dispatcher import (
    Action,
    Button,
    Channel,
    Dispatcher,
    Responder,
    parse_command,
)
from wallet_agent_bot.bot.import_state import ImportState, ImportStateTracker
from wallet_agent_bot.bot.locks import UserLocks

__all__ = [
    "Action",
    "Button",
    "Channel",
    "Dispatcher",
    "ImportState",
    "ImportStateTracker",
    "Responder",
    "UserLocks",
    "parse_command",
]
