"""Storage layer -- async SQLite database and Pydantic models."""

from wallet_agent_bot.storage.database import Database, get_database
from wallet_agent_bot.storage.models import StoredMessage, UserAccount

__all__ = [
    "Database",
    "get_database",
    "StoredMessage",
    "UserAccount",
]
