"""Tracks which users' next message is a private-key import."""

from __future__ import annotations

import logging
from enum import Enum

from wallet_agent_bot.config import ImportPolicy

logger = logging.getLogger("wallet_agent_bot.bot.import_state")


class ImportState(str, Enum):
    IDLE = "idle"
    AWAITING_KEY = "awaiting_key"


class ImportStateTracker:
    """Per-user ``IDLE`` / ``AWAITING_KEY`` flags. Transient, never persisted.

    Under ``SINGLE_SHOT`` any consumed message returns the user to ``IDLE``.
    Under ``RETRY_UNTIL_VALID`` only a successful import (or a cancel) does.
    """

    def __init__(self, policy: ImportPolicy = ImportPolicy.SINGLE_SHOT) -> None:
        self.policy = policy
        self._awaiting: set[str] = set()

    def begin(self, user_id: str) -> None:
        self._awaiting.add(user_id)
        logger.debug(f"User {user_id} is now awaiting key import")

    def state(self, user_id: str) -> ImportState:
        return ImportState.AWAITING_KEY if user_id in self._awaiting else ImportState.IDLE

    def is_awaiting(self, user_id: str) -> bool:
        return user_id in self._awaiting

    def consume(self, user_id: str, succeeded: bool) -> ImportState:
        """Record that one import attempt was processed and return the new state."""
        if succeeded or self.policy is ImportPolicy.SINGLE_SHOT:
            self._awaiting.discard(user_id)
        return self.state(user_id)

    def cancel(self, user_id: str) -> bool:
        """Leave import mode. Returns ``False`` if the user was not in it."""
        if user_id not in self._awaiting:
            return False
        self._awaiting.discard(user_id)
        return True
