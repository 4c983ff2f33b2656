"""Pydantic models mapping to the wallet agent bot database tables."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserAccount(BaseModel):
    """Public view of an ``accounts`` row: one per chat user.

    ``public_key`` is the checksummed address derived from the stored key.
    The key column itself stays inside the keystore and is not part of this
    model.
    """

    user_id: str
    public_key: str
    alerts_enabled: bool = False
    in_progress: bool = False
    in_game: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> UserAccount:
        return cls.model_validate(row)


class StoredMessage(BaseModel):
    """Maps to the ``agent_messages`` table."""

    id: Optional[int] = None
    thread_id: str
    role: str          # 'user', 'assistant', 'tool'
    content: str = ""
    tool_calls_json: Optional[str] = None
    tool_call_id: Optional[str] = None
    created_at: Optional[datetime] = None
