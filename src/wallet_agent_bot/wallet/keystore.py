"""Custodial keystore: one eth-account signing identity per chat user.

This module is the only place that reads or writes the ``private_key``
column. Key material is stored as ``0x`` + 64 lowercase hex characters and
``public_key`` holds the checksummed address derived from it.

Importing a key replaces whatever key the user had before. Funds held by
the previous address are no longer reachable through the bot afterwards;
the user has to move them out (or keep a copy of the old key) first.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from eth_account import Account
from eth_account.signers.local import LocalAccount

from wallet_agent_bot.errors import (
    AccountNotFoundError,
    InvalidKeyFormatError,
    KeyDecodeError,
)
from wallet_agent_bot.storage.database import Database
from wallet_agent_bot.storage.models import UserAccount

logger = logging.getLogger("wallet_agent_bot.wallet.keystore")

_HEX_KEY_RE = re.compile(r"[0-9a-fA-F]{64}")

_PUBLIC_COLUMNS = (
    "user_id, public_key, alerts_enabled, in_progress, in_game, created_at, updated_at"
)


def validate_private_key_hex(text: str) -> str:
    """Check that *text* is exactly 64 hex characters.

    The text is matched as given: surrounding whitespace and a ``0x`` prefix
    are both rejected. Returns the normalised lowercase key.

    Raises
    ------
    InvalidKeyFormatError
        If the text is not a 64-character hex string.
    """
    if not _HEX_KEY_RE.fullmatch(text):
        raise InvalidKeyFormatError("Private key must be exactly 64 hexadecimal characters")
    return text.lower()


def encode_private_key(account: LocalAccount) -> str:
    return "0x" + bytes(account.key).hex()


@dataclass(frozen=True)
class OpenedWallet:
    account: LocalAccount
    public_key: str
    created: bool


class Keystore:
    """Creates, imports and exposes per-user signing identities."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Signing identity
    # ------------------------------------------------------------------

    async def open_wallet(self, user_id: str) -> OpenedWallet:
        """Return the user's wallet, creating it on first contact.

        The fresh key is offered to an ``INSERT ... ON CONFLICT DO NOTHING``;
        whichever concurrent caller wins, every caller then reads back the
        same stored row.
        """
        fresh = Account.create()
        inserted = await self.db.insert_if_absent(
            "INSERT INTO accounts "
            "(user_id, public_key, private_key, alerts_enabled, in_progress, in_game) "
            "VALUES (?, ?, ?, 0, 0, 0) "
            "ON CONFLICT(user_id) DO NOTHING",
            (user_id, fresh.address, encode_private_key(fresh)),
        )
        if inserted:
            logger.info(f"Created wallet {fresh.address} for user {user_id}")
            return OpenedWallet(account=fresh, public_key=fresh.address, created=True)

        row = await self._fetch(user_id)
        if row is None:
            raise AccountNotFoundError(user_id)
        account = self._decode(user_id, row["private_key"], row["public_key"])
        return OpenedWallet(account=account, public_key=row["public_key"], created=False)

    async def get_or_create(self, user_id: str) -> tuple[LocalAccount, str]:
        """Return ``(signing identity, public key)`` for *user_id*."""
        wallet = await self.open_wallet(user_id)
        return wallet.account, wallet.public_key

    async def import_from_hex(self, user_id: str, hex_string: str) -> str:
        """Replace the user's key with an imported one and return the new address.

        Raises
        ------
        InvalidKeyFormatError
            If *hex_string* is not 64 hex characters or is not a usable
            secp256k1 key. The stored account is left untouched.
        """
        normalised = validate_private_key_hex(hex_string)
        try:
            account = Account.from_key(normalised)
        except Exception as exc:
            raise InvalidKeyFormatError(f"Not a valid secp256k1 private key: {exc}") from exc

        await self.db.execute(
            "INSERT INTO accounts "
            "(user_id, public_key, private_key, alerts_enabled, in_progress, in_game) "
            "VALUES (?, ?, ?, 0, 0, 0) "
            "ON CONFLICT(user_id) DO UPDATE SET "
            "public_key = excluded.public_key, "
            "private_key = excluded.private_key, "
            "in_progress = 0, "
            "in_game = 0, "
            "updated_at = CURRENT_TIMESTAMP",
            (user_id, account.address, encode_private_key(account)),
        )
        logger.info(f"Imported wallet {account.address} for user {user_id}")
        return account.address

    # ------------------------------------------------------------------
    # Account fields
    # ------------------------------------------------------------------

    async def get_account(self, user_id: str) -> UserAccount | None:
        """Read the stored address and flags. Key material is never selected."""
        row = await self.db.fetch_one(
            f"SELECT {_PUBLIC_COLUMNS} FROM accounts WHERE user_id = ?", (user_id,)
        )
        return UserAccount.from_row(row) if row else None

    async def set_alerts(self, user_id: str, enabled: bool) -> None:
        cursor = await self.db.execute(
            "UPDATE accounts SET alerts_enabled = ?, updated_at = CURRENT_TIMESTAMP "
            "WHERE user_id = ?",
            (int(enabled), user_id),
        )
        if cursor.rowcount == 0:
            raise AccountNotFoundError(user_id)

    async def toggle_alerts(self, user_id: str) -> bool:
        """Flip ``alerts_enabled`` in one statement and return the new value."""
        cursor = await self.db.execute(
            "UPDATE accounts SET alerts_enabled = 1 - alerts_enabled, "
            "updated_at = CURRENT_TIMESTAMP WHERE user_id = ?",
            (user_id,),
        )
        if cursor.rowcount == 0:
            raise AccountNotFoundError(user_id)
        row = await self.db.fetch_one(
            "SELECT alerts_enabled FROM accounts WHERE user_id = ?", (user_id,)
        )
        return bool(row["alerts_enabled"])

    async def reveal_private_key(self, user_id: str) -> str:
        """Return the stored private key.

        The caller must deliver it only to *user_id*'s direct-message chat.
        """
        row = await self.db.fetch_one(
            "SELECT private_key FROM accounts WHERE user_id = ?", (user_id,)
        )
        if row is None:
            raise AccountNotFoundError(user_id)
        logger.info(f"Private key revealed to user {user_id}")
        return row["private_key"]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fetch(self, user_id: str) -> dict | None:
        return await self.db.fetch_one(
            "SELECT * FROM accounts WHERE user_id = ?", (user_id,)
        )

    @staticmethod
    def _decode(user_id: str, private_key: str, public_key: str) -> LocalAccount:
        try:
            account = Account.from_key(private_key)
        except Exception as exc:
            logger.error(f"Stored key for user {user_id} failed to decode: {exc}")
            raise KeyDecodeError(user_id, str(exc)) from exc
        if account.address != public_key:
            logger.error(
                f"Stored key for user {user_id} derives {account.address}, "
                f"but the stored address is {public_key}"
            )
            raise KeyDecodeError(user_id, "derived address does not match stored address")
        return account
