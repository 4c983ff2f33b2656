"""Exception types raised by the keystore, agent session and config layers.

Every error carries a ``user_message``: the one line the dispatch pipeline
sends back to the user when the error ends a request.
"""

from __future__ import annotations


class WalletBotError(Exception):
    """Base class for all bot errors."""

    user_message = "Something went wrong. Please try again later."


class AccountNotFoundError(WalletBotError):
    user_message = "No account found. Please create or import an account."

    def __init__(self, user_id: str):
        super().__init__(f"No account stored for user {user_id}")
        self.user_id = user_id


class KeyDecodeError(WalletBotError):
    """Stored key material could not be turned back into a signing identity.

    Never recovered automatically: regenerating a key would orphan funds
    held by the stored address.
    """

    user_message = (
        "Your stored wallet could not be loaded. No new wallet was created. "
        "Please contact support."
    )

    def __init__(self, user_id: str, reason: str):
        super().__init__(f"Stored key for user {user_id} is unusable: {reason}")
        self.user_id = user_id
        self.reason = reason


class InvalidKeyFormatError(WalletBotError):
    user_message = "Invalid private key format. It must be exactly 64 hexadecimal characters."


class AgentUnavailableError(WalletBotError):
    user_message = "The assistant is unavailable right now. Please try again in a moment."


class AgentTimeoutError(WalletBotError):
    user_message = "The assistant took too long to respond. Please try again."


class ToolError(WalletBotError):
    """A wallet tool could not complete; reported back to the agent, not the user."""


class ConfigError(WalletBotError):
    """The configuration file is missing or invalid."""


class PrivateChatUnavailableError(WalletBotError):
    """The transport cannot open a direct-message chat with the user."""

    user_message = (
        "I can't message you privately yet. Open a private chat with me, "
        "press /start, then try again."
    )
