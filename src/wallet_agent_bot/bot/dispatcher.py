"""Per-message control flow: key import, commands, or a conversation turn.

The dispatcher is transport-neutral. A transport turns each inbound update
into :meth:`Dispatcher.handle_text` or :meth:`Dispatcher.handle_action` and
passes a :class:`Responder` that knows how to talk back to that user.
"""

from __future__ import annotations

import logging
import re
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol

from wallet_agent_bot.bot.import_state import ImportStateTracker
from wallet_agent_bot.bot.locks import UserLocks
from wallet_agent_bot.config import ImportPolicy
from wallet_agent_bot.errors import (
    AccountNotFoundError,
    AgentTimeoutError,
    AgentUnavailableError,
    InvalidKeyFormatError,
    KeyDecodeError,
    WalletBotError,
)

if TYPE_CHECKING:
    from wallet_agent_bot.agent.session import AgentSessionFactory
    from wallet_agent_bot.wallet.keystore import Keystore

logger = logging.getLogger("wallet_agent_bot.dispatcher")


class Channel(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


class Action(str, Enum):
    START = "start"
    CREATE_ACCOUNT = "create_account"
    IMPORT_ACCOUNT = "import_account"
    SETTINGS = "settings"
    VIEW_PRIVATE_KEY = "view_private_key"
    VIEW_WALLET = "view_wallet"
    TOGGLE_ALERTS = "toggle_alerts"
    CANCEL = "cancel"
    RESET = "reset"


# Slash commands accepted in text, e.g. ``/wallet`` or ``/wallet@MyBot``.
COMMANDS: dict[str, Action] = {
    "start": Action.START,
    "create": Action.CREATE_ACCOUNT,
    "import": Action.IMPORT_ACCOUNT,
    "settings": Action.SETTINGS,
    "privatekey": Action.VIEW_PRIVATE_KEY,
    "wallet": Action.VIEW_WALLET,
    "alerts": Action.TOGGLE_ALERTS,
    "cancel": Action.CANCEL,
    "reset": Action.RESET,
}


@dataclass(frozen=True)
class Button:
    label: str
    action: Action


Keyboard = list[list[Button]]


class Responder(Protocol):
    """Outbound side of a transport for one inbound message."""

    async def reply(self, text: str, *, buttons: Optional[Keyboard] = None, html: bool = False) -> None:
        """Send *text* to the chat the message came from."""

    async def reply_private(self, text: str, *, html: bool = False) -> None:
        """Send *text* to the user's direct-message chat only.

        Raises ``PrivateChatUnavailableError`` if that chat cannot be reached.
        """

    async def start_typing(self) -> None:
        ...

    async def stop_typing(self) -> None:
        ...


_KEY_LIKE_RE = re.compile(r"(0x)?[0-9a-fA-F]{64}")


def _looks_like_key(text: str) -> bool:
    return _KEY_LIKE_RE.fullmatch(text.strip()) is not None


def parse_command(text: str) -> Action | None:
    """Map ``/command[@bot] [args]`` to an :class:`Action`, if recognized."""
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    name = stripped[1:].split(maxsplit=1)[0] if len(stripped) > 1 else ""
    name = name.split("@", 1)[0].lower()
    return COMMANDS.get(name)


GENERIC_ERROR = "Something went wrong on our side. Please try again later."

WELCOME_TEXT = (
    "<b>👋 Welcome to your on-chain assistant!</b>\n\n"
    "<b>🏦 Your Wallet Address:</b>\n<code>{address}</code>\n\n"
    "<b>💬 Ask me things like:</b>\n"
    "• \"What's my balance?\"\n"
    "• \"Send 0.01 ETH to 0x…\"\n"
    "• \"How much gas does a transfer need?\""
)

GROUP_KEY_WARNING = (
    "That looks like a private key, so I did not use it here. Delete that "
    "message, then send the key to me in our private chat."
)

IMPORT_PROMPT = (
    "Send your private key (64-character hex format).\n\n"
    "⚠️ Importing replaces your current wallet. Funds at your current address "
    "stay there and can no longer be used through this bot unless you saved "
    "its private key. Send /cancel to keep your current wallet."
)


class Dispatcher:
    """Routes each user message and serializes work per user."""

    def __init__(
        self,
        keystore: Keystore,
        sessions: AgentSessionFactory,
        imports: ImportStateTracker | None = None,
        locks: UserLocks | None = None,
    ):
        self.keystore = keystore
        self.sessions = sessions
        self.imports = imports or ImportStateTracker()
        self.locks = locks or UserLocks()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_text(self, user_id: str, text: str, channel: Channel, responder: Responder) -> None:
        async with self.locks.hold(user_id):
            try:
                # Keys are only accepted in the user's private chat.
                if self.imports.is_awaiting(user_id):
                    if channel is Channel.DIRECT:
                        await self._handle_import_attempt(user_id, text, responder)
                        return
                    if _looks_like_key(text):
                        await responder.reply(GROUP_KEY_WARNING)
                        return
                action = parse_command(text)
                if action is not None:
                    await self._run_action(user_id, action, channel, responder)
                    return
                await self._converse(user_id, text, responder)
            except WalletBotError as exc:
                await self._report(user_id, exc, responder)
            except Exception:
                logger.exception(f"Unhandled error while processing a message from user {user_id}")
                await responder.reply(GENERIC_ERROR)

    async def handle_action(self, user_id: str, action: Action, channel: Channel, responder: Responder) -> None:
        async with self.locks.hold(user_id):
            try:
                await self._run_action(user_id, action, channel, responder)
            except WalletBotError as exc:
                await self._report(user_id, exc, responder)
            except Exception:
                logger.exception(f"Unhandled error while running {action.value} for user {user_id}")
                await responder.reply(GENERIC_ERROR)

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def _handle_import_attempt(self, user_id: str, text: str, responder: Responder) -> None:
        if parse_command(text) is Action.CANCEL:
            self.imports.cancel(user_id)
            await responder.reply("Import cancelled. Your current wallet is unchanged.")
            return

        succeeded = False
        try:
            address = await self.keystore.import_from_hex(user_id, text.strip())
            succeeded = True
        except InvalidKeyFormatError as exc:
            logger.info(f"Rejected key import for user {user_id}: {exc}")
            if self.imports.policy is ImportPolicy.RETRY_UNTIL_VALID:
                hint = "Send it again, or /cancel to keep your current wallet."
            else:
                hint = "Tap \"Import Existing Account\" or send /import to try again."
            await responder.reply(f"{InvalidKeyFormatError.user_message}\n{hint}")
            return
        finally:
            self.imports.consume(user_id, succeeded)

        await responder.reply(
            f"<b>✅ Account imported!</b>\n<b>🏦 Wallet Address:</b>\n<code>{address}</code>",
            html=True,
        )

    # ------------------------------------------------------------------
    # Commands and buttons
    # ------------------------------------------------------------------

    async def _run_action(self, user_id: str, action: Action, channel: Channel, responder: Responder) -> None:
        logger.info(f"User {user_id} -> {action.value} ({channel.value})")
        handler = {
            Action.START: self._start,
            Action.CREATE_ACCOUNT: self._create_account,
            Action.IMPORT_ACCOUNT: self._import_account,
            Action.SETTINGS: self._settings,
            Action.VIEW_PRIVATE_KEY: self._view_private_key,
            Action.VIEW_WALLET: self._view_wallet,
            Action.TOGGLE_ALERTS: self._toggle_alerts,
            Action.CANCEL: self._cancel,
            Action.RESET: self._reset,
        }[action]
        await handler(user_id, channel, responder)

    async def _start(self, user_id: str, channel: Channel, responder: Responder) -> None:
        wallet = await self.keystore.open_wallet(user_id)
        await responder.reply(
            WELCOME_TEXT.format(address=wallet.public_key),
            buttons=[
                [Button("⚙️ Settings", Action.SETTINGS)],
                [Button("📥 Import Existing Account", Action.IMPORT_ACCOUNT)],
            ],
            html=True,
        )

    async def _create_account(self, user_id: str, channel: Channel, responder: Responder) -> None:
        wallet = await self.keystore.open_wallet(user_id)
        headline = "Your new account has been created!" if wallet.created else "You already have an account."
        await responder.reply(
            f"<b>{headline}</b>\n<b>🏦 Wallet Address:</b>\n<code>{wallet.public_key}</code>",
            html=True,
        )

    async def _import_account(self, user_id: str, channel: Channel, responder: Responder) -> None:
        if channel is Channel.GROUP:
            await responder.reply("For your safety, import keys only in a private chat with me.")
            return
        self.imports.begin(user_id)
        await responder.reply(IMPORT_PROMPT)

    async def _settings(self, user_id: str, channel: Channel, responder: Responder) -> None:
        await responder.reply(
            "<b>⚙️ Settings Menu</b>\nChoose an option below:",
            buttons=[
                [Button("🔑 View Private Key", Action.VIEW_PRIVATE_KEY)],
                [Button("🏦 View Wallet Address", Action.VIEW_WALLET)],
                [Button("🔔 Toggle Alerts", Action.TOGGLE_ALERTS)],
            ],
            html=True,
        )

    async def _view_private_key(self, user_id: str, channel: Channel, responder: Responder) -> None:
        try:
            private_key = await self.keystore.reveal_private_key(user_id)
        except AccountNotFoundError:
            await responder.reply("<b>❌ No private key found.</b>\nPlease create or import an account.", html=True)
            return
        await responder.reply_private(
            f"<b>🔑 Your Private Key:</b>\n<code>{private_key}</code>\n\n"
            "<b>⚠️ Keep this private! Do NOT share it.</b>",
            html=True,
        )
        if channel is Channel.GROUP:
            await responder.reply("I've sent your private key to you in a private message.")

    async def _view_wallet(self, user_id: str, channel: Channel, responder: Responder) -> None:
        account = await self.keystore.get_account(user_id)
        if account is None:
            await responder.reply("<b>❌ No wallet found.</b>\nPlease create or import an account.", html=True)
            return
        await responder.reply(
            f"<b>🏦 Your Wallet Address:</b>\n<code>{account.public_key}</code>",
            html=True,
        )

    async def _toggle_alerts(self, user_id: str, channel: Channel, responder: Responder) -> None:
        try:
            enabled = await self.keystore.toggle_alerts(user_id)
        except AccountNotFoundError:
            await responder.reply("<b>❌ No account found.</b>\nPlease create or import an account.", html=True)
            return
        if enabled:
            text = "<b>🔔 Alerts Enabled!</b>\nYou will receive notifications for transactions."
        else:
            text = "<b>🔕 Alerts Disabled!</b>\nYou will no longer receive notifications."
        await responder.reply(text, html=True)

    async def _cancel(self, user_id: str, channel: Channel, responder: Responder) -> None:
        if self.imports.is_awaiting(user_id):
            self.imports.cancel(user_id)
            await responder.reply("Import cancelled. Your current wallet is unchanged.")
            return
        await responder.reply("Nothing to cancel.")

    async def _reset(self, user_id: str, channel: Channel, responder: Responder) -> None:
        await self.sessions.memory.clear(user_id)
        await responder.reply("Conversation history cleared.")

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def _converse(self, user_id: str, text: str, responder: Responder) -> None:
        account, _ = await self.keystore.get_or_create(user_id)
        session = self.sessions.build_session(user_id, account)

        await responder.start_typing()
        typing = True
        shown = 0
        failure: AgentUnavailableError | AgentTimeoutError | None = None
        try:
            async with aclosing(session.stream_respond(text)) as chunks:
                async for chunk in chunks:
                    if not chunk.is_user_facing:
                        continue
                    if typing:
                        await responder.stop_typing()
                        typing = False
                    await responder.reply(chunk.content)
                    shown += 1
        except (AgentUnavailableError, AgentTimeoutError) as exc:
            failure = exc
        finally:
            if typing:
                await responder.stop_typing()

        if failure is not None:
            logger.warning(f"Agent failed for user {user_id} after {shown} chunk(s): {failure}")
            if shown:
                await responder.reply(f"⚠️ {failure.user_message}")
            else:
                await responder.reply(failure.user_message)
        elif shown == 0:
            await responder.reply("I don't have an answer for that. Could you rephrase?")

    async def _report(self, user_id: str, exc: WalletBotError, responder: Responder) -> None:
        if isinstance(exc, KeyDecodeError):
            logger.error(f"Key material for user {user_id} is corrupt and needs manual attention: {exc}")
        else:
            logger.warning(f"Request from user {user_id} failed: {exc}")
        await responder.reply(exc.user_message)
