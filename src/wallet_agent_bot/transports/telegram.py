import asyncio
import contextlib
import logging
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Message, Update
from telegram.constants import ChatAction, ChatType, ParseMode
from telegram.error import Forbidden, TelegramError
from telegram.ext import Application, CallbackQueryHandler, ContextTypes, MessageHandler, filters

from wallet_agent_bot.bot.dispatcher import Action, Channel, Dispatcher, Keyboard
from wallet_agent_bot.errors import PrivateChatUnavailableError

log = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
TYPING_REFRESH_SECONDS = 4.0


def _split(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    parts = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        parts.append(text[:cut])
        text = text[cut:].lstrip("\n")
    parts.append(text)
    return parts


def _markup(buttons: Optional[Keyboard]) -> Optional[InlineKeyboardMarkup]:
    if not buttons:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(b.label, callback_data=b.action.value) for b in row] for row in buttons]
    )


class TelegramResponder:
    """Replies to one Telegram update. Private replies go to the user's own chat."""

    def __init__(self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int,
                 reply_to: Optional[Message] = None):
        self.bot = context.bot
        self.chat_id = chat_id
        self.user_id = user_id
        self.reply_to = reply_to
        self._typing_task: Optional[asyncio.Task] = None

    async def reply(self, text: str, *, buttons: Optional[Keyboard] = None, html: bool = False) -> None:
        parse_mode = ParseMode.HTML if html else None
        parts = _split(text)
        for i, part in enumerate(parts):
            markup = _markup(buttons) if i == len(parts) - 1 else None
            if self.reply_to is not None:
                await self.reply_to.reply_text(part, parse_mode=parse_mode, reply_markup=markup)
            else:
                await self.bot.send_message(
                    chat_id=self.chat_id, text=part, parse_mode=parse_mode, reply_markup=markup
                )

    async def reply_private(self, text: str, *, html: bool = False) -> None:
        # A user's private chat id equals their user id.
        try:
            await self.bot.send_message(
                chat_id=self.user_id, text=text, parse_mode=ParseMode.HTML if html else None
            )
        except Forbidden as exc:
            # The bot may not open a chat the user never started.
            raise PrivateChatUnavailableError(
                f"Cannot message user {self.user_id} privately: {exc}"
            ) from exc

    async def start_typing(self) -> None:
        if self._typing_task is None:
            self._typing_task = asyncio.create_task(self._keep_typing())

    async def stop_typing(self) -> None:
        task, self._typing_task = self._typing_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _keep_typing(self) -> None:
        # Telegram clears the indicator after ~5 seconds.
        while True:
            try:
                await self.bot.send_chat_action(chat_id=self.chat_id, action=ChatAction.TYPING)
            except TelegramError as exc:
                log.debug("Typing indicator failed for chat %s: %s", self.chat_id, exc)
            await asyncio.sleep(TYPING_REFRESH_SECONDS)


class TelegramTransport:
    def __init__(self, dispatcher: Dispatcher, token: str):
        self.dispatcher = dispatcher
        self.application = Application.builder().token(token).concurrent_updates(True).build()
        self._register_handlers()
        self._stop_event = asyncio.Event()

    def _register_handlers(self):
        self.application.add_handler(CallbackQueryHandler(self.handle_button))
        self.application.add_handler(MessageHandler(filters.TEXT, self.handle_message))
        self.application.add_error_handler(self.handle_error)

    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        user = update.effective_user
        chat = update.effective_chat
        if not message or not message.text or not user or user.is_bot or not chat:
            return
        channel = Channel.DIRECT if chat.type == ChatType.PRIVATE else Channel.GROUP
        responder = TelegramResponder(context, chat_id=chat.id, user_id=user.id, reply_to=message)
        await self.dispatcher.handle_text(str(user.id), message.text, channel, responder)

    async def handle_button(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        user = update.effective_user
        chat = update.effective_chat
        if not query or not user or not chat:
            return
        await query.answer()
        try:
            action = Action(query.data)
        except ValueError:
            log.warning("Ignoring unknown button %r from user %s", query.data, user.id)
            return
        channel = Channel.DIRECT if chat.type == ChatType.PRIVATE else Channel.GROUP
        responder = TelegramResponder(context, chat_id=chat.id, user_id=user.id)
        await self.dispatcher.handle_action(str(user.id), action, channel, responder)

    async def handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        log.error("Telegram handler error: %s", context.error, exc_info=context.error)

    async def start(self):
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling()
        log.info("Telegram transport polling for updates")
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()

    async def stop(self):
        self._stop_event.set()
