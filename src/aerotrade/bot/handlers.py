"""aiogram handlers: convert updates into engine events and run the effects."""

import logging

from aiogram import F, Router
from aiogram.types import CallbackQuery, Message

from aerotrade.engine import ButtonPress, ConversationEngine, TextMessage
from aerotrade.notifications.telegram import TelegramNotifier

logger = logging.getLogger(__name__)

router = Router()


@router.message(F.text)
async def on_message(message: Message, engine: ConversationEngine) -> None:
    """Every text message, commands and reply-keyboard taps included."""
    if not message.from_user:
        return

    event = TextMessage(
        user_id=message.from_user.id,
        chat_id=message.chat.id,
        text=message.text,
        username=message.from_user.username,
        first_name=message.from_user.first_name,
    )
    effects = await engine.handle(event)
    await TelegramNotifier(message.bot).execute(effects)


@router.callback_query(F.data)
async def on_callback(callback: CallbackQuery, engine: ConversationEngine) -> None:
    """Every inline keyboard button press."""
    chat_id = callback.message.chat.id if callback.message else callback.from_user.id
    message_id = callback.message.message_id if callback.message else None

    event = ButtonPress(
        user_id=callback.from_user.id,
        chat_id=chat_id,
        data=callback.data,
        callback_id=callback.id,
        message_id=message_id,
        username=callback.from_user.username,
        first_name=callback.from_user.first_name,
    )
    effects = await engine.handle(event)
    await TelegramNotifier(callback.bot).execute(effects)
