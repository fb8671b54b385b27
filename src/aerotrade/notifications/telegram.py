"""Telegram delivery of engine effects.

Executes SendText / EditMessage / AnswerCallback through an aiogram Bot. Used
by the bot handlers and by the deposit webhook, which has no update to
reply to.
"""

import logging
from typing import Iterable, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest, TelegramForbiddenError

from aerotrade.engine.events import AnswerCallback, EditMessage, Effect, SendText

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Executes effects against the Telegram Bot API.

    A notifier without a bot (no TELEGRAM_BOT_TOKEN) logs and drops effects.
    """

    def __init__(self, bot: Optional[Bot] = None):
        self._bot = bot

    @property
    def enabled(self) -> bool:
        return self._bot is not None

    async def execute(self, effects: Iterable[Effect]) -> int:
        """Run effects in order.

        Returns:
            Number of effects delivered
        """
        delivered = 0
        for effect in effects:
            if await self._execute_one(effect):
                delivered += 1
        return delivered

    async def _execute_one(self, effect: Effect) -> bool:
        if self._bot is None:
            logger.warning(f"Cannot deliver {type(effect).__name__} - bot not initialized")
            return False

        try:
            if isinstance(effect, SendText):
                await self._bot.send_message(
                    chat_id=effect.chat_id,
                    text=effect.text,
                    parse_mode=effect.parse_mode,
                    reply_markup=effect.reply_markup,
                )
            elif isinstance(effect, EditMessage):
                await self._bot.edit_message_text(
                    text=effect.text,
                    chat_id=effect.chat_id,
                    message_id=effect.message_id,
                    parse_mode=effect.parse_mode,
                    reply_markup=effect.reply_markup,
                )
            elif isinstance(effect, AnswerCallback):
                await self._bot.answer_callback_query(
                    callback_query_id=effect.callback_id,
                    text=effect.text,
                    show_alert=effect.show_alert,
                )
            else:
                raise TypeError(f"Unknown effect type: {type(effect).__name__}")
            return True
        except TelegramForbiddenError:
            logger.warning(f"User has blocked the bot, dropping {type(effect).__name__}")
            return False
        except TelegramBadRequest as e:
            if "message is not modified" in str(e):
                return True
            logger.error(f"Bad request executing {type(effect).__name__}: {e}")
            return False
        except TelegramAPIError as e:
            logger.error(f"Telegram API error executing {type(effect).__name__}: {e}")
            return False

    async def send_message(self, telegram_id: int, text: str) -> bool:
        """Send a single HTML message to a user."""
        return await self._execute_one(SendText(chat_id=telegram_id, text=text))
