"""Inbound events and outbound effects of the conversation engine.

The engine never talks to Telegram directly: the bot adapter turns updates
into events and executes the effects the engine returns.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from aiogram.types import InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove

ReplyMarkup = Union[InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove]

PARSE_MODE = "HTML"


# Events


@dataclass(frozen=True)
class TextMessage:
    """Text typed by the user (including commands and reply-keyboard taps)."""

    user_id: int
    chat_id: int
    text: str
    username: Optional[str] = None
    first_name: Optional[str] = None


@dataclass(frozen=True)
class ButtonPress:
    """Inline keyboard button press (callback query)."""

    user_id: int
    chat_id: int
    data: str
    callback_id: Optional[str] = None
    message_id: Optional[int] = None
    username: Optional[str] = None
    first_name: Optional[str] = None

    @property
    def action(self) -> str:
        return self.data.split(":", 1)[0]

    @property
    def argument(self) -> str:
        parts = self.data.split(":", 1)
        return parts[1] if len(parts) > 1 else ""


@dataclass(frozen=True)
class DepositNotification:
    """Inbound deposit reported by the chain observer. Untrusted input."""

    address: str
    amount: Decimal
    currency: str
    tx_hash: str
    network: Optional[str] = None


Event = Union[TextMessage, ButtonPress, DepositNotification]


# Effects


@dataclass(frozen=True)
class SendText:
    """Send a new message."""

    chat_id: int
    text: str
    reply_markup: Optional[ReplyMarkup] = None
    parse_mode: Optional[str] = PARSE_MODE


@dataclass(frozen=True)
class EditMessage:
    """Replace the text (and inline keyboard) of an existing message."""

    chat_id: int
    message_id: int
    text: str
    reply_markup: Optional[InlineKeyboardMarkup] = None
    parse_mode: Optional[str] = PARSE_MODE


@dataclass(frozen=True)
class AnswerCallback:
    """Acknowledge a button press, optionally with a toast or alert."""

    callback_id: str
    text: Optional[str] = None
    show_alert: bool = False


Effect = Union[SendText, EditMessage, AnswerCallback]
