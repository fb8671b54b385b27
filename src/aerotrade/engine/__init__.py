"""Conversation engine: chat events in, ledger mutations and replies out."""

from aerotrade.engine.deposits import DepositResult
from aerotrade.engine.engine import ConversationEngine
from aerotrade.engine.events import (
    AnswerCallback,
    ButtonPress,
    DepositNotification,
    EditMessage,
    Effect,
    Event,
    SendText,
    TextMessage,
)
from aerotrade.engine.state import ConversationState, ConversationStore, FlowKind, FlowStep

__all__ = [
    "AnswerCallback",
    "ButtonPress",
    "ConversationEngine",
    "ConversationState",
    "ConversationStore",
    "DepositNotification",
    "DepositResult",
    "EditMessage",
    "Effect",
    "Event",
    "FlowKind",
    "FlowStep",
    "SendText",
    "TextMessage",
]
