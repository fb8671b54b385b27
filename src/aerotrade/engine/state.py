"""Per-user conversation state.

State is transient and in-memory only. A user has at most one pending flow;
starting a new flow replaces the previous one. Each flow carries a random
`flow_id` so results of slow external calls can be matched against the
flow that requested them.
"""

import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class FlowStep(str, Enum):
    """Where a flow is waiting for user input."""

    NONE = "none"
    AWAITING_AMOUNT = "awaiting_amount"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_BANK_SELECTION = "awaiting_bank_selection"
    AWAITING_ACCOUNT_NUMBER = "awaiting_account_number"
    AWAITING_ACCOUNT_NAME = "awaiting_account_name"


class FlowKind(str, Enum):
    """Multi-step operation being driven."""

    CRYPTO_SALE = "crypto_sale"
    BANK_WITHDRAWAL = "bank_withdrawal"
    SWAP = "swap"
    BANK_LINK = "bank_link"


@dataclass
class ConversationState:
    """Pending flow of one user."""

    kind: FlowKind
    step: FlowStep
    flow_id: str = field(default_factory=lambda: secrets.token_hex(8))
    payload: dict[str, Any] = field(default_factory=dict)
    submitting: bool = False
    updated_at: float = field(default_factory=time.monotonic)

    def advance(self, step: FlowStep, **payload: Any) -> None:
        """Move to the next step, merging payload."""
        self.step = step
        self.payload.update(payload)
        self.updated_at = time.monotonic()


class ConversationStore:
    """In-memory store: telegram user id -> ConversationState."""

    def __init__(self):
        self._states: dict[int, ConversationState] = {}

    def get(self, user_id: int) -> Optional[ConversationState]:
        return self._states.get(user_id)

    def step(self, user_id: int) -> FlowStep:
        state = self._states.get(user_id)
        return state.step if state else FlowStep.NONE

    def start(self, user_id: int, kind: FlowKind, step: FlowStep, **payload: Any) -> ConversationState:
        """Begin a new flow, replacing any previous one."""
        state = ConversationState(kind=kind, step=step, payload=dict(payload))
        self._states[user_id] = state
        return state

    def clear(self, user_id: int) -> Optional[ConversationState]:
        """Remove a user's flow. Returns the removed state."""
        return self._states.pop(user_id, None)

    def is_current(
        self,
        user_id: int,
        flow_id: str,
        step: Optional[FlowStep] = None,
    ) -> bool:
        """Check that the user's flow is still the one identified by flow_id (and step)."""
        state = self._states.get(user_id)
        if state is None or state.flow_id != flow_id:
            return False
        return step is None or state.step == step

    def __len__(self) -> int:
        return len(self._states)
