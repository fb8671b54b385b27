"""Bank account linking and management.

bank_add -> bank_select:<code> -> account number -> account name

The supplied name must match the provider's resolved name (case and
whitespace insensitive) before anything is saved.
"""

import html
import logging
from typing import TYPE_CHECKING, Optional, Union

from aerotrade.assets import FIAT, format_naira
from aerotrade.bot import keyboards
from aerotrade.engine.events import ButtonPress, Effect, TextMessage
from aerotrade.engine.state import ConversationState, FlowKind, FlowStep
from aerotrade.engine.validators import names_match, validate_account_name, validate_account_number
from aerotrade.errors import GatewayError, ValidationError
from aerotrade.ledger import LedgerRepository
from aerotrade.providers import AccountVerification

if TYPE_CHECKING:
    from aerotrade.engine.engine import ConversationEngine

logger = logging.getLogger(__name__)

ChatEvent = Union[TextMessage, ButtonPress]


def _link_state(engine: "ConversationEngine", user_id: int, step: FlowStep) -> Optional[ConversationState]:
    state = engine.store.get(user_id)
    if state is None or state.kind != FlowKind.BANK_LINK or state.step != step:
        return None
    return state


async def show_bank(engine: "ConversationEngine", event: ChatEvent) -> list[Effect]:
    """Linked bank details, limits and KYC status."""
    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        bank = await repo.get_bank_account(account.id)
        balance = await repo.get_balance_amount(account.id, FIAT)
        remaining = engine.policy.remaining_today(account)
        limit = account.daily_withdrawal_limit
        kyc = "✅ Verified" if account.kyc_verified else "❌ Not verified"

        if bank is None:
            return engine.reply(
                event,
                "🏦 <b>Bank Account</b>\n\n"
                "You haven't added a bank account yet.\n\n"
                "Add one to withdraw your Naira balance.",
                keyboards.bank_view_keyboard(has_bank=False),
                edit=True,
            )

        status = "✅ Verified" if bank.verified else "⏳ Unverified"
        text = (
            f"🏦 <b>Bank Account</b>\n\n"
            f"Bank: {html.escape(bank.bank_name)}\n"
            f"Account number: {bank.account_number}\n"
            f"Account name: {html.escape(bank.account_name)}\n"
            f"Status: {status}\n\n"
            f"💰 Naira balance: {format_naira(balance)}\n"
            f"📊 Daily limit: {format_naira(limit)}\n"
            f"📊 Remaining today: {format_naira(remaining)}\n"
            f"🪪 KYC: {kyc}"
        )

    return engine.reply(event, text, keyboards.bank_view_keyboard(has_bank=True), edit=True)


async def start_bank_link(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """bank_add - show the bank directory."""
    if not engine.clear_flow(event.user_id):
        return engine.busy(event)

    async with engine.database.session() as session:
        await engine.load_account(LedgerRepository(session), event)

    state = engine.store.start(event.user_id, FlowKind.BANK_LINK, FlowStep.AWAITING_BANK_SELECTION)
    async with engine.locks.released(event.user_id, operation="list banks"):
        banks = await engine.get_banks()

    if not engine.store.is_current(event.user_id, state.flow_id, FlowStep.AWAITING_BANK_SELECTION):
        return []

    return engine.reply(
        event,
        "🏦 <b>Add Bank Account</b>\n\nSelect your bank:",
        keyboards.bank_list_keyboard(banks, page=0),
        edit=True,
    )


async def select_page(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """bank_page:<n> - page through the bank directory."""
    if _link_state(engine, event.user_id, FlowStep.AWAITING_BANK_SELECTION) is None:
        return engine.expired(event)
    try:
        page = int(event.argument)
    except ValueError:
        page = 0

    banks = await engine.get_banks()
    return engine.reply(
        event,
        "🏦 <b>Add Bank Account</b>\n\nSelect your bank:",
        keyboards.bank_list_keyboard(banks, page=page),
        edit=True,
    )


async def select_bank(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """bank_select:<code> - ask for the account number."""
    state = _link_state(engine, event.user_id, FlowStep.AWAITING_BANK_SELECTION)
    if state is None:
        return engine.expired(event)

    bank = engine.find_bank(event.argument)
    if bank is None:
        engine.store.clear(event.user_id)
        return engine.reply(event, "❌ Unknown bank. Please start again.", keyboards.bank_view_keyboard(False))

    state.advance(FlowStep.AWAITING_ACCOUNT_NUMBER, bank_code=bank.code, bank_name=bank.name)
    return engine.reply(
        event,
        f"🏦 Bank: <b>{html.escape(bank.name)}</b>\n\nEnter your 10-digit account number:",
        keyboards.cancel_keyboard(),
        edit=True,
    )


async def account_number_entered(
    engine: "ConversationEngine", event: ChatEvent, state: ConversationState, text: str
) -> list[Effect]:
    try:
        number = validate_account_number(text)
    except ValidationError as e:
        return engine.reply(event, f"❌ {e}", keyboards.cancel_keyboard())

    state.advance(FlowStep.AWAITING_ACCOUNT_NAME, account_number=number)
    return engine.reply(
        event,
        f"🔢 Account number: {number}\n\n"
        f"Enter the account name exactly as it appears on your bank account:",
        keyboards.cancel_keyboard(),
    )


async def account_name_entered(
    engine: "ConversationEngine", event: ChatEvent, state: ConversationState, text: str
) -> list[Effect]:
    """Verify the account with the provider and save it on a name match."""
    try:
        name = validate_account_name(text)
    except ValidationError as e:
        return engine.reply(event, f"❌ {e}", keyboards.cancel_keyboard())

    bank_code = state.payload["bank_code"]
    bank_name = state.payload["bank_name"]
    number = state.payload["account_number"]
    flow_id = state.flow_id

    async with engine.database.session() as session:
        await engine.load_account(LedgerRepository(session), event)

    verification: Optional[AccountVerification] = None
    error: Optional[GatewayError] = None
    async with engine.locks.released(event.user_id, operation="verify account"):
        try:
            verification = await engine.gateway.verify_account(number, bank_code)
        except GatewayError as e:
            error = e

    if not engine.store.is_current(event.user_id, flow_id, FlowStep.AWAITING_ACCOUNT_NAME):
        logger.info(f"Discarding stale account verification for user {event.user_id}")
        return []
    engine.store.clear(event.user_id)

    if error is not None:
        logger.warning(f"Account verification failed for user {event.user_id}: {error.message}")
        return engine.reply(
            event,
            f"❌ Could not verify account: {html.escape(error.message)}\n\nPlease try again.",
            keyboards.bank_view_keyboard(has_bank=False),
        )

    if not names_match(name, verification.account_name):
        return engine.reply(
            event,
            f"❌ <b>Account name mismatch</b>\n\n"
            f"You entered: {html.escape(name)}\n"
            f"Bank records: {html.escape(verification.account_name)}\n\n"
            f"Please add the account again with the exact name.",
            keyboards.bank_view_keyboard(has_bank=False),
        )

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        await repo.save_bank_account(
            account.id,
            bank_code=bank_code,
            bank_name=bank_name,
            account_number=number,
            account_name=verification.account_name,
            verified=True,
        )

    logger.info(f"User {event.user_id} linked bank account {bank_code}/{number[-4:]}")
    return engine.reply(
        event,
        f"✅ <b>Bank Account Verified!</b>\n\n"
        f"Bank: {html.escape(bank_name)}\n"
        f"Account number: {number}\n"
        f"Account name: {html.escape(verification.account_name)}\n\n"
        f"You can now withdraw to this account.",
        keyboards.bank_view_keyboard(has_bank=True),
    )


async def ask_remove_bank(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    return engine.reply(
        event,
        "🗑 Remove your linked bank account?",
        keyboards.bank_remove_keyboard(),
        edit=True,
    )


async def remove_bank(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """bank_remove_confirm - delete the linked bank account."""
    if not engine.clear_flow(event.user_id):
        return engine.busy(event)

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        removed = await repo.delete_bank_account(account.id)

    text = "✅ Bank account removed." if removed else "You have no bank account linked."
    return engine.reply(event, text, keyboards.bank_view_keyboard(has_bank=False), edit=True)
