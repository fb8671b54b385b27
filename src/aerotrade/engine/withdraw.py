"""Crypto sale and bank withdrawal flows.

Crypto sale:      sell:<ASSET> -> amount -> confirm_sale
Bank withdrawal:  withdraw:NGN -> amount -> confirm_withdraw

A bank withdrawal is a saga: reserve the NGN under the user lock, call the
gateway with the lock released, then commit or compensate under the lock.
"""

import html
import logging
import secrets
import time
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Union

from aerotrade.assets import FIAT, Asset, format_amount, format_naira, ledger_quantize, parse_asset
from aerotrade.bot import keyboards
from aerotrade.engine.events import ButtonPress, Effect, TextMessage
from aerotrade.engine.state import ConversationState, FlowKind, FlowStep
from aerotrade.engine.validators import is_max_keyword, names_match, parse_amount
from aerotrade.errors import GatewayError, InsufficientBalance, PolicyDenied, ValidationError
from aerotrade.ledger import LedgerRepository, TransactionStatus
from aerotrade.ledger.repository import WithdrawalReservation
from aerotrade.providers import Recipient

if TYPE_CHECKING:
    from aerotrade.engine.engine import ConversationEngine

logger = logging.getLogger(__name__)

ChatEvent = Union[TextMessage, ButtonPress]


def new_reference() -> str:
    """Unique transfer reference, e.g. AERO1718000000A1B2C3."""
    return f"AERO{int(time.time() * 1000)}{secrets.token_hex(3).upper()}"


# Crypto sale


async def start_sale(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """sell:<ASSET> - ask how much to sell."""
    try:
        asset = parse_asset(event.argument)
    except ValueError:
        return engine.reply(event, "❌ Unsupported asset.")
    if asset == FIAT:
        return await start_withdrawal(engine, event)

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        if not engine.clear_flow(event.user_id):
            return engine.busy(event)
        account = await engine.load_account(repo, event)
        balance = await repo.get_balance_amount(account.id, asset)

    if balance <= 0:
        return engine.reply(
            event,
            f"❌ You have no {asset.value} to sell.\n\nDeposit {asset.value} first.",
            keyboards.wallet_keyboard(asset),
            edit=True,
        )

    engine.store.start(event.user_id, FlowKind.CRYPTO_SALE, FlowStep.AWAITING_AMOUNT, asset=asset.value)
    return engine.reply(
        event,
        f"💱 <b>Sell {asset.value}</b>\n\n"
        f"Available: {format_amount(balance, asset)} {asset.value}\n\n"
        f"Enter the amount of {asset.value} to sell:",
        keyboards.amount_keyboard(),
        edit=True,
    )


async def sale_amount_entered(
    engine: "ConversationEngine", event: ChatEvent, state: ConversationState, text: str
) -> list[Effect]:
    """Validate the amount, price it and ask for confirmation."""
    asset = Asset(state.payload["asset"])
    flow_id = state.flow_id

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        balance = await repo.get_balance_amount(account.id, asset)

    if is_max_keyword(text):
        amount = balance
        if amount <= 0:
            engine.store.clear(event.user_id)
            return engine.reply(event, f"❌ You have no {asset.value} to sell.")
    else:
        try:
            amount = parse_amount(text)
        except ValidationError as e:
            return engine.reply(event, f"❌ {e}\n\nEnter the amount of {asset.value} to sell:")

    if amount > balance:
        return engine.reply(
            event,
            f"❌ Insufficient balance!\n"
            f"Available: {format_amount(balance, asset)} {asset.value}\n\n"
            f"Enter a smaller amount:",
        )

    async with engine.locks.released(event.user_id, operation="rates"):
        snapshot = await engine.rates.get_rates()

    if not engine.store.is_current(event.user_id, flow_id, FlowStep.AWAITING_AMOUNT):
        logger.info(f"Discarding stale sale quote for user {event.user_id}")
        return []

    rate = snapshot.ngn(asset)
    ngn_amount = ledger_quantize(amount * rate)
    state.advance(
        FlowStep.AWAITING_CONFIRMATION,
        amount=str(amount),
        rate=str(rate),
        ngn_amount=str(ngn_amount),
    )

    note = "\n⚠️ Live rates unavailable, using reference rates." if snapshot.is_fallback else ""
    return engine.reply(
        event,
        f"⚠️ <b>Confirm Sale</b>\n\n"
        f"💱 Sell: {format_amount(amount, asset)} {asset.value}\n"
        f"📊 Rate: {format_naira(rate)} per {asset.value}\n"
        f"💰 You receive: {format_naira(ngn_amount)}\n{note}\n"
        f"Do you want to proceed?",
        keyboards.confirm_keyboard("confirm_sale"),
        edit=True,
    )


async def confirm_sale(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """Debit the asset and credit its NGN value as one mutation."""
    state = engine.store.get(event.user_id)
    if (
        state is None
        or state.kind != FlowKind.CRYPTO_SALE
        or state.step != FlowStep.AWAITING_CONFIRMATION
    ):
        return engine.expired(event)

    asset = Asset(state.payload["asset"])
    amount = Decimal(state.payload["amount"])
    ngn_amount = Decimal(state.payload["ngn_amount"])
    rate = Decimal(state.payload["rate"])

    try:
        async with engine.database.session() as session:
            repo = LedgerRepository(session)
            account = await engine.load_account(repo, event)
            await repo.execute_crypto_sale(account.id, asset, amount, ngn_amount, rate)
            naira = await repo.get_balance_amount(account.id, FIAT)
            remaining = await repo.get_balance_amount(account.id, asset)
    except InsufficientBalance as e:
        engine.store.clear(event.user_id)
        return engine.reply(
            event,
            f"❌ Insufficient balance. Available: {format_amount(e.available, asset)} {asset.value}",
            edit=True,
        )

    engine.store.clear(event.user_id)
    logger.info(f"User {event.user_id} sold {amount} {asset.value} for {ngn_amount} NGN")
    return engine.reply(
        event,
        f"✅ <b>Sale Successful!</b>\n\n"
        f"💱 Sold: {format_amount(amount, asset)} {asset.value}\n"
        f"💰 Received: {format_naira(ngn_amount)}\n\n"
        f"📊 {asset.value} balance: {format_amount(remaining, asset)}\n"
        f"📊 Naira balance: {format_naira(naira)}",
        keyboards.back_keyboard(),
        edit=True,
    )


# Bank withdrawal


async def start_withdrawal(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """withdraw:NGN - requires a verified bank account."""
    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        if not engine.clear_flow(event.user_id):
            return engine.busy(event)
        account = await engine.load_account(repo, event)
        bank = await repo.get_bank_account(account.id)
        balance = await repo.get_balance_amount(account.id, FIAT)
        remaining = engine.policy.remaining_today(account)

    if bank is None or not bank.verified:
        return engine.reply(
            event,
            "⚠️ Please add a verified bank account before withdrawing.",
            keyboards.bank_view_keyboard(has_bank=False),
            edit=True,
        )

    minimum = engine.policy.min_gross_amount()
    if balance < minimum:
        return engine.reply(
            event,
            f"❌ Insufficient balance.\n\n"
            f"Available: {format_naira(balance)}\n"
            f"Minimum withdrawal: {format_naira(minimum)}",
            keyboards.wallet_keyboard(FIAT),
            edit=True,
        )

    engine.store.start(
        event.user_id,
        FlowKind.BANK_WITHDRAWAL,
        FlowStep.AWAITING_AMOUNT,
        bank_code=bank.bank_code,
        bank_name=bank.bank_name,
        account_number=bank.account_number,
        account_name=bank.account_name,
    )
    fee_percent = engine.policy.fee_rate * 100
    return engine.reply(
        event,
        f"🏦 <b>Withdraw to Bank</b>\n\n"
        f"Bank: {html.escape(bank.bank_name)}\n"
        f"Account: {bank.account_number} ({html.escape(bank.account_name)})\n\n"
        f"💰 Available: {format_naira(balance)}\n"
        f"💸 Fee: {fee_percent.normalize()}% (min {format_naira(engine.policy.min_fee)})\n"
        f"📊 Remaining today: {format_naira(remaining)}\n\n"
        f"Enter the amount to withdraw (e.g. 10000):",
        keyboards.amount_keyboard(),
        edit=True,
    )


async def withdrawal_amount_entered(
    engine: "ConversationEngine", event: ChatEvent, state: ConversationState, text: str
) -> list[Effect]:
    """Validate amount, fee floor and policy, then ask for confirmation."""
    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        balance = await repo.get_balance_amount(account.id, FIAT)

    if is_max_keyword(text):
        amount = balance
    else:
        try:
            amount = parse_amount(text, fiat=True)
        except ValidationError as e:
            return engine.reply(event, f"❌ {e}\n\nEnter the amount to withdraw:")

    fee, net = engine.policy.withdrawal_fee(amount)
    if net < engine.policy.min_withdrawal:
        return engine.reply(
            event,
            f"❌ Minimum withdrawal is {format_naira(engine.policy.min_withdrawal)} after fees.\n\n"
            f"Amount: {format_naira(amount)}\n"
            f"Fee: {format_naira(fee)}\n"
            f"Net: {format_naira(net)}\n\n"
            f"Please enter at least {format_naira(engine.policy.min_gross_amount())}.",
        )

    if amount > balance:
        return engine.reply(
            event,
            f"❌ Insufficient balance!\nAvailable: {format_naira(balance)}\n\nEnter a smaller amount:",
        )

    decision = engine.policy.check_withdrawal(account, amount)
    if not decision.allowed:
        engine.store.clear(event.user_id)
        return engine.reply(
            event,
            f"❌ {html.escape(decision.reason)}\n\n"
            f"Daily limit: {format_naira(decision.limit)}\n"
            f"Remaining: {format_naira(decision.remaining)}",
            keyboards.back_keyboard(),
        )

    state.advance(FlowStep.AWAITING_CONFIRMATION, amount=str(amount), fee=str(fee), net=str(net))
    return engine.reply(
        event,
        f"⚠️ <b>Confirm Bank Withdrawal</b>\n\n"
        f"🏦 Bank: {html.escape(state.payload['bank_name'])}\n"
        f"👤 Account: {html.escape(state.payload['account_name'])}\n\n"
        f"💰 Amount: {format_naira(amount)}\n"
        f"💸 Fee: {format_naira(fee)}\n"
        f"📥 You receive: {format_naira(net)}\n\n"
        f"📊 Current balance: {format_naira(balance)}\n"
        f"📊 New balance: {format_naira(balance - amount)}\n\n"
        f"Do you want to proceed?",
        keyboards.confirm_keyboard("confirm_withdraw"),
        edit=True,
    )


async def confirm_withdrawal(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """Run the withdrawal saga: reserve, transfer, then commit or compensate."""
    state = engine.store.get(event.user_id)
    if (
        state is None
        or state.kind != FlowKind.BANK_WITHDRAWAL
        or state.step != FlowStep.AWAITING_CONFIRMATION
    ):
        return engine.expired(event)
    if state.submitting:
        return engine.reply(event, "⏳ Your withdrawal is already being processed.")

    amount = Decimal(state.payload["amount"])
    fee = Decimal(state.payload["fee"])
    net = Decimal(state.payload["net"])
    flow_id = state.flow_id
    reference = new_reference()

    # Phase 1: reserve
    try:
        async with engine.database.session() as session:
            repo = LedgerRepository(session)
            account = await engine.load_account(repo, event)
            bank = await repo.get_bank_account(account.id)
            if bank is None or not bank.verified:
                engine.store.clear(event.user_id)
                return engine.reply(
                    event,
                    "⚠️ Your bank account was removed. Please add it again.",
                    keyboards.bank_view_keyboard(has_bank=False),
                    edit=True,
                )
            engine.policy.enforce(account, amount)
            reservation = await repo.reserve_withdrawal(account, amount, fee, reference, bank=bank)
            recipient = Recipient(
                account_number=bank.account_number,
                bank_code=bank.bank_code,
                account_name=bank.account_name,
                bank_name=bank.bank_name,
            )
    except (PolicyDenied, InsufficientBalance):
        engine.store.clear(event.user_id)
        raise

    state.submitting = True
    try:
        # Phase 2: external calls without the lock
        transfer_id: Optional[str] = None
        failure: Optional[str] = None
        async with engine.locks.released(event.user_id, operation="bank transfer"):
            try:
                verification = await engine.gateway.verify_account(
                    recipient.account_number, recipient.bank_code
                )
                if not names_match(recipient.account_name, verification.account_name):
                    raise GatewayError(
                        f"Account name doesn't match. Expected: {verification.account_name}"
                    )
                result = await engine.gateway.transfer(
                    net,
                    recipient,
                    reference,
                    narration=f"Withdrawal from {engine.settings.business_name}",
                )
                transfer_id = result.transfer_id
            except GatewayError as e:
                failure = e.message
            except Exception as e:
                logger.exception(f"Unexpected error during transfer {reference}")
                failure = f"Unexpected error: {type(e).__name__}"

        # Phase 3: commit or compensate. Once reserved, the flow never returns to confirmation
        # unless compensation succeeded.
        try:
            async with engine.database.session() as session:
                repo = LedgerRepository(session)
                if transfer_id is not None:
                    await repo.commit_withdrawal(reservation, transfer_id)
                else:
                    await repo.compensate_withdrawal(reservation, failure or "Transfer failed")
                naira = await repo.get_balance_amount(reservation.account_id, FIAT)
        except Exception:
            logger.exception(
                f"Could not settle withdrawal {reference} for user {event.user_id} "
                f"(transfer_id={transfer_id}, failure={failure}); needs reconciliation"
            )
            if engine.store.is_current(event.user_id, flow_id):
                engine.store.clear(event.user_id)
            return _withdrawal_unsettled(engine, event, reservation, transfer_id)
    finally:
        state.submitting = False

    current = engine.store.is_current(event.user_id, flow_id, FlowStep.AWAITING_CONFIRMATION)
    if transfer_id is not None:
        if current:
            engine.store.clear(event.user_id)
        return _withdrawal_success(engine, event, reservation, recipient, transfer_id, naira)

    retry = current and engine.settings.withdrawal_retry_on_failure
    if current and not retry:
        engine.store.clear(event.user_id)
    markup = keyboards.confirm_keyboard("confirm_withdraw") if retry else keyboards.back_keyboard()
    retry_hint = "\n\nTap ✅ Confirm to try again." if retry else ""
    return engine.reply(
        event,
        f"❌ <b>Withdrawal failed</b>\n\n"
        f"{html.escape(failure or 'Transfer failed')}\n\n"
        f"Your {format_naira(amount)} has been returned to your Naira wallet.\n"
        f"📊 Balance: {format_naira(naira)}{retry_hint}",
        markup,
        edit=True,
    )


def _withdrawal_success(
    engine: "ConversationEngine",
    event: ButtonPress,
    reservation: WithdrawalReservation,
    recipient: Recipient,
    transfer_id: str,
    naira: Decimal,
) -> list[Effect]:
    return engine.reply(
        event,
        f"✅ <b>Withdrawal Initiated!</b>\n\n"
        f"💰 Amount: {format_naira(reservation.amount)}\n"
        f"💸 Fee: {format_naira(reservation.fee)}\n"
        f"📥 Net sent: {format_naira(reservation.net_amount)}\n\n"
        f"🏦 Bank: {html.escape(recipient.bank_name or recipient.bank_code)}\n"
        f"👤 Account: {html.escape(recipient.account_name)}\n\n"
        f"📝 Transfer ID: {html.escape(transfer_id)}\n"
        f"🔢 Reference: {reservation.reference}\n\n"
        f"📊 New balance: {format_naira(naira)}\n"
        f"⏳ Status: Processing\n"
        f"⏰ Funds usually arrive within 1-24 hours.",
        keyboards.withdrawal_status_keyboard(transfer_id),
        edit=True,
    )


def _withdrawal_unsettled(
    engine: "ConversationEngine",
    event: ButtonPress,
    reservation: WithdrawalReservation,
    transfer_id: Optional[str],
) -> list[Effect]:
    sent = "Your transfer was sent to the bank" if transfer_id else "Your transfer did not go through"
    return engine.reply(
        event,
        f"⚠️ <b>Withdrawal under review</b>\n\n"
        f"{sent}, but we couldn't finalise it on our side.\n"
        f"Please don't submit it again. Our team will reconcile it.\n\n"
        f"🔢 Reference: {reservation.reference}\n"
        f"Contact support with this reference if you have questions.",
        keyboards.back_keyboard(),
        edit=True,
    )


# Status check

STATUS_MAP = {
    "SUCCESSFUL": TransactionStatus.COMPLETED,
    "FAILED": TransactionStatus.FAILED,
}


async def check_transfer_status(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """status:<transfer_id> - fetch the provider status and refine the record."""
    transfer_id = event.argument
    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        record = await repo.get_withdrawal_by_transfer_id(transfer_id)
        if record is None or record.account_id != account.id:
            return engine.reply(event, "❌ Transfer not found.", keyboards.back_keyboard())
        record_id = record.id

    async with engine.locks.released(event.user_id, operation="transfer status"):
        status = await engine.gateway.check_status(transfer_id)

    if status is None:
        return engine.reply(
            event,
            "❌ Unable to check status at this time. Please try again later.",
            keyboards.back_keyboard(),
        )

    new_status = STATUS_MAP.get(status.status.upper(), TransactionStatus.PROCESSING)
    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        record = await repo.get_transaction(record_id)
        if record is not None and record.status == TransactionStatus.PROCESSING and new_status != record.status:
            await repo.update_transaction_status(record, new_status)
            if new_status == TransactionStatus.FAILED:
                logger.warning(
                    f"Transfer {transfer_id} reported FAILED by provider after commit; "
                    f"needs manual reconciliation"
                )

    lines = [
        "📊 <b>Transfer Status</b>\n",
        f"ID: {html.escape(status.transfer_id)}",
        f"Amount: {format_naira(status.amount)}",
        f"Status: {html.escape(status.status.upper())}",
    ]
    if status.reference:
        lines.append(f"Reference: {html.escape(status.reference)}")
    if status.bank_name:
        lines.append(f"Bank: {html.escape(status.bank_name)}")
    if status.account_number:
        lines.append(f"Account: {html.escape(status.account_number)}")
    if status.full_name:
        lines.append(f"Name: {html.escape(status.full_name)}")
    if status.created_at:
        lines.append(f"Initiated: {html.escape(status.created_at)}")
    if status.complete_message:
        lines.append(f"\n💬 Message: {html.escape(status.complete_message)}")

    return engine.reply(event, "\n".join(lines), keyboards.withdrawal_status_keyboard(transfer_id))
