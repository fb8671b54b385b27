"""Crypto-to-crypto swap flow.

swap_from:<A> -> swap_to:<A>:<B> -> amount -> confirm_swap
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Union

from aerotrade.assets import ASSETS, CRYPTO_ASSETS, FIAT, Asset, format_amount, ledger_quantize, parse_asset
from aerotrade.bot import keyboards
from aerotrade.engine.events import ButtonPress, Effect, TextMessage
from aerotrade.engine.state import ConversationState, FlowKind, FlowStep
from aerotrade.engine.validators import is_max_keyword, parse_amount
from aerotrade.errors import InsufficientBalance, ValidationError
from aerotrade.ledger import LedgerRepository
from aerotrade.providers.rates import RateSnapshot

if TYPE_CHECKING:
    from aerotrade.engine.engine import ConversationEngine

logger = logging.getLogger(__name__)

ChatEvent = Union[TextMessage, ButtonPress]


@dataclass(frozen=True)
class SwapQuote:
    """Priced swap of `amount` from_asset into to_asset."""

    from_asset: Asset
    to_asset: Asset
    amount: Decimal
    fee: Decimal
    received: Decimal
    rate: Decimal


def quote_swap(
    snapshot: RateSnapshot,
    from_asset: Asset,
    to_asset: Asset,
    amount: Decimal,
    fee_rate: Decimal = Decimal("0.005"),
) -> SwapQuote:
    """Price a swap through USD.

    received = amount * (1 - fee_rate) * usd(from) / usd(to), rounded down
    to the stored scale. The fee is charged in from_asset.
    """
    if from_asset == to_asset:
        raise ValidationError("Cannot swap an asset into itself.")
    if from_asset == FIAT or to_asset == FIAT:
        raise ValidationError("Swaps are between crypto assets only.")

    rate = snapshot.usd(from_asset) / snapshot.usd(to_asset)
    fee = amount * fee_rate
    received = ledger_quantize((amount - fee) * rate)
    return SwapQuote(
        from_asset=from_asset,
        to_asset=to_asset,
        amount=amount,
        fee=fee,
        received=received,
        rate=rate,
    )


async def start_swap(engine: "ConversationEngine", event: ChatEvent) -> list[Effect]:
    """Ask which asset to swap from."""
    if not engine.clear_flow(event.user_id):
        return engine.busy(event)

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        balances = await repo.get_all_balances(account.id)

    lines = ["🔄 <b>Swap Crypto</b>\n", "Your balances:"]
    for asset in CRYPTO_ASSETS:
        amount = balances.get(asset.value, Decimal("0"))
        lines.append(f"{ASSETS[asset].emoji} {asset.value}: {format_amount(amount, asset)}")
    lines.append(f"\nFee: {(engine.settings.swap_fee_rate * 100).normalize()}%")
    lines.append("\nSelect the asset to swap from:")
    return engine.reply(event, "\n".join(lines), keyboards.swap_from_keyboard(), edit=True)


async def select_from(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """swap_from:<A> - ask for the target asset."""
    try:
        from_asset = parse_asset(event.argument)
    except ValueError:
        return engine.reply(event, "❌ Unsupported asset.")
    if from_asset == FIAT:
        return engine.reply(event, "❌ Swaps are between crypto assets only.")
    if not engine.clear_flow(event.user_id):
        return engine.busy(event)

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        balance = await repo.get_balance_amount(account.id, from_asset)

    if balance <= 0:
        return engine.reply(
            event,
            f"❌ You have no {from_asset.value} to swap.\n\nDeposit {from_asset.value} first.",
            keyboards.wallet_keyboard(from_asset),
            edit=True,
        )

    return engine.reply(
        event,
        f"🔄 <b>Swap {from_asset.value}</b>\n\n"
        f"Available: {format_amount(balance, from_asset)} {from_asset.value}\n\n"
        f"Select the asset to receive:",
        keyboards.swap_to_keyboard(from_asset),
        edit=True,
    )


async def select_to(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """swap_to:<A>:<B> - start the swap flow and ask for the amount."""
    source, _, target = event.argument.partition(":")
    try:
        from_asset = parse_asset(source)
        to_asset = parse_asset(target)
    except ValueError:
        return engine.reply(event, "❌ Unsupported asset.")
    if from_asset == to_asset or FIAT in (from_asset, to_asset):
        return engine.reply(event, "❌ Invalid swap pair.", keyboards.swap_from_keyboard())
    if not engine.clear_flow(event.user_id):
        return engine.busy(event)

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        balance = await repo.get_balance_amount(account.id, from_asset)

    engine.store.start(
        event.user_id,
        FlowKind.SWAP,
        FlowStep.AWAITING_AMOUNT,
        from_asset=from_asset.value,
        to_asset=to_asset.value,
    )
    return engine.reply(
        event,
        f"🔄 <b>Swap {from_asset.value} → {to_asset.value}</b>\n\n"
        f"Available: {format_amount(balance, from_asset)} {from_asset.value}\n\n"
        f"Enter the amount of {from_asset.value} to swap:",
        keyboards.amount_keyboard(),
        edit=True,
    )


async def amount_entered(
    engine: "ConversationEngine", event: ChatEvent, state: ConversationState, text: str
) -> list[Effect]:
    """Validate the amount, quote it and ask for confirmation."""
    from_asset = Asset(state.payload["from_asset"])
    to_asset = Asset(state.payload["to_asset"])
    flow_id = state.flow_id

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        balance = await repo.get_balance_amount(account.id, from_asset)

    if is_max_keyword(text):
        amount = balance
        if amount <= 0:
            engine.store.clear(event.user_id)
            return engine.reply(event, f"❌ You have no {from_asset.value} to swap.")
    else:
        try:
            amount = parse_amount(text)
        except ValidationError as e:
            return engine.reply(event, f"❌ {e}\n\nEnter the amount of {from_asset.value} to swap:")

    if amount > balance:
        return engine.reply(
            event,
            f"❌ Insufficient balance!\n"
            f"Available: {format_amount(balance, from_asset)} {from_asset.value}\n\n"
            f"Enter a smaller amount:",
        )

    async with engine.locks.released(event.user_id, operation="rates"):
        snapshot = await engine.rates.get_rates()

    if not engine.store.is_current(event.user_id, flow_id, FlowStep.AWAITING_AMOUNT):
        logger.info(f"Discarding stale swap quote for user {event.user_id}")
        return []

    quote = quote_swap(snapshot, from_asset, to_asset, amount, engine.settings.swap_fee_rate)
    if quote.received <= 0:
        return engine.reply(event, "❌ Amount too small to swap. Enter a larger amount:")

    state.advance(
        FlowStep.AWAITING_CONFIRMATION,
        amount=str(quote.amount),
        fee=str(quote.fee),
        received=str(quote.received),
    )
    return engine.reply(
        event,
        f"⚠️ <b>Confirm Swap</b>\n\n"
        f"📤 You send: {format_amount(amount, from_asset)} {from_asset.value}\n"
        f"📥 You receive: {format_amount(quote.received, to_asset)} {to_asset.value}\n"
        f"💸 Fee: {format_amount(quote.fee, from_asset)} {from_asset.value}\n"
        f"📊 Rate: 1 {from_asset.value} = {format_amount(quote.rate, to_asset)} {to_asset.value}\n\n"
        f"Do you want to proceed?",
        keyboards.confirm_keyboard("confirm_swap"),
        edit=True,
    )


async def confirm_swap(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """Debit the source and credit the target as one mutation."""
    state = engine.store.get(event.user_id)
    if state is None or state.kind != FlowKind.SWAP or state.step != FlowStep.AWAITING_CONFIRMATION:
        return engine.expired(event)

    from_asset = Asset(state.payload["from_asset"])
    to_asset = Asset(state.payload["to_asset"])
    amount = Decimal(state.payload["amount"])
    fee = Decimal(state.payload["fee"])
    received = Decimal(state.payload["received"])

    try:
        async with engine.database.session() as session:
            repo = LedgerRepository(session)
            account = await engine.load_account(repo, event)
            await repo.execute_swap(account.id, from_asset, to_asset, amount, received, fee)
            from_balance = await repo.get_balance_amount(account.id, from_asset)
            to_balance = await repo.get_balance_amount(account.id, to_asset)
    except InsufficientBalance as e:
        engine.store.clear(event.user_id)
        return engine.reply(
            event,
            f"❌ Insufficient balance. Available: {format_amount(e.available, from_asset)} {from_asset.value}",
            edit=True,
        )

    engine.store.clear(event.user_id)
    logger.info(
        f"User {event.user_id} swapped {amount} {from_asset.value} for {received} {to_asset.value}"
    )
    return engine.reply(
        event,
        f"✅ <b>Swap Successful!</b>\n\n"
        f"📤 Sent: {format_amount(amount, from_asset)} {from_asset.value}\n"
        f"📥 Received: {format_amount(received, to_asset)} {to_asset.value}\n\n"
        f"📊 {from_asset.value} balance: {format_amount(from_balance, from_asset)}\n"
        f"📊 {to_asset.value} balance: {format_amount(to_balance, to_asset)}",
        keyboards.back_keyboard(),
        edit=True,
    )
