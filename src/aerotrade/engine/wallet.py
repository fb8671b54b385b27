"""Read-only screens: wallets, deposit instructions, rates and help."""

import html
import logging
from typing import TYPE_CHECKING, Union

from aerotrade.assets import ASSETS, CRYPTO_ASSETS, FIAT, Asset, format_amount, format_naira, parse_asset
from aerotrade.bot import keyboards
from aerotrade.engine.events import AnswerCallback, ButtonPress, Effect, TextMessage
from aerotrade.ledger import LedgerRepository
from aerotrade.providers.rates import RateSnapshot

if TYPE_CHECKING:
    from aerotrade.engine.engine import ConversationEngine

logger = logging.getLogger(__name__)

ChatEvent = Union[TextMessage, ButtonPress]


async def show_wallet(engine: "ConversationEngine", event: ChatEvent, asset: Asset) -> list[Effect]:
    """Balance screen for one asset."""
    if asset == FIAT:
        return await _show_naira_wallet(engine, event)

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        balance = await repo.get_balance_amount(account.id, asset)
        address = (await engine.deposit_address(repo, account, asset)).address

    async with engine.locks.released(event.user_id, operation="rates"):
        snapshot = await engine.rates.get_rates()

    config = ASSETS[asset]
    rate = snapshot.ngn(asset)
    text = (
        f"{config.emoji} <b>{asset.value} Wallet</b>\n\n"
        f"Balance: {format_amount(balance, asset)} {asset.value}\n"
        f"Value: {format_naira(balance * rate)}\n"
        f"Rate: {format_naira(rate)} per {asset.value}\n\n"
        f"📥 <b>Deposit Address:</b>\n<code>{html.escape(address)}</code>"
    )
    return engine.reply(event, text, keyboards.wallet_keyboard(asset), edit=True)


async def _show_naira_wallet(engine: "ConversationEngine", event: ChatEvent) -> list[Effect]:
    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        balance = await repo.get_balance_amount(account.id, FIAT)
        bank = await repo.get_bank_account(account.id)
        limit = account.daily_withdrawal_limit
        used = engine.policy.withdrawn_today(account)
        remaining = engine.policy.remaining_today(account)

    has_bank = bank is not None and bank.verified
    text = (
        f"💰 <b>Naira Wallet</b>\n\n"
        f"Balance: {format_naira(balance)}\n"
        f"Bank Account: {'✅ Verified' if has_bank else '❌ Not Added'}\n\n"
        f"📊 <b>Withdrawal Limits:</b>\n"
        f"• Daily Limit: {format_naira(limit)}\n"
        f"• Used Today: {format_naira(used)}\n"
        f"• Remaining: {format_naira(remaining)}\n\n"
    )
    if has_bank:
        return engine.reply(event, text + "What would you like to do?", keyboards.wallet_keyboard(FIAT), edit=True)
    return engine.reply(
        event,
        text + "To withdraw funds, add a bank account first.",
        keyboards.bank_view_keyboard(has_bank=False),
        edit=True,
    )


async def on_wallet_button(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """wallet:<ASSET>"""
    try:
        asset = parse_asset(event.argument)
    except ValueError:
        return engine.reply(event, "❌ Unsupported asset.")
    engine.clear_flow(event.user_id)
    return await show_wallet(engine, event, asset)


async def show_deposit(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """deposit:<ASSET> - deposit instructions with the user's address."""
    try:
        asset = parse_asset(event.argument)
    except ValueError:
        return engine.reply(event, "❌ Unsupported asset.")
    config = ASSETS[asset]

    if asset == FIAT:
        return engine.reply(
            event,
            f"📥 <b>Deposit Naira</b>\n\n"
            f"Naira deposits are handled by support.\n"
            f"Minimum: {config.min_deposit}\n"
            f"{config.note}: {html.escape(engine.settings.support_handle)}",
            keyboards.back_keyboard(),
            edit=True,
        )

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        address = (await engine.deposit_address(repo, account, asset)).address

    text = (
        f"📥 <b>Deposit {config.name} ({asset.value})</b>\n\n"
        f"Your deposit address:\n<code>{html.escape(address)}</code>\n\n"
        f"🌐 Network: {config.network}\n"
        f"💰 Minimum deposit: {config.min_deposit}\n"
        f"⏳ Credited after: {config.confirmations}\n\n"
        f"⚠️ {config.note}"
    )
    return engine.reply(
        event, text, keyboards.deposit_keyboard(asset, config.explorer_link(address)), edit=True
    )


async def check_balance(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    """check_balance:<ASSET> - balance as a callback alert."""
    try:
        asset = parse_asset(event.argument)
    except ValueError:
        return engine.reply(event, "❌ Unsupported asset.")

    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        balance = await repo.get_balance_amount(account.id, asset)

    if asset == FIAT:
        text = f"💰 Naira balance: {format_naira(balance)}"
    else:
        text = f"{ASSETS[asset].emoji} {asset.value} balance: {format_amount(balance, asset)}"
    if not event.callback_id:
        return engine.reply(event, text)
    return [AnswerCallback(callback_id=event.callback_id, text=text, show_alert=True)]


def format_rates(snapshot: RateSnapshot) -> str:
    lines = [
        "📊 <b>Live Exchange Rates</b>\n",
        "<b>🌐 USD/NGN RATES</b>",
        f"💵 BUY: {format_naira(snapshot.usd_ngn_buy)} per $1",
        f"💰 SELL: {format_naira(snapshot.usd_ngn_sell)} per $1\n",
        "<b>💎 CRYPTOCURRENCIES</b>",
    ]
    for asset in CRYPTO_ASSETS:
        lines.append(
            f"{ASSETS[asset].emoji} {asset.value}: {format_naira(snapshot.ngn(asset))} "
            f"(${snapshot.usd(asset):,.2f})"
        )
    if snapshot.is_fallback:
        lines.append("\n⚠️ Live rates unavailable, showing reference rates.")
    lines.append(f"\n<i>Last updated: {snapshot.fetched_at:%H:%M:%S} UTC</i>")
    return "\n".join(lines)


async def show_rates(engine: "ConversationEngine", event: ChatEvent) -> list[Effect]:
    async with engine.locks.released(event.user_id, operation="rates"):
        snapshot = await engine.rates.get_rates()
    return engine.reply(event, format_rates(snapshot), keyboards.rates_keyboard(), edit=True)


async def refresh_rates(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    async with engine.locks.released(event.user_id, operation="rates"):
        snapshot = await engine.rates.get_rates(force_refresh=True)
    return engine.reply(event, format_rates(snapshot), keyboards.rates_keyboard(), edit=True)


async def show_help(engine: "ConversationEngine", event: ChatEvent) -> list[Effect]:
    settings = engine.settings
    policy = engine.policy
    text = (
        f"ℹ️ <b>How to Use {html.escape(settings.business_name)} Bot</b>\n\n"
        f"1. <b>Check Balances</b>: Tap any wallet button\n"
        f"2. <b>Deposit Crypto</b>: Each user gets unique crypto addresses\n"
        f"3. <b>Sell Crypto</b>: Convert crypto to Naira at live rates\n"
        f"4. <b>Withdraw Naira</b>: Add a bank account, then withdraw\n"
        f"5. <b>Swap Crypto</b>: Use the \"{keyboards.SWAP_CRYPTO}\" menu\n"
        f"6. <b>Refer and Earn</b>: Share your referral link\n\n"
        f"⚠️ <b>Important Notes:</b>\n"
        f"• Bank accounts are verified before saving\n"
        f"• Minimum withdrawal: {format_naira(policy.min_withdrawal)}\n"
        f"• Fee: {(policy.fee_rate * 100).normalize()}% (minimum {format_naira(policy.min_fee)})\n"
        f"• Withdrawals above {format_naira(policy.kyc_threshold)} need KYC\n\n"
        f"📞 Support: {html.escape(settings.support_handle)}\n"
        f"Use /cancel to abort any operation."
    )
    return engine.reply(event, text, keyboards.back_keyboard())
