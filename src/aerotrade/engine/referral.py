"""Onboarding (/start) and the referral programme."""

import html
import logging
from typing import TYPE_CHECKING, Union

from aerotrade.assets import format_naira
from aerotrade.bot import keyboards
from aerotrade.engine.events import ButtonPress, Effect, TextMessage
from aerotrade.ledger import LedgerRepository

if TYPE_CHECKING:
    from aerotrade.engine.engine import ConversationEngine

logger = logging.getLogger(__name__)

ChatEvent = Union[TextMessage, ButtonPress]

MAX_LISTED_REFERRALS = 10


def referral_link(bot_username: str, code: str) -> str:
    return f"https://t.me/{bot_username.lstrip('@')}?start={code}"


async def handle_start(engine: "ConversationEngine", event: TextMessage, code: str = "") -> list[Effect]:
    """/start [referral_code] - create the account on first contact."""
    if not engine.clear_flow(event.user_id):
        return engine.busy(event)

    settings = engine.settings
    referred = False
    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account, created = await repo.get_or_create_account(
            event.user_id,
            username=event.username,
            first_name=event.first_name,
            daily_limit=settings.default_daily_limit,
        )
        await engine.issue_addresses(repo, account)

        if created and code:
            referrer = await repo.get_account_by_referral_code(code)
            if referrer is None:
                logger.info(f"Unknown referral code {code!r} from user {event.user_id}")
            else:
                referred = await repo.apply_referral(
                    account, referrer, settings.referrer_bonus, settings.referee_bonus
                )

    policy = engine.policy
    lines = [f"👋 Welcome to <b>{html.escape(settings.business_name)} Bot!</b>\n"]
    if referred:
        lines.append("🎉 You joined using a referral link!")
        lines.append(f"💰 You received {format_naira(settings.referee_bonus)} bonus in your Naira wallet!\n")
    lines += [
        "✨ <b>Features:</b>",
        "✅ Bank withdrawals",
        "✅ Unique crypto deposit addresses",
        "✅ Crypto sales and swaps",
        "✅ Referral rewards",
        "✅ Live exchange rates\n",
        "⚠️ <b>Important Information:</b>",
        f"• Minimum withdrawal: {format_naira(policy.min_withdrawal)}",
        f"• Fee: {(policy.fee_rate * 100).normalize()}% (minimum {format_naira(policy.min_fee)})",
        f"• Daily limit: {format_naira(settings.default_daily_limit)}",
        f"• Support: {html.escape(settings.support_handle)}",
    ]
    return engine.reply(event, "\n".join(lines), keyboards.main_menu_keyboard())


async def show_referral_menu(engine: "ConversationEngine", event: ChatEvent) -> list[Effect]:
    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        referrals = await repo.get_referrals(account.id)
        code = account.referral_code
        rewards = account.referral_rewards

    settings = engine.settings
    text = (
        f"🎁 <b>Refer and Earn</b>\n\n"
        f"💰 Your Referral Code: <b>{code}</b>\n"
        f"👥 Total Referrals: {len(referrals)}\n"
        f"🎯 Total Earnings: {format_naira(rewards)}\n\n"
        f"✨ <b>Referral Rewards:</b>\n"
        f"• You earn {format_naira(settings.referrer_bonus)} per referral\n"
        f"• Your friend gets {format_naira(settings.referee_bonus)} on sign-up"
    )
    return engine.reply(event, text, keyboards.referral_keyboard(), edit=True)


async def share_referral(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    async with engine.database.session() as session:
        account = await engine.load_account(LedgerRepository(session), event)
        code = account.referral_code

    settings = engine.settings
    if not settings.bot_username:
        return engine.reply(
            event,
            f"🎁 Your referral code: <b>{code}</b>\n\nAsk friends to send /start {code} to the bot.",
            keyboards.back_keyboard("referral_menu", "⬅️ Back"),
            edit=True,
        )

    link = referral_link(settings.bot_username, code)
    share_text = (
        f"Join {settings.business_name} Bot and get {format_naira(settings.referee_bonus)} bonus! "
        f"Use my referral code: {code}"
    )
    return engine.reply(
        event,
        f"🎁 <b>Share Your Referral Link</b>\n\n🔗 {html.escape(link)}\n\n"
        f"Share this link with friends. You earn {format_naira(settings.referrer_bonus)} "
        f"for each sign-up.",
        keyboards.referral_share_keyboard(link, share_text),
        edit=True,
    )


async def list_referrals(engine: "ConversationEngine", event: ButtonPress) -> list[Effect]:
    async with engine.database.session() as session:
        repo = LedgerRepository(session)
        account = await engine.load_account(repo, event)
        referrals = await repo.get_referrals(account.id)
        names = [html.escape(r.display_name) for r in referrals]
        rewards = account.referral_rewards

    lines = ["👥 <b>My Referrals</b>\n"]
    if not names:
        lines.append("No referrals yet. Share your link to earn rewards!")
    else:
        lines.append(f"Total Referrals: {len(names)}")
        lines.append(f"Total Earnings: {format_naira(rewards)}\n")
        for index, name in enumerate(names[:MAX_LISTED_REFERRALS], start=1):
            lines.append(f"{index}. {name}")
        if len(names) > MAX_LISTED_REFERRALS:
            lines.append(f"\n... and {len(names) - MAX_LISTED_REFERRALS} more")

    return engine.reply(
        event, "\n".join(lines), keyboards.back_keyboard("referral_menu", "⬅️ Back"), edit=True
    )
