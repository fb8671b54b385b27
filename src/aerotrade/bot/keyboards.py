"""Telegram keyboard builders."""

from typing import Optional
from urllib.parse import quote

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup

from aerotrade.assets import ASSETS, CRYPTO_ASSETS, Asset
from aerotrade.providers.base import Bank

# Reply keyboard texts
NAIRA_WALLET = "💰 Naira Wallet"
ETH_WALLET = "💵 ETH Wallet"
BTC_WALLET = "₿ BTC Wallet"
USDT_WALLET = "🌐 USDT Wallet"
SOL_WALLET = "🟣 SOL Wallet"
SWAP_CRYPTO = "🔄 Swap Crypto"
REFER_AND_EARN = "🎁 Refer and Earn"
VIEW_RATES = "📊 View Rates"
BANK_ACCOUNT = "🏦 Bank Account"
HELP = "ℹ️ Help"
BACK_TO_MENU = "⬅️ Back to Main Menu"

WALLET_BUTTONS: dict[str, Asset] = {
    NAIRA_WALLET: Asset.NGN,
    ETH_WALLET: Asset.ETH,
    BTC_WALLET: Asset.BTC,
    USDT_WALLET: Asset.USDT,
    SOL_WALLET: Asset.SOL,
}

BANKS_PER_PAGE = 8


def main_menu_keyboard() -> ReplyKeyboardMarkup:
    """Create main menu keyboard."""
    keyboard = [
        [KeyboardButton(text=NAIRA_WALLET), KeyboardButton(text=ETH_WALLET)],
        [KeyboardButton(text=BTC_WALLET), KeyboardButton(text=USDT_WALLET)],
        [KeyboardButton(text=SOL_WALLET), KeyboardButton(text=SWAP_CRYPTO)],
        [KeyboardButton(text=REFER_AND_EARN), KeyboardButton(text=VIEW_RATES)],
        [KeyboardButton(text=BANK_ACCOUNT), KeyboardButton(text=HELP)],
    ]
    return ReplyKeyboardMarkup(keyboard=keyboard, resize_keyboard=True)


def back_keyboard(callback_data: str = "menu", text: str = "⬅️ Back to Menu") -> InlineKeyboardMarkup:
    """Create a simple back button keyboard."""
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text=text, callback_data=callback_data)]]
    )


def cancel_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text="❌ Cancel", callback_data="cancel")]]
    )


def wallet_keyboard(asset: Asset) -> InlineKeyboardMarkup:
    """Actions for a wallet screen."""
    if asset == Asset.NGN:
        buttons = [
            [InlineKeyboardButton(text="🏦 Withdraw to Bank", callback_data="withdraw:NGN")],
            [
                InlineKeyboardButton(text="🏦 Bank Account", callback_data="bank_view"),
                InlineKeyboardButton(text="🔍 Check Balance", callback_data="check_balance:NGN"),
            ],
        ]
    else:
        buttons = [
            [
                InlineKeyboardButton(text=f"📥 Deposit {asset.value}", callback_data=f"deposit:{asset.value}"),
                InlineKeyboardButton(text=f"💱 Sell {asset.value}", callback_data=f"sell:{asset.value}"),
            ],
            [
                InlineKeyboardButton(text="🔄 Swap", callback_data=f"swap_from:{asset.value}"),
                InlineKeyboardButton(text="🔍 Check Balance", callback_data=f"check_balance:{asset.value}"),
            ],
        ]
    buttons.append([InlineKeyboardButton(text="⬅️ Back to Menu", callback_data="menu")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def deposit_keyboard(asset: Asset, explorer_url: Optional[str] = None) -> InlineKeyboardMarkup:
    buttons = []
    if explorer_url:
        buttons.append([InlineKeyboardButton(text="🔎 View on Explorer", url=explorer_url)])
    buttons.append(
        [InlineKeyboardButton(text="🔍 Check Balance", callback_data=f"check_balance:{asset.value}")]
    )
    buttons.append(
        [InlineKeyboardButton(text=f"⬅️ Back to {asset.value} Wallet", callback_data=f"wallet:{asset.value}")]
    )
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def amount_keyboard() -> InlineKeyboardMarkup:
    """Keyboard shown while waiting for an amount."""
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="💯 Use All", callback_data="use_all")],
            [InlineKeyboardButton(text="❌ Cancel", callback_data="cancel")],
        ]
    )


def confirm_keyboard(confirm_data: str) -> InlineKeyboardMarkup:
    """Create confirmation keyboard."""
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="✅ Confirm", callback_data=confirm_data),
                InlineKeyboardButton(text="❌ Cancel", callback_data="cancel"),
            ]
        ]
    )


def asset_selection_keyboard(assets: list[Asset], callback_prefix: str) -> InlineKeyboardMarkup:
    """Create asset selection inline keyboard."""
    buttons = []
    row = []

    for asset in assets:
        row.append(
            InlineKeyboardButton(
                text=f"{ASSETS[asset].emoji} {asset.value}",
                callback_data=f"{callback_prefix}:{asset.value}",
            )
        )
        if len(row) == 2:
            buttons.append(row)
            row = []

    if row:
        buttons.append(row)

    buttons.append([InlineKeyboardButton(text="❌ Cancel", callback_data="cancel")])

    return InlineKeyboardMarkup(inline_keyboard=buttons)


def swap_from_keyboard() -> InlineKeyboardMarkup:
    return asset_selection_keyboard(list(CRYPTO_ASSETS), "swap_from")


def swap_to_keyboard(from_asset: Asset) -> InlineKeyboardMarkup:
    """Target assets for a swap; the source is carried in the callback data."""
    targets = [a for a in CRYPTO_ASSETS if a != from_asset]
    return asset_selection_keyboard(targets, f"swap_to:{from_asset.value}")


def bank_list_keyboard(banks: list[Bank], page: int = 0) -> InlineKeyboardMarkup:
    """Paginated bank selection."""
    pages = max(1, (len(banks) + BANKS_PER_PAGE - 1) // BANKS_PER_PAGE)
    page = min(max(page, 0), pages - 1)
    start = page * BANKS_PER_PAGE

    buttons = [
        [InlineKeyboardButton(text=bank.name, callback_data=f"bank_select:{bank.code}")]
        for bank in banks[start:start + BANKS_PER_PAGE]
    ]

    nav = []
    if page > 0:
        nav.append(InlineKeyboardButton(text="⬅️ Prev", callback_data=f"bank_page:{page - 1}"))
    if page < pages - 1:
        nav.append(InlineKeyboardButton(text="Next ➡️", callback_data=f"bank_page:{page + 1}"))
    if nav:
        buttons.append(nav)

    buttons.append([InlineKeyboardButton(text="❌ Cancel", callback_data="cancel")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def bank_view_keyboard(has_bank: bool) -> InlineKeyboardMarkup:
    if has_bank:
        buttons = [
            [InlineKeyboardButton(text="🏦 Withdraw to Bank", callback_data="withdraw:NGN")],
            [
                InlineKeyboardButton(text="✏️ Change Bank", callback_data="bank_add"),
                InlineKeyboardButton(text="🗑 Remove", callback_data="bank_remove"),
            ],
        ]
    else:
        buttons = [[InlineKeyboardButton(text="➕ Add Bank Account", callback_data="bank_add")]]
    buttons.append([InlineKeyboardButton(text="⬅️ Back to Menu", callback_data="menu")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def bank_remove_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="✅ Yes, remove", callback_data="bank_remove_confirm"),
                InlineKeyboardButton(text="❌ Keep it", callback_data="bank_view"),
            ]
        ]
    )


def withdrawal_status_keyboard(transfer_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🔍 Check Status", callback_data=f"status:{transfer_id}")],
            [InlineKeyboardButton(text="⬅️ Back to Menu", callback_data="menu")],
        ]
    )


def rates_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🔄 Refresh Rates", callback_data="rates_refresh")],
            [InlineKeyboardButton(text="⬅️ Back to Menu", callback_data="menu")],
        ]
    )


def referral_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="📤 Share Referral Link", callback_data="referral_share")],
            [InlineKeyboardButton(text="👥 My Referrals", callback_data="referral_list")],
            [InlineKeyboardButton(text="⬅️ Back to Main Menu", callback_data="menu")],
        ]
    )


def referral_share_keyboard(link: str, share_text: str) -> InlineKeyboardMarkup:
    share_url = f"https://t.me/share/url?url={quote(link, safe='')}&text={quote(share_text, safe='')}"
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="📤 Share Now", url=share_url)],
            [InlineKeyboardButton(text="⬅️ Back", callback_data="referral_menu")],
        ]
    )
