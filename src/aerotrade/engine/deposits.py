"""Crediting inbound crypto deposits reported by the chain observer."""

import html
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Optional

from aerotrade.assets import ASSETS, Asset, format_amount, parse_asset
from aerotrade.engine.events import DepositNotification, Effect, SendText
from aerotrade.errors import AddressResolutionFailure, ValidationError
from aerotrade.ledger import LedgerRepository

if TYPE_CHECKING:
    from aerotrade.engine.engine import ConversationEngine

logger = logging.getLogger(__name__)

CREDITED = "credited"
DUPLICATE = "duplicate"
UNRESOLVED = "unresolved"
CURRENCY_MISMATCH = "currency_mismatch"


@dataclass
class DepositResult:
    """Outcome of a deposit notification."""

    status: str
    effects: list[Effect] = field(default_factory=list)
    transaction_id: Optional[int] = None
    user_id: Optional[int] = None
    asset: Optional[Asset] = None


def validate_notification(notification: DepositNotification) -> Decimal:
    """Check the untrusted fields of a notification and return the amount.

    Raises:
        ValidationError: On a missing address or tx hash, or a non-positive amount
    """
    if not (notification.address or "").strip():
        raise ValidationError("Deposit address is required")
    if not (notification.tx_hash or "").strip():
        raise ValidationError("Transaction hash is required")
    try:
        amount = Decimal(str(notification.amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid deposit amount: {notification.amount}")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"Deposit amount must be positive: {notification.amount}")
    return amount


def currency_matches(currency: str, asset: Asset) -> bool:
    """Accept the bare symbol or a network-suffixed variant (USDT-ERC20, usdt_erc20)."""
    value = (currency or "").strip().upper()
    if not value:
        return False
    try:
        return parse_asset(value) == asset
    except ValueError:
        return value.startswith(f"{asset.value}-") or value.startswith(f"{asset.value}_")


def _resolve(engine: "ConversationEngine", address: str) -> tuple[int, Asset]:
    owner = engine.deriver.resolve(address)
    if owner is None:
        raise AddressResolutionFailure(f"Unknown deposit address: {address}")
    return owner


async def process_deposit(engine: "ConversationEngine", notification: DepositNotification) -> DepositResult:
    """Credit a deposit to the owner of the receiving address.

    Duplicate notifications (same asset and tx hash) are ignored.

    Raises:
        ValidationError: If the notification is malformed
    """
    amount = validate_notification(notification)
    tx_hash = notification.tx_hash.strip()

    try:
        user_id, asset = _resolve(engine, notification.address)
    except AddressResolutionFailure as e:
        logger.warning(f"Dropping deposit {tx_hash}: {e}")
        return DepositResult(status=UNRESOLVED)

    if not currency_matches(notification.currency, asset):
        logger.warning(
            f"Dropping deposit {tx_hash}: currency {notification.currency!r} "
            f"does not match {asset.value} address {notification.address}"
        )
        return DepositResult(status=CURRENCY_MISMATCH, user_id=user_id, asset=asset)

    async with engine.locks.hold(user_id, operation="deposit"):
        async with engine.database.session() as session:
            repo = LedgerRepository(session)
            existing = await repo.get_deposit_by_tx_hash(asset, tx_hash)
            if existing is not None:
                logger.info(f"Duplicate deposit notification {tx_hash} ignored")
                return DepositResult(
                    status=DUPLICATE, transaction_id=existing.id, user_id=user_id, asset=asset
                )

            account = await repo.get_account(user_id)
            if account is None:
                logger.error(f"Dropping deposit {tx_hash}: no account for user {user_id}")
                return DepositResult(status=UNRESOLVED, user_id=user_id, asset=asset)

            record = await repo.credit_deposit(
                account,
                asset,
                amount,
                tx_hash,
                network=notification.network,
                address=notification.address,
            )
            balance = await repo.get_balance_amount(account.id, asset)
            transaction_id = record.id

    logger.info(f"Credited deposit {tx_hash}: {amount} {asset.value} to user {user_id}")
    config = ASSETS[asset]
    text = (
        f"✅ <b>Deposit Received!</b>\n\n"
        f"{config.emoji} Amount: {format_amount(amount, asset)} {asset.value}\n"
        f"🔗 TX: <code>{html.escape(tx_hash)}</code>\n\n"
        f"📊 New {asset.value} balance: {format_amount(balance, asset)}"
    )
    return DepositResult(
        status=CREDITED,
        effects=[SendText(chat_id=user_id, text=text)],
        transaction_id=transaction_id,
        user_id=user_id,
        asset=asset,
    )
