"""Deposit webhook endpoint.

The chain observer posts inbound deposits here. Deposits are credited
idempotently by (asset, tx hash) and the owner is notified on Telegram.
"""

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from aerotrade.engine import ConversationEngine, DepositNotification
from aerotrade.errors import ValidationError
from aerotrade.notifications.telegram import TelegramNotifier
from aerotrade.utils.locks import LockTimeoutError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])


class DepositWebhookPayload(BaseModel):
    """Deposit notification as sent by the chain observer."""

    model_config = ConfigDict(populate_by_name=True)

    address: str
    amount: Decimal
    currency: str
    tx_hash: str = Field(alias="txHash")
    network: Optional[str] = None


class WebhookResponse(BaseModel):
    """Webhook response."""

    success: bool
    status: str
    transaction_id: Optional[int] = None


def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> bool:
    """Verify an HMAC-SHA256 hex signature, with or without a "sha256=" prefix."""
    if "=" in signature:
        signature = signature.split("=", 1)[1]
    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


@router.post("/crypto", response_model=WebhookResponse)
async def handle_crypto_deposit(
    request: Request,
    payload: DepositWebhookPayload,
    x_webhook_signature: Optional[str] = Header(None),
) -> WebhookResponse:
    """Credit a crypto deposit.

    Unknown addresses and mismatched currencies are acknowledged but not
    credited, so the observer does not keep retrying them.
    """
    settings = request.app.state.settings
    engine: ConversationEngine = request.app.state.engine
    notifier: TelegramNotifier = request.app.state.notifier

    if settings.deposit_webhook_secret:
        body = await request.body()
        if not x_webhook_signature or not verify_webhook_signature(
            body, x_webhook_signature, settings.deposit_webhook_secret
        ):
            logger.warning(f"Invalid webhook signature for tx {payload.tx_hash}")
            raise HTTPException(status_code=401, detail="Invalid signature")

    notification = DepositNotification(
        address=payload.address,
        amount=payload.amount,
        currency=payload.currency,
        tx_hash=payload.tx_hash,
        network=payload.network,
    )

    try:
        result = await engine.on_deposit(notification)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LockTimeoutError:
        raise HTTPException(status_code=503, detail="Account busy, retry later")

    if result.effects:
        await notifier.execute(result.effects)

    return WebhookResponse(
        success=result.status in ("credited", "duplicate"),
        status=result.status,
        transaction_id=result.transaction_id,
    )
