"""Admin API endpoints (shared-secret protected)."""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from aerotrade.ledger import LedgerRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


async def require_admin_key(
    request: Request,
    x_admin_key: Optional[str] = Header(None),
    key: Optional[str] = Query(None),
) -> bool:
    """Verify the admin key from the X-Admin-Key header or `key` query parameter.

    If ADMIN_KEY is not set, every request is denied.
    """
    expected = request.app.state.settings.admin_key
    if not expected:
        logger.warning("Admin request denied: ADMIN_KEY is not configured")
        raise HTTPException(status_code=403, detail="Admin access is disabled")

    supplied = x_admin_key or key or ""
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid admin key")

    return True


@router.get("/stats")
async def get_stats(request: Request, _: bool = Depends(require_admin_key)) -> dict:
    """Account counts, aggregate balances per asset and transaction counts."""
    engine = request.app.state.engine
    async with engine.database.session() as session:
        stats = await LedgerRepository(session).get_stats()

    stats["balances"] = {asset: str(amount) for asset, amount in stats["balances"].items()}
    stats["total_withdrawn"] = str(stats["total_withdrawn"])
    stats["payment_provider"] = engine.gateway.name
    stats["pending_flows"] = len(engine.store)
    return stats
