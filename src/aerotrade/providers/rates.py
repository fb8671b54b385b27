"""Exchange rates from CoinGecko with a static fallback.

get_rates() never raises: any HTTP error, timeout or malformed payload
yields the fallback snapshot.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import httpx

from aerotrade.assets import ASSETS, CRYPTO_ASSETS, Asset

logger = logging.getLogger(__name__)

COINGECKO_API_V3 = "https://api.coingecko.com/api/v3"
RATES_TIMEOUT = 5.0

USD_NGN_BUY = Decimal("1440")
USD_NGN_SELL = Decimal("1500")


@dataclass(frozen=True)
class AssetRate:
    """Price of one unit of an asset."""

    ngn: Decimal
    usd: Decimal


FALLBACK_RATES: dict[Asset, AssetRate] = {
    Asset.BTC: AssetRate(ngn=Decimal("50000000"), usd=Decimal("35000")),
    Asset.ETH: AssetRate(ngn=Decimal("3000000"), usd=Decimal("2000")),
    Asset.SOL: AssetRate(ngn=Decimal("100000"), usd=Decimal("70")),
    Asset.USDT: AssetRate(ngn=Decimal("1500"), usd=Decimal("1")),
}


@dataclass(frozen=True)
class RateSnapshot:
    """Rates for all crypto assets at one point in time."""

    rates: dict[Asset, AssetRate]
    usd_ngn_buy: Decimal = USD_NGN_BUY
    usd_ngn_sell: Decimal = USD_NGN_SELL
    is_fallback: bool = False
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def ngn(self, asset: Asset) -> Decimal:
        """NGN price of one unit."""
        return self.rates[asset].ngn

    def usd(self, asset: Asset) -> Decimal:
        """USD price of one unit; USDT is pinned to 1."""
        if asset == Asset.USDT:
            return Decimal("1")
        return self.rates[asset].usd


def fallback_snapshot() -> RateSnapshot:
    return RateSnapshot(rates=dict(FALLBACK_RATES), is_fallback=True)


class RateProvider:
    """CoinGecko simple/price client with an in-process cache.

    Example:
        rates = RateProvider()
        snapshot = await rates.get_rates()
        snapshot.ngn(Asset.BTC)
    """

    def __init__(
        self,
        base_url: str = COINGECKO_API_V3,
        cache_seconds: float = 60.0,
        timeout: float = RATES_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self._transport = transport
        self._cached: Optional[RateSnapshot] = None
        self._cached_at = 0.0

    async def get_rates(self, force_refresh: bool = False) -> RateSnapshot:
        """Current rates, served from cache while fresh."""
        now = time.monotonic()
        if (
            not force_refresh
            and self._cached is not None
            and now - self._cached_at < self.cache_seconds
        ):
            return self._cached

        snapshot = await self._fetch()
        if snapshot is None:
            return fallback_snapshot()

        self._cached = snapshot
        self._cached_at = now
        return snapshot

    async def _fetch(self) -> Optional[RateSnapshot]:
        ids = {asset: ASSETS[asset].coingecko_id for asset in CRYPTO_ASSETS}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self.base_url}/simple/price",
                    params={"ids": ",".join(ids.values()), "vs_currencies": "ngn,usd"},
                )

            if response.status_code != 200:
                logger.warning(f"CoinGecko error: {response.status_code}, using fallback rates")
                return None

            data = response.json()
            rates = {}
            for asset, coin_id in ids.items():
                price = data[coin_id]
                rates[asset] = AssetRate(
                    ngn=Decimal(str(price["ngn"])),
                    usd=Decimal(str(price["usd"])),
                )
            return RateSnapshot(rates=rates)

        except httpx.TimeoutException:
            logger.warning("CoinGecko request timed out, using fallback rates")
            return None
        except (httpx.HTTPError, ValueError, KeyError, TypeError, ArithmeticError) as e:
            logger.error(f"Failed to fetch rates, using fallback: {e}")
            return None
