"""AeroTrade: Telegram wallet bot for NGN, BTC, ETH, SOL and USDT."""

__version__ = "0.1.0"
