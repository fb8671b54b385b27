"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from typing import AsyncGenerator, Optional

import httpx
import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["DEBUG"] = "false"

from aerotrade.assets import FIAT, Asset
from aerotrade.config import Settings
from aerotrade.engine import ButtonPress, ConversationEngine, TextMessage
from aerotrade.hdwallet import AddressDeriver
from aerotrade.ledger import Database, LedgerRepository
from aerotrade.policy import PolicyGuard
from aerotrade.providers import DryRunGateway, RateProvider

# BIP39 test vector, never holds funds
TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)

COINGECKO_PRICES = {
    "bitcoin": {"ngn": 50000000, "usd": 32000},
    "ethereum": {"ngn": 3000000, "usd": 2000},
    "solana": {"ngn": 150000, "usd": 100},
    "tether": {"ngn": 1500, "usd": 1},
}

USER_ID = 424242


def coingecko_transport(prices: Optional[dict] = None, status_code: int = 200) -> httpx.MockTransport:
    """Mock CoinGecko simple/price endpoint."""
    payload = COINGECKO_PRICES if prices is None else prices

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/simple/price")
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        telegram_bot_token="",
        bot_username="AeroTestBot",
        admin_key="test-admin-key",
        wallet_mnemonic=TEST_MNEMONIC,
    )


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """In-memory database with all tables created."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.init()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def ledger_repo(database: Database) -> AsyncGenerator[LedgerRepository, None]:
    """Repository on a session that is committed at the end of the test."""
    async with database.session() as session:
        yield LedgerRepository(session)


@pytest.fixture
def deriver() -> AddressDeriver:
    return AddressDeriver(TEST_MNEMONIC)


@pytest.fixture
def gateway() -> DryRunGateway:
    return DryRunGateway(accounts={("0123456789", "058"): "JOHN DOE"})


@pytest.fixture
def rates() -> RateProvider:
    return RateProvider(transport=coingecko_transport())


@pytest.fixture
def engine(database, deriver, gateway, rates, settings) -> ConversationEngine:
    return ConversationEngine(
        database=database,
        deriver=deriver,
        gateway=gateway,
        rates=rates,
        policy=PolicyGuard.from_settings(settings),
        settings=settings,
    )


# Helpers for driving the engine


def text(value: str, user_id: int = USER_ID) -> TextMessage:
    return TextMessage(user_id=user_id, chat_id=user_id, text=value, username="tester", first_name="Test")


def press(data: str, user_id: int = USER_ID, message_id: Optional[int] = 10) -> ButtonPress:
    return ButtonPress(
        user_id=user_id,
        chat_id=user_id,
        data=data,
        callback_id=f"cb-{data}",
        message_id=message_id,
        username="tester",
        first_name="Test",
    )


def reply_text(effects) -> str:
    """Concatenated text of all message effects."""
    return "\n".join(getattr(effect, "text", "") or "" for effect in effects)


async def fund(database: Database, user_id: int, asset: Asset, amount: str) -> None:
    """Credit a balance directly, creating the account if needed."""
    async with database.session() as session:
        repo = LedgerRepository(session)
        account, _ = await repo.get_or_create_account(user_id)
        await repo.credit_balance(account.id, asset, Decimal(amount))


async def balance_of(database: Database, user_id: int, asset: Asset = FIAT) -> Decimal:
    async with database.session() as session:
        repo = LedgerRepository(session)
        account = await repo.get_account(user_id)
        return await repo.get_balance_amount(account.id, asset)


async def link_bank(
    database: Database,
    user_id: int,
    account_number: str = "0123456789",
    bank_code: str = "058",
    account_name: str = "JOHN DOE",
) -> None:
    async with database.session() as session:
        repo = LedgerRepository(session)
        account, _ = await repo.get_or_create_account(user_id)
        await repo.save_bank_account(
            account.id,
            bank_code=bank_code,
            bank_name="Guaranty Trust Bank",
            account_number=account_number,
            account_name=account_name,
            verified=True,
        )
