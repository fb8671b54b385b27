"""Component tests: locks, conversation store, validators, keyboards and notifier."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from aerotrade.assets import Asset, format_amount, format_naira, ledger_quantize, parse_asset
from aerotrade.bot import keyboards
from aerotrade.engine import AnswerCallback, ButtonPress, EditMessage, SendText
from aerotrade.engine.state import ConversationStore, FlowKind, FlowStep
from aerotrade.engine.validators import (
    is_max_keyword,
    names_match,
    parse_amount,
    validate_account_name,
    validate_account_number,
)
from aerotrade.errors import ValidationError
from aerotrade.notifications.telegram import TelegramNotifier
from aerotrade.providers import FALLBACK_BANKS
from aerotrade.utils.locks import LockTimeoutError, UserLockRegistry


class TestUserLocks:
    """Tests for the per-user lock registry."""

    def test_same_user_same_lock(self):
        locks = UserLockRegistry()
        assert locks.get(1) is locks.get(1)
        assert locks.get(1) is not locks.get(2)

    @pytest.mark.asyncio
    async def test_hold_releases_after_block(self):
        locks = UserLockRegistry()
        async with locks.hold(100, operation="test"):
            assert locks.is_locked(100)
        assert not locks.is_locked(100)

    @pytest.mark.asyncio
    async def test_hold_releases_on_error(self):
        locks = UserLockRegistry()
        with pytest.raises(RuntimeError):
            async with locks.hold(100):
                raise RuntimeError("boom")
        assert not locks.is_locked(100)

    @pytest.mark.asyncio
    async def test_timeout(self):
        locks = UserLockRegistry(timeout=0.05)
        async with locks.hold(7):
            with pytest.raises(LockTimeoutError):
                async with locks.hold(7):
                    pass

    @pytest.mark.asyncio
    async def test_serializes_same_user(self):
        locks = UserLockRegistry()
        order = []

        async def worker(name: str):
            async with locks.hold(5):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    @pytest.mark.asyncio
    async def test_released_lets_others_in(self):
        locks = UserLockRegistry(timeout=1.0)
        entered = asyncio.Event()

        async def other():
            async with locks.hold(9):
                entered.set()

        async with locks.hold(9):
            async with locks.released(9):
                await asyncio.gather(other())
                assert entered.is_set()
            assert locks.is_locked(9)
        assert not locks.is_locked(9)


class TestConversationStore:
    def test_start_replaces_previous_flow(self):
        store = ConversationStore()
        first = store.start(1, FlowKind.SWAP, FlowStep.AWAITING_AMOUNT, from_asset="BTC")
        second = store.start(1, FlowKind.CRYPTO_SALE, FlowStep.AWAITING_AMOUNT, asset="ETH")

        assert store.get(1) is second
        assert first.flow_id != second.flow_id
        assert len(store) == 1

    def test_is_current(self):
        store = ConversationStore()
        state = store.start(1, FlowKind.SWAP, FlowStep.AWAITING_AMOUNT)

        assert store.is_current(1, state.flow_id)
        assert store.is_current(1, state.flow_id, FlowStep.AWAITING_AMOUNT)
        assert not store.is_current(1, state.flow_id, FlowStep.AWAITING_CONFIRMATION)
        assert not store.is_current(1, "other")
        assert not store.is_current(2, state.flow_id)

    def test_advance_merges_payload(self):
        store = ConversationStore()
        state = store.start(1, FlowKind.BANK_LINK, FlowStep.AWAITING_BANK_SELECTION)
        state.advance(FlowStep.AWAITING_ACCOUNT_NUMBER, bank_code="058")
        state.advance(FlowStep.AWAITING_ACCOUNT_NAME, account_number="0123456789")

        assert store.step(1) == FlowStep.AWAITING_ACCOUNT_NAME
        assert state.payload == {"bank_code": "058", "account_number": "0123456789"}

    def test_clear(self):
        store = ConversationStore()
        store.start(1, FlowKind.SWAP, FlowStep.AWAITING_AMOUNT)
        assert store.clear(1) is not None
        assert store.clear(1) is None
        assert store.step(1) == FlowStep.NONE


class TestValidators:
    @pytest.mark.parametrize("raw,expected", [("1.5", "1.5"), (" 0.0001 ", "0.0001"), ("10", "10")])
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == Decimal(expected)

    @pytest.mark.parametrize("raw", ["", "abc", "0", "-1", "NaN", "Infinity", "1,000"])
    def test_parse_amount_rejects(self, raw):
        with pytest.raises(ValidationError):
            parse_amount(raw)

    def test_parse_fiat_amount(self):
        assert parse_amount("₦10,000", fiat=True) == Decimal("10000")
        assert parse_amount("2,500.50", fiat=True) == Decimal("2500.50")

    def test_max_keyword(self):
        assert is_max_keyword("MAX")
        assert is_max_keyword(" all ")
        assert not is_max_keyword("100")

    def test_account_number(self):
        assert validate_account_number(" 0123456789 ") == "0123456789"
        for bad in ("123456789", "01234567890", "01234abcde"):
            with pytest.raises(ValidationError):
                validate_account_number(bad)

    def test_account_name(self):
        assert validate_account_name("  John   Doe ") == "John Doe"
        for bad in ("John", "A B", ""):
            with pytest.raises(ValidationError):
                validate_account_name(bad)

    def test_names_match(self):
        assert names_match("john doe", "JOHN DOE")
        assert names_match("John  Doe", " john doe")
        assert not names_match("john smith", "JOHN DOE")


class TestAssets:
    def test_parse_asset(self):
        assert parse_asset("btc") == Asset.BTC
        with pytest.raises(ValueError):
            parse_asset("DOGE")

    def test_formatting(self):
        assert format_naira(Decimal("10000")) == "₦10,000.00"
        assert format_amount(Decimal("0.123456789"), Asset.BTC) == "0.12345678"

    def test_ledger_quantize_keeps_stored_scale(self):
        assert ledger_quantize(Decimal("1.999")) == Decimal("1.999")
        assert ledger_quantize(Decimal(1) / Decimal(3)) == Decimal("0.333333333333333333")


class TestKeyboards:
    def test_bank_list_pagination(self):
        first = keyboards.bank_list_keyboard(list(FALLBACK_BANKS), page=0)
        last = keyboards.bank_list_keyboard(list(FALLBACK_BANKS), page=5)

        first_data = [b.callback_data for row in first.inline_keyboard for b in row]
        last_data = [b.callback_data for row in last.inline_keyboard for b in row]
        assert first_data.count("bank_page:1") == 1
        assert "bank_page:0" in last_data
        assert len([d for d in first_data if d.startswith("bank_select:")]) == keyboards.BANKS_PER_PAGE

    def test_swap_targets_exclude_source(self):
        markup = keyboards.swap_to_keyboard(Asset.BTC)
        data = [b.callback_data for row in markup.inline_keyboard for b in row]
        assert "swap_to:BTC:ETH" in data
        assert not any(d.endswith(":BTC") and d.startswith("swap_to") for d in data)

    def test_share_keyboard_quotes_link(self):
        markup = keyboards.referral_share_keyboard("https://t.me/Bot?start=AERO1", "Join & earn")
        url = markup.inline_keyboard[0][0].url
        assert url.startswith("https://t.me/share/url?url=https%3A%2F%2Ft.me")
        assert "Join%20%26%20earn" in url


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_executes_effects_in_order(self):
        bot = AsyncMock()
        notifier = TelegramNotifier(bot)

        delivered = await notifier.execute([
            AnswerCallback(callback_id="cb"),
            EditMessage(chat_id=1, message_id=2, text="edited"),
            SendText(chat_id=1, text="hello"),
        ])

        assert delivered == 3
        bot.answer_callback_query.assert_awaited_once()
        bot.edit_message_text.assert_awaited_once()
        bot.send_message.assert_awaited_once()
        assert bot.send_message.call_args.kwargs["parse_mode"] == "HTML"

    @pytest.mark.asyncio
    async def test_without_bot_drops_effects(self):
        notifier = TelegramNotifier()
        assert notifier.enabled is False
        assert await notifier.send_message(1, "hi") is False

    @pytest.mark.asyncio
    async def test_blocked_user(self):
        bot = AsyncMock()
        bot.send_message.side_effect = TelegramForbiddenError(
            method=MagicMock(), message="Forbidden: bot was blocked by the user"
        )
        assert await TelegramNotifier(bot).send_message(1, "hi") is False

    @pytest.mark.asyncio
    async def test_unmodified_edit_counts_as_delivered(self):
        bot = AsyncMock()
        bot.edit_message_text.side_effect = TelegramBadRequest(
            method=MagicMock(), message="Bad Request: message is not modified"
        )
        delivered = await TelegramNotifier(bot).execute([EditMessage(chat_id=1, message_id=2, text="same")])
        assert delivered == 1


def test_button_press_parsing():
    event = ButtonPress(user_id=1, chat_id=1, data="swap_to:BTC:ETH")
    assert event.action == "swap_to"
    assert event.argument == "BTC:ETH"
    assert ButtonPress(user_id=1, chat_id=1, data="menu").argument == ""


class TestBotSetup:
    def test_requires_token(self, engine, settings):
        from aerotrade.bot.bot import create_bot

        with pytest.raises(ValueError):
            create_bot(engine, settings)

    @pytest.mark.asyncio
    async def test_engine_is_injected(self, engine, settings):
        from aerotrade.bot.bot import create_bot

        settings.telegram_bot_token = "123456:TEST-token"
        bot, dp = create_bot(engine, settings)
        try:
            assert dp["engine"] is engine
        finally:
            await bot.session.close()
