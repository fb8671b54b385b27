"""Conversation engine: turns chat events into ledger mutations and replies.

Every chat event runs under its user's lock. Slow external calls (rates,
payment gateway) are made with the lock released; afterwards the flow is
checked against its flow_id and step, and a stale result is discarded.
"""

import html
import logging
from functools import partial
from typing import Awaitable, Callable, Optional, Union

from aiogram.types import InlineKeyboardMarkup

from aerotrade.assets import CRYPTO_ASSETS, Asset, format_amount, format_naira
from aerotrade.bot import keyboards
from aerotrade.config import Settings
from aerotrade.engine import bank, deposits, referral, swap, wallet, withdraw
from aerotrade.engine.events import (
    AnswerCallback,
    ButtonPress,
    DepositNotification,
    EditMessage,
    Effect,
    Event,
    ReplyMarkup,
    SendText,
    TextMessage,
)
from aerotrade.engine.state import ConversationStore, FlowKind, FlowStep
from aerotrade.errors import (
    AddressCollisionError,
    AeroTradeError,
    GatewayError,
    InsufficientBalance,
    PolicyDenied,
    SessionExpired,
    ValidationError,
)
from aerotrade.hdwallet import AddressDeriver
from aerotrade.ledger import Account, Database, DepositAddress, LedgerRepository
from aerotrade.policy import PolicyGuard
from aerotrade.providers import Bank, PaymentGateway, RateProvider
from aerotrade.utils.locks import LockTimeoutError, UserLockRegistry

logger = logging.getLogger(__name__)

SESSION_EXPIRED_RESTART = "⌛ Session expired. Please restart with /start"
SESSION_EXPIRED_START_OVER = "⌛ Session expired. Please start over."
GENERIC_ERROR = "❌ An error occurred. Please try again."
WITHDRAWAL_IN_PROGRESS = "⏳ Your withdrawal is being processed. Please wait."

ChatEvent = Union[TextMessage, ButtonPress]
ButtonHandler = Callable[[ButtonPress], Awaitable[list[Effect]]]


class ConversationEngine:
    """Drives the crypto-sale, bank-withdrawal, swap and bank-linking flows.

    Usage:
        engine = ConversationEngine(database, deriver, gateway, rates, policy, settings)
        effects = await engine.handle(TextMessage(user_id=1, chat_id=1, text="/start"))
    """

    def __init__(
        self,
        database: Database,
        deriver: AddressDeriver,
        gateway: PaymentGateway,
        rates: RateProvider,
        policy: PolicyGuard,
        settings: Settings,
        store: Optional[ConversationStore] = None,
        locks: Optional[UserLockRegistry] = None,
    ):
        self.database = database
        self.deriver = deriver
        self.gateway = gateway
        self.rates = rates
        self.policy = policy
        self.settings = settings
        self.store = store or ConversationStore()
        self.locks = locks or UserLockRegistry()
        self._banks: Optional[list[Bank]] = None

        self._buttons: dict[str, ButtonHandler] = {
            "menu": self.show_menu,
            "cancel": self.cancel,
            "help": partial(wallet.show_help, self),
            "wallet": partial(wallet.on_wallet_button, self),
            "deposit": partial(wallet.show_deposit, self),
            "check_balance": partial(wallet.check_balance, self),
            "rates": partial(wallet.show_rates, self),
            "rates_refresh": partial(wallet.refresh_rates, self),
            "sell": partial(withdraw.start_sale, self),
            "withdraw": partial(withdraw.start_withdrawal, self),
            "use_all": self._use_all,
            "confirm_sale": partial(withdraw.confirm_sale, self),
            "confirm_withdraw": partial(withdraw.confirm_withdrawal, self),
            "status": partial(withdraw.check_transfer_status, self),
            "swap": partial(swap.start_swap, self),
            "swap_from": partial(swap.select_from, self),
            "swap_to": partial(swap.select_to, self),
            "confirm_swap": partial(swap.confirm_swap, self),
            "bank_view": partial(bank.show_bank, self),
            "bank_add": partial(bank.start_bank_link, self),
            "bank_page": partial(bank.select_page, self),
            "bank_select": partial(bank.select_bank, self),
            "bank_remove": partial(bank.ask_remove_bank, self),
            "bank_remove_confirm": partial(bank.remove_bank, self),
            "referral_menu": partial(referral.show_referral_menu, self),
            "referral_share": partial(referral.share_referral, self),
            "referral_list": partial(referral.list_referrals, self),
        }

    # Dispatch

    async def handle(self, event: Event) -> list[Effect]:
        """Process one inbound event and return the effects to execute."""
        if isinstance(event, TextMessage):
            return await self._run(event, self._on_text)
        elif isinstance(event, ButtonPress):
            return await self._run(event, self._on_button)
        elif isinstance(event, DepositNotification):
            result = await self.on_deposit(event)
            return result.effects
        raise TypeError(f"Unknown event type: {type(event).__name__}")

    async def on_deposit(self, notification: DepositNotification) -> "deposits.DepositResult":
        """Credit an inbound deposit (see aerotrade.engine.deposits)."""
        return await deposits.process_deposit(self, notification)

    async def _run(
        self,
        event: ChatEvent,
        handler: Callable[[ChatEvent], Awaitable[list[Effect]]],
    ) -> list[Effect]:
        try:
            async with self.locks.hold(event.user_id, operation=type(event).__name__):
                try:
                    effects = await handler(event)
                except AeroTradeError as e:
                    effects = self._error_effects(event, e)
        except LockTimeoutError:
            effects = self.reply(event, "⏳ Still working on your previous request. Please wait a moment.")
        except Exception:
            logger.exception(f"Error handling {type(event).__name__} from user {event.user_id}")
            effects = self.reply(event, GENERIC_ERROR)
        return self._answer_callback(event, effects)

    async def _on_text(self, event: TextMessage) -> list[Effect]:
        text = (event.text or "").strip()
        command, _, argument = text.partition(" ")
        command = command.split("@", 1)[0].lower()

        if command == "/start":
            return await referral.handle_start(self, event, argument.strip())
        if command == "/cancel" or text == keyboards.BACK_TO_MENU:
            return await self.cancel(event)
        if command == "/help" or text == keyboards.HELP:
            return await wallet.show_help(self, event)
        if command == "/rates" or text == keyboards.VIEW_RATES:
            return await wallet.show_rates(self, event)
        if text in keyboards.WALLET_BUTTONS:
            self.clear_flow(event.user_id)
            return await wallet.show_wallet(self, event, keyboards.WALLET_BUTTONS[text])
        if command == "/swap" or text == keyboards.SWAP_CRYPTO:
            self.clear_flow(event.user_id)
            return await swap.start_swap(self, event)
        if command == "/referral" or text == keyboards.REFER_AND_EARN:
            return await referral.show_referral_menu(self, event)
        if command == "/bank" or text == keyboards.BANK_ACCOUNT:
            self.clear_flow(event.user_id)
            return await bank.show_bank(self, event)

        state = self.store.get(event.user_id)
        if state is None:
            return self.reply(
                event, "Please choose an option from the menu below 👇", keyboards.main_menu_keyboard()
            )
        if state.submitting:
            return self.busy(event)

        if state.step == FlowStep.AWAITING_AMOUNT:
            if state.kind == FlowKind.CRYPTO_SALE:
                return await withdraw.sale_amount_entered(self, event, state, text)
            if state.kind == FlowKind.BANK_WITHDRAWAL:
                return await withdraw.withdrawal_amount_entered(self, event, state, text)
            if state.kind == FlowKind.SWAP:
                return await swap.amount_entered(self, event, state, text)
        if state.step == FlowStep.AWAITING_ACCOUNT_NUMBER:
            return await bank.account_number_entered(self, event, state, text)
        if state.step == FlowStep.AWAITING_ACCOUNT_NAME:
            return await bank.account_name_entered(self, event, state, text)

        return self.reply(event, "Please use the buttons above to continue, or tap ❌ Cancel.")

    async def _on_button(self, event: ButtonPress) -> list[Effect]:
        handler = self._buttons.get(event.action)
        if handler is None:
            logger.warning(f"Unknown button '{event.data}' from user {event.user_id}")
            return [AnswerCallback(callback_id=event.callback_id, text="Unknown action")] if event.callback_id else []
        return await handler(event)

    async def _use_all(self, event: ButtonPress) -> list[Effect]:
        state = self.store.get(event.user_id)
        if state is None or state.step != FlowStep.AWAITING_AMOUNT or state.submitting:
            return self.reply(event, SESSION_EXPIRED_START_OVER)
        if state.kind == FlowKind.SWAP:
            return await swap.amount_entered(self, event, state, "max")
        if state.kind == FlowKind.CRYPTO_SALE:
            return await withdraw.sale_amount_entered(self, event, state, "max")
        return await withdraw.withdrawal_amount_entered(self, event, state, "max")

    # Common screens

    async def show_menu(self, event: ChatEvent) -> list[Effect]:
        self.clear_flow(event.user_id)
        return self.reply(
            event,
            f"🏠 <b>{html.escape(self.settings.business_name)}</b>\n\nChoose an option below:",
            keyboards.main_menu_keyboard(),
        )

    async def cancel(self, event: ChatEvent) -> list[Effect]:
        """Abandon the pending flow. Never mutates balances."""
        state = self.store.get(event.user_id)
        if state is not None and state.submitting:
            return self.reply(
                event, "⏳ Your withdrawal is already being processed and can't be cancelled."
            )
        self.store.clear(event.user_id)
        if state is None:
            text = "Nothing to cancel."
        else:
            logger.info(f"User {event.user_id} cancelled {state.kind.value} at {state.step.value}")
            text = "❌ Operation cancelled."

        if isinstance(event, ButtonPress) and event.message_id is not None:
            return [
                EditMessage(chat_id=event.chat_id, message_id=event.message_id, text=text),
                SendText(chat_id=event.chat_id, text="🏠 Main Menu", reply_markup=keyboards.main_menu_keyboard()),
            ]
        return self.reply(event, text, keyboards.main_menu_keyboard())

    # Helpers used by the flow modules

    def reply(
        self,
        event: ChatEvent,
        text: str,
        reply_markup: Optional[ReplyMarkup] = None,
        edit: bool = False,
    ) -> list[Effect]:
        """Answer the event's chat, editing the pressed message when asked to."""
        if (
            edit
            and isinstance(event, ButtonPress)
            and event.message_id is not None
            and (reply_markup is None or isinstance(reply_markup, InlineKeyboardMarkup))
        ):
            return [
                EditMessage(
                    chat_id=event.chat_id,
                    message_id=event.message_id,
                    text=text,
                    reply_markup=reply_markup,
                )
            ]
        return [SendText(chat_id=event.chat_id, text=text, reply_markup=reply_markup)]

    def expired(self, event: ChatEvent) -> list[Effect]:
        """Reply for a confirmation or step button without a matching flow."""
        return self.reply(event, SESSION_EXPIRED_START_OVER, keyboards.main_menu_keyboard())

    def busy(self, event: ChatEvent) -> list[Effect]:
        return self.reply(event, WITHDRAWAL_IN_PROGRESS)

    def clear_flow(self, user_id: int) -> bool:
        """Clear the pending flow unless a withdrawal is being submitted."""
        state = self.store.get(user_id)
        if state is not None and state.submitting:
            return False
        self.store.clear(user_id)
        return True

    async def load_account(self, repo: LedgerRepository, event: ChatEvent) -> Account:
        """Load the user's account.

        Unknown users without a pending flow get an account on first contact.

        Raises:
            SessionExpired: If a flow is pending but the account is gone
        """
        account = await repo.get_account(event.user_id)
        if account is not None:
            return account
        if self.store.get(event.user_id) is not None:
            raise SessionExpired(f"No account for user {event.user_id}")

        account, _ = await repo.get_or_create_account(
            event.user_id,
            username=event.username,
            first_name=event.first_name,
            daily_limit=self.settings.default_daily_limit,
        )
        await self.issue_addresses(repo, account)
        return account

    async def issue_addresses(self, repo: LedgerRepository, account: Account) -> None:
        """Derive and store deposit addresses for every crypto asset."""
        for asset in CRYPTO_ASSETS:
            try:
                await self.deposit_address(repo, account, asset)
            except AddressCollisionError as e:
                logger.error(f"No {asset.value} address for account {account.id}: {e}")

    async def deposit_address(
        self, repo: LedgerRepository, account: Account, asset: Asset
    ) -> DepositAddress:
        """The account's deposit address for an asset, stored on first use."""
        info = self.deriver.derive(account.telegram_id, asset)
        return await repo.get_or_create_deposit_address(account.id, info)

    async def get_banks(self) -> list[Bank]:
        """Bank directory, fetched once per process. Call with the user lock released."""
        if self._banks is None:
            self._banks = await self.gateway.list_banks()
        return self._banks

    def find_bank(self, code: str) -> Optional[Bank]:
        for candidate in self._banks or []:
            if candidate.code == code:
                return candidate
        return None

    def _error_effects(self, event: ChatEvent, error: AeroTradeError) -> list[Effect]:
        """Turn a domain error into a user-facing reply."""
        if isinstance(error, SessionExpired):
            logger.info(f"Session expired for user {event.user_id}: {error}")
            self.store.clear(event.user_id)
            return self.reply(event, SESSION_EXPIRED_RESTART)
        if isinstance(error, InsufficientBalance):
            text = (
                f"❌ Insufficient balance.\n\n"
                f"Available: {format_amount(error.available, Asset(error.asset))} {error.asset}"
            )
        elif isinstance(error, PolicyDenied):
            self.clear_flow(event.user_id)
            text = f"🚫 {html.escape(error.reason)}"
            if error.remaining is not None:
                text += f"\n\n📊 Remaining today: {format_naira(error.remaining)}"
        elif isinstance(error, GatewayError):
            self.clear_flow(event.user_id)
            text = f"❌ {html.escape(error.message)}"
        elif isinstance(error, AddressCollisionError):
            text = "⚠️ Could not generate a deposit address. Please contact support."
        elif isinstance(error, ValidationError):
            text = f"❌ {html.escape(str(error))}"
        else:
            logger.warning(f"Unhandled domain error for user {event.user_id}: {error}")
            text = GENERIC_ERROR
        return self.reply(event, text)

    @staticmethod
    def _answer_callback(event: ChatEvent, effects: list[Effect]) -> list[Effect]:
        """Every button press gets exactly one callback answer, first."""
        if not isinstance(event, ButtonPress) or not event.callback_id:
            return effects
        if any(isinstance(effect, AnswerCallback) for effect in effects):
            return effects
        return [AnswerCallback(callback_id=event.callback_id)] + effects
