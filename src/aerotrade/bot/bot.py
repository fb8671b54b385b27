"""Bot initialization and runner."""

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from aerotrade.bot.handlers import router
from aerotrade.config import Settings, get_settings
from aerotrade.engine import ConversationEngine

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    """Configure logging - reduce noise from libraries."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiogram").setLevel(logging.INFO)


def create_bot(engine: ConversationEngine, settings: Settings) -> tuple[Bot, Dispatcher]:
    """Create bot and dispatcher instances.

    The engine is injected into every handler as the `engine` argument.
    """
    if not settings.telegram_bot_token:
        raise ValueError("TELEGRAM_BOT_TOKEN is not set")

    # Effects carry their own parse_mode
    bot = Bot(token=settings.telegram_bot_token)

    # Conversation state lives in the engine, not in aiogram's FSM
    dp = Dispatcher(storage=MemoryStorage())
    dp["engine"] = engine
    dp.include_router(router)

    return bot, dp


async def start_polling(bot: Bot, dp: Dispatcher) -> None:
    try:
        # Delete webhook if any and start polling
        await bot.delete_webhook(drop_pending_updates=True)
        logger.info("Starting polling...")
        await dp.start_polling(bot)
    finally:
        await bot.session.close()


async def run_bot() -> None:
    """Run the bot alone in polling mode (no deposit webhook)."""
    from aerotrade.main import Application

    settings = get_settings()
    configure_logging(settings.debug)
    logger.info(f"Starting {settings.business_name} bot...")

    app = Application(settings)
    await app.setup()
    try:
        bot, dp = create_bot(app.engine, settings)
        await start_polling(bot, dp)
    finally:
        await app.shutdown_resources()


def main() -> None:
    """Entry point for bot-only mode."""
    asyncio.run(run_bot())


if __name__ == "__main__":
    main()
