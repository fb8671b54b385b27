"""Main entry point - runs both bot and API."""

import asyncio
import logging
import signal
from typing import Optional

import uvicorn
from aiogram import Bot, Dispatcher

from aerotrade.api.app import create_app
from aerotrade.bot.bot import configure_logging, create_bot
from aerotrade.config import Settings, get_settings
from aerotrade.engine import ConversationEngine
from aerotrade.hdwallet import AddressDeriver, load_master_mnemonic
from aerotrade.ledger import Database, LedgerRepository
from aerotrade.notifications.telegram import TelegramNotifier
from aerotrade.policy import PolicyGuard
from aerotrade.providers import RateProvider, create_gateway

logger = logging.getLogger(__name__)


class Application:
    """Wires the ledger, deriver, providers and engine, then runs bot and API."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.database: Optional[Database] = None
        self.engine: Optional[ConversationEngine] = None
        self.bot: Optional[Bot] = None
        self.dp: Optional[Dispatcher] = None
        self._shutdown_event = asyncio.Event()

    async def setup(self) -> ConversationEngine:
        """Build every component and re-derive known deposit addresses."""
        settings = self.settings

        self.database = Database.from_settings(settings)
        await self.database.init()
        logger.info("Database initialized")

        deriver = AddressDeriver(load_master_mnemonic(settings))
        async with self.database.session() as session:
            user_ids = await LedgerRepository(session).get_all_telegram_ids()
        deriver.warm(user_ids)

        gateway = create_gateway(settings)
        if not await gateway.validate_config():
            logger.warning(f"Payment gateway '{gateway.name}' is not fully configured")
        logger.info(f"Payment gateway: {gateway.name}")

        self.engine = ConversationEngine(
            database=self.database,
            deriver=deriver,
            gateway=gateway,
            rates=RateProvider(settings.coingecko_url, cache_seconds=settings.rate_cache_seconds),
            policy=PolicyGuard.from_settings(settings),
            settings=settings,
        )
        return self.engine

    async def start(self):
        """Start all services."""
        configure_logging(self.settings.debug)

        logger.info(f"Starting {self.settings.business_name}...")
        logger.info(f"Environment: {self.settings.environment}")

        await self.setup()

        # Create tasks for bot and API
        tasks = []

        # Start bot if token is configured
        if self.settings.telegram_bot_token:
            self.bot, self.dp = create_bot(self.engine, self.settings)
            tasks.append(asyncio.create_task(self._run_bot()))
            logger.info("Bot task created")
        else:
            logger.warning("TELEGRAM_BOT_TOKEN not set - bot disabled")

        # Start API server
        tasks.append(asyncio.create_task(self._run_api()))
        logger.info("API task created")

        # Wait for shutdown signal
        await self._shutdown_event.wait()

        # Cancel all tasks
        for task in tasks:
            task.cancel()

        # Wait for tasks to complete
        await asyncio.gather(*tasks, return_exceptions=True)

        await self.shutdown_resources()

    async def _run_bot(self):
        """Run the Telegram bot."""
        try:
            await self.bot.delete_webhook(drop_pending_updates=True)
            logger.info("Starting bot polling...")
            await self.dp.start_polling(self.bot, handle_signals=False)
        except asyncio.CancelledError:
            logger.info("Bot polling cancelled")
        except Exception as e:
            logger.error(f"Bot error: {e}")
            raise

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            app = create_app(self.engine, self.settings, TelegramNotifier(self.bot))
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting API server on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise

    async def shutdown_resources(self):
        """Close the bot session and the database."""
        logger.info("Cleaning up...")

        if self.bot:
            await self.bot.session.close()

        if self.database:
            await self.database.close()
        logger.info("Cleanup complete")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    app = Application()

    # Setup signal handlers
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
