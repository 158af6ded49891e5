"""Main entry point for the DBC draft alert bot."""
import asyncio
import logging
import os
import signal
import sys
from typing import Optional

import structlog
from dotenv import load_dotenv

from dbc_alert.alerts.telegram import TelegramNotifier
from dbc_alert.api.bitquery import BitqueryStream
from dbc_alert.config import Settings, load_settings
from dbc_alert.detection.matcher import SuffixMatcher
from dbc_alert.detection.processor import EventProcessor
from dbc_alert.errors import ConfigError, StorageUnavailable
from dbc_alert.storage.database import Database

logger = structlog.get_logger()


def configure_logging(level: str = "INFO"):
    """Configure structured logging on top of stdlib logging."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class DbcAlertBot:
    """Owns the store, matcher, notifier and stream for one process run."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.matcher = SuffixMatcher(settings.suffixes)
        self.notifier = TelegramNotifier(
            settings.tg_token,
            settings.chat_id,
            timeout=settings.telegram_timeout,
        )
        self.db: Optional[Database] = None
        self.processor: Optional[EventProcessor] = None
        self.stream: Optional[BitqueryStream] = None

    async def start(self):
        """Open the store and consume the subscription until it ends."""
        logger.info("bot_starting", suffixes=len(self.matcher.suffixes), teams=len(self.settings.teams))

        self.db = await Database.open(self.settings.db_path)
        logger.info("events_in_store", count=await self.db.count())

        self.processor = EventProcessor(self.matcher, self.db, self.notifier)
        self.stream = BitqueryStream(
            self.settings.bitquery_key,
            self.processor.process,
            url=self.settings.stream_url,
            program_address=self.settings.program_address,
            method=self.settings.method,
        )

        await self.stream.run()
        logger.info("subscription_ended")

    async def shutdown(self):
        """Immediate shutdown: in-flight alerts are cancelled, not drained."""
        logger.info("bot_shutting_down")
        if self.processor:
            self.processor.cancel_pending()
            logger.info(
                "bot_stats",
                processed=self.processor.processed,
                matched=self.processor.matched,
                write_failures=self.processor.write_failures,
            )
        await self.notifier.close()
        if self.db:
            await self.db.close()


async def main() -> int:
    """Run the bot; returns the process exit status."""
    load_dotenv()
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error("config_error", error=str(e))
        return 1

    bot = DbcAlertBot(settings)
    task = asyncio.create_task(bot.start())

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except NotImplementedError:
            pass

    try:
        await task
    except asyncio.CancelledError:
        logger.info("termination_signal")
    except StorageUnavailable as e:
        logger.error("storage_unavailable", error=str(e))
        return 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                pass
        await bot.shutdown()

    return 0


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
