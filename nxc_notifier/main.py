"""Main entry point for the NXC notification bot"""
import asyncio
import signal
import sys

from .config import Config
from .storage.database import Database
from .storage.models import SubjectKind
from .services.composer import NotificationComposer
from .services.discord_client import DiscordClient
from .services.gemini_client import GeminiClient
from .services.scheduler import Scheduler
from .utils.audit_log import AuditLog
from .utils.logger import setup_logger

logger = setup_logger(__name__)


class NotifierBot:
    """Main bot orchestrator"""

    def __init__(self, config: Config):
        """Initialize bot components"""
        self.config = config
        self.database = Database(db_path=config.database_path)
        self.running = False

        # Initialize services
        self.discord_client = DiscordClient(
            token=config.discord_bot_token,
            send_timeout=config.delivery_timeout
        )
        self.composer = NotificationComposer(
            text_generator=GeminiClient(
                api_key=config.gemini_api_key,
                model=config.gemini_model,
                timeout=config.generation_timeout
            ),
            org_name=config.org_name
        )
        self.scheduler = Scheduler(
            database=self.database,
            composer=self.composer,
            sink=self.discord_client,
            channels={kind: config.channel_for(kind) for kind in SubjectKind},
            tick_interval=config.tick_interval,
            max_concurrency=config.tick_concurrency,
            audit_log=AuditLog(config.audit_log_path) if config.audit_log_path else None
        )

        # Setup signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        self.running = False

    async def start(self):
        """Start the bot"""
        self.running = True
        logger.info("Starting NXC notification bot...")

        pruned = self.database.prune_orphaned_notifications()
        if pruned:
            logger.info(f"Pruned {pruned} ledger record(s) of deleted subjects")

        # Start Discord client in background
        discord_task = asyncio.create_task(self.discord_client.start())
        scheduler_task = None

        try:
            # Reminders are only scheduled once the gateway is up
            logger.info("Waiting for Discord to connect...")
            while self.running and not self.discord_client.is_ready():
                if discord_task.done():
                    logger.error(f"Discord client stopped: {self._stop_reason(discord_task)}")
                    return
                await asyncio.sleep(0.5)

            if self.running:
                scheduler_task = asyncio.create_task(self.scheduler.start())

            while self.running:
                if discord_task.done():
                    logger.error(f"Discord client stopped: {self._stop_reason(discord_task)}")
                    break
                await asyncio.sleep(1)
        finally:
            logger.info("Stopping services...")
            self.scheduler.stop()
            if scheduler_task:
                scheduler_task.cancel()

            await self.discord_client.close()
            discord_task.cancel()

            logger.info("Bot stopped")

    @staticmethod
    def _stop_reason(task: asyncio.Task) -> str:
        """Describe why a finished task ended"""
        if task.cancelled():
            return "cancelled"
        error = task.exception()
        return str(error) if error else "connection closed"


async def main():
    """Main entry point"""
    try:
        config = Config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    try:
        bot = NotifierBot(config)
        await bot.start()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
