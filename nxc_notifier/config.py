"""Configuration loading and validation"""
import os
from typing import Optional
from dotenv import load_dotenv

from .storage.models import SubjectKind
from .utils.logger import setup_logger

logger = setup_logger(__name__)

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration"""

    def __init__(self):
        """Load and validate configuration"""
        # Discord configuration
        self.discord_bot_token = self._get_required("DISCORD_BOT_TOKEN")
        self.discord_event_channel_id = self._get_channel("DISCORD_EVENT_CHANNEL_ID")
        self.discord_scrim_channel_id = self._get_channel("DISCORD_SCRIM_CHANNEL_ID")
        self.discord_tournament_channel_id = self._get_channel("DISCORD_TOURNAMENT_CHANNEL_ID")

        # Generative text
        self.gemini_api_key = os.getenv("GEMINI_API_KEY") or None
        self.gemini_model = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.org_name = os.getenv("ORG_NAME", "NXC Esports (Nexus Collective)")

        # Timeouts and scheduling
        self.generation_timeout = self._get_number("GENERATION_TIMEOUT", "20")
        self.delivery_timeout = self._get_number("DELIVERY_TIMEOUT", "15")
        self.tick_interval = self._get_number("TICK_INTERVAL", "60")
        self.tick_concurrency = int(self._get_number("TICK_CONCURRENCY", "1"))

        # Storage
        self.database_path = os.getenv("DATABASE_PATH", "data/bot.db")
        self.audit_log_path = os.getenv("AUDIT_LOG_PATH", "discord_audit.log")

        self._validate()
        logger.info("Configuration loaded successfully")

    def channel_for(self, kind: SubjectKind) -> Optional[int]:
        """Channel that receives reminders for a subject kind"""
        return {
            SubjectKind.EVENT: self.discord_event_channel_id,
            SubjectKind.SCRIM: self.discord_scrim_channel_id,
            SubjectKind.TOURNAMENT: self.discord_tournament_channel_id,
        }[kind]

    def _get_required(self, key: str) -> str:
        """Get required environment variable"""
        value = os.getenv(key)
        if not value:
            raise ValueError(f"Required environment variable {key} is not set")
        return value

    def _get_channel(self, key: str) -> Optional[int]:
        """Get optional numeric Discord channel ID"""
        value = os.getenv(key, "").strip()
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"{key} must be a numeric channel ID")

    def _get_number(self, key: str, default: str) -> float:
        value = os.getenv(key, default)
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"{key} must be a number, got {value!r}")

    def _validate(self):
        """Validate configuration values"""
        if self.tick_interval < 1:
            raise ValueError("TICK_INTERVAL must be at least 1 second")

        if self.tick_concurrency < 1:
            raise ValueError("TICK_CONCURRENCY must be at least 1")

        if self.generation_timeout <= 0 or self.delivery_timeout <= 0:
            raise ValueError("GENERATION_TIMEOUT and DELIVERY_TIMEOUT must be positive")

        for kind in SubjectKind:
            if self.channel_for(kind) is None:
                logger.warning(
                    f"No Discord channel configured for {kind.value} reminders; "
                    f"they will be recorded but not delivered"
                )

        if not self.gemini_api_key:
            logger.warning("GEMINI_API_KEY not set, event reminders use the fallback template")

        logger.info(f"Tick interval: {self.tick_interval:g} seconds")
        logger.info(f"Database: {self.database_path}")
