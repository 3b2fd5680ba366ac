"""Discord bot client for delivering notifications"""
import asyncio
import re
from pathlib import Path
from typing import Mapping, Optional
import discord
from discord.ext import commands

from ..utils.logger import setup_logger

logger = setup_logger(__name__)

# No newline in the class, so a mention never swallows the next line
MENTION_PATTERN = re.compile(r"@([A-Za-z0-9 :_\-]+)")
WORD_PATTERN = re.compile(r"\S+")


def resolve_role_mentions(message: str, roles: Mapping[str, int]) -> str:
    """
    Rewrite free-text @Role mentions into Discord role mentions

    Role names are compared case-insensitively. For "@Team Alpha is live"
    the longest leading run of words naming a role wins ("Team Alpha");
    anything without a matching role passes through unchanged.

    Args:
        message: Message text
        roles: Role name -> role ID

    Returns:
        Message with matched mentions replaced by <@&role_id>
    """
    if not roles:
        return message

    lookup = {name.strip().lower(): role_id for name, role_id in roles.items()}

    def _replace(match: re.Match) -> str:
        token = match.group(1)
        ends = [word.end() for word in WORD_PATTERN.finditer(token)]
        for end in reversed(ends):
            role_id = lookup.get(token[:end].strip().lower())
            if role_id is not None:
                return f"<@&{role_id}>{token[end:]}"
        return match.group(0)

    return MENTION_PATTERN.sub(_replace, message)


class DiscordClient:
    """Discord bot client used as the delivery sink"""

    def __init__(self, token: str, send_timeout: float = 15.0):
        """
        Initialize Discord client

        Args:
            token: Discord bot token
            send_timeout: Seconds before a channel fetch or send is abandoned
        """
        self.token = token
        self.send_timeout = send_timeout

        intents = discord.Intents.default()
        self.bot = commands.Bot(command_prefix='!', intents=intents)

        self._setup_events()

    def _setup_events(self):
        """Set up Discord bot events"""
        @self.bot.event
        async def on_ready():
            logger.info(f"Discord bot logged in as {self.bot.user}")

    async def start(self):
        """Start the Discord bot"""
        await self.bot.start(self.token)

    async def close(self):
        """Close the Discord bot connection"""
        await self.bot.close()

    def is_ready(self) -> bool:
        return self.bot.is_ready()

    async def wait_until_ready(
        self,
        start_task: Optional[asyncio.Task] = None,
        timeout: Optional[float] = None,
        poll_interval: float = 0.5
    ) -> bool:
        """
        Wait for the gateway connection

        Args:
            start_task: Task running start(); waiting ends early if it finishes
            timeout: Seconds to wait in total, None to wait indefinitely
            poll_interval: Seconds between readiness checks

        Returns:
            True once ready, False if the start task ended or time ran out
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while not self.is_ready():
            if start_task is not None and start_task.done():
                return False
            if deadline is not None and loop.time() >= deadline:
                return False
            await asyncio.sleep(poll_interval)
        return True

    async def send(
        self,
        message: str,
        attachment_path: Optional[str] = None,
        channel_id: Optional[int] = None
    ) -> bool:
        """
        Send a message to a channel. Failures are logged, never raised.

        Args:
            message: Message text; @Role mentions are resolved first
            attachment_path: Optional file to attach if it exists
            channel_id: Target channel

        Returns:
            True if the message was sent
        """
        if not self.is_ready():
            logger.warning("Discord bot not ready yet, dropping message")
            return False

        if not channel_id:
            logger.warning("No channel ID configured, dropping message")
            return False

        try:
            channel = await self._get_channel(int(channel_id))
            if channel is None:
                logger.error(f"Channel {channel_id} not found or is not a text channel")
                logger.error("Make sure the bot is in the server and the channel ID is correct")
                return False

            guild = getattr(channel, "guild", None)
            if guild is not None:
                if not channel.permissions_for(guild.me).send_messages:
                    logger.error(f"Bot lacks permission to send messages in channel {channel_id}")
                    return False
                roles = {role.name: role.id for role in guild.roles}
                message = resolve_role_mentions(message, roles)

            kwargs = {"content": message}
            if attachment_path and Path(attachment_path).is_file():
                kwargs["file"] = discord.File(attachment_path)

            await asyncio.wait_for(channel.send(**kwargs), timeout=self.send_timeout)

            logger.info(
                f"Notification sent to channel {channel_id}"
                f"{' with attachment' if 'file' in kwargs else ''}"
            )
            return True

        except asyncio.TimeoutError:
            logger.error(f"Timed out sending message to channel {channel_id}")
            return False
        except discord.errors.Forbidden as e:
            logger.error(f"Permission denied: {e}")
            logger.error("The bot needs 'Send Messages' permission in the channel.")
            return False
        except discord.errors.HTTPException as e:
            logger.error(f"Discord API error sending to channel {channel_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Error sending message to channel {channel_id}: {e}")
            return False

    async def _get_channel(self, channel_id: int):
        """Resolve a channel from the cache, falling back to the API"""
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await asyncio.wait_for(
                    self.bot.fetch_channel(channel_id), timeout=self.send_timeout
                )
            except discord.errors.NotFound:
                return None
        if not hasattr(channel, "send"):
            return None
        return channel
