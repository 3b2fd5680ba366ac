"""Operator tool for checking reminders end to end"""
import argparse
import asyncio
import sys
from datetime import datetime, timedelta
from typing import Optional

from .config import Config
from .storage.database import Database
from .storage.models import Event, Scrim, SubjectKind, Tournament, WindowTag
from .services.composer import NotificationComposer
from .services.discord_client import DiscordClient
from .services.gemini_client import GeminiClient
from .utils.logger import setup_logger
from .utils.timezone import now_utc

logger = setup_logger(__name__)

SAMPLE_EVENT = Event(
    id=0,
    title="NOW RECRUITING: NXC Solana (VALORANT PC)",
    start_at=datetime(2000, 1, 1),
    description=(
        "NXC is expanding its VALORANT PC division. We are looking for high "
        "potential players ready to build a legacy in elite community leagues.\n\n"
        "Requirements:\n- Rank: Diamond - Immortal\n- Team Size: 5 Main + 2 Subs\n"
        "- Commitment: Available for scrims/VODs."
    ),
    location="Discord Ticket #player-applications"
)


def build_sample_subject(kind: SubjectKind, start_time: datetime, team_id: Optional[int]):
    """
    Create a test subject starting at the given time

    The ID is derived from the current time so repeated runs do not collide.
    """
    subject_id = int(now_utc().timestamp())
    if kind == SubjectKind.EVENT:
        return Event(
            id=subject_id,
            title="Test Event",
            start_at=start_time,
            description="Test event for notification testing",
            location="Discord Stage"
        )
    if kind == SubjectKind.SCRIM:
        return Scrim(
            id=subject_id,
            start_at=start_time,
            opponent="Test Opponent",
            format="BO3",
            team_id=team_id
        )
    return Tournament(
        id=subject_id,
        start_at=start_time,
        name="Test Cup",
        format="Single Elimination",
        team_id=team_id
    )


async def send_immediate_notification(config: Config):
    """
    Compose a sample event announcement and send it to the events channel

    Args:
        config: Configuration object
    """
    logger.info("Testing immediate notification mode...")

    composer = NotificationComposer(
        text_generator=GeminiClient(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            timeout=config.generation_timeout
        ),
        org_name=config.org_name
    )
    message = await composer.compose(SAMPLE_EVENT, WindowTag.ONE_HOUR, "1 Hour")

    discord_client = DiscordClient(
        token=config.discord_bot_token,
        send_timeout=config.delivery_timeout
    )
    discord_task = asyncio.create_task(discord_client.start())

    logger.info("Connecting to Discord...")

    try:
        if not await discord_client.wait_until_ready(discord_task, timeout=30):
            logger.error("✗ Discord client did not become ready")
            sys.exit(1)

        logger.info("Sending test notification...")
        success = await discord_client.send(
            message, channel_id=config.channel_for(SubjectKind.EVENT)
        )

        if success:
            logger.info("✓ Test notification sent successfully!")
        else:
            logger.error("✗ Failed to send test notification")
            sys.exit(1)
    finally:
        await discord_client.close()
        discord_task.cancel()
        try:
            await discord_task
        except asyncio.CancelledError:
            pass


def store_scheduled_subject(
    kind: SubjectKind,
    minutes: int,
    team_name: Optional[str],
    config: Config
):
    """
    Store a subject so the running scheduler picks it up

    Args:
        kind: Kind of subject to create
        minutes: Minutes from now to set the start time
        team_name: Squad to attach to scrims and tournaments
        config: Configuration object
    """
    logger.info(f"Testing scheduled {kind.value} reminder (starts in {minutes} minutes)...")

    database = Database(db_path=config.database_path)

    team_id = None
    if team_name and kind != SubjectKind.EVENT:
        team_id = database.ensure_team(team_name).id

    start_time = now_utc() + timedelta(minutes=minutes)
    subject = build_sample_subject(kind, start_time, team_id)

    if kind == SubjectKind.EVENT:
        database.upsert_event(subject)
    elif kind == SubjectKind.SCRIM:
        database.upsert_scrim(subject)
    else:
        database.upsert_tournament(subject)

    logger.info(f"✓ Test {kind.value} stored in database (ID: {subject.id}, starts at {start_time})")
    logger.info("")
    logger.info("Next steps:")
    logger.info("1. Start the main bot: python -m nxc_notifier.main")
    logger.info(f"2. Reminders fire as the {kind.value} enters each countdown window")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Test Discord reminders for events, scrims and tournaments"
    )
    parser.add_argument(
        "--immediate",
        action="store_true",
        help="Send a sample event announcement right away (bypasses the scheduler)"
    )
    parser.add_argument(
        "--kind",
        choices=[kind.value for kind in SubjectKind],
        default=SubjectKind.SCRIM.value,
        help="Kind of subject to store in scheduled mode (default: scrim)"
    )
    parser.add_argument(
        "--minutes",
        type=int,
        default=20,
        help="Minutes from now for the start time (scheduled mode, default: 20)"
    )
    parser.add_argument(
        "--team",
        type=str,
        default=None,
        help="Squad name for scrims and tournaments, mentioned as @Team"
    )

    args = parser.parse_args()

    try:
        config = Config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if args.immediate:
        asyncio.run(send_immediate_notification(config))
    else:
        store_scheduled_subject(SubjectKind(args.kind), args.minutes, args.team, config)


if __name__ == "__main__":
    main()
