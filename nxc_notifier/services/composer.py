"""Message composition for scheduled reminders"""
from dataclasses import dataclass
from typing import Optional

from ..storage.models import Event, Scrim, Subject, Tournament, WindowTag
from ..utils.logger import setup_logger
from .gemini_client import GeminiClient

logger = setup_logger(__name__)

UNKNOWN_SQUAD = "Unknown Squad"


@dataclass(frozen=True)
class ComposedMessage:
    """Composed text and whether the event fallback template produced it"""
    text: str
    fallback: bool = False

EVENT_PROMPT = """
You are the hype announcer for {org_name}.
Write a short, high-energy Discord notification for an upcoming event.

Event Details:
- Title: {title}
- Description: {description}
- Location: {location}
- Time Remaining: {countdown} EXACTLY.

Instructions:
- Format the message as a structured Discord announcement using Markdown.
- **Headline**: Use a bold, emoji-prefixed headline (e.g., 🎮 **TITLE**).
- **Description**: A clear, engaging paragraph.
- **Details/Requirements**: Use bullet points if the description implies a list (rules, requirements, lineup).
- **Key Info**: Distinct sections for Location/Time if relevant.
- **Action**: A clear "Interested?" or "Join now" call to action.
- **Footer**: End with relevant hashtags and @everyone.
- Output ONLY the message content.
"""


class NotificationComposer:
    """Builds the outbound text for a decided send"""

    def __init__(
        self,
        text_generator: Optional[GeminiClient] = None,
        org_name: str = "NXC Esports (Nexus Collective)"
    ):
        """
        Initialize composer

        Args:
            text_generator: Generator for event announcements; None means
                every event uses the fallback template
            org_name: Organization named in the announcer prompt
        """
        self.text_generator = text_generator
        self.org_name = org_name

    async def compose(self, subject: Subject, window_tag: WindowTag, countdown_text: str) -> str:
        """Compose a reminder message and return only its text"""
        composed = await self.compose_message(subject, window_tag, countdown_text)
        return composed.text

    async def compose_message(
        self,
        subject: Subject,
        window_tag: WindowTag,
        countdown_text: str
    ) -> ComposedMessage:
        """
        Compose a reminder message

        Generation failures never propagate; the event falls back to a
        fixed template so delivery is not skipped.

        Args:
            subject: Subject being announced
            window_tag: Window that fired
            countdown_text: Remaining time as shown to readers

        Returns:
            ComposedMessage with the text ready for delivery and a flag set
            when the event fallback template was used
        """
        if isinstance(subject, Event):
            return await self._compose_event(subject, window_tag, countdown_text)
        if isinstance(subject, Scrim):
            return ComposedMessage(self.scrim_reminder(subject, countdown_text))
        if isinstance(subject, Tournament):
            return ComposedMessage(self.tournament_reminder(subject, countdown_text))
        raise TypeError(f"Unsupported subject type: {type(subject).__name__}")

    async def _compose_event(
        self,
        event: Event,
        window_tag: WindowTag,
        countdown_text: str
    ) -> ComposedMessage:
        if self.text_generator is None:
            logger.warning("No text generator configured, using fallback event message")
            return self._fallback(event, countdown_text)

        prompt = self.event_prompt(event, countdown_text)
        try:
            message = await self.text_generator.generate(prompt)
        except Exception as e:
            logger.error(
                f"Generation failed for event {event.id} ({window_tag.value}), "
                f"using fallback: {e}"
            )
            return self._fallback(event, countdown_text)

        if not message or not message.strip():
            logger.error(f"Generated message for event {event.id} is empty, using fallback")
            return self._fallback(event, countdown_text)

        logger.info(f"Generated message for event {event.id} ({len(message)} chars)")
        return ComposedMessage(message.strip())

    def _fallback(self, event: Event, countdown_text: str) -> ComposedMessage:
        return ComposedMessage(self.event_fallback(event, countdown_text), fallback=True)

    def event_prompt(self, event: Event, countdown_text: str) -> str:
        return EVENT_PROMPT.format(
            org_name=self.org_name,
            title=event.title,
            description=event.description or "N/A",
            location=event.location or "N/A",
            countdown=countdown_text
        ).strip()

    @staticmethod
    def event_fallback(event: Event, countdown_text: str) -> str:
        return (
            "🚨 **UPCOMING EVENT** 🚨\n"
            f"**{event.title}** is starting in {countdown_text}!\n"
            f"{event.description or ''}\n"
            "@everyone"
        )

    @staticmethod
    def scrim_reminder(scrim: Scrim, countdown_text: str) -> str:
        return (
            "🚨 **SCRIM DEPLOYMENT IMMINENT** 🚨\n\n"
            f"**Squad Mention:** @{scrim.team_name or UNKNOWN_SQUAD}\n"
            f"**Countdown:** Starting in **{countdown_text}**\n"
            f"**Opponent:** {scrim.opponent}\n"
            f"**Protocol:** {scrim.format}\n\n"
            "*All personnel report to stations immediately. Prepare for theater engagement.*"
        )

    @staticmethod
    def tournament_reminder(tournament: Tournament, countdown_text: str) -> str:
        lines = [
            "🏆 **TOURNAMENT OPERATION IMMINENT** 🏆",
            "",
            f"**Unit Mention:** @{tournament.team_name or UNKNOWN_SQUAD}",
            f"**Countdown:** Starting in **{countdown_text}**",
            f"**Tournament:** {tournament.name}",
        ]
        if tournament.opponent:
            lines.append(f"**Opponent:** {tournament.opponent}")
        lines.extend([
            f"**Protocol:** {tournament.format}",
            "",
            "*All operatives report for final briefing. Glory to the Collective.*",
        ])
        return "\n".join(lines)
