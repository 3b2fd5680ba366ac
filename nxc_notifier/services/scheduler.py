"""Fixed-interval scheduler that drives reminders and event status"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from ..storage.database import Database
from ..storage.models import Subject, SubjectKind
from ..utils.audit_log import AuditLog
from ..utils.logger import setup_logger
from ..utils.timezone import now_utc
from .composer import NotificationComposer
from .tick_evaluator import SendNotification, TickEvaluator, TransitionStatus

logger = setup_logger(__name__)


@dataclass
class TickReport:
    """Counters for one tick"""
    subjects: int = 0
    sent: int = 0
    undelivered: int = 0
    transitions: int = 0
    failures: int = 0
    deferred: int = 0
    skipped: bool = False


class Scheduler:
    """Runs the tick evaluator over every active subject on an interval"""

    def __init__(
        self,
        database: Database,
        composer: NotificationComposer,
        sink,
        channels: Dict[SubjectKind, Optional[int]],
        tick_interval: float = 60,
        max_concurrency: int = 1,
        clock: Callable[[], datetime] = now_utc,
        audit_log: Optional[AuditLog] = None
    ):
        """
        Initialize scheduler

        Args:
            database: Subject source and notification ledger
            composer: Builds message text for a send
            sink: Delivery sink exposing ``is_ready()`` and
                ``async send(message, attachment_path, channel_id)``
            channels: Target channel per subject kind
            tick_interval: Seconds between the end of one tick and the next
            max_concurrency: Subjects processed at once within a tick
            clock: Returns the current naive UTC time
            audit_log: Optional audit trail of outbound messages
        """
        self.database = database
        self.composer = composer
        self.sink = sink
        self.channels = channels
        self.tick_interval = tick_interval
        self.clock = clock
        self.audit_log = audit_log
        self.evaluator = TickEvaluator(database)
        self.running = False

        self._tick_lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def start(self):
        """Start the scheduling loop"""
        self.running = True
        logger.info(f"Starting scheduler (tick every {self.tick_interval}s)")

        while self.running:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}", exc_info=True)

            await asyncio.sleep(self.tick_interval)

    def stop(self):
        """Stop the scheduling loop"""
        self.running = False
        logger.info("Stopping scheduler")

    async def tick(self) -> TickReport:
        """
        Run one evaluation pass over all active subjects

        A tick requested while another is still running is skipped, so the
        ledger check-then-write for a subject never races with itself.
        """
        if self._tick_lock.locked():
            logger.warning("Previous tick still running, skipping this one")
            return TickReport(skipped=True)

        async with self._tick_lock:
            now = self.clock()
            report = TickReport()

            try:
                subjects = self.database.get_active_subjects()
            except Exception as e:
                logger.error(f"Could not load subjects: {e}", exc_info=True)
                report.failures += 1
                return report

            report.subjects = len(subjects)
            await asyncio.gather(
                *(self._process_subject(subject, now, report) for subject in subjects)
            )

            if report.sent or report.transitions or report.failures or report.deferred:
                logger.info(
                    f"Tick done: {report.subjects} subjects, {report.sent} sent "
                    f"({report.undelivered} undelivered), {report.transitions} "
                    f"transitions, {report.failures} failures, {report.deferred} deferred"
                )
            else:
                logger.debug(f"Tick done: {report.subjects} subjects, nothing due")
            return report

    async def _process_subject(self, subject: Subject, now: datetime, report: TickReport):
        """Evaluate and act on one subject; errors stay with the subject"""
        async with self._semaphore:
            try:
                for action in self.evaluator.evaluate(subject, now):
                    if isinstance(action, SendNotification):
                        await self._send(subject, action, report)
                    elif isinstance(action, TransitionStatus):
                        self.database.update_event_status(subject.id, action.new_status)
                        report.transitions += 1
                        logger.info(
                            f"Event {subject.id} moved from {subject.status.value} "
                            f"to {action.new_status.value}"
                        )
            except Exception as e:
                report.failures += 1
                logger.error(
                    f"Error processing {subject.kind.value} {subject.id}: {e}",
                    exc_info=True
                )

    async def _send(self, subject: Subject, action: SendNotification, report: TickReport):
        # A window is only claimed once the sink can deliver; until then it
        # stays open for the next tick.
        if not self.sink.is_ready():
            report.deferred += 1
            logger.info(
                f"Sink not ready, deferring {action.window_tag.value} reminder for "
                f"{subject.kind.value} {subject.id}"
            )
            return

        # The record is written before delivery: a crash or failed send
        # leaves the window claimed rather than risking a second message.
        claimed = self.database.record_notification(
            subject.kind, subject.id, action.window_tag, sent_at=self.clock()
        )
        if not claimed:
            logger.info(
                f"{subject.kind.value} {subject.id} already has a "
                f"{action.window_tag.value} record, skipping"
            )
            return

        composed = await self.composer.compose_message(
            subject, action.window_tag, action.countdown_text
        )
        message = composed.text
        channel_id = self.channels.get(subject.kind)

        if self.audit_log:
            note = f"{subject.kind.value.upper()} {action.window_tag.value}"
            if composed.fallback:
                note += " FALLBACK"
            self.audit_log.append(channel_id, message, note)

        delivered = await self.sink.send(message, getattr(subject, "image", None), channel_id)
        report.sent += 1
        if delivered:
            logger.info(
                f"Sent {action.window_tag.value} reminder for {subject.kind.value} "
                f"{subject.id} (starts at {subject.start_at}, in {action.countdown_text})"
            )
        else:
            report.undelivered += 1
            logger.warning(
                f"Delivery failed for {subject.kind.value} {subject.id} "
                f"({action.window_tag.value}); ledger record kept"
            )
