"""Per-subject decision for one scheduler tick"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Union

from ..storage.database import Database
from ..storage.models import EventStatus, Subject, SubjectKind, WindowTag
from .window_classifier import classify, countdown_text, next_status


@dataclass(frozen=True)
class SendNotification:
    window_tag: WindowTag
    countdown_text: str


@dataclass(frozen=True)
class TransitionStatus:
    new_status: EventStatus


@dataclass(frozen=True)
class NoOp:
    pass


Action = Union[SendNotification, TransitionStatus, NoOp]


class TickEvaluator:
    """Decides what a single subject needs on this tick"""

    def __init__(self, database: Database):
        """
        Initialize tick evaluator

        Args:
            database: Ledger used to look up earlier notifications
        """
        self.database = database

    def evaluate(self, subject: Subject, now: datetime) -> List[Action]:
        """
        Evaluate one subject against the current instant

        The window is always derived from the subject's current start time,
        so externally edited start times are picked up on the next tick.

        Args:
            subject: Event, scrim or tournament
            now: Current naive UTC time

        Returns:
            Actions to perform; [NoOp()] when nothing applies
        """
        actions: List[Action] = []
        time_to_start = subject.start_at - now

        if self._accepts_notifications(subject):
            has_any = self.database.has_any_notification(subject.kind, subject.id)
            tag = classify(subject.kind, time_to_start, has_any)
            if tag is not None and not (
                has_any and self.database.has_notification(subject.kind, subject.id, tag)
            ):
                actions.append(SendNotification(
                    window_tag=tag,
                    countdown_text=countdown_text(subject.kind, tag, time_to_start)
                ))

        new_status = next_status(subject.kind, subject.status, time_to_start)
        if new_status is not None:
            actions.append(TransitionStatus(new_status=new_status))

        return actions or [NoOp()]

    def _accepts_notifications(self, subject: Subject) -> bool:
        """Events stop counting down once they are marked ongoing"""
        if subject.kind == SubjectKind.EVENT:
            return subject.status == EventStatus.UPCOMING
        return True
