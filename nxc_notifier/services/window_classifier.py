"""Countdown windows per subject kind and the status lifecycle"""
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional, Tuple, Union

from ..storage.models import EventStatus, MatchStatus, SubjectKind, WindowTag

ZERO = timedelta(0)
COMPLETION_GRACE = timedelta(hours=7)


@dataclass(frozen=True)
class Window:
    """
    One countdown tier: lower < time_to_start <= upper

    Args:
        lower: Exclusive lower bound of the remaining time
        upper: Inclusive upper bound of the remaining time
        tag: Ledger tag recorded when the tier fires
        label: Countdown text, or the unit word when ``unit`` is set
        unit: If set, the countdown is the remaining time rounded up to this unit
        first_contact_only: Tier only fires for subjects never notified before
    """
    lower: timedelta
    upper: timedelta
    tag: WindowTag
    label: str
    unit: Optional[timedelta] = None
    first_contact_only: bool = False

    def contains(self, time_to_start: timedelta) -> bool:
        return self.lower < time_to_start <= self.upper

    def countdown(self, time_to_start: timedelta) -> str:
        if self.unit is None:
            return self.label
        amount = max(1, math.ceil(time_to_start / self.unit))
        return f"{amount} {self.label}"


# Tightest tiers first; the first match wins.
EVENT_WINDOWS: Tuple[Window, ...] = (
    Window(ZERO, timedelta(hours=1), WindowTag.ONE_HOUR,
           "Minutes", unit=timedelta(minutes=1)),
    Window(timedelta(hours=4, minutes=50), timedelta(hours=5, minutes=10),
           WindowTag.FIVE_HOURS, "5 Hours"),
    Window(timedelta(hours=23), timedelta(hours=24), WindowTag.ONE_DAY, "1 Day"),
    Window(timedelta(hours=71), timedelta(hours=72), WindowTag.THREE_DAYS, "3 Days"),
    Window(timedelta(hours=5, minutes=10), timedelta(hours=23),
           WindowTag.DISCOVERED_MID_WINDOW, "Hours",
           unit=timedelta(hours=1), first_contact_only=True),
)

SCRIM_WINDOWS: Tuple[Window, ...] = (
    Window(ZERO, timedelta(minutes=10), WindowTag.TEN_MINUTES, "10 Minutes"),
    Window(timedelta(minutes=11), timedelta(minutes=30),
           WindowTag.THIRTY_MINUTES, "30 Minutes"),
)

TOURNAMENT_WINDOWS: Tuple[Window, ...] = SCRIM_WINDOWS + (
    Window(timedelta(hours=23), timedelta(hours=24), WindowTag.ONE_DAY, "1 Day"),
)

WINDOW_TABLES: Dict[SubjectKind, Tuple[Window, ...]] = {
    SubjectKind.EVENT: EVENT_WINDOWS,
    SubjectKind.SCRIM: SCRIM_WINDOWS,
    SubjectKind.TOURNAMENT: TOURNAMENT_WINDOWS,
}


def classify(
    kind: SubjectKind,
    time_to_start: timedelta,
    has_any_prior_notification: bool
) -> Optional[WindowTag]:
    """
    Map the remaining time of a subject to its current window tag

    Args:
        kind: Subject kind whose window table applies
        time_to_start: start_at minus now (negative once started)
        has_any_prior_notification: Whether the ledger holds any record
            for the subject

    Returns:
        The matching tag, or None when the subject sits outside every window
    """
    if time_to_start <= ZERO:
        return None

    for window in WINDOW_TABLES[kind]:
        if window.contains(time_to_start):
            if window.first_contact_only and has_any_prior_notification:
                return None
            return window.tag

    return None


def find_window(kind: SubjectKind, tag: WindowTag) -> Window:
    """Look up the window definition behind a tag"""
    for window in WINDOW_TABLES[kind]:
        if window.tag == tag:
            return window
    raise KeyError(f"No {tag.value} window defined for {kind.value}")


def countdown_text(kind: SubjectKind, tag: WindowTag, time_to_start: timedelta) -> str:
    """Human countdown for a message, e.g. '10 Minutes' or '47 Minutes'"""
    return find_window(kind, tag).countdown(time_to_start)


def next_status(
    kind: SubjectKind,
    status: Union[EventStatus, MatchStatus],
    time_to_start: timedelta
) -> Optional[EventStatus]:
    """
    Status an event should move to, if any

    Scrims and tournaments are completed by result entry, so only events
    age through upcoming -> ongoing -> completed here.
    """
    if kind != SubjectKind.EVENT:
        return None

    if time_to_start <= -COMPLETION_GRACE and status != EventStatus.COMPLETED:
        return EventStatus.COMPLETED
    if time_to_start <= ZERO and status == EventStatus.UPCOMING:
        return EventStatus.ONGOING
    return None
