"""Data models for schedulable subjects and the notification ledger"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class SubjectKind(str, Enum):
    """Kinds of entities the scheduler watches"""
    EVENT = "event"
    SCRIM = "scrim"
    TOURNAMENT = "tournament"


class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class MatchStatus(str, Enum):
    """Scrim and tournament status, driven by result entry"""
    PENDING = "pending"
    COMPLETED = "completed"


class WindowTag(str, Enum):
    """Countdown tiers recorded in the notification ledger"""
    THREE_DAYS = "3d"
    ONE_DAY = "1d"
    FIVE_HOURS = "5h"
    ONE_HOUR = "1h"
    THIRTY_MINUTES = "30m"
    TEN_MINUTES = "10m"
    DISCOVERED_MID_WINDOW = "discovered-mid-window"


@dataclass
class Team:
    """Squad a scrim or tournament belongs to"""
    id: int
    name: str


@dataclass
class Event:
    """Organizational event (recruitment drive, watch party, LAN...)"""
    id: int
    title: str
    start_at: datetime
    status: EventStatus = EventStatus.UPCOMING
    description: Optional[str] = None
    location: Optional[str] = None
    image: Optional[str] = None

    @property
    def kind(self) -> SubjectKind:
        return SubjectKind.EVENT


@dataclass
class Scrim:
    """Practice match against another team"""
    id: int
    start_at: datetime
    opponent: str
    format: str
    status: MatchStatus = MatchStatus.PENDING
    team_id: Optional[int] = None
    team_name: Optional[str] = None

    @property
    def kind(self) -> SubjectKind:
        return SubjectKind.SCRIM


@dataclass
class Tournament:
    """Tournament entry for one of the squads"""
    id: int
    start_at: datetime
    name: str
    format: str
    status: MatchStatus = MatchStatus.PENDING
    opponent: Optional[str] = None
    team_id: Optional[int] = None
    team_name: Optional[str] = None

    @property
    def kind(self) -> SubjectKind:
        return SubjectKind.TOURNAMENT


Subject = Union[Event, Scrim, Tournament]


@dataclass
class NotificationRecord:
    """Proof that a (subject, window) notification was handled"""
    subject_kind: SubjectKind
    subject_id: int
    window_tag: WindowTag
    sent_at: datetime

    def __hash__(self):
        return hash((self.subject_kind, self.subject_id, self.window_tag))

    def __eq__(self, other):
        if not isinstance(other, NotificationRecord):
            return False
        return (self.subject_kind == other.subject_kind and
                self.subject_id == other.subject_id and
                self.window_tag == other.window_tag)
