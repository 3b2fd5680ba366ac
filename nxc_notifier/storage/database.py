"""SQLite database operations"""
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .models import (
    Event,
    EventStatus,
    MatchStatus,
    NotificationRecord,
    Scrim,
    Subject,
    SubjectKind,
    Team,
    Tournament,
    WindowTag,
)
from ..utils.logger import setup_logger
from ..utils.timezone import now_utc, parse_timestamp

logger = setup_logger(__name__)


class Database:
    """SQLite store for schedulable subjects and the notification ledger"""

    def __init__(self, db_path: str = "data/bot.db"):
        """Initialize database connection"""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Create tables if they don't exist"""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS teams (
                    id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY,
                    title TEXT NOT NULL,
                    start_at TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'upcoming',
                    description TEXT,
                    location TEXT,
                    image TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS scrims (
                    id INTEGER PRIMARY KEY,
                    team_id INTEGER,
                    start_at TEXT NOT NULL,
                    opponent TEXT NOT NULL,
                    format TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending'
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tournaments (
                    id INTEGER PRIMARY KEY,
                    team_id INTEGER,
                    start_at TEXT NOT NULL,
                    name TEXT NOT NULL,
                    opponent TEXT,
                    format TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending'
                )
            """)

            # One row per (subject, window); the key makes repeated claims no-ops
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    subject_kind TEXT NOT NULL,
                    subject_id INTEGER NOT NULL,
                    window_tag TEXT NOT NULL,
                    sent_at TEXT NOT NULL,
                    PRIMARY KEY (subject_kind, subject_id, window_tag)
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_status
                ON events(status)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_scrims_status
                ON scrims(status)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_tournaments_status
                ON tournaments(status)
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # --- subject source -------------------------------------------------

    def upsert_team(self, team: Team):
        """Insert or update a team"""
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO teams (id, name) VALUES (?, ?)",
                (team.id, team.name)
            )
            conn.commit()

    def ensure_team(self, name: str) -> Team:
        """Get a team by name, creating it if missing"""
        with self._get_connection() as conn:
            conn.execute("INSERT OR IGNORE INTO teams (name) VALUES (?)", (name,))
            conn.commit()
            row = conn.execute(
                "SELECT id, name FROM teams WHERE name = ?", (name,)
            ).fetchone()
            return Team(id=row['id'], name=row['name'])

    def upsert_event(self, event: Event):
        """Insert or update an event"""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO events
                (id, title, start_at, status, description, location, image)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                event.id,
                event.title,
                event.start_at.isoformat(),
                EventStatus(event.status).value,
                event.description,
                event.location,
                event.image
            ))
            conn.commit()

    def upsert_scrim(self, scrim: Scrim):
        """Insert or update a scrim"""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO scrims
                (id, team_id, start_at, opponent, format, status)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                scrim.id,
                scrim.team_id,
                scrim.start_at.isoformat(),
                scrim.opponent,
                scrim.format,
                MatchStatus(scrim.status).value
            ))
            conn.commit()

    def upsert_tournament(self, tournament: Tournament):
        """Insert or update a tournament"""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO tournaments
                (id, team_id, start_at, name, opponent, format, status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                tournament.id,
                tournament.team_id,
                tournament.start_at.isoformat(),
                tournament.name,
                tournament.opponent,
                tournament.format,
                MatchStatus(tournament.status).value
            ))
            conn.commit()

    def get_event(self, event_id: int) -> Optional[Event]:
        """Get an event by ID"""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM events WHERE id = ?", (event_id,)
            ).fetchone()
            return self._row_to_event(row) if row else None

    def get_scrim(self, scrim_id: int) -> Optional[Scrim]:
        """Get a scrim by ID"""
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT s.*, t.name AS team_name FROM scrims s
                LEFT JOIN teams t ON t.id = s.team_id
                WHERE s.id = ?
            """, (scrim_id,)).fetchone()
            return self._row_to_scrim(row) if row else None

    def get_tournament(self, tournament_id: int) -> Optional[Tournament]:
        """Get a tournament by ID"""
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT tr.*, t.name AS team_name FROM tournaments tr
                LEFT JOIN teams t ON t.id = tr.team_id
                WHERE tr.id = ?
            """, (tournament_id,)).fetchone()
            return self._row_to_tournament(row) if row else None

    def get_active_events(self) -> List[Event]:
        """Get events the scheduler still has to watch (upcoming or ongoing)"""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM events
                WHERE status IN (?, ?)
                ORDER BY start_at ASC
            """, (EventStatus.UPCOMING.value, EventStatus.ONGOING.value)).fetchall()
            return self._map_rows(rows, self._row_to_event, "events")

    def get_pending_scrims(self) -> List[Scrim]:
        """Get scrims that have no recorded result yet"""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT s.*, t.name AS team_name FROM scrims s
                LEFT JOIN teams t ON t.id = s.team_id
                WHERE s.status = ?
                ORDER BY s.start_at ASC
            """, (MatchStatus.PENDING.value,)).fetchall()
            return self._map_rows(rows, self._row_to_scrim, "scrims")

    def get_pending_tournaments(self) -> List[Tournament]:
        """Get tournaments that have no recorded result yet"""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT tr.*, t.name AS team_name FROM tournaments tr
                LEFT JOIN teams t ON t.id = tr.team_id
                WHERE tr.status = ?
                ORDER BY tr.start_at ASC
            """, (MatchStatus.PENDING.value,)).fetchall()
            return self._map_rows(rows, self._row_to_tournament, "tournaments")

    def get_active_subjects(self) -> List[Subject]:
        """Get every subject relevant to the current tick"""
        subjects: List[Subject] = []
        subjects.extend(self.get_active_events())
        subjects.extend(self.get_pending_scrims())
        subjects.extend(self.get_pending_tournaments())
        return subjects

    def update_event_status(self, event_id: int, status: EventStatus):
        """Write an event's lifecycle status back to its row"""
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE events SET status = ? WHERE id = ?",
                (EventStatus(status).value, event_id)
            )
            conn.commit()

    def delete_event(self, event_id: int):
        """Remove an event together with its ledger records"""
        self._delete_subject("events", SubjectKind.EVENT, event_id)

    def delete_scrim(self, scrim_id: int):
        """Remove a scrim together with its ledger records"""
        self._delete_subject("scrims", SubjectKind.SCRIM, scrim_id)

    def delete_tournament(self, tournament_id: int):
        """Remove a tournament together with its ledger records"""
        self._delete_subject("tournaments", SubjectKind.TOURNAMENT, tournament_id)

    def _delete_subject(self, table: str, kind: SubjectKind, subject_id: int):
        with self._get_connection() as conn:
            conn.execute(f"DELETE FROM {table} WHERE id = ?", (subject_id,))
            conn.execute("""
                DELETE FROM notifications
                WHERE subject_kind = ? AND subject_id = ?
            """, (kind.value, subject_id))
            conn.commit()

    # --- notification ledger --------------------------------------------

    def record_notification(
        self,
        kind: SubjectKind,
        subject_id: int,
        window_tag: WindowTag,
        sent_at: Optional[datetime] = None
    ) -> bool:
        """
        Claim a (subject, window) pair in the ledger

        Returns:
            True if this call created the record, False if it already existed
        """
        sent_at = sent_at or now_utc()
        with self._get_connection() as conn:
            cursor = conn.execute("""
                INSERT OR IGNORE INTO notifications
                (subject_kind, subject_id, window_tag, sent_at)
                VALUES (?, ?, ?, ?)
            """, (
                SubjectKind(kind).value,
                subject_id,
                WindowTag(window_tag).value,
                sent_at.isoformat()
            ))
            conn.commit()
            return cursor.rowcount == 1

    def has_notification(
        self,
        kind: SubjectKind,
        subject_id: int,
        window_tag: WindowTag
    ) -> bool:
        """Check if a subject already has a record for this window"""
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT 1 FROM notifications
                WHERE subject_kind = ? AND subject_id = ? AND window_tag = ?
            """, (
                SubjectKind(kind).value, subject_id, WindowTag(window_tag).value
            )).fetchone()
            return row is not None

    def has_any_notification(self, kind: SubjectKind, subject_id: int) -> bool:
        """Check if a subject has received any notification at all"""
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT 1 FROM notifications
                WHERE subject_kind = ? AND subject_id = ?
                LIMIT 1
            """, (SubjectKind(kind).value, subject_id)).fetchone()
            return row is not None

    def get_notifications(
        self,
        kind: SubjectKind,
        subject_id: int
    ) -> List[NotificationRecord]:
        """Get all ledger records of a subject, oldest first"""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM notifications
                WHERE subject_kind = ? AND subject_id = ?
                ORDER BY sent_at ASC
            """, (SubjectKind(kind).value, subject_id)).fetchall()
            return [self._row_to_notification(row) for row in rows]

    def prune_orphaned_notifications(self) -> int:
        """Remove ledger records whose subject was deleted elsewhere"""
        with self._get_connection() as conn:
            cursor = conn.execute("""
                DELETE FROM notifications
                WHERE (subject_kind = 'event'
                       AND subject_id NOT IN (SELECT id FROM events))
                   OR (subject_kind = 'scrim'
                       AND subject_id NOT IN (SELECT id FROM scrims))
                   OR (subject_kind = 'tournament'
                       AND subject_id NOT IN (SELECT id FROM tournaments))
            """)
            conn.commit()
            return cursor.rowcount

    # --- row mapping ----------------------------------------------------

    def _map_rows(self, rows: List[sqlite3.Row], mapper, table: str) -> list:
        """Map rows to objects, skipping rows the dashboard wrote malformed"""
        mapped = []
        for row in rows:
            try:
                mapped.append(mapper(row))
            except (ValueError, TypeError) as e:
                logger.error(f"Skipping malformed row {row['id']} in {table}: {e}")
        return mapped

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        """Convert database row to Event object"""
        return Event(
            id=row['id'],
            title=row['title'],
            start_at=parse_timestamp(row['start_at']),
            status=EventStatus(row['status']),
            description=row['description'],
            location=row['location'],
            image=row['image']
        )

    def _row_to_scrim(self, row: sqlite3.Row) -> Scrim:
        """Convert database row to Scrim object"""
        return Scrim(
            id=row['id'],
            start_at=parse_timestamp(row['start_at']),
            opponent=row['opponent'],
            format=row['format'],
            status=MatchStatus(row['status']),
            team_id=row['team_id'],
            team_name=row['team_name']
        )

    def _row_to_tournament(self, row: sqlite3.Row) -> Tournament:
        """Convert database row to Tournament object"""
        return Tournament(
            id=row['id'],
            start_at=parse_timestamp(row['start_at']),
            name=row['name'],
            format=row['format'],
            status=MatchStatus(row['status']),
            opponent=row['opponent'],
            team_id=row['team_id'],
            team_name=row['team_name']
        )

    def _row_to_notification(self, row: sqlite3.Row) -> NotificationRecord:
        """Convert database row to NotificationRecord object"""
        return NotificationRecord(
            subject_kind=SubjectKind(row['subject_kind']),
            subject_id=row['subject_id'],
            window_tag=WindowTag(row['window_tag']),
            sent_at=datetime.fromisoformat(row['sent_at'])
        )
