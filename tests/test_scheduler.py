"""Tests for nxc_notifier.services.scheduler."""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from nxc_notifier.services.composer import NotificationComposer
from nxc_notifier.services.gemini_client import GenerationError
from nxc_notifier.services.scheduler import Scheduler
from nxc_notifier.storage.models import (
    Event,
    EventStatus,
    Scrim,
    SubjectKind,
    Team,
    Tournament,
    WindowTag,
)
from nxc_notifier.utils.audit_log import AuditLog

CHANNELS = {
    SubjectKind.EVENT: 111,
    SubjectKind.SCRIM: 222,
    SubjectKind.TOURNAMENT: 333,
}


def make_sink(result=True, ready=True):
    sink = AsyncMock()
    sink.is_ready = MagicMock(return_value=ready)
    sink.send.return_value = result
    return sink


def failing_generator():
    generator = AsyncMock()
    generator.generate.side_effect = GenerationError("quota exceeded")
    return generator


def make_scheduler(database, clock, sink, generator=None, **kwargs):
    return Scheduler(
        database=database,
        composer=NotificationComposer(text_generator=generator),
        sink=sink,
        channels=CHANNELS,
        tick_interval=60,
        clock=clock,
        **kwargs
    )


def add_event(database, clock, remaining, event_id=1, **overrides):
    fields = dict(
        id=event_id,
        title="Spring Showmatch",
        start_at=clock() + remaining,
        description="Community vs roster",
        location="Main Stage",
    )
    fields.update(overrides)
    event = Event(**fields)
    database.upsert_event(event)
    return event


def sent_messages(sink):
    return [call.args[0] for call in sink.send.await_args_list]


def tags(database, kind, subject_id):
    return [r.window_tag for r in database.get_notifications(kind, subject_id)]


async def run_ticks(scheduler, clock, count, minutes=1):
    for _ in range(count):
        await scheduler.tick()
        clock.advance(minutes=minutes)


# ---------------------------------------------------------------------------
# Idempotency and window behaviour
# ---------------------------------------------------------------------------


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_three_day_event_recorded_once(self, database, clock):
        add_event(database, clock, timedelta(hours=71, minutes=30))
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink)

        await run_ticks(scheduler, clock, 30)

        assert tags(database, SubjectKind.EVENT, 1) == [WindowTag.THREE_DAYS]
        assert sink.send.await_count == 1

    @pytest.mark.asyncio
    async def test_scrim_gets_ten_minute_reminder_only(self, database, clock):
        database.upsert_team(Team(id=5, name="NXC Solana"))
        database.upsert_scrim(Scrim(
            id=1, start_at=clock() + timedelta(minutes=9),
            opponent="Team Rival", format="BO3", team_id=5
        ))
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink)

        await run_ticks(scheduler, clock, 15)

        assert tags(database, SubjectKind.SCRIM, 1) == [WindowTag.TEN_MINUTES]
        [message] = sent_messages(sink)
        assert "10 Minutes" in message
        assert "@NXC Solana" in message
        assert sink.send.await_args.args[2] == CHANNELS[SubjectKind.SCRIM]

    @pytest.mark.asyncio
    async def test_tournament_walks_through_its_tiers(self, database, clock):
        database.upsert_tournament(Tournament(
            id=1, start_at=clock() + timedelta(hours=24),
            name="Spring Cup", format="Double Elimination"
        ))
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink)

        await run_ticks(scheduler, clock, 24 * 6 + 1, minutes=10)

        assert tags(database, SubjectKind.TOURNAMENT, 1) == [
            WindowTag.ONE_DAY, WindowTag.THIRTY_MINUTES, WindowTag.TEN_MINUTES
        ]

    @pytest.mark.asyncio
    async def test_event_lifetime_has_one_record_per_window(self, database, clock):
        add_event(database, clock, timedelta(hours=72))
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink)

        await run_ticks(scheduler, clock, 80 * 6, minutes=10)

        assert tags(database, SubjectKind.EVENT, 1) == [
            WindowTag.THREE_DAYS, WindowTag.ONE_DAY, WindowTag.FIVE_HOURS, WindowTag.ONE_HOUR
        ]
        assert sink.send.await_count == 4
        assert database.get_event(1).status == EventStatus.COMPLETED


class TestMidWindow:
    @pytest.mark.asyncio
    async def test_fresh_event_gets_one_catch_up(self, database, clock):
        add_event(database, clock, timedelta(hours=8))
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink)

        await run_ticks(scheduler, clock, 60)

        assert tags(database, SubjectKind.EVENT, 1) == [WindowTag.DISCOVERED_MID_WINDOW]
        assert sink.send.await_count == 1
        assert "8 Hours" in sent_messages(sink)[0]

    @pytest.mark.asyncio
    async def test_tracked_event_is_silent_in_mid_band(self, database, clock):
        add_event(database, clock, timedelta(hours=72))
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink)
        await scheduler.tick()

        clock.advance(hours=64)
        await run_ticks(scheduler, clock, 30)

        assert tags(database, SubjectKind.EVENT, 1) == [WindowTag.THREE_DAYS]

    @pytest.mark.asyncio
    async def test_rescheduled_event_is_picked_up(self, database, clock):
        event = add_event(database, clock, timedelta(minutes=70))
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink)

        await scheduler.tick()
        assert tags(database, SubjectKind.EVENT, 1) == []

        event.start_at = clock() + timedelta(minutes=50)
        database.upsert_event(event)
        await scheduler.tick()

        assert tags(database, SubjectKind.EVENT, 1) == [WindowTag.ONE_HOUR]
        assert "50 Minutes" in sent_messages(sink)[0]


# ---------------------------------------------------------------------------
# Status lifecycle
# ---------------------------------------------------------------------------


class TestStatusLifecycle:
    @pytest.mark.asyncio
    async def test_started_event_goes_ongoing(self, database, clock):
        add_event(database, clock, -timedelta(minutes=1))
        scheduler = make_scheduler(database, clock, make_sink())

        report = await scheduler.tick()

        assert report.transitions == 1
        assert database.get_event(1).status == EventStatus.ONGOING

    @pytest.mark.asyncio
    async def test_event_completes_seven_hours_after_start(self, database, clock):
        add_event(database, clock, timedelta(0))
        scheduler = make_scheduler(database, clock, make_sink())
        await scheduler.tick()

        clock.advance(hours=6, minutes=59)
        await scheduler.tick()
        assert database.get_event(1).status == EventStatus.ONGOING

        clock.advance(minutes=1)
        await scheduler.tick()
        assert database.get_event(1).status == EventStatus.COMPLETED
        assert database.get_active_events() == []


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_generation_failure_still_delivers(self, database, clock):
        add_event(database, clock, timedelta(minutes=45), event_id=1)
        add_event(database, clock, timedelta(hours=12), event_id=2, title="Scouting Day")
        add_event(database, clock, timedelta(hours=71, minutes=10), event_id=3)
        generator = failing_generator()
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink, generator=generator)

        await run_ticks(scheduler, clock, 5)

        messages = sent_messages(sink)
        assert len(messages) == 3
        assert all("**UPCOMING EVENT**" in message for message in messages)
        assert generator.generate.await_count == 3

    @pytest.mark.asyncio
    async def test_generated_text_is_delivered(self, database, clock):
        add_event(database, clock, timedelta(minutes=30), image="uploads/banner.png")
        generator = AsyncMock()
        generator.generate.return_value = "🎮 **SHOWMATCH** starts soon @everyone"
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink, generator=generator)

        await scheduler.tick()

        sink.send.assert_awaited_once_with(
            "🎮 **SHOWMATCH** starts soon @everyone",
            "uploads/banner.png",
            CHANNELS[SubjectKind.EVENT]
        )

    @pytest.mark.asyncio
    async def test_failed_delivery_keeps_record(self, database, clock):
        add_event(database, clock, timedelta(minutes=30))
        sink = make_sink(result=False)
        scheduler = make_scheduler(database, clock, sink)

        report = await scheduler.tick()
        await scheduler.tick()

        assert report.undelivered == 1
        assert tags(database, SubjectKind.EVENT, 1) == [WindowTag.ONE_HOUR]
        assert sink.send.await_count == 1

    @pytest.mark.asyncio
    async def test_one_failing_subject_does_not_stop_the_tick(self, database, clock):
        add_event(database, clock, timedelta(minutes=20), event_id=1)
        add_event(database, clock, timedelta(minutes=40), event_id=2)
        sink = make_sink()
        sink.send.side_effect = [RuntimeError("gateway closed"), True]
        scheduler = make_scheduler(database, clock, sink)

        report = await scheduler.tick()

        assert report.failures == 1
        assert report.sent == 1
        assert sink.send.await_count == 2
        assert tags(database, SubjectKind.EVENT, 2) == [WindowTag.ONE_HOUR]

    @pytest.mark.asyncio
    async def test_subject_source_failure_ends_tick_quietly(self, database, clock, monkeypatch):
        scheduler = make_scheduler(database, clock, make_sink())

        def broken():
            raise OSError("database is locked")

        monkeypatch.setattr(database, "get_active_subjects", broken)

        report = await scheduler.tick()

        assert report.failures == 1
        assert report.subjects == 0


# ---------------------------------------------------------------------------
# Tick discipline
# ---------------------------------------------------------------------------


class TestTickDiscipline:
    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, database, clock):
        add_event(database, clock, timedelta(minutes=30))
        release = asyncio.Event()
        sink = make_sink()

        async def slow_send(*args):
            await release.wait()
            return True

        sink.send.side_effect = slow_send
        scheduler = make_scheduler(database, clock, sink)

        first = asyncio.create_task(scheduler.tick())
        await asyncio.sleep(0)
        second = await scheduler.tick()
        release.set()
        first_report = await first

        assert second.skipped is True
        assert first_report.sent == 1
        assert sink.send.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_subjects(self, database, clock):
        for event_id in range(1, 6):
            add_event(database, clock, timedelta(minutes=10 * event_id), event_id=event_id)
        sink = make_sink()
        scheduler = make_scheduler(database, clock, sink, max_concurrency=3)

        report = await scheduler.tick()

        assert report.subjects == 5
        assert report.sent == 5

    @pytest.mark.asyncio
    async def test_start_runs_ticks_until_stopped(self, database, clock):
        scheduler = make_scheduler(database, clock, make_sink())
        scheduler.tick_interval = 0.01
        scheduler.tick = AsyncMock()

        task = asyncio.create_task(scheduler.start())
        await asyncio.sleep(0.05)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert scheduler.tick.await_count >= 2

    @pytest.mark.asyncio
    async def test_loop_survives_tick_errors(self, database, clock):
        scheduler = make_scheduler(database, clock, make_sink())
        scheduler.tick_interval = 0.01
        scheduler.tick = AsyncMock(side_effect=RuntimeError("boom"))

        task = asyncio.create_task(scheduler.start())
        await asyncio.sleep(0.05)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert scheduler.tick.await_count >= 2


class TestAuditTrail:
    @pytest.mark.asyncio
    async def test_outbound_messages_are_audited(self, database, clock, tmp_path):
        database.upsert_scrim(Scrim(
            id=4, start_at=clock() + timedelta(minutes=25), opponent="Rival", format="BO1"
        ))
        audit_path = tmp_path / "audit.log"
        scheduler = make_scheduler(
            database, clock, make_sink(), audit_log=AuditLog(str(audit_path))
        )

        await scheduler.tick()

        content = audit_path.read_text(encoding="utf-8")
        assert "TO: 222 (SCRIM 30m)" in content
        assert "@Unknown Squad" in content

    @pytest.mark.asyncio
    async def test_fallback_messages_are_marked(self, database, clock, tmp_path):
        add_event(database, clock, timedelta(minutes=45))
        audit_path = tmp_path / "audit.log"
        scheduler = make_scheduler(
            database, clock, make_sink(), generator=failing_generator(),
            audit_log=AuditLog(str(audit_path))
        )

        await scheduler.tick()

        assert "TO: 111 (EVENT 1h FALLBACK)" in audit_path.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_generated_messages_are_not_marked(self, database, clock, tmp_path):
        add_event(database, clock, timedelta(minutes=45))
        generator = AsyncMock()
        generator.generate.return_value = "🎮 **SHOWMATCH** @everyone"
        audit_path = tmp_path / "audit.log"
        scheduler = make_scheduler(
            database, clock, make_sink(), generator=generator,
            audit_log=AuditLog(str(audit_path))
        )

        await scheduler.tick()

        content = audit_path.read_text(encoding="utf-8")
        assert "TO: 111 (EVENT 1h)" in content
        assert "FALLBACK" not in content


# ---------------------------------------------------------------------------
# Sink readiness
# ---------------------------------------------------------------------------


class TestSinkReadiness:
    @pytest.mark.asyncio
    async def test_window_stays_open_until_sink_is_ready(self, database, clock):
        add_event(database, clock, timedelta(hours=8))
        sink = make_sink(ready=False)
        scheduler = make_scheduler(database, clock, sink)

        report = await scheduler.tick()

        assert report.deferred == 1
        assert report.sent == 0
        assert sink.send.await_count == 0
        assert tags(database, SubjectKind.EVENT, 1) == []

        sink.is_ready.return_value = True
        clock.advance(minutes=1)
        report = await scheduler.tick()

        assert report.sent == 1
        assert report.deferred == 0
        assert tags(database, SubjectKind.EVENT, 1) == [WindowTag.DISCOVERED_MID_WINDOW]
        assert "8 Hours" in sent_messages(sink)[0]

    @pytest.mark.asyncio
    async def test_status_changes_do_not_wait_for_sink(self, database, clock):
        add_event(database, clock, -timedelta(minutes=5))
        scheduler = make_scheduler(database, clock, make_sink(ready=False))

        report = await scheduler.tick()

        assert report.transitions == 1
        assert database.get_event(1).status == EventStatus.ONGOING
