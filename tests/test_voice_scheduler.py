"""
tests/test_voice_scheduler.py — Voice Session Scheduler Tests
==============================================================

Drives the scheduler with a fake clock: every ``advance()`` releases one
tick for each live session, so an hour of study runs in milliseconds.

These tests verify:
- One hourly credit after 60 minutes, carried across a room switch
- At most one live tick task per member under rapid event bursts
- Fire-once milestones with audio cues, and the hard-cap kick
- Retry of a failed credit on the next tick and on leave
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, call

from studybank.config import EconomyConfig
from studybank.engine.voice_session import Transition
from studybank.services.voice_scheduler import (
    PresenceTransition,
    VoiceSessionScheduler,
)

USER = 5001
STAGING = 1
ROOM_A = 10
ROOM_B = 11


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
class FakeClock:
    """Replaces ``asyncio.sleep`` between ticks; time moves only on ``advance``."""

    def __init__(self) -> None:
        self._waiters: list[asyncio.Future] = []

    async def sleep(self, seconds: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    async def settle(self) -> None:
        for _ in range(20):
            await asyncio.sleep(0)

    async def advance(self, ticks: int = 1) -> None:
        for _ in range(ticks):
            await self.settle()
            waiters, self._waiters = self._waiters, []
            for fut in waiters:
                if not fut.done():
                    fut.set_result(None)
            await self.settle()


def _channel(channel_id: int, name: str = "Room") -> SimpleNamespace:
    return SimpleNamespace(id=channel_id, name=f"{name} {channel_id}")


def _make_notifier() -> MagicMock:
    notifier = MagicMock()
    notifier.send = AsyncMock(side_effect=lambda channel, text: MagicMock(channel=channel, text=text))
    notifier.edit = AsyncMock()
    notifier.delete = AsyncMock()
    notifier.disconnect_member = AsyncMock()
    return notifier


def _make_scheduler(credit=None, economy: EconomyConfig | None = None):
    clock = FakeClock()
    notifier = _make_notifier()
    audio = MagicMock()
    audio.play_cue = AsyncMock(return_value=True)
    credit = credit or AsyncMock()
    scheduler = VoiceSessionScheduler(
        economy or EconomyConfig(),
        STAGING,
        notifier,
        audio,
        credit,
        sleep=clock.sleep,
    )
    return scheduler, clock, notifier, audio, credit


def _event(previous: int | None, nxt: int | None, user_id: int = USER) -> PresenceTransition:
    return PresenceTransition(
        user_id=user_id,
        previous_channel_id=previous,
        next_channel_id=nxt,
        channel=_channel(nxt) if nxt is not None else None,
        member=SimpleNamespace(id=user_id),
        display_name="Ada",
    )


def _live_tick_tasks() -> list[asyncio.Task]:
    return [
        t for t in asyncio.all_tasks()
        if t.get_name().startswith("voice-session-") and not t.done()
    ]


# ===========================================================================
# Hourly credit
# ===========================================================================
class TestHourlyCredit:
    def test_sixty_minutes_pay_once(self):
        async def _inner():
            scheduler, clock, notifier, _, credit = _make_scheduler()
            assert await scheduler.handle_transition(_event(None, ROOM_A)) is Transition.JOIN

            await clock.advance(59)
            credit.assert_not_awaited()

            await clock.advance(1)
            credit.assert_awaited_once_with(USER, 1)
            progress = scheduler.get_session(USER).progress
            assert progress.session_counter == 2
            assert progress.coin_earned == 1
            await scheduler.shutdown()

        run_async(_inner())

    def test_progress_message_edited_each_tick(self):
        async def _inner():
            scheduler, clock, notifier, _, _ = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A))
            await clock.advance(3)
            assert notifier.edit.await_count == 3
            last_text = notifier.edit.await_args.args[1]
            assert "57" in last_text
            await scheduler.shutdown()

        run_async(_inner())

    def test_switch_keeps_the_hour(self):
        async def _inner():
            scheduler, clock, notifier, _, credit = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A))
            await clock.advance(35)
            first_message = scheduler.get_session(USER).message

            assert await scheduler.handle_transition(_event(ROOM_A, ROOM_B)) is Transition.SWITCH
            notifier.delete.assert_awaited_with(first_message)
            assert scheduler.get_session(USER).channel_id == ROOM_B

            await clock.advance(24)
            credit.assert_not_awaited()
            await clock.advance(1)
            credit.assert_awaited_once_with(USER, 1)
            assert scheduler.get_session(USER).progress.total_minutes == 60
            await scheduler.shutdown()

        run_async(_inner())

    def test_leave_stops_ticking(self):
        async def _inner():
            scheduler, clock, _, _, credit = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A))
            await clock.advance(30)
            assert await scheduler.handle_transition(_event(ROOM_A, None)) is Transition.LEAVE
            assert scheduler.active_sessions == 0

            await clock.advance(60)
            credit.assert_not_awaited()
            assert _live_tick_tasks() == []

        run_async(_inner())

    def test_rejoin_after_leave_starts_fresh(self):
        async def _inner():
            scheduler, clock, _, _, _ = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A))
            await clock.advance(30)
            await scheduler.handle_transition(_event(ROOM_A, None))
            await scheduler.handle_transition(_event(None, ROOM_A))
            assert scheduler.get_session(USER).progress.total_minutes == 0
            await scheduler.shutdown()

        run_async(_inner())


# ===========================================================================
# Event handling
# ===========================================================================
class TestTransitions:
    def test_mute_toggle_ignored(self):
        async def _inner():
            scheduler, clock, notifier, _, _ = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A))
            session = scheduler.get_session(USER)

            assert await scheduler.handle_transition(_event(ROOM_A, ROOM_A)) is Transition.NONE
            assert scheduler.get_session(USER) is session
            notifier.delete.assert_not_awaited()
            await scheduler.shutdown()

        run_async(_inner())

    def test_staging_channel_not_tracked(self):
        async def _inner():
            scheduler, clock, _, _, _ = _make_scheduler()
            assert await scheduler.handle_transition(_event(None, STAGING)) is Transition.NONE
            assert scheduler.active_sessions == 0

            assert await scheduler.handle_transition(_event(STAGING, ROOM_A)) is Transition.JOIN
            assert scheduler.live_timers(USER) == 1
            await scheduler.shutdown()

        run_async(_inner())

    def test_rapid_events_leave_one_timer(self):
        async def _inner():
            scheduler, clock, _, _, _ = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A))
            await scheduler.handle_transition(_event(ROOM_A, ROOM_B))
            await scheduler.handle_transition(_event(ROOM_B, ROOM_A))
            await scheduler.handle_transition(_event(None, ROOM_A))  # duplicate JOIN
            assert scheduler.live_timers(USER) == 1
            assert len(_live_tick_tasks()) == 1
            await scheduler.shutdown()

        run_async(_inner())

    def test_concurrent_burst_ends_cleanly(self):
        async def _inner():
            scheduler, clock, _, _, credit = _make_scheduler()
            await asyncio.gather(
                scheduler.handle_transition(_event(None, ROOM_A)),
                scheduler.handle_transition(_event(ROOM_A, ROOM_B)),
                scheduler.handle_transition(_event(ROOM_B, ROOM_A)),
                scheduler.handle_transition(_event(ROOM_A, None)),
            )
            assert scheduler.active_sessions == 0
            await clock.settle()
            assert _live_tick_tasks() == []

            assert scheduler.registry.lock_count == 0
            await clock.advance(60)
            credit.assert_not_awaited()

        run_async(_inner())

    def test_two_switches_in_one_sitting_pay_each_hour_once(self):
        async def _inner():
            scheduler, clock, _, _, credit = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A))
            await clock.advance(40)
            await scheduler.handle_transition(_event(ROOM_A, ROOM_B))
            await clock.advance(40)
            await scheduler.handle_transition(_event(ROOM_B, ROOM_A))
            await clock.advance(45)
            assert scheduler.live_timers(USER) == 1
            await scheduler.handle_transition(_event(ROOM_A, None))

            assert credit.await_args_list == [call(USER, 1), call(USER, 1)]
            await clock.settle()
            assert _live_tick_tasks() == []
            await clock.advance(60)
            assert credit.await_count == 2

        run_async(_inner())

    def test_lock_released_after_leave(self):
        async def _inner():
            scheduler, clock, _, _, _ = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A, user_id=1))
            await scheduler.handle_transition(_event(None, ROOM_A, user_id=2))
            await clock.advance(3)
            assert scheduler.registry.lock_count == 2

            await scheduler.handle_transition(_event(ROOM_A, None, user_id=1))
            assert scheduler.registry.lock_count == 1
            await scheduler.handle_transition(_event(ROOM_A, STAGING, user_id=2))
            assert scheduler.registry.lock_count == 0

            # A member who comes back gets a working lock again.
            await scheduler.handle_transition(_event(None, ROOM_B, user_id=1))
            assert scheduler.registry.lock_count == 1
            assert scheduler.live_timers(1) == 1
            await scheduler.shutdown()
            assert scheduler.registry.lock_count == 0

        run_async(_inner())

    def test_members_are_independent(self):
        async def _inner():
            scheduler, clock, _, _, credit = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A, user_id=1))
            await clock.advance(30)
            await scheduler.handle_transition(_event(None, ROOM_A, user_id=2))
            await clock.advance(30)
            credit.assert_awaited_once_with(1, 1)
            await clock.advance(30)
            assert credit.await_args_list == [call(1, 1), call(2, 1)]
            await scheduler.shutdown()

        run_async(_inner())


# ===========================================================================
# Milestones & hard cap
# ===========================================================================
class TestMilestones:
    def test_cues_fire_once_and_kick_at_cap(self):
        async def _inner():
            scheduler, clock, notifier, audio, credit = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A))

            await clock.advance(209)
            audio.play_cue.assert_not_awaited()
            await clock.advance(1)
            audio.play_cue.assert_awaited_once()
            assert audio.play_cue.await_args.args[1] == "30.mp3"

            await clock.advance(30)
            assert [c.args[1] for c in audio.play_cue.await_args_list] == ["30.mp3", "4.mp3"]
            assert credit.await_count == 4

            await clock.advance(4)
            notifier.disconnect_member.assert_not_awaited()
            await clock.advance(1)
            notifier.disconnect_member.assert_awaited_once()
            assert scheduler.live_timers(USER) == 0

            # The disconnect arrives as a LEAVE.
            await scheduler.handle_transition(_event(ROOM_A, None))
            assert scheduler.active_sessions == 0
            assert audio.play_cue.await_count == 2

        run_async(_inner())

    def test_rejoin_after_kick_starts_fresh(self):
        async def _inner():
            economy = EconomyConfig(hard_cap_minutes=5, session_minutes=60)
            scheduler, clock, notifier, _, _ = _make_scheduler(economy=economy)
            await scheduler.handle_transition(_event(None, ROOM_A))
            await clock.advance(5)
            notifier.disconnect_member.assert_awaited_once()

            # Rejoining before the LEAVE lands must not inherit the kicked presence.
            await scheduler.handle_transition(_event(ROOM_A, ROOM_B))
            assert scheduler.get_session(USER).progress.total_minutes == 0
            await scheduler.shutdown()

        run_async(_inner())

    def test_notifier_failure_does_not_stop_timer(self):
        async def _inner():
            scheduler, clock, notifier, _, credit = _make_scheduler()
            notifier.edit.side_effect = RuntimeError("discord down")
            await scheduler.handle_transition(_event(None, ROOM_A))
            await clock.advance(60)
            credit.assert_awaited_once_with(USER, 1)
            assert scheduler.live_timers(USER) == 1
            await scheduler.shutdown()

        run_async(_inner())


# ===========================================================================
# Credit retry
# ===========================================================================
class TestCreditRetry:
    def test_failed_credit_retried_next_tick(self):
        async def _inner():
            credit = AsyncMock(side_effect=[RuntimeError("db down"), None])
            scheduler, clock, _, _, _ = _make_scheduler(credit=credit)
            await scheduler.handle_transition(_event(None, ROOM_A))

            await clock.advance(60)
            assert scheduler.get_session(USER).progress.pending_credits == 1

            await clock.advance(1)
            assert credit.await_args_list == [call(USER, 1), call(USER, 1)]
            assert scheduler.get_session(USER).progress.pending_credits == 0
            await scheduler.shutdown()

        run_async(_inner())

    def test_pending_credit_flushed_on_leave(self):
        async def _inner():
            credit = AsyncMock(side_effect=[RuntimeError("db down"), None])
            scheduler, clock, _, _, _ = _make_scheduler(credit=credit)
            await scheduler.handle_transition(_event(None, ROOM_A))
            await clock.advance(60)

            await scheduler.handle_transition(_event(ROOM_A, None))
            assert credit.await_count == 2

        run_async(_inner())

    def test_pending_credit_survives_switch(self):
        async def _inner():
            credit = AsyncMock(side_effect=[RuntimeError("db down"), None])
            scheduler, clock, _, _, _ = _make_scheduler(credit=credit)
            await scheduler.handle_transition(_event(None, ROOM_A))
            await clock.advance(60)
            await scheduler.handle_transition(_event(ROOM_A, ROOM_B))
            assert scheduler.get_session(USER).progress.pending_credits == 1

            await clock.advance(1)
            assert credit.await_count == 2
            assert scheduler.get_session(USER).progress.pending_credits == 0
            await scheduler.shutdown()

        run_async(_inner())

    def test_shutdown_tears_down_everything(self):
        async def _inner():
            scheduler, clock, notifier, _, _ = _make_scheduler()
            await scheduler.handle_transition(_event(None, ROOM_A, user_id=1))
            await scheduler.handle_transition(_event(None, ROOM_B, user_id=2))
            await scheduler.shutdown()
            assert scheduler.active_sessions == 0
            assert _live_tick_tasks() == []
            assert notifier.delete.await_count == 2

        run_async(_inner())
