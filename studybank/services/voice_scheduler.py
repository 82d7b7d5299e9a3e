"""
studybank.services.voice_scheduler — Voice Study Session Scheduler
===================================================================

Owns one :class:`VoiceSession` per member currently studying in voice and
drives it one minute at a time:

    voice-state event ─▶ handle_transition ─▶ tear down old session
                                              └▶ JOIN / SWITCH: new session + tick task
    tick task ─▶ every ``tick_seconds``: advance_minute ─▶ edit progress message
                                                      ├▶ milestone: audio cue + notice
                                                      ├▶ cycle done: credit ledger
                                                      └▶ hard cap: kick

Teardown-before-create
----------------------
Every event for a member starts by tearing down whatever session that
member already has: cancel its tick task, wait for it to finish, delete
its progress message.  Only then is the event classified.  Combined with
the per-member :class:`asyncio.Lock` (held by the event handler and by
every tick), this guarantees at most one live tick task per member, no
matter how events are duplicated or reordered by the gateway.

A SWITCH (or a duplicate JOIN) carries the torn-down session's
:class:`~studybank.engine.voice_session.VoiceProgress` into the new one,
so switching rooms never resets the hour in progress.

Failures inside a tick are logged and never stop the timer.  A failed
ledger credit is remembered in ``pending_credits`` and retried at the
start of every following tick, and one last time when the member leaves.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from studybank.engine.voice_session import (
    Milestone,
    Transition,
    VoiceProgress,
    advance_minute,
    classify_transition,
)
from studybank.services import messages

if TYPE_CHECKING:
    from studybank.config import EconomyConfig
    from studybank.services.audio_service import CuePlayer
    from studybank.services.notifier import Notifier

logger = logging.getLogger(__name__)

# (user_id, amount) → writes a voice_earn credit
CreditFunc = Callable[[int, int], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Events & state
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PresenceTransition:
    """One voice-state change for one member."""

    user_id: int
    previous_channel_id: int | None
    next_channel_id: int | None
    channel: Any = None          # the channel being entered, if any
    member: Any = None
    display_name: str = ""


@dataclass
class VoiceSession:
    """Live state of one member's presence in a trackable room."""

    user_id: int
    display_name: str
    channel: Any
    member: Any
    progress: VoiceProgress = field(default_factory=VoiceProgress)
    task: asyncio.Task | None = None
    message: Any = None
    kicked: bool = False

    @property
    def channel_id(self) -> int | None:
        return getattr(self.channel, "id", None)


class SessionRegistry:
    """``user_id → VoiceSession`` plus one lock per member.

    A member's lock lives while they have a session or someone holds or
    waits on it, so members who left do not keep a lock around.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, VoiceSession] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._holders: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._sessions

    @asynccontextmanager
    async def hold(self, user_id: int) -> AsyncIterator[None]:
        """Serialize work for *user_id*."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._holders[user_id] = self._holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[user_id] -= 1
            if not self._holders[user_id]:
                del self._holders[user_id]
                if user_id not in self._sessions:
                    del self._locks[user_id]

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    def get(self, user_id: int) -> VoiceSession | None:
        return self._sessions.get(user_id)

    def put(self, session: VoiceSession) -> None:
        self._sessions[session.user_id] = session

    def pop(self, user_id: int) -> VoiceSession | None:
        return self._sessions.pop(user_id, None)

    def user_ids(self) -> list[int]:
        return list(self._sessions)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------
class VoiceSessionScheduler:
    """Turns voice presence into study minutes and hourly coins.

    Parameters
    ----------
    economy:
        Tick cadence, thresholds and reward amounts.
    staging_channel_id:
        The "create a room" hop; never tracked.
    notifier:
        Send / edit / delete / disconnect capability.
    audio:
        Plays milestone cues.
    credit:
        ``await credit(user_id, amount)`` writes a ``voice_earn`` credit.
    registry:
        Session store; a fresh one is created if omitted.
    sleep:
        Awaitable used between ticks.  Tests substitute a fake clock.
    """

    def __init__(
        self,
        economy: EconomyConfig,
        staging_channel_id: int | None,
        notifier: Notifier,
        audio: CuePlayer,
        credit: CreditFunc,
        *,
        registry: SessionRegistry | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.economy = economy
        self.staging_channel_id = staging_channel_id
        self.notifier = notifier
        self.audio = audio
        self.credit = credit
        self.registry = registry if registry is not None else SessionRegistry()
        self._sleep = sleep

    # -----------------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------------
    @property
    def active_sessions(self) -> int:
        return len(self.registry)

    def get_session(self, user_id: int) -> VoiceSession | None:
        return self.registry.get(user_id)

    def live_timers(self, user_id: int) -> int:
        """Number of running tick tasks for *user_id* (0 or 1)."""
        session = self.registry.get(user_id)
        if session is None or session.task is None or session.task.done():
            return 0
        return 1

    # -----------------------------------------------------------------------
    # Events
    # -----------------------------------------------------------------------
    async def handle_transition(self, event: PresenceTransition) -> Transition:
        """Apply one voice-state change.  Returns how it was classified."""
        if event.previous_channel_id == event.next_channel_id:
            # Mute, deafen, stream toggles: same room, nothing to do.
            return Transition.NONE

        async with self.registry.hold(event.user_id):
            previous = await self._teardown(event.user_id)
            transition = classify_transition(
                event.previous_channel_id,
                event.next_channel_id,
                self.staging_channel_id,
            )

            if transition in (Transition.JOIN, Transition.SWITCH) and event.channel is not None:
                progress = VoiceProgress()
                if previous is not None and not previous.kicked:
                    progress = previous.progress
                elif previous is not None:
                    progress.pending_credits = previous.progress.pending_credits
                await self._start(event, progress, switched=transition is Transition.SWITCH)
            elif previous is not None:
                await self._flush_pending(previous)
                logger.info(
                    "Voice session ended for %s: %d min, %d coin",
                    event.user_id,
                    previous.progress.total_minutes,
                    previous.progress.coin_earned,
                )

        logger.debug("Voice transition %s for %s", transition, event.user_id)
        return transition

    async def shutdown(self) -> None:
        """Tear down every session (bot shutdown)."""
        for user_id in self.registry.user_ids():
            async with self.registry.hold(user_id):
                session = await self._teardown(user_id)
                if session is not None:
                    await self._flush_pending(session)
        logger.info("Voice scheduler stopped")

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    async def _start(self, event: PresenceTransition, progress: VoiceProgress, *, switched: bool) -> None:
        session = VoiceSession(
            user_id=event.user_id,
            display_name=event.display_name or str(event.user_id),
            channel=event.channel,
            member=event.member,
            progress=progress,
        )
        self.registry.put(session)

        if switched:
            text = messages.welcome_switch(
                session.display_name, getattr(event.channel, "name", "another room")
            )
        else:
            text = messages.welcome(
                session.display_name,
                self.economy.voice_hourly_reward,
                self.economy.session_minutes,
            )
        try:
            session.message = await self.notifier.send(session.channel, text)
        except Exception:
            logger.warning("Could not send welcome to %s", event.user_id, exc_info=True)

        session.task = asyncio.create_task(
            self._run(session), name=f"voice-session-{event.user_id}"
        )
        logger.info(
            "Voice session %s for %s in %s (%d min so far)",
            "moved" if switched else "started",
            event.user_id,
            session.channel_id,
            progress.total_minutes,
        )

    async def _teardown(self, user_id: int) -> VoiceSession | None:
        """Stop and remove *user_id*'s session.  Caller holds the user's lock."""
        session = self.registry.pop(user_id)
        if session is None:
            return None

        task = session.task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.wait({task})

        if session.message is not None:
            try:
                await self.notifier.delete(session.message)
            except Exception:
                logger.warning("Could not delete progress message for %s", user_id, exc_info=True)
            session.message = None
        return session

    # -----------------------------------------------------------------------
    # Ticking
    # -----------------------------------------------------------------------
    async def _run(self, session: VoiceSession) -> None:
        while True:
            await self._sleep(self.economy.tick_seconds)
            async with self.registry.hold(session.user_id):
                if self.registry.get(session.user_id) is not session:
                    return
                try:
                    keep_going = await self._tick(session)
                except Exception:
                    logger.exception("Voice tick failed for %s", session.user_id)
                    keep_going = True
            if not keep_going:
                return

    async def _tick(self, session: VoiceSession) -> bool:
        """One minute of presence.  Returns ``False`` once the session must stop."""
        progress = session.progress
        if progress.pending_credits:
            await self._flush_pending(session)

        outcome = advance_minute(progress, self.economy)

        if outcome.kick:
            await self._kick(session)
            return False

        if outcome.milestone is Milestone.BREAK_WARNING:
            await self._play_cue(session, self.economy.break_warning_cue)
            text = messages.break_warning(
                session.display_name,
                progress.total_minutes,
                self.economy.long_break_minutes - progress.total_minutes,
            )
        elif outcome.milestone is Milestone.LONG_BREAK:
            await self._play_cue(session, self.economy.long_break_cue)
            text = messages.long_break(
                session.display_name, progress.coin_earned, progress.total_minutes
            )
        else:
            text = messages.countdown(
                session.display_name, outcome.minutes_left, progress.session_counter
            )
        await self._show(session, text)

        if outcome.cycle_completed:
            await self._pay(session, outcome.reward)
            try:
                await self.notifier.send(
                    session.channel,
                    messages.session_complete(
                        session.display_name, outcome.reward, progress.coin_earned
                    ),
                )
            except Exception:
                logger.warning("Could not send completion notice to %s", session.user_id, exc_info=True)
            logger.info(
                "User %s completed session #%d, total %d min",
                session.user_id, progress.session_counter - 1, progress.total_minutes,
            )
        return True

    async def _show(self, session: VoiceSession, text: str) -> None:
        try:
            if session.message is None:
                session.message = await self.notifier.send(session.channel, text)
            else:
                await self.notifier.edit(session.message, text)
        except Exception:
            logger.warning("Could not update progress message for %s", session.user_id, exc_info=True)

    async def _play_cue(self, session: VoiceSession, cue_id: str) -> None:
        try:
            await self.audio.play_cue(session.channel, cue_id)
        except Exception:
            logger.warning("Could not play cue %s for %s", cue_id, session.user_id, exc_info=True)

    async def _kick(self, session: VoiceSession) -> None:
        total = session.progress.total_minutes
        try:
            await self.notifier.send(
                session.channel, messages.kick_notice(session.display_name, total)
            )
        except Exception:
            logger.warning("Could not send kick notice to %s", session.user_id, exc_info=True)

        session.kicked = True
        try:
            await self.notifier.disconnect_member(
                session.member, f"Studied {total} minutes without a break"
            )
            logger.info("Disconnected %s after %d minutes", session.user_id, total)
        except Exception:
            logger.warning("Could not disconnect %s", session.user_id, exc_info=True)

    # -----------------------------------------------------------------------
    # Credits
    # -----------------------------------------------------------------------
    async def _pay(self, session: VoiceSession, amount: int) -> None:
        try:
            await self.credit(session.user_id, amount)
        except Exception:
            session.progress.pending_credits += amount
            logger.error(
                "Voice credit of %d for %s failed; will retry next tick",
                amount, session.user_id, exc_info=True,
            )

    async def _flush_pending(self, session: VoiceSession) -> None:
        owed = session.progress.pending_credits
        if not owed:
            return
        try:
            await self.credit(session.user_id, owed)
        except Exception:
            logger.error("Retry of %d pending coin for %s failed", owed, session.user_id, exc_info=True)
            return
        session.progress.pending_credits = 0
        logger.info("Paid %d pending coin to %s", owed, session.user_id)
