"""
studybank.engine.voice_session — Study Session Arithmetic
==========================================================

Pure calculation for the voice session scheduler.
No Discord I/O, no DB I/O inside the engine.

Two pieces:

* :func:`classify_transition` turns a ``(previous, next)`` channel pair
  into JOIN / SWITCH / LEAVE / NONE.  The staging channel (the "create a
  room" hop) is never tracked, so passing through it is neither a leave
  nor a join boundary.
* :func:`advance_minute` applies one minute of presence to a
  :class:`VoiceProgress` and reports what the scheduler must do about it:
  kick at the hard cap, fire a milestone, or pay out a completed cycle.

Progress belongs to the presence, not to the channel: a switch carries
the same :class:`VoiceProgress` into the new room, so a member who moves
at minute 35 is paid at cumulative minute 60.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from studybank.config import EconomyConfig


class Transition(enum.StrEnum):
    """What a voice-state change means for study tracking."""
    JOIN = "join"
    SWITCH = "switch"
    LEAVE = "leave"
    NONE = "none"


class Milestone(enum.StrEnum):
    """Fire-once reminders within one presence."""
    BREAK_WARNING = "break_warning"
    LONG_BREAK = "long_break"


def _trackable(channel_id: int | None, staging_channel_id: int | None) -> bool:
    return channel_id is not None and channel_id != staging_channel_id


def classify_transition(
    previous_channel_id: int | None,
    next_channel_id: int | None,
    staging_channel_id: int | None,
) -> Transition:
    """Classify a voice-state change.

    >>> classify_transition(None, 10, 1)
    <Transition.JOIN: 'join'>
    >>> classify_transition(1, 10, 1)      # staging hop into a room
    <Transition.JOIN: 'join'>
    >>> classify_transition(10, 11, 1)
    <Transition.SWITCH: 'switch'>
    >>> classify_transition(10, 1, 1)
    <Transition.LEAVE: 'leave'>
    """
    if previous_channel_id == next_channel_id:
        return Transition.NONE

    was_tracked = _trackable(previous_channel_id, staging_channel_id)
    is_tracked = _trackable(next_channel_id, staging_channel_id)

    if is_tracked and not was_tracked:
        return Transition.JOIN
    if is_tracked and was_tracked:
        return Transition.SWITCH
    if was_tracked:
        return Transition.LEAVE
    return Transition.NONE


# ---------------------------------------------------------------------------
# Per-presence progress
# ---------------------------------------------------------------------------
@dataclass
class VoiceProgress:
    """Counters for one continuous presence, surviving channel switches."""

    session_counter: int = 1        # 1-based: the cycle currently running
    total_minutes: int = 0
    minutes_in_cycle: int = 0
    coin_earned: int = 0
    break_warning_fired: bool = False
    long_break_fired: bool = False
    pending_credits: int = 0        # earned but not yet written to the ledger

    def minutes_left(self, session_minutes: int) -> int:
        return max(session_minutes - self.minutes_in_cycle, 0)


@dataclass(frozen=True, slots=True)
class TickOutcome:
    """What one minute of presence produced."""

    kick: bool = False
    milestone: Milestone | None = None
    cycle_completed: bool = False
    reward: int = 0
    minutes_left: int = 0


def advance_minute(progress: VoiceProgress, economy: EconomyConfig) -> TickOutcome:
    """Apply one minute to *progress* (mutated in place).

    Order matters: the hard cap wins over everything else that minute,
    milestones fire at most once per presence, and a completed cycle
    bumps the counters before the next minute starts.
    """
    progress.total_minutes += 1
    progress.minutes_in_cycle += 1

    if progress.total_minutes >= economy.hard_cap_minutes:
        return TickOutcome(
            kick=True,
            minutes_left=progress.minutes_left(economy.session_minutes),
        )

    milestone: Milestone | None = None
    if (
        progress.total_minutes == economy.break_warning_minutes
        and not progress.break_warning_fired
    ):
        progress.break_warning_fired = True
        milestone = Milestone.BREAK_WARNING
    elif (
        progress.total_minutes == economy.long_break_minutes
        and not progress.long_break_fired
    ):
        progress.long_break_fired = True
        milestone = Milestone.LONG_BREAK

    if progress.minutes_in_cycle >= economy.session_minutes:
        reward = economy.voice_hourly_reward
        progress.coin_earned += reward
        progress.session_counter += 1
        progress.minutes_in_cycle = 0
        return TickOutcome(
            milestone=milestone,
            cycle_completed=True,
            reward=reward,
            minutes_left=economy.session_minutes,
        )

    return TickOutcome(
        milestone=milestone,
        minutes_left=progress.minutes_left(economy.session_minutes),
    )
