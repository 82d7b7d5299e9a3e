"""
studybank.services.messages — Study Session Message Text
=========================================================

Plain-text builders for the live progress message and the notices the
scheduler sends.  Kept free of Discord types so the scheduler tests can
assert on exact strings.
"""

from __future__ import annotations

from studybank.constants import COIN_EMOJI, CURRENCY_LABELS
from studybank.services import errors


def _hours_minutes(total_minutes: int) -> str:
    return f"{total_minutes // 60}h{total_minutes % 60:02d}m"


def welcome(display_name: str, reward: int = 1, session_minutes: int = 60) -> str:
    return (
        f"\U0001f44b Welcome to the study room, {display_name}! "
        f"Every {session_minutes} minutes in voice earns you {reward} {COIN_EMOJI}."
    )


def welcome_switch(display_name: str, channel_name: str) -> str:
    return (
        f"\U0001f504 {display_name} moved to **{channel_name}**. "
        "Your study timer keeps running!"
    )


def countdown(display_name: str, minutes_left: int, session_counter: int) -> str:
    return (
        f"\U0001f4da {display_name}, session #{session_counter}: "
        f"{minutes_left} minute{'s' if minutes_left != 1 else ''} until your next {COIN_EMOJI}."
    )


def session_complete(display_name: str, reward: int, coin_earned: int) -> str:
    return (
        f"\U0001f389 {display_name} +{reward} {COIN_EMOJI}! Study session complete "
        f"({coin_earned} earned this sitting)."
    )


def break_warning(display_name: str, total_minutes: int, minutes_until_break: int) -> str:
    return (
        f"⏰ {display_name}, you have studied for {_hours_minutes(total_minutes)}. "
        f"{minutes_until_break} more minutes until your break."
    )


def long_break(display_name: str, coin_earned: int, total_minutes: int) -> str:
    return (
        f"\U0001f33f Well done {display_name}: {_hours_minutes(total_minutes)} of continuous "
        f"study and {coin_earned} {COIN_EMOJI} earned this sitting. "
        "Time to take a real break and go touch some grass!"
    )


def kick_notice(display_name: str, total_minutes: int) -> str:
    return (
        f"\U0001f6d1 **{display_name}, that's {_hours_minutes(total_minutes)} without a break.** "
        "You've been disconnected so you can rest. Come back refreshed!"
    )


# ---------------------------------------------------------------------------
# Ledger errors → user-facing replies
# ---------------------------------------------------------------------------
def ledger_error(exc: Exception) -> str:
    """Short explanation of a ledger failure for an ephemeral reply."""
    if isinstance(exc, errors.InsufficientFunds):
        return (
            f"❌ Not enough {CURRENCY_LABELS.get(str(exc.currency), exc.currency)}: "
            f"you have {exc.available:,}, this needs {exc.requested:,}."
        )
    if isinstance(exc, errors.FundNotFound):
        return f"❌ There is no fund called **{exc.fund_name}**. Try `/fund-list`."
    if isinstance(exc, errors.FundAlreadyExists):
        return f"❌ A fund called **{exc.fund_name}** already exists."
    if isinstance(exc, errors.AlreadyCheckedInToday):
        return (
            f"\U0001f4c5 You already checked in today (day {exc.current_streak} of your streak). "
            "Come back tomorrow!"
        )
    if isinstance(exc, errors.AccountNotFound):
        return "\U0001f50d No wallet yet: join a study room or check in to start earning."
    if isinstance(exc, errors.InvalidAmount):
        return f"❌ {exc}"
    return "⚠️ Something went wrong talking to the bank. Please try again shortly."
