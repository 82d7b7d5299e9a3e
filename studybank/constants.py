"""
studybank.constants — Shared Constants & Helpers
=================================================

Single source of truth for presentation constants.
Import from here instead of duplicating in cogs, services, and the API.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Currency presentation
# ---------------------------------------------------------------------------
COIN_EMOJI = "\U0001fa99"       # 🪙
VIP_EMOJI = "\U0001f48e"        # 💎

CURRENCY_LABELS: dict[str, str] = {
    "coin": f"{COIN_EMOJI} coins",
    "vip": f"{VIP_EMOJI} VIP",
}

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

# Week days as returned by date.weekday()
SUNDAY = 6

# ---------------------------------------------------------------------------
# Leaderboard columns (accounts table)
# ---------------------------------------------------------------------------
LEADERBOARD_FIELDS: tuple[str, ...] = (
    "balance",
    "total_earned",
    "balance_vip",
    "total_earned_vip",
)


def format_amount(amount: int, currency: str = "coin") -> str:
    """Render ``12`` as ``"12 🪙 coins"``."""
    return f"{amount:,} {CURRENCY_LABELS.get(currency, currency)}"


def rank_prefix(index: int) -> str:
    """Medal for the top three, ``#n`` below that (0-based *index*)."""
    if index < len(RANK_BADGES):
        return RANK_BADGES[index]
    return f"#{index + 1}"
