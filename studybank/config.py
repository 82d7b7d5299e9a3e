"""
studybank.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` into two immutable objects:

* :class:`StudybankConfig` — Discord identity, special channels, the
  check-in timezone and leaderboard exclusions.
* :class:`EconomyConfig` — the numbers that define the study economy
  (tick cadence, cycle length, milestone thresholds, reward amounts,
  audio cue files).  Every key is optional; missing keys fall back to
  the defaults below.

Secrets (``DISCORD_TOKEN``, ``DATABASE_URL``) never live here, they come
from ``.env``.

Usage::

    from studybank.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    print(cfg.staging_channel_id)
    print(cfg.economy.hard_cap_minutes)  # 245
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Economy tuning
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EconomyConfig:
    """Reward economy constants.

    Minutes are counted in ticks: one tick every ``tick_seconds``.
    """

    tick_seconds: float = 60.0
    session_minutes: int = 60
    break_warning_minutes: int = 210  # 3h30m reminder
    long_break_minutes: int = 240     # 4h reminder
    hard_cap_minutes: int = 245       # forced disconnect

    voice_hourly_reward: int = 1
    daily_checkin_reward: int = 1     # multiplied by the streak day
    invite_reward: int = 3

    audio_dir: str = "audio"
    break_warning_cue: str = "30.mp3"
    long_break_cue: str = "4.mp3"
    cue_cooldown_seconds: float = 300.0
    cue_max_seconds: float = 30.0

    @classmethod
    def from_mapping(cls, raw: dict | None) -> EconomyConfig:
        """Build from a (possibly partial) YAML mapping, ignoring unknown keys."""
        raw = raw or {}
        defaults = {f.name: f.default for f in fields(cls)}
        kwargs = {}
        for name, value in raw.items():
            if name not in defaults or value is None:
                continue
            kwargs[name] = type(defaults[name])(value)
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StudybankConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str
    guild_id: int
    admin_role_id: int

    # Voice rooms
    staging_channel_id: int | None = None   # "create a room" hop, never tracked
    welcome_channel_id: int | None = None

    # Check-ins are dated in this zone
    timezone: str = "UTC"

    # Hidden from leaderboards
    leaderboard_exclude_ids: tuple[int, ...] = ()

    # Dashboard API
    dashboard_port: int = 8000

    economy: EconomyConfig = field(default_factory=EconomyConfig)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def _optional_id(raw: dict, key: str) -> int | None:
    value = raw.get(key)
    return int(value) if value else None


def load_config(path: str | Path = "config.yaml") -> StudybankConfig:
    """Read *path* and return a :class:`StudybankConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return StudybankConfig(
        community_name=raw["community_name"],
        bot_prefix=raw["bot_prefix"],
        guild_id=int(raw["guild_id"]),
        admin_role_id=int(raw["admin_role_id"]),
        staging_channel_id=_optional_id(raw, "staging_channel_id"),
        welcome_channel_id=_optional_id(raw, "welcome_channel_id"),
        timezone=str(raw.get("timezone") or "UTC"),
        leaderboard_exclude_ids=tuple(
            int(uid) for uid in raw.get("leaderboard_exclude_ids") or ()
        ),
        dashboard_port=int(raw.get("dashboard_port", 8000)),
        economy=EconomyConfig.from_mapping(raw.get("economy")),
    )
