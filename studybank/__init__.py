"""
Studybank — A Study-Time Economy for Discord Communities
=========================================================
Rewards members with coins for time spent studying together in voice
rooms, for daily check-ins and for bringing new members in.  Coins (and
the secondary VIP currency) can be gifted between members or donated to
shared community funds.  Every balance change is written to an
append-only ledger.

Package layout::

    studybank/
    ├── config.py            # YAML → typed Python config
    ├── constants.py         # Currency labels, rank badges
    ├── database/
    │   ├── engine.py        # SQLAlchemy engine + async helper
    │   ├── models.py        # All ORM models
    │   └── repository.py    # Atomic unit of work over one transaction
    ├── engine/
    │   ├── streak.py        # Daily check-in streak rules
    │   └── voice_session.py # Presence classification + minute ticks
    ├── services/
    │   ├── ledger_service.py    # Every balance mutation goes through here
    │   ├── fund_service.py      # Shared funds and donations
    │   ├── invite_service.py    # Invite tracking + inviter rewards
    │   ├── voice_scheduler.py   # Per-user study session timers
    │   ├── notifier.py          # Send/edit/delete/disconnect capability
    │   ├── audio_service.py     # Voice cue playback with cooldown
    │   └── messages.py          # Plain-text session messages
    ├── bot/
    │   ├── core.py          # Bot subclass, cog loader
    │   └── cogs/            # voice, economy, funds, invites, admin
    └── api/
        ├── main.py          # FastAPI app (read-only)
        └── routes/          # Public REST endpoints
"""

__version__ = "0.1.0"
