"""
studybank.bot.core — Bot Instance & Cog Loader
===============================================

Defines :class:`StudybankBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``)
   so every Cog can reach them via ``self.bot.cfg`` / ``self.bot.engine``.
2. Owns the long-lived collaborators: the voice session scheduler, the
   audio cue player and the invite use-count cache.
3. Loads every Cog listed in :data:`EXTENSIONS`.
4. Syncs the slash-command tree on startup (guild-scoped for dev, global
   for production, controlled by the ``DEV_GUILD_ID`` env var).
5. Tears the scheduler down cleanly on shutdown so no timer outlives it.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from studybank.config import StudybankConfig
from studybank.database.engine import run_db
from studybank.database.models import LedgerKind
from studybank.services.audio_service import VoiceCuePlayer
from studybank.services.invite_service import InviteTracker
from studybank.services.ledger_service import credit_earning
from studybank.services.notifier import DiscordNotifier
from studybank.services.voice_scheduler import SessionRegistry, VoiceSessionScheduler

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "studybank.bot.cogs.voice",
    "studybank.bot.cogs.economy",
    "studybank.bot.cogs.funds",
    "studybank.bot.cogs.invites",
    "studybank.bot.cogs.admin",
]


class StudybankBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`StudybankConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: StudybankConfig, engine: Engine) -> None:
        intents = discord.Intents.default()   # includes GUILD_VOICE_STATES, GUILD_INVITES
        intents.members = True                # Privileged: member join for invite rewards
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} study bank",
            activity=discord.Game(name="Join a voice room and study!"),
        )

        self.cfg = cfg
        self.engine = engine

        self.audio = VoiceCuePlayer(
            cfg.economy.audio_dir,
            cooldown_seconds=cfg.economy.cue_cooldown_seconds,
            max_seconds=cfg.economy.cue_max_seconds,
        )
        self.scheduler = VoiceSessionScheduler(
            cfg.economy,
            cfg.staging_channel_id,
            DiscordNotifier(),
            self.audio,
            self.credit_voice_earning,
            registry=SessionRegistry(),
        )
        self.invite_tracker = InviteTracker()

    async def credit_voice_earning(self, user_id: int, amount: int) -> None:
        """Ledger credit for one completed study cycle."""
        await run_db(
            credit_earning,
            self.engine,
            user_id,
            amount,
            LedgerKind.VOICE_EARN,
            "Voice study session",
        )

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions.  One broken Cog shouldn't take down the bot."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        guild = self.get_guild(self.cfg.guild_id)
        if guild is not None:
            logger.info("Serving %s (%d members)", guild.name, guild.member_count or 0)
        else:
            logger.warning("Primary guild %d not found", self.cfg.guild_id)

    async def close(self) -> None:
        """Graceful shutdown: stop every study timer, then disconnect."""
        logger.info("Bot shutting down…")
        await self.scheduler.shutdown()
        await self.audio.close()
        await super().close()
