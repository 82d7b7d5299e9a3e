"""
studybank.bot.cogs.voice — Voice Presence → Study Sessions
===========================================================

Feeds every ``on_voice_state_update`` into the bot's
:class:`~studybank.services.voice_scheduler.VoiceSessionScheduler`.
All timing, counting and paying happens there; this Cog only translates
discord.py objects and exposes ``/study`` so members can see their timer.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from studybank.services.voice_scheduler import PresenceTransition

if TYPE_CHECKING:
    from studybank.bot.core import StudybankBot

logger = logging.getLogger(__name__)


def presence_from_voice_states(
    member: discord.Member,
    before: discord.VoiceState,
    after: discord.VoiceState,
) -> PresenceTransition:
    """Build the scheduler's event from a discord.py voice-state pair."""
    return PresenceTransition(
        user_id=member.id,
        previous_channel_id=before.channel.id if before.channel else None,
        next_channel_id=after.channel.id if after.channel else None,
        channel=after.channel,
        member=member,
        display_name=member.display_name,
    )


class Voice(commands.Cog, name="Voice"):
    """Tracks study time in voice rooms."""

    def __init__(self, bot: StudybankBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if member.bot:
            return
        before_ch = getattr(before.channel, "name", "None")
        after_ch = getattr(after.channel, "name", "None")
        logger.debug("Voice state %s: %s → %s", member.name, before_ch, after_ch)
        try:
            await self.bot.scheduler.handle_transition(
                presence_from_voice_states(member, before, after)
            )
        except Exception:
            logger.exception("Error processing voice state update for user %s", member.id)

    # -------------------------------------------------------------------
    # /study
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="study",
        description="See how long you've been studying in voice.",
    )
    async def study(self, ctx: commands.Context) -> None:
        session = self.bot.scheduler.get_session(ctx.author.id)
        if session is None:
            await ctx.send(
                "\U0001f3a7 You're not in a study room right now. Join one to start the timer!",
                ephemeral=True,
            )
            return

        economy = self.bot.cfg.economy
        progress = session.progress
        embed = discord.Embed(
            title=f"\U0001f4da {ctx.author.display_name}'s study session",
            color=discord.Color.blurple(),
        )
        embed.add_field(
            name="Studied",
            value=f"{progress.total_minutes // 60}h{progress.total_minutes % 60:02d}m",
        )
        embed.add_field(name="Cycle", value=f"#{progress.session_counter}")
        embed.add_field(
            name="Next coin in",
            value=f"{progress.minutes_left(economy.session_minutes)} min",
        )
        embed.add_field(name="Earned this sitting", value=str(progress.coin_earned))
        embed.set_footer(
            text=f"Sessions end automatically after {economy.hard_cap_minutes} minutes."
        )
        await ctx.send(embed=embed, ephemeral=True)


async def setup(bot: StudybankBot) -> None:
    await bot.add_cog(Voice(bot))
