"""
studybank.bot.cogs.invites — Invite Rewards
============================================

Pays the inviter when a new member joins through their invite link.

- on_ready / on_invite_create / on_invite_delete keep the use-count cache
  and the ``invites`` table current.
- on_member_join diffs the counts to find the invite that was used,
  resolves the inviter (recorded inviter first) and pays them once.
- /invite hands the member a private 7-day, unlimited-use link and
  records them as its inviter.
- /invite-stats, /invite-leaderboard

Needs the GUILD_MEMBERS intent and the Manage Server permission (to list
invites).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import discord
from discord import app_commands
from discord.ext import commands

from studybank.constants import format_amount, rank_prefix
from studybank.database.engine import run_db
from studybank.services.errors import StorageError
from studybank.services.invite_service import (
    InviteSnapshot,
    get_invite_leaderboard,
    get_invite_stats,
    resolve_inviter,
    reward_inviter,
    sync_invites,
)

if TYPE_CHECKING:
    from studybank.bot.core import StudybankBot

logger = logging.getLogger(__name__)

INVITE_MAX_AGE = 7 * 24 * 60 * 60  # seconds


def pick_invite_channel(guild: Any) -> Any | None:
    """The system channel, else the first text channel the bot can invite from."""
    me = guild.me
    for channel in (guild.system_channel, *guild.text_channels):
        if channel is not None and channel.permissions_for(me).create_instant_invite:
            return channel
    return None


class Invites(commands.Cog, name="Invites"):
    """Invite tracking and inviter rewards."""

    def __init__(self, bot: StudybankBot) -> None:
        self.bot = bot

    async def _fetch_invites(self, guild: discord.Guild) -> list[InviteSnapshot]:
        return [InviteSnapshot.from_discord(inv) for inv in await guild.invites()]

    # -------------------------------------------------------------------
    # Cache maintenance
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_ready(self) -> None:
        guild = self.bot.get_guild(self.bot.cfg.guild_id)
        if guild is None:
            return
        try:
            invites = await self._fetch_invites(guild)
            self.bot.invite_tracker.initialize(invites)
            await run_db(sync_invites, self.bot.engine, invites)
        except discord.Forbidden:
            logger.warning("Missing Manage Server permission; invite rewards disabled")
        except Exception:
            logger.exception("Failed to initialize invite cache")

    @commands.Cog.listener()
    async def on_invite_create(self, invite: discord.Invite) -> None:
        try:
            snapshot = InviteSnapshot.from_discord(invite)
            self.bot.invite_tracker.remember(snapshot)
            await run_db(sync_invites, self.bot.engine, [snapshot])
        except Exception:
            logger.exception("Error recording new invite %s", invite.code)

    @commands.Cog.listener()
    async def on_invite_delete(self, invite: discord.Invite) -> None:
        self.bot.invite_tracker.forget(invite.code)

    # -------------------------------------------------------------------
    # Rewards
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot or member.guild.id != self.bot.cfg.guild_id:
            return
        try:
            await self._handle_join(member)
        except Exception:
            logger.exception("Error processing invite reward for %s", member.id)

    async def _handle_join(self, member: discord.Member) -> None:
        tracker = self.bot.invite_tracker
        if not tracker.initialized:
            logger.warning("Invite cache not initialized; skipping reward for %s", member.id)
            return

        invites = await self._fetch_invites(member.guild)
        used = tracker.find_used_invite(invites)
        await run_db(sync_invites, self.bot.engine, invites)

        welcome = self.bot.get_channel(self.bot.cfg.welcome_channel_id or 0)
        if used is None:
            if welcome is not None:
                await welcome.send(f"\U0001f389 Welcome {member.mention} to {member.guild.name}!")
            return

        inviter_id = await run_db(resolve_inviter, self.bot.engine, used.code, used.inviter_id)
        inviter = member.guild.get_member(inviter_id) if inviter_id else None
        if inviter is None or inviter.bot:
            logger.info("Invite %s has no rewardable inviter", used.code)
            if welcome is not None:
                await welcome.send(f"\U0001f389 Welcome {member.mention} to {member.guild.name}!")
            return

        amount = self.bot.cfg.economy.invite_reward
        rewarded = await run_db(
            reward_inviter,
            self.bot.engine,
            inviter.id,
            member.id,
            used.code,
            amount,
            invitee_name=str(member),
            invite_uses=used.uses,
        )

        if welcome is not None:
            bonus = f" (+{format_amount(amount)})" if rewarded else ""
            await welcome.send(
                f"\U0001f389 Welcome {member.mention} to {member.guild.name}!\n"
                f"Invited by {inviter.mention}{bonus} · code `{used.code}`"
            )
        if rewarded:
            try:
                await inviter.send(
                    f"\U0001f381 You earned {format_amount(amount)} for inviting "
                    f"**{member}** to {member.guild.name}! (code `{used.code}`)"
                )
            except discord.HTTPException:
                logger.debug("Could not DM inviter %s", inviter.id)

    # -------------------------------------------------------------------
    # /invite
    # -------------------------------------------------------------------
    @app_commands.command(name="invite", description="Get your own invite link and earn coins for every member who joins.")
    @app_commands.guild_only()
    async def invite(self, interaction: discord.Interaction) -> None:
        member = interaction.user
        if not member.guild_permissions.create_instant_invite:
            await interaction.response.send_message(
                "❌ You don't have permission to create invite links.", ephemeral=True
            )
            return
        channel = pick_invite_channel(interaction.guild)
        if channel is None:
            await interaction.response.send_message(
                "❌ There is no channel I can create an invite in.", ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        try:
            invite = await channel.create_invite(
                max_age=INVITE_MAX_AGE,
                max_uses=0,
                unique=True,
                reason=f"Referral link for {member}",
            )
        except discord.HTTPException:
            logger.warning("Could not create an invite for %s", member.id, exc_info=True)
            await interaction.followup.send(
                "❌ Couldn't create an invite link. The server may have reached its "
                "invite limit, or I'm missing the Create Invite permission.",
                ephemeral=True,
            )
            return

        snapshot = replace(InviteSnapshot.from_discord(invite), inviter_id=member.id)
        self.bot.invite_tracker.remember(snapshot)
        try:
            await run_db(sync_invites, self.bot.engine, [snapshot], claim=True)
        except StorageError:
            # on_invite_create may have inserted the row first; claim it again.
            await run_db(sync_invites, self.bot.engine, [snapshot], claim=True)
        logger.info("%s created invite %s", member.id, invite.code)

        amount = self.bot.cfg.economy.invite_reward
        embed = discord.Embed(
            title="\U0001f517 Your invite link",
            description=(
                f"**{invite.url}**\n\n"
                f"Share it with friends and earn {format_amount(amount)} "
                "for every member who joins."
            ),
            color=discord.Color.green(),
        )
        embed.add_field(name="Code", value=f"`{invite.code}`")
        if invite.expires_at is not None:
            embed.add_field(name="Expires", value=discord.utils.format_dt(invite.expires_at, "R"))
        embed.set_footer(text="Unlimited uses · valid for 7 days")
        await interaction.followup.send(embed=embed, ephemeral=True)

    # -------------------------------------------------------------------
    # /invite-stats
    # -------------------------------------------------------------------
    @app_commands.command(name="invite-stats", description="Invite statistics for you or another member.")
    @app_commands.describe(member="The member to look up (defaults to you)")
    async def invite_stats(
        self, interaction: discord.Interaction, member: discord.Member | None = None
    ) -> None:
        target = member or interaction.user
        stats = await run_db(get_invite_stats, self.bot.engine, target.id)

        embed = discord.Embed(
            title=f"\U0001f4e8 {target.display_name}'s invites",
            color=discord.Color.green(),
        )
        embed.add_field(name="Members invited", value=str(stats.total_invites))
        embed.add_field(name="Earned", value=format_amount(stats.total_rewards))
        if stats.invites:
            lines = []
            for inv in stats.invites[:5]:
                uses = f"{inv.uses}/{inv.max_uses}" if inv.max_uses else str(inv.uses)
                expires = (
                    discord.utils.format_dt(inv.expires_at, "R") if inv.expires_at else "never"
                )
                lines.append(f"`{inv.code}` · {uses} uses · expires {expires}")
            embed.add_field(name="Invite links", value="\n".join(lines), inline=False)
        await interaction.response.send_message(
            embed=embed, ephemeral=target.id == interaction.user.id
        )

    # -------------------------------------------------------------------
    # /invite-leaderboard
    # -------------------------------------------------------------------
    @app_commands.command(name="invite-leaderboard", description="Top inviters.")
    async def invite_leaderboard(self, interaction: discord.Interaction) -> None:
        rows = await run_db(get_invite_leaderboard, self.bot.engine, 10)
        if not rows:
            await interaction.response.send_message("\U0001f4ed No invite rewards yet.", ephemeral=True)
            return
        guild = interaction.guild
        lines = []
        for i, row in enumerate(rows):
            m = guild.get_member(row.inviter_id) if guild else None
            who = m.display_name if m else f"<@{row.inviter_id}>"
            lines.append(
                f"{rank_prefix(i)} **{who}** — {row.total_invites} invited · "
                f"{format_amount(row.total_rewards)}"
            )
        embed = discord.Embed(
            title="\U0001f4e8 Top inviters",
            description="\n".join(lines),
            color=discord.Color.gold(),
        )
        await interaction.response.send_message(embed=embed)


async def setup(bot: StudybankBot) -> None:
    await bot.add_cog(Invites(bot))
