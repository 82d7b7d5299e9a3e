"""
studybank.bot.cogs.economy — Wallet, Gifts, Check-ins & Leaderboard
====================================================================

Hybrid commands for members:
- /balance     — coins, VIP and lifetime totals
- /gift        — send coins to another member
- /gift-vip    — send VIP to another member
- /daily       — daily check-in with a Monday-to-Sunday streak
- /leaderboard — top members by balance or lifetime earnings
- /history     — your most recent ledger entries

Every balance change goes through
:mod:`studybank.services.ledger_service`; this Cog validates the request
(no self-gifts, no bots, positive amounts) and renders the reply.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from studybank.constants import COIN_EMOJI, VIP_EMOJI, format_amount, rank_prefix
from studybank.database.engine import run_db
from studybank.database.models import Currency, LedgerKind
from studybank.services.errors import AccountNotFound, LedgerError
from studybank.services.ledger_service import (
    get_balance,
    get_checkin_status,
    get_leaderboard,
    get_user_ledger,
    process_daily_checkin,
    transfer,
)
from studybank.services.messages import ledger_error

if TYPE_CHECKING:
    from studybank.bot.core import StudybankBot

logger = logging.getLogger(__name__)

KIND_LABELS: dict[str, str] = {
    LedgerKind.VOICE_EARN: "\U0001f3a7 Study",
    LedgerKind.GIFT: "\U0001f381 Gift",
    LedgerKind.VIP_TRANSFER: f"{VIP_EMOJI} VIP gift",
    LedgerKind.DAILY_CHECKIN: "\U0001f4c5 Check-in",
    LedgerKind.INVITE_REWARD: "\U0001f4e8 Invite",
    LedgerKind.FUND_DONATION: "\U0001f91d Donation",
    LedgerKind.ADMIN: "\U0001f6e0️ Admin",
}


def validate_gift(sender: discord.abc.User, recipient: discord.abc.User, amount: int) -> str | None:
    """Return an error message, or ``None`` if the gift may proceed."""
    if recipient.id == sender.id:
        return "❌ You can't gift yourself."
    if recipient.bot:
        return "❌ Bots don't have wallets."
    if amount <= 0:
        return "❌ The amount must be a positive number."
    return None


class Economy(commands.Cog, name="Economy"):
    """Member-facing wallet commands."""

    def __init__(self, bot: StudybankBot) -> None:
        self.bot = bot

    def _display_name(self, guild: discord.Guild | None, user_id: int) -> str:
        member = guild.get_member(user_id) if guild else None
        return member.display_name if member else f"<@{user_id}>"

    async def _gift(
        self,
        ctx: commands.Context,
        member: discord.Member,
        amount: int,
        reason: str | None,
        currency: Currency,
    ) -> None:
        problem = validate_gift(ctx.author, member, amount)
        if problem:
            await ctx.send(problem, ephemeral=True)
            return

        try:
            result = await run_db(
                transfer,
                self.bot.engine,
                ctx.author.id,
                member.id,
                amount,
                currency,
                reason,
            )
        except LedgerError as exc:
            await ctx.send(ledger_error(exc), ephemeral=True)
            return

        remaining = (
            result.sender.balance if currency is Currency.COIN else result.sender.balance_vip
        )
        embed = discord.Embed(
            title="\U0001f381 Gift sent!",
            description=(
                f"**{ctx.author.display_name}** gave **{member.display_name}** "
                f"{format_amount(amount, currency)}."
            ),
            color=discord.Color.gold(),
        )
        if reason:
            embed.add_field(name="Message", value=reason, inline=False)
        embed.set_footer(text=f"Your balance: {remaining:,}")
        await ctx.send(embed=embed)

    # -------------------------------------------------------------------
    # /balance
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="balance",
        description="Check your (or another member's) wallet.",
    )
    @app_commands.describe(member="The member to look up (defaults to you)")
    async def balance(self, ctx: commands.Context, member: discord.Member | None = None) -> None:
        target = member or ctx.author
        try:
            account = await run_db(get_balance, self.bot.engine, target.id)
        except AccountNotFound:
            await ctx.send(
                f"\U0001f50d **{target.display_name}** hasn't earned anything yet.",
                ephemeral=True,
            )
            return

        embed = discord.Embed(
            title=f"\U0001f4b0 {target.display_name}'s wallet",
            color=discord.Color.green(),
        )
        embed.add_field(name=f"{COIN_EMOJI} Coins", value=f"{account.balance:,}")
        embed.add_field(name=f"{VIP_EMOJI} VIP", value=f"{account.balance_vip:,}")
        embed.add_field(
            name="Lifetime earned",
            value=f"{account.total_earned:,} {COIN_EMOJI} · {account.total_earned_vip:,} {VIP_EMOJI}",
            inline=False,
        )
        await ctx.send(embed=embed, ephemeral=target.id == ctx.author.id)

    # -------------------------------------------------------------------
    # /gift, /gift-vip
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="gift",
        description="Send coins to another member.",
    )
    @app_commands.describe(member="Who receives the coins", amount="How many", reason="Optional message")
    async def gift(
        self, ctx: commands.Context, member: discord.Member, amount: int, reason: str | None = None
    ) -> None:
        await self._gift(ctx, member, amount, reason, Currency.COIN)

    @commands.hybrid_command(  # type: ignore[arg-type]
        name="gift-vip",
        description="Send VIP to another member.",
    )
    @app_commands.describe(member="Who receives the VIP", amount="How much", reason="Optional message")
    async def gift_vip(
        self, ctx: commands.Context, member: discord.Member, amount: int, reason: str | None = None
    ) -> None:
        await self._gift(ctx, member, amount, reason, Currency.VIP)

    # -------------------------------------------------------------------
    # /daily
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="daily",
        description="Check in for today's reward. Streaks pay more each day of the week.",
    )
    async def daily(self, ctx: commands.Context) -> None:
        try:
            result = await run_db(
                process_daily_checkin,
                self.bot.engine,
                ctx.author.id,
                tz=self.bot.cfg.timezone,
                reward_per_day=self.bot.cfg.economy.daily_checkin_reward,
            )
        except LedgerError as exc:
            await ctx.send(ledger_error(exc), ephemeral=True)
            return

        week = "".join("\U0001f7e9" if day < result.new_streak else "⬜" for day in range(7))
        embed = discord.Embed(
            title="\U0001f4c5 Daily check-in",
            description=(
                f"**{ctx.author.display_name}** checked in: "
                f"+{format_amount(result.reward)}\n{week}"
            ),
            color=discord.Color.teal(),
        )
        embed.add_field(name="Streak", value=f"Day {result.new_streak}/7")
        embed.add_field(name="Total check-ins", value=str(result.total_checkins))
        embed.set_footer(text="The streak resets every Monday.")
        await ctx.send(embed=embed)

    @commands.hybrid_command(  # type: ignore[arg-type]
        name="daily-status",
        description="See your check-in streak without checking in.",
    )
    async def daily_status(self, ctx: commands.Context) -> None:
        status = await run_db(
            get_checkin_status, self.bot.engine, ctx.author.id, tz=self.bot.cfg.timezone
        )
        if not status.has_record:
            await ctx.send("\U0001f4c5 You haven't checked in yet. Try `/daily`!", ephemeral=True)
            return
        state = "✅ available now" if status.can_check_in else "⏳ come back tomorrow"
        await ctx.send(
            f"\U0001f4c5 Streak: day {status.current_streak} · "
            f"{status.total_checkins} check-ins total · next check-in {state}",
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /leaderboard
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="leaderboard",
        description="Top members by coins.",
    )
    @app_commands.describe(sort_by="Current balance or lifetime earnings")
    @app_commands.choices(sort_by=[
        app_commands.Choice(name="Balance", value="balance"),
        app_commands.Choice(name="Lifetime earned", value="total_earned"),
        app_commands.Choice(name="VIP balance", value="balance_vip"),
    ])
    async def leaderboard(self, ctx: commands.Context, sort_by: str = "balance") -> None:
        rows = await run_db(
            get_leaderboard,
            self.bot.engine,
            sort_by,
            10,
            self.bot.cfg.leaderboard_exclude_ids,
        )
        if not rows:
            await ctx.send("\U0001f4ed Nobody has earned anything yet.", ephemeral=True)
            return

        currency = "vip" if sort_by.endswith("vip") else "coin"
        lines = [
            f"{rank_prefix(i)} **{self._display_name(ctx.guild, row.user_id)}** — "
            f"{format_amount(getattr(row, sort_by), currency)}"
            for i, row in enumerate(rows)
        ]
        embed = discord.Embed(
            title="\U0001f3c6 Leaderboard",
            description="\n".join(lines),
            color=discord.Color.gold(),
        )
        await ctx.send(embed=embed)

    # -------------------------------------------------------------------
    # /history
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="history",
        description="Your 10 most recent transactions.",
    )
    async def history(self, ctx: commands.Context) -> None:
        entries = await run_db(get_user_ledger, self.bot.engine, ctx.author.id, 10)
        if not entries:
            await ctx.send("\U0001f4ed No transactions yet.", ephemeral=True)
            return

        lines = []
        for e in entries:
            outgoing = e.from_user_id == ctx.author.id
            sign = "-" if outgoing else "+"
            label = KIND_LABELS.get(e.kind, e.kind)
            lines.append(f"{label} {sign}{format_amount(e.amount, e.currency)} · {e.description or ''}")
        embed = discord.Embed(
            title=f"\U0001f4dc {ctx.author.display_name}'s history",
            description="\n".join(lines),
            color=discord.Color.dark_teal(),
        )
        await ctx.send(embed=embed, ephemeral=True)


async def setup(bot: StudybankBot) -> None:
    await bot.add_cog(Economy(bot))
