"""
studybank.bot.cogs.funds — Community Funds
===========================================

- /donate       — give coins and/or VIP to a fund (autocompletes fund names)
- /fund-list    — every fund with its totals
- /fund         — one fund's details and top donors
- /fund-create  — admin only
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from studybank.bot.cogs.admin import is_admin
from studybank.constants import COIN_EMOJI, VIP_EMOJI, format_amount, rank_prefix
from studybank.database.engine import run_db
from studybank.services.errors import LedgerError
from studybank.services.fund_service import (
    create_fund,
    donate,
    get_fund,
    get_top_donors,
    list_funds,
)
from studybank.services.messages import ledger_error

if TYPE_CHECKING:
    from studybank.bot.core import StudybankBot

logger = logging.getLogger(__name__)


class Funds(commands.Cog, name="Funds"):
    """Donations to shared community funds."""

    def __init__(self, bot: StudybankBot) -> None:
        self.bot = bot

    async def fund_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> list[app_commands.Choice[str]]:
        funds = await run_db(list_funds, self.bot.engine)
        current = current.lower()
        return [
            app_commands.Choice(name=f.name, value=f.name)
            for f in funds
            if current in f.name.lower()
        ][:25]

    # -------------------------------------------------------------------
    # /donate
    # -------------------------------------------------------------------
    @app_commands.command(name="donate", description="Donate coins and/or VIP to a community fund.")
    @app_commands.describe(
        fund="Fund to donate to",
        amount="Coins to donate (0 for none)",
        amount_vip="VIP to donate (0 for none)",
        reason="Optional message",
    )
    @app_commands.autocomplete(fund=fund_autocomplete)
    async def donate_cmd(
        self,
        interaction: discord.Interaction,
        fund: str,
        amount: app_commands.Range[int, 0] = 0,
        amount_vip: app_commands.Range[int, 0] = 0,
        reason: str | None = None,
    ) -> None:
        try:
            result = await run_db(
                donate,
                self.bot.engine,
                interaction.user.id,
                fund,
                amount,
                amount_vip,
                reason,
            )
        except LedgerError as exc:
            await interaction.response.send_message(ledger_error(exc), ephemeral=True)
            return

        parts = []
        if result.amount:
            parts.append(format_amount(result.amount, "coin"))
        if result.amount_vip:
            parts.append(format_amount(result.amount_vip, "vip"))
        embed = discord.Embed(
            title="\U0001f91d Thank you!",
            description=(
                f"**{interaction.user.display_name}** donated {' and '.join(parts)} "
                f"to **{result.fund.name}**."
            ),
            color=discord.Color.green(),
        )
        if reason:
            embed.add_field(name="Message", value=reason, inline=False)
        embed.add_field(
            name="Fund total",
            value=(
                f"{result.fund.total_donated:,} {COIN_EMOJI} · "
                f"{result.fund.total_donated_vip:,} {VIP_EMOJI}"
            ),
        )
        await interaction.response.send_message(embed=embed)

    # -------------------------------------------------------------------
    # /fund-list
    # -------------------------------------------------------------------
    @app_commands.command(name="fund-list", description="List all community funds.")
    async def fund_list(self, interaction: discord.Interaction) -> None:
        funds = await run_db(list_funds, self.bot.engine)
        if not funds:
            await interaction.response.send_message(
                "\U0001f4ed No funds yet. An admin can create one with `/fund-create`.",
                ephemeral=True,
            )
            return
        embed = discord.Embed(title="\U0001f3e6 Community funds", color=discord.Color.blue())
        for f in funds[:25]:
            embed.add_field(
                name=f.name,
                value=(
                    f"{f.description or '—'}\n"
                    f"{f.total_donated:,} {COIN_EMOJI} · {f.total_donated_vip:,} {VIP_EMOJI}"
                ),
                inline=False,
            )
        await interaction.response.send_message(embed=embed)

    # -------------------------------------------------------------------
    # /fund
    # -------------------------------------------------------------------
    @app_commands.command(name="fund", description="Show a fund and its top donors.")
    @app_commands.describe(name="Fund name")
    @app_commands.autocomplete(name=fund_autocomplete)
    async def fund(self, interaction: discord.Interaction, name: str) -> None:
        try:
            summary = await run_db(get_fund, self.bot.engine, name)
            donors = await run_db(get_top_donors, self.bot.engine, name, 10)
        except LedgerError as exc:
            await interaction.response.send_message(ledger_error(exc), ephemeral=True)
            return

        embed = discord.Embed(
            title=f"\U0001f3e6 {summary.name}",
            description=summary.description or None,
            color=discord.Color.blue(),
        )
        embed.add_field(name="Coins", value=format_amount(summary.total_donated, "coin"))
        embed.add_field(name="VIP", value=format_amount(summary.total_donated_vip, "vip"))
        if donors:
            guild = interaction.guild
            lines = []
            for i, d in enumerate(donors):
                member = guild.get_member(d.donor_id) if guild else None
                who = member.display_name if member else f"<@{d.donor_id}>"
                lines.append(f"{rank_prefix(i)} **{who}** — {d.amount:,} {COIN_EMOJI} · {d.amount_vip:,} {VIP_EMOJI}")
            embed.add_field(name="Top donors", value="\n".join(lines), inline=False)
        await interaction.response.send_message(embed=embed)

    # -------------------------------------------------------------------
    # /fund-create
    # -------------------------------------------------------------------
    @app_commands.command(name="fund-create", description="Create a new community fund.")
    @app_commands.describe(name="Unique fund name", description="What the fund is for")
    @is_admin()
    async def fund_create(
        self,
        interaction: discord.Interaction,
        name: app_commands.Range[str, 1, 100],
        description: str | None = None,
    ) -> None:
        try:
            summary = await run_db(
                create_fund, self.bot.engine, name, description, interaction.user.id
            )
        except LedgerError as exc:
            await interaction.response.send_message(ledger_error(exc), ephemeral=True)
            return
        except ValueError:
            await interaction.response.send_message("❌ The fund name can't be blank.", ephemeral=True)
            return
        await interaction.response.send_message(
            f"✅ Fund **{summary.name}** created. Members can now `/donate` to it."
        )

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            await interaction.response.send_message(
                "🔒 You need the Admin role to use this command.",
                ephemeral=True,
            )
        else:
            raise error


async def setup(bot: StudybankBot) -> None:
    await bot.add_cog(Funds(bot))
