"""
studybank.bot.cogs.admin — Admin Slash Commands
================================================

- /award — credit coins or VIP to a member (ledger kind ``admin``)

Requires the configured admin_role_id.  The :func:`is_admin` check is
shared with the funds Cog's ``/fund-create``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from studybank.constants import format_amount
from studybank.database.engine import run_db
from studybank.database.models import Currency
from studybank.services.errors import LedgerError
from studybank.services.ledger_service import award_admin
from studybank.services.messages import ledger_error

if TYPE_CHECKING:
    from studybank.bot.core import StudybankBot

logger = logging.getLogger(__name__)


def is_admin():
    """Decorator that checks if the user has the configured admin role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: StudybankBot = interaction.client  # type: ignore[assignment]
        if not interaction.user or not hasattr(interaction.user, "roles"):
            return False
        admin_role_id = bot.cfg.admin_role_id
        return any(role.id == admin_role_id for role in interaction.user.roles)
    return app_commands.check(predicate)


CURRENCY_CHOICES = [
    app_commands.Choice(name="Coins", value=Currency.COIN.value),
    app_commands.Choice(name="VIP", value=Currency.VIP.value),
]


class Admin(commands.Cog, name="Admin"):
    """Server administration commands."""

    def __init__(self, bot: StudybankBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /award
    # -------------------------------------------------------------------
    @app_commands.command(name="award", description="Credit coins or VIP to a member.")
    @app_commands.describe(
        member="The member to award",
        amount="How much to credit",
        currency="Coins or VIP (default coins)",
        reason="Reason for the award",
    )
    @app_commands.choices(currency=CURRENCY_CHOICES)
    @is_admin()
    async def award(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 1],
        currency: str = Currency.COIN.value,
        reason: str = "Manual admin award",
    ) -> None:
        if member.bot:
            await interaction.response.send_message(
                "❌ Bots don't have wallets.", ephemeral=True,
            )
            return

        try:
            account = await run_db(
                award_admin,
                self.bot.engine,
                member.id,
                amount,
                Currency(currency),
                reason,
                interaction.user.id,
            )
        except LedgerError as exc:
            await interaction.response.send_message(ledger_error(exc), ephemeral=True)
            return

        balance = account.balance if currency == Currency.COIN else account.balance_vip
        await interaction.response.send_message(
            f"✅ Awarded {format_amount(amount, currency)} to **{member.display_name}** "
            f"(now {format_amount(balance, currency)}).\nReason: {reason}",
            ephemeral=True,
        )
        logger.info(
            "Admin %s awarded %d %s to %s", interaction.user.id, amount, currency, member.id
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
    await bot.add_cog(Admin(bot))
