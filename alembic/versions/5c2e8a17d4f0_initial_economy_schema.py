"""Initial economy schema

Revision ID: 5c2e8a17d4f0
Revises:
Create Date: 2026-10-19 10:12:33.418207

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e8a17d4f0'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(updated: bool = False) -> list[sa.Column]:
    cols = [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    ]
    if updated:
        cols.append(
            sa.Column(
                "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
            )
        )
    return cols


def upgrade() -> None:
    """Create wallets, ledger, check-ins, funds and invite tables."""

    # --- accounts ---
    op.create_table(
        "accounts",
        sa.Column("user_id", sa.BigInteger, primary_key=True),
        sa.Column("balance", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("balance_vip", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("total_earned", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("total_earned_vip", sa.BigInteger, nullable=False, server_default="0"),
        *_timestamps(updated=True),
        sa.CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        sa.CheckConstraint("balance_vip >= 0", name="ck_accounts_balance_vip_non_negative"),
    )
    op.create_index("ix_accounts_balance", "accounts", ["balance"])
    op.create_index("ix_accounts_total_earned", "accounts", ["total_earned"])

    # --- ledger_entries ---
    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("from_user_id", sa.BigInteger, nullable=True),
        sa.Column("to_user_id", sa.BigInteger, nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default="coin"),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("fund_name", sa.String(100), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )
    op.create_index(
        "ix_ledger_entries_to_user", "ledger_entries", ["to_user_id", "created_at"]
    )
    op.create_index(
        "ix_ledger_entries_from_user", "ledger_entries", ["from_user_id", "created_at"]
    )
    op.create_index("ix_ledger_entries_kind", "ledger_entries", ["kind"])

    # --- daily_checkins ---
    op.create_table(
        "daily_checkins",
        sa.Column("user_id", sa.BigInteger, primary_key=True),
        sa.Column("last_checkin_date", sa.Date, nullable=False),
        sa.Column("current_streak", sa.Integer, nullable=False, server_default="1"),
        sa.Column("total_checkins", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(updated=True),
    )

    # --- funds / fund_donations ---
    op.create_table(
        "funds",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("total_donated", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("total_donated_vip", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("created_by", sa.BigInteger, nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "fund_donations",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "fund_name", sa.String(100), sa.ForeignKey("funds.name"), nullable=False
        ),
        sa.Column("donor_id", sa.BigInteger, nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("amount_vip", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("reason", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_fund_donations_fund_donor", "fund_donations", ["fund_name", "donor_id"]
    )

    # --- invites / invite_rewards ---
    op.create_table(
        "invites",
        sa.Column("code", sa.String(32), primary_key=True),
        sa.Column("inviter_id", sa.BigInteger, nullable=False),
        sa.Column("uses", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_uses", sa.Integer, nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=True),
    )
    op.create_index("ix_invites_inviter", "invites", ["inviter_id"])
    op.create_table(
        "invite_rewards",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("inviter_id", sa.BigInteger, nullable=False),
        sa.Column("invitee_id", sa.BigInteger, nullable=False, unique=True),
        sa.Column("invite_code", sa.String(32), nullable=False),
        sa.Column("reward_amount", sa.BigInteger, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_invite_rewards_inviter", "invite_rewards", ["inviter_id"])


def downgrade() -> None:
    op.drop_table("invite_rewards")
    op.drop_table("invites")
    op.drop_table("fund_donations")
    op.drop_table("funds")
    op.drop_table("daily_checkins")
    op.drop_table("ledger_entries")
    op.drop_table("accounts")
