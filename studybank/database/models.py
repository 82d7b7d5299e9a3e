"""
studybank.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- accounts         — One wallet per Discord member (coins + VIP)
- ledger_entries   — Append-only audit trail, one row per balance mutation
- daily_checkins   — Streak state for the daily check-in
- funds            — Named community funds accepting donations
- fund_donations   — Append-only donation history
- invites          — Durable record of who created each invite code
- invite_rewards   — One row per rewarded invitee
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Studybank ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Currency(enum.StrEnum):
    """The two parallel balances every account carries."""
    COIN = "coin"
    VIP = "vip"


class LedgerKind(enum.StrEnum):
    """Why a ledger entry was written."""
    VOICE_EARN = "voice_earn"
    GIFT = "gift"
    VIP_TRANSFER = "vip_transfer"
    DAILY_CHECKIN = "daily_checkin"
    INVITE_REWARD = "invite_reward"
    FUND_DONATION = "fund_donation"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# Accounts — one row per Discord member, created lazily
# ---------------------------------------------------------------------------
class Account(Base):
    __tablename__ = "accounts"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    balance_vip: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_earned: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_earned_vip: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        CheckConstraint("balance_vip >= 0", name="ck_accounts_balance_vip_non_negative"),
        Index("ix_accounts_balance", "balance"),
        Index("ix_accounts_total_earned", "total_earned"),
    )

    def __repr__(self) -> str:
        return (
            f"<Account user={self.user_id} balance={self.balance} "
            f"vip={self.balance_vip}>"
        )


# ---------------------------------------------------------------------------
# Ledger entries — insert-only audit log
# ---------------------------------------------------------------------------
class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    from_user_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    to_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default=Currency.COIN.value)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    fund_name: Mapped[str | None] = mapped_column(String(100), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
        Index("ix_ledger_entries_to_user", "to_user_id", "created_at"),
        Index("ix_ledger_entries_from_user", "from_user_id", "created_at"),
        Index("ix_ledger_entries_kind", "kind"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry id={self.id} {self.kind} {self.amount} {self.currency} "
            f"{self.from_user_id}→{self.to_user_id}>"
        )


# ---------------------------------------------------------------------------
# Daily check-ins — streak state per user
# ---------------------------------------------------------------------------
class CheckinRecord(Base):
    __tablename__ = "daily_checkins"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    last_checkin_date: Mapped[date] = mapped_column(Date, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    total_checkins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<CheckinRecord user={self.user_id} last={self.last_checkin_date} "
            f"streak={self.current_streak}>"
        )


# ---------------------------------------------------------------------------
# Funds & donations
# ---------------------------------------------------------------------------
class Fund(Base):
    __tablename__ = "funds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    total_donated: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_donated_vip: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    created_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Fund {self.name!r} total={self.total_donated} vip={self.total_donated_vip}>"


class FundDonation(Base):
    __tablename__ = "fund_donations"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    fund_name: Mapped[str] = mapped_column(
        String(100), ForeignKey("funds.name"), nullable=False
    )
    donor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    amount_vip: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_fund_donations_fund_donor", "fund_name", "donor_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<FundDonation {self.fund_name!r} donor={self.donor_id} "
            f"amount={self.amount} vip={self.amount_vip}>"
        )


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------
class Invite(Base):
    __tablename__ = "invites"

    code: Mapped[str] = mapped_column(String(32), primary_key=True)
    inviter_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    uses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_uses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_invites_inviter", "inviter_id"),
    )

    def __repr__(self) -> str:
        return f"<Invite {self.code} inviter={self.inviter_id} uses={self.uses}>"


class InviteReward(Base):
    __tablename__ = "invite_rewards"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    inviter_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    invitee_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    invite_code: Mapped[str] = mapped_column(String(32), nullable=False)
    reward_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_invite_rewards_inviter", "inviter_id"),
    )

    def __repr__(self) -> str:
        return f"<InviteReward {self.inviter_id}→{self.invitee_id} via {self.invite_code}>"
