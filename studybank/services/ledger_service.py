"""
studybank.services.ledger_service — The Ledger Engine
======================================================

The single choke point through which every balance number changes.
Callable from the bot (through :func:`~studybank.database.engine.run_db`)
and from the API.

Every public operation is one :func:`~studybank.database.repository.unit_of_work`:
the balance updates and their ledger entries commit together or not at
all.  Debits are guarded ``UPDATE`` statements, so two concurrent gifts
from the same wallet can never both spend the same coins.

Operations:
- get_or_create_account / get_balance
- credit_earning         — voice, invite and admin credits (from nobody)
- transfer               — member-to-member gift in either currency
- process_daily_checkin  — streak + reward in one transaction
- get_checkin_status     — read-only view for /daily
- award_admin            — manual credit by an admin
- get_leaderboard / get_user_ledger / get_checkin_leaderboard
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from sqlalchemy import func, or_, select

from studybank.constants import LEADERBOARD_FIELDS
from studybank.database.models import (
    Account,
    CheckinRecord,
    Currency,
    LedgerEntry,
    LedgerKind,
)
from studybank.database.repository import LedgerRepository, unit_of_work
from studybank.engine.streak import calculate_checkin_reward, calculate_streak
from studybank.services.errors import (
    AccountNotFound,
    AlreadyCheckedInToday,
    InsufficientFunds,
    InvalidAmount,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Detached copy of an account row, safe to hand across threads."""

    user_id: int
    balance: int = 0
    balance_vip: int = 0
    total_earned: int = 0
    total_earned_vip: int = 0

    @classmethod
    def from_model(cls, account: Account) -> AccountSnapshot:
        return cls(
            user_id=account.user_id,
            balance=account.balance,
            balance_vip=account.balance_vip,
            total_earned=account.total_earned,
            total_earned_vip=account.total_earned_vip,
        )


@dataclass(frozen=True, slots=True)
class TransferResult:
    sender: AccountSnapshot
    receiver: AccountSnapshot
    amount: int
    currency: Currency
    entry_id: int


@dataclass(frozen=True, slots=True)
class CheckinResult:
    reward: int
    new_streak: int
    total_checkins: int


@dataclass(frozen=True, slots=True)
class CheckinStatus:
    has_record: bool
    can_check_in: bool
    current_streak: int = 0
    total_checkins: int = 0
    last_checkin_date: date | None = None


@dataclass(frozen=True, slots=True)
class LedgerLine:
    id: int
    from_user_id: int | None
    to_user_id: int
    amount: int
    currency: str
    kind: str
    description: str | None
    fund_name: str | None
    created_at: datetime | None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def local_today(tz: str = "UTC") -> date:
    """Calendar date right now in the IANA zone *tz*."""
    return datetime.now(ZoneInfo(tz)).date()


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")


def _snapshot(repo: LedgerRepository, user_id: int) -> AccountSnapshot:
    account = repo.get_account(user_id)
    if account is None:
        return AccountSnapshot(user_id=user_id)
    return AccountSnapshot.from_model(account)


def apply_credit(
    repo: LedgerRepository,
    user_id: int,
    amount: int,
    kind: LedgerKind,
    description: str | None,
    *,
    currency: Currency = Currency.COIN,
    from_user_id: int | None = None,
) -> LedgerEntry:
    """Credit *user_id* inside an already-open unit of work.

    Increments the balance and the earned total of *currency*, then writes
    the matching ledger entry.  Used by every path that pays someone
    (check-ins and invites share their own transaction this way).
    """
    _validate_amount(amount)
    repo.credit(user_id, currency, amount)
    return repo.append_ledger_entry(
        from_user_id=from_user_id,
        to_user_id=user_id,
        amount=amount,
        currency=currency,
        kind=kind,
        description=description,
    )


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
def get_or_create_account(engine: Engine, user_id: int) -> AccountSnapshot:
    """Return the account for *user_id*, inserting a zeroed one if absent."""
    with unit_of_work(engine) as repo:
        return AccountSnapshot.from_model(repo.upsert_account(user_id))


def get_balance(engine: Engine, user_id: int) -> AccountSnapshot:
    """Pure read.  Raises :class:`AccountNotFound` for an unknown user."""
    with unit_of_work(engine) as repo:
        account = repo.get_account(user_id)
        if account is None:
            raise AccountNotFound(user_id)
        return AccountSnapshot.from_model(account)


# ---------------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------------
def credit_earning(
    engine: Engine,
    user_id: int,
    amount: int,
    kind: LedgerKind,
    description: str | None = None,
    *,
    currency: Currency = Currency.COIN,
) -> AccountSnapshot:
    """Pay *amount* from the system to *user_id* (``from_user_id`` is NULL)."""
    with unit_of_work(engine) as repo:
        apply_credit(repo, user_id, amount, kind, description, currency=currency)
        snapshot = _snapshot(repo, user_id)

    logger.info("Credited %d %s to %s (%s)", amount, currency, user_id, kind)
    return snapshot


def award_admin(
    engine: Engine,
    user_id: int,
    amount: int,
    currency: Currency,
    reason: str,
    admin_id: int,
) -> AccountSnapshot:
    """Manual credit by an admin, recorded with kind ``admin``."""
    with unit_of_work(engine) as repo:
        apply_credit(
            repo,
            user_id,
            amount,
            LedgerKind.ADMIN,
            f"Admin award by {admin_id}: {reason}",
            currency=currency,
        )
        snapshot = _snapshot(repo, user_id)

    logger.info("Admin %s awarded %d %s to %s", admin_id, amount, currency, user_id)
    return snapshot


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------
def transfer(
    engine: Engine,
    from_user_id: int,
    to_user_id: int,
    amount: int,
    currency: Currency = Currency.COIN,
    reason: str | None = None,
) -> TransferResult:
    """Move *amount* of *currency* from one member to another.

    The receiver's earned total grows too, so gifts count toward their
    study-economy totals.  Self-transfers and bot recipients are rejected
    by the caller before this runs.

    Raises
    ------
    InsufficientFunds
        If the sender's balance cannot cover *amount*.  Checked by the
        same statement that debits.
    """
    _validate_amount(amount)
    currency = Currency(currency)
    kind = LedgerKind.GIFT if currency is Currency.COIN else LedgerKind.VIP_TRANSFER
    label = "Gift" if currency is Currency.COIN else "VIP Gift"
    description = f"{label}: {reason}" if reason else label

    with unit_of_work(engine) as repo:
        repo.lock_accounts([from_user_id, to_user_id])
        if not repo.debit(from_user_id, currency, amount):
            raise InsufficientFunds(
                from_user_id, currency, amount, repo.available(from_user_id, currency)
            )
        repo.credit(to_user_id, currency, amount)
        entry = repo.append_ledger_entry(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            currency=currency,
            kind=kind,
            description=description,
        )
        result = TransferResult(
            sender=_snapshot(repo, from_user_id),
            receiver=_snapshot(repo, to_user_id),
            amount=amount,
            currency=currency,
            entry_id=entry.id,
        )

    logger.info(
        "Transfer %d %s: %s → %s (entry %d)",
        amount, currency, from_user_id, to_user_id, result.entry_id,
    )
    return result


# ---------------------------------------------------------------------------
# Daily check-in
# ---------------------------------------------------------------------------
def process_daily_checkin(
    engine: Engine,
    user_id: int,
    today: date | None = None,
    *,
    tz: str = "UTC",
    reward_per_day: int = 1,
) -> CheckinResult:
    """Check *user_id* in for *today* and pay the streak reward.

    Raises
    ------
    AlreadyCheckedInToday
        If the stored check-in date is already *today*.
    """
    today = today or local_today(tz)

    with unit_of_work(engine) as repo:
        # The account row lock serializes concurrent check-ins for one user.
        repo.lock_accounts([user_id])
        record = repo.get_checkin_record(user_id, lock=True)

        if record is not None and record.last_checkin_date == today:
            raise AlreadyCheckedInToday(user_id, record.current_streak)

        new_streak = calculate_streak(
            today,
            record.last_checkin_date if record else None,
            record.current_streak if record else 0,
        )
        total = (record.total_checkins if record else 0) + 1
        reward = calculate_checkin_reward(new_streak, reward_per_day)

        repo.upsert_checkin_record(
            user_id,
            last_checkin_date=today,
            current_streak=new_streak,
            total_checkins=total,
        )
        apply_credit(
            repo,
            user_id,
            reward,
            LedgerKind.DAILY_CHECKIN,
            f"Daily check-in (day {new_streak})",
        )

    logger.info("Daily check-in: user %s day %d (+%d)", user_id, new_streak, reward)
    return CheckinResult(reward=reward, new_streak=new_streak, total_checkins=total)


def get_checkin_status(
    engine: Engine,
    user_id: int,
    today: date | None = None,
    *,
    tz: str = "UTC",
) -> CheckinStatus:
    """Whether *user_id* can check in today, plus their current streak."""
    today = today or local_today(tz)
    with unit_of_work(engine) as repo:
        record = repo.get_checkin_record(user_id)
        if record is None:
            return CheckinStatus(has_record=False, can_check_in=True)
        return CheckinStatus(
            has_record=True,
            can_check_in=record.last_checkin_date != today,
            current_streak=record.current_streak,
            total_checkins=record.total_checkins,
            last_checkin_date=record.last_checkin_date,
        )


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
def get_leaderboard(
    engine: Engine,
    order_by: str = "balance",
    limit: int = 10,
    exclude_ids: tuple[int, ...] | list[int] = (),
) -> list[AccountSnapshot]:
    """Top accounts by one of :data:`~studybank.constants.LEADERBOARD_FIELDS`.

    Accounts with nothing in the ordering column are left out.
    """
    if order_by not in LEADERBOARD_FIELDS:
        raise ValueError(f"cannot order leaderboard by {order_by!r}")
    column = getattr(Account, order_by)

    stmt = select(Account).where(column > 0)
    if exclude_ids:
        stmt = stmt.where(Account.user_id.not_in(list(exclude_ids)))
    stmt = stmt.order_by(column.desc(), Account.user_id).limit(limit)

    with unit_of_work(engine) as repo:
        return [AccountSnapshot.from_model(a) for a in repo.session.scalars(stmt)]


def get_user_ledger(engine: Engine, user_id: int, limit: int = 10) -> list[LedgerLine]:
    """Most recent ledger entries where *user_id* sent or received."""
    stmt = (
        select(LedgerEntry)
        .where(or_(LedgerEntry.to_user_id == user_id, LedgerEntry.from_user_id == user_id))
        .order_by(LedgerEntry.id.desc())
        .limit(limit)
    )
    with unit_of_work(engine) as repo:
        return [
            LedgerLine(
                id=e.id,
                from_user_id=e.from_user_id,
                to_user_id=e.to_user_id,
                amount=e.amount,
                currency=e.currency,
                kind=e.kind,
                description=e.description,
                fund_name=e.fund_name,
                created_at=e.created_at,
            )
            for e in repo.session.scalars(stmt)
        ]


def get_checkin_leaderboard(
    engine: Engine, order_by: str = "current_streak", limit: int = 10
) -> list[tuple[int, CheckinStatus]]:
    """Top check-in records as ``(user_id, status)`` pairs."""
    if order_by not in ("current_streak", "total_checkins"):
        raise ValueError(f"cannot order check-ins by {order_by!r}")
    column = getattr(CheckinRecord, order_by)
    stmt = (
        select(CheckinRecord)
        .order_by(column.desc(), CheckinRecord.user_id)
        .limit(limit)
    )
    with unit_of_work(engine) as repo:
        return [
            (
                r.user_id,
                CheckinStatus(
                    has_record=True,
                    can_check_in=False,
                    current_streak=r.current_streak,
                    total_checkins=r.total_checkins,
                    last_checkin_date=r.last_checkin_date,
                ),
            )
            for r in repo.session.scalars(stmt)
        ]


def sum_earned_credits(engine: Engine, user_id: int, currency: Currency = Currency.COIN) -> int:
    """Total of every ledger entry paid *to* *user_id* in *currency*.

    Equals the account's earned total: system credits plus received gifts.
    """
    with unit_of_work(engine) as repo:
        return repo.session.scalar(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                LedgerEntry.to_user_id == user_id,
                LedgerEntry.currency == Currency(currency).value,
                LedgerEntry.kind != LedgerKind.FUND_DONATION.value,
            )
        ) or 0
