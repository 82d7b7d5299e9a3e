"""
studybank.database.repository — Ledger Repository & Unit of Work
=================================================================

The storage adapter underneath the ledger.  A :class:`LedgerRepository`
wraps exactly one :class:`Session` inside one transaction, and every
method composes into that transaction.  Ledger operations open one with
:func:`unit_of_work`::

    with unit_of_work(engine) as repo:
        repo.lock_accounts([sender, receiver])
        if not repo.debit(sender, Currency.COIN, 5):
            raise InsufficientFunds(...)
        repo.credit(receiver, Currency.COIN, 5)
        repo.append_ledger_entry(...)
    # commit here, or rollback if anything above raised

Balance changes are single guarded ``UPDATE`` statements
(``SET balance = balance - :n WHERE balance >= :n``), so the affordability
check and the debit are one atomic step at the database.  Concurrent
units touching the same account serialize on its row lock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import InstrumentedAttribute, Session

from studybank.database.models import (
    Account,
    CheckinRecord,
    Currency,
    Fund,
    FundDonation,
    LedgerEntry,
    LedgerKind,
)
from studybank.services.errors import InvalidAmount, StorageError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def balance_columns(
    currency: Currency | str,
) -> tuple[InstrumentedAttribute[int], InstrumentedAttribute[int]]:
    """Return the ``(balance, total_earned)`` column pair for *currency*."""
    if Currency(currency) is Currency.VIP:
        return Account.balance_vip, Account.total_earned_vip
    return Account.balance, Account.total_earned


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")


class LedgerRepository:
    """Account, ledger, check-in and fund persistence over one session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # -----------------------------------------------------------------------
    # Accounts
    # -----------------------------------------------------------------------
    def get_account(self, user_id: int, *, lock: bool = False) -> Account | None:
        """Fetch the current row for *user_id*, bypassing stale identity-map state."""
        stmt = (
            select(Account)
            .where(Account.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.scalar(stmt)

    def upsert_account(self, user_id: int) -> Account:
        """Get-or-create a zeroed account.  Safe against a concurrent insert."""
        account = self.get_account(user_id)
        if account is not None:
            return account

        try:
            with self.session.begin_nested():  # SAVEPOINT
                account = Account(
                    user_id=user_id,
                    balance=0,
                    balance_vip=0,
                    total_earned=0,
                    total_earned_vip=0,
                )
                self.session.add(account)
                self.session.flush()
        except IntegrityError:
            # Another transaction created it first; the savepoint rolled back.
            account = self.get_account(user_id)
            if account is None:
                raise
            return account

        logger.debug("Created account for user %s", user_id)
        return account

    def lock_accounts(self, user_ids: Iterable[int]) -> dict[int, Account]:
        """Create (if needed) and row-lock several accounts in ascending id order."""
        ids = sorted(set(user_ids))
        for user_id in ids:
            self.upsert_account(user_id)
        rows = self.session.scalars(
            select(Account)
            .where(Account.user_id.in_(ids))
            .order_by(Account.user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()
        return {row.user_id: row for row in rows}

    def debit(self, user_id: int, currency: Currency | str, amount: int) -> bool:
        """Subtract *amount* if and only if the balance covers it.

        Returns ``False`` (and changes nothing) when funds are short or the
        account does not exist.
        """
        _require_positive(amount)
        balance_col, _ = balance_columns(currency)
        row = self.session.execute(
            update(Account)
            .where(Account.user_id == user_id, balance_col >= amount)
            .values({balance_col: balance_col - amount})
            .returning(balance_col)
        ).first()
        return row is not None

    def credit(self, user_id: int, currency: Currency | str, amount: int) -> None:
        """Add *amount* to both the balance and the earned total."""
        _require_positive(amount)
        self.upsert_account(user_id)
        balance_col, earned_col = balance_columns(currency)
        self.session.execute(
            update(Account)
            .where(Account.user_id == user_id)
            .values({balance_col: balance_col + amount, earned_col: earned_col + amount})
        )

    def available(self, user_id: int, currency: Currency | str) -> int:
        """Current balance of *currency*, 0 for an unknown user."""
        balance_col, _ = balance_columns(currency)
        return self.session.scalar(
            select(balance_col).where(Account.user_id == user_id)
        ) or 0

    # -----------------------------------------------------------------------
    # Ledger
    # -----------------------------------------------------------------------
    def append_ledger_entry(
        self,
        *,
        to_user_id: int,
        amount: int,
        kind: LedgerKind | str,
        currency: Currency | str = Currency.COIN,
        from_user_id: int | None = None,
        description: str | None = None,
        fund_name: str | None = None,
    ) -> LedgerEntry:
        _require_positive(amount)
        entry = LedgerEntry(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            currency=Currency(currency).value,
            kind=LedgerKind(kind).value,
            fund_name=fund_name,
            description=description,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    # -----------------------------------------------------------------------
    # Daily check-ins
    # -----------------------------------------------------------------------
    def get_checkin_record(self, user_id: int, *, lock: bool = False) -> CheckinRecord | None:
        stmt = (
            select(CheckinRecord)
            .where(CheckinRecord.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.scalar(stmt)

    def upsert_checkin_record(
        self,
        user_id: int,
        *,
        last_checkin_date: date,
        current_streak: int,
        total_checkins: int,
    ) -> CheckinRecord:
        record = self.get_checkin_record(user_id)
        if record is None:
            record = CheckinRecord(user_id=user_id)
            self.session.add(record)
        record.last_checkin_date = last_checkin_date
        record.current_streak = current_streak
        record.total_checkins = total_checkins
        self.session.flush()
        return record

    # -----------------------------------------------------------------------
    # Funds
    # -----------------------------------------------------------------------
    def get_fund(self, name: str, *, lock: bool = False) -> Fund | None:
        stmt = (
            select(Fund)
            .where(Fund.name == name)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.scalar(stmt)

    def create_fund(
        self, name: str, description: str | None, created_by: int | None
    ) -> Fund | None:
        """Insert a fund.  Returns ``None`` if the name is already taken."""
        fund = Fund(
            name=name,
            description=description,
            total_donated=0,
            total_donated_vip=0,
            created_by=created_by,
        )
        try:
            with self.session.begin_nested():
                self.session.add(fund)
                self.session.flush()
        except IntegrityError:
            return None
        return fund

    def upsert_fund_totals(self, name: str, amount: int, amount_vip: int) -> None:
        self.session.execute(
            update(Fund)
            .where(Fund.name == name)
            .values(
                total_donated=Fund.total_donated + amount,
                total_donated_vip=Fund.total_donated_vip + amount_vip,
            )
        )

    def append_fund_donation(
        self,
        *,
        fund_name: str,
        donor_id: int,
        amount: int,
        amount_vip: int,
        reason: str | None,
    ) -> FundDonation:
        donation = FundDonation(
            fund_name=fund_name,
            donor_id=donor_id,
            amount=amount,
            amount_vip=amount_vip,
            reason=reason,
        )
        self.session.add(donation)
        self.session.flush()
        return donation


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------
@contextmanager
def unit_of_work(engine: Engine) -> Iterator[LedgerRepository]:
    """Yield a repository bound to a fresh transaction.

    Commits when the block exits normally.  Any exception rolls the whole
    transaction back; database errors are re-raised as :class:`StorageError`.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield LedgerRepository(session)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Ledger transaction failed: %s", exc)
        raise StorageError(str(exc)) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
