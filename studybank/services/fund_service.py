"""
studybank.services.fund_service — Community Funds & Donations
==============================================================

Named funds that members donate coins and/or VIP to.  A fund must be
created by an admin before it accepts donations.

A donation is one transaction covering the donor debit(s), the fund
totals, the donation row and one ledger entry per currency actually
donated.  Either amount may be zero, but not both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from studybank.database.models import Currency, Fund, FundDonation, LedgerKind
from studybank.database.repository import unit_of_work
from studybank.services.errors import (
    FundAlreadyExists,
    FundNotFound,
    InsufficientFunds,
    InvalidAmount,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FundSummary:
    name: str
    description: str | None
    total_donated: int
    total_donated_vip: int
    created_by: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, fund: Fund) -> FundSummary:
        return cls(
            name=fund.name,
            description=fund.description,
            total_donated=fund.total_donated,
            total_donated_vip=fund.total_donated_vip,
            created_by=fund.created_by,
            created_at=fund.created_at,
        )


@dataclass(frozen=True, slots=True)
class DonationResult:
    fund: FundSummary
    donation_id: int
    amount: int
    amount_vip: int


@dataclass(frozen=True, slots=True)
class DonorTotal:
    donor_id: int
    amount: int
    amount_vip: int
    donations: int


def _validate_donation(amount: int, amount_vip: int) -> None:
    for value in (amount, amount_vip):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidAmount(f"donation amounts must be non-negative integers, got {value!r}")
    if amount == 0 and amount_vip == 0:
        raise InvalidAmount("donate at least one coin or one VIP")


# ---------------------------------------------------------------------------
# Donations
# ---------------------------------------------------------------------------
def donate(
    engine: Engine,
    user_id: int,
    fund_name: str,
    amount: int = 0,
    amount_vip: int = 0,
    reason: str | None = None,
) -> DonationResult:
    """Donate *amount* coins and *amount_vip* VIP from *user_id* to *fund_name*.

    Raises
    ------
    InvalidAmount
        Negative amounts, or both zero.
    FundNotFound
        No fund by that name.
    InsufficientFunds
        Either requested currency exceeds the donor's balance.
    """
    _validate_donation(amount, amount_vip)
    parts = [(c, v) for c, v in ((Currency.COIN, amount), (Currency.VIP, amount_vip)) if v > 0]

    with unit_of_work(engine) as repo:
        if repo.get_fund(fund_name, lock=True) is None:
            raise FundNotFound(fund_name)

        repo.lock_accounts([user_id])
        for currency, value in parts:
            if not repo.debit(user_id, currency, value):
                raise InsufficientFunds(
                    user_id, currency, value, repo.available(user_id, currency)
                )

        repo.upsert_fund_totals(fund_name, amount, amount_vip)
        donation = repo.append_fund_donation(
            fund_name=fund_name,
            donor_id=user_id,
            amount=amount,
            amount_vip=amount_vip,
            reason=reason,
        )
        description = f"Donation to {fund_name}" + (f": {reason}" if reason else "")
        for currency, value in parts:
            repo.append_ledger_entry(
                from_user_id=user_id,
                to_user_id=user_id,
                amount=value,
                currency=currency,
                kind=LedgerKind.FUND_DONATION,
                description=description,
                fund_name=fund_name,
            )

        fund = repo.get_fund(fund_name)
        result = DonationResult(
            fund=FundSummary.from_model(fund),
            donation_id=donation.id,
            amount=amount,
            amount_vip=amount_vip,
        )

    logger.info(
        "Donation to %s by %s: %d coin, %d vip", fund_name, user_id, amount, amount_vip
    )
    return result


# ---------------------------------------------------------------------------
# Administration & read models
# ---------------------------------------------------------------------------
def create_fund(
    engine: Engine,
    name: str,
    description: str | None = None,
    created_by: int | None = None,
) -> FundSummary:
    """Create a fund.  Raises :class:`FundAlreadyExists` on a duplicate name."""
    name = name.strip()
    if not name:
        raise ValueError("fund name must not be empty")

    with unit_of_work(engine) as repo:
        fund = repo.create_fund(name, description, created_by)
        if fund is None:
            raise FundAlreadyExists(name)
        summary = FundSummary.from_model(repo.get_fund(name))

    logger.info("Fund %r created by %s", name, created_by)
    return summary


def list_funds(engine: Engine) -> list[FundSummary]:
    with unit_of_work(engine) as repo:
        funds = repo.session.scalars(select(Fund).order_by(Fund.name)).all()
        return [FundSummary.from_model(f) for f in funds]


def get_fund(engine: Engine, name: str) -> FundSummary:
    with unit_of_work(engine) as repo:
        fund = repo.get_fund(name)
        if fund is None:
            raise FundNotFound(name)
        return FundSummary.from_model(fund)


def get_top_donors(engine: Engine, fund_name: str, limit: int = 10) -> list[DonorTotal]:
    """Donors to *fund_name* grouped per member, biggest coin total first."""
    coin_total = func.sum(FundDonation.amount).label("amount")
    vip_total = func.sum(FundDonation.amount_vip).label("amount_vip")
    stmt = (
        select(
            FundDonation.donor_id,
            coin_total,
            vip_total,
            func.count().label("donations"),
        )
        .where(FundDonation.fund_name == fund_name)
        .group_by(FundDonation.donor_id)
        .order_by(coin_total.desc(), vip_total.desc(), FundDonation.donor_id)
        .limit(limit)
    )
    with unit_of_work(engine) as repo:
        if repo.get_fund(fund_name) is None:
            raise FundNotFound(fund_name)
        return [
            DonorTotal(
                donor_id=row.donor_id,
                amount=row.amount or 0,
                amount_vip=row.amount_vip or 0,
                donations=row.donations,
            )
            for row in repo.session.execute(stmt)
        ]
