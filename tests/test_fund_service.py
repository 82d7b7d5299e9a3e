"""
tests/test_fund_service.py — Community Fund Tests
==================================================

Fund creation, donations in one or both currencies, and the
all-or-nothing guarantee when a donation cannot be covered.
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from studybank.database.models import Currency, FundDonation, LedgerEntry, LedgerKind
from studybank.services.errors import (
    FundAlreadyExists,
    FundNotFound,
    InsufficientFunds,
    InvalidAmount,
)
from studybank.services.fund_service import (
    create_fund,
    donate,
    get_fund,
    get_top_donors,
    list_funds,
)
from studybank.services.ledger_service import credit_earning, get_balance

DONOR = 2001
OTHER = 2002
FUND = "Library"


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def fund(engine):
    return create_fund(engine, FUND, "New books for the study hall", created_by=1)


def _seed(engine, user_id: int, coins: int = 0, vip: int = 0) -> None:
    if coins:
        credit_earning(engine, user_id, coins, LedgerKind.ADMIN, "seed")
    if vip:
        credit_earning(engine, user_id, vip, LedgerKind.ADMIN, "seed", currency=Currency.VIP)


def _donation_entries(engine) -> list[LedgerEntry]:
    with Session(engine) as session:
        return list(session.scalars(
            select(LedgerEntry)
            .where(LedgerEntry.kind == LedgerKind.FUND_DONATION.value)
            .order_by(LedgerEntry.id)
        ))


# ===========================================================================
# Fund administration
# ===========================================================================
class TestCreateFund:
    def test_create_and_get(self, engine, fund):
        assert fund.name == FUND
        assert fund.total_donated == 0
        assert get_fund(engine, FUND).description == "New books for the study hall"

    def test_name_is_trimmed(self, engine):
        summary = create_fund(engine, "  Snacks  ")
        assert summary.name == "Snacks"

    def test_duplicate_rejected(self, engine, fund):
        with pytest.raises(FundAlreadyExists):
            create_fund(engine, FUND)
        assert len(list_funds(engine)) == 1

    def test_blank_name_rejected(self, engine):
        with pytest.raises(ValueError):
            create_fund(engine, "   ")

    def test_get_unknown_fund(self, engine):
        with pytest.raises(FundNotFound):
            get_fund(engine, "Nope")

    def test_list_sorted_by_name(self, engine):
        create_fund(engine, "Zebra")
        create_fund(engine, "Apple")
        assert [f.name for f in list_funds(engine)] == ["Apple", "Zebra"]


# ===========================================================================
# Donations
# ===========================================================================
class TestDonate:
    def test_coin_donation(self, engine, fund):
        _seed(engine, DONOR, coins=10)
        result = donate(engine, DONOR, FUND, amount=4, reason="for books")

        assert result.fund.total_donated == 4
        assert result.fund.total_donated_vip == 0
        account = get_balance(engine, DONOR)
        assert account.balance == 6
        # Spending never lowers the lifetime total.
        assert account.total_earned == 10

        (entry,) = _donation_entries(engine)
        assert entry.fund_name == FUND
        assert entry.from_user_id == DONOR
        assert entry.amount == 4
        assert entry.description == "Donation to Library: for books"

    def test_both_currencies_write_two_entries(self, engine, fund):
        _seed(engine, DONOR, coins=5, vip=5)
        result = donate(engine, DONOR, FUND, amount=2, amount_vip=3)

        assert result.fund.total_donated == 2
        assert result.fund.total_donated_vip == 3
        entries = _donation_entries(engine)
        assert [(e.currency, e.amount) for e in entries] == [("coin", 2), ("vip", 3)]

    def test_vip_only_donation(self, engine, fund):
        _seed(engine, DONOR, vip=2)
        donate(engine, DONOR, FUND, amount=0, amount_vip=2)
        assert get_balance(engine, DONOR).balance_vip == 0
        assert [e.currency for e in _donation_entries(engine)] == ["vip"]

    def test_short_vip_rolls_back_coins(self, engine, fund):
        _seed(engine, DONOR, coins=10, vip=1)
        with pytest.raises(InsufficientFunds) as exc_info:
            donate(engine, DONOR, FUND, amount=5, amount_vip=3)
        assert exc_info.value.currency == Currency.VIP

        account = get_balance(engine, DONOR)
        assert account.balance == 10
        assert account.balance_vip == 1
        assert get_fund(engine, FUND).total_donated == 0
        assert _donation_entries(engine) == []
        with Session(engine) as session:
            assert session.scalars(select(FundDonation)).first() is None

    def test_unknown_fund(self, engine):
        _seed(engine, DONOR, coins=10)
        with pytest.raises(FundNotFound):
            donate(engine, DONOR, "Missing", amount=1)
        assert get_balance(engine, DONOR).balance == 10

    @pytest.mark.parametrize("amount, amount_vip", [(0, 0), (-1, 2), (2, -1)])
    def test_invalid_amounts(self, engine, fund, amount, amount_vip):
        _seed(engine, DONOR, coins=10, vip=10)
        with pytest.raises(InvalidAmount):
            donate(engine, DONOR, FUND, amount=amount, amount_vip=amount_vip)

    def test_top_donors_grouped(self, engine, fund):
        _seed(engine, DONOR, coins=10)
        _seed(engine, OTHER, coins=10, vip=1)
        donate(engine, DONOR, FUND, amount=2)
        donate(engine, DONOR, FUND, amount=3)
        donate(engine, OTHER, FUND, amount=4, amount_vip=1)

        donors = get_top_donors(engine, FUND)
        assert [(d.donor_id, d.amount, d.donations) for d in donors] == [
            (DONOR, 5, 2),
            (OTHER, 4, 1),
        ]
        assert donors[1].amount_vip == 1
        assert get_fund(engine, FUND).total_donated == 9

    def test_top_donors_unknown_fund(self, engine):
        with pytest.raises(FundNotFound):
            get_top_donors(engine, "Missing")
