"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================

Read-only public endpoints over an in-memory database, using the
FastAPI TestClient with the engine and config dependencies overridden.
"""

from __future__ import annotations

from datetime import date

import pytest

from studybank.database.models import Currency, LedgerKind
from studybank.services.fund_service import create_fund, donate
from studybank.services.invite_service import reward_inviter
from studybank.services.ledger_service import (
    credit_earning,
    process_daily_checkin,
    transfer,
)

ALICE = 123456789012345678  # snowflake-sized, above 2**53
BOB = 1002
HIDDEN = 999


@pytest.fixture
def seeded(db_engine):
    credit_earning(db_engine, ALICE, 10, LedgerKind.VOICE_EARN, "Voice study session")
    credit_earning(db_engine, BOB, 4, LedgerKind.VOICE_EARN)
    credit_earning(db_engine, HIDDEN, 50, LedgerKind.ADMIN)
    credit_earning(db_engine, BOB, 2, LedgerKind.ADMIN, currency=Currency.VIP)
    transfer(db_engine, ALICE, BOB, 3, Currency.COIN, "thanks")
    create_fund(db_engine, "Library", "Books")
    donate(db_engine, BOB, "Library", amount=1, amount_vip=1)
    process_daily_checkin(db_engine, ALICE, date(2024, 1, 8))
    reward_inviter(db_engine, HIDDEN, 7777, "abc", 3)
    return db_engine


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Accounts
# ===========================================================================
class TestAccounts:
    def test_account(self, client, seeded):
        resp = client.get(f"/api/accounts/{ALICE}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["user_id"] == str(ALICE)
        assert body["balance"] == 10 - 3 + 1
        assert body["total_earned"] == 11

    def test_unknown_account_404(self, client, seeded):
        assert client.get("/api/accounts/42").status_code == 404

    def test_ledger(self, client, seeded):
        resp = client.get(f"/api/accounts/{ALICE}/ledger", params={"limit": 2})
        assert resp.status_code == 200
        lines = resp.json()
        assert [line["kind"] for line in lines] == ["daily_checkin", "gift"]
        assert lines[1]["from_user_id"] == str(ALICE)
        assert lines[0]["from_user_id"] is None

    def test_ledger_limit_validated(self, client, seeded):
        assert client.get(f"/api/accounts/{ALICE}/ledger", params={"limit": 0}).status_code == 422


# ===========================================================================
# Leaderboards
# ===========================================================================
class TestLeaderboards:
    def test_balance_leaderboard_respects_exclusions(self, client, seeded):
        resp = client.get("/api/leaderboard/balance")
        assert resp.status_code == 200
        rows = resp.json()
        assert [r["user_id"] for r in rows] == [str(ALICE), str(BOB)]
        assert rows[0]["rank"] == 1

    def test_vip_leaderboard(self, client, seeded):
        rows = client.get("/api/leaderboard/balance_vip").json()
        assert [(r["user_id"], r["balance_vip"]) for r in rows] == [(str(BOB), 1)]

    def test_unknown_field_rejected(self, client, seeded):
        assert client.get("/api/leaderboard/user_id").status_code == 422

    def test_checkins(self, client, seeded):
        rows = client.get("/api/checkins").json()
        assert rows == [{
            "user_id": str(ALICE),
            "current_streak": 1,
            "total_checkins": 1,
            "last_checkin_date": "2024-01-08",
        }]

    def test_invite_leaderboard(self, client, seeded):
        rows = client.get("/api/invites/leaderboard").json()
        assert rows == [{"inviter_id": str(HIDDEN), "total_invites": 1, "total_rewards": 3}]


# ===========================================================================
# Funds
# ===========================================================================
class TestFunds:
    def test_list(self, client, seeded):
        funds = client.get("/api/funds").json()
        assert [f["name"] for f in funds] == ["Library"]
        assert funds[0]["total_donated"] == 1
        assert funds[0]["total_donated_vip"] == 1

    def test_detail_and_404(self, client, seeded):
        assert client.get("/api/funds/Library").json()["description"] == "Books"
        assert client.get("/api/funds/Nope").status_code == 404

    def test_donors(self, client, seeded):
        donors = client.get("/api/funds/Library/donors").json()
        assert donors == [{"donor_id": str(BOB), "amount": 1, "amount_vip": 1, "donations": 1}]
        assert client.get("/api/funds/Nope/donors").status_code == 404


class TestReadOnly:
    def test_no_mutating_routes(self, client):
        from studybank.api.main import app

        methods = {m for route in app.routes for m in getattr(route, "methods", set())}
        assert methods <= {"GET", "HEAD"}
