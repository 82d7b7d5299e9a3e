"""
studybank.api.routes.public — Read-only public endpoints
=========================================================

Snowflake ids are returned as strings; JavaScript clients lose precision
above 2**53.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import Engine

from studybank.api.deps import get_config, get_engine
from studybank.config import StudybankConfig
from studybank.services.errors import AccountNotFound, FundNotFound
from studybank.services.fund_service import (
    FundSummary,
    get_fund,
    get_top_donors,
    list_funds,
)
from studybank.services.invite_service import get_invite_leaderboard
from studybank.services.ledger_service import (
    AccountSnapshot,
    get_balance,
    get_checkin_leaderboard,
    get_leaderboard,
    get_user_ledger,
)

router = APIRouter(tags=["public"])

LeaderboardField = Literal["balance", "total_earned", "balance_vip", "total_earned_vip"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _account_dict(a: AccountSnapshot) -> dict:
    return {
        "user_id": str(a.user_id),
        "balance": a.balance,
        "balance_vip": a.balance_vip,
        "total_earned": a.total_earned,
        "total_earned_vip": a.total_earned_vip,
    }


def _fund_dict(f: FundSummary) -> dict:
    return {
        "name": f.name,
        "description": f.description,
        "total_donated": f.total_donated,
        "total_donated_vip": f.total_donated_vip,
        "created_by": str(f.created_by) if f.created_by else None,
        "created_at": f.created_at.isoformat() if f.created_at else None,
    }


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
@router.get("/accounts/{user_id}")
def get_account(user_id: int, engine: Engine = Depends(get_engine)):
    try:
        return _account_dict(get_balance(engine, user_id))
    except AccountNotFound:
        raise HTTPException(status_code=404, detail="Account not found") from None


@router.get("/accounts/{user_id}/ledger")
def get_account_ledger(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    engine: Engine = Depends(get_engine),
):
    """Most recent entries the user sent or received."""
    return [
        {
            "id": e.id,
            "from_user_id": str(e.from_user_id) if e.from_user_id is not None else None,
            "to_user_id": str(e.to_user_id),
            "amount": e.amount,
            "currency": e.currency,
            "kind": e.kind,
            "description": e.description,
            "fund_name": e.fund_name,
            "created_at": e.created_at.isoformat() if e.created_at else None,
        }
        for e in get_user_ledger(engine, user_id, limit)
    ]


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
@router.get("/leaderboard/{field}")
def get_account_leaderboard(
    field: LeaderboardField,
    limit: int = Query(10, ge=1, le=100),
    engine: Engine = Depends(get_engine),
    cfg: StudybankConfig = Depends(get_config),
):
    rows = get_leaderboard(engine, field, limit, cfg.leaderboard_exclude_ids)
    return [
        {"rank": i + 1, **_account_dict(row)}
        for i, row in enumerate(rows)
    ]


@router.get("/checkins")
def get_checkins(
    order_by: Literal["current_streak", "total_checkins"] = "current_streak",
    limit: int = Query(10, ge=1, le=100),
    engine: Engine = Depends(get_engine),
):
    return [
        {
            "user_id": str(user_id),
            "current_streak": s.current_streak,
            "total_checkins": s.total_checkins,
            "last_checkin_date": s.last_checkin_date.isoformat() if s.last_checkin_date else None,
        }
        for user_id, s in get_checkin_leaderboard(engine, order_by, limit)
    ]


@router.get("/invites/leaderboard")
def get_inviters(
    limit: int = Query(10, ge=1, le=100),
    engine: Engine = Depends(get_engine),
):
    return [
        {
            "inviter_id": str(r.inviter_id),
            "total_invites": r.total_invites,
            "total_rewards": r.total_rewards,
        }
        for r in get_invite_leaderboard(engine, limit)
    ]


# ---------------------------------------------------------------------------
# Funds
# ---------------------------------------------------------------------------
@router.get("/funds")
def get_funds(engine: Engine = Depends(get_engine)):
    return [_fund_dict(f) for f in list_funds(engine)]


@router.get("/funds/{name}")
def get_fund_detail(name: str, engine: Engine = Depends(get_engine)):
    try:
        return _fund_dict(get_fund(engine, name))
    except FundNotFound:
        raise HTTPException(status_code=404, detail="Fund not found") from None


@router.get("/funds/{name}/donors")
def get_fund_donors(
    name: str,
    limit: int = Query(10, ge=1, le=100),
    engine: Engine = Depends(get_engine),
):
    try:
        donors = get_top_donors(engine, name, limit)
    except FundNotFound:
        raise HTTPException(status_code=404, detail="Fund not found") from None
    return [
        {
            "donor_id": str(d.donor_id),
            "amount": d.amount,
            "amount_vip": d.amount_vip,
            "donations": d.donations,
        }
        for d in donors
    ]
