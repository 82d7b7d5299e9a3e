"""
studybank.services.invite_service — Invite Tracking & Inviter Rewards
======================================================================

Discord does not say which invite a new member used.  We keep the use
count of every invite in memory and, when someone joins, fetch the
invites again: the one whose count went up is the one they used.

Who gets paid is decided by the ``invites`` table, not the live invite.
The inviter recorded the first time we saw a code always wins over
whatever Discord reports now, because the in-memory cache is lost on
every restart and the live inviter can be a bot that re-created the link.

Each invitee pays out at most once, ever (unique ``invitee_id``).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from studybank.database.models import Invite, InviteReward, LedgerKind
from studybank.database.repository import unit_of_work
from studybank.services.ledger_service import apply_credit

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class InviteSnapshot:
    """The parts of a Discord invite we care about."""

    code: str
    inviter_id: int | None
    uses: int = 0
    max_uses: int = 0
    expires_at: datetime | None = None

    @classmethod
    def from_discord(cls, invite: Any) -> InviteSnapshot:
        inviter = getattr(invite, "inviter", None)
        return cls(
            code=invite.code,
            inviter_id=inviter.id if inviter is not None else None,
            uses=invite.uses or 0,
            max_uses=invite.max_uses or 0,
            expires_at=invite.expires_at,
        )


@dataclass(frozen=True, slots=True)
class UsedInvite:
    code: str
    inviter_id: int | None
    uses: int
    previous_uses: int


@dataclass(frozen=True, slots=True)
class InviteStats:
    total_invites: int
    total_rewards: int
    invites: list[InviteSnapshot] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class InviterTotal:
    inviter_id: int
    total_invites: int
    total_rewards: int


# ---------------------------------------------------------------------------
# In-memory use counter
# ---------------------------------------------------------------------------
class InviteTracker:
    """``code → uses`` cache for one guild."""

    def __init__(self) -> None:
        self._uses: dict[str, int] = {}
        self.initialized = False

    def __len__(self) -> int:
        return len(self._uses)

    def initialize(self, invites: Iterable[InviteSnapshot]) -> None:
        self._uses = {inv.code: inv.uses for inv in invites}
        self.initialized = True
        logger.info("Invite cache initialized with %d invites", len(self._uses))

    def remember(self, invite: InviteSnapshot) -> None:
        self._uses[invite.code] = invite.uses

    def forget(self, code: str) -> None:
        self._uses.pop(code, None)

    def find_used_invite(self, invites: Iterable[InviteSnapshot]) -> UsedInvite | None:
        """Return the first invite whose use count grew, refreshing the cache."""
        used: UsedInvite | None = None
        for inv in invites:
            previous = self._uses.get(inv.code, 0)
            if used is None and inv.uses > previous:
                used = UsedInvite(
                    code=inv.code,
                    inviter_id=inv.inviter_id,
                    uses=inv.uses,
                    previous_uses=previous,
                )
                logger.info("Found used invite %s (%d → %d)", inv.code, previous, inv.uses)
            self._uses[inv.code] = inv.uses
        return used


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
def sync_invites(
    engine: Engine, invites: Iterable[InviteSnapshot], *, claim: bool = False
) -> int:
    """Upsert every invite.  A recorded inviter is never overwritten.

    With *claim*, the snapshot's inviter replaces the recorded one.  Links
    the bot creates on a member's behalf are reported with the bot as
    their inviter, and the member claims them this way.
    """
    count = 0
    with unit_of_work(engine) as repo:
        for inv in invites:
            row = repo.session.get(Invite, inv.code)
            if row is None:
                if inv.inviter_id is None:
                    continue
                repo.session.add(Invite(
                    code=inv.code,
                    inviter_id=inv.inviter_id,
                    uses=inv.uses,
                    max_uses=inv.max_uses,
                    expires_at=inv.expires_at,
                ))
            else:
                if claim and inv.inviter_id is not None:
                    row.inviter_id = inv.inviter_id
                row.uses = inv.uses
                row.max_uses = inv.max_uses
                row.expires_at = inv.expires_at
            count += 1
    logger.info("Synced %d invites with database", count)
    return count


def resolve_inviter(engine: Engine, code: str, live_inviter_id: int | None) -> int | None:
    """The durably recorded inviter for *code*, else the live one."""
    with unit_of_work(engine) as repo:
        recorded = repo.session.scalar(select(Invite.inviter_id).where(Invite.code == code))
    if recorded is not None:
        if live_inviter_id is not None and recorded != live_inviter_id:
            logger.info(
                "Invite %s: using recorded inviter %s instead of live %s",
                code, recorded, live_inviter_id,
            )
        return recorded
    return live_inviter_id


def reward_inviter(
    engine: Engine,
    inviter_id: int,
    invitee_id: int,
    invite_code: str,
    amount: int,
    *,
    invitee_name: str | None = None,
    invite_uses: int | None = None,
) -> bool:
    """Pay *inviter_id* for bringing in *invitee_id*.

    Returns ``False`` (nothing written) for a self-invite or an invitee
    that already earned someone a reward.
    """
    if inviter_id == invitee_id:
        return False

    description = (
        f"Invite reward for {invitee_name or invitee_id} joining via {invite_code}"
    )
    with unit_of_work(engine) as repo:
        try:
            with repo.session.begin_nested():
                repo.session.add(InviteReward(
                    inviter_id=inviter_id,
                    invitee_id=invitee_id,
                    invite_code=invite_code,
                    reward_amount=amount,
                ))
                repo.session.flush()
        except IntegrityError:
            logger.info("Invitee %s was already rewarded; skipping", invitee_id)
            return False

        apply_credit(repo, inviter_id, amount, LedgerKind.INVITE_REWARD, description)

        if invite_uses is not None:
            repo.session.execute(
                update(Invite).where(Invite.code == invite_code).values(uses=invite_uses)
            )

    logger.info("Rewarded %s with %d for invite %s", inviter_id, amount, invite_code)
    return True


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
def get_invite_stats(engine: Engine, user_id: int) -> InviteStats:
    with unit_of_work(engine) as repo:
        row = repo.session.execute(
            select(
                func.count(InviteReward.id),
                func.coalesce(func.sum(InviteReward.reward_amount), 0),
            ).where(InviteReward.inviter_id == user_id)
        ).one()
        invites = repo.session.scalars(
            select(Invite)
            .where(Invite.inviter_id == user_id)
            .order_by(Invite.created_at.desc(), Invite.code)
        ).all()
        return InviteStats(
            total_invites=row[0] or 0,
            total_rewards=row[1] or 0,
            invites=[
                InviteSnapshot(
                    code=i.code,
                    inviter_id=i.inviter_id,
                    uses=i.uses,
                    max_uses=i.max_uses,
                    expires_at=i.expires_at,
                )
                for i in invites
            ],
        )


def get_invite_leaderboard(engine: Engine, limit: int = 10) -> list[InviterTotal]:
    total_invites = func.count(InviteReward.id).label("total_invites")
    total_rewards = func.sum(InviteReward.reward_amount).label("total_rewards")
    stmt = (
        select(InviteReward.inviter_id, total_invites, total_rewards)
        .group_by(InviteReward.inviter_id)
        .order_by(total_invites.desc(), total_rewards.desc(), InviteReward.inviter_id)
        .limit(limit)
    )
    with unit_of_work(engine) as repo:
        return [
            InviterTotal(
                inviter_id=row.inviter_id,
                total_invites=row.total_invites,
                total_rewards=row.total_rewards or 0,
            )
            for row in repo.session.execute(stmt)
        ]
