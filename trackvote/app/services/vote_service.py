"""
services/vote_service.py — Coin-budgeted vote ledger (VoteLedger).

Invariants enforced here:
  INV-1  per (user, week): SUM(coins_spent) <= MAX_COINS
  INV-4  a vote's track belongs to the vote's week
  INV-5  votes attach only to an active week
  INV-7  spend is always re-read from the votes table, never cached

Budget check (cast_vote) is a read-then-write, so it runs under a lock:
  1. FOR SHARE on the week row (INV-5; a rotation waits for us).
  2. FOR UPDATE on the caller's membership row. Every cast by the same user
     in the same group queues here, and a group has one active week, so
     this serialises all casts for one (user, week).
  3. SUM(coins_spent) in the same transaction, after the lock is granted.
  4. INSERT or BudgetExceededError.
A second concurrent cast blocks at step 2 until the first commits, then
reads the committed total at step 3.

Votes are append-only. There is no retraction.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from trackvote.app.errors import (
    AppError,
    BudgetExceededError,
    ErrorCode,
    TrackWeekMismatchError,
)
from trackvote.app.models.membership import Membership
from trackvote.app.models.vote import Vote
from trackvote.app.services import track_service, week_service

logger = logging.getLogger(__name__)

MAX_COINS = 3


def membership_lock_stmt(user_id: str, group_id: int) -> Select:
    return (
        select(Membership)
        .where(Membership.user_id == user_id, Membership.group_id == group_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def coins_spent(user_id: str, week_id: int, session: Session) -> int:
    """Total coins the user has spent in the week (0 when none)."""
    return session.execute(
        select(func.coalesce(func.sum(Vote.coins_spent), 0)).where(
            Vote.user_id == user_id,
            Vote.group_week_id == week_id,
        )
    ).scalar_one()


def coins_remaining(user_id: str, week_id: int, session: Session) -> int:
    return max(MAX_COINS - coins_spent(user_id, week_id, session), 0)


def build_vote_dict(vote: Vote) -> dict:
    return {
        "id": vote.id,
        "track_id": vote.track_id,
        "user_id": vote.user_id,
        "group_week_id": vote.group_week_id,
        "coins_spent": vote.coins_spent,
        "voted_at": week_service.as_utc(vote.voted_at).isoformat() if vote.voted_at else None,
    }


def cast_vote(
        week_id: int,
        track_id: int,
        user_id: str,
        session: Session,
        coins: int = 1,
) -> Vote:
    """
    Spends `coins` of the user's weekly budget on a track.

    Raises:
      AppError(INVALID_FIELD, 400)   — coins < 1
      AppError(WEEK_NOT_FOUND, 404)
      InactiveWeekError (422)        — INV-5
      AppError(TRACK_NOT_FOUND, 404)
      TrackWeekMismatchError (422)   — INV-4
      AppError(FORBIDDEN, 403)       — user is not a member of the week's group
      BudgetExceededError (422)      — INV-1; nothing is written
    """
    if coins < 1:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "A vote must spend at least one coin.",
            400,
            field="coins",
        )

    week = week_service.lock_active_week(week_id, session)

    track = track_service.get_track_or_404(track_id, session)
    if track.group_week_id != week_id:
        raise TrackWeekMismatchError(track_id, week_id)

    membership = session.execute(
        membership_lock_stmt(user_id, week.group_id)
    ).scalar_one_or_none()
    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {week.group_id}.",
            403,
        )

    spent = coins_spent(user_id, week_id, session)
    if spent + coins > MAX_COINS:
        logger.info(
            "Budget exceeded: user %s week %s spent %s requested %s",
            user_id, week_id, spent, coins,
        )
        raise BudgetExceededError(
            user_id=user_id,
            week_id=week_id,
            requested=coins,
            remaining=max(MAX_COINS - spent, 0),
        )

    vote = Vote(
        track_id=track_id,
        user_id=user_id,
        group_week_id=week_id,
        coins_spent=coins,
    )
    session.add(vote)
    session.flush()

    logger.info(
        "User %s spent %s coin(s) on track %s in week %s (%s/%s used)",
        user_id, coins, track_id, week_id, spent + coins, MAX_COINS,
    )
    return vote


def list_user_votes(user_id: str, week_id: int, session: Session) -> list[Vote]:
    return list(
        session.execute(
            select(Vote)
            .where(Vote.user_id == user_id, Vote.group_week_id == week_id)
            .order_by(Vote.voted_at.asc(), Vote.id.asc())
        ).scalars().all()
    )
