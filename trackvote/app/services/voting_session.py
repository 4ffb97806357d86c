"""
services/voting_session.py — Group-scoped voting workflow (VotingSession).

The entry point the routes use for tracks, votes and standings. Each public
function checks membership (INV-6), resolves the group's active week and
delegates to the component services:

  add_track      → track_service.submit_track, then the separate auto-vote step
  cast_vote      → vote_service.cast_vote
  get_standings  → ranking_service.standings + the caller's voting state

Domain errors from the components surface unchanged. Database connectivity
failures (OperationalError / InterfaceError) surface as StoreUnavailableError
(503) via @translate_store_errors.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from trackvote.app.errors import (
    BudgetExceededError,
    NoActiveWeekError,
    StoreUnavailableError,
    WarningCode,
)
from trackvote.app.models.group_week import GroupWeek
from trackvote.app.models.track import Track
from trackvote.app.models.vote import Vote
from trackvote.app.services import (
    group_service,
    ranking_service,
    track_service,
    vote_service,
    week_service,
)
from trackvote.app.services.catalog_service import CatalogTrack

logger = logging.getLogger(__name__)


def translate_store_errors(f: Callable) -> Callable:
    """Re-raises database connectivity failures as StoreUnavailableError."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            logger.error("Store unavailable during %s: %s", f.__name__, exc)
            raise StoreUnavailableError() from exc

    return decorated


# ── Private helpers ────────────────────────────────────────────────────────

def _require_member(group_id: int, user_id: str, session: Session) -> None:
    group_service.get_group_or_404(group_id, session)
    group_service.require_member(group_id, user_id, session)


def _require_active_week(group_id: int, session: Session) -> GroupWeek:
    week = week_service.get_active_week(group_id, session)
    if week is None:
        raise NoActiveWeekError(group_id)
    return week


def _auto_vote(week_id: int, track: Track, user_id: str, session: Session) -> tuple[Vote | None, list[dict]]:
    """
    Spends one coin on the submitter's own track if they have one left.
    Running out of coins is not an error here: the track stays, no vote is
    cast and a warning is returned.
    """
    skipped = {
        "code": WarningCode.AUTO_VOTE_SKIPPED,
        "message": (
            f"Track added without a vote: all {vote_service.MAX_COINS} coins "
            f"for this week are already spent."
        ),
    }

    if vote_service.coins_remaining(user_id, week_id, session) < 1:
        logger.info("Auto-vote skipped for user %s on track %s: no coins left", user_id, track.id)
        return None, [skipped]

    try:
        vote = vote_service.cast_vote(week_id, track.id, user_id, session, coins=1)
    except BudgetExceededError:
        # A concurrent cast spent the last coin after the check above.
        logger.info("Auto-vote skipped for user %s on track %s: budget exhausted", user_id, track.id)
        return None, [skipped]

    return vote, []


def _voting_state(week_id: int, user_id: str, session: Session) -> dict:
    spent = vote_service.coins_spent(user_id, week_id, session)
    remaining = max(vote_service.MAX_COINS - spent, 0)
    return {
        "group_week_id": week_id,
        "max_coins": vote_service.MAX_COINS,
        "coins_spent": spent,
        "coins_remaining": remaining,
        "can_vote": remaining > 0,
    }


# ── Public service functions ───────────────────────────────────────────────

@translate_store_errors
def add_track(
        group_id: int,
        user_id: str,
        catalog_track: CatalogTrack,
        session: Session,
        auto_vote: bool = True,
) -> tuple[dict, list[dict]]:
    """
    Submits a catalog track to the group's active week and, when auto_vote is
    on, spends one of the submitter's coins on it.

    Returns:
        (result, warnings). result has "track", "auto_vote" (vote dict or
        None) and "coins_remaining". warnings carries AUTO_VOTE_SKIPPED when
        the submitter had no coin left.

    Raises:
      AppError(GROUP_NOT_FOUND, 404) / AppError(FORBIDDEN, 403)
      NoActiveWeekError (422)
      InactiveWeekError (422)    — the week was closed concurrently
      DuplicateTrackError (409)
    """
    _require_member(group_id, user_id, session)
    week = _require_active_week(group_id, session)

    track = track_service.submit_track(week.id, catalog_track, user_id, session)

    vote, warnings = None, []
    if auto_vote:
        vote, warnings = _auto_vote(week.id, track, user_id, session)

    result = {
        "track": track_service.build_track_dict(track),
        "auto_vote": vote_service.build_vote_dict(vote) if vote is not None else None,
        "coins_remaining": vote_service.coins_remaining(user_id, week.id, session),
    }
    return result, warnings


@translate_store_errors
def cast_vote(
        group_id: int,
        user_id: str,
        track_id: int,
        session: Session,
        coins: int = 1,
) -> dict:
    """
    Casts a vote in the group's active week.

    Raises (unchanged from vote_service):
      NoActiveWeekError, InactiveWeekError, TrackWeekMismatchError,
      BudgetExceededError (all 422), AppError(TRACK_NOT_FOUND, 404)
    """
    _require_member(group_id, user_id, session)
    week = _require_active_week(group_id, session)

    vote = vote_service.cast_vote(week.id, track_id, user_id, session, coins=coins)

    result = vote_service.build_vote_dict(vote)
    result["coins_remaining"] = vote_service.coins_remaining(user_id, week.id, session)
    return result


@translate_store_errors
def get_voting_state(group_id: int, user_id: str, session: Session) -> dict:
    """
    The caller's budget in the active week plus the votes they cast. With no
    active week, can_vote is False and group_week_id is None.
    """
    _require_member(group_id, user_id, session)
    week = week_service.get_active_week(group_id, session)
    if week is None:
        return {
            "group_week_id": None,
            "max_coins": vote_service.MAX_COINS,
            "coins_spent": 0,
            "coins_remaining": 0,
            "can_vote": False,
            "votes": [],
        }

    state = _voting_state(week.id, user_id, session)
    state["votes"] = [
        vote_service.build_vote_dict(v)
        for v in vote_service.list_user_votes(user_id, week.id, session)
    ]
    return state


@translate_store_errors
def get_standings(group_id: int, user_id: str, session: Session) -> dict:
    """
    Ranked standings of the active week. With no active week the result is
    explicit: {"active_week": None, "standings": [], "voting_state": None}.
    """
    _require_member(group_id, user_id, session)
    week = week_service.get_active_week(group_id, session)
    if week is None:
        return {"active_week": None, "standings": [], "voting_state": None}

    return {
        "active_week": week_service.build_week_dict(week),
        "standings": [s.to_dict() for s in ranking_service.standings(week.id, session)],
        "voting_state": _voting_state(week.id, user_id, session),
    }


@translate_store_errors
def list_unvoted_tracks(group_id: int, user_id: str, session: Session) -> list[dict]:
    """Zero-vote tracks of the active week; [] when there is no active week."""
    _require_member(group_id, user_id, session)
    week = week_service.get_active_week(group_id, session)
    if week is None:
        return []
    return [
        track_service.build_track_dict(t)
        for t in ranking_service.unvoted_tracks(week.id, session)
    ]
