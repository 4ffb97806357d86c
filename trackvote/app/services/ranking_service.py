"""
services/ranking_service.py — Weekly standings (RankingEngine).

Everything here is derived from vote rows on every call (INV-7); nothing is
cached or stored, so standings() is idempotent and always consistent with
the ledger.

Ranking policy:
  - Only tracks with at least one coin appear in the standings. Zero-vote
    tracks are listed separately by unvoted_tracks().
  - Order: vote_count descending, then earlier submission first, then lower
    track id. standing_sort_key is the only place this order is defined.

Read-only: no flush, no commit.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from trackvote.app.models.track import Track
from trackvote.app.models.user import User
from trackvote.app.models.vote import Vote
from trackvote.app.services import track_service
from trackvote.app.services.week_service import as_utc


@dataclass(slots=True)
class Standing:
    track: Track
    vote_count: int
    voters: list[dict] = field(default_factory=list)
    rank: int = 0

    def to_dict(self) -> dict:
        result = track_service.build_track_dict(self.track)
        result["vote_count"] = self.vote_count
        result["voters"] = self.voters
        result["rank"] = self.rank
        return result


def standing_sort_key(standing: Standing) -> tuple[int, datetime, int]:
    """(-vote_count, added_at, id): most coins first, ties to the earlier submission."""
    return (-standing.vote_count, as_utc(standing.track.added_at), standing.track.id)


# ── Aggregates ─────────────────────────────────────────────────────────────

def tally_votes(week_id: int, session: Session) -> dict[int, int]:
    """{track_id: total coins} for tracks with at least one vote."""
    rows = session.execute(
        select(Vote.track_id, func.sum(Vote.coins_spent))
        .where(Vote.group_week_id == week_id)
        .group_by(Vote.track_id)
    ).all()
    return {track_id: int(total) for track_id, total in rows}


def voters_by_track(week_id: int, session: Session) -> dict[int, list[dict]]:
    """
    {track_id: [voter, ...]} with coins summed per user, so a user who voted
    twice for a track appears once. Voters are ordered by coins spent
    (descending), then user id.
    """
    rows = session.execute(
        select(
            Vote.track_id,
            Vote.user_id,
            User.display_name,
            User.avatar_url,
            func.sum(Vote.coins_spent).label("coins_spent"),
        )
        .join(User, User.id == Vote.user_id)
        .where(Vote.group_week_id == week_id)
        .group_by(Vote.track_id, Vote.user_id, User.display_name, User.avatar_url)
    ).all()

    voters: dict[int, list[dict]] = defaultdict(list)
    for track_id, user_id, display_name, avatar_url, coins in rows:
        voters[track_id].append({
            "user_id": user_id,
            "display_name": display_name,
            "avatar_url": avatar_url,
            "coins_spent": int(coins),
        })

    for entries in voters.values():
        entries.sort(key=lambda v: (-v["coins_spent"], v["user_id"]))
    return dict(voters)


# ── Ranking ────────────────────────────────────────────────────────────────

def rank_tracks(
        tracks: Iterable[Track],
        tallies: dict[int, int],
        voters: dict[int, list[dict]] | None = None,
) -> list[Standing]:
    """Pure: filters out zero-vote tracks, orders the rest and numbers them from 1."""
    voters = voters or {}
    standings = [
        Standing(track=t, vote_count=tallies[t.id], voters=voters.get(t.id, []))
        for t in tracks
        if tallies.get(t.id, 0) > 0
    ]
    standings.sort(key=standing_sort_key)
    for position, standing in enumerate(standings, start=1):
        standing.rank = position
    return standings


def standings(week_id: int, session: Session) -> list[Standing]:
    """The week's ranked standings. An empty week yields []."""
    tracks = track_service.list_tracks(week_id, session)
    return rank_tracks(
        tracks,
        tally_votes(week_id, session),
        voters_by_track(week_id, session),
    )


def unvoted_tracks(week_id: int, session: Session) -> list[Track]:
    """Tracks of the week nobody has spent a coin on, in submission order."""
    tallies = tally_votes(week_id, session)
    return [t for t in track_service.list_tracks(week_id, session) if t.id not in tallies]
