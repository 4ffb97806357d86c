"""
services/track_service.py — Track submission (TrackRegistry).

Invariants enforced here:
  INV-3  one submission per catalog track per week
  INV-5  tracks attach only to an active week

Duplicate detection is delegated to the uq_tracks_week_catalog constraint:
the INSERT either succeeds or fails with IntegrityError, which becomes
DuplicateTrackError. A SELECT-then-INSERT check would let two concurrent
submissions of the same track both pass the SELECT.

Submitting a track never casts a vote. The auto-vote is a separate step in
voting_session.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trackvote.app.errors import AppError, DuplicateTrackError, ErrorCode
from trackvote.app.models.track import Track
from trackvote.app.services import week_service
from trackvote.app.services.catalog_service import CatalogTrack

logger = logging.getLogger(__name__)


def build_track_dict(track: Track) -> dict:
    return {
        "id": track.id,
        "group_week_id": track.group_week_id,
        "catalog_id": track.catalog_id,
        "title": track.title,
        "artist": track.artist,
        "album": track.album,
        "artwork_url": track.artwork_url,
        "preview_url": track.preview_url,
        "added_by_user_id": track.added_by_user_id,
        "added_at": week_service.as_utc(track.added_at).isoformat() if track.added_at else None,
    }


def get_track_or_404(track_id: int, session: Session) -> Track:
    track = session.get(Track, track_id)
    if track is None:
        raise AppError(
            ErrorCode.TRACK_NOT_FOUND,
            f"Track {track_id} does not exist.",
            404,
            field="track_id",
        )
    return track


def list_tracks(week_id: int, session: Session) -> list[Track]:
    """All tracks of the week in submission order."""
    return list(
        session.execute(
            select(Track)
            .where(Track.group_week_id == week_id)
            .order_by(Track.added_at.asc(), Track.id.asc())
        ).scalars().all()
    )


def submit_track(
        week_id: int,
        catalog_track: CatalogTrack,
        submitter_id: str,
        session: Session,
) -> Track:
    """
    Adds a catalog track to the week's list.

    The week row is share-locked so a concurrent rotation cannot deactivate
    it between the is_active check and the INSERT.

    Raises:
      AppError(WEEK_NOT_FOUND, 404)
      InactiveWeekError (422)     — INV-5
      DuplicateTrackError (409)   — INV-3; the earlier submission is untouched
    """
    week_service.lock_active_week(week_id, session)

    track = Track(
        group_week_id=week_id,
        catalog_id=catalog_track.catalog_id,
        title=catalog_track.title,
        artist=catalog_track.artist_display,
        album=catalog_track.album_name,
        artwork_url=catalog_track.artwork_url,
        preview_url=catalog_track.preview_url,
        added_by_user_id=submitter_id,
    )
    session.add(track)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        logger.info(
            "Duplicate submission of %s in week %s by %s",
            catalog_track.catalog_id, week_id, submitter_id,
        )
        raise DuplicateTrackError(week_id, catalog_track.catalog_id)

    logger.info("User %s submitted track %s to week %s", submitter_id, track.id, week_id)
    return track
