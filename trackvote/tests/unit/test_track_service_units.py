"""
tests/unit/test_track_service_units.py — Unit tests for track_service.submit_track.

What this file proves:
  - INV-3: the unique-constraint violation becomes DuplicateTrackError after
    a rollback; there is no SELECT-based duplicate check
  - INV-5: an inactive week rejects the submission before any INSERT
  - Catalog fields are copied onto the Track row (artists joined)
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from trackvote.app.errors import AppError, DuplicateTrackError, ErrorCode, InactiveWeekError
from trackvote.app.models.track import Track
from trackvote.app.services import track_service
from trackvote.app.services.catalog_service import CatalogTrack

CATALOG_TRACK = CatalogTrack(
    catalog_id="3135556",
    title="Harder, Better, Faster, Stronger",
    artists=["Daft Punk", "Kanye West"],
    album_name="Discovery",
    artwork_url="https://img.test/cover.jpg",
    preview_url=None,
)


@patch("trackvote.app.services.week_service.lock_active_week")
def test_submit_track_inserts_row(mock_lock):
    mock_lock.return_value = SimpleNamespace(id=5, is_active=True)
    session = MagicMock()

    track = track_service.submit_track(5, CATALOG_TRACK, "user-a", session)

    assert isinstance(track, Track)
    assert track.group_week_id == 5
    assert track.catalog_id == "3135556"
    assert track.artist == "Daft Punk, Kanye West"
    assert track.album == "Discovery"
    assert track.added_by_user_id == "user-a"
    session.add.assert_called_once_with(track)
    session.flush.assert_called_once()
    # Duplicate detection relies on the constraint, not a prior SELECT.
    session.execute.assert_not_called()


@patch("trackvote.app.services.week_service.lock_active_week")
def test_duplicate_submission_raises_duplicate_track(mock_lock):
    mock_lock.return_value = SimpleNamespace(id=5, is_active=True)
    session = MagicMock()
    session.flush.side_effect = IntegrityError(
        "INSERT INTO tracks", {}, Exception("uq_tracks_week_catalog"),
    )

    with pytest.raises(DuplicateTrackError) as exc_info:
        track_service.submit_track(5, CATALOG_TRACK, "user-b", session)

    err = exc_info.value
    assert err.code == ErrorCode.DUPLICATE_TRACK
    assert err.http_status == 409
    assert err.catalog_id == "3135556"
    session.rollback.assert_called_once()


@patch("trackvote.app.services.week_service.lock_active_week")
def test_inactive_week_rejects_submission(mock_lock):
    mock_lock.side_effect = InactiveWeekError(5)
    session = MagicMock()

    with pytest.raises(InactiveWeekError):
        track_service.submit_track(5, CATALOG_TRACK, "user-a", session)

    session.add.assert_not_called()


def test_get_track_or_404():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        track_service.get_track_or_404(12, session)

    assert exc_info.value.code == ErrorCode.TRACK_NOT_FOUND
    assert exc_info.value.http_status == 404
