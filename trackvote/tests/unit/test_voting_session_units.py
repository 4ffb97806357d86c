"""
tests/unit/test_voting_session_units.py — Unit tests for voting_session.

What this file proves:
  - add_track auto-votes one coin when the submitter has one left
  - With no coins left the track is still added, no vote is cast, and an
    AUTO_VOTE_SKIPPED warning is returned instead of an error
  - A BudgetExceededError raised by a racing cast during the auto-vote is
    absorbed the same way
  - A group without an active week raises NoActiveWeekError, which is an
    InactiveWeekError
  - get_standings is explicit about a missing active week
  - Store connectivity errors surface as StoreUnavailableError (503)
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from trackvote.app.errors import (
    BudgetExceededError,
    ErrorCode,
    InactiveWeekError,
    NoActiveWeekError,
    StoreUnavailableError,
    WarningCode,
)
from trackvote.app.services import voting_session
from trackvote.app.services.catalog_service import CatalogTrack

WEEK = SimpleNamespace(id=5, group_id=1)
TRACK = SimpleNamespace(id=9, group_week_id=5)
CATALOG_TRACK = CatalogTrack(catalog_id="42", title="Song", artists=["Band"])


@pytest.fixture
def session_env():
    """Patches every collaborator of add_track; yields the mocks by name."""
    with patch("trackvote.app.services.voting_session._require_member") as require_member, \
            patch("trackvote.app.services.week_service.get_active_week", return_value=WEEK) as get_week, \
            patch("trackvote.app.services.track_service.submit_track", return_value=TRACK) as submit, \
            patch("trackvote.app.services.track_service.build_track_dict", return_value={"id": 9}), \
            patch("trackvote.app.services.vote_service.build_vote_dict", return_value={"id": 77}), \
            patch("trackvote.app.services.vote_service.coins_remaining") as remaining, \
            patch("trackvote.app.services.vote_service.cast_vote") as cast:
        yield SimpleNamespace(
            require_member=require_member,
            get_week=get_week,
            submit=submit,
            remaining=remaining,
            cast=cast,
        )


class TestAddTrack:

    def test_auto_vote_spends_one_coin(self, session_env):
        session_env.remaining.side_effect = [3, 2]
        session_env.cast.return_value = SimpleNamespace(id=77)
        session = MagicMock()

        result, warnings = voting_session.add_track(1, "user-a", CATALOG_TRACK, session)

        assert warnings == []
        assert result == {"track": {"id": 9}, "auto_vote": {"id": 77}, "coins_remaining": 2}
        session_env.submit.assert_called_once_with(5, CATALOG_TRACK, "user-a", session)
        session_env.cast.assert_called_once_with(5, 9, "user-a", session, coins=1)

    def test_no_coins_left_adds_track_without_vote(self, session_env):
        session_env.remaining.return_value = 0

        result, warnings = voting_session.add_track(1, "user-a", CATALOG_TRACK, MagicMock())

        assert result["track"] == {"id": 9}
        assert result["auto_vote"] is None
        assert [w["code"] for w in warnings] == [WarningCode.AUTO_VOTE_SKIPPED]
        session_env.submit.assert_called_once()
        session_env.cast.assert_not_called()

    def test_budget_race_during_auto_vote_is_absorbed(self, session_env):
        session_env.remaining.side_effect = [1, 0]
        session_env.cast.side_effect = BudgetExceededError("user-a", 5, requested=1, remaining=0)

        result, warnings = voting_session.add_track(1, "user-a", CATALOG_TRACK, MagicMock())

        assert result["auto_vote"] is None
        assert result["coins_remaining"] == 0
        assert warnings[0]["code"] == WarningCode.AUTO_VOTE_SKIPPED

    def test_auto_vote_disabled(self, session_env):
        session_env.remaining.return_value = 3

        result, warnings = voting_session.add_track(
            1, "user-a", CATALOG_TRACK, MagicMock(), auto_vote=False,
        )

        assert result["auto_vote"] is None
        assert warnings == []
        session_env.cast.assert_not_called()

    def test_no_active_week(self, session_env):
        session_env.get_week.return_value = None

        with pytest.raises(NoActiveWeekError) as exc_info:
            voting_session.add_track(1, "user-a", CATALOG_TRACK, MagicMock())

        assert isinstance(exc_info.value, InactiveWeekError)
        assert exc_info.value.code == ErrorCode.NO_ACTIVE_WEEK
        assert exc_info.value.http_status == 422
        session_env.submit.assert_not_called()


@patch("trackvote.app.services.vote_service.coins_remaining", return_value=1)
@patch("trackvote.app.services.vote_service.build_vote_dict", return_value={"id": 3})
@patch("trackvote.app.services.vote_service.cast_vote")
@patch("trackvote.app.services.week_service.get_active_week", return_value=WEEK)
@patch("trackvote.app.services.voting_session._require_member")
def test_cast_vote_delegates_to_ledger(_member, _week, mock_cast, _build, _remaining):
    session = MagicMock()

    result = voting_session.cast_vote(1, "user-a", 9, session, coins=2)

    mock_cast.assert_called_once_with(5, 9, "user-a", session, coins=2)
    assert result == {"id": 3, "coins_remaining": 1}


@patch("trackvote.app.services.week_service.get_active_week", return_value=None)
@patch("trackvote.app.services.voting_session._require_member")
def test_standings_without_active_week_is_explicit(_member, _week):
    result = voting_session.get_standings(1, "user-a", MagicMock())

    assert result == {"active_week": None, "standings": [], "voting_state": None}


@patch("trackvote.app.services.week_service.get_active_week", return_value=None)
@patch("trackvote.app.services.voting_session._require_member")
def test_voting_state_without_active_week(_member, _week):
    result = voting_session.get_voting_state(1, "user-a", MagicMock())

    assert result["can_vote"] is False
    assert result["group_week_id"] is None
    assert result["coins_remaining"] == 0


@patch("trackvote.app.services.vote_service.list_user_votes", return_value=[])
@patch("trackvote.app.services.vote_service.coins_spent", return_value=1)
@patch("trackvote.app.services.week_service.get_active_week", return_value=WEEK)
@patch("trackvote.app.services.voting_session._require_member")
def test_voting_state_reports_remaining(_member, _week, _spent, _votes):
    result = voting_session.get_voting_state(1, "user-a", MagicMock())

    assert result == {
        "group_week_id": 5,
        "max_coins": 3,
        "coins_spent": 1,
        "coins_remaining": 2,
        "can_vote": True,
        "votes": [],
    }


@patch("trackvote.app.services.voting_session._require_member")
def test_store_outage_becomes_store_unavailable(mock_require_member):
    mock_require_member.side_effect = OperationalError(
        "SELECT 1", {}, Exception("could not connect to server"),
    )

    with pytest.raises(StoreUnavailableError) as exc_info:
        voting_session.get_standings(1, "user-a", MagicMock())

    err = exc_info.value
    assert err.code == ErrorCode.STORE_UNAVAILABLE
    assert err.http_status == 503
    assert err.to_dict()["error"]["retryable"] is True
