"""
tests/unit/test_week_service_units.py — Unit tests for week_service.

What this file proves:
  - ISO week defaults: Monday 00:00 UTC to the following Monday, ISO year
  - resolve_week_fields fills only what the caller left out
  - lock_active_week rejects missing and inactive weeks (INV-5)
  - start_new_week: admin check, WEEK_ALREADY_EXISTS, and a lost race on the
    single-active index becomes ConflictError after a rollback (INV-2)
  - close_week is idempotent

DB-free with MagicMock sessions.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from trackvote.app.errors import AppError, ConflictError, ErrorCode, InactiveWeekError
from trackvote.app.models.group_week import GroupWeek
from trackvote.app.services import week_service

UTC = timezone.utc


def _result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


# ═══════════════════════════════════════════════════════════════════════════
# Calendar helpers
# ═══════════════════════════════════════════════════════════════════════════

class TestIsoWeekBounds:

    def test_midweek(self):
        bounds = week_service.iso_week_bounds(datetime(2026, 10, 21, 15, 30, tzinfo=UTC))

        assert bounds["year"] == 2026
        assert bounds["week_number"] == 43
        assert bounds["week_start"] == datetime(2026, 10, 19, tzinfo=UTC)
        assert bounds["week_end"] == datetime(2026, 10, 26, tzinfo=UTC)

    def test_sunday_belongs_to_previous_iso_year(self):
        bounds = week_service.iso_week_bounds(datetime(2021, 1, 3, 23, 59, tzinfo=UTC))

        assert bounds["year"] == 2020
        assert bounds["week_number"] == 53
        assert bounds["week_start"] == datetime(2020, 12, 28, tzinfo=UTC)

    def test_monday_midnight_starts_its_own_week(self):
        bounds = week_service.iso_week_bounds(datetime(2026, 10, 19, tzinfo=UTC))

        assert bounds["week_start"] == datetime(2026, 10, 19, tzinfo=UTC)
        assert bounds["week_number"] == 43

    def test_naive_input_is_treated_as_utc(self):
        bounds = week_service.iso_week_bounds(datetime(2026, 10, 21, 12, 0))

        assert bounds["week_start"].tzinfo is not None
        assert bounds["week_start"] == datetime(2026, 10, 19, tzinfo=UTC)


class TestResolveWeekFields:

    def test_all_defaults_from_now(self):
        now = datetime(2026, 10, 21, 8, 0, tzinfo=UTC)

        fields = week_service.resolve_week_fields({}, now=now)

        assert fields == {
            "week_number": 43,
            "year": 2026,
            "week_start": datetime(2026, 10, 19, tzinfo=UTC),
            "week_end": datetime(2026, 10, 26, tzinfo=UTC),
        }

    def test_explicit_start_drives_numbers_and_end(self):
        start = datetime(2026, 3, 4, 18, 0, tzinfo=UTC)

        fields = week_service.resolve_week_fields({"week_start": start})

        assert fields["week_start"] == start
        assert fields["week_end"] == start + timedelta(days=7)
        assert fields["week_number"] == 10
        assert fields["year"] == 2026

    def test_explicit_numbers_are_kept(self):
        now = datetime(2026, 10, 21, tzinfo=UTC)

        fields = week_service.resolve_week_fields({"week_number": 2, "year": 2027}, now=now)

        assert fields["week_number"] == 2
        assert fields["year"] == 2027
        assert fields["week_start"] == datetime(2027, 1, 11, tzinfo=UTC)
        assert fields["week_end"] == datetime(2027, 1, 18, tzinfo=UTC)

    def test_week_number_without_year_uses_current_iso_year(self):
        now = datetime(2026, 10, 21, tzinfo=UTC)

        fields = week_service.resolve_week_fields({"week_number": 1}, now=now)

        assert fields["year"] == 2026
        assert fields["week_start"] == datetime(2025, 12, 29, tzinfo=UTC)

    def test_week_the_year_does_not_have(self):
        with pytest.raises(AppError) as exc_info:
            week_service.resolve_week_fields({"week_number": 53, "year": 2027})

        assert exc_info.value.code == ErrorCode.INVALID_FIELD
        assert exc_info.value.http_status == 400

    def test_end_before_start_rejected(self):
        start = datetime(2026, 3, 4, tzinfo=UTC)

        with pytest.raises(AppError) as exc_info:
            week_service.resolve_week_fields({"week_start": start, "week_end": start})

        assert exc_info.value.code == ErrorCode.INVALID_WEEK_RANGE
        assert exc_info.value.http_status == 400


# ═══════════════════════════════════════════════════════════════════════════
# lock_active_week
# ═══════════════════════════════════════════════════════════════════════════

class TestLockActiveWeek:

    def test_returns_active_week(self):
        week = SimpleNamespace(id=3, is_active=True)
        session = MagicMock()
        session.execute.return_value = _result(week)

        assert week_service.lock_active_week(3, session) is week

    def test_missing_week_is_404(self):
        session = MagicMock()
        session.execute.return_value = _result(None)

        with pytest.raises(AppError) as exc_info:
            week_service.lock_active_week(3, session)

        assert exc_info.value.code == ErrorCode.WEEK_NOT_FOUND

    def test_inactive_week_rejected(self):
        session = MagicMock()
        session.execute.return_value = _result(SimpleNamespace(id=3, is_active=False))

        with pytest.raises(InactiveWeekError) as exc_info:
            week_service.lock_active_week(3, session)

        assert exc_info.value.code == ErrorCode.INACTIVE_WEEK
        assert exc_info.value.http_status == 422


# ═══════════════════════════════════════════════════════════════════════════
# start_new_week
# ═══════════════════════════════════════════════════════════════════════════

NOW = datetime(2026, 10, 21, tzinfo=UTC)


class TestStartNewWeek:

    def test_missing_group_is_404(self):
        session = MagicMock()
        session.execute.return_value = _result(None)

        with pytest.raises(AppError) as exc_info:
            week_service.start_new_week(1, "admin", {}, session, now=NOW)

        assert exc_info.value.code == ErrorCode.GROUP_NOT_FOUND

    @patch("trackvote.app.services.group_service.require_admin")
    def test_non_admin_is_forbidden(self, mock_require_admin):
        mock_require_admin.side_effect = AppError(ErrorCode.FORBIDDEN, "no", 403)
        session = MagicMock()
        session.execute.return_value = _result(SimpleNamespace(id=1))

        with pytest.raises(AppError) as exc_info:
            week_service.start_new_week(1, "member", {}, session, now=NOW)

        assert exc_info.value.http_status == 403
        session.add.assert_not_called()

    @patch("trackvote.app.services.group_service.require_admin")
    def test_reused_week_number_rejected(self, _mock_require_admin):
        session = MagicMock()
        session.execute.side_effect = [
            _result(SimpleNamespace(id=1)),  # group lock
            _result(42),                     # (year, week_number) already used
        ]

        with pytest.raises(AppError) as exc_info:
            week_service.start_new_week(1, "admin", {}, session, now=NOW)

        assert exc_info.value.code == ErrorCode.WEEK_ALREADY_EXISTS
        assert exc_info.value.http_status == 409
        session.add.assert_not_called()

    @patch("trackvote.app.services.group_service.require_admin")
    def test_deactivates_previous_and_inserts_active_week(self, _mock_require_admin):
        session = MagicMock()
        session.execute.side_effect = [
            _result(SimpleNamespace(id=1)),           # group lock
            _result(None),                            # no duplicate
            _result(SimpleNamespace(id=7)),           # previous active week
            MagicMock(),                              # UPDATE ... SET is_active = false
        ]

        week = week_service.start_new_week(1, "admin", {}, session, now=NOW)

        assert isinstance(week, GroupWeek)
        assert week.is_active is True
        assert week.group_id == 1
        assert (week.year, week.week_number) == (2026, 43)
        assert session.execute.call_count == 4
        update_sql = str(session.execute.call_args_list[3].args[0])
        assert update_sql.startswith("UPDATE group_weeks")
        session.add.assert_called_once_with(week)
        session.flush.assert_called_once()

    @patch("trackvote.app.services.group_service.require_admin")
    def test_lost_race_becomes_conflict(self, _mock_require_admin):
        session = MagicMock()
        session.execute.side_effect = [
            _result(SimpleNamespace(id=1)),
            _result(None),
            _result(None),
            MagicMock(),
        ]
        session.flush.side_effect = IntegrityError(
            "INSERT INTO group_weeks", {}, Exception("uq_group_weeks_single_active"),
        )

        with pytest.raises(ConflictError) as exc_info:
            week_service.start_new_week(1, "admin", {}, session, now=NOW)

        assert exc_info.value.code == ErrorCode.CONFLICT
        assert exc_info.value.http_status == 409
        session.rollback.assert_called_once()


# ═══════════════════════════════════════════════════════════════════════════
# close_week
# ═══════════════════════════════════════════════════════════════════════════

@patch("trackvote.app.services.group_service.require_admin")
@patch("trackvote.app.services.group_service.get_group_or_404")
def test_close_week_is_idempotent(_mock_get_group, _mock_require_admin):
    week = SimpleNamespace(id=3, group_id=1, is_active=True)
    session = MagicMock()
    session.get.return_value = week

    week_service.close_week(1, 3, "admin", session)
    week_service.close_week(1, 3, "admin", session)

    assert week.is_active is False
    session.flush.assert_called_once()


@patch("trackvote.app.services.group_service.require_admin")
@patch("trackvote.app.services.group_service.get_group_or_404")
def test_close_week_of_other_group_is_404(_mock_get_group, _mock_require_admin):
    session = MagicMock()
    session.get.return_value = SimpleNamespace(id=3, group_id=2, is_active=True)

    with pytest.raises(AppError) as exc_info:
        week_service.close_week(1, 3, "admin", session)

    assert exc_info.value.code == ErrorCode.WEEK_NOT_FOUND
