"""
services/week_service.py — Voting week lifecycle (WeekManager).

Invariants enforced here:
  INV-2  at most one active week per group
  INV-5  tracks and votes attach only to an active week (lock_active_week)
  INV-6  FORBIDDEN (403) — only members see weeks, only admins change them

Week rotation (start_new_week) runs in one transaction:
  1. Lock the group row FOR UPDATE — concurrent rotations of the same group
     serialise here.
  2. Deactivate the current active week.
  3. Insert the new week with is_active = true and flush.
If anything bypasses the lock, the partial unique index
uq_group_weeks_single_active rejects the second active row and the caller
gets CONFLICT (409); the transaction is rolled back, so the old week stays
active.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import Select, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trackvote.app.errors import AppError, ConflictError, ErrorCode, InactiveWeekError
from trackvote.app.models.group import Group
from trackvote.app.models.group_week import GroupWeek
from trackvote.app.services import group_service

logger = logging.getLogger(__name__)


# ── Calendar helpers ───────────────────────────────────────────────────────

def as_utc(value: datetime) -> datetime:
    """Treats naive datetimes as UTC. SQLite hands timestamps back naive."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_week_bounds(moment: datetime) -> dict:
    """
    Returns the ISO week containing `moment`: Monday 00:00 UTC up to the
    following Monday 00:00 UTC, with its ISO year and week number.

    >>> iso_week_bounds(datetime(2021, 1, 3, tzinfo=timezone.utc))["week_number"]
    53
    """
    moment = as_utc(moment)
    iso_year, iso_week, iso_weekday = moment.isocalendar()
    start = (moment - timedelta(days=iso_weekday - 1)).replace(
        hour=0, minute=0, second=0, microsecond=0,
    )
    return {
        "year": iso_year,
        "week_number": iso_week,
        "week_start": start,
        "week_end": start + timedelta(days=7),
    }


def resolve_week_fields(data: dict, now: datetime | None = None) -> dict:
    """
    Fills in whatever the caller left out of a new week.

    week_number/year default to the ISO week of week_start (or of `now` when
    week_start is absent too); week_start/week_end default to that ISO week's
    Monday-to-Monday bounds. Without week_start, an explicit week_number
    (with year, or the current ISO year) picks the week the bounds come from.

    Raises INVALID_FIELD (400) for a week number the year does not have, and
    INVALID_WEEK_RANGE (400) if week_end is not after week_start.
    """
    now = now or datetime.now(timezone.utc)
    anchor = data.get("week_start") or now
    if not data.get("week_start") and data.get("week_number"):
        year = data.get("year") or iso_week_bounds(now)["year"]
        try:
            anchor = datetime.fromisocalendar(year, data["week_number"], 1).replace(tzinfo=timezone.utc)
        except ValueError:
            raise AppError(
                ErrorCode.INVALID_FIELD,
                f"{year} has no ISO week {data['week_number']}.",
                400,
                field="week_number",
            )
    defaults = iso_week_bounds(anchor)

    week_start = as_utc(data["week_start"]) if data.get("week_start") else defaults["week_start"]
    if data.get("week_end"):
        week_end = as_utc(data["week_end"])
    elif data.get("week_start"):
        week_end = week_start + timedelta(days=7)
    else:
        week_end = defaults["week_end"]

    if week_end <= week_start:
        raise AppError(
            ErrorCode.INVALID_WEEK_RANGE,
            "week_end must be after week_start.",
            400,
            field="week_end",
        )

    return {
        "week_number": data.get("week_number") or defaults["week_number"],
        "year": data.get("year") or defaults["year"],
        "week_start": week_start,
        "week_end": week_end,
    }


# ── Row locks ──────────────────────────────────────────────────────────────
#
# populate_existing refreshes rows already in the identity map, so the state
# read under the lock is the committed state, not a stale cached copy.
# SQLite ignores FOR UPDATE / FOR SHARE; its single writer serialises instead.

def group_lock_stmt(group_id: int) -> Select:
    return (
        select(Group)
        .where(Group.id == group_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def week_share_lock_stmt(week_id: int) -> Select:
    """
    FOR SHARE on the week row: many submissions/votes may hold it together,
    but a rotation's UPDATE of is_active waits until they commit.
    """
    return (
        select(GroupWeek)
        .where(GroupWeek.id == week_id)
        .with_for_update(read=True)
        .execution_options(populate_existing=True)
    )


def lock_active_week(week_id: int, session: Session) -> GroupWeek:
    """
    Share-locks the week row and checks it is still active (INV-5).

    Raises:
      AppError(WEEK_NOT_FOUND, 404)
      InactiveWeekError (422)
    """
    week = session.execute(week_share_lock_stmt(week_id)).scalar_one_or_none()
    if week is None:
        raise AppError(
            ErrorCode.WEEK_NOT_FOUND,
            f"Week {week_id} does not exist.",
            404,
        )
    if not week.is_active:
        raise InactiveWeekError(week_id)
    return week


# ── Serialisation ──────────────────────────────────────────────────────────

def build_week_dict(week: GroupWeek) -> dict:
    return {
        "id": week.id,
        "group_id": week.group_id,
        "week_number": week.week_number,
        "year": week.year,
        "week_start": as_utc(week.week_start).isoformat(),
        "week_end": as_utc(week.week_end).isoformat(),
        "is_active": week.is_active,
        "created_at": as_utc(week.created_at).isoformat() if week.created_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def get_active_week(group_id: int, session: Session) -> GroupWeek | None:
    """Returns the group's active week, or None. No membership check."""
    return session.execute(
        select(GroupWeek).where(
            GroupWeek.group_id == group_id,
            GroupWeek.is_active.is_(True),
        )
    ).scalar_one_or_none()


def get_week_or_404(group_id: int, week_id: int, session: Session) -> GroupWeek:
    """A week of another group is reported as not found."""
    week = session.get(GroupWeek, week_id)
    if week is None or week.group_id != group_id:
        raise AppError(
            ErrorCode.WEEK_NOT_FOUND,
            f"Week {week_id} does not exist in group {group_id}.",
            404,
        )
    return week


def describe_active_week(group_id: int, caller_id: str, session: Session) -> dict | None:
    """Returns the active week as a dict, or None when there is none."""
    group_service.get_group_or_404(group_id, session)
    group_service.require_member(group_id, caller_id, session)

    week = get_active_week(group_id, session)
    return build_week_dict(week) if week is not None else None


def list_weeks(group_id: int, caller_id: str, session: Session) -> list[dict]:
    """All weeks of the group, newest first."""
    group_service.get_group_or_404(group_id, session)
    group_service.require_member(group_id, caller_id, session)

    weeks = session.execute(
        select(GroupWeek)
        .where(GroupWeek.group_id == group_id)
        .order_by(GroupWeek.year.desc(), GroupWeek.week_number.desc(), GroupWeek.id.desc())
    ).scalars().all()
    return [build_week_dict(w) for w in weeks]


def start_new_week(
        group_id: int,
        caller_id: str,
        data: dict,
        session: Session,
        now: datetime | None = None,
) -> GroupWeek:
    """
    Activates a new week for the group and deactivates the previous one,
    atomically. Admin only.

    Args:
        data: Validated StartWeekSchema output. Every key is optional
              (see resolve_week_fields for the defaults).
        now:  Clock override for tests.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)              — caller is not an admin
      AppError(INVALID_WEEK_RANGE, 400)
      AppError(WEEK_ALREADY_EXISTS, 409)    — (year, week_number) used before
      ConflictError (409)                   — lost a concurrent rotation (INV-2)
    """
    group = session.execute(group_lock_stmt(group_id)).scalar_one_or_none()
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    group_service.require_admin(group_id, caller_id, session)

    fields = resolve_week_fields(data, now=now)

    existing = session.execute(
        select(GroupWeek.id).where(
            GroupWeek.group_id == group_id,
            GroupWeek.year == fields["year"],
            GroupWeek.week_number == fields["week_number"],
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.WEEK_ALREADY_EXISTS,
            f"Week {fields['week_number']} of {fields['year']} already exists in group {group_id}.",
            409,
            field="week_number",
        )

    previous = get_active_week(group_id, session)

    session.execute(
        update(GroupWeek)
        .where(GroupWeek.group_id == group_id, GroupWeek.is_active.is_(True))
        .values(is_active=False)
    )

    week = GroupWeek(group_id=group_id, is_active=True, **fields)
    session.add(week)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        logger.warning("Concurrent week rotation detected for group %s", group_id)
        raise ConflictError(
            f"Another week was activated in group {group_id} at the same time. Reload and try again."
        )

    logger.info(
        "Group %s rotated to week %s (%s-W%02d), previous active week %s",
        group_id, week.id, week.year, week.week_number,
        previous.id if previous is not None else None,
    )
    return week


def close_week(group_id: int, week_id: int, caller_id: str, session: Session) -> GroupWeek:
    """
    Marks a week inactive. Admin only. Closing an already closed week is a
    no-op. Afterwards the group has no active week until the next rotation.
    """
    group_service.get_group_or_404(group_id, session)
    group_service.require_admin(group_id, caller_id, session)

    week = get_week_or_404(group_id, week_id, session)
    if week.is_active:
        week.is_active = False
        session.flush()
        logger.info("Group %s closed week %s", group_id, week_id)
    return week
