"""
models/group_week.py — GroupWeek (voting week) table definition.

No business logic. No imports from services or routes.

Key design points:
  - INV-2: at most one active week per group. week_service performs the
    deactivate-old / activate-new swap inside one transaction while holding
    the group row lock. The partial unique index below is the last line of
    defence: if two swaps ever interleave, the second INSERT fails and the
    service reports CONFLICT instead of leaving two active weeks.
  - (group_id, year, week_number) is unique — a week number is used once
    per group per year.
  - Tracks cascade with their week (ON DELETE CASCADE).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trackvote.app.extensions import db


class GroupWeek(db.Model):
    __tablename__ = "group_weeks"

    __table_args__ = (
        UniqueConstraint(
            "group_id", "year", "week_number",
            name="uq_group_weeks_group_year_week",
        ),
        CheckConstraint(
            "week_number BETWEEN 1 AND 53",
            name="ck_group_weeks_week_number_range",
        ),
        CheckConstraint(
            "week_end > week_start",
            name="ck_group_weeks_end_after_start",
        ),
        # INV-2 at the DB level: only one row per group may have is_active true.
        Index(
            "uq_group_weeks_single_active",
            "group_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # ISO-8601 week number (1..53) and ISO year.
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    week_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    week_end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("TRUE"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="weeks",
    )

    # Submission order. Tracks are owned by their week.
    tracks: Mapped[list["Track"]] = relationship(  # noqa: F821
        "Track",
        back_populates="week",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Track.added_at",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupWeek id={self.id} "
            f"group_id={self.group_id} "
            f"{self.year}-W{self.week_number:02d} "
            f"active={self.is_active}>"
        )
