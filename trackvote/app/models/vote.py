"""
models/vote.py — Vote ledger table definition.

One row per cast. Rows are append-only: nothing updates or deletes a vote
except the cascade from its week. A user's spend in a week is the SUM of
coins_spent over their rows for that week.

Key design points:
  - INV-4: the composite FK (track_id, group_week_id) → tracks(id, group_week_id)
    makes a vote whose week differs from its track's week unrepresentable.
  - INV-1 (budget) is NOT a table constraint: it spans rows. vote_service
    enforces it under the membership row lock.
  - coins_spent > 0 is a CHECK so the ledger can never be credited.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trackvote.app.extensions import db


class Vote(db.Model):
    __tablename__ = "votes"

    __table_args__ = (
        ForeignKeyConstraint(
            ["track_id", "group_week_id"],
            ["tracks.id", "tracks.group_week_id"],
            ondelete="CASCADE",
            name="fk_votes_track_same_week",
        ),
        CheckConstraint("coins_spent > 0", name="ck_votes_coins_positive"),
        # Budget lookups: SUM(coins_spent) WHERE group_week_id = ? AND user_id = ?
        Index("ix_votes_week_user", "group_week_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    track_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    group_week_id: Mapped[int] = mapped_column(
        ForeignKey("group_weeks.id", ondelete="CASCADE"),
        nullable=False,
    )

    coins_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    voted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    track: Mapped["Track"] = relationship(  # noqa: F821
        "Track",
        back_populates="votes",
    )

    voter: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Vote id={self.id} "
            f"track_id={self.track_id} "
            f"user_id={self.user_id!r} "
            f"coins={self.coins_spent}>"
        )
