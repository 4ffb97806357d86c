"""
models/track.py — Track table definition.

A track is one catalog entry submitted into one voting week. Immutable once
created; removed only when its week is deleted (ON DELETE CASCADE).
No business logic. No imports from services or routes.

Key design points:
  - INV-3: UNIQUE(group_week_id, catalog_id). track_service relies on this
    constraint (not a prior SELECT) to reject concurrent duplicate submissions.
  - UNIQUE(id, group_week_id) exists only so votes can reference
    (track_id, group_week_id) as a composite foreign key (INV-4).
  - added_at is stamped in Python with microsecond precision so submission
    order is well defined for the ranking tie-break; the id breaks any
    remaining tie.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trackvote.app.extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Track(db.Model):
    __tablename__ = "tracks"

    __table_args__ = (
        UniqueConstraint("group_week_id", "catalog_id", name="uq_tracks_week_catalog"),
        UniqueConstraint("id", "group_week_id", name="uq_tracks_id_week"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_week_id: Mapped[int] = mapped_column(
        ForeignKey("group_weeks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Identifier in the external catalog (Deezer track id as a string).
    catalog_id: Mapped[str] = mapped_column(String(64), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    # Artist names joined with ", " at submission time.
    artist: Mapped[str] = mapped_column(String(255), nullable=False)

    album: Mapped[str | None] = mapped_column(String(255), nullable=True)
    artwork_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    preview_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    added_by_user_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    week: Mapped["GroupWeek"] = relationship(  # noqa: F821
        "GroupWeek",
        back_populates="tracks",
    )

    submitter: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[added_by_user_id],
    )

    votes: Mapped[list["Vote"]] = relationship(  # noqa: F821
        "Vote",
        back_populates="track",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Track id={self.id} "
            f"week_id={self.group_week_id} "
            f"catalog_id={self.catalog_id!r} "
            f"title={self.title!r}>"
        )
