"""
models/group.py — Group table definition.

No business logic. No imports from services or routes.

The invite code is the one externally visible string format of the system:
exactly 8 characters from A–Z and 0–9, unique across all groups. It is
generated by group_service.generate_invite_code() and never changes.

FK policy: created_by_user_id ON DELETE SET NULL — the group outlives the
profile of the member who created it.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trackvote.app.extensions import db

INVITE_CODE_LENGTH = 8


class Group(db.Model):
    __tablename__ = "groups"

    __table_args__ = (
        # Also enforced by the marshmallow schema; the schema is the primary gate.
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
        CheckConstraint(
            f"LENGTH(invite_code) = {INVITE_CODE_LENGTH}",
            name="ck_groups_invite_code_length",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    invite_code: Mapped[str] = mapped_column(
        String(INVITE_CODE_LENGTH),
        nullable=False,
        unique=True,
    )

    created_by_user_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[created_by_user_id],
    )

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    weeks: Mapped[list["GroupWeek"]] = relationship(  # noqa: F821
        "GroupWeek",
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r}>"
