"""
models/membership.py — Membership junction table definition.

No business logic. No imports from services or routes.

The membership row doubles as the per-user lock for vote casting:
vote_service locks it FOR UPDATE so that concurrent casts by the same user in
the same group serialise on it (INV-1).

FK policy: user_id ON DELETE RESTRICT, group_id ON DELETE CASCADE.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trackvote.app.extensions import db


class MemberRole(str, enum.Enum):
    """Only admins may start or close voting weeks and rename the group."""
    ADMIN  = "admin"
    MEMBER = "member"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'admin'), not names ('ADMIN')."""
    return [member.value for member in enum_cls]


class Membership(db.Model):
    __tablename__ = "memberships"

    __table_args__ = (
        # A user can only belong to a group once.
        UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Stored as VARCHAR + CHECK rather than a native PG enum type so the
    # same DDL works on the SQLite test database.
    role: Mapped[MemberRole] = mapped_column(
        Enum(
            MemberRole,
            name="member_role",
            native_enum=False,
            create_constraint=True,
            length=10,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=MemberRole.MEMBER,
        server_default=MemberRole.MEMBER.value,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="memberships",
    )

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="memberships",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Membership id={self.id} "
            f"user_id={self.user_id!r} "
            f"group_id={self.group_id} "
            f"role={self.role.value}>"
        )
