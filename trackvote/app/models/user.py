"""
models/user.py — User profile table definition.

Identity lives with the external identity provider. This table only mirrors
the provider's opaque user id plus the display profile used to attribute
tracks and votes. No business logic. No imports from services or routes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trackvote.app.extensions import db


class User(db.Model):
    __tablename__ = "users"

    # The provider's `sub` claim (a UUID for Supabase). Never generated here.
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    display_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    avatar_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Set whenever the caller updates their profile.
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────
    # Read-only navigation — no logic here.

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="user",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id!r} display_name={self.display_name!r}>"
