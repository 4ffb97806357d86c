"""
services/profile_service.py — User profile business logic.

Identity is owned by the external identity provider; the user id arriving
here is the verified `sub` claim. This module only keeps the local profile
row that tracks, votes and memberships reference.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from trackvote.app.errors import AppError, ErrorCode
from trackvote.app.models.user import User

logger = logging.getLogger(__name__)


def _build_profile_dict(user: User) -> dict:
    return {
        "id": user.id,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "updated_at": user.updated_at.isoformat() if user.updated_at else None,
    }


def ensure_user(user_id: str, session: Session) -> User:
    """
    Returns the profile row for user_id, creating an empty one on first
    contact. Every write path that stores user_id as a foreign key calls
    this first.
    """
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id)
        session.add(user)
        session.flush()
        logger.info("Created profile for user %s", user_id)
    return user


def get_profile(user_id: str, session: Session) -> dict:
    """Raises USER_NOT_FOUND (404) until the caller has upserted a profile."""
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "No profile exists for the authenticated user yet. Use PUT /users/me.",
            404,
        )
    return _build_profile_dict(user)


def upsert_profile(user_id: str, data: dict, session: Session) -> dict:
    """
    Creates or updates the caller's profile.

    Only keys present in data are applied, so a PUT carrying just
    display_name leaves avatar_url untouched.
    """
    user = ensure_user(user_id, session)

    if "display_name" in data:
        user.display_name = data["display_name"]
    if "avatar_url" in data:
        user.avatar_url = data["avatar_url"]

    user.updated_at = datetime.now(timezone.utc)
    session.flush()
    return _build_profile_dict(user)
