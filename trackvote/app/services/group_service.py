"""
services/group_service.py — Group and membership business logic.

Invariants enforced here:
  INV-6  FORBIDDEN (403) — only members may read/write group data

Authorization rules:
  - Renaming the group, starting/closing weeks: admin only
  - Removing a member: admin may remove anyone; member may remove self
  - Joining: anyone holding the invite code

The membership helpers (get_group_or_404, require_member, require_admin) are
public because week_service and voting_session apply the same checks.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
import re
import secrets
import string

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trackvote.app.errors import AppError, ErrorCode
from trackvote.app.models.group import INVITE_CODE_LENGTH, Group
from trackvote.app.models.membership import MemberRole, Membership
from trackvote.app.models.user import User
from trackvote.app.services import profile_service

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_PATTERN = re.compile(rf"^[A-Z0-9]{{{INVITE_CODE_LENGTH}}}$")

# 36^8 codes; a collision is already unlikely, five in a row means something is wrong.
_MAX_INVITE_CODE_ATTEMPTS = 5


# ── Invite codes ───────────────────────────────────────────────────────────

def generate_invite_code() -> str:
    """Returns 8 random characters from A–Z0–9 (cryptographically random)."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def normalize_invite_code(raw: str) -> str:
    """
    Strips and upper-cases user input, then validates the format.

    Raises INVALID_INVITE_CODE_FORMAT (400) if the result is not 8 characters
    from A–Z0–9. An unknown but well-formed code is a 404, raised by join_group.
    """
    code = (raw or "").strip().upper()
    if not INVITE_CODE_PATTERN.match(code):
        raise AppError(
            ErrorCode.INVALID_INVITE_CODE_FORMAT,
            f"Invite codes are exactly {INVITE_CODE_LENGTH} letters or digits.",
            400,
            field="invite_code",
        )
    return code


def _unused_invite_code(session: Session) -> str:
    for _ in range(_MAX_INVITE_CODE_ATTEMPTS):
        code = generate_invite_code()
        taken = session.execute(
            select(Group.id).where(Group.invite_code == code)
        ).scalar_one_or_none()
        if taken is None:
            return code
        logger.warning("Invite code collision on %s, regenerating", code)

    raise AppError(
        ErrorCode.INTERNAL_ERROR,
        "Could not generate a unique invite code. Please try again.",
        500,
    )


# ── Membership helpers ─────────────────────────────────────────────────────

def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def get_membership(group_id: int, user_id: str, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def get_role(group_id: int, user_id: str, session: Session) -> MemberRole | None:
    """Returns the caller's role in the group, or None for non-members."""
    membership = get_membership(group_id, user_id, session)
    return membership.role if membership is not None else None


def is_member(group_id: int, user_id: str, session: Session) -> bool:
    return get_membership(group_id, user_id, session) is not None


def require_member(group_id: int, user_id: str, session: Session) -> Membership:
    """
    Raises FORBIDDEN (403) if user_id is not a member of group_id.
    INV-6: non-members receive 403, not 404.
    """
    membership = get_membership(group_id, user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )
    return membership


def require_admin(group_id: int, user_id: str, session: Session) -> Membership:
    """Raises FORBIDDEN (403) unless user_id is an admin of group_id."""
    membership = require_member(group_id, user_id, session)
    if not membership.is_admin:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only a group admin may perform this action.",
            403,
        )
    return membership


# ── Serialisation ──────────────────────────────────────────────────────────

def _build_group_dict(group: Group) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "invite_code": group.invite_code,
        "created_by_user_id": group.created_by_user_id,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }


def _build_member_dict(membership: Membership, user: User) -> dict:
    return {
        "user_id": user.id,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
        "role": membership.role.value,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def create_group(name: str, creator_id: str, session: Session) -> dict:
    """
    Creates a new group with a fresh invite code. The creator becomes its
    first member with the admin role.

    Args:
        name:       Group name (validated by schema — non-blank, max 50 chars).
        creator_id: The authenticated user (flask.g.user_id, passed as a str).
    """
    for _ in range(_MAX_INVITE_CODE_ATTEMPTS):
        profile_service.ensure_user(creator_id, session)

        code = _unused_invite_code(session)
        group = Group(name=name.strip(), invite_code=code, created_by_user_id=creator_id)
        session.add(group)
        try:
            session.flush()  # populate group.id before creating membership
        except IntegrityError:
            # A concurrent create took the same code after the lookup.
            session.rollback()
            logger.warning("Invite code %s taken concurrently, regenerating", code)
            continue
        break
    else:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            "Could not generate a unique invite code. Please try again.",
            500,
        )

    membership = Membership(user_id=creator_id, group_id=group.id, role=MemberRole.ADMIN)
    session.add(membership)
    session.flush()

    logger.info("User %s created group %s", creator_id, group.id)

    result = _build_group_dict(group)
    result["role"] = MemberRole.ADMIN.value
    result["member_count"] = 1
    return result


def list_groups(user_id: str, session: Session) -> list[dict]:
    """
    Returns all groups the user belongs to with the caller's role and the
    member count, ordered by creation date.
    """
    member_counts = (
        select(Membership.group_id, func.count(Membership.id).label("member_count"))
        .group_by(Membership.group_id)
        .subquery()
    )
    stmt = (
        select(Group, Membership.role, member_counts.c.member_count)
        .join(Membership, Group.id == Membership.group_id)
        .join(member_counts, member_counts.c.group_id == Group.id)
        .where(Membership.user_id == user_id)
        .order_by(Group.created_at.asc(), Group.id.asc())
    )

    result = []
    for group, role, member_count in session.execute(stmt).all():
        entry = _build_group_dict(group)
        entry["role"] = role.value
        entry["member_count"] = member_count
        result.append(entry)
    return result


def get_group(group_id: int, caller_id: str, session: Session) -> dict:
    """
    Returns group details including the member list (join order).

    INV-6: caller must be a member (FORBIDDEN 403, not 404).
    """
    group = get_group_or_404(group_id, session)
    caller = require_member(group_id, caller_id, session)

    stmt = (
        select(Membership, User)
        .join(User, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )

    result = _build_group_dict(group)
    result["role"] = caller.role.value
    result["members"] = [
        _build_member_dict(membership, user)
        for membership, user in session.execute(stmt).all()
    ]
    result["member_count"] = len(result["members"])
    return result


def rename_group(group_id: int, caller_id: str, name: str, session: Session) -> dict:
    """Renames the group. Admin only."""
    group = get_group_or_404(group_id, session)
    require_admin(group_id, caller_id, session)

    group.name = name.strip()
    session.flush()
    return _build_group_dict(group)


def join_group(invite_code: str, user_id: str, session: Session) -> dict:
    """
    Adds the caller to the group identified by invite_code as a member.

    Raises:
      AppError(INVALID_INVITE_CODE_FORMAT, 400) — malformed code
      AppError(INVALID_INVITE_CODE, 404)        — no group with this code
      AppError(ALREADY_MEMBER, 409)             — caller already belongs
    """
    code = normalize_invite_code(invite_code)

    group = session.execute(
        select(Group).where(Group.invite_code == code)
    ).scalar_one_or_none()
    if group is None:
        raise AppError(
            ErrorCode.INVALID_INVITE_CODE,
            "No group matches this invite code.",
            404,
            field="invite_code",
        )

    profile_service.ensure_user(user_id, session)

    if get_membership(group.id, user_id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"You are already a member of group {group.id}.",
            409,
        )

    membership = Membership(user_id=user_id, group_id=group.id, role=MemberRole.MEMBER)
    session.add(membership)
    try:
        session.flush()
    except IntegrityError:
        # A concurrent join by the same user hit uq_memberships_user_group.
        session.rollback()
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"You are already a member of group {group.id}.",
            409,
        )

    logger.info("User %s joined group %s", user_id, group.id)

    result = _build_group_dict(group)
    result["role"] = MemberRole.MEMBER.value
    return result


def remove_member(
        group_id: int,
        caller_id: str,
        target_user_id: str,
        session: Session,
) -> None:
    """
    Removes a user from a group.

    Authorization:
      - An admin may remove any member (including themselves).
      - Any member may remove themselves.
      - A non-admin may not remove another member (FORBIDDEN, 403).

    Votes and tracks the member already cast or submitted stay on record.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group does not exist
      AppError(FORBIDDEN, 403)        — caller not authorised to remove this user
      AppError(USER_NOT_FOUND, 404)   — target user is not a member of the group
    """
    get_group_or_404(group_id, session)
    caller = require_member(group_id, caller_id, session)

    is_self = caller_id == target_user_id
    if not (caller.is_admin or is_self):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from a group unless you are an admin.",
            403,
        )

    membership = caller if is_self else get_membership(group_id, target_user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    session.delete(membership)
    session.flush()
    logger.info("User %s removed %s from group %s", caller_id, target_user_id, group_id)
