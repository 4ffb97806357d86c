"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py:
      - INV-6 (caller must be a member to read/write group data)
      - invite code format (normalize_invite_code) and existence
      - ALREADY_MEMBER  (membership existence check requires DB lookup)
      - GROUP_NOT_FOUND (requires DB lookup)

IMPORTANT: Inherits from marshmallow.Schema directly.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate


# ── Shared non-empty string validator ─────────────────────────────────────
#
# validate.Length(min=1) alone allows whitespace-only strings like "   "
# because len("   ") == 3 > 0. This validator strips first then checks,
# mirroring the DB CHECK(LENGTH(TRIM(name)) > 0) at the API layer.
# ──────────────────────────────────────────────────────────────────────────

def validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _group_name_field() -> fields.Str:
    # VARCHAR(50) NOT NULL CHECK(LENGTH(TRIM(name)) > 0)
    return fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=50,
                error="Group name must be between 1 and 50 characters.",
            ),
            validate_non_empty_after_trim,
        ],
    )


class CreateGroupSchema(Schema):
    """
    POST /groups

    name — non-empty after trim, max 50 chars. The creator becomes admin.
    """

    name = _group_name_field()


class RenameGroupSchema(Schema):
    """PATCH /groups/:id — admin only (enforced in the service)."""

    name = _group_name_field()


class JoinGroupSchema(Schema):
    """
    POST /groups/join

    The code is accepted in any case with surrounding whitespace; the service
    normalises it and rejects anything that is not 8 letters or digits.
    """

    invite_code = fields.Str(
        required=True,
        validate=validate.Length(max=32, error="Invite code is too long."),
    )
