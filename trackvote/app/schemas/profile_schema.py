"""
schemas/profile_schema.py — Marshmallow schema for PUT /users/me.

Both fields are optional; omitted keys are left unchanged by the service.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class UpdateProfileSchema(Schema):

    display_name = fields.Str(
        allow_none=True,
        validate=validate.Length(max=100, error="display_name must be at most 100 characters."),
    )

    avatar_url = fields.Url(
        allow_none=True,
        validate=validate.Length(max=500),
    )
