"""
schemas/week_schema.py — Marshmallow schema for starting a voting week.

Every field is optional. Omitted values default to the current ISO week in
week_service.resolve_week_fields. Whether (year, week_number) is already
used in the group is a DB concern (WEEK_ALREADY_EXISTS, 409).
"""

from __future__ import annotations

from datetime import timezone

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from trackvote.app.errors import ErrorCode


class StartWeekSchema(Schema):
    """POST /groups/:id/weeks"""

    # ISO weeks run 1..53.
    week_number = fields.Int(
        strict=True,
        load_default=None,
        validate=validate.Range(min=1, max=53, error="week_number must be between 1 and 53."),
    )

    year = fields.Int(
        strict=True,
        load_default=None,
        validate=validate.Range(min=2000, max=9999, error="year must be between 2000 and 9999."),
    )

    week_start = fields.AwareDateTime(load_default=None, default_timezone=timezone.utc)
    week_end = fields.AwareDateTime(load_default=None, default_timezone=timezone.utc)

    @validates_schema
    def validate_range(self, data: dict, **kwargs) -> None:
        start, end = data.get("week_start"), data.get("week_end")
        if start is not None and end is not None and end <= start:
            raise ValidationError(ErrorCode.INVALID_WEEK_RANGE, field_name="week_end")
