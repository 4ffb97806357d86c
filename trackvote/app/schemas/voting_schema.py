"""
schemas/voting_schema.py — Marshmallow schemas for track submission and voting.

Validation responsibility:
  - This file: field types, lengths, URL shapes, coin range.
  - services/track_service.py: INV-3 duplicates, INV-5 active week.
  - services/vote_service.py: INV-1 budget, INV-4 track/week match.

AddTrackSchema keys match catalog_service.CatalogTrack, so the route builds
the dataclass with CatalogTrack(**data).
"""

from __future__ import annotations

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    post_load,
    pre_load,
    validate,
    validates_schema,
)

from trackvote.app.schemas.group_schema import validate_non_empty_after_trim
from trackvote.app.services.vote_service import MAX_COINS

# tracks.artist is VARCHAR(255) and holds the names joined with ", ".
MAX_ARTIST_DISPLAY_LENGTH = 255


class AddTrackSchema(Schema):
    """
    POST /groups/:id/tracks

    The body is a catalog search result, as returned by GET /catalog/search.
    """

    catalog_id = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=64), validate_non_empty_after_trim],
    )

    title = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=255), validate_non_empty_after_trim],
    )

    artists = fields.List(
        fields.Str(validate=validate.Length(min=1, max=255)),
        required=True,
        validate=validate.Length(min=1, error="At least one artist is required."),
    )

    album_name = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=255))
    artwork_url = fields.Url(load_default=None, allow_none=True, validate=validate.Length(max=500))
    preview_url = fields.Url(load_default=None, allow_none=True, validate=validate.Length(max=500))

    @pre_load
    def accept_single_artist(self, data, **kwargs):
        """Clients may send "artist": "Name" instead of "artists": ["Name"]."""
        if isinstance(data, dict) and "artists" not in data and isinstance(data.get("artist"), str):
            data = dict(data)
            data["artists"] = [data.pop("artist")]
        return data

    @validates_schema
    def validate_artist_display(self, data: dict, **kwargs) -> None:
        artists = data.get("artists") or []
        if len(", ".join(artists)) > MAX_ARTIST_DISPLAY_LENGTH:
            raise ValidationError(
                f"Artist names must fit in {MAX_ARTIST_DISPLAY_LENGTH} characters when joined.",
                field_name="artists",
            )

    @post_load
    def strip_identity(self, data: dict, **kwargs) -> dict:
        # uq_tracks_week_catalog compares catalog_id byte for byte.
        data["catalog_id"] = data["catalog_id"].strip()
        data["title"] = data["title"].strip()
        return data


class CastVoteSchema(Schema):
    """POST /groups/:id/votes"""

    track_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="track_id must be a positive integer."),
    )

    # Whether the caller can afford it is INV-1, checked under lock in vote_service.
    coins = fields.Int(
        strict=True,
        load_default=1,
        validate=validate.Range(
            min=1,
            max=MAX_COINS,
            error=f"coins must be between 1 and {MAX_COINS}.",
        ),
    )


class CatalogSearchSchema(Schema):
    """GET /catalog/search?q="""

    class Meta:
        unknown = EXCLUDE

    q = fields.Str(required=True, validate=validate.Length(max=200))
