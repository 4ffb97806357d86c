"""
routes/voting.py — Track submission, voting and standings route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - All calls go through services/voting_session.py, which resolves the
    group's active week.

Special: add_track returns (result, warnings). When the submitter had no
coin left for the auto-vote, the track is still created (201) and the
response carries an AUTO_VOTE_SKIPPED warning.

Endpoints (url_prefix=/api/v1/groups):
  POST /groups/:id/tracks               → 201  add track (+ auto-vote)
  GET  /groups/:id/tracks/unvoted       → 200  zero-vote tracks of the active week
  POST /groups/:id/votes                → 201  cast a vote
  GET  /groups/:id/votes/me             → 200  caller's coins and votes
  GET  /groups/:id/standings            → 200  ranked standings
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from trackvote.app.extensions import db
from trackvote.app.middleware.auth_middleware import require_auth
from trackvote.app.schemas.voting_schema import AddTrackSchema, CastVoteSchema
from trackvote.app.services import voting_session
from trackvote.app.services.catalog_service import CatalogTrack

voting_bp = Blueprint("voting", __name__)


@voting_bp.route("/<int:group_id>/tracks", methods=["POST"])
@require_auth
def add_track(group_id: int):
    data = AddTrackSchema().load(request.get_json(force=True) or {})
    result, warnings = voting_session.add_track(
        group_id=group_id,
        user_id=g.user_id,
        catalog_track=CatalogTrack(**data),
        session=db.session,
        auto_vote=current_app.config.get("AUTO_VOTE_ON_SUBMIT", True),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": warnings}), 201


@voting_bp.route("/<int:group_id>/tracks/unvoted", methods=["GET"])
@require_auth
def list_unvoted_tracks(group_id: int):
    result = voting_session.list_unvoted_tracks(
        group_id=group_id,
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@voting_bp.route("/<int:group_id>/votes", methods=["POST"])
@require_auth
def cast_vote(group_id: int):
    data = CastVoteSchema().load(request.get_json(force=True) or {})
    result = voting_session.cast_vote(
        group_id=group_id,
        user_id=g.user_id,
        track_id=data["track_id"],
        session=db.session,
        coins=data["coins"],
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@voting_bp.route("/<int:group_id>/votes/me", methods=["GET"])
@require_auth
def get_my_votes(group_id: int):
    result = voting_session.get_voting_state(
        group_id=group_id,
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@voting_bp.route("/<int:group_id>/standings", methods=["GET"])
@require_auth
def get_standings(group_id: int):
    """GET /groups/:id/standings — active_week is null when no week is active."""
    result = voting_session.get_standings(
        group_id=group_id,
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
