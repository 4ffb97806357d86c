"""
routes/weeks.py — Voting week route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.

Endpoints (url_prefix=/api/v1/groups):
  GET  /groups/:id/weeks                → 200  list weeks, newest first
  GET  /groups/:id/weeks/active         → 200  active week or null
  POST /groups/:id/weeks                → 201  start a new week (admin only)
  POST /groups/:id/weeks/:wid/close     → 200  close a week (admin only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from trackvote.app.extensions import db
from trackvote.app.middleware.auth_middleware import require_auth
from trackvote.app.schemas.week_schema import StartWeekSchema
from trackvote.app.services import week_service

weeks_bp = Blueprint("weeks", __name__)


@weeks_bp.route("/<int:group_id>/weeks", methods=["GET"])
@require_auth
def list_weeks(group_id: int):
    result = week_service.list_weeks(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@weeks_bp.route("/<int:group_id>/weeks/active", methods=["GET"])
@require_auth
def get_active_week(group_id: int):
    """GET /groups/:id/weeks/active — data is null when no week is active."""
    result = week_service.describe_active_week(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@weeks_bp.route("/<int:group_id>/weeks", methods=["POST"])
@require_auth
def start_week(group_id: int):
    """POST /groups/:id/weeks — Activate a new week; the previous one is closed."""
    data = StartWeekSchema().load(request.get_json(silent=True) or {})
    week = week_service.start_new_week(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": week_service.build_week_dict(week), "warnings": []}), 201


@weeks_bp.route("/<int:group_id>/weeks/<int:week_id>/close", methods=["POST"])
@require_auth
def close_week(group_id: int, week_id: int):
    week = week_service.close_week(
        group_id=group_id,
        week_id=week_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": week_service.build_week_dict(week), "warnings": []}), 200
