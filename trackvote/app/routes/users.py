"""
routes/users.py — Profile route handlers.

Endpoints (url_prefix=/api/v1/users):
  GET /users/me                         → 200  caller's profile
  PUT /users/me                         → 200  create or update caller's profile
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from trackvote.app.extensions import db
from trackvote.app.middleware.auth_middleware import require_auth
from trackvote.app.schemas.profile_schema import UpdateProfileSchema
from trackvote.app.services import profile_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/me", methods=["GET"])
@require_auth
def get_me():
    result = profile_service.get_profile(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/me", methods=["PUT"])
@require_auth
def put_me():
    data = UpdateProfileSchema().load(request.get_json(force=True) or {})
    result = profile_service.upsert_profile(g.user_id, data, db.session)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
