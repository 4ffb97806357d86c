"""
routes/groups.py — Group and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/groups):
  POST   /groups                        → 201  create group (caller becomes admin)
  GET    /groups                        → 200  list caller's groups
  POST   /groups/join                   → 201  join by invite code
  GET    /groups/:id                    → 200  get group + members
  PATCH  /groups/:id                    → 200  rename group (admin only)
  DELETE /groups/:id/members/:uid       → 200  remove member (admin or self)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from trackvote.app.extensions import db
from trackvote.app.middleware.auth_middleware import require_auth
from trackvote.app.schemas.group_schema import (
    CreateGroupSchema,
    JoinGroupSchema,
    RenameGroupSchema,
)
from trackvote.app.services import group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a new group. Caller becomes its admin."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.create_group(
        name=data["name"],
        creator_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/", methods=["GET"])
@require_auth
def list_groups():
    """GET /groups — List all groups the authenticated user belongs to."""
    result = group_service.list_groups(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/join", methods=["POST"])
@require_auth
def join_group():
    """POST /groups/join — Join a group with its invite code."""
    data = JoinGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.join_group(
        invite_code=data["invite_code"],
        user_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id — Get group details with member list. Caller must be member."""
    result = group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["PATCH"])
@require_auth
def rename_group(group_id: int):
    """PATCH /groups/:id — Rename the group. Admin only."""
    data = RenameGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.rename_group(
        group_id=group_id,
        caller_id=g.user_id,
        name=data["name"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members/<string:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: str):
    """DELETE /groups/:id/members/:uid — Remove a member. Admin removes anyone; member removes self."""
    group_service.remove_member(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=target_uid,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": target_uid,
        },
        "warnings": [],
    }), 200
