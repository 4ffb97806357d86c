"""
routes/catalog.py — Catalog search route handler.

Endpoints (url_prefix=/api/v1/catalog):
  GET /catalog/search?q=<text>          → 200  list of catalog tracks

No database access. An upstream failure is CATALOG_UNAVAILABLE (502).
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from trackvote.app.middleware.auth_middleware import require_auth
from trackvote.app.schemas.voting_schema import CatalogSearchSchema
from trackvote.app.services.catalog_service import gateway_from_config

catalog_bp = Blueprint("catalog", __name__)


@catalog_bp.route("/search", methods=["GET"])
@require_auth
def search():
    data = CatalogSearchSchema().load(request.args.to_dict())
    gateway = gateway_from_config(current_app.config)
    tracks = gateway.search(data["q"])
    return jsonify({"data": [t.to_dict() for t in tracks], "warnings": []}), 200
