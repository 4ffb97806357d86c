"""
middleware/auth_middleware.py — Bearer token authentication decorator.

Tokens are issued by the external identity provider (Supabase Auth by
default); this service only verifies them. The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature (JWT_ALGORITHM, default HS256)
  3. Checks expiry and, when JWT_AUDIENCE is configured, the aud claim
  4. Attaches the opaque `sub` claim (str) to flask.g.user_id
  5. Returns the appropriate 401 error if any step fails

Strict responsibility boundary:
  - This middleware extracts the JWT and attaches user_id to flask.g ONLY.
  - It does NOT perform business authorization (group membership, admin
    role). That belongs in the service layer. Middleware = authentication
    (401). Service = authorization (403).
  - Services receive user_id as a plain string argument, with no knowledge
    of JWT or HTTP headers.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from trackvote.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Attaches the authenticated user's ID to flask.g.user_id.
    Raises AppError for all auth failures — the global error handler converts
    these to the correct JSON response. Routes never catch AppError.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Performs the full JWT authentication sequence and sets flask.g.user_id.

    Separated from the decorator wrapper for testability.
    """
    auth_header = request.headers.get("Authorization", "")

    # ── Step 1: Require Authorization header ──────────────────────────────
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    # ── Step 2: Parse "Bearer <token>" format ─────────────────────────────
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    raw_token = parts[1]

    # ── Step 3: Decode and verify the JWT ─────────────────────────────────
    audience = current_app.config.get("JWT_AUDIENCE")
    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            audience=audience,
            options={"verify_aud": audience is not None},
        )
    except jwt.ExpiredSignatureError:
        # Client should refresh the session with the identity provider.
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Sign in again to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        # Covers: bad signature, malformed token, wrong audience, etc.
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    # ── Step 4: Extract and validate the sub (user_id) claim ──────────────
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.strip() or len(sub) > 64:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is missing a valid 'sub' claim.",
            401,
        )

    # ── Step 5: Attach user_id to flask.g ─────────────────────────────────
    g.user_id = sub
