"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
    TEST_DATABASE_URL selects the database; the default is the local
    PostgreSQL trackvote_test database. sqlite:// opts into in-memory SQLite,
    where test_concurrency.py skips.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Bearer tokens are minted here with PyJWT and the testing secret, standing
    in for the external identity provider.

Helper functions (not fixtures) are provided for common operations:
  - auth_headers(user_id)            → {"Authorization": "Bearer <token>"}
  - make_profile(client, user_id)    → profile dict
  - make_group(client, user_id)      → group dict (caller is admin)
  - join_group(client, user_id, code) → HTTP response
  - start_week(client, user_id, group_id, **body) → HTTP response
  - add_track(client, user_id, group_id, catalog_id) → HTTP response
  - cast_vote(client, user_id, group_id, track_id, coins) → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from trackvote.app import create_app
from trackvote.app.extensions import db as _db

TEST_JWT_SECRET = "test-jwt-secret"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    Tables are created up front and dropped at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order:
      votes → tracks → group_weeks → memberships → groups → users
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM votes"))
            conn.execute(text("DELETE FROM tracks"))
            conn.execute(text("DELETE FROM group_weeks"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_token(user_id: str, expires_in: timedelta = timedelta(hours=1), **claims) -> str:
    """Mints an HS256 token the way the identity provider would."""
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + expires_in, **claims}
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


def auth_headers(user_id: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def make_profile(client, user_id: str, display_name: str | None = None) -> dict:
    resp = client.put(
        "/api/v1/users/me",
        json={"display_name": display_name or user_id.title()},
        headers=auth_headers(user_id),
    )
    assert resp.status_code == 200, f"make_profile failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_group(client, user_id: str, name: str = "Test Group") -> dict:
    """
    Creates a group and returns the group data dict.
    The caller becomes the group admin and first member.
    """
    resp = client.post(
        "/api/v1/groups/",
        json={"name": name},
        headers=auth_headers(user_id),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def join_group(client, user_id: str, invite_code: str):
    return client.post(
        "/api/v1/groups/join",
        json={"invite_code": invite_code},
        headers=auth_headers(user_id),
    )


def start_week(client, user_id: str, group_id: int, **body):
    return client.post(
        f"/api/v1/groups/{group_id}/weeks",
        json=body,
        headers=auth_headers(user_id),
    )


def add_track(client, user_id: str, group_id: int, catalog_id: str, title: str | None = None):
    return client.post(
        f"/api/v1/groups/{group_id}/tracks",
        json={
            "catalog_id": catalog_id,
            "title": title or f"Track {catalog_id}",
            "artists": ["Test Artist"],
        },
        headers=auth_headers(user_id),
    )


def cast_vote(client, user_id: str, group_id: int, track_id: int, coins: int = 1):
    return client.post(
        f"/api/v1/groups/{group_id}/votes",
        json={"track_id": track_id, "coins": coins},
        headers=auth_headers(user_id),
    )


def setup_group_with_week(client, members: tuple[str, ...] = ("bob",)) -> dict:
    """
    alice (admin) creates a group, every name in `members` joins it, and
    alice starts week 43 of 2026. Returns the group dict with "week" added.
    """
    make_profile(client, "alice")
    group = make_group(client, "alice")
    for member in members:
        make_profile(client, member)
        resp = join_group(client, member, group["invite_code"])
        assert resp.status_code == 201, f"join failed: {resp.get_json()}"

    resp = start_week(client, "alice", group["id"], week_number=43, year=2026)
    assert resp.status_code == 201, f"start_week failed: {resp.get_json()}"
    group["week"] = resp.get_json()["data"]
    return group
