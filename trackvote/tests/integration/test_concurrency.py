"""
tests/integration/test_concurrency.py — Races that only row locks can settle.

Skipped when TEST_DATABASE_URL opts into SQLite: it ignores SELECT ... FOR
UPDATE and serialises writers on its own, so these races cannot happen there.

What this file proves:
  - INV-1: parallel votes by one user never spend more than 3 coins
  - INV-3: parallel submissions of the same catalog track create one row
  - INV-2: parallel week rotations leave exactly one active week
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from .conftest import add_track, auth_headers, cast_vote, setup_group_with_week, start_week

WORKERS = 8


@pytest.fixture(autouse=True)
def _postgres_only(app):
    if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("postgresql"):
        pytest.skip("row-lock races need PostgreSQL")


def _in_parallel(app, fn, count: int = WORKERS) -> list[int]:
    """Runs fn(client, i) on `count` threads, each with its own test client."""
    def run(i: int) -> int:
        return fn(app.test_client(), i).status_code

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(run, range(count)))


def test_parallel_votes_respect_budget(app, client):
    group = setup_group_with_week(client)
    resp = add_track(client, "alice", group["id"], "1")
    track_id = resp.get_json()["data"]["track"]["id"]

    statuses = _in_parallel(app, lambda c, _i: cast_vote(c, "bob", group["id"], track_id))

    assert statuses.count(201) == 3
    assert statuses.count(422) == WORKERS - 3
    state = client.get(
        f"/api/v1/groups/{group['id']}/votes/me", headers=auth_headers("bob"),
    ).get_json()["data"]
    assert state["coins_spent"] == 3


def test_parallel_duplicate_submissions(app, client):
    group = setup_group_with_week(client)

    statuses = _in_parallel(app, lambda c, _i: add_track(c, "bob", group["id"], "3135556"))

    assert statuses.count(201) == 1
    assert statuses.count(409) == WORKERS - 1


def test_parallel_rotations_keep_one_active_week(app, client):
    group = setup_group_with_week(client)

    statuses = _in_parallel(
        app,
        lambda c, i: start_week(c, "alice", group["id"], week_number=i + 1, year=2030),
    )

    assert 201 in statuses
    assert set(statuses) <= {201, 409}
    weeks = client.get(
        f"/api/v1/groups/{group['id']}/weeks", headers=auth_headers("alice"),
    ).get_json()["data"]
    assert sum(1 for w in weeks if w["is_active"]) == 1
