"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"). The
    testing config uses in-memory SQLite unless TEST_DATABASE_URL points at
    a PostgreSQL database.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Authentication:
  Sign-in happens at an external identity provider, so tests mint their own
  HS256 tokens with the testing secret. The first authenticated request
  syncs the user row; `login()` does that through GET /users/me and returns
  the local user id.

Helper functions (not fixtures):
  - login(client, name, ...)    → {"token", "id", "name", "email"}
  - auth_headers(token)         → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)     → group dict
  - add_member(...)             → HTTP response
  - add_ghost(...)              → HTTP response
  - remove_member(...)          → HTTP response
  - make_expense(...)           → HTTP response
  - make_settlement(...)        → HTTP response
  - get_balances(...)           → HTTP response
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from backend.app import create_app
from backend.app.extensions import db as _db

TEST_SECRET = "testing-secret"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the Flask application in 'testing' mode once for the whole session."""
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
    """Deletes all rows after every test, children before parents."""
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.remove()

        with _db.engine.connect() as conn:
            for table in (
                "invitations",
                "activity_logs",
                "splits",
                "settlements",
                "expenses",
                "memberships",
                "groups",
                "users",
            ):
                conn.execute(text(f"DELETE FROM {table}"))
            conn.commit()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_token(
    subject: str,
    name: str | None = None,
    email: str | None = None,
    expires_in: timedelta = timedelta(minutes=15),
    secret: str = TEST_SECRET,
    **extra,
) -> str:
    """Mints a bearer token the way the identity provider would."""
    now = datetime.now(timezone.utc)
    payload = {"sub": subject, "iat": now, "exp": now + expires_in, **extra}
    if name is not None:
        payload["name"] = name
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def login(client, name: str = "alice", email: str | None = None) -> dict:
    """
    Signs a user in (syncs the local row) and returns
    {"token": ..., "id": ..., "name": ..., "email": ...}.
    """
    if email is None:
        email = f"{name.lower()}@test.com"
    token = make_token(f"idp|{name.lower()}", name=name.capitalize(), email=email)

    resp = client.get("/api/v1/users/me", headers=auth_headers(token))
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    user = resp.get_json()["data"]
    return {"token": token, "id": user["id"], "name": user["name"], "email": user["email"]}


def make_group(client, token: str, name: str = "Test Group") -> dict:
    """Creates a group; the caller becomes its admin and first member."""
    resp = client.post(
        "/api/v1/groups",
        json={"name": name},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, token: str, group_id: int, user_id: int):
    """Adds an existing user to a group (admin token required)."""
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json={"user_id": user_id},
        headers=auth_headers(token),
    )


def add_ghost(client, token: str, group_id: int, name: str, email: str | None = None):
    """Creates a ghost member in a group (admin token required)."""
    payload = {"name": name}
    if email is not None:
        payload["email"] = email
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json=payload,
        headers=auth_headers(token),
    )


def remove_member(client, token: str, group_id: int, user_id: int):
    return client.delete(
        f"/api/v1/groups/{group_id}/members/{user_id}",
        headers=auth_headers(token),
    )


def make_expense(
    client,
    token: str,
    group_id: int,
    amount: str,
    paid_by_user_id: int | None = None,
    splits: list[dict] | None = None,
    split_between: list[int] | None = None,
    description: str = "Test Expense",
    split_mode: str = "equal",
    category: str = "other",
    expense_date: str | None = None,
):
    """
    Creates an expense and returns the HTTP response.

    For split_mode='equal' pass no splits (optionally split_between); for
    'custom' pass [{user_id, amount}], for 'percentage' [{user_id, percentage}].
    """
    payload: dict = {
        "description": description,
        "amount": amount,
        "split_mode": split_mode,
        "category": category,
    }
    if paid_by_user_id is not None:
        payload["paid_by_user_id"] = paid_by_user_id
    if splits is not None:
        payload["splits"] = splits
    if split_between is not None:
        payload["split_between"] = split_between
    if expense_date is not None:
        payload["expense_date"] = expense_date

    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=auth_headers(token),
    )


def make_settlement(client, token: str, group_id: int, paid_to_user_id: int, amount: str, **extra):
    return client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json={"paid_to_user_id": paid_to_user_id, "amount": amount, **extra},
        headers=auth_headers(token),
    )


def get_balances(client, token: str, group_id: int):
    return client.get(
        f"/api/v1/groups/{group_id}/balances",
        headers=auth_headers(token),
    )


def balance_of(balances_data: dict, user_id: int) -> dict | None:
    """Returns the balance entry for user_id, or None if they are not listed."""
    return next((b for b in balances_data["balances"] if b["user_id"] == user_id), None)
