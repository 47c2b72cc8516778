"""
tests/integration/test_auth.py — Bearer token authentication and user sync.

Properties verified:
  - No header → TOKEN_MISSING; malformed header, bad signature or missing
    sub → TOKEN_INVALID; past exp → TOKEN_EXPIRED (all 401)
  - First authenticated request creates the local user; later requests
    refresh its profile from the token claims
  - A ghost member is claimed by the first account with the same email and
    keeps its id, so its expenses now belong to that account
"""

from __future__ import annotations

from datetime import timedelta

from .conftest import (
    add_ghost,
    auth_headers,
    login,
    make_expense,
    make_group,
    make_token,
)

ME = "/api/v1/users/me"


def _error_code(resp) -> str:
    return resp.get_json()["error"]["code"]


class TestTokenErrors:

    def test_missing_header(self, client):
        resp = client.get(ME)

        assert resp.status_code == 401
        assert _error_code(resp) == "TOKEN_MISSING"

    def test_wrong_scheme(self, client):
        token = make_token("idp|alice", name="Alice")

        resp = client.get(ME, headers={"Authorization": f"Token {token}"})

        assert resp.status_code == 401
        assert _error_code(resp) == "TOKEN_INVALID"

    def test_bad_signature(self, client):
        token = make_token("idp|alice", name="Alice", secret="some-other-secret")

        resp = client.get(ME, headers=auth_headers(token))

        assert resp.status_code == 401
        assert _error_code(resp) == "TOKEN_INVALID"

    def test_garbage_token(self, client):
        resp = client.get(ME, headers=auth_headers("not.a.jwt"))

        assert resp.status_code == 401
        assert _error_code(resp) == "TOKEN_INVALID"

    def test_expired_token(self, client):
        token = make_token("idp|alice", name="Alice", expires_in=timedelta(minutes=-5))

        resp = client.get(ME, headers=auth_headers(token))

        assert resp.status_code == 401
        assert _error_code(resp) == "TOKEN_EXPIRED"

    def test_blank_subject(self, client):
        token = make_token("   ", name="Alice")

        resp = client.get(ME, headers=auth_headers(token))

        assert resp.status_code == 401
        assert _error_code(resp) == "TOKEN_INVALID"


class TestUserSync:

    def test_first_request_creates_user(self, client):
        token = make_token("idp|alice", name="Alice", email="Alice@Test.com", picture="https://img/a.png")

        resp = client.get(ME, headers=auth_headers(token))

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["name"] == "Alice"
        assert data["email"] == "alice@test.com"
        assert data["avatar_url"] == "https://img/a.png"
        assert data["is_ghost"] is False

    def test_same_subject_maps_to_same_user(self, client):
        first = login(client, "alice")
        again = login(client, "alice")

        assert first["id"] == again["id"]

    def test_profile_is_refreshed_from_claims(self, client):
        alice = login(client, "alice")
        renamed = make_token("idp|alice", name="Alice Cooper", email="alice@test.com")

        resp = client.get(ME, headers=auth_headers(renamed))

        assert resp.get_json()["data"]["id"] == alice["id"]
        assert resp.get_json()["data"]["name"] == "Alice Cooper"

    def test_email_of_another_account_is_a_conflict(self, client):
        login(client, "alice")
        token = make_token("idp|mallory", name="Mallory", email="alice@test.com")

        resp = client.get(ME, headers=auth_headers(token))

        assert resp.status_code == 409
        assert _error_code(resp) == "DUPLICATE_EMAIL"


class TestGhostClaim:

    def test_first_sign_in_claims_ghost_and_its_history(self, client):
        alice = login(client, "alice")
        group = make_group(client, alice["token"])
        ghost = add_ghost(client, alice["token"], group["id"], "Dana", email="dana@test.com").get_json()["data"]
        make_expense(client, alice["token"], group["id"], amount="20.00", paid_by_user_id=ghost["id"])

        dana = login(client, "dana")

        assert dana["id"] == ghost["id"]
        me = client.get(ME, headers=auth_headers(dana["token"])).get_json()["data"]
        assert me["is_ghost"] is False

        balances = client.get(
            f"/api/v1/groups/{group['id']}/balances", headers=auth_headers(dana["token"]),
        ).get_json()["data"]
        assert balances["net_balance"] == "10.00"
