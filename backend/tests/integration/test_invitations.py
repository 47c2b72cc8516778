"""
tests/integration/test_invitations.py — Inviting members by email.

Endpoints covered:
  POST /groups/:id/invitations      → 201 / 403 / 409
  GET  /invitations                 → 200
  POST /invitations/:id/respond     → 200 / 404 / 409
"""

from __future__ import annotations

from .conftest import add_member, auth_headers, login, make_group


def _invite(client, token, group_id, email):
    return client.post(
        f"/api/v1/groups/{group_id}/invitations",
        json={"email": email},
        headers=auth_headers(token),
    )


def _respond(client, token, invitation_id, accept: bool):
    return client.post(
        f"/api/v1/invitations/{invitation_id}/respond",
        json={"accept": accept},
        headers=auth_headers(token),
    )


def test_admin_invites_and_invitee_accepts(client):
    alice = login(client, "alice")
    group = make_group(client, alice["token"], name="Flat")

    resp = _invite(client, alice["token"], group["id"], "Bob@Test.com")
    assert resp.status_code == 201
    invitation = resp.get_json()["data"]
    assert invitation["email"] == "bob@test.com"
    assert invitation["status"] == "pending"
    assert invitation["group_name"] == "Flat"

    bob = login(client, "bob")
    pending = client.get("/api/v1/invitations", headers=auth_headers(bob["token"]))
    assert [i["id"] for i in pending.get_json()["data"]] == [invitation["id"]]

    accepted = _respond(client, bob["token"], invitation["id"], True)
    assert accepted.status_code == 200
    assert accepted.get_json()["data"]["status"] == "accepted"

    detail = client.get(f"/api/v1/groups/{group['id']}", headers=auth_headers(bob["token"]))
    assert detail.status_code == 200

    activity = client.get(f"/api/v1/groups/{group['id']}/activity", headers=auth_headers(alice["token"]))
    assert activity.get_json()["data"][0]["description"] == "joined the group"


def test_declined_invitation_does_not_join(client):
    alice = login(client, "alice")
    group = make_group(client, alice["token"])
    invitation = _invite(client, alice["token"], group["id"], "bob@test.com").get_json()["data"]
    bob = login(client, "bob")

    resp = _respond(client, bob["token"], invitation["id"], False)

    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "declined"
    assert client.get(f"/api/v1/groups/{group['id']}", headers=auth_headers(bob["token"])).status_code == 403


def test_responding_twice_conflicts(client):
    alice = login(client, "alice")
    group = make_group(client, alice["token"])
    invitation = _invite(client, alice["token"], group["id"], "bob@test.com").get_json()["data"]
    bob = login(client, "bob")
    _respond(client, bob["token"], invitation["id"], False)

    resp = _respond(client, bob["token"], invitation["id"], True)

    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "INVITATION_CLOSED"


def test_someone_elses_invitation_is_not_found(client):
    alice = login(client, "alice")
    group = make_group(client, alice["token"])
    invitation = _invite(client, alice["token"], group["id"], "bob@test.com").get_json()["data"]
    eve = login(client, "eve")

    resp = _respond(client, eve["token"], invitation["id"], True)

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "INVITATION_NOT_FOUND"


def test_only_admins_invite(client):
    alice = login(client, "alice")
    bob = login(client, "bob")
    group = make_group(client, alice["token"])
    add_member(client, alice["token"], group["id"], bob["id"])

    resp = _invite(client, bob["token"], group["id"], "carol@test.com")

    assert resp.status_code == 403
    assert resp.get_json()["error"]["message"] == "Access denied: Only admins can invite members."


def test_inviting_a_member_conflicts(client):
    alice = login(client, "alice")
    bob = login(client, "bob")
    group = make_group(client, alice["token"])
    add_member(client, alice["token"], group["id"], bob["id"])

    resp = _invite(client, alice["token"], group["id"], "bob@test.com")

    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"


def test_re_inviting_reuses_pending_invitation(client):
    alice = login(client, "alice")
    group = make_group(client, alice["token"])

    first = _invite(client, alice["token"], group["id"], "bob@test.com").get_json()["data"]
    second = _invite(client, alice["token"], group["id"], "bob@test.com").get_json()["data"]

    assert first["id"] == second["id"]
