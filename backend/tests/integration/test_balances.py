"""
tests/integration/test_balances.py — Integration tests for GET /groups/:id/balances.

Endpoints covered:
  GET /groups/:id/balances  → 200 (net balances + pairwise debts per member)

Properties verified:
  - balance_sum is "0.00", also after a member is removed
  - Every active member appears (even with 0.00); removed members do not
  - Admin pays 100 split 50/50 with X: Admin is +50, and 0 once X is removed
  - Settlements are netted into balances and pairwise debts
  - Soft-deleted expenses are excluded
  - Non-members get FORBIDDEN (403), unknown groups GROUP_NOT_FOUND (404)
"""

from __future__ import annotations

from .conftest import (
    add_member,
    auth_headers,
    balance_of,
    get_balances,
    login,
    make_expense,
    make_group,
    make_settlement,
    remove_member,
)


# ═══════════════════════════════════════════════════════════════════════════
# Setup helpers
# ═══════════════════════════════════════════════════════════════════════════

def _setup(client, *names):
    """Admin creates a group and adds every other named user."""
    admin = login(client, "admin")
    others = [login(client, name) for name in names]
    group = make_group(client, admin["token"])
    for other in others:
        assert add_member(client, admin["token"], group["id"], other["id"]).status_code == 201
    return admin, others, group


def _balances(client, token, group_id):
    resp = get_balances(client, token, group_id)
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


def _fifty_fifty(client, payer, other, group, amount="100.00"):
    resp = make_expense(client, payer["token"], group["id"], amount=amount)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


# ═══════════════════════════════════════════════════════════════════════════
# Zero-sum
# ═══════════════════════════════════════════════════════════════════════════

class TestBalanceSumIsZero:

    def test_empty_group(self, client):
        admin, (bob,), group = _setup(client, "bob")

        data = _balances(client, admin["token"], group["id"])

        assert data["balance_sum"] == "0.00"
        assert {b["user_id"] for b in data["balances"]} == {admin["id"], bob["id"]}
        assert all(b["amount"] == "0.00" for b in data["balances"])

    def test_multiple_payers_and_uneven_split(self, client):
        admin, (bob, carol), group = _setup(client, "bob", "carol")

        make_expense(client, admin["token"], group["id"], amount="100.00")
        make_expense(client, bob["token"], group["id"], amount="47.11")
        make_expense(
            client, carol["token"], group["id"], amount="12.00",
            split_mode="custom",
            splits=[
                {"user_id": admin["id"], "amount": "2.00"},
                {"user_id": carol["id"], "amount": "10.00"},
            ],
        )

        data = _balances(client, carol["token"], group["id"])
        assert data["balance_sum"] == "0.00"

    def test_sum_stays_zero_after_removal(self, client):
        admin, (bob, carol), group = _setup(client, "bob", "carol")
        make_expense(client, admin["token"], group["id"], amount="90.00")
        make_expense(client, carol["token"], group["id"], amount="30.00")

        assert remove_member(client, admin["token"], group["id"], carol["id"]).status_code == 200

        data = _balances(client, admin["token"], group["id"])
        assert data["balance_sum"] == "0.00"
        assert {b["user_id"] for b in data["balances"]} == {admin["id"], bob["id"]}


# ═══════════════════════════════════════════════════════════════════════════
# Balance values
# ═══════════════════════════════════════════════════════════════════════════

class TestBalanceValues:

    def test_payer_credited_participant_debited(self, client):
        admin, (bob,), group = _setup(client, "bob")
        _fifty_fifty(client, admin, bob, group)

        data = _balances(client, bob["token"], group["id"])

        assert balance_of(data, admin["id"])["amount"] == "50.00"
        assert balance_of(data, bob["id"])["amount"] == "-50.00"
        assert data["net_balance"] == "-50.00"

    def test_pairwise_debts_are_listed(self, client):
        admin, (bob,), group = _setup(client, "bob")
        _fifty_fifty(client, admin, bob, group)

        data = _balances(client, admin["token"], group["id"])
        admin_entry = balance_of(data, admin["id"])
        bob_entry = balance_of(data, bob["id"])

        assert admin_entry["owed_by"] == [{"user_id": bob["id"], "name": "Bob", "amount": "50.00"}]
        assert admin_entry["owes_to"] == []
        assert bob_entry["owes_to"] == [{"user_id": admin["id"], "name": "Admin", "amount": "50.00"}]
        assert bob_entry["owed_by"] == []

    def test_settlement_nets_to_zero(self, client):
        admin, (bob,), group = _setup(client, "bob")
        _fifty_fifty(client, admin, bob, group)

        resp = make_settlement(client, bob["token"], group["id"], admin["id"], "50.00")
        assert resp.status_code == 201

        data = _balances(client, admin["token"], group["id"])
        for entry in data["balances"]:
            assert entry["amount"] == "0.00"
            assert entry["owes_to"] == []
            assert entry["owed_by"] == []

    def test_mutual_debts_net_to_one_direction(self, client):
        admin, (bob,), group = _setup(client, "bob")
        _fifty_fifty(client, admin, bob, group, amount="60.00")
        _fifty_fifty(client, bob, admin, group, amount="20.00")

        data = _balances(client, admin["token"], group["id"])
        bob_entry = balance_of(data, bob["id"])

        assert bob_entry["owes_to"] == [{"user_id": admin["id"], "name": "Admin", "amount": "20.00"}]
        assert bob_entry["owed_by"] == []

    def test_deleted_expense_is_excluded(self, client):
        admin, (bob,), group = _setup(client, "bob")
        _fifty_fifty(client, admin, bob, group, amount="40.00")
        doomed = _fifty_fifty(client, admin, bob, group, amount="100.00")

        resp = client.delete(f"/api/v1/expenses/{doomed['id']}", headers=auth_headers(admin["token"]))
        assert resp.status_code == 200

        data = _balances(client, admin["token"], group["id"])
        assert balance_of(data, admin["id"])["amount"] == "20.00"
        assert balance_of(data, bob["id"])["amount"] == "-20.00"


# ═══════════════════════════════════════════════════════════════════════════
# Member removal
# ═══════════════════════════════════════════════════════════════════════════

class TestRemovalForgivesDebt:

    def test_admin_goes_from_fifty_to_zero(self, client):
        admin, (x,), group = _setup(client, "xavier")
        _fifty_fifty(client, admin, x, group)

        before = _balances(client, admin["token"], group["id"])
        assert balance_of(before, admin["id"])["amount"] == "50.00"

        assert remove_member(client, admin["token"], group["id"], x["id"]).status_code == 200

        after = _balances(client, admin["token"], group["id"])
        assert balance_of(after, admin["id"])["amount"] == "0.00"
        assert balance_of(after, x["id"]) is None
        assert after["net_balance"] == "0.00"

    def test_other_members_unchanged_by_removal(self, client):
        admin, (bob, x), group = _setup(client, "bob", "xavier")
        make_expense(
            client, admin["token"], group["id"], amount="40.00",
            split_between=[admin["id"], bob["id"]],
        )
        make_expense(
            client, admin["token"], group["id"], amount="60.00",
            split_between=[admin["id"], x["id"]],
        )

        before = _balances(client, admin["token"], group["id"])
        remove_member(client, admin["token"], group["id"], x["id"])
        after = _balances(client, admin["token"], group["id"])

        assert balance_of(before, bob["id"])["amount"] == balance_of(after, bob["id"])["amount"] == "-20.00"
        assert balance_of(after, admin["id"])["amount"] == "20.00"

    def test_expense_paid_by_removed_member_is_forgiven(self, client):
        admin, (bob, x), group = _setup(client, "bob", "xavier")
        make_expense(client, x["token"], group["id"], amount="90.00")

        remove_member(client, admin["token"], group["id"], x["id"])

        data = _balances(client, admin["token"], group["id"])
        assert all(entry["amount"] == "0.00" for entry in data["balances"])

    def test_removed_member_cannot_read_balances(self, client):
        admin, (x,), group = _setup(client, "xavier")
        remove_member(client, admin["token"], group["id"], x["id"])

        resp = get_balances(client, x["token"], group["id"])

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_re_added_member_counts_again(self, client):
        admin, (x,), group = _setup(client, "xavier")
        _fifty_fifty(client, admin, x, group)

        remove_member(client, admin["token"], group["id"], x["id"])
        add_member(client, admin["token"], group["id"], x["id"])

        data = _balances(client, admin["token"], group["id"])
        assert balance_of(data, admin["id"])["amount"] == "50.00"
        assert balance_of(data, x["id"])["amount"] == "-50.00"


# ═══════════════════════════════════════════════════════════════════════════
# Access control
# ═══════════════════════════════════════════════════════════════════════════

class TestBalanceAccess:

    def test_non_member_is_forbidden(self, client):
        admin, _, group = _setup(client)
        stranger = login(client, "stranger")

        resp = get_balances(client, stranger["token"], group["id"])

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_unknown_group_is_404(self, client):
        admin = login(client, "admin")

        resp = get_balances(client, admin["token"], 999999)

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "GROUP_NOT_FOUND"

    def test_missing_token_is_401(self, client):
        resp = client.get("/api/v1/groups/1/balances")

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"
