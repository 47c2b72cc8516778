"""
tests/unit/test_membership_resolver.py — Active-member resolution.

Absence of a membership row means inactive; there is no tombstone to check.
"""

from __future__ import annotations

from backend.app.ledger import MembershipRow, active_member_order, resolve_active_members
from backend.app.ledger.membership import ordered_members


def test_returns_members_of_the_requested_group_only():
    rows = [
        MembershipRow(group_id=1, member_id=10),
        MembershipRow(group_id=2, member_id=20),
        MembershipRow(group_id=1, member_id=30, role="admin"),
    ]
    assert resolve_active_members(1, rows) == frozenset({10, 30})


def test_duplicate_rows_collapse():
    rows = [MembershipRow(1, 10), MembershipRow(1, 10)]
    assert resolve_active_members(1, rows) == frozenset({10})


def test_empty_group_is_valid():
    assert resolve_active_members(1, []) == frozenset()


def test_member_order_follows_row_order_without_duplicates():
    rows = [MembershipRow(1, 30), MembershipRow(1, 10), MembershipRow(1, 30), MembershipRow(2, 5)]
    assert active_member_order(1, rows) == [30, 10]


def test_ordered_members_sorts_sets_and_keeps_sequences():
    assert ordered_members({3, 1, 2}) == [1, 2, 3]
    assert ordered_members([3, 1, 3, 2]) == [3, 1, 2]
