"""
ledger/membership.py — Membership resolver.

A membership row is the only durable record of "currently in the group".
Removal deletes the row; there is no tombstone, so absence means inactive.
Every other engine component filters historical records through the set
returned here.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable

from backend.app.ledger.records import MembershipRow


def resolve_active_members(
        group_id: Hashable,
        memberships: Iterable[MembershipRow],
) -> frozenset:
    """
    Returns the ids of members with a membership row for `group_id`.

    Rows for other groups are ignored and duplicate rows collapse. An empty
    result is valid (an empty group).
    """
    return frozenset(m.member_id for m in memberships if m.group_id == group_id)


def active_member_order(
        group_id: Hashable,
        memberships: Iterable[MembershipRow],
) -> list:
    """Same members as resolve_active_members(), de-duplicated in row order."""
    return list(dict.fromkeys(m.member_id for m in memberships if m.group_id == group_id))


def ordered_members(active_members: Iterable[Hashable]) -> list:
    """
    Gives engine outputs a deterministic member order.

    Sequences keep their order (first occurrence wins); sets are sorted
    because their iteration order is not stable across runs.
    """
    if isinstance(active_members, (set, frozenset)):
        return sorted(active_members, key=lambda m: (type(m).__name__, m))
    return list(dict.fromkeys(active_members))
