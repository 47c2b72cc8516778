"""
ledger/activity.py — Activity projector.

Merges expenses, settlements and membership-change log entries into one
feed, newest first.

Member references are resolved at query time into one of two variants:

  ActiveMember(id, name, avatar_url)   still has a membership row
  HistoricalOnlyMember(id)             removed; rendered as "Removed User"
                                       with no avatar

The substitution is display-only. Stored identifiers pass through
untouched, so re-adding the same member re-attributes their history.

Tie order: timestamp, then type rank, then entity id, all descending.
Deterministic within one release; callers must not rely on more than that.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from backend.app.ledger.records import (
    ChangeAction,
    ExpenseRecord,
    MemberProfile,
    MembershipChange,
    SettlementRecord,
)


REMOVED_USER_NAME = "Removed User"

EXPENSE        = "expense"
PAYMENT        = "payment"
MEMBER_ADDED   = ChangeAction.MEMBER_ADDED.value
MEMBER_REMOVED = ChangeAction.MEMBER_REMOVED.value

_TYPE_RANK = {MEMBER_REMOVED: 0, MEMBER_ADDED: 1, PAYMENT: 2, EXPENSE: 3}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ── Member resolution ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class ActiveMember:
    member_id: Hashable
    name: str
    avatar_url: str | None = None

    is_active = True

    def to_dict(self) -> dict:
        return {"id": self.member_id, "name": self.name, "avatar_url": self.avatar_url}


@dataclass(frozen=True)
class HistoricalOnlyMember:
    member_id: Hashable

    is_active = False
    name = REMOVED_USER_NAME
    avatar_url = None

    def to_dict(self) -> dict:
        return {"id": self.member_id, "name": self.name, "avatar_url": None}


class MemberDirectory:
    """Resolves member ids against the active set and the profile lookup."""

    def __init__(
            self,
            active_members: Iterable[Hashable],
            profiles: Mapping[Hashable, MemberProfile],
    ) -> None:
        self._active = frozenset(active_members)
        self._profiles = profiles

    def resolve(self, member_id: Hashable) -> ActiveMember | HistoricalOnlyMember:
        if member_id not in self._active:
            return HistoricalOnlyMember(member_id)
        profile = self._profiles.get(member_id)
        if profile is None:
            # Active but no profile row: keep the id visible rather than fail.
            return ActiveMember(member_id, f"user_{member_id}")
        return ActiveMember(member_id, profile.name, profile.avatar_url)

    def name_of(self, member_id: Hashable) -> str:
        return self.resolve(member_id).name


# ── Feed items ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ActivityItem:
    type: str
    entity_id: Hashable
    description: str
    timestamp: datetime | None
    actor: ActiveMember | HistoricalOnlyMember
    amount: Decimal | None = None
    category: str | None = None
    counterparty: ActiveMember | HistoricalOnlyMember | None = None
    participants: list = field(default_factory=list)

    def sort_key(self) -> tuple:
        ts = self.timestamp
        if ts is None:
            ts = _EPOCH
        elif ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts, _TYPE_RANK[self.type], _id_key(self.entity_id)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "id": self.entity_id,
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "actor": self.actor.to_dict(),
            "counterparty": self.counterparty.to_dict() if self.counterparty else None,
            "participants": self.participants,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


def _id_key(entity_id: Hashable) -> tuple:
    # Mixed id types (int vs uuid str) must still compare.
    return (type(entity_id).__name__, entity_id)


def _expense_item(expense: ExpenseRecord, directory: MemberDirectory) -> ActivityItem:
    return ActivityItem(
        type=EXPENSE,
        entity_id=expense.expense_id,
        description=expense.description,
        timestamp=expense.occurred_at,
        actor=directory.resolve(expense.payer_id),
        amount=expense.amount,
        category=expense.category,
        participants=[
            {**directory.resolve(s.member_id).to_dict(), "amount": s.amount}
            for s in expense.splits
        ],
    )


def _payment_item(settlement: SettlementRecord, directory: MemberDirectory) -> ActivityItem:
    payee = directory.resolve(settlement.payee_id)
    return ActivityItem(
        type=PAYMENT,
        entity_id=settlement.settlement_id,
        description=f"paid {payee.name}",
        timestamp=settlement.occurred_at,
        actor=directory.resolve(settlement.payer_id),
        amount=settlement.amount,
        category="Payment",
        counterparty=payee,
    )


def _change_item(change: MembershipChange, directory: MemberDirectory) -> ActivityItem:
    by_self = change.actor_id == change.subject_id
    if change.action == ChangeAction.MEMBER_ADDED:
        description = "joined the group" if by_self else "was added to the group"
    else:
        description = "left the group" if by_self else "was removed from the group"

    return ActivityItem(
        type=change.action.value,
        entity_id=change.log_id,
        description=description,
        timestamp=change.occurred_at,
        actor=directory.resolve(change.subject_id),
        category="Log",
        counterparty=None if by_self else directory.resolve(change.actor_id),
    )


def project_activity(
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        changes: Iterable[MembershipChange],
        active_members: Iterable[Hashable],
        profiles: Mapping[Hashable, MemberProfile],
) -> list[ActivityItem]:
    """
    Returns the merged activity feed, newest first.

    For log entries `actor` is the member the entry is about and
    `counterparty` the admin who performed the change (None when the
    member acted on themselves).
    """
    directory = MemberDirectory(active_members, profiles)

    items = [_expense_item(e, directory) for e in expenses]
    items += [_payment_item(s, directory) for s in settlements]
    items += [_change_item(c, directory) for c in changes]

    items.sort(key=ActivityItem.sort_key, reverse=True)
    return items
