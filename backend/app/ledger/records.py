"""
ledger/records.py — Immutable value objects consumed by the ledger engine.

The engine never touches the database. A collaborator (balance_service)
fetches rows inside one transaction and converts them into these records;
the engine only reads them and returns new value objects.

Money rules:
  - Every amount is a Decimal. Floats are rejected outright: a float that
    reaches the engine has already lost precision somewhere upstream.
  - Negative amounts are rejected. Zero is allowed (a zero split is a
    harmless no-op for the math).

Input-shape failures raise AppError(LEDGER_INPUT_INVALID, 500): they are
integration bugs, never user-facing validation errors.
"""

from __future__ import annotations

import enum
from collections import defaultdict
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from backend.app.errors import AppError, ErrorCode


ZERO = Decimal("0.00")


class ChangeAction(str, enum.Enum):
    MEMBER_ADDED   = "member_added"
    MEMBER_REMOVED = "member_removed"


def _invalid(message: str) -> AppError:
    return AppError(ErrorCode.LEDGER_INPUT_INVALID, message, 500)


def to_amount(value, what: str = "amount") -> Decimal:
    """
    Coerces a row value into a non-negative Decimal.

    Accepts Decimal, int and numeric strings ("12.50"). Rejects float,
    non-numeric strings, NaN/Infinity and negative values.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise _invalid(f"{what} must be an exact decimal, got {type(value).__name__}.")

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise _invalid(f"{what} {value!r} is not a valid decimal amount.")

    if not amount.is_finite():
        raise _invalid(f"{what} {value!r} is not a finite amount.")
    if amount < 0:
        raise _invalid(f"{what} must not be negative, got {amount}.")
    return amount


# ── Records ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MemberProfile:
    member_id: Hashable
    name: str
    avatar_url: str | None = None


@dataclass(frozen=True)
class MembershipRow:
    group_id: Hashable
    member_id: Hashable
    role: str = "member"


@dataclass(frozen=True)
class SplitRow:
    expense_id: Hashable
    member_id: Hashable
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_amount(self.amount, "split amount"))


@dataclass(frozen=True)
class ExpenseRecord:
    expense_id: Hashable
    group_id: Hashable
    payer_id: Hashable
    amount: Decimal
    splits: tuple[SplitRow, ...]
    occurred_at: datetime | None = None
    description: str = ""
    category: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_amount(self.amount, "expense amount"))
        object.__setattr__(self, "splits", tuple(self.splits))

        if not self.splits:
            raise _invalid(f"Expense {self.expense_id} has no splits.")

        seen: set = set()
        for split in self.splits:
            if split.expense_id != self.expense_id:
                raise _invalid(
                    f"Split for expense {split.expense_id} attached to expense {self.expense_id}."
                )
            if split.member_id in seen:
                raise _invalid(
                    f"Member {split.member_id} has more than one split in expense {self.expense_id}."
                )
            seen.add(split.member_id)

    def split_for(self, member_id: Hashable) -> SplitRow | None:
        return next((s for s in self.splits if s.member_id == member_id), None)


@dataclass(frozen=True)
class SettlementRecord:
    settlement_id: Hashable
    group_id: Hashable
    payer_id: Hashable
    payee_id: Hashable
    amount: Decimal
    occurred_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_amount(self.amount, "settlement amount"))


@dataclass(frozen=True)
class MembershipChange:
    log_id: Hashable
    group_id: Hashable
    action: ChangeAction
    subject_id: Hashable
    actor_id: Hashable
    occurred_at: datetime | None = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "action", ChangeAction(self.action))
        except ValueError:
            raise _invalid(f"Unknown membership change action {self.action!r}.")


# ── Snapshot ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LedgerSnapshot:
    """Everything the engine needs for one group, fetched in one consistent read."""

    group_id: Hashable
    memberships: tuple[MembershipRow, ...] = ()
    expenses: tuple[ExpenseRecord, ...] = ()
    settlements: tuple[SettlementRecord, ...] = ()
    changes: tuple[MembershipChange, ...] = ()
    profiles: Mapping[Hashable, MemberProfile] = field(default_factory=dict)

    @classmethod
    def from_rows(
            cls,
            group_id: Hashable,
            memberships: Iterable[MembershipRow],
            expense_rows: Iterable[Mapping],
            split_rows: Iterable[SplitRow],
            settlements: Iterable[SettlementRecord] = (),
            changes: Iterable[MembershipChange] = (),
            profiles: Iterable[MemberProfile] = (),
    ) -> "LedgerSnapshot":
        """
        Assembles a snapshot from flat rows, attaching splits to expenses.

        expense_rows are mappings with the ExpenseRecord fields except
        `splits`. Raises LEDGER_INPUT_INVALID when a split references an
        expense that is not in expense_rows.
        """
        grouped: dict = defaultdict(list)
        for split in split_rows:
            grouped[split.expense_id].append(split)

        expenses = []
        for row in expense_rows:
            expense_id = row["expense_id"]
            expenses.append(ExpenseRecord(splits=tuple(grouped.pop(expense_id, ())), **row))

        if grouped:
            orphan_ids = ", ".join(str(k) for k in grouped)
            raise _invalid(f"Splits reference unknown expense(s): {orphan_ids}.")

        return cls(
            group_id=group_id,
            memberships=tuple(memberships),
            expenses=tuple(expenses),
            settlements=tuple(settlements),
            changes=tuple(changes),
            profiles={p.member_id: p for p in profiles},
        )
