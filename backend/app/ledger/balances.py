"""
ledger/balances.py — Net balance calculator.

net = paid - owed, per active member.

  paid  credited to an ACTIVE payer: the sum of that expense's splits whose
        member is also active, plus every settlement they paid to an
        active member.
  owed  debited to an ACTIVE split member, only when the expense's payer is
        active, plus every settlement they received from an active member.

Consequences of filtering both sides through the active set:
  - A removed participant's share is dropped from the payer's credit
    (their debt is forgiven, not re-assigned).
  - An expense paid by a removed member has no effect at all (debt owed to
    a departed member is forgiven).
  - Because `paid` is built from the same active split rows that feed
    `owed`, the balances of the active members always sum to zero.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from decimal import Decimal

from backend.app.ledger.membership import ordered_members
from backend.app.ledger.records import ZERO, ExpenseRecord, SettlementRecord


@dataclass(frozen=True)
class NetBalance:
    member_id: Hashable
    amount: Decimal


def _tally(
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        active: frozenset,
) -> tuple[dict, dict]:
    paid = {m: ZERO for m in active}
    owed = {m: ZERO for m in active}

    for expense in expenses:
        if expense.payer_id not in active:
            continue
        for split in expense.splits:
            if split.member_id not in active:
                continue
            paid[expense.payer_id] += split.amount
            owed[split.member_id] += split.amount

    for settlement in settlements:
        if settlement.payer_id in active and settlement.payee_id in active:
            paid[settlement.payer_id] += settlement.amount
            owed[settlement.payee_id] += settlement.amount

    return paid, owed


def compute_net_balances(
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        active_members: Iterable[Hashable],
) -> list[NetBalance]:
    """
    Returns one NetBalance per active member.

    Positive: the group owes this member. Negative: this member owes the
    group. Members with no activity appear with 0.00.
    """
    order = ordered_members(active_members)
    active = frozenset(order)
    paid, owed = _tally(expenses, settlements, active)

    return [NetBalance(member_id=m, amount=paid[m] - owed[m]) for m in order]


def balance_sum(balances: Iterable[NetBalance]) -> Decimal:
    return sum((b.amount for b in balances), ZERO)
