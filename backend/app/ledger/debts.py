"""
ledger/debts.py — Pairwise debt resolver.

For every pair (M, N) of distinct active members:

  m_owes_n = M's splits in expenses paid by active N  - settlements M → N
  n_owes_m = N's splits in expenses paid by active M  - settlements N → M
  net      = m_owes_n - n_owes_m

  net >  0.01   M owes N `net`          (M.owes_to, N.owed_by)
  net < -0.01   N owes M `abs(net)`     (M.owed_by, N.owes_to)
  otherwise     settled, no entry in either direction

Mutual debts always net to a single direction, so a pair never appears in
both owes_to and owed_by. The tolerance only absorbs rounding residue from
split computation; amounts themselves are exact Decimals.

Cost: one pass over splits and settlements, then O(members²) pair checks.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from backend.app.ledger.membership import ordered_members
from backend.app.ledger.records import ZERO, ExpenseRecord, SettlementRecord


SETTLED_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class DebtEntry:
    member_id: Hashable
    amount: Decimal


@dataclass(frozen=True)
class MemberDebts:
    member_id: Hashable
    owes_to: list[DebtEntry] = field(default_factory=list)
    owed_by: list[DebtEntry] = field(default_factory=list)


def _directional_obligations(
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        active: frozenset,
) -> dict:
    """Returns {(debtor, creditor): gross amount} before pair netting."""
    owes: dict = defaultdict(lambda: ZERO)

    for expense in expenses:
        creditor = expense.payer_id
        if creditor not in active:
            continue
        for split in expense.splits:
            if split.member_id == creditor or split.member_id not in active:
                continue
            owes[(split.member_id, creditor)] += split.amount

    for settlement in settlements:
        if settlement.payer_id in active and settlement.payee_id in active:
            owes[(settlement.payer_id, settlement.payee_id)] -= settlement.amount

    return owes


def net_pair_debt(owes: dict, debtor: Hashable, creditor: Hashable) -> Decimal:
    """Signed amount `debtor` owes `creditor` after netting both directions."""
    return owes.get((debtor, creditor), ZERO) - owes.get((creditor, debtor), ZERO)


def compute_pairwise_debts(
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        active_members: Iterable[Hashable],
        tolerance: Decimal = SETTLED_TOLERANCE,
) -> list[MemberDebts]:
    """Returns one MemberDebts per active member, in member order."""
    order = ordered_members(active_members)
    active = frozenset(order)
    owes = _directional_obligations(expenses, settlements, active)

    results = []
    for member in order:
        debts = MemberDebts(member_id=member)
        for other in order:
            if other == member:
                continue
            net = net_pair_debt(owes, member, other)
            if net > tolerance:
                debts.owes_to.append(DebtEntry(member_id=other, amount=net))
            elif net < -tolerance:
                debts.owed_by.append(DebtEntry(member_id=other, amount=-net))
        results.append(debts)

    return results


def outstanding_debt(
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        active_members: Iterable[Hashable],
        debtor: Hashable,
        creditor: Hashable,
        tolerance: Decimal = SETTLED_TOLERANCE,
) -> Decimal:
    """
    What `debtor` currently owes `creditor`, or 0.00 when nothing is owed.
    Residues within `tolerance` count as settled, as in compute_pairwise_debts.

    Used by settlement_service for the OVERPAYMENT warning.
    """
    active = frozenset(active_members)
    if debtor not in active or creditor not in active:
        return ZERO
    net = net_pair_debt(_directional_obligations(expenses, settlements, active), debtor, creditor)
    return net if net > tolerance else ZERO
