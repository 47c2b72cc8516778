"""
ledger — Pure balance/ledger computation over an in-memory snapshot.

No Flask, no SQLAlchemy, no I/O. balance_service builds a LedgerSnapshot
from the database and hands it to the functions exported here.
"""

from backend.app.ledger.activity import (
    REMOVED_USER_NAME,
    ActiveMember,
    ActivityItem,
    HistoricalOnlyMember,
    MemberDirectory,
    project_activity,
)
from backend.app.ledger.balances import NetBalance, balance_sum, compute_net_balances
from backend.app.ledger.debts import (
    SETTLED_TOLERANCE,
    DebtEntry,
    MemberDebts,
    compute_pairwise_debts,
    outstanding_debt,
)
from backend.app.ledger.membership import active_member_order, resolve_active_members
from backend.app.ledger.records import (
    ChangeAction,
    ExpenseRecord,
    LedgerSnapshot,
    MemberProfile,
    MembershipChange,
    MembershipRow,
    SettlementRecord,
    SplitRow,
)
from backend.app.ledger.splitting import compute_equal_splits, compute_percentage_splits

__all__ = [
    "REMOVED_USER_NAME",
    "SETTLED_TOLERANCE",
    "ActiveMember",
    "ActivityItem",
    "ChangeAction",
    "DebtEntry",
    "ExpenseRecord",
    "HistoricalOnlyMember",
    "LedgerSnapshot",
    "MemberDebts",
    "MemberDirectory",
    "MemberProfile",
    "MembershipChange",
    "MembershipRow",
    "NetBalance",
    "SettlementRecord",
    "SplitRow",
    "active_member_order",
    "balance_sum",
    "compute_equal_splits",
    "compute_net_balances",
    "compute_pairwise_debts",
    "compute_percentage_splits",
    "outstanding_debt",
    "project_activity",
    "resolve_active_members",
]
