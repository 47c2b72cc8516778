"""
services/balance_service.py — Ledger snapshot loading and balance responses.

This file is the only bridge between the database and the ledger engine
(backend/app/ledger). It reads one group's rows, turns them into a
LedgerSnapshot, and shapes the engine's results for the HTTP layer. The
balance math itself lives in the engine and must not be reimplemented here.

Layer rules:
  - No Flask imports. Receives group_id and a SQLAlchemy Session.
  - Returns plain Python dicts and lists.

Soft-deleted expenses:
  - get_active_expenses() ALWAYS filters WHERE deleted_at IS NULL, and the
    split query joins through the same filter. Deleted expenses never reach
    the engine.

Consistency:
  - All row sets of a snapshot are read through the same session, inside
    the request's transaction. A removal committed before the read is seen
    by every part of the snapshot.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger import (
    LedgerSnapshot,
    MemberDirectory,
    MemberProfile,
    MembershipChange,
    MembershipRow,
    SettlementRecord,
    SplitRow,
    active_member_order,
    balance_sum,
    compute_net_balances,
    compute_pairwise_debts,
    outstanding_debt,
)
from backend.app.models.activity_log import ActivityLog
from backend.app.models.expense import Expense
from backend.app.models.group import Group
from backend.app.models.membership import Membership
from backend.app.models.settlement import Settlement
from backend.app.models.split import Split
from backend.app.models.user import User

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def to_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Data access helpers ────────────────────────────────────────────────────

def get_active_expenses(group_id: int, session: Session) -> list[Expense]:
    """Returns expenses for a group WHERE deleted_at IS NULL."""
    stmt = (
        select(Expense)
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_splits_for_active_expenses(group_id: int, session: Session) -> list[Split]:
    """Returns splits belonging to active (non-deleted) expenses in a group."""
    stmt = (
        select(Split)
        .join(Expense, Split.expense_id == Expense.id)
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .order_by(Split.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_settlements(group_id: int, session: Session) -> list[Settlement]:
    """Returns all settlements for a group, whatever their status."""
    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_memberships(group_id: int, session: Session) -> list[Membership]:
    """Returns current membership rows in join order."""
    stmt = (
        select(Membership)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_membership_changes(group_id: int, session: Session) -> list[ActivityLog]:
    stmt = (
        select(ActivityLog)
        .where(ActivityLog.group_id == group_id)
        .order_by(ActivityLog.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_members(group_id: int, session: Session) -> list[User]:
    """Returns full User objects for all current group members."""
    stmt = (
        select(User)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
    )
    return list(session.execute(stmt).scalars().all())


def member_directory(group_id: int, session: Session) -> MemberDirectory:
    """Resolver for the group's current members; everyone else is a Removed User."""
    profiles = {
        u.id: MemberProfile(member_id=u.id, name=u.name, avatar_url=u.avatar_url)
        for u in get_members(group_id, session)
    }
    return MemberDirectory(profiles.keys(), profiles)


def _get_group_or_404(group_id: int, session: Session) -> Group:
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def require_group_member(group_id: int, user_id: int, session: Session) -> None:
    """Raises GROUP_NOT_FOUND (404) or FORBIDDEN (403)."""
    _get_group_or_404(group_id, session)
    membership = session.execute(
        select(Membership.id).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()
    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


# ── Snapshot ───────────────────────────────────────────────────────────────

def load_snapshot(group_id: int, session: Session, with_changes: bool = False) -> LedgerSnapshot:
    """
    Reads every row set the engine needs for one group.

    Membership-change log entries are only loaded for the activity feed
    (with_changes=True); balances do not need them.
    """
    memberships = [
        MembershipRow(group_id=m.group_id, member_id=m.user_id, role=m.role.value)
        for m in get_memberships(group_id, session)
    ]

    expense_rows = [
        {
            "expense_id": e.id,
            "group_id": e.group_id,
            "payer_id": e.paid_by_user_id,
            "amount": e.amount,
            "occurred_at": to_utc(e.expense_date),
            "description": e.description,
            "category": e.category.value,
        }
        for e in get_active_expenses(group_id, session)
    ]

    split_rows = [
        SplitRow(expense_id=s.expense_id, member_id=s.user_id, amount=s.amount)
        for s in get_splits_for_active_expenses(group_id, session)
    ]

    settlements = [
        SettlementRecord(
            settlement_id=s.id,
            group_id=s.group_id,
            payer_id=s.paid_by_user_id,
            payee_id=s.paid_to_user_id,
            amount=s.amount,
            occurred_at=to_utc(s.created_at),
        )
        for s in get_settlements(group_id, session)
    ]

    changes = []
    if with_changes:
        changes = [
            MembershipChange(
                log_id=c.id,
                group_id=c.group_id,
                action=c.action,
                subject_id=c.subject_user_id,
                actor_id=c.actor_user_id,
                occurred_at=to_utc(c.created_at),
            )
            for c in get_membership_changes(group_id, session)
        ]

    # Profiles are only needed for active members; everyone else renders
    # as "Removed User".
    profiles = [
        MemberProfile(member_id=u.id, name=u.name, avatar_url=u.avatar_url)
        for u in get_members(group_id, session)
    ]

    snapshot = LedgerSnapshot.from_rows(
        group_id,
        memberships,
        expense_rows,
        split_rows,
        settlements=settlements,
        changes=changes,
        profiles=profiles,
    )
    logger.debug(
        "Loaded snapshot for group %s: %d members, %d expenses, %d settlements",
        group_id, len(memberships), len(expense_rows), len(settlements),
    )
    return snapshot


def active_members_of(snapshot: LedgerSnapshot) -> list:
    return active_member_order(snapshot.group_id, snapshot.memberships)


# ── Public service functions ───────────────────────────────────────────────

def get_member_net_balance(group_id: int, user_id: int, session: Session) -> Decimal:
    """The member's own net balance; 0.00 if they are not an active member."""
    snapshot = load_snapshot(group_id, session)
    balances = compute_net_balances(
        snapshot.expenses, snapshot.settlements, active_members_of(snapshot)
    )
    return next((b.amount for b in balances if b.member_id == user_id), ZERO)


def get_outstanding_debt(group_id: int, debtor_id: int, creditor_id: int, session: Session) -> Decimal:
    """What debtor currently owes creditor in this group (0.00 if nothing)."""
    snapshot = load_snapshot(group_id, session)
    return outstanding_debt(
        snapshot.expenses,
        snapshot.settlements,
        active_members_of(snapshot),
        debtor_id,
        creditor_id,
    )


def get_balance_response(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Builds the payload for GET /groups/:id/balances.

    One entry per active member: net amount plus who they owe and who owes
    them. `net_balance` is the caller's own amount.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)       caller not a group member
        AppError(INTERNAL_ERROR, 500)  balances of active members do not sum to zero
    """
    require_group_member(group_id, caller_id, session)

    snapshot = load_snapshot(group_id, session)
    active = active_members_of(snapshot)

    balances = compute_net_balances(snapshot.expenses, snapshot.settlements, active)
    debts = {d.member_id: d for d in compute_pairwise_debts(snapshot.expenses, snapshot.settlements, active)}
    directory = MemberDirectory(active, snapshot.profiles)

    total = balance_sum(balances)
    if total != ZERO:
        # The engine guarantees a zero sum; anything else means corrupt rows.
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Balance integrity check failed: sum was {total} (expected 0.00). "
            f"Group {group_id} has inconsistent financial data.",
            500,
        )

    def _entries(entries):
        return [
            {
                "user_id": e.member_id,
                "name": directory.name_of(e.member_id),
                "amount": str(e.amount),
            }
            for e in entries
        ]

    balance_list = []
    for b in balances:
        member = directory.resolve(b.member_id)
        member_debts = debts[b.member_id]
        balance_list.append({
            "user_id": b.member_id,
            "name": member.name,
            "avatar_url": member.avatar_url,
            "amount": str(b.amount),
            "owes_to": _entries(member_debts.owes_to),
            "owed_by": _entries(member_debts.owed_by),
        })

    caller_balance = next((b.amount for b in balances if b.member_id == caller_id), ZERO)

    return {
        "group_id": group_id,
        "balances": balance_list,
        "net_balance": str(caller_balance),
        "balance_sum": str(total),
    }
