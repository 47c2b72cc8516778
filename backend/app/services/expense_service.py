"""
services/expense_service.py — Expense business logic.

Rules enforced here:
  SPLIT_SUM_MISMATCH (422)       custom split amounts must equal the total
  PERCENTAGE_SUM_MISMATCH (422)  percentages must total 100
  NO_PARTICIPANTS (422)          an equal split needs at least one member
  PAYER_NOT_MEMBER (422)         the payer must be an active member
  SPLIT_USER_NOT_MEMBER (422)    every participant must be an active member
  FORBIDDEN (403)                caller must be a group member; deleting
                                 needs the payer or a group admin

Share computation lives in backend.app.ledger.splitting: equal shares round
down to the cent and the remainder goes to the first participant.

Expense rows are never edited. Deleting sets deleted_at; the splits stay
for audit and the ledger no longer sees the expense.

Responses resolve every member reference through the ledger's
MemberDirectory, so payers and participants who have left the group are
shown as "Removed User" while their ids are kept.

Layer rules:
  - No Flask imports.
  - Commits are the route's responsibility; only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger import MemberDirectory, compute_equal_splits, compute_percentage_splits
from backend.app.models.expense import Category, Expense, SplitMode
from backend.app.models.group import Group
from backend.app.models.membership import Membership, Role
from backend.app.models.split import Split
from backend.app.services.balance_service import member_directory, to_utc

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session) -> Group:
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _get_expense_or_404(expense_id: int, session: Session) -> Expense:
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def _require_member(group_id: int, user_id: int, session: Session) -> Membership:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    membership = session.execute(
        select(Membership).where(
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
    return membership


def _get_member_ids(group_id: int, session: Session) -> list[int]:
    """Active member ids in join order."""
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def _validate_payer_is_member(payer_id: int, group_id: int, member_ids: list[int]) -> None:
    if payer_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {payer_id} is not a member of group {group_id}.",
            422,
            field="paid_by_user_id",
        )


def _validate_split_users_are_members(
        user_ids: list[int],
        group_id: int,
        member_ids: list[int],
        field: str = "splits",
) -> None:
    for uid in user_ids:
        if uid not in member_ids:
            raise AppError(
                ErrorCode.SPLIT_USER_NOT_MEMBER,
                f"User {uid} in {field} is not a member of group {group_id}.",
                422,
                field=field,
            )


def _validate_split_sum(splits: list[dict], expected_amount: Decimal) -> None:
    """Raises SPLIT_SUM_MISMATCH (422) unless the amounts add up exactly."""
    total = sum((s["amount"] for s in splits), Decimal("0"))
    if total != expected_amount:
        raise AppError(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Split amounts ({total}) do not equal expense amount ({expected_amount}).",
            422,
            field="splits",
        )


def _compute_splits(data: dict, group_id: int, member_ids: list[int]) -> list[dict]:
    """Returns [{"user_id", "amount"}] for the requested split mode."""
    amount: Decimal = data["amount"]
    split_mode: SplitMode = data.get("split_mode", SplitMode.EQUAL)

    if split_mode == SplitMode.EQUAL:
        participants = data.get("split_between")
        if participants is None:
            participants = member_ids
        else:
            _validate_split_users_are_members(participants, group_id, member_ids, "split_between")
        return compute_equal_splits(amount, participants)

    raw_splits = data.get("splits") or []
    _validate_split_users_are_members([s["user_id"] for s in raw_splits], group_id, member_ids)

    if split_mode == SplitMode.PERCENTAGE:
        return compute_percentage_splits(amount, raw_splits)

    _validate_split_sum(raw_splits, amount)
    return [{"user_id": s["user_id"], "amount": s["amount"]} for s in raw_splits]


def _isoformat(value: datetime | None) -> str | None:
    value = to_utc(value)
    return value.isoformat() if value else None


def serialize_expense(expense: Expense, directory: MemberDirectory) -> dict:
    """Plain dict for JSON output. Amounts as strings."""
    payer = directory.resolve(expense.paid_by_user_id)
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "paid_by_user_id": expense.paid_by_user_id,
        "paid_by_name": payer.name,
        "paid_by_avatar_url": payer.avatar_url,
        "description": expense.description,
        "amount": str(expense.amount),
        "split_mode": expense.split_mode.value,
        "category": expense.category.value,
        "expense_date": _isoformat(expense.expense_date),
        "created_at": _isoformat(expense.created_at),
        "deleted_at": _isoformat(expense.deleted_at),
        "splits": [
            {
                "id": s.id,
                "user_id": s.user_id,
                "name": directory.name_of(s.user_id),
                "amount": str(s.amount),
            }
            for s in expense.splits
        ],
    }


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> dict:
    """
    Records a new expense with its split rows.

    Args:
        data: validated dict from CreateExpenseSchema.

    Raises:
        AppError(GROUP_NOT_FOUND, 404), AppError(FORBIDDEN, 403), and the
        split validation errors listed in the module docstring.
    """
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    paid_by_user_id: int = data.get("paid_by_user_id") or caller_id
    member_ids = _get_member_ids(group_id, session)
    _validate_payer_is_member(paid_by_user_id, group_id, member_ids)

    splits_data = _compute_splits(data, group_id, member_ids)

    expense = Expense(
        group_id=group_id,
        paid_by_user_id=paid_by_user_id,
        description=data["description"].strip(),
        amount=data["amount"],
        split_mode=data.get("split_mode", SplitMode.EQUAL),
        category=data.get("category", Category.OTHER),
    )
    if data.get("expense_date") is not None:
        expense.expense_date = to_utc(data["expense_date"])
    session.add(expense)
    session.flush()  # populate expense.id before creating splits

    for s in splits_data:
        session.add(Split(expense_id=expense.id, user_id=s["user_id"], amount=s["amount"]))
    session.flush()
    session.refresh(expense)

    logger.info(
        "Expense %s created in group %s: %s split %s ways",
        expense.id, group_id, expense.amount, len(splits_data),
    )
    return serialize_expense(expense, member_directory(group_id, session))


def list_expenses(group_id: int, caller_id: int, session: Session) -> list[dict]:
    """Returns active (non-deleted) expenses, newest first."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    stmt = (
        select(Expense)
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
    )
    expenses = session.execute(stmt).scalars().all()

    directory = member_directory(group_id, session)
    return [serialize_expense(e, directory) for e in expenses]


def get_expense(expense_id: int, caller_id: int, session: Session) -> dict:
    """
    Returns a single expense including its splits.

    Soft-deleted expenses are still returned; deleted_at tells the client.
    """
    expense = _get_expense_or_404(expense_id, session)
    _require_member(expense.group_id, caller_id, session)
    return serialize_expense(expense, member_directory(expense.group_id, session))


def delete_expense(expense_id: int, caller_id: int, session: Session) -> None:
    """
    Soft-deletes an expense by setting deleted_at.

    Only the payer or a group admin may delete. Re-deleting is a no-op.

    Raises:
        AppError(EXPENSE_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)
    """
    expense = _get_expense_or_404(expense_id, session)
    membership = _require_member(expense.group_id, caller_id, session)

    is_payer = caller_id == expense.paid_by_user_id
    if not (is_payer or membership.role == Role.ADMIN):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the payer or a group admin may delete this expense.",
            403,
        )

    if not expense.is_deleted:
        expense.deleted_at = datetime.now(timezone.utc)
        session.flush()
        logger.info("Expense %s deleted by %s", expense_id, caller_id)
