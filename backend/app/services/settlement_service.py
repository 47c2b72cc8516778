"""
services/settlement_service.py — Settlement business logic.

Rules enforced here:
  FORBIDDEN (403)             caller must be a group member
  SELF_SETTLEMENT (422)       the payer and the payee must differ
  RECIPIENT_NOT_MEMBER (422)  the payee must be an active member
  OVERPAYMENT (warning)       amount exceeds what the payer currently owes
                              the payee; recorded anyway (pre-payment)

The outstanding debt comes from the ledger engine's pairwise view, so the
warning agrees with what GET /groups/:id/balances shows.

Status is informational: pending until the payee confirms it. The ledger
counts every recorded settlement.

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

from backend.app.errors import AppError, ErrorCode, WarningCode
from backend.app.ledger import MemberDirectory
from backend.app.models.group import Group
from backend.app.models.membership import Membership
from backend.app.models.settlement import Settlement, SettlementMethod, SettlementStatus
from backend.app.services.balance_service import get_outstanding_debt, member_directory, to_utc

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


def _is_member(group_id: int, user_id: int, session: Session) -> bool:
    return session.execute(
        select(Membership.id).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none() is not None


def _require_member(group_id: int, user_id: int, session: Session) -> None:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    if not _is_member(group_id, user_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _isoformat(value: datetime | None) -> str | None:
    value = to_utc(value)
    return value.isoformat() if value else None


def serialize_settlement(settlement: Settlement, directory: MemberDirectory) -> dict:
    """Plain dict for JSON output. Amount as string."""
    return {
        "id": settlement.id,
        "group_id": settlement.group_id,
        "paid_by_user_id": settlement.paid_by_user_id,
        "paid_by_name": directory.name_of(settlement.paid_by_user_id),
        "paid_to_user_id": settlement.paid_to_user_id,
        "paid_to_name": directory.name_of(settlement.paid_to_user_id),
        "amount": str(settlement.amount),
        "method": settlement.method.value,
        "status": settlement.status.value,
        "notes": settlement.notes,
        "created_at": _isoformat(settlement.created_at),
        "confirmed_at": _isoformat(settlement.confirmed_at),
    }


# ── Public service functions ───────────────────────────────────────────────

def create_settlement(
        group_id: int,
        paid_by_id: int,
        data: dict,
        session: Session,
) -> tuple[dict, list[dict]]:
    """
    Records a payment from the caller to paid_to_user_id.

    Returns:
        (settlement dict, warnings). Example warning:
        {"code": "OVERPAYMENT", "message": "..."}
    """
    _get_group_or_404(group_id, session)
    _require_member(group_id, paid_by_id, session)

    paid_to_user_id: int = data["paid_to_user_id"]
    amount: Decimal = data["amount"]

    # The payer comes from the auth context, so this check cannot live in the schema.
    if paid_by_id == paid_to_user_id:
        raise AppError(
            ErrorCode.SELF_SETTLEMENT,
            "A settlement cannot be made to yourself.",
            422,
            field="paid_to_user_id",
        )

    if not _is_member(group_id, paid_to_user_id, session):
        raise AppError(
            ErrorCode.RECIPIENT_NOT_MEMBER,
            f"User {paid_to_user_id} is not a member of group {group_id}.",
            422,
            field="paid_to_user_id",
        )

    warnings: list[dict] = []
    current_debt = get_outstanding_debt(group_id, paid_by_id, paid_to_user_id, session)

    if amount > current_debt:
        logger.warning(
            "Overpayment in group %s: %s paid %s to %s, outstanding %s",
            group_id, paid_by_id, amount, paid_to_user_id, current_debt,
        )
        warnings.append({
            "code": WarningCode.OVERPAYMENT,
            "message": (
                f"Settlement of {amount} exceeds current outstanding debt of "
                f"{current_debt} from user {paid_by_id} to user {paid_to_user_id}. "
                f"Recording anyway; pre-payment is valid."
            ),
        })

    settlement = Settlement(
        group_id=group_id,
        paid_by_user_id=paid_by_id,
        paid_to_user_id=paid_to_user_id,
        amount=amount,
        method=data.get("method", SettlementMethod.CASH),
        notes=data.get("notes"),
        status=SettlementStatus.PENDING,
    )
    session.add(settlement)
    session.flush()
    session.refresh(settlement)

    return serialize_settlement(settlement, member_directory(group_id, session)), warnings


def list_settlements(group_id: int, caller_id: int, session: Session) -> list[dict]:
    """Returns all settlements for a group, newest first."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
    )
    settlements = session.execute(stmt).scalars().all()

    directory = member_directory(group_id, session)
    return [serialize_settlement(s, directory) for s in settlements]


def confirm_settlement(settlement_id: int, caller_id: int, session: Session) -> dict:
    """
    Marks a settlement as received. Only the payee may confirm.

    Raises:
        AppError(SETTLEMENT_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)                     caller is not the payee
        AppError(SETTLEMENT_ALREADY_CONFIRMED, 409)
    """
    settlement = session.get(Settlement, settlement_id)
    if settlement is None:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"Settlement {settlement_id} does not exist.",
            404,
        )

    if caller_id != settlement.paid_to_user_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the recipient may confirm a settlement.",
            403,
        )

    if settlement.status == SettlementStatus.CONFIRMED:
        raise AppError(
            ErrorCode.SETTLEMENT_ALREADY_CONFIRMED,
            f"Settlement {settlement_id} is already confirmed.",
            409,
        )

    settlement.status = SettlementStatus.CONFIRMED
    settlement.confirmed_at = datetime.now(timezone.utc)
    session.flush()

    return serialize_settlement(settlement, member_directory(settlement.group_id, session))
