"""
services/invitation_service.py — Group invitations.

An admin invites an email address. The invitation waits (pending) until
the user signed in with that email accepts it (joins the group, logged as
member_added with themselves as actor) or declines it. Nothing is sent;
delivery is up to the client.

Layer rules:
  - No Flask imports.
  - Commits are the route's responsibility; only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.group import Group
from backend.app.models.invitation import Invitation, InvitationStatus
from backend.app.models.membership import Membership
from backend.app.models.user import User
from backend.app.services.group_service import join_group

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


def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return user


def _build_invitation_dict(invitation: Invitation) -> dict:
    return {
        "id": invitation.id,
        "group_id": invitation.group_id,
        "group_name": invitation.group.name if invitation.group else None,
        "email": invitation.email,
        "invited_by_user_id": invitation.invited_by_user_id,
        "invited_by_name": invitation.inviter.name if invitation.inviter else None,
        "status": invitation.status.value,
        "created_at": invitation.created_at.isoformat() if invitation.created_at else None,
        "responded_at": invitation.responded_at.isoformat() if invitation.responded_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def create_invitation(group_id: int, caller_id: int, email: str, session: Session) -> dict:
    """
    Creates a pending invitation. Admins only.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)        caller is not an admin
        AppError(ALREADY_MEMBER, 409)   the email belongs to a current member
    """
    _get_group_or_404(group_id, session)

    caller = session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == caller_id,
        )
    ).scalar_one_or_none()
    if caller is None or not caller.is_admin:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Access denied: Only admins can invite members.",
            403,
        )

    already_member = session.execute(
        select(Membership.id)
        .join(User, User.id == Membership.user_id)
        .where(Membership.group_id == group_id, User.email == email)
    ).scalar_one_or_none()
    if already_member is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"'{email}' is already a member of group {group_id}.",
            409,
            field="email",
        )

    # Re-inviting refreshes an existing pending invitation instead of duplicating it.
    invitation = session.execute(
        select(Invitation).where(
            Invitation.group_id == group_id,
            Invitation.email == email,
            Invitation.status == InvitationStatus.PENDING,
        )
    ).scalar_one_or_none()

    if invitation is None:
        invitation = Invitation(
            group_id=group_id,
            email=email,
            invited_by_user_id=caller_id,
            status=InvitationStatus.PENDING,
        )
        session.add(invitation)
        session.flush()
        session.refresh(invitation)
        logger.info("User %s invited %s to group %s", caller_id, email, group_id)

    return _build_invitation_dict(invitation)


def list_pending_invitations(user_id: int, session: Session) -> list[dict]:
    """Pending invitations addressed to the user's email, newest first."""
    user = _get_user_or_404(user_id, session)
    if not user.email:
        return []

    stmt = (
        select(Invitation)
        .where(
            Invitation.email == user.email,
            Invitation.status == InvitationStatus.PENDING,
        )
        .order_by(Invitation.created_at.desc(), Invitation.id.desc())
    )
    return [_build_invitation_dict(i) for i in session.execute(stmt).scalars().all()]


def respond_to_invitation(invitation_id: int, user_id: int, accept: bool, session: Session) -> dict:
    """
    Accepts or declines an invitation addressed to the caller.

    Raises:
        AppError(INVITATION_NOT_FOUND, 404)  missing, or addressed to someone else
        AppError(INVITATION_CLOSED, 409)     already accepted or declined
        AppError(ALREADY_MEMBER, 409)        accepting while already a member
    """
    user = _get_user_or_404(user_id, session)
    invitation = session.get(Invitation, invitation_id)

    # Other people's invitations are reported as missing, not forbidden.
    if invitation is None or not user.email or invitation.email != user.email:
        raise AppError(
            ErrorCode.INVITATION_NOT_FOUND,
            f"Invitation {invitation_id} does not exist.",
            404,
        )

    if invitation.status != InvitationStatus.PENDING:
        raise AppError(
            ErrorCode.INVITATION_CLOSED,
            f"Invitation {invitation_id} has already been {invitation.status.value}.",
            409,
        )

    if accept:
        join_group(invitation.group_id, user_id, user_id, session)
        invitation.status = InvitationStatus.ACCEPTED
    else:
        invitation.status = InvitationStatus.DECLINED
    invitation.responded_at = datetime.now(timezone.utc)
    session.flush()

    logger.info(
        "User %s %s invitation %s", user_id, invitation.status.value, invitation_id,
    )
    return _build_invitation_dict(invitation)
