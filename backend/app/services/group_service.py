"""
services/group_service.py — Group and membership business logic.

Membership rules:
  - The creator of a group is its first member and an admin.
  - Only admins add members: an existing user by id, or a new ghost member
    by name (optionally with the email a future account claims it by).
  - An admin may remove any non-admin member. Any member may remove
    themselves, except the last admin while other members remain.
  - Admins promote members to admin or demote other admins. The last admin
    cannot be demoted, so a sole admin hands over the role before leaving.
  - Removal deletes the membership row and nothing else. Expenses, splits
    and settlements that mention the member stay untouched; the ledger
    stops counting them and the activity feed shows "Removed User".

Every join and removal writes an activity_logs row (member_added /
member_removed) with the affected member as subject and the caller as actor.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility; only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger import ChangeAction
from backend.app.models.activity_log import ActivityLog
from backend.app.models.group import Group
from backend.app.models.membership import Membership, Role
from backend.app.models.user import User
from backend.app.services import balance_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def _require_member(group_id: int, user_id: int, session: Session) -> Membership:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    membership = _get_membership(group_id, user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )
    return membership


def _require_admin(group_id: int, user_id: int, session: Session, message: str) -> Membership:
    membership = _get_membership(group_id, user_id, session)
    if membership is None or not membership.is_admin:
        raise AppError(ErrorCode.FORBIDDEN, message, 403)
    return membership


def _count_admins(group_id: int, session: Session) -> int:
    return session.execute(
        select(func.count(Membership.id)).where(
            Membership.group_id == group_id,
            Membership.role == Role.ADMIN,
        )
    ).scalar_one()


def _count_members(group_id: int, session: Session) -> int:
    return session.execute(
        select(func.count(Membership.id)).where(Membership.group_id == group_id)
    ).scalar_one()


def _build_member_dict(user: User, membership: Membership) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatar_url": user.avatar_url,
        "is_ghost": user.is_ghost,
        "role": membership.role.value,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


def _build_group_dict(group: Group, members: list[tuple[User, Membership]]) -> dict:
    """Serialises a Group with its member list to a plain dict."""
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "created_at": group.created_at.isoformat() if group.created_at else None,
        "members": [_build_member_dict(u, m) for u, m in members],
    }


def record_membership_change(
        group_id: int,
        action: ChangeAction,
        subject_id: int,
        actor_id: int,
        session: Session,
) -> ActivityLog:
    """Appends one member_added / member_removed row to the activity log."""
    entry = ActivityLog(
        group_id=group_id,
        action=action,
        subject_user_id=subject_id,
        actor_user_id=actor_id,
    )
    session.add(entry)
    return entry


def join_group(
        group_id: int,
        user_id: int,
        actor_id: int,
        session: Session,
        role: Role = Role.MEMBER,
) -> Membership:
    """
    Creates the membership row and its member_added log entry.

    Raises ALREADY_MEMBER (409) when the row already exists.
    """
    if _get_membership(group_id, user_id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {user_id} is already a member of group {group_id}.",
            409,
        )

    membership = Membership(user_id=user_id, group_id=group_id, role=role)
    session.add(membership)
    record_membership_change(group_id, ChangeAction.MEMBER_ADDED, user_id, actor_id, session)
    session.flush()

    logger.info("User %s joined group %s (added by %s)", user_id, group_id, actor_id)
    return membership


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        name: str,
        creator_id: int,
        session: Session,
        description: str | None = None,
) -> dict:
    """Creates a group; the creator becomes its first member and an admin."""
    group = Group(name=name, description=description)
    session.add(group)
    session.flush()  # populate group.id before creating membership

    membership = join_group(group.id, creator_id, creator_id, session, role=Role.ADMIN)

    creator = session.get(User, creator_id)
    return _build_group_dict(group, [(creator, membership)] if creator else [])


def list_groups(user_id: int, session: Session) -> list[dict]:
    """
    Returns the groups the user belongs to, oldest first.

    Each entry carries the caller's role, the member count and the caller's
    own net balance in that group.
    """
    stmt = (
        select(Group, Membership)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    rows = session.execute(stmt).all()

    return [
        {
            "id": group.id,
            "name": group.name,
            "description": group.description,
            "role": membership.role.value,
            "member_count": _count_members(group.id, session),
            "net_balance": balance_service.get_member_net_balance(group.id, user_id, session),
            "created_at": group.created_at.isoformat() if group.created_at else None,
        }
        for group, membership in rows
    ]


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Returns group details with the current (active) member list.

    Caller must be a member (FORBIDDEN 403, not 404).
    """
    group = _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)

    stmt = (
        select(User, Membership)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    members = [(u, m) for u, m in session.execute(stmt).all()]

    return _build_group_dict(group, members)


def add_member(
        group_id: int,
        caller_id: int,
        session: Session,
        target_user_id: int | None = None,
        name: str | None = None,
        email: str | None = None,
) -> dict:
    """
    Adds an existing user, or creates a ghost member and adds it. Admins only.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)        caller is not an admin of the group
      AppError(USER_NOT_FOUND, 404)   target_user_id does not exist
      AppError(DUPLICATE_EMAIL, 409)  ghost email already used by another user
      AppError(ALREADY_MEMBER, 409)
    """
    _get_group_or_404(group_id, session)
    _require_admin(group_id, caller_id, session, "Access denied: Only admins can add members.")

    if target_user_id is not None:
        user = session.get(User, target_user_id)
        if user is None:
            raise AppError(
                ErrorCode.USER_NOT_FOUND,
                f"User {target_user_id} does not exist.",
                404,
            )
    else:
        user = _create_ghost(name, email, session)

    membership = join_group(group_id, user.id, caller_id, session)
    return {"group_id": group_id, **_build_member_dict(user, membership)}


def _create_ghost(name: str, email: str | None, session: Session) -> User:
    if email is not None:
        email = email.strip().lower()
        if session.execute(select(User).where(User.email == email)).scalar_one_or_none():
            raise AppError(
                ErrorCode.DUPLICATE_EMAIL,
                f"The email address '{email}' already belongs to a user. Add them by user_id.",
                409,
                field="email",
            )

    ghost = User(name=name.strip(), email=email, is_ghost=True)
    session.add(ghost)
    session.flush()
    return ghost


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> None:
    """
    Removes a member from a group by deleting their membership row.

    Authorization:
      - Any member may remove themselves (leave). The last admin may not
        leave while other members remain (LAST_ADMIN, 409).
      - Otherwise only an admin may remove, and only a non-admin
        (CANNOT_REMOVE_ADMIN, 403).

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)           caller not a member, or not an admin
      AppError(CANNOT_REMOVE_ADMIN, 403)
      AppError(LAST_ADMIN, 409)
      AppError(USER_NOT_FOUND, 404)      target is not a member of the group
    """
    _get_group_or_404(group_id, session)
    caller = _require_member(group_id, caller_id, session)
    is_self = caller_id == target_user_id

    if not is_self and not caller.is_admin:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Access denied: Only admins can remove members.",
            403,
        )

    membership = caller if is_self else _get_membership(group_id, target_user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    if not is_self and membership.is_admin:
        raise AppError(
            ErrorCode.CANNOT_REMOVE_ADMIN,
            "Access denied: Cannot remove an admin.",
            403,
        )

    if (
        is_self
        and membership.is_admin
        and _count_admins(group_id, session) == 1
        and _count_members(group_id, session) > 1
    ):
        raise AppError(
            ErrorCode.LAST_ADMIN,
            "The last admin cannot leave while other members remain.",
            409,
        )

    session.delete(membership)
    record_membership_change(
        group_id, ChangeAction.MEMBER_REMOVED, target_user_id, caller_id, session
    )
    session.flush()

    logger.info("User %s removed from group %s by %s", target_user_id, group_id, caller_id)


def set_member_role(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        role: Role,
        session: Session,
) -> dict:
    """
    Promotes a member to admin or demotes an admin to member. Admins only.

    The group always keeps at least one admin, so the last admin cannot be
    demoted. Setting the role a member already has is a no-op.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)        caller is not an admin of the group
      AppError(USER_NOT_FOUND, 404)   target is not a member of the group
      AppError(LAST_ADMIN, 409)       demoting the only admin
    """
    _get_group_or_404(group_id, session)
    _require_admin(group_id, caller_id, session, "Access denied: Only admins can change member roles.")

    membership = _get_membership(group_id, target_user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    if membership.role != role:
        if membership.is_admin and _count_admins(group_id, session) == 1:
            raise AppError(
                ErrorCode.LAST_ADMIN,
                "The last admin cannot be demoted. Promote another member first.",
                409,
            )
        membership.role = role
        session.flush()
        logger.info(
            "User %s is now %s of group %s (changed by %s)",
            target_user_id, role.value, group_id, caller_id,
        )

    user = session.get(User, target_user_id)
    return {"group_id": group_id, **_build_member_dict(user, membership)}
