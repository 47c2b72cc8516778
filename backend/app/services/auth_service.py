"""
services/auth_service.py — Local user records for externally authenticated callers.

Passwords and token issuance live at the identity provider. This service
only mirrors the verified claims into the users table:

  sub      → users.auth_subject (stable key)
  name     → users.name (falls back to given_name + family_name, then the
             local part of the email)
  email    → users.email (lower-cased)
  picture  → users.avatar_url

Ghost claiming: when a caller signs in for the first time and a row with
the same email has no auth_subject (a ghost member created by an admin, or
a seeded user), that row is claimed instead of creating a new one. The id
is kept, so every expense and split already recorded for the ghost now
belongs to the account.

Layer rules:
  - No imports from routes or schemas; no flask.request / flask.g.
  - Never commits. The middleware commits when sync_user reports a change.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.user import User

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _display_name(claims: dict, email: str | None) -> str:
    name = (claims.get("name") or "").strip()
    if name:
        return name[:100]

    parts = [claims.get("given_name"), claims.get("family_name")]
    joined = " ".join(p.strip() for p in parts if p and p.strip())
    if joined:
        return joined[:100]

    if email:
        return email.split("@", 1)[0][:100]
    return "User"


def _normalise_email(raw) -> str | None:
    if not raw or not isinstance(raw, str):
        return None
    email = raw.strip().lower()
    return email if "@" in email else None


def _apply_profile(user: User, name: str, email: str | None, avatar_url: str | None) -> bool:
    """Copies claim values onto the row; returns True when anything changed."""
    changed = False
    for attr, value in (("name", name), ("email", email), ("avatar_url", avatar_url)):
        if value is not None and getattr(user, attr) != value:
            setattr(user, attr, value)
            changed = True
    return changed


def build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatar_url": user.avatar_url,
        "is_ghost": user.is_ghost,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def sync_user(claims: dict, session: Session) -> tuple[User, bool]:
    """
    Finds or creates the local user for verified token claims.

    Returns (user, changed). `changed` is True when a row was inserted or
    updated and the caller must commit.

    Raises:
      AppError(DUPLICATE_EMAIL, 409): the email already belongs to a
        different signed-in account.
    """
    subject = claims["sub"]
    email = _normalise_email(claims.get("email"))
    name = _display_name(claims, email)
    avatar_url = claims.get("picture") or None

    user = session.execute(
        select(User).where(User.auth_subject == subject)
    ).scalar_one_or_none()

    if user is not None:
        if email is not None and email != user.email:
            _ensure_email_free(email, user.id, session)
        changed = _apply_profile(user, name, email, avatar_url)
        if changed:
            session.flush()
        return user, changed

    if email is not None:
        existing = session.execute(
            select(User).where(User.email == email)
        ).scalar_one_or_none()

        if existing is not None:
            if existing.auth_subject is not None:
                raise AppError(
                    ErrorCode.DUPLICATE_EMAIL,
                    f"The email address '{email}' is linked to another account.",
                    409,
                    field="email",
                )
            existing.auth_subject = subject
            existing.is_ghost = False
            _apply_profile(existing, name, email, avatar_url)
            session.flush()
            logger.info("User %s claimed by subject %s", existing.id, subject)
            return existing, True

    user = User(
        auth_subject=subject,
        name=name,
        email=email,
        avatar_url=avatar_url,
        is_ghost=False,
    )
    session.add(user)
    session.flush()
    logger.info("Created user %s for subject %s", user.id, subject)
    return user, True


def _ensure_email_free(email: str, user_id: int, session: Session) -> None:
    other = session.execute(
        select(User).where(User.email == email, User.id != user_id)
    ).scalar_one_or_none()
    if other is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is linked to another account.",
            409,
            field="email",
        )


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404): the row disappeared after sync.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return build_user_dict(user)
