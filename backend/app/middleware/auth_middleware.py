"""
middleware/auth_middleware.py — Bearer token authentication decorator.

Sign-in happens at an external identity provider, which issues an HS256 JWT
signed with JWT_SECRET_KEY. The @require_auth decorator:

  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Verifies signature, expiry and (when JWT_AUDIENCE is set) audience
  3. Syncs the local user row from the claims (sub, name, email, picture)
  4. Attaches the local user id (int) to flask.g.user_id

Authentication only (401). Group-level authorization (403) is the service
layer's job; services receive user_id as a plain int.

Error codes:
  TOKEN_MISSING  (401) no Authorization header
  TOKEN_INVALID  (401) malformed header, bad signature, bad claims
  TOKEN_EXPIRED  (401) exp claim in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.services import auth_service


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces bearer token authentication.

    Usage:
        @groups_bp.get("")
        @require_auth
        def list_groups():
            user_id = g.user_id
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """Runs the full authentication sequence and sets flask.g.user_id."""
    claims = decode_bearer_token(request.headers.get("Authorization", ""))

    user, changed = auth_service.sync_user(claims, db.session)
    if changed:
        # The sync must survive even if the view itself fails later.
        db.session.commit()

    g.user_id = user.id


def decode_bearer_token(auth_header: str) -> dict:
    """Validates the header and returns the verified JWT claims."""
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    audience = current_app.config.get("JWT_AUDIENCE")
    try:
        claims = jwt.decode(
            parts[1],
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            audience=audience,
            options={"verify_aud": audience is not None, "require": ["sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Sign in again to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid subject.",
            401,
        )

    return claims
