"""
routes/invitations.py — Invitation route handlers.

Endpoints (base url_prefix=/api/v1):
  POST   /groups/:id/invitations     → 201  invite an email (admin only)
  GET    /invitations                → 200  caller's pending invitations
  POST   /invitations/:id/respond    → 200  accept or decline
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.invitation_schema import CreateInvitationSchema, RespondInvitationSchema
from backend.app.services import invitation_service

invitations_bp = Blueprint("invitations", __name__)


@invitations_bp.route("/groups/<int:group_id>/invitations", methods=["POST"])
@require_auth
def create_invitation(group_id: int):
    data = CreateInvitationSchema().load(request.get_json(force=True) or {})
    result = invitation_service.create_invitation(
        group_id=group_id,
        caller_id=g.user_id,
        email=data["email"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@invitations_bp.route("/invitations", methods=["GET"])
@require_auth
def list_invitations():
    result = invitation_service.list_pending_invitations(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@invitations_bp.route("/invitations/<int:invitation_id>/respond", methods=["POST"])
@require_auth
def respond_to_invitation(invitation_id: int):
    data = RespondInvitationSchema().load(request.get_json(force=True) or {})
    result = invitation_service.respond_to_invitation(
        invitation_id=invitation_id,
        user_id=g.user_id,
        accept=data["accept"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
