"""
routes/balances.py — Balance route handler.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balances  → 200  net balance and pairwise debts per active member
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balances", methods=["GET"])
@require_auth
def get_balances(group_id: int):
    """
    GET /groups/:id/balances

    Membership is checked inside balance_service.get_balance_response().
    Members who have left are not listed; what they owed or were owed is
    forgiven.
    """
    result = balance_service.get_balance_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
