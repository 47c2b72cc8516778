"""
routes/settlements.py — Settlement route handlers.

create_settlement returns (settlement, warnings). A non-empty warnings list
(e.g. OVERPAYMENT) goes into the envelope; the status is still 201.

Endpoints (base url_prefix=/api/v1):
  POST   /groups/:id/settlements     → 201  record a payment
  GET    /groups/:id/settlements     → 200  list a group's settlements
  POST   /settlements/:id/confirm    → 200  payee confirms receipt
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.settlement_schema import CreateSettlementSchema
from backend.app.services import settlement_service

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["POST"])
@require_auth
def create_settlement(group_id: int):
    """POST /groups/:id/settlements — The caller pays another member."""
    data = CreateSettlementSchema().load(request.get_json(force=True) or {})
    result, warnings = settlement_service.create_settlement(
        group_id=group_id,
        paid_by_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": warnings}), 201


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(group_id: int):
    """GET /groups/:id/settlements — All settlements, newest first."""
    result = settlement_service.list_settlements(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@settlements_bp.route("/settlements/<int:settlement_id>/confirm", methods=["POST"])
@require_auth
def confirm_settlement(settlement_id: int):
    """POST /settlements/:id/confirm — Recipient confirms the payment arrived."""
    result = settlement_service.confirm_settlement(
        settlement_id=settlement_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
