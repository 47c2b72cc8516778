"""
schemas/settlement_schema.py — Marshmallow schema for settlement endpoints.

Validation responsibility:
  - This file: field types, decimal precision, positive amount, method enum.
  - services/settlement_service.py:
      - SELF_SETTLEMENT (422): the payer is the caller (flask.g), which the
        schema never sees.
      - RECIPIENT_NOT_MEMBER (422), GROUP_NOT_FOUND (404): need the database.
      - OVERPAYMENT warning (201): needs the current pairwise debt.

Inherits from marshmallow.Schema directly, never ma.Schema (see extensions.py).
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from backend.app.errors import ErrorCode
from backend.app.models.settlement import SettlementMethod


# Same rule as expense_schema.py; kept local so each schema file stands alone.
def _validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class CreateSettlementSchema(Schema):
    """
    POST /groups/:id/settlements

    The caller is the payer. Overpayment is allowed; the service warns.
    """

    paid_to_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=1,
            error="paid_to_user_id must be a positive integer.",
        ),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    method = fields.Enum(
        SettlementMethod,
        load_default=SettlementMethod.CASH,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SETTLEMENT_METHOD},
    )

    notes = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )
