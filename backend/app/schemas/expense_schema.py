"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values, decimal precision
      - SPLITS_SENT_FOR_EQUAL_MODE (400): splits array with split_mode='equal'
      - DUPLICATE_SPLIT_USER       (400): same user twice in splits
      - splits required for 'custom' and 'percentage'; each entry carries
        the field its mode needs (amount or percentage)
      - split_between only allowed with split_mode='equal'
  - services/expense_service.py:
      - SPLIT_SUM_MISMATCH (422) / PERCENTAGE_SUM_MISMATCH (422)
      - PAYER_NOT_MEMBER (422), SPLIT_USER_NOT_MEMBER (422): need the
        active membership set
      - Delete permission (FORBIDDEN, 403)

Inherits from marshmallow.Schema directly, never ma.Schema (see extensions.py).
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from backend.app.errors import ErrorCode
from backend.app.models.expense import Category, SplitMode


def _validate_monetary_amount(value: Decimal) -> None:
    """
    Strictly positive, at most 2 decimal places.

    More than 2 places is REJECTED with INVALID_AMOUNT_PRECISION, never
    rounded; the error handler maps the code string to its message.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3 → 3 dp → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_percentage(value: Decimal) -> None:
    if value <= Decimal("0") or value > Decimal("100"):
        raise ValidationError("Percentage must be greater than 0 and at most 100.")
    if value.as_tuple().exponent < -2:
        raise ValidationError("Percentage must have at most 2 decimal places.")


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


# ── Sub-schema: one entry in the `splits` array ───────────────────────────

class SplitInputSchema(Schema):
    """
    One entry of `splits`. `amount` is used by custom mode, `percentage` by
    percentage mode; CreateExpenseSchema checks the right one is present.
    """

    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    amount = fields.Decimal(
        load_default=None,
        validate=_validate_monetary_amount,
    )

    percentage = fields.Decimal(
        load_default=None,
        validate=_validate_percentage,
    )


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    Split modes:
      - 'equal' (default): no splits array. The amount is divided among
        `split_between` (default: every active member); the rounding
        remainder goes to the first participant.
      - 'custom':     splits = [{user_id, amount}], amounts sum to the total.
      - 'percentage': splits = [{user_id, percentage}], percentages sum to 100.

    `paid_by_user_id` defaults to the caller.
    """

    paid_by_user_id = fields.Int(
        load_default=None,
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    split_mode = fields.Enum(
        SplitMode,
        load_default=SplitMode.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_MODE},
    )

    category = fields.Enum(
        Category,
        load_default=Category.OTHER,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
    )

    expense_date = fields.DateTime(load_default=None)

    split_between = fields.List(
        fields.Int(strict=True, validate=validate.Range(min=1)),
        load_default=None,
    )

    splits = fields.List(
        fields.Nested(SplitInputSchema),
        load_default=None,
    )

    @validates_schema
    def validate_splits_coherence(self, data: dict, **kwargs) -> None:
        split_mode = data.get("split_mode", SplitMode.EQUAL)
        splits = data.get("splits")

        if split_mode == SplitMode.EQUAL:
            if splits is not None:
                raise ValidationError({"splits": [ErrorCode.SPLITS_SENT_FOR_EQUAL_MODE]})
            return

        if data.get("split_between") is not None:
            raise ValidationError(
                {"split_between": ["split_between is only used when split_mode is 'equal'."]}
            )

        if not splits:
            raise ValidationError(
                {"splits": [f"splits is required when split_mode is '{split_mode.value}'."]}
            )

        user_ids = [s["user_id"] for s in splits]
        if len(user_ids) != len(set(user_ids)):
            raise ValidationError({"splits": [ErrorCode.DUPLICATE_SPLIT_USER]})

        needed = "amount" if split_mode == SplitMode.CUSTOM else "percentage"
        for s in splits:
            if s.get(needed) is None:
                raise ValidationError(
                    {"splits": [f"Every split needs '{needed}' when split_mode is '{split_mode.value}'."]}
                )
