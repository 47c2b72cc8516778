"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim),
    and the "user_id XOR name" shape of AddMemberSchema.
  - services/group_service.py: membership/role checks, USER_NOT_FOUND,
    ALREADY_MEMBER, GROUP_NOT_FOUND (all need the database).

Inherits from marshmallow.Schema directly, never ma.Schema (see extensions.py).
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, pre_load, validate, validates_schema


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or whitespace only.

    validate.Length(min=1) alone accepts "   "; this mirrors the
    CHECK(LENGTH(TRIM(name)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateGroupSchema(Schema):
    """POST /groups"""

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=1000),
    )

    @pre_load
    def strip_strings(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            for key in ("name", "description"):
                if isinstance(data.get(key), str):
                    data[key] = data[key].strip()
        return data


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    Either an existing user (`user_id`) or a new ghost member (`name`, with
    an optional `email` the future account can claim it by). Not both.
    """

    user_id = fields.Int(
        strict=True,  # reject 1.0 and "1"
        load_default=None,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    name = fields.Str(
        load_default=None,
        validate=[
            validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    email = fields.Email(load_default=None)

    @validates_schema
    def validate_target(self, data, **kwargs):
        has_user = data.get("user_id") is not None
        has_name = data.get("name") is not None

        if has_user and (has_name or data.get("email") is not None):
            raise ValidationError(
                "Send either user_id or name/email, not both.",
                field_name="user_id",
            )
        if not has_user and not has_name:
            raise ValidationError(
                "Missing data for required field.",
                field_name="user_id",
            )


class UpdateMemberRoleSchema(Schema):
    """PATCH /groups/:id/members/:uid"""

    role = fields.Str(
        required=True,
        validate=validate.OneOf(
            ["admin", "member"],
            error="role must be one of: admin, member.",
        ),
    )
