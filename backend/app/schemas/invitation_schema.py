"""
schemas/invitation_schema.py — Marshmallow schemas for invitation endpoints.

Inherits from marshmallow.Schema directly, never ma.Schema (see extensions.py).
"""

from __future__ import annotations

from marshmallow import Schema, fields, post_load


class CreateInvitationSchema(Schema):
    """POST /groups/:id/invitations"""

    email = fields.Email(required=True)

    @post_load
    def normalise_email(self, data, **kwargs):
        data["email"] = data["email"].strip().lower()
        return data


class RespondInvitationSchema(Schema):
    """POST /invitations/:id/respond"""

    accept = fields.Bool(required=True)
