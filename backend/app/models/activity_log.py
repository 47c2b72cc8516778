"""
models/activity_log.py — Membership change log.

Append-only. One row per join or removal:

  action          'member_added' | 'member_removed'
  subject_user_id the member the entry is about
  actor_user_id   who did it (equal to the subject for joins by invitation
                  and for leaving)

Rows outlive the membership they describe; the activity feed renders the
subject as "Removed User" once they are no longer in the group.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db
from backend.app.ledger.records import ChangeAction


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class ActivityLog(db.Model):
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    action: Mapped[ChangeAction] = mapped_column(
        Enum(
            ChangeAction,
            name="activity_action_enum",
            native_enum=False,
            length=32,
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    subject_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    actor_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ActivityLog id={self.id} "
            f"group_id={self.group_id} "
            f"action={self.action} "
            f"subject={self.subject_user_id}>"
        )
