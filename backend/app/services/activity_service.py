"""
services/activity_service.py — Group activity feed.

Loads the group's snapshot (including the membership-change log) and hands
it to the ledger's activity projector. The projector does the merging,
ordering and "Removed User" substitution; this module only checks access
and serialises.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from backend.app.ledger import project_activity
from backend.app.services.balance_service import active_members_of, load_snapshot, require_group_member


def get_activity(group_id: int, caller_id: int, session: Session, limit: int | None = None) -> list[dict]:
    """
    Returns the merged feed, newest first.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)
    """
    require_group_member(group_id, caller_id, session)

    snapshot = load_snapshot(group_id, session, with_changes=True)
    items = project_activity(
        snapshot.expenses,
        snapshot.settlements,
        snapshot.changes,
        active_members_of(snapshot),
        snapshot.profiles,
    )
    if limit is not None:
        items = items[:limit]
    return [item.to_dict() for item in items]
