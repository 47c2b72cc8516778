"""
Unit tests for group_service membership rules.

These tests run DB-free with mocked session/query behavior; the private
lookup helpers are patched so each rule is exercised in isolation.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger import ChangeAction
from backend.app.models.membership import Role
from backend.app.services import group_service

_PATCH_BASE = "backend.app.services.group_service"


def _membership(user_id: int, role: Role = Role.MEMBER) -> SimpleNamespace:
    return SimpleNamespace(user_id=user_id, role=role, is_admin=role == Role.ADMIN)


def test_get_group_or_404_raises_when_group_missing():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        group_service._get_group_or_404(group_id=404, session=session)

    err = exc_info.value
    assert err.code == ErrorCode.GROUP_NOT_FOUND
    assert err.http_status == 404


def test_require_member_returns_membership():
    session = MagicMock()
    membership = _membership(10)
    session.execute.return_value.scalar_one_or_none.return_value = membership

    assert group_service._require_member(group_id=1, user_id=10, session=session) is membership


def test_require_member_raises_forbidden_when_missing():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        group_service._require_member(group_id=1, user_id=999, session=session)

    err = exc_info.value
    assert err.code == ErrorCode.FORBIDDEN
    assert err.http_status == 403


# ── join_group ─────────────────────────────────────────────────────────────

@patch(f"{_PATCH_BASE}._get_membership")
def test_join_group_rejects_existing_member(mock_get_membership):
    mock_get_membership.return_value = _membership(5)

    with pytest.raises(AppError) as exc_info:
        group_service.join_group(group_id=1, user_id=5, actor_id=1, session=MagicMock())

    assert exc_info.value.code == ErrorCode.ALREADY_MEMBER
    assert exc_info.value.http_status == 409


@patch(f"{_PATCH_BASE}._get_membership")
def test_join_group_adds_membership_and_log_entry(mock_get_membership):
    mock_get_membership.return_value = None
    session = MagicMock()

    membership = group_service.join_group(group_id=1, user_id=5, actor_id=2, session=session)

    added = [call.args[0] for call in session.add.call_args_list]
    assert added[0] is membership
    assert membership.role == Role.MEMBER
    log = added[1]
    assert log.action == ChangeAction.MEMBER_ADDED
    assert log.subject_user_id == 5
    assert log.actor_user_id == 2
    session.flush.assert_called_once()


# ── add_member ─────────────────────────────────────────────────────────────

@patch(f"{_PATCH_BASE}._get_membership")
@patch(f"{_PATCH_BASE}._get_group_or_404")
def test_add_member_requires_admin(mock_get_group, mock_get_membership):
    mock_get_membership.return_value = _membership(2, Role.MEMBER)

    with pytest.raises(AppError) as exc_info:
        group_service.add_member(group_id=1, caller_id=2, session=MagicMock(), target_user_id=3)

    err = exc_info.value
    assert err.code == ErrorCode.FORBIDDEN
    assert err.message == "Access denied: Only admins can add members."


@patch(f"{_PATCH_BASE}._get_membership")
@patch(f"{_PATCH_BASE}._get_group_or_404")
def test_add_member_unknown_user_is_404(mock_get_group, mock_get_membership):
    mock_get_membership.return_value = _membership(1, Role.ADMIN)
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        group_service.add_member(group_id=1, caller_id=1, session=session, target_user_id=77)

    assert exc_info.value.code == ErrorCode.USER_NOT_FOUND


def test_create_ghost_rejects_taken_email():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = SimpleNamespace(id=9)

    with pytest.raises(AppError) as exc_info:
        group_service._create_ghost("Dana", " Dana@Example.com ", session)

    err = exc_info.value
    assert err.code == ErrorCode.DUPLICATE_EMAIL
    assert err.field == "email"
    assert "dana@example.com" in err.message


def test_create_ghost_builds_ghost_user():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    ghost = group_service._create_ghost("  Dana ", None, session)

    assert ghost.name == "Dana"
    assert ghost.is_ghost is True
    assert ghost.email is None
    session.add.assert_called_once_with(ghost)


# ── remove_member ──────────────────────────────────────────────────────────

@patch(f"{_PATCH_BASE}._count_members")
@patch(f"{_PATCH_BASE}._count_admins")
@patch(f"{_PATCH_BASE}._get_membership")
@patch(f"{_PATCH_BASE}._require_member")
@patch(f"{_PATCH_BASE}._get_group_or_404")
class TestRemoveMember:

    def test_non_admin_cannot_remove_others(
        self, mock_group, mock_require_member, mock_get_membership, mock_admins, mock_members,
    ):
        mock_require_member.return_value = _membership(2, Role.MEMBER)

        with pytest.raises(AppError) as exc_info:
            group_service.remove_member(1, caller_id=2, target_user_id=3, session=MagicMock())

        err = exc_info.value
        assert err.code == ErrorCode.FORBIDDEN
        assert err.http_status == 403
        assert err.message == "Access denied: Only admins can remove members."

    def test_admin_cannot_remove_another_admin(
        self, mock_group, mock_require_member, mock_get_membership, mock_admins, mock_members,
    ):
        mock_require_member.return_value = _membership(1, Role.ADMIN)
        mock_get_membership.return_value = _membership(4, Role.ADMIN)

        with pytest.raises(AppError) as exc_info:
            group_service.remove_member(1, caller_id=1, target_user_id=4, session=MagicMock())

        err = exc_info.value
        assert err.code == ErrorCode.CANNOT_REMOVE_ADMIN
        assert err.http_status == 403
        assert err.message == "Access denied: Cannot remove an admin."

    def test_target_not_in_group_is_404(
        self, mock_group, mock_require_member, mock_get_membership, mock_admins, mock_members,
    ):
        mock_require_member.return_value = _membership(1, Role.ADMIN)
        mock_get_membership.return_value = None

        with pytest.raises(AppError) as exc_info:
            group_service.remove_member(1, caller_id=1, target_user_id=8, session=MagicMock())

        assert exc_info.value.code == ErrorCode.USER_NOT_FOUND

    def test_last_admin_cannot_leave_while_others_remain(
        self, mock_group, mock_require_member, mock_get_membership, mock_admins, mock_members,
    ):
        mock_require_member.return_value = _membership(1, Role.ADMIN)
        mock_admins.return_value = 1
        mock_members.return_value = 3

        with pytest.raises(AppError) as exc_info:
            group_service.remove_member(1, caller_id=1, target_user_id=1, session=MagicMock())

        assert exc_info.value.code == ErrorCode.LAST_ADMIN
        assert exc_info.value.http_status == 409

    def test_sole_member_admin_may_leave(
        self, mock_group, mock_require_member, mock_get_membership, mock_admins, mock_members,
    ):
        own = _membership(1, Role.ADMIN)
        mock_require_member.return_value = own
        mock_admins.return_value = 1
        mock_members.return_value = 1
        session = MagicMock()

        group_service.remove_member(1, caller_id=1, target_user_id=1, session=session)

        session.delete.assert_called_once_with(own)

    def test_admin_removes_member_and_logs_it(
        self, mock_group, mock_require_member, mock_get_membership, mock_admins, mock_members,
    ):
        mock_require_member.return_value = _membership(1, Role.ADMIN)
        target = _membership(3, Role.MEMBER)
        mock_get_membership.return_value = target
        session = MagicMock()

        group_service.remove_member(1, caller_id=1, target_user_id=3, session=session)

        session.delete.assert_called_once_with(target)
        log = session.add.call_args.args[0]
        assert log.action == ChangeAction.MEMBER_REMOVED
        assert log.subject_user_id == 3
        assert log.actor_user_id == 1
        session.flush.assert_called_once()

    def test_member_may_leave(
        self, mock_group, mock_require_member, mock_get_membership, mock_admins, mock_members,
    ):
        own = _membership(2, Role.MEMBER)
        mock_require_member.return_value = own
        session = MagicMock()

        group_service.remove_member(1, caller_id=2, target_user_id=2, session=session)

        session.delete.assert_called_once_with(own)
        mock_get_membership.assert_not_called()
        log = session.add.call_args.args[0]
        assert log.subject_user_id == log.actor_user_id == 2


# ── set_member_role ────────────────────────────────────────────────────────

class TestSetMemberRole:

    @pytest.fixture(autouse=True)
    def _patch_lookups(self):
        patchers = {
            name: patch(f"{_PATCH_BASE}.{name}")
            for name in ("_get_group_or_404", "_require_admin", "_get_membership",
                         "_count_admins", "_build_member_dict")
        }
        self.mocks = {name: p.start() for name, p in patchers.items()}
        self.mocks["_build_member_dict"].side_effect = lambda user, m: {"role": m.role.value}
        yield
        for p in patchers.values():
            p.stop()

    def test_promotes_member(self):
        target = _membership(5)
        self.mocks["_get_membership"].return_value = target
        session = MagicMock()

        result = group_service.set_member_role(1, 2, 5, Role.ADMIN, session)

        assert target.role == Role.ADMIN
        assert result == {"group_id": 1, "role": "admin"}
        session.flush.assert_called_once()

    def test_same_role_is_a_noop(self):
        self.mocks["_get_membership"].return_value = _membership(5)
        session = MagicMock()

        group_service.set_member_role(1, 2, 5, Role.MEMBER, session)

        session.flush.assert_not_called()
        self.mocks["_count_admins"].assert_not_called()

    def test_last_admin_cannot_be_demoted(self):
        target = _membership(2, Role.ADMIN)
        self.mocks["_get_membership"].return_value = target
        self.mocks["_count_admins"].return_value = 1

        with pytest.raises(AppError) as exc_info:
            group_service.set_member_role(1, 2, 2, Role.MEMBER, MagicMock())

        assert exc_info.value.code == ErrorCode.LAST_ADMIN
        assert exc_info.value.http_status == 409
        assert target.role == Role.ADMIN

    def test_demotes_one_of_several_admins(self):
        target = _membership(3, Role.ADMIN)
        self.mocks["_get_membership"].return_value = target
        self.mocks["_count_admins"].return_value = 2

        group_service.set_member_role(1, 2, 3, Role.MEMBER, MagicMock())

        assert target.role == Role.MEMBER

    def test_target_must_be_member(self):
        self.mocks["_get_membership"].return_value = None

        with pytest.raises(AppError) as exc_info:
            group_service.set_member_role(1, 2, 99, Role.ADMIN, MagicMock())

        assert exc_info.value.code == ErrorCode.USER_NOT_FOUND
        assert exc_info.value.http_status == 404

    def test_caller_must_be_admin(self):
        self.mocks["_require_admin"].side_effect = AppError(ErrorCode.FORBIDDEN, "no", 403)

        with pytest.raises(AppError) as exc_info:
            group_service.set_member_role(1, 7, 5, Role.ADMIN, MagicMock())

        assert exc_info.value.code == ErrorCode.FORBIDDEN
        self.mocks["_get_membership"].assert_not_called()
