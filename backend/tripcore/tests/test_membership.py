"""
Tests for the membership store and the gateway's member operations.
"""
import pytest
from tripcore.core.exceptions import (
    NotFound, Forbidden, InvalidRole, DuplicateOwner, CannotRemoveOwner
)
from tripcore.core.permissions import MemberRole
from tripcore.models.notification import Notification, NotificationType
from tripcore.services import membership_service


def test_creator_is_the_only_owner(trip, db):
    assert membership_service.role_of(trip.id, "alice", db) == MemberRole.OWNER
    owners = [m for m in membership_service.list_members(trip.id, db) if m.role == MemberRole.OWNER]
    assert [m.user_id for m in owners] == ["alice"]


def test_role_of_non_member_is_none(trip, db):
    assert membership_service.role_of(trip.id, "mallory", db) is None


def test_assign_rejects_unknown_role(trip, db):
    with pytest.raises(InvalidRole):
        membership_service.assign(trip.id, "erin", "superuser", db)


def test_assign_rejects_second_owner(trip, db):
    with pytest.raises(DuplicateOwner):
        membership_service.assign(trip.id, "erin", "owner", db)


def test_assign_unknown_trip(db):
    with pytest.raises(NotFound):
        membership_service.assign(999, "erin", "viewer", db)


def test_revoke_owner_fails(trip, db):
    with pytest.raises(CannotRemoveOwner):
        membership_service.revoke(trip.id, "alice", db)


def test_revoke_missing_member(trip, db):
    with pytest.raises(NotFound):
        membership_service.revoke(trip.id, "mallory", db)


def test_list_members_in_join_order(trip, db):
    members = membership_service.list_members(trip.id, db)
    assert [m.user_id for m in members] == ["alice", "bob", "carol", "dave"]


def test_gateway_changes_role_of_existing_member(trip, gateway, db):
    member = gateway.assign_member(trip.id, "dave", "carol", "editor", db)
    assert member.role == MemberRole.EDITOR
    assert membership_service.role_of(trip.id, "carol", db) == MemberRole.EDITOR


def test_editor_cannot_invite(trip, gateway, db):
    with pytest.raises(Forbidden):
        gateway.assign_member(trip.id, "bob", "erin", "viewer", db)
    assert membership_service.role_of(trip.id, "erin", db) is None


def test_non_member_cannot_invite(trip, gateway, db):
    with pytest.raises(Forbidden):
        gateway.assign_member(trip.id, "mallory", "erin", "viewer", db)


def test_invite_creates_inbox_notification(trip, gateway, db):
    gateway.assign_member(trip.id, "alice", "erin", "viewer", db)
    notification = db.query(Notification).filter(Notification.recipient_id == "erin").one()
    assert notification.type == NotificationType.TRIP_INVITE
    assert notification.sender_id == "alice"
    assert notification.reference_id == str(trip.id)
    assert notification.is_read is False


@pytest.mark.parametrize("actor", ["alice", "dave", "bob", "carol"])
@pytest.mark.parametrize("new_role", ["admin", "editor", "viewer"])
def test_owner_cannot_be_demoted(trip, gateway, db, actor, new_role):
    with pytest.raises(Forbidden):
        gateway.assign_member(trip.id, actor, "alice", new_role, db)
    assert membership_service.role_of(trip.id, "alice", db) == MemberRole.OWNER


@pytest.mark.parametrize("actor,error", [
    ("alice", CannotRemoveOwner),
    ("dave", CannotRemoveOwner),
    ("bob", Forbidden),
    ("carol", Forbidden),
])
def test_owner_cannot_be_removed(trip, gateway, db, actor, error):
    with pytest.raises(error):
        gateway.remove_member(trip.id, actor, "alice", db)
    assert membership_service.role_of(trip.id, "alice", db) == MemberRole.OWNER


def test_admin_removes_member(trip, gateway, db):
    gateway.remove_member(trip.id, "dave", "carol", db)
    assert membership_service.role_of(trip.id, "carol", db) is None


def test_promoting_to_owner_is_duplicate(trip, gateway, db):
    with pytest.raises(DuplicateOwner):
        gateway.assign_member(trip.id, "alice", "bob", "owner", db)
    assert membership_service.role_of(trip.id, "bob", db) == MemberRole.EDITOR


def test_owner_hears_when_admin_adds_member(trip, gateway, db):
    gateway.assign_member(trip.id, "dave", "erin", "editor", db)
    owner_inbox = db.query(Notification).filter(Notification.recipient_id == "alice").all()
    assert [(n.type, n.sender_id) for n in owner_inbox] == [(NotificationType.MEMBER_JOINED, "dave")]


def test_role_change_creates_no_notification(trip, gateway, db):
    gateway.assign_member(trip.id, "alice", "bob", "admin", db)
    assert db.query(Notification).filter(Notification.recipient_id == "bob").count() == 1
