"""
Role-based permission table.

This is the only place that maps roles to allowed actions. Call sites ask
``is_allowed(role, action)`` instead of comparing role names themselves.
"""
import enum
from typing import Optional


class MemberRole(str, enum.Enum):
    """Trip member role."""
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class Action(str, enum.Enum):
    """Actions a member may attempt on a trip."""
    EDIT_TRIP_CONTENT = "edit_trip_content"
    DELETE_TRIP = "delete_trip"
    MANAGE_MEMBERS = "manage_members"  # invite or remove
    CHANGE_MEMBER_ROLE = "change_member_role"
    VIEW_TRIP = "view_trip"


PERMISSIONS = {
    Action.EDIT_TRIP_CONTENT: frozenset({MemberRole.OWNER, MemberRole.ADMIN, MemberRole.EDITOR}),
    Action.DELETE_TRIP: frozenset({MemberRole.OWNER, MemberRole.ADMIN}),
    Action.MANAGE_MEMBERS: frozenset({MemberRole.OWNER, MemberRole.ADMIN}),
    Action.CHANGE_MEMBER_ROLE: frozenset({MemberRole.OWNER, MemberRole.ADMIN}),
    Action.VIEW_TRIP: frozenset(MemberRole),
}


def is_allowed(role: Optional[MemberRole], action: Action) -> bool:
    """Return True if ``role`` may perform ``action``. Non-members (None) may do nothing."""
    if role is None:
        return False
    return MemberRole(role) in PERMISSIONS[Action(action)]
