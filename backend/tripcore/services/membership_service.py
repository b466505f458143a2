"""
Membership store: trip -> member -> role assignments.

Writes take the trip's lock and only flush; the caller owns the transaction
and must commit while still holding the lock (the gateway does this).
"""
import logging
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from tripcore.core.exceptions import (
    NotFound, Forbidden, InvalidRole, DuplicateOwner, CannotRemoveOwner
)
from tripcore.core.locks import trip_locks
from tripcore.core.permissions import MemberRole, Action, is_allowed
from tripcore.models.trip import Trip, TripMember

logger = logging.getLogger(__name__)


def parse_role(role) -> MemberRole:
    """Convert a raw role value to MemberRole, raising InvalidRole."""
    try:
        return MemberRole(role)
    except ValueError:
        raise InvalidRole(
            f"Invalid role '{role}'",
            {"allowed": [r.value for r in MemberRole]}
        )


def get_trip(trip_id: int, db: Session) -> Trip:
    """Load a trip or raise NotFound."""
    trip = db.query(Trip).filter(Trip.id == trip_id).first()
    if not trip:
        raise NotFound("Trip not found", {"trip_id": trip_id})
    return trip


def get_member(trip_id: int, user_id: str, db: Session) -> Optional[TripMember]:
    return db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user_id
    ).first()


def role_of(trip_id: int, user_id: str, db: Session) -> Optional[MemberRole]:
    """Return the member's role, or None if they are not a member."""
    member = get_member(trip_id, user_id, db)
    return MemberRole(member.role) if member else None


def list_members(trip_id: int, db: Session) -> List[TripMember]:
    """List members ordered by join time."""
    get_trip(trip_id, db)
    return db.query(TripMember).filter(
        TripMember.trip_id == trip_id
    ).order_by(TripMember.created_at, TripMember.id).all()


def member_ids(trip_id: int, db: Session) -> List[str]:
    return [m.user_id for m in db.query(TripMember.user_id).filter(TripMember.trip_id == trip_id).all()]


def get_owner(trip_id: int, db: Session) -> Optional[TripMember]:
    return db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.role == MemberRole.OWNER
    ).first()


def authorize(trip_id: int, user_id: str, action: Action, db: Session) -> MemberRole:
    """
    Check that ``user_id`` may perform ``action`` on the trip.

    Raises NotFound for unknown trips and Forbidden for non-members or roles
    the permission table denies. Returns the caller's role.
    """
    get_trip(trip_id, db)
    role = role_of(trip_id, user_id, db)
    if not is_allowed(role, action):
        logger.warning("Denied %s on trip %s for user %s (role=%s)",
                       action.value, trip_id, user_id, role.value if role else None)
        raise Forbidden(
            "Access denied to this trip" if role is None else f"Role '{role.value}' may not {action.value}",
            {"trip_id": trip_id, "action": action.value}
        )
    return role


def assign(trip_id: int, user_id: str, role, db: Session) -> Tuple[TripMember, bool]:
    """
    Assign ``role`` to ``user_id`` on the trip, creating the membership if needed.

    Returns (member, created). Raises InvalidRole, NotFound and DuplicateOwner.
    """
    role = parse_role(role)
    with trip_locks.hold(trip_id):
        get_trip(trip_id, db)

        if role == MemberRole.OWNER:
            owner = get_owner(trip_id, db)
            if owner and owner.user_id != user_id:
                raise DuplicateOwner("Trip already has an owner", {"trip_id": trip_id})

        member = get_member(trip_id, user_id, db)
        created = member is None
        if created:
            member = TripMember(trip_id=trip_id, user_id=user_id, role=role)
            db.add(member)
        else:
            member.role = role
        db.flush()
        return member, created


def revoke(trip_id: int, user_id: str, db: Session) -> TripMember:
    """Remove a member. Raises NotFound and CannotRemoveOwner."""
    with trip_locks.hold(trip_id):
        get_trip(trip_id, db)
        member = get_member(trip_id, user_id, db)
        if not member:
            raise NotFound("Member not found", {"trip_id": trip_id, "user_id": user_id})
        if MemberRole(member.role) == MemberRole.OWNER:
            raise CannotRemoveOwner("The trip owner cannot be removed", {"trip_id": trip_id})
        db.delete(member)
        db.flush()
        return member
