"""
Trip member routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from tripcore.db.session import get_db
from tripcore.core.utils import format_response
from tripcore.schemas.trip import MemberAssign, TripMemberResponse
from tripcore.api.dependencies import get_current_user_id, get_gateway
from tripcore.api.routes.trips import check_trip_access
from tripcore.services import membership_service
from tripcore.services.gateway import MutationGateway

router = APIRouter(prefix="/trips/{trip_id}/members", tags=["members"])


@router.get("", response_model=List[TripMemberResponse])
def list_members(
    trip_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List trip members with their roles."""
    check_trip_access(trip_id, current_user_id, db)
    return membership_service.list_members(trip_id, db)


@router.put("/{user_id}", response_model=TripMemberResponse)
def assign_member(
    trip_id: int,
    user_id: str,
    assignment: MemberAssign,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    """Invite a member, or change an existing member's role."""
    return gateway.assign_member(trip_id, current_user_id, user_id, assignment.role, db)


@router.delete("/{user_id}")
def remove_member(
    trip_id: int,
    user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    """Remove a member from the trip."""
    gateway.remove_member(trip_id, current_user_id, user_id, db)
    return format_response({"trip_id": trip_id, "user_id": user_id}, "Member removed successfully")
