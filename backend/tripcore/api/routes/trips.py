"""
Trip management routes.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from tripcore.db.session import get_db
from tripcore.core.permissions import Action
from tripcore.core.utils import format_response
from tripcore.models.trip import Trip
from tripcore.schemas.trip import TripCreate, TripUpdate, TripResponse, TripDetailResponse, TripMemberResponse
from tripcore.api.dependencies import get_current_user_id, get_gateway
from tripcore.services import membership_service
from tripcore.services.gateway import MutationGateway

router = APIRouter(prefix="/trips", tags=["trips"])


def check_trip_access(trip_id: int, user_id: str, db: Session) -> Trip:
    """Check that the user may view the trip (404 if unknown, 403 if not a member)."""
    membership_service.authorize(trip_id, user_id, Action.VIEW_TRIP, db)
    return membership_service.get_trip(trip_id, db)


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
def create_trip(
    trip_data: TripCreate,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    """Create a new trip. The caller becomes its owner."""
    return gateway.create_trip(current_user_id, trip_data, db)


@router.get("/{trip_id}", response_model=TripDetailResponse)
def get_trip(
    trip_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get trip details with members."""
    trip = check_trip_access(trip_id, current_user_id, db)
    members = membership_service.list_members(trip_id, db)
    return TripDetailResponse(
        id=trip.id,
        name=trip.name,
        base_currency=trip.base_currency,
        created_at=trip.created_at,
        updated_at=trip.updated_at,
        my_role=membership_service.role_of(trip_id, current_user_id, db),
        members=[TripMemberResponse.model_validate(m) for m in members],
    )


@router.patch("/{trip_id}", response_model=TripResponse)
def update_trip(
    trip_id: int,
    trip_data: TripUpdate,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    """Rename a trip or change its base currency."""
    return gateway.update_trip(trip_id, current_user_id, trip_data, db)


@router.delete("/{trip_id}")
def delete_trip(
    trip_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    """Delete a trip with its members and expenses."""
    gateway.delete_trip(trip_id, current_user_id, db)
    return format_response({"id": trip_id}, "Trip deleted successfully")
