"""
Pydantic schemas for Trip and membership entities.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from tripcore.core.permissions import MemberRole


class TripCreate(BaseModel):
    """Schema for trip creation."""
    name: str
    base_currency: Optional[str] = None  # Defaults to DEFAULT_CURRENCY


class TripUpdate(BaseModel):
    """Schema for trip update."""
    name: Optional[str] = None
    base_currency: Optional[str] = None


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    name: str
    base_currency: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MemberAssign(BaseModel):
    """Schema for inviting a member or changing a member's role."""
    role: str  # Validated by the membership store so unknown roles map to InvalidRole


class TripMemberResponse(BaseModel):
    """Schema for trip member response."""
    trip_id: int
    user_id: str
    role: MemberRole
    joined_at: datetime

    class Config:
        from_attributes = True


class TripDetailResponse(TripResponse):
    """Schema for detailed trip response with members."""
    my_role: MemberRole
    members: List[TripMemberResponse] = []
