"""
Trip and membership models.
"""
from sqlalchemy import Column, String, Enum as SQLEnum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from tripcore.core.permissions import MemberRole
from tripcore.db.base import BaseModel


class Trip(BaseModel):
    """Trip shared between members."""
    __tablename__ = "trips"

    name = Column(String(200), nullable=False)
    base_currency = Column(String(3), nullable=False, default="THB")  # Default currency for new expenses

    # Relationships
    members = relationship("TripMember", back_populates="trip", cascade="all, delete-orphan",
                           order_by="TripMember.id")
    expenses = relationship("Expense", back_populates="trip", cascade="all, delete-orphan")


class TripMember(BaseModel):
    """Role assignment of one member on one trip."""
    __tablename__ = "trip_members"

    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)  # Opaque id from the identity provider
    role = Column(SQLEnum(MemberRole, values_callable=lambda e: [m.value for m in e]), nullable=False)

    # Relationships
    trip = relationship("Trip", back_populates="members")

    # One assignment per user per trip
    __table_args__ = (
        UniqueConstraint('trip_id', 'user_id', name='uq_trip_member'),
    )

    @property
    def joined_at(self):
        return self.created_at
