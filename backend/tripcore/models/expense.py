"""
Expense model for the trip ledger.
"""
import enum
from sqlalchemy import Column, String, Numeric, Date, ForeignKey, Integer, Text, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
from tripcore.db.base import BaseModel


def _values(enum_cls):
    return [member.value for member in enum_cls]


class SplitType(str, enum.Enum):
    """How an expense is divided between members."""
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    EXACT = "exact"


class ExpenseStatus(str, enum.Enum):
    PENDING = "pending"
    SETTLED = "settled"


class ExpenseCategory(str, enum.Enum):
    ACCOMMODATION = "accommodation"
    FOOD = "food"
    TRANSPORTATION = "transportation"
    ACTIVITIES = "activities"
    SHOPPING = "shopping"
    OTHER = "other"


class Expense(BaseModel):
    """Expense model representing a single spending event."""
    __tablename__ = "expenses"

    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    entry_id = Column(String(64), nullable=True)  # Itinerary entry reference, owned by the content store
    description = Column(Text, nullable=False, default="")
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    category = Column(SQLEnum(ExpenseCategory, values_callable=_values), nullable=False,
                      default=ExpenseCategory.OTHER)
    date = Column(Date, nullable=False, index=True)
    paid_by = Column(String(128), nullable=False, index=True)
    split_type = Column(SQLEnum(SplitType, values_callable=_values), nullable=False)
    status = Column(SQLEnum(ExpenseStatus, values_callable=_values), nullable=False,
                    default=ExpenseStatus.PENDING)

    # Relationships
    trip = relationship("Trip", back_populates="expenses")
    splits = relationship("ExpenseSplit", back_populates="expense", cascade="all, delete-orphan",
                          order_by="ExpenseSplit.position")

    @property
    def split_with(self):
        return [split.user_id for split in self.splits]


class ExpenseSplit(BaseModel):
    """One member's share of an expense."""
    __tablename__ = "expense_splits"

    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)  # Order of split_with as submitted
    amount = Column(Numeric(15, 2), nullable=False)
    percentage = Column(Numeric(5, 2), nullable=True)
    paid = Column(Boolean, default=False, nullable=False)

    # Relationships
    expense = relationship("Expense", back_populates="splits")
