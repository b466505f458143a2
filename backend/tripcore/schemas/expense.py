"""
Pydantic schemas for Expense entity.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import date as dt_date, datetime
from decimal import Decimal
from tripcore.models.expense import SplitType, ExpenseStatus, ExpenseCategory


class SplitDetailIn(BaseModel):
    """One member's share as submitted by the caller."""
    user_id: str
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    paid: bool = False


class ExpenseCreate(BaseModel):
    """
    Schema for expense creation.

    ``split_details`` is required for percentage and exact splits and ignored
    for equal splits, which the ledger computes itself.
    """
    entry_id: Optional[str] = None
    description: str = ""
    amount: Decimal
    currency: Optional[str] = None  # Defaults to the trip's base currency
    category: ExpenseCategory = ExpenseCategory.OTHER
    date: dt_date
    paid_by: Optional[str] = None  # Defaults to the caller
    split_type: SplitType = SplitType.EQUAL
    split_with: List[str]
    split_details: Optional[List[SplitDetailIn]] = None


class ExpenseReplace(ExpenseCreate):
    """Schema for expense update. The whole expense, split included, is replaced."""
    pass


class SplitDetailResponse(BaseModel):
    """Schema for one share of an expense."""
    user_id: str
    amount: Decimal
    percentage: Optional[Decimal] = None
    paid: bool

    class Config:
        from_attributes = True


class ExpenseResponse(BaseModel):
    """Schema for expense response."""
    id: int
    trip_id: int
    entry_id: Optional[str] = None
    description: str
    amount: Decimal
    currency: str
    category: ExpenseCategory
    date: dt_date
    paid_by: str
    split_type: SplitType
    split_with: List[str]
    split_details: List[SplitDetailResponse] = []
    status: ExpenseStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @classmethod
    def from_expense(cls, expense) -> "ExpenseResponse":
        return cls(
            id=expense.id,
            trip_id=expense.trip_id,
            entry_id=expense.entry_id,
            description=expense.description,
            amount=expense.amount,
            currency=expense.currency,
            category=expense.category,
            date=expense.date,
            paid_by=expense.paid_by,
            split_type=expense.split_type,
            split_with=expense.split_with,
            split_details=[SplitDetailResponse.model_validate(s) for s in expense.splits],
            status=expense.status,
            created_at=expense.created_at,
            updated_at=expense.updated_at,
        )
