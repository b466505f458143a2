"""
Pydantic schemas for the trip ledger summary.
"""
from pydantic import BaseModel
from typing import List
from decimal import Decimal


class CurrencyTotal(BaseModel):
    currency: str
    total: Decimal
    expense_count: int


class CategoryTotal(BaseModel):
    category: str
    currency: str
    total: Decimal
    expense_count: int


class MemberBalance(BaseModel):
    """A member's position in one currency. Positive balance = should receive."""
    user_id: str
    currency: str
    paid: Decimal
    owed: Decimal
    balance: Decimal


class Transfer(BaseModel):
    """Suggested transfer that would settle balances. Advisory only."""
    from_user_id: str
    to_user_id: str
    currency: str
    amount: Decimal


class TripSummary(BaseModel):
    """Schema for the trip summary response."""
    trip_id: int
    base_currency: str
    expense_count: int
    totals_by_currency: List[CurrencyTotal]
    totals_by_category: List[CategoryTotal]
    balances: List[MemberBalance]
    transfers: List[Transfer]
