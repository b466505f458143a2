"""
Expense ledger routes.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
from tripcore.db.session import get_db
from tripcore.core.utils import format_response
from tripcore.schemas.expense import ExpenseCreate, ExpenseReplace, ExpenseResponse
from tripcore.schemas.summary import TripSummary
from tripcore.api.dependencies import get_current_user_id, get_gateway
from tripcore.api.routes.trips import check_trip_access
from tripcore.services import expense_service
from tripcore.services.gateway import MutationGateway
from tripcore.services.settlement_service import compute_summary

router = APIRouter(prefix="/trips/{trip_id}", tags=["expenses"])


@router.get("/expenses", response_model=List[ExpenseResponse])
def list_expenses(
    trip_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List all expenses of a trip, oldest first."""
    check_trip_access(trip_id, current_user_id, db)
    return [ExpenseResponse.from_expense(e) for e in expense_service.list_expenses(trip_id, db)]


@router.post("/expenses", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
def create_expense(
    trip_id: int,
    expense_data: ExpenseCreate,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    """Create an expense together with its split."""
    expense = gateway.create_expense(trip_id, current_user_id, expense_data, db)
    return ExpenseResponse.from_expense(expense)


@router.get("/expenses/{expense_id}", response_model=ExpenseResponse)
def get_expense(
    trip_id: int,
    expense_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    check_trip_access(trip_id, current_user_id, db)
    return ExpenseResponse.from_expense(expense_service.get_expense(trip_id, expense_id, db))


@router.put("/expenses/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    trip_id: int,
    expense_id: int,
    expense_data: ExpenseReplace,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    """Replace an expense, split included."""
    expense = gateway.update_expense(trip_id, expense_id, current_user_id, expense_data, db)
    return ExpenseResponse.from_expense(expense)


@router.delete("/expenses/{expense_id}")
def delete_expense(
    trip_id: int,
    expense_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    gateway.delete_expense(trip_id, expense_id, current_user_id, db)
    return format_response({"id": expense_id}, "Expense deleted successfully")


@router.post("/expenses/{expense_id}/settle", response_model=ExpenseResponse)
def settle_expense(
    trip_id: int,
    expense_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    """Mark an expense as reconciled outside the app. Balances are unaffected."""
    expense = gateway.settle_expense(trip_id, expense_id, current_user_id, db)
    return ExpenseResponse.from_expense(expense)


@router.get("/summary", response_model=TripSummary)
def get_summary(
    trip_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Totals, per-member balances and suggested transfers, recomputed on every call."""
    check_trip_access(trip_id, current_user_id, db)
    return compute_summary(trip_id, db)
