"""
Expense service: the ledger's write side.

An expense is always written together with its complete split. Updates
replace every field and the whole split set, so the split invariant
(shares add up to the amount) is checked before anything is flushed.
"""
from decimal import Decimal
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session, joinedload
from tripcore.core.exceptions import NotFound, InvalidInput, SplitMismatch, UnknownMember
from tripcore.core.locks import trip_locks
from tripcore.core.utils import to_money, floor_money
from tripcore.models.expense import Expense, ExpenseSplit, SplitType, ExpenseStatus
from tripcore.schemas.expense import ExpenseCreate, SplitDetailIn
from tripcore.services.membership_service import get_trip, member_ids

HUNDRED = Decimal("100")


class SplitLine:
    """A validated share of an expense."""
    def __init__(self, user_id: str, amount: Decimal, percentage: Optional[Decimal] = None, paid: bool = False):
        self.user_id = user_id
        self.amount = amount
        self.percentage = percentage
        self.paid = paid


def compute_equal_split(amount: Decimal, split_with: Sequence[str], paid_by: Optional[str] = None) -> List[SplitLine]:
    """
    Divide ``amount`` evenly, rounded down to the smallest currency unit.

    The rounding remainder goes to the first member of ``split_with`` so the
    shares always add up to ``amount`` exactly.
    """
    if not split_with:
        raise InvalidInput("split_with must not be empty")
    amount = to_money(amount)
    share = floor_money(amount / len(split_with))
    remainder = amount - share * len(split_with)
    lines = []
    for index, user_id in enumerate(split_with):
        lines.append(SplitLine(
            user_id=user_id,
            amount=share + remainder if index == 0 else share,
            paid=user_id == paid_by,
        ))
    return lines


def _exact_money(value, field: str, user_id: str) -> Decimal:
    """Quantize a split value to two decimals, rejecting values rounding would change."""
    exact = Decimal(str(value))
    quantized = to_money(exact)
    if quantized != exact:
        raise InvalidInput(
            f"Split {field} allows at most two decimal places",
            {"user_id": user_id, field: str(value)}
        )
    return quantized


def _check_details(amount: Decimal, split_type: SplitType, split_with: Sequence[str],
                   details: Optional[Sequence[SplitDetailIn]]) -> List[SplitLine]:
    """Validate caller-supplied shares for percentage and exact splits."""
    if not details:
        raise InvalidInput(f"split_details are required for {split_type.value} splits")

    detail_users = [d.user_id for d in details]
    if len(set(detail_users)) != len(detail_users):
        raise InvalidInput("split_details lists a member more than once")
    if set(detail_users) != set(split_with):
        raise InvalidInput("split_details must cover exactly the members in split_with")

    by_user = {d.user_id: d for d in details}
    lines = []
    for user_id in split_with:
        detail = by_user[user_id]
        if detail.amount is None:
            raise InvalidInput("Every split detail needs an amount", {"user_id": user_id})
        share = _exact_money(detail.amount, "amount", user_id)
        if share < 0:
            raise InvalidInput("Split amounts cannot be negative", {"user_id": user_id})
        percentage = None
        if split_type == SplitType.PERCENTAGE:
            if detail.percentage is None:
                raise InvalidInput("Every split detail needs a percentage", {"user_id": user_id})
            percentage = _exact_money(detail.percentage, "percentage", user_id)
            if percentage < 0:
                raise InvalidInput("Percentages cannot be negative", {"user_id": user_id})
        lines.append(SplitLine(user_id, share, percentage, detail.paid))

    if split_type == SplitType.PERCENTAGE:
        total_percentage = sum((line.percentage for line in lines), Decimal("0"))
        if total_percentage != HUNDRED:
            raise SplitMismatch(
                f"Percentages add up to {total_percentage}, expected 100",
                {"total_percentage": str(total_percentage)}
            )

    total = sum((line.amount for line in lines), Decimal("0"))
    if total != amount:
        raise SplitMismatch(
            f"Split amounts add up to {total}, expected {amount}",
            {"split_total": str(total), "amount": str(amount)}
        )
    return lines


def build_split(data: ExpenseCreate, paid_by: str, current_members: Sequence[str],
                allowed_historical: Sequence[str] = ()) -> List[SplitLine]:
    """
    Validate an expense payload and return its split lines.

    ``allowed_historical`` lists users already on the expense being replaced;
    they may stay on the split even if they have since left the trip.
    """
    amount = to_money(data.amount)
    if amount <= 0:
        raise InvalidInput("Amount must be greater than zero", {"amount": str(data.amount)})
    if not data.split_with:
        raise InvalidInput("split_with must not be empty")
    if len(set(data.split_with)) != len(data.split_with):
        raise InvalidInput("split_with lists a member more than once")

    members = set(current_members)
    if paid_by not in members:
        raise UnknownMember("Payer is not a member of this trip", {"user_id": paid_by})
    unknown = [u for u in data.split_with if u not in members and u not in allowed_historical]
    if unknown:
        raise UnknownMember("Split references users who are not trip members", {"user_ids": unknown})

    if data.split_type == SplitType.EQUAL:
        return compute_equal_split(amount, data.split_with, paid_by)
    return _check_details(amount, data.split_type, data.split_with, data.split_details)


def _write_splits(expense: Expense, lines: List[SplitLine]):
    expense.splits = [
        ExpenseSplit(
            user_id=line.user_id,
            position=position,
            amount=line.amount,
            percentage=line.percentage,
            paid=line.paid,
        )
        for position, line in enumerate(lines)
    ]


def _normalize_currency(currency: Optional[str], default: str) -> str:
    value = (currency or default).strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise InvalidInput("Currency must be a 3-letter code", {"currency": currency})
    return value


def get_expense(trip_id: int, expense_id: int, db: Session) -> Expense:
    """Load an expense of the given trip or raise NotFound."""
    get_trip(trip_id, db)
    expense = db.query(Expense).options(joinedload(Expense.splits)).filter(
        Expense.id == expense_id,
        Expense.trip_id == trip_id
    ).first()
    if not expense:
        raise NotFound("Expense not found", {"trip_id": trip_id, "expense_id": expense_id})
    return expense


def list_expenses(trip_id: int, db: Session) -> List[Expense]:
    get_trip(trip_id, db)
    return db.query(Expense).options(joinedload(Expense.splits)).filter(
        Expense.trip_id == trip_id
    ).order_by(Expense.date, Expense.id).all()


def create_expense(trip_id: int, data: ExpenseCreate, caller_id: str, db: Session) -> Expense:
    """Create an expense with its split in one flush."""
    with trip_locks.hold(trip_id):
        trip = get_trip(trip_id, db)
        paid_by = data.paid_by or caller_id
        lines = build_split(data, paid_by, member_ids(trip_id, db))

        expense = Expense(
            trip_id=trip_id,
            entry_id=data.entry_id,
            description=data.description,
            amount=to_money(data.amount),
            currency=_normalize_currency(data.currency, trip.base_currency),
            category=data.category,
            date=data.date,
            paid_by=paid_by,
            split_type=data.split_type,
            status=ExpenseStatus.PENDING,
        )
        _write_splits(expense, lines)
        db.add(expense)
        db.flush()
        return expense


def update_expense(trip_id: int, expense_id: int, data: ExpenseCreate, caller_id: str, db: Session) -> Expense:
    """Replace an expense and its whole split. Nothing is changed if validation fails."""
    with trip_locks.hold(trip_id):
        trip = get_trip(trip_id, db)
        expense = get_expense(trip_id, expense_id, db)
        paid_by = data.paid_by or expense.paid_by
        historical = set(expense.split_with) | {expense.paid_by}
        members = set(member_ids(trip_id, db))
        if paid_by in historical:
            members.add(paid_by)
        lines = build_split(data, paid_by, members, allowed_historical=historical)
        currency = _normalize_currency(data.currency, trip.base_currency)

        expense.entry_id = data.entry_id
        expense.description = data.description
        expense.amount = to_money(data.amount)
        expense.currency = currency
        expense.category = data.category
        expense.date = data.date
        expense.paid_by = paid_by
        expense.split_type = data.split_type
        _write_splits(expense, lines)
        db.flush()
        return expense


def delete_expense(trip_id: int, expense_id: int, db: Session) -> Expense:
    with trip_locks.hold(trip_id):
        expense = get_expense(trip_id, expense_id, db)
        db.delete(expense)
        db.flush()
        return expense


def settle_expense(trip_id: int, expense_id: int, db: Session) -> Expense:
    """Mark an expense as reconciled outside the system. Only the status changes."""
    with trip_locks.hold(trip_id):
        expense = get_expense(trip_id, expense_id, db)
        if expense.status != ExpenseStatus.SETTLED:
            expense.status = ExpenseStatus.SETTLED
            db.flush()
        return expense
