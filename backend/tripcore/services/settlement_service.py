"""
Settlement service: the ledger's read side.

Balances are never stored. Every summary is recomputed from all expenses of
the trip, settled or not; settlement is only a bookkeeping flag.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Tuple
from sqlalchemy.orm import Session
from tripcore.schemas.summary import (
    TripSummary, CurrencyTotal, CategoryTotal, MemberBalance, Transfer
)
from tripcore.services.expense_service import list_expenses
from tripcore.services.membership_service import get_trip, member_ids

ZERO = Decimal("0.00")


def compute_summary(trip_id: int, db: Session) -> TripSummary:
    """
    Aggregate a trip's expenses.

    Returns totals per currency, totals per (category, currency), each
    member's paid/owed/balance per currency and a suggested list of
    transfers. Amounts in different currencies are never added together.
    """
    trip = get_trip(trip_id, db)
    expenses = list_expenses(trip_id, db)

    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: Dict[str, int] = defaultdict(int)
    category_totals: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
    category_counts: Dict[Tuple[str, str], int] = defaultdict(int)
    paid: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
    owed: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)

    for expense in expenses:
        currency = expense.currency
        amount = Decimal(expense.amount)
        category = expense.category.value

        totals[currency] += amount
        counts[currency] += 1
        category_totals[(category, currency)] += amount
        category_counts[(category, currency)] += 1

        paid[(expense.paid_by, currency)] += amount
        for split in expense.splits:
            owed[(split.user_id, currency)] += Decimal(split.amount)

    # Current members with no activity still show up, in the trip's currency
    keys = set(paid) | set(owed)
    active_users = {user_id for user_id, _ in keys}
    for user_id in member_ids(trip_id, db):
        if user_id not in active_users:
            keys.add((user_id, trip.base_currency))

    balances = []
    for user_id, currency in sorted(keys):
        member_paid = paid.get((user_id, currency), ZERO)
        member_owed = owed.get((user_id, currency), ZERO)
        balances.append(MemberBalance(
            user_id=user_id,
            currency=currency,
            paid=member_paid,
            owed=member_owed,
            balance=member_paid - member_owed,
        ))

    transfers = []
    for currency in sorted(totals):
        currency_balances = [(b.user_id, b.balance) for b in balances if b.currency == currency]
        transfers.extend(minimize_transfers(currency_balances, currency))

    return TripSummary(
        trip_id=trip_id,
        base_currency=trip.base_currency,
        expense_count=len(expenses),
        totals_by_currency=[
            CurrencyTotal(currency=c, total=totals[c], expense_count=counts[c])
            for c in sorted(totals)
        ],
        totals_by_category=[
            CategoryTotal(category=cat, currency=cur, total=category_totals[(cat, cur)],
                          expense_count=category_counts[(cat, cur)])
            for cat, cur in sorted(category_totals)
        ],
        balances=balances,
        transfers=transfers,
    )


def minimize_transfers(balances: List[tuple], currency: str) -> List[Transfer]:
    """
    Minimize the number of transfers needed to settle debts.
    Uses a greedy algorithm; ties are broken by user id so the result is stable.
    """
    # Separate creditors (positive balance) and debtors (negative balance)
    creditors = [(uid, bal) for uid, bal in balances if bal > 0]
    debtors = [(uid, -bal) for uid, bal in balances if bal < 0]  # Store as positive for easier calculation

    # Largest amounts first
    creditors.sort(key=lambda x: (-x[1], x[0]))
    debtors.sort(key=lambda x: (-x[1], x[0]))

    transfers = []
    cred_idx = 0
    debt_idx = 0

    while cred_idx < len(creditors) and debt_idx < len(debtors):
        creditor_id, cred_amount = creditors[cred_idx]
        debtor_id, debt_amount = debtors[debt_idx]

        # Transfer the minimum of what's owed and what's needed
        transfer_amount = min(cred_amount, debt_amount)
        transfers.append(Transfer(
            from_user_id=debtor_id,
            to_user_id=creditor_id,
            currency=currency,
            amount=transfer_amount,
        ))

        creditors[cred_idx] = (creditor_id, cred_amount - transfer_amount)
        debtors[debt_idx] = (debtor_id, debt_amount - transfer_amount)

        if creditors[cred_idx][1] == 0:
            cred_idx += 1
        if debtors[debt_idx][1] == 0:
            debt_idx += 1

    return transfers
