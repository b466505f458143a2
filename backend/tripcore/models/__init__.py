"""Models package - Import all models for SQLAlchemy registration."""
from tripcore.models.trip import Trip, TripMember
from tripcore.models.expense import Expense, ExpenseSplit, SplitType, ExpenseStatus, ExpenseCategory
from tripcore.models.notification import Notification, NotificationType

__all__ = [
    "Trip",
    "TripMember",
    "Expense",
    "ExpenseSplit",
    "SplitType",
    "ExpenseStatus",
    "ExpenseCategory",
    "Notification",
    "NotificationType",
]
