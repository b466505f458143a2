"""
Tests for the ledger's write side: split computation and validation.
"""
from datetime import date
from decimal import Decimal
import pytest
from tripcore.core.exceptions import (
    Forbidden, InvalidInput, NotFound, SplitMismatch, UnknownMember
)
from tripcore.models.expense import Expense, ExpenseStatus, SplitType
from tripcore.schemas.expense import ExpenseCreate, SplitDetailIn
from tripcore.schemas.trip import TripCreate
from tripcore.services import expense_service
from tripcore.services.expense_service import compute_equal_split


def make_expense(amount="300", split_with=("alice", "bob"), **kwargs) -> ExpenseCreate:
    payload = {
        "description": "Dinner",
        "amount": Decimal(amount),
        "date": date(2024, 3, 1),
        "split_with": list(split_with),
    }
    payload.update(kwargs)
    return ExpenseCreate(**payload)


def shares(expense):
    return [(s.user_id, Decimal(s.amount)) for s in expense.splits]


class TestEqualSplit:
    def test_even_amount(self):
        lines = compute_equal_split(Decimal("300"), ["alice", "bob"])
        assert [(l.user_id, l.amount) for l in lines] == [
            ("alice", Decimal("150.00")), ("bob", Decimal("150.00"))
        ]

    def test_remainder_goes_to_first_member(self):
        lines = compute_equal_split(Decimal("100"), ["carol", "alice", "bob"])
        assert [l.amount for l in lines] == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
        assert sum(l.amount for l in lines) == Decimal("100.00")

    def test_cents_are_never_lost(self):
        for amount in ["0.01", "0.05", "10.01", "999.99"]:
            lines = compute_equal_split(Decimal(amount), ["a", "b", "c", "d", "e", "f", "g"])
            assert sum(l.amount for l in lines) == Decimal(amount)

    def test_payer_share_is_marked_paid(self):
        lines = compute_equal_split(Decimal("90"), ["alice", "bob", "carol"], paid_by="bob")
        assert [l.paid for l in lines] == [False, True, False]

    def test_empty_split_rejected(self):
        with pytest.raises(InvalidInput):
            compute_equal_split(Decimal("10"), [])


class TestCreateExpense:
    def test_equal_split_is_computed(self, trip, gateway, db):
        expense = gateway.create_expense(trip.id, "alice", make_expense(), db)
        assert expense.split_type == SplitType.EQUAL
        assert expense.paid_by == "alice"
        assert expense.currency == "THB"
        assert expense.status == ExpenseStatus.PENDING
        assert shares(expense) == [("alice", Decimal("150.00")), ("bob", Decimal("150.00"))]

    def test_percentage_split(self, trip, gateway, db):
        data = make_expense(
            amount="200",
            split_type="percentage",
            split_details=[
                SplitDetailIn(user_id="alice", amount=Decimal("50"), percentage=Decimal("25")),
                SplitDetailIn(user_id="bob", amount=Decimal("150"), percentage=Decimal("75")),
            ],
        )
        expense = gateway.create_expense(trip.id, "bob", data, db)
        assert expense.paid_by == "bob"
        assert [Decimal(s.percentage) for s in expense.splits] == [Decimal("25"), Decimal("75")]

    def test_exact_split(self, trip, gateway, db):
        data = make_expense(
            amount="100",
            split_with=["alice", "bob", "carol"],
            split_type="exact",
            split_details=[
                SplitDetailIn(user_id="alice", amount=Decimal("10")),
                SplitDetailIn(user_id="bob", amount=Decimal("30")),
                SplitDetailIn(user_id="carol", amount=Decimal("60")),
            ],
        )
        expense = gateway.create_expense(trip.id, "dave", data, db)
        assert sum(a for _, a in shares(expense)) == Decimal("100")

    def test_exact_split_mismatch(self, trip, gateway, db):
        data = make_expense(
            amount="100",
            split_type="exact",
            split_details=[
                SplitDetailIn(user_id="alice", amount=Decimal("10")),
                SplitDetailIn(user_id="bob", amount=Decimal("80")),
            ],
        )
        with pytest.raises(SplitMismatch):
            gateway.create_expense(trip.id, "alice", data, db)
        assert db.query(Expense).count() == 0

    def test_percentages_must_add_up_to_hundred(self, trip, gateway, db):
        data = make_expense(
            amount="100",
            split_type="percentage",
            split_details=[
                SplitDetailIn(user_id="alice", amount=Decimal("50"), percentage=Decimal("40")),
                SplitDetailIn(user_id="bob", amount=Decimal("50"), percentage=Decimal("50")),
            ],
        )
        with pytest.raises(SplitMismatch):
            gateway.create_expense(trip.id, "alice", data, db)

    def test_percentages_with_more_than_two_decimals_are_invalid(self, trip, gateway, db):
        data = make_expense(
            amount="100",
            split_with=["alice", "bob", "dave"],
            split_type="percentage",
            split_details=[
                SplitDetailIn(user_id="alice", amount=Decimal("33.33"), percentage=Decimal("33.333")),
                SplitDetailIn(user_id="bob", amount=Decimal("33.33"), percentage=Decimal("33.333")),
                SplitDetailIn(user_id="dave", amount=Decimal("33.34"), percentage=Decimal("33.334")),
            ],
        )
        with pytest.raises(InvalidInput) as excinfo:
            gateway.create_expense(trip.id, "alice", data, db)
        assert excinfo.value.details["percentage"] == "33.333"
        assert db.query(Expense).count() == 0

    def test_split_amounts_with_more_than_two_decimals_are_invalid(self, trip, gateway, db):
        data = make_expense(
            amount="10",
            split_type="exact",
            split_details=[
                SplitDetailIn(user_id="alice", amount=Decimal("4.995")),
                SplitDetailIn(user_id="bob", amount=Decimal("5.005")),
            ],
        )
        with pytest.raises(InvalidInput):
            gateway.create_expense(trip.id, "alice", data, db)

    def test_two_decimal_percentages_are_accepted(self, trip, gateway, db):
        data = make_expense(
            amount="100",
            split_with=["alice", "bob", "dave"],
            split_type="percentage",
            split_details=[
                SplitDetailIn(user_id="alice", amount=Decimal("33.33"), percentage=Decimal("33.33")),
                SplitDetailIn(user_id="bob", amount=Decimal("33.33"), percentage=Decimal("33.33")),
                SplitDetailIn(user_id="dave", amount=Decimal("33.34"), percentage=Decimal("33.34")),
            ],
        )
        expense = gateway.create_expense(trip.id, "alice", data, db)
        assert sum(Decimal(s.percentage) for s in expense.splits) == Decimal("100")

    def test_details_must_match_split_with(self, trip, gateway, db):
        data = make_expense(
            split_type="exact",
            split_details=[SplitDetailIn(user_id="alice", amount=Decimal("300"))],
        )
        with pytest.raises(InvalidInput):
            gateway.create_expense(trip.id, "alice", data, db)

    def test_details_required_for_exact(self, trip, gateway, db):
        with pytest.raises(InvalidInput):
            gateway.create_expense(trip.id, "alice", make_expense(split_type="exact"), db)

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_amount_must_be_positive(self, trip, gateway, db, amount):
        with pytest.raises(InvalidInput):
            gateway.create_expense(trip.id, "alice", make_expense(amount=amount), db)

    def test_split_with_must_not_be_empty(self, trip, gateway, db):
        with pytest.raises(InvalidInput):
            gateway.create_expense(trip.id, "alice", make_expense(split_with=[]), db)

    def test_unknown_member_in_split(self, trip, gateway, db):
        with pytest.raises(UnknownMember):
            gateway.create_expense(trip.id, "alice", make_expense(split_with=["alice", "mallory"]), db)

    def test_unknown_payer(self, trip, gateway, db):
        with pytest.raises(UnknownMember):
            gateway.create_expense(trip.id, "alice", make_expense(paid_by="mallory"), db)

    def test_invalid_currency(self, trip, gateway, db):
        with pytest.raises(InvalidInput):
            gateway.create_expense(trip.id, "alice", make_expense(currency="baht"), db)

    def test_viewer_is_forbidden(self, trip, gateway, db):
        with pytest.raises(Forbidden):
            gateway.create_expense(trip.id, "carol", make_expense(), db)
        assert db.query(Expense).count() == 0

    def test_non_member_is_forbidden(self, trip, gateway, db):
        with pytest.raises(Forbidden):
            gateway.create_expense(trip.id, "mallory", make_expense(), db)

    def test_unknown_trip(self, gateway, db):
        with pytest.raises(NotFound):
            gateway.create_expense(404, "alice", make_expense(), db)


class TestUpdateExpense:
    def test_replaces_whole_expense(self, trip, gateway, db):
        expense = gateway.create_expense(trip.id, "alice", make_expense(), db)
        data = make_expense(
            amount="90",
            description="Taxi",
            category="transportation",
            split_with=["bob", "carol", "dave"],
        )
        updated = gateway.update_expense(trip.id, expense.id, "bob", data, db)
        assert updated.description == "Taxi"
        assert Decimal(updated.amount) == Decimal("90")
        assert updated.paid_by == "alice"
        assert shares(updated) == [
            ("bob", Decimal("30.00")), ("carol", Decimal("30.00")), ("dave", Decimal("30.00"))
        ]

    def test_invalid_update_changes_nothing(self, trip, gateway, db):
        expense = gateway.create_expense(trip.id, "alice", make_expense(), db)
        data = make_expense(
            amount="500",
            split_type="exact",
            split_details=[
                SplitDetailIn(user_id="alice", amount=Decimal("100")),
                SplitDetailIn(user_id="bob", amount=Decimal("100")),
            ],
        )
        with pytest.raises(SplitMismatch):
            gateway.update_expense(trip.id, expense.id, "alice", data, db)

        db.expire_all()
        stored = expense_service.get_expense(trip.id, expense.id, db)
        assert Decimal(stored.amount) == Decimal("300")
        assert shares(stored) == [("alice", Decimal("150.00")), ("bob", Decimal("150.00"))]

    def test_former_member_may_stay_on_split(self, trip, gateway, db):
        expense = gateway.create_expense(trip.id, "alice", make_expense(split_with=["alice", "bob"]), db)
        gateway.remove_member(trip.id, "alice", "bob", db)

        updated = gateway.update_expense(trip.id, expense.id, "alice", make_expense(amount="400"), db)
        assert shares(updated) == [("alice", Decimal("200.00")), ("bob", Decimal("200.00"))]

        with pytest.raises(UnknownMember):
            gateway.create_expense(trip.id, "alice", make_expense(), db)

    def test_expense_of_other_trip_is_not_found(self, trip, gateway, db):
        expense = gateway.create_expense(trip.id, "alice", make_expense(), db)
        other = gateway.create_trip("alice", TripCreate(name="Tokyo", base_currency="JPY"), db)
        with pytest.raises(NotFound):
            gateway.update_expense(other.id, expense.id, "alice", make_expense(), db)


class TestDeleteAndSettle:
    def test_delete(self, trip, gateway, db):
        expense = gateway.create_expense(trip.id, "alice", make_expense(), db)
        gateway.delete_expense(trip.id, expense.id, "bob", db)
        assert expense_service.list_expenses(trip.id, db) == []
        with pytest.raises(NotFound):
            gateway.delete_expense(trip.id, expense.id, "bob", db)

    def test_viewer_cannot_delete(self, trip, gateway, db):
        expense = gateway.create_expense(trip.id, "alice", make_expense(), db)
        with pytest.raises(Forbidden):
            gateway.delete_expense(trip.id, expense.id, "carol", db)

    def test_settle_only_flips_status(self, trip, gateway, db):
        expense = gateway.create_expense(trip.id, "alice", make_expense(), db)
        settled = gateway.settle_expense(trip.id, expense.id, "bob", db)
        assert settled.status == ExpenseStatus.SETTLED
        assert Decimal(settled.amount) == Decimal("300")
        assert shares(settled) == [("alice", Decimal("150.00")), ("bob", Decimal("150.00"))]

        again = gateway.settle_expense(trip.id, expense.id, "bob", db)
        assert again.status == ExpenseStatus.SETTLED

    def test_settle_missing_expense(self, trip, gateway, db):
        with pytest.raises(NotFound):
            gateway.settle_expense(trip.id, 12345, "alice", db)

    def test_list_is_ordered_by_date(self, trip, gateway, db):
        gateway.create_expense(trip.id, "alice", make_expense(date=date(2024, 3, 5), description="late"), db)
        gateway.create_expense(trip.id, "alice", make_expense(date=date(2024, 3, 1), description="early"), db)
        assert [e.description for e in expense_service.list_expenses(trip.id, db)] == ["early", "late"]
