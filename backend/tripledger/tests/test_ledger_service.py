"""
Tests for ledger mutations: expense and settlement lifecycle, locking, archiving.
"""
from datetime import date
from decimal import Decimal
import pytest
from pydantic import ValidationError as SchemaValidationError
from tripledger.core.exceptions import (
    EmptyParticipantSet, ExpenseLocked, InvalidAmount, NotFound,
    SplitMismatch, TripArchived, ValidationError
)
from tripledger.core.money import Money
from tripledger.core.utils import utcnow
from tripledger.models.expense import Expense, ExpenseSplit, SplitType
from tripledger.schemas.expense import ExpenseCreate, ExpenseUpdate, SplitAmountInput, SplitPercentageInput
from tripledger.schemas.settlement import SettlementCreate
from tripledger.schemas.trip import MemberCreate, TripCreate
from tripledger.services import ledger_service
from tripledger.services.balance_service import net_balances_for_trip


def split_map(expense):
    return {s.member_id: Money(s.amount) for s in expense.splits}


def dinner(db, trip, members, amount="300.00"):
    alice, bob, carol = members
    return ledger_service.create_expense(db, ExpenseCreate(
        trip_id=trip.id,
        description="Dinner",
        amount=Decimal(amount),
        paid_by_member_id=alice,
        split_type=SplitType.EQUAL,
        participant_ids=[alice, bob, carol],
    ))


def settle(db, trip, from_id, to_id, amount="100.00"):
    return ledger_service.create_settlement(db, SettlementCreate(
        trip_id=trip.id,
        from_member_id=from_id,
        to_member_id=to_id,
        amount=Decimal(amount),
        notes="Full payment settlement",
    ))


def test_create_equal_expense(db, trip, members):
    """Scenario: 300.00 paid by Alice, split equally three ways."""
    alice, bob, carol = members
    expense = dinner(db, trip, members)

    assert split_map(expense) == {alice: Money("100.00"), bob: Money("100.00"), carol: Money("100.00")}
    assert expense.currency == "PHP"
    assert expense.is_locked is False
    assert net_balances_for_trip(trip.id, db) == {
        alice: Money("200.00"), bob: Money("-100.00"), carol: Money("-100.00")
    }


def test_equal_split_defaults_to_whole_roster(db, trip, members):
    alice, bob, carol = members
    expense = ledger_service.create_expense(db, ExpenseCreate(
        trip_id=trip.id, description="Groceries", amount=Decimal("100.00"), paid_by_member_id=bob
    ))
    assert split_map(expense) == {alice: Money("33.34"), bob: Money("33.33"), carol: Money("33.33")}


def test_paid_for_expense(db, trip, members):
    """Alice pays 60.00 for Bob and Carol."""
    alice, bob, carol = members
    ledger_service.create_expense(db, ExpenseCreate(
        trip_id=trip.id,
        description="Museum tickets",
        amount=Decimal("60.00"),
        paid_by_member_id=alice,
        split_type=SplitType.PAID_FOR,
        participant_ids=[bob, carol],
    ))
    assert net_balances_for_trip(trip.id, db) == {
        alice: Money("60.00"), bob: Money("-30.00"), carol: Money("-30.00")
    }


def test_paid_for_members_may_come_as_split_rows(db, trip, members):
    alice, bob, carol = members
    expense = ledger_service.create_expense(db, ExpenseCreate(
        trip_id=trip.id,
        description="Ferry",
        amount=Decimal("50.00"),
        paid_by_member_id=bob,
        split_type=SplitType.PAID_FOR,
        splits=[SplitAmountInput(member_id=carol, amount=Decimal("50.00"))],
    ))
    assert split_map(expense) == {carol: Money("50.00")}


def test_custom_split_mismatch_persists_nothing(db, trip, members):
    alice, bob, carol = members
    with pytest.raises(SplitMismatch):
        ledger_service.create_expense(db, ExpenseCreate(
            trip_id=trip.id,
            description="Boat",
            amount=Decimal("50.00"),
            paid_by_member_id=alice,
            split_type=SplitType.CUSTOM,
            splits=[
                SplitAmountInput(member_id=alice, amount=Decimal("20.00")),
                SplitAmountInput(member_id=bob, amount=Decimal("20.00")),
            ],
        ))
    assert db.query(Expense).count() == 0
    assert db.query(ExpenseSplit).count() == 0
    # the failed transaction left the trip sequence untouched
    db.refresh(trip)
    assert trip.ledger_sequence == 0


def test_percentage_split_keeps_percentages(db, trip, members):
    alice, bob, carol = members
    expense = ledger_service.create_expense(db, ExpenseCreate(
        trip_id=trip.id,
        description="Villa",
        amount=Decimal("1000.00"),
        paid_by_member_id=carol,
        split_type=SplitType.PERCENTAGE,
        percentages=[
            SplitPercentageInput(member_id=alice, percentage=Decimal("50")),
            SplitPercentageInput(member_id=bob, percentage=Decimal("25")),
            SplitPercentageInput(member_id=carol, percentage=Decimal("25")),
        ],
    ))
    assert split_map(expense) == {alice: Money("500.00"), bob: Money("250.00"), carol: Money("250.00")}
    assert {s.member_id: s.percentage for s in expense.splits}[alice] == Decimal("50")


def test_create_expense_validation(db, trip, members):
    alice, bob, carol = members
    base = dict(trip_id=trip.id, description="Lunch", amount=Decimal("10.00"), paid_by_member_id=alice)

    with pytest.raises(InvalidAmount):
        ledger_service.create_expense(db, ExpenseCreate(**{**base, "amount": Decimal("0")}))
    with pytest.raises(ValidationError):
        ledger_service.create_expense(db, ExpenseCreate(**{**base, "paid_by_member_id": 999}))
    with pytest.raises(ValidationError):
        ledger_service.create_expense(db, ExpenseCreate(**base, participant_ids=[alice, 999]))
    with pytest.raises(ValidationError):
        ledger_service.create_expense(db, ExpenseCreate(**base, currency="USD"))
    with pytest.raises(EmptyParticipantSet):
        ledger_service.create_expense(db, ExpenseCreate(**base, participant_ids=[]))
    with pytest.raises(NotFound):
        ledger_service.create_expense(db, ExpenseCreate(**{**base, "trip_id": 999}))


def test_settlement_locks_earlier_expenses(db, trip, members):
    """Scenario: Bob pays Alice 100 after the dinner; the dinner becomes locked."""
    alice, bob, carol = members
    expense = dinner(db, trip, members)
    settle(db, trip, bob, alice)

    db.refresh(expense)
    assert expense.is_locked is True
    assert net_balances_for_trip(trip.id, db) == {
        alice: Money("100.00"), bob: Money("0"), carol: Money("-100.00")
    }


def test_locked_expense_cannot_be_deleted(db, trip, members):
    alice, bob, carol = members
    expense = dinner(db, trip, members)
    settle(db, trip, bob, alice)

    with pytest.raises(ExpenseLocked):
        ledger_service.delete_expense(db, expense.id)
    assert db.query(Expense).count() == 1


def test_expense_created_after_settlement_stays_unlocked(db, trip, members):
    alice, bob, carol = members
    first = dinner(db, trip, members)
    settle(db, trip, bob, alice)
    second = dinner(db, trip, members, amount="30.00")

    db.refresh(first)
    assert first.is_locked is True
    assert second.is_locked is False
    ledger_service.delete_expense(db, second.id)
    assert db.query(Expense).count() == 1


def test_locked_expense_accepts_description_only(db, trip, members):
    alice, bob, carol = members
    expense = dinner(db, trip, members)
    settle(db, trip, bob, alice)

    updated = ledger_service.update_expense(db, expense.id, ExpenseUpdate(description="Seafood dinner"))
    assert updated.description == "Seafood dinner"

    # resending unchanged structural values is accepted
    updated = ledger_service.update_expense(db, expense.id, ExpenseUpdate(
        description="Seafood dinner at the pier",
        amount=Decimal("300.00"),
        paid_by_member_id=alice,
        split_type=SplitType.EQUAL,
    ))
    assert updated.description == "Seafood dinner at the pier"

    with pytest.raises(ExpenseLocked):
        ledger_service.update_expense(db, expense.id, ExpenseUpdate(amount=Decimal("330.00")))
    with pytest.raises(ExpenseLocked):
        ledger_service.update_expense(db, expense.id, ExpenseUpdate(participant_ids=[alice, bob]))

    db.refresh(expense)
    assert Money(expense.amount) == Money("300.00")
    assert len(expense.splits) == 3


def test_lock_follows_settlement_lifecycle(db, trip, members):
    """Deleting the settlement unlocks; recording an equivalent one locks again."""
    alice, bob, carol = members
    expense = dinner(db, trip, members)
    payment = settle(db, trip, bob, alice)

    ledger_service.delete_settlement(db, payment.id)
    db.refresh(expense)
    assert expense.is_locked is False
    assert net_balances_for_trip(trip.id, db)[bob] == Money("-100.00")

    settle(db, trip, bob, alice)
    db.refresh(expense)
    assert expense.is_locked is True


def test_update_unlocked_expense_recomputes_splits(db, trip, members):
    alice, bob, carol = members
    expense = dinner(db, trip, members)

    updated = ledger_service.update_expense(db, expense.id, ExpenseUpdate(amount=Decimal("100.00")))
    assert split_map(updated) == {alice: Money("33.34"), bob: Money("33.33"), carol: Money("33.33")}

    updated = ledger_service.update_expense(db, expense.id, ExpenseUpdate(
        split_type=SplitType.CUSTOM,
        splits=[
            SplitAmountInput(member_id=bob, amount=Decimal("70.00")),
            SplitAmountInput(member_id=carol, amount=Decimal("30.00")),
        ],
    ))
    assert updated.split_type == SplitType.CUSTOM
    assert split_map(updated) == {bob: Money("70.00"), carol: Money("30.00")}
    assert db.query(ExpenseSplit).count() == 2

    updated = ledger_service.update_expense(db, expense.id, ExpenseUpdate(paid_by_member_id=bob))
    assert net_balances_for_trip(trip.id, db) == {
        alice: Money("0"), bob: Money("30.00"), carol: Money("-30.00")
    }


def test_update_and_delete_unknown_ids(db, trip):
    with pytest.raises(NotFound):
        ledger_service.update_expense(db, 404, ExpenseUpdate(description="x"))
    with pytest.raises(NotFound):
        ledger_service.delete_expense(db, 404)
    with pytest.raises(NotFound):
        ledger_service.delete_settlement(db, 404)


def test_settlement_validation(db, trip, members):
    alice, bob, carol = members
    with pytest.raises(ValidationError):
        settle(db, trip, alice, alice)
    with pytest.raises(InvalidAmount):
        settle(db, trip, bob, alice, amount="0")
    with pytest.raises(ValidationError):
        settle(db, trip, bob, 999)


def test_archived_trip_rejects_mutations(db, trip, members):
    alice, bob, carol = members
    expense = dinner(db, trip, members)
    payment = settle(db, trip, bob, alice)
    ledger_service.archive_trip(db, trip.id)

    with pytest.raises(TripArchived):
        dinner(db, trip, members)
    with pytest.raises(TripArchived):
        settle(db, trip, carol, alice)
    with pytest.raises(TripArchived):
        ledger_service.update_expense(db, expense.id, ExpenseUpdate(description="Renamed"))
    with pytest.raises(TripArchived):
        ledger_service.delete_settlement(db, payment.id)
    with pytest.raises(TripArchived):
        ledger_service.add_member(db, trip.id, MemberCreate(display_name="Dave"))

    # reads still work
    assert net_balances_for_trip(trip.id, db)[carol] == Money("-100.00")

    ledger_service.unarchive_trip(db, trip.id)
    dinner(db, trip, members, amount="3.00")


def test_archive_unknown_trip(db):
    with pytest.raises(NotFound):
        ledger_service.archive_trip(db, 12345)


def test_zero_sum_through_a_sequence_of_operations(db, trip, members):
    alice, bob, carol = members
    dave = ledger_service.add_member(db, trip.id, MemberCreate(display_name="Dave")).id

    first = dinner(db, trip, members, amount="100.00")
    ledger_service.create_expense(db, ExpenseCreate(
        trip_id=trip.id, description="Gas", amount=Decimal("77.77"),
        paid_by_member_id=dave, split_type=SplitType.PAID_FOR, participant_ids=[alice, bob, carol, dave],
    ))
    ledger_service.update_expense(db, first.id, ExpenseUpdate(participant_ids=[bob, carol, dave]))
    payment = settle(db, trip, carol, dave, amount="12.34")
    settle(db, trip, bob, alice, amount="5.00")
    ledger_service.delete_settlement(db, payment.id)

    balances = net_balances_for_trip(trip.id, db)
    assert set(balances) == {alice, bob, carol, dave}
    assert Money.total(balances.values()).is_zero()
    assert balances == net_balances_for_trip(trip.id, db)


def villa(db, trip, shares, amount="1000.00"):
    return ledger_service.create_expense(db, ExpenseCreate(
        trip_id=trip.id,
        description="Villa",
        amount=Decimal(amount),
        paid_by_member_id=trip.members[2].id,
        split_type=SplitType.PERCENTAGE,
        percentages=[SplitPercentageInput(member_id=m, percentage=Decimal(p)) for m, p in shares],
    ))


def test_percentages_beyond_four_places_are_rejected():
    """Percentages are stored with four decimal places; finer input is refused."""
    with pytest.raises(SchemaValidationError):
        SplitPercentageInput(member_id=1, percentage=Decimal("0.00004"))
    assert SplitPercentageInput(member_id=1, percentage=Decimal("33.3333")).percentage == Decimal("33.3333")


def test_locked_percentage_expense_accepts_unchanged_amount(db, trip, members):
    alice, bob, carol = members
    expense = villa(db, trip, [(alice, "33.3333"), (bob, "33.3333"), (carol, "33.3334")])
    before = split_map(expense)
    assert before == {alice: Money("333.34"), bob: Money("333.33"), carol: Money("333.33")}
    settle(db, trip, alice, carol, "10.00")

    updated = ledger_service.update_expense(db, expense.id, ExpenseUpdate(amount=Decimal("1000.00")))
    assert updated.is_locked is True
    assert split_map(updated) == before
    assert {s.member_id: s.percentage for s in updated.splits} == {
        alice: Decimal("33.3333"), bob: Decimal("33.3333"), carol: Decimal("33.3334")
    }


def test_amount_edit_keeps_stored_percentages(db, trip, members):
    alice, bob, carol = members
    expense = villa(db, trip, [(alice, "12.5"), (bob, "87.5")], amount="200.00")
    assert split_map(expense) == {alice: Money("25.00"), bob: Money("175.00")}

    updated = ledger_service.update_expense(db, expense.id, ExpenseUpdate(amount=Decimal("400.00")))
    assert split_map(updated) == {alice: Money("50.00"), bob: Money("350.00")}
    assert {s.member_id: s.percentage for s in updated.splits} == {
        alice: Decimal("12.5"), bob: Decimal("87.5")
    }


def test_trip_keeps_description_and_dates(db):
    trip = ledger_service.create_trip(db, TripCreate(
        name="Cebu",
        description="  Island hopping  ",
        start_date=date(2025, 3, 1),
        end_date=date(2025, 3, 5),
        members=[MemberCreate(display_name="Alice")],
    ))
    assert trip.description == "Island hopping"
    assert (trip.start_date, trip.end_date) == (date(2025, 3, 1), date(2025, 3, 5))

    with pytest.raises(ValidationError):
        ledger_service.create_trip(db, TripCreate(
            name="Backwards",
            start_date=date(2025, 3, 5),
            end_date=date(2025, 3, 1),
        ))


def test_expense_date_defaults_to_today_and_stays_editable(db, trip, members):
    alice, bob, carol = members
    expense = dinner(db, trip, members)
    assert expense.expense_date == utcnow().date()

    dated = ledger_service.create_expense(db, ExpenseCreate(
        trip_id=trip.id,
        description="Ferry",
        amount=Decimal("90.00"),
        paid_by_member_id=bob,
        expense_date=date(2025, 3, 2),
    ))
    assert dated.expense_date == date(2025, 3, 2)

    # the date does not move money, so a locked expense still takes it
    settle(db, trip, bob, alice)
    updated = ledger_service.update_expense(db, expense.id, ExpenseUpdate(expense_date=date(2025, 3, 1)))
    assert updated.is_locked is True
    assert updated.expense_date == date(2025, 3, 1)


def test_trip_lock_query_selects_for_update(db):
    """The trip row is read with FOR UPDATE on backends that support row locks."""
    from sqlalchemy.dialects import mysql, postgresql

    statement = ledger_service._trip_lock_query(db, 1).statement
    assert "FOR UPDATE" in str(statement.compile(dialect=mysql.dialect()))
    assert "FOR UPDATE" in str(statement.compile(dialect=postgresql.dialect()))


def test_every_mutation_takes_the_trip_lock(db, trip, members, monkeypatch):
    alice, bob, carol = members
    locked = []
    lock_trip = ledger_service._lock_trip

    def recording_lock(session, trip_id):
        locked.append(trip_id)
        return lock_trip(session, trip_id)

    monkeypatch.setattr(ledger_service, "_lock_trip", recording_lock)

    expense = dinner(db, trip, members)
    ledger_service.update_expense(db, expense.id, ExpenseUpdate(amount=Decimal("90.00")))
    payment = settle(db, trip, bob, alice, "30.00")
    ledger_service.delete_settlement(db, payment.id)
    ledger_service.delete_expense(db, expense.id)
    ledger_service.add_member(db, trip.id, MemberCreate(display_name="Dave"))
    ledger_service.archive_trip(db, trip.id)

    assert locked == [trip.id] * 7
