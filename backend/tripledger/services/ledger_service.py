"""
Ledger mutations: the only code that writes trips, expenses and settlements.

Every mutation runs in a single transaction that starts by row-locking the
trip, so concurrent writers on one trip are serialized and an expense is
never committed without its splits.

Lock rule: an expense is locked while any settlement in the same trip was
recorded after it (compared by ledger sequence). Creating a settlement locks
every earlier expense; deleting one recomputes the flag from what remains.
"""
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from tripledger.core.config import settings
from tripledger.core.utils import utcnow
from tripledger.core.exceptions import (
    ExpenseLocked,
    InvalidAmount,
    NotFound,
    TripArchived,
    ValidationError,
)
from tripledger.core.money import Money
from tripledger.models.expense import Expense, ExpenseSplit, SplitType
from tripledger.models.settlement import Settlement
from tripledger.models.trip import Trip, TripMember
from tripledger.schemas.expense import ExpenseCreate, ExpenseUpdate
from tripledger.schemas.settlement import SettlementCreate
from tripledger.schemas.trip import MemberCreate, TripCreate
from tripledger.services.split_service import SplitShare, compute_splits, to_money

logger = logging.getLogger(__name__)

STRUCTURAL_FIELDS = {
    "amount", "currency", "paid_by_member_id", "split_type",
    "participant_ids", "splits", "percentages",
}


@contextmanager
def _transaction(db: Session):
    """Commit on success, roll back anything partial on error."""
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _trip_lock_query(db: Session, trip_id: int):
    return db.query(Trip).filter(Trip.id == trip_id).with_for_update()


def _lock_trip(db: Session, trip_id: int) -> Trip:
    """Fetch a trip with a row lock held until the transaction ends."""
    trip = _trip_lock_query(db, trip_id).first()
    if not trip:
        raise NotFound("Trip", trip_id)
    return trip


def _require_active(trip: Trip) -> None:
    if trip.is_archived:
        logger.warning(f"Rejected mutation on archived trip {trip.id}")
        raise TripArchived(trip.id)


def _roster(db: Session, trip_id: int) -> Set[int]:
    rows = db.query(TripMember.id).filter(TripMember.trip_id == trip_id).all()
    return {row[0] for row in rows}


def _require_members(roster: Set[int], member_ids, role: str = "member") -> None:
    unknown = sorted(set(member_ids) - roster)
    if unknown:
        raise ValidationError(
            f"Unknown {role} for this trip",
            {"member_ids": unknown},
        )


def _normalize_currency(trip: Trip, currency: Optional[str]) -> str:
    if currency is None:
        return trip.currency
    currency = currency.strip().upper()
    if currency != trip.currency:
        # No conversion: a trip's ledger is kept in a single currency
        raise ValidationError(
            "Expense currency must match the trip currency",
            {"currency": currency, "trip_currency": trip.currency},
        )
    return currency


def _normalize_description(description: Optional[str]) -> str:
    description = (description or "").strip()
    if not description:
        raise ValidationError("Description is required")
    return description


def _check_trip_dates(data: TripCreate) -> None:
    if data.start_date and data.end_date and data.end_date < data.start_date:
        raise ValidationError(
            "Trip end date must not be before its start date",
            {"start_date": str(data.start_date), "end_date": str(data.end_date)},
        )


def _refresh_locks(db: Session, trip_id: int) -> None:
    """Recompute ``is_locked`` for every expense in the trip."""
    db.flush()
    latest_settlement = db.query(func.max(Settlement.sequence)).filter(
        Settlement.trip_id == trip_id
    ).scalar()
    for expense in db.query(Expense).filter(Expense.trip_id == trip_id).all():
        expense.is_locked = latest_settlement is not None and latest_settlement > expense.sequence


class SplitRequest:
    """The inputs of a split computation, merged from a request and stored state."""

    def __init__(
        self,
        split_type: SplitType,
        amount: Money,
        payer_id: int,
        participant_ids: Optional[List[int]] = None,
        amounts: Optional[Dict[int, Money]] = None,
        percentages: Optional[Dict[int, Decimal]] = None,
    ):
        self.split_type = SplitType(split_type)
        self.amount = amount
        self.payer_id = payer_id
        self.participant_ids = participant_ids
        self.amounts = amounts
        self.percentages = percentages

    def referenced_members(self) -> Set[int]:
        members = {self.payer_id}
        members.update(self.participant_ids or [])
        members.update(self.amounts or {})
        members.update(self.percentages or {})
        return members

    def compute(self, roster: Set[int]) -> List[SplitShare]:
        _require_members(roster, self.referenced_members())
        participants = self.participant_ids
        if self.split_type == SplitType.EQUAL and participants is None:
            participants = sorted(roster)
        return compute_splits(
            self.split_type,
            self.amount,
            participant_ids=participants,
            payer_id=self.payer_id,
            amounts=self.amounts,
            percentages=self.percentages,
        )


def _amounts_from(data) -> Optional[Dict[int, Money]]:
    if data.splits is None:
        return None
    amounts: Dict[int, Money] = {}
    for row in data.splits:
        if row.member_id in amounts:
            raise ValidationError("Duplicate member in splits", {"member_id": row.member_id})
        amounts[row.member_id] = to_money(row.amount, "split amount")
    return amounts


def _percentages_from(data) -> Optional[Dict[int, Decimal]]:
    if data.percentages is None:
        return None
    percentages: Dict[int, Decimal] = {}
    for row in data.percentages:
        if row.member_id in percentages:
            raise ValidationError("Duplicate member in percentages", {"member_id": row.member_id})
        percentages[row.member_id] = row.percentage
    return percentages


def _split_request_from_create(data: ExpenseCreate) -> SplitRequest:
    participants = data.participant_ids
    if participants is None and data.split_type == SplitType.PAID_FOR and data.splits:
        # Clients may send the paid-for members as split rows
        participants = [row.member_id for row in data.splits]
    return SplitRequest(
        split_type=data.split_type,
        amount=to_money(data.amount),
        payer_id=data.paid_by_member_id,
        participant_ids=participants,
        amounts=_amounts_from(data),
        percentages=_percentages_from(data),
    )


def _split_request_from_update(expense: Expense, data: ExpenseUpdate) -> SplitRequest:
    """
    Merge an update with the stored expense.

    Split parameters that are not sent are rebuilt from the stored splits for
    the resulting split type.
    """
    split_type = data.split_type or expense.split_type
    amount = to_money(data.amount) if data.amount is not None else Money(expense.amount)
    payer_id = data.paid_by_member_id if data.paid_by_member_id is not None else expense.paid_by_member_id

    participants = data.participant_ids
    amounts = _amounts_from(data)
    percentages = _percentages_from(data)
    same_type = split_type == expense.split_type

    if split_type in (SplitType.EQUAL, SplitType.PAID_FOR) and participants is None:
        if split_type == SplitType.PAID_FOR and data.splits:
            participants = [row.member_id for row in data.splits]
        elif same_type:
            participants = [s.member_id for s in expense.splits]
    elif split_type == SplitType.CUSTOM and amounts is None and same_type:
        amounts = {s.member_id: Money(s.amount) for s in expense.splits}
    elif split_type == SplitType.PERCENTAGE and percentages is None and same_type:
        percentages = {s.member_id: s.percentage for s in expense.splits if s.percentage is not None}

    return SplitRequest(
        split_type=split_type,
        amount=amount,
        payer_id=payer_id,
        participant_ids=participants,
        amounts=amounts,
        percentages=percentages,
    )


def _materialize_splits(expense: Expense, shares: List[SplitShare], request: SplitRequest) -> None:
    percentages = request.percentages if request.split_type == SplitType.PERCENTAGE else {}
    expense.splits = [
        ExpenseSplit(
            member_id=share.member_id,
            amount=share.amount.to_decimal(),
            percentage=(percentages or {}).get(share.member_id),
        )
        for share in shares
    ]


def _split_signature(shares) -> List[tuple]:
    return sorted((s.member_id, Money(s.amount).cents) for s in shares)


def _get_expense(db: Session, expense_id: int) -> Expense:
    expense = db.query(Expense).options(
        selectinload(Expense.splits)
    ).filter(Expense.id == expense_id).first()
    if not expense:
        raise NotFound("Expense", expense_id)
    return expense


# Trips

def create_trip(db: Session, data: TripCreate) -> Trip:
    """Create a trip with its initial roster."""
    _check_trip_dates(data)
    currency = (data.currency or settings.DEFAULT_CURRENCY).strip().upper()
    with _transaction(db):
        trip = Trip(
            name=data.name.strip(),
            description=(data.description or "").strip() or None,
            start_date=data.start_date,
            end_date=data.end_date,
            currency=currency,
            is_archived=False,
            ledger_sequence=0,
        )
        trip.members = [
            TripMember(display_name=m.display_name.strip(), user_id=m.user_id)
            for m in data.members
        ]
        db.add(trip)
    db.refresh(trip)
    logger.info(f"Created trip {trip.id} ({currency}) with {len(trip.members)} members")
    return trip


def add_member(db: Session, trip_id: int, data: MemberCreate) -> TripMember:
    """Add a member to a trip's roster."""
    with _transaction(db):
        trip = _lock_trip(db, trip_id)
        _require_active(trip)
        member = TripMember(trip_id=trip.id, display_name=data.display_name.strip(), user_id=data.user_id)
        db.add(member)
    db.refresh(member)
    logger.info(f"Added member {member.id} to trip {trip_id}")
    return member


def set_trip_archived(db: Session, trip_id: int, archived: bool) -> Trip:
    """Archive or unarchive a trip. Archived trips reject ledger mutations."""
    with _transaction(db):
        trip = _lock_trip(db, trip_id)
        trip.is_archived = archived
    db.refresh(trip)
    logger.info(f"Trip {trip_id} {'archived' if archived else 'unarchived'}")
    return trip


def archive_trip(db: Session, trip_id: int) -> Trip:
    return set_trip_archived(db, trip_id, True)


def unarchive_trip(db: Session, trip_id: int) -> Trip:
    return set_trip_archived(db, trip_id, False)


# Expenses

def create_expense(db: Session, data: ExpenseCreate) -> Expense:
    """Validate, split and persist a new expense with its splits."""
    with _transaction(db):
        trip = _lock_trip(db, data.trip_id)
        _require_active(trip)
        roster = _roster(db, trip.id)
        _require_members(roster, [data.paid_by_member_id], "payer")

        request = _split_request_from_create(data)
        shares = request.compute(roster)

        expense = Expense(
            trip_id=trip.id,
            paid_by_member_id=data.paid_by_member_id,
            description=_normalize_description(data.description),
            category=data.category.lower() if data.category else None,
            expense_date=data.expense_date or utcnow().date(),
            amount=request.amount.to_decimal(),
            currency=_normalize_currency(trip, data.currency),
            split_type=request.split_type,
            sequence=trip.next_sequence(),
            is_locked=False,
        )
        _materialize_splits(expense, shares, request)
        db.add(expense)
    db.refresh(expense)
    logger.info(
        f"Created expense {expense.id} in trip {trip.id}: {expense.amount} {expense.currency} "
        f"paid by member {expense.paid_by_member_id}, {expense.split_type.value} split over {len(shares)}"
    )
    return expense


def update_expense(db: Session, expense_id: int, data: ExpenseUpdate) -> Expense:
    """
    Update an expense.

    Unlocked expenses may change anything; splits are recomputed and
    replaced. Locked expenses only take description, category and
    expense_date; a structural field whose value would change raises
    ExpenseLocked.
    """
    with _transaction(db):
        expense = _get_expense(db, expense_id)
        trip = _lock_trip(db, expense.trip_id)
        _require_active(trip)
        db.refresh(expense)

        structural = STRUCTURAL_FIELDS & data.model_fields_set
        structural = {f for f in structural if getattr(data, f) is not None}
        if structural:
            roster = _roster(db, trip.id)
            request = _split_request_from_update(expense, data)
            shares = request.compute(roster)
            currency = _normalize_currency(trip, data.currency or expense.currency)

            changed = (
                request.amount != Money(expense.amount)
                or request.payer_id != expense.paid_by_member_id
                or request.split_type != expense.split_type
                or currency != expense.currency
                or _split_signature(shares) != _split_signature(expense.splits)
            )
            if changed and expense.is_locked:
                logger.warning(f"Rejected structural edit of locked expense {expense_id}")
                raise ExpenseLocked(details={"expense_id": expense_id, "fields": sorted(structural)})
            if changed:
                expense.amount = request.amount.to_decimal()
                expense.paid_by_member_id = request.payer_id
                expense.split_type = request.split_type
                expense.currency = currency
                _materialize_splits(expense, shares, request)

        if data.description is not None:
            expense.description = _normalize_description(data.description)
        if "category" in data.model_fields_set:
            expense.category = data.category.lower() if data.category else None
        if data.expense_date is not None:
            expense.expense_date = data.expense_date
    db.refresh(expense)
    logger.info(f"Updated expense {expense_id}")
    return expense


def delete_expense(db: Session, expense_id: int) -> None:
    """Hard-delete an unlocked expense and its splits."""
    with _transaction(db):
        expense = _get_expense(db, expense_id)
        trip = _lock_trip(db, expense.trip_id)
        _require_active(trip)
        db.refresh(expense)
        if expense.is_locked:
            logger.warning(f"Rejected delete of locked expense {expense_id}")
            raise ExpenseLocked(details={"expense_id": expense_id})
        db.delete(expense)
    logger.info(f"Deleted expense {expense_id}")


# Settlements

def create_settlement(db: Session, data: SettlementCreate) -> Settlement:
    """Record a payment between two members and lock the expenses before it."""
    amount = to_money(data.amount)
    if not amount.is_positive():
        raise InvalidAmount("Settlement amount must be greater than zero", {"amount": str(amount)})
    if data.from_member_id == data.to_member_id:
        raise ValidationError("A member cannot settle with themselves")

    with _transaction(db):
        trip = _lock_trip(db, data.trip_id)
        _require_active(trip)
        _require_members(_roster(db, trip.id), [data.from_member_id, data.to_member_id])

        settlement = Settlement(
            trip_id=trip.id,
            from_member_id=data.from_member_id,
            to_member_id=data.to_member_id,
            amount=amount.to_decimal(),
            notes=data.notes,
            sequence=trip.next_sequence(),
        )
        db.add(settlement)
        _refresh_locks(db, trip.id)
    db.refresh(settlement)
    logger.info(
        f"Recorded settlement {settlement.id} in trip {trip.id}: "
        f"member {settlement.from_member_id} paid member {settlement.to_member_id} {settlement.amount}"
    )
    return settlement


def delete_settlement(db: Session, settlement_id: int) -> None:
    """Remove a settlement; expenses no longer followed by one are unlocked."""
    with _transaction(db):
        settlement = db.query(Settlement).filter(Settlement.id == settlement_id).first()
        if not settlement:
            raise NotFound("Settlement", settlement_id)
        trip = _lock_trip(db, settlement.trip_id)
        _require_active(trip)
        db.delete(settlement)
        _refresh_locks(db, trip.id)
    logger.info(f"Deleted settlement {settlement_id}")
