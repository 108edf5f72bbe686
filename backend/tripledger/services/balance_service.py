"""
Balance aggregation over a trip's ledger.

The functions at the top are pure: they take plain ``LedgerExpense`` and
``LedgerSettlement`` views and never touch the database, so recomputing from
the same ledger always gives the same answer. The ``*_for_trip`` helpers at
the bottom load a trip's ledger and feed it through them.

Sign convention: a positive balance means the member is owed money, a
negative one means the member owes money.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional

from sqlalchemy.orm import Session, selectinload

from tripledger.core.exceptions import InternalInconsistency, NotFound, ValidationError
from tripledger.core.money import Money
from tripledger.models.expense import Expense
from tripledger.models.settlement import Settlement
from tripledger.models.trip import Trip, TripMember

logger = logging.getLogger(__name__)

EXPENSE = "expense"
SETTLEMENT = "settlement"


class LedgerExpense(NamedTuple):
    id: int
    payer_id: int
    amount: Money
    splits: Dict[int, Money]
    created_at: datetime
    description: str = ""


class LedgerSettlement(NamedTuple):
    id: int
    from_id: int
    to_id: int
    amount: Money
    created_at: datetime
    notes: Optional[str] = None


class RunningEntry(NamedTuple):
    """One row of a member's history with the balance after applying it."""
    kind: str
    entry_id: int
    created_at: datetime
    description: str
    paid_by_member_id: Optional[int]
    to_member_id: Optional[int]
    amount: Money
    delta: Money
    running_balance: Money


def expense_view(expense: Expense) -> LedgerExpense:
    return LedgerExpense(
        id=expense.id,
        payer_id=expense.paid_by_member_id,
        amount=Money(expense.amount),
        splits={s.member_id: Money(s.amount) for s in expense.splits},
        created_at=expense.created_at,
        description=expense.description or "",
    )


def settlement_view(settlement: Settlement) -> LedgerSettlement:
    return LedgerSettlement(
        id=settlement.id,
        from_id=settlement.from_member_id,
        to_id=settlement.to_member_id,
        amount=Money(settlement.amount),
        created_at=settlement.created_at,
        notes=settlement.notes,
    )


# Per-entry effects

def expense_effect(expense: LedgerExpense, member_id: int) -> Money:
    """Change in ``member_id``'s net balance caused by one expense."""
    own_share = expense.splits.get(member_id, Money.zero())
    if member_id == expense.payer_id:
        return expense.amount - own_share
    return -own_share


def settlement_effect(settlement: LedgerSettlement, member_id: int) -> Money:
    """Paying reduces debt (balance goes up); receiving reduces credit."""
    if member_id == settlement.from_id:
        return settlement.amount
    if member_id == settlement.to_id:
        return -settlement.amount
    return Money.zero()


def pairwise_expense_effect(expense: LedgerExpense, member_id: int, other_id: int) -> Money:
    """What one expense moves between exactly two members, from ``member_id``'s side."""
    if expense.payer_id == member_id and other_id in expense.splits:
        return expense.splits[other_id]
    if expense.payer_id == other_id and member_id in expense.splits:
        return -expense.splits[member_id]
    return Money.zero()


def pairwise_settlement_effect(settlement: LedgerSettlement, member_id: int, other_id: int) -> Money:
    if settlement.from_id == member_id and settlement.to_id == other_id:
        return settlement.amount
    if settlement.from_id == other_id and settlement.to_id == member_id:
        return -settlement.amount
    return Money.zero()


# Aggregates

def check_closed_ledger(balances: Dict[int, Money]) -> None:
    """Raise InternalInconsistency unless the balances sum to zero."""
    total = Money.total(balances.values())
    if not total.is_zero():
        rendered = ", ".join(f"{k}={v}" for k, v in sorted(balances.items()))
        logger.critical(f"Closed-ledger invariant violated: balances sum to {total} ({rendered})")
        raise InternalInconsistency(
            "Net balances do not sum to zero",
            {"sum": str(total)},
        )


def compute_net_balances(
    member_ids: Iterable[int],
    expenses: Iterable[LedgerExpense],
    settlements: Iterable[LedgerSettlement],
) -> Dict[int, Money]:
    """
    Net balance of every member relative to the whole group.

    Members that appear in ledger entries but not in ``member_ids`` are still
    included so that the zero-sum check sees every cent.
    """
    balances: Dict[int, Money] = {m: Money.zero() for m in member_ids}

    for expense in expenses:
        involved = set(expense.splits) | {expense.payer_id}
        for member_id in involved:
            balances[member_id] = balances.get(member_id, Money.zero()) + expense_effect(expense, member_id)

    for settlement in settlements:
        for member_id in (settlement.from_id, settlement.to_id):
            balances[member_id] = balances.get(member_id, Money.zero()) + settlement_effect(settlement, member_id)

    check_closed_ledger(balances)
    return dict(sorted(balances.items()))


def compute_pairwise_balance(
    member_id: int,
    other_id: int,
    expenses: Iterable[LedgerExpense],
    settlements: Iterable[LedgerSettlement],
) -> Money:
    """
    Bilateral balance between two members from ``member_id``'s side.

    Only expenses where one of the two paid and the other holds a share count,
    plus settlements made directly between them. This is its own ledger, not a
    projection of the group balances.
    """
    balance = Money.zero()
    for expense in expenses:
        balance += pairwise_expense_effect(expense, member_id, other_id)
    for settlement in settlements:
        balance += pairwise_settlement_effect(settlement, member_id, other_id)
    return balance


def _ordering_key(entry):
    created_at, entry_id, kind = entry[0], entry[1], entry[2]
    return created_at, entry_id, 0 if kind == EXPENSE else 1


def compute_running_balance(
    member_id: int,
    expenses: Iterable[LedgerExpense],
    settlements: Iterable[LedgerSettlement],
    viewer_id: Optional[int] = None,
) -> List[RunningEntry]:
    """
    A member's ledger history in order of occurrence with cumulative balance.

    Without ``viewer_id`` every entry the member takes part in is listed with
    its effect on the group balance. With ``viewer_id`` only entries between
    the two members are listed, with their bilateral effect.
    """
    events = []
    for expense in expenses:
        if viewer_id is None:
            if expense.payer_id != member_id and member_id not in expense.splits:
                continue
            delta = expense_effect(expense, member_id)
        else:
            involved = {expense.payer_id} | set(expense.splits)
            if member_id not in involved or viewer_id not in involved:
                continue
            delta = pairwise_expense_effect(expense, member_id, viewer_id)
            if delta.is_zero() and expense.payer_id not in (member_id, viewer_id):
                continue
        events.append((expense.created_at, expense.id, EXPENSE, expense, delta))

    for settlement in settlements:
        if viewer_id is None:
            if member_id not in (settlement.from_id, settlement.to_id):
                continue
            delta = settlement_effect(settlement, member_id)
        else:
            if {settlement.from_id, settlement.to_id} != {member_id, viewer_id}:
                continue
            delta = pairwise_settlement_effect(settlement, member_id, viewer_id)
        events.append((settlement.created_at, settlement.id, SETTLEMENT, settlement, delta))

    events.sort(key=_ordering_key)

    running = Money.zero()
    history = []
    for created_at, entry_id, kind, entry, delta in events:
        running += delta
        if kind == EXPENSE:
            history.append(RunningEntry(
                kind=kind,
                entry_id=entry_id,
                created_at=created_at,
                description=entry.description,
                paid_by_member_id=entry.payer_id,
                to_member_id=None,
                amount=entry.amount,
                delta=delta,
                running_balance=running,
            ))
        else:
            history.append(RunningEntry(
                kind=kind,
                entry_id=entry_id,
                created_at=created_at,
                description=entry.notes or "Settlement",
                paid_by_member_id=entry.from_id,
                to_member_id=entry.to_id,
                amount=entry.amount,
                delta=delta,
                running_balance=running,
            ))
    return history


# Database-backed helpers

class TripLedger(NamedTuple):
    trip: Trip
    members: List[TripMember]
    expenses: List[LedgerExpense]
    settlements: List[LedgerSettlement]


def load_trip_ledger(trip_id: int, db: Session) -> TripLedger:
    """Read a trip's roster and ledger into plain views."""
    trip = db.query(Trip).filter(Trip.id == trip_id).first()
    if not trip:
        raise NotFound("Trip", trip_id)
    expenses = db.query(Expense).options(
        selectinload(Expense.splits)
    ).filter(Expense.trip_id == trip_id).all()
    settlements = db.query(Settlement).filter(Settlement.trip_id == trip_id).all()
    return TripLedger(
        trip=trip,
        members=list(trip.members),
        expenses=[expense_view(e) for e in expenses],
        settlements=[settlement_view(s) for s in settlements],
    )


def net_balances_for_trip(trip_id: int, db: Session) -> Dict[int, Money]:
    ledger = load_trip_ledger(trip_id, db)
    return compute_net_balances(
        [m.id for m in ledger.members],
        ledger.expenses,
        ledger.settlements,
    )


class MemberBreakdown(NamedTuple):
    member: TripMember
    viewer: Optional[TripMember]
    net_balance: Money
    entries: List[RunningEntry]


def member_breakdown(
    trip_id: int,
    member_id: int,
    db: Session,
    viewer_member_id: Optional[int] = None,
) -> MemberBreakdown:
    """
    Net balance and running history for one member.

    With a viewer the balance is the pairwise balance between the member and
    the viewer, which is what a "balance with me" screen shows.
    """
    ledger = load_trip_ledger(trip_id, db)
    members = {m.id: m for m in ledger.members}
    if member_id not in members:
        raise NotFound("Member", member_id)
    viewer = None
    if viewer_member_id is not None:
        if viewer_member_id == member_id:
            raise ValidationError("Viewer must be a different member")
        if viewer_member_id not in members:
            raise NotFound("Member", viewer_member_id)
        viewer = members[viewer_member_id]

    entries = compute_running_balance(member_id, ledger.expenses, ledger.settlements, viewer_member_id)
    if viewer is None:
        net = compute_net_balances(members, ledger.expenses, ledger.settlements)[member_id]
    else:
        net = compute_pairwise_balance(member_id, viewer_member_id, ledger.expenses, ledger.settlements)

    # the last running total must agree with the independently computed net
    final = entries[-1].running_balance if entries else Money.zero()
    if final != net:
        logger.critical(
            f"Running balance {final} disagrees with net balance {net} "
            f"for member {member_id} in trip {trip_id}"
        )
        raise InternalInconsistency("Running balance does not match net balance")

    return MemberBreakdown(member=members[member_id], viewer=viewer, net_balance=net, entries=entries)
