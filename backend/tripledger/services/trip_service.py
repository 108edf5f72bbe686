"""
Trip read helpers: details, listings and the cross-trip user dashboard.
"""
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from tripledger.core.exceptions import NotFound
from tripledger.core.money import Money
from tripledger.models.expense import Expense, ExpenseSplit
from tripledger.models.trip import Trip, TripMember
from tripledger.services.balance_service import net_balances_for_trip

logger = logging.getLogger(__name__)


def get_trip(trip_id: int, db: Session) -> Trip:
    trip = db.query(Trip).filter(Trip.id == trip_id).first()
    if not trip:
        raise NotFound("Trip", trip_id)
    return trip


def get_member(trip_id: int, member_id: int, db: Session) -> TripMember:
    member = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.id == member_id
    ).first()
    if not member:
        raise NotFound("Member", member_id)
    return member


def list_trips(db: Session, archived: Optional[bool] = None) -> List[Trip]:
    """List trips, optionally only archived or only active ones."""
    query = db.query(Trip)
    if archived is not None:
        query = query.filter(Trip.is_archived == archived)
    return query.order_by(Trip.created_at.desc(), Trip.id.desc()).all()


def total_expenses(trip_id: int, db: Session) -> Decimal:
    """Sum of all expense amounts in a trip."""
    amounts = db.query(Expense.amount).filter(Expense.trip_id == trip_id).all()
    return Money.total(Money(row[0]) for row in amounts).to_decimal()


def member_share(trip_id: int, member_id: int, db: Session) -> Decimal:
    """Sum of one member's split amounts across a trip's expenses."""
    get_member(trip_id, member_id, db)
    amounts = db.query(ExpenseSplit.amount).join(
        Expense, ExpenseSplit.expense_id == Expense.id
    ).filter(
        Expense.trip_id == trip_id,
        ExpenseSplit.member_id == member_id
    ).all()
    return Money.total(Money(row[0]) for row in amounts).to_decimal()


class TripBalance(NamedTuple):
    trip: Trip
    member: TripMember
    net_balance: Money


class UserDashboard(NamedTuple):
    user_id: str
    overall_balance: Dict[str, Money]
    trips: List[TripBalance]


def user_dashboard(user_id: str, db: Session) -> UserDashboard:
    """
    A user's net position in every trip they are a member of.

    Balances are summed per currency; amounts in different currencies are
    never added together.
    """
    memberships = db.query(TripMember).filter(
        TripMember.user_id == user_id
    ).order_by(TripMember.trip_id, TripMember.id).all()

    overall: Dict[str, Money] = defaultdict(Money.zero)
    trips = []
    balances_cache: Dict[int, Dict[int, Money]] = {}
    for member in memberships:
        if member.trip_id not in balances_cache:
            balances_cache[member.trip_id] = net_balances_for_trip(member.trip_id, db)
        balance = balances_cache[member.trip_id][member.id]
        trip = member.trip
        overall[trip.currency] += balance
        trips.append(TripBalance(trip=trip, member=member, net_balance=balance))

    logger.debug(f"Dashboard for user {user_id}: {len(trips)} trips")
    return UserDashboard(user_id=user_id, overall_balance=dict(overall), trips=trips)
