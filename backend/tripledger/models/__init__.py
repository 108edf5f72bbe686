"""Models package - Import all models for SQLAlchemy registration."""
from tripledger.models.trip import Trip, TripMember
from tripledger.models.expense import Expense, ExpenseSplit, SplitType
from tripledger.models.settlement import Settlement

__all__ = [
    "Trip",
    "TripMember",
    "Expense",
    "ExpenseSplit",
    "SplitType",
    "Settlement",
]
