"""
Expense read helpers.
"""
from sqlalchemy.orm import Session, joinedload, selectinload
from typing import List
from tripledger.core.exceptions import NotFound
from tripledger.models.expense import Expense, ExpenseSplit
from tripledger.models.trip import Trip


def get_expense(expense_id: int, db: Session) -> Expense:
    """Load an expense with payer and splits."""
    expense = db.query(Expense).options(
        joinedload(Expense.paid_by),
        selectinload(Expense.splits).joinedload(ExpenseSplit.member)
    ).filter(Expense.id == expense_id).first()
    if not expense:
        raise NotFound("Expense", expense_id)
    return expense


def list_expenses(trip_id: int, db: Session) -> List[Expense]:
    """All expenses of a trip, most recent expense date first."""
    if not db.query(Trip.id).filter(Trip.id == trip_id).first():
        raise NotFound("Trip", trip_id)
    return db.query(Expense).options(
        joinedload(Expense.paid_by),
        selectinload(Expense.splits).joinedload(ExpenseSplit.member)
    ).filter(
        Expense.trip_id == trip_id
    ).order_by(Expense.expense_date.desc(), Expense.created_at.desc(), Expense.id.desc()).all()
