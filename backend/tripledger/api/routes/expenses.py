"""
Expense management routes.
"""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List
from tripledger.db.session import get_db
from tripledger.models.expense import Expense
from tripledger.schemas.expense import ExpenseCreate, ExpenseUpdate, ExpenseResponse, ExpenseSplitResponse
from tripledger.services import ledger_service
from tripledger.services.expense_service import get_expense as load_expense, list_expenses

router = APIRouter(prefix="/expenses", tags=["expenses"])


def _expense_response(expense: Expense) -> ExpenseResponse:
    """Build the response with payer and member names."""
    splits = [
        ExpenseSplitResponse(
            member_id=s.member_id,
            display_name=s.member.display_name,
            amount=s.amount,
            percentage=s.percentage
        )
        for s in expense.splits
    ]
    return ExpenseResponse(
        id=expense.id,
        trip_id=expense.trip_id,
        description=expense.description,
        category=expense.category,
        expense_date=expense.expense_date,
        amount=expense.amount,
        currency=expense.currency,
        paid_by_member_id=expense.paid_by_member_id,
        paid_by_name=expense.paid_by.display_name,
        split_type=expense.split_type,
        split_count=len(splits),
        is_locked=expense.is_locked,
        splits=splits,
        created_at=expense.created_at,
        updated_at=expense.updated_at
    )


@router.get("", response_model=List[ExpenseResponse])
async def get_trip_expenses(
    trip_id: int,
    db: Session = Depends(get_db)
):
    """List a trip's expenses, newest first."""
    return [_expense_response(e) for e in list_expenses(trip_id, db)]


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense_data: ExpenseCreate,
    db: Session = Depends(get_db)
):
    """Create an expense; splits are computed from the chosen split type."""
    expense = ledger_service.create_expense(db, expense_data)
    return _expense_response(load_expense(expense.id, db))


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: int,
    db: Session = Depends(get_db)
):
    """Get a single expense with its splits."""
    return _expense_response(load_expense(expense_id, db))


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: int,
    expense_data: ExpenseUpdate,
    db: Session = Depends(get_db)
):
    """Update an expense. Locked expenses only accept description and category."""
    ledger_service.update_expense(db, expense_id, expense_data)
    return _expense_response(load_expense(expense_id, db))


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db)
):
    """Delete an unlocked expense."""
    ledger_service.delete_expense(db, expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
