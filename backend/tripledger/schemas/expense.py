"""
Pydantic schemas for Expense entity.
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from tripledger.models.expense import SplitType
from tripledger.schemas.common import MoneyAmount


class SplitAmountInput(BaseModel):
    """Amount owed by one member in a Custom split."""
    member_id: int
    amount: MoneyAmount


class SplitPercentageInput(BaseModel):
    """Percentage owed by one member in a Percentage split."""
    member_id: int
    percentage: Decimal = Field(decimal_places=4)  # Stored as Numeric(7, 4)


class ExpenseCreate(BaseModel):
    """Schema for expense creation."""
    trip_id: int
    description: str = Field(min_length=1)
    amount: MoneyAmount
    currency: Optional[str] = None  # Must match the trip currency; defaults to it
    paid_by_member_id: int
    split_type: SplitType = SplitType.EQUAL
    category: Optional[str] = None
    expense_date: Optional[date] = None  # Defaults to today (UTC)
    participant_ids: Optional[List[int]] = None  # Equal / PaidFor; Equal defaults to the whole roster
    splits: Optional[List[SplitAmountInput]] = None  # Custom
    percentages: Optional[List[SplitPercentageInput]] = None  # Percentage


class ExpenseUpdate(BaseModel):
    """Schema for expense update. Locked expenses accept only description, category and expense_date."""
    description: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    expense_date: Optional[date] = None
    amount: Optional[MoneyAmount] = None
    currency: Optional[str] = None
    paid_by_member_id: Optional[int] = None
    split_type: Optional[SplitType] = None
    participant_ids: Optional[List[int]] = None
    splits: Optional[List[SplitAmountInput]] = None
    percentages: Optional[List[SplitPercentageInput]] = None


class ExpenseSplitResponse(BaseModel):
    """Schema for one materialized split."""
    member_id: int
    display_name: str
    amount: Decimal
    percentage: Optional[Decimal] = None


class ExpenseResponse(BaseModel):
    """Schema for expense response."""
    id: int
    trip_id: int
    description: str
    category: Optional[str] = None
    expense_date: date
    amount: Decimal
    currency: str
    paid_by_member_id: int
    paid_by_name: str
    split_type: SplitType
    split_count: int
    is_locked: bool
    splits: List[ExpenseSplitResponse] = []
    created_at: datetime
    updated_at: datetime
