"""
Expense model and its materialized splits.
"""
from sqlalchemy import Column, String, Numeric, Date, ForeignKey, Integer, Text, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
from tripledger.db.base import BaseModel
import enum


class SplitType(str, enum.Enum):
    """How an expense's total is divided among members."""
    EQUAL = "Equal"
    CUSTOM = "Custom"
    PAID_FOR = "PaidFor"
    PERCENTAGE = "Percentage"


class Expense(BaseModel):
    """Expense model representing a single payment made for the group."""
    __tablename__ = "expenses"
    
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    paid_by_member_id = Column(Integer, ForeignKey("trip_members.id"), nullable=False, index=True)
    description = Column(Text, nullable=False)
    category = Column(String(50), nullable=True)
    expense_date = Column(Date, nullable=False, index=True)  # When it was spent; separate from created_at
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    split_type = Column(SQLEnum(SplitType), nullable=False, default=SplitType.EQUAL)
    sequence = Column(Integer, nullable=False, index=True)  # Position in the trip's ledger
    is_locked = Column(Boolean, default=False, nullable=False)  # Set while a later settlement exists
    
    # Relationships
    trip = relationship("Trip", back_populates="expenses")
    paid_by = relationship("TripMember", foreign_keys=[paid_by_member_id])
    splits = relationship(
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseSplit.member_id",
    )


class ExpenseSplit(BaseModel):
    """One member's owed share of an expense."""
    __tablename__ = "expense_splits"
    
    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("trip_members.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    percentage = Column(Numeric(7, 4), nullable=True)  # Only for Percentage splits
    
    # Relationships
    expense = relationship("Expense", back_populates="splits")
    member = relationship("TripMember")
