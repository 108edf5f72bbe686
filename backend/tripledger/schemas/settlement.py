"""
Pydantic schemas for Settlement entity and settlement suggestions.
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from tripledger.schemas.common import MoneyAmount


class SettlementCreate(BaseModel):
    """Schema for recording a payment between two members."""
    trip_id: int
    from_member_id: int
    to_member_id: int
    amount: MoneyAmount
    notes: Optional[str] = None


class SettlementResponse(BaseModel):
    """Schema for settlement response."""
    id: int
    trip_id: int
    from_member_id: int
    to_member_id: int
    amount: Decimal
    notes: Optional[str] = None
    created_at: datetime
    
    class Config:
        from_attributes = True


class TransferSuggestion(BaseModel):
    """Schema for a single suggested transfer."""
    from_member_id: int
    from_name: str
    to_member_id: int
    to_name: str
    amount: Decimal
