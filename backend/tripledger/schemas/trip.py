"""
Pydantic schemas for Trip and TripMember entities.
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import date, datetime
from decimal import Decimal


class MemberCreate(BaseModel):
    """Schema for adding a member to a trip."""
    display_name: str = Field(min_length=1, max_length=100)
    user_id: Optional[str] = None  # Opaque id from the identity provider


class MemberResponse(BaseModel):
    """Schema for trip member response."""
    id: int
    trip_id: int
    display_name: str
    user_id: Optional[str] = None
    
    class Config:
        from_attributes = True


class TripCreate(BaseModel):
    """Schema for trip creation."""
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)  # Defaults to DEFAULT_CURRENCY
    members: List[MemberCreate] = []


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    name: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    currency: str
    is_archived: bool
    created_at: datetime
    updated_at: datetime
    
    class Config:
        from_attributes = True


class TripDetailResponse(TripResponse):
    """Schema for detailed trip response with members and totals."""
    members: List[MemberResponse] = []
    member_count: int
    total_expenses: Decimal
    viewer_member_id: Optional[int] = None
    your_share: Optional[Decimal] = None  # Sum of the viewer's split amounts


class TripBalanceItem(BaseModel):
    """A user's position in one trip."""
    trip_id: int
    trip_name: str
    currency: str
    member_id: int
    is_archived: bool
    net_balance: Decimal


class UserDashboardResponse(BaseModel):
    """Balances of one user across every trip they belong to."""
    user_id: str
    overall_balance: Dict[str, Decimal]  # currency -> summed net balance
    trips: List[TripBalanceItem]
