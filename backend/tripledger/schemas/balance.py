"""
Pydantic schemas for balance views.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


class MemberBalanceResponse(BaseModel):
    """Net balance of one member; positive means the member is owed money."""
    member_id: int
    display_name: str
    net_balance: Decimal


class BreakdownEntry(BaseModel):
    """One expense or settlement in a member's history."""
    kind: str  # "expense" or "settlement"
    entry_id: int
    created_at: datetime
    description: str
    paid_by_member_id: Optional[int] = None
    paid_by_name: Optional[str] = None
    to_member_id: Optional[int] = None
    amount: Decimal
    net_amount: Decimal  # Effect of this entry on the balance
    running_balance: Decimal


class MemberBreakdownResponse(BaseModel):
    """Member balance with the ordered history that produced it."""
    trip_id: int
    member_id: int
    display_name: str
    viewer_member_id: Optional[int] = None
    net_balance: Decimal  # Pairwise with the viewer when one is given
    entries: List[BreakdownEntry]
