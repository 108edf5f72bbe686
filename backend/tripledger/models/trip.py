"""
Trip model and its member roster.
"""
from sqlalchemy import Column, String, Boolean, Date, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from tripledger.db.base import BaseModel


class Trip(BaseModel):
    """Trip model representing a group sharing expenses."""
    __tablename__ = "trips"
    
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True, index=True)
    end_date = Column(Date, nullable=True)
    currency = Column(String(3), nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    ledger_sequence = Column(Integer, default=0, nullable=False)  # Last sequence stamped on an expense or settlement
    
    # Relationships
    members = relationship("TripMember", back_populates="trip", cascade="all, delete-orphan", order_by="TripMember.id")
    expenses = relationship("Expense", back_populates="trip", cascade="all, delete-orphan")
    settlements = relationship("Settlement", back_populates="trip", cascade="all, delete-orphan")

    def next_sequence(self) -> int:
        """Advance and return the trip's ledger sequence. Caller must hold the trip lock."""
        self.ledger_sequence = (self.ledger_sequence or 0) + 1
        return self.ledger_sequence


class TripMember(BaseModel):
    """A member of a trip's roster. Members are never removed once added."""
    __tablename__ = "trip_members"
    
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)  # Opaque id from the identity provider
    display_name = Column(String(100), nullable=False)
    
    # Relationships
    trip = relationship("Trip", back_populates="members")
