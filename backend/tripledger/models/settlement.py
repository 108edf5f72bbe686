"""
Settlement model for direct payments between members.
"""
from sqlalchemy import Column, Numeric, Text, ForeignKey, Integer
from sqlalchemy.orm import relationship
from tripledger.db.base import BaseModel


class Settlement(BaseModel):
    """A payment from one member to another. Immutable; may only be deleted."""
    __tablename__ = "settlements"
    
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    from_member_id = Column(Integer, ForeignKey("trip_members.id"), nullable=False, index=True)
    to_member_id = Column(Integer, ForeignKey("trip_members.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    notes = Column(Text, nullable=True)
    sequence = Column(Integer, nullable=False, index=True)
    
    # Relationships
    trip = relationship("Trip", back_populates="settlements")
    from_member = relationship("TripMember", foreign_keys=[from_member_id])
    to_member = relationship("TripMember", foreign_keys=[to_member_id])
