"""
Settlement routes.
"""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List
from tripledger.db.session import get_db
from tripledger.models.settlement import Settlement
from tripledger.schemas.settlement import SettlementCreate, SettlementResponse
from tripledger.services import ledger_service, trip_service

router = APIRouter(prefix="/settlements", tags=["settlements"])


@router.get("", response_model=List[SettlementResponse])
async def get_trip_settlements(
    trip_id: int,
    db: Session = Depends(get_db)
):
    """List a trip's settlements in the order they were recorded."""
    trip_service.get_trip(trip_id, db)
    return db.query(Settlement).filter(
        Settlement.trip_id == trip_id
    ).order_by(Settlement.sequence).all()


@router.post("", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_settlement(
    settlement_data: SettlementCreate,
    db: Session = Depends(get_db)
):
    """Record a payment from one member to another."""
    return ledger_service.create_settlement(db, settlement_data)


@router.delete("/{settlement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_settlement(
    settlement_id: int,
    db: Session = Depends(get_db)
):
    """Delete a settlement; balances and expense locks are recomputed."""
    ledger_service.delete_settlement(db, settlement_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
