"""
Trip management and balance routes.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from tripledger.db.session import get_db
from tripledger.schemas.trip import (
    TripCreate, TripResponse, TripDetailResponse, MemberCreate,
    MemberResponse, UserDashboardResponse, TripBalanceItem
)
from tripledger.schemas.balance import MemberBalanceResponse, MemberBreakdownResponse, BreakdownEntry
from tripledger.schemas.settlement import TransferSuggestion
from tripledger.services import ledger_service, trip_service
from tripledger.services.balance_service import member_breakdown, net_balances_for_trip
from tripledger.services.settlement_service import suggest_settlements

router = APIRouter(prefix="/trips", tags=["trips"])


def _trip_detail(trip, db: Session, viewer_member_id: Optional[int] = None) -> TripDetailResponse:
    members = [MemberResponse.model_validate(m) for m in trip.members]
    your_share = None
    if viewer_member_id is not None:
        your_share = trip_service.member_share(trip.id, viewer_member_id, db)
    return TripDetailResponse(
        id=trip.id,
        name=trip.name,
        description=trip.description,
        start_date=trip.start_date,
        end_date=trip.end_date,
        currency=trip.currency,
        is_archived=trip.is_archived,
        created_at=trip.created_at,
        updated_at=trip.updated_at,
        members=members,
        member_count=len(members),
        total_expenses=trip_service.total_expenses(trip.id, db),
        viewer_member_id=viewer_member_id,
        your_share=your_share
    )


@router.post("", response_model=TripDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    db: Session = Depends(get_db)
):
    """Create a new trip with its initial members."""
    trip = ledger_service.create_trip(db, trip_data)
    return _trip_detail(trip, db)


@router.get("", response_model=List[TripResponse])
async def list_trips(
    archived: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    """List trips; filter with ?archived=true for the archive view."""
    return trip_service.list_trips(db, archived=archived)


@router.get("/users/{user_id}/dashboard", response_model=UserDashboardResponse)
async def get_user_dashboard(
    user_id: str,
    db: Session = Depends(get_db)
):
    """Overall balance of a user across all their trips."""
    dashboard = trip_service.user_dashboard(user_id, db)
    return UserDashboardResponse(
        user_id=dashboard.user_id,
        overall_balance={currency: m.to_decimal() for currency, m in dashboard.overall_balance.items()},
        trips=[
            TripBalanceItem(
                trip_id=item.trip.id,
                trip_name=item.trip.name,
                currency=item.trip.currency,
                member_id=item.member.id,
                is_archived=item.trip.is_archived,
                net_balance=item.net_balance.to_decimal()
            )
            for item in dashboard.trips
        ]
    )


@router.get("/{trip_id}", response_model=TripDetailResponse)
async def get_trip(
    trip_id: int,
    viewer_member_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """
    Get trip details with members and expense total.

    With viewer_member_id the response also carries your_share, the sum of
    that member's split amounts.
    """
    return _trip_detail(trip_service.get_trip(trip_id, db), db, viewer_member_id=viewer_member_id)


@router.post("/{trip_id}/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    trip_id: int,
    member_data: MemberCreate,
    db: Session = Depends(get_db)
):
    """Add a member to the trip roster."""
    return ledger_service.add_member(db, trip_id, member_data)


@router.post("/{trip_id}/archive", response_model=TripResponse)
async def archive_trip(
    trip_id: int,
    db: Session = Depends(get_db)
):
    """Archive a trip. Balances stay readable; the ledger becomes read-only."""
    return ledger_service.archive_trip(db, trip_id)


@router.post("/{trip_id}/unarchive", response_model=TripResponse)
async def unarchive_trip(
    trip_id: int,
    db: Session = Depends(get_db)
):
    """Unarchive a trip."""
    return ledger_service.unarchive_trip(db, trip_id)


@router.get("/{trip_id}/balances", response_model=List[MemberBalanceResponse])
async def get_trip_balances(
    trip_id: int,
    db: Session = Depends(get_db)
):
    """Net balance of every member; positive means the member is owed money."""
    trip = trip_service.get_trip(trip_id, db)
    names = {m.id: m.display_name for m in trip.members}
    balances = net_balances_for_trip(trip_id, db)
    return [
        MemberBalanceResponse(
            member_id=member_id,
            display_name=names.get(member_id, ""),
            net_balance=balance.to_decimal()
        )
        for member_id, balance in balances.items()
    ]


@router.get("/{trip_id}/members/{member_id}/breakdown", response_model=MemberBreakdownResponse)
async def get_member_breakdown(
    trip_id: int,
    member_id: int,
    viewer_member_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """
    Member balance and the ordered history behind it.

    With viewer_member_id the balance and history are bilateral between the
    member and the viewer.
    """
    breakdown = member_breakdown(trip_id, member_id, db, viewer_member_id=viewer_member_id)
    names = {m.id: m.display_name for m in trip_service.get_trip(trip_id, db).members}
    return MemberBreakdownResponse(
        trip_id=trip_id,
        member_id=breakdown.member.id,
        display_name=breakdown.member.display_name,
        viewer_member_id=breakdown.viewer.id if breakdown.viewer else None,
        net_balance=breakdown.net_balance.to_decimal(),
        entries=[
            BreakdownEntry(
                kind=entry.kind,
                entry_id=entry.entry_id,
                created_at=entry.created_at,
                description=entry.description,
                paid_by_member_id=entry.paid_by_member_id,
                paid_by_name=names.get(entry.paid_by_member_id),
                to_member_id=entry.to_member_id,
                amount=entry.amount.to_decimal(),
                net_amount=entry.delta.to_decimal(),
                running_balance=entry.running_balance.to_decimal()
            )
            for entry in breakdown.entries
        ]
    )


@router.get("/{trip_id}/settlement-suggestions", response_model=List[TransferSuggestion])
async def get_settlement_suggestions(
    trip_id: int,
    db: Session = Depends(get_db)
):
    """Suggested transfers that would clear every balance. Nothing is recorded."""
    trip = trip_service.get_trip(trip_id, db)
    names = {m.id: m.display_name for m in trip.members}
    return [
        TransferSuggestion(
            from_member_id=t.from_member_id,
            from_name=names.get(t.from_member_id, ""),
            to_member_id=t.to_member_id,
            to_name=names.get(t.to_member_id, ""),
            amount=t.amount.to_decimal()
        )
        for t in suggest_settlements(trip_id, db)
    ]
