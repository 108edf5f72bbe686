"""
Settlement suggestions: the fewest practical transfers that clear a trip.
"""
import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from tripledger.core.money import Money
from tripledger.services.balance_service import check_closed_ledger, net_balances_for_trip

logger = logging.getLogger(__name__)


class Transfer:
    """Represents a single suggested transfer between members."""
    def __init__(self, from_member_id: int, to_member_id: int, amount: Money):
        self.from_member_id = from_member_id
        self.to_member_id = to_member_id
        self.amount = amount

    def __eq__(self, other):
        if not isinstance(other, Transfer):
            return NotImplemented
        return (self.from_member_id, self.to_member_id, self.amount) == (
            other.from_member_id, other.to_member_id, other.amount
        )

    def __repr__(self):
        return f"Transfer({self.from_member_id} -> {self.to_member_id}: {self.amount})"


def _largest(amounts: Dict[int, int]) -> int:
    """Member with the largest outstanding amount; lowest id wins ties."""
    return min(amounts, key=lambda member_id: (-amounts[member_id], member_id))


def minimize_transfers(balances: Dict[int, Money]) -> List[Transfer]:
    """
    Minimize the number of transfers needed to settle debts.

    Greedy: repeatedly match the largest debtor with the largest creditor and
    move the smaller of the two amounts. Finding the true minimum is NP-hard;
    this gives at most n - 1 transfers.
    """
    check_closed_ledger(balances)

    # Work in cents so every step is exact
    creditors = {uid: bal.cents for uid, bal in balances.items() if bal.is_positive()}
    debtors = {uid: -bal.cents for uid, bal in balances.items() if bal.is_negative()}

    transfers = []
    while creditors and debtors:
        creditor_id = _largest(creditors)
        debtor_id = _largest(debtors)

        transfer_amount = min(creditors[creditor_id], debtors[debtor_id])
        transfers.append(Transfer(debtor_id, creditor_id, Money.from_cents(transfer_amount)))

        creditors[creditor_id] -= transfer_amount
        debtors[debtor_id] -= transfer_amount
        if creditors[creditor_id] == 0:
            del creditors[creditor_id]
        if debtors[debtor_id] == 0:
            del debtors[debtor_id]

    return transfers


def suggest_settlements(trip_id: int, db: Session) -> List[Transfer]:
    """Suggested transfers for a trip. Does not record anything."""
    transfers = minimize_transfers(net_balances_for_trip(trip_id, db))
    logger.debug(f"Suggested {len(transfers)} transfers for trip {trip_id}")
    return transfers
