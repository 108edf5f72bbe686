"""
Split strategies: turn an expense total into per-member owed amounts.

Everything here is a pure function of its arguments. The coordinator calls
``compute_splits`` when an expense is created or structurally edited and
stores the result; balance computation never re-runs it.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, NamedTuple, Optional, Union

from tripledger.core.exceptions import (
    EmptyParticipantSet,
    InternalInconsistency,
    InvalidAmount,
    SplitMismatch,
    ValidationError,
)
from tripledger.core.money import REMAINDER_FIRST, Money
from tripledger.models.expense import SplitType

logger = logging.getLogger(__name__)

ONE_CENT = Money.from_cents(1)
PERCENT_TOLERANCE = Decimal("0.01")
HUNDRED = Decimal(100)


class SplitShare(NamedTuple):
    """A member's share of an expense, before it is persisted."""
    member_id: int
    amount: Money


def _unique_sorted(member_ids: Iterable[int]) -> List[int]:
    return sorted(set(member_ids))


def split_equal(total: Money, participant_ids: Iterable[int]) -> List[SplitShare]:
    """Divide equally; leftover cents go to the lowest member ids."""
    members = _unique_sorted(participant_ids)
    if not members:
        raise EmptyParticipantSet("Select at least one member to split with")
    return [SplitShare(m, part) for m, part in zip(members, total.divide(len(members), REMAINDER_FIRST))]


def split_paid_for(total: Money, payer_id: int, participant_ids: Iterable[int]) -> List[SplitShare]:
    """Payer covers everything; the selected members owe the total equally."""
    members = [m for m in _unique_sorted(participant_ids) if m != payer_id]
    if not members:
        raise EmptyParticipantSet("Select at least one person this was paid for")
    return split_equal(total, members)


def split_custom(total: Money, amounts: Dict[int, Money]) -> List[SplitShare]:
    """
    Use caller-provided amounts.

    Zero rows are dropped. A difference of one cent from the total is
    absorbed by the lowest member id so the stored rows sum exactly.
    """
    if not amounts:
        raise EmptyParticipantSet("Custom split needs at least one member amount")
    for member_id, amount in amounts.items():
        if amount.is_negative():
            raise ValidationError(
                "Split amounts must not be negative",
                {"member_id": member_id, "amount": str(amount)},
            )
    shares = [SplitShare(m, amounts[m]) for m in sorted(amounts) if not amounts[m].is_zero()]
    if not shares:
        raise EmptyParticipantSet("Custom split needs at least one non-zero amount")

    provided = Money.total(s.amount for s in shares)
    difference = total - provided
    if difference.abs() > ONE_CENT:
        raise SplitMismatch(
            "Custom amounts must match total expense amount",
            {"total": str(total), "provided": str(provided)},
        )
    if not difference.is_zero():
        first = shares[0]
        adjusted = first.amount + difference
        if adjusted.is_zero():
            shares = shares[1:]
        else:
            shares[0] = SplitShare(first.member_id, adjusted)
    return shares


def split_percentage(total: Money, percentages: Dict[int, Decimal]) -> List[SplitShare]:
    """Allocate by percentage; percentages must add up to 100 within 0.01."""
    if not percentages:
        raise EmptyParticipantSet("Percentage split needs at least one member")
    for member_id, pct in percentages.items():
        if pct < 0:
            raise ValidationError(
                "Percentages must not be negative",
                {"member_id": member_id, "percentage": str(pct)},
            )
    members = [m for m in sorted(percentages) if percentages[m] != 0]
    if not members:
        raise EmptyParticipantSet("Percentage split needs at least one non-zero percentage")

    pct_sum = sum(percentages[m] for m in members)
    if abs(pct_sum - HUNDRED) > PERCENT_TOLERANCE:
        raise SplitMismatch(
            "Percentages must add up to 100",
            {"total_percentage": str(pct_sum)},
        )
    parts = total.allocate([percentages[m] for m in members])
    return [SplitShare(m, part) for m, part in zip(members, parts)]


def check_split_total(total: Money, shares: List[SplitShare]) -> None:
    """Raise InternalInconsistency unless the shares add up to the total exactly."""
    allocated = Money.total(s.amount for s in shares)
    if allocated != total:
        logger.critical(f"Split shares sum to {allocated}, expected {total} ({shares})")
        raise InternalInconsistency(
            "Split shares do not sum to the expense total",
            {"total": str(total), "allocated": str(allocated)},
        )


def compute_splits(
    split_type: SplitType,
    total: Money,
    participant_ids: Optional[Iterable[int]] = None,
    payer_id: Optional[int] = None,
    amounts: Optional[Dict[int, Money]] = None,
    percentages: Optional[Dict[int, Decimal]] = None,
) -> List[SplitShare]:
    """
    Materialize the per-member shares for an expense.

    ``participant_ids`` drives Equal and PaidFor, ``amounts`` drives Custom and
    ``percentages`` drives Percentage. The result is ordered by member id and
    always sums exactly to ``total``.
    """
    if not total.is_positive():
        raise InvalidAmount("Expense amount must be greater than zero", {"amount": str(total)})

    split_type = SplitType(split_type)
    if split_type == SplitType.EQUAL:
        shares = split_equal(total, participant_ids or [])
    elif split_type == SplitType.PAID_FOR:
        if payer_id is None:
            raise ValidationError("PaidFor split needs the payer")
        shares = split_paid_for(total, payer_id, participant_ids or [])
    elif split_type == SplitType.CUSTOM:
        shares = split_custom(total, amounts or {})
    else:
        shares = split_percentage(total, percentages or {})

    check_split_total(total, shares)
    return shares


def to_money(value: Union[Money, Decimal, int, str], field: str = "amount") -> Money:
    """Convert user input to Money, reporting bad values as ValidationError."""
    try:
        return Money(value)
    except (TypeError, ValueError, InvalidOperation) as e:
        raise ValidationError(f"Invalid {field}: {e}", {"field": field}) from e
