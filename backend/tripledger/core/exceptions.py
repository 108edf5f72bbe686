"""
Ledger error taxonomy.

Services raise these; the API layer renders them through a single exception
handler registered in ``tripledger.main``.
"""
from typing import Any, Optional


class LedgerError(Exception):
    """Base class for errors surfaced by the ledger services."""
    status_code = 400
    code = "ledger_error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(LedgerError):
    """Client input is malformed or inconsistent."""
    status_code = 422
    code = "validation_error"


class SplitMismatch(ValidationError):
    """Custom or percentage splits do not reconcile with the expense total."""
    code = "split_mismatch"


class InvalidAmount(ValidationError):
    """An amount that must be positive is zero or negative."""
    code = "invalid_amount"


class EmptyParticipantSet(ValidationError):
    """No one is left to share the expense."""
    code = "empty_participant_set"


class ExpenseLocked(LedgerError):
    """Expense structure is frozen because settlements were recorded after it."""
    status_code = 409
    code = "expense_locked"

    def __init__(self, message: str = None, details: Optional[Any] = None):
        super().__init__(
            message or "Expense is locked by a later settlement; delete the settlement or record a new expense instead",
            details,
        )


class TripArchived(LedgerError):
    """Mutation attempted on an archived trip."""
    status_code = 409
    code = "trip_archived"

    def __init__(self, trip_id: int):
        super().__init__(f"Trip {trip_id} is archived", {"trip_id": trip_id})


class NotFound(LedgerError):
    """Referenced entity does not exist in the given scope."""
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found", {"entity": entity, "id": entity_id})


class InternalInconsistency(LedgerError):
    """
    The closed-ledger invariant failed.

    This is a bug, never a client error: the operation must halt instead of
    returning a wrong balance.
    """
    status_code = 500
    code = "internal_inconsistency"
