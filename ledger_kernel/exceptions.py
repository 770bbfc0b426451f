"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger kernel (HTTP handlers, operator scripts, the fleet
recalculator) must tell "account does not exist" apart from "database is
down" without parsing messages.  Every error therefore:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        orchestrator.recalculate_account(account_id)
    except AccountNotFoundError as e:
        return {"error": e.code, "account_id": e.account_id}
    except StorageError as e:
        alert_operator(e.operation, e.detail)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- MovementNotFoundError
    |
    +-- ValidationError
    |   +-- InvalidFilterError
    |   +-- InvalidPaginationError
    |   +-- InvalidAmountError
    |   +-- InvalidStatusTransitionError
    |
    +-- ConsistencyError
    |   +-- OptimisticLockError
    |
    +-- StorageError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                        | When Raised
--------------|-----------------------------|-------------------------------------
Not found     | ACCOUNT_NOT_FOUND           | Account ID doesn't exist
              | MOVEMENT_NOT_FOUND          | Movement ID doesn't exist
--------------|-----------------------------|-------------------------------------
Validation    | INVALID_FILTER              | dateFrom > dateTo, bad period, ...
              | INVALID_PAGINATION          | Negative limit / offset
              | INVALID_AMOUNT              | Zero, float, or two-sided amount
              | INVALID_STATUS_TRANSITION   | e.g. cancelled -> settled
--------------|-----------------------------|-------------------------------------
Consistency   | OPTIMISTIC_LOCK_CONFLICT    | Concurrent modification detected
--------------|-----------------------------|-------------------------------------
Storage       | STORAGE_ERROR               | Backend unavailable / txn aborted
--------------|-----------------------------|-------------------------------------
Configuration | CONFIGURATION_ERROR         | Invalid settings file or env value

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ValidationError is raised BEFORE any storage access.  No retry.
2. NotFoundError surfaces directly to the caller.  No retry.
3. ConsistencyError is retried once by the orchestrator with a fresh
   session; if the second attempt also conflicts it propagates.
4. StorageError is fatal for the operation.  The transaction boundary has
   already rolled back every partial write.
5. The fleet recalculator never raises for a single account's failure; it
   records the error code and message in the per-account outcome.
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(LedgerKernelError):
    """Base exception for missing accounts and movements."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account with given ID was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class MovementNotFoundError(NotFoundError):
    """Movement with given ID was not found."""

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement not found: {movement_id}")


# Validation exceptions


class ValidationError(LedgerKernelError):
    """Input rejected before touching storage."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidFilterError(ValidationError):
    """Malformed query filter (e.g. date_from after date_to)."""

    code: str = "INVALID_FILTER"


class InvalidPaginationError(ValidationError):
    """Negative limit or offset."""

    code: str = "INVALID_PAGINATION"


class InvalidAmountError(ValidationError):
    """Amount is zero, a float, or has both entry and exit sides set."""

    code: str = "INVALID_AMOUNT"


class InvalidStatusTransitionError(ValidationError):
    """Movement status change not permitted from the current status."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, movement_id: str, from_status: str, to_status: str):
        self.movement_id = movement_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            "status",
            f"movement {movement_id} cannot go from {from_status} to {to_status}",
        )


# Consistency exceptions


class ConsistencyError(LedgerKernelError):
    """Recompute cannot safely proceed on the data it read."""

    code: str = "CONSISTENCY_ERROR"


class OptimisticLockError(ConsistencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Storage exceptions


class StorageError(LedgerKernelError):
    """Underlying storage unavailable or transaction aborted."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage error during {operation}: {detail}")


# Configuration exceptions


class ConfigurationError(LedgerKernelError):
    """Settings file or environment override is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid setting '{key}': {reason}")
