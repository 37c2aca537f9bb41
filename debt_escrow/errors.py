"""
Error taxonomy for the debt ledger.

Every error is raised synchronously and aborts the operation before anything
is persisted. All of them are ValueErrors so callers written against plain
validation failures keep working.
"""


class DebtLedgerError(ValueError):
    """Base class for ledger rejections"""
    code = "ledger_error"


class UnauthorizedError(DebtLedgerError):
    """Caller does not resolve to the role the operation requires"""
    code = "unauthorized"


class InvalidStateError(DebtLedgerError):
    """Operation is illegal for the debt's current state"""
    code = "invalid_state"


class ArithmeticBoundError(DebtLedgerError):
    """Amount is non-positive or exceeds what the debt allows"""
    code = "arithmetic_bound"


class TimingViolationError(DebtLedgerError):
    """Operation submitted outside its allowed time window"""
    code = "timing_violation"


class InvalidScheduleError(DebtLedgerError):
    """Schedule tag outside the supported set"""
    code = "invalid_schedule"


class DebtNotFoundError(DebtLedgerError):
    """No debt with the given id"""
    code = "not_found"
