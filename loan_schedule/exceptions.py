"""
Loan Schedule Exceptions

Every error raised by the schedule core derives from ValueError, so callers
that validate input by catching ValueError keep working.
"""


class LoanScheduleError(ValueError):
    """Base class for schedule calculation errors"""
    pass


class UnsupportedConfigurationError(LoanScheduleError):
    """Raised for frequency, day-count or method combinations that cannot be computed"""
    pass


class ScheduleInvariantError(LoanScheduleError):
    """Raised when a requested period or date does not exist in the schedule"""
    pass


class ScheduleDeserializationError(LoanScheduleError):
    """Raised when a stored schedule model cannot be restored"""
    pass
