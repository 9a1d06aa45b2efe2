"""
Holiday and Working-Day Date Adjustment Module

Moves repayment dates that fall on holidays or non-working days according to
a reschedule policy: keep the date, move to the next or previous working day,
defer to the next repayment date, or extend the loan term by the shift.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from .config import get_config
from .exceptions import UnsupportedConfigurationError
from .logging_config import get_logger, log_action
from .terms import PeriodFrequencyType

logger = get_logger("loan_schedule.holidays")

# Monday..Friday as date.weekday() values
DEFAULT_WORKING_DAYS = frozenset({0, 1, 2, 3, 4})


class RepaymentRescheduleType(Enum):
    """Configured handling of repayments due on a holiday"""
    SAME_DAY = "same_day"
    MOVE_TO_NEXT_WORKING_DAY = "move_to_next_working_day"
    MOVE_TO_NEXT_REPAYMENT_DAY = "move_to_next_repayment_day"
    MOVE_TO_PREVIOUS_WORKING_DAY = "move_to_previous_working_day"


class HolidayStrategy(Enum):
    """Date adjustment variants"""
    SAME_DAY = "same_day"
    NEXT_WORKING_DAY = "next_working_day"
    PREVIOUS_WORKING_DAY = "previous_working_day"
    NEXT_REPAYMENT_DAY = "next_repayment_day"
    EXTEND_TERM = "extend_term"


@dataclass(frozen=True)
class Holiday:
    """A closed range of holiday dates, optionally with its own reschedule rule"""
    from_date: date
    to_date: date
    reschedule_to: Optional[date] = None
    reschedule_type: Optional[RepaymentRescheduleType] = None
    name: str = ""

    def __post_init__(self):
        if self.to_date < self.from_date:
            raise ValueError(f"Holiday {self.name or self.from_date} ends before it starts")

    def contains(self, on_date: date) -> bool:
        return self.from_date <= on_date <= self.to_date


@dataclass(frozen=True)
class WorkingDays:
    """Weekly working-day pattern and term-extension switches"""
    days: FrozenSet[int] = DEFAULT_WORKING_DAYS
    reschedule_type: RepaymentRescheduleType = RepaymentRescheduleType.MOVE_TO_NEXT_WORKING_DAY
    extend_term_for_daily_repayments: bool = False
    extend_term_for_repayments_on_holidays: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'days', frozenset(self.days))
        if not self.days:
            raise ValueError("At least one working day must be configured")
        invalid = [day for day in self.days if day not in range(7)]
        if invalid:
            raise ValueError(f"Invalid weekday numbers: {sorted(invalid)}")

    def is_working_day(self, on_date: date) -> bool:
        return on_date.weekday() in self.days


@dataclass
class HolidayCalendar:
    """Holidays plus the working-day pattern a loan is scheduled against"""
    holidays: List[Holiday] = field(default_factory=list)
    working_days: Optional[WorkingDays] = None

    @property
    def has_data(self) -> bool:
        return bool(self.holidays) or self.working_days is not None

    def applicable_holiday(self, on_date: date) -> Optional[Holiday]:
        """First holiday covering the date, if any"""
        for holiday in self.holidays:
            if holiday.contains(on_date):
                return holiday
        return None

    def is_holiday(self, on_date: date) -> bool:
        return self.applicable_holiday(on_date) is not None

    def is_non_working_day(self, on_date: date) -> bool:
        if self.working_days is None:
            return False
        return not self.working_days.is_working_day(on_date)

    def is_blocked(self, on_date: date) -> bool:
        """Date is a holiday or falls outside the working week"""
        return self.is_holiday(on_date) or self.is_non_working_day(on_date)


@dataclass(frozen=True)
class AdjustedDateDetails:
    """Result of a date adjustment"""
    adjusted_date: date
    original_date: date
    next_repayment_date: Optional[date] = None

    @property
    def shift_days(self) -> int:
        return (self.adjusted_date - self.original_date).days


def _step_while_blocked(start: date, calendar: HolidayCalendar, step: int, max_days: int) -> date:
    holiday = calendar.applicable_holiday(start)
    if holiday is not None and holiday.reschedule_to is not None:
        return holiday.reschedule_to

    candidate = start
    for _ in range(max_days + 1):
        if not calendar.is_blocked(candidate):
            return candidate
        candidate = candidate + timedelta(days=step)
    raise UnsupportedConfigurationError(
        f"No working day found within {max_days} days of {start.isoformat()}"
    )


def _same_day(repayment_date, calendar, next_repayment_date, max_days) -> AdjustedDateDetails:
    return AdjustedDateDetails(repayment_date, repayment_date, next_repayment_date)


def _next_working_day(repayment_date, calendar, next_repayment_date, max_days) -> AdjustedDateDetails:
    adjusted = _step_while_blocked(repayment_date, calendar, 1, max_days)
    return AdjustedDateDetails(adjusted, repayment_date, next_repayment_date)


def _previous_working_day(repayment_date, calendar, next_repayment_date, max_days) -> AdjustedDateDetails:
    adjusted = _step_while_blocked(repayment_date, calendar, -1, max_days)
    return AdjustedDateDetails(adjusted, repayment_date, next_repayment_date)


def _next_repayment_day(repayment_date, calendar, next_repayment_date, max_days) -> AdjustedDateDetails:
    if not calendar.is_blocked(repayment_date):
        return AdjustedDateDetails(repayment_date, repayment_date, next_repayment_date)
    if next_repayment_date is None:
        # Last repayment has no following date to defer to
        return _next_working_day(repayment_date, calendar, next_repayment_date, max_days)
    return AdjustedDateDetails(next_repayment_date, repayment_date, next_repayment_date)


def _extend_term(repayment_date, calendar, next_repayment_date, max_days) -> AdjustedDateDetails:
    adjusted = _step_while_blocked(repayment_date, calendar, 1, max_days)
    shift = adjusted - repayment_date
    new_next = next_repayment_date + shift if next_repayment_date is not None else None
    return AdjustedDateDetails(adjusted, repayment_date, new_next)


_STRATEGY_FUNCTIONS: Dict[HolidayStrategy, Callable[..., AdjustedDateDetails]] = {
    HolidayStrategy.SAME_DAY: _same_day,
    HolidayStrategy.NEXT_WORKING_DAY: _next_working_day,
    HolidayStrategy.PREVIOUS_WORKING_DAY: _previous_working_day,
    HolidayStrategy.NEXT_REPAYMENT_DAY: _next_repayment_day,
    HolidayStrategy.EXTEND_TERM: _extend_term,
}

_RESCHEDULE_TYPE_STRATEGIES = {
    RepaymentRescheduleType.MOVE_TO_NEXT_WORKING_DAY: HolidayStrategy.NEXT_WORKING_DAY,
    RepaymentRescheduleType.MOVE_TO_PREVIOUS_WORKING_DAY: HolidayStrategy.PREVIOUS_WORKING_DAY,
    RepaymentRescheduleType.MOVE_TO_NEXT_REPAYMENT_DAY: HolidayStrategy.NEXT_REPAYMENT_DAY,
}


def select_strategy(calendar: HolidayCalendar, frequency: PeriodFrequencyType,
                    reschedule_type: Optional[RepaymentRescheduleType] = None) -> HolidayStrategy:
    """
    Pick the adjustment variant for a loan.

    Term extension wins when configured for daily loans or for every loan;
    otherwise the reschedule type maps onto a variant, and same-day or
    unknown types fall back to the next working day.
    """
    working_days = calendar.working_days
    if working_days is not None:
        if frequency.is_daily and working_days.extend_term_for_daily_repayments:
            return HolidayStrategy.EXTEND_TERM
        if working_days.extend_term_for_repayments_on_holidays:
            return HolidayStrategy.EXTEND_TERM

    if reschedule_type is None and working_days is not None:
        reschedule_type = working_days.reschedule_type
    return _RESCHEDULE_TYPE_STRATEGIES.get(reschedule_type, HolidayStrategy.NEXT_WORKING_DAY)


class HolidayAdjuster:
    """
    Applies a holiday calendar to repayment dates.

    A holiday carrying its own reschedule type overrides the working-day
    configuration for dates inside it. Without any calendar data every date
    is returned unchanged.
    """

    def __init__(self, calendar: Optional[HolidayCalendar],
                 frequency: PeriodFrequencyType = PeriodFrequencyType.MONTHS,
                 max_search_days: Optional[int] = None):
        self.calendar = calendar
        self.frequency = frequency
        self.max_search_days = max_search_days or get_config().holiday_max_search_days

    @property
    def enabled(self) -> bool:
        return self.calendar is not None and self.calendar.has_data

    def strategy_for(self, repayment_date: date) -> HolidayStrategy:
        if not self.enabled:
            return HolidayStrategy.SAME_DAY
        holiday = self.calendar.applicable_holiday(repayment_date)
        override = holiday.reschedule_type if holiday is not None else None
        return select_strategy(self.calendar, self.frequency, override)

    def adjust(self, repayment_date: date, next_repayment_date: Optional[date] = None) -> AdjustedDateDetails:
        """Adjust a single repayment date"""
        if not self.enabled:
            return AdjustedDateDetails(repayment_date, repayment_date, next_repayment_date)

        strategy = self.strategy_for(repayment_date)
        details = _STRATEGY_FUNCTIONS[strategy](
            repayment_date, self.calendar, next_repayment_date, self.max_search_days
        )
        if details.adjusted_date != repayment_date:
            log_action(
                logger, "debug", "Repayment date adjusted for holiday",
                action="adjust_repayment_date",
                extra={
                    "strategy": strategy.value,
                    "original_date": repayment_date.isoformat(),
                    "adjusted_date": details.adjusted_date.isoformat(),
                }
            )
        return details

    def should_recalculate_interest(self, original_date: date, adjusted_date: date) -> bool:
        """Whether a date shift is large enough to re-derive the period's interest"""
        if not self.enabled:
            return False
        strategy = self.strategy_for(original_date)
        shift = abs((adjusted_date - original_date).days)
        if strategy == HolidayStrategy.SAME_DAY:
            return False
        if strategy == HolidayStrategy.EXTEND_TERM:
            return shift != 0
        return shift > 1

    def adjust_dates(self, dates: Sequence[date]) -> List[AdjustedDateDetails]:
        """
        Adjust a nominal repayment date sequence.

        When an adjustment moves the following contractual date (term
        extension), the same shift is carried onto every later date.
        """
        pending = list(dates)
        results = []
        for index, nominal in enumerate(pending):
            next_date = pending[index + 1] if index + 1 < len(pending) else None
            details = self.adjust(nominal, next_date)
            if next_date is not None and details.next_repayment_date != next_date:
                shift = details.next_repayment_date - next_date
                for later in range(index + 1, len(pending)):
                    pending[later] = pending[later] + shift
            results.append(details)
        return results
