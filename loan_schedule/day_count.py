"""
Day-Count and Rate-Factor Module

Converts an annual nominal interest rate and the product's day-count
conventions into the periodic rate factor of an interest period. All
arithmetic runs in the caller's decimal context; every rate factor is then
scaled to the context precision in decimal places.
"""

from datetime import date, timedelta
from decimal import Context, Decimal
import calendar

from .currency import scale_to_precision, to_decimal
from .exceptions import UnsupportedConfigurationError
from .terms import (
    DaysInMonthType, DaysInYearCustomStrategy, DaysInYearType, LoanProductDetails,
    PeriodFrequencyType
)

DIVISOR_100 = Decimal('100')
ONE_WEEK_IN_DAYS = Decimal('7')
DAYS_IN_MONTH_30 = Decimal('30')

_DAYS_PER_UNIT = {
    PeriodFrequencyType.DAYS: 1,
    PeriodFrequencyType.WEEKS: 7,
}


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_period(start_date: date, frequency: PeriodFrequencyType, count: int) -> date:
    """Advance a date by a number of frequency units"""
    if frequency == PeriodFrequencyType.DAYS:
        return start_date + timedelta(days=count)
    elif frequency == PeriodFrequencyType.WEEKS:
        return start_date + timedelta(weeks=count)
    elif frequency == PeriodFrequencyType.MONTHS:
        return add_months(start_date, count)
    elif frequency == PeriodFrequencyType.YEARS:
        return add_months(start_date, 12 * count)
    raise UnsupportedConfigurationError(f"Unsupported repayment frequency: {frequency.value}")


def months_between(start_date: date, end_date: date) -> int:
    """Number of complete months from start_date to end_date"""
    months = (end_date.year * 12 + end_date.month) - (start_date.year * 12 + start_date.month)
    if months > 0 and end_date.day < start_date.day:
        months -= 1
    elif months < 0 and end_date.day > start_date.day:
        months += 1
    return months


def units_between(start_date: date, end_date: date, frequency: PeriodFrequencyType) -> int:
    """Number of complete frequency units from start_date to end_date"""
    if frequency == PeriodFrequencyType.MONTHS:
        return months_between(start_date, end_date)
    if frequency == PeriodFrequencyType.YEARS:
        return int(months_between(start_date, end_date) / 12)
    days = (end_date - start_date).days
    if frequency in _DAYS_PER_UNIT:
        return int(days / _DAYS_PER_UNIT[frequency])
    raise UnsupportedConfigurationError(f"Unsupported repayment frequency: {frequency.value}")


def days_in_calendar_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def nominal_interest_rate(interest_rate_percent, mc: Context) -> Decimal:
    """Annual percentage as a fraction of one"""
    return mc.divide(to_decimal(interest_rate_percent), DIVISOR_100)


def period_contains_feb_29(period_from: date, period_due: date) -> bool:
    """Feb 29 of the start year falls in (period_from, period_due]"""
    if not calendar.isleap(period_from.year):
        return False
    leap_day = date(period_from.year, 2, 29)
    return period_from < leap_day <= period_due


def days_in_year(days_in_year_type: DaysInYearType, custom_strategy, interest_period_from: date,
                 repayment_period_from: date, repayment_period_due: date) -> Decimal:
    """
    Days-in-year figure for an interest period.

    Under FEB_29_PERIOD_ONLY a leap year only counts 366 days when the
    repayment period actually contains Feb 29.
    """
    number_of_days = days_in_year_type.number_of_days(interest_period_from)
    if number_of_days == 366 and custom_strategy == DaysInYearCustomStrategy.FEB_29_PERIOD_ONLY:
        number_of_days = 366 if period_contains_feb_29(repayment_period_from, repayment_period_due) else 365
    return Decimal(number_of_days)


def needs_partial_period_calculation(product: LoanProductDetails, interest_period_from: date,
                                     interest_period_due: date, repayment_period_from: date,
                                     repayment_period_due: date) -> bool:
    """Interest period crosses a calendar year under the actual days-in-year convention"""
    if product.days_in_year_type != DaysInYearType.ACTUAL:
        return False
    if interest_period_due.year - interest_period_from.year <= 0:
        return False
    return (product.days_in_year_custom_strategy != DaysInYearCustomStrategy.FEB_29_PERIOD_ONLY
            or period_contains_feb_29(repayment_period_from, repayment_period_due))


def period_fractions(interest_period_from: date, interest_period_due: date, mc: Context,
                     interest_recognition_on_disbursement_date: bool = False) -> Decimal:
    """
    Sum of yearly fractions covered by a period.

    Each calendar year contributes days_in_that_year_slice / length_of_year.
    A slice ends on Dec 31, or on Jan 1 of the following year when interest
    is recognised from the disbursement date.
    """
    cumulated = Decimal('0')
    actual_year = interest_period_from.year
    actual_date = interest_period_from
    while actual_year <= interest_period_due.year:
        if actual_year == interest_period_due.year:
            slice_due = interest_period_due
        elif interest_recognition_on_disbursement_date:
            slice_due = date(actual_year + 1, 1, 1)
        else:
            slice_due = date(actual_year, 12, 31)
        slice_days = Decimal((slice_due - actual_date).days)
        cumulated = mc.add(cumulated, mc.divide(slice_days, Decimal(days_in_calendar_year(actual_year))))
        actual_date = slice_due
        actual_year += 1
    return cumulated


def rate_factor_by_repayment_period(interest_rate: Decimal, multiplier_in_days, repayment_every,
                                    days_in_year_value, actual_days, calculated_days,
                                    mc: Context) -> Decimal:
    """
    rate * (multiplier_in_days * repayment_every / days_in_year) * actual / calculated

    A zero-length contractual period yields zero.
    """
    calculated_days = to_decimal(calculated_days)
    if calculated_days == 0:
        return Decimal('0')
    fraction = mc.divide(mc.multiply(to_decimal(multiplier_in_days), to_decimal(repayment_every)),
                         to_decimal(days_in_year_value))
    value = mc.multiply(interest_rate, fraction)
    value = mc.multiply(value, to_decimal(actual_days))
    value = mc.divide(value, calculated_days)
    return scale_to_precision(value, mc)


def rate_factor_by_partial_period(interest_rate: Decimal, repayment_every, cumulated_fractions: Decimal,
                                  actual_days, calculated_days, mc: Context) -> Decimal:
    """Rate factor of a period split into yearly fractions"""
    calculated_days = to_decimal(calculated_days)
    if calculated_days == 0:
        return Decimal('0')
    fraction = to_decimal(repayment_every) * cumulated_fractions
    value = mc.multiply(interest_rate, fraction)
    value = mc.multiply(value, to_decimal(actual_days))
    value = mc.divide(value, calculated_days)
    return scale_to_precision(value, mc)


def rate_factor_by_frequency(interest_rate: Decimal, frequency: PeriodFrequencyType, repayment_every,
                             days_in_month, days_in_year_value, actual_days, calculated_days,
                             mc: Context) -> Decimal:
    """Rate factor where one frequency unit is 1, 7 or days_in_month days"""
    if frequency == PeriodFrequencyType.DAYS:
        multiplier = Decimal('1')
    elif frequency == PeriodFrequencyType.WEEKS:
        multiplier = ONE_WEEK_IN_DAYS
    elif frequency == PeriodFrequencyType.MONTHS:
        multiplier = to_decimal(days_in_month)
    else:
        raise UnsupportedConfigurationError(f"Unsupported repayment frequency: {frequency.value}")
    return rate_factor_by_repayment_period(interest_rate, multiplier, repayment_every, days_in_year_value,
                                           actual_days, calculated_days, mc)


def seed_date(loan_start_date: date, frequency: PeriodFrequencyType,
              repayment_period_from: date, repayment_period_due: date) -> date:
    """
    Date the period ratio is counted from.

    The loan start date when stepping from it by whole frequency units lands
    exactly on the period due date, otherwise the period's own start.
    """
    if frequency not in (PeriodFrequencyType.DAYS, PeriodFrequencyType.WEEKS,
                         PeriodFrequencyType.MONTHS, PeriodFrequencyType.YEARS):
        raise UnsupportedConfigurationError(f"Unsupported repayment frequency: {frequency.value}")
    multiplicator = 1
    calculated = add_period(loan_start_date, frequency, multiplicator)
    while calculated < repayment_period_due:
        multiplicator += 1
        calculated = add_period(loan_start_date, frequency, multiplicator)
    return loan_start_date if calculated == repayment_period_due else repayment_period_from


def period_ratio(seed: date, repayment_period_from: date, repayment_period_due: date,
                 frequency: PeriodFrequencyType, mc: Context) -> Decimal:
    """Whole frequency units in a repayment period plus the fractional remainder"""
    target = repayment_period_from
    if frequency == PeriodFrequencyType.MONTHS:
        last_day = calendar.monthrange(target.year, target.month)[1]
        # Month-end target with a later seed day counts the month as complete
        if target.day == last_day and seed.day > target.day:
            target = target + timedelta(days=1)
    elapsed = units_between(seed, target, frequency)

    multiplicator = elapsed + 1
    current = repayment_period_from
    while current < repayment_period_due:
        current = add_period(seed, frequency, multiplicator)
        if current <= repayment_period_due:
            multiplicator += 1
        else:
            full_period_date = current
            multiplicator = multiplicator - elapsed - 1
            current = add_period(seed, frequency, multiplicator)
            difference = Decimal((repayment_period_due - current).days)
            full_difference = Decimal((full_period_date - current).days)
            return mc.divide(difference, full_difference) + Decimal(multiplicator)
    return Decimal(multiplicator - elapsed - 1)


def rate_factor(product: LoanProductDetails, interest_rate_percent, interest_period_from: date,
                interest_period_due: date, repayment_period_from: date, repayment_period_due: date,
                mc: Context) -> Decimal:
    """
    Periodic rate factor (without the leading 1) of an interest period.

    Args:
        product: Day-count and frequency configuration
        interest_rate_percent: Annual nominal rate in percent
        interest_period_from: Start of the interest period
        interest_period_due: End of the interest period
        repayment_period_from: Start of the enclosing repayment period
        repayment_period_due: Due date of the enclosing repayment period
        mc: Decimal context

    Raises:
        UnsupportedConfigurationError: Yearly or whole-term frequency under the 30-day month convention
    """
    interest_rate = nominal_interest_rate(interest_rate_percent, mc)
    year_days = days_in_year(product.days_in_year_type, product.days_in_year_custom_strategy,
                             interest_period_from, repayment_period_from, repayment_period_due)
    actual_days = (interest_period_due - interest_period_from).days
    calculated_days = (repayment_period_due - repayment_period_from).days

    if needs_partial_period_calculation(product, interest_period_from, interest_period_due,
                                        repayment_period_from, repayment_period_due):
        fractions = period_fractions(interest_period_from, interest_period_due, mc,
                                     product.interest_recognition_on_disbursement_date)
        return rate_factor_by_partial_period(interest_rate, 1, fractions, 1, 1, mc)

    if product.days_in_month_type == DaysInMonthType.ACTUAL:
        return rate_factor_by_repayment_period(interest_rate, actual_days, 1, year_days, 1, 1, mc)
    if product.days_in_month_type == DaysInMonthType.DAYS_30:
        return rate_factor_by_frequency(interest_rate, product.repayment_frequency, product.repay_every,
                                        DAYS_IN_MONTH_30, year_days, actual_days, calculated_days, mc)
    raise UnsupportedConfigurationError(
        f"Unsupported days in month type: {product.days_in_month_type.name}"
    )


def rate_factor_till_period_due_date(product: LoanProductDetails, interest_rate_percent,
                                     interest_period_from: date, repayment_period_from: date,
                                     repayment_period_due: date, loan_start_date: date,
                                     mc: Context) -> Decimal:
    """
    Rate factor projected from an interest period start to the repayment due date.

    Under the 30-day month convention the repayment-every multiplier is
    replaced by the period ratio counted from the seed date.
    """
    interest_rate = nominal_interest_rate(interest_rate_percent, mc)
    year_days = days_in_year(product.days_in_year_type, product.days_in_year_custom_strategy,
                             interest_period_from, repayment_period_from, repayment_period_due)
    actual_days = (repayment_period_due - interest_period_from).days
    calculated_days = (repayment_period_due - repayment_period_from).days

    if needs_partial_period_calculation(product, interest_period_from, repayment_period_due,
                                        repayment_period_from, repayment_period_due):
        fractions = period_fractions(interest_period_from, repayment_period_due, mc,
                                     product.interest_recognition_on_disbursement_date)
        return rate_factor_by_partial_period(interest_rate, 1, fractions, 1, 1, mc)

    if product.days_in_month_type == DaysInMonthType.ACTUAL:
        return rate_factor_by_repayment_period(interest_rate, actual_days, 1, year_days, 1, 1, mc)
    if product.days_in_month_type == DaysInMonthType.DAYS_30:
        seed = seed_date(loan_start_date, product.repayment_frequency,
                         repayment_period_from, repayment_period_due)
        ratio = period_ratio(seed, repayment_period_from, repayment_period_due,
                             product.repayment_frequency, mc)
        return rate_factor_by_frequency(interest_rate, product.repayment_frequency, ratio,
                                        DAYS_IN_MONTH_30, year_days, actual_days, calculated_days, mc)
    raise UnsupportedConfigurationError(
        f"Unsupported combination: days in year {product.days_in_year_type.name}, "
        f"days in month {product.days_in_month_type.name}"
    )
