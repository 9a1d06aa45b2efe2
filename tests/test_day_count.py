"""
Test suite for day-count module

Tests date stepping, days-in-year conventions, yearly fractions, period
ratios and the rate factor of interest periods.
"""

import pytest
from decimal import Decimal
from datetime import date

from loan_schedule.currency import Currency, math_context
from loan_schedule.day_count import (
    add_months, add_period, months_between, units_between, nominal_interest_rate,
    period_contains_feb_29, days_in_year, needs_partial_period_calculation, period_fractions,
    rate_factor_by_frequency, seed_date, period_ratio, rate_factor, rate_factor_till_period_due_date
)
from loan_schedule.exceptions import UnsupportedConfigurationError
from loan_schedule.terms import (
    LoanProductDetails, PeriodFrequencyType, DaysInYearType, DaysInMonthType, DaysInYearCustomStrategy
)


MC = math_context(12, "HALF_EVEN")


def product(rate, days_in_year_type=DaysInYearType.DAYS_360, days_in_month_type=DaysInMonthType.DAYS_30,
            frequency=PeriodFrequencyType.MONTHS, custom_strategy=None, recognition=False):
    return LoanProductDetails(
        currency=Currency.USD,
        annual_nominal_interest_rate=Decimal(rate),
        repayment_frequency=frequency,
        repay_every=1,
        days_in_year_type=days_in_year_type,
        days_in_month_type=days_in_month_type,
        days_in_year_custom_strategy=custom_strategy,
        interest_recognition_on_disbursement_date=recognition,
    )


class TestDateStepping:
    """Test frequency based date arithmetic"""

    def test_add_months_clamps_month_end(self):
        """Test month-end dates clamp to the shorter month"""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2023, 11, 15), 3) == date(2024, 2, 15)

    def test_add_period(self):
        """Test stepping by each supported frequency"""
        start = date(2024, 1, 1)
        assert add_period(start, PeriodFrequencyType.DAYS, 10) == date(2024, 1, 11)
        assert add_period(start, PeriodFrequencyType.WEEKS, 2) == date(2024, 1, 15)
        assert add_period(start, PeriodFrequencyType.MONTHS, 1) == date(2024, 2, 1)
        assert add_period(start, PeriodFrequencyType.YEARS, 1) == date(2025, 1, 1)

    def test_add_period_whole_term_unsupported(self):
        """Test whole-term frequency cannot be stepped"""
        with pytest.raises(UnsupportedConfigurationError, match="Unsupported repayment frequency"):
            add_period(date(2024, 1, 1), PeriodFrequencyType.WHOLE_TERM, 1)

    def test_months_between(self):
        """Test only complete months are counted"""
        assert months_between(date(2024, 1, 1), date(2024, 3, 1)) == 2
        assert months_between(date(2024, 1, 31), date(2024, 2, 29)) == 0
        assert months_between(date(2024, 1, 15), date(2024, 3, 14)) == 1

    def test_units_between(self):
        """Test complete frequency units between dates"""
        assert units_between(date(2024, 1, 1), date(2024, 1, 22), PeriodFrequencyType.WEEKS) == 3
        assert units_between(date(2024, 1, 1), date(2024, 1, 22), PeriodFrequencyType.DAYS) == 21
        assert units_between(date(2022, 1, 1), date(2024, 6, 1), PeriodFrequencyType.YEARS) == 2


class TestDaysInYear:
    """Test days-in-year conventions"""

    def test_nominal_interest_rate(self):
        """Test percentage conversion"""
        assert nominal_interest_rate(Decimal('7'), MC) == Decimal('0.07')

    def test_feb_29_detection(self):
        """Test leap day membership of a period"""
        assert period_contains_feb_29(date(2024, 2, 1), date(2024, 3, 1))
        assert not period_contains_feb_29(date(2024, 3, 1), date(2024, 4, 1))
        assert not period_contains_feb_29(date(2023, 2, 1), date(2023, 3, 1))

    def test_fixed_conventions(self):
        """Test fixed day counts ignore the calendar"""
        assert days_in_year(DaysInYearType.DAYS_360, None, date(2024, 1, 1),
                            date(2024, 1, 1), date(2024, 2, 1)) == Decimal('360')
        assert days_in_year(DaysInYearType.DAYS_365, None, date(2024, 1, 1),
                            date(2024, 1, 1), date(2024, 2, 1)) == Decimal('365')

    def test_actual_leap_year(self):
        """Test the actual convention follows the calendar year"""
        assert days_in_year(DaysInYearType.ACTUAL, None, date(2024, 1, 1),
                            date(2024, 1, 1), date(2024, 2, 1)) == Decimal('366')
        assert days_in_year(DaysInYearType.ACTUAL, None, date(2023, 1, 1),
                            date(2023, 1, 1), date(2023, 2, 1)) == Decimal('365')

    def test_feb_29_period_only(self):
        """Test leap years count 366 days only for the period holding Feb 29"""
        strategy = DaysInYearCustomStrategy.FEB_29_PERIOD_ONLY
        assert days_in_year(DaysInYearType.ACTUAL, strategy, date(2024, 1, 1),
                            date(2024, 1, 1), date(2024, 2, 1)) == Decimal('365')
        assert days_in_year(DaysInYearType.ACTUAL, strategy, date(2024, 2, 1),
                            date(2024, 2, 1), date(2024, 3, 1)) == Decimal('366')


class TestPeriodFractions:
    """Test splitting periods across calendar years"""

    def test_partial_period_needed_across_years(self):
        """Test only actual day counts crossing a year are split"""
        actual = product('10', DaysInYearType.ACTUAL, DaysInMonthType.ACTUAL)
        fixed = product('10', DaysInYearType.DAYS_365, DaysInMonthType.ACTUAL)
        assert needs_partial_period_calculation(actual, date(2023, 12, 15), date(2024, 1, 15),
                                                date(2023, 12, 15), date(2024, 1, 15))
        assert not needs_partial_period_calculation(actual, date(2024, 1, 15), date(2024, 2, 15),
                                                    date(2024, 1, 15), date(2024, 2, 15))
        assert not needs_partial_period_calculation(fixed, date(2023, 12, 15), date(2024, 1, 15),
                                                    date(2023, 12, 15), date(2024, 1, 15))

    def test_fractions_across_year_end(self):
        """Test each year contributes its days over its own length"""
        fractions = period_fractions(date(2023, 12, 15), date(2024, 1, 15), MC)
        expected = MC.add(MC.divide(Decimal(16), Decimal(365)), MC.divide(Decimal(15), Decimal(366)))
        assert fractions == expected

    def test_fractions_with_recognition_on_disbursement_date(self):
        """Test yearly slices end on Jan 1 when interest is recognised on disbursement"""
        fractions = period_fractions(date(2023, 12, 15), date(2024, 1, 15), MC, True)
        expected = MC.add(MC.divide(Decimal(17), Decimal(365)), MC.divide(Decimal(14), Decimal(366)))
        assert fractions == expected


class TestPeriodRatio:
    """Test seed dates and period ratios for the 30-day month convention"""

    def test_seed_is_loan_start_for_aligned_period(self):
        """Test aligned periods count from the loan start"""
        assert seed_date(date(2024, 1, 1), PeriodFrequencyType.MONTHS,
                         date(2024, 2, 1), date(2024, 3, 1)) == date(2024, 1, 1)

    def test_seed_is_period_start_for_irregular_period(self):
        """Test irregular periods count from their own start"""
        assert seed_date(date(2024, 1, 1), PeriodFrequencyType.MONTHS,
                         date(2024, 2, 1), date(2024, 2, 15)) == date(2024, 2, 1)

    def test_full_period_ratio(self):
        """Test a whole month gives a ratio of one"""
        assert period_ratio(date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1),
                            PeriodFrequencyType.MONTHS, MC) == Decimal('1')

    def test_partial_period_ratio(self):
        """Test a part month gives its share of the following month"""
        ratio = period_ratio(date(2024, 2, 1), date(2024, 2, 1), date(2024, 2, 15),
                             PeriodFrequencyType.MONTHS, MC)
        assert ratio == MC.divide(Decimal(14), Decimal(29))


class TestRateFactor:
    """Test rate factors of interest periods"""

    def test_days_360_monthly(self):
        """Test a full month under 360/30"""
        assert rate_factor(product('9.4822'), Decimal('9.4822'), date(2024, 1, 1), date(2024, 2, 1),
                           date(2024, 1, 1), date(2024, 2, 1), MC) == Decimal('0.007901833333')
        assert rate_factor(product('7'), Decimal('7'), date(2024, 1, 1), date(2024, 2, 1),
                           date(2024, 1, 1), date(2024, 2, 1), MC) == Decimal('0.005833333333')

    def test_days_360_split_period(self):
        """Test split interest periods share the month by actual days"""
        p = product('7')
        first = rate_factor(p, Decimal('7'), date(2024, 2, 1), date(2024, 2, 15),
                            date(2024, 2, 1), date(2024, 3, 1), MC)
        second = rate_factor(p, Decimal('7'), date(2024, 2, 15), date(2024, 3, 1),
                             date(2024, 2, 1), date(2024, 3, 1), MC)
        assert first == Decimal('0.002816091954')
        assert second == Decimal('0.003017241379')

    def test_days_365_actual(self):
        """Test actual days over a 365 day year"""
        p = product('9.4822', DaysInYearType.DAYS_365, DaysInMonthType.ACTUAL)
        assert rate_factor(p, Decimal('9.4822'), date(2024, 1, 1), date(2024, 2, 1),
                           date(2024, 1, 1), date(2024, 2, 1), MC) == Decimal('0.008053375342')
        assert rate_factor(p, Decimal('9.4822'), date(2024, 2, 1), date(2024, 3, 1),
                           date(2024, 2, 1), date(2024, 3, 1), MC) == Decimal('0.007533802740')

    def test_actual_across_year_end(self):
        """Test the actual convention splits a period crossing New Year"""
        p = product('10', DaysInYearType.ACTUAL, DaysInMonthType.ACTUAL)
        assert rate_factor(p, Decimal('10'), date(2023, 12, 15), date(2024, 1, 15),
                           date(2023, 12, 15), date(2024, 1, 15), MC) == Decimal('0.008481922300')

    def test_zero_length_interest_period(self):
        """Test an empty interest period has no rate factor"""
        assert rate_factor(product('7'), Decimal('7'), date(2024, 1, 1), date(2024, 1, 1),
                           date(2024, 1, 1), date(2024, 2, 1), MC) == Decimal('0')

    def test_till_due_date_matches_full_period(self):
        """Test the projected factor of a whole period equals its own factor"""
        p = product('7')
        assert rate_factor_till_period_due_date(p, Decimal('7'), date(2024, 2, 1), date(2024, 2, 1),
                                                date(2024, 3, 1), date(2024, 1, 1), MC) == Decimal('0.005833333333')

    def test_till_due_date_from_mid_period(self):
        """Test the projected factor from a split point to the due date"""
        p = product('7')
        assert rate_factor_till_period_due_date(p, Decimal('7'), date(2024, 2, 15), date(2024, 2, 1),
                                                date(2024, 3, 1), date(2024, 1, 1), MC) == Decimal('0.003017241379')

    def test_yearly_frequency_unsupported_for_30_day_months(self):
        """Test unsupported frequency fails fast"""
        p = product('7', frequency=PeriodFrequencyType.YEARS)
        with pytest.raises(UnsupportedConfigurationError):
            rate_factor(p, Decimal('7'), date(2024, 1, 1), date(2025, 1, 1),
                        date(2024, 1, 1), date(2025, 1, 1), MC)

    def test_rate_factor_by_frequency_whole_term(self):
        """Test whole-term frequency has no rate factor"""
        with pytest.raises(UnsupportedConfigurationError):
            rate_factor_by_frequency(Decimal('0.07'), PeriodFrequencyType.WHOLE_TERM, 1, 30, 360, 30, 30, MC)

    def test_weekly_frequency(self):
        """Test a weekly period under the 30-day month convention"""
        p = product('7', frequency=PeriodFrequencyType.WEEKS)
        factor = rate_factor(p, Decimal('7'), date(2024, 1, 1), date(2024, 1, 8),
                             date(2024, 1, 1), date(2024, 1, 8), MC)
        expected = MC.multiply(Decimal('0.07'), MC.divide(Decimal('7'), Decimal('360')))
        assert factor == expected.quantize(Decimal('0.000000000001'))
