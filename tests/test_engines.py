"""
Test suite for the simple amortization engines

Tests schedule date generation, equal installment and equal principal
schedules, grace periods and engine selection.
"""

import pytest
from decimal import Decimal
from datetime import date

from loan_schedule.currency import Money, Currency, math_context
from loan_schedule.engines import (
    LoanSchedule, DecliningBalanceEqualInstallmentsEngine, DecliningBalanceEqualPrincipalEngine,
    LoanCalculationEngine, calculate_pmt, calculate_loan_schedule, create_engine, generate_schedule_dates
)
from loan_schedule.exceptions import UnsupportedConfigurationError
from loan_schedule.holidays import Holiday, HolidayCalendar, WorkingDays
from loan_schedule.terms import (
    LoanCalculationParameters, AmortizationMethod, InterestMethod, DaysInYearType
)


MC = math_context(12, "HALF_EVEN")


def loan_params(**overrides):
    values = dict(
        principal=Money(Decimal('10000.00'), Currency.USD),
        annual_nominal_interest_rate=Decimal('12'),
        number_of_repayments=12,
        expected_disbursement_date=date(2023, 1, 1),
        repayments_starting_from=date(2023, 1, 31),
        days_in_year_type=DaysInYearType.DAYS_365,
    )
    values.update(overrides)
    return LoanCalculationParameters(**values)


class TestLoanCalculationParameters:
    """Test parameter validation"""

    def test_invalid_repayments(self):
        with pytest.raises(ValueError, match="Number of repayments must be positive"):
            loan_params(number_of_repayments=0)

    def test_invalid_principal(self):
        with pytest.raises(ValueError, match="Principal amount must be positive"):
            loan_params(principal=Money(Decimal('0'), Currency.USD))

    def test_first_repayment_before_disbursement(self):
        with pytest.raises(ValueError, match="before the disbursement date"):
            loan_params(repayments_starting_from=date(2022, 12, 1))


class TestScheduleDates:
    """Test repayment date generation"""

    def test_default_first_date(self):
        """Test the first date is one period after disbursement"""
        dates = generate_schedule_dates(loan_params(repayments_starting_from=None, number_of_repayments=3))
        assert dates == [date(2023, 2, 1), date(2023, 3, 1), date(2023, 4, 1)]

    def test_month_end_dates_do_not_drift(self):
        """Test month-end dates step from the first date"""
        dates = generate_schedule_dates(loan_params(number_of_repayments=3))
        assert dates == [date(2023, 1, 31), date(2023, 2, 28), date(2023, 3, 31)]

    def test_holiday_adjusted_dates(self):
        """Test dates falling on holidays and weekends move"""
        calendar = HolidayCalendar(
            holidays=[Holiday(date(2023, 3, 15), date(2023, 3, 15))],
            working_days=WorkingDays()
        )
        params = loan_params(expected_disbursement_date=date(2023, 2, 15),
                             repayments_starting_from=date(2023, 3, 15),
                             number_of_repayments=3, holiday_calendar=calendar)
        assert generate_schedule_dates(params) == [date(2023, 3, 16), date(2023, 4, 17), date(2023, 5, 15)]

    def test_first_repayment_allowed_on_holiday(self):
        """Test the first date may stay on a holiday"""
        calendar = HolidayCalendar(
            holidays=[Holiday(date(2023, 3, 15), date(2023, 3, 15))],
            working_days=WorkingDays()
        )
        params = loan_params(expected_disbursement_date=date(2023, 2, 15),
                             repayments_starting_from=date(2023, 3, 15),
                             number_of_repayments=3, holiday_calendar=calendar,
                             first_repayment_allowed_on_holiday=True)
        assert generate_schedule_dates(params) == [date(2023, 3, 15), date(2023, 4, 17), date(2023, 5, 15)]


class TestPmt:
    """Test the annuity payment formula"""

    def test_pmt(self):
        payment = calculate_pmt(Decimal('0.01'), 12, Decimal('10000'), MC)
        assert payment.quantize(Decimal('0.01')) == Decimal('888.49')

    def test_zero_rate(self):
        assert calculate_pmt(Decimal('0'), 4, Decimal('1000'), MC) == Decimal('250')

    def test_invalid_number_of_repayments(self):
        with pytest.raises(ValueError, match="must be positive"):
            calculate_pmt(Decimal('0.01'), 0, Decimal('1000'), MC)


class TestEqualInstallments:
    """Test the equal installments engine"""

    def setup_method(self):
        """Setup test fixtures"""
        self.engine = DecliningBalanceEqualInstallmentsEngine()

    def test_first_period_interest(self):
        """Test 30 days of simple interest on the full balance"""
        schedule = self.engine.calculate_loan_schedule(loan_params(), MC)
        first = schedule.periods[0]
        assert first.from_date == date(2023, 1, 1)
        assert first.due_date == date(2023, 1, 31)
        assert first.interest.amount == Decimal('98.63')

    def test_schedule_repays_principal(self):
        """Test principal sums to the loan and the balance ends at zero"""
        params = loan_params()
        schedule = self.engine.calculate_loan_schedule(params, MC)
        assert len(schedule) == 12
        assert schedule.total_principal == params.principal
        assert schedule.periods[-1].outstanding_balance.is_zero()
        assert schedule.periods[-1].cumulative_principal == params.principal

    def test_installments_are_level(self):
        """Test installments stay close to the annuity payment"""
        schedule = self.engine.calculate_loan_schedule(loan_params(), MC)
        totals = [period.principal.amount + period.interest.amount for period in schedule.periods[:-1]]
        assert max(totals) - min(totals) < Decimal('15')

    def test_zero_interest_rate(self):
        """Test a zero rate spreads the principal evenly"""
        params = loan_params(principal=Money(Decimal('1200.00'), Currency.USD),
                             annual_nominal_interest_rate=Decimal('0'))
        schedule = self.engine.calculate_loan_schedule(params, MC)
        assert all(period.principal.amount == Decimal('100.00') for period in schedule.periods)
        assert schedule.total_interest.is_zero()

    def test_fixed_emi(self):
        """Test a fixed installment amount drives the principal"""
        params = loan_params(fixed_emi_amount=Decimal('1000'), number_of_repayments=3)
        schedule = self.engine.calculate_loan_schedule(params, MC)
        first = schedule.periods[0]
        assert first.principal.amount == Decimal('1000.00') - first.interest.amount


class TestEqualPrincipal:
    """Test the equal principal engine"""

    def setup_method(self):
        """Setup test fixtures"""
        self.engine = DecliningBalanceEqualPrincipalEngine()

    def test_equal_principal_portions(self):
        """Test principal is spread over the remaining periods"""
        params = loan_params(amortization_method=AmortizationMethod.EQUAL_PRINCIPAL)
        schedule = self.engine.calculate_loan_schedule(params, MC)
        assert schedule.periods[0].principal.amount == Decimal('833.33')
        assert schedule.periods[0].interest.amount == Decimal('98.63')
        assert schedule.total_principal == params.principal
        assert schedule.periods[-1].outstanding_balance.is_zero()

    def test_grace_periods(self):
        """Test interest and principal grace on the first period"""
        params = loan_params(principal=Money(Decimal('5000.00'), Currency.USD),
                             number_of_repayments=3,
                             amortization_method=AmortizationMethod.EQUAL_PRINCIPAL,
                             interest_charging_grace=1, principal_grace=1)
        schedule = self.engine.calculate_loan_schedule(params, MC)
        first, second, third = schedule.periods
        assert first.interest.is_zero()
        assert first.principal.is_zero()
        assert first.outstanding_balance.amount == Decimal('5000.00')
        assert second.principal.amount == Decimal('2500.00')
        assert third.principal.amount == Decimal('2500.00')
        assert third.outstanding_balance.is_zero()


class TestEngineSelection:
    """Test engine lookup"""

    def test_create_engine(self):
        engine = create_engine(InterestMethod.DECLINING_BALANCE, AmortizationMethod.EQUAL_PRINCIPAL)
        assert isinstance(engine, DecliningBalanceEqualPrincipalEngine)
        assert isinstance(engine, LoanCalculationEngine)

    def test_unsupported_engine(self):
        with pytest.raises(UnsupportedConfigurationError, match="No calculation engine"):
            create_engine(InterestMethod.FLAT, AmortizationMethod.EQUAL_INSTALLMENTS)

    def test_module_level_calculation(self):
        schedule = calculate_loan_schedule(loan_params(number_of_repayments=2), MC)
        assert len(schedule) == 2
        assert schedule.total_repayment_expected == schedule.total_principal + schedule.total_interest

    def test_empty_schedule_totals(self):
        schedule = LoanSchedule()
        assert schedule.total_principal is None
        assert schedule.total_repayment_expected is None
        assert len(schedule) == 0
