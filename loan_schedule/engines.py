"""
Simple Amortization Engines

Single-pass schedule generators for declining-balance loans with equal
installments or equal principal. Each period accrues simple daily interest on
the balance outstanding at its start; the last period always clears the
remaining balance.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Context, Decimal
from typing import Dict, List, Optional, Tuple, Type

from .config import default_math_context
from .currency import Money, money_sum
from .day_count import DIVISOR_100, add_period
from .exceptions import UnsupportedConfigurationError
from .holidays import HolidayAdjuster
from .logging_config import get_logger, log_action
from .terms import AmortizationMethod, DaysInYearType, InterestMethod, LoanCalculationParameters

logger = get_logger("loan_schedule.engines")


@dataclass
class SchedulePeriod:
    """One installment of a generated schedule"""
    period_number: int
    from_date: date
    due_date: date
    principal: Money
    interest: Money
    fee: Money
    penalty: Money
    outstanding_balance: Money
    cumulative_principal: Money
    cumulative_interest: Money

    @property
    def total_due(self) -> Money:
        return self.principal + self.interest + self.fee + self.penalty


@dataclass
class LoanSchedule:
    """Installments of a loan plus schedule totals"""
    periods: List[SchedulePeriod] = field(default_factory=list)

    def _total(self, attribute: str) -> Optional[Money]:
        if not self.periods:
            return None
        values = [getattr(period, attribute) for period in self.periods]
        return money_sum(values[1:], values[0])

    @property
    def total_principal(self) -> Optional[Money]:
        return self._total('principal')

    @property
    def total_interest(self) -> Optional[Money]:
        return self._total('interest')

    @property
    def total_fee(self) -> Optional[Money]:
        return self._total('fee')

    @property
    def total_penalty(self) -> Optional[Money]:
        return self._total('penalty')

    @property
    def total_repayment_expected(self) -> Optional[Money]:
        return self._total('total_due')

    def __len__(self) -> int:
        return len(self.periods)


@dataclass(frozen=True)
class InstallmentParameters:
    """Inputs of a single installment calculation"""
    outstanding_balance: Money
    annual_nominal_interest_rate: Decimal
    period_number: int
    total_number_of_periods: int
    period_start_date: date
    period_end_date: date
    days_in_year_type: DaysInYearType
    fixed_emi_amount: Optional[Decimal] = None
    interest_grace: bool = False
    principal_grace: bool = False
    last_installment: bool = False

    @property
    def period_days(self) -> int:
        return (self.period_end_date - self.period_start_date).days

    @property
    def remaining_periods(self) -> int:
        return self.total_number_of_periods - self.period_number + 1


@dataclass(frozen=True)
class InstallmentResult:
    principal: Money
    interest: Money
    fee: Money
    penalty: Money


def daily_interest_rate(annual_nominal_interest_rate: Decimal, days_in_year: int, mc: Context) -> Decimal:
    return mc.divide(mc.divide(annual_nominal_interest_rate, DIVISOR_100), Decimal(days_in_year))


def calculate_pmt(interest_rate_per_period: Decimal, number_of_repayments: int, present_value: Decimal,
                  mc: Context) -> Decimal:
    """
    Annuity payment that repays present_value over the given number of periods.

    Returns a positive amount; a zero rate spreads the principal evenly.
    """
    if number_of_repayments <= 0:
        raise ValueError(f"Number of repayments must be positive, got {number_of_repayments}")
    if interest_rate_per_period == 0:
        return mc.divide(present_value, Decimal(number_of_repayments))

    one_plus_rate = mc.add(Decimal('1'), interest_rate_per_period)
    growth = mc.power(one_plus_rate, number_of_repayments)
    numerator = mc.multiply(present_value, growth)
    denominator = mc.multiply(mc.divide(Decimal('1'), interest_rate_per_period), mc.subtract(growth, Decimal('1')))
    return mc.divide(numerator, denominator)


def _clamp(value: Money, upper: Money) -> Money:
    if value > upper:
        value = upper
    if value.is_negative():
        value = value.zeroed()
    return value


def generate_schedule_dates(params: LoanCalculationParameters,
                            adjuster: Optional[HolidayAdjuster] = None) -> List[date]:
    """
    Repayment due dates of a loan.

    Nominal dates step from the first repayment date by whole frequency
    units, so a holiday shift on one date never drifts the following ones.
    The first repayment date defaults to one step after disbursement.
    """
    first_date = params.repayments_starting_from or add_period(
        params.expected_disbursement_date, params.repayment_frequency, params.repayment_every
    )
    nominal = [
        add_period(first_date, params.repayment_frequency, params.repayment_every * index)
        for index in range(params.number_of_repayments)
    ]

    if adjuster is None:
        adjuster = HolidayAdjuster(params.holiday_calendar, params.repayment_frequency)
    if not adjuster.enabled:
        return nominal

    if params.first_repayment_allowed_on_holiday:
        adjusted = [nominal[0]] + [details.adjusted_date for details in adjuster.adjust_dates(nominal[1:])]
    else:
        adjusted = [details.adjusted_date for details in adjuster.adjust_dates(nominal)]
    return adjusted


class LoanCalculationEngine(ABC):
    """Shared period driver; subclasses decide the principal of each period"""

    interest_method: InterestMethod = InterestMethod.DECLINING_BALANCE
    amortization_method: AmortizationMethod

    def calculate_loan_schedule(self, params: LoanCalculationParameters,
                                mc: Optional[Context] = None) -> LoanSchedule:
        """
        Generate the full installment schedule for a loan.

        Args:
            params: Contractual loan terms
            mc: Decimal context, defaults to the configured one

        Returns:
            Schedule whose principal sums to the loan principal
        """
        mc = mc or default_math_context()
        dates = generate_schedule_dates(params)
        zero = params.principal.zeroed()

        outstanding_balance = params.principal
        cumulative_principal = zero
        cumulative_interest = zero
        schedule = LoanSchedule()

        for period_number in range(1, params.number_of_repayments + 1):
            start_date = params.expected_disbursement_date if period_number == 1 else dates[period_number - 2]
            end_date = dates[period_number - 1]

            installment = InstallmentParameters(
                outstanding_balance=outstanding_balance,
                annual_nominal_interest_rate=params.annual_nominal_interest_rate,
                period_number=period_number,
                total_number_of_periods=params.number_of_repayments,
                period_start_date=start_date,
                period_end_date=end_date,
                days_in_year_type=params.days_in_year_type,
                fixed_emi_amount=params.fixed_emi_amount,
                interest_grace=self.is_in_grace_period(period_number, params.interest_charging_grace),
                principal_grace=self.is_in_grace_period(period_number, params.principal_grace),
                last_installment=period_number == params.number_of_repayments,
            )
            result = self.calculate_installment_amount(installment, mc)

            outstanding_balance = outstanding_balance - result.principal
            cumulative_principal = cumulative_principal + result.principal
            cumulative_interest = cumulative_interest + result.interest

            schedule.periods.append(SchedulePeriod(
                period_number=period_number,
                from_date=start_date,
                due_date=end_date,
                principal=result.principal,
                interest=result.interest,
                fee=result.fee,
                penalty=result.penalty,
                outstanding_balance=outstanding_balance,
                cumulative_principal=cumulative_principal,
                cumulative_interest=cumulative_interest,
            ))

        log_action(
            logger, "debug", "Loan schedule generated",
            action="generate_schedule",
            resource=self.amortization_method.value,
            extra={
                "periods": len(schedule),
                "principal": str(params.principal.amount),
                "total_interest": str(cumulative_interest.amount),
            }
        )
        return schedule

    def calculate_installment_amount(self, installment: InstallmentParameters, mc: Context) -> InstallmentResult:
        """Interest and principal of one period with grace and last-period rules applied"""
        zero = installment.outstanding_balance.zeroed()

        interest = self.calculate_interest_for_installment(installment, mc)
        if installment.interest_grace:
            interest = zero

        principal = self.calculate_principal_for_period(installment, interest, mc)
        if installment.principal_grace:
            principal = zero

        # Last installment clears the balance
        if installment.last_installment:
            principal = installment.outstanding_balance

        return InstallmentResult(principal=principal, interest=interest, fee=zero, penalty=zero)

    def calculate_interest_for_installment(self, installment: InstallmentParameters, mc: Context) -> Money:
        days_in_year = installment.days_in_year_type.number_of_days(installment.period_end_date)
        return self.calculate_interest_for_period(
            installment.outstanding_balance, installment.annual_nominal_interest_rate,
            installment.period_days, days_in_year, mc
        )

    @staticmethod
    def calculate_interest_for_period(outstanding_balance: Money, annual_interest_rate: Decimal,
                                      period_days: int, days_in_year: int, mc: Context) -> Money:
        """Simple interest: balance * (rate / 100 / days in year) * days"""
        if not outstanding_balance.is_positive():
            return outstanding_balance.zeroed()
        daily_rate = daily_interest_rate(annual_interest_rate, days_in_year, mc)
        amount = mc.multiply(mc.multiply(outstanding_balance.amount, daily_rate), Decimal(period_days))
        return Money.of(amount, outstanding_balance.currency, mc)

    @staticmethod
    def is_in_grace_period(period_number: int, grace_periods: Optional[int]) -> bool:
        return grace_periods is not None and period_number <= grace_periods

    @abstractmethod
    def calculate_principal_for_period(self, installment: InstallmentParameters, interest: Money,
                                       mc: Context) -> Money:
        """Principal portion of an installment before grace and last-period rules"""
        pass


class DecliningBalanceEqualInstallmentsEngine(LoanCalculationEngine):
    """Annuity schedule: principal is the period payment minus its interest"""

    amortization_method = AmortizationMethod.EQUAL_INSTALLMENTS

    def calculate_principal_for_period(self, installment: InstallmentParameters, interest: Money,
                                       mc: Context) -> Money:
        balance = installment.outstanding_balance
        zero = balance.zeroed()

        if installment.fixed_emi_amount is not None and installment.fixed_emi_amount > 0:
            fixed_emi = Money.of(installment.fixed_emi_amount, balance.currency, mc)
            return _clamp(fixed_emi - interest, balance)

        if installment.remaining_periods <= 0 or not balance.is_positive():
            return zero

        days_in_year = installment.days_in_year_type.number_of_days(installment.period_end_date)
        period_rate = mc.multiply(
            daily_interest_rate(installment.annual_nominal_interest_rate, days_in_year, mc),
            Decimal(installment.period_days)
        )
        payment = calculate_pmt(period_rate, installment.remaining_periods, balance.amount, mc)
        return _clamp(Money.of(payment, balance.currency, mc) - interest, balance)


class DecliningBalanceEqualPrincipalEngine(LoanCalculationEngine):
    """Equal principal schedule: the balance is spread over the remaining periods"""

    amortization_method = AmortizationMethod.EQUAL_PRINCIPAL

    def calculate_principal_for_period(self, installment: InstallmentParameters, interest: Money,
                                       mc: Context) -> Money:
        balance = installment.outstanding_balance

        if installment.fixed_emi_amount is not None and installment.fixed_emi_amount > 0:
            fixed_principal = Money.of(installment.fixed_emi_amount, balance.currency, mc)
            return _clamp(fixed_principal, balance)

        if installment.remaining_periods <= 0 or not balance.is_positive():
            return balance.zeroed()
        if installment.last_installment:
            return balance
        return _clamp(balance.divided_by(installment.remaining_periods, mc), balance)


_ENGINES: Dict[Tuple[InterestMethod, AmortizationMethod], Type[LoanCalculationEngine]] = {
    (InterestMethod.DECLINING_BALANCE, AmortizationMethod.EQUAL_INSTALLMENTS): DecliningBalanceEqualInstallmentsEngine,
    (InterestMethod.DECLINING_BALANCE, AmortizationMethod.EQUAL_PRINCIPAL): DecliningBalanceEqualPrincipalEngine,
}


def create_engine(interest_method: InterestMethod, amortization_method: AmortizationMethod) -> LoanCalculationEngine:
    """
    Engine for an interest and amortization method pair.

    Raises:
        UnsupportedConfigurationError: No engine exists for the pair
    """
    engine_class = _ENGINES.get((interest_method, amortization_method))
    if engine_class is None:
        raise UnsupportedConfigurationError(
            f"No calculation engine for {interest_method.value} interest "
            f"with {amortization_method.value} amortization"
        )
    return engine_class()


def calculate_loan_schedule(params: LoanCalculationParameters, mc: Optional[Context] = None) -> LoanSchedule:
    """Generate a schedule with the engine matching the loan's methods"""
    return create_engine(params.interest_method, params.amortization_method).calculate_loan_schedule(params, mc)
