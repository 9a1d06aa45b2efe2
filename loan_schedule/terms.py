"""
Loan Terms Module

Enumerations and parameter objects describing a loan product and the
contractual terms a schedule is computed from.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, TYPE_CHECKING
import calendar

from .currency import Currency, Money, to_decimal

if TYPE_CHECKING:
    from .holidays import HolidayCalendar


class PeriodFrequencyType(Enum):
    """Repayment frequency units"""
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"
    WHOLE_TERM = "whole_term"

    @property
    def is_daily(self) -> bool:
        return self == PeriodFrequencyType.DAYS


class DaysInYearType(Enum):
    """Days-in-year conventions (ACTUAL follows the calendar year)"""
    ACTUAL = 1
    DAYS_360 = 360
    DAYS_364 = 364
    DAYS_365 = 365

    def number_of_days(self, on_date: date) -> int:
        if self == DaysInYearType.ACTUAL:
            return 366 if calendar.isleap(on_date.year) else 365
        return self.value


class DaysInMonthType(Enum):
    """Days-in-month conventions"""
    ACTUAL = 1
    DAYS_30 = 30


class DaysInYearCustomStrategy(Enum):
    """Refinement of the ACTUAL days-in-year convention for leap years"""
    FULL_LEAP_YEAR = "full_leap_year"
    FEB_29_PERIOD_ONLY = "feb_29_period_only"


class InterestMethod(Enum):
    DECLINING_BALANCE = "declining_balance"
    FLAT = "flat"


class AmortizationMethod(Enum):
    EQUAL_INSTALLMENTS = "equal_installments"
    EQUAL_PRINCIPAL = "equal_principal"


class LoanTermVariationType(Enum):
    """Kinds of contractual changes applied after loan creation"""
    EMI_AMOUNT = "emi_amount"
    INTEREST_RATE = "interest_rate"
    PRINCIPAL_AMOUNT = "principal_amount"
    DUE_DATE = "due_date"
    INSERT_INSTALLMENT = "insert_installment"
    DELETE_INSTALLMENT = "delete_installment"
    GRACE_ON_INTEREST = "grace_on_interest"
    GRACE_ON_PRINCIPAL = "grace_on_principal"
    EXTEND_REPAYMENT_PERIOD = "extend_repayment_period"


@dataclass(frozen=True)
class LoanTermVariation:
    """A single term variation; only its type drives schedule behaviour"""
    term_type: LoanTermVariationType
    applicable_from: date
    decimal_value: Optional[Decimal] = None
    date_value: Optional[date] = None


@dataclass
class LoanProductDetails:
    """
    Product-level settings consumed by the progressive schedule.

    annual_nominal_interest_rate is a percentage (7.0 means 7% a year).
    """
    currency: Currency
    annual_nominal_interest_rate: Decimal
    repayment_frequency: PeriodFrequencyType = PeriodFrequencyType.MONTHS
    repay_every: int = 1
    days_in_year_type: DaysInYearType = DaysInYearType.ACTUAL
    days_in_month_type: DaysInMonthType = DaysInMonthType.ACTUAL
    days_in_year_custom_strategy: Optional[DaysInYearCustomStrategy] = None
    interest_recognition_on_disbursement_date: bool = False

    def __post_init__(self):
        self.annual_nominal_interest_rate = to_decimal(self.annual_nominal_interest_rate)
        if self.annual_nominal_interest_rate < 0:
            raise ValueError("Annual nominal interest rate cannot be negative")
        if self.repay_every <= 0:
            raise ValueError(f"Repay every must be positive, got {self.repay_every}")


@dataclass
class LoanCalculationParameters:
    """Terms for the single-pass amortization engines"""
    principal: Money
    annual_nominal_interest_rate: Decimal
    number_of_repayments: int
    expected_disbursement_date: date
    repayment_every: int = 1
    repayment_frequency: PeriodFrequencyType = PeriodFrequencyType.MONTHS
    repayments_starting_from: Optional[date] = None
    interest_method: InterestMethod = InterestMethod.DECLINING_BALANCE
    amortization_method: AmortizationMethod = AmortizationMethod.EQUAL_INSTALLMENTS
    days_in_month_type: DaysInMonthType = DaysInMonthType.ACTUAL
    days_in_year_type: DaysInYearType = DaysInYearType.ACTUAL
    fixed_emi_amount: Optional[Decimal] = None  # fixed principal for equal principal loans
    interest_charging_grace: Optional[int] = None
    principal_grace: Optional[int] = None
    holiday_calendar: Optional['HolidayCalendar'] = None
    first_repayment_allowed_on_holiday: bool = False

    def __post_init__(self):
        self.annual_nominal_interest_rate = to_decimal(self.annual_nominal_interest_rate)
        if self.fixed_emi_amount is not None:
            self.fixed_emi_amount = to_decimal(self.fixed_emi_amount)
        if self.number_of_repayments <= 0:
            raise ValueError(f"Number of repayments must be positive, got {self.number_of_repayments}")
        if self.repayment_every <= 0:
            raise ValueError(f"Repayment every must be positive, got {self.repayment_every}")
        if not self.principal.is_positive():
            raise ValueError("Principal amount must be positive")
        if self.annual_nominal_interest_rate < 0:
            raise ValueError("Annual nominal interest rate cannot be negative")
        if self.repayments_starting_from and self.repayments_starting_from < self.expected_disbursement_date:
            raise ValueError("First repayment date cannot be before the disbursement date")


