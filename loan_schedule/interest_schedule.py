"""
Progressive Interest Schedule Model

The mutable schedule of a progressive loan: repayment periods, each split
into interest periods that carry disbursements, balance corrections,
chargebacks and pauses. Derived amounts (due interest, due principal,
outstanding balance) are memoized against version stamps of the objects
they read.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Context, Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .config import default_math_context
from .currency import Money, max_money, money_sum, negative_to_zero, to_decimal
from .memo import Memo, Versioned
from .terms import LoanProductDetails, LoanTermVariation, LoanTermVariationType


def is_in_period(target: date, from_date: date, due_date: date, include_from: bool) -> bool:
    """Half-open (from, due] range check, closed at the start when include_from is set"""
    if include_from:
        return from_date <= target <= due_date
    return from_date < target <= due_date


@dataclass(frozen=True, order=True)
class InterestRate:
    """Annual nominal rate (percent) effective from a date"""
    effective_from: date
    interest_rate: Decimal


class EmiChangeAction(Enum):
    DISBURSEMENT = "disbursement"
    INTEREST_RATE_CHANGE = "interest_rate_change"


@dataclass(frozen=True)
class EmiChangeOperation:
    """Pending schedule change that requires the EMI to be solved again"""
    submitted_on_date: date
    action: EmiChangeAction
    amount: Optional[Money] = None
    interest_rate: Optional[Decimal] = None

    @classmethod
    def disburse(cls, submitted_on_date: date, amount: Money) -> 'EmiChangeOperation':
        return cls(submitted_on_date, EmiChangeAction.DISBURSEMENT, amount=amount)

    @classmethod
    def change_interest_rate(cls, submitted_on_date: date, interest_rate) -> 'EmiChangeOperation':
        return cls(submitted_on_date, EmiChangeAction.INTEREST_RATE_CHANGE,
                   interest_rate=to_decimal(interest_rate))

    def with_zero_amount(self) -> 'EmiChangeOperation':
        zero = self.amount.zeroed() if self.amount is not None else None
        return EmiChangeOperation(self.submitted_on_date, self.action, zero, self.interest_rate)


@dataclass(frozen=True)
class PeriodDueDetails:
    """Due amounts of one repayment period as of a date"""
    emi: Money
    due_principal: Money
    due_interest: Money


@dataclass(frozen=True)
class OutstandingDetails:
    """Outstanding totals of the whole schedule as of a date"""
    outstanding_principal: Money
    outstanding_interest: Money


class ScheduleModifier(Enum):
    EMI_RECALCULATION = "emi_recalculation"
    COPY = "copy"


class InterestPeriod(Versioned):
    """
    Sub-window of a repayment period with a single outstanding balance.

    Amounts recorded on an interest period (disbursement, correction) take
    effect from its due date onwards, i.e. they feed the balance of the next
    interest period.
    """

    def __init__(self, from_date: date, due_date: date, rate_factor: Decimal,
                 rate_factor_till_period_due_date: Decimal, chargeback_principal: Money,
                 chargeback_interest: Money, disbursement_amount: Money,
                 balance_correction_amount: Money, outstanding_loan_balance: Money,
                 mc: Context, is_paused: bool = False):
        self.from_date = from_date
        self.due_date = due_date
        self.rate_factor = rate_factor
        self.rate_factor_till_period_due_date = rate_factor_till_period_due_date
        self.chargeback_principal = chargeback_principal
        self.chargeback_interest = chargeback_interest
        self.disbursement_amount = disbursement_amount
        self.balance_correction_amount = balance_correction_amount
        self.outstanding_loan_balance = outstanding_loan_balance
        self.is_paused = is_paused
        self._mc = mc

    @classmethod
    def with_empty_amounts(cls, zero: Money, from_date: date, due_date: date,
                           mc: Context) -> 'InterestPeriod':
        return cls(from_date, due_date, Decimal('0'), Decimal('0'), zero, zero, zero, zero, zero, mc)

    @classmethod
    def with_paused_and_empty_amounts(cls, zero: Money, from_date: date, due_date: date,
                                      mc: Context) -> 'InterestPeriod':
        return cls(from_date, due_date, Decimal('0'), Decimal('0'), zero, zero, zero, zero, zero, mc,
                   is_paused=True)

    def copy(self) -> 'InterestPeriod':
        return InterestPeriod(
            self.from_date, self.due_date, self.rate_factor, self.rate_factor_till_period_due_date,
            self.chargeback_principal, self.chargeback_interest, self.disbursement_amount,
            self.balance_correction_amount, self.outstanding_loan_balance, self._mc, self.is_paused
        )

    @property
    def mc(self) -> Context:
        return self._mc

    def add_disbursement_amount(self, amount: Money) -> None:
        self.disbursement_amount = self.disbursement_amount + amount

    def add_balance_correction_amount(self, amount: Money) -> None:
        self.balance_correction_amount = self.balance_correction_amount + amount

    def add_chargeback_principal_amount(self, amount: Money) -> None:
        self.chargeback_principal = self.chargeback_principal + amount

    def add_chargeback_interest_amount(self, amount: Money) -> None:
        self.chargeback_interest = self.chargeback_interest + amount

    @property
    def length(self) -> int:
        return (self.due_date - self.from_date).days

    def length_till(self, repayment_due_date: date) -> int:
        return (repayment_due_date - self.from_date).days

    def calculated_due_interest(self, repayment_due_date: date) -> Decimal:
        """
        Unrounded interest of this slice plus its chargeback interest.

        The projected rate factor to the repayment due date is spread evenly
        per day, so the slice earns length/length_till of it. Paused slices
        only carry their chargeback interest.
        """
        if self.is_paused:
            return self.chargeback_interest.amount

        length_till_due = self.length_till(repayment_due_date)
        if length_till_due == 0:
            interest = Decimal('0')
        else:
            mc = self._mc
            interest = mc.multiply(self.outstanding_loan_balance.amount, self.rate_factor_till_period_due_date)
            interest = mc.divide(interest, Decimal(length_till_due))
            interest = mc.multiply(interest, Decimal(self.length))
        total = self._mc.add(self.chargeback_interest.amount, interest)
        return Decimal('0') if total < 0 else total

    @property
    def credited_amounts(self) -> Money:
        """Principal-like amounts: disbursement plus chargeback principal"""
        return self.disbursement_amount + self.chargeback_principal

    def __repr__(self) -> str:
        return (f"InterestPeriod({self.from_date.isoformat()}..{self.due_date.isoformat()}, "
                f"rate_factor={self.rate_factor}, balance={self.outstanding_loan_balance.amount}, "
                f"paused={self.is_paused})")


class RepaymentPeriod(Versioned):
    """
    One installment window of the schedule.

    The owning schedule keeps periods in an ordered list; a period knows its
    list and position, so the previous period is looked up by index rather
    than held as a reference.
    """

    def __init__(self, from_date: date, due_date: date, interest_periods: List[InterestPeriod],
                 emi: Money, original_emi: Money, paid_principal: Money, paid_interest: Money,
                 mc: Context):
        self._sequence: Optional[List['RepaymentPeriod']] = None
        self._index = 0
        self._carried_interest = None
        self.from_date = from_date
        self.due_date = due_date
        self.interest_periods = interest_periods
        self.emi = emi
        self.original_emi = original_emi
        self.paid_principal = paid_principal
        self.paid_interest = paid_interest
        self._mc = mc
        self._rate_factor_plus_1_memo = Memo(self._calculate_rate_factor_plus_1, self.state_stamp)
        self._interest_memo = Memo(self._calculate_interest_figures,
                                   lambda: (self.state_stamp(), self._carried_interest))

    @classmethod
    def create(cls, from_date: date, due_date: date, emi: Money, mc: Context) -> 'RepaymentPeriod':
        """New period with one empty interest period spanning it"""
        zero = emi.zeroed()
        period = cls(from_date, due_date, [], emi, emi, zero, zero, mc)
        period.interest_periods = [InterestPeriod.with_empty_amounts(zero, from_date, due_date, mc)]
        return period

    def copy(self, mc: Optional[Context] = None) -> 'RepaymentPeriod':
        return RepaymentPeriod(
            self.from_date, self.due_date, [ip.copy() for ip in self.interest_periods],
            self.emi, self.original_emi, self.paid_principal, self.paid_interest, mc or self._mc
        )

    def copy_without_paid_amounts(self) -> 'RepaymentPeriod':
        """Copy with zero paid amounts and every balance correction reversed"""
        zero = self.emi.zeroed()
        interest_periods = []
        for interest_period in self.interest_periods:
            ip_copy = interest_period.copy()
            if not ip_copy.balance_correction_amount.is_zero():
                ip_copy.add_balance_correction_amount(-ip_copy.balance_correction_amount)
            interest_periods.append(ip_copy)
        return RepaymentPeriod(self.from_date, self.due_date, interest_periods,
                               self.emi, self.original_emi, zero, zero, self._mc)

    def attach(self, sequence: List['RepaymentPeriod'], index: int) -> None:
        self._sequence = sequence
        self._index = index

    @property
    def mc(self) -> Context:
        return self._mc

    @property
    def zero(self) -> Money:
        return self.emi.zeroed()

    @property
    def previous(self) -> Optional['RepaymentPeriod']:
        if self._sequence is None or self._index == 0:
            return None
        return self._sequence[self._index - 1]

    @property
    def is_first_repayment_period(self) -> bool:
        return self.previous is None

    def state_stamp(self) -> Tuple[int, int]:
        """Highest version across the period and its interest periods"""
        latest = self._version
        for interest_period in self.interest_periods:
            if interest_period._version > latest:
                latest = interest_period._version
        return latest, len(self.interest_periods)

    # Interest period list mutations

    def add_interest_period(self, interest_period: InterestPeriod, position: Optional[int] = None) -> None:
        if position is None:
            self.interest_periods.append(interest_period)
        else:
            self.interest_periods.insert(position, interest_period)
        self.touch()

    def truncate_interest_periods(self, keep: int) -> None:
        del self.interest_periods[keep:]
        self.touch()

    def remove_interest_periods(self, predicate: Callable[[InterestPeriod], bool]) -> None:
        remaining = [ip for ip in self.interest_periods if not predicate(ip)]
        if len(remaining) != len(self.interest_periods):
            self.interest_periods = remaining

    @property
    def first_interest_period(self) -> InterestPeriod:
        return self.interest_periods[0]

    @property
    def last_interest_period(self) -> InterestPeriod:
        return self.interest_periods[-1]

    def find_interest_period(self, target: date) -> Optional[InterestPeriod]:
        """Last interest period containing the date"""
        found = None
        first_period = self.is_first_repayment_period
        for index, interest_period in enumerate(self.interest_periods):
            include_from = first_period and index == 0
            if is_in_period(target, interest_period.from_date, interest_period.due_date, include_from):
                found = interest_period
        return found

    # Derived amounts

    @property
    def rate_factor_plus_1(self) -> Decimal:
        """1 plus the sum of the interest period rate factors"""
        return self._rate_factor_plus_1_memo.get()

    def _calculate_rate_factor_plus_1(self) -> Decimal:
        total = Decimal('1')
        for interest_period in self.interest_periods:
            total += interest_period.rate_factor
        return total

    def _carried_unrecognized_interest(self) -> Money:
        carried = self.zero
        if self._sequence is None:
            return carried
        for period in self._sequence[:self._index]:
            calculated, due = period._interest_figures(carried)
            carried = calculated - due
        return carried

    def _interest_figures(self, carried: Money) -> Tuple[Money, Money]:
        self._carried_interest = carried
        return self._interest_memo.get()

    def _calculate_interest_figures(self) -> Tuple[Money, Money]:
        calculated = self.zero
        for interest_period in self.interest_periods:
            calculated = calculated + interest_period.calculated_due_interest(self.due_date)
        calculated = calculated + self._carried_interest

        # Early repayment above the calculated principal caps interest at what was paid
        calculated_due_principal = self.emi_plus_chargeback - calculated
        base = self.paid_interest if self.paid_principal > calculated_due_principal else calculated
        due = max_money(base, self.paid_interest)
        return calculated, due

    @property
    def calculated_due_interest(self) -> Money:
        """Interest of the interest periods plus interest not recognised by the previous period"""
        return self._interest_figures(self._carried_unrecognized_interest())[0]

    @property
    def due_interest(self) -> Money:
        return self._interest_figures(self._carried_unrecognized_interest())[1]

    @property
    def unrecognized_interest(self) -> Money:
        calculated, due = self._interest_figures(self._carried_unrecognized_interest())
        return calculated - due

    @property
    def chargeback_principal(self) -> Money:
        return money_sum((ip.chargeback_principal for ip in self.interest_periods), self.zero)

    @property
    def chargeback_interest(self) -> Money:
        return money_sum((ip.chargeback_interest for ip in self.interest_periods), self.zero)

    @property
    def total_chargeback_amount(self) -> Money:
        return self.chargeback_principal + self.chargeback_interest

    @property
    def emi_plus_chargeback(self) -> Money:
        return self.emi + self.total_chargeback_amount

    @property
    def calculated_due_principal(self) -> Money:
        return self.emi_plus_chargeback - self.calculated_due_interest

    @property
    def due_principal(self) -> Money:
        return max_money(self.emi_plus_chargeback - self.due_interest, self.paid_principal)

    @property
    def total_paid_amount(self) -> Money:
        return self.paid_principal + self.paid_interest

    @property
    def is_fully_paid(self) -> bool:
        return self.emi == self.total_paid_amount

    @property
    def credited_amounts(self) -> Money:
        return money_sum((ip.credited_amounts for ip in self.interest_periods), self.zero)

    @property
    def disbursement_amount(self) -> Money:
        return money_sum((ip.disbursement_amount for ip in self.interest_periods), self.zero)

    @property
    def outstanding_loan_balance(self) -> Money:
        if not self.interest_periods:
            return self.zero
        last = self.last_interest_period
        balance = (last.outstanding_loan_balance + last.balance_correction_amount
                   + last.disbursement_amount - self.due_principal + self.paid_principal)
        return negative_to_zero(balance)

    @property
    def initial_balance_for_emi_recalculation(self) -> Money:
        """Balance the EMI is solved for: previous outstanding plus this period's disbursements"""
        previous = self.previous
        initial = previous.outstanding_loan_balance if previous is not None else self.zero
        return initial + self.disbursement_amount

    def add_paid_principal_amount(self, amount: Money) -> None:
        self.paid_principal = self.paid_principal + amount

    def add_paid_interest_amount(self, amount: Money) -> None:
        self.paid_interest = self.paid_interest + amount

    def update_outstanding_balances(self) -> None:
        """Re-derive interest period balances from the previous period and earlier slices"""
        previous = self.previous
        for index, interest_period in enumerate(self.interest_periods):
            if index == 0:
                if previous is None or not previous.interest_periods:
                    continue
                previous_ip = previous.last_interest_period
                balance = (previous_ip.outstanding_loan_balance + previous_ip.disbursement_amount
                           + previous_ip.balance_correction_amount - previous.due_principal
                           + previous.paid_principal)
            else:
                previous_ip = self.interest_periods[index - 1]
                balance = (previous_ip.outstanding_loan_balance + previous_ip.balance_correction_amount
                           + previous_ip.disbursement_amount)
            interest_period.outstanding_loan_balance = negative_to_zero(balance)

    def __repr__(self) -> str:
        return (f"RepaymentPeriod({self.from_date.isoformat()}..{self.due_date.isoformat()}, "
                f"emi={self.emi.amount}, interest_periods={len(self.interest_periods)})")


class ProgressiveLoanInterestScheduleModel:
    """
    Repayment periods of a progressive loan plus its interest rate timeline.

    Mutated in place by loan events; every what-if calculation works on a
    deep copy so the live schedule is never touched.
    """

    def __init__(self, repayment_periods: Iterable[RepaymentPeriod], product: LoanProductDetails,
                 loan_term_variations: Optional[Iterable[LoanTermVariation]] = None,
                 installment_amount_in_multiples_of: Optional[int] = None,
                 mc: Optional[Context] = None, interest_rates: Optional[Iterable[InterestRate]] = None,
                 is_copy: bool = False):
        if mc is None:
            mc = default_math_context()
        self.product = product
        self.mc = mc
        self.installment_amount_in_multiples_of = installment_amount_in_multiples_of
        self.repayment_periods: List[RepaymentPeriod] = list(repayment_periods)
        self.interest_rates: List[InterestRate] = sorted(interest_rates or [], reverse=True)
        self.loan_term_variations = self._group_term_variations(loan_term_variations)
        self.modifiers: Dict[ScheduleModifier, bool] = {
            ScheduleModifier.EMI_RECALCULATION: True,
            ScheduleModifier.COPY: is_copy,
        }
        self._link_periods()

    @staticmethod
    def _group_term_variations(variations) -> Dict[LoanTermVariationType, List[LoanTermVariation]]:
        grouped: Dict[LoanTermVariationType, List[LoanTermVariation]] = {}
        for variation in variations or []:
            grouped.setdefault(variation.term_type, []).append(variation)
        return grouped

    def _link_periods(self) -> None:
        for index, period in enumerate(self.repayment_periods):
            period.attach(self.repayment_periods, index)

    @property
    def zero(self) -> Money:
        return Money.zero(self.product.currency, self.mc)

    @property
    def flat_term_variations(self) -> List[LoanTermVariation]:
        return [variation for group in self.loan_term_variations.values() for variation in group]

    def _copy(self, period_copier: Callable[[RepaymentPeriod], RepaymentPeriod],
              is_copy: bool) -> 'ProgressiveLoanInterestScheduleModel':
        return ProgressiveLoanInterestScheduleModel(
            [period_copier(period) for period in self.repayment_periods],
            self.product,
            self.flat_term_variations,
            self.installment_amount_in_multiples_of,
            self.mc,
            list(self.interest_rates),
            is_copy=is_copy,
        )

    def deep_copy(self, mc: Optional[Context] = None) -> 'ProgressiveLoanInterestScheduleModel':
        """Independent copy for speculative calculation"""
        copy_mc = mc or self.mc
        model = self._copy(lambda period: period.copy(copy_mc), is_copy=False)
        model.mc = copy_mc
        return model

    def copy_without_paid_amounts(self) -> 'ProgressiveLoanInterestScheduleModel':
        """Copy flagged as a calculation copy, without payments or balance corrections"""
        return self._copy(lambda period: period.copy_without_paid_amounts(), is_copy=True)

    # Interest rates

    def get_interest_rate(self, effective_date: date) -> Decimal:
        """Rate in force on a date, falling back to the product rate"""
        for rate in self.interest_rates:
            if rate.effective_from <= effective_date:
                return rate.interest_rate
        return self.product.annual_nominal_interest_rate

    def add_interest_rate(self, effective_from: date, interest_rate) -> None:
        """Record a rate change; a later change on the same date replaces the earlier one"""
        rates = [rate for rate in self.interest_rates if rate.effective_from != effective_from]
        rates.append(InterestRate(effective_from, to_decimal(interest_rate)))
        self.interest_rates = sorted(rates, reverse=True)

    # Lookups

    def find_repayment_period_by_due_date(self, due_date: Optional[date]) -> Optional[RepaymentPeriod]:
        if due_date is None:
            return None
        for period in self.repayment_periods:
            if period.due_date == due_date:
                return period
        return None

    def get_related_repayment_periods(self, from_due_date: Optional[date]) -> List[RepaymentPeriod]:
        """Periods due on or after a date"""
        if from_due_date is None:
            return list(self.repayment_periods)
        return [period for period in self.repayment_periods if period.due_date >= from_due_date]

    def find_repayment_period(self, transaction_date: date) -> Optional[RepaymentPeriod]:
        for period in self.repayment_periods:
            if is_in_period(transaction_date, period.from_date, period.due_date,
                            period.is_first_repayment_period):
                return period
        return None

    def find_repayment_period_for_balance_change(self, balance_change_date: Optional[date]) -> Optional[RepaymentPeriod]:
        if balance_change_date is None:
            return None
        return self.find_repayment_period(balance_change_date)

    @property
    def last_repayment_period(self) -> RepaymentPeriod:
        return self.repayment_periods[-1]

    def is_last_repayment_period(self, period: RepaymentPeriod) -> bool:
        return self.last_repayment_period is period

    @property
    def loan_term_in_days(self) -> int:
        if not self.repayment_periods:
            return 0
        return (self.last_repayment_period.due_date - self.repayment_periods[0].from_date).days

    @property
    def start_date(self) -> Optional[date]:
        return self.repayment_periods[0].from_date if self.repayment_periods else None

    @property
    def maturity_date(self) -> Optional[date]:
        return self.last_repayment_period.due_date if self.repayment_periods else None

    def is_empty(self) -> bool:
        """No period carries an EMI yet"""
        return all(period.emi.is_zero() for period in self.repayment_periods)

    def has_term_variation(self, term_type: LoanTermVariationType) -> bool:
        return bool(self.loan_term_variations.get(term_type))

    # Structural edits

    def change_outstanding_balance_and_update_interest_periods(
            self, balance_change_date: date, disbursed_amount: Money,
            correction_amount: Money) -> Optional[RepaymentPeriod]:
        """
        Record a balance change on the interest period boundary at a date.

        An interest period already ending on the date takes the amounts;
        otherwise the containing interest period is split there. A change on
        the maturity date uses (or creates) a zero-length trailing slice.

        Returns:
            The affected repayment period, or None when the date is outside the schedule
        """
        period = self.find_repayment_period_for_balance_change(balance_change_date)
        if period is None:
            return None

        on_maturity_date = self.is_last_repayment_period(period) and balance_change_date == period.due_date
        interest_period = self._find_interest_period_for_balance_change(period, balance_change_date, on_maturity_date)
        if interest_period is not None:
            interest_period.add_disbursement_amount(disbursed_amount)
            interest_period.add_balance_correction_amount(correction_amount)
        else:
            self.insert_interest_period(period, balance_change_date, disbursed_amount, correction_amount)
        return period

    @staticmethod
    def _find_interest_period_for_balance_change(period: RepaymentPeriod, balance_change_date: date,
                                                 on_maturity_date: bool) -> Optional[InterestPeriod]:
        if on_maturity_date:
            last = period.last_interest_period
            return last if last.length == 0 else None
        for interest_period in period.interest_periods:
            if interest_period.due_date == balance_change_date:
                return interest_period
        return None

    def insert_interest_period(self, period: RepaymentPeriod, balance_change_date: date,
                               disbursed_amount: Money, correction_amount: Money) -> None:
        """Split the interest period containing the date and book the amounts on the left slice"""
        position = self._containing_interest_period_index(period, balance_change_date)
        left = period.interest_periods[position]
        original_due_date = left.due_date
        if balance_change_date < left.from_date:
            new_due_date = left.from_date
        elif balance_change_date > left.due_date:
            new_due_date = left.due_date
        else:
            new_due_date = balance_change_date

        left.due_date = new_due_date
        left.add_disbursement_amount(disbursed_amount)
        left.add_balance_correction_amount(correction_amount)

        right = InterestPeriod.with_empty_amounts(period.zero, new_due_date, original_due_date, self.mc)
        period.add_interest_period(right, position + 1)

    @staticmethod
    def _containing_interest_period_index(period: RepaymentPeriod, target: date) -> int:
        found = 0
        for index, interest_period in enumerate(period.interest_periods):
            if interest_period.from_date < target <= interest_period.due_date:
                found = index
        return found

    def update_interest_periods_for_interest_pause(self, from_date: Optional[date],
                                                   end_date: Optional[date]) -> Optional[RepaymentPeriod]:
        """
        Cut a paused slice out of every interest period overlapping the pause.

        Returns:
            First affected repayment period, or None
        """
        if from_date is None or end_date is None:
            return None
        affected = [period for period in self.repayment_periods
                    if period.from_date < end_date and period.due_date >= from_date]
        for period in affected:
            self._insert_interest_pause_periods(period, from_date, end_date)
        return affected[0] if affected else None

    def _insert_interest_pause_periods(self, period: RepaymentPeriod, pause_start: date, pause_end: date) -> None:
        effective_start = date.fromordinal(pause_start.toordinal() - 1)
        start = period.from_date if effective_start < period.from_date else effective_start
        end = period.due_date if pause_end > period.due_date else pause_end

        slices = []
        for interest_period in period.interest_periods:
            if interest_period.due_date < start or interest_period.from_date >= end:
                slices.append(interest_period)
                continue
            if interest_period.from_date < start:
                left = interest_period.copy()
                left.due_date = start
                slices.append(left)
            if interest_period.due_date > end:
                right = interest_period.copy()
                right.from_date = end
                slices.append(right)

        slices.append(InterestPeriod.with_paused_and_empty_amounts(period.zero, start, end, self.mc))
        slices.sort(key=lambda ip: ip.from_date)
        period.interest_periods = slices

    def update_outstanding_balances(self) -> None:
        """Forward pass re-deriving every interest period balance"""
        for period in self.repayment_periods:
            period.update_outstanding_balances()

    def copy_periods_from(self, from_due_date: date, source_periods: List[RepaymentPeriod],
                          consumer: Callable[[RepaymentPeriod, RepaymentPeriod], None]) -> None:
        """
        Pair source periods with periods of this schedule by due date.

        The consumer receives (source, target) for targets due on or after
        from_due_date.
        """
        if not source_periods:
            return
        actual_periods = self.repayment_periods
        actual_index = 0
        for source in source_periods:
            if actual_index >= len(actual_periods):
                break
            actual = actual_periods[actual_index]
            actual_index += 1
            while actual_index < len(actual_periods) and source.due_date != actual.due_date:
                actual = actual_periods[actual_index]
                actual_index += 1
            if actual.due_date >= from_due_date:
                consumer(source, actual)

    # Totals

    def _interest_figures(self) -> List[Tuple[Money, Money]]:
        figures = []
        carried = self.zero
        for period in self.repayment_periods:
            calculated, due = period._interest_figures(carried)
            figures.append((calculated, due))
            carried = calculated - due
        return figures

    @property
    def total_due_interest(self) -> Money:
        """Due interest of the whole schedule, chargeback interest included"""
        return money_sum((due for _, due in self._interest_figures()), self.zero)

    @property
    def total_due_principal(self) -> Money:
        """Disbursed amounts plus chargeback principal"""
        return money_sum((period.credited_amounts for period in self.repayment_periods), self.zero)

    @property
    def total_paid_interest(self) -> Money:
        return money_sum((period.paid_interest for period in self.repayment_periods), self.zero)

    @property
    def total_paid_principal(self) -> Money:
        return money_sum((period.paid_principal for period in self.repayment_periods), self.zero)

    @property
    def total_chargeback_principal(self) -> Money:
        return money_sum((period.chargeback_principal for period in self.repayment_periods), self.zero)

    @property
    def total_disbursed_amount(self) -> Money:
        return money_sum((period.disbursement_amount for period in self.repayment_periods), self.zero)

    @property
    def total_outstanding_principal(self) -> Money:
        return negative_to_zero(self.total_due_principal - self.total_paid_principal)

    @property
    def total_outstanding_interest(self) -> Money:
        return negative_to_zero(self.total_due_interest - self.total_paid_interest)

    # Modifiers

    def disable_emi_recalculation(self) -> None:
        self.modifiers[ScheduleModifier.EMI_RECALCULATION] = False

    def is_emi_recalculation_enabled(self) -> bool:
        return self.modifiers[ScheduleModifier.EMI_RECALCULATION]

    def is_copy(self) -> bool:
        return self.modifiers[ScheduleModifier.COPY]
