"""
Progressive EMI Calculator

Keeps a progressive loan schedule consistent as loan events arrive:
disbursements, interest rate changes, payments, balance corrections,
chargebacks and interest pauses. Each event updates the interest period
structure, re-derives rate factors and balances for the affected window and
re-solves the equal installment where needed.

Point-in-time queries (due amounts, outstanding amounts as of a date) run on
deep copies and never mutate the given model.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Context, Decimal
from typing import Iterable, List, Optional, Tuple

from .config import default_math_context, get_config
from .currency import Money, min_money, money_sum, negative_to_zero, round_to_multiples_of
from .day_count import rate_factor, rate_factor_till_period_due_date
from .exceptions import ScheduleInvariantError
from .interest_schedule import (
    EmiChangeAction, EmiChangeOperation, InterestPeriod, OutstandingDetails, PeriodDueDetails,
    ProgressiveLoanInterestScheduleModel, RepaymentPeriod
)
from .logging_config import get_logger, log_action
from .terms import LoanProductDetails, LoanTermVariation, LoanTermVariationType

logger = get_logger("loan_schedule.emi_calculator")


@dataclass(frozen=True)
class EmiAdjustment:
    """EMI gap between the last two unpaid periods of a window"""
    original_emi: Money
    emi_difference: Money
    related_repayment_periods: List[RepaymentPeriod] = field(compare=False)
    uncountable_periods: int = 0

    @property
    def number_of_related_periods(self) -> int:
        return len(self.related_repayment_periods)

    def should_be_adjusted(self) -> bool:
        """Difference exceeds one cent per pair of related periods"""
        lower_half_of_related_periods = self.number_of_related_periods // 2
        if lower_half_of_related_periods <= 0 or self.emi_difference.is_zero():
            return False
        return abs(self.emi_difference).amount * 100 > Decimal(lower_half_of_related_periods)

    def adjusted_emi(self, mc: Context) -> Money:
        """Original EMI with the difference spread over the countable periods"""
        countable = max(1, self.number_of_related_periods - self.uncountable_periods)
        return self.original_emi + self.emi_difference.divided_by(countable, mc)

    def has_less_emi_difference(self, previous: 'EmiAdjustment') -> bool:
        return abs(self.emi_difference) < abs(previous.emi_difference)


def _period_bounds(period) -> Tuple[date, date]:
    """Boundaries of a RepaymentPeriod or of a (from_date, due_date) pair"""
    if isinstance(period, RepaymentPeriod):
        return period.from_date, period.due_date
    from_date, due_date = period
    return from_date, due_date


class ProgressiveEMICalculator:
    """
    Equal installment calculator for progressive loans.

    Stateless apart from the adjustment bound; all state lives in the
    schedule model passed to each operation.
    """

    def __init__(self, emi_adjustment_max_iterations: Optional[int] = None):
        self.emi_adjustment_max_iterations = (
            emi_adjustment_max_iterations or get_config().emi_adjustment_max_iterations
        )

    def generate_period_interest_schedule_model(
            self, periods: Iterable, product: LoanProductDetails,
            installment_amount_in_multiples_of: Optional[int] = None, mc: Optional[Context] = None,
            loan_term_variations: Optional[Iterable[LoanTermVariation]] = None
    ) -> ProgressiveLoanInterestScheduleModel:
        """
        Build an empty schedule model from repayment period boundaries.

        Args:
            periods: (from_date, due_date) pairs or RepaymentPeriod instances
            product: Product day-count and rate settings
            installment_amount_in_multiples_of: EMI rounding granularity
            mc: Decimal context, defaults to the configured one
            loan_term_variations: Term variations applying to the loan

        Returns:
            Model whose periods have zero EMI and a single interest period each
        """
        mc = mc or default_math_context()
        zero = Money.zero(product.currency, mc)
        repayment_periods = []
        for period in periods:
            from_date, due_date = _period_bounds(period)
            repayment_periods.append(RepaymentPeriod.create(from_date, due_date, zero, mc))
        return ProgressiveLoanInterestScheduleModel(
            repayment_periods, product, loan_term_variations, installment_amount_in_multiples_of, mc
        )

    def find_repayment_period(self, model: Optional[ProgressiveLoanInterestScheduleModel],
                              repayment_period_due_date: date) -> Optional[RepaymentPeriod]:
        if model is None:
            return None
        return model.find_repayment_period_by_due_date(repayment_period_due_date)

    def _require_repayment_period(self, model: ProgressiveLoanInterestScheduleModel,
                                  repayment_period_due_date: date) -> RepaymentPeriod:
        period = model.find_repayment_period_by_due_date(repayment_period_due_date)
        if period is None:
            raise ScheduleInvariantError(
                f"No repayment period due on {repayment_period_due_date.isoformat()}"
            )
        return period

    @staticmethod
    def _change_balance(model: ProgressiveLoanInterestScheduleModel, balance_change_date: date,
                        disbursed_amount: Money, correction_amount: Money) -> RepaymentPeriod:
        period = model.change_outstanding_balance_and_update_interest_periods(
            balance_change_date, disbursed_amount, correction_amount
        )
        if period is None:
            raise ScheduleInvariantError(
                f"No repayment period contains {balance_change_date.isoformat()}"
            )
        return period

    # Loan events

    def add_disbursement(self, model: ProgressiveLoanInterestScheduleModel, disbursement_due_date: date,
                         disbursed_amount: Money) -> None:
        """Add a disbursement and re-solve the EMI from the affected period onwards"""
        log_action(
            logger, "debug", "Disbursement added to schedule",
            action="add_disbursement",
            extra={"date": disbursement_due_date.isoformat(), "amount": str(disbursed_amount.amount),
                   "copy": model.is_copy()}
        )
        self._add_disbursement(model, EmiChangeOperation.disburse(disbursement_due_date, disbursed_amount))

    def _add_disbursement(self, model: ProgressiveLoanInterestScheduleModel,
                          operation: EmiChangeOperation) -> None:
        period = self._change_balance(model, operation.submitted_on_date, operation.amount, model.zero)
        effective_due_date = self._effective_repayment_due_date(model, period, operation.submitted_on_date)
        self._calculate_emi_value_and_rate_factors(effective_due_date, model, operation)

    @staticmethod
    def _effective_repayment_due_date(model: ProgressiveLoanInterestScheduleModel,
                                      changed_period: RepaymentPeriod, operation_date: date) -> date:
        """A change on a period's due date belongs to the following period"""
        if changed_period.due_date == operation_date:
            for period in model.repayment_periods:
                if period.previous is changed_period:
                    return period.due_date
            # A change on the maturity date stays with the last period
        return changed_period.due_date

    def change_interest_rate(self, model: ProgressiveLoanInterestScheduleModel, new_interest_submitted_on_date: date,
                             new_interest_rate) -> None:
        """Apply a new annual rate from the day before the submission date"""
        operation = EmiChangeOperation.change_interest_rate(new_interest_submitted_on_date, new_interest_rate)
        effective_date = operation.submitted_on_date - timedelta(days=1)
        log_action(
            logger, "debug", "Interest rate changed",
            action="change_interest_rate",
            extra={"effective_date": effective_date.isoformat(), "interest_rate": str(operation.interest_rate)}
        )
        if model.find_repayment_period_for_balance_change(effective_date) is None:
            raise ScheduleInvariantError(
                f"Interest rate change effective {effective_date.isoformat()} is outside the schedule"
            )
        model.add_interest_rate(effective_date, operation.interest_rate)
        period = self._change_balance(model, effective_date, model.zero, model.zero)
        effective_due_date = self._effective_repayment_due_date(model, period, effective_date)
        self._calculate_emi_value_and_rate_factors(effective_due_date, model, operation)

    def add_balance_correction(self, model: ProgressiveLoanInterestScheduleModel, balance_correction_date: date,
                               balance_correction_amount: Money) -> None:
        """Shift the balance on a date; only the last unpaid EMI absorbs the change"""
        log_action(
            logger, "debug", "Balance correction applied",
            action="add_balance_correction",
            extra={"date": balance_correction_date.isoformat(), "amount": str(balance_correction_amount.amount)}
        )
        period = self._change_balance(model, balance_correction_date, model.zero, balance_correction_amount)
        self.calculate_rate_factor_for_repayment_period(period, model)
        self.calculate_outstanding_balance(model)
        self.calculate_last_unpaid_repayment_period_emi(model)

    def pay_interest(self, model: ProgressiveLoanInterestScheduleModel, repayment_period_due_date: date,
                     transaction_date: date, interest_amount: Money) -> None:
        period = self._require_repayment_period(model, repayment_period_due_date)
        log_action(
            logger, "debug", "Interest paid",
            action="pay_interest",
            extra={"due_date": repayment_period_due_date.isoformat(),
                   "transaction_date": transaction_date.isoformat(), "amount": str(interest_amount.amount)}
        )
        period.add_paid_interest_amount(interest_amount)
        self.calculate_outstanding_balance(model)
        self.calculate_last_unpaid_repayment_period_emi(model)

    def pay_principal(self, model: ProgressiveLoanInterestScheduleModel, repayment_period_due_date: date,
                      transaction_date: date, principal_amount: Money) -> None:
        """
        Record a principal payment against a period.

        The payment reduces the balance from the transaction date, or from
        the period due date when paid late. When the period has been paid
        more than its EMI, the EMI is raised to the paid amount and the last
        unpaid period gives the difference back. A payment made before the
        period started that exactly covers its original EMI also settles it.

        Raises:
            ScheduleInvariantError: No period is due on repayment_period_due_date,
                or the payment date is outside the schedule
        """
        if principal_amount is None or principal_amount.is_zero():
            return
        period = self._require_repayment_period(model, repayment_period_due_date)
        balance_correction_date = (repayment_period_due_date if repayment_period_due_date < transaction_date
                                   else transaction_date)
        if model.find_repayment_period_for_balance_change(balance_correction_date) is None:
            raise ScheduleInvariantError(
                f"Principal payment on {balance_correction_date.isoformat()} is outside the schedule"
            )
        log_action(
            logger, "debug", "Principal paid",
            action="pay_principal",
            extra={"due_date": repayment_period_due_date.isoformat(),
                   "transaction_date": transaction_date.isoformat(), "amount": str(principal_amount.amount)}
        )
        transaction_date_is_before = transaction_date < period.from_date
        period.add_paid_principal_amount(principal_amount)
        self.add_balance_correction(model, balance_correction_date, -principal_amount)

        if model.is_emi_recalculation_enabled():
            total_paid = period.total_paid_amount
            chargeback = period.total_chargeback_amount
            settled_in_advance = transaction_date_is_before and total_paid == period.original_emi + chargeback
            if total_paid > period.emi_plus_chargeback or settled_in_advance:
                period.emi = total_paid - chargeback
            self.calculate_last_unpaid_repayment_period_emi(model)

    def chargeback_principal(self, model: ProgressiveLoanInterestScheduleModel, transaction_date: date,
                             chargeback_principal_amount: Money) -> None:
        self._add_chargeback(model, transaction_date, chargeback_principal_amount, model.zero)

    def chargeback_interest(self, model: ProgressiveLoanInterestScheduleModel, transaction_date: date,
                            chargeback_interest_amount: Money) -> None:
        self._add_chargeback(model, transaction_date, model.zero, chargeback_interest_amount)

    def _add_chargeback(self, model: ProgressiveLoanInterestScheduleModel, transaction_date: date,
                        principal_amount: Money, interest_amount: Money) -> None:
        log_action(
            logger, "debug", "Chargeback applied",
            action="chargeback",
            extra={"date": transaction_date.isoformat(), "principal": str(principal_amount.amount),
                   "interest": str(interest_amount.amount)}
        )
        period = self._change_balance(model, transaction_date, model.zero, principal_amount)
        self._add_chargeback_amounts_to_interest_period(model, transaction_date, principal_amount, interest_amount)
        self.calculate_rate_factor_for_repayment_period(period, model)
        self.calculate_outstanding_balance(model)
        self.calculate_last_unpaid_repayment_period_emi(model)

    @staticmethod
    def _add_chargeback_amounts_to_interest_period(model: ProgressiveLoanInterestScheduleModel,
                                                   transaction_date: date, principal_amount: Money,
                                                   interest_amount: Money) -> None:
        for period in model.repayment_periods:
            if model.is_last_repayment_period(period):
                in_range = period.from_date <= transaction_date <= period.due_date
            else:
                in_range = period.from_date <= transaction_date < period.due_date
            if not in_range:
                continue
            starting = [ip for ip in period.interest_periods if ip.from_date == transaction_date]
            if starting:
                starting[-1].add_chargeback_principal_amount(principal_amount)
                starting[-1].add_chargeback_interest_amount(interest_amount)
            return

    def apply_interest_pause(self, model: ProgressiveLoanInterestScheduleModel, from_date: date,
                             end_date: date) -> None:
        """Stop interest accrual between two dates without re-solving the EMI"""
        log_action(
            logger, "debug", "Interest pause applied",
            action="apply_interest_pause",
            extra={"from_date": from_date.isoformat(), "end_date": end_date.isoformat()}
        )
        period = model.update_interest_periods_for_interest_pause(from_date, end_date)
        if period is None:
            return
        related = model.get_related_repayment_periods(period.from_date)
        self.calculate_rate_factor_for_periods(related, model)
        self.calculate_outstanding_balance(model)
        self.calculate_last_unpaid_repayment_period_emi(model)

    # Point-in-time queries

    def get_due_amounts(self, model: ProgressiveLoanInterestScheduleModel, period_due_date: date,
                        target_date: date) -> PeriodDueDetails:
        """
        Due EMI, principal and interest of a period as of a target date.

        Raises:
            ScheduleInvariantError: No period is due on period_due_date
        """
        copy = self._recalculate_schedule_model_till_date(model, period_due_date, target_date)
        period = self._require_repayment_period(copy, period_due_date)
        not_fully_paid_count = sum(1 for rp in copy.repayment_periods if not rp.is_fully_paid)

        if target_date <= period.from_date:
            if not_fully_paid_count > 1:
                period.emi = period.original_emi
            elif period.is_fully_paid and not_fully_paid_count == 1:
                remaining = (copy.total_due_principal - copy.total_paid_principal
                             + period.paid_principal + period.due_interest)
                period.emi = min_money(period.original_emi, remaining)

        return PeriodDueDetails(period.emi, period.due_principal, period.due_interest)

    def get_period_interest_till_date(self, model: ProgressiveLoanInterestScheduleModel, period_due_date: date,
                                      target_date: date, include_chargeback_interest: bool = True) -> Money:
        """Interest accrued in one period up to a date"""
        copy = self._recalculate_schedule_model_till_date(model, period_due_date, target_date)
        period = self._require_repayment_period(copy, period_due_date)
        if include_chargeback_interest:
            return period.calculated_due_interest
        return period.calculated_due_interest - period.chargeback_interest

    def get_outstanding_loan_balance_of_period(self, model: ProgressiveLoanInterestScheduleModel,
                                               period_due_date: date, target_date: date) -> Money:
        copy = self._recalculate_schedule_model_till_date(model, period_due_date, target_date)
        return self._require_repayment_period(copy, period_due_date).outstanding_loan_balance

    def get_outstanding_amounts_till_date(self, model: ProgressiveLoanInterestScheduleModel,
                                          target_date: date) -> OutstandingDetails:
        """Outstanding principal and interest of the whole loan as of a date"""
        copy = model.deep_copy(model.mc)
        for period in copy.repayment_periods:
            if period.from_date < target_date <= period.due_date:
                containing = [ip for ip in period.interest_periods
                              if ip.from_date < target_date <= ip.due_date]
                if containing:
                    containing[-1].due_date = target_date
                break

        self.calculate_rate_factor_for_periods(copy.repayment_periods, copy)
        for period in copy.repayment_periods:
            for interest_period in period.interest_periods:
                if target_date < interest_period.due_date:
                    interest_period.rate_factor = Decimal('0')
                    interest_period.rate_factor_till_period_due_date = Decimal('0')
        self.calculate_outstanding_balance(copy)
        self.calculate_last_unpaid_repayment_period_emi(copy)

        return OutstandingDetails(
            negative_to_zero(copy.total_due_principal - copy.total_paid_principal),
            negative_to_zero(copy.total_due_interest - copy.total_paid_interest),
        )

    def get_sum_of_due_interests_on_date(self, model: ProgressiveLoanInterestScheduleModel,
                                         subject_date: date) -> Money:
        return money_sum(
            (self.get_due_amounts(model, period.due_date, subject_date).due_interest
             for period in model.repayment_periods),
            model.zero
        )

    def _recalculate_schedule_model_till_date(self, model: ProgressiveLoanInterestScheduleModel,
                                              period_due_date: date,
                                              target_date: date) -> ProgressiveLoanInterestScheduleModel:
        """Deep copy with every interest period cut off at the target date"""
        copy = model.deep_copy(model.mc)
        period = self._require_repayment_period(copy, period_due_date)

        adjusted_target_date = target_date
        if target_date <= period.from_date:
            interest_period = period.first_interest_period
            adjusted_target_date = period.from_date
        elif target_date > period.due_date:
            interest_period = period.last_interest_period
            adjusted_target_date = period.due_date
        else:
            interest_period = period.find_interest_period(target_date)
            if interest_period is None:
                raise ScheduleInvariantError(
                    f"No interest period contains {target_date.isoformat()} "
                    f"in the period due on {period_due_date.isoformat()}"
                )

        containing_period = copy.find_repayment_period(target_date)
        if containing_period is not None:
            containing = containing_period.find_interest_period(target_date)
            if containing is not None:
                containing.due_date = target_date
        interest_period.due_date = adjusted_target_date

        index = next(i for i, ip in enumerate(period.interest_periods) if ip is interest_period)
        next_index = index + 1
        if (len(period.interest_periods) > next_index
                and period.interest_periods[next_index].from_date == target_date):
            # Chargebacks booked on the target date come from the following slice
            following = period.interest_periods[next_index]
            interest_period.add_chargeback_principal_amount(following.chargeback_principal)
            interest_period.add_chargeback_interest_amount(following.chargeback_interest)
        period.truncate_interest_periods(next_index)

        for repayment_period in copy.repayment_periods:
            repayment_period.remove_interest_periods(lambda ip: ip.due_date > target_date)
        self.calculate_rate_factor_for_periods(copy.repayment_periods, copy)
        self.calculate_outstanding_balance(copy)
        self.calculate_last_unpaid_repayment_period_emi(copy)
        return copy

    # Rate factors

    def calculate_rate_factor_for_repayment_period(self, period: RepaymentPeriod,
                                                   model: ProgressiveLoanInterestScheduleModel) -> None:
        """Set the rate factors of every interest period of a repayment period"""
        for interest_period in period.interest_periods:
            self._calculate_rate_factor_for_interest_period(interest_period, period, model)

    def calculate_rate_factor_for_periods(self, periods: Iterable[RepaymentPeriod],
                                          model: ProgressiveLoanInterestScheduleModel) -> None:
        for period in periods:
            self.calculate_rate_factor_for_repayment_period(period, model)

    @staticmethod
    def _calculate_rate_factor_for_interest_period(interest_period: InterestPeriod, period: RepaymentPeriod,
                                                   model: ProgressiveLoanInterestScheduleModel) -> None:
        interest_rate = model.get_interest_rate(interest_period.from_date)
        interest_period.rate_factor = rate_factor(
            model.product, interest_rate, interest_period.from_date, interest_period.due_date,
            period.from_date, period.due_date, model.mc
        )
        interest_period.rate_factor_till_period_due_date = rate_factor_till_period_due_date(
            model.product, interest_rate, interest_period.from_date, period.from_date, period.due_date,
            model.start_date, model.mc
        )

    # EMI

    def _calculate_emi_value_and_rate_factors(self, calculate_from_due_date: date,
                                              model: ProgressiveLoanInterestScheduleModel,
                                              operation: EmiChangeOperation) -> None:
        related = model.get_related_repayment_periods(calculate_from_due_date)
        on_actual_model = (model.is_empty()
                           or operation.action == EmiChangeAction.INTEREST_RATE_CHANGE
                           or model.is_copy())

        self.calculate_rate_factor_for_periods(related, model)
        self.calculate_outstanding_balance(model)
        if on_actual_model:
            self._calculate_emi_on_actual_model(related, model)
        else:
            self._calculate_emi_on_new_model_and_merge(related, model, operation)
        self.calculate_outstanding_balance(model)
        self.calculate_last_unpaid_repayment_period_emi(model)
        if on_actual_model and not model.has_term_variation(LoanTermVariationType.DUE_DATE):
            self._check_and_adjust_emi_if_needed(model, related)

    def _calculate_emi_on_actual_model(self, periods: List[RepaymentPeriod],
                                       model: ProgressiveLoanInterestScheduleModel) -> None:
        if not periods:
            return
        mc = model.mc
        rate_factor_plus_1_n = self.calculate_rate_factor_plus_1_n(periods, mc)
        fn_result = self.calculate_fn_result(periods, mc)
        outstanding_balance = periods[0].initial_balance_for_emi_recalculation

        emi_value = self.calculate_emi_value(rate_factor_plus_1_n, outstanding_balance.amount, fn_result, mc)
        emi = self._apply_installment_amount_in_multiples_of(
            model, Money.of(emi_value, outstanding_balance.currency, mc)
        )
        log_action(
            logger, "debug", "EMI solved",
            action="calculate_emi",
            extra={"from_due_date": periods[0].due_date.isoformat(), "periods": len(periods),
                   "balance": str(outstanding_balance.amount), "emi": str(emi.amount)}
        )
        for period in periods:
            if not emi < period.total_paid_amount:
                period.emi = emi
                period.original_emi = emi

    def _calculate_emi_on_new_model_and_merge(self, periods: List[RepaymentPeriod],
                                              model: ProgressiveLoanInterestScheduleModel,
                                              operation: EmiChangeOperation) -> None:
        """Solve on a copy without payments, then take its EMIs onto the live periods"""
        if not periods:
            return
        copy = model.copy_without_paid_amounts()
        self._add_disbursement(copy, operation.with_zero_amount())

        def merge(new_period: RepaymentPeriod, actual_period: RepaymentPeriod) -> None:
            actual_period.emi = new_period.emi
            actual_period.original_emi = new_period.original_emi

        model.copy_periods_from(periods[0].due_date, copy.repayment_periods, merge)

    @staticmethod
    def _apply_installment_amount_in_multiples_of(model: ProgressiveLoanInterestScheduleModel,
                                                  emi: Money) -> Money:
        if model.installment_amount_in_multiples_of is None:
            return emi
        return round_to_multiples_of(emi, model.installment_amount_in_multiples_of)

    @staticmethod
    def calculate_rate_factor_plus_1_n(periods: Iterable[RepaymentPeriod], mc: Context) -> Decimal:
        """Product of (1 + rate factor) over the periods"""
        result = Decimal('1')
        for period in periods:
            result = mc.multiply(result, period.rate_factor_plus_1)
        return result

    def calculate_fn_result(self, periods: List[RepaymentPeriod], mc: Context) -> Decimal:
        """Annuity denominator folded over every period after the first"""
        result = Decimal('1')
        for period in periods[1:]:
            result = self.fn_value(result, period.rate_factor_plus_1, mc)
        return result

    @staticmethod
    def fn_value(previous_fn_value: Decimal, current_rate_factor: Decimal, mc: Context) -> Decimal:
        """fn = 1 + previous fn * rate factor"""
        return mc.add(Decimal('1'), mc.multiply(previous_fn_value, current_rate_factor))

    @staticmethod
    def calculate_emi_value(rate_factor_plus_1_n: Decimal, outstanding_balance: Decimal, fn_result: Decimal,
                            mc: Context) -> Decimal:
        return mc.divide(mc.multiply(rate_factor_plus_1_n, outstanding_balance), fn_result)

    def calculate_outstanding_balance(self, model: ProgressiveLoanInterestScheduleModel) -> None:
        model.update_outstanding_balances()

    def calculate_last_unpaid_repayment_period_emi(self, model: ProgressiveLoanInterestScheduleModel) -> None:
        """
        Put the rounding remainder of the schedule on the last unpaid period.

        The remainder is disbursements plus chargeback principal plus due
        interest minus the EMIs. The EMI is never lowered below what the
        period has already been paid; when it would be, the next unpaid
        period takes the rest.
        """
        for _ in range(len(model.repayment_periods)):
            total_due_interest = model.total_due_interest
            total_emi = money_sum((rp.emi_plus_chargeback for rp in model.repayment_periods), model.zero)
            total_disbursed = model.total_disbursed_amount + model.total_chargeback_principal
            difference = total_disbursed + total_due_interest - total_emi

            unpaid = [rp for rp in model.repayment_periods if not rp.is_fully_paid]
            if not unpaid:
                return
            last_unpaid = unpaid[-1]
            last_unpaid.emi = last_unpaid.emi + difference
            paid_without_chargeback = last_unpaid.total_paid_amount - last_unpaid.total_chargeback_amount
            if not last_unpaid.emi < paid_without_chargeback:
                return
            last_unpaid.emi = paid_without_chargeback

    def get_emi_adjustment(self, periods: List[RepaymentPeriod]) -> EmiAdjustment:
        """EMI gap between the last pair of adjacent unpaid periods"""
        for index in range(len(periods) - 1, 0, -1):
            last_period = periods[index]
            penultimate_period = periods[index - 1]
            if not last_period.is_fully_paid and not penultimate_period.is_fully_paid:
                difference = last_period.emi - penultimate_period.emi
                uncountable = sum(1 for rp in periods if penultimate_period.emi < rp.total_paid_amount)
                return EmiAdjustment(penultimate_period.emi, difference, periods, uncountable)
        first_emi = periods[0].emi
        return EmiAdjustment(first_emi, first_emi.zeroed(), periods, 0)

    def _check_and_adjust_emi_if_needed(self, model: ProgressiveLoanInterestScheduleModel,
                                        related: List[RepaymentPeriod]) -> None:
        """
        Try evening out the plug left on the last period.

        Each round spreads the last-period difference over the related
        periods on a copy and keeps it only when the resulting difference is
        smaller than before.
        """
        if not related:
            return
        mc = model.mc
        first_due_date = related[0].due_date
        candidate_model = None

        for iteration in range(self.emi_adjustment_max_iterations):
            adjustment = self.get_emi_adjustment(related)
            if not adjustment.should_be_adjusted():
                break
            adjusted_emi = self._apply_installment_amount_in_multiples_of(model, adjustment.adjusted_emi(mc))
            if adjusted_emi == adjustment.original_emi:
                break
            if candidate_model is None:
                candidate_model = model.deep_copy(mc)

            for period in candidate_model.repayment_periods:
                if period.due_date >= first_due_date and not adjusted_emi < period.total_paid_amount:
                    period.emi = adjusted_emi
                    period.original_emi = adjusted_emi
            self.calculate_outstanding_balance(candidate_model)
            self.calculate_last_unpaid_repayment_period_emi(candidate_model)
            if not self.get_emi_adjustment(candidate_model.repayment_periods).has_less_emi_difference(adjustment):
                break

            candidate_related = [period for period in candidate_model.repayment_periods
                                 if period.due_date >= first_due_date]
            for actual_period, candidate_period in zip(related, candidate_related):
                actual_period.emi = candidate_period.emi
                actual_period.original_emi = candidate_period.emi
            self.calculate_outstanding_balance(model)
            log_action(
                logger, "debug", "EMI adjusted",
                action="adjust_emi",
                extra={"iteration": iteration + 1, "emi": str(adjusted_emi.amount),
                       "difference": str(adjustment.emi_difference.amount)}
            )
