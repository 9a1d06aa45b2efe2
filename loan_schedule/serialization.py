"""
Schedule Model Serialization

Textual persistence of the progressive interest schedule model. Dates are
stored ISO formatted and amounts as decimal strings; restored amounts are
bound to the product currency and the caller's rounding mode.
"""

from datetime import date
from decimal import Context, Decimal, InvalidOperation
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, Field, ValidationError

from .config import default_math_context
from .currency import Money
from .exceptions import ScheduleDeserializationError
from .interest_schedule import (
    InterestPeriod, InterestRate, ProgressiveLoanInterestScheduleModel, RepaymentPeriod, ScheduleModifier
)
from .logging_config import get_logger, log_action
from .terms import LoanProductDetails, LoanTermVariation, LoanTermVariationType

logger = get_logger("loan_schedule.serialization")


def _validate_decimal_string(value: str) -> str:
    try:
        parsed = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Not a decimal amount: {value!r}")
    if not parsed.is_finite():
        raise ValueError(f"Not a finite decimal amount: {value!r}")
    return value


DecimalString = Annotated[str, AfterValidator(_validate_decimal_string)]


def _amount(money: Money) -> str:
    return str(money.amount)


class InterestPeriodModel(BaseModel):
    from_date: date
    due_date: date
    rate_factor: DecimalString = Field(..., description="Periodic rate factor as decimal string")
    rate_factor_till_period_due_date: DecimalString
    chargeback_principal: DecimalString
    chargeback_interest: DecimalString
    disbursement_amount: DecimalString
    balance_correction_amount: DecimalString
    outstanding_loan_balance: DecimalString
    is_paused: bool = False

    @classmethod
    def from_interest_period(cls, interest_period: InterestPeriod) -> 'InterestPeriodModel':
        return cls(
            from_date=interest_period.from_date,
            due_date=interest_period.due_date,
            rate_factor=str(interest_period.rate_factor),
            rate_factor_till_period_due_date=str(interest_period.rate_factor_till_period_due_date),
            chargeback_principal=_amount(interest_period.chargeback_principal),
            chargeback_interest=_amount(interest_period.chargeback_interest),
            disbursement_amount=_amount(interest_period.disbursement_amount),
            balance_correction_amount=_amount(interest_period.balance_correction_amount),
            outstanding_loan_balance=_amount(interest_period.outstanding_loan_balance),
            is_paused=interest_period.is_paused,
        )


class RepaymentPeriodModel(BaseModel):
    from_date: date
    due_date: date
    emi: DecimalString
    original_emi: DecimalString
    paid_principal: DecimalString
    paid_interest: DecimalString
    interest_periods: List[InterestPeriodModel] = Field(..., min_length=1)

    @classmethod
    def from_repayment_period(cls, period: RepaymentPeriod) -> 'RepaymentPeriodModel':
        return cls(
            from_date=period.from_date,
            due_date=period.due_date,
            emi=_amount(period.emi),
            original_emi=_amount(period.original_emi),
            paid_principal=_amount(period.paid_principal),
            paid_interest=_amount(period.paid_interest),
            interest_periods=[InterestPeriodModel.from_interest_period(ip) for ip in period.interest_periods],
        )


class InterestRateModel(BaseModel):
    effective_from: date
    interest_rate: DecimalString


class LoanTermVariationModel(BaseModel):
    term_type: LoanTermVariationType
    applicable_from: date
    decimal_value: Optional[DecimalString] = None
    date_value: Optional[date] = None


class ScheduleModelSchema(BaseModel):
    """Stored form of a progressive schedule model"""
    currency: str
    installment_amount_in_multiples_of: Optional[int] = None
    repayment_periods: List[RepaymentPeriodModel]
    interest_rates: List[InterestRateModel] = Field(default_factory=list)
    loan_term_variations: List[LoanTermVariationModel] = Field(default_factory=list)
    modifiers: Dict[ScheduleModifier, bool] = Field(default_factory=dict)


class InterestScheduleModelService:
    """Converts schedule models to and from their JSON form"""

    def to_json(self, model: ProgressiveLoanInterestScheduleModel) -> str:
        schema = ScheduleModelSchema(
            currency=model.product.currency.code,
            installment_amount_in_multiples_of=model.installment_amount_in_multiples_of,
            repayment_periods=[RepaymentPeriodModel.from_repayment_period(rp) for rp in model.repayment_periods],
            interest_rates=[
                InterestRateModel(effective_from=rate.effective_from, interest_rate=str(rate.interest_rate))
                for rate in model.interest_rates
            ],
            loan_term_variations=[
                LoanTermVariationModel(
                    term_type=variation.term_type,
                    applicable_from=variation.applicable_from,
                    decimal_value=str(variation.decimal_value) if variation.decimal_value is not None else None,
                    date_value=variation.date_value,
                )
                for variation in model.flat_term_variations
            ],
            modifiers=dict(model.modifiers),
        )
        return schema.model_dump_json()

    def from_json(self, text: Optional[str], product: LoanProductDetails, mc: Optional[Context] = None,
                  installment_amount_in_multiples_of: Optional[int] = None
                  ) -> Optional[ProgressiveLoanInterestScheduleModel]:
        """
        Restore a schedule model.

        Args:
            text: Stored JSON, may be empty
            product: Product the model belongs to; supplies the currency
            mc: Decimal context for the restored model
            installment_amount_in_multiples_of: Overrides the stored EMI granularity when given

        Returns:
            The restored model, or None when nothing was stored

        Raises:
            ScheduleDeserializationError: The stored text is not a valid schedule model
        """
        if text is None or not text.strip():
            return None

        mc = mc or default_math_context()
        try:
            schema = ScheduleModelSchema.model_validate_json(text)
        except ValidationError as e:
            log_action(
                logger, "error", "Stored schedule model is invalid",
                action="deserialize_schedule_model",
                extra={"errors": e.error_count(), "detail": str(e)}
            )
            raise ScheduleDeserializationError(f"Invalid stored schedule model: {e}") from e

        def money(value: str) -> Money:
            return Money.of(Decimal(value), product.currency, mc)

        repayment_periods = []
        for period_schema in schema.repayment_periods:
            interest_periods = [
                InterestPeriod(
                    from_date=ip.from_date,
                    due_date=ip.due_date,
                    rate_factor=Decimal(ip.rate_factor),
                    rate_factor_till_period_due_date=Decimal(ip.rate_factor_till_period_due_date),
                    chargeback_principal=money(ip.chargeback_principal),
                    chargeback_interest=money(ip.chargeback_interest),
                    disbursement_amount=money(ip.disbursement_amount),
                    balance_correction_amount=money(ip.balance_correction_amount),
                    outstanding_loan_balance=money(ip.outstanding_loan_balance),
                    mc=mc,
                    is_paused=ip.is_paused,
                )
                for ip in period_schema.interest_periods
            ]
            repayment_periods.append(RepaymentPeriod(
                period_schema.from_date, period_schema.due_date, interest_periods,
                money(period_schema.emi), money(period_schema.original_emi),
                money(period_schema.paid_principal), money(period_schema.paid_interest), mc
            ))

        if installment_amount_in_multiples_of is None:
            installment_amount_in_multiples_of = schema.installment_amount_in_multiples_of

        model = ProgressiveLoanInterestScheduleModel(
            repayment_periods,
            product,
            loan_term_variations=[
                LoanTermVariation(
                    term_type=variation.term_type,
                    applicable_from=variation.applicable_from,
                    decimal_value=Decimal(variation.decimal_value) if variation.decimal_value is not None else None,
                    date_value=variation.date_value,
                )
                for variation in schema.loan_term_variations
            ],
            installment_amount_in_multiples_of=installment_amount_in_multiples_of,
            mc=mc,
            interest_rates=[
                InterestRate(rate.effective_from, Decimal(rate.interest_rate)) for rate in schema.interest_rates
            ],
        )
        model.modifiers.update(schema.modifiers)
        return model
