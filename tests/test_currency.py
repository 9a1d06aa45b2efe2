"""
Test suite for currency module

Tests Money scaling and arithmetic, decimal contexts and the rounding helpers
used by the schedule calculations.
"""

import pytest
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_HALF_UP

from loan_schedule.currency import (
    Money, Currency, math_context, to_decimal, scale_to_precision, money_sum,
    max_money, min_money, negative_to_zero, decimal_negative_to_zero, round_to_multiples_of
)


class TestMoney:
    """Test Money class operations"""

    def test_money_creation(self):
        """Test Money creation scales to currency precision"""
        money = Money(Decimal('100.50'), Currency.USD)
        assert money.amount == Decimal('100.50')
        assert money.currency == Currency.USD

        # Half-even by default
        assert Money(Decimal('100.125'), Currency.USD).amount == Decimal('100.12')
        assert Money(Decimal('100.135'), Currency.USD).amount == Decimal('100.14')

        # JPY has no minor units
        assert Money(Decimal('100.7'), Currency.JPY).amount == Decimal('101')

    def test_money_of_uses_context_rounding(self):
        """Test Money.of rounds with the context rounding mode"""
        half_up = math_context(12, "HALF_UP")
        assert Money.of('0.125', Currency.USD, half_up).amount == Decimal('0.13')
        assert Money.of('0.125', Currency.USD, math_context()).amount == Decimal('0.12')

    def test_non_decimal_amounts_are_converted(self):
        """Test int and str amounts go through Decimal"""
        assert Money(17, Currency.USD).amount == Decimal('17.00')
        assert Money('0.1', Currency.USD).amount == Decimal('0.10')

    def test_money_arithmetic(self):
        """Test Money arithmetic keeps currency precision"""
        money1 = Money(Decimal('100.50'), Currency.USD)
        money2 = Money(Decimal('50.25'), Currency.USD)

        assert (money1 + money2).amount == Decimal('150.75')
        assert (money1 - money2).amount == Decimal('50.25')
        assert (-money1).amount == Decimal('-100.50')
        assert abs(Money(Decimal('-50.00'), Currency.USD)).amount == Decimal('50.00')

    def test_adding_raw_decimal_rescales(self):
        """Test adding an unrounded decimal rounds the result"""
        money = Money(Decimal('0'), Currency.USD)
        assert (money + Decimal('0.790183333301')).amount == Decimal('0.79')

    def test_multiply_and_divide_in_context(self):
        """Test multiplication and division run in the given context"""
        mc = math_context()
        money = Money(Decimal('100.00'), Currency.USD)
        assert money.multiplied_by(Decimal('0.5'), mc).amount == Decimal('50.00')
        assert money.divided_by(3, mc).amount == Decimal('33.33')

    def test_currency_mismatch(self):
        """Test mixing currencies is rejected"""
        usd = Money(Decimal('10.00'), Currency.USD)
        eur = Money(Decimal('10.00'), Currency.EUR)
        with pytest.raises(ValueError, match="Currency mismatch"):
            usd + eur

    def test_money_comparison(self):
        """Test Money comparison operations"""
        money1 = Money(Decimal('100.00'), Currency.USD)
        money2 = Money(Decimal('50.00'), Currency.USD)
        money3 = Money(Decimal('100.00'), Currency.USD)

        assert money1 == money3
        assert money1 != money2
        assert money1 > money2
        assert money2 < money1
        assert money1 >= money3
        assert money2 <= money1
        assert hash(money1) == hash(money3)

    def test_rounding_mode_does_not_affect_equality(self):
        """Test equality ignores the rounding mode"""
        assert Money(Decimal('1.00'), Currency.USD, ROUND_HALF_UP) == Money(Decimal('1.00'), Currency.USD)

    def test_zero_helpers(self):
        """Test zero construction and sign checks"""
        zero = Money.zero(Currency.USD)
        assert zero.is_zero()
        assert not zero.is_positive()
        assert Money(Decimal('-1'), Currency.USD).is_negative()
        assert Money(Decimal('5'), Currency.USD, ROUND_HALF_UP).zeroed().rounding == ROUND_HALF_UP

    def test_to_string(self):
        """Test display formatting"""
        assert Money(Decimal('1234.5'), Currency.USD).to_string() == "USD 1,234.50"
        assert Money(Decimal('1234'), Currency.JPY).to_string() == "JPY 1,234"


class TestMathContext:
    """Test decimal context helpers"""

    def test_default_context(self):
        """Test the default 12 digit half-even context"""
        mc = math_context()
        assert mc.prec == 12
        assert mc.rounding == ROUND_HALF_EVEN

    def test_invalid_context(self):
        """Test invalid precision and rounding names are rejected"""
        with pytest.raises(ValueError, match="precision must be positive"):
            math_context(0)
        with pytest.raises(ValueError, match="Unknown rounding mode"):
            math_context(12, "SIDEWAYS")

    def test_scale_to_precision(self):
        """Test values are scaled to the context precision in decimal places"""
        mc = math_context()
        assert scale_to_precision(Decimal('0.0079018333333333'), mc) == Decimal('0.007901833333')

    def test_to_decimal(self):
        """Test conversion to Decimal"""
        assert to_decimal(None) == Decimal('0')
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal('7') == Decimal('7')


class TestMoneyHelpers:
    """Test money helper functions"""

    def test_money_sum(self):
        """Test summing onto a start value"""
        values = [Money(Decimal('1.10'), Currency.USD), Money(Decimal('2.20'), Currency.USD)]
        assert money_sum(values, Money.zero(Currency.USD)).amount == Decimal('3.30')

    def test_min_max(self):
        """Test min and max of money values"""
        small = Money(Decimal('1'), Currency.USD)
        large = Money(Decimal('2'), Currency.USD)
        assert max_money(small, large) == large
        assert min_money(small, large) == small

    def test_negative_to_zero(self):
        """Test negative values clamp to zero"""
        assert negative_to_zero(Money(Decimal('-0.01'), Currency.USD)).is_zero()
        assert negative_to_zero(Money(Decimal('0.01'), Currency.USD)).amount == Decimal('0.01')
        assert decimal_negative_to_zero(Decimal('-3')) == Decimal('0')

    def test_round_to_multiples_of(self):
        """Test rounding to whole multiples"""
        assert round_to_multiples_of(Money(Decimal('17.13'), Currency.USD), 10).amount == Decimal('20.00')
        assert round_to_multiples_of(Money(Decimal('25'), Currency.USD), 10).amount == Decimal('20.00')
        assert round_to_multiples_of(Money(Decimal('35'), Currency.USD), 10).amount == Decimal('40.00')
        assert round_to_multiples_of(Money(Decimal('17.13'), Currency.USD), None).amount == Decimal('17.13')
