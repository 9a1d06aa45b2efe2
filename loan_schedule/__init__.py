"""
Loan Schedule Engine

Loan repayment schedule calculation: day-count and rate-factor math, holiday
date adjustment, simple amortization engines and the progressive interest
schedule model with its EMI calculator.
"""

__version__ = "1.0.0"
