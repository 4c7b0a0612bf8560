"""
Lending Core

Loan amortization and installment-state engine for a small loan shop:
flat-rate schedules, installment ledger, payment allocation, risk
classification and renegotiation. All money math uses Decimal.
"""

__version__ = "1.0.0"
