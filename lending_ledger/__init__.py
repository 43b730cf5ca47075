"""
Lending Ledger

Debt, late-fee, payment-allocation and renegotiation calculations for
informal lending portfolios, using Decimal money and explicit reference dates.
"""

__version__ = "1.0.0"
