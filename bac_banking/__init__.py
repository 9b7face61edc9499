"""
BAC Banking Engine

Account and transaction domain engine for a desktop banking application:
savings, investment and cheque accounts, a transaction processor with an
immutable ledger, scheduled interest accrual, and an append-only audit trail.
All monetary values use Decimal.
"""

__version__ = "1.0.0"
