"""
Ledger Core

A minimal single-currency ledger: per-account balances held as integer
minor units, with deposits and transfers applied atomically and recorded
as immutable transaction entries.
"""

__version__ = "1.0.0"
