"""
banksync: forwards settled Mercury transactions into Invoice Ninja.

Each transaction is posted once per ledger entry, however often the
overlapping lookback window is polled.
"""

__version__ = "0.1.0"
