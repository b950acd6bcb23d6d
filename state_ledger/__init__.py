"""
State Ledger

A ledger of customer accounts and the transfers between them, stored in an
ordered key-value state store under composite keys. Failed transfer
attempts are recorded, never dropped.
"""

__version__ = "1.0.0"
