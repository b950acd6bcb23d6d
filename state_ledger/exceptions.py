"""
Ledger Error Hierarchy

Every error raised by the ledger core derives from LedgerError so the
dispatcher and the HTTP host can surface them uniformly.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger errors"""


class ValidationError(LedgerError):
    """Malformed or missing arguments. Never causes a partial write."""


class InvalidKeyError(ValidationError):
    """Raised when a composite key cannot be built or parsed"""


class AccountExistsError(ValidationError):
    """Raised when opening an account whose key is already taken"""


class UnknownFunctionError(ValidationError):
    """Raised when the dispatcher has no handler for a function name"""


class NotFoundError(LedgerError):
    """Lookup miss. Never causes a partial write."""


class AccountNotFoundError(NotFoundError):
    """Raised when an account does not exist"""


class TransactionNotFoundError(NotFoundError):
    """Raised when a transaction does not exist"""


class PolicyViolation(LedgerError):
    """
    A transfer rule was broken. The transfer engine records exactly one
    Failed transaction before raising this.
    """

    def __init__(self, message: str, failure_code: Optional[str] = None):
        super().__init__(message)
        self.failure_code = failure_code


class AccountClosedError(PolicyViolation):
    """Raised when crediting or debiting a closed account"""

    def __init__(self, message: str):
        super().__init__(message, failure_code="AccountClosed")


class InsufficientFundsError(PolicyViolation):
    """Raised when the source account cannot cover a transfer"""

    def __init__(self, message: str):
        super().__init__(message, failure_code="InsufficientFunds")


class StoreError(LedgerError):
    """Underlying state store failure, propagated immediately"""


class ConcurrentModificationError(StoreError):
    """Raised when a record changed between read and write"""
