"""
Ledger Data Model

Accounts, transfer requests, transaction entries and transfer journal
records, plus their JSON record formats. Records are stored as JSON
objects keyed by camelCase field names.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List
from enum import Enum
import json

from .exceptions import AccountClosedError, ValidationError
from .keys import build_key


INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class TxStatus(Enum):
    """Outcome recorded on a transaction entry"""
    DEBITED = "Debited"
    CREDITED = "Credited"
    FAILED = "Failed"


class TxFailureCode(Enum):
    """Why a transfer attempt failed (empty on success)"""
    NONE = ""
    ACCOUNT_CLOSED = "AccountClosed"
    INSUFFICIENT_FUNDS = "InsufficientFunds"


class TransferState(Enum):
    """Transfer journal states"""
    PENDING = "Pending"      # Written before either leg
    DEBITED = "Debited"      # Source leg persisted
    COMMITTED = "Committed"  # Both legs persisted
    ABANDONED = "Abandoned"  # Resolved by reconciliation, nothing moved


def _require_int(data: Dict[str, Any], name: str, default: Any = None) -> int:
    value = data.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Field {name} must be an integer, got {value!r}")
    return value


def _require_str(data: Dict[str, Any], name: str, default: Any = None) -> str:
    value = data.get(name, default)
    if not isinstance(value, str):
        raise ValueError(f"Field {name} must be a string, got {value!r}")
    return value


def _loads(data: bytes) -> Dict[str, Any]:
    decoded = json.loads(data)
    if not isinstance(decoded, dict):
        raise ValueError("Record must be a JSON object")
    return decoded


def _dumps(data: Dict[str, Any]) -> bytes:
    return json.dumps(data).encode("utf-8")


@dataclass
class Account:
    """
    Customer account

    Balance is in minor currency units and only changes through credit()
    and debit(). A closed account accepts neither.

    last_transfer_id is the journal id of the most recent transfer debited
    from this account, written together with that debit.
    """
    OBJECT_TYPE: ClassVar[str] = "Account"

    customer_id: str
    account_id: str
    balance: int = 0
    closed: bool = False
    version: int = 0
    last_transfer_id: str = ""

    @property
    def key(self) -> str:
        return build_key(self.OBJECT_TYPE, [self.customer_id, self.account_id])

    def check_credit(self, amount: int) -> int:
        """Balance after crediting amount. Raises instead of changing anything."""
        if self.closed:
            raise AccountClosedError(f"Cannot credit closed account {self.account_id}")
        new_balance = self.balance + amount
        if not INT64_MIN <= new_balance <= INT64_MAX:
            raise ValidationError(f"Balance of account {self.account_id} would overflow")
        return new_balance

    def check_debit(self, amount: int) -> int:
        """Balance after debiting amount. Raises instead of changing anything."""
        if self.closed:
            raise AccountClosedError(f"Cannot debit closed account {self.account_id}")
        new_balance = self.balance - amount
        if not INT64_MIN <= new_balance <= INT64_MAX:
            raise ValidationError(f"Balance of account {self.account_id} would overflow")
        return new_balance

    def credit(self, amount: int) -> None:
        """Add amount to the balance (in memory only)"""
        self.balance = self.check_credit(amount)

    def debit(self, amount: int) -> None:
        """
        Subtract amount from the balance (in memory only). No floor is
        enforced here; overdraft rules belong to the caller.
        """
        self.balance = self.check_debit(amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customerID": self.customer_id,
            "accountID": self.account_id,
            "balance": self.balance,
            "closed": self.closed,
            "version": self.version,
            "lastTransferID": self.last_transfer_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        closed = data.get("closed", False)
        if not isinstance(closed, bool):
            raise ValueError(f"Field closed must be a boolean, got {closed!r}")
        return cls(
            customer_id=_require_str(data, "customerID"),
            account_id=_require_str(data, "accountID"),
            balance=_require_int(data, "balance", 0),
            closed=closed,
            version=_require_int(data, "version", 0),
            last_transfer_id=_require_str(data, "lastTransferID", ""),
        )

    def to_json(self) -> bytes:
        return _dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: bytes) -> 'Account':
        return cls.from_dict(_loads(data))


@dataclass
class Transfer:
    """Request to move amount (plus a sender-only fee) between two accounts"""
    from_customer_id: str
    from_account_id: str
    to_customer_id: str
    to_account_id: str
    amount: int
    fee: int = 0

    @property
    def total_debit(self) -> int:
        return self.amount + self.fee

    def validate(self) -> None:
        """Check the transfer is well formed before touching any account"""
        if self.amount <= 0:
            raise ValidationError(f"Transfer amount must be positive, got {self.amount}")
        if self.fee < 0:
            raise ValidationError(f"Transfer fee must not be negative, got {self.fee}")
        if not (self.from_customer_id and self.from_account_id
                and self.to_customer_id and self.to_account_id):
            raise ValidationError("Transfer requires source and destination customer and account IDs")
        if (self.from_customer_id, self.from_account_id) == (self.to_customer_id, self.to_account_id):
            raise ValidationError(f"Cannot transfer from account {self.from_account_id} to itself")
        if self.total_debit > INT64_MAX:
            raise ValidationError("Transfer amount plus fee is out of range")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromCustomerID": self.from_customer_id,
            "fromAccountID": self.from_account_id,
            "toCustomerID": self.to_customer_id,
            "toAccountID": self.to_account_id,
            "amount": self.amount,
            "fee": self.fee,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transfer':
        return cls(
            from_customer_id=_require_str(data, "fromCustomerID", ""),
            from_account_id=_require_str(data, "fromAccountID", ""),
            to_customer_id=_require_str(data, "toCustomerID", ""),
            to_account_id=_require_str(data, "toAccountID", ""),
            amount=_require_int(data, "amount", 0),
            fee=_require_int(data, "fee", 0),
        )


@dataclass
class Transaction:
    """
    Immutable ledger entry recording one leg (or the failure) of a
    transfer against a single account
    """
    OBJECT_TYPE: ClassVar[str] = "Transaction"

    id: str
    customer_id: str
    account_id: str
    created_at: int
    amount: int
    fee: int
    from_customer_id: str
    from_account_id: str
    to_customer_id: str
    to_account_id: str
    status: TxStatus
    failure_code: TxFailureCode = TxFailureCode.NONE
    transfer_id: str = ""

    @property
    def key(self) -> str:
        return build_key(self.OBJECT_TYPE, [self.customer_id, self.account_id, self.id])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customerID": self.customer_id,
            "accountID": self.account_id,
            "createdAt": self.created_at,
            "amount": self.amount,
            "fee": self.fee,
            "fromCustomerID": self.from_customer_id,
            "fromAccountID": self.from_account_id,
            "toCustomerID": self.to_customer_id,
            "toAccountID": self.to_account_id,
            "failureCode": self.failure_code.value,
            "status": self.status.value,
            "transferID": self.transfer_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        return cls(
            id=_require_str(data, "id"),
            customer_id=_require_str(data, "customerID"),
            account_id=_require_str(data, "accountID"),
            created_at=_require_int(data, "createdAt"),
            amount=_require_int(data, "amount"),
            fee=_require_int(data, "fee", 0),
            from_customer_id=_require_str(data, "fromCustomerID"),
            from_account_id=_require_str(data, "fromAccountID"),
            to_customer_id=_require_str(data, "toCustomerID"),
            to_account_id=_require_str(data, "toAccountID"),
            status=TxStatus(data.get("status")),
            failure_code=TxFailureCode(data.get("failureCode", "")),
            transfer_id=_require_str(data, "transferID", ""),
        )

    def to_json(self) -> bytes:
        return _dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: bytes) -> 'Transaction':
        return cls.from_dict(_loads(data))


@dataclass
class TransferRecord:
    """Journal entry tracking a transfer through both of its legs"""
    OBJECT_TYPE: ClassVar[str] = "Transfer"

    id: str
    created_at: int
    transfer: Transfer
    state: TransferState = TransferState.PENDING

    @property
    def key(self) -> str:
        return build_key(self.OBJECT_TYPE, [self.id])

    @property
    def is_open(self) -> bool:
        return self.state in (TransferState.PENDING, TransferState.DEBITED)

    def to_dict(self) -> Dict[str, Any]:
        result = {"id": self.id, "createdAt": self.created_at}
        result.update(self.transfer.to_dict())
        result["state"] = self.state.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransferRecord':
        return cls(
            id=_require_str(data, "id"),
            created_at=_require_int(data, "createdAt"),
            transfer=Transfer.from_dict(data),
            state=TransferState(data.get("state")),
        )

    def to_json(self) -> bytes:
        return _dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: bytes) -> 'TransferRecord':
        return cls.from_dict(_loads(data))


@dataclass
class AccountList:
    accounts: List[Account] = field(default_factory=list)

    def to_json(self) -> bytes:
        return _dumps({"accounts": [a.to_dict() for a in self.accounts]})


@dataclass
class TransactionList:
    transactions: List[Transaction] = field(default_factory=list)

    def to_json(self) -> bytes:
        return _dumps({"transactions": [t.to_dict() for t in self.transactions]})
