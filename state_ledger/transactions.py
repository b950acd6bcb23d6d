"""
Transaction Log Module

Append-only log of transfer outcomes per account. Each entry is written
once under (Transaction, customerID, accountID, id) and never updated, so an
account's history is exactly the set of entries under its key prefix.
"""

from typing import List, Optional, Sequence
import uuid

from .clock import LogicalClock
from .exceptions import StoreError, TransactionNotFoundError
from .keys import build_key, prefix_range
from .logging_config import get_logger, log_action
from .models import Transaction, Transfer, TxFailureCode, TxStatus
from .storage import StateStore


class TransactionLedger:
    """
    Sole writer of Transaction records
    """

    def __init__(self, store: StateStore, clock: Optional[LogicalClock] = None):
        self.store = store
        self.clock = clock or LogicalClock()
        self.logger = get_logger("state_ledger.transactions")

    def record(
        self,
        customer_id: str,
        account_id: str,
        transfer: Transfer,
        failure_code: TxFailureCode,
        status: TxStatus,
        transfer_id: str = ""
    ) -> Transaction:
        """
        Write one immutable transaction entry against an account

        Args:
            customer_id: Owner of the account the entry is recorded on
            account_id: Account the entry is recorded on
            transfer: Transfer the entry belongs to
            failure_code: Failure reason, TxFailureCode.NONE on success
            status: Debited, Credited or Failed
            transfer_id: Journal id of the transfer, empty for failed attempts

        Returns:
            The persisted Transaction
        """
        transaction = Transaction(
            id=str(uuid.uuid4()),
            customer_id=customer_id,
            account_id=account_id,
            created_at=self.clock.now(),
            amount=transfer.amount,
            fee=transfer.fee,
            from_customer_id=transfer.from_customer_id,
            from_account_id=transfer.from_account_id,
            to_customer_id=transfer.to_customer_id,
            to_account_id=transfer.to_account_id,
            status=status,
            failure_code=failure_code,
            transfer_id=transfer_id,
        )

        if not self.store.put_if(transaction.key, transaction.to_json(), None):
            raise StoreError(f"Transaction {transaction.id} already exists")

        log_action(
            self.logger, "info", f"Transaction recorded: {status.value}",
            action="record_transaction",
            resource=f"transaction:{customer_id}/{account_id}/{transaction.id}",
            extra={
                "amount": transfer.amount,
                "fee": transfer.fee,
                "failure_code": failure_code.value,
                "transfer_id": transfer_id
            }
        )
        return transaction

    def get_transaction(self, customer_id: str, account_id: str, transaction_id: str) -> Transaction:
        """Get transaction by ID"""
        key = build_key(Transaction.OBJECT_TYPE, [customer_id, account_id, transaction_id])
        data = self.store.get(key)
        if data is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found.")
        try:
            return Transaction.from_json(data)
        except (ValueError, KeyError, TypeError) as e:
            self.logger.error(f"Corrupt transaction record under {key!r}: {e}")
            raise StoreError(f"Corrupt transaction record {transaction_id}") from e

    def list_transactions(self, customer_id: str, account_id: str) -> List[Transaction]:
        """Get an account's transactions, most recent first"""
        return self._scan([customer_id, account_id])

    def list_customer_transactions(self, customer_id: str) -> List[Transaction]:
        """Get transactions across all of a customer's accounts, most recent first"""
        return self._scan([customer_id])

    def _scan(self, prefix: Sequence[str]) -> List[Transaction]:
        start, end = prefix_range(Transaction.OBJECT_TYPE, prefix)
        transactions = []
        for key, data in self.store.range_scan(start, end):
            try:
                transactions.append(Transaction.from_json(data))
            except (ValueError, KeyError, TypeError) as e:
                self.logger.error(f"Failed to get transaction details for {key!r}. Error: {e}")
                continue
        # Stable sort: equal timestamps keep scan order
        transactions.sort(key=lambda t: t.created_at, reverse=True)
        return transactions
