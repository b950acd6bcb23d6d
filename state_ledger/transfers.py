"""
Transfer Engine Module

Moves money between two accounts. A transfer is validated, then checked
against account status and available funds; a rejected transfer leaves one
Failed transaction on the offending account and touches no balance. An
accepted transfer is tracked by a journal record written before either leg
so that a transfer interrupted between its debit and credit legs can be
found and completed by reconcile().
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set
from enum import Enum
import json
import uuid

from .accounts import AccountLedger
from .clock import LogicalClock
from .exceptions import (
    AccountClosedError, InsufficientFundsError, LedgerError, StoreError
)
from .keys import build_key, prefix_range
from .logging_config import get_logger, log_action
from .models import (
    Account, Transfer, TransferRecord, TransferState, TxFailureCode, TxStatus
)
from .schemas import TransferRequest, decode_payload
from .storage import StateStore
from .transactions import TransactionLedger


class FundsCheckPolicy(Enum):
    """How much of the source balance a transfer must be covered by"""
    AMOUNT_ONLY = "amount_only"          # balance - amount >= 0, fee may overdraw
    AMOUNT_PLUS_FEE = "amount_plus_fee"  # balance - amount - fee >= 0

    def required_funds(self, transfer: Transfer) -> int:
        if self == FundsCheckPolicy.AMOUNT_ONLY:
            return transfer.amount
        return transfer.total_debit


@dataclass
class ReconciliationReport:
    """Outcome of a reconciliation pass"""
    committed: List[str] = field(default_factory=list)
    abandoned: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)

    def to_json(self) -> bytes:
        return json.dumps({
            "committed": self.committed,
            "abandoned": self.abandoned,
            "unresolved": self.unresolved,
        }).encode("utf-8")


class TransferEngine:
    """
    Orchestrates two-account transfers on top of the account and
    transaction ledgers
    """

    def __init__(
        self,
        store: StateStore,
        accounts: AccountLedger,
        transactions: TransactionLedger,
        funds_policy: FundsCheckPolicy = FundsCheckPolicy.AMOUNT_PLUS_FEE,
        clock: Optional[LogicalClock] = None
    ):
        self.store = store
        self.accounts = accounts
        self.transactions = transactions
        self.funds_policy = funds_policy
        self.clock = clock or transactions.clock
        self.logger = get_logger("state_ledger.transfers")

    def transfer_money(self, payload: str) -> TransferRecord:
        """Decode a transfer JSON payload and execute it"""
        transfer = decode_payload(TransferRequest, payload).to_transfer()
        return self.execute(transfer)

    def execute(self, transfer: Transfer) -> TransferRecord:
        """
        Execute a transfer

        Args:
            transfer: Transfer request

        Returns:
            The committed transfer journal record

        Raises:
            ValidationError: Malformed transfer or a balance would overflow,
                nothing written
            AccountNotFoundError: Unknown account, nothing written
            AccountClosedError: Either side is closed, one Failed entry written
            InsufficientFundsError: Source cannot cover it, one Failed entry written
            StoreError: Store failure, state left as of the last successful write
        """
        transfer.validate()

        source = self.accounts.get_account(transfer.from_customer_id, transfer.from_account_id)
        destination = self.accounts.get_account(transfer.to_customer_id, transfer.to_account_id)

        if source.closed:
            self._reject(source, transfer, TxFailureCode.ACCOUNT_CLOSED)
            raise AccountClosedError(
                f"Cannot transfer money from closed account {transfer.from_account_id}"
            )

        if destination.closed:
            self._reject(destination, transfer, TxFailureCode.ACCOUNT_CLOSED)
            raise AccountClosedError(
                f"Cannot transfer money into closed account {transfer.to_account_id}"
            )

        if source.balance - self.funds_policy.required_funds(transfer) < 0:
            self._reject(source, transfer, TxFailureCode.INSUFFICIENT_FUNDS)
            raise InsufficientFundsError(
                f"Insufficient funds available in account {transfer.from_account_id}"
            )

        # Both legs must be applicable before anything is written
        source.check_debit(transfer.total_debit)
        destination.check_credit(transfer.amount)

        record = TransferRecord(
            id=str(uuid.uuid4()),
            created_at=self.clock.now(),
            transfer=transfer,
        )
        self._save_record(record)

        source.last_transfer_id = record.id
        self.accounts.debit_account(source, transfer.total_debit)
        self.transactions.record(
            source.customer_id, source.account_id, transfer,
            TxFailureCode.NONE, TxStatus.DEBITED, transfer_id=record.id
        )
        record.state = TransferState.DEBITED
        self._save_record(record)

        self._credit_leg(record, destination)

        log_action(
            self.logger, "info", "Transfer completed",
            action="transfer_money", resource=f"transfer:{record.id}",
            extra=transfer.to_dict()
        )
        return record

    def get_record(self, transfer_id: str) -> Optional[TransferRecord]:
        """Get transfer journal record by ID"""
        key = build_key(TransferRecord.OBJECT_TYPE, [transfer_id])
        data = self.store.get(key)
        if data is None:
            return None
        try:
            return TransferRecord.from_json(data)
        except (ValueError, KeyError, TypeError) as e:
            raise StoreError(f"Corrupt transfer record {transfer_id}") from e

    def open_records(self) -> List[TransferRecord]:
        """Journal records for transfers that have not reached a final state"""
        start, end = prefix_range(TransferRecord.OBJECT_TYPE, [])
        records = []
        for key, data in self.store.range_scan(start, end):
            try:
                record = TransferRecord.from_json(data)
            except (ValueError, KeyError, TypeError) as e:
                self.logger.error(f"Failed to get transfer record for {key!r}. Error: {e}")
                continue
            if record.is_open:
                records.append(record)
        return records

    def reconcile(self) -> ReconciliationReport:
        """
        Resolve transfers left open by a failure part way through

        A transfer whose source leg was recorded is rolled forward by
        applying its credit leg. A transfer whose source account carries
        its id was debited before the Debited entry could be written; the
        entry is written and the transfer rolled forward. A transfer that
        never reached its source account is marked Abandoned. When a later
        transfer has since debited the same source the outcome cannot be
        told apart and the transfer is left unresolved.
        """
        report = ReconciliationReport()

        for record in self.open_records():
            transfer = record.transfer
            source_legs = self._leg_statuses(
                record.id, transfer.from_customer_id, transfer.from_account_id
            )
            destination_legs = self._leg_statuses(
                record.id, transfer.to_customer_id, transfer.to_account_id
            )

            try:
                if TxStatus.CREDITED in destination_legs:
                    record.state = TransferState.COMMITTED
                    self._save_record(record)
                    report.committed.append(record.id)
                elif TxStatus.DEBITED in source_legs:
                    self._roll_forward(record)
                    report.committed.append(record.id)
                else:
                    source = self.accounts.get_account(
                        transfer.from_customer_id, transfer.from_account_id
                    )
                    if source.last_transfer_id == record.id:
                        self.logger.warning(
                            f"Transfer {record.id} debited without a Debited entry; recording it"
                        )
                        self.transactions.record(
                            source.customer_id, source.account_id, transfer,
                            TxFailureCode.NONE, TxStatus.DEBITED, transfer_id=record.id
                        )
                        self._roll_forward(record)
                        report.committed.append(record.id)
                    elif self._debited_later(source, record):
                        self.logger.error(
                            f"Transfer {record.id} cannot be resolved: source account "
                            f"{source.account_id} was debited by transfer {source.last_transfer_id} since"
                        )
                        report.unresolved.append(record.id)
                    else:
                        self.logger.warning(
                            f"Transfer {record.id} never debited its source; marking abandoned"
                        )
                        record.state = TransferState.ABANDONED
                        self._save_record(record)
                        report.abandoned.append(record.id)
            except LedgerError as e:
                self.logger.error(f"Failed to reconcile transfer {record.id}. Error: {e}")
                report.unresolved.append(record.id)

        log_action(
            self.logger, "info", "Reconciliation finished",
            action="reconcile_transfers",
            extra={
                "committed": len(report.committed),
                "abandoned": len(report.abandoned),
                "unresolved": len(report.unresolved)
            }
        )
        return report

    def _reject(self, account: Account, transfer: Transfer, code: TxFailureCode) -> None:
        self.transactions.record(
            account.customer_id, account.account_id, transfer, code, TxStatus.FAILED
        )
        self.logger.warning(
            f"Transfer from {transfer.from_account_id} to {transfer.to_account_id} "
            f"rejected: {code.value}"
        )

    def _credit_leg(self, record: TransferRecord, destination: Account) -> None:
        transfer = record.transfer
        # The fee stays with the system, only the amount is forwarded
        self.accounts.credit_account(destination, transfer.amount)
        self.transactions.record(
            destination.customer_id, destination.account_id, transfer,
            TxFailureCode.NONE, TxStatus.CREDITED, transfer_id=record.id
        )
        record.state = TransferState.COMMITTED
        self._save_record(record)

    def _roll_forward(self, record: TransferRecord) -> None:
        transfer = record.transfer
        destination = self.accounts.get_account(transfer.to_customer_id, transfer.to_account_id)
        self._credit_leg(record, destination)

    def _debited_later(self, source: Account, record: TransferRecord) -> bool:
        if not source.last_transfer_id:
            return False
        other = self.get_record(source.last_transfer_id)
        return other is None or other.created_at > record.created_at

    def _leg_statuses(self, transfer_id: str, customer_id: str, account_id: str) -> Set[TxStatus]:
        return {
            txn.status
            for txn in self.transactions.list_transactions(customer_id, account_id)
            if txn.transfer_id == transfer_id
        }

    def _save_record(self, record: TransferRecord) -> None:
        try:
            self.store.put(record.key, record.to_json())
        except StoreError:
            self.logger.error(f"Failed to write transfer record {record.id} ({record.state.value})")
            raise
