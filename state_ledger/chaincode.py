"""
Ledger Chaincode

Wires the account ledger, transaction ledger and transfer engine to a state
store and exposes them through named handler functions, the way a host
platform calls into them: init, invoke and query with a function name and
a list of string arguments.
"""

from typing import List, Optional, Sequence

from .accounts import AccountLedger
from .clock import LogicalClock
from .config import LedgerConfig, get_config
from .dispatcher import HandlerMap
from .exceptions import ValidationError
from .logging_config import get_logger
from .models import AccountList, TransactionList
from .storage import StateStore, create_store
from .transactions import TransactionLedger
from .transfers import FundsCheckPolicy, TransferEngine


def _require_args(args: Sequence[str], count: int, message: str) -> None:
    if len(args) != count:
        raise ValidationError(message)


class Chaincode:
    """Ledger with all components initialized"""

    def __init__(
        self,
        store: Optional[StateStore] = None,
        config: Optional[LedgerConfig] = None,
        clock: Optional[LogicalClock] = None
    ):
        self.config = config or get_config()
        self.store = store or create_store(self.config)
        self.clock = clock or LogicalClock()
        self.logger = get_logger("state_ledger.chaincode")

        self.accounts = AccountLedger(self.store)
        self.transactions = TransactionLedger(self.store, self.clock)
        self.transfers = TransferEngine(
            self.store, self.accounts, self.transactions,
            funds_policy=FundsCheckPolicy(self.config.funds_check_policy.lower()),
            clock=self.clock
        )

        self.handlers = HandlerMap()
        self.register_handlers(self.handlers)

    def register_handlers(self, handlers: HandlerMap) -> None:
        """Registers handler function mappings"""
        handlers.add("OpenAccount", self.open_account)
        handlers.add("CloseAccount", self.close_account)
        handlers.add("GetAccount", self.get_account, read_only=True)
        handlers.add("GetAccountList", self.get_account_list, read_only=True)
        handlers.add("TransferMoney", self.transfer_money)
        handlers.add("TopupAccount", self.topup_account)
        handlers.add("GetTransaction", self.get_transaction, read_only=True)
        handlers.add("GetTransactionList", self.get_transaction_list, read_only=True)
        handlers.add("GetCustomerTransactionList", self.get_customer_transaction_list, read_only=True)
        handlers.add("ReconcileTransfers", self.reconcile_transfers)

    # Host entry points

    def init(self, function: str, args: Sequence[str]) -> bytes:
        """Called once when the ledger is deployed. Nothing to set up."""
        return b""

    def invoke(self, function: str, args: Sequence[str],
               correlation_id: Optional[str] = None) -> bytes:
        return self.handlers.handle(function, args, correlation_id=correlation_id)

    def query(self, function: str, args: Sequence[str],
              correlation_id: Optional[str] = None) -> bytes:
        return self.handlers.handle(function, args, read_only=True, correlation_id=correlation_id)

    def close(self) -> None:
        self.store.close()

    # Handler functions

    def open_account(self, args: List[str]) -> bytes:
        _require_args(args, 1, "Missing required account data JSON")
        return self.accounts.open_account(args[0]).to_json()

    def get_account(self, args: List[str]) -> bytes:
        _require_args(args, 2, "Missing required customer ID and / or account ID")
        account = self.accounts.find_account(args[0], args[1])
        if account is None:
            return b""
        return account.to_json()

    def get_account_list(self, args: List[str]) -> bytes:
        _require_args(args, 1, "Missing required customer ID")
        accounts = self.accounts.list_accounts(args[0])
        self.logger.debug(f"Returning {len(accounts)} accounts for customer {args[0]}")
        return AccountList(accounts).to_json()

    def topup_account(self, args: List[str]) -> bytes:
        _require_args(args, 3, "Missing required input arguments")
        return self.accounts.topup_account(args[0], args[1], args[2]).to_json()

    def close_account(self, args: List[str]) -> bytes:
        _require_args(args, 2, "Missing required customer ID and / or account ID")
        return self.accounts.close_account(args[0], args[1]).to_json()

    def transfer_money(self, args: List[str]) -> bytes:
        _require_args(args, 1, "Missing transfer details JSON")
        self.transfers.transfer_money(args[0])
        return b""

    def get_transaction(self, args: List[str]) -> bytes:
        _require_args(args, 3, "Missing required customer ID, account ID and / or transaction ID")
        return self.transactions.get_transaction(args[0], args[1], args[2]).to_json()

    def get_transaction_list(self, args: List[str]) -> bytes:
        _require_args(args, 2, "Missing required customer ID and / or account ID")
        transactions = self.transactions.list_transactions(args[0], args[1])
        self.logger.debug(f"Returning {len(transactions)} transactions for account {args[1]}")
        return TransactionList(transactions).to_json()

    def get_customer_transaction_list(self, args: List[str]) -> bytes:
        _require_args(args, 1, "Missing required customer ID")
        return TransactionList(self.transactions.list_customer_transactions(args[0])).to_json()

    def reconcile_transfers(self, args: List[str]) -> bytes:
        _require_args(args, 0, "ReconcileTransfers takes no arguments")
        return self.transfers.reconcile().to_json()
