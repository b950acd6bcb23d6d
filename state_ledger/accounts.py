"""
Account Management Module

Opens, reads, lists, tops up and closes customer accounts. Account records
live under composite keys (Account, customerID, accountID), so one account
is a point lookup and a customer's accounts are a prefix scan. Accounts are
never deleted; closing only flags them.
"""

from typing import List, Optional, Union
import re

from .exceptions import (
    AccountExistsError, AccountNotFoundError, ConcurrentModificationError,
    StoreError, ValidationError
)
from .keys import build_key, prefix_range
from .logging_config import get_logger, log_action
from .models import INT64_MAX, Account
from .schemas import OpenAccountRequest, decode_payload
from .storage import StateStore


def parse_amount(value: Union[str, int]) -> int:
    """Parse a positive 64-bit integer amount from a handler argument"""
    if isinstance(value, bool):
        raise ValidationError(f"Error parsing amount value {value!r}")
    if isinstance(value, str):
        if not re.fullmatch(r"[+-]?[0-9]+", value.strip()):
            raise ValidationError(f"Error parsing amount value {value!r}")
        value = int(value.strip(), 10)
    if not isinstance(value, int):
        raise ValidationError(f"Error parsing amount value {value!r}")
    if value <= 0 or value > INT64_MAX:
        raise ValidationError(f"Amount must be a positive 64-bit integer, got {value}")
    return value


class AccountLedger:
    """
    Sole writer of Account records
    """

    def __init__(self, store: StateStore):
        self.store = store
        self.logger = get_logger("state_ledger.accounts")

    def open_account(self, payload: str) -> Account:
        """
        Open a new account from a JSON payload

        Args:
            payload: JSON object with customerID, accountID and an optional
                non-negative opening balance

        Returns:
            Created Account object

        Raises:
            ValidationError: If the payload is malformed
            AccountExistsError: If the customer already has this account
        """
        account = decode_payload(OpenAccountRequest, payload).to_account()

        if not self.store.put_if(account.key, account.to_json(), None):
            raise AccountExistsError(
                f"Account {account.account_id} already exists for customer {account.customer_id}"
            )

        log_action(
            self.logger, "info", "Account opened",
            action="open_account", resource=f"account:{account.customer_id}/{account.account_id}",
            extra={"balance": account.balance}
        )
        return account

    def find_account(self, customer_id: str, account_id: str) -> Optional[Account]:
        """Get account, or None if it does not exist"""
        key = build_key(Account.OBJECT_TYPE, [customer_id, account_id])
        return self._decode(key, self.store.get(key))

    def get_account(self, customer_id: str, account_id: str) -> Account:
        """Get account, raising AccountNotFoundError on a miss"""
        account = self.find_account(customer_id, account_id)
        if account is None:
            raise AccountNotFoundError(f"Account with number {account_id} not found.")
        return account

    def list_accounts(self, customer_id: str) -> List[Account]:
        """
        Get all accounts for a customer

        Records that fail to decode are logged and skipped so one bad
        record does not hide the rest.
        """
        start, end = prefix_range(Account.OBJECT_TYPE, [customer_id])
        accounts = []
        for key, data in self.store.range_scan(start, end):
            try:
                accounts.append(Account.from_json(data))
            except (ValueError, KeyError, TypeError) as e:
                self.logger.error(f"Failed to get account details for {key!r}. Error: {e}")
                continue
        return accounts

    def save_account(self, account: Account) -> Account:
        """
        Persist an account, bumping its version

        The stored version must still match the one the account was read
        with, otherwise another writer got there first. The write only
        lands if the stored record is still the one the check saw.
        """
        key = account.key
        stored = self.store.get(key)
        current = self._decode(key, stored)
        stored_version = current.version if current else 0
        if stored_version != account.version:
            raise ConcurrentModificationError(
                f"Account {account.account_id} was modified concurrently "
                f"(expected version {account.version}, found {stored_version})"
            )

        account.version += 1
        try:
            written = self.store.put_if(key, account.to_json(), stored)
        except StoreError:
            account.version -= 1
            raise
        if not written:
            account.version -= 1
            raise ConcurrentModificationError(
                f"Account {account.account_id} was modified concurrently "
                f"(changed after version {account.version} was checked)"
            )
        return account

    def _decode(self, key: str, data: Optional[bytes]) -> Optional[Account]:
        if data is None:
            return None
        try:
            return Account.from_json(data)
        except (ValueError, KeyError, TypeError) as e:
            self.logger.error(f"Corrupt account record under {key!r}: {e}")
            raise StoreError(f"Corrupt account record under {key!r}") from e

    def topup_account(self, customer_id: str, account_id: str, amount: Union[str, int]) -> Account:
        """Credit an account with a positive amount"""
        value = parse_amount(amount)
        account = self.get_account(customer_id, account_id)
        account.credit(value)
        self.save_account(account)

        log_action(
            self.logger, "info", "Account topped up",
            action="topup_account", resource=f"account:{customer_id}/{account_id}",
            extra={"amount": value, "balance": account.balance}
        )
        return account

    def close_account(self, customer_id: str, account_id: str) -> Account:
        """Close an account. Closing a closed account rewrites the same state."""
        account = self.get_account(customer_id, account_id)
        account.closed = True
        self.save_account(account)

        log_action(
            self.logger, "info", "Account closed",
            action="close_account", resource=f"account:{customer_id}/{account_id}"
        )
        return account

    def credit_account(self, account: Account, amount: int) -> Account:
        """Credit an already loaded account and persist it"""
        account.credit(amount)
        return self.save_account(account)

    def debit_account(self, account: Account, amount: int) -> Account:
        """Debit an already loaded account and persist it"""
        account.debit(amount)
        return self.save_account(account)
