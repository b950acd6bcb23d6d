"""
Test suite for accounts module

Tests account opening, lookup, listing by prefix scan, top-ups, closing
and optimistic versioning on writes.
"""

import json
import pytest

from state_ledger.accounts import AccountLedger, parse_amount
from state_ledger.exceptions import (
    AccountClosedError, AccountExistsError, AccountNotFoundError,
    ConcurrentModificationError, StoreError, ValidationError
)
from state_ledger.keys import build_key
from state_ledger.models import Account
from state_ledger.storage import InMemoryStateStore


def account_payload(customer_id, account_id, balance=None):
    data = {"customerID": customer_id, "accountID": account_id}
    if balance is not None:
        data["balance"] = balance
    return json.dumps(data)


class TestParseAmount:
    """Test amount argument parsing"""
    
    def test_valid(self):
        assert parse_amount("250") == 250
        assert parse_amount(" 7 ") == 7
        assert parse_amount(12) == 12
    
    @pytest.mark.parametrize("value", ["", "abc", "1.5", "1_000", "0", "-5", str(2 ** 63), True])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_amount(value)


class TestAccountLedger:
    """Test account ledger operations"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.store = InMemoryStateStore()
        self.ledger = AccountLedger(self.store)
    
    def test_open_account(self):
        """Opening writes exactly one account record"""
        account = self.ledger.open_account(account_payload("c1", "a1", 1000))
        
        assert account.customer_id == "c1"
        assert account.balance == 1000
        assert not account.closed
        assert self.store.keys() == [build_key("Account", ["c1", "a1"])]
    
    def test_open_account_invalid_payload_writes_nothing(self):
        """Decode failures are validation errors with no write"""
        with pytest.raises(ValidationError):
            self.ledger.open_account("{broken")
        with pytest.raises(ValidationError):
            self.ledger.open_account(account_payload("c1", "a1", -10))
        
        assert self.store.keys() == []
    
    def test_open_duplicate_account(self):
        """An existing account is not overwritten"""
        self.ledger.open_account(account_payload("c1", "a1", 1000))
        
        with pytest.raises(AccountExistsError):
            self.ledger.open_account(account_payload("c1", "a1", 5))
        
        assert self.ledger.get_account("c1", "a1").balance == 1000
    
    def test_same_account_id_for_different_customers(self):
        """Account IDs are unique per customer only"""
        self.ledger.open_account(account_payload("c1", "a1", 1))
        self.ledger.open_account(account_payload("c2", "a1", 2))
        
        assert self.ledger.get_account("c1", "a1").balance == 1
        assert self.ledger.get_account("c2", "a1").balance == 2
    
    def test_get_missing_account(self):
        """Missing accounts raise NotFound from get and None from find"""
        assert self.ledger.find_account("c1", "nope") is None
        with pytest.raises(AccountNotFoundError, match="nope"):
            self.ledger.get_account("c1", "nope")
    
    def test_corrupt_record_on_get(self):
        """A record that cannot be decoded is a store error on point reads"""
        self.store.put(build_key("Account", ["c1", "a1"]), b"garbage")
        with pytest.raises(StoreError):
            self.ledger.get_account("c1", "a1")
    
    def test_list_accounts_prefix_completeness(self):
        """Listing returns exactly the customer's accounts"""
        for account_id in ["a1", "a2", "a3"]:
            self.ledger.open_account(account_payload("c1", account_id, 10))
        self.ledger.open_account(account_payload("c10", "a1", 10))
        self.ledger.open_account(account_payload("c2", "a1", 10))
        self.ledger.open_account(account_payload("c", "1", 10))
        
        accounts = self.ledger.list_accounts("c1")
        assert sorted(a.account_id for a in accounts) == ["a1", "a2", "a3"]
        assert all(a.customer_id == "c1" for a in accounts)
    
    def test_list_accounts_unknown_customer(self):
        assert self.ledger.list_accounts("ghost") == []
    
    def test_list_accounts_skips_corrupt_records(self):
        """One undecodable record does not hide the others"""
        self.ledger.open_account(account_payload("c1", "a1", 10))
        self.ledger.open_account(account_payload("c1", "a3", 30))
        self.store.put(build_key("Account", ["c1", "a2"]), b"{not json")
        
        accounts = self.ledger.list_accounts("c1")
        assert [a.account_id for a in accounts] == ["a1", "a3"]
    
    def test_topup_account(self):
        """Top-up credits and persists"""
        self.ledger.open_account(account_payload("c1", "a1", 100))
        
        account = self.ledger.topup_account("c1", "a1", "250")
        assert account.balance == 350
        assert self.ledger.get_account("c1", "a1").balance == 350
    
    def test_topup_invalid_amount(self):
        """Malformed amounts are rejected before any lookup"""
        self.ledger.open_account(account_payload("c1", "a1", 100))
        
        for amount in ["abc", "0", "-10"]:
            with pytest.raises(ValidationError):
                self.ledger.topup_account("c1", "a1", amount)
        assert self.ledger.get_account("c1", "a1").balance == 100
    
    def test_topup_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.ledger.topup_account("c1", "a1", "10")
    
    def test_topup_closed_account(self):
        """Closed accounts cannot be credited"""
        self.ledger.open_account(account_payload("c1", "a1", 100))
        self.ledger.close_account("c1", "a1")
        
        with pytest.raises(AccountClosedError):
            self.ledger.topup_account("c1", "a1", "10")
        assert self.ledger.get_account("c1", "a1").balance == 100
    
    def test_close_account(self):
        """Closing flags the account without deleting it"""
        self.ledger.open_account(account_payload("c1", "a1", 100))
        
        account = self.ledger.close_account("c1", "a1")
        assert account.closed
        
        stored = self.ledger.get_account("c1", "a1")
        assert stored.closed
        assert stored.balance == 100
    
    def test_close_account_idempotent(self):
        """Closing twice leaves the same state"""
        self.ledger.open_account(account_payload("c1", "a1", 100))
        self.ledger.close_account("c1", "a1")
        account = self.ledger.close_account("c1", "a1")
        
        assert account.closed
        assert account.balance == 100
    
    def test_close_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.ledger.close_account("c1", "a1")
    
    def test_save_bumps_version(self):
        """Every save increments the stored version"""
        self.ledger.open_account(account_payload("c1", "a1", 100))
        assert self.ledger.get_account("c1", "a1").version == 0
        
        self.ledger.topup_account("c1", "a1", "1")
        self.ledger.topup_account("c1", "a1", "1")
        assert self.ledger.get_account("c1", "a1").version == 2
    
    def test_stale_write_rejected(self):
        """Two writers from the same read: the second one loses"""
        self.ledger.open_account(account_payload("c1", "a1", 100))
        first = self.ledger.get_account("c1", "a1")
        second = self.ledger.get_account("c1", "a1")
        
        self.ledger.credit_account(first, 50)
        
        with pytest.raises(ConcurrentModificationError):
            self.ledger.debit_account(second, 100)
        
        stored = self.ledger.get_account("c1", "a1")
        assert stored.balance == 150
        assert stored.version == 1
    
    def test_failed_put_keeps_version(self):
        """A store failure does not advance the in-memory version"""
        store = InMemoryStateStore(fail_after_puts=1)
        ledger = AccountLedger(store)
        ledger.open_account(account_payload("c1", "a1", 100))
        account = ledger.get_account("c1", "a1")
        
        with pytest.raises(StoreError):
            ledger.credit_account(account, 5)
        assert account.version == 0
        assert ledger.get_account("c1", "a1") == Account("c1", "a1", 100)


class InterleavingStateStore(InMemoryStateStore):
    """Runs a callback once, just before the next conditional write lands"""
    
    def __init__(self):
        super().__init__()
        self.before_next_write = None
    
    def put_if(self, key, value, expected):
        callback, self.before_next_write = self.before_next_write, None
        if callback:
            callback()
        return super().put_if(key, value, expected)


class TestInterleavedSaves:
    """A save racing another save between its version check and its write"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.store = InterleavingStateStore()
        self.ledger = AccountLedger(self.store)
        self.ledger.open_account(account_payload("c1", "a1", 0))
    
    def test_second_writer_inside_check_window_wins(self):
        """The save whose checked record changed underneath it is rejected"""
        first = self.ledger.get_account("c1", "a1")
        second = self.ledger.get_account("c1", "a1")
        self.store.before_next_write = lambda: self.ledger.credit_account(second, 5)
        
        with pytest.raises(ConcurrentModificationError):
            self.ledger.credit_account(first, 100)
        
        stored = self.ledger.get_account("c1", "a1")
        assert stored.balance == 5
        assert stored.version == 1
        assert first.version == 0
    
    def test_open_account_racing_open(self):
        """Two opens of the same account: exactly one succeeds"""
        self.store.before_next_write = lambda: self.ledger.open_account(
            account_payload("c9", "a9", 7)
        )
        
        with pytest.raises(AccountExistsError):
            self.ledger.open_account(account_payload("c9", "a9", 500))
        
        assert self.ledger.get_account("c9", "a9").balance == 7
