"""
Tests for handler dispatch and the chaincode entry points
"""

import json
import logging
import pytest

from state_ledger.chaincode import Chaincode
from state_ledger.config import LedgerConfig
from state_ledger.dispatcher import HandlerMap
from state_ledger.exceptions import (
    AccountNotFoundError, InsufficientFundsError, TransactionNotFoundError,
    UnknownFunctionError, ValidationError
)
from state_ledger.logging_config import get_current_invocation, get_logger, log_action
from state_ledger.storage import InMemoryStateStore


class TestHandlerMap:
    """Test function name dispatch"""
    
    def setup_method(self):
        self.handlers = HandlerMap()
        self.calls = []
        
        def echo(args):
            self.calls.append(args)
            return ",".join(args).encode()
        
        self.handlers.add("Echo", echo, read_only=True)
        self.handlers.add("Nothing", lambda args: None)
    
    def test_dispatch(self):
        assert self.handlers.handle("Echo", ["a", "b"]) == b"a,b"
        assert self.calls == [["a", "b"]]
    
    def test_none_result_is_empty_bytes(self):
        assert self.handlers.handle("Nothing", []) == b""
    
    def test_unknown_function(self):
        """Unknown names are rejected without calling anything"""
        with pytest.raises(UnknownFunctionError, match="Unknown function Missing"):
            self.handlers.handle("Missing", [])
        assert self.calls == []
    
    def test_duplicate_registration(self):
        with pytest.raises(ValueError):
            self.handlers.add("Echo", lambda args: b"")
    
    def test_read_only_dispatch(self):
        """Write handlers cannot be reached through a read-only call"""
        assert self.handlers.handle("Echo", ["x"], read_only=True) == b"x"
        with pytest.raises(ValidationError, match="cannot be queried"):
            self.handlers.handle("Nothing", [], read_only=True)
    
    def test_functions_sorted(self):
        assert self.handlers.functions() == ["Echo", "Nothing"]



class TestHandlerLogging:
    """Handler calls are logged with their invocation context"""
    
    def setup_method(self):
        self.handlers = HandlerMap()
        self.logger = get_logger("state_ledger.tests.handler")
        
        def boom(args):
            raise RuntimeError("disk on fire")
        
        def audited(args):
            log_action(self.logger, "info", "Audited call", action="audit")
            return b"ok"
        
        self.handlers.add("Boom", boom)
        self.handlers.add("Audited", audited)
    
    def test_unexpected_error_logged_and_reraised(self, caplog):
        """Non-ledger errors propagate unchanged after being logged"""
        with caplog.at_level(logging.ERROR, logger="state_ledger.dispatcher"):
            with pytest.raises(RuntimeError, match="disk on fire"):
                self.handlers.handle("Boom", [])
        
        messages = [r.getMessage() for r in caplog.records]
        assert "Unexpected error when calling handler for function Boom" in messages
        assert caplog.records[-1].exc_info is not None
    
    def test_ledger_error_logged(self, caplog):
        with caplog.at_level(logging.ERROR, logger="state_ledger.dispatcher"):
            with pytest.raises(UnknownFunctionError):
                self.handlers.handle("Missing", [])
        assert any("Missing" in r.getMessage() for r in caplog.records)
    
    def test_records_carry_function_and_correlation_id(self, caplog):
        with caplog.at_level(logging.INFO, logger="state_ledger.tests.handler"):
            self.handlers.handle("Audited", [], correlation_id="req-42")
        
        record = [r for r in caplog.records if r.getMessage() == "Audited call"][0]
        assert record.function == "Audited"
        assert record.correlation_id == "req-42"
    
    def test_correlation_id_generated_per_call(self, caplog):
        with caplog.at_level(logging.INFO, logger="state_ledger.tests.handler"):
            self.handlers.handle("Audited", [])
            self.handlers.handle("Audited", [])
        
        ids = [r.correlation_id for r in caplog.records if r.getMessage() == "Audited call"]
        assert len(ids) == 2
        assert ids[0] and ids[1] and ids[0] != ids[1]
        assert get_current_invocation() is None


class TestChaincode:
    """End-to-end handler tests against an in-memory store"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.cc = Chaincode(store=InMemoryStateStore(), config=LedgerConfig())
        self.cc.invoke("OpenAccount", ['{"customerID": "c1", "accountID": "a1", "balance": 1000}'])
        self.cc.invoke("OpenAccount", ['{"customerID": "c2", "accountID": "a2"}'])
    
    def teardown_method(self):
        self.cc.close()
    
    def transfer(self, amount, fee=0):
        return self.cc.invoke("TransferMoney", [json.dumps({
            "fromCustomerID": "c1", "fromAccountID": "a1",
            "toCustomerID": "c2", "toAccountID": "a2",
            "amount": amount, "fee": fee
        })])
    
    def balance(self, customer_id, account_id):
        return json.loads(self.cc.query("GetAccount", [customer_id, account_id]))["balance"]
    
    def test_registered_functions(self):
        assert self.cc.handlers.functions() == sorted([
            "OpenAccount", "CloseAccount", "GetAccount", "GetAccountList",
            "TransferMoney", "TopupAccount", "GetTransaction", "GetTransactionList",
            "GetCustomerTransactionList", "ReconcileTransfers"
        ])
    
    def test_init_is_noop(self):
        assert self.cc.init("init", []) == b""
    
    def test_open_account_returns_record(self):
        result = json.loads(self.cc.invoke(
            "OpenAccount", ['{"customerID": "c3", "accountID": "a9", "balance": 5}']
        ))
        assert result["customerID"] == "c3"
        assert result["balance"] == 5
        assert result["closed"] is False
    
    def test_get_account_miss_is_empty(self):
        """An unknown account reads as an empty result"""
        assert self.cc.query("GetAccount", ["c1", "nope"]) == b""
    
    def test_get_account_list(self):
        self.cc.invoke("OpenAccount", ['{"customerID": "c1", "accountID": "a5"}'])
        data = json.loads(self.cc.query("GetAccountList", ["c1"]))
        assert sorted(a["accountID"] for a in data["accounts"]) == ["a1", "a5"]
        
        assert json.loads(self.cc.query("GetAccountList", ["ghost"])) == {"accounts": []}
    
    def test_transfer_and_history(self):
        """Scenario: 200 with fee 10 from A to B"""
        assert self.transfer(200, 10) == b""
        
        assert self.balance("c1", "a1") == 790
        assert self.balance("c2", "a2") == 200
        
        source = json.loads(self.cc.query("GetTransactionList", ["c1", "a1"]))["transactions"]
        destination = json.loads(self.cc.query("GetTransactionList", ["c2", "a2"]))["transactions"]
        assert [t["status"] for t in source] == ["Debited"]
        assert [t["status"] for t in destination] == ["Credited"]
        
        single = json.loads(self.cc.query("GetTransaction", ["c1", "a1", source[0]["id"]]))
        assert single == source[0]
    
    def test_rejected_transfer_is_recorded(self):
        """Scenario: 5000 from A fails and leaves one Failed entry"""
        with pytest.raises(InsufficientFundsError):
            self.transfer(5000)
        
        assert self.balance("c1", "a1") == 1000
        history = json.loads(self.cc.query("GetCustomerTransactionList", ["c1"]))["transactions"]
        assert len(history) == 1
        assert history[0]["status"] == "Failed"
        assert history[0]["failureCode"] == "InsufficientFunds"
    
    def test_topup_and_close(self):
        topped = json.loads(self.cc.invoke("TopupAccount", ["c2", "a2", "75"]))
        assert topped["balance"] == 75
        
        closed = json.loads(self.cc.invoke("CloseAccount", ["c2", "a2"]))
        assert closed["closed"] is True
        assert closed["balance"] == 75
    
    def test_get_transaction_miss(self):
        with pytest.raises(TransactionNotFoundError):
            self.cc.query("GetTransaction", ["c1", "a1", "missing"])
    
    def test_close_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.cc.invoke("CloseAccount", ["c1", "missing"])
    
    @pytest.mark.parametrize("function,args,message", [
        ("OpenAccount", [], "Missing required account data JSON"),
        ("GetAccount", ["c1"], "Missing required customer ID and / or account ID"),
        ("GetAccountList", [], "Missing required customer ID"),
        ("TopupAccount", ["c1", "a1"], "Missing required input arguments"),
        ("CloseAccount", ["c1", "a1", "extra"], "Missing required customer ID and / or account ID"),
        ("TransferMoney", [], "Missing transfer details JSON"),
        ("GetTransaction", ["c1", "a1"], "Missing required customer ID, account ID and / or transaction ID"),
        ("GetTransactionList", ["c1"], "Missing required customer ID and / or account ID"),
        ("GetCustomerTransactionList", [], "Missing required customer ID"),
        ("ReconcileTransfers", ["x"], "ReconcileTransfers takes no arguments"),
    ])
    def test_argument_count_checked(self, function, args, message):
        """Wrong argument counts are validation errors"""
        with pytest.raises(ValidationError) as exc_info:
            self.cc.invoke(function, args)
        assert str(exc_info.value) == message
    
    def test_query_refuses_writes(self):
        with pytest.raises(ValidationError):
            self.cc.query("TopupAccount", ["c1", "a1", "10"])
        assert self.balance("c1", "a1") == 1000
    
    def test_unknown_function(self):
        with pytest.raises(UnknownFunctionError):
            self.cc.invoke("EmitMoney", [])
    
    def test_reconcile_when_clean(self):
        self.transfer(10)
        report = json.loads(self.cc.invoke("ReconcileTransfers", []))
        assert report == {"committed": [], "abandoned": [], "unresolved": []}
    
    def test_amount_only_policy_from_config(self):
        """Funds policy comes from configuration"""
        cc = Chaincode(
            store=InMemoryStateStore(),
            config=LedgerConfig(funds_check_policy="AMOUNT_ONLY")
        )
        cc.invoke("OpenAccount", ['{"customerID": "c1", "accountID": "a1", "balance": 100}'])
        cc.invoke("OpenAccount", ['{"customerID": "c2", "accountID": "a2"}'])
        cc.invoke("TransferMoney", [json.dumps({
            "fromCustomerID": "c1", "fromAccountID": "a1",
            "toCustomerID": "c2", "toAccountID": "a2",
            "amount": 100, "fee": 5
        })])
        
        assert json.loads(cc.query("GetAccount", ["c1", "a1"]))["balance"] == -5
    
    def test_sqlite_backend(self, tmp_path):
        """Data survives reopening a SQLite-backed ledger"""
        config = LedgerConfig(store_backend="sqlite", sqlite_path=str(tmp_path / "ledger.db"))
        cc = Chaincode(config=config)
        cc.invoke("OpenAccount", ['{"customerID": "c1", "accountID": "a1", "balance": 42}'])
        cc.close()
        
        reopened = Chaincode(config=config)
        try:
            assert json.loads(reopened.query("GetAccount", ["c1", "a1"]))["balance"] == 42
        finally:
            reopened.close()
