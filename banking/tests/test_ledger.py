"""
Unit Tests for the Transaction Ledger and Fee Calculator

Tests cover:
1. Perspective-adjusted postings
2. Transfer leg pairs
3. Unresolvable counterparties
4. History paging
5. Fee tiers and rounding
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from banking.fees import quote, service_fee
from banking.ledger import TransactionLedger
from banking.models import Transaction, TransactionType
from banking.store import InMemoryStorage


ALICE_ACC = "user1-acc"
BOB_ACC = "user2-acc"


def make_transaction(amount: str, from_id=None, to_id=None, txn_id="txn-test", date=None) -> Transaction:
    return Transaction(
        id=txn_id,
        date=date or datetime.now(timezone.utc),
        description="Test movement",
        amount=Decimal(amount),
        type=TransactionType.PURCHASE,
        from_account_id=from_id,
        to_account_id=to_id,
    )


class TestRecord:
    """Tests for recording a single transaction."""

    def test_record_posts_signed_copies(self):
        """Test that each side gets a copy signed from its own perspective."""
        store = InMemoryStorage(seed=True, bcrypt_rounds=4)
        ledger = TransactionLedger(store)

        ledger.record(make_transaction("25.00", from_id=ALICE_ACC, to_id=BOB_ACC))

        alice = store.get_account(ALICE_ACC)
        bob = store.get_account(BOB_ACC)

        # Verify balances moved by the signed amount
        assert alice.balance == Decimal("125.75")
        assert bob.balance == Decimal("345.00")

        # Verify per-account perspective
        assert alice.transactions[0].amount == Decimal("-25.00")
        assert bob.transactions[0].amount == Decimal("25.00")

        # Verify exactly one global record
        assert len(store.list_transactions()) == 1

    def test_unknown_counterparty_is_skipped(self):
        """Test that an unresolvable id is logged globally but gets no posting."""
        store = InMemoryStorage(seed=True, bcrypt_rounds=4)
        ledger = TransactionLedger(store)

        ledger.record(make_transaction("10.00", from_id="admin:admin1", to_id=ALICE_ACC))

        assert store.get_account(ALICE_ACC).balance == Decimal("160.75")
        assert len(store.list_transactions()) == 1
        assert all(a.id != "admin:admin1" for a in store.list_accounts())

    def test_global_ledger_newest_first(self):
        """Test that the global ledger stays sorted by date descending."""
        store = InMemoryStorage(seed=True, bcrypt_rounds=4)
        ledger = TransactionLedger(store)
        now = datetime.now(timezone.utc)

        ledger.record(make_transaction("1.00", to_id=ALICE_ACC, txn_id="newer", date=now))
        ledger.record(make_transaction("1.00", to_id=ALICE_ACC, txn_id="older", date=now - timedelta(hours=1)))

        assert [t.id for t in store.list_transactions()] == ["newer", "older"]
        assert [t.id for t in store.get_account(ALICE_ACC).transactions] == ["newer", "older"]


class TestRecordTransfer:
    """Tests for the two-leg transfer record."""

    def test_transfer_legs_share_posting_id(self):
        """Test that debit and credit legs are separate records correlated by the transfer id."""
        store = InMemoryStorage(seed=True, bcrypt_rounds=4)
        ledger = TransactionLedger(store)
        alice = store.get_account(ALICE_ACC)
        bob = store.get_account(BOB_ACC)

        debit, credit = ledger.record_transfer(
            "ptxn-1", Decimal("20.00"), alice, bob, "Transfer to Bob", "Transfer received from Alice"
        )

        assert debit.amount == Decimal("-20.00")
        assert credit.amount == Decimal("20.00")
        assert debit.posting_id == credit.posting_id == "ptxn-1"

        # Each leg is attached only to its own account
        assert [t.id for t in alice.transactions] == [debit.id]
        assert [t.id for t in bob.transactions] == [credit.id]
        assert len(store.list_transactions()) == 2

        assert alice.balance == Decimal("130.75")
        assert bob.balance == Decimal("340.00")


class TestHistory:
    """Tests for ledger history paging."""

    def test_history_pages_account_view(self):
        store = InMemoryStorage(seed=True, bcrypt_rounds=4)
        ledger = TransactionLedger(store)
        for i in range(5):
            ledger.record(make_transaction("1.00", to_id=ALICE_ACC, txn_id=f"txn-{i}"))

        page = ledger.history(ALICE_ACC, limit=2, offset=1)

        assert page.account_id == ALICE_ACC
        assert page.total_count == 5
        assert len(page.entries) == 2

    def test_history_unknown_account_is_empty(self):
        ledger = TransactionLedger(InMemoryStorage())

        page = ledger.history("missing")

        assert page.entries == []
        assert page.total_count == 0


class TestServiceFee:
    """Tests for the tiered service fee."""

    @pytest.mark.parametrize("amount, expected", [
        ("20.00", "1.00"),
        ("50.00", "2.50"),
        ("50.01", "5.00"),
        ("100.00", "10.00"),
        ("10.10", "0.51"),
    ])
    def test_fee_tiers(self, amount, expected):
        assert service_fee(Decimal(amount)) == Decimal(expected)

    def test_quote_totals(self):
        fee_quote = quote(Decimal("60.00"))

        assert fee_quote.fee == Decimal("6.00")
        assert fee_quote.total == Decimal("66.00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
