"""
Unit Tests for Account Administration and Card Details

Tests cover:
1. Account and admin issuance
2. Credential updates
3. Card re-issue
4. Card controls
5. Card detail generators
"""

import json
import pytest
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

from banking.actions import BankingActions
from banking.cards import (
    GroqCardDetailGenerator,
    LocalCardDetailGenerator,
    expiry_one_year_from,
    luhn_valid,
)
from banking.config import Settings
from banking.errors import ErrorKind, UpstreamFailureError
from banking.models import CardDetails, TransactionType, UserRole
from banking.security import verify_password


ALICE_ID = "user1"
ALICE_ACC = "user1-acc"
STORE_ACC = "business1-acc"

ALICE_CARD = {"card_number": "4111111111111111", "expiry_date": "12/27", "cvv": "123"}


class FailingGenerator:
    def generate(self, account_holder_name: str) -> CardDetails:
        raise UpstreamFailureError("Failed to generate account details. Please try again.")


class FixedGenerator:
    def __init__(self, details: CardDetails):
        self.details = details

    def generate(self, account_holder_name: str) -> CardDetails:
        return self.details


def groq_client(content: str) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )
    return client


class TestIssueAccount:
    """Tests for issuing customer accounts."""

    def test_issue_with_initial_deposit(self, bank):
        result = bank.issue_account({
            "account_holder_name": "Carol Danvers",
            "email": "carol@example.com",
            "initial_deposit": "50.00",
        })

        assert result.success is True
        account = result.account
        assert account.balance == Decimal("50.00")
        assert luhn_valid(account.card_number)
        assert account.masked_card_number.endswith(account.card_number[-4:])
        assert account.masked_card_number.startswith("************")

        # Verify the deposit was recorded in the ledger
        deposit = account.transactions[0]
        assert deposit.id == f"txn-{account.id}-init"
        assert deposit.type == TransactionType.DEPOSIT

        user = bank.store.get_user(account.user_id)
        assert user.role == UserRole.USER
        assert user.username == "carol"
        assert user.username in result.message
        assert verify_password(result.temporary_password, user.password_hash)

    def test_issue_without_deposit_has_empty_history(self, bank):
        result = bank.issue_account({"account_holder_name": "Dan Brown", "email": "dan@example.com"})

        assert result.account.balance == Decimal("0.00")
        assert result.account.transactions == []

    def test_username_is_made_unique(self, bank):
        bank.issue_account({"account_holder_name": "Carol One", "email": "carol@example.com"})

        result = bank.issue_account({"account_holder_name": "Carol Two", "email": "carol@campus.edu"})

        assert bank.store.get_user(result.account.user_id).username == "carol2"

    def test_duplicate_email(self, bank):
        result = bank.issue_account({"account_holder_name": "Alice Again", "email": "alice@example.com"})

        assert result.error == ErrorKind.INVALID_OPERATION

    def test_generator_failure_creates_nothing(self, store, settings):
        bank = BankingActions(store=store, card_generator=FailingGenerator(), settings=settings)
        users_before = len(store.list_users())
        accounts_before = len(store.list_accounts())

        result = bank.issue_account({"account_holder_name": "Eve Adams", "email": "eve@example.com"})

        assert result.error == ErrorKind.UPSTREAM_FAILURE
        assert len(store.list_users()) == users_before
        assert len(store.list_accounts()) == accounts_before

    def test_generated_card_collision(self, store, settings):
        clash = CardDetails(card_number="4111111111111111", cvv="999", expiry_date="01/30", barcode="87654321")
        bank = BankingActions(store=store, card_generator=FixedGenerator(clash), settings=settings)

        result = bank.issue_account({"account_holder_name": "Eve Adams", "email": "eve@example.com"})

        assert result.error == ErrorKind.INVALID_OPERATION
        assert store.get_user_by_email("eve@example.com") is None

    def test_invalid_email_is_validation_error(self, bank):
        result = bank.issue_account({"account_holder_name": "No Mail", "email": "not-an-email"})

        assert result.error == ErrorKind.VALIDATION
        assert "email" in result.message


class TestIssueAdmin:
    """Tests for adding administrators."""

    def test_issue_admin(self, bank):
        result = bank.issue_admin({
            "username": "registrar", "password": "s3cret!", "name": "Registrar", "email": "registrar@example.com",
        })

        assert result.success is True
        admin = bank.store.get_user_by_username("registrar")
        assert admin.role == UserRole.ADMIN
        assert verify_password("s3cret!", admin.password_hash)

    def test_duplicate_username(self, bank):
        result = bank.issue_admin({
            "username": "admin", "password": "s3cret!", "name": "Other", "email": "other@example.com",
        })

        assert result.error == ErrorKind.INVALID_OPERATION

    def test_password_hash_not_serialized(self, bank):
        user = bank.store.get_user("admin1")

        assert "password_hash" not in user.model_dump()


class TestCredentials:
    """Tests for username and password updates."""

    def test_update_username(self, bank):
        result = bank.update_username({"user_id": ALICE_ID, "new_username": "alice_w"})

        assert result.success is True
        assert bank.store.get_user(ALICE_ID).username == "alice_w"

    def test_username_taken(self, bank):
        result = bank.update_username({"user_id": ALICE_ID, "new_username": "student2"})

        assert result.error == ErrorKind.INVALID_OPERATION
        assert result.message == "That username is already taken."

    def test_keeping_own_username_is_allowed(self, bank):
        result = bank.update_username({"user_id": ALICE_ID, "new_username": "student1"})

        assert result.success is True

    def test_short_username_is_validation_error(self, bank):
        result = bank.update_username({"user_id": ALICE_ID, "new_username": "al"})

        assert result.error == ErrorKind.VALIDATION

    def test_update_password(self, bank):
        result = bank.update_password({"user_id": ALICE_ID, "new_password": "newpass1"})

        assert result.success is True
        assert verify_password("newpass1", bank.store.get_user(ALICE_ID).password_hash)
        assert not verify_password("password123", bank.store.get_user(ALICE_ID).password_hash)

    def test_unknown_user(self, bank):
        result = bank.update_password({"user_id": "ghost", "new_password": "newpass1"})

        assert result.error == ErrorKind.NOT_FOUND


class TestRegenerateCard:
    """Tests for card re-issue."""

    def test_regenerate_replaces_details(self, bank):
        result = bank.regenerate_card({"user_id": ALICE_ID})

        assert result.success is True
        account = bank.get_account(ALICE_ACC)
        assert account.card_number != "4111111111111111"
        assert luhn_valid(account.card_number)
        assert account.expiry_date == expiry_one_year_from()

        # Verify the old card no longer pays
        payment = bank.make_card_payment({**ALICE_CARD, "amount": "5.00", "business_account_id": STORE_ACC})
        assert payment.error == ErrorKind.NOT_FOUND

    def test_failed_regeneration_keeps_old_card(self, store, settings):
        bank = BankingActions(store=store, card_generator=FailingGenerator(), settings=settings)

        result = bank.regenerate_card({"user_id": ALICE_ID})

        assert result.error == ErrorKind.UPSTREAM_FAILURE
        assert bank.get_account(ALICE_ACC).card_number == "4111111111111111"
        assert bank.get_account(ALICE_ACC).balance == Decimal("150.75")


class TestCardControls:
    """Tests for frozen cards, purchase limits and barcode disabling."""

    def test_frozen_card_declines(self, bank):
        bank.set_frozen({"user_id": ALICE_ID, "frozen": True})

        result = bank.make_card_payment({**ALICE_CARD, "amount": "5.00", "business_account_id": STORE_ACC})

        assert result.error == ErrorKind.INVALID_OPERATION
        assert bank.get_account(ALICE_ACC).balance == Decimal("150.75")

        bank.set_frozen({"user_id": ALICE_ID, "frozen": False})
        assert bank.make_card_payment({**ALICE_CARD, "amount": "5.00", "business_account_id": STORE_ACC}).success

    def test_purchase_limit(self, bank):
        bank.set_purchase_limit({"user_id": ALICE_ID, "limit": "10.00"})

        over = bank.make_card_payment({**ALICE_CARD, "amount": "10.01", "business_account_id": STORE_ACC})
        at_limit = bank.make_card_payment({**ALICE_CARD, "amount": "10.00", "business_account_id": STORE_ACC})

        assert over.error == ErrorKind.INVALID_OPERATION
        assert at_limit.success is True

    def test_remove_purchase_limit(self, bank):
        bank.set_purchase_limit({"user_id": ALICE_ID, "limit": "1.00"})

        result = bank.set_purchase_limit({"user_id": ALICE_ID, "limit": None})

        assert result.message == "Purchase limit removed."
        assert bank.get_account(ALICE_ACC).purchase_limit_per_transaction is None

    def test_negative_limit_is_validation_error(self, bank):
        result = bank.set_purchase_limit({"user_id": ALICE_ID, "limit": "-1"})

        assert result.error == ErrorKind.VALIDATION

    def test_barcode_disabled(self, bank):
        bank.set_barcode_disabled({"user_id": ALICE_ID, "disabled": True})

        result = bank.make_barcode_payment({
            "barcode": "11111111", "cvv": "123", "purchase_name": "Books",
            "amount": "5.00", "business_account_id": STORE_ACC,
        })

        assert result.error == ErrorKind.INVALID_OPERATION
        # Card payments still work
        assert bank.make_card_payment({**ALICE_CARD, "amount": "5.00", "business_account_id": STORE_ACC}).success

    def test_controls_not_enforced(self, store):
        relaxed = Settings(bcrypt_rounds=4, seed_demo_data=False, enforce_card_controls=False)
        bank = BankingActions(store=store, card_generator=LocalCardDetailGenerator(), settings=relaxed)
        bank.set_frozen({"user_id": ALICE_ID, "frozen": True})

        result = bank.make_card_payment({**ALICE_CARD, "amount": "5.00", "business_account_id": STORE_ACC})

        assert result.success is True


class TestCardGenerators:
    """Tests for Luhn helpers and card detail generators."""

    def test_luhn(self):
        assert luhn_valid("4111111111111111")
        assert luhn_valid("4012888888881881")
        assert not luhn_valid("4111111111111112")
        assert not luhn_valid("41a1")

    def test_expiry_one_year_ahead(self):
        assert expiry_one_year_from(datetime(2026, 10, 19)) == "10/27"
        assert expiry_one_year_from(datetime(2099, 1, 5)) == "01/00"

    def test_local_generator(self):
        details = LocalCardDetailGenerator().generate("Anyone")

        assert len(details.card_number) == 16
        assert details.card_number.startswith("4")
        assert luhn_valid(details.card_number)
        assert len(details.cvv) == 3
        assert len(details.barcode) == 8

    def test_groq_generator_overrides_expiry(self):
        content = json.dumps({
            "card_number": "4111111111111111", "cvv": "321", "expiry_date": "01/20", "barcode": "24681357",
        })
        generator = GroqCardDetailGenerator(api_key="test-key", client=groq_client(f"Here you go: {content}"))

        details = generator.generate("Carol Danvers")

        assert details.card_number == "4111111111111111"
        assert details.expiry_date == expiry_one_year_from()

    def test_groq_generator_rejects_bad_luhn(self):
        content = json.dumps({"card_number": "4111111111111112", "cvv": "321", "barcode": "24681357"})
        generator = GroqCardDetailGenerator(api_key="test-key", client=groq_client(content))

        with pytest.raises(UpstreamFailureError):
            generator.generate("Carol Danvers")

    def test_groq_generator_rejects_malformed_output(self):
        generator = GroqCardDetailGenerator(api_key="test-key", client=groq_client("no json here"))

        with pytest.raises(UpstreamFailureError):
            generator.generate("Carol Danvers")

    def test_groq_generator_wraps_client_errors(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("rate limited")
        generator = GroqCardDetailGenerator(api_key="test-key", client=client)

        with pytest.raises(UpstreamFailureError):
            generator.generate("Carol Danvers")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
