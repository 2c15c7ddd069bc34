"""
Account Store

Repository interface over users, accounts, the global transaction list and
pending transfers, plus the in-memory implementation used by the service and
the tests. Lookups are linear scans; uniqueness is checked by callers.
"""

import bisect
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Optional

from .models import Account, PendingTransfer, Transaction, User, UserRole
from .security import hash_password

MAIN_ADMIN_USER_ID = "mainAdminUser"
MAIN_ADMIN_ACCOUNT_ID = "mainAdminAccount"
CAMPUS_STORE_USER_ID = "business1"
CAMPUS_STORE_ACCOUNT_ID = "business1-acc"


def account_key(account_id: str) -> str:
    return f"account:{account_id}"


class AccountStore(ABC):

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def list_users(self) -> list[User]: ...

    @abstractmethod
    def add_user(self, user: User) -> None: ...

    @abstractmethod
    def get_account(self, account_id: str) -> Optional[Account]: ...

    @abstractmethod
    def get_account_by_card_number(self, card_number: str) -> Optional[Account]: ...

    @abstractmethod
    def get_account_by_barcode(self, barcode: str) -> Optional[Account]: ...

    @abstractmethod
    def get_account_by_user_id(self, user_id: str) -> Optional[Account]: ...

    @abstractmethod
    def list_accounts(self) -> list[Account]: ...

    @abstractmethod
    def add_account(self, account: Account) -> None: ...

    @abstractmethod
    def append_transaction(self, transaction: Transaction) -> None:
        """Add to the global ledger, keeping it newest-first."""

    @abstractmethod
    def list_transactions(self) -> list[Transaction]: ...

    @abstractmethod
    def add_transfer(self, transfer: PendingTransfer) -> None: ...

    @abstractmethod
    def get_transfer(self, transfer_id: str) -> Optional[PendingTransfer]: ...

    @abstractmethod
    def list_transfers(self) -> list[PendingTransfer]: ...

    @abstractmethod
    def lock(self, *keys: str):
        """Context manager holding a mutual-exclusion lock on every key."""


class InMemoryStorage(AccountStore):
    def __init__(self, seed: bool = False, bcrypt_rounds: int = 12):
        self.users: list[User] = []
        self.accounts: list[Account] = []
        self.transactions: list[Transaction] = []
        self.pending_transfers: list[PendingTransfer] = []
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        # The global ledger is shared by every account.
        self._ledger_lock = threading.Lock()
        if seed:
            self._seed_data(bcrypt_rounds)

    def _seed_data(self, bcrypt_rounds: int):
        password_hash = hash_password("password123", bcrypt_rounds)

        self.users.extend([
            User(id="admin1", username="admin", password_hash=password_hash,
                 role=UserRole.ADMIN, name="Admin User", email="admin@example.com"),
            User(id=MAIN_ADMIN_USER_ID, username="mainadmin", password_hash=password_hash,
                 role=UserRole.ADMIN, name="Main Admin", email="mainadmin@campusflow.com"),
            User(id=CAMPUS_STORE_USER_ID, username="business", password_hash=password_hash,
                 role=UserRole.BUSINESS, name="Campus Store", email="store@example.com"),
            User(id="user1", username="student1", password_hash=password_hash,
                 role=UserRole.USER, name="Alice Wonderland", email="alice@example.com",
                 phone_number="123-456-7890"),
            User(id="user2", username="student2", password_hash=password_hash,
                 role=UserRole.USER, name="Bob The Builder", email="bob@example.com"),
        ])

        # Seeded balances are set directly, without ledger history.
        self.accounts.extend([
            Account(id=MAIN_ADMIN_ACCOUNT_ID, user_id=MAIN_ADMIN_USER_ID,
                    account_holder_name="Main Admin Fee Account", email="mainadmin@campusflow.com",
                    card_number="4242424242424242", cvv="000", expiry_date="01/99", barcode="00000000",
                    balance=Decimal("0.00")),
            Account(id=CAMPUS_STORE_ACCOUNT_ID, user_id=CAMPUS_STORE_USER_ID,
                    account_holder_name="Campus Store Account", email="store@example.com",
                    card_number="5555555555554444", cvv="555", expiry_date="01/99", barcode="55555555",
                    balance=Decimal("1000.00")),
            Account(id="user1-acc", user_id="user1",
                    account_holder_name="Alice Wonderland", email="alice@example.com",
                    phone_number="123-456-7890",
                    card_number="4111111111111111", cvv="123", expiry_date="12/27", barcode="11111111",
                    balance=Decimal("150.75")),
            Account(id="user2-acc", user_id="user2",
                    account_holder_name="Bob The Builder", email="bob@example.com",
                    card_number="4012888888881881", cvv="123", expiry_date="10/28", barcode="12345678",
                    balance=Decimal("320.00")),
        ])

    def get_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.users if u.username == username), None)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.users if u.email == email), None)

    def list_users(self) -> list[User]:
        return list(self.users)

    def add_user(self, user: User) -> None:
        self.users.append(user)

    def get_account(self, account_id: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def get_account_by_card_number(self, card_number: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.card_number == card_number), None)

    def get_account_by_barcode(self, barcode: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.barcode == barcode), None)

    def get_account_by_user_id(self, user_id: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.user_id == user_id), None)

    def list_accounts(self) -> list[Account]:
        return list(self.accounts)

    def add_account(self, account: Account) -> None:
        self.accounts.append(account)

    def append_transaction(self, transaction: Transaction) -> None:
        with self._ledger_lock:
            # Newest first; a new entry goes ahead of others with the same date.
            bisect.insort_left(self.transactions, transaction, key=lambda t: -t.date.timestamp())

    def list_transactions(self) -> list[Transaction]:
        with self._ledger_lock:
            return list(self.transactions)

    def add_transfer(self, transfer: PendingTransfer) -> None:
        self.pending_transfers.append(transfer)

    def get_transfer(self, transfer_id: str) -> Optional[PendingTransfer]:
        return next((t for t in self.pending_transfers if t.id == transfer_id), None)

    def list_transfers(self) -> list[PendingTransfer]:
        return list(self.pending_transfers)

    @contextmanager
    def lock(self, *keys: str) -> Iterator[None]:
        # Sorted acquisition order keeps overlapping key sets deadlock-free.
        with self._registry_lock:
            locks = [self._locks.setdefault(key, threading.RLock()) for key in sorted(set(keys))]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
