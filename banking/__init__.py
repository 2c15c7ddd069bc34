"""
Campus Banking Ledger

This module provides:
- Account store with per-account locking
- Append-only transaction ledger with per-account signed postings
- Tiered service fee calculation
- Card and barcode payments, admin fund management
- Transfer / money request lifecycle: pending → approved / rejected / failed / cancelled
- Request/response actions facade returning structured results
"""

from .actions import BankingActions
from .errors import BankingError, ErrorKind
from .fees import service_fee
from .ledger import TransactionLedger
from .models import (
    Account,
    AccountSummary,
    ActionResult,
    PendingTransfer,
    Transaction,
    TransactionType,
    TransferKind,
    TransferStatus,
    User,
    UserRole,
)
from .settlement import SettlementEngine
from .store import AccountStore, InMemoryStorage
from .transfers import TransferService

__all__ = [
    "BankingActions",
    "BankingError",
    "ErrorKind",
    "service_fee",
    "TransactionLedger",
    "Account",
    "AccountSummary",
    "ActionResult",
    "PendingTransfer",
    "Transaction",
    "TransactionType",
    "TransferKind",
    "TransferStatus",
    "User",
    "UserRole",
    "SettlementEngine",
    "AccountStore",
    "InMemoryStorage",
    "TransferService",
]
