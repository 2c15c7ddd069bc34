from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from .models import Account, Transaction, TransactionType, TransactionHistoryResponse
from .store import AccountStore


def new_transaction_id(prefix: str = "txn") -> str:
    return f"{prefix}-{uuid4().hex[:16]}"


class TransactionLedger:
    """
    Append-only record of transactions, globally and per account.

    A global record carries the amount moved from ``from_account_id`` to
    ``to_account_id``. Each account it touches gets its own copy signed from
    that account's perspective, and the account balance moves by the same
    signed amount.
    """

    def __init__(self, store: AccountStore):
        self.store = store

    def record(self, transaction: Transaction) -> Transaction:
        self.store.append_transaction(transaction)

        # Unresolvable ids (external parties, admin placeholders) get no posting.
        if transaction.from_account_id:
            payer = self.store.get_account(transaction.from_account_id)
            if payer:
                self._post(payer, transaction.model_copy(update={"amount": -abs(transaction.amount)}))
        if transaction.to_account_id:
            payee = self.store.get_account(transaction.to_account_id)
            if payee:
                self._post(payee, transaction.model_copy(update={"amount": abs(transaction.amount)}))
        return transaction

    def record_transfer(
        self,
        transfer_id: str,
        amount: Decimal,
        sender: Account,
        recipient: Account,
        debit_description: str,
        credit_description: str,
        date: Optional[datetime] = None,
    ) -> tuple[Transaction, Transaction]:
        """Write the debit and credit legs of a transfer as two correlated records."""
        date = date or datetime.now(timezone.utc)
        debit = Transaction(
            id=f"txn-s-{transfer_id}",
            date=date,
            description=debit_description,
            amount=-amount,
            type=TransactionType.TRANSFER,
            from_account_id=sender.id,
            to_account_id=recipient.id,
            posting_id=transfer_id,
        )
        credit = Transaction(
            id=f"txn-r-{transfer_id}",
            date=date,
            description=credit_description,
            amount=amount,
            type=TransactionType.TRANSFER,
            from_account_id=sender.id,
            to_account_id=recipient.id,
            posting_id=transfer_id,
        )
        for account, leg in ((sender, debit), (recipient, credit)):
            self.store.append_transaction(leg)
            self._post(account, leg)
        return debit, credit

    def history(self, account_id: Optional[str] = None, limit: int = 50, offset: int = 0) -> TransactionHistoryResponse:
        if account_id is None:
            entries = self.store.list_transactions()
        else:
            account = self.store.get_account(account_id)
            entries = list(account.transactions) if account else []

        return TransactionHistoryResponse(
            account_id=account_id,
            entries=entries[offset:offset + limit],
            total_count=len(entries),
        )

    def _post(self, account: Account, posting: Transaction) -> None:
        account.balance += posting.amount
        account.transactions.insert(0, posting)
        account.transactions.sort(key=lambda t: t.date, reverse=True)
