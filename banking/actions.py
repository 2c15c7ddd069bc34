"""
Request/response facade over the banking core.

Every operation accepts a request model or a plain mapping, validates it
before touching any state, and returns an ``ActionResult``. Errors raised by
the core never escape: they come back as ``success=False`` with the error kind
and a human-readable message.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .accounts import AccountService
from .cards import CardDetailGenerator, get_card_generator
from .config import Settings, settings as default_settings
from .errors import BankingError, ErrorKind
from .ledger import TransactionLedger
from .models import (
    Account,
    AccountSummary,
    ActionResult,
    AddAdminRequest,
    BarcodePaymentRequest,
    CardPaymentRequest,
    FeeQuote,
    InitiateMoneyRequest,
    InitiateTransferRequest,
    IssueAccountRequest,
    ManageFundsRequest,
    ManageTransferRequest,
    PendingItemsResponse,
    PendingTransfer,
    RegenerateCardRequest,
    SetBarcodeDisabledRequest,
    SetFrozenRequest,
    SetPurchaseLimitRequest,
    TransactionHistoryResponse,
    UpdatePasswordRequest,
    UpdateUsernameRequest,
)
from .observability import record_operation
from .settlement import SettlementEngine
from .store import AccountStore, InMemoryStorage
from .transfers import TransferService

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT", bound=BaseModel)
Values = Union[BaseModel, Mapping[str, Any]]


class BankingActions:
    def __init__(
        self,
        store: Optional[AccountStore] = None,
        card_generator: Optional[CardDetailGenerator] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.store = store or InMemoryStorage()
        self.ledger = TransactionLedger(self.store)
        self.settlement = SettlementEngine(self.store, self.ledger, self.settings)
        self.transfers = TransferService(self.store, self.ledger)
        self.accounts = AccountService(
            self.store,
            self.ledger,
            card_generator or get_card_generator(self.settings),
            self.settings,
        )

    # Admin

    def issue_account(self, values: Values) -> ActionResult:
        return self._run("issue_account", IssueAccountRequest, values, self.accounts.issue_account)

    def issue_admin(self, values: Values) -> ActionResult:
        return self._run("issue_admin", AddAdminRequest, values, self.accounts.issue_admin)

    def manage_funds(self, values: Values) -> ActionResult:
        return self._run("manage_funds", ManageFundsRequest, values, self.settlement.manage_funds)

    # Business

    def make_card_payment(self, values: Values) -> ActionResult:
        return self._run("make_card_payment", CardPaymentRequest, values, self.settlement.card_payment)

    def make_barcode_payment(self, values: Values) -> ActionResult:
        return self._run("make_barcode_payment", BarcodePaymentRequest, values, self.settlement.barcode_payment)

    def quote_fee(self, amount: Decimal) -> FeeQuote:
        return self.settlement.quote_fee(amount)

    # Transfers and requests

    def initiate_transfer(self, values: Values) -> ActionResult:
        return self._run("initiate_transfer", InitiateTransferRequest, values, self.transfers.initiate_transfer)

    def initiate_request(self, values: Values) -> ActionResult:
        return self._run("initiate_request", InitiateMoneyRequest, values, self.transfers.initiate_request)

    def approve_transfer(self, values: Values) -> ActionResult:
        return self._run("approve_transfer", ManageTransferRequest, values, self.transfers.approve)

    def reject_transfer(self, values: Values) -> ActionResult:
        return self._run("reject_transfer", ManageTransferRequest, values, self.transfers.reject)

    def cancel_pending_item(self, values: Values) -> ActionResult:
        return self._run("cancel_pending_item", ManageTransferRequest, values, self.transfers.cancel)

    # Card settings

    def update_username(self, values: Values) -> ActionResult:
        return self._run("update_username", UpdateUsernameRequest, values, self.accounts.update_username)

    def update_password(self, values: Values) -> ActionResult:
        return self._run("update_password", UpdatePasswordRequest, values, self.accounts.update_password)

    def regenerate_card(self, values: Values) -> ActionResult:
        return self._run("regenerate_card", RegenerateCardRequest, values, self.accounts.regenerate_card)

    def set_frozen(self, values: Values) -> ActionResult:
        return self._run("set_frozen", SetFrozenRequest, values, self.accounts.set_frozen)

    def set_purchase_limit(self, values: Values) -> ActionResult:
        return self._run("set_purchase_limit", SetPurchaseLimitRequest, values, self.accounts.set_purchase_limit)

    def set_barcode_disabled(self, values: Values) -> ActionResult:
        return self._run("set_barcode_disabled", SetBarcodeDisabledRequest, values, self.accounts.set_barcode_disabled)

    # Queries

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.store.get_account(account_id)

    def get_account_for_user(self, user_id: str) -> Optional[Account]:
        return self.store.get_account_by_user_id(user_id)

    def list_accounts(self) -> list[AccountSummary]:
        return [account.summary() for account in self.store.list_accounts()]

    def transaction_history(self, account_id: Optional[str] = None, limit: int = 50, offset: int = 0) -> TransactionHistoryResponse:
        return self.ledger.history(account_id, limit, offset)

    def get_transfer(self, transfer_id: str) -> Optional[PendingTransfer]:
        return self.store.get_transfer(transfer_id)

    def pending_items(self, user_id: str) -> PendingItemsResponse:
        return self.transfers.pending_for_user(user_id)

    def _run(
        self,
        operation: str,
        model: Type[RequestT],
        values: Values,
        handler: Callable[[RequestT], ActionResult],
    ) -> ActionResult:
        try:
            request = values if isinstance(values, model) else model.model_validate(values)
        except ValidationError as e:
            record_operation(operation, ErrorKind.VALIDATION.value)
            fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
            return ActionResult(
                success=False,
                message=f"Invalid input: {', '.join(fields)}",
                error=ErrorKind.VALIDATION,
            )

        try:
            result = handler(request)
        except BankingError as e:
            record_operation(operation, e.kind.value)
            logger.warning(
                "Operation failed",
                extra={"operation": operation, "error_kind": e.kind.value, "reason": e.message},
            )
            return ActionResult(success=False, message=e.message, error=e.kind)

        record_operation(operation, "success")
        return result
