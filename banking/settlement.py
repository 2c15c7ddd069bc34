import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .config import FeePolicy, Settings, settings as default_settings
from .errors import (
    InsufficientFundsError,
    InvalidCredentialsError,
    InvalidOperationError,
    NotFoundError,
    UnauthorizedError,
)
from .fees import quote
from .ledger import TransactionLedger, new_transaction_id
from .models import (
    Account,
    ActionResult,
    BarcodePaymentRequest,
    CardPaymentRequest,
    FeeQuote,
    FundOperation,
    ManageFundsRequest,
    Transaction,
    TransactionType,
    UserRole,
)
from .observability import record_settlement
from .store import AccountStore, account_key

logger = logging.getLogger(__name__)


def admin_placeholder_id(admin_user_id: str) -> str:
    return f"admin:{admin_user_id}"


class SettlementEngine:
    """Validate-then-apply money movement for purchases and admin fund management."""

    def __init__(self, store: AccountStore, ledger: TransactionLedger, settings: Optional[Settings] = None):
        self.store = store
        self.ledger = ledger
        self.settings = settings or default_settings

    def quote_fee(self, amount: Decimal) -> FeeQuote:
        return quote(amount)

    def card_payment(self, request: CardPaymentRequest) -> ActionResult:
        payer = self.store.get_account_by_card_number(request.card_number)
        if not payer:
            raise NotFoundError("Customer card not found.")
        business = self._business_account(request.business_account_id)

        if payer.expiry_date != request.expiry_date or payer.cvv != request.cvv:
            raise InvalidCredentialsError("Invalid card details (expiry or CVV).")
        self._check_card_controls(payer, request.amount)

        business_name = self._display_name(business)
        return self._settle_purchase(
            payer,
            business,
            request.amount,
            description=f"Purchase at {business_name}",
        )

    def barcode_payment(self, request: BarcodePaymentRequest) -> ActionResult:
        payer = self.store.get_account_by_barcode(request.barcode)
        if not payer:
            raise NotFoundError("Customer barcode not found.")
        business = self._business_account(request.business_account_id)

        if payer.cvv != request.cvv:
            raise InvalidCredentialsError("Invalid CVV for the account linked to this barcode.")
        if self.settings.enforce_card_controls and payer.is_barcode_disabled:
            raise InvalidOperationError("Barcode payments are disabled for this account.")
        self._check_card_controls(payer, request.amount)

        business_name = self._display_name(business)
        return self._settle_purchase(
            payer,
            business,
            request.amount,
            description=f"{request.purchase_name} at {business_name}",
        )

    def manage_funds(self, request: ManageFundsRequest) -> ActionResult:
        admin = self.store.get_user(request.admin_user_id)
        if not admin or admin.role != UserRole.ADMIN:
            raise UnauthorizedError("Only admins can manage funds.")

        target = self.store.get_account(request.target_account_id)
        if not target:
            raise NotFoundError("Target account not found.")

        is_deposit = request.operation == FundOperation.DEPOSIT
        counterparty = admin_placeholder_id(admin.id)

        with self.store.lock(account_key(target.id)):
            if not is_deposit and target.balance < request.amount:
                raise InsufficientFundsError("Insufficient funds in target account for withdrawal.")

            transaction = self.ledger.record(Transaction(
                id=new_transaction_id("txn-admin"),
                date=datetime.now(timezone.utc),
                description=f"Admin {'Deposit' if is_deposit else 'Withdrawal'} by {admin.name}",
                amount=request.amount,
                type=TransactionType.DEPOSIT if is_deposit else TransactionType.WITHDRAWAL,
                from_account_id=counterparty if is_deposit else target.id,
                to_account_id=target.id if is_deposit else counterparty,
            ))

        record_settlement(transaction.type.value, request.amount)
        logger.info(
            "Funds managed",
            extra={
                "operation": request.operation.value,
                "account_id": target.id,
                "admin_user_id": admin.id,
                "amount": str(request.amount),
                "balance_after": str(target.balance),
            },
        )
        return ActionResult(
            success=True,
            message=f"{request.operation.value.capitalize()} of ${request.amount:.2f} successful!",
            transaction=transaction,
            account=target,
        )

    def _settle_purchase(self, payer: Account, business: Account, amount: Decimal, description: str) -> ActionResult:
        fee_quote = quote(amount)
        collect_fee = self.settings.fee_policy == FeePolicy.COLLECT
        charge = fee_quote.total if collect_fee else amount

        fee_account = None
        keys = [account_key(payer.id), account_key(business.id)]
        if collect_fee:
            fee_account = self.store.get_account(self.settings.fee_account_id)
            if not fee_account:
                raise NotFoundError("Fee collection account not found. Cannot process fee.")
            keys.append(account_key(fee_account.id))

        with self.store.lock(*keys):
            if payer.balance < charge:
                raise InsufficientFundsError("Insufficient funds in customer account.")

            now = datetime.now(timezone.utc)
            transaction = self.ledger.record(Transaction(
                id=new_transaction_id(),
                date=now,
                description=f"{description} (${amount:.2f})",
                amount=amount,
                type=TransactionType.PURCHASE,
                from_account_id=payer.id,
                to_account_id=business.id,
            ))
            if fee_account is not None:
                self.ledger.record(Transaction(
                    id=new_transaction_id("txn-fee"),
                    date=now,
                    description=f"Service fee: {description}",
                    amount=fee_quote.fee,
                    type=TransactionType.PURCHASE,
                    from_account_id=payer.id,
                    to_account_id=fee_account.id,
                    posting_id=transaction.id,
                ))

        record_settlement(TransactionType.PURCHASE.value, amount)
        logger.info(
            "Purchase settled",
            extra={
                "transaction_id": transaction.id,
                "payer_account_id": payer.id,
                "business_account_id": business.id,
                "amount": str(amount),
                "fee": str(fee_quote.fee),
                "fee_policy": self.settings.fee_policy.value,
            },
        )
        message = f"Purchase of ${amount:.2f} successful! Fee: ${fee_quote.fee:.2f}."
        if collect_fee:
            message += f" Total: ${charge:.2f}"
        return ActionResult(
            success=True,
            message=message,
            transaction=transaction,
            fee=fee_quote.fee,
            total_charged=charge,
        )

    def _business_account(self, account_id: str) -> Account:
        business = self.store.get_account(account_id)
        if not business:
            raise NotFoundError("Business account not found.")
        return business

    def _check_card_controls(self, payer: Account, amount: Decimal) -> None:
        if not self.settings.enforce_card_controls:
            return
        if payer.is_frozen:
            raise InvalidOperationError("This card is frozen.")
        limit = payer.purchase_limit_per_transaction
        if limit is not None and amount > limit:
            raise InvalidOperationError(f"Amount exceeds the per-transaction purchase limit of ${limit:.2f}.")

    def _display_name(self, account: Account) -> str:
        owner = self.store.get_user(account.user_id)
        return owner.name if owner else account.account_holder_name
