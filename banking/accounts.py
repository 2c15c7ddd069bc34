import logging
import re
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from .cards import CardDetailGenerator
from .config import Settings, settings as default_settings
from .errors import InvalidOperationError, NotFoundError
from .ledger import TransactionLedger
from .models import (
    Account,
    ActionResult,
    AddAdminRequest,
    IssueAccountRequest,
    RegenerateCardRequest,
    SetBarcodeDisabledRequest,
    SetFrozenRequest,
    SetPurchaseLimitRequest,
    Transaction,
    TransactionType,
    UpdatePasswordRequest,
    UpdateUsernameRequest,
    User,
    UserRole,
)
from .security import hash_password, temporary_password
from .store import AccountStore, account_key

logger = logging.getLogger(__name__)


class AccountService:
    """Account issuance, credential updates and card controls."""

    def __init__(
        self,
        store: AccountStore,
        ledger: TransactionLedger,
        card_generator: CardDetailGenerator,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.card_generator = card_generator
        self.settings = settings or default_settings

    def issue_account(self, request: IssueAccountRequest) -> ActionResult:
        if self.store.get_user_by_email(request.email):
            raise InvalidOperationError("An account with this email already exists.")

        # Nothing is created until the generator has succeeded.
        card = self.card_generator.generate(request.account_holder_name)
        if self.store.get_account_by_card_number(card.card_number) or self.store.get_account_by_barcode(card.barcode):
            raise InvalidOperationError("Generated card details collide with an existing account. Please try again.")

        suffix = uuid4().hex[:12]
        password = temporary_password()
        user = User(
            id=f"user-{suffix}",
            username=self._unique_username(request.email),
            password_hash=hash_password(password, self.settings.bcrypt_rounds),
            role=UserRole.USER,
            name=request.account_holder_name,
            email=request.email,
            phone_number=request.phone_number,
        )
        account = Account(
            id=f"acc-{suffix}",
            user_id=user.id,
            account_holder_name=request.account_holder_name,
            email=request.email,
            phone_number=request.phone_number,
            card_number=card.card_number,
            cvv=card.cvv,
            expiry_date=card.expiry_date,
            barcode=card.barcode,
        )
        self.store.add_user(user)
        self.store.add_account(account)

        if request.initial_deposit > 0:
            self.ledger.record(Transaction(
                id=f"txn-{account.id}-init",
                date=datetime.now(timezone.utc),
                description="Initial deposit",
                amount=request.initial_deposit,
                type=TransactionType.DEPOSIT,
                to_account_id=account.id,
            ))

        logger.info("Account issued", extra={"account_id": account.id, "user_id": user.id, "username": user.username})
        return ActionResult(
            success=True,
            message=f"Account issued successfully! Username: {user.username}",
            account=account,
            temporary_password=password,
        )

    def issue_admin(self, request: AddAdminRequest) -> ActionResult:
        if self.store.get_user_by_username(request.username) or self.store.get_user_by_email(request.email):
            raise InvalidOperationError("Username or email already exists.")

        admin = User(
            id=f"admin-{uuid4().hex[:12]}",
            username=request.username,
            password_hash=hash_password(request.password, self.settings.bcrypt_rounds),
            role=UserRole.ADMIN,
            name=request.name,
            email=request.email,
        )
        self.store.add_user(admin)

        logger.info("Admin created", extra={"user_id": admin.id, "username": admin.username})
        return ActionResult(success=True, message="Admin account created successfully.")

    def update_username(self, request: UpdateUsernameRequest) -> ActionResult:
        user = self._get_user(request.user_id)
        holder = self.store.get_user_by_username(request.new_username)
        if holder and holder.id != user.id:
            raise InvalidOperationError("That username is already taken.")

        user.username = request.new_username
        logger.info("Username updated", extra={"user_id": user.id})
        return ActionResult(success=True, message="Username updated successfully.")

    def update_password(self, request: UpdatePasswordRequest) -> ActionResult:
        user = self._get_user(request.user_id)
        user.password_hash = hash_password(request.new_password, self.settings.bcrypt_rounds)
        logger.info("Password updated", extra={"user_id": user.id})
        return ActionResult(success=True, message="Password updated successfully.")

    def regenerate_card(self, request: RegenerateCardRequest) -> ActionResult:
        account = self.get_account_for_user(request.user_id)
        card = self.card_generator.generate(account.account_holder_name)

        for other in self.store.list_accounts():
            if other.id != account.id and (other.card_number == card.card_number or other.barcode == card.barcode):
                raise InvalidOperationError("Generated card details collide with an existing account. Please try again.")

        with self.store.lock(account_key(account.id)):
            account.card_number = card.card_number
            account.cvv = card.cvv
            account.expiry_date = card.expiry_date
            account.barcode = card.barcode

        logger.info("Card re-issued", extra={"account_id": account.id})
        return ActionResult(success=True, message="Card details re-issued successfully.", account=account)

    def set_frozen(self, request: SetFrozenRequest) -> ActionResult:
        account = self.get_account_for_user(request.user_id)
        with self.store.lock(account_key(account.id)):
            account.is_frozen = request.frozen
        state = "frozen" if request.frozen else "unfrozen"
        return ActionResult(success=True, message=f"Card {state} successfully.", account=account)

    def set_purchase_limit(self, request: SetPurchaseLimitRequest) -> ActionResult:
        account = self.get_account_for_user(request.user_id)
        with self.store.lock(account_key(account.id)):
            account.purchase_limit_per_transaction = request.limit
        if request.limit is None:
            message = "Purchase limit removed."
        else:
            message = f"Purchase limit set to ${request.limit:.2f} per transaction."
        return ActionResult(success=True, message=message, account=account)

    def set_barcode_disabled(self, request: SetBarcodeDisabledRequest) -> ActionResult:
        account = self.get_account_for_user(request.user_id)
        with self.store.lock(account_key(account.id)):
            account.is_barcode_disabled = request.disabled
        state = "disabled" if request.disabled else "enabled"
        return ActionResult(success=True, message=f"Barcode payments {state}.", account=account)

    def get_account_for_user(self, user_id: str) -> Account:
        account = self.store.get_account_by_user_id(user_id)
        if not account:
            raise NotFoundError("Account not found for this user.")
        return account

    def get_account(self, account_id: str) -> Account:
        account = self.store.get_account(account_id)
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    def _get_user(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found.")
        return user

    def _unique_username(self, email: str) -> str:
        base = re.sub(r"[^a-z0-9._-]", "", email.split("@", 1)[0].lower())
        if len(base) < 3:
            base = f"{base}user"
        candidate, n = base, 1
        while self.store.get_user_by_username(candidate):
            n += 1
            candidate = f"{base}{n}"
        return candidate
