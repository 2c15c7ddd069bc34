from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from pydantic import BaseModel, Field, ConfigDict, computed_field

from .errors import ErrorKind

Money = Annotated[Decimal, Field(gt=0, max_digits=12, decimal_places=2)]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
CVV_PATTERN = r"^\d{3,4}$"


class UserRole(str, Enum):
    ADMIN = "admin"
    BUSINESS = "business"
    USER = "user"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    PURCHASE = "purchase"
    TRANSFER = "transfer"


class TransferStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TransferKind(str, Enum):
    TRANSFER = "transfer"
    REQUEST = "request"


class FundOperation(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class User(BaseModel):
    id: str
    username: str
    password_hash: str = Field(repr=False, exclude=True)
    role: UserRole
    name: str
    email: str
    phone_number: Optional[str] = None


class Transaction(BaseModel):
    id: str
    date: datetime
    description: str
    amount: Decimal
    type: TransactionType
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    posting_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Account(BaseModel):
    id: str
    user_id: str
    account_holder_name: str
    email: str
    phone_number: Optional[str] = None
    card_number: str
    cvv: str
    expiry_date: str
    barcode: str
    balance: Decimal = Decimal("0.00")
    transactions: list[Transaction] = Field(default_factory=list)
    is_frozen: bool = False
    purchase_limit_per_transaction: Optional[Decimal] = None
    is_barcode_disabled: bool = False

    @computed_field
    @property
    def masked_card_number(self) -> str:
        return "*" * (len(self.card_number) - 4) + self.card_number[-4:]

    def summary(self) -> "AccountSummary":
        return AccountSummary(
            id=self.id,
            user_id=self.user_id,
            account_holder_name=self.account_holder_name,
            email=self.email,
            phone_number=self.phone_number,
            masked_card_number=self.masked_card_number,
            balance=self.balance,
            is_frozen=self.is_frozen,
            purchase_limit_per_transaction=self.purchase_limit_per_transaction,
            is_barcode_disabled=self.is_barcode_disabled,
        )


class AccountSummary(BaseModel):
    """Account view for listings: no card number, CVV, barcode or history."""

    id: str
    user_id: str
    account_holder_name: str
    email: str
    phone_number: Optional[str] = None
    masked_card_number: str
    balance: Decimal
    is_frozen: bool
    purchase_limit_per_transaction: Optional[Decimal] = None
    is_barcode_disabled: bool


class PendingTransfer(BaseModel):
    id: str
    kind: TransferKind
    sender_user_id: str
    sender_account_id: str
    sender_name: str
    recipient_user_id: str
    recipient_account_id: str
    recipient_username: str
    amount: Decimal
    status: TransferStatus = TransferStatus.PENDING
    initiated_date: datetime
    resolved_date: Optional[datetime] = None
    notes: str = ""

    @property
    def initiator_user_id(self) -> str:
        # The sender starts a transfer; the payee starts a request.
        if self.kind == TransferKind.TRANSFER:
            return self.sender_user_id
        return self.recipient_user_id

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.sender_user_id, self.recipient_user_id)

    def is_pending(self) -> bool:
        return self.status == TransferStatus.PENDING

    def resolve(self, status: TransferStatus, resolved_at: datetime, note: str) -> None:
        self.status = status
        self.resolved_date = resolved_at
        self.notes = f"{self.notes} {note}".strip()


class CardDetails(BaseModel):
    card_number: str = Field(..., pattern=r"^\d{13,19}$")
    cvv: str = Field(..., pattern=r"^\d{3}$")
    expiry_date: str = Field(..., pattern=r"^(0[1-9]|1[0-2])/\d{2}$")
    barcode: str = Field(..., pattern=r"^\d{8}$")


class IssueAccountRequest(BaseModel):
    account_holder_name: str = Field(..., min_length=2)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    phone_number: Optional[str] = None
    initial_deposit: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=12, decimal_places=2)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "account_holder_name": "Carol Danvers",
            "email": "carol@example.com",
            "initial_deposit": 50.00
        }
    })


class AddAdminRequest(BaseModel):
    username: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=2)
    email: str = Field(..., pattern=EMAIL_PATTERN)


class CardPaymentRequest(BaseModel):
    card_number: str = Field(..., min_length=12, max_length=19, pattern=r"^\d+$")
    expiry_date: str = Field(..., pattern=r"^(0[1-9]|1[0-2])/\d{2}$", description="MM/YY")
    cvv: str = Field(..., pattern=CVV_PATTERN)
    amount: Money
    business_account_id: str = Field(..., min_length=1)


class BarcodePaymentRequest(BaseModel):
    purchase_name: str = Field(..., min_length=1)
    barcode: str = Field(..., pattern=r"^\d{8}$")
    cvv: str = Field(..., pattern=CVV_PATTERN)
    amount: Money
    business_account_id: str = Field(..., min_length=1)


class ManageFundsRequest(BaseModel):
    target_account_id: str = Field(..., min_length=1)
    amount: Money
    operation: FundOperation
    admin_user_id: str = Field(..., min_length=1)


class InitiateTransferRequest(BaseModel):
    sender_user_id: str = Field(..., min_length=1)
    recipient_username: str = Field(..., min_length=1)
    amount: Money


class InitiateMoneyRequest(BaseModel):
    requester_user_id: str = Field(..., min_length=1)
    payer_username: str = Field(..., min_length=1)
    amount: Money


class ManageTransferRequest(BaseModel):
    transfer_id: str = Field(..., min_length=1)
    actor_user_id: str = Field(..., min_length=1)


class UpdateUsernameRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    new_username: str = Field(..., min_length=3)


class UpdatePasswordRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class RegenerateCardRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class SetFrozenRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    frozen: bool


class SetPurchaseLimitRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    limit: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)


class SetBarcodeDisabledRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    disabled: bool


class FeeQuote(BaseModel):
    amount: Decimal
    fee: Decimal
    total: Decimal


class ActionResult(BaseModel):
    success: bool
    message: str
    error: Optional[ErrorKind] = None
    account: Optional[Account] = None
    transaction: Optional[Transaction] = None
    transfer: Optional[PendingTransfer] = None
    fee: Optional[Decimal] = None
    total_charged: Optional[Decimal] = None
    temporary_password: Optional[str] = None


class TransactionHistoryResponse(BaseModel):
    account_id: Optional[str] = None
    entries: list[Transaction]
    total_count: int


class PendingItemsResponse(BaseModel):
    user_id: str
    incoming: list[PendingTransfer]
    outgoing: list[PendingTransfer]
