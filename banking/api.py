from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from .actions import BankingActions
from .config import settings
from .errors import ErrorKind
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
from .observability import setup_logging
from .store import InMemoryStorage

STATUS_BY_ERROR = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INSUFFICIENT_FUNDS: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.ALREADY_RESOLVED: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_OPERATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UPSTREAM_FAILURE: status.HTTP_502_BAD_GATEWAY,
}


def _unwrap(result: ActionResult) -> ActionResult:
    if not result.success:
        raise HTTPException(
            status_code=STATUS_BY_ERROR.get(result.error, status.HTTP_400_BAD_REQUEST),
            detail={"message": result.message, "error": result.error.value if result.error else None},
        )
    return result


def build_router(bank: BankingActions) -> APIRouter:
    router = APIRouter()

    @router.post("/admin/accounts", response_model=ActionResult, status_code=status.HTTP_201_CREATED, tags=["Admin"])
    def issue_account(request: IssueAccountRequest) -> ActionResult:
        return _unwrap(bank.issue_account(request))

    @router.post("/admin/admins", response_model=ActionResult, status_code=status.HTTP_201_CREATED, tags=["Admin"])
    def issue_admin(request: AddAdminRequest) -> ActionResult:
        return _unwrap(bank.issue_admin(request))

    @router.post("/admin/funds", response_model=ActionResult, tags=["Admin"])
    def manage_funds(request: ManageFundsRequest) -> ActionResult:
        return _unwrap(bank.manage_funds(request))

    @router.get("/accounts", response_model=list[AccountSummary], tags=["Admin"])
    def list_accounts() -> list[AccountSummary]:
        return bank.list_accounts()

    @router.get("/accounts/{account_id}/transactions", response_model=TransactionHistoryResponse, tags=["Ledger"])
    def account_transactions(account_id: str, limit: int = 50, offset: int = 0) -> TransactionHistoryResponse:
        if not bank.get_account(account_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Account {account_id} not found")
        return bank.transaction_history(account_id, limit, offset)

    @router.get("/transactions", response_model=TransactionHistoryResponse, tags=["Ledger"])
    def all_transactions(limit: int = 50, offset: int = 0) -> TransactionHistoryResponse:
        return bank.transaction_history(None, limit, offset)

    @router.get("/fees/quote", response_model=FeeQuote, tags=["Payments"])
    def quote_fee(amount: Decimal = Query(..., gt=0)) -> FeeQuote:
        return bank.quote_fee(amount)

    @router.post("/payments/card", response_model=ActionResult, tags=["Payments"])
    def card_payment(request: CardPaymentRequest) -> ActionResult:
        return _unwrap(bank.make_card_payment(request))

    @router.post("/payments/barcode", response_model=ActionResult, tags=["Payments"])
    def barcode_payment(request: BarcodePaymentRequest) -> ActionResult:
        return _unwrap(bank.make_barcode_payment(request))

    @router.post("/transfers", response_model=ActionResult, status_code=status.HTTP_201_CREATED, tags=["Transfers"])
    def initiate_transfer(request: InitiateTransferRequest) -> ActionResult:
        return _unwrap(bank.initiate_transfer(request))

    @router.post("/requests", response_model=ActionResult, status_code=status.HTTP_201_CREATED, tags=["Transfers"])
    def initiate_request(request: InitiateMoneyRequest) -> ActionResult:
        return _unwrap(bank.initiate_request(request))

    @router.get("/transfers/{transfer_id}", response_model=PendingTransfer, tags=["Transfers"])
    def get_transfer(transfer_id: str) -> PendingTransfer:
        transfer = bank.get_transfer(transfer_id)
        if not transfer:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Transfer {transfer_id} not found")
        return transfer

    @router.post("/transfers/approve", response_model=ActionResult, tags=["Transfers"])
    def approve_transfer(request: ManageTransferRequest) -> ActionResult:
        return _unwrap(bank.approve_transfer(request))

    @router.post("/transfers/reject", response_model=ActionResult, tags=["Transfers"])
    def reject_transfer(request: ManageTransferRequest) -> ActionResult:
        return _unwrap(bank.reject_transfer(request))

    @router.post("/transfers/cancel", response_model=ActionResult, tags=["Transfers"])
    def cancel_pending_item(request: ManageTransferRequest) -> ActionResult:
        return _unwrap(bank.cancel_pending_item(request))

    @router.get("/users/{user_id}/account", response_model=Account, tags=["Users"])
    def user_account(user_id: str) -> Account:
        account = bank.get_account_for_user(user_id)
        if not account:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No account for user {user_id}")
        return account

    @router.get("/users/{user_id}/pending", response_model=PendingItemsResponse, tags=["Users"])
    def user_pending(user_id: str) -> PendingItemsResponse:
        return bank.pending_items(user_id)

    @router.post("/settings/username", response_model=ActionResult, tags=["Settings"])
    def update_username(request: UpdateUsernameRequest) -> ActionResult:
        return _unwrap(bank.update_username(request))

    @router.post("/settings/password", response_model=ActionResult, tags=["Settings"])
    def update_password(request: UpdatePasswordRequest) -> ActionResult:
        return _unwrap(bank.update_password(request))

    @router.post("/settings/card/regenerate", response_model=ActionResult, tags=["Settings"])
    def regenerate_card(request: RegenerateCardRequest) -> ActionResult:
        return _unwrap(bank.regenerate_card(request))

    @router.post("/settings/card/frozen", response_model=ActionResult, tags=["Settings"])
    def set_frozen(request: SetFrozenRequest) -> ActionResult:
        return _unwrap(bank.set_frozen(request))

    @router.post("/settings/card/purchase-limit", response_model=ActionResult, tags=["Settings"])
    def set_purchase_limit(request: SetPurchaseLimitRequest) -> ActionResult:
        return _unwrap(bank.set_purchase_limit(request))

    @router.post("/settings/card/barcode", response_model=ActionResult, tags=["Settings"])
    def set_barcode_disabled(request: SetBarcodeDisabledRequest) -> ActionResult:
        return _unwrap(bank.set_barcode_disabled(request))

    return router


def create_app(bank: Optional[BankingActions] = None, root_path: str = "") -> FastAPI:
    """Create and configure the FastAPI application"""
    setup_logging(settings.log_level)

    if bank is None:
        bank = BankingActions(
            store=InMemoryStorage(seed=settings.seed_demo_data, bcrypt_rounds=settings.bcrypt_rounds),
        )

    app = FastAPI(
        title="Campus Bank API",
        description="Campus banking ledger: account issuance, card and barcode payments, transfers with mutual approval",
        version="1.0.0",
        root_path=root_path,
    )
    app.state.bank = bank

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": settings.service_name}

    @app.get("/metrics", tags=["System"])
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(build_router(bank))
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
