import logging
from datetime import datetime, timezone
from uuid import uuid4

from .errors import (
    AlreadyResolvedError,
    InsufficientFundsError,
    InvalidOperationError,
    NotFoundError,
    UnauthorizedError,
)
from .ledger import TransactionLedger
from .models import (
    Account,
    ActionResult,
    InitiateMoneyRequest,
    InitiateTransferRequest,
    ManageTransferRequest,
    PendingItemsResponse,
    PendingTransfer,
    TransferKind,
    TransferStatus,
    User,
    UserRole,
)
from .observability import record_settlement
from .store import AccountStore, account_key

logger = logging.getLogger(__name__)


class TransferService:
    """
    Lifecycle of user-to-user transfers and money requests.

    Both flows share one record shape: the sender is always the account
    debited on approval. A transfer is started by its sender, a request by its
    recipient; either party may approve or reject, only the initiator may
    cancel. Every resolution is terminal.
    """

    def __init__(self, store: AccountStore, ledger: TransactionLedger):
        self.store = store
        self.ledger = ledger

    def initiate_transfer(self, request: InitiateTransferRequest) -> ActionResult:
        sender, sender_account = self._user_with_account(request.sender_user_id, "Sender")
        recipient = self._standard_user(request.recipient_username)
        if recipient.id == sender.id:
            raise InvalidOperationError("Cannot transfer funds to yourself.")
        recipient_account = self._account_for(recipient, "Recipient")

        # Advisory only; re-checked when the recipient approves.
        if sender_account.balance < request.amount:
            raise InsufficientFundsError("Insufficient funds to initiate transfer.")

        transfer = PendingTransfer(
            id=f"ptxn-{uuid4().hex[:16]}",
            kind=TransferKind.TRANSFER,
            sender_user_id=sender.id,
            sender_account_id=sender_account.id,
            sender_name=sender.name,
            recipient_user_id=recipient.id,
            recipient_account_id=recipient_account.id,
            recipient_username=recipient.username,
            amount=request.amount,
            initiated_date=datetime.now(timezone.utc),
            notes=f"Transfer from {sender.name} to {recipient.name}. Recipient to approve.",
        )
        self.store.add_transfer(transfer)

        logger.info("Transfer initiated", extra=self._log_fields(transfer))
        return ActionResult(
            success=True,
            message=f"Transfer of ${request.amount:.2f} to {recipient.name} initiated. Awaiting their approval.",
            transfer=transfer,
        )

    def initiate_request(self, request: InitiateMoneyRequest) -> ActionResult:
        requester, requester_account = self._user_with_account(request.requester_user_id, "Requester")
        payer = self._standard_user(request.payer_username)
        if payer.id == requester.id:
            raise InvalidOperationError("Cannot request money from yourself.")
        payer_account = self._account_for(payer, "Payer")

        transfer = PendingTransfer(
            id=f"preq-{uuid4().hex[:16]}",
            kind=TransferKind.REQUEST,
            sender_user_id=payer.id,
            sender_account_id=payer_account.id,
            sender_name=payer.name,
            recipient_user_id=requester.id,
            recipient_account_id=requester_account.id,
            recipient_username=requester.username,
            amount=request.amount,
            initiated_date=datetime.now(timezone.utc),
            notes=f"Money request for ${request.amount:.2f} from {requester.name}. Payer to approve.",
        )
        self.store.add_transfer(transfer)

        logger.info("Money request initiated", extra=self._log_fields(transfer))
        return ActionResult(
            success=True,
            message=f"Request for ${request.amount:.2f} sent to {payer.name}. Awaiting their payment approval.",
            transfer=transfer,
        )

    def approve(self, request: ManageTransferRequest) -> ActionResult:
        transfer = self._get_transfer(request.transfer_id)
        if not transfer.is_party(request.actor_user_id):
            raise UnauthorizedError("You are not authorized to approve this item.")

        with self.store.lock(*self._lock_keys(transfer)):
            self._ensure_pending(transfer)
            now = datetime.now(timezone.utc)

            sender_account = self.store.get_account(transfer.sender_account_id)
            recipient_account = self.store.get_account(transfer.recipient_account_id)
            if not sender_account or not recipient_account:
                transfer.resolve(TransferStatus.FAILED, now, "Failed: Sender or recipient account missing at approval.")
                logger.warning("Transfer failed", extra=self._log_fields(transfer))
                raise NotFoundError("Sender or recipient account could not be found. Action failed.")

            if sender_account.balance < transfer.amount:
                transfer.resolve(TransferStatus.FAILED, now, "Failed: Payer had insufficient funds at time of approval.")
                logger.warning("Transfer failed", extra=self._log_fields(transfer))
                raise InsufficientFundsError("Action failed. Payer has insufficient funds.")

            debit_description, credit_description = self._leg_descriptions(
                transfer, sender_account, recipient_account, request.actor_user_id
            )
            self.ledger.record_transfer(
                transfer.id,
                transfer.amount,
                sender_account,
                recipient_account,
                debit_description,
                credit_description,
                date=now,
            )
            transfer.resolve(TransferStatus.APPROVED, now, f"Approved by {self._actor_name(request.actor_user_id)}.")

        record_settlement("transfer", transfer.amount)
        logger.info("Transfer approved", extra=self._log_fields(transfer))
        if transfer.kind == TransferKind.REQUEST:
            message = f"Payment of ${transfer.amount:.2f} to {recipient_account.account_holder_name} approved successfully."
        else:
            message = f"Transfer of ${transfer.amount:.2f} from {sender_account.account_holder_name} approved successfully."
        return ActionResult(success=True, message=message, transfer=transfer)

    def reject(self, request: ManageTransferRequest) -> ActionResult:
        transfer = self._get_transfer(request.transfer_id)
        if not transfer.is_party(request.actor_user_id):
            raise UnauthorizedError("You are not authorized to reject this item.")

        with self.store.lock(*self._lock_keys(transfer)):
            self._ensure_pending(transfer)
            transfer.resolve(
                TransferStatus.REJECTED,
                datetime.now(timezone.utc),
                f"Rejected by {self._actor_name(request.actor_user_id)}.",
            )

        logger.info("Transfer rejected", extra=self._log_fields(transfer))
        message = "Payment request rejected successfully." if transfer.kind == TransferKind.REQUEST else "Transfer rejected successfully."
        return ActionResult(success=True, message=message, transfer=transfer)

    def cancel(self, request: ManageTransferRequest) -> ActionResult:
        transfer = self._get_transfer(request.transfer_id)
        if transfer.initiator_user_id != request.actor_user_id:
            raise UnauthorizedError("Only the initiator can cancel this item.")

        with self.store.lock(*self._lock_keys(transfer)):
            if not transfer.is_pending():
                raise AlreadyResolvedError(f"This item is already {transfer.status.value} and cannot be cancelled.")
            transfer.resolve(
                TransferStatus.CANCELLED,
                datetime.now(timezone.utc),
                f"Cancelled by initiator {self._actor_name(request.actor_user_id)}.",
            )

        logger.info("Transfer cancelled", extra=self._log_fields(transfer))
        message = "Your money request has been cancelled." if transfer.kind == TransferKind.REQUEST else "Your initiated transfer has been cancelled."
        return ActionResult(success=True, message=message, transfer=transfer)

    def get_transfer(self, transfer_id: str) -> PendingTransfer:
        return self._get_transfer(transfer_id)

    def pending_for_user(self, user_id: str) -> PendingItemsResponse:
        """Split a user's pending items into those awaiting their decision and those they started."""
        pending = [t for t in self.store.list_transfers() if t.is_pending() and t.is_party(user_id)]
        pending.sort(key=lambda t: t.initiated_date, reverse=True)
        outgoing = [t for t in pending if t.initiator_user_id == user_id]
        incoming = [t for t in pending if t.initiator_user_id != user_id]
        return PendingItemsResponse(user_id=user_id, incoming=incoming, outgoing=outgoing)

    def _get_transfer(self, transfer_id: str) -> PendingTransfer:
        transfer = self.store.get_transfer(transfer_id)
        if not transfer:
            raise NotFoundError("Pending transfer/request not found.")
        return transfer

    def _lock_keys(self, transfer: PendingTransfer) -> tuple[str, str]:
        # A transfer's state only changes while both of its accounts are held.
        return account_key(transfer.sender_account_id), account_key(transfer.recipient_account_id)

    def _ensure_pending(self, transfer: PendingTransfer) -> None:
        if not transfer.is_pending():
            raise AlreadyResolvedError(f"This item is already {transfer.status.value}.")

    def _user_with_account(self, user_id: str, label: str) -> tuple[User, Account]:
        user = self.store.get_user(user_id)
        if not user:
            raise NotFoundError(f"{label} user not found.")
        return user, self._account_for(user, label)

    def _account_for(self, user: User, label: str) -> Account:
        account = self.store.get_account_by_user_id(user.id)
        if not account:
            raise NotFoundError(f"{label} account not found.")
        return account

    def _standard_user(self, username: str) -> User:
        user = self.store.get_user_by_username(username)
        if not user or user.role != UserRole.USER:
            raise NotFoundError(f'User "{username}" not found or is not a standard user.')
        return user

    def _actor_name(self, user_id: str) -> str:
        actor = self.store.get_user(user_id)
        return actor.name if actor else "user"

    def _leg_descriptions(
        self, transfer: PendingTransfer, sender: Account, recipient: Account, actor_user_id: str
    ) -> tuple[str, str]:
        approver = sender if actor_user_id == transfer.sender_user_id else recipient
        if transfer.kind == TransferKind.REQUEST:
            debit = f"Payment for request from {recipient.account_holder_name}"
            credit = f"Payment received for request to {sender.account_holder_name}"
        else:
            debit = f"Transfer to {recipient.account_holder_name}"
            credit = f"Transfer received from {sender.account_holder_name}"
        return f"{debit} (Approved by {approver.account_holder_name})", credit

    def _log_fields(self, transfer: PendingTransfer) -> dict:
        return {
            "transfer_id": transfer.id,
            "kind": transfer.kind.value,
            "status": transfer.status.value,
            "sender_account_id": transfer.sender_account_id,
            "recipient_account_id": transfer.recipient_account_id,
            "amount": str(transfer.amount),
        }
