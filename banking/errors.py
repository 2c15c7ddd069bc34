from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "ValidationError"
    NOT_FOUND = "NotFound"
    INVALID_CREDENTIALS = "InvalidCredentials"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    UNAUTHORIZED = "Unauthorized"
    ALREADY_RESOLVED = "AlreadyResolved"
    INVALID_OPERATION = "InvalidOperation"
    UPSTREAM_FAILURE = "UpstreamFailure"


class BankingError(Exception):
    kind = ErrorKind.INVALID_OPERATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BankingError):
    kind = ErrorKind.NOT_FOUND


class InvalidCredentialsError(BankingError):
    kind = ErrorKind.INVALID_CREDENTIALS


class InsufficientFundsError(BankingError):
    kind = ErrorKind.INSUFFICIENT_FUNDS


class UnauthorizedError(BankingError):
    kind = ErrorKind.UNAUTHORIZED


class AlreadyResolvedError(BankingError):
    kind = ErrorKind.ALREADY_RESOLVED


class InvalidOperationError(BankingError):
    kind = ErrorKind.INVALID_OPERATION


class UpstreamFailureError(BankingError):
    """The card-detail generator failed or returned unusable output."""

    kind = ErrorKind.UPSTREAM_FAILURE
