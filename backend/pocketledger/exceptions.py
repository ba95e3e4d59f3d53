"""
Domain errors raised by the ledger services.

Each error carries the HTTP status and a stable ``error_code`` so the API
layer can render it without knowing the individual classes.
"""


class LedgerError(Exception):
    status_code = 400
    error_code = "LEDGER_ERROR"
    default_detail = "Ledger operation failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class AccountNotFoundError(LedgerError):
    status_code = 404
    error_code = "ACCOUNT_NOT_FOUND"
    default_detail = "Account not found"


class CategoryNotFoundError(LedgerError):
    status_code = 404
    error_code = "CATEGORY_NOT_FOUND"
    default_detail = "Category not found"


class TransactionNotFoundError(LedgerError):
    status_code = 404
    error_code = "TRANSACTION_NOT_FOUND"
    default_detail = "Transaction not found"


class RecordNotFoundError(LedgerError):
    status_code = 404
    error_code = "RECORD_NOT_FOUND"
    default_detail = "Record not found"


class RecordOwnershipError(LedgerError):
    status_code = 403
    error_code = "UNAUTHORIZED_ACCESS"
    default_detail = "You do not have access to this record"


class InvalidAmountError(LedgerError):
    error_code = "INVALID_AMOUNT"
    default_detail = "Amount must be greater than zero"


class SameAccountTransferError(LedgerError):
    error_code = "SAME_ACCOUNT_TRANSFER"
    default_detail = "Cannot transfer to the same account"


class TransferCannotBeModifiedError(LedgerError):
    error_code = "TRANSFER_CANNOT_BE_MODIFIED"
    default_detail = "Transfer transactions cannot be modified"


class TransferIntegrityError(LedgerError):
    status_code = 409
    error_code = "TRANSFER_INTEGRITY"
    default_detail = "Transfer legs are inconsistent"


class InvalidTransactionError(LedgerError):
    error_code = "INVALID_TRANSACTION"
    default_detail = "Transaction request is invalid"
