"""Errors raised by the stock ledger and translated to HTTP responses in main.py."""


class LedgerError(Exception):
    """Base exception for all ledger errors."""
    kind = "LedgerError"
    status_code = 500

    def __init__(self, message="An internal error occurred", payload=None):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['kind'] = self.kind
        rv['message'] = self.message
        return rv


class InvalidInputError(LedgerError):
    """Malformed or missing fields, non-positive quantity, bad date."""
    kind = "InvalidInput"
    status_code = 400


class NotFoundError(LedgerError):
    """Raised when a product or movement does not resolve."""
    kind = "NotFound"
    status_code = 404

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, payload)


class InsufficientStockError(LedgerError):
    """Raised when an operation would drive a product's stock negative."""
    kind = "InsufficientStock"
    status_code = 400

    def __init__(self, product_code, required, available):
        message = f"Insufficient stock for product {product_code}: required {required}, available {available}"
        super().__init__(message, {"required": required, "available": available})


class AlreadyVoidedError(LedgerError):
    """Raised when operating on a voided movement."""
    kind = "AlreadyVoided"
    status_code = 400

    def __init__(self, movement_id):
        super().__init__(f"Movement {movement_id} is already voided", {"movement_id": movement_id})


class ConflictError(LedgerError):
    kind = "Conflict"
    status_code = 409


class StorageFailureError(LedgerError):
    """The transactional write itself failed; the transaction was rolled back."""
    kind = "StorageFailure"
    status_code = 500

    def __init__(self, message="Storage failure, the operation was rolled back", payload=None):
        super().__init__(message, payload)
