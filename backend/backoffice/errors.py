# Overview: Exception taxonomy shared by every ledger service and the route layer.

"""
Ledger error taxonomy.

Every service raises a subclass of LedgerError. Routes translate them into
JSON responses using ``status_code`` and ``to_dict()``.

- ValidationError:        malformed or inconsistent input, rejected before any mutation
- NotFoundError:          a referenced entity does not exist
- InsufficientStockError: an outbound movement would make stock negative
- InsufficientPointsError: a redemption needs more points than the customer holds
- InsufficientFundsError: a cash account would go negative without allow_negative
- OverpaymentError:       an allocation/payment exceeds the open balance
- ConsistencyError:       a post-condition failed after mutation, or compensation failed
- StorageError:           transient I/O failure from the database layer
"""


class LedgerError(Exception):
    """Base class for every ledger failure."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    """400-level input problem."""


class NotFoundError(LedgerError):
    status_code = 404


class AccountNotFoundError(NotFoundError):
    """Partner account or cash account missing."""


class InsufficientStockError(LedgerError):
    status_code = 409


class InsufficientPointsError(LedgerError):
    status_code = 409


class InsufficientFundsError(LedgerError):
    status_code = 409


class OverpaymentError(LedgerError):
    status_code = 409


class ConsistencyError(LedgerError):
    """A ledger may be out of sync; needs manual reconciliation."""

    status_code = 500


class StorageError(LedgerError):
    status_code = 503


class StepTimeoutError(StorageError):
    """A saga step exceeded its bounded duration."""
