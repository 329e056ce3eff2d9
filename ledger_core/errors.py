"""
Ledger Error Taxonomy

Typed failures raised by the ledger engine and its stores. Every error
carries a machine-readable kind and a message that is safe to show to
callers (no storage internals).
"""

from enum import Enum


class ErrorKind(Enum):
    """Distinguishable failure kinds"""
    NOT_FOUND = "NOT_FOUND"
    INVALID_OPERATION = "INVALID_OPERATION"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    UNAVAILABLE = "UNAVAILABLE"
    VALIDATION = "VALIDATION"


class LedgerError(Exception):
    """Base class for all ledger failures"""

    kind: ErrorKind = ErrorKind.INVALID_OPERATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind.value, "detail": self.message}


class NotFoundError(LedgerError, ValueError):
    """Referenced account does not exist"""
    kind = ErrorKind.NOT_FOUND


class InvalidOperationError(LedgerError, ValueError):
    """Well-formed request that makes no sense (e.g. self-transfer)"""
    kind = ErrorKind.INVALID_OPERATION


class InsufficientFundsError(LedgerError, ValueError):
    """Debit would take a balance below zero"""
    kind = ErrorKind.INSUFFICIENT_FUNDS


class ValidationError(LedgerError, ValueError):
    """Input violates amount or currency constraints"""
    kind = ErrorKind.VALIDATION


class UnavailableError(LedgerError):
    """Store could not complete the unit of work"""
    kind = ErrorKind.UNAVAILABLE
