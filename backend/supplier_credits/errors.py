# Overview: Error taxonomy shared by the supplier ledger services and routes.

from __future__ import annotations

from decimal import Decimal


class LedgerError(Exception):
    """Base class for supplier ledger errors."""

    code = "LEDGER_ERROR"
    status_code = 400

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


class ValidationError(LedgerError):
    """Malformed input: bad amount, unknown kind, missing supplier."""

    code = "INVALID_DATA"
    status_code = 400


class NotFoundError(LedgerError):
    """Referenced supplier, entry or purchase order does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class ExcessPaymentError(LedgerError):
    """
    Payment exceeds the supplier's outstanding balance.

    Business-rule rejection; carries the current balance so the caller
    can correct the amount.
    """

    code = "PAYMENT_EXCEEDS_BALANCE"
    status_code = 400

    def __init__(self, message: str, outstanding_balance: Decimal):
        super().__init__(message)
        self.outstanding_balance = outstanding_balance

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["outstanding_balance"] = str(self.outstanding_balance)
        return data


class AllocationError(LedgerError):
    """
    Outstanding debts ran out before a payment was fully allocated.

    Means the cached balance and the ledger disagree. Never retried.
    """

    code = "ALLOCATION_DESYNC"
    status_code = 500
