"""Rejection kinds raised by the ledger and identity services.

Each error carries the message that is sent back to the caller. Validation
errors are always raised before any registry mutation starts.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for rejected control requests."""

    message = "Request rejected"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class MalformedRequestError(LedgerError, ValueError):
    message = "Invalid request"


class UnauthorizedError(LedgerError):
    message = "Unauthorized"


class ForbiddenError(LedgerError):
    message = "Not authorized"


class DeviceNotFoundError(LedgerError, KeyError):
    message = "Bulb not found"

    def __str__(self) -> str:
        return self.message


class InsufficientFundsError(LedgerError):
    message = "Insufficient energy"
