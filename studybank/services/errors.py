"""
studybank.services.errors — Ledger Error Taxonomy
==================================================

Raised by the ledger, fund and invite services.  Any of these aborts the
enclosing unit of work, so the database is left exactly as it was.
Cogs turn them into ephemeral replies; the API turns the lookup errors
into 404s.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every expected ledger failure."""


class InvalidAmount(LedgerError, ValueError):
    """An amount was zero, negative, or not an integer."""


class InsufficientFunds(LedgerError):
    """The account cannot cover the requested debit."""

    def __init__(self, user_id: int, currency: str, requested: int, available: int) -> None:
        self.user_id = user_id
        self.currency = currency
        self.requested = requested
        self.available = available
        super().__init__(
            f"user {user_id} has {available} {currency}, needs {requested}"
        )


class AccountNotFound(LedgerError):
    """Read-only lookup of a user that has never been credited."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"no account for user {user_id}")


class FundNotFound(LedgerError):
    def __init__(self, fund_name: str) -> None:
        self.fund_name = fund_name
        super().__init__(f"fund {fund_name!r} does not exist")


class FundAlreadyExists(LedgerError):
    def __init__(self, fund_name: str) -> None:
        self.fund_name = fund_name
        super().__init__(f"fund {fund_name!r} already exists")


class AlreadyCheckedInToday(LedgerError):
    """The user's stored check-in date equals today."""

    def __init__(self, user_id: int, current_streak: int) -> None:
        self.user_id = user_id
        self.current_streak = current_streak
        super().__init__(f"user {user_id} already checked in today")


class StorageError(LedgerError):
    """Wraps a database failure; the original is chained as ``__cause__``."""
