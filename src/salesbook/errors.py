"""Exception hierarchy raised by the salesbook data layer.

Every error carries a human-readable message suitable for surfacing verbatim
to a presentation layer. Read operations are lenient and rarely raise; write
operations are strict and raise one of the classes below.
"""

from __future__ import annotations


class SalesbookError(Exception):
    """Base class for all salesbook failures."""


class NotFoundError(SalesbookError):
    """Raised when an update, delete or lookup targets an absent key."""


class DuplicateKeyError(SalesbookError):
    """Raised when an add would create a second row with an existing key."""


class SheetNotFoundError(SalesbookError):
    """Raised when a named sheet is missing from an otherwise loaded workbook."""


class IOFailure(SalesbookError):
    """Raised when a filesystem read, copy, write or rename fails."""


class SerializationFailure(SalesbookError):
    """Raised when the workbook cannot be parsed from or encoded to disk."""


class BusinessRuleViolation(SalesbookError):
    """Raised when a requested operation violates a domain constraint."""


class InvalidRequestError(ValueError):
    """Raised when a request payload fails validation at the boundary."""


__all__ = [
    "SalesbookError",
    "NotFoundError",
    "DuplicateKeyError",
    "SheetNotFoundError",
    "IOFailure",
    "SerializationFailure",
    "BusinessRuleViolation",
    "InvalidRequestError",
]
