"""Enumerations shared across salesbook modules.

Centralises domain constants so that the codec, the repositories, the
business operations and the CLI rely on a single source of truth for sheet
names and the closed vocabularies stored in the workbook.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_BACKUP_RETENTION = 5
DEFAULT_CACHE_TTL_SECONDS = 5.0
DEFAULT_DEBOUNCE_SECONDS = 0.3
DEFAULT_REORDER_LEVEL = Decimal("10")


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the data layer."""

    PRODUCTS = "Products"
    CUSTOMERS = "Customers"
    SALES = "Sales"
    INVOICES = "Invoices"
    INVENTORY = "Inventory"
    PAYMENTS = "Payments"
    ACCOUNTS = "Accounts"
    JOURNAL = "Journal"


# Sheets added to pre-existing workbooks on load. The core sheets are never
# synthesized for an existing file; their absence is a schema error.
SUPPLEMENTARY_SHEETS: tuple[SheetName, ...] = (
    SheetName.PAYMENTS,
    SheetName.ACCOUNTS,
    SheetName.JOURNAL,
)


class MovementType(str, Enum):
    """Enumerate the inventory movement kinds recorded on the Inventory sheet."""

    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class InvoiceStatus(str, Enum):
    """Enumerate the lifecycle states of an invoice."""

    PENDING = "Pending"
    PARTIAL = "Partial"
    PAID = "Paid"
    CANCELLED = "Cancelled"


class PaymentMethod(str, Enum):
    """Enumerate supported payment mechanisms for invoice settlements."""

    CASH = "Cash"
    CARD = "Card"
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"


class AccountType(str, Enum):
    """Enumerate the top-level account classes of the chart of accounts."""

    ASSET = "Asset"
    LIABILITY = "Liability"
    EQUITY = "Equity"
    REVENUE = "Revenue"
    EXPENSE = "Expense"


DEBIT_NORMAL_ACCOUNT_TYPES = frozenset({AccountType.ASSET, AccountType.EXPENSE})


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_BACKUP_RETENTION",
    "DEFAULT_CACHE_TTL_SECONDS",
    "DEFAULT_DEBOUNCE_SECONDS",
    "DEFAULT_REORDER_LEVEL",
    "SheetName",
    "SUPPLEMENTARY_SHEETS",
    "MovementType",
    "InvoiceStatus",
    "PaymentMethod",
    "AccountType",
    "DEBIT_NORMAL_ACCOUNT_TYPES",
]
