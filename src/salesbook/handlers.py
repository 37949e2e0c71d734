"""Typed request boundary in front of the business layer.

Presentation code (the CLI, a desktop shell, a web view) sends plain
mappings tagged with an ``operation`` name. :func:`parse_request` validates
each payload into a frozen request dataclass before anything reaches the
repositories, and :func:`handle` runs a request and folds every expected
failure into a :class:`Response` whose message can be shown verbatim.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, is_dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, Mapping, Optional, Type

from . import accounting, core_logic, log
from .codec import AccountRow, CustomerRow, ProductRow
from .errors import InvalidRequestError, SalesbookError


@dataclass(frozen=True)
class Response:
    """Outcome of one handled request."""

    success: bool
    message: str
    data: Any = None
    error: Optional[BaseException] = field(default=None, repr=False, compare=False)


class _Payload:
    """Typed accessors over a raw request mapping."""

    def __init__(self, operation: str, payload: Mapping[str, Any]) -> None:
        self.operation = operation
        self._payload = payload

    def _fail(self, message: str) -> InvalidRequestError:
        return InvalidRequestError(f"{self.operation}: {message}")

    def text(self, name: str, *, required: bool = True, default: str = "") -> str:
        value = self._payload.get(name)
        if value is None or value == "":
            if required:
                raise self._fail(f"'{name}' is required")
            return default
        if not isinstance(value, str):
            raise self._fail(f"'{name}' must be a string")
        return value

    def optional_text(self, name: str) -> Optional[str]:
        value = self.text(name, required=False)
        return value or None

    def decimal(self, name: str, *, required: bool = True, default: Optional[Decimal] = None) -> Decimal:
        value = self._payload.get(name)
        if value is None or value == "":
            if required or default is None:
                raise self._fail(f"'{name}' is required")
            return default
        return self._number(name, value)

    def optional_decimal(self, name: str) -> Optional[Decimal]:
        value = self._payload.get(name)
        if value is None or value == "":
            return None
        return self._number(name, value)

    def flag(self, name: str, default: bool) -> bool:
        value = self._payload.get(name, default)
        if not isinstance(value, bool):
            raise self._fail(f"'{name}' must be true or false")
        return value

    def optional_flag(self, name: str) -> Optional[bool]:
        if self._payload.get(name) is None:
            return None
        return self.flag(name, False)

    def records(self, name: str) -> list[_Payload]:
        value = self._payload.get(name)
        if not isinstance(value, (list, tuple)) or not value:
            raise self._fail(f"'{name}' must be a non-empty list")
        items = []
        for index, item in enumerate(value):
            if not isinstance(item, Mapping):
                raise self._fail(f"'{name}[{index}]' must be an object")
            items.append(_Payload(f"{self.operation}.{name}[{index}]", item))
        return items

    def _number(self, name: str, value: Any) -> Decimal:
        if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
            raise self._fail(f"'{name}' must be a number")
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise self._fail(f"'{name}' must be a number, got {value!r}") from exc
        if not number.is_finite():
            raise self._fail(f"'{name}' must be finite")
        return number


class Request(ABC):
    """Base class of every tagged request."""

    operation: ClassVar[str]

    @classmethod
    def from_payload(cls, payload: _Payload) -> "Request":
        return cls()

    @abstractmethod
    def execute(self, context: core_logic.RuntimeContext) -> Response:
        ...


REQUEST_TYPES: Dict[str, Type[Request]] = {}


def register(cls: Type[Request]) -> Type[Request]:
    """Class decorator adding ``cls`` to :data:`REQUEST_TYPES` under its tag."""

    if inspect.isabstract(cls):
        raise TypeError(f"Request {cls.__name__} does not implement execute()")
    if cls.operation in REQUEST_TYPES:
        raise ValueError(f"Duplicate request operation: {cls.operation}")
    REQUEST_TYPES[cls.operation] = cls
    return cls


def _ok(message: str, data: Any = None) -> Response:
    return Response(success=True, message=message, data=data)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@register
@dataclass(frozen=True)
class ReadAllRequest(Request):
    operation: ClassVar[str] = "read_all"

    def execute(self, context):
        return _ok("Workbook loaded", core_logic.read_all(context))


@register
@dataclass(frozen=True)
class ListProductsRequest(Request):
    operation: ClassVar[str] = "list_products"
    include_inactive: bool = False

    @classmethod
    def from_payload(cls, payload):
        return cls(include_inactive=payload.flag("include_inactive", False))

    def execute(self, context):
        products = core_logic.list_products(context, include_inactive=self.include_inactive)
        return _ok(f"{len(products)} product(s)", products)


@register
@dataclass(frozen=True)
class LowStockRequest(Request):
    operation: ClassVar[str] = "low_stock_products"

    def execute(self, context):
        products = core_logic.low_stock_products(context)
        return _ok(f"{len(products)} product(s) at or below reorder level", products)


@register
@dataclass(frozen=True)
class MovementHistoryRequest(Request):
    operation: ClassVar[str] = "movement_history"
    product_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload):
        return cls(product_name=payload.optional_text("product_name"))

    def execute(self, context):
        movements = core_logic.movement_history(context, self.product_name)
        return _ok(f"{len(movements)} movement(s)", movements)


@register
@dataclass(frozen=True)
class ReconcileMovementsRequest(Request):
    operation: ClassVar[str] = "reconcile_movements"
    product_name: str

    @classmethod
    def from_payload(cls, payload):
        return cls(product_name=payload.text("product_name"))

    def execute(self, context):
        mismatched = core_logic.reconcile_movements(context, self.product_name)
        return _ok(f"{len(mismatched)} unreconciled movement(s)", mismatched)


@register
@dataclass(frozen=True)
class ListCustomersRequest(Request):
    operation: ClassVar[str] = "list_customers"

    def execute(self, context):
        customers = core_logic.list_customers(context)
        return _ok(f"{len(customers)} customer(s)", customers)


@register
@dataclass(frozen=True)
class ListInvoicesRequest(Request):
    operation: ClassVar[str] = "list_invoices"
    customer_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload):
        return cls(customer_name=payload.optional_text("customer_name"))

    def execute(self, context):
        invoices = core_logic.list_invoices(context, customer_name=self.customer_name)
        return _ok(f"{len(invoices)} invoice(s)", invoices)


@register
@dataclass(frozen=True)
class GetInvoiceRequest(Request):
    operation: ClassVar[str] = "get_invoice"
    invoice_id: str

    @classmethod
    def from_payload(cls, payload):
        return cls(invoice_id=payload.text("invoice_id"))

    def execute(self, context):
        invoice = core_logic.get_invoice(context, self.invoice_id)
        return _ok(f'Invoice "{invoice.invoice_id}"', invoice)


@register
@dataclass(frozen=True)
class PaymentsForInvoiceRequest(Request):
    operation: ClassVar[str] = "payments_for_invoice"
    invoice_id: str

    @classmethod
    def from_payload(cls, payload):
        return cls(invoice_id=payload.text("invoice_id"))

    def execute(self, context):
        payments = core_logic.payments_for_invoice(context, self.invoice_id)
        return _ok(f"{len(payments)} payment(s)", payments)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


@register
@dataclass(frozen=True)
class AddProductRequest(Request):
    """Add a product. ``reorder_level`` falls back to the configured default."""

    operation: ClassVar[str] = "add_product"
    name: str
    quantity: Decimal
    buy_price: Decimal
    sale_price: Decimal
    reorder_level: Optional[Decimal] = None
    category: str = ""
    sku: str = ""
    is_active: bool = True

    @classmethod
    def from_payload(cls, payload):
        return cls(
            name=payload.text("name"),
            quantity=payload.decimal("quantity"),
            buy_price=payload.decimal("buy_price"),
            sale_price=payload.decimal("sale_price"),
            reorder_level=payload.optional_decimal("reorder_level"),
            category=payload.text("category", required=False),
            sku=payload.text("sku", required=False),
            is_active=payload.flag("is_active", True),
        )

    def to_row(self, context: core_logic.RuntimeContext) -> ProductRow:
        reorder_level = self.reorder_level
        if reorder_level is None:
            reorder_level = context.settings.default_reorder_level
        return ProductRow(
            name=self.name,
            quantity=self.quantity,
            buy_price=self.buy_price,
            sale_price=self.sale_price,
            reorder_level=reorder_level,
            category=self.category,
            sku=self.sku,
            is_active=self.is_active is not False,
        )

    def execute(self, context):
        product = core_logic.add_product(context, self.to_row(context))
        return _ok(f'Product "{product.name}" added', product)


@register
@dataclass(frozen=True)
class UpdateProductRequest(AddProductRequest):
    """Replace a product. An omitted ``is_active`` keeps the stored flag."""

    operation: ClassVar[str] = "update_product"
    is_active: Optional[bool] = None
    old_name: str = ""

    @classmethod
    def from_payload(cls, payload):
        values = _field_values(AddProductRequest.from_payload(payload))
        values["is_active"] = payload.optional_flag("is_active")
        return cls(old_name=payload.text("old_name"), **values)

    def execute(self, context):
        product = core_logic.update_product(
            context, self.old_name, self.to_row(context), keep_active=self.is_active is None
        )
        return _ok(f'Product "{self.old_name}" updated', product)


@dataclass(frozen=True)
class _ProductNameRequest(Request):
    name: str

    @classmethod
    def from_payload(cls, payload):
        return cls(name=payload.text("name"))


@register
@dataclass(frozen=True)
class DeleteProductRequest(_ProductNameRequest):
    operation: ClassVar[str] = "delete_product"

    def execute(self, context):
        core_logic.delete_product(context, self.name)
        return _ok(f'Product "{self.name}" deleted')


@register
@dataclass(frozen=True)
class DeactivateProductRequest(_ProductNameRequest):
    operation: ClassVar[str] = "deactivate_product"

    def execute(self, context):
        product = core_logic.deactivate_product(context, self.name)
        return _ok(f'Product "{self.name}" deactivated', product)


@register
@dataclass(frozen=True)
class RestoreProductRequest(_ProductNameRequest):
    operation: ClassVar[str] = "restore_product"

    def execute(self, context):
        product = core_logic.restore_product(context, self.name)
        return _ok(f'Product "{self.name}" restored', product)


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


@register
@dataclass(frozen=True)
class AddCustomerRequest(Request):
    operation: ClassVar[str] = "add_customer"
    name: str
    phone: str = ""
    email: str = ""
    address: str = ""

    @classmethod
    def from_payload(cls, payload):
        return cls(
            name=payload.text("name"),
            phone=payload.text("phone", required=False),
            email=payload.text("email", required=False),
            address=payload.text("address", required=False),
        )

    def to_row(self) -> CustomerRow:
        return CustomerRow(name=self.name, phone=self.phone, email=self.email, address=self.address)

    def execute(self, context):
        customer = core_logic.add_customer(context, self.to_row())
        return _ok(f'Customer "{customer.name}" added', customer)


@register
@dataclass(frozen=True)
class UpdateCustomerRequest(AddCustomerRequest):
    operation: ClassVar[str] = "update_customer"
    old_name: str = ""

    @classmethod
    def from_payload(cls, payload):
        base = AddCustomerRequest.from_payload(payload)
        return cls(old_name=payload.text("old_name"), **_field_values(base))

    def execute(self, context):
        customer = core_logic.update_customer(context, self.old_name, self.to_row())
        return _ok(f'Customer "{self.old_name}" updated', customer)


@register
@dataclass(frozen=True)
class DeleteCustomerRequest(Request):
    """Physically remove a customer row."""

    operation: ClassVar[str] = "delete_customer"
    name: str

    @classmethod
    def from_payload(cls, payload):
        return cls(name=payload.text("name"))

    def execute(self, context):
        core_logic.delete_customer(context, self.name)
        return _ok(f'Customer "{self.name}" deleted')


@register
@dataclass(frozen=True)
class AnonymizeCustomerRequest(Request):
    """Erase a customer's personal data in place, keeping the row."""

    operation: ClassVar[str] = "anonymize_customer"
    name: str
    reason: str = ""
    performed_by: str = ""

    @classmethod
    def from_payload(cls, payload):
        return cls(
            name=payload.text("name"),
            reason=payload.text("reason", required=False),
            performed_by=payload.text("performed_by", required=False),
        )

    def execute(self, context):
        customer = core_logic.anonymize_customer(
            context, self.name, reason=self.reason, performed_by=self.performed_by
        )
        return _ok(f'Customer "{self.name}" anonymized', customer)


# ---------------------------------------------------------------------------
# Invoices, payments and inventory
# ---------------------------------------------------------------------------


@register
@dataclass(frozen=True)
class SaveInvoiceRequest(Request):
    operation: ClassVar[str] = "save_invoice"
    invoice_id: str
    customer_name: str
    lines: tuple[core_logic.InvoiceLine, ...]
    date: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_payload(cls, payload):
        lines = tuple(
            core_logic.InvoiceLine(
                product_name=line.text("product_name"),
                quantity=line.decimal("quantity"),
                unit_price=line.decimal("unit_price"),
            )
            for line in payload.records("lines")
        )
        return cls(
            invoice_id=payload.text("invoice_id"),
            customer_name=payload.text("customer_name"),
            lines=lines,
            date=payload.optional_text("date"),
            status=payload.optional_text("status"),
        )

    def execute(self, context):
        invoice = core_logic.save_invoice(
            context,
            core_logic.InvoiceCommand(
                invoice_id=self.invoice_id,
                customer_name=self.customer_name,
                lines=self.lines,
                date=self.date,
                status=self.status,
            ),
        )
        return _ok(f'Invoice "{invoice.invoice_id}" saved (total {invoice.total_amount})', invoice)


@register
@dataclass(frozen=True)
class UpdateInvoiceStatusRequest(Request):
    operation: ClassVar[str] = "update_invoice_status"
    invoice_id: str
    status: str

    @classmethod
    def from_payload(cls, payload):
        return cls(invoice_id=payload.text("invoice_id"), status=payload.text("status"))

    def execute(self, context):
        invoice = core_logic.update_invoice_status(context, self.invoice_id, self.status)
        return _ok(f'Invoice "{self.invoice_id}" is now {invoice.status}', invoice)


@register
@dataclass(frozen=True)
class AddPaymentRequest(Request):
    operation: ClassVar[str] = "add_payment"
    invoice_id: str
    amount: Decimal
    method: str = "Cash"
    payment_id: Optional[str] = None
    date: Optional[str] = None
    notes: str = ""

    @classmethod
    def from_payload(cls, payload):
        return cls(
            invoice_id=payload.text("invoice_id"),
            amount=payload.decimal("amount"),
            method=payload.text("method", required=False, default="Cash"),
            payment_id=payload.optional_text("payment_id"),
            date=payload.optional_text("date"),
            notes=payload.text("notes", required=False),
        )

    def execute(self, context):
        receipt = core_logic.add_payment(
            context,
            core_logic.PaymentCommand(
                invoice_id=self.invoice_id,
                amount=self.amount,
                method=self.method,
                payment_id=self.payment_id,
                date=self.date,
                notes=self.notes,
            ),
        )
        return _ok(
            f'Payment "{receipt.payment.payment_id}" recorded; invoice is {receipt.invoice_status}',
            receipt,
        )


@register
@dataclass(frozen=True)
class AddInventoryMovementRequest(Request):
    operation: ClassVar[str] = "add_inventory_movement"
    product_name: str
    movement_type: str
    quantity: Decimal
    date: Optional[str] = None
    reference: str = ""
    notes: str = ""

    @classmethod
    def from_payload(cls, payload):
        return cls(
            product_name=payload.text("product_name"),
            movement_type=payload.text("movement_type"),
            quantity=payload.decimal("quantity"),
            date=payload.optional_text("date"),
            reference=payload.text("reference", required=False),
            notes=payload.text("notes", required=False),
        )

    def execute(self, context):
        movement = core_logic.add_inventory_movement(
            context,
            core_logic.MovementCommand(
                product_name=self.product_name,
                movement_type=self.movement_type,
                quantity=self.quantity,
                date=self.date,
                reference=self.reference,
                notes=self.notes,
            ),
        )
        return _ok(
            f'{movement.movement_type} recorded for "{movement.product_name}"; balance {movement.balance_after}',
            movement,
        )


# ---------------------------------------------------------------------------
# Export and backups
# ---------------------------------------------------------------------------


@register
@dataclass(frozen=True)
class ExportSheetRequest(Request):
    operation: ClassVar[str] = "export_sheet"
    sheet_name: str
    output_path: Path

    @classmethod
    def from_payload(cls, payload):
        return cls(sheet_name=payload.text("sheet_name"), output_path=Path(payload.text("output_path")))

    def execute(self, context):
        path = core_logic.export_sheet(context, self.sheet_name, self.output_path)
        return _ok(f'Sheet "{self.sheet_name}" exported to {path}', path)


@register
@dataclass(frozen=True)
class ListBackupsRequest(Request):
    operation: ClassVar[str] = "list_backups"

    def execute(self, context):
        backups = core_logic.list_backups(context)
        return _ok(f"{len(backups)} backup(s)", backups)


@register
@dataclass(frozen=True)
class CreateBackupRequest(Request):
    operation: ClassVar[str] = "create_backup"

    def execute(self, context):
        path = core_logic.create_manual_backup(context)
        return _ok(f"Backup created at {path}", path)


@dataclass(frozen=True)
class _BackupPathRequest(Request):
    path: Path

    @classmethod
    def from_payload(cls, payload):
        return cls(path=Path(payload.text("path")))


@register
@dataclass(frozen=True)
class RestoreBackupRequest(_BackupPathRequest):
    operation: ClassVar[str] = "restore_backup"

    def execute(self, context):
        core_logic.restore_backup(context, self.path)
        return _ok(f"Restored workbook from {self.path.name}")


@register
@dataclass(frozen=True)
class DeleteBackupRequest(_BackupPathRequest):
    operation: ClassVar[str] = "delete_backup"

    def execute(self, context):
        core_logic.delete_backup(context, self.path)
        return _ok(f"Deleted backup {self.path.name}")


# ---------------------------------------------------------------------------
# Accounting
# ---------------------------------------------------------------------------


@register
@dataclass(frozen=True)
class ListAccountsRequest(Request):
    operation: ClassVar[str] = "list_accounts"
    include_inactive: bool = True

    @classmethod
    def from_payload(cls, payload):
        return cls(include_inactive=payload.flag("include_inactive", True))

    def execute(self, context):
        accounts = accounting.list_accounts(context, include_inactive=self.include_inactive)
        return _ok(f"{len(accounts)} account(s)", accounts)


@register
@dataclass(frozen=True)
class AddAccountRequest(Request):
    operation: ClassVar[str] = "add_account"
    code: str
    name: str
    account_type: str
    parent_code: str = ""
    is_active: bool = True

    @classmethod
    def from_payload(cls, payload):
        return cls(
            code=payload.text("code"),
            name=payload.text("name"),
            account_type=payload.text("account_type"),
            parent_code=payload.text("parent_code", required=False),
            is_active=payload.flag("is_active", True),
        )

    def to_row(self) -> AccountRow:
        return AccountRow(
            code=self.code,
            name=self.name,
            account_type=self.account_type,
            parent_code=self.parent_code,
            is_active=self.is_active,
        )

    def execute(self, context):
        account = accounting.add_account(context, self.to_row())
        return _ok(f"Account {account.code} added", account)


@register
@dataclass(frozen=True)
class UpdateAccountRequest(AddAccountRequest):
    operation: ClassVar[str] = "update_account"
    old_code: str = ""

    @classmethod
    def from_payload(cls, payload):
        base = AddAccountRequest.from_payload(payload)
        return cls(old_code=payload.text("old_code"), **_field_values(base))

    def execute(self, context):
        account = accounting.update_account(context, self.old_code, self.to_row())
        return _ok(f"Account {self.old_code} updated", account)


@register
@dataclass(frozen=True)
class AddJournalEntryRequest(Request):
    operation: ClassVar[str] = "add_journal_entry"
    description: str
    lines: tuple[accounting.JournalLine, ...]
    entry_id: Optional[str] = None
    date: Optional[str] = None
    reference: str = ""

    @classmethod
    def from_payload(cls, payload):
        lines = tuple(
            accounting.JournalLine(
                account_code=line.text("account_code"),
                debit=line.decimal("debit", required=False, default=Decimal("0")),
                credit=line.decimal("credit", required=False, default=Decimal("0")),
            )
            for line in payload.records("lines")
        )
        return cls(
            description=payload.text("description"),
            lines=lines,
            entry_id=payload.optional_text("entry_id"),
            date=payload.optional_text("date"),
            reference=payload.text("reference", required=False),
        )

    def execute(self, context):
        rows = accounting.add_journal_entry(
            context,
            accounting.JournalEntry(
                description=self.description,
                lines=self.lines,
                entry_id=self.entry_id,
                date=self.date,
                reference=self.reference,
            ),
        )
        return _ok(f'Journal entry "{rows[0].entry_id}" recorded', rows)


@register
@dataclass(frozen=True)
class TrialBalanceRequest(Request):
    operation: ClassVar[str] = "trial_balance"
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @classmethod
    def from_payload(cls, payload):
        return cls(start_date=payload.optional_text("start_date"), end_date=payload.optional_text("end_date"))

    def execute(self, context):
        rows = accounting.trial_balance(context, self.start_date, self.end_date)
        return _ok(f"{len(rows)} account(s) with activity", rows)


@register
@dataclass(frozen=True)
class IncomeStatementRequest(TrialBalanceRequest):
    operation: ClassVar[str] = "income_statement"

    def execute(self, context):
        statement = accounting.income_statement(context, self.start_date, self.end_date)
        return _ok(f"Net income {statement.net_income}", statement)


@register
@dataclass(frozen=True)
class BalanceSheetRequest(Request):
    operation: ClassVar[str] = "balance_sheet"
    as_of: Optional[str] = None

    @classmethod
    def from_payload(cls, payload):
        return cls(as_of=payload.optional_text("as_of"))

    def execute(self, context):
        sheet = accounting.balance_sheet(context, self.as_of)
        return _ok(f"Total assets {sheet.total_assets}", sheet)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def _field_values(request: Request) -> Dict[str, Any]:
    return {item.name: getattr(request, item.name) for item in fields(request)}


def parse_request(payload: Mapping[str, Any]) -> Request:
    """Validate a raw payload into its typed request.

    Args:
        payload (Mapping[str, Any]): Mapping carrying an ``operation`` tag and
            the operation's fields.

    Returns:
        Request: The frozen request dataclass for that operation.

    Raises:
        InvalidRequestError: If the tag is unknown or a field is missing or has
            the wrong type.
    """

    if not isinstance(payload, Mapping):
        raise InvalidRequestError("Request payload must be a mapping")
    operation = payload.get("operation")
    request_type = REQUEST_TYPES.get(operation) if isinstance(operation, str) else None
    if request_type is None:
        raise InvalidRequestError(f"Unknown operation: {operation!r}")
    return request_type.from_payload(_Payload(operation, payload))


def handle(context: core_logic.RuntimeContext, request: Request | Mapping[str, Any]) -> Response:
    """Run one request and report its outcome.

    Raw mappings are parsed first. Domain and validation failures become an
    unsuccessful :class:`Response` carrying the error message; nothing has
    been persisted in that case. Unexpected errors propagate.
    """

    try:
        if not isinstance(request, Request):
            request = parse_request(request)
        response = request.execute(context)
    except (SalesbookError, ValueError) as error:
        log.warning("Request %s failed: %s", getattr(request, "operation", "?"), error)
        return Response(success=False, message=str(error), error=error)
    log.debug("Request %s succeeded", request.operation)
    return response


def to_plain(value: Any) -> Any:
    """Convert response data into JSON-friendly builtins."""

    if is_dataclass(value) and not isinstance(value, type):
        return {item.name: to_plain(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): to_plain(item) for key, item in value.items()}
    if isinstance(value, Decimal):
        return format(value.normalize(), "f") if value == value.to_integral_value() else str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


__all__ = ["Response", "Request", "REQUEST_TYPES", "parse_request", "handle", "to_plain"]
