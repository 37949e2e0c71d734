"""Record codec for the salesbook workbook.

Each sheet stores one entity type as fixed-position columns. This module owns
the typed row dataclasses and the functions that convert them to and from the
raw cell tuples produced by ``openpyxl``. Decoding never raises: missing or
malformed cells coerce to neutral values so a hand-edited workbook cannot
break a read. Encoding always produces the full column tuple in schema order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Generic, Mapping, Sequence, TypeVar, Union

from .constants import DEFAULT_REORDER_LEVEL, InvoiceStatus, MovementType, PaymentMethod, SheetName


Key = Union[str, tuple[str, ...]]
RecordT = TypeVar("RecordT")

ZERO = Decimal("0")
_TRUE_STRINGS = frozenset({"true", "yes", "y", "1"})


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    name: str
    quantity: Decimal
    buy_price: Decimal
    sale_price: Decimal
    reorder_level: Decimal = DEFAULT_REORDER_LEVEL
    category: str = ""
    sku: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class CustomerRow:
    """In-memory view of a row from the ``Customers`` sheet."""

    name: str
    phone: str = ""
    email: str = ""
    address: str = ""


@dataclass(frozen=True)
class SaleRow:
    """One invoice line item stored on the ``Sales`` sheet."""

    date: str
    invoice_id: str
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    profit: Decimal


@dataclass(frozen=True)
class InvoiceRow:
    """Invoice header from the ``Invoices`` sheet.

    ``items`` is never written to disk; it is resolved by joining the
    ``Sales`` sheet on ``invoice_id`` when the workbook is read.
    """

    invoice_id: str
    date: str
    customer_name: str
    total_amount: Decimal
    total_profit: Decimal
    status: str = InvoiceStatus.PENDING.value
    items: tuple[SaleRow, ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class MovementRow:
    """Inventory movement from the ``Inventory`` sheet.

    ``balance_after`` is derived by the balance tracker at write time and is
    never taken from user input.
    """

    date: str
    product_name: str
    movement_type: str
    quantity: Decimal
    reference: str = ""
    notes: str = ""
    balance_after: Decimal = ZERO


@dataclass(frozen=True)
class PaymentRow:
    """Payment settled against an invoice, from the ``Payments`` sheet."""

    payment_id: str
    invoice_id: str
    date: str
    amount: Decimal
    method: str = PaymentMethod.CASH.value
    notes: str = ""


@dataclass(frozen=True)
class AccountRow:
    """Chart-of-accounts entry from the ``Accounts`` sheet."""

    code: str
    name: str
    account_type: str
    parent_code: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class JournalLineRow:
    """One debit/credit line of a journal entry on the ``Journal`` sheet."""

    entry_id: str
    date: str
    description: str
    reference: str
    line_number: int
    account_code: str
    debit: Decimal
    credit: Decimal


# ---------------------------------------------------------------------------
# Cell coercion
# ---------------------------------------------------------------------------


def to_number(value: object) -> Decimal:
    """Coerce a raw cell value into a :class:`~decimal.Decimal`.

    Args:
        value (object): Cell value as returned by ``openpyxl``.

    Returns:
        Decimal: The numeric value, or ``Decimal("0")`` when the cell is
            empty, boolean, non-numeric or not finite.
    """

    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    return number if number.is_finite() else ZERO


def to_text(value: object, default: str = "") -> str:
    """Coerce a raw cell value into text, defaulting when the cell is empty.

    Integral floats lose their trailing ``.0`` and dates render as ISO-8601
    so values Excel re-typed on its own still compare equal to the keys the
    application wrote.
    """

    if value is None:
        return default
    if isinstance(value, datetime):
        if value.time() == time():
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value)
    return text if text != "" else default


def to_bool(value: object, default: bool = True) -> bool:
    """Coerce a raw cell value into a flag, using ``default`` for empty cells."""

    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    return str(value).strip().lower() in _TRUE_STRINGS


def _pad(raw_row: Sequence[object], width: int) -> list[object]:
    cells = list(raw_row[:width])
    cells.extend([None] * (width - len(cells)))
    return cells


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the worksheet column ordering.

    Args:
        record (ProductRow): Structured product data to transform.

    Returns:
        list[object]: Values arranged as ``[ProductName, Quantity, BuyPrice,
        SalePrice, ReorderLevel, Category, SKU, IsActive]``.
    """

    return [
        record.name,
        record.quantity,
        record.buy_price,
        record.sale_price,
        record.reorder_level,
        record.category,
        record.sku,
        record.is_active,
    ]


def serialize_customer(record: CustomerRow) -> list[object]:
    return [record.name, record.phone, record.email, record.address]


def serialize_sale(record: SaleRow) -> list[object]:
    return [
        record.date,
        record.invoice_id,
        record.product_name,
        record.quantity,
        record.unit_price,
        record.total,
        record.profit,
    ]


def serialize_invoice(record: InvoiceRow) -> list[object]:
    """Convert an invoice header into its worksheet row; line items are excluded."""

    return [
        record.invoice_id,
        record.date,
        record.customer_name,
        record.total_amount,
        record.total_profit,
        record.status,
    ]


def serialize_movement(record: MovementRow) -> list[object]:
    return [
        record.date,
        record.product_name,
        record.movement_type,
        record.quantity,
        record.reference,
        record.notes,
        record.balance_after,
    ]


def serialize_payment(record: PaymentRow) -> list[object]:
    return [
        record.payment_id,
        record.invoice_id,
        record.date,
        record.amount,
        record.method,
        record.notes,
    ]


def serialize_account(record: AccountRow) -> list[object]:
    return [record.code, record.name, record.account_type, record.parent_code, record.is_active]


def serialize_journal_line(record: JournalLineRow) -> list[object]:
    return [
        record.entry_id,
        record.date,
        record.description,
        record.reference,
        record.line_number,
        record.account_code,
        record.debit,
        record.credit,
    ]


# ---------------------------------------------------------------------------
# Deserializers
# ---------------------------------------------------------------------------


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    An empty ``ReorderLevel`` falls back to the default threshold and an empty
    ``IsActive`` cell reads as active, so workbooks written before those
    columns existed keep working.

    Args:
        raw_row (Sequence[object]): Raw cell values from the worksheet row.

    Returns:
        ProductRow: Dataclass containing consistent Python representations of
            the row contents.
    """

    name, quantity, buy_price, sale_price, reorder_level, category, sku, is_active = _pad(raw_row, 8)
    return ProductRow(
        name=to_text(name),
        quantity=to_number(quantity),
        buy_price=to_number(buy_price),
        sale_price=to_number(sale_price),
        reorder_level=DEFAULT_REORDER_LEVEL if reorder_level in (None, "") else to_number(reorder_level),
        category=to_text(category),
        sku=to_text(sku),
        is_active=to_bool(is_active, default=True),
    )


def deserialize_customer(raw_row: Sequence[object]) -> CustomerRow:
    name, phone, email, address = _pad(raw_row, 4)
    return CustomerRow(name=to_text(name), phone=to_text(phone), email=to_text(email), address=to_text(address))


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    sale_date, invoice_id, product_name, quantity, unit_price, total, profit = _pad(raw_row, 7)
    return SaleRow(
        date=to_text(sale_date),
        invoice_id=to_text(invoice_id),
        product_name=to_text(product_name),
        quantity=to_number(quantity),
        unit_price=to_number(unit_price),
        total=to_number(total),
        profit=to_number(profit),
    )


def deserialize_invoice(raw_row: Sequence[object]) -> InvoiceRow:
    """Convert a raw worksheet row into an invoice header without line items.

    An empty status reads as ``Pending``; callers attach ``items`` afterwards
    with :func:`attach_items`.
    """

    invoice_id, invoice_date, customer_name, total_amount, total_profit, status = _pad(raw_row, 6)
    return InvoiceRow(
        invoice_id=to_text(invoice_id),
        date=to_text(invoice_date),
        customer_name=to_text(customer_name),
        total_amount=to_number(total_amount),
        total_profit=to_number(total_profit),
        status=to_text(status, default=InvoiceStatus.PENDING.value),
    )


def deserialize_movement(raw_row: Sequence[object]) -> MovementRow:
    movement_date, product_name, movement_type, quantity, reference, notes, balance_after = _pad(raw_row, 7)
    return MovementRow(
        date=to_text(movement_date),
        product_name=to_text(product_name),
        movement_type=to_text(movement_type, default=MovementType.ADJUSTMENT.value),
        quantity=to_number(quantity),
        reference=to_text(reference),
        notes=to_text(notes),
        balance_after=to_number(balance_after),
    )


def deserialize_payment(raw_row: Sequence[object]) -> PaymentRow:
    payment_id, invoice_id, payment_date, amount, method, notes = _pad(raw_row, 6)
    return PaymentRow(
        payment_id=to_text(payment_id),
        invoice_id=to_text(invoice_id),
        date=to_text(payment_date),
        amount=to_number(amount),
        method=to_text(method, default=PaymentMethod.CASH.value),
        notes=to_text(notes),
    )


def deserialize_account(raw_row: Sequence[object]) -> AccountRow:
    code, name, account_type, parent_code, is_active = _pad(raw_row, 5)
    return AccountRow(
        code=to_text(code),
        name=to_text(name),
        account_type=to_text(account_type),
        parent_code=to_text(parent_code),
        is_active=to_bool(is_active, default=False),
    )


def deserialize_journal_line(raw_row: Sequence[object]) -> JournalLineRow:
    entry_id, entry_date, description, reference, line_number, account_code, debit, credit = _pad(raw_row, 8)
    return JournalLineRow(
        entry_id=to_text(entry_id),
        date=to_text(entry_date),
        description=to_text(description),
        reference=to_text(reference),
        line_number=int(to_number(line_number)),
        account_code=to_text(account_code),
        debit=to_number(debit),
        credit=to_number(credit),
    )


def attach_items(invoice: InvoiceRow, sales: Sequence[SaleRow]) -> InvoiceRow:
    """Return ``invoice`` with the sale lines whose ``invoice_id`` matches it."""

    items = tuple(sale for sale in sales if sale.invoice_id == invoice.invoice_id)
    return InvoiceRow(
        invoice_id=invoice.invoice_id,
        date=invoice.date,
        customer_name=invoice.customer_name,
        total_amount=invoice.total_amount,
        total_profit=invoice.total_profit,
        status=invoice.status,
        items=items,
    )


# ---------------------------------------------------------------------------
# Sheet schema
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SheetCodec(Generic[RecordT]):
    """Bind one sheet's column layout to its record encoder and decoder.

    ``key_columns`` are the 1-based columns forming the natural key; rows whose
    ``required_columns`` are empty are skipped when reading.
    """

    sheet: SheetName
    columns: tuple[str, ...]
    widths: tuple[int, ...]
    key_columns: tuple[int, ...]
    required_columns: tuple[int, ...]
    encode: Callable[[Any], list[object]]
    decode: Callable[[Sequence[object]], Any]
    key: Callable[[Any], Key]
    unique_keys: bool = True

    @property
    def sheet_name(self) -> str:
        return self.sheet.value

    @property
    def width(self) -> int:
        return len(self.columns)

    def key_of_row(self, raw_row: Sequence[object]) -> Key:
        """Return the natural key stored in ``raw_row`` as text."""

        cells = _pad(raw_row, self.width)
        parts = tuple(to_text(cells[column - 1]) for column in self.key_columns)
        return parts[0] if len(parts) == 1 else parts

    def is_blank(self, raw_row: Sequence[object]) -> bool:
        cells = _pad(raw_row, self.width)
        return any(to_text(cells[column - 1]) == "" for column in self.required_columns)


PRODUCTS_CODEC: SheetCodec[ProductRow] = SheetCodec(
    sheet=SheetName.PRODUCTS,
    columns=("ProductName", "Quantity", "BuyPrice", "SalePrice", "ReorderLevel", "Category", "SKU", "IsActive"),
    widths=(25, 12, 12, 12, 15, 18, 15, 10),
    key_columns=(1,),
    required_columns=(1,),
    encode=serialize_product,
    decode=deserialize_product,
    key=lambda record: record.name,
)

CUSTOMERS_CODEC: SheetCodec[CustomerRow] = SheetCodec(
    sheet=SheetName.CUSTOMERS,
    columns=("CustomerName", "Phone", "Email", "Address"),
    widths=(25, 15, 25, 35),
    key_columns=(1,),
    required_columns=(1,),
    encode=serialize_customer,
    decode=deserialize_customer,
    key=lambda record: record.name,
)

SALES_CODEC: SheetCodec[SaleRow] = SheetCodec(
    sheet=SheetName.SALES,
    columns=("Date", "InvoiceID", "ProductName", "Quantity", "UnitPrice", "Total", "Profit"),
    widths=(12, 15, 25, 12, 12, 12, 12),
    key_columns=(2, 3),
    required_columns=(1, 2, 3),
    encode=serialize_sale,
    decode=deserialize_sale,
    key=lambda record: (record.invoice_id, record.product_name),
)

INVOICES_CODEC: SheetCodec[InvoiceRow] = SheetCodec(
    sheet=SheetName.INVOICES,
    columns=("InvoiceID", "Date", "CustomerName", "TotalAmount", "TotalProfit", "Status"),
    widths=(15, 12, 25, 15, 15, 12),
    key_columns=(1,),
    required_columns=(1,),
    encode=serialize_invoice,
    decode=deserialize_invoice,
    key=lambda record: record.invoice_id,
)

INVENTORY_CODEC: SheetCodec[MovementRow] = SheetCodec(
    sheet=SheetName.INVENTORY,
    columns=("Date", "ProductName", "Type", "Quantity", "Reference", "Notes", "BalanceAfter"),
    widths=(12, 25, 12, 12, 20, 30, 15),
    key_columns=(1, 2),
    required_columns=(2,),
    encode=serialize_movement,
    decode=deserialize_movement,
    key=lambda record: (record.date, record.product_name),
    unique_keys=False,
)

PAYMENTS_CODEC: SheetCodec[PaymentRow] = SheetCodec(
    sheet=SheetName.PAYMENTS,
    columns=("PaymentID", "InvoiceID", "Date", "Amount", "Method", "Notes"),
    widths=(15, 15, 12, 12, 15, 30),
    key_columns=(1,),
    required_columns=(1,),
    encode=serialize_payment,
    decode=deserialize_payment,
    key=lambda record: record.payment_id,
)

ACCOUNTS_CODEC: SheetCodec[AccountRow] = SheetCodec(
    sheet=SheetName.ACCOUNTS,
    columns=("Code", "Name", "Type", "ParentCode", "IsActive"),
    widths=(12, 30, 12, 12, 10),
    key_columns=(1,),
    required_columns=(1,),
    encode=serialize_account,
    decode=deserialize_account,
    key=lambda record: record.code,
)

JOURNAL_CODEC: SheetCodec[JournalLineRow] = SheetCodec(
    sheet=SheetName.JOURNAL,
    columns=("EntryID", "Date", "Description", "Reference", "LineNumber", "AccountCode", "Debit", "Credit"),
    widths=(18, 12, 40, 18, 10, 14, 12, 12),
    key_columns=(1, 5),
    required_columns=(1,),
    encode=serialize_journal_line,
    decode=deserialize_journal_line,
    key=lambda record: (record.entry_id, str(record.line_number)),
)

CODECS: Mapping[SheetName, SheetCodec[Any]] = {
    codec.sheet: codec
    for codec in (
        PRODUCTS_CODEC,
        CUSTOMERS_CODEC,
        SALES_CODEC,
        INVOICES_CODEC,
        INVENTORY_CODEC,
        PAYMENTS_CODEC,
        ACCOUNTS_CODEC,
        JOURNAL_CODEC,
    )
}
