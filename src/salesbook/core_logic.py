"""Business logic layer for salesbook.

This module orchestrates every read and write against the workbook. Reads
are lenient and cached for a short TTL; writes validate their input, run
inside a single :meth:`~salesbook.workbook.WorkbookDocument.session` so each
operation persists exactly once, and invalidate the cached reads that
depend on the sheets they touched.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Hashable, List, Optional

from . import data_manager, log
from .balance import apply_movement, coerce_movement_type, opening_balance, replay_balances
from .codec import (
    CUSTOMERS_CODEC,
    INVENTORY_CODEC,
    INVOICES_CODEC,
    PAYMENTS_CODEC,
    PRODUCTS_CODEC,
    SALES_CODEC,
    CustomerRow,
    InvoiceRow,
    MovementRow,
    PaymentRow,
    ProductRow,
    SaleRow,
    attach_items,
)
from .constants import EXPECTED_SCHEMA_VERSION, InvoiceStatus, MovementType, PaymentMethod, SheetName
from .errors import BusinessRuleViolation, DuplicateKeyError, NotFoundError
from .persistence import BackupInfo
from .repository import SheetRepository, read_sheet
from .runtime import Debouncer, ReadCache
from .workbook import WorkbookDocument


ZERO = Decimal("0")


@dataclass(frozen=True)
class RuntimeContext:
    """Application-root state shared by every operation.

    Created once by :func:`load_runtime_context` and torn down by
    :func:`close_runtime_context`.
    """

    settings: data_manager.ConfigSettings
    document: WorkbookDocument
    cache: ReadCache = field(repr=False, compare=False)
    debouncer: Debouncer = field(repr=False, compare=False)


@dataclass(frozen=True)
class WorkbookData:
    """Snapshot of every entity sheet, with invoice items already joined."""

    products: tuple[ProductRow, ...]
    customers: tuple[CustomerRow, ...]
    sales: tuple[SaleRow, ...]
    invoices: tuple[InvoiceRow, ...]
    inventory: tuple[MovementRow, ...]
    payments: tuple[PaymentRow, ...]


@dataclass(frozen=True)
class InvoiceLine:
    """One requested line of a new invoice."""

    product_name: str
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class InvoiceCommand:
    """User intent for saving a new invoice with its sale lines."""

    invoice_id: str
    customer_name: str
    lines: tuple[InvoiceLine, ...]
    date: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class MovementCommand:
    """User intent for recording an inventory movement.

    For ``ADJUSTMENT`` the quantity is the target stock level.
    """

    product_name: str
    movement_type: str
    quantity: Decimal
    date: Optional[str] = None
    reference: str = ""
    notes: str = ""


@dataclass(frozen=True)
class PaymentCommand:
    """User intent for settling (part of) an invoice."""

    invoice_id: str
    amount: Decimal
    method: str = PaymentMethod.CASH.value
    payment_id: Optional[str] = None
    date: Optional[str] = None
    notes: str = ""


@dataclass(frozen=True)
class PaymentReceipt:
    """Result of :func:`add_payment`: the stored payment and the new invoice status."""

    payment: PaymentRow
    invoice_status: str
    total_paid: Decimal


_ENTITY_SHEETS = (
    SheetName.PRODUCTS,
    SheetName.CUSTOMERS,
    SheetName.SALES,
    SheetName.INVOICES,
    SheetName.INVENTORY,
    SheetName.PAYMENTS,
)


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration and prepare the workbook document.

    The helper resolves ``config.ini``, parses settings, guarantees the
    workbook exists with every expected sheet, and builds the read cache and
    debouncer from the configured timings.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
        IOFailure: If the workbook cannot be created or read.
        SerializationFailure: If the workbook file is malformed.
    """

    settings = data_manager.load_settings(config_path)
    document = WorkbookDocument(settings.data_file, retention=settings.backup_retention)
    document.ensure()
    context = RuntimeContext(
        settings=settings,
        document=document,
        cache=ReadCache(settings.cache_ttl_seconds),
        debouncer=Debouncer(settings.debounce_seconds),
    )
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return context


def close_runtime_context(context: RuntimeContext, *, flush: bool = True) -> None:
    """Tear down runtime state at shutdown.

    Pending debounced calls run immediately when ``flush`` is true and are
    cancelled otherwise. The read cache is cleared either way.
    """

    if flush:
        context.debouncer.flush()
    else:
        cancelled = context.debouncer.cancel_all()
        if cancelled:
            log.warning("Cancelled %d pending debounced call(s) at shutdown", cancelled)
    context.cache.clear()
    log.info("Closed runtime context for workbook '%s'", context.settings.data_file)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def debounce(context: RuntimeContext, key: Hashable, operation: Callable[..., Any], *args: Any, **kwargs: Any):
    """Schedule ``operation(context, *args, **kwargs)`` through the debouncer.

    Rapid repeated calls sharing ``key`` collapse into the last one; earlier
    futures are cancelled.
    """

    return context.debouncer.submit(key, operation, context, *args, **kwargs)


def _invalidate_cache(context: RuntimeContext, *sheets: SheetName) -> None:
    """Evict cached reads that depend on any of ``sheets`` after a write."""

    if not sheets:
        return
    context.cache.invalidate_sheets(*(sheet.value for sheet in sheets))


def _resolve_date(candidate: Optional[str]) -> str:
    """Return ``candidate`` or today's UTC date in ISO-8601 form."""

    if candidate:
        return candidate
    return datetime.now(UTC).date().isoformat()


def generate_id(prefix: str, *, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier such as ``PAY20261017093000123456``.

    Args:
        prefix (str): Designator prepended to the timestamp.
        when (datetime | None): Timestamp to encode; defaults to now in UTC.

    Returns:
        str: ``{prefix}{YYYYMMDDHHMMSSffffff}``.
    """

    when = when or datetime.now(UTC)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def require_text(value: str, field_name: str) -> None:
    if not value or not value.strip():
        log.error("Validation failed: %s is empty", field_name)
        raise ValueError(f"{field_name} is required")


def require_positive_quantity(quantity: Decimal) -> None:
    """Validate that a quantity is strictly positive.

    Raises:
        ValueError: If ``quantity`` is zero or negative.
    """

    if quantity <= ZERO:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be greater than zero")


def require_nonnegative_quantity(quantity: Decimal) -> None:
    if quantity < ZERO:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity cannot be negative")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """

    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def coerce_invoice_status(status: str) -> InvoiceStatus:
    """Return ``status`` as an :class:`InvoiceStatus` member.

    Raises:
        BusinessRuleViolation: If ``status`` is not a known invoice status.
    """

    try:
        return InvoiceStatus(status)
    except ValueError as exc:
        log.error("Unsupported invoice status provided: %s", status)
        raise BusinessRuleViolation(f"Unsupported invoice status: {status}") from exc


def validate_product(product: ProductRow) -> None:
    require_text(product.name, "Product name")
    require_nonnegative_quantity(product.quantity)
    require_nonnegative_money(product.buy_price)
    require_nonnegative_money(product.sale_price)
    require_nonnegative_quantity(product.reorder_level)


def validate_customer(customer: CustomerRow) -> None:
    require_text(customer.name, "Customer name")


def payment_status(invoice_total: Decimal, total_paid: Decimal) -> InvoiceStatus:
    """Derive an invoice status from how much of it has been paid."""

    if total_paid >= invoice_total:
        return InvoiceStatus.PAID
    if total_paid > ZERO:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def read_all(context: RuntimeContext) -> WorkbookData:
    """Return a snapshot of every entity sheet.

    Missing sheets read as empty. The snapshot is cached for the configured
    TTL and invalidated by any write to the sheets it covers.
    """

    def load() -> WorkbookData:
        workbook = context.document.load()
        sales = tuple(read_sheet(workbook, SALES_CODEC))
        invoices = tuple(attach_items(invoice, sales) for invoice in read_sheet(workbook, INVOICES_CODEC))
        data = WorkbookData(
            products=tuple(read_sheet(workbook, PRODUCTS_CODEC)),
            customers=tuple(read_sheet(workbook, CUSTOMERS_CODEC)),
            sales=sales,
            invoices=invoices,
            inventory=tuple(read_sheet(workbook, INVENTORY_CODEC)),
            payments=tuple(read_sheet(workbook, PAYMENTS_CODEC)),
        )
        log.debug(
            "Read workbook: %d products, %d customers, %d invoices",
            len(data.products),
            len(data.customers),
            len(data.invoices),
        )
        return data

    return context.cache.get_or_load(("read_all",), load, sheets=[sheet.value for sheet in _ENTITY_SHEETS])


def list_products(context: RuntimeContext, *, include_inactive: bool = False) -> List[ProductRow]:
    """Return product rows, optionally including deactivated ones."""

    products = read_all(context).products
    if include_inactive:
        return list(products)
    return [product for product in products if product.is_active]


def get_product(context: RuntimeContext, name: str) -> ProductRow:
    """Return the product called ``name``, active or not.

    Raises:
        NotFoundError: If no product has that exact name.
    """

    for product in read_all(context).products:
        if product.name == name:
            return product
    log.warning("Product lookup failed for name '%s'", name)
    raise NotFoundError(f'Product "{name}" not found')


def list_customers(context: RuntimeContext) -> List[CustomerRow]:
    return list(read_all(context).customers)


def get_customer(context: RuntimeContext, name: str) -> CustomerRow:
    for customer in read_all(context).customers:
        if customer.name == name:
            return customer
    log.warning("Customer lookup failed for name '%s'", name)
    raise NotFoundError(f'Customer "{name}" not found')


def list_invoices(context: RuntimeContext, *, customer_name: Optional[str] = None) -> List[InvoiceRow]:
    invoices = read_all(context).invoices
    if customer_name is None:
        return list(invoices)
    return [invoice for invoice in invoices if invoice.customer_name == customer_name]


def get_invoice(context: RuntimeContext, invoice_id: str) -> InvoiceRow:
    """Return the invoice ``invoice_id`` with its sale lines attached.

    Raises:
        NotFoundError: If no invoice has that id.
    """

    for invoice in read_all(context).invoices:
        if invoice.invoice_id == invoice_id:
            return invoice
    log.warning("Invoice lookup failed for id '%s'", invoice_id)
    raise NotFoundError(f'Invoice "{invoice_id}" not found')


def payments_for_invoice(context: RuntimeContext, invoice_id: str) -> List[PaymentRow]:
    return [payment for payment in read_all(context).payments if payment.invoice_id == invoice_id]


def low_stock_products(context: RuntimeContext) -> List[ProductRow]:
    """Return active products whose quantity is at or below their reorder level."""

    return [product for product in list_products(context) if product.quantity <= product.reorder_level]


def movement_history(context: RuntimeContext, product_name: Optional[str] = None) -> List[MovementRow]:
    """Return inventory movements in sheet order, optionally for one product."""

    movements = read_all(context).inventory
    if product_name is None:
        return list(movements)
    return [movement for movement in movements if movement.product_name == product_name]


def reconcile_movements(context: RuntimeContext, product_name: str) -> List[MovementRow]:
    """Return movements of ``product_name`` whose stored balance disagrees with a replay.

    The replay starts from the balance before the first movement, so an empty
    list means every ``BalanceAfter`` cell follows from the one before it.
    """

    history = movement_history(context, product_name)
    if not history:
        return []
    first = history[0]
    start = opening_balance(first.movement_type, first.quantity, first.balance_after)
    expected = replay_balances(start, [(movement.movement_type, movement.quantity) for movement in history])
    mismatched = [movement for movement, balance in zip(history, expected) if movement.balance_after != balance]
    if mismatched:
        log.warning("%d movement(s) of '%s' do not reconcile", len(mismatched), product_name)
    return mismatched


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def add_product(context: RuntimeContext, product: ProductRow) -> ProductRow:
    """Validate and append a new product.

    Raises:
        ValueError: When the name is empty or a number is negative.
        DuplicateKeyError: If a product with the same name exists.
    """

    validate_product(product)
    with context.document.session() as workbook:
        context.document.repository(workbook, SheetName.PRODUCTS).add(product)
    _invalidate_cache(context, SheetName.PRODUCTS)
    log.info("Added product '%s' (quantity=%s)", product.name, product.quantity)
    return product


def update_product(
    context: RuntimeContext, old_name: str, product: ProductRow, *, keep_active: bool = False
) -> ProductRow:
    """Replace the product called ``old_name`` with ``product``.

    ``product.name`` may differ from ``old_name`` to rename the product, as
    long as the new name is not already taken. With ``keep_active`` the stored
    row's ``is_active`` flag wins over the one on ``product``.

    Raises:
        NotFoundError: If ``old_name`` does not exist.
        DuplicateKeyError: If renaming onto an existing product.
    """

    validate_product(product)
    with context.document.session() as workbook:
        products = context.document.repository(workbook, SheetName.PRODUCTS)
        if product.name != old_name and products.exists(product.name):
            raise DuplicateKeyError(f'Product "{product.name}" already exists')
        if keep_active:
            product = replace(product, is_active=products.find(old_name).is_active)
        products.update(old_name, product)
    _invalidate_cache(context, SheetName.PRODUCTS)
    log.info("Updated product '%s'", old_name)
    return product


def delete_product(context: RuntimeContext, name: str) -> None:
    """Physically remove the product row called ``name``."""

    with context.document.session() as workbook:
        context.document.repository(workbook, SheetName.PRODUCTS).delete(name)
    _invalidate_cache(context, SheetName.PRODUCTS)
    log.info("Deleted product '%s'", name)


def deactivate_product(context: RuntimeContext, name: str) -> ProductRow:
    """Hide a product from active listings without removing its row."""

    return _set_product_active(context, name, False)


def restore_product(context: RuntimeContext, name: str) -> ProductRow:
    return _set_product_active(context, name, True)


def _set_product_active(context: RuntimeContext, name: str, active: bool) -> ProductRow:
    with context.document.session() as workbook:
        products = context.document.repository(workbook, SheetName.PRODUCTS)
        updated = replace(products.find(name), is_active=active)
        products.update(name, updated)
    _invalidate_cache(context, SheetName.PRODUCTS)
    log.info("%s product '%s'", "Restored" if active else "Deactivated", name)
    return updated


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


def add_customer(context: RuntimeContext, customer: CustomerRow) -> CustomerRow:
    validate_customer(customer)
    with context.document.session() as workbook:
        context.document.repository(workbook, SheetName.CUSTOMERS).add(customer)
    _invalidate_cache(context, SheetName.CUSTOMERS)
    log.info("Added customer '%s'", customer.name)
    return customer


def update_customer(context: RuntimeContext, old_name: str, customer: CustomerRow) -> CustomerRow:
    """Replace the customer called ``old_name``; renames are allowed.

    Invoices keep the name they were saved with.
    """

    validate_customer(customer)
    with context.document.session() as workbook:
        customers = context.document.repository(workbook, SheetName.CUSTOMERS)
        if customer.name != old_name and customers.exists(customer.name):
            raise DuplicateKeyError(f'Customer "{customer.name}" already exists')
        customers.update(old_name, customer)
    _invalidate_cache(context, SheetName.CUSTOMERS)
    log.info("Updated customer '%s'", old_name)
    return customer


def delete_customer(context: RuntimeContext, name: str) -> None:
    """Physically remove the customer row called ``name``."""

    with context.document.session() as workbook:
        context.document.repository(workbook, SheetName.CUSTOMERS).delete(name)
    _invalidate_cache(context, SheetName.CUSTOMERS)
    log.info("Deleted customer '%s'", name)


def anonymize_customer(
    context: RuntimeContext,
    name: str,
    *,
    reason: str = "",
    performed_by: str = "",
    when: Optional[datetime] = None,
) -> CustomerRow:
    """Erase a customer's personal data in place.

    The row survives so historical invoices still resolve, but every personal
    field is overwritten with a placeholder derived from the erasure time.

    Args:
        context (RuntimeContext): Active runtime context.
        name (str): Exact name of the customer to anonymize.
        reason (str): Free-text justification recorded in the log.
        performed_by (str): Operator recorded in the log.
        when (datetime | None): Erasure time; defaults to now in UTC.

    Returns:
        CustomerRow: The anonymized record as stored.

    Raises:
        NotFoundError: If no customer has that name.
    """

    when = when or datetime.now(UTC)
    stamp = int(when.timestamp() * 1000)
    anonymized = CustomerRow(
        name=f"[DELETED-{stamp}]",
        phone="[DELETED]",
        email=f"deleted-{stamp}@anonymized.local",
        address="[DELETED]",
    )
    with context.document.session() as workbook:
        context.document.repository(workbook, SheetName.CUSTOMERS).update(name, anonymized)
    _invalidate_cache(context, SheetName.CUSTOMERS)
    log.info(
        "GDPR erasure of customer '%s' as '%s' by '%s' (reason: %s)",
        name,
        anonymized.name,
        performed_by or "unknown",
        reason or "not given",
    )
    return anonymized


# ---------------------------------------------------------------------------
# Invoices and sales
# ---------------------------------------------------------------------------


def save_invoice(context: RuntimeContext, command: InvoiceCommand) -> InvoiceRow:
    """Record an invoice, its sale lines and the resulting stock deductions.

    Line totals are ``quantity * unit_price`` and line profit is
    ``quantity * (unit_price - buy_price)`` using each product's current buy
    price. The invoice totals are the sums over its lines. All three sheets
    are written in one persisted session; any failure writes nothing.

    Args:
        context (RuntimeContext): Active runtime context.
        command (InvoiceCommand): Invoice header and requested lines.

    Returns:
        InvoiceRow: The stored invoice with its ``items`` attached.

    Raises:
        ValueError: When required fields are empty or quantities and prices
            are out of range.
        BusinessRuleViolation: If the invoice has no lines, repeats a product,
            references an inactive product or carries an unknown status.
        NotFoundError: If a line references an unknown product.
        DuplicateKeyError: If the invoice id is already used.
    """

    require_text(command.invoice_id, "Invoice id")
    require_text(command.customer_name, "Customer name")
    if not command.lines:
        log.error("Invoice '%s' has no lines", command.invoice_id)
        raise BusinessRuleViolation("Invoice must contain at least one line")
    seen: set[str] = set()
    for line in command.lines:
        require_text(line.product_name, "Product name")
        require_positive_quantity(line.quantity)
        require_nonnegative_money(line.unit_price)
        if line.product_name in seen:
            raise BusinessRuleViolation(f'Product "{line.product_name}" appears more than once on the invoice')
        seen.add(line.product_name)
    status = coerce_invoice_status(command.status or context.settings.default_invoice_status)
    invoice_date = _resolve_date(command.date)

    with context.document.session() as workbook:
        products = context.document.repository(workbook, SheetName.PRODUCTS)
        sales = context.document.repository(workbook, SheetName.SALES)
        invoices = context.document.repository(workbook, SheetName.INVOICES)

        items: List[SaleRow] = []
        for line in command.lines:
            product = products.find(line.product_name)
            if not product.is_active:
                log.warning("Attempted sale on inactive product '%s'", product.name)
                raise BusinessRuleViolation(f'Product "{product.name}" is inactive')
            items.append(
                SaleRow(
                    date=invoice_date,
                    invoice_id=command.invoice_id,
                    product_name=product.name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total=line.quantity * line.unit_price,
                    profit=line.quantity * (line.unit_price - product.buy_price),
                )
            )

        invoice = InvoiceRow(
            invoice_id=command.invoice_id,
            date=invoice_date,
            customer_name=command.customer_name,
            total_amount=sum((item.total for item in items), ZERO),
            total_profit=sum((item.profit for item in items), ZERO),
            status=status.value,
        )
        invoices.add(invoice)
        for item in items:
            sales.add(item)
            _adjust_stock(products, item.product_name, -item.quantity)

    _invalidate_cache(context, SheetName.INVOICES, SheetName.SALES, SheetName.PRODUCTS)
    log.info(
        "Saved invoice '%s' for '%s' (%d lines, total=%s, profit=%s)",
        invoice.invoice_id,
        invoice.customer_name,
        len(items),
        invoice.total_amount,
        invoice.total_profit,
    )
    return attach_items(invoice, items)


def update_invoice_status(context: RuntimeContext, invoice_id: str, status: str) -> InvoiceRow:
    """Change only the status of a saved invoice.

    Raises:
        BusinessRuleViolation: If ``status`` is not a known invoice status.
        NotFoundError: If the invoice does not exist.
    """

    new_status = coerce_invoice_status(status)
    with context.document.session() as workbook:
        invoices = context.document.repository(workbook, SheetName.INVOICES)
        updated = replace(invoices.find(invoice_id), status=new_status.value)
        invoices.update(invoice_id, updated)
    _invalidate_cache(context, SheetName.INVOICES)
    log.info("Invoice '%s' status set to %s", invoice_id, new_status.value)
    return updated


def add_payment(context: RuntimeContext, command: PaymentCommand) -> PaymentReceipt:
    """Record a payment and recompute the paid status of its invoice.

    The invoice becomes ``Paid`` once payments reach its total, ``Partial``
    while some but not all is paid, and ``Pending`` otherwise.

    Raises:
        ValueError: When the amount is not positive.
        BusinessRuleViolation: If the method is unknown or the invoice is
            cancelled.
        NotFoundError: If the invoice does not exist.
        DuplicateKeyError: If the payment id is already used.
    """

    require_text(command.invoice_id, "Invoice id")
    if command.amount <= ZERO:
        log.error("Payment amount validation failed: %s", command.amount)
        raise ValueError("Payment amount must be greater than zero")
    try:
        method = PaymentMethod(command.method)
    except ValueError as exc:
        raise BusinessRuleViolation(f"Unsupported payment method: {command.method}") from exc

    payment = PaymentRow(
        payment_id=command.payment_id or generate_id("PAY"),
        invoice_id=command.invoice_id,
        date=_resolve_date(command.date),
        amount=command.amount,
        method=method.value,
        notes=command.notes,
    )

    with context.document.session() as workbook:
        invoices = context.document.repository(workbook, SheetName.INVOICES)
        payments = context.document.repository(workbook, SheetName.PAYMENTS)
        invoice = invoices.find(command.invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise BusinessRuleViolation(f'Invoice "{invoice.invoice_id}" is cancelled')
        payments.add(payment)
        total_paid = sum(
            (row.amount for row in payments.find_all() if row.invoice_id == invoice.invoice_id),
            ZERO,
        )
        status = payment_status(invoice.total_amount, total_paid)
        invoices.update(invoice.invoice_id, replace(invoice, status=status.value))

    _invalidate_cache(context, SheetName.PAYMENTS, SheetName.INVOICES)
    log.info(
        "Recorded payment '%s' of %s on invoice '%s'; status now %s",
        payment.payment_id,
        payment.amount,
        payment.invoice_id,
        status.value,
    )
    return PaymentReceipt(payment=payment, invoice_status=status.value, total_paid=total_paid)


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


def add_inventory_movement(context: RuntimeContext, command: MovementCommand) -> MovementRow:
    """Record a stock movement and apply its delta to the product.

    ``IN`` and ``OUT`` need a positive quantity. ``ADJUSTMENT`` takes the
    target stock level, which may be zero. The stored ``BalanceAfter`` is
    always computed, never taken from the caller.

    Returns:
        MovementRow: The stored movement.

    Raises:
        BusinessRuleViolation: If the movement type is unknown.
        ValueError: When the quantity is out of range.
        NotFoundError: If the product does not exist.
    """

    require_text(command.product_name, "Product name")
    kind = coerce_movement_type(command.movement_type)
    if kind is MovementType.ADJUSTMENT:
        require_nonnegative_quantity(command.quantity)
    else:
        require_positive_quantity(command.quantity)

    with context.document.session() as workbook:
        products = context.document.repository(workbook, SheetName.PRODUCTS)
        inventory = context.document.repository(workbook, SheetName.INVENTORY)
        product = products.find(command.product_name)
        delta, balance_after = apply_movement(kind, command.quantity, product.quantity)
        movement = MovementRow(
            date=_resolve_date(command.date),
            product_name=product.name,
            movement_type=kind.value,
            quantity=command.quantity,
            reference=command.reference,
            notes=command.notes,
            balance_after=balance_after,
        )
        inventory.add(movement)
        _adjust_stock(products, product.name, delta)

    _invalidate_cache(context, SheetName.INVENTORY, SheetName.PRODUCTS)
    log.info(
        "Recorded %s movement for '%s' (quantity=%s, delta=%s, balance=%s)",
        kind.value,
        product.name,
        command.quantity,
        delta,
        balance_after,
    )
    return movement


def _adjust_stock(products: SheetRepository, name: str, delta: Decimal) -> ProductRow:
    product = products.find(name)
    updated = replace(product, quantity=product.quantity + delta)
    if updated.quantity < ZERO:
        log.warning("Stock of '%s' is now negative (%s)", name, updated.quantity)
    products.update(name, updated)
    return updated


# ---------------------------------------------------------------------------
# Export and backups
# ---------------------------------------------------------------------------


def export_sheet(context: RuntimeContext, sheet_name: str, output_path: Path) -> Path:
    """Copy one sheet's values into a standalone workbook at ``output_path``."""

    return context.document.export_sheet(sheet_name, output_path)


def list_backups(context: RuntimeContext) -> List[BackupInfo]:
    return context.document.guard.list_backups()


def create_manual_backup(context: RuntimeContext) -> Path:
    return context.document.guard.create_manual_backup()


def restore_backup(context: RuntimeContext, backup_path: Path) -> None:
    """Replace the workbook with a backup and drop every cached read."""

    context.document.guard.restore_backup(Path(backup_path))
    context.cache.clear()


def delete_backup(context: RuntimeContext, backup_path: Path) -> None:
    context.document.guard.delete_backup(Path(backup_path))


__all__ = [
    "RuntimeContext",
    "WorkbookData",
    "InvoiceLine",
    "InvoiceCommand",
    "MovementCommand",
    "PaymentCommand",
    "PaymentReceipt",
    "load_runtime_context",
    "close_runtime_context",
    "ensure_schema_version",
    "debounce",
    "generate_id",
    "payment_status",
    "read_all",
    "list_products",
    "get_product",
    "list_customers",
    "get_customer",
    "list_invoices",
    "get_invoice",
    "payments_for_invoice",
    "low_stock_products",
    "movement_history",
    "reconcile_movements",
    "add_product",
    "update_product",
    "delete_product",
    "deactivate_product",
    "restore_product",
    "add_customer",
    "update_customer",
    "delete_customer",
    "anonymize_customer",
    "save_invoice",
    "update_invoice_status",
    "add_payment",
    "add_inventory_movement",
    "export_sheet",
    "list_backups",
    "create_manual_backup",
    "restore_backup",
    "delete_backup",
]
