"""Command-line entry points for salesbook.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into request payloads consumed by
:mod:`salesbook.handlers`. Keeping the CLI thin ensures the same parser
configuration can be reused by tests, scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, handlers, log
from .constants import AccountType, InvoiceStatus, MovementType, PaymentMethod, SheetName
from .errors import BusinessRuleViolation, DuplicateKeyError, NotFoundError, SheetNotFoundError


Payload = Dict[str, Any]
SubParsers = argparse._SubParsersAction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[SubParsers], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="salesbook",
        description="Command-line tools for the salesbook workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print result data as JSON after the status message.",
    )
    return parser


def configure_subcommands(parser: argparse.ArgumentParser) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "update-product": register_update_product_command(subparsers),
        "delete-product": name_only_spec("delete-product", "Physically delete a product row.", "delete_product"),
        "deactivate-product": name_only_spec("deactivate-product", "Hide a product from active listings.", "deactivate_product"),
        "restore-product": name_only_spec("restore-product", "Reactivate a deactivated product.", "restore_product"),
        "add-customer": register_add_customer_command(subparsers),
        "update-customer": register_update_customer_command(subparsers),
        "delete-customer": name_only_spec("delete-customer", "Physically delete a customer row.", "delete_customer"),
        "anonymize-customer": register_anonymize_customer_command(subparsers),
        "invoice": register_invoice_command(subparsers),
        "invoice-status": register_invoice_status_command(subparsers),
        "pay": register_pay_command(subparsers),
        "movement": register_movement_command(subparsers),
        "export": register_export_command(subparsers),
        "backup": simple_spec("backup", "Create a manual backup excluded from rotation.", "create_backup"),
        "restore-backup": path_spec("restore-backup", "Replace the workbook with a backup.", "restore_backup"),
        "delete-backup": path_spec("delete-backup", "Delete one backup file.", "delete_backup"),
        "add-account": register_add_account_command(subparsers),
        "update-account": register_update_account_command(subparsers),
        "journal": register_journal_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "products": register_products_command(subparsers),
        "low-stock": simple_spec("low-stock", "List products at or below their reorder level.", "low_stock_products"),
        "customers": simple_spec("customers", "List customers.", "list_customers"),
        "invoices": register_invoices_command(subparsers),
        "show-invoice": invoice_id_spec("show-invoice", "Show one invoice with its lines.", "get_invoice"),
        "payments": invoice_id_spec("payments", "List payments recorded against an invoice.", "payments_for_invoice"),
        "movements": register_movements_command(subparsers),
        "backups": simple_spec("backups", "List backups, newest first.", "list_backups"),
        "accounts": simple_spec("accounts", "List the chart of accounts.", "list_accounts"),
        "trial-balance": register_period_command("trial-balance", "Show the trial balance.", "trial_balance"),
        "income-statement": register_period_command("income-statement", "Show the income statement.", "income_statement"),
        "balance-sheet": register_balance_sheet_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Generic specs
# ---------------------------------------------------------------------------


def make_spec(
    name: str,
    help_text: str,
    configure: Callable[[argparse.ArgumentParser], None],
    translate: Callable[[argparse.Namespace], Payload],
) -> CommandSpec:
    """Bundle a parser configurator and a translator into a :class:`CommandSpec`."""

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        configure(parser)
        parser.set_defaults(command=name)
        return parser

    def execute(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
        return run_request(context, translate(args), as_json=getattr(args, "json", False))

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def simple_spec(name: str, help_text: str, operation: str) -> CommandSpec:
    """Spec for a command without arguments."""
    return make_spec(name, help_text, lambda parser: None, lambda args: {"operation": operation})


def name_only_spec(name: str, help_text: str, operation: str) -> CommandSpec:
    """Spec for a command taking a single ``--name``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)

    return make_spec(name, help_text, configure, lambda args: {"operation": operation, "name": args.name})


def path_spec(name: str, help_text: str, operation: str) -> CommandSpec:
    """Spec for a command taking a single backup ``--path``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--path", required=True)

    return make_spec(name, help_text, configure, lambda args: {"operation": operation, "path": args.path})


def invoice_id_spec(name: str, help_text: str, operation: str) -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--invoice-id", required=True)

    return make_spec(name, help_text, configure, lambda args: {"operation": operation, "invoice_id": args.invoice_id})


# ---------------------------------------------------------------------------
# Products and customers
# ---------------------------------------------------------------------------


def _add_product_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--quantity", required=True)
    parser.add_argument("--buy-price", required=True)
    parser.add_argument("--sale-price", required=True)
    parser.add_argument("--reorder-level", default=None)
    parser.add_argument("--category", default="")
    parser.add_argument("--sku", default="")
    parser.add_argument("--inactive", action="store_true", help="Mark the product as inactive.")


def translate_product(args: argparse.Namespace) -> Payload:
    """Translate CLI args into a product payload."""
    return {
        "operation": "add_product",
        "name": args.name,
        "quantity": args.quantity,
        "buy_price": args.buy_price,
        "sale_price": args.sale_price,
        "reorder_level": args.reorder_level,
        "category": args.category,
        "sku": args.sku,
        "is_active": not args.inactive,
    }


def register_add_product_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and translator for ``add-product``."""
    return make_spec("add-product", "Add a product to the Products sheet.", _add_product_arguments, translate_product)


def register_update_product_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and translator for ``update-product``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--old-name", required=True, help="Current name of the product to replace.")
        _add_product_arguments(parser)
        parser.add_argument("--active", action="store_true", help="Reactivate the product.")

    def translate(args: argparse.Namespace) -> Payload:
        is_active = False if args.inactive else (True if args.active else None)
        return {
            **translate_product(args),
            "operation": "update_product",
            "old_name": args.old_name,
            "is_active": is_active,
        }

    return make_spec("update-product", "Replace every field of a product.", configure, translate)


def register_products_command(subparsers: SubParsers) -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--all", action="store_true", help="Include deactivated products.")

    return make_spec(
        "products",
        "List products.",
        configure,
        lambda args: {"operation": "list_products", "include_inactive": args.all},
    )


def _add_customer_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--phone", default="")
    parser.add_argument("--email", default="")
    parser.add_argument("--address", default="")


def translate_customer(args: argparse.Namespace) -> Payload:
    """Translate CLI args into a customer payload."""
    return {
        "operation": "add_customer",
        "name": args.name,
        "phone": args.phone,
        "email": args.email,
        "address": args.address,
    }


def register_add_customer_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and translator for ``add-customer``."""
    return make_spec("add-customer", "Add a customer to the Customers sheet.", _add_customer_arguments, translate_customer)


def register_update_customer_command(subparsers: SubParsers) -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--old-name", required=True, help="Current name of the customer to replace.")
        _add_customer_arguments(parser)

    def translate(args: argparse.Namespace) -> Payload:
        return {**translate_customer(args), "operation": "update_customer", "old_name": args.old_name}

    return make_spec("update-customer", "Replace every field of a customer.", configure, translate)


def register_anonymize_customer_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and translator for ``anonymize-customer``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--reason", default="")
        parser.add_argument("--performed-by", default="")

    def translate(args: argparse.Namespace) -> Payload:
        return {
            "operation": "anonymize_customer",
            "name": args.name,
            "reason": args.reason,
            "performed_by": args.performed_by,
        }

    return make_spec("anonymize-customer", "Erase a customer's personal data in place.", configure, translate)


# ---------------------------------------------------------------------------
# Invoices, payments, inventory
# ---------------------------------------------------------------------------


def parse_invoice_line(raw: str) -> Payload:
    """Parse ``PRODUCT:QUANTITY:UNIT_PRICE``; the product name may contain colons."""
    parts = raw.rsplit(":", 2)
    if len(parts) != 3 or not parts[0]:
        raise argparse.ArgumentTypeError(f"Expected PRODUCT:QUANTITY:UNIT_PRICE, got {raw!r}")
    return {"product_name": parts[0], "quantity": parts[1], "unit_price": parts[2]}


def parse_journal_line(raw: str) -> Payload:
    """Parse ``ACCOUNT:DEBIT:CREDIT``."""
    parts = raw.split(":")
    if len(parts) != 3 or not parts[0]:
        raise argparse.ArgumentTypeError(f"Expected ACCOUNT:DEBIT:CREDIT, got {raw!r}")
    return {"account_code": parts[0], "debit": parts[1] or "0", "credit": parts[2] or "0"}


def register_invoice_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and translator for ``invoice``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--invoice-id", required=True)
        parser.add_argument("--customer", required=True)
        parser.add_argument("--date", default=None, help="ISO date; defaults to today.")
        parser.add_argument("--status", choices=[member.value for member in InvoiceStatus], default=None)
        parser.add_argument(
            "--line",
            dest="lines",
            action="append",
            type=parse_invoice_line,
            required=True,
            help="PRODUCT:QUANTITY:UNIT_PRICE (repeatable).",
        )

    def translate(args: argparse.Namespace) -> Payload:
        return {
            "operation": "save_invoice",
            "invoice_id": args.invoice_id,
            "customer_name": args.customer,
            "date": args.date,
            "status": args.status,
            "lines": args.lines,
        }

    return make_spec("invoice", "Save an invoice and deduct its stock.", configure, translate)


def register_invoice_status_command(subparsers: SubParsers) -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--invoice-id", required=True)
        parser.add_argument("--status", choices=[member.value for member in InvoiceStatus], required=True)

    def translate(args: argparse.Namespace) -> Payload:
        return {"operation": "update_invoice_status", "invoice_id": args.invoice_id, "status": args.status}

    return make_spec("invoice-status", "Change the status of an invoice.", configure, translate)


def register_invoices_command(subparsers: SubParsers) -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer", default=None)

    return make_spec(
        "invoices",
        "List invoices with their lines.",
        configure,
        lambda args: {"operation": "list_invoices", "customer_name": args.customer},
    )


def register_pay_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and translator for ``pay``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--invoice-id", required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument("--method", choices=[member.value for member in PaymentMethod], default=PaymentMethod.CASH.value)
        parser.add_argument("--payment-id", default=None)
        parser.add_argument("--date", default=None)
        parser.add_argument("--notes", default="")

    def translate(args: argparse.Namespace) -> Payload:
        return {
            "operation": "add_payment",
            "invoice_id": args.invoice_id,
            "amount": args.amount,
            "method": args.method,
            "payment_id": args.payment_id,
            "date": args.date,
            "notes": args.notes,
        }

    return make_spec("pay", "Record a payment against an invoice.", configure, translate)


def register_movement_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and translator for ``movement``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product", required=True)
        parser.add_argument("--type", dest="movement_type", choices=[member.value for member in MovementType], required=True)
        parser.add_argument("--quantity", required=True, help="Quantity moved, or the target level for ADJUSTMENT.")
        parser.add_argument("--date", default=None)
        parser.add_argument("--reference", default="")
        parser.add_argument("--notes", default="")

    def translate(args: argparse.Namespace) -> Payload:
        return {
            "operation": "add_inventory_movement",
            "product_name": args.product,
            "movement_type": args.movement_type,
            "quantity": args.quantity,
            "date": args.date,
            "reference": args.reference,
            "notes": args.notes,
        }

    return make_spec("movement", "Record a stock movement.", configure, translate)


def register_movements_command(subparsers: SubParsers) -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product", default=None)

    return make_spec(
        "movements",
        "List inventory movements.",
        configure,
        lambda args: {"operation": "movement_history", "product_name": args.product},
    )


def register_export_command(subparsers: SubParsers) -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--sheet", choices=[member.value for member in SheetName], required=True)
        parser.add_argument("--output", required=True)

    return make_spec(
        "export",
        "Copy one sheet into a standalone workbook.",
        configure,
        lambda args: {"operation": "export_sheet", "sheet_name": args.sheet, "output_path": args.output},
    )


# ---------------------------------------------------------------------------
# Accounting
# ---------------------------------------------------------------------------


def _add_account_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--code", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--type", dest="account_type", choices=[member.value for member in AccountType], required=True)
    parser.add_argument("--parent-code", default="")
    parser.add_argument("--inactive", action="store_true")


def translate_account(args: argparse.Namespace) -> Payload:
    return {
        "operation": "add_account",
        "code": args.code,
        "name": args.name,
        "account_type": args.account_type,
        "parent_code": args.parent_code,
        "is_active": not args.inactive,
    }


def register_add_account_command(subparsers: SubParsers) -> CommandSpec:
    return make_spec("add-account", "Add an account to the chart of accounts.", _add_account_arguments, translate_account)


def register_update_account_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and translator for ``update-account``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--old-code", required=True, help="Current code of the account to replace.")
        _add_account_arguments(parser)

    def translate(args: argparse.Namespace) -> Payload:
        return {**translate_account(args), "operation": "update_account", "old_code": args.old_code}

    return make_spec("update-account", "Replace an account in the chart of accounts.", configure, translate)


def register_journal_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and translator for ``journal``."""

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--description", required=True)
        parser.add_argument("--entry-id", default=None)
        parser.add_argument("--date", default=None)
        parser.add_argument("--reference", default="")
        parser.add_argument(
            "--line",
            dest="lines",
            action="append",
            type=parse_journal_line,
            required=True,
            help="ACCOUNT:DEBIT:CREDIT (repeatable).",
        )

    def translate(args: argparse.Namespace) -> Payload:
        return {
            "operation": "add_journal_entry",
            "description": args.description,
            "entry_id": args.entry_id,
            "date": args.date,
            "reference": args.reference,
            "lines": args.lines,
        }

    return make_spec("journal", "Record a balanced journal entry.", configure, translate)


def register_period_command(name: str, help_text: str, operation: str) -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--start", default=None, help="Inclusive ISO start date.")
        parser.add_argument("--end", default=None, help="Inclusive ISO end date.")

    return make_spec(
        name,
        help_text,
        configure,
        lambda args: {"operation": operation, "start_date": args.start, "end_date": args.end},
    )


def register_balance_sheet_command(subparsers: SubParsers) -> CommandSpec:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--as-of", default=None)

    return make_spec(
        "balance-sheet",
        "Show the balance sheet.",
        configure,
        lambda args: {"operation": "balance_sheet", "as_of": args.as_of},
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations and check its schema."""
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(specs: Iterable[CommandSpec]) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def run_request(context: core_logic.RuntimeContext, payload: Payload, *, as_json: bool = False) -> int:
    """Send ``payload`` through the request dispatcher and report the outcome."""
    cleaned = {key: value for key, value in payload.items() if value is not None}
    response = handlers.handle(context, cleaned)
    if not response.success:
        print(f"[ERROR] {response.message}")
        return handle_cli_error(response.error) if response.error is not None else 1
    print(response.message)
    if as_json and response.data is not None:
        print(json.dumps(handlers.to_plain(response.data), indent=2))
    return 0


def handle_cli_error(error: BaseException) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    log.error("%s", error)
    if isinstance(error, FileNotFoundError):
        return 3
    if isinstance(error, (NotFoundError, SheetNotFoundError)):
        return 4
    if isinstance(error, (BusinessRuleViolation, DuplicateKeyError, ValueError)):
        return 2
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    context: Optional[core_logic.RuntimeContext] = None
    try:
        context = load_runtime_context(getattr(args, "config", None))
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
    finally:
        if context is not None:
            core_logic.close_runtime_context(context)
