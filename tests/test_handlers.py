"""Tests for the typed request boundary."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import pytest

from salesbook import core_logic, handlers
from salesbook.errors import BusinessRuleViolation, InvalidRequestError, NotFoundError


def _add_widget(context, **overrides):
    payload = {
        "operation": "add_product",
        "name": "Widget",
        "quantity": 10,
        "buy_price": "5",
        "sale_price": 9.5,
    }
    payload.update(overrides)
    return handlers.handle(context, payload)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def test_every_registered_request_has_unique_tag():
    assert len(handlers.REQUEST_TYPES) == len(set(handlers.REQUEST_TYPES))
    for operation, request_type in handlers.REQUEST_TYPES.items():
        assert request_type.operation == operation


def test_register_rejects_request_without_execute():
    with pytest.raises(TypeError, match="execute"):

        @handlers.register
        class IncompleteRequest(handlers.Request):
            operation = "incomplete"

    assert "incomplete" not in handlers.REQUEST_TYPES


def test_parse_request_builds_typed_dataclass():
    request = handlers.parse_request(
        {
            "operation": "save_invoice",
            "invoice_id": "INV-1",
            "customer_name": "Alice",
            "lines": [{"product_name": "Widget", "quantity": "2", "unit_price": 8}],
        }
    )

    assert request.operation == "save_invoice"
    assert request.lines[0].quantity == Decimal("2")
    assert request.lines[0].unit_price == Decimal("8")
    assert request.date is None


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"operation": "launch_rocket"}, "Unknown operation"),
        ({}, "Unknown operation"),
        ({"operation": "add_product", "name": "Widget", "quantity": 1, "buy_price": 1}, "'sale_price' is required"),
        ({"operation": "add_product", "name": "W", "quantity": "ten", "buy_price": 1, "sale_price": 1}, "must be a number"),
        ({"operation": "add_product", "name": 5, "quantity": 1, "buy_price": 1, "sale_price": 1}, "must be a string"),
        ({"operation": "list_products", "include_inactive": "yes"}, "true or false"),
        ({"operation": "save_invoice", "invoice_id": "I", "customer_name": "A", "lines": []}, "non-empty list"),
        ({"operation": "save_invoice", "invoice_id": "I", "customer_name": "A", "lines": ["Widget"]}, "must be an object"),
    ],
)
def test_parse_request_rejects_malformed_payloads(payload, message):
    with pytest.raises(InvalidRequestError, match=message):
        handlers.parse_request(payload)


def test_parse_request_rejects_non_mapping():
    with pytest.raises(InvalidRequestError):
        handlers.parse_request(["add_product"])


# ---------------------------------------------------------------------------
# Handling
# ---------------------------------------------------------------------------


def test_handle_success_returns_data(runtime_context):
    response = _add_widget(runtime_context)

    assert response.success is True
    assert response.message == 'Product "Widget" added'
    assert response.data.sale_price == Decimal("9.5")
    assert response.data.reorder_level == runtime_context.settings.default_reorder_level


def test_handle_folds_domain_errors_into_response(runtime_context):
    response = handlers.handle(runtime_context, {"operation": "delete_product", "name": "Ghost"})

    assert response.success is False
    assert isinstance(response.error, NotFoundError)
    assert response.message == 'Product "Ghost" not found'


def test_handle_folds_validation_errors_into_response(runtime_context):
    response = handlers.handle(runtime_context, {"operation": "add_product", "name": "Widget"})

    assert response.success is False
    assert isinstance(response.error, InvalidRequestError)


def test_handle_accepts_parsed_request(runtime_context):
    request = handlers.parse_request({"operation": "list_products"})

    response = handlers.handle(runtime_context, request)

    assert response.success is True
    assert response.data == []


def test_update_product_without_flag_keeps_product_inactive(runtime_context):
    """Updating prices must not reactivate a deactivated product."""

    _add_widget(runtime_context)
    handlers.handle(runtime_context, {"operation": "deactivate_product", "name": "Widget"})
    update = {
        "operation": "update_product",
        "old_name": "Widget",
        "name": "Widget",
        "quantity": "10",
        "buy_price": "5",
        "sale_price": "11",
    }

    assert handlers.handle(runtime_context, update).success is True
    assert core_logic.get_product(runtime_context, "Widget").is_active is False

    handlers.handle(runtime_context, {**update, "is_active": True})
    assert core_logic.get_product(runtime_context, "Widget").is_active is True


def test_invoice_and_payment_flow(runtime_context):
    """A full sale through the request boundary should settle the invoice."""

    _add_widget(runtime_context)
    handlers.handle(runtime_context, {"operation": "add_customer", "name": "Alice"})

    saved = handlers.handle(
        runtime_context,
        {
            "operation": "save_invoice",
            "invoice_id": "INV-1",
            "customer_name": "Alice",
            "date": "2026-02-01",
            "lines": [{"product_name": "Widget", "quantity": 2, "unit_price": "9.5"}],
        },
    )
    paid = handlers.handle(
        runtime_context,
        {"operation": "add_payment", "invoice_id": "INV-1", "amount": "19", "method": "Card"},
    )

    assert saved.success, saved.message
    assert saved.data.total_amount == Decimal("19.0")
    assert paid.success, paid.message
    assert paid.data.invoice_status == "Paid"


def test_movement_request_rejects_unknown_type(runtime_context):
    _add_widget(runtime_context)

    response = handlers.handle(
        runtime_context,
        {"operation": "add_inventory_movement", "product_name": "Widget", "movement_type": "LOST", "quantity": 1},
    )

    assert response.success is False
    assert isinstance(response.error, BusinessRuleViolation)


def test_journal_request_defaults_missing_side_to_zero(runtime_context):
    response = handlers.handle(
        runtime_context,
        {
            "operation": "add_journal_entry",
            "description": "Cash sale",
            "date": "2026-03-01",
            "lines": [{"account_code": "1000", "debit": 10}, {"account_code": "4000", "credit": 10}],
        },
    )

    assert response.success, response.message
    assert [row.credit for row in response.data] == [Decimal("0"), Decimal("10")]


def test_export_and_backup_requests(runtime_context, tmp_path):
    _add_widget(runtime_context)

    exported = handlers.handle(
        runtime_context,
        {"operation": "export_sheet", "sheet_name": "Products", "output_path": str(tmp_path / "products.xlsx")},
    )
    created = handlers.handle(runtime_context, {"operation": "create_backup"})
    listed = handlers.handle(runtime_context, {"operation": "list_backups"})

    assert exported.success and Path(exported.data).exists()
    assert created.success
    assert any(info.manual for info in listed.data)


# ---------------------------------------------------------------------------
# Plain conversion
# ---------------------------------------------------------------------------


def test_to_plain_produces_json_friendly_output(runtime_context):
    response = _add_widget(runtime_context, quantity="10.50")

    plain = handlers.to_plain(response.data)

    assert plain["quantity"] == "10.50"
    assert plain["reorder_level"] == "10"
    assert plain["is_active"] is True
    json.dumps(plain)
