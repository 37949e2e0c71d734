"""Tests for the double-entry ledger and the reports derived from it."""

from __future__ import annotations

from decimal import Decimal

import pytest

from salesbook import accounting
from salesbook.accounting import JournalEntry, JournalLine
from salesbook.codec import AccountRow
from salesbook.errors import BusinessRuleViolation, DuplicateKeyError, NotFoundError


def _entry(description, *lines, entry_id=None, date="2026-03-01"):
    return JournalEntry(
        description=description,
        lines=tuple(JournalLine(code, Decimal(debit), Decimal(credit)) for code, debit, credit in lines),
        entry_id=entry_id,
        date=date,
    )


@pytest.fixture
def ledger_context(runtime_context):
    """Context with a cash sale, its cost and an owner investment recorded."""

    accounting.add_journal_entry(
        runtime_context, _entry("Owner investment", ("1000", "500", "0"), ("3000", "0", "500"), date="2026-01-15")
    )
    accounting.add_journal_entry(
        runtime_context, _entry("Cash sale", ("1000", "120", "0"), ("4000", "0", "120"), date="2026-03-01")
    )
    accounting.add_journal_entry(
        runtime_context, _entry("Cost of sale", ("5000", "70", "0"), ("1000", "0", "70"), date="2026-03-01")
    )
    return runtime_context


# ---------------------------------------------------------------------------
# Chart of accounts
# ---------------------------------------------------------------------------


def test_new_workbook_has_default_chart(runtime_context):
    codes = [account.code for account in accounting.list_accounts(runtime_context)]

    assert codes == ["1000", "1100", "2000", "3000", "4000", "5000"]


def test_add_account_rejects_unknown_type(runtime_context):
    with pytest.raises(BusinessRuleViolation):
        accounting.add_account(runtime_context, AccountRow("6000", "Rent", "Cost"))


def test_add_account_rejects_duplicate_code(runtime_context):
    with pytest.raises(DuplicateKeyError):
        accounting.add_account(runtime_context, AccountRow("1000", "Petty Cash", "Asset"))


def test_update_account_and_inactive_filter(runtime_context):
    accounting.add_account(runtime_context, AccountRow("6000", "Rent", "Expense"))

    accounting.update_account(runtime_context, "6000", AccountRow("6000", "Rent", "Expense", is_active=False))

    active = [account.code for account in accounting.list_accounts(runtime_context, include_inactive=False)]
    assert "6000" not in active
    assert "6000" in [account.code for account in accounting.list_accounts(runtime_context)]


def test_update_missing_account_raises(runtime_context):
    with pytest.raises(NotFoundError):
        accounting.update_account(runtime_context, "9999", AccountRow("9999", "Ghost", "Asset"))


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


def test_add_journal_entry_numbers_lines(runtime_context):
    rows = accounting.add_journal_entry(
        runtime_context,
        _entry("Split sale", ("1000", "60", "0"), ("1100", "40", "0"), ("4000", "0", "100"), entry_id="JE-1"),
    )

    assert [row.line_number for row in rows] == [1, 2, 3]
    assert {row.entry_id for row in rows} == {"JE-1"}


def test_add_journal_entry_generates_id(runtime_context):
    rows = accounting.add_journal_entry(runtime_context, _entry("Sale", ("1000", "5", "0"), ("4000", "0", "5")))

    assert rows[0].entry_id.startswith("JE")


@pytest.mark.parametrize(
    "lines",
    [
        (),
        (("1000", "10", "0"), ("4000", "0", "9")),
        (("1000", "-5", "0"), ("4000", "0", "-5")),
        (("1000", "5", "0"), ("9999", "0", "5")),
    ],
)
def test_invalid_journal_entries_are_rejected(runtime_context, lines):
    with pytest.raises(BusinessRuleViolation):
        accounting.add_journal_entry(runtime_context, _entry("Bad", *lines))
    assert accounting.trial_balance(runtime_context) == []


def test_balance_within_tolerance_is_accepted(runtime_context):
    rows = accounting.add_journal_entry(
        runtime_context, _entry("Rounding", ("1000", "10.00005", "0"), ("4000", "0", "10"))
    )

    assert len(rows) == 2


def test_inactive_account_cannot_be_posted(runtime_context):
    accounting.update_account(runtime_context, "1100", AccountRow("1100", "Accounts Receivable", "Asset", is_active=False))

    with pytest.raises(BusinessRuleViolation, match="inactive"):
        accounting.add_journal_entry(runtime_context, _entry("Credit sale", ("1100", "5", "0"), ("4000", "0", "5")))


def test_duplicate_entry_id_is_rejected(runtime_context):
    accounting.add_journal_entry(runtime_context, _entry("Sale", ("1000", "5", "0"), ("4000", "0", "5"), entry_id="JE-1"))

    with pytest.raises(DuplicateKeyError):
        accounting.add_journal_entry(
            runtime_context, _entry("Sale", ("1000", "5", "0"), ("4000", "0", "5"), entry_id="JE-1")
        )


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def test_trial_balance_uses_normal_balances(ledger_context):
    rows = {row.account_code: row for row in accounting.trial_balance(ledger_context)}

    assert list(rows) == ["1000", "3000", "4000", "5000"]
    assert rows["1000"].debit == Decimal("620")
    assert rows["1000"].credit == Decimal("70")
    assert rows["1000"].balance == Decimal("550")
    assert rows["3000"].balance == Decimal("500")
    assert rows["4000"].balance == Decimal("120")
    assert rows["5000"].balance == Decimal("70")


def test_trial_balance_window_is_inclusive(ledger_context):
    rows = accounting.trial_balance(ledger_context, "2026-03-01", "2026-03-01")

    assert [row.account_code for row in rows] == ["1000", "4000", "5000"]


def test_income_statement(ledger_context):
    statement = accounting.income_statement(ledger_context, "2026-03-01", "2026-03-31")

    assert statement.total_revenue == Decimal("120")
    assert statement.total_expenses == Decimal("70")
    assert statement.net_income == Decimal("50")
    assert [line.account_code for line in statement.revenue] == ["4000"]


def test_balance_sheet_as_of(ledger_context):
    sheet = accounting.balance_sheet(ledger_context, "2026-02-01")

    assert sheet.total_assets == Decimal("500")
    assert sheet.total_equity == Decimal("500")
    assert sheet.liabilities == ()

    later = accounting.balance_sheet(ledger_context)
    assert later.total_assets == Decimal("550")
