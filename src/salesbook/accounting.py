"""Double-entry ledger kept on the ``Accounts`` and ``Journal`` sheets.

Journal entries are stored one row per line. Reports are derived from the
trial balance: Asset and Expense accounts are debit-normal, every other
account type is credit-normal. Date windows compare ISO-8601 date strings
and are inclusive at both ends.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from . import log
from .codec import ACCOUNTS_CODEC, JOURNAL_CODEC, AccountRow, JournalLineRow
from .constants import DEBIT_NORMAL_ACCOUNT_TYPES, AccountType, SheetName
from .core_logic import RuntimeContext, _invalidate_cache, _resolve_date, generate_id, require_text
from .errors import BusinessRuleViolation, DuplicateKeyError
from .repository import read_sheet


ZERO = Decimal("0")
BALANCE_TOLERANCE = Decimal("0.0001")


@dataclass(frozen=True)
class JournalLine:
    """One requested debit or credit of a journal entry."""

    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO


@dataclass(frozen=True)
class JournalEntry:
    """A balanced set of journal lines recorded together."""

    description: str
    lines: tuple[JournalLine, ...]
    entry_id: Optional[str] = None
    date: Optional[str] = None
    reference: str = ""


@dataclass(frozen=True)
class TrialBalanceRow:
    account_code: str
    account_name: str
    account_type: str
    debit: Decimal
    credit: Decimal
    balance: Decimal


@dataclass(frozen=True)
class StatementLine:
    account_code: str
    name: str
    amount: Decimal


@dataclass(frozen=True)
class IncomeStatement:
    revenue: tuple[StatementLine, ...]
    expenses: tuple[StatementLine, ...]
    total_revenue: Decimal
    total_expenses: Decimal
    net_income: Decimal


@dataclass(frozen=True)
class BalanceSheet:
    assets: tuple[StatementLine, ...]
    liabilities: tuple[StatementLine, ...]
    equity: tuple[StatementLine, ...]
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal


def _read_ledger(context: RuntimeContext) -> tuple[tuple[AccountRow, ...], tuple[JournalLineRow, ...]]:
    def load() -> tuple[tuple[AccountRow, ...], tuple[JournalLineRow, ...]]:
        workbook = context.document.load()
        return tuple(read_sheet(workbook, ACCOUNTS_CODEC)), tuple(read_sheet(workbook, JOURNAL_CODEC))

    return context.cache.get_or_load(
        ("ledger",), load, sheets=[SheetName.ACCOUNTS.value, SheetName.JOURNAL.value]
    )


def validate_account(account: AccountRow) -> None:
    require_text(account.code, "Account code")
    require_text(account.name, "Account name")
    try:
        AccountType(account.account_type)
    except ValueError as exc:
        raise BusinessRuleViolation(f"Unsupported account type: {account.account_type}") from exc


def list_accounts(context: RuntimeContext, *, include_inactive: bool = True) -> List[AccountRow]:
    accounts = _read_ledger(context)[0]
    if include_inactive:
        return list(accounts)
    return [account for account in accounts if account.is_active]


def add_account(context: RuntimeContext, account: AccountRow) -> AccountRow:
    """Append an account to the chart of accounts.

    Raises:
        DuplicateKeyError: If the code is already used.
        BusinessRuleViolation: If the account type is unknown.
    """

    validate_account(account)
    with context.document.session() as workbook:
        context.document.repository(workbook, SheetName.ACCOUNTS).add(account)
    _invalidate_cache(context, SheetName.ACCOUNTS)
    log.info("Added account %s '%s' (%s)", account.code, account.name, account.account_type)
    return account


def update_account(context: RuntimeContext, code: str, account: AccountRow) -> AccountRow:
    """Replace the account ``code``; the replacement may carry a new code."""

    validate_account(account)
    with context.document.session() as workbook:
        accounts = context.document.repository(workbook, SheetName.ACCOUNTS)
        if account.code != code and accounts.exists(account.code):
            raise DuplicateKeyError(f'Account "{account.code}" already exists')
        accounts.update(code, account)
    _invalidate_cache(context, SheetName.ACCOUNTS)
    log.info("Updated account %s", code)
    return account


def add_journal_entry(context: RuntimeContext, entry: JournalEntry) -> List[JournalLineRow]:
    """Record a balanced journal entry, one row per line.

    Lines are numbered from 1 in the order given.

    Args:
        context (RuntimeContext): Active runtime context.
        entry (JournalEntry): Entry header and its lines.

    Returns:
        list[JournalLineRow]: The rows written to the ``Journal`` sheet.

    Raises:
        BusinessRuleViolation: If the entry has no lines, debits and credits
            differ by more than ``BALANCE_TOLERANCE``, a line is negative, or a
            line references an unknown or inactive account.
        DuplicateKeyError: If the entry id is already used.
    """

    if not entry.lines:
        raise BusinessRuleViolation("Journal entry must have lines")
    for line in entry.lines:
        if line.debit < ZERO or line.credit < ZERO:
            raise BusinessRuleViolation("Journal amounts cannot be negative")
    total_debit = sum((line.debit for line in entry.lines), ZERO)
    total_credit = sum((line.credit for line in entry.lines), ZERO)
    if abs(total_debit - total_credit) > BALANCE_TOLERANCE:
        log.error("Unbalanced journal entry: debit=%s credit=%s", total_debit, total_credit)
        raise BusinessRuleViolation("Journal entry is not balanced")

    entry_id = entry.entry_id or generate_id("JE")
    entry_date = _resolve_date(entry.date)
    rows = [
        JournalLineRow(
            entry_id=entry_id,
            date=entry_date,
            description=entry.description,
            reference=entry.reference,
            line_number=number,
            account_code=line.account_code,
            debit=line.debit,
            credit=line.credit,
        )
        for number, line in enumerate(entry.lines, start=1)
    ]

    with context.document.session() as workbook:
        accounts = context.document.repository(workbook, SheetName.ACCOUNTS)
        journal = context.document.repository(workbook, SheetName.JOURNAL)
        active_codes = {account.code for account in accounts.find_all() if account.is_active}
        for row in rows:
            if row.account_code not in active_codes:
                raise BusinessRuleViolation(f"Account code {row.account_code} not found or inactive")
        if any(existing.entry_id == entry_id for existing in journal.find_all()):
            raise DuplicateKeyError(f'Journal entry "{entry_id}" already exists')
        for row in rows:
            journal.add(row)

    _invalidate_cache(context, SheetName.JOURNAL)
    log.info("Recorded journal entry '%s' (%d lines, amount=%s)", entry_id, len(rows), total_debit)
    return rows


def trial_balance(
    context: RuntimeContext, start_date: Optional[str] = None, end_date: Optional[str] = None
) -> List[TrialBalanceRow]:
    """Sum debits and credits per account within an inclusive date window.

    Only accounts with at least one journal line in the window are listed,
    sorted by account code. Lines against codes missing from the chart are
    reported with an empty name and treated as assets.
    """

    accounts, lines = _read_ledger(context)
    meta = {account.code: account for account in accounts}

    sums: Dict[str, list[Decimal]] = {}
    for line in lines:
        if start_date and line.date < start_date:
            continue
        if end_date and line.date > end_date:
            continue
        if not line.account_code:
            continue
        totals = sums.setdefault(line.account_code, [ZERO, ZERO])
        totals[0] += line.debit
        totals[1] += line.credit

    results: List[TrialBalanceRow] = []
    for code, (debit, credit) in sums.items():
        account = meta.get(code)
        name = account.name if account else ""
        account_type = account.account_type if account else AccountType.ASSET.value
        debit_normal = account_type in {kind.value for kind in DEBIT_NORMAL_ACCOUNT_TYPES}
        results.append(
            TrialBalanceRow(
                account_code=code,
                account_name=name,
                account_type=account_type,
                debit=debit,
                credit=credit,
                balance=debit - credit if debit_normal else credit - debit,
            )
        )
    results.sort(key=lambda row: row.account_code)
    return results


def income_statement(
    context: RuntimeContext, start_date: Optional[str] = None, end_date: Optional[str] = None
) -> IncomeStatement:
    """Revenue and expense totals for a period; zero-balance accounts are omitted."""

    revenue: List[StatementLine] = []
    expenses: List[StatementLine] = []
    for row in trial_balance(context, start_date, end_date):
        if row.balance == ZERO:
            continue
        line = StatementLine(row.account_code, row.account_name, row.balance)
        if row.account_type == AccountType.REVENUE.value:
            revenue.append(line)
        elif row.account_type == AccountType.EXPENSE.value:
            expenses.append(line)
    total_revenue = sum((line.amount for line in revenue), ZERO)
    total_expenses = sum((line.amount for line in expenses), ZERO)
    return IncomeStatement(
        revenue=tuple(revenue),
        expenses=tuple(expenses),
        total_revenue=total_revenue,
        total_expenses=total_expenses,
        net_income=total_revenue - total_expenses,
    )


def balance_sheet(context: RuntimeContext, as_of: Optional[str] = None) -> BalanceSheet:
    """Asset, liability and equity balances from every line up to ``as_of``."""

    groups: Dict[str, List[StatementLine]] = {
        AccountType.ASSET.value: [],
        AccountType.LIABILITY.value: [],
        AccountType.EQUITY.value: [],
    }
    for row in trial_balance(context, None, as_of):
        if row.balance == ZERO or row.account_type not in groups:
            continue
        groups[row.account_type].append(StatementLine(row.account_code, row.account_name, row.balance))

    assets = tuple(groups[AccountType.ASSET.value])
    liabilities = tuple(groups[AccountType.LIABILITY.value])
    equity = tuple(groups[AccountType.EQUITY.value])
    return BalanceSheet(
        assets=assets,
        liabilities=liabilities,
        equity=equity,
        total_assets=sum((line.amount for line in assets), ZERO),
        total_liabilities=sum((line.amount for line in liabilities), ZERO),
        total_equity=sum((line.amount for line in equity), ZERO),
    )


__all__ = [
    "BALANCE_TOLERANCE",
    "JournalLine",
    "JournalEntry",
    "TrialBalanceRow",
    "StatementLine",
    "IncomeStatement",
    "BalanceSheet",
    "list_accounts",
    "add_account",
    "update_account",
    "add_journal_entry",
    "trial_balance",
    "income_statement",
    "balance_sheet",
]
