"""
Overview Totals

Pure, deterministic aggregations over a Document: account balances, net
worth, monthly totals, category breakdowns, budget usage and a month
series for charts. Nothing here mutates the document.

Every sum passes through normalize_money so float noise never shows up
in a total.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from ledger_sync.models.document import Document, EntryType, Transaction
from ledger_sync.validation.money import normalize_money
from ledger_sync.validation.normalizer import is_valid_month


# 0001-01 and 9999-12 as year * 12 + month - 1
_FIRST_MONTH_INDEX = 12
_LAST_MONTH_INDEX = 9999 * 12 + 11


class AccountBalance(BaseModel):
    account_id: str
    name: str
    icon: str
    balance: float


class MonthlyTotals(BaseModel):
    month: str
    income: float = 0.0
    expense: float = 0.0
    net: float = 0.0
    transaction_count: int = 0


class CategoryShare(BaseModel):
    category_id: str
    name: str
    icon: str
    color: str
    amount: float
    share: float = Field(..., description="Percentage of the month's total, 0-100")


class BudgetUsage(BaseModel):
    budget_id: str
    category_id: str
    category_name: str
    month: str
    budget: float
    spent: float
    remaining: float
    over_budget: bool
    usage_percent: float


class OverviewSummary(BaseModel):
    """Everything the overview page shows for one month."""

    month: str
    currency: str
    net_worth: float
    accounts: list[AccountBalance]
    totals: MonthlyTotals
    expense_breakdown: list[CategoryShare]
    income_breakdown: list[CategoryShare]
    budgets: list[BudgetUsage]
    series: list[MonthlyTotals]
    recent_transactions: list[Transaction]


def current_month(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}"


def shift_month(month: str, delta: int) -> str:
    """
    Move a YYYY-MM month by `delta` months.

    Raises:
        ValueError: if the result falls outside 0001-01..9999-12
    """
    index = _month_index(month) + delta
    if not _FIRST_MONTH_INDEX <= index <= _LAST_MONTH_INDEX:
        raise ValueError(f"Month out of range: {month!r} shifted by {delta}")
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def _month_index(month: str) -> int:
    return int(month[:4]) * 12 + int(month[5:7]) - 1


def _in_month(transaction: Transaction, month: str) -> bool:
    return transaction.date[:7] == month


def account_balances(document: Document) -> list[AccountBalance]:
    """initialBalance + income - expense, per account."""
    deltas: dict[str, float] = {a.id: 0.0 for a in document.accounts}
    for t in document.transactions:
        if t.account_id not in deltas:
            continue
        sign = 1 if t.type == EntryType.INCOME else -1
        deltas[t.account_id] += sign * t.amount

    return [
        AccountBalance(
            account_id=a.id,
            name=a.name,
            icon=a.icon,
            balance=normalize_money(a.initial_balance + deltas[a.id]),
        )
        for a in document.accounts
    ]


def net_worth(document: Document) -> float:
    return normalize_money(sum(b.balance for b in account_balances(document)))


def monthly_totals(document: Document, month: str) -> MonthlyTotals:
    income = expense = 0.0
    count = 0
    for t in document.transactions:
        if not _in_month(t, month):
            continue
        count += 1
        if t.type == EntryType.INCOME:
            income += t.amount
        else:
            expense += t.amount

    income = normalize_money(income)
    expense = normalize_money(expense)
    return MonthlyTotals(
        month=month,
        income=income,
        expense=expense,
        net=normalize_money(income - expense),
        transaction_count=count,
    )


def category_breakdown(
    document: Document,
    month: str,
    entry_type: EntryType = EntryType.EXPENSE,
) -> list[CategoryShare]:
    """Per-category sums for one month, largest first. Empty categories are left out."""
    sums: dict[str, float] = {}
    for t in document.transactions:
        if t.type == entry_type and _in_month(t, month):
            sums[t.category_id] = sums.get(t.category_id, 0.0) + t.amount

    total = sum(sums.values())
    shares = []
    for category_id, amount in sums.items():
        category = document.find_category(category_id)
        if category is None:
            continue
        shares.append(CategoryShare(
            category_id=category_id,
            name=category.name,
            icon=category.icon,
            color=category.color,
            amount=normalize_money(amount),
            share=normalize_money(amount / total * 100) if total else 0.0,
        ))
    shares.sort(key=lambda s: s.amount, reverse=True)
    return shares


def budget_usage(document: Document, month: str) -> list[BudgetUsage]:
    spent_by_category: dict[str, float] = {}
    for t in document.transactions:
        if t.type == EntryType.EXPENSE and _in_month(t, month):
            spent_by_category[t.category_id] = spent_by_category.get(t.category_id, 0.0) + t.amount

    usage = []
    for budget in document.budgets:
        if budget.month != month:
            continue
        category = document.find_category(budget.category_id)
        spent = normalize_money(spent_by_category.get(budget.category_id, 0.0))
        usage.append(BudgetUsage(
            budget_id=budget.id,
            category_id=budget.category_id,
            category_name=category.name if category else budget.category_id,
            month=month,
            budget=budget.amount,
            spent=spent,
            remaining=normalize_money(budget.amount - spent),
            over_budget=spent > budget.amount,
            usage_percent=normalize_money(spent / budget.amount * 100),
        ))
    return usage


def month_series(document: Document, end_month: str, count: int = 6) -> list[MonthlyTotals]:
    """
    Totals for `count` consecutive months ending at `end_month`, oldest first.

    Shorter near year 0001, where earlier months do not exist.
    """
    start = max(-(count - 1), _FIRST_MONTH_INDEX - _month_index(end_month))
    return [
        monthly_totals(document, shift_month(end_month, offset))
        for offset in range(start, 1)
    ]


def recent_transactions(document: Document, limit: int = 10) -> list[Transaction]:
    """Newest first: by date, then by creation time."""
    ordered = sorted(
        document.transactions,
        key=lambda t: (t.date, t.created_at),
        reverse=True,
    )
    return ordered[:limit]


def build_overview(
    document: Document,
    month: Optional[str] = None,
    now: Optional[datetime] = None,
) -> OverviewSummary:
    """
    Assemble the overview for a month (default: the current month).

    Raises:
        ValueError: if `month` is not a valid YYYY-MM month
    """
    month = month or current_month(now)
    if not is_valid_month(month):
        raise ValueError(f"Invalid month: {month!r}")

    return OverviewSummary(
        month=month,
        currency=document.settings.currency,
        net_worth=net_worth(document),
        accounts=account_balances(document),
        totals=monthly_totals(document, month),
        expense_breakdown=category_breakdown(document, month, EntryType.EXPENSE),
        income_breakdown=category_breakdown(document, month, EntryType.INCOME),
        budgets=budget_usage(document, month),
        series=month_series(document, month),
        recent_transactions=recent_transactions(document),
    )
