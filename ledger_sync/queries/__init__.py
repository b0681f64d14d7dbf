"""Overview and reporting queries."""

from ledger_sync.queries.summary import (
    AccountBalance,
    BudgetUsage,
    CategoryShare,
    MonthlyTotals,
    OverviewSummary,
    account_balances,
    budget_usage,
    build_overview,
    category_breakdown,
    current_month,
    month_series,
    monthly_totals,
    net_worth,
    recent_transactions,
    shift_month,
)

__all__ = [
    "AccountBalance",
    "BudgetUsage",
    "CategoryShare",
    "MonthlyTotals",
    "OverviewSummary",
    "account_balances",
    "budget_usage",
    "build_overview",
    "category_breakdown",
    "current_month",
    "month_series",
    "monthly_totals",
    "net_worth",
    "recent_transactions",
    "shift_month",
]
