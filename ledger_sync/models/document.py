"""
Document Models for Ledger Sync

The Document is the single persisted object per user: accounts,
categories, transactions, budgets, settings and meta timestamps.

These models are the statically-typed result of normalization. Raw JSON
from the cache, an import file or the remote store never reaches business
logic directly; it is decoded once by `ledger_sync.validation.normalizer`
into these models.

Persisted JSON uses camelCase keys (`initialBalance`, `accountId`, ...);
Python code uses snake_case attributes. Both spellings are accepted on input.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


SCHEMA_VERSION = 1
NOTE_MAX_LENGTH = 60
DEFAULT_CURRENCY = "CNY"

DATE_PATTERN = r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$"
MONTH_PATTERN = r"^[0-9]{4}-[0-9]{2}$"

DEFAULT_ACCOUNT_ICON = "💳"
DEFAULT_ACCOUNT_COLOR = "#607d8b"
DEFAULT_CATEGORY_ICON = "📌"
DEFAULT_CATEGORY_COLOR = "#9e9e9e"


def format_timestamp(value: Optional[datetime] = None) -> str:
    """
    Format a datetime as an ISO-8601 UTC string with millisecond precision.

    Naive datetimes are taken to be UTC already.
    >>> format_timestamp(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    '2024-01-02T03:04:05.000Z'
    """
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# =============================================================================
# ENUMS
# =============================================================================

class EntryType(str, Enum):
    """Direction of money. Stored amounts are always positive."""
    INCOME = "income"
    EXPENSE = "expense"


# =============================================================================
# ENTITIES
# =============================================================================

class LedgerModel(BaseModel):
    """Base for persisted models: camelCase on the wire, unknown keys dropped."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Account(LedgerModel):
    """A place money lives (cash, bank card, e-wallet)."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    icon: str = DEFAULT_ACCOUNT_ICON
    color: str = DEFAULT_ACCOUNT_COLOR
    initial_balance: float = Field(
        default=0.0,
        description="Opening balance, may be negative"
    )
    is_default: bool = Field(
        default=False,
        description="Built-in accounts cannot be deleted"
    )


class Category(LedgerModel):
    """Income or expense category."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: EntryType = EntryType.EXPENSE
    icon: str = DEFAULT_CATEGORY_ICON
    color: str = DEFAULT_CATEGORY_COLOR
    is_default: bool = False


class Transaction(LedgerModel):
    """
    A single income or expense entry.

    `account_id` and `category_id` must resolve inside the owning Document,
    and the category's type must equal the transaction's type. These
    cross-entity rules are enforced by the normalizer and the form
    validators, not by this model.
    """

    id: str = Field(..., min_length=1)
    date: str = Field(..., pattern=DATE_PATTERN)
    type: EntryType
    amount: float = Field(..., gt=0)
    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    note: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    created_at: str
    updated_at: str


class Budget(LedgerModel):
    """Monthly spending limit for one expense category."""

    id: str = Field(..., min_length=1)
    month: str = Field(..., pattern=MONTH_PATTERN)
    category_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    created_at: str
    updated_at: str


class DocumentSettings(LedgerModel):
    """Small per-user configuration map."""

    currency: str = DEFAULT_CURRENCY


class DocumentMeta(LedgerModel):
    created_at: str
    updated_at: str


# =============================================================================
# DOCUMENT
# =============================================================================

class Document(LedgerModel):
    """
    The full normalized state for one user.

    Invariants (guaranteed by normalization and the controller):
    - at least one account and one category
    - every transaction/budget reference resolves
    - stored amounts are positive and rounded to 2 decimals
    """

    version: int = SCHEMA_VERSION
    settings: DocumentSettings = Field(default_factory=DocumentSettings)
    accounts: list[Account] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    meta: DocumentMeta

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys, as persisted."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self, indent: Optional[int] = None) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)

    def touch(self, now: Optional[datetime] = None) -> str:
        """Refresh meta.updatedAt and return the new value."""
        self.meta.updated_at = format_timestamp(now)
        return self.meta.updated_at

    def find_account(self, account_id: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def find_category(self, category_id: str) -> Optional[Category]:
        return next((c for c in self.categories if c.id == category_id), None)

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def find_budget(self, budget_id: str) -> Optional[Budget]:
        return next((b for b in self.budgets if b.id == budget_id), None)

    def categories_of(self, entry_type: EntryType) -> list[Category]:
        return [c for c in self.categories if c.type == entry_type]


# =============================================================================
# BUILT-IN DEFAULTS
# =============================================================================

DEFAULT_ACCOUNTS: tuple[dict[str, str], ...] = (
    {"id": "cash", "name": "Cash", "icon": "💵", "color": "#ff9800"},
    {"id": "bank", "name": "Bank Card", "icon": "🏦", "color": "#1976d2"},
    {"id": "wechat", "name": "WeChat Pay", "icon": "💬", "color": "#4caf50"},
    {"id": "alipay", "name": "Alipay", "icon": "💰", "color": "#2196f3"},
)

DEFAULT_CATEGORIES: tuple[dict[str, str], ...] = (
    {"id": "expense_food", "name": "Food & Dining", "type": "expense", "icon": "🍜", "color": "#ff7043"},
    {"id": "expense_transport", "name": "Transport", "type": "expense", "icon": "🚇", "color": "#42a5f5"},
    {"id": "expense_shopping", "name": "Shopping", "type": "expense", "icon": "🛍️", "color": "#ab47bc"},
    {"id": "expense_housing", "name": "Housing", "type": "expense", "icon": "🏠", "color": "#8d6e63"},
    {"id": "expense_entertainment", "name": "Entertainment", "type": "expense", "icon": "🎬", "color": "#ffca28"},
    {"id": "expense_medical", "name": "Medical", "type": "expense", "icon": "💊", "color": "#ef5350"},
    {"id": "expense_other", "name": "Other Expense", "type": "expense", "icon": "📦", "color": "#78909c"},
    {"id": "income_salary", "name": "Salary", "type": "income", "icon": "💼", "color": "#66bb6a"},
    {"id": "income_bonus", "name": "Bonus", "type": "income", "icon": "🎁", "color": "#26a69a"},
    {"id": "income_investment", "name": "Investment", "type": "income", "icon": "📈", "color": "#5c6bc0"},
    {"id": "income_other", "name": "Other Income", "type": "income", "icon": "💰", "color": "#9ccc65"},
)


def default_accounts() -> list[Account]:
    return [Account(is_default=True, **entry) for entry in DEFAULT_ACCOUNTS]


def default_categories() -> list[Category]:
    return [Category(is_default=True, **entry) for entry in DEFAULT_CATEGORIES]


def build_default_document(
    now: Optional[datetime] = None,
    currency: str = DEFAULT_CURRENCY,
) -> Document:
    """Fresh document with built-in accounts/categories and no entries."""
    stamp = format_timestamp(now)
    return Document(
        version=SCHEMA_VERSION,
        settings=DocumentSettings(currency=currency),
        accounts=default_accounts(),
        categories=default_categories(),
        meta=DocumentMeta(created_at=stamp, updated_at=stamp),
    )
