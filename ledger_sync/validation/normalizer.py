"""
Schema Normalizer

Converts arbitrary JSON-like input (local cache, import file, remote
payload) into a valid Document. This is the only place where field
coercion happens: string-to-number, default substitution, synthesized ids.

ORDER MATTERS:
1. Defaults first, recognized top-level keys merged over them
2. Accounts and categories are normalized
3. Transactions and budgets are validated against the *normalized*
   accounts/categories, never against the raw input

Entries that break a reference or a format rule are dropped silently.
The function never raises; worst case is the all-defaults document.
It is idempotent: normalizing its own output returns an equal document.
"""

import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Callable, Optional, TypeVar

import structlog

from ledger_sync.models.document import (
    DEFAULT_ACCOUNT_COLOR,
    DEFAULT_ACCOUNT_ICON,
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    NOTE_MAX_LENGTH,
    Account,
    Budget,
    Category,
    Document,
    DocumentMeta,
    DocumentSettings,
    EntryType,
    Transaction,
    build_default_document,
)
from ledger_sync.validation.money import normalize_money


logger = structlog.get_logger(__name__)

_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_MONTH_RE = re.compile(r"[0-9]{4}-[0-9]{2}")
_MAX_VERSION = 2**31 - 1

T = TypeVar("T")


# =============================================================================
# FORMAT CHECKS
# =============================================================================

def is_valid_date(value: Any) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_valid_month(value: Any) -> bool:
    """True for YYYY-MM with a year from 0001 and a month between 01 and 12."""
    if not isinstance(value, str) or not _MONTH_RE.fullmatch(value):
        return False
    return int(value[:4]) >= 1 and 1 <= int(value[5:7]) <= 12


# =============================================================================
# FIELD COERCION
# =============================================================================

def _get(entry: Mapping, *keys: str) -> Any:
    """First present key wins; accepts camelCase and snake_case spellings."""
    for key in keys:
        if key in entry:
            return entry[key]
    return None


def _coerce_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return str(value)
        except ValueError:
            # int too long to print
            return ""
    return ""


def _coerce_id(value: Any, fallback: str) -> str:
    return _coerce_text(value) or fallback


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return False


def _coerce_type(value: Any) -> EntryType:
    # Anything that is not literally "income" is an expense
    return EntryType.INCOME if value == EntryType.INCOME.value else EntryType.EXPENSE


def _coerce_timestamp(value: Any, fallback: str) -> str:
    return value if isinstance(value, str) and value.strip() else fallback


def _coerce_version(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, str):
        text = value.strip()
        if not text.isdecimal() or len(text) > len(str(_MAX_VERSION)):
            return fallback
        value = int(text)
    if isinstance(value, int) and 0 < value <= _MAX_VERSION:
        return value
    return fallback


def _unique(items: list[T], key: Callable[[T], str]) -> list[T]:
    seen: set[str] = set()
    result = []
    for item in items:
        if key(item) in seen:
            continue
        seen.add(key(item))
        result.append(item)
    return result


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


# =============================================================================
# SECTIONS
# =============================================================================

def _normalize_settings(raw: Any, defaults: DocumentSettings) -> DocumentSettings:
    merged = defaults.model_dump()
    if isinstance(raw, Mapping):
        currency = _coerce_text(raw.get("currency"))
        if currency:
            merged["currency"] = currency
    return DocumentSettings(**merged)


def _normalize_accounts(raw: Any) -> list[Account]:
    accounts = []
    for index, entry in enumerate(_as_list(raw)):
        if not isinstance(entry, Mapping):
            continue
        accounts.append(Account(
            id=_coerce_id(entry.get("id"), f"acc_{index}"),
            name=_coerce_text(entry.get("name")) or f"Account {index + 1}",
            icon=_coerce_text(entry.get("icon")) or DEFAULT_ACCOUNT_ICON,
            color=_coerce_text(entry.get("color")) or DEFAULT_ACCOUNT_COLOR,
            initial_balance=normalize_money(
                _get(entry, "initialBalance", "initial_balance")
            ),
            is_default=_coerce_bool(_get(entry, "isDefault", "is_default")),
        ))
    return _unique(accounts, key=lambda a: a.id)


def _normalize_categories(raw: Any) -> list[Category]:
    categories = []
    for index, entry in enumerate(_as_list(raw)):
        if not isinstance(entry, Mapping):
            continue
        categories.append(Category(
            id=_coerce_id(entry.get("id"), f"cat_{index}"),
            name=_coerce_text(entry.get("name")) or f"Category {index + 1}",
            type=_coerce_type(entry.get("type")),
            icon=_coerce_text(entry.get("icon")) or DEFAULT_CATEGORY_ICON,
            color=_coerce_text(entry.get("color")) or DEFAULT_CATEGORY_COLOR,
            is_default=_coerce_bool(_get(entry, "isDefault", "is_default")),
        ))
    return _unique(categories, key=lambda c: c.id)


def _normalize_transactions(
    raw: Any,
    account_ids: set[str],
    categories_by_id: dict[str, Category],
) -> list[Transaction]:
    transactions = []
    for index, entry in enumerate(_as_list(raw)):
        if not isinstance(entry, Mapping):
            continue

        entry_date = _coerce_text(entry.get("date"))
        entry_type = _coerce_type(entry.get("type"))
        amount = normalize_money(entry.get("amount"))
        account_id = _coerce_text(_get(entry, "accountId", "account_id"))
        category_id = _coerce_text(_get(entry, "categoryId", "category_id"))

        if not is_valid_date(entry_date):
            continue
        if account_id not in account_ids:
            continue
        category = categories_by_id.get(category_id)
        if category is None or category.type != entry_type:
            continue
        if amount <= 0:
            continue

        note = entry.get("note")
        created_at = _coerce_timestamp(
            _get(entry, "createdAt", "created_at"),
            f"{entry_date}T00:00:00.000Z",
        )
        transactions.append(Transaction(
            id=_coerce_id(entry.get("id"), f"txn_{index}"),
            date=entry_date,
            type=entry_type,
            amount=amount,
            account_id=account_id,
            category_id=category_id,
            note=(note if isinstance(note, str) else _coerce_text(note))[:NOTE_MAX_LENGTH],
            created_at=created_at,
            updated_at=_coerce_timestamp(_get(entry, "updatedAt", "updated_at"), created_at),
        ))
    return _unique(transactions, key=lambda t: t.id)


def _normalize_budgets(
    raw: Any,
    categories_by_id: dict[str, Category],
) -> list[Budget]:
    budgets = []
    for index, entry in enumerate(_as_list(raw)):
        if not isinstance(entry, Mapping):
            continue

        month = _coerce_text(entry.get("month"))
        category_id = _coerce_text(_get(entry, "categoryId", "category_id"))
        amount = normalize_money(entry.get("amount"))

        if not is_valid_month(month):
            continue
        category = categories_by_id.get(category_id)
        if category is None or category.type != EntryType.EXPENSE:
            continue
        if amount <= 0:
            continue

        created_at = _coerce_timestamp(
            _get(entry, "createdAt", "created_at"),
            f"{month}-01T00:00:00.000Z",
        )
        budgets.append(Budget(
            id=_coerce_id(entry.get("id"), f"bgt_{index}"),
            month=month,
            category_id=category_id,
            amount=amount,
            created_at=created_at,
            updated_at=_coerce_timestamp(_get(entry, "updatedAt", "updated_at"), created_at),
        ))
    return _unique(budgets, key=lambda b: b.id)


def _normalize_meta(raw: Any, defaults: DocumentMeta) -> DocumentMeta:
    if not isinstance(raw, Mapping):
        return defaults.model_copy()
    return DocumentMeta(
        created_at=_coerce_timestamp(_get(raw, "createdAt", "created_at"), defaults.created_at),
        updated_at=_coerce_timestamp(_get(raw, "updatedAt", "updated_at"), defaults.updated_at),
    )


# =============================================================================
# ENTRY POINT
# =============================================================================

def normalize_document(raw: Any, *, now: Optional[datetime] = None) -> Document:
    """
    Decode arbitrary input into a Document satisfying all invariants.

    Args:
        raw: A mapping (parsed JSON), a Document, or anything else.
        now: Timestamp for the built-in defaults; only visible in
             `meta` when the input carries none.

    Returns:
        A fully-shaped Document. Never raises for malformed input.
    """
    defaults = build_default_document(now)

    if isinstance(raw, Document):
        raw = raw.to_payload()
    if not isinstance(raw, Mapping):
        logger.debug("normalize_non_mapping", input_type=type(raw).__name__)
        return defaults

    accounts = _normalize_accounts(raw.get("accounts")) or defaults.accounts
    categories = _normalize_categories(raw.get("categories")) or defaults.categories

    account_ids = {account.id for account in accounts}
    categories_by_id = {category.id: category for category in categories}

    raw_transactions = _as_list(raw.get("transactions"))
    raw_budgets = _as_list(raw.get("budgets"))
    transactions = _normalize_transactions(raw_transactions, account_ids, categories_by_id)
    budgets = _normalize_budgets(raw_budgets, categories_by_id)

    dropped_transactions = len(raw_transactions) - len(transactions)
    dropped_budgets = len(raw_budgets) - len(budgets)
    if dropped_transactions or dropped_budgets:
        logger.info(
            "normalize_dropped_entries",
            transactions=dropped_transactions,
            budgets=dropped_budgets,
        )

    return Document(
        version=_coerce_version(raw.get("version"), defaults.version),
        settings=_normalize_settings(raw.get("settings"), defaults.settings),
        accounts=accounts,
        categories=categories,
        transactions=transactions,
        budgets=budgets,
        meta=_normalize_meta(raw.get("meta"), defaults.meta),
    )
