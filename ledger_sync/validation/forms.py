"""
Form Validation

Checks user input for create/edit operations against the live document
before anything is mutated. A failed check raises FormValidationError with
a message meant for the user; the caller refuses the operation.

Unlike the normalizer, nothing here silently fixes input (apart from
money rounding, which applies at every boundary).
"""

from datetime import date as dt_date
from typing import Any, Optional

from ledger_sync.models.document import (
    NOTE_MAX_LENGTH,
    Account,
    Category,
    Document,
    EntryType,
)
from ledger_sync.validation.money import normalize_money
from ledger_sync.validation.normalizer import is_valid_date, is_valid_month


class FormValidationError(ValueError):
    """User input failed validation; the operation must be refused."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def _require_text(value: Any, field: str, label: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise FormValidationError(field, f"{label} is required")
    return text


def _parse_type(value: Any) -> EntryType:
    try:
        return EntryType(value)
    except ValueError:
        raise FormValidationError("type", "Type must be 'income' or 'expense'")


def _positive_amount(value: Any) -> float:
    amount = normalize_money(value)
    if amount <= 0:
        raise FormValidationError("amount", "Amount must be greater than zero")
    return amount


def validate_transaction_form(
    document: Document,
    *,
    date: Any,
    type: Any,
    amount: Any,
    account_id: Any,
    category_id: Any,
    note: Any = "",
    note_max_length: int = NOTE_MAX_LENGTH,
) -> dict[str, Any]:
    """
    Validate a transaction form against the document.

    Returns:
        Cleaned values ready to build a Transaction.

    Raises:
        FormValidationError: on the first failing field.
    """
    if isinstance(date, dt_date):
        date = date.isoformat()
    if not is_valid_date(date):
        raise FormValidationError("date", "Date must be a valid YYYY-MM-DD date")
    entry_type = _parse_type(type)
    cleaned_amount = _positive_amount(amount)

    if document.find_account(account_id) is None:
        raise FormValidationError("account_id", "Please choose an existing account")

    category = document.find_category(category_id)
    if category is None:
        raise FormValidationError("category_id", "Please choose an existing category")
    if category.type != entry_type:
        raise FormValidationError(
            "category_id",
            f"Category '{category.name}' is not an {entry_type.value} category",
        )

    note_text = note.strip() if isinstance(note, str) else ""
    limit = min(note_max_length, NOTE_MAX_LENGTH)
    if len(note_text) > limit:
        raise FormValidationError("note", f"Note must be at most {limit} characters")

    return {
        "date": date,
        "type": entry_type,
        "amount": cleaned_amount,
        "account_id": account_id,
        "category_id": category_id,
        "note": note_text,
    }


def validate_account_form(
    document: Document,
    *,
    name: Any,
    initial_balance: Any = 0,
    exclude_id: Optional[str] = None,
) -> dict[str, Any]:
    """Validate account name uniqueness; the opening balance may be negative."""
    account_name = _require_text(name, "name", "Account name")
    for account in document.accounts:
        if account.id != exclude_id and account.name.casefold() == account_name.casefold():
            raise FormValidationError("name", f"An account named '{account_name}' already exists")
    return {
        "name": account_name,
        "initial_balance": normalize_money(initial_balance),
    }


def validate_category_form(
    document: Document,
    *,
    name: Any,
    type: Any,
    exclude_id: Optional[str] = None,
) -> dict[str, Any]:
    """Category names are unique within one type."""
    category_name = _require_text(name, "name", "Category name")
    entry_type = _parse_type(type)
    for category in document.categories_of(entry_type):
        if category.id != exclude_id and category.name.casefold() == category_name.casefold():
            raise FormValidationError(
                "name", f"A {entry_type.value} category named '{category_name}' already exists"
            )
    return {"name": category_name, "type": entry_type}


def validate_budget_form(
    document: Document,
    *,
    month: Any,
    category_id: Any,
    amount: Any,
) -> dict[str, Any]:
    if not is_valid_month(month):
        raise FormValidationError("month", "Month must be a valid YYYY-MM month")
    category = document.find_category(category_id)
    if category is None or category.type != EntryType.EXPENSE:
        raise FormValidationError("category_id", "Budgets need an existing expense category")
    return {
        "month": month,
        "category_id": category_id,
        "amount": _positive_amount(amount),
    }


def ensure_account_deletable(document: Document, account_id: str) -> Account:
    """
    Default accounts and accounts still used by a transaction stay.

    Raises:
        FormValidationError: when deletion must be refused.
    """
    account = document.find_account(account_id)
    if account is None:
        raise FormValidationError("account_id", "Account not found")
    if account.is_default:
        raise FormValidationError("account_id", f"'{account.name}' is a default account and cannot be deleted")
    used = sum(1 for t in document.transactions if t.account_id == account_id)
    if used:
        raise FormValidationError(
            "account_id",
            f"'{account.name}' is used by {used} transaction(s); delete or move them first",
        )
    return account


def ensure_category_deletable(document: Document, category_id: str) -> Category:
    """Same rule as accounts; budgets count as references too."""
    category = document.find_category(category_id)
    if category is None:
        raise FormValidationError("category_id", "Category not found")
    if category.is_default:
        raise FormValidationError("category_id", f"'{category.name}' is a default category and cannot be deleted")
    used = sum(1 for t in document.transactions if t.category_id == category_id)
    used += sum(1 for b in document.budgets if b.category_id == category_id)
    if used:
        raise FormValidationError(
            "category_id",
            f"'{category.name}' is used by {used} transaction(s) or budget(s)",
        )
    return category


def ensure_category_type_change_allowed(
    document: Document,
    category: Category,
    new_type: EntryType,
) -> None:
    """A referenced category cannot switch between income and expense."""
    if category.type == new_type:
        return
    if any(t.category_id == category.id for t in document.transactions) or any(
        b.category_id == category.id for b in document.budgets
    ):
        raise FormValidationError(
            "type",
            f"'{category.name}' is in use; its type cannot change",
        )
