"""Tests for form validation and deletion rules."""

from datetime import date

import pytest

from ledger_sync.models.document import (
    Account,
    Budget,
    Category,
    EntryType,
    Transaction,
)
from ledger_sync.validation.forms import (
    FormValidationError,
    ensure_account_deletable,
    ensure_category_deletable,
    ensure_category_type_change_allowed,
    validate_account_form,
    validate_budget_form,
    validate_category_form,
    validate_transaction_form,
)


def transaction_form(**overrides):
    values = {
        "date": "2024-05-01",
        "type": "expense",
        "amount": "12.345",
        "account_id": "cash",
        "category_id": "expense_food",
        "note": "  noodles  ",
    }
    values.update(overrides)
    return values


def add_transaction(document, account_id="cash", category_id="expense_food"):
    document.transactions.append(Transaction(
        id="t1",
        date="2024-05-01",
        type=EntryType.EXPENSE,
        amount=5,
        account_id=account_id,
        category_id=category_id,
        created_at="2024-05-01T00:00:00.000Z",
        updated_at="2024-05-01T00:00:00.000Z",
    ))


class TestTransactionForm:
    """Transaction create/edit validation."""

    def test_valid_form_is_cleaned(self, document):
        """Test amount rounding and note stripping."""
        values = validate_transaction_form(document, **transaction_form())
        assert values["amount"] == 12.35
        assert values["note"] == "noodles"
        assert values["type"] == EntryType.EXPENSE

    def test_accepts_date_objects(self, document):
        """Test a datetime.date is converted to ISO text."""
        values = validate_transaction_form(document, **transaction_form(date=date(2024, 5, 2)))
        assert values["date"] == "2024-05-02"

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"date": "2024-02-30"}, "date"),
            ({"type": "transfer"}, "type"),
            ({"amount": 0}, "amount"),
            ({"amount": "abc"}, "amount"),
            ({"account_id": "ghost"}, "account_id"),
            ({"category_id": "ghost"}, "category_id"),
            ({"category_id": "income_salary"}, "category_id"),
            ({"note": "x" * 61}, "note"),
        ],
    )
    def test_invalid_fields(self, document, overrides, field):
        """Test each failing field is reported."""
        with pytest.raises(FormValidationError) as exc_info:
            validate_transaction_form(document, **transaction_form(**overrides))
        assert exc_info.value.field == field

    def test_lower_note_limit(self, document):
        """Test a configured note limit below 60 applies."""
        with pytest.raises(FormValidationError):
            validate_transaction_form(document, **transaction_form(note="x" * 11), note_max_length=10)


class TestAccountAndCategoryForms:
    """Name uniqueness rules."""

    def test_duplicate_account_name_case_insensitive(self, document):
        """Test 'cash' clashes with the default 'Cash'."""
        with pytest.raises(FormValidationError):
            validate_account_form(document, name="cash")

    def test_rename_keeps_own_name(self, document):
        """Test an account may keep its own name when edited."""
        values = validate_account_form(document, name="Cash", initial_balance="-20.015", exclude_id="cash")
        assert values["initial_balance"] == -20.01

    def test_blank_account_name(self, document):
        """Test names are required."""
        with pytest.raises(FormValidationError):
            validate_account_form(document, name="   ")

    def test_category_names_unique_per_type(self, document):
        """Test the same name may exist once per type."""
        values = validate_category_form(document, name="Salary", type="expense")
        assert values["type"] == EntryType.EXPENSE
        with pytest.raises(FormValidationError):
            validate_category_form(document, name="salary", type="income")

    def test_budget_needs_expense_category(self, document):
        """Test budgets only apply to expense categories."""
        with pytest.raises(FormValidationError):
            validate_budget_form(document, month="2024-05", category_id="income_salary", amount=100)
        with pytest.raises(FormValidationError):
            validate_budget_form(document, month="2024-13", category_id="expense_food", amount=100)
        values = validate_budget_form(document, month="2024-05", category_id="expense_food", amount="99.999")
        assert values["amount"] == 100.0


class TestDeletionRules:
    """Protected and referenced entities."""

    def test_default_account_not_deletable(self, document):
        """Test built-in accounts are protected."""
        with pytest.raises(FormValidationError):
            ensure_account_deletable(document, "cash")

    def test_referenced_account_not_deletable(self, document):
        """Test an account used by a transaction is protected."""
        document.accounts.append(Account(id="acc_x", name="Travel"))
        add_transaction(document, account_id="acc_x")
        with pytest.raises(FormValidationError) as exc_info:
            ensure_account_deletable(document, "acc_x")
        assert "1 transaction" in exc_info.value.message

    def test_unused_custom_account_deletable(self, document):
        """Test a custom, unused account may go."""
        document.accounts.append(Account(id="acc_x", name="Travel"))
        assert ensure_account_deletable(document, "acc_x").id == "acc_x"

    def test_category_referenced_by_budget(self, document):
        """Test budgets count as category references."""
        document.categories.append(Category(id="cat_x", name="Pets"))
        document.budgets.append(Budget(
            id="b1", month="2024-05", category_id="cat_x", amount=10,
            created_at="x", updated_at="x",
        ))
        with pytest.raises(FormValidationError):
            ensure_category_deletable(document, "cat_x")

    def test_type_change_blocked_while_referenced(self, document):
        """Test a used category keeps its type."""
        category = Category(id="cat_x", name="Pets")
        document.categories.append(category)
        ensure_category_type_change_allowed(document, category, EntryType.INCOME)
        add_transaction(document, category_id="cat_x")
        with pytest.raises(FormValidationError):
            ensure_category_type_change_allowed(document, category, EntryType.INCOME)
        ensure_category_type_change_allowed(document, category, EntryType.EXPENSE)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
