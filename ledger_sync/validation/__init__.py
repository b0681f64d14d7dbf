"""Normalization and validation package."""

from ledger_sync.validation.money import normalize_money, to_number
from ledger_sync.validation.normalizer import (
    is_valid_date,
    is_valid_month,
    normalize_document,
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

__all__ = [
    "FormValidationError",
    "ensure_account_deletable",
    "ensure_category_deletable",
    "ensure_category_type_change_allowed",
    "is_valid_date",
    "is_valid_month",
    "normalize_document",
    "normalize_money",
    "to_number",
    "validate_account_form",
    "validate_budget_form",
    "validate_category_form",
    "validate_transaction_form",
]
