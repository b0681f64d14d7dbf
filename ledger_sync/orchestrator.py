"""
Main Orchestrator for Ledger Sync

LedgerController is the single state container the front end talks to.
It owns the in-memory Document and wires together:
- the session gate (who is signed in, are mutations unlocked)
- the local cache and remote sync client (the save pipeline)
- the notifier and audit logger

Every mutation is a named operation with the same shape:
1. Gate check (refused without side effects when locked)
2. Form validation against the live document (refused on failure)
3. In-memory mutation
4. Save pipeline: local cache now, remote debounced or immediate

Operations return an OperationResult; they do not raise for user errors.
"""

import asyncio
import uuid
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from ledger_sync.audit import AuditLogger, configure_logging
from ledger_sync.backup import ImportRejectedError, export_document, parse_import
from ledger_sync.config import Settings, get_settings
from ledger_sync.models.document import (
    DEFAULT_ACCOUNT_COLOR,
    DEFAULT_ACCOUNT_ICON,
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    DEFAULT_CURRENCY,
    NOTE_MAX_LENGTH,
    Account,
    Budget,
    Category,
    Document,
    Transaction,
    build_default_document,
    format_timestamp,
)
from ledger_sync.models.notification import Notification, OperationResult
from ledger_sync.notifications import Notifier
from ledger_sync.queries.summary import OverviewSummary, build_overview
from ledger_sync.services.auth import AuthProviderInterface, LocalAuthProvider, Session
from ledger_sync.services.storage import (
    DocumentStorageInterface,
    GoogleSheetsClient,
    GoogleSheetsDocumentStorage,
    JsonFileKeyValueStore,
    LocalCacheStore,
)
from ledger_sync.services.sync import RemoteSyncClient, SyncStatus
from ledger_sync.session import NotAuthenticatedError, SessionGate, SessionState
from ledger_sync.validation import (
    FormValidationError,
    ensure_account_deletable,
    ensure_category_deletable,
    ensure_category_type_change_allowed,
    validate_account_form,
    validate_budget_form,
    validate_category_form,
    validate_transaction_form,
)


logger = structlog.get_logger(__name__)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _pick(value: Any, fallback: Any) -> Any:
    return fallback if value is None else value


class LedgerController:
    """
    State container for one signed-in (or anonymous) user.

    The document shown while anonymous is the last cached one; it can be
    read but not changed until sign-in completes.
    """

    def __init__(
        self,
        sync_client: RemoteSyncClient,
        cache: LocalCacheStore,
        auth_provider: AuthProviderInterface,
        notifier: Optional[Notifier] = None,
        audit_logger: Optional[AuditLogger] = None,
        min_password_length: int = 6,
        note_max_length: int = NOTE_MAX_LENGTH,
        default_currency: str = DEFAULT_CURRENCY,
    ):
        self._sync = sync_client
        self._cache = cache
        self._notifier = notifier or Notifier()
        self._audit = audit_logger or AuditLogger()
        self._note_max_length = note_max_length
        self._default_currency = default_currency

        self._document = build_default_document(currency=default_currency)
        self._gate = SessionGate(
            auth_provider,
            on_authenticated=self._load_for_session,
            on_reset=self._reset_document,
            notifier=self._notifier,
            audit_logger=self._audit,
            min_password_length=min_password_length,
        )

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def document(self) -> Document:
        return self._document

    @property
    def state(self) -> SessionState:
        return self._gate.state

    @property
    def is_unlocked(self) -> bool:
        return self._gate.is_unlocked

    @property
    def user_email(self) -> Optional[str]:
        return self._gate.email

    @property
    def sync_status(self) -> SyncStatus:
        return self._sync.status

    @property
    def notifications(self) -> list[Notification]:
        return self._notifier.history

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    def overview(self, month: Optional[str] = None) -> OverviewSummary:
        """Totals for a month (default: current month). Allowed while locked."""
        return build_overview(self._document, month)

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Show the cached document, then restore any existing session."""
        self._document = self._cache.load()
        self._audit.log_document_loaded("cache", None, len(self._document.transactions))
        await self._gate.start()

    async def shutdown(self) -> None:
        await self._sync.flush()
        await self._gate.stop()

    async def sign_in(self, email: str, password: str) -> OperationResult:
        result = await self._gate.sign_in(email, password)
        if result.success and self.is_unlocked:
            return OperationResult.ok("Signed in", self._gate.user_id)
        return OperationResult.refused(result.error or "Sign-in failed")

    async def sign_up(self, email: str, password: str) -> OperationResult:
        result = await self._gate.sign_up(email, password)
        if not result.success:
            return OperationResult.refused(result.error or "Sign-up failed")
        if self.is_unlocked:
            return OperationResult.ok("Account created", self._gate.user_id)
        return OperationResult.ok(result.message or "Account created, confirm your email then sign in")

    async def sign_out(self) -> OperationResult:
        result = await self._gate.sign_out()
        return OperationResult.ok("Signed out" if result.success else (result.error or "Signed out"))

    async def _load_for_session(self, session: Session) -> None:
        self._document = await self._sync.fetch(session.user_id)

    def _reset_document(self, reason: str) -> None:
        # Caches are left alone; pending remote writes still complete
        self._sync.unbind()
        self._document = build_default_document(currency=self._default_currency)
        self._audit.log_document_reset(reason)

    # -------------------------------------------------------------------------
    # Pipeline helpers
    # -------------------------------------------------------------------------

    def _guard(self, operation: str) -> Optional[OperationResult]:
        try:
            self._gate.require_authenticated()
        except NotAuthenticatedError as e:
            return self._refuse(operation, e.message)
        return None

    def _refuse(self, operation: str, message: str) -> OperationResult:
        self._audit.log_operation_refused(operation, message)
        self._notifier.error(message)
        return OperationResult.refused(message)

    async def _commit(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        message: str,
        immediate: bool = False,
    ) -> OperationResult:
        self._document.touch()
        self._audit.log_entity_changed(action, entity_type, entity_id, self._gate.user_id)
        await self._sync.save(self._document, immediate=immediate)
        return OperationResult.ok(message, entity_id)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def add_transaction(
        self,
        *,
        date: Any,
        type: Any,
        amount: Any,
        account_id: str,
        category_id: str,
        note: str = "",
    ) -> OperationResult:
        refused = self._guard("add_transaction")
        if refused:
            return refused
        try:
            values = validate_transaction_form(
                self._document,
                date=date,
                type=type,
                amount=amount,
                account_id=account_id,
                category_id=category_id,
                note=note,
                note_max_length=self._note_max_length,
            )
        except FormValidationError as e:
            return self._refuse("add_transaction", e.message)

        now = format_timestamp()
        transaction = Transaction(id=new_id("txn"), created_at=now, updated_at=now, **values)
        self._document.transactions.append(transaction)
        return await self._commit("create", "transaction", transaction.id, "Transaction added")

    async def update_transaction(
        self,
        transaction_id: str,
        *,
        date: Any = None,
        type: Any = None,
        amount: Any = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> OperationResult:
        refused = self._guard("update_transaction")
        if refused:
            return refused
        existing = self._document.find_transaction(transaction_id)
        if existing is None:
            return self._refuse("update_transaction", "Transaction not found")
        try:
            values = validate_transaction_form(
                self._document,
                date=_pick(date, existing.date),
                type=_pick(type, existing.type),
                amount=_pick(amount, existing.amount),
                account_id=_pick(account_id, existing.account_id),
                category_id=_pick(category_id, existing.category_id),
                note=_pick(note, existing.note),
                note_max_length=self._note_max_length,
            )
        except FormValidationError as e:
            return self._refuse("update_transaction", e.message)

        for field, value in values.items():
            setattr(existing, field, value)
        existing.updated_at = format_timestamp()
        return await self._commit("update", "transaction", existing.id, "Transaction updated")

    async def delete_transaction(self, transaction_id: str) -> OperationResult:
        refused = self._guard("delete_transaction")
        if refused:
            return refused
        existing = self._document.find_transaction(transaction_id)
        if existing is None:
            return self._refuse("delete_transaction", "Transaction not found")
        self._document.transactions.remove(existing)
        return await self._commit("delete", "transaction", transaction_id, "Transaction deleted")

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def add_account(
        self,
        *,
        name: str,
        initial_balance: Any = 0,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> OperationResult:
        refused = self._guard("add_account")
        if refused:
            return refused
        try:
            values = validate_account_form(
                self._document, name=name, initial_balance=initial_balance
            )
        except FormValidationError as e:
            return self._refuse("add_account", e.message)

        account = Account(
            id=new_id("acc"),
            icon=icon or DEFAULT_ACCOUNT_ICON,
            color=color or DEFAULT_ACCOUNT_COLOR,
            **values,
        )
        self._document.accounts.append(account)
        return await self._commit("create", "account", account.id, "Account added")

    async def update_account(
        self,
        account_id: str,
        *,
        name: Optional[str] = None,
        initial_balance: Any = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> OperationResult:
        refused = self._guard("update_account")
        if refused:
            return refused
        account = self._document.find_account(account_id)
        if account is None:
            return self._refuse("update_account", "Account not found")
        try:
            values = validate_account_form(
                self._document,
                name=_pick(name, account.name),
                initial_balance=_pick(initial_balance, account.initial_balance),
                exclude_id=account_id,
            )
        except FormValidationError as e:
            return self._refuse("update_account", e.message)

        account.name = values["name"]
        account.initial_balance = values["initial_balance"]
        account.icon = icon or account.icon
        account.color = color or account.color
        return await self._commit("update", "account", account_id, "Account updated")

    async def delete_account(self, account_id: str) -> OperationResult:
        refused = self._guard("delete_account")
        if refused:
            return refused
        try:
            account = ensure_account_deletable(self._document, account_id)
        except FormValidationError as e:
            return self._refuse("delete_account", e.message)
        self._document.accounts.remove(account)
        return await self._commit("delete", "account", account_id, "Account deleted")

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def add_category(
        self,
        *,
        name: str,
        type: Any,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> OperationResult:
        refused = self._guard("add_category")
        if refused:
            return refused
        try:
            values = validate_category_form(self._document, name=name, type=type)
        except FormValidationError as e:
            return self._refuse("add_category", e.message)

        category = Category(
            id=new_id("cat"),
            icon=icon or DEFAULT_CATEGORY_ICON,
            color=color or DEFAULT_CATEGORY_COLOR,
            **values,
        )
        self._document.categories.append(category)
        return await self._commit("create", "category", category.id, "Category added")

    async def update_category(
        self,
        category_id: str,
        *,
        name: Optional[str] = None,
        type: Any = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> OperationResult:
        refused = self._guard("update_category")
        if refused:
            return refused
        category = self._document.find_category(category_id)
        if category is None:
            return self._refuse("update_category", "Category not found")
        try:
            values = validate_category_form(
                self._document,
                name=_pick(name, category.name),
                type=_pick(type, category.type),
                exclude_id=category_id,
            )
            ensure_category_type_change_allowed(self._document, category, values["type"])
        except FormValidationError as e:
            return self._refuse("update_category", e.message)

        category.name = values["name"]
        category.type = values["type"]
        category.icon = icon or category.icon
        category.color = color or category.color
        return await self._commit("update", "category", category_id, "Category updated")

    async def delete_category(self, category_id: str) -> OperationResult:
        refused = self._guard("delete_category")
        if refused:
            return refused
        try:
            category = ensure_category_deletable(self._document, category_id)
        except FormValidationError as e:
            return self._refuse("delete_category", e.message)
        self._document.categories.remove(category)
        return await self._commit("delete", "category", category_id, "Category deleted")

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def _find_budget_for(self, month: str, category_id: str) -> Optional[Budget]:
        return next(
            (b for b in self._document.budgets if b.month == month and b.category_id == category_id),
            None,
        )

    async def set_budget(self, *, month: str, category_id: str, amount: Any) -> OperationResult:
        """Create the month's budget for a category, or replace its amount."""
        refused = self._guard("set_budget")
        if refused:
            return refused
        try:
            values = validate_budget_form(
                self._document, month=month, category_id=category_id, amount=amount
            )
        except FormValidationError as e:
            return self._refuse("set_budget", e.message)

        now = format_timestamp()
        existing = self._find_budget_for(values["month"], values["category_id"])
        if existing is not None:
            existing.amount = values["amount"]
            existing.updated_at = now
            return await self._commit("update", "budget", existing.id, "Budget updated")

        budget = Budget(id=new_id("bgt"), created_at=now, updated_at=now, **values)
        self._document.budgets.append(budget)
        return await self._commit("create", "budget", budget.id, "Budget set")

    async def update_budget(
        self,
        budget_id: str,
        *,
        month: Optional[str] = None,
        category_id: Optional[str] = None,
        amount: Any = None,
    ) -> OperationResult:
        refused = self._guard("update_budget")
        if refused:
            return refused
        budget = self._document.find_budget(budget_id)
        if budget is None:
            return self._refuse("update_budget", "Budget not found")
        try:
            values = validate_budget_form(
                self._document,
                month=_pick(month, budget.month),
                category_id=_pick(category_id, budget.category_id),
                amount=_pick(amount, budget.amount),
            )
        except FormValidationError as e:
            return self._refuse("update_budget", e.message)

        clash = self._find_budget_for(values["month"], values["category_id"])
        if clash is not None and clash.id != budget_id:
            return self._refuse(
                "update_budget", "A budget for this category and month already exists"
            )

        for field, value in values.items():
            setattr(budget, field, value)
        budget.updated_at = format_timestamp()
        return await self._commit("update", "budget", budget_id, "Budget updated")

    async def delete_budget(self, budget_id: str) -> OperationResult:
        refused = self._guard("delete_budget")
        if refused:
            return refused
        budget = self._document.find_budget(budget_id)
        if budget is None:
            return self._refuse("delete_budget", "Budget not found")
        self._document.budgets.remove(budget)
        return await self._commit("delete", "budget", budget_id, "Budget deleted")

    # -------------------------------------------------------------------------
    # Data management
    # -------------------------------------------------------------------------

    async def import_data(self, text: str) -> OperationResult:
        """Replace the whole document with an export file's contents."""
        refused = self._guard("import_data")
        if refused:
            return refused
        try:
            document = parse_import(text)
        except ImportRejectedError as e:
            self._audit.log_import_rejected(str(e))
            self._notifier.error(f"Import failed: {e}")
            return OperationResult.refused(f"Import failed: {e}")

        self._document = document
        self._document.touch()
        await self._sync.save(self._document, immediate=True)
        counts = {
            "accounts": len(document.accounts),
            "categories": len(document.categories),
            "transactions": len(document.transactions),
            "budgets": len(document.budgets),
        }
        self._audit.log_import_completed(self._gate.user_id, counts)
        message = f"Imported {counts['transactions']} transaction(s)"
        self._notifier.success(message)
        return OperationResult.ok(message)

    async def import_file(self, path: Union[str, Path]) -> OperationResult:
        refused = self._guard("import_file")
        if refused:
            return refused
        try:
            text = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self._audit.log_import_rejected(str(e))
            return self._refuse("import_file", "Could not read the selected file")
        return await self.import_data(text)

    async def export_data(self) -> OperationResult:
        """The document as backup JSON, returned in `OperationResult.data`."""
        refused = self._guard("export_data")
        if refused:
            return refused
        text = export_document(self._document, user_email=self._gate.email)
        self._audit.log_export_completed(self._gate.user_id, len(text.encode("utf-8")))
        return OperationResult.ok("Data exported", data=text)

    async def clear_data(self) -> OperationResult:
        refused = self._guard("clear_data")
        if refused:
            return refused
        self._document = build_default_document(currency=self._document.settings.currency)
        self._audit.log_document_cleared(self._gate.user_id)
        await self._sync.save(self._document, immediate=True)
        self._notifier.success("All data cleared")
        return OperationResult.ok("All data cleared")

    async def sync_now(self) -> OperationResult:
        """Push pending changes, then reload the document from the remote store."""
        refused = self._guard("sync_now")
        if refused:
            return refused
        if not self._sync.is_online:
            return OperationResult.ok("Working offline, data is kept on this device")

        await self._sync.flush()
        if self._sync.status == SyncStatus.FAILED:
            return OperationResult.refused("Cloud sync failed, local data kept")

        self._document = await self._sync.fetch()
        if self._sync.status == SyncStatus.FAILED:
            return OperationResult.refused("Could not reach the cloud, showing local data")
        return OperationResult.ok("Synced")


def create_app_components(
    settings: Optional[Settings] = None,
    auth_provider: Optional[AuthProviderInterface] = None,
    remote_storage: Optional[DocumentStorageInterface] = None,
    use_remote: bool = True,
) -> LedgerController:
    """
    Factory function to create a fully wired controller.

    Args:
        settings: Settings to use; defaults to get_settings()
        auth_provider: Auth backend; defaults to LocalAuthProvider
        remote_storage: Remote store; defaults to Google Sheets when it
                        is configured
        use_remote: Set to False to run on the local cache only

    Returns:
        A LedgerController; call `await controller.start()` next
    """
    settings = settings or get_settings()
    app_settings = settings.app
    sync_settings = settings.sync
    configure_logging(app_settings.log_level)

    audit_logger = AuditLogger()
    notifier = Notifier()
    cache = LocalCacheStore(
        JsonFileKeyValueStore(sync_settings.cache_path),
        sync_settings.cache_key,
        notifier=notifier,
        audit_logger=audit_logger,
    )

    storage = remote_storage
    if storage is None and use_remote:
        try:
            storage = GoogleSheetsDocumentStorage(GoogleSheetsClient(settings.google_sheets))
        except ValidationError as e:
            # Sheets not configured - run on the local cache only
            logger.warning("remote_storage_not_configured", error=str(e))
            storage = None

    sync_client = RemoteSyncClient(
        storage,
        cache,
        notifier=notifier,
        audit_logger=audit_logger,
        debounce_seconds=sync_settings.debounce_seconds,
        default_currency=app_settings.default_currency,
    )

    return LedgerController(
        sync_client,
        cache,
        auth_provider or LocalAuthProvider(),
        notifier=notifier,
        audit_logger=audit_logger,
        min_password_length=settings.auth.min_password_length,
        note_max_length=app_settings.note_max_length,
        default_currency=app_settings.default_currency,
    )
