"""
Integration tests for LedgerController.

Flows run end to end against in-memory auth, cache and remote storage.
"""

import asyncio
import json

import pytest

from ledger_sync.config import Settings
from ledger_sync.models.document import Document, build_default_document
from ledger_sync.models.notification import NotificationLevel
from ledger_sync.orchestrator import create_app_components
from ledger_sync.services.auth import LocalAuthProvider
from ledger_sync.services.storage import InMemoryDocumentStorage, RemoteRecord
from ledger_sync.services.sync import SyncStatus
from ledger_sync.session import SessionState

from tests.conftest import (
    CACHE_KEY,
    DEBOUNCE,
    TEST_EMAIL,
    TEST_PASSWORD,
    CountingAuthProvider,
    FailingDocumentStorage,
    build_controller,
)


async def add_lunch(controller, amount="12.345", account_id="cash"):
    return await controller.add_transaction(
        date="2024-05-01",
        type="expense",
        amount=amount,
        account_id=account_id,
        category_id="expense_food",
        note="lunch",
    )


def export_payload(**overrides) -> str:
    payload = build_default_document().to_payload()
    payload.update(overrides)
    return json.dumps(payload)


class UnlockSpyStorage(InMemoryDocumentStorage):
    """Records whether the controller was unlocked at each upsert."""

    def __init__(self):
        super().__init__()
        self.controller = None
        self.unlocked_at_upsert: list[bool] = []

    async def upsert(self, record: RemoteRecord) -> bool:
        self.unlocked_at_upsert.append(self.controller.is_unlocked)
        return await super().upsert(record)


class TestGating:
    """Mutations are refused while locked."""

    @pytest.mark.asyncio
    async def test_locked_mutation_has_no_side_effect(self, controller, kv, notifier):
        """Test a refused add leaves the document and cache untouched."""
        await controller.start()
        result = await add_lunch(controller)
        assert result.success is False
        assert controller.document.transactions == []
        assert kv.get(CACHE_KEY) is None
        assert notifier.latest.level == NotificationLevel.ERROR
        await controller.shutdown()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "operation, kwargs",
        [
            ("delete_account", {"account_id": "cash"}),
            ("set_budget", {"month": "2024-05", "category_id": "expense_food", "amount": 1}),
            ("import_data", {"text": "{}"}),
            ("export_data", {}),
            ("clear_data", {}),
            ("sync_now", {}),
        ],
    )
    async def test_all_mutations_gated(self, controller, operation, kwargs):
        """Test every data operation checks the gate."""
        result = await getattr(controller, operation)(**kwargs)
        assert result.success is False
        assert "sign in" in result.message


class TestSessionFlow:
    """Sign-in, first login and sign-out."""

    @pytest.mark.asyncio
    async def test_first_login_writes_default_row_before_unlock(self, kv):
        """Test the remote default row exists before operations unlock."""
        storage = UnlockSpyStorage()
        controller = build_controller(storage, kv, CountingAuthProvider())
        storage.controller = controller
        await controller.start()

        result = await controller.sign_up(TEST_EMAIL, TEST_PASSWORD)
        assert result.success
        assert storage.unlocked_at_upsert == [False]
        assert controller.is_unlocked
        assert result.entity_id in storage.records()
        await controller.shutdown()

    @pytest.mark.asyncio
    async def test_sign_in_loads_remote_document(self, remote, kv, auth_provider):
        """Test signing in replaces the in-memory document with the remote one."""
        signup = await auth_provider.sign_up(TEST_EMAIL, TEST_PASSWORD)
        await auth_provider.sign_out()
        payload = build_default_document(currency="USD").to_payload()
        await remote.upsert(RemoteRecord(user_id=signup.session.user_id, payload=payload))

        controller = build_controller(remote, kv, auth_provider)
        await controller.start()
        assert (await controller.sign_in(TEST_EMAIL, TEST_PASSWORD)).success
        assert controller.document.settings.currency == "USD"
        await controller.shutdown()

    @pytest.mark.asyncio
    async def test_sign_out_resets_but_keeps_cache(self, unlocked, kv):
        """Test sign-out shows defaults while the cache keeps the user's data."""
        await add_lunch(unlocked)
        await unlocked.sign_out()
        assert unlocked.state == SessionState.ANONYMOUS
        assert unlocked.document.transactions == []
        assert "lunch" in kv.get(CACHE_KEY)

    @pytest.mark.asyncio
    async def test_start_restores_provider_session(self, remote, kv, auth_provider):
        """Test an existing session unlocks at start-up."""
        await auth_provider.sign_up(TEST_EMAIL, TEST_PASSWORD)
        controller = build_controller(remote, kv, auth_provider)
        await controller.start()
        assert controller.is_unlocked
        assert controller.user_email == TEST_EMAIL
        await controller.shutdown()

    @pytest.mark.asyncio
    async def test_edits_survive_auth_events_from_earlier_session(self, unlocked, remote):
        """Test queued events from a previous session do not reset a newer one."""
        await unlocked._gate.drain()
        await unlocked.sign_out()
        assert (await unlocked.sign_in(TEST_EMAIL, TEST_PASSWORD)).success
        await unlocked.add_account(name="Fresh")
        await unlocked._gate.drain()

        assert unlocked.is_unlocked
        assert unlocked.document.accounts[-1].name == "Fresh"
        assert not any("session has ended" in n.message for n in unlocked.notifications)
        await unlocked.sync_now()
        assert unlocked.document.accounts[-1].name == "Fresh"
        stored = next(iter(remote.records().values()))
        assert stored.payload["accounts"][-1]["name"] == "Fresh"



class TestTransactions:
    """Transaction operations and the save pipeline."""

    @pytest.mark.asyncio
    async def test_add_transaction(self, unlocked, kv):
        """Test a valid transaction is stored rounded and cached."""
        result = await add_lunch(unlocked)
        assert result.success
        transaction = unlocked.document.find_transaction(result.entity_id)
        assert transaction.amount == 12.35
        assert result.entity_id in kv.get(CACHE_KEY)

    @pytest.mark.asyncio
    async def test_invalid_transaction_refused(self, unlocked):
        """Test validation failures do not mutate the document."""
        result = await add_lunch(unlocked, amount="-5")
        assert result.success is False
        assert unlocked.document.transactions == []

    @pytest.mark.asyncio
    async def test_edits_coalesce_into_one_upsert(self, unlocked, remote):
        """Test two quick edits cause a single remote write."""
        assert remote.upsert_calls == 1  # first-login default row
        await add_lunch(unlocked)
        await add_lunch(unlocked, amount=3)
        await asyncio.sleep(DEBOUNCE * 4)
        assert remote.upsert_calls == 2
        stored = next(iter(remote.records().values()))
        assert len(stored.payload["transactions"]) == 2

    @pytest.mark.asyncio
    async def test_update_transaction(self, unlocked):
        """Test partial edits keep unspecified fields."""
        created = await add_lunch(unlocked)
        result = await unlocked.update_transaction(created.entity_id, amount="20", note="dinner")
        assert result.success
        transaction = unlocked.document.find_transaction(created.entity_id)
        assert transaction.amount == 20.0
        assert transaction.note == "dinner"
        assert transaction.category_id == "expense_food"

    @pytest.mark.asyncio
    async def test_update_with_mismatched_category_refused(self, unlocked):
        """Test switching to an income category without changing type fails."""
        created = await add_lunch(unlocked)
        result = await unlocked.update_transaction(created.entity_id, category_id="income_salary")
        assert result.success is False
        assert unlocked.document.find_transaction(created.entity_id).category_id == "expense_food"

    @pytest.mark.asyncio
    async def test_delete_transaction(self, unlocked):
        """Test deleting a transaction and a missing one."""
        created = await add_lunch(unlocked)
        assert (await unlocked.delete_transaction(created.entity_id)).success
        assert (await unlocked.delete_transaction(created.entity_id)).success is False

    @pytest.mark.asyncio
    async def test_each_save_refreshes_updated_at_once(self, unlocked, kv, monkeypatch):
        """Test add, update and delete each touch meta.updatedAt once and cache it."""
        touches = []
        original_touch = Document.touch

        def counting_touch(document, now=None):
            touches.append(document)
            return original_touch(document, now)

        monkeypatch.setattr(Document, "touch", counting_touch)
        stale = "2000-01-01T00:00:00.000Z"

        unlocked.document.meta.updated_at = stale
        created = await add_lunch(unlocked)
        steps = [
            lambda: unlocked.update_transaction(created.entity_id, note="dinner"),
            lambda: unlocked.delete_transaction(created.entity_id),
        ]
        assert len(touches) == 1
        assert unlocked.document.meta.updated_at != stale
        cached = json.loads(kv.get(CACHE_KEY))
        assert cached["meta"]["updatedAt"] == unlocked.document.meta.updated_at

        for step in steps:
            unlocked.document.meta.updated_at = stale
            touches.clear()
            assert (await step()).success
            assert len(touches) == 1
            assert unlocked.document.meta.updated_at != stale
            cached = json.loads(kv.get(CACHE_KEY))
            assert cached["meta"]["updatedAt"] == unlocked.document.meta.updated_at

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_local_state(self, kv):
        """Test a failing remote leaves the edit cached and warns."""
        first = build_controller(FailingDocumentStorage(), kv, CountingAuthProvider())
        await first.start()
        await first.sign_up(TEST_EMAIL, TEST_PASSWORD)
        await add_lunch(first)
        await first.shutdown()

        assert first.sync_status == SyncStatus.FAILED
        assert any(
            n.level == NotificationLevel.WARNING for n in first.notifications
        )

        # New session, same cache, nobody signed in
        reloaded = build_controller(FailingDocumentStorage(), kv, CountingAuthProvider())
        await reloaded.start()
        assert len(reloaded.document.transactions) == 1
        await reloaded.shutdown()


class TestAccountsAndCategories:
    """Reference protection rules."""

    @pytest.mark.asyncio
    async def test_referenced_account_delete_refused(self, unlocked):
        """Test an account with transactions cannot be deleted."""
        account = await unlocked.add_account(name="Travel Card", initial_balance=100)
        await add_lunch(unlocked, account_id=account.entity_id)
        result = await unlocked.delete_account(account.entity_id)
        assert result.success is False
        assert unlocked.document.find_account(account.entity_id) is not None

    @pytest.mark.asyncio
    async def test_default_account_delete_refused(self, unlocked):
        """Test built-in accounts stay."""
        assert (await unlocked.delete_account("cash")).success is False

    @pytest.mark.asyncio
    async def test_unused_account_deleted(self, unlocked):
        """Test a new, unused account can be removed."""
        account = await unlocked.add_account(name="Piggy Bank")
        assert (await unlocked.delete_account(account.entity_id)).success
        assert unlocked.document.find_account(account.entity_id) is None

    @pytest.mark.asyncio
    async def test_update_account(self, unlocked):
        """Test renaming and duplicate-name refusal."""
        account = await unlocked.add_account(name="Piggy Bank")
        assert (await unlocked.update_account(account.entity_id, name="Jar")).success
        assert unlocked.document.find_account(account.entity_id).name == "Jar"
        assert (await unlocked.update_account(account.entity_id, name="cash")).success is False

    @pytest.mark.asyncio
    async def test_category_type_change_refused_when_used(self, unlocked):
        """Test a referenced category keeps its type."""
        category = await unlocked.add_category(name="Pets", type="expense")
        await unlocked.add_transaction(
            date="2024-05-01", type="expense", amount=5,
            account_id="cash", category_id=category.entity_id,
        )
        result = await unlocked.update_category(category.entity_id, type="income")
        assert result.success is False
        assert (await unlocked.update_category(category.entity_id, name="Pet Care")).success

    @pytest.mark.asyncio
    async def test_delete_category(self, unlocked):
        """Test default categories stay and unused custom ones go."""
        assert (await unlocked.delete_category("expense_food")).success is False
        category = await unlocked.add_category(name="Gifts", type="income")
        assert (await unlocked.delete_category(category.entity_id)).success


class TestBudgets:
    """Budget upsert semantics."""

    @pytest.mark.asyncio
    async def test_set_budget_upserts_by_month_and_category(self, unlocked):
        """Test a second set_budget replaces the amount."""
        first = await unlocked.set_budget(month="2024-05", category_id="expense_food", amount=500)
        second = await unlocked.set_budget(month="2024-05", category_id="expense_food", amount=650)
        assert first.entity_id == second.entity_id
        assert len(unlocked.document.budgets) == 1
        assert unlocked.document.budgets[0].amount == 650

    @pytest.mark.asyncio
    async def test_update_budget_clash_refused(self, unlocked):
        """Test moving a budget onto an existing month/category fails."""
        may = await unlocked.set_budget(month="2024-05", category_id="expense_food", amount=500)
        june = await unlocked.set_budget(month="2024-06", category_id="expense_food", amount=500)
        result = await unlocked.update_budget(june.entity_id, month="2024-05")
        assert result.success is False
        assert (await unlocked.update_budget(may.entity_id, amount=100)).success
        assert (await unlocked.delete_budget(june.entity_id)).success


class TestDataManagement:
    """Import, export, clear and manual sync."""

    @pytest.mark.asyncio
    async def test_import_rejects_bad_json(self, unlocked):
        """Test unparsable imports leave the document alone."""
        await add_lunch(unlocked)
        result = await unlocked.import_data("{broken")
        assert result.success is False
        assert len(unlocked.document.transactions) == 1

    @pytest.mark.asyncio
    async def test_import_drops_invalid_transaction_and_writes_immediately(self, unlocked, remote):
        """Test imports are normalized and pushed without waiting."""
        text = export_payload(transactions=[
            {"id": "good", "date": "2024-05-01", "type": "expense", "amount": 8,
             "accountId": "cash", "categoryId": "expense_food"},
            {"id": "bad", "date": "2024-05-01", "type": "expense", "amount": 8,
             "accountId": "missing", "categoryId": "expense_food"},
        ])
        calls_before = remote.upsert_calls
        result = await unlocked.import_data(text)
        assert result.success
        assert [t.id for t in unlocked.document.transactions] == ["good"]
        assert remote.upsert_calls == calls_before + 1

    @pytest.mark.asyncio
    async def test_import_file(self, unlocked, tmp_path):
        """Test importing from a file on disk."""
        path = tmp_path / "backup.json"
        path.write_text(export_payload(), encoding="utf-8")
        assert (await unlocked.import_file(path)).success
        assert (await unlocked.import_file(tmp_path / "missing.json")).success is False

    @pytest.mark.asyncio
    async def test_export(self, unlocked):
        """Test export carries the document and metadata."""
        await add_lunch(unlocked)
        result = await unlocked.export_data()
        data = json.loads(result.data)
        assert data["userEmail"] == TEST_EMAIL
        assert "exportedAt" in data
        assert data["transactions"][0]["accountId"] == "cash"

    @pytest.mark.asyncio
    async def test_clear_data(self, unlocked, remote):
        """Test clearing resets to defaults and writes remotely at once."""
        await add_lunch(unlocked)
        calls_before = remote.upsert_calls
        assert (await unlocked.clear_data()).success
        assert unlocked.document.transactions == []
        assert remote.upsert_calls == calls_before + 1
        stored = next(iter(remote.records().values()))
        assert stored.payload["transactions"] == []

    @pytest.mark.asyncio
    async def test_sync_now_pulls_remote_changes(self, unlocked, remote):
        """Test manual sync loads what another device wrote."""
        user_id = next(iter(remote.records()))
        payload = build_default_document(currency="GBP").to_payload()
        await remote.upsert(RemoteRecord(user_id=user_id, payload=payload))
        result = await unlocked.sync_now()
        assert result.success
        assert unlocked.document.settings.currency == "GBP"

    @pytest.mark.asyncio
    async def test_overview(self, unlocked):
        """Test the overview reflects the document."""
        await add_lunch(unlocked)
        summary = unlocked.overview("2024-05")
        assert summary.totals.expense == 12.35
        assert summary.currency == "CNY"


class TestFactory:
    """create_app_components wiring."""

    @pytest.mark.asyncio
    async def test_offline_when_sheets_not_configured(self, tmp_path, monkeypatch):
        """Test the app runs on the local cache when Sheets is not set up."""
        monkeypatch.setenv("LEDGER_SYNC_CACHE_PATH", str(tmp_path / "cache.json"))
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        monkeypatch.chdir(tmp_path)

        controller = create_app_components(
            settings=Settings(),
            auth_provider=LocalAuthProvider(rounds=4),
        )
        await controller.start()
        assert controller.sync_status == SyncStatus.OFFLINE
        assert (await controller.sign_up(TEST_EMAIL, TEST_PASSWORD)).success
        assert (await add_lunch(controller)).success
        assert (tmp_path / "cache.json").exists()
        await controller.shutdown()

    @pytest.mark.asyncio
    async def test_explicit_remote_storage(self, tmp_path, monkeypatch):
        """Test a supplied remote store is used."""
        monkeypatch.setenv("LEDGER_SYNC_CACHE_PATH", str(tmp_path / "cache.json"))
        storage = InMemoryDocumentStorage()
        controller = create_app_components(
            settings=Settings(),
            auth_provider=LocalAuthProvider(rounds=4),
            remote_storage=storage,
        )
        await controller.start()
        await controller.sign_up(TEST_EMAIL, TEST_PASSWORD)
        assert storage.upsert_calls == 1
        await controller.shutdown()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
