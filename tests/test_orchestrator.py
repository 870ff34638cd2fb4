"""
Tests for the finance session.

Uses in-memory storage; failures are injected with fail_next().
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finance_tracker.audit import AuditLogger
from finance_tracker.errors import (
    CategoryInUse,
    CategoryTypeMismatch,
    InvalidAmount,
    PersistenceFailure,
    RecordNotFound,
)
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import (
    CategoryType,
    ReportTimeframe,
    TransactionDraft,
    TransactionQuery,
    TransactionType,
    UserSettings,
)
from finance_tracker.orchestrator import FinanceSession, create_app_components
from finance_tracker.services.storage import (
    InMemoryFinanceStorage,
    IntegrityError,
    StorageError,
)

from conftest import make_category, make_transaction


REFERENCE = date(2026, 10, 17)


def draft(category_id, **overrides) -> TransactionDraft:
    data = dict(
        transaction_date=date(2026, 10, 5),
        type=TransactionType.EXPENSE,
        category_id=category_id,
        description="Papier",
        amount="100",
    )
    data.update(overrides)
    return TransactionDraft(**data)


def event_types(audit_storage) -> list:
    return [e.event_type for e in audit_storage.events]


@pytest.fixture
def office(session):
    return asyncio.run(session.add_category(make_category("Büro", CategoryType.EXPENSE)))


class TestAddTransaction:
    """Form → validate → calculate → storage → store."""

    def test_auto_vat(self, session, storage, audit_storage, office):
        stored = asyncio.run(session.add_transaction(draft(office.id)))

        assert stored.vat == Decimal("19.00")
        assert stored.total_amount == Decimal("119.00")
        assert session.store.all() == [stored]
        assert asyncio.run(storage.list_transactions("user-1")) == [stored]
        assert AuditEventType.TRANSACTION_CREATED in event_types(audit_storage)

    def test_storage_failure_leaves_store_unchanged(
        self, session, storage, audit_storage, office
    ):
        storage.fail_next("insert_transaction")

        with pytest.raises(PersistenceFailure) as exc_info:
            asyncio.run(session.add_transaction(draft(office.id)))

        assert exc_info.value.user_message.startswith("Error adding transaction")
        assert isinstance(exc_info.value.__cause__, StorageError)
        assert len(session.store) == 0
        assert AuditEventType.PERSISTENCE_FAILED in event_types(audit_storage)

    def test_non_applicable_category_has_no_vat(self, session):
        insurance = asyncio.run(session.add_category(
            make_category("Versicherung", CategoryType.EXPENSE, vat_applicable=False)
        ))

        stored = asyncio.run(session.add_transaction(draft(insurance.id)))

        assert stored.vat == Decimal("0.00")
        assert stored.total_amount == Decimal("100.00")

    def test_manual_vat(self, session, storage, office):
        asyncio.run(session.update_settings(UserSettings(auto_vat=False)))

        stored = asyncio.run(session.add_transaction(
            draft(office.id, amount="50", manual_vat="5")
        ))

        assert stored.vat == Decimal("5.00")
        assert stored.total_amount == Decimal("55.00")
        assert asyncio.run(storage.get_user_settings("user-1")).auto_vat is False

    def test_vat_exempt(self, session, office):
        stored = asyncio.run(session.add_transaction(draft(office.id, vat_exempt=True)))

        assert stored.vat_exempt is True
        assert stored.vat == Decimal("0.00")

    def test_type_mismatch_stores_nothing(self, session, storage, audit_storage, office):
        with pytest.raises(CategoryTypeMismatch):
            asyncio.run(session.add_transaction(
                draft(office.id, type=TransactionType.REVENUE)
            ))

        assert len(session.store) == 0
        assert asyncio.run(storage.list_transactions("user-1")) == []
        assert AuditEventType.VALIDATION_FAILED in event_types(audit_storage)

    def test_three_decimal_amount_rounds_after_vat(self, session, office):
        stored = asyncio.run(session.add_transaction(draft(office.id, amount="10.005")))

        assert stored.amount == Decimal("10.01")
        assert stored.vat == Decimal("1.90")
        assert stored.total_amount == Decimal("11.91")

    def test_invalid_amount(self, session, office):
        with pytest.raises(InvalidAmount):
            asyncio.run(session.add_transaction(draft(office.id, amount="-3")))
        assert len(session.store) == 0

    def test_unknown_category(self, session):
        with pytest.raises(RecordNotFound):
            asyncio.run(session.add_transaction(draft(uuid4())))

    def test_preview(self, session, office):
        preview = session.preview_amounts("99,95", office.id)

        assert preview.vat == Decimal("18.99")
        assert preview.total == Decimal("118.94")

    def test_applicable_categories(self, session, office):
        sales = asyncio.run(session.add_category(make_category("Umsatz", CategoryType.REVENUE)))

        assert session.applicable_categories(TransactionType.REVENUE) == [sales]
        assert session.applicable_categories(TransactionType.EXPENSE) == [office]


class TestUpdateAndDeleteTransaction:
    """Edits recompute derived amounts; failures change nothing."""

    @pytest.fixture
    def stored(self, session, office):
        return asyncio.run(session.add_transaction(draft(office.id)))

    def test_amount_change_recomputes_vat(self, session, stored):
        updated = asyncio.run(session.update_transaction(stored.id, {"amount": "200"}))

        assert updated.amount == Decimal("200.00")
        assert updated.vat == Decimal("38.00")
        assert updated.total_amount == Decimal("238.00")
        assert session.store.get(stored.id) == updated

    def test_description_change_keeps_amounts(self, session, stored):
        updated = asyncio.run(session.update_transaction(stored.id, {"description": "Toner"}))

        assert updated.description == "Toner"
        assert updated.vat == stored.vat
        assert updated.total_amount == stored.total_amount
        assert updated.created_at == stored.created_at

    def test_mark_exempt(self, session, stored):
        updated = asyncio.run(session.update_transaction(stored.id, {"vat_exempt": True}))

        assert updated.vat == Decimal("0.00")
        assert updated.total_amount == Decimal("100.00")

    def test_type_mismatch(self, session, audit_storage, stored):
        with pytest.raises(CategoryTypeMismatch):
            asyncio.run(session.update_transaction(
                stored.id, {"type": TransactionType.REVENUE}
            ))
        assert session.store.get(stored.id) == stored
        assert AuditEventType.VALIDATION_FAILED in event_types(audit_storage)

    def test_unknown_transaction(self, session):
        with pytest.raises(RecordNotFound):
            asyncio.run(session.update_transaction(uuid4(), {"description": "x"}))

    def test_update_failure_keeps_old_values(self, session, storage, stored):
        storage.fail_next("update_transaction")

        with pytest.raises(PersistenceFailure):
            asyncio.run(session.update_transaction(stored.id, {"amount": "500"}))

        assert session.store.get(stored.id).amount == Decimal("100.00")

    def test_delete(self, session, storage, audit_storage, stored):
        assert asyncio.run(session.delete_transaction(stored.id)) is True

        assert len(session.store) == 0
        assert asyncio.run(storage.list_transactions("user-1")) == []
        assert AuditEventType.TRANSACTION_DELETED in event_types(audit_storage)

    def test_delete_failure_keeps_transaction(self, session, storage, stored):
        storage.fail_next("delete_transaction")

        with pytest.raises(PersistenceFailure):
            asyncio.run(session.delete_transaction(stored.id))

        assert session.store.get(stored.id) == stored


class TestCategories:
    """Category edits and the deletion guard."""

    def test_blocked_delete_reports_count(self, session, storage, audit_storage, office):
        asyncio.run(session.add_transaction(draft(office.id)))
        asyncio.run(session.add_transaction(draft(office.id, description="Toner")))

        with pytest.raises(CategoryInUse) as exc_info:
            asyncio.run(session.delete_category(office.id))

        assert exc_info.value.count == 2
        assert "2 transactions" in exc_info.value.user_message
        assert session.registry.get(office.id) == office
        assert len(asyncio.run(storage.list_categories("user-1"))) == 1
        assert AuditEventType.CATEGORY_DELETE_BLOCKED in event_types(audit_storage)

    def test_references_not_loaded_still_block(self, session, storage, office):
        # Written by another device after this session loaded
        asyncio.run(storage.insert_transaction("user-1", make_transaction(office.id)))

        with pytest.raises(CategoryInUse) as exc_info:
            asyncio.run(session.delete_category(office.id))

        assert exc_info.value.count == 1
        assert len(session.store) == 0

    def test_integrity_error_maps_to_in_use(self, session, storage, office):
        storage.fail_next("delete_category", IntegrityError("foreign key"))

        with pytest.raises(CategoryInUse) as exc_info:
            asyncio.run(session.delete_category(office.id))

        assert exc_info.value.count == 1
        assert session.registry.get(office.id) == office

    def test_storage_failure_on_delete(self, session, storage, office):
        storage.fail_next("delete_category")

        with pytest.raises(PersistenceFailure):
            asyncio.run(session.delete_category(office.id))

        assert session.registry.get(office.id) == office

    def test_unused_category_deleted(self, session, storage, audit_storage, office):
        assert asyncio.run(session.delete_category(office.id)) is True

        assert len(session.registry) == 0
        assert asyncio.run(storage.list_categories("user-1")) == []
        assert AuditEventType.CATEGORY_DELETED in event_types(audit_storage)

    def test_update_category(self, session, storage, office):
        updated = asyncio.run(session.update_category(
            office.id, {"name": "Bürobedarf", "vat_applicable": False}
        ))

        assert session.registry.name_of(office.id) == "Bürobedarf"
        assert updated.created_at == office.created_at
        assert asyncio.run(storage.list_categories("user-1"))[0].vat_applicable is False

    def test_add_category_failure(self, session, storage):
        storage.fail_next("insert_category")

        with pytest.raises(PersistenceFailure):
            asyncio.run(session.add_category(make_category("Reisen")))

        assert len(session.registry) == 0


class TestLateResponses:
    """Results arriving after dispose() are dropped."""

    def test_insert_after_dispose_is_ignored(self, audit_storage):
        class DisposingStorage(InMemoryFinanceStorage):
            session = None

            async def insert_transaction(self, user_id, transaction):
                self.session.dispose()
                return await super().insert_transaction(user_id, transaction)

        storage = DisposingStorage()
        session = FinanceSession("user-1", storage, AuditLogger(audit_storage))
        storage.session = session
        office = asyncio.run(session.add_category(make_category("Büro")))

        result = asyncio.run(session.add_transaction(draft(office.id)))

        assert result is None
        assert session.disposed
        assert len(session.store) == 0
        assert AuditEventType.LATE_RESPONSE_IGNORED in event_types(audit_storage)
        assert AuditEventType.TRANSACTION_CREATED not in event_types(audit_storage)

    def test_failure_after_dispose_is_ignored(self, audit_storage):
        class TimingOutStorage(InMemoryFinanceStorage):
            session = None

            async def insert_transaction(self, user_id, transaction):
                self.session.dispose()
                raise StorageError("timeout")

        storage = TimingOutStorage()
        session = FinanceSession("user-1", storage, AuditLogger(audit_storage))
        storage.session = session
        office = asyncio.run(session.add_category(make_category("Büro")))

        assert asyncio.run(session.add_transaction(draft(office.id))) is None
        assert len(session.store) == 0
        assert AuditEventType.LATE_RESPONSE_IGNORED in event_types(audit_storage)
        assert AuditEventType.PERSISTENCE_FAILED not in event_types(audit_storage)

    def test_category_delete_failure_after_dispose_is_ignored(self, audit_storage):
        class TimingOutStorage(InMemoryFinanceStorage):
            session = None

            async def delete_category(self, user_id, category_id):
                self.session.dispose()
                raise StorageError("timeout")

        storage = TimingOutStorage()
        session = FinanceSession("user-1", storage, AuditLogger(audit_storage))
        storage.session = session
        office = asyncio.run(session.add_category(make_category("Büro")))

        assert asyncio.run(session.delete_category(office.id)) is False
        assert session.registry.get(office.id) == office
        assert AuditEventType.PERSISTENCE_FAILED not in event_types(audit_storage)

    def test_delete_after_dispose_returns_false(self, session, office):
        stored = asyncio.run(session.add_transaction(draft(office.id)))
        session.dispose()

        assert asyncio.run(session.delete_transaction(stored.id)) is False
        assert session.store.get(stored.id) == stored


class TestLoading:
    """Initial fetch of a user's books."""

    def test_load(self, storage, audit_storage):
        office = make_category("Büro")
        asyncio.run(storage.insert_category("user-1", office))
        asyncio.run(storage.insert_transaction("user-1", make_transaction(office.id)))
        asyncio.run(storage.save_user_settings("user-1", UserSettings(auto_vat=False)))
        asyncio.run(storage.insert_category("user-2", make_category("Fremd")))

        session = FinanceSession("user-1", storage, AuditLogger(audit_storage))
        asyncio.run(session.load())

        assert [c.id for c in session.registry.all()] == [office.id]
        assert len(session.store) == 1
        assert session.settings.auto_vat is False
        assert AuditEventType.DATA_LOADED in event_types(audit_storage)

    def test_load_defaults_settings(self, session):
        asyncio.run(session.load())
        assert session.settings == UserSettings()

    def test_failed_load_keeps_state(self, session, storage, office):
        asyncio.run(storage.insert_category("user-1", make_category("Reisen")))
        storage.fail_next("list_transactions")

        with pytest.raises(PersistenceFailure) as exc_info:
            asyncio.run(session.load())

        assert "loading transactions" in exc_info.value.user_message
        assert [c.id for c in session.registry.all()] == [office.id]


class TestReads:
    """Dashboard, reports, search and export from the session state."""

    @pytest.fixture
    def books(self, session, office):
        sales = asyncio.run(session.add_category(make_category("Umsatz", CategoryType.REVENUE)))
        asyncio.run(session.add_transaction(draft(office.id)))
        asyncio.run(session.add_transaction(draft(
            sales.id, type=TransactionType.REVENUE, amount="300", description="Beratung"
        )))
        return office, sales

    def test_report_gross_dashboard_net(self, session, books):
        report = session.report(ReportTimeframe.MONTH, REFERENCE)
        dashboard = session.dashboard(REFERENCE)

        assert report.profit_and_loss.expenses == Decimal("119.00")
        assert report.profit_and_loss.revenue == Decimal("300.00")
        assert dashboard.year_to_date.expenses == Decimal("100.00")
        assert dashboard.current.balance == Decimal("200.00")
        assert dashboard.vat.collected == Decimal("57.00")

    def test_dashboard_month_count_configurable(self, storage):
        session = FinanceSession("user-1", storage, dashboard_months=3)
        assert len(session.dashboard(REFERENCE).buckets) == 3

    def test_search(self, session, books):
        result = session.search(TransactionQuery(search="beratung"))
        assert [t.description for t in result] == ["Beratung"]

    def test_export(self, session, books):
        lines = session.export_csv().splitlines()

        assert lines[0].startswith("Datum;Typ;Kategorie")
        assert len(lines) == 3

    def test_export_filtered(self, session, books):
        query = TransactionQuery(transaction_type=TransactionType.EXPENSE)
        lines = session.export_csv(query).splitlines()

        assert lines[1] == "05.10.2026;Ausgabe;Büro;Papier;100,00;19,00;119,00;"


class TestAppComponents:
    """Factory wiring."""

    def test_memory_backend(self):
        session, sheets_client = create_app_components("memory", "user-x")

        assert sheets_client is None
        assert session.user_id == "user-x"
        assert session.calculator.vat_rate == Decimal("0.19")
        assert not session.disposed


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
