"""
Main Orchestrator for the Finance Tracker

This module ties together all the components and defines the
end-to-end flows for one user's session:
1. Load (storage → category registry + transaction store + settings)
2. Mutate (form → validate → calculate → storage → in-memory state)
3. Read (in-memory state → aggregation engine → dashboard/report)

DESIGN DECISION: The orchestrator enforces the boundaries:
- In-memory state changes only after storage confirms the write
- A failed storage call leaves in-memory state exactly as it was
- Responses arriving after dispose() are logged and dropped
- Every mutation is audited

This is the "glue" that keeps the screens consistent with storage
even when storage calls fail or arrive late.
"""

from datetime import date, datetime, timezone
from typing import Any, Awaitable, Optional, TypeVar
from uuid import UUID

import structlog

from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.calculation.amounts import AmountCalculator, parse_amount, round2
from finance_tracker.config import get_settings
from finance_tracker.errors import CategoryInUse, FinanceTrackerError, PersistenceFailure
from finance_tracker.ledger.registry import CategoryRegistry
from finance_tracker.ledger.store import TransactionStore
from finance_tracker.models.finance import (
    AmountBreakdown,
    Category,
    DashboardSummary,
    PeriodReport,
    RawAmount,
    ReportTimeframe,
    Transaction,
    TransactionDraft,
    TransactionQuery,
    TransactionType,
    UserSettings,
)
from finance_tracker.reports.aggregation import AggregationEngine
from finance_tracker.reports.export import export_transactions_csv
from finance_tracker.services.storage import (
    FinanceStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsFinanceStorage,
    InMemoryAuditStorage,
    InMemoryFinanceStorage,
    IntegrityError,
    StorageError,
)
from finance_tracker.validation import TransactionValidator


T = TypeVar("T")

logger = structlog.get_logger("finance_tracker.orchestrator")

# Changes that require VAT and total to be derived again
_AMOUNT_FIELDS = {"amount", "vat", "vat_exempt", "category_id"}

_IMMUTABLE_FIELDS = {"id", "created_at"}


class FinanceSession:
    """
    One user's view of their books.

    Owns the in-memory CategoryRegistry and TransactionStore and keeps
    them in step with storage. All reads (dashboard, reports, search,
    export) are computed from the in-memory state.
    """

    def __init__(
        self,
        user_id: str,
        storage: FinanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        calculator: Optional[AmountCalculator] = None,
        engine: Optional[AggregationEngine] = None,
        dashboard_months: int = 6,
    ):
        self._user_id = user_id
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._calculator = calculator or AmountCalculator()
        self._engine = engine or AggregationEngine()
        self._dashboard_months = dashboard_months

        self._registry = CategoryRegistry()
        self._store = TransactionStore()
        self._settings = UserSettings()
        self._validator = TransactionValidator(self._registry)
        self._disposed = False

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def registry(self) -> CategoryRegistry:
        return self._registry

    @property
    def store(self) -> TransactionStore:
        return self._store

    @property
    def settings(self) -> UserSettings:
        return self._settings

    @property
    def validator(self) -> TransactionValidator:
        return self._validator

    @property
    def calculator(self) -> AmountCalculator:
        return self._calculator

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """
        Close the session.

        Storage calls already in flight still complete, but their
        results no longer touch the in-memory state.
        """
        self._disposed = True

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _persist(
        self,
        operation: str,
        call: Awaitable[T],
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[T]:
        """
        Await a storage call, turning storage errors into PersistenceFailure.

        A failure that lands after dispose() returns None instead; the
        caller's late-response check then drops it.
        """
        try:
            return await call
        except StorageError as e:
            if self._disposed:
                return None
            await self._audit.log_persistence_failed(
                user_id=self._user_id,
                operation=operation,
                error_message=str(e),
                entity_type=entity_type,
                entity_id=entity_id,
                correlation_id=correlation_id,
            )
            raise PersistenceFailure(operation, str(e)) from e

    async def _arrived_late(
        self,
        operation: str,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """True (and logged) when a response lands after dispose()."""
        if not self._disposed:
            return False
        await self._audit.log_late_response_ignored(
            user_id=self._user_id,
            operation=operation,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        return True

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self, correlation_id: Optional[UUID] = None) -> None:
        """
        Fetch categories, transactions and settings from storage.

        Replaces the in-memory state only when all three reads succeed.

        Raises:
            PersistenceFailure: If any read fails
        """
        correlation_id = correlation_id or create_correlation_id()

        categories = await self._persist(
            "loading categories",
            self._storage.list_categories(self._user_id),
            correlation_id=correlation_id,
        )
        transactions = await self._persist(
            "loading transactions",
            self._storage.list_transactions(self._user_id),
            correlation_id=correlation_id,
        )
        settings = await self._persist(
            "loading settings",
            self._storage.get_user_settings(self._user_id),
            correlation_id=correlation_id,
        )

        if await self._arrived_late("loading data", correlation_id=correlation_id):
            return

        self._registry = CategoryRegistry(categories)
        self._store = TransactionStore(transactions)
        self._settings = settings or UserSettings()
        self._validator = TransactionValidator(self._registry)

        await self._audit.log_data_loaded(
            user_id=self._user_id,
            category_count=len(categories),
            transaction_count=len(transactions),
            correlation_id=correlation_id,
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def preview_amounts(
        self,
        amount: RawAmount,
        category_id: Optional[UUID] = None,
        manual_vat: RawAmount = None,
        vat_exempt: bool = False,
    ) -> AmountBreakdown:
        """
        VAT and total the form shows while the user types.

        Raises:
            InvalidAmount: If the amount is not usable yet
        """
        category = self._registry.get(category_id) if category_id else None
        return self._calculator.compute_for_category(
            amount,
            self._settings,
            manual_vat=manual_vat,
            vat_exempt=vat_exempt,
            category=category,
        )

    async def add_transaction(
        self,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """
        Validate, calculate and store a new transaction.

        Returns:
            The stored transaction, or None if the session was disposed
            before storage answered

        Raises:
            InvalidAmount, RecordNotFound, CategoryTypeMismatch: Bad input
            PersistenceFailure: Storage rejected the write
        """
        correlation_id = correlation_id or create_correlation_id()

        result = self._validator.validate(draft, self._settings)
        if not result.is_valid:
            await self._audit.log_validation_failed(
                user_id=self._user_id,
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.issues
                ],
                correlation_id=correlation_id,
            )
        category = self._validator.ensure_valid(draft)

        amounts = self._calculator.compute_for_category(
            draft.amount,
            self._settings,
            manual_vat=draft.manual_vat,
            vat_exempt=draft.vat_exempt,
            category=category,
        )
        transaction = Transaction(
            transaction_date=draft.transaction_date,
            type=draft.type,
            category_id=category.id,
            description=draft.description,
            amount=round2(parse_amount(draft.amount)),
            vat=amounts.vat,
            total_amount=amounts.total,
            notes=draft.notes,
            invoice_path=draft.invoice_path,
            recurring=draft.recurring,
            recurring_frequency=draft.recurring_frequency,
            vat_exempt=draft.vat_exempt,
        )

        stored = await self._persist(
            "adding transaction",
            self._storage.insert_transaction(self._user_id, transaction),
            entity_type="transaction",
            entity_id=transaction.id,
            correlation_id=correlation_id,
        )
        if await self._arrived_late("adding transaction", transaction.id, correlation_id):
            return None

        self._store.add(stored, assign_identity=False)

        await self._audit.log_transaction_created(
            user_id=self._user_id,
            transaction_id=stored.id,
            transaction_type=stored.type.value,
            amount=str(stored.amount),
            vat=str(stored.vat),
            correlation_id=correlation_id,
        )
        return stored

    def _apply_changes(self, current: Transaction, changes: dict[str, Any]) -> Transaction:
        data = current.model_dump()
        data.update({k: v for k, v in changes.items() if k not in _IMMUTABLE_FIELDS})

        category = None
        if "type" in changes or "category_id" in changes:
            category = self._registry.ensure_compatible(
                data["category_id"], TransactionType(data["type"])
            )

        if _AMOUNT_FIELDS & changes.keys():
            category = category or self._registry.get(data["category_id"])
            amounts = self._calculator.compute_for_category(
                changes.get("amount", current.amount),
                self._settings,
                manual_vat=changes.get("vat", current.vat),
                vat_exempt=data["vat_exempt"],
                category=category,
            )
            data["amount"] = round2(parse_amount(changes.get("amount", current.amount)))
            data["vat"] = amounts.vat
            data["total_amount"] = amounts.total

        data["updated_at"] = datetime.now(timezone.utc)
        return Transaction.model_validate(data)

    async def update_transaction(
        self,
        transaction_id: UUID,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """
        Edit an existing transaction.

        When amount, vat, vat_exempt or category change, VAT and total
        are derived again under the current settings. In manual mode the
        "vat" key is the typed VAT; without it the existing VAT is kept.

        Raises:
            RecordNotFound: Unknown transaction or category
            InvalidAmount, CategoryTypeMismatch: Bad input
            PersistenceFailure: Storage rejected the write
        """
        correlation_id = correlation_id or create_correlation_id()
        current = self._store.require(transaction_id)

        try:
            candidate = self._apply_changes(current, changes)
        except (FinanceTrackerError, ValueError) as e:
            await self._audit.log_validation_failed(
                user_id=self._user_id,
                issues=[{"field": ", ".join(sorted(changes)), "message": str(e)}],
                correlation_id=correlation_id,
            )
            raise

        stored = await self._persist(
            "updating transaction",
            self._storage.update_transaction(self._user_id, candidate),
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
        )
        if await self._arrived_late("updating transaction", transaction_id, correlation_id):
            return None

        self._store.replace(stored)

        await self._audit.log_transaction_updated(
            user_id=self._user_id,
            transaction_id=transaction_id,
            changed_fields=sorted(changes.keys()),
            correlation_id=correlation_id,
        )
        return stored

    async def delete_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete a transaction.

        Raises:
            RecordNotFound: Unknown transaction
            PersistenceFailure: Storage rejected the delete
        """
        correlation_id = correlation_id or create_correlation_id()
        self._store.require(transaction_id)

        await self._persist(
            "deleting transaction",
            self._storage.delete_transaction(self._user_id, transaction_id),
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
        )
        if await self._arrived_late("deleting transaction", transaction_id, correlation_id):
            return False

        deleted = self._store.delete(transaction_id)

        await self._audit.log_transaction_deleted(
            user_id=self._user_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        return deleted

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def add_category(
        self,
        category: Category,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Category]:
        correlation_id = correlation_id or create_correlation_id()

        stored = await self._persist(
            "adding category",
            self._storage.insert_category(self._user_id, category),
            entity_type="category",
            entity_id=category.id,
            correlation_id=correlation_id,
        )
        if await self._arrived_late("adding category", category.id, correlation_id):
            return None

        self._registry.add(stored)

        await self._audit.log_category_created(
            user_id=self._user_id,
            category_id=stored.id,
            name=stored.name,
            category_type=stored.type.value,
            correlation_id=correlation_id,
        )
        return stored

    async def update_category(
        self,
        category_id: UUID,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Category]:
        """
        Edit a category's name, type, color or VAT flag.

        Existing transactions keep their stored VAT; the flag only
        affects transactions computed afterwards.
        """
        correlation_id = correlation_id or create_correlation_id()
        current = self._registry.require(category_id)

        data = current.model_dump()
        data.update({k: v for k, v in changes.items() if k not in _IMMUTABLE_FIELDS})
        candidate = Category.model_validate(data)

        stored = await self._persist(
            "updating category",
            self._storage.update_category(self._user_id, candidate),
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
        )
        if await self._arrived_late("updating category", category_id, correlation_id):
            return None

        self._registry.replace(stored)

        await self._audit.log_category_updated(
            user_id=self._user_id,
            category_id=category_id,
            changed_fields=sorted(changes.keys()),
            correlation_id=correlation_id,
        )
        return stored

    async def delete_category(
        self,
        category_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete a category no transaction refers to.

        The reference count comes from storage, so transactions not
        loaded into this session still block the delete.

        Raises:
            RecordNotFound: Unknown category
            CategoryInUse: Transactions still use it (with their count)
            PersistenceFailure: Storage rejected the delete
        """
        correlation_id = correlation_id or create_correlation_id()
        category = self._registry.require(category_id)

        count = await self._persist(
            "deleting category",
            self._storage.count_transactions_for_category(self._user_id, category_id),
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
        )
        if count == 0:
            try:
                await self._storage.delete_category(self._user_id, category_id)
            except IntegrityError:
                # Referenced since the count was taken
                count = max(self._store.references(category_id), 1)
            except StorageError as e:
                if not self._disposed:
                    await self._audit.log_persistence_failed(
                        user_id=self._user_id,
                        operation="deleting category",
                        error_message=str(e),
                        entity_type="category",
                        entity_id=category_id,
                        correlation_id=correlation_id,
                    )
                    raise PersistenceFailure("deleting category", str(e)) from e

        if await self._arrived_late("deleting category", category_id, correlation_id):
            return False

        if count > 0:
            await self._audit.log_category_delete_blocked(
                user_id=self._user_id,
                category_id=category_id,
                name=category.name,
                transaction_count=count,
                correlation_id=correlation_id,
            )
            raise CategoryInUse(category.name, count)

        deleted = self._registry.remove(category_id)

        await self._audit.log_category_deleted(
            user_id=self._user_id,
            category_id=category_id,
            name=category.name,
            correlation_id=correlation_id,
        )
        return deleted

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def update_settings(
        self,
        settings: UserSettings,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[UserSettings]:
        correlation_id = correlation_id or create_correlation_id()

        stored = await self._persist(
            "saving settings",
            self._storage.save_user_settings(self._user_id, settings),
            entity_type="settings",
            correlation_id=correlation_id,
        )
        if await self._arrived_late("saving settings", correlation_id=correlation_id):
            return None

        self._settings = stored

        await self._audit.log_settings_updated(
            user_id=self._user_id,
            settings=stored.model_dump(),
            correlation_id=correlation_id,
        )
        return stored

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def applicable_categories(self, transaction_type: TransactionType) -> list[Category]:
        """Categories offered in the form for a transaction type."""
        return self._registry.filter_applicable(transaction_type)

    def dashboard(self, reference_date: Optional[date] = None) -> DashboardSummary:
        return self._engine.dashboard_summary(
            self._store.all(),
            self._registry.all(),
            reference_date or date.today(),
            months_back=self._dashboard_months,
        )

    def report(
        self,
        timeframe: ReportTimeframe = ReportTimeframe.MONTH,
        reference_date: Optional[date] = None,
    ) -> PeriodReport:
        return self._engine.period_report(
            self._store.all(),
            self._registry.all(),
            timeframe,
            reference_date or date.today(),
        )

    def search(self, query: Optional[TransactionQuery] = None) -> list[Transaction]:
        """Transactions matching a query, sorted as it asks."""
        return self._store.list_transactions(query, self._registry)

    def export_csv(
        self,
        query: Optional[TransactionQuery] = None,
        include_invoices: bool = False,
    ) -> str:
        """CSV of the transactions the query selects (all by default)."""
        return export_transactions_csv(
            self.search(query),
            self._registry,
            include_invoices=include_invoices,
        )


def create_app_components(
    storage_backend: Optional[str] = None,
    user_id: Optional[str] = None,
) -> tuple[FinanceSession, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        storage_backend: "memory" or "google_sheets"; defaults to the
                    APP_STORAGE_BACKEND setting
        user_id: Whose books to open; defaults to APP_DEFAULT_USER_ID

    Returns:
        (session, sheets_client) - sheets_client is None for memory storage
    """
    app_settings = get_settings().app
    storage_backend = storage_backend or app_settings.storage_backend
    user_id = user_id or app_settings.default_user_id

    sheets_client = None
    if storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsFinanceStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            storage = InMemoryFinanceStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        storage = InMemoryFinanceStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    session = FinanceSession(
        user_id=user_id,
        storage=storage,
        audit_logger=audit_logger,
        calculator=AmountCalculator(app_settings.vat_rate),
        dashboard_months=app_settings.dashboard_months,
    )
    return session, sheets_client
