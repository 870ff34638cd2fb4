"""
Google Sheets Storage Implementation

DESIGN DECISION: The books live in a spreadsheet the owner can open
and read directly in Google Sheets.

TRADEOFFS:
- No foreign keys: the category delete check is done here by counting
- No transactions: every write is a single row operation
- Rows are read in full and filtered in Python

Every row carries a user_id column so one spreadsheet can hold
several users' books.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_tracker.config import get_settings
from finance_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_tracker.models.finance import (
    Category,
    CategoryType,
    DEFAULT_CATEGORY_COLOR,
    RecurringFrequency,
    Transaction,
    TransactionType,
    UserSettings,
)
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    FinanceStorageInterface,
    IntegrityError,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger("finance_tracker.storage")


CATEGORY_COLUMNS = [
    "id",
    "user_id",
    "created_at",
    "name",
    "type",
    "color",
    "vat_applicable",
]

TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "created_at",
    "updated_at",
    "transaction_date",
    "type",
    "category_id",
    "description",
    "amount",
    "vat",
    "total_amount",
    "notes",
    "invoice_path",
    "recurring",
    "recurring_frequency",
    "vat_exempt",
]

SETTINGS_COLUMNS = [
    "user_id",
    "auto_vat",
    "currency_display",
    "auto_backup",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    """Cell value, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _as_bool(value: str) -> bool:
    return value.strip().lower() == "true"


class GoogleSheetsClient:
    """
    Authenticated access to the spreadsheet and its worksheets.

    Worksheets missing from the spreadsheet are created with a header row.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Authorize with the service account key (retried).
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.categories_sheet_name, CATEGORY_COLUMNS)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS
        )

    def get_settings_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.settings_sheet_name, SETTINGS_COLUMNS, rows=100
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsFinanceStorage(FinanceStorageInterface):
    """
    Google Sheets implementation of finance storage.

    One worksheet per record kind, one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    def _category_to_row(self, user_id: str, category: Category) -> list:
        return [
            str(category.id),
            user_id,
            category.created_at.isoformat(),
            category.name,
            # "both" is stored as an empty type cell
            "" if category.type == CategoryType.BOTH else category.type.value,
            category.color,
            str(category.vat_applicable),
        ]

    def _row_to_category(self, row: list) -> Category:
        vat_cell = _safe_get(row, 6)
        return Category(
            id=UUID(_safe_get(row, 0)),
            created_at=datetime.fromisoformat(_safe_get(row, 2)),
            name=_safe_get(row, 3),
            type=CategoryType(_safe_get(row, 4, CategoryType.BOTH.value)),
            color=_safe_get(row, 5, DEFAULT_CATEGORY_COLOR),
            vat_applicable=_as_bool(vat_cell) if vat_cell else True,
        )

    def _transaction_to_row(self, user_id: str, transaction: Transaction) -> list:
        return [
            str(transaction.id),
            user_id,
            transaction.created_at.isoformat(),
            transaction.updated_at.isoformat(),
            transaction.transaction_date.isoformat(),
            transaction.type.value,
            str(transaction.category_id),
            transaction.description,
            str(transaction.amount),
            str(transaction.vat),
            str(transaction.total_amount),
            transaction.notes or "",
            transaction.invoice_path or "",
            str(transaction.recurring),
            transaction.recurring_frequency.value if transaction.recurring_frequency else "",
            str(transaction.vat_exempt),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        frequency = _safe_get(row, 14)
        return Transaction(
            id=UUID(_safe_get(row, 0)),
            created_at=datetime.fromisoformat(_safe_get(row, 2)),
            updated_at=datetime.fromisoformat(_safe_get(row, 3)),
            transaction_date=date.fromisoformat(_safe_get(row, 4)),
            type=TransactionType(_safe_get(row, 5)),
            category_id=UUID(_safe_get(row, 6)),
            description=_safe_get(row, 7),
            amount=Decimal(_safe_get(row, 8)),
            vat=Decimal(_safe_get(row, 9, "0.00")),
            total_amount=Decimal(_safe_get(row, 10)),
            notes=_safe_get(row, 11) or None,
            invoice_path=_safe_get(row, 12) or None,
            recurring=_as_bool(_safe_get(row, 13)),
            recurring_frequency=RecurringFrequency(frequency) if frequency else None,
            vat_exempt=_as_bool(_safe_get(row, 15)),
        )

    @staticmethod
    def _find_row(all_rows: list, user_id: str, record_id: UUID) -> Optional[int]:
        """1-based sheet row index of a user's record, header included."""
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == str(record_id) and _safe_get(row, 1) == user_id:
                return idx
        return None

    @staticmethod
    def _user_rows(all_rows: list, user_id: str) -> list:
        return [
            row for row in all_rows[1:]
            if row and row[0] and _safe_get(row, 1) == user_id
        ]

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(self, user_id: str) -> list[Category]:
        try:
            sheet = self._client.get_categories_sheet()
            rows = self._user_rows(sheet.get_all_values(), user_id)
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")

        categories = []
        for row in rows:
            try:
                categories.append(self._row_to_category(row))
            except ValueError as e:
                logger.warning("skipping_malformed_row", sheet="categories", error=str(e))

        categories.sort(key=lambda c: c.created_at, reverse=True)
        return categories

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def insert_category(self, user_id: str, category: Category) -> Category:
        try:
            sheet = self._client.get_categories_sheet()
            if self._find_row(sheet.get_all_values(), user_id, category.id):
                raise DuplicateError(f"Category already exists: {category.id}")
            sheet.append_row(
                self._category_to_row(user_id, category),
                value_input_option="RAW",
            )
            return category
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    async def update_category(self, user_id: str, category: Category) -> Category:
        try:
            sheet = self._client.get_categories_sheet()
            idx = self._find_row(sheet.get_all_values(), user_id, category.id)
            if idx is None:
                raise NotFoundError(f"Category not found: {category.id}")
            sheet.update(
                [self._category_to_row(user_id, category)],
                f"A{idx}",
                value_input_option="RAW",
            )
            return category
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update category: {e}")

    async def delete_category(self, user_id: str, category_id: UUID) -> bool:
        # Sheets has no foreign keys, so check references before deleting
        if await self.count_transactions_for_category(user_id, category_id):
            raise IntegrityError(
                f"Category {category_id} is still referenced by transactions"
            )
        try:
            sheet = self._client.get_categories_sheet()
            idx = self._find_row(sheet.get_all_values(), user_id, category_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete category: {e}")

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            rows = self._user_rows(sheet.get_all_values(), user_id)
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in rows:
            try:
                transactions.append(self._row_to_transaction(row))
            except (ValueError, ArithmeticError) as e:
                logger.warning("skipping_malformed_row", sheet="transactions", error=str(e))

        # Sort by date descending (newest first)
        transactions.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return transactions

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def insert_transaction(
        self,
        user_id: str,
        transaction: Transaction,
    ) -> Transaction:
        try:
            sheet = self._client.get_transactions_sheet()
            if self._find_row(sheet.get_all_values(), user_id, transaction.id):
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            sheet.append_row(
                self._transaction_to_row(user_id, transaction),
                value_input_option="RAW",
            )
            return transaction
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def update_transaction(
        self,
        user_id: str,
        transaction: Transaction,
    ) -> Transaction:
        try:
            sheet = self._client.get_transactions_sheet()
            idx = self._find_row(sheet.get_all_values(), user_id, transaction.id)
            if idx is None:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            stored = transaction.model_copy(update={"updated_at": datetime.now(timezone.utc)})
            sheet.update(
                [self._transaction_to_row(user_id, stored)],
                f"A{idx}",
                value_input_option="RAW",
            )
            return stored
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(self, user_id: str, transaction_id: UUID) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            idx = self._find_row(sheet.get_all_values(), user_id, transaction_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def count_transactions_for_category(
        self,
        user_id: str,
        category_id: UUID,
    ) -> int:
        try:
            sheet = self._client.get_transactions_sheet()
            rows = self._user_rows(sheet.get_all_values(), user_id)
        except Exception as e:
            raise StorageError(f"Failed to count transactions: {e}")
        return sum(1 for row in rows if _safe_get(row, 6) == str(category_id))

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_user_settings(self, user_id: str) -> Optional[UserSettings]:
        try:
            sheet = self._client.get_settings_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read settings: {e}")

        for row in all_rows[1:]:
            if row and row[0] == user_id:
                return UserSettings(
                    auto_vat=_as_bool(_safe_get(row, 1, "True")),
                    currency_display=_as_bool(_safe_get(row, 2, "True")),
                    auto_backup=_as_bool(_safe_get(row, 3, "True")),
                )
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_user_settings(
        self,
        user_id: str,
        settings: UserSettings,
    ) -> UserSettings:
        row = [
            user_id,
            str(settings.auto_vat),
            str(settings.currency_display),
            str(settings.auto_backup),
        ]
        try:
            sheet = self._client.get_settings_sheet()
            all_rows = sheet.get_all_values()
            for idx, existing in enumerate(all_rows[1:], start=2):
                if existing and existing[0] == user_id:
                    sheet.update([row], f"A{idx}", value_input_option="RAW")
                    return settings
            sheet.append_row(row, value_input_option="RAW")
            return settings
        except Exception as e:
            raise StorageError(f"Failed to save settings: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Audit trail in its own worksheet, one event per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            user_id=_safe_get(row, 4) or None,
            entity_type=_safe_get(row, 5) or None,
            entity_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            correlation_id=UUID(_safe_get(row, 7)) if _safe_get(row, 7) else None,
            description=_safe_get(row, 8),
            details=json.loads(_safe_get(row, 9)) if _safe_get(row, 9) else {},
            error_message=_safe_get(row, 10) or None,
            is_user_action=_as_bool(_safe_get(row, 11)),
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e))
            return False

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
