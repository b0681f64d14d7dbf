"""
Google Sheets Remote Storage

Google Sheets backs the remote document store because:
1. Users can inspect (and back up) their own data in a spreadsheet
2. No database server to run
3. Service-account auth is enough for a personal ledger

LAYOUT: one worksheet, one row per user:

    user_id | payload_json | updated_at

The whole Document lives in `payload_json`. Upsert finds the user's row
by scanning column A and overwrites it, or appends a new row.

gspread is blocking, so every call runs in a worker thread via
asyncio.to_thread and never stalls the event loop.
"""

import asyncio
import json
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger_sync.config import get_settings
from ledger_sync.config.settings import GoogleSheetsSettings
from ledger_sync.services.storage.interface import (
    BackendConnectionError,
    DocumentStorageInterface,
    RemoteRecord,
    StorageError,
)


logger = structlog.get_logger(__name__)

DOCUMENT_COLUMNS = [
    "user_id",
    "payload_json",
    "updated_at",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
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
                raise BackendConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise BackendConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise BackendConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_documents_sheet(self) -> gspread.Worksheet:
        """Get or create the Documents worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.documents_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.documents_sheet_name,
                rows=100,
                cols=len(DOCUMENT_COLUMNS),
            )
            sheet.append_row(DOCUMENT_COLUMNS)
        return sheet


class GoogleSheetsDocumentStorage(DocumentStorageInterface):
    """Google Sheets implementation of per-user document storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, record: RemoteRecord) -> list[str]:
        return [
            record.user_id,
            json.dumps(record.payload, ensure_ascii=False),
            record.updated_at,
        ]

    def _row_to_record(self, row: list) -> RemoteRecord:
        """Convert a spreadsheet row to a RemoteRecord."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        payload_json = safe_get(1)
        try:
            payload = json.loads(payload_json) if payload_json else {}
        except ValueError as e:
            raise StorageError(f"Corrupt payload for user {safe_get(0)}: {e}")
        if not isinstance(payload, dict):
            raise StorageError(f"Payload for user {safe_get(0)} is not an object")

        return RemoteRecord(
            user_id=safe_get(0),
            payload=payload,
            updated_at=safe_get(2),
        )

    def _find_row_index(self, sheet: gspread.Worksheet, user_id: str) -> Optional[int]:
        """1-based sheet row of the user's record, skipping the header."""
        for idx, value in enumerate(sheet.col_values(1)[1:], start=2):
            if value == user_id:
                return idx
        return None

    def _select_sync(self, user_id: str) -> Optional[RemoteRecord]:
        sheet = self._client.get_documents_sheet()
        for row in sheet.get_all_values()[1:]:
            if row and row[0] == user_id:
                return self._row_to_record(row)
        return None

    def _upsert_sync(self, record: RemoteRecord) -> bool:
        sheet = self._client.get_documents_sheet()
        row = self._record_to_row(record)
        row_index = self._find_row_index(sheet, record.user_id)
        if row_index is None:
            sheet.append_row(row, value_input_option="RAW")
        else:
            sheet.update(
                range_name=f"A{row_index}:C{row_index}",
                values=[row],
                value_input_option="RAW",
            )
        return True

    async def select(self, user_id: str) -> Optional[RemoteRecord]:
        """Retrieve the user's record."""
        try:
            return await asyncio.to_thread(self._select_sync, user_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read document: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert(self, record: RemoteRecord) -> bool:
        """Write the user's record, replacing any existing row."""
        try:
            written = await asyncio.to_thread(self._upsert_sync, record)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save document: {e}")
        logger.debug("sheets_document_upserted", user_id=record.user_id)
        return written
