"""Wrapper for Google Sheets API interactions on the results spreadsheet."""

from typing import Any, Dict, List, Optional, Sequence

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from grammar_coach import config
from grammar_coach.config import Settings
from grammar_coach.api_clients import (TRANSPORT_ERRORS, build_service, translate_http_error,
                                        translate_transport_error)
from grammar_coach.auth import get_service_account_credentials
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import BaseCoachException, ConfigError
from grammar_coach.utils.retry import retry_on_exception

logger = get_logger()

RETRYABLE_SHEETS_ERRORS = (HttpError, TimeoutError, ConnectionError)
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

def should_retry_sheets(e: Exception) -> bool:
    """Predicate for the retry decorator: only rate limits and server errors are retried."""
    if isinstance(e, HttpError):
        return e.resp.status in RETRYABLE_STATUS_CODES
    return isinstance(e, (TimeoutError, ConnectionError))

def column_letter(n: int) -> str:
    """Converts a 1-based column index to spreadsheet letters (1 -> A, 27 -> AA)."""
    result = ""
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result

def rows_to_records(rows: Sequence[Sequence[Any]]) -> List[Dict[str, str]]:
    """Maps raw sheet rows to dicts keyed by the header row. Short rows are padded with ''."""
    if not rows:
        return []
    header = [str(h).strip() for h in rows[0]]
    records = []
    for row in rows[1:]:
        records.append({h: (str(row[j]) if j < len(row) else "") for j, h in enumerate(header) if h})
    return records

def _translate_http_error(e: HttpError, action: str) -> BaseCoachException:
    return translate_http_error(e, action, SheetsService.SERVICE_NAME)


class SheetsService:
    """Append-only access to the results sheet.

    Rows are never updated or deleted; the only writes are the header row
    (created or extended with missing columns) and appended records.
    """

    SERVICE_NAME = 'sheets'
    VERSION = 'v4'

    def __init__(self, settings: Settings, service: Optional[Resource] = None):
        """Initializes the SheetsService.

        Args:
            settings: Application settings with spreadsheet id, tab name and
                service-account key.
            service: Pre-built Sheets resource, mainly for tests.

        Raises:
            ConfigError: If the spreadsheet id or service account is not configured.
            AuthenticationError: If the key material is invalid.
            APIError: If the Sheets service cannot be built.
        """
        if not settings.spreadsheet_id:
            raise ConfigError("GOOGLE_SPREADSHEET_ID is not set.")
        self.spreadsheet_id = settings.spreadsheet_id
        self.sheet_name = settings.sheet_name
        if service is None:
            credentials = get_service_account_credentials(settings)
            service = build_service(self.SERVICE_NAME, self.VERSION, credentials)
        self.service: Resource = service
        logger.debug(f"SheetsService initialized for spreadsheet {self.spreadsheet_id}, tab '{self.sheet_name}'.")

    @property
    def _quoted_tab(self) -> str:
        return "'" + self.sheet_name.replace("'", "''") + "'"

    @retry_on_exception(exceptions=RETRYABLE_SHEETS_ERRORS, max_attempts=3, should_retry=should_retry_sheets)
    def _ensure_tab(self) -> None:
        """Creates the results tab when the spreadsheet does not have it yet."""
        meta = self.service.spreadsheets().get(
            spreadsheetId=self.spreadsheet_id,
            fields="sheets.properties.title"
        ).execute()
        titles = [s.get("properties", {}).get("title") for s in meta.get("sheets", [])]
        if self.sheet_name in titles:
            return
        logger.info(f"Tab '{self.sheet_name}' not found in spreadsheet {self.spreadsheet_id}; creating it.")
        self.service.spreadsheets().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"requests": [{"addSheet": {"properties": {"title": self.sheet_name}}}]}
        ).execute()

    @retry_on_exception(exceptions=RETRYABLE_SHEETS_ERRORS, max_attempts=3, should_retry=should_retry_sheets)
    def ensure_header(self, required: Sequence[str] = tuple(config.SHEET_COLUMNS)) -> List[str]:
        """Ensures the header row contains every required column.

        Missing columns are appended to the right of the existing ones so
        previously stored rows keep their alignment.

        Returns:
            The header row as it stands after normalization.
        """
        range_ = f"{self._quoted_tab}!1:1"
        resp = self.service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id, range=range_, majorDimension="ROWS"
        ).execute()
        values = resp.get("values") or [[]]
        current = [str(c).strip() for c in values[0]]

        needed = [h for h in required if h not in current]
        if not needed:
            return current

        new_header = current + needed
        self.service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=f"{self._quoted_tab}!A1:{column_letter(len(new_header))}1",
            valueInputOption="RAW",
            body={"values": [new_header]}
        ).execute()
        if current:
            logger.warning(f"Results sheet was missing columns {needed}; appended them to the header row.")
        else:
            logger.info(f"Wrote header row to empty results sheet: {new_header}")
        return new_header

    def append_record(self, record: Dict[str, str]) -> None:
        """Appends one record, creating the tab and header schema on first use.

        Args:
            record: Column name -> cell value. Keys not in the header are ignored.

        Raises:
            AuthenticationError: If the service account cannot access the sheet.
            APIError: If any Sheets call fails.
        """
        try:
            self._ensure_tab()
            header = self.ensure_header()
            row = [record.get(h, "") for h in header]
            self._append_row(row)
        except HttpError as e:
            logger.error(f"Sheets error appending record: {e.resp.status} {e.content}", exc_info=config.DEBUG)
            raise _translate_http_error(e, "append a record to the results sheet") from e
        except TRANSPORT_ERRORS as e:
            logger.error(f"Could not reach the results sheet to append a record: {e!r}", exc_info=config.DEBUG)
            raise translate_transport_error(e, "append a record to the results sheet", self.SERVICE_NAME) from e
        logger.info(f"Appended record {record.get(config.COL_ID, '')} to '{self.sheet_name}'.")

    @retry_on_exception(exceptions=RETRYABLE_SHEETS_ERRORS, max_attempts=3, should_retry=should_retry_sheets)
    def _append_row(self, row: List[str]) -> None:
        self.service.spreadsheets().values().append(
            spreadsheetId=self.spreadsheet_id,
            range=self._quoted_tab,
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": [row]}
        ).execute()

    @retry_on_exception(exceptions=RETRYABLE_SHEETS_ERRORS, max_attempts=3, should_retry=should_retry_sheets)
    def _read_all_rows(self) -> List[List[Any]]:
        resp = self.service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id, range=self._quoted_tab, majorDimension="ROWS"
        ).execute()
        return resp.get("values", [])

    def list_records(self) -> List[Dict[str, str]]:
        """Returns every stored record in sheet order (oldest first).

        A missing tab is treated as an empty store.

        Raises:
            AuthenticationError: If the service account cannot access the sheet.
            APIError: If the read fails for any other reason.
        """
        try:
            rows = self._read_all_rows()
        except HttpError as e:
            if e.resp.status == 400 and b"Unable to parse range" in (e.content or b""):
                logger.info(f"Tab '{self.sheet_name}' does not exist yet; no records stored.")
                return []
            logger.error(f"Sheets error reading records: {e.resp.status} {e.content}", exc_info=config.DEBUG)
            raise _translate_http_error(e, "read the results sheet") from e
        except TRANSPORT_ERRORS as e:
            logger.error(f"Could not reach the results sheet to read records: {e!r}", exc_info=config.DEBUG)
            raise translate_transport_error(e, "read the results sheet", self.SERVICE_NAME) from e
        records = rows_to_records(rows)
        logger.debug(f"Read {len(records)} records from '{self.sheet_name}'.")
        return records
