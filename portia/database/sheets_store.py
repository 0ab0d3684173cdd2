"""Google Sheets backend: one worksheet per collection, one row per record."""
import logging
from typing import Dict, List, Optional, Tuple

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from portia.database.codecs import RowCodec
from portia.database.store import DomainStore, MODELS
from portia.errors import BackendError
from portia.models import Record

logger = logging.getLogger(__name__)

# Row 1 holds the headers
FIRST_DATA_ROW = 2


class SheetsStore(DomainStore):
    """
    Store backed by a single spreadsheet.

    New ids are max(numeric id) + 1 over the worksheet, so a row that is
    deleted by hand never has its id handed out again unless it was the
    highest one.
    """

    backend_name = 'sheets'
    SCOPES = ['https://www.googleapis.com/auth/spreadsheets']

    def __init__(self, spreadsheet_id: str, credentials_file: str = None, service=None):
        if not spreadsheet_id:
            raise ValueError("A spreadsheet id is required for the sheets backend")

        self.spreadsheet_id = spreadsheet_id
        self.codecs = {collection: RowCodec(collection) for collection in MODELS}
        self._sheet_ids: Dict[str, int] = {}
        self.service = service or self._build_service(credentials_file)

    def _build_service(self, credentials_file: str):
        if not credentials_file:
            raise ValueError("GOOGLE_CREDENTIALS_FILE is required for the sheets backend")
        try:
            credentials = service_account.Credentials.from_service_account_file(
                credentials_file,
                scopes=self.SCOPES
            )
            return build('sheets', 'v4', credentials=credentials, cache_discovery=False)
        except (OSError, ValueError, GoogleAuthError) as e:
            raise BackendError('Could not initialise Google Sheets client', details=str(e)) from e

    def _execute(self, request, action: str):
        try:
            return request.execute()
        except HttpError as e:
            logger.error(f"Sheets API error during {action}: {e}")
            raise BackendError(f"Google Sheets {action} failed", details=str(e)) from e
        except GoogleAuthError as e:
            raise BackendError(f"Google Sheets {action} failed", details=str(e)) from e
        except (OSError, httplib2.HttpLib2Error) as e:
            # raised below the HTTP layer
            logger.error(f"Sheets network error during {action}: {e}")
            raise BackendError(f"Google Sheets {action} failed", details=str(e)) from e

    # ─────────────────────────────────────────────────────────────
    # Worksheet access
    # ─────────────────────────────────────────────────────────────

    def _read_rows(self, collection: str) -> List[List]:
        codec = self.codecs[collection]
        self._sheet_id(collection)
        result = self._execute(
            self.service.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=f"'{codec.sheet_title}'!A{FIRST_DATA_ROW}:{codec.last_column}"
            ),
            f"read of {codec.sheet_title}"
        )
        return result.get('values', [])

    def _records_with_rows(self, collection: str) -> List[Tuple[int, Record]]:
        """(sheet row number, record) for every row that has an id."""
        codec = self.codecs[collection]
        located = []
        for offset, row in enumerate(self._read_rows(collection)):
            record = codec.decode(row)
            if record is not None:
                located.append((FIRST_DATA_ROW + offset, record))
        return located

    def _locate(self, collection: str, record_id: str) -> Tuple[Optional[int], Optional[Record]]:
        for row_number, record in self._records_with_rows(collection):
            if record.id == record_id:
                return row_number, record
        return None, None

    def _sheet_id(self, collection: str) -> int:
        """Numeric sheetId of a worksheet. A missing worksheet is created with its header row."""
        if collection not in self._sheet_ids:
            self._load_sheet_ids()
        if collection not in self._sheet_ids:
            self._sheet_ids[collection] = self._add_worksheet(collection)
        return self._sheet_ids[collection]

    def _load_sheet_ids(self):
        metadata = self._execute(
            self.service.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id,
                fields='sheets.properties'
            ),
            'metadata read'
        )
        for sheet in metadata.get('sheets', []):
            props = sheet.get('properties', {})
            for name, codec in self.codecs.items():
                if props.get('title') == codec.sheet_title:
                    self._sheet_ids[name] = props.get('sheetId')

    def _add_worksheet(self, collection: str) -> int:
        codec = self.codecs[collection]
        result = self._execute(
            self.service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={'requests': [{'addSheet': {'properties': {'title': codec.sheet_title}}}]}
            ),
            f"creation of worksheet {codec.sheet_title}"
        )
        try:
            sheet_id = result['replies'][0]['addSheet']['properties']['sheetId']
        except (KeyError, IndexError, TypeError) as e:
            raise BackendError(f"Worksheet '{codec.sheet_title}' was not created", details=str(result)) from e

        self._execute(
            self.service.spreadsheets().values().update(
                spreadsheetId=self.spreadsheet_id,
                range=f"'{codec.sheet_title}'!A1:{codec.last_column}1",
                valueInputOption='RAW',
                body={'values': [codec.headers]}
            ),
            f"header write for {codec.sheet_title}"
        )
        logger.info(f"Created worksheet '{codec.sheet_title}' (sheetId {sheet_id})")
        return sheet_id

    @staticmethod
    def _next_id(records: List[Record]) -> int:
        numeric = [int(r.id) for r in records if str(r.id).isdigit()]
        return max(numeric, default=0) + 1

    # ─────────────────────────────────────────────────────────────
    # Backend hooks
    # ─────────────────────────────────────────────────────────────

    def _fetch_all(self, collection: str, filters: Dict) -> List[Record]:
        return [record for _, record in self._records_with_rows(collection)]

    def _fetch_one(self, collection: str, record_id: str) -> Optional[Record]:
        _, record = self._locate(collection, record_id)
        return record

    def _insert(self, collection: str, values: Dict) -> Record:
        codec = self.codecs[collection]
        existing = [record for _, record in self._records_with_rows(collection)]
        record = MODELS[collection].from_fields(dict(values, id=self._next_id(existing)))

        self._execute(
            self.service.spreadsheets().values().append(
                spreadsheetId=self.spreadsheet_id,
                range=f"'{codec.sheet_title}'!A:{codec.last_column}",
                valueInputOption='RAW',
                insertDataOption='INSERT_ROWS',
                body={'values': [codec.encode(record)]}
            ),
            f"append to {codec.sheet_title}"
        )
        return record

    def _replace(self, collection: str, current: Record, updated: Record, changes: Dict) -> Record:
        codec = self.codecs[collection]
        row_number, _ = self._locate(collection, current.id)
        if row_number is None:
            raise BackendError(f"Row for {collection} {current.id} disappeared during update")

        self._execute(
            self.service.spreadsheets().values().update(
                spreadsheetId=self.spreadsheet_id,
                range=f"'{codec.sheet_title}'!A{row_number}:{codec.last_column}{row_number}",
                valueInputOption='RAW',
                body={'values': [codec.encode(updated)]}
            ),
            f"update of {codec.sheet_title}"
        )
        return updated

    def _remove(self, collection: str, current: Record):
        row_number, _ = self._locate(collection, current.id)
        if row_number is None:
            raise BackendError(f"Row for {collection} {current.id} disappeared during delete")

        self._execute(
            self.service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={'requests': [{
                    'deleteDimension': {
                        'range': {
                            'sheetId': self._sheet_id(collection),
                            'dimension': 'ROWS',
                            'startIndex': row_number - 1,
                            'endIndex': row_number,
                        }
                    }
                }]}
            ),
            f"delete from {self.codecs[collection].sheet_title}"
        )
