"""Spreadsheet row store: a local openpyxl workbook or a Google Sheets document.

Both backends speak the Google Sheets ``batchUpdate`` request dialect, so the
action layer builds one set of requests regardless of where rows live.
Rows come back as lists of strings, header row first; trailing empty cells
and trailing empty rows are dropped, matching what the Sheets API returns.
"""

import logging
import os
import threading
import zipfile
from datetime import date, datetime

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


class SheetError(Exception):
    """Raised when the row store cannot satisfy a read or write."""


class SheetNotFoundError(SheetError):
    """A sheet, column or row the caller relies on does not exist."""


# ── Request builders ────────────────────────────────────────────────────────

def update_cells_request(sheet_id, row_index, col_index, values):
    """Write one row of string values starting at a 0-based (row, col)."""
    return {
        "updateCells": {
            "range": {
                "sheetId": sheet_id,
                "startRowIndex": row_index,
                "endRowIndex": row_index + 1,
                "startColumnIndex": col_index,
                "endColumnIndex": col_index + len(values),
            },
            "rows": [{"values": [{"userEnteredValue": {"stringValue": str(v)}} for v in values]}],
            "fields": "userEnteredValue",
        }
    }


def update_cell_request(sheet_id, row_index, col_index, value):
    return update_cells_request(sheet_id, row_index, col_index, [value])


def _dimension_request(kind, sheet_id, dimension, start, end):
    return {
        kind: {
            "range": {
                "sheetId": sheet_id,
                "dimension": dimension,
                "startIndex": start,
                "endIndex": end,
            }
        }
    }


def delete_rows_request(sheet_id, start, end=None):
    return _dimension_request("deleteDimension", sheet_id, "ROWS", start, start + 1 if end is None else end)


def insert_rows_request(sheet_id, start, end=None):
    return _dimension_request("insertDimension", sheet_id, "ROWS", start, start + 1 if end is None else end)


def delete_columns_request(sheet_id, start, end=None):
    return _dimension_request("deleteDimension", sheet_id, "COLUMNS", start, start + 1 if end is None else end)


def insert_columns_request(sheet_id, start, end=None):
    return _dimension_request("insertDimension", sheet_id, "COLUMNS", start, start + 1 if end is None else end)


def trim_values(raw_rows):
    """Normalise raw cell rows to strings and drop trailing blanks."""
    result = []
    for raw in raw_rows:
        cells = [_to_text(v) for v in raw]
        while cells and cells[-1] == "":
            cells.pop()
        result.append(cells)
    while result and not result[-1]:
        result.pop()
    return result


def _to_text(value):
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    return str(value)


# ── Store base ──────────────────────────────────────────────────────────────

class SheetStore:
    """Header-aware operations shared by every backend.

    Subclasses provide ``get_values``, ``get_sheet_id``, ``batch_update`` and
    ``sheet_names``; everything else is expressed through those.
    """

    def get_values(self, sheet):
        raise NotImplementedError

    def get_sheet_id(self, sheet):
        raise NotImplementedError

    def batch_update(self, requests):
        raise NotImplementedError

    def sheet_names(self):
        raise NotImplementedError

    def _reserve(self, sheet, rows, cols):
        """Grow the sheet grid so that ``rows`` x ``cols`` cells are writable."""

    # Header helpers

    def headers(self, sheet):
        values = self.get_values(sheet)
        return list(values[0]) if values else []

    def find_column(self, sheet, header):
        headers = self.headers(sheet)
        return headers.index(header) if header in headers else -1

    def _add_missing_headers(self, sheet, current, wanted):
        missing = []
        for h in wanted:
            if h not in current and h not in missing:
                missing.append(h)
        if not missing:
            return list(current)
        sheet_id = self.get_sheet_id(sheet)
        self._reserve(sheet, 1, len(current) + len(missing))
        self.batch_update([update_cells_request(sheet_id, 0, len(current), missing)])
        logger.info("Added column(s) %s to %s", ", ".join(missing), sheet)
        return list(current) + missing

    def ensure_headers(self, sheet, headers):
        """Create the header row, or extend it with any headers it lacks."""
        return self._add_missing_headers(sheet, self.headers(sheet), headers)

    def add_column(self, header, sheet):
        return self.ensure_headers(sheet, [header])

    def rename_column(self, old_header, new_header, sheet):
        col = self.find_column(sheet, old_header)
        if col == -1:
            raise SheetNotFoundError(f'Column "{old_header}" not found in {sheet}.')
        self.batch_update([update_cell_request(self.get_sheet_id(sheet), 0, col, new_header)])

    def delete_column(self, header, sheet):
        col = self.find_column(sheet, header)
        if col == -1:
            raise SheetNotFoundError(f'Column "{header}" not found in {sheet}.')
        self.batch_update([delete_columns_request(self.get_sheet_id(sheet), col)])

    def append_row(self, data, sheet):
        """Append ``data`` (header -> value) as a new row; return its sheet row number."""
        values = self.get_values(sheet)
        current = list(values[0]) if values else []
        headers = self._add_missing_headers(sheet, current, list(data))
        row_index = max(len(values), 1)
        cells = ["" if data.get(h) is None else str(data.get(h)) for h in headers]
        self._reserve(sheet, row_index + 1, len(headers))
        self.batch_update([update_cells_request(self.get_sheet_id(sheet), row_index, 0, cells)])
        return row_index + 1


# ── Local workbook backend ──────────────────────────────────────────────────

class WorkbookStore(SheetStore):
    """Rows kept in a local .xlsx file; every call is a load-modify-save cycle."""

    def __init__(self, path):
        self.path = str(path)
        self._lock = threading.RLock()

    def _load(self):
        if not os.path.exists(self.path):
            wb = Workbook()
            wb.remove(wb.active)
            return wb
        try:
            return load_workbook(self.path)
        except (OSError, InvalidFileException, zipfile.BadZipFile) as e:
            raise SheetError(f"Cannot open workbook {self.path}: {e}") from e

    def _save(self, wb):
        folder = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(folder, exist_ok=True)
        wb.save(self.path)

    def sheet_names(self):
        with self._lock:
            return list(self._load().sheetnames)

    def get_values(self, sheet):
        with self._lock:
            wb = self._load()
            if sheet not in wb.sheetnames:
                return []
            return trim_values(wb[sheet].iter_rows(values_only=True))

    def get_sheet_id(self, sheet):
        with self._lock:
            wb = self._load()
            if sheet not in wb.sheetnames:
                wb.create_sheet(sheet)
                self._save(wb)
                logger.info("Created sheet %s in %s", sheet, self.path)
            return wb.sheetnames.index(sheet)

    def batch_update(self, requests):
        if not requests:
            return {"replies": []}
        with self._lock:
            wb = self._load()
            for req in requests:
                self._apply(wb, req)
            self._save(wb)
        return {"replies": [{} for _ in requests]}

    def _worksheet_by_id(self, wb, sheet_id):
        if not isinstance(sheet_id, int) or not 0 <= sheet_id < len(wb.worksheets):
            raise SheetNotFoundError(f"No sheet with id {sheet_id}.")
        return wb.worksheets[sheet_id]

    def _apply(self, wb, req):
        if len(req) != 1:
            raise SheetError(f"Malformed request: {req!r}")
        kind, body = next(iter(req.items()))
        if kind == "updateCells":
            rng = body["range"]
            ws = self._worksheet_by_id(wb, rng.get("sheetId", 0))
            r0 = rng.get("startRowIndex", 0)
            c0 = rng.get("startColumnIndex", 0)
            for i, row_data in enumerate(body.get("rows", [])):
                for j, cell in enumerate(row_data.get("values", [])):
                    ws.cell(row=r0 + i + 1, column=c0 + j + 1, value=_entered_value(cell))
        elif kind in ("deleteDimension", "insertDimension"):
            rng = body["range"]
            ws = self._worksheet_by_id(wb, rng.get("sheetId", 0))
            start = rng["startIndex"]
            amount = rng["endIndex"] - start
            if amount <= 0:
                raise SheetError(f"Empty {kind} range: {rng!r}")
            dimension = rng.get("dimension", "ROWS")
            if kind == "deleteDimension":
                if dimension == "ROWS":
                    ws.delete_rows(start + 1, amount)
                else:
                    ws.delete_cols(start + 1, amount)
            else:
                if dimension == "ROWS":
                    ws.insert_rows(start + 1, amount)
                else:
                    ws.insert_cols(start + 1, amount)
        else:
            raise SheetError(f"Unsupported request: {kind}")


def _entered_value(cell):
    entered = cell.get("userEnteredValue") or {}
    if "stringValue" in entered:
        return entered["stringValue"]
    if "numberValue" in entered:
        return entered["numberValue"]
    if "boolValue" in entered:
        return entered["boolValue"]
    return None


# ── Google Sheets backend ───────────────────────────────────────────────────

class GoogleSheetsStore(SheetStore):
    """Rows kept in a Google Sheets document, accessed through gspread."""

    def __init__(self, spreadsheet_id, credentials_path):
        import gspread
        from google.oauth2.service_account import Credentials

        if not os.path.exists(credentials_path):
            raise SheetError(f"Credentials not found at {credentials_path}")
        creds = Credentials.from_service_account_file(str(credentials_path), scopes=SCOPES)
        self._gspread = gspread
        self.client = gspread.authorize(creds)
        self.spreadsheet = self.client.open_by_key(spreadsheet_id)

    def _worksheet(self, sheet, create=True):
        try:
            return self.spreadsheet.worksheet(sheet)
        except self._gspread.exceptions.WorksheetNotFound:
            if not create:
                return None
            logger.info("Created sheet %s", sheet)
            return self.spreadsheet.add_worksheet(title=sheet, rows=1000, cols=26)

    def sheet_names(self):
        return [ws.title for ws in self.spreadsheet.worksheets()]

    def get_values(self, sheet):
        ws = self._worksheet(sheet, create=False)
        if ws is None:
            return []
        try:
            return trim_values(ws.get_all_values())
        except self._gspread.exceptions.APIError as e:
            raise SheetError(str(e)) from e

    def get_sheet_id(self, sheet):
        return self._worksheet(sheet).id

    def _reserve(self, sheet, rows, cols):
        ws = self._worksheet(sheet)
        if rows > ws.row_count:
            ws.add_rows(rows - ws.row_count)
        if cols > ws.col_count:
            ws.add_cols(cols - ws.col_count)

    def batch_update(self, requests):
        if not requests:
            return {"replies": []}
        try:
            return self.spreadsheet.batch_update({"requests": requests})
        except self._gspread.exceptions.APIError as e:
            raise SheetError(str(e)) from e


def create_store(backend, workbook_path=None, spreadsheet_id=None, credentials_path=None):
    if backend == "workbook":
        return WorkbookStore(workbook_path)
    if backend == "google":
        if not spreadsheet_id:
            raise SheetError("GOOGLE_SHEET_ID is not set")
        return GoogleSheetsStore(spreadsheet_id, credentials_path)
    raise SheetError(f"Unknown storage backend: {backend}")
