"""Unit tests for the spreadsheet row store and its request builders."""

from unittest import mock

from google.oauth2.service_account import Credentials
import gspread
import pytest

from sheets import (
    SCOPES, GoogleSheetsStore, SheetError, SheetNotFoundError, WorkbookStore, create_store, delete_rows_request,
    insert_columns_request, trim_values, update_cell_request, update_cells_request,
)


class TestRequestBuilders:
    """Test cases for batchUpdate request construction."""

    def test_update_cells_request_range(self):
        """Test that a row write spans exactly the given cells."""
        req = update_cells_request(3, 4, 1, ["a", 2])
        rng = req["updateCells"]["range"]

        assert rng == {"sheetId": 3, "startRowIndex": 4, "endRowIndex": 5,
                       "startColumnIndex": 1, "endColumnIndex": 3}
        values = req["updateCells"]["rows"][0]["values"]
        assert values == [{"userEnteredValue": {"stringValue": "a"}},
                          {"userEnteredValue": {"stringValue": "2"}}]
        assert req["updateCells"]["fields"] == "userEnteredValue"

    def test_update_cell_request_is_single_cell(self):
        req = update_cell_request(0, 1, 2, "x")
        assert req["updateCells"]["range"]["endColumnIndex"] == 3

    def test_delete_rows_request_defaults_to_one_row(self):
        """Test the default end index of a dimension request."""
        req = delete_rows_request(0, 5)
        assert req == {"deleteDimension": {"range": {
            "sheetId": 0, "dimension": "ROWS", "startIndex": 5, "endIndex": 6}}}


class TestTrimValues:
    """Test cases for raw cell normalisation."""

    def test_trailing_blanks_dropped(self):
        assert trim_values([["a", None, ""], [None], []]) == [["a"]]

    def test_inner_blanks_kept(self):
        assert trim_values([["a", None, "b"], [], ["c"]]) == [["a", "", "b"], [], ["c"]]

    def test_cell_types_become_text(self):
        assert trim_values([[3.0, 2.5, True, 7]]) == [["3", "2.5", "TRUE", "7"]]


class TestWorkbookStore:
    """Test cases for the local openpyxl backend."""

    def test_missing_workbook_is_empty(self, store):
        """Test that reading a workbook that does not exist yet returns nothing."""
        assert store.get_values("Tickets") == []
        assert store.sheet_names() == []

    def test_ensure_headers_creates_and_extends(self, store):
        assert store.ensure_headers("Tickets", ["A", "B"]) == ["A", "B"]
        assert store.ensure_headers("Tickets", ["B", "C"]) == ["A", "B", "C"]
        assert store.get_values("Tickets") == [["A", "B", "C"]]

    def test_append_row_returns_sheet_row(self, store):
        """Test that appended rows report their 1-based sheet row number."""
        store.ensure_headers("Tickets", ["A", "B"])

        assert store.append_row({"A": "1"}, "Tickets") == 2
        assert store.append_row({"A": "2", "B": "x"}, "Tickets") == 3
        assert store.get_values("Tickets") == [["A", "B"], ["1"], ["2", "x"]]

    def test_append_row_adds_missing_columns(self, store):
        store.ensure_headers("Tickets", ["A"])
        store.append_row({"A": "1", "New": "n"}, "Tickets")

        assert store.get_values("Tickets") == [["A", "New"], ["1", "n"]]

    def test_append_row_on_empty_sheet_writes_header(self, store):
        """Test that appending to a blank sheet derives the header from the data."""
        assert store.append_row({"X": "1", "Y": "2"}, "Fresh") == 2
        assert store.get_values("Fresh") == [["X", "Y"], ["1", "2"]]

    def test_delete_row(self, store):
        store.ensure_headers("S", ["A"])
        for v in ("1", "2", "3"):
            store.append_row({"A": v}, "S")

        store.batch_update([delete_rows_request(store.get_sheet_id("S"), 2)])

        assert store.get_values("S") == [["A"], ["1"], ["3"]]

    def test_insert_column_shifts_cells(self, store):
        store.ensure_headers("S", ["A", "B"])
        store.batch_update([insert_columns_request(store.get_sheet_id("S"), 0)])
        assert store.get_values("S") == [["", "A", "B"]]

    def test_rename_and_delete_column(self, store):
        store.ensure_headers("S", ["A", "B", "C"])

        store.rename_column("B", "Beta", "S")
        assert store.headers("S") == ["A", "Beta", "C"]

        store.delete_column("A", "S")
        assert store.headers("S") == ["Beta", "C"]

    def test_missing_column_raises(self, store):
        store.ensure_headers("S", ["A"])
        with pytest.raises(SheetNotFoundError):
            store.delete_column("Nope", "S")
        with pytest.raises(SheetNotFoundError):
            store.rename_column("Nope", "X", "S")

    def test_find_column(self, store):
        store.ensure_headers("S", ["A", "B"])
        assert store.find_column("S", "B") == 1
        assert store.find_column("S", "Z") == -1

    def test_unsupported_request_raises(self, store):
        store.ensure_headers("S", ["A"])
        with pytest.raises(SheetError):
            store.batch_update([{"mergeCells": {}}])

    def test_corrupt_workbook_raises(self, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a workbook")
        with pytest.raises(SheetError):
            WorkbookStore(path).get_values("Tickets")

    def test_values_persist_across_instances(self, store):
        store.append_row({"A": "1"}, "S")
        assert WorkbookStore(store.path).get_values("S") == [["A"], ["1"]]


class TestCreateStore:
    """Test cases for backend selection."""

    def test_workbook_backend(self, tmp_path):
        assert isinstance(create_store("workbook", tmp_path / "x.xlsx"), WorkbookStore)

    def test_unknown_backend(self):
        with pytest.raises(SheetError):
            create_store("postgres")

    def test_google_backend_needs_sheet_id(self):
        with pytest.raises(SheetError):
            create_store("google", spreadsheet_id="")

    def test_google_backend(self, credentials_file):
        store = create_store("google", spreadsheet_id="sheet-123", credentials_path=credentials_file)
        assert isinstance(store, GoogleSheetsStore)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the store."""

    def __init__(self, title, sheet_id, values=None, rows=1000, cols=26):
        self.title = title
        self.id = sheet_id
        self.values = values or []
        self.row_count = rows
        self.col_count = cols

    def get_all_values(self):
        if isinstance(self.values, Exception):
            raise self.values
        return self.values

    def add_rows(self, count):
        self.row_count += count

    def add_cols(self, count):
        self.col_count += count


def api_error():
    response = mock.MagicMock()
    response.json.return_value = {"error": {"code": 429, "message": "Quota exceeded",
                                            "status": "RESOURCE_EXHAUSTED"}}
    return gspread.exceptions.APIError(response)


@pytest.fixture
def spreadsheet():
    """A fake document holding one Tickets worksheet two columns wide."""
    sheets = {"Tickets": FakeWorksheet("Tickets", 11, [["Ticket ID", "Status"], ["T-1", "Open"], ["", ""]],
                                       cols=2)}

    def worksheet(title):
        if title not in sheets:
            raise gspread.exceptions.WorksheetNotFound(title)
        return sheets[title]

    def add_worksheet(title, rows, cols):
        sheets[title] = FakeWorksheet(title, 100 + len(sheets), rows=rows, cols=cols)
        return sheets[title]

    doc = mock.MagicMock()
    doc.sheets = sheets
    doc.worksheet.side_effect = worksheet
    doc.add_worksheet.side_effect = add_worksheet
    doc.worksheets.side_effect = lambda: list(sheets.values())
    return doc


@pytest.fixture
def credentials_file(tmp_path, monkeypatch, spreadsheet):
    """A service-account file, with authorisation patched to hand back ``spreadsheet``."""
    path = tmp_path / "credentials.json"
    path.write_text("{}")
    client = mock.MagicMock()
    client.open_by_key.return_value = spreadsheet
    monkeypatch.setattr(Credentials, "from_service_account_file", mock.MagicMock(return_value="creds"))
    monkeypatch.setattr(gspread, "authorize", mock.MagicMock(return_value=client))
    return path


@pytest.fixture
def google_store(credentials_file):
    return GoogleSheetsStore("sheet-123", credentials_file)


class TestGoogleSheetsStore:
    """Test cases for the Google Sheets backend, run against a fake document."""

    def test_connects_with_service_account(self, google_store, credentials_file):
        """Test that the credentials file is loaded with the Sheets scopes."""
        Credentials.from_service_account_file.assert_called_once_with(str(credentials_file), scopes=SCOPES)
        gspread.authorize.assert_called_once_with("creds")
        gspread.authorize.return_value.open_by_key.assert_called_once_with("sheet-123")

    def test_missing_credentials_raise(self, tmp_path):
        with pytest.raises(SheetError, match="Credentials not found"):
            GoogleSheetsStore("sheet-123", tmp_path / "missing.json")

    def test_get_values_trims(self, google_store):
        assert google_store.get_values("Tickets") == [["Ticket ID", "Status"], ["T-1", "Open"]]
        assert google_store.sheet_names() == ["Tickets"]

    def test_get_values_missing_sheet_is_empty(self, google_store, spreadsheet):
        """Test that reading an absent sheet neither fails nor creates it."""
        assert google_store.get_values("Projects") == []
        spreadsheet.add_worksheet.assert_not_called()

    def test_get_sheet_id_creates_missing_sheet(self, google_store, spreadsheet):
        assert google_store.get_sheet_id("Projects") == 101
        spreadsheet.add_worksheet.assert_called_once_with(title="Projects", rows=1000, cols=26)
        assert google_store.get_sheet_id("Tickets") == 11

    def test_new_header_grows_grid(self, google_store, spreadsheet):
        """Test that columns past the grid edge are added before the write."""
        google_store.ensure_headers("Tickets", ["Ticket ID", "Status", "Team"])

        assert spreadsheet.sheets["Tickets"].col_count == 3
        spreadsheet.batch_update.assert_called_once_with(
            {"requests": [update_cells_request(11, 0, 2, ["Team"])]})

    def test_reserve_adds_rows(self, google_store, spreadsheet):
        google_store._reserve("Tickets", 1500, 2)

        ws = spreadsheet.sheets["Tickets"]
        assert (ws.row_count, ws.col_count) == (1500, 2)

    def test_empty_batch_skips_api(self, google_store, spreadsheet):
        assert google_store.batch_update([]) == {"replies": []}
        spreadsheet.batch_update.assert_not_called()

    def test_api_errors_become_sheet_errors(self, google_store, spreadsheet):
        spreadsheet.batch_update.side_effect = api_error()
        with pytest.raises(SheetError) as exc_info:
            google_store.batch_update([delete_rows_request(11, 1)])
        assert isinstance(exc_info.value.__cause__, gspread.exceptions.APIError)

        spreadsheet.sheets["Tickets"].values = api_error()
        with pytest.raises(SheetError):
            google_store.get_values("Tickets")
