"""
Pytest fixtures: an in-memory spreadsheet standing in for the gspread client.

Each worksheet is a list of rows (lists of cell strings), row 1 being the
header, and supports the handful of gspread calls the app makes.
"""

import gspread
import pytest
from gspread.utils import a1_to_rowcol

import sheets


class FakeWorksheet:
    def __init__(self, title, rows):
        self.title = title
        self.rows = [list(r) for r in rows]

    def get_all_values(self):
        return [list(r) for r in self.rows]

    def append_rows(self, rows, value_input_option=None):
        self.rows.extend(list(r) for r in rows)

    def update(self, range_name=None, values=None, value_input_option=None):
        start = range_name.split(":")[0]
        row, col = a1_to_rowcol(start)
        for r_offset, line in enumerate(values):
            target = row + r_offset
            while len(self.rows) < target:
                self.rows.append([])
            cells = self.rows[target - 1]
            for c_offset, value in enumerate(line):
                idx = col - 1 + c_offset
                while len(cells) <= idx:
                    cells.append("")
                cells[idx] = value

    def delete_rows(self, index):
        del self.rows[index - 1]

    def cell(self, row, col):
        line = self.rows[row - 1]
        return line[col - 1] if col - 1 < len(line) else ""


class FakeSpreadsheet:
    def __init__(self, tabs):
        self.tabs = {title: FakeWorksheet(title, rows) for title, rows in tabs.items()}

    def worksheet(self, title):
        if title not in self.tabs:
            raise gspread.exceptions.WorksheetNotFound(title)
        return self.tabs[title]

    def worksheets(self):
        return list(self.tabs.values())


@pytest.fixture
def book(monkeypatch):
    """Install a fake spreadsheet: book({"Tab": [[header...], [row...]]})."""
    def install(tabs):
        fake = FakeSpreadsheet(tabs)
        monkeypatch.setattr(sheets, "spreadsheet", fake)
        return fake
    return install


@pytest.fixture
def client():
    from app import app
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


CHIPSY_INVENTORY_HEADER = ["BARCODE", "PRODUCT", "PCS QTY", "PCS IN CTN", "PRICE"]
CHIPSY_TRANSFERS_HEADER = ["USER", "NUMBER", "DATE", "LOC FROM", "LOC TO", "CUSTOMER", "RECEIVER",
                           "BARCODE", "PRODUCT", "QTY", "PRICE", "TOTAL", "DESCRIPTION"]


@pytest.fixture
def chipsy_book(book):
    return book({
        "Inventory - Chipsy": [
            CHIPSY_INVENTORY_HEADER,
            ["111", "Chips Salt", "100", "10", "2.5"],
            ["222", "Chips Chili", "50", "12", "3"],
        ],
        "TRANSFERS - Chipsy": [
            CHIPSY_TRANSFERS_HEADER,
            ["sam", "TRX-0001", "01/05/2025", "MAIN", "Ahmed", "", "", "111", "Chips Salt", "30", "2.5", "75", ""],
        ],
    })
