import json

import gspread
from google.oauth2.service_account import Credentials as SA_Credentials

import config


class SheetNotFound(Exception):
    pass


class RowNotFound(Exception):
    pass


spreadsheet = None  # will be set by init_sheets()


def init_sheets(creds_arg: str | None = None):
    """Initializes the global 'spreadsheet' handle once, using env JSON or a key file."""
    global spreadsheet
    if spreadsheet is not None:
        return spreadsheet  # already initialized

    if config.GOOGLE_CREDS:
        info = json.loads(config.GOOGLE_CREDS)
        credentials = SA_Credentials.from_service_account_info(info, scopes=config.SCOPES)
    else:
        cred_path = config.find_credentials(creds_arg)  # uses --creds, GOOGLE_APPLICATION_CREDENTIALS, exe dir
        credentials = SA_Credentials.from_service_account_file(cred_path, scopes=config.SCOPES)

    gc = gspread.authorize(credentials)
    spreadsheet = gc.open_by_key(config.SPREADSHEET_ID)
    print(f"[SHEETS] Connected to spreadsheet {config.SPREADSHEET_ID}")
    return spreadsheet


def worksheet(title, keywords=None):
    """Find a tab by exact title, then case-insensitive title, then by keywords."""
    book = init_sheets()
    try:
        return book.worksheet(title)
    except gspread.exceptions.WorksheetNotFound:
        pass

    tabs = book.worksheets()
    wanted = title.strip().lower()
    for ws in tabs:
        if ws.title.strip().lower() == wanted:
            return ws
    if keywords:
        for ws in tabs:
            name = ws.title.lower()
            if all(k in name for k in keywords):
                return ws

    available = ", ".join(ws.title for ws in tabs)
    print(f"[SHEETS] Sheet '{title}' not found. Available: {available}")
    raise SheetNotFound(f"Sheet '{title}' not found. Available sheets: {available}")


# ---------- cell parsing ----------
def text(row, i):
    if i is None or i < 0 or i >= len(row) or row[i] is None:
        return ""
    return str(row[i]).strip()


def number(row, i, default=0.0):
    raw = text(row, i).replace(",", "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def integer(row, i, default=0):
    value = number(row, i, None)
    return default if value is None else int(value)


def find_header(header, *candidates, default=-1):
    """Index of the first header cell equal to one of the candidates (case-insensitive)."""
    lowered = [str(h).strip().lower() for h in header]
    for cand in candidates:
        if cand in lowered:
            return lowered.index(cand)
    return default


# ---------- reads ----------
def read_values(title, keywords=None):
    """Every row of the tab, header included."""
    return worksheet(title, keywords).get_all_values()


def read_rows(title, keywords=None):
    """Data rows as (rowIndex, row) pairs; row 1 is the header."""
    values = read_values(title, keywords)
    return [(i, row) for i, row in enumerate(values[1:], start=2)]


# ---------- writes ----------
def append_rows(title, rows):
    if not rows:
        return
    worksheet(title).append_rows(rows, value_input_option="USER_ENTERED")


def update_row(title, row_index, values, first_col=1, keywords=None):
    start = gspread.utils.rowcol_to_a1(row_index, first_col)
    end = gspread.utils.rowcol_to_a1(row_index, first_col + len(values) - 1)
    worksheet(title, keywords).update(
        range_name=f"{start}:{end}",
        values=[values],
        value_input_option="USER_ENTERED",
    )


def update_cell(title, row_index, col, value, keywords=None):
    worksheet(title, keywords).update(
        range_name=gspread.utils.rowcol_to_a1(row_index, col),
        values=[[value]],
        value_input_option="USER_ENTERED",
    )


def delete_row(title, row_index):
    if row_index < 2:
        raise ValueError("The header row cannot be deleted")
    worksheet(title).delete_rows(row_index)


def delete_rows(title, row_indexes):
    ws = worksheet(title)
    # bottom-up so the remaining indexes stay valid
    for row_index in sorted(set(row_indexes), reverse=True):
        ws.delete_rows(row_index)
