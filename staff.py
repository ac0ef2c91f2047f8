import re

import pandas as pd

import config
import sheets
from inventory import smart_parse_date

PETTY_CASH_TYPES = ("Receipt", "Expense")
STANDARD_HOURS = 9
DAYS_PER_MONTH = 30


# ==============================
# Petty cash
# ==============================
def list_petty_cash():
    records = []
    for row_index, row in sheets.read_rows(config.PETTY_CASH_TAB):
        record = {
            "id": f"petty-cash-{row_index}",
            "rowIndex": row_index,
            "date": sheets.text(row, 0),
            "type": "Expense" if sheets.text(row, 1) == "Expense" else "Receipt",
            "amount": sheets.number(row, 2),
            "name": sheets.text(row, 3),
            "description": sheets.text(row, 4),
            "paid": sheets.text(row, 5),
        }
        if record["date"] and record["name"]:
            records.append(record)
    return records


def validate_petty_cash(data):
    missing = [f for f in ("date", "type", "amount", "name", "description") if data.get(f) in (None, "")]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    if data["type"] not in PETTY_CASH_TYPES:
        raise ValueError("Type must be Receipt or Expense")
    try:
        amount = float(str(data["amount"]).replace(",", ""))
    except ValueError:
        raise ValueError("Amount must be a number")
    return [str(data["date"]).strip(), data["type"], amount, str(data["name"]).strip(),
            str(data["description"]).strip(), data.get("paid") or ""]


def add_petty_cash(data):
    sheets.append_rows(config.PETTY_CASH_TAB, [validate_petty_cash(data)])
    return len(sheets.read_values(config.PETTY_CASH_TAB))


def update_petty_cash(row_index, data):
    sheets.update_row(config.PETTY_CASH_TAB, row_index, validate_petty_cash(data))


def delete_petty_cash(row_index):
    sheets.delete_row(config.PETTY_CASH_TAB, row_index)


def petty_cash_summary(records):
    """Totals plus a running balance per record, in sheet order."""
    balance = 0.0
    receipts = expenses = 0.0
    for r in records:
        if r["type"] == "Receipt":
            receipts += r["amount"]
            balance += r["amount"]
        else:
            expenses += r["amount"]
            balance -= r["amount"]
        r["balance"] = round(balance, 2)
    return {"totalReceipts": receipts, "totalExpenses": expenses, "balance": receipts - expenses}


# ==============================
# Employees
# ==============================
def employee_names():
    names = {sheets.text(row, 2) for _, row in sheets.read_rows(config.EMPLOYEE_DB_TAB)}
    names.discard("")
    return sorted(names)


def employee_salaries():
    """{name: salary} from the first header containing 'salary'; {} when there is none."""
    values = sheets.read_values(config.EMPLOYEE_DB_TAB)
    if not values:
        return {}
    header = [str(h).strip().lower() for h in values[0]]
    salary_i = next((i for i, h in enumerate(header) if "salary" in h), -1)
    if salary_i == -1:
        print(f"[STAFF] Salary column not found in Employee DataBase headers: {header}")
        return {}

    salaries = {}
    for row in values[1:]:
        name = sheets.text(row, 2)
        raw = re.sub(r"[^0-9.]", "", sheets.text(row, salary_i))
        try:
            salary = float(raw)
        except ValueError:
            continue
        if name and salary > 0:
            salaries[name] = salary
    return salaries


# ==============================
# Overtime shifts
# ==============================
def parse_time(value):
    """'4:30' or '4.30' -> (4, 30); a single minute digit is tens ('4.3' is 4:30)."""
    value = (value or "").strip()
    if not value:
        return 0, 0
    if ":" in value:
        h, _, m = value.partition(":")
        return _int(h), _int(m)
    h, _, m = value.partition(".")
    m = m or "0"
    if len(m) == 1:
        m += "0"
    return _int(h), _int(m[:2])


def _int(s):
    try:
        return int(s)
    except ValueError:
        return 0


def to_minutes(value, am_pm):
    h, m = parse_time(value)
    am_pm = (am_pm or "").strip().upper()
    if am_pm == "PM" and h < 12:
        h += 12
    if am_pm == "AM" and h == 12:
        h = 0
    return h * 60 + m


def format_minutes(mins):
    mins %= 24 * 60
    h24, m = divmod(mins, 60)
    am_pm = "PM" if h24 >= 12 else "AM"
    h12 = h24 - 12 if h24 > 12 else h24
    if h24 == 0:
        h12 = 12
    return f"{h12}:{m:02d}", am_pm


def split_shift(start, start_am_pm, end, end_am_pm, standard_hours=STANDARD_HOURS):
    """Split a worked shift into standard duty and overtime; overnight shifts wrap."""
    start_mins = to_minutes(start, start_am_pm)
    end_mins = to_minutes(end, end_am_pm)
    if end_mins < start_mins:
        end_mins += 24 * 60

    standard_mins = int(standard_hours * 60)
    sd_end = end_mins
    has_overtime = standard_mins > 0 and end_mins - start_mins > standard_mins
    if has_overtime:
        sd_end = start_mins + standard_mins

    result = {
        "sdStart": format_minutes(start_mins),
        "sdEnd": format_minutes(sd_end),
        "ovStart": ("", ""),
        "ovEnd": ("", ""),
        "hasOvertime": has_overtime,
    }
    if has_overtime:
        result["ovStart"] = result["sdEnd"]
        result["ovEnd"] = format_minutes(end_mins)
    return result


def _split_combined(value):
    parts = (value or "").strip().split(" ")
    return parts[0], (parts[1] if len(parts) > 1 else "AM")


def overtime_row(data):
    """Sheet row A:M for a posted record with 'H:MM AM' style shiftStart / shiftEnd."""
    if not data.get("date") or not data.get("employeeName"):
        raise ValueError("Missing required fields: date, employeeName")
    start, start_ap = _split_combined(data.get("shiftStart"))
    end, end_ap = _split_combined(data.get("shiftEnd"))
    standard = float(data.get("shiftHours") or STANDARD_HOURS)
    split = split_shift(start, start_ap, end, end_ap, standard)

    sd_start, sd_end = split["sdStart"], split["sdEnd"]
    ov_start, ov_end = split["ovStart"], split["ovEnd"]
    return [
        data["date"].strip(), "", "", data["employeeName"].strip(), (data.get("description") or "").strip(),
        sd_start[1], sd_start[0], sd_end[1], sd_end[0],
        ov_start[1], ov_start[0], ov_end[1], ov_end[0],
    ]


def save_overtime(data):
    sheets.append_rows(config.OVERTIME_TAB, [overtime_row(data)])


def update_overtime(row_index, data):
    sheets.update_row(config.OVERTIME_TAB, row_index, overtime_row(data))


def delete_overtime(row_index):
    sheets.delete_row(config.OVERTIME_TAB, row_index)


def overtime_hours(ovs, ovs_am_pm, ove, ove_am_pm):
    if not ovs or not ove:
        return 0.0
    start = to_minutes(ovs, ovs_am_pm)
    end = to_minutes(ove, ove_am_pm)
    if end < start:
        end += 24 * 60
    return max(round((end - start) / 60, 2), 0.0)


def parse_overtime(row_index, row):
    sd_am_pm, sd_start = sheets.text(row, 5), sheets.text(row, 6)
    ed_am_pm, ed_end = sheets.text(row, 7), sheets.text(row, 8)
    ovs_am_pm, ovs = sheets.text(row, 9), sheets.text(row, 10)
    ove_am_pm, ove = sheets.text(row, 11), sheets.text(row, 12)
    return {
        "id": f"row_{row_index}",
        "rowIndex": row_index,
        "date": sheets.text(row, 0),
        "employeeName": sheets.text(row, 3),
        "description": sheets.text(row, 4),
        "shiftHours": str(STANDARD_HOURS),
        "shiftStart": sd_start,
        "shiftStartAmPm": sd_am_pm,
        "shiftEnd": ove or ed_end,
        "shiftEndAmPm": ove_am_pm if ove else ed_am_pm,
        "overtimeHours": f"{overtime_hours(ovs, ovs_am_pm, ove, ove_am_pm):.2f}",
        "deductionHours": "0",
    }


def list_overtime():
    records = [parse_overtime(i, row) for i, row in sheets.read_rows(config.OVERTIME_TAB)]
    return [r for r in records if r["date"] and r["employeeName"]]


def monthly_overtime(records, salaries):
    """Overtime hours per employee per YYYY-MM; value = hours x salary / (30 x 9)."""
    if not records:
        return []
    df = pd.DataFrame(records)[["date", "employeeName", "overtimeHours"]]
    df["hours"] = pd.to_numeric(df["overtimeHours"], errors="coerce").fillna(0)
    df["month"] = smart_parse_date(df["date"]).dt.strftime("%Y-%m")
    df = df.dropna(subset=["month"])

    grouped = df.groupby(["employeeName", "month"], as_index=False).agg(
        overtimeHours=("hours", "sum"), records=("hours", "size"))

    result = []
    for r in grouped.to_dict(orient="records"):
        salary = salaries.get(r["employeeName"])
        hours = round(float(r["overtimeHours"]), 2)
        result.append({
            "employeeName": r["employeeName"],
            "month": r["month"],
            "overtimeHours": hours,
            "records": int(r["records"]),
            "salary": salary,
            "overtimeValue": round(hours * salary / (DAYS_PER_MONTH * STANDARD_HOURS), 2) if salary else None,
        })
    return sorted(result, key=lambda r: (r["month"], r["employeeName"]))


# ==============================
# Absence
# ==============================
def list_absence():
    records = [{
        "rowIndex": row_index,
        "date": sheets.text(row, 0),
        "employeeId": sheets.text(row, 1),
        "employeeNameAr": sheets.text(row, 2),
        "employeeNameEn": sheets.text(row, 3),
        "particulars": sheets.text(row, 4),
    } for row_index, row in sheets.read_rows(config.ABSENCE_TAB)]
    return [r for r in records if r["date"] and r["employeeNameEn"]]


def save_absence(data):
    if not data.get("date") or not data.get("employeeNameEn"):
        raise ValueError("Missing required fields: date, employeeNameEn")
    sheets.append_rows(config.ABSENCE_TAB, [[
        data["date"], data.get("employeeId") or "", data.get("employeeNameAr") or "",
        data["employeeNameEn"], data.get("particulars") or "",
    ]])


def delete_absence(row_index):
    sheets.delete_row(config.ABSENCE_TAB, row_index)


# ==============================
# Warehouse cleaning roster
# ==============================
CLEANING_FIELDS = ["cleaningName", "organizingName", "year", "month", "date", "week", "day", "rating"]


def _cleaning_sheet():
    return "Warehouse Cleaning", config.WAREHOUSE_CLEANING_KEYWORDS


def list_cleaning():
    title, keywords = _cleaning_sheet()
    entries = []
    for _, row in sheets.read_rows(title, keywords):
        entry = {f: sheets.text(row, i) for i, f in enumerate(CLEANING_FIELDS)}
        if any(entry.values()):
            entries.append(entry)
    print(f"[CLEANING] Parsed {len(entries)} entries")
    return entries


def rate_cleaning(year, month, date, rating):
    title, keywords = _cleaning_sheet()
    for row_index, row in sheets.read_rows(title, keywords):
        if (sheets.text(row, 2), sheets.text(row, 3), sheets.text(row, 4)) == (year, month, date):
            sheets.update_cell(title, row_index, 8, rating, keywords=keywords)
            print(f"[CLEANING] Updated rating for row {row_index}: {rating}")
            return row_index
    raise sheets.RowNotFound(f"Row not found for Year: {year}, Month: {month}, Date: {date}")
