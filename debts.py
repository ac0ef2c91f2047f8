"""
Customer debt analysis over the Invoices ledger.

Every invoice row is a debit or credit against one customer. Aggregates are
built with pandas; dates go through the dayfirst-voting parser because the
sheet mixes US and EU formats.
"""
import math
import re
from datetime import datetime

import pandas as pd

import config
import sheets
from inventory import smart_parse_date

NON_PAYMENT_PREFIXES = ("SAL", "RSAL", "BIL", "JV", "OB")
RECENT_DAYS = 90

AGING_BUCKETS = ["atDate", "oneToThirty", "thirtyOneToSixty", "sixtyOneToNinety", "ninetyOneToOneTwenty", "older"]

MONTHS = ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"]


# ---------- invoice rows ----------
def parse_invoice_rows(values):
    rows = []
    for row in values[1:]:
        customer = sheets.text(row, 3)
        if not customer:
            continue
        rows.append({
            "date": sheets.text(row, 0),
            "dueDate": sheets.text(row, 1),
            "number": sheets.text(row, 2),
            "customerName": customer,
            "salesRep": sheets.text(row, 4),
            "debit": sheets.number(row, 5),
            "credit": sheets.number(row, 6),
            "matching": sheets.text(row, 7),
        })
    return rows


def load_invoices():
    return parse_invoice_rows(sheets.read_values(config.INVOICES_TAB))


def invoice_frame(rows):
    df = pd.DataFrame(rows, columns=["date", "dueDate", "number", "customerName", "salesRep", "debit", "credit", "matching"])
    df["number"] = df["number"].astype(str).str.upper()
    df["parsedDate"] = smart_parse_date(df["date"])
    df["parsedDue"] = smart_parse_date(df["dueDate"])
    return df


def is_payment(number, credit):
    num = (number or "").upper()
    if num.startswith("BNK"):
        return True
    if credit <= 0.01:
        return False
    return not num.startswith(NON_PAYMENT_PREFIXES)


def normalize_name(name):
    return re.sub(r"\s+", " ", (name or "").strip().lower())


# ---------- customer analysis ----------
def _days_since(ts, today):
    if ts is None or pd.isna(ts):
        return None
    return (pd.Timestamp(today).normalize() - ts.normalize()).days


def _iso(ts):
    return None if ts is None or pd.isna(ts) else ts.strftime("%Y-%m-%dT%H:%M:%S")


def analyse_customers(rows, today=None):
    """One summary per customer, in first-seen order."""
    today = pd.Timestamp(today or datetime.now())
    if not rows:
        return []

    df = invoice_frame(rows)
    df["isPayment"] = [is_payment(n, c) for n, c in zip(df["number"], df["credit"])]
    df["isSale"] = df["number"].str.startswith("SAL")
    df["isReturn"] = df["number"].str.startswith("RSAL")
    since = today - pd.Timedelta(days=RECENT_DAYS)
    df["recent"] = df["parsedDate"].notna() & (df["parsedDate"] >= since) & (df["parsedDate"] <= today)

    result = []
    for customer, g in df.groupby("customerName", sort=False):
        total_debit = float(g["debit"].sum())
        total_credit = float(g["credit"].sum())

        matchings = g[g["matching"] != ""].assign(net=g["debit"] - g["credit"]).groupby("matching")["net"].sum()
        open_matchings = sorted(m for m, net in matchings.items() if abs(net) > 0.01)

        paid = g[g["isPayment"] & (g["credit"] > 0.01) & g["parsedDate"].notna()]
        last_payment = paid.loc[paid["parsedDate"].idxmax()] if not paid.empty else None

        sold = g[g["isSale"] & (g["debit"] > 0) & g["parsedDate"].notna()]
        last_sale = sold.loc[sold["parsedDate"].idxmax()] if not sold.empty else None

        recent_sales = g[g["isSale"] & g["recent"]]
        recent_payments = g[g["isPayment"] & g["recent"]]

        result.append({
            "customerName": customer,
            "totalDebit": total_debit,
            "totalCredit": total_credit,
            "netDebt": total_debit - total_credit,
            "netSales": float(g.loc[g["isSale"], "debit"].sum() - g.loc[g["isReturn"], "credit"].sum()),
            "transactionCount": int(len(g)),
            "salesReps": sorted({r.strip() for r in g["salesRep"] if r.strip()}),
            "lastPaymentDate": _iso(last_payment["parsedDate"]) if last_payment is not None else None,
            "lastPaymentMatching": (last_payment["matching"] or "UNMATCHED") if last_payment is not None else None,
            "lastPaymentAmount": float(last_payment["credit"] - last_payment["debit"]) if last_payment is not None else None,
            "lastSalesDate": _iso(last_sale["parsedDate"]) if last_sale is not None else None,
            "lastSalesAmount": float(last_sale["debit"]) if last_sale is not None else None,
            "sales3m": float(recent_sales["debit"].sum()),
            "salesCount3m": int(len(recent_sales)),
            "payments3m": float((recent_payments["credit"] - recent_payments["debit"]).sum()),
            "paymentsCount3m": int((recent_payments["credit"] > 0.01).sum() - (recent_payments["debit"] > 0.01).sum()),
            "openMatchings": open_matchings,
            "hasOpenMatchings": bool(open_matchings),
            "_lastPayment": last_payment["parsedDate"] if last_payment is not None else None,
            "_lastSale": last_sale["parsedDate"] if last_sale is not None else None,
        })
    return result


def _tier(value, good, medium, higher_is_better=True):
    if value is None:
        return 0
    if higher_is_better:
        return 2 if value >= good else 1 if value >= medium else 0
    return 2 if value <= good else 1 if value <= medium else 0


def debt_rating(customer, closed, today=None):
    """Good / Medium / Bad from five 0-2 scores, with closed accounts and risk flags overriding."""
    today = today or datetime.now()
    if normalize_name(customer["customerName"]) in closed:
        return "Bad"

    net_debt = customer["netDebt"]
    if net_debt < 0:
        return "Good"

    pay_count = customer["paymentsCount3m"]
    if customer["sales3m"] < 0 and pay_count == 0:
        return "Bad"
    if pay_count == 0 and customer["salesCount3m"] == 0 and net_debt > 0:
        return "Bad"

    coll_rate = customer["totalCredit"] / customer["totalDebit"] if customer["totalDebit"] > 0 else 0
    total = (
        _tier(net_debt, 5000, 20000, higher_is_better=False)
        + _tier(coll_rate, 0.8, 0.5)
        + _tier(_days_since(customer.get("_lastPayment"), today), 30, 90, higher_is_better=False)
        + (2 if pay_count >= 2 else 1 if pay_count == 1 else 0)
        + _tier(_days_since(customer.get("_lastSale"), today), 30, 90, higher_is_better=False)
    )
    if total >= 7:
        return "Good"
    if total >= 4:
        return "Medium"
    return "Bad"


def public(customer):
    return {k: v for k, v in customer.items() if not k.startswith("_")}


def rated_customers(rows, closed, today=None):
    customers = analyse_customers(rows, today)
    for c in customers:
        c["rating"] = debt_rating(c, closed, today)
    return customers


def sales_rep_summary(rows, closed, today=None):
    if not rows:
        return []
    customers = rated_customers(rows, closed, today)

    df = pd.DataFrame(rows)
    reps = df.groupby("salesRep", sort=False).agg(
        totalDebit=("debit", "sum"),
        totalCredit=("credit", "sum"),
        transactionCount=("customerName", "size"),
        customerCount=("customerName", "nunique"),
    ).reset_index()

    result = []
    for rep in reps.to_dict(orient="records"):
        name = rep["salesRep"]
        ratings = [c["rating"] for c in customers if name in c["salesReps"]]
        debit, credit = float(rep["totalDebit"]), float(rep["totalCredit"])
        result.append({
            "salesRep": name,
            "totalDebit": debit,
            "totalCredit": credit,
            "netDebt": debit - credit,
            "customerCount": int(rep["customerCount"]),
            "transactionCount": int(rep["transactionCount"]),
            "collectionRate": (credit / debit) * 100 if debit > 0 else 0,
            "goodCustomersCount": ratings.count("Good"),
            "mediumCustomersCount": ratings.count("Medium"),
            "badCustomersCount": ratings.count("Bad"),
        })
    return sorted(result, key=lambda r: r["netDebt"], reverse=True)


# ---------- aging ----------
def _bucket(days_overdue):
    if days_overdue <= 0:
        return "atDate"
    if days_overdue <= 30:
        return "oneToThirty"
    if days_overdue <= 60:
        return "thirtyOneToSixty"
    if days_overdue <= 90:
        return "sixtyOneToNinety"
    if days_overdue <= 120:
        return "ninetyOneToOneTwenty"
    return "older"


def aging(rows, today=None):
    """Allocate each customer's positive net debt to its newest-due debits first."""
    today = pd.Timestamp(today or datetime.now()).normalize()
    if not rows:
        return []

    df = invoice_frame(rows)
    df["effectiveDue"] = df["parsedDue"].fillna(df["parsedDate"])

    summaries = []
    for customer, g in df.groupby("customerName", sort=False):
        net_debt = float(g["debit"].sum() - g["credit"].sum())
        summary = dict.fromkeys(AGING_BUCKETS, 0.0)
        summary.update(customerName=customer, total=net_debt)

        if net_debt > 0.01:
            remaining = net_debt
            debits = g[g["debit"] > 0].sort_values("effectiveDue", ascending=False, na_position="last")
            for _, inv in debits.iterrows():
                if remaining <= 0:
                    break
                amount = min(float(inv["debit"]), remaining)
                due = inv["effectiveDue"]
                if pd.isna(due):
                    days = 0
                else:
                    days = math.ceil((today - due.normalize()).total_seconds() / 86400)
                summary[_bucket(days)] += amount
                remaining -= amount
        summaries.append(summary)

    return sorted(summaries, key=lambda s: s["total"], reverse=True)


# ---------- closed / semi-closed ----------
def customer_names(title):
    """Column B names of a customer list tab; a missing tab reads as empty."""
    try:
        rows = sheets.read_rows(title)
    except sheets.SheetNotFound:
        return []
    return [sheets.text(row, 1) for _, row in rows if sheets.text(row, 1)]


def closed_set(title=None):
    return {normalize_name(n) for n in customer_names(title or config.CLOSED_TAB)}


# ---------- notes ----------
def _timestamp():
    return datetime.utcnow().strftime("%m/%d/%Y, %I:%M:%S %p")


def list_notes(customer_name=None):
    notes = [{
        "user": sheets.text(row, 0),
        "customerName": sheets.text(row, 1),
        "content": sheets.text(row, 2),
        "timestamp": sheets.text(row, 3),
        "isSolved": sheets.text(row, 4).upper() == "TRUE",
        "rowIndex": row_index,
    } for row_index, row in sheets.read_rows(config.NOTES_TAB)]
    if customer_name:
        notes = [n for n in notes if n["customerName"] == customer_name]
    return notes


def add_note(user, customer_name, content, is_solved=False):
    sheets.append_rows(config.NOTES_TAB, [[user, customer_name, content, _timestamp(), "TRUE" if is_solved else "FALSE"]])


def update_note(row_index, content, is_solved=False):
    sheets.update_row(config.NOTES_TAB, row_index, [content, _timestamp(), "TRUE" if is_solved else "FALSE"], first_col=3)


def delete_note(row_index):
    sheets.delete_row(config.NOTES_TAB, row_index)


# ---------- discount reconciliation months ----------
def month_key(token):
    """'JAN25', 'JAN2025', 'JAN-25', 'JAN/25' -> '2025-01'; anything else -> None."""
    m = re.match(r"^([A-Z]{3})[-/]?(\d{2}|\d{4})$", (token or "").strip().upper())
    if not m or m.group(1) not in MONTHS:
        return None
    year = int(m.group(2))
    if year < 100:
        year += 2000
    return f"{year}-{MONTHS.index(m.group(1)) + 1:02d}"


def flexible_month_key(token, fallback_year):
    token = (token or "").strip()
    if re.match(r"^\d{4}-\d{2}$", token):
        return token if 1 <= int(token[5:]) <= 12 else None
    return month_key(token) or month_key(f"{token}{fallback_year}")


def month_token(key):
    year, month = key.split("-")
    return f"{MONTHS[int(month) - 1]}{year[-2:]}"


def split_months(cell, fallback_year=None):
    tokens = re.split(r"[,;\s]+", cell or "")
    if fallback_year is None:
        keys = (month_key(t) for t in tokens)
    else:
        keys = (flexible_month_key(t, fallback_year) for t in tokens)
    return [k for k in keys if k]


def discount_entries():
    entries = []
    for _, row in sheets.read_rows(config.DISCOUNTS_TAB):
        name = sheets.text(row, 1)
        if name:
            entries.append({"customerName": name, "reconciliationMonths": split_months(sheets.text(row, 2))})
    return entries


def set_reconciliation_month(customer_name, month, marked, today=None):
    """Add or remove one month for a customer and rewrite the cell as sorted MONYY tokens."""
    year = (today or datetime.now()).year
    key = flexible_month_key(month, year)
    if key is None:
        raise ValueError(f"Unrecognised month '{month}'")

    wanted = normalize_name(customer_name)
    for row_index, row in sheets.read_rows(config.DISCOUNTS_TAB):
        if normalize_name(sheets.text(row, 1)) == wanted:
            break
    else:
        raise sheets.RowNotFound("Customer not found in DISCOUNTS sheet")

    months = set(split_months(sheets.text(row, 2), year))
    if marked:
        months.add(key)
    else:
        months.discard(key)
    ordered = sorted(months)
    sheets.update_cell(config.DISCOUNTS_TAB, row_index, 3, ", ".join(month_token(k) for k in ordered))
    return ordered


# ---------- suppliers ----------
def supplier_rows(values, kind):
    return [{
        "date": sheets.text(row, 0),
        "number": sheets.text(row, 1),
        "supplierName": sheets.text(row, 2),
        "amount": sheets.number(row, 3),
        "type": kind,
    } for row in values[1:] if sheets.text(row, 2)]


def load_suppliers():
    return (supplier_rows(sheets.read_values(config.SUPPLIER_PURCHASE_TAB), "Purchase")
            + supplier_rows(sheets.read_values(config.SUPPLIER_REFUND_TAB), "Refund"))
