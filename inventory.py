import re
from datetime import datetime, timedelta

import pandas as pd

import config
import sheets

INVENTORY_FIELDS = ["barcode", "itemCode", "productName", "tags", "type", "qtyInBox", "weight", "size"]
ORDER_FIELDS = ["poNumber", "productId", "barcode", "productName", "qtyOrder", "status"]

SALES_WINDOW_DAYS = 120


def smart_parse_date(series):
    """Parse a date column as US or EU order, whichever yields more valid dates."""
    parsed_us = pd.to_datetime(series, errors='coerce', dayfirst=False)
    parsed_eu = pd.to_datetime(series, errors='coerce', dayfirst=True)

    us_valid = parsed_us.notna().sum()
    eu_valid = parsed_eu.notna().sum()

    return parsed_eu if eu_valid > us_valid else parsed_us


# ---------- product master ----------
def list_products():
    data = []
    for row_index, row in sheets.read_rows(config.INVENTORY_TAB):
        item = {
            "rowIndex": row_index,
            "barcode": sheets.text(row, 0),
            "itemCode": sheets.text(row, 1),
            "productName": sheets.text(row, 2),
            "tags": sheets.text(row, 3),
            "type": sheets.text(row, 4),
            "qtyInBox": sheets.integer(row, 5),
            "weight": sheets.text(row, 6),
            "size": sheets.text(row, 7),
        }
        if item["productName"]:
            data.append(item)
    return data


def update_product(row_index, data):
    values = [data.get(f, "") for f in INVENTORY_FIELDS]
    values[5] = data.get("qtyInBox") or 0
    sheets.update_row(config.INVENTORY_TAB, row_index, values)


# ---------- product orders ----------
def _contains(header, *words, exclude=()):
    for i, h in enumerate(header):
        if any(w in h for w in words) and not any(x in h for x in exclude):
            return i
    return -1


def order_columns(header):
    """Locate order-sheet columns by header keywords, falling back to fixed positions."""
    header = [str(h).strip().lower() for h in header]
    idx = {
        "id": _contains(header, "id", "code"),
        "barcode": _contains(header, "barcode"),
        "name": _contains(header, "name", "product", "item", exclude=("id", "code")),
        "minQ": _contains(header, "min q", "min"),
        "maxQ": _contains(header, "max q", "max"),
        "qinc": _contains(header, "qinc", "units", "ctn", exclude=("min", "max")),
        "tags": _contains(header, "tag"),
        "onHand": _contains(header, "on hand", "stock"),
        "free": _contains(header, "free", "avail"),
    }
    fallback = {"id": 0, "barcode": 1, "name": 2, "minQ": 3, "maxQ": 4,
                "qinc": 5, "tags": 6, "onHand": 7, "free": 8}
    return {k: (v if v != -1 else fallback[k]) for k, v in idx.items()}


def month_buckets(today):
    """The current month and the three before it, oldest first, as (period, 'Mon YY')."""
    current = pd.Period(today, freq="M")
    periods = [current - n for n in (3, 2, 1, 0)]
    return [(p, p.to_timestamp().strftime("%b %y")) for p in periods]


def sales_frame(values):
    """Sales rows as a frame of date / productId / qty, header-mapped with A, I, P defaults."""
    if not values:
        return pd.DataFrame(columns=["date", "productId", "qty"])

    header = values[0]
    date_i = sheets.find_header(header, "date", "invoice date", default=0)
    product_i = sheets.find_header(header, "product id", "item code", "code", default=8)
    qty_i = sheets.find_header(header, "qty", "quantity", "pieces", "pcs", default=15)

    df = pd.DataFrame({
        "date": [sheets.text(r, date_i) for r in values[1:]],
        "productId": [sheets.text(r, product_i) for r in values[1:]],
        "qty": [sheets.number(r, qty_i, None) for r in values[1:]],
    })
    df["date"] = smart_parse_date(df["date"])
    df["qty"] = pd.to_numeric(df["qty"], errors="coerce")
    df = df.dropna(subset=["date", "qty"])
    return df[df["productId"] != ""]


def sales_by_product(sales, today):
    """({productId: qty in the trailing window}, {productId: [4 monthly qtys]}, labels)."""
    buckets = month_buckets(today)
    labels = [label for _, label in buckets]
    if sales.empty:
        return {}, {}, labels

    cutoff = pd.Timestamp(today).normalize() - timedelta(days=SALES_WINDOW_DAYS)
    recent = sales[sales["date"] >= cutoff].groupby("productId")["qty"].sum().to_dict()

    sales = sales.assign(period=sales["date"].dt.to_period("M"))
    by_month = sales.groupby(["productId", "period"])["qty"].sum()
    breakdown = {}
    for (product_id, period), qty in by_month.items():
        for i, (p, _) in enumerate(buckets):
            if p == period:
                breakdown.setdefault(product_id, [0.0] * len(buckets))[i] += float(qty)
    return recent, breakdown, labels


def product_orders(order_values, sales_values, today=None):
    today = today or datetime.now()
    if not order_values:
        return []

    recent, breakdown, labels = sales_by_product(sales_frame(sales_values), today)
    idx = order_columns(order_values[0])

    data = []
    for n, row in enumerate(order_values[1:]):
        product_id = sheets.text(row, idx["id"])
        barcode = sheets.text(row, idx["barcode"])
        name = sheets.text(row, idx["name"])
        if not name:
            continue
        product_id = product_id or fallback_product_id(barcode, name, n)

        qtys = breakdown.get(product_id, [0.0] * len(labels))
        data.append({
            "productId": product_id,
            "barcode": barcode,
            "productName": name,
            "minQ": sheets.number(row, idx["minQ"]),
            "maxQ": sheets.number(row, idx["maxQ"]),
            "qinc": sheets.number(row, idx["qinc"]),
            "tags": sheets.text(row, idx["tags"]),
            "qtyOnHand": sheets.number(row, idx["onHand"]),
            "qtyFreeToUse": sheets.number(row, idx["free"]),
            "salesQty": float(recent.get(product_id, 0)),
            "rowIndex": n + 2,
            "salesBreakdown": [{"label": l, "qty": q} for l, q in zip(labels, qtys)],
        })
    return data


def fallback_product_id(barcode, name, n):
    if barcode:
        return f"BAR-{barcode}"
    if name:
        return "NAME-" + re.sub(r"\s+", "_", name)
    return f"ROW-{n}"


def load_product_orders(today=None):
    order_values = sheets.read_values(config.ORDERS_TAB)
    sales_values = sheets.read_values(config.SALES_TAB)
    return product_orders(order_values, sales_values, today)


def update_order_column(row_index, field, value):
    """Write qinc / minQ / maxQ for one product row, column located by header."""
    if field not in ("qinc", "minQ", "maxQ"):
        raise ValueError(f"Unknown column {field}")
    values = sheets.read_values(config.ORDERS_TAB)
    idx = order_columns(values[0] if values else [])
    sheets.update_cell(config.ORDERS_TAB, row_index, idx[field] + 1, value)
    print(f"[INVENTORY] {field} of row {row_index} set to {value}")


# ---------- purchase orders ----------
def save_order(items):
    """Replace every row of the PO with the posted items."""
    if not items:
        raise ValueError("No items to save")
    po_number = str(items[0].get("poNumber", "")).strip()
    if not po_number:
        raise ValueError("poNumber is required")

    existing = [i for i, row in sheets.read_rows(config.ORDERS_MAKE_TAB) if sheets.text(row, 0) == po_number]
    if existing:
        sheets.delete_rows(config.ORDERS_MAKE_TAB, existing)

    rows = [[
        item.get("poNumber", po_number),
        item.get("productId", ""),
        item.get("barcode", ""),
        item.get("productName", ""),
        item.get("qtyOrder", 0),
        item.get("status") or "Pending",
    ] for item in items]
    sheets.append_rows(config.ORDERS_MAKE_TAB, rows)
    print(f"[INVENTORY] PO {po_number}: replaced {len(existing)} rows with {len(rows)}")
    return {"poNumber": po_number, "replaced": len(existing), "saved": len(rows)}


def order_details(po_number):
    po_number = po_number.strip()
    return [{
        "poNumber": sheets.text(row, 0),
        "productId": sheets.text(row, 1),
        "barcode": sheets.text(row, 2),
        "productName": sheets.text(row, 3),
        "qtyOrder": sheets.integer(row, 4),
        "status": sheets.text(row, 5) or "Pending",
    } for _, row in sheets.read_rows(config.ORDERS_MAKE_TAB) if sheets.text(row, 0) == po_number]


def next_po_number(po_numbers, year):
    pattern = re.compile(rf"PO-{year}-(\d{{3}})")
    highest = 0
    for po in po_numbers:
        m = pattern.search(po or "")
        if m:
            highest = max(highest, int(m.group(1)))
    return f"PO-{year}-{highest + 1:03d}"


def load_next_po_number(today=None):
    year = (today or datetime.now()).year
    try:
        po_numbers = [sheets.text(row, 0) for _, row in sheets.read_rows(config.ORDERS_MAKE_TAB)]
    except (sheets.SheetNotFound, IndexError) as e:
        print(f"[INVENTORY] PO numbers unreadable, starting fresh: {e}")
        return f"PO-{year}-001"
    return next_po_number(po_numbers, year)


# ---------- counting ----------
def counting_rows():
    data = []
    for row_index, row in sheets.read_rows(config.COUNTING_TAB):
        item = {
            "rowIndex": row_index,
            "barcode": sheets.text(row, 0),
            "productName": sheets.text(row, 1),
            "qtyInBox": sheets.number(row, 2),
            "totalQty": sheets.number(row, 3),
        }
        if item["barcode"] or item["productName"]:
            data.append(item)
    return data


def update_counting_row(row_index, data):
    sheets.update_row(config.COUNTING_TAB, row_index, [
        data["barcode"], data["productName"], data.get("qtyInBox") or 0, data.get("totalQty") or 0,
    ])


def read_count_file(file):
    """Uploaded count sheet (xlsx or csv) with BARCODE and COUNTED columns."""
    ext = file.filename.rsplit('.', 1)[-1].lower()
    if ext == 'csv':
        df = pd.read_csv(file, dtype=str)
    else:
        df = pd.read_excel(file, dtype=str, engine='openpyxl')

    df.columns = [str(c).strip().upper() for c in df.columns]
    missing = [c for c in ("BARCODE", "COUNTED") if c not in df.columns]
    if missing:
        raise ValueError(f"Missing columns: {', '.join(missing)}")

    df["BARCODE"] = df["BARCODE"].fillna("").astype(str).str.strip()
    df["COUNTED"] = pd.to_numeric(df["COUNTED"].astype(str).str.replace(",", ""), errors="coerce").fillna(0)
    return df[df["BARCODE"] != ""].groupby("BARCODE", as_index=False)["COUNTED"].sum()


def counting_variance(rows, counted):
    """Join the counting tab with a count file by barcode; variance = counted - system."""
    system = pd.DataFrame(rows, columns=["barcode", "productName", "totalQty"])
    counts = counted.rename(columns={"BARCODE": "barcode", "COUNTED": "counted"})
    merged = system.merge(counts, on="barcode", how="outer", indicator=True)
    merged["productName"] = merged["productName"].fillna("")
    merged["totalQty"] = merged["totalQty"].fillna(0)
    merged["counted"] = merged["counted"].fillna(0)
    merged["variance"] = merged["counted"] - merged["totalQty"]
    merged["status"] = merged["_merge"].map({
        "both": "Counted", "left_only": "Not counted", "right_only": "Unknown barcode",
    }).astype(str)
    return merged.drop(columns="_merge")
