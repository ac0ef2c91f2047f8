"""
Chipsy stock ledger.

The inventory tab holds each product's opening quantity in pieces; every stock
movement since then lives in the transfers tab. Current stock is never stored,
it is replayed from the transfers on every read.
"""
import re
from collections import defaultdict
from datetime import datetime

import config
import sheets

MAIN_LOCATIONS = {"MAIN", "MAIN INVENTORY"}
CUSTOMER_LOCATION = "CUSTOMER"
LEGACY_IN = "IN"
LEGACY_OUT = "OUT"

# description tag of the bulk transfer that books invoiced quantities out of main stock
RECONCILIATION_MARKER = "INVOICE RECONCILIATION"

TRANSFER_COLUMNS = [
    "user", "number", "date", "locFrom", "locTo", "customerName", "receiverName",
    "barcode", "productName", "qtyPcs", "price", "total", "description",
]


class ProductNotFound(sheets.RowNotFound):
    pass


# ---------- sheet rows ----------
def parse_product(row_index, row):
    return {
        "rowIndex": row_index,
        "barcode": sheets.text(row, 0),
        "productName": sheets.text(row, 1),
        "qtyPcs": sheets.integer(row, 2),
        "pcsInCtn": sheets.integer(row, 3, default=1) or 1,
        "price": sheets.number(row, 4),
    }


def parse_transfer(row):
    return {
        "user": sheets.text(row, 0),
        "number": sheets.text(row, 1),
        "date": sheets.text(row, 2),
        "locFrom": sheets.text(row, 3) or "MAIN",
        "locTo": sheets.text(row, 4) or "MAIN",
        "customerName": sheets.text(row, 5),
        "receiverName": sheets.text(row, 6),
        "barcode": sheets.text(row, 7),
        "productName": sheets.text(row, 8),
        "qtyPcs": sheets.integer(row, 9),
        "price": sheets.number(row, 10),
        "total": sheets.number(row, 11),
        "description": sheets.text(row, 12),
    }


def transfer_row(t):
    return [
        t["user"], t["number"], t["date"], t["locFrom"], t["locTo"],
        t.get("customerName", ""), t.get("receiverName", ""),
        t["barcode"], t["productName"], t["qtyPcs"],
        t.get("price", 0), t.get("total", 0), t.get("description", ""),
    ]


def load_products():
    products = [parse_product(i, row) for i, row in sheets.read_rows(config.CHIPSY_INVENTORY_TAB)]
    return [p for p in products if p["productName"]]


def load_transfers():
    """Transfers in sheet order, which is the order they were recorded."""
    return [parse_transfer(row) for _, row in sheets.read_rows(config.CHIPSY_TRANSFERS_TAB)]


# ---------- locations ----------
def _norm(loc):
    return (loc or "").strip().upper()


def is_main(loc):
    return _norm(loc) in MAIN_LOCATIONS


def is_legacy(loc):
    return _norm(loc) in (LEGACY_IN, LEGACY_OUT)


def is_customer(loc, customer_name=""):
    norm = _norm(loc)
    if norm == CUSTOMER_LOCATION:
        return True
    return bool(customer_name) and norm == _norm(customer_name)


def is_person(loc, customer_name=""):
    return bool(_norm(loc)) and not (is_main(loc) or is_legacy(loc) or is_customer(loc, customer_name))


def direction(transfer):
    """'in' / 'out' relative to main stock, None when main stock is not involved."""
    loc_from, loc_to = transfer["locFrom"], transfer["locTo"]
    if is_main(loc_to) or _norm(loc_from) == LEGACY_IN:
        return "in"
    if is_main(loc_from) or _norm(loc_from) == LEGACY_OUT:
        return "out"
    return None


def is_reconciliation(transfer):
    return RECONCILIATION_MARKER in _norm(transfer.get("description"))


# ---------- ledger ----------
def replay_stock(products, transfers):
    """
    Fold the transfers (oldest first) over the opening quantities.

    Returns (products with replayed qtyPcs, summary). Quantity a person sold on
    to a customer is parked in a per-barcode buffer; a later reconciliation
    transfer that books the same invoiced quantity out of main stock is netted
    against that buffer so it is not deducted twice.
    """
    stock = {p["barcode"]: dict(p) for p in products}
    buffer = defaultdict(int)
    applied = skipped = offset_total = 0

    for t in transfers:
        barcode = t["barcode"]
        product = stock.get(barcode)
        if product is None:
            skipped += 1
            continue

        qty = t["qtyPcs"]
        move = direction(t)
        if move == "in":
            product["qtyPcs"] += qty
        elif move == "out":
            if is_reconciliation(t):
                offset = min(qty, buffer[barcode])
                buffer[barcode] -= offset
                offset_total += offset
                qty -= offset
            product["qtyPcs"] -= qty
        elif is_person(t["locFrom"], t["customerName"]) and is_customer(t["locTo"], t["customerName"]):
            buffer[barcode] += qty
        applied += 1

    summary = {
        "applied": applied,
        "skipped": skipped,
        "reconciledOffset": offset_total,
        "buffer": {k: v for k, v in buffer.items() if v},
    }
    ordered = [stock[p["barcode"]] for p in products if p["barcode"] in stock]
    # duplicated barcodes in the tab collapse onto one product
    seen, result = set(), []
    for p in ordered:
        if p["barcode"] not in seen:
            seen.add(p["barcode"])
            result.append(p)
    return result, summary


def stock_totals(products):
    total_pcs = sum(p["qtyPcs"] for p in products)
    total_ctns = sum(p["qtyPcs"] / (p["pcsInCtn"] or 1) for p in products)
    return {"totalItems": len(products), "totalPcs": total_pcs, "totalCtns": round(total_ctns, 1)}


def people_holdings(transfers, products):
    holdings = defaultdict(lambda: defaultdict(int))

    for t in transfers:
        loc_from, loc_to, qty = t["locFrom"], t["locTo"], t["qtyPcs"]
        customer = t["customerName"]
        if _norm(loc_from) == LEGACY_OUT and is_person(loc_to, customer):
            holdings[loc_to.strip()][t["barcode"]] += qty
            continue
        if _norm(loc_from) == LEGACY_IN and is_person(loc_to, customer):
            holdings[loc_to.strip()][t["barcode"]] -= qty
            continue
        if is_person(loc_from, customer):
            holdings[loc_from.strip()][t["barcode"]] -= qty
        if is_person(loc_to, customer):
            holdings[loc_to.strip()][t["barcode"]] += qty

    pcs_in_ctn = {p["barcode"]: p["pcsInCtn"] or 1 for p in products}
    result = []
    for name, per_barcode in holdings.items():
        items = {bc: q for bc, q in per_barcode.items() if q != 0}
        if not items:
            continue
        total_pcs = sum(items.values())
        total_ctns = sum(q / pcs_in_ctn.get(bc, 1) for bc, q in items.items())
        result.append({
            "name": name,
            "products": items,
            "productCount": len(items),
            "totalPcs": total_pcs,
            "totalCtns": round(total_ctns, 2),
        })
    return sorted(result, key=lambda r: r["totalPcs"], reverse=True)


# ---------- transactions ----------
def next_transaction_number(transfers, prefix="TRX"):
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    highest = 0
    for t in transfers:
        m = pattern.match(t["number"])
        if m:
            highest = max(highest, int(m.group(1)))
    return f"{prefix}-{highest + 1:04d}"


def resolve_locations(header):
    """Legacy payloads send type IN/OUT plus a person; map them onto locations."""
    loc_from = (header.get("locFrom") or "").strip()
    loc_to = (header.get("locTo") or "").strip()
    if loc_from and loc_to:
        return loc_from, loc_to

    kind = _norm(header.get("type"))
    person = (header.get("personName") or "").strip()
    if kind == LEGACY_OUT:
        return "Main Inventory", person or "Unknown"
    if kind == LEGACY_IN:
        return person or "Unknown", "Main Inventory"
    raise ValueError("Transaction needs locFrom and locTo, or type IN/OUT")


def build_transaction(header, items, products, transfers, now=None):
    """Turn a posted cart into transfer rows sharing one transaction number."""
    loc_from, loc_to = resolve_locations(header)
    if _norm(loc_from) == _norm(loc_to):
        raise ValueError("Source and destination must differ")

    by_barcode = {p["barcode"]: p for p in products}
    number = next_transaction_number(transfers, header.get("prefix") or "TRX")
    stamp = (now or datetime.now()).strftime("%m/%d/%Y, %I:%M:%S %p")

    rows = []
    for item in items:
        qty = float(item.get("qty") or 0)
        if qty <= 0:
            continue
        barcode = str(item.get("barcode", "")).strip()
        product = by_barcode.get(barcode)
        if product is None:
            raise ProductNotFound(f"Product {barcode} not found in inventory")
        unit = _norm(item.get("unit")) or "PCS"
        qty_pcs = int(round(qty * product["pcsInCtn"])) if unit == "CTN" else int(round(qty))
        price = float(item.get("price") if item.get("price") not in (None, "") else product["price"])
        rows.append({
            "user": header.get("user") or "Unknown",
            "number": number,
            "date": stamp,
            "locFrom": loc_from,
            "locTo": loc_to,
            "customerName": (header.get("customerName") or "").strip(),
            "receiverName": (header.get("receiverName") or "").strip(),
            "barcode": barcode,
            "productName": product["productName"],
            "qtyPcs": qty_pcs,
            "price": price,
            "total": round(qty_pcs * price, 2),
            "description": (header.get("description") or "").strip(),
        })

    if not rows:
        raise ValueError("No valid items in transaction")
    return number, rows
