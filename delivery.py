import re

import config
import sheets

# LPO tab columns A:J, in order
LPO_FIELDS = ["lpoId", "lpoNumber", "lpoDate", "customerName", "lpoValue",
              "invoiceValue", "invoiceDate", "status", "reship", "notes"]
ITEM_STATUSES = ("missing", "shipped", "canceled")


def list_lpos():
    records = []
    for row_index, row in sheets.read_rows(config.LPO_TAB):
        record = {f: sheets.text(row, i) for i, f in enumerate(LPO_FIELDS)}
        if not record["lpoId"]:
            continue
        record["lpoValue"] = sheets.number(row, 4)
        record["invoiceValue"] = sheets.number(row, 5)
        record["rowIndex"] = row_index
        records.append(record)
    return records


def list_items():
    return [{
        "rowId": sheets.text(row, 0),
        "lpoId": sheets.text(row, 1),
        "itemName": sheets.text(row, 2),
        "status": sheets.text(row, 3).lower(),
        "shipmentValue": sheets.number(row, 4),
    } for _, row in sheets.read_rows(config.LPO_ITEMS_TAB) if sheets.text(row, 1)]


def list_customers():
    try:
        rows = sheets.read_rows(config.LPO_CUSTOMERS_TAB)
    except sheets.SheetNotFound:
        return []
    return sorted({sheets.text(row, 0) for _, row in rows} - {""})


def merge_orders(records, items):
    """Attach each LPO's item names, split by item status."""
    by_lpo = {}
    for item in items:
        by_lpo.setdefault(item["lpoId"], []).append(item)

    merged = []
    for r in records:
        lpo_items = by_lpo.get(r["lpoId"], [])
        names = {s: [i["itemName"] for i in lpo_items if i["status"] == s] for s in ITEM_STATUSES}
        merged.append({
            "id": r["lpoId"],
            "lpoId": r["lpoId"],
            "lpo": r["lpoNumber"],
            "date": r["lpoDate"],
            "customer": r["customerName"],
            "lpoVal": r["lpoValue"],
            "invoiceVal": r["invoiceValue"],
            "invoiceDate": r["invoiceDate"],
            "status": r["status"],
            "reship": r["reship"],
            "notes": r["notes"],
            "missing": names["missing"],
            "shippedItems": names["shipped"],
            "canceledItems": names["canceled"],
            "_rowIndex": r["rowIndex"],
        })
    return merged


def next_id(prefix, existing):
    """'<prefix>-NNN' after the highest existing sequence for that prefix."""
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    numbers = [int(m.group(1)) for m in (pattern.match(e or "") for e in existing) if m]
    return f"{prefix}-{max(numbers, default=0) + 1:03d}"


def add_lpo(data):
    missing = [f for f in ("lpoNumber", "lpoDate", "customerName", "lpoValue") if not data.get(f)]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    lpo_id = next_id("L", [r["lpoId"] for r in list_lpos()])
    sheets.append_rows(config.LPO_TAB, [[
        lpo_id, data["lpoNumber"], data["lpoDate"], data["customerName"], data["lpoValue"],
        "", "", data.get("status") or "Pending", "", "",
    ]])
    print(f"[DELIVERY] Added {lpo_id} ({data['lpoNumber']})")
    return lpo_id


def add_item(data):
    missing = [f for f in ("lpoId", "itemName", "status") if not data.get(f)]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    row_id = next_id("R", [i["rowId"] for i in list_items()])
    sheets.append_rows(config.LPO_ITEMS_TAB, [[
        row_id, data["lpoId"], data["itemName"], data["status"], data.get("shipmentValue") or 0,
    ]])
    return row_id


def update_lpo(row_index, fields):
    """Rewrite the row with only the supplied fields changed."""
    values = sheets.read_values(config.LPO_TAB)
    if row_index < 2 or row_index > len(values):
        raise sheets.RowNotFound(f"LPO row {row_index} not found")
    current = list(values[row_index - 1]) + [""] * len(LPO_FIELDS)
    row = current[:len(LPO_FIELDS)]
    for i, f in enumerate(LPO_FIELDS):
        if f in fields and f != "lpoId":
            row[i] = fields[f]
    sheets.update_row(config.LPO_TAB, row_index, row)


def delete_lpo(row_index):
    sheets.delete_row(config.LPO_TAB, row_index)
