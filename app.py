from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from flask import Response
from datetime import datetime
import argparse
import json
import os
import time

import numpy as np
import pandas as pd

import config
import sheets
import chipsy
import inventory
import debts
import staff
import delivery
import exports
from sheets import init_sheets

app = Flask(__name__)
CORS(app)

# avoid silent downcasting warnings everywhere
pd.set_option('future.no_silent_downcasting', True)


def convert_np(obj):
    if isinstance(obj, (np.integer, np.int64)):
        return int(obj)
    if isinstance(obj, (np.floating, np.float64)):
        return float(obj)
    return str(obj)


def json_response(payload, status=200):
    """jsonify for payloads that may still carry numpy scalars."""
    return Response(json.dumps(payload, default=convert_np), status=status, mimetype='application/json')


# ---------- JSON-SAFE HELPERS ----------
def _json_safe_df(df: pd.DataFrame) -> pd.DataFrame:
    """
    Make a dataframe safe to jsonify:
      - datetimes -> ISO strings 'YYYY-MM-DDTHH:MM:SS'
      - NaN/NaT -> None
    """
    if df is None or df.empty:
        return df

    out = df.copy()
    for col in out.columns:
        s = out[col]
        if pd.api.types.is_datetime64_any_dtype(s):
            s_dt = pd.to_datetime(s, errors='coerce')
            out[col] = s_dt.dt.strftime('%Y-%m-%dT%H:%M:%S')
            out.loc[s_dt.isna(), col] = None

    out = out.astype(object).where(pd.notnull(out), None)
    return out


def _df_records(df: pd.DataFrame):
    """Return JSON-serializable records list."""
    if df is None or len(df) == 0:
        return []
    return _json_safe_df(df).to_dict(orient='records')


def fail(tag, e):
    """Map a handler exception to its JSON error and status code."""
    if isinstance(e, ValueError):
        return jsonify({"error": str(e)}), 400
    if isinstance(e, sheets.RowNotFound):
        return jsonify({"error": str(e)}), 404
    print(f"[{tag} ERROR]", e)
    return jsonify({"error": str(e)}), 500


def row_index_arg(data):
    try:
        row_index = int((data or {}).get("rowIndex") or request.args.get("rowIndex") or 0)
    except (TypeError, ValueError):
        row_index = 0
    if row_index < 2:
        raise ValueError("rowIndex is required")
    return row_index


@app.route("/health", methods=["GET"])
def health():
    t0 = time.time()
    status, hint = "UP", "Flask is running"
    if sheets.spreadsheet is None:
        # gunicorn never calls main(); the client connects on the first data request
        hint = "Spreadsheet client connects on first request"
    latency_ms = int((time.time() - t0) * 1000)
    return jsonify({
        "service": "Operations API",
        "status": status,
        "latencyMs": latency_ms,
        "updatedAt": datetime.utcnow().isoformat() + "Z",
        "hint": hint
    })


##---------------------------Chipsy Inventory----------------------------------------------

def _replayed_stock():
    products = chipsy.load_products()
    transfers = chipsy.load_transfers()
    stock, summary = chipsy.replay_stock(products, transfers)
    print(f"[CHIPSY] replayed {summary['applied']} transfers, skipped {summary['skipped']}")
    return stock, transfers, summary


@app.route('/api/chipsy', methods=['GET'])
def get_chipsy():
    try:
        stock, transfers, summary = _replayed_stock()
        return jsonify({
            "products": stock,
            "totals": chipsy.stock_totals(stock),
            "people": chipsy.people_holdings(transfers, stock),
            "ledger": summary,
        })
    except Exception as e:
        return fail("CHIPSY", e)


@app.route('/api/chipsy/transaction', methods=['POST'])
def post_chipsy_transaction():
    data = request.get_json() or {}
    try:
        items = data.get("items") or []
        if not items:
            return jsonify({"error": "No items provided"}), 400
        products = chipsy.load_products()
        transfers = chipsy.load_transfers()
        header = data.get("transaction") or data
        number, rows = chipsy.build_transaction(header, items, products, transfers, now=exports.local_now())
        sheets.append_rows(config.CHIPSY_TRANSFERS_TAB, [chipsy.transfer_row(r) for r in rows])
        print(f"[CHIPSY] {number}: {len(rows)} rows {rows[0]['locFrom']} -> {rows[0]['locTo']}")
        return jsonify({"success": True, "transactionNumber": number, "number": number, "count": len(rows)})
    except Exception as e:
        return fail("CHIPSY", e)


@app.route('/api/chipsy/transfers', methods=['GET'])
def get_chipsy_transfers():
    try:
        transfers = list(reversed(chipsy.load_transfers()))
        number = (request.args.get("number") or "").strip()
        if number:
            transfers = [t for t in transfers if t["number"] == number]
        return jsonify({"transfers": transfers})
    except Exception as e:
        return fail("CHIPSY", e)


@app.route('/api/chipsy/next-number', methods=['GET'])
def get_chipsy_next_number():
    try:
        prefix = request.args.get("prefix") or "TRX"
        return jsonify({"number": chipsy.next_transaction_number(chipsy.load_transfers(), prefix)})
    except Exception as e:
        return fail("CHIPSY", e)


@app.route('/api/chipsy/export', methods=['GET'])
def export_chipsy():
    try:
        stock, _, summary = _replayed_stock()
        output = exports.write_chipsy_stock_excel(stock, summary, request.args.get("user") or "System")
        stamp = exports.local_now().strftime('%Y%m%d')
        return send_file(output, as_attachment=True, download_name=f'Chipsy_Stock_{stamp}.xlsx',
                         mimetype=exports.XLSX_MIMETYPE)
    except Exception as e:
        return fail("CHIPSY", e)


##---------------------------General Inventory----------------------------------------------

@app.route('/api/inventory', methods=['GET'])
def get_inventory():
    try:
        return jsonify({"data": inventory.list_products()})
    except Exception as e:
        return fail("INVENTORY", e)


@app.route('/api/inventory/update', methods=['POST'])
def update_inventory():
    data = request.get_json() or {}
    try:
        row_index = row_index_arg(data)
        if not data.get("productName"):
            return jsonify({"error": "productName is required"}), 400
        inventory.update_product(row_index, data)
        return jsonify({"success": True})
    except Exception as e:
        return fail("INVENTORY", e)


@app.route('/api/inventory/orders', methods=['GET'])
def get_product_orders():
    try:
        return json_response({"data": inventory.load_product_orders()})
    except Exception as e:
        return fail("INVENTORY", e)


@app.route('/api/inventory/update-qinc', methods=['POST'])
def update_qinc():
    data = request.get_json() or {}
    try:
        row_index = row_index_arg(data)
        if data.get("qinc") in (None, ""):
            return jsonify({"error": "qinc is required"}), 400
        inventory.update_order_column(row_index, "qinc", data["qinc"])
        return jsonify({"success": True})
    except Exception as e:
        return fail("INVENTORY", e)


@app.route('/api/inventory/update-limit', methods=['POST'])
def update_limit():
    data = request.get_json() or {}
    try:
        row_index = row_index_arg(data)
        field = data.get("field")
        if field not in ("minQ", "maxQ") or data.get("value") in (None, ""):
            return jsonify({"error": "field must be minQ or maxQ and value is required"}), 400
        inventory.update_order_column(row_index, field, data["value"])
        return jsonify({"success": True})
    except Exception as e:
        return fail("INVENTORY", e)


@app.route('/api/inventory/make-order', methods=['POST'])
def make_order():
    data = request.get_json() or {}
    try:
        result = inventory.save_order(data.get("items") or [])
        return jsonify({"success": True, **result})
    except Exception as e:
        return fail("INVENTORY", e)


@app.route('/api/inventory/order/<po_number>', methods=['GET'])
def get_order(po_number):
    try:
        return jsonify({"items": inventory.order_details(po_number)})
    except Exception as e:
        return fail("INVENTORY", e)


@app.route('/api/inventory/next-po', methods=['GET'])
def get_next_po():
    try:
        return jsonify({"poNumber": inventory.load_next_po_number()})
    except Exception as e:
        return fail("INVENTORY", e)


@app.route('/api/inventory-counting', methods=['GET'])
def get_counting():
    try:
        return jsonify({"data": inventory.counting_rows()})
    except Exception as e:
        return fail("COUNTING", e)


@app.route('/api/inventory-counting/update', methods=['POST'])
def update_counting():
    data = request.get_json() or {}
    try:
        row_index = row_index_arg(data)
        if not data.get("barcode") or not data.get("productName"):
            return jsonify({"error": "Missing required fields: rowIndex, barcode, productName"}), 400
        inventory.update_counting_row(row_index, data)
        return jsonify({"success": True})
    except Exception as e:
        return fail("COUNTING", e)


@app.route('/api/inventory-counting/import', methods=['POST'])
def import_counting():
    file = request.files.get('file')
    if not file or file.filename == '':
        return jsonify({"error": "No file provided"}), 400
    try:
        counted = inventory.read_count_file(file)
        variance = inventory.counting_variance(inventory.counting_rows(), counted)
        mismatches = int((variance["variance"] != 0).sum())
        print(f"[COUNTING] {len(counted)} counted barcodes, {mismatches} with variance")
        return json_response({"rows": _df_records(variance), "mismatches": mismatches})
    except Exception as e:
        return fail("COUNTING", e)


##---------------------------Debts & Invoices----------------------------------------------

@app.route('/api/sheets', methods=['GET'])
def get_invoices():
    try:
        return jsonify({"data": debts.load_invoices()})
    except Exception as e:
        return fail("DEBTS", e)


@app.route('/api/customers', methods=['GET'])
def get_customers():
    try:
        customers = debts.rated_customers(debts.load_invoices(), debts.closed_set())
        return json_response({"customers": [debts.public(c) for c in customers]})
    except Exception as e:
        return fail("DEBTS", e)


@app.route('/api/sales-reps', methods=['GET'])
def get_sales_reps():
    try:
        return json_response({"salesReps": debts.sales_rep_summary(debts.load_invoices(), debts.closed_set())})
    except Exception as e:
        return fail("DEBTS", e)


@app.route('/api/aging', methods=['GET'])
def get_aging():
    try:
        return json_response({"aging": debts.aging(debts.load_invoices())})
    except Exception as e:
        return fail("DEBTS", e)


@app.route('/api/closed-customers', methods=['GET'])
def get_closed_customers():
    try:
        return jsonify({"closedCustomers": debts.customer_names(config.CLOSED_TAB)})
    except Exception as e:
        return fail("DEBTS", e)


@app.route('/api/semi-closed-customers', methods=['GET'])
def get_semi_closed_customers():
    try:
        return jsonify({"semiClosedCustomers": debts.customer_names(config.SEMI_CLOSED_TAB)})
    except Exception as e:
        return fail("DEBTS", e)


@app.route('/api/notes', methods=['GET', 'POST', 'PUT', 'DELETE'])
def notes():
    data = request.get_json(silent=True) or {}
    try:
        if request.method == 'GET':
            return jsonify({"notes": debts.list_notes(request.args.get("customerName"))})

        if request.method == 'POST':
            if not data.get("user") or not data.get("customerName") or not data.get("content"):
                return jsonify({"error": "Missing required fields: user, customerName, content"}), 400
            debts.add_note(data["user"], data["customerName"], data["content"], bool(data.get("isSolved")))
            return jsonify({"success": True})

        row_index = row_index_arg(data)
        if request.method == 'PUT':
            if data.get("content") is None:
                return jsonify({"error": "content is required"}), 400
            debts.update_note(row_index, data["content"], bool(data.get("isSolved")))
        else:
            debts.delete_note(row_index)
        return jsonify({"success": True})
    except Exception as e:
        return fail("NOTES", e)


@app.route('/api/discounts', methods=['GET'])
def get_discounts():
    try:
        return jsonify({"entries": debts.discount_entries()})
    except Exception as e:
        return fail("DISCOUNTS", e)


@app.route('/api/discounts/reconcile', methods=['POST'])
def reconcile_discount():
    data = request.get_json() or {}
    try:
        month = data.get("monthKey") or data.get("month")
        if not data.get("customerName") or not month:
            return jsonify({"error": "customerName and monthKey are required"}), 400
        marked = data.get("action") not in ("unreconcile", "unmark")
        months = debts.set_reconciliation_month(data["customerName"], month, marked)
        return jsonify({"success": True, "reconciliationMonths": months})
    except Exception as e:
        return fail("DISCOUNTS", e)


@app.route('/api/suppliers', methods=['GET'])
def get_suppliers():
    try:
        return jsonify({"data": debts.load_suppliers()})
    except Exception as e:
        return fail("SUPPLIERS", e)


##---------------------------Petty Cash----------------------------------------------

@app.route('/api/petty-cash', methods=['GET', 'POST', 'PUT', 'DELETE'])
def petty_cash():
    data = request.get_json(silent=True) or {}
    try:
        if request.method == 'GET':
            records = staff.list_petty_cash()
            summary = staff.petty_cash_summary(records)
            return jsonify({"records": records, "summary": summary})

        if request.method == 'POST':
            row_index = staff.add_petty_cash(data)
            return jsonify({"success": True, "rowIndex": row_index})

        row_index = row_index_arg(data)
        if request.method == 'PUT':
            staff.update_petty_cash(row_index, data)
        else:
            staff.delete_petty_cash(row_index)
        return jsonify({"success": True})
    except Exception as e:
        return fail("PETTY CASH", e)


@app.route('/api/petty-cash/export', methods=['GET'])
def export_petty_cash():
    try:
        output = exports.write_petty_cash_excel(staff.list_petty_cash())
        stamp = exports.local_now().strftime('%Y%m%d')
        return send_file(output, as_attachment=True, download_name=f'Petty_Cash_{stamp}.xlsx',
                         mimetype=exports.XLSX_MIMETYPE)
    except Exception as e:
        return fail("PETTY CASH", e)


##---------------------------Employees & Overtime----------------------------------------------

@app.route('/api/employee', methods=['GET'])
def get_employees():
    try:
        return jsonify({"names": staff.employee_names()})
    except Exception as e:
        return fail("EMPLOYEE", e)


@app.route('/api/employee/salaries', methods=['GET'])
def get_salaries():
    try:
        return jsonify({"salaries": staff.employee_salaries()})
    except Exception as e:
        return fail("EMPLOYEE", e)


@app.route('/api/employee-overtime', methods=['GET', 'POST', 'PUT', 'DELETE'])
def employee_overtime():
    """Overtime records; ?type=names|absence and mode=absence select the other record kinds."""
    data = request.get_json(silent=True) or {}
    try:
        if request.method == 'GET':
            kind = request.args.get("type")
            if kind == 'names':
                return jsonify({"names": staff.employee_names(), "salaries": staff.employee_salaries()})
            if kind == 'absence':
                return jsonify({"records": staff.list_absence()})
            return jsonify({"records": staff.list_overtime()})

        absence = data.get("mode") == 'absence'
        if request.method == 'POST':
            if absence:
                staff.save_absence(dict(
                    data,
                    employeeNameEn=data.get("employeeNameEn") or data.get("employeeName"),
                    particulars=data.get("particulars") or data.get("description") or "",
                ))
            else:
                staff.save_overtime(dict(data, employeeName=data.get("employeeName") or data.get("employeeNameEn")))
            return jsonify({"success": True})

        row_index = row_index_arg(data)
        if request.method == 'PUT':
            staff.update_overtime(row_index, data)
        elif absence:
            staff.delete_absence(row_index)
        else:
            staff.delete_overtime(row_index)
        return jsonify({"success": True})
    except Exception as e:
        return fail("OVERTIME", e)


@app.route('/api/employee-overtime/summary', methods=['GET'])
def overtime_summary():
    try:
        summary = staff.monthly_overtime(staff.list_overtime(), staff.employee_salaries())
        month = request.args.get("month")
        if month:
            summary = [s for s in summary if s["month"] == month]
        return json_response({"summary": summary})
    except Exception as e:
        return fail("OVERTIME", e)


@app.route('/api/employee-absence', methods=['GET', 'POST', 'DELETE'])
def employee_absence():
    data = request.get_json(silent=True) or {}
    try:
        if request.method == 'GET':
            return jsonify({"records": staff.list_absence()})
        if request.method == 'POST':
            staff.save_absence(data)
            return jsonify({"success": True})
        staff.delete_absence(row_index_arg(data))
        return jsonify({"success": True})
    except Exception as e:
        return fail("ABSENCE", e)


##---------------------------Delivery / LPO----------------------------------------------

@app.route('/api/delivery', methods=['GET', 'POST', 'PUT', 'DELETE'])
def delivery_tracking():
    data = request.get_json(silent=True) or {}
    try:
        if request.method == 'GET':
            orders = delivery.merge_orders(delivery.list_lpos(), delivery.list_items())
            return jsonify({"orders": orders, "customers": delivery.list_customers()})

        if request.method == 'POST':
            action = data.get("action")
            if action == 'add_lpo':
                return jsonify({"success": True, "lpoId": delivery.add_lpo(data)})
            if action == 'add_item':
                return jsonify({"success": True, "rowId": delivery.add_item(data)})
            return jsonify({"error": "Unknown action"}), 400

        row_index = row_index_arg(data)
        if request.method == 'PUT':
            fields = {k: v for k, v in data.items() if k != "rowIndex"}
            delivery.update_lpo(row_index, fields)
        else:
            delivery.delete_lpo(row_index)
        return jsonify({"success": True})
    except Exception as e:
        return fail("DELIVERY", e)


##---------------------------Warehouse Cleaning----------------------------------------------

@app.route('/api/warehouse-cleaning', methods=['GET'])
def get_warehouse_cleaning():
    try:
        return jsonify({"data": staff.list_cleaning()})
    except Exception as e:
        return fail("CLEANING", e)


@app.route('/api/warehouse-cleaning/rating', methods=['POST'])
def rate_warehouse_cleaning():
    data = request.get_json() or {}
    try:
        keys = [str(data.get(k) or "").strip() for k in ("year", "month", "date")]
        if not all(keys) or data.get("rating") in (None, ""):
            return jsonify({"error": "year, month, date and rating are required"}), 400
        staff.rate_cleaning(*keys, str(data["rating"]))
        return jsonify({"success": True})
    except Exception as e:
        return fail("CLEANING", e)


##---------------------------Users----------------------------------------------

def load_users():
    users = []
    for row_index, row in sheets.read_rows(config.USERS_TAB):
        user = {
            "rowIndex": row_index,
            "name": sheets.text(row, 0),
            "role": sheets.text(row, 1),
            "password": sheets.text(row, 2),
        }
        if user["name"] and user["password"]:
            users.append(user)
    return users


@app.route('/api/users', methods=['GET', 'POST', 'PUT'])
def users():
    data = request.get_json(silent=True) or {}
    try:
        if request.method == 'GET':
            return jsonify({"users": [{"name": u["name"], "role": u["role"]} for u in load_users()]})

        if request.method == 'POST':
            name, password = data.get("name"), data.get("password")
            if not name or not password:
                return jsonify({"error": "Name and password are required"}), 400
            user = next((u for u in load_users() if u["name"] == name and u["password"] == password), None)
            if user is None:
                return jsonify({"error": "Invalid credentials"}), 401
            return jsonify({"success": True, "user": {"name": user["name"], "role": user["role"]}})

        name, role = data.get("name"), data.get("role")
        if not name or role is None:
            return jsonify({"error": "Name and role are required"}), 400
        user = next((u for u in load_users() if u["name"] == name), None)
        if user is None:
            return jsonify({"error": f"User '{name}' not found"}), 404
        sheets.update_cell(config.USERS_TAB, user["rowIndex"], 2, role)
        print(f"[USERS] Role of {name} set to {role}")
        return jsonify({"success": True})
    except Exception as e:
        return fail("USERS", e)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", 5000)))
    parser.add_argument("--creds", type=str, default=None)
    args = parser.parse_args()

    # Initialize once here
    init_sheets(args.creds)

    app.run(host="127.0.0.1", port=args.port, debug=False, use_reloader=False)


if __name__ == "__main__":
    main()
