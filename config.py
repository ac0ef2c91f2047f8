import os
import sys
from pathlib import Path


# ==============================
# Config from ENV
# ==============================
SPREADSHEET_ID = os.getenv("GOOGLE_SHEET_ID", "1s1G42Qd0FNDyvz42qi_6SPoKMAy8Kvx8eMm7iyR8pds")
GOOGLE_CREDS = os.getenv("GOOGLE_CREDS")  # service account JSON (single env var)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# Hosted instances run on UTC; shift timestamps to local business time
IS_RENDER = os.getenv("RENDER", "").lower() == "true"
TIMEZONE_OFFSET_HOURS = int(os.getenv("TIMEZONE_OFFSET_HOURS", "4"))

# Sheet names
INVOICES_TAB = os.getenv("INVOICES_TAB", "Invoices")
SUPPLIER_PURCHASE_TAB = os.getenv("SUPPLIER_PURCHASE_TAB", "S-Invoices - Purchase")
SUPPLIER_REFUND_TAB = os.getenv("SUPPLIER_REFUND_TAB", "S-Invoices - Refund")
NOTES_TAB = os.getenv("NOTES_TAB", "Notes")
CLOSED_TAB = os.getenv("CLOSED_TAB", "CLOSED")
SEMI_CLOSED_TAB = os.getenv("SEMI_CLOSED_TAB", "SEMI-CLOSED")
DISCOUNTS_TAB = os.getenv("DISCOUNTS_TAB", "DISCOUNTS")
USERS_TAB = os.getenv("USERS_TAB", "Users")

INVENTORY_TAB = os.getenv("INVENTORY_TAB", "Inventory")
ORDERS_TAB = os.getenv("ORDERS_TAB", "Inventory - Orders")
ORDERS_MAKE_TAB = os.getenv("ORDERS_MAKE_TAB", "Inventory - Orders - Make")
COUNTING_TAB = os.getenv("COUNTING_TAB", "Inventory Counting")
SALES_TAB = os.getenv("SALES_TAB", "Sales - Invoices")

CHIPSY_INVENTORY_TAB = os.getenv("CHIPSY_INVENTORY_TAB", "Inventory - Chipsy")
CHIPSY_TRANSFERS_TAB = os.getenv("CHIPSY_TRANSFERS_TAB", "TRANSFERS - Chipsy")

PETTY_CASH_TAB = os.getenv("PETTY_CASH_TAB", "Petty Cash")
EMPLOYEE_DB_TAB = os.getenv("EMPLOYEE_DB_TAB", "Employee DataBase")
OVERTIME_TAB = os.getenv("OVERTIME_TAB", "Employee Overtime")
ABSENCE_TAB = os.getenv("ABSENCE_TAB", "Employee Absence")

LPO_TAB = os.getenv("LPO_TAB", "Delivery - LPO")
LPO_ITEMS_TAB = os.getenv("LPO_ITEMS_TAB", "Delivery - Items")
LPO_CUSTOMERS_TAB = os.getenv("LPO_CUSTOMERS_TAB", "Delivery - Customers")

# matched by keywords, the tab title has drifted over time
WAREHOUSE_CLEANING_KEYWORDS = ("warehouse", "cleaning")



def find_credentials(cli_arg: str | None = None) -> str:
    # 1) CLI argument wins
    if cli_arg:
        p = Path(cli_arg)
        if p.exists():
            return str(p)

    # 2) Environment variable
    env_p = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if env_p and Path(env_p).exists():
        return env_p

    # 3) Next to the EXE (portable case)
    if getattr(sys, "frozen", False):
        exe_dir = Path(sys.executable).parent
        cand = exe_dir / "credentials.json"
        if cand.exists():
            return str(cand)

    # 4) Dev: next to config.py
    cand = Path(__file__).parent / "credentials.json"
    if cand.exists():
        return str(cand)

    raise FileNotFoundError(
        "credentials.json not found. Pass --creds PATH, set GOOGLE_CREDS or "
        "GOOGLE_APPLICATION_CREDENTIALS, or place credentials.json next to app.py."
    )
