from datetime import datetime, timedelta
from io import BytesIO

import pandas as pd
import xlsxwriter
from openpyxl import load_workbook
from openpyxl.formatting.rule import FormulaRule
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

import config

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def local_now():
    # hosted instances run on UTC
    if config.IS_RENDER:
        return datetime.utcnow() + timedelta(hours=config.TIMEZONE_OFFSET_HOURS)
    return datetime.now()


def write_chipsy_stock_excel(products, summary, creator="System"):
    headers = ["Barcode", "Product", "PCS", "PCS in CTN", "CTN", "Price", "Value"]

    output = BytesIO()
    workbook = xlsxwriter.Workbook(output, {'in_memory': True})
    worksheet = workbook.add_worksheet('Chipsy Stock')

    title_format = workbook.add_format({
        'bold': True, 'font_size': 16, 'align': 'center', 'valign': 'vcenter', 'bg_color': '#DDEBF7', 'font_color': '#1F4E78'
    })
    subtitle_format = workbook.add_format({
        'italic': True, 'font_size': 11, 'align': 'left', 'valign': 'vcenter', 'bg_color': '#F2F2F2'
    })
    meta_format = workbook.add_format({'bg_color': '#F2F2F2'})
    header_format = workbook.add_format({
        'bold': True, 'text_wrap': True, 'valign': 'middle', 'align': 'center', 'bg_color': '#B4C6E7', 'border': 1
    })
    left_format = workbook.add_format({'align': 'left', 'valign': 'vcenter', 'border': 1})
    number_format = workbook.add_format({'align': 'center', 'valign': 'vcenter', 'border': 1, 'num_format': '#,##0'})
    decimal_format = workbook.add_format({'align': 'center', 'valign': 'vcenter', 'border': 1, 'num_format': '#,##0.00'})
    negative_format = workbook.add_format({'align': 'center', 'valign': 'vcenter', 'border': 1, 'num_format': '#,##0', 'bg_color': '#FFC7CE'})

    worksheet.merge_range(0, 0, 0, len(headers) - 1, 'Chipsy Stock Report', title_format)
    worksheet.write(1, 0, 'Created by:', subtitle_format)
    worksheet.write(2, 0, 'Created on:', subtitle_format)
    worksheet.merge_range(1, 1, 1, 3, creator, subtitle_format)
    worksheet.merge_range(2, 1, 2, 3, local_now().strftime('%Y-%m-%d %H:%M'), subtitle_format)
    worksheet.write(1, 4, 'Transfers:', subtitle_format)
    worksheet.write(2, 4, 'Skipped:', subtitle_format)
    worksheet.merge_range(1, 5, 1, 6, summary.get('applied', 0), subtitle_format)
    worksheet.merge_range(2, 5, 2, 6, summary.get('skipped', 0), subtitle_format)
    worksheet.merge_range(3, 0, 3, len(headers) - 1, '', meta_format)

    for col, header in enumerate(headers):
        worksheet.write(4, col, header, header_format)

    col_widths = [len(h) for h in headers]
    row_idx = 5
    for p in products:
        pcs_in_ctn = p['pcsInCtn'] or 1
        values = [p['barcode'], p['productName'], p['qtyPcs'], pcs_in_ctn,
                  round(p['qtyPcs'] / pcs_in_ctn, 2), p['price'], round(p['qtyPcs'] * p['price'], 2)]
        for col, val in enumerate(values):
            if col < 2:
                fmt = left_format
            elif col == 2 and val < 0:
                fmt = negative_format
            elif col in (4, 5, 6):
                fmt = decimal_format
            else:
                fmt = number_format
            worksheet.write(row_idx, col, val, fmt)
            col_widths[col] = max(col_widths[col], len(str(val)))
        row_idx += 1

    for col, width in enumerate(col_widths):
        worksheet.set_column(col, col, width + 2)

    worksheet.autofilter(4, 0, 4, len(headers) - 1)
    worksheet.freeze_panes(5, 0)
    worksheet.hide_gridlines(2)

    workbook.close()
    output.seek(0)
    return output


def write_petty_cash_excel(records):
    df = pd.DataFrame(records, columns=["date", "type", "amount", "name", "description", "paid"])
    df.columns = ["Date", "Type", "Amount", "Name", "Description", "Paid?"]

    output = BytesIO()
    df.to_excel(output, index=False, sheet_name="Petty Cash")
    output.seek(0)

    # running balance as formulas, one per row
    wb = load_workbook(output)
    ws = wb.active
    bal_col = ws.max_column + 1
    bal_letter = get_column_letter(bal_col)
    ws.cell(row=1, column=bal_col, value="Balance")
    for row in range(2, ws.max_row + 1):
        signed = f'IF(B{row}="Expense",-C{row},C{row})'
        prev = f"+{bal_letter}{row - 1}" if row > 2 else ""
        ws.cell(row=row, column=bal_col, value=f"={signed}{prev}").number_format = "#,##0.00"
        ws.cell(row=row, column=3).number_format = "#,##0.00"

    header_fill = PatternFill(start_color="B4C6E7", end_color="B4C6E7", fill_type="solid")
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = header_fill

    if ws.max_row >= 2:
        ws.conditional_formatting.add(
            f"{bal_letter}2:{bal_letter}{ws.max_row}",
            FormulaRule(
                formula=[f"{bal_letter}2<0"],
                stopIfTrue=True,
                font=Font(color="9C0006"),
                fill=PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
            )
        )

    for col, width in zip("ABCDEFG", (12, 10, 12, 24, 40, 8, 14)):
        ws.column_dimensions[col].width = width
    ws.freeze_panes = "A2"

    output = BytesIO()
    wb.save(output)
    output.seek(0)
    return output
