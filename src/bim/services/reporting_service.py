from __future__ import annotations

from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from bim.domain.models import DocumentKind
from bim.domain.money import ZERO

MONEY_FORMAT = "#,##0.000"


class ReportingService:
    def __init__(self, repo):
        self.repo = repo

    def monthly_totals(self, kind: DocumentKind = DocumentKind.INVOICE, months: int = 6) -> list[tuple[str, Decimal]]:
        return self.repo.monthly_document_totals(kind, months)

    def export_documents_excel(self, path: str, kind: DocumentKind, start_iso: str, end_iso: str) -> None:
        wb = Workbook()

        def money(cell):
            cell.number_format = MONEY_FORMAT

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
            ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        headers = self.repo.list_documents(kind=kind, start_iso=start_iso, end_iso=end_iso)
        active = [h for h in headers if h.status != "cancelled"]
        customers = {c.id: c.name for c in self.repo.list_customers()}

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = f"{kind.heading} - Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{start_iso}  ->  {end_iso}"

        rows = [
            ("Documents", len(headers), "int"),
            ("Cancelled", len(headers) - len(active), "int"),
            ("Subtotal", sum((h.totals.subtotal for h in active), ZERO), "money"),
            ("Discounts", sum((h.totals.discount_amount for h in active), ZERO), "money"),
            ("VAT", sum((h.totals.vat_amount for h in active), ZERO), "money"),
            ("Stamp duty", sum((h.totals.stamp_duty for h in active), ZERO), "money"),
            ("Total", sum((h.totals.total for h in active), ZERO), "money"),
        ]

        start_row = 5
        for i, (label, val, kind_) in enumerate(rows):
            r = start_row + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind_ == "money":
                money(ws[f"B{r}"])

        set_widths(ws, {"A": 28, "B": 34})

        # -------- 2) Lines --------
        ws2 = wb.create_sheet("Lines")
        ws2.append([
            "Number", "Date", "Customer", "Status",
            "Type", "Item", "Qty", "Unit Price", "Line Total",
        ])
        bold_row(ws2, 1)

        out_row = 2
        for h in headers:
            for it in self.repo.document_items_for_document(h.id):
                ws2.append([
                    h.number, h.date, customers.get(h.customer_id, ""), h.status,
                    "product" if it.product_id is not None else "service", it.name,
                    int(it.quantity), it.unit_price, it.line_total,
                ])
                money(ws2[f"H{out_row}"])
                money(ws2[f"I{out_row}"])
                out_row += 1

        ws2.freeze_panes = "A2"
        set_widths(ws2, {
            "A": 12, "B": 22, "C": 30, "D": 12,
            "E": 10, "F": 34, "G": 6, "H": 14, "I": 14,
        })
        if ws2.max_row >= 2:
            add_table(ws2, "DocumentLines", 1, 1, ws2.max_row, 9)

        wb.save(path)
