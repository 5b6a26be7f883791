"""Read-only invoice-like layout of a composed or persisted document.

The same layout feeds the on-screen text preview and the printable workbook.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from bim.config import IssuerInfo
from bim.domain.models import Customer, Document, DocumentKind, LineItem, PricingParams, Totals
from bim.domain.money import format_money, round_money

MONEY_FORMAT = "#,##0.000"


def _pct(value: Decimal) -> str:
    return f"{value.normalize():f}"


def _display_date(value: str) -> str:
    try:
        return datetime.fromisoformat(value).strftime("%d/%m/%Y")
    except ValueError:
        return value


@dataclass(frozen=True)
class PreviewData:
    kind: DocumentKind
    customer: Customer
    lines: tuple[LineItem, ...]
    pricing: PricingParams
    totals: Totals
    date: str
    status: str = "pending"
    payment_type: Optional[str] = None
    validity_days: Optional[int] = None
    number: Optional[str] = None


class DocumentPreview:
    def __init__(
        self,
        data: PreviewData,
        issuer: IssuerInfo,
        on_validate: Callable[[], object] | None = None,
        on_cancel: Callable[[], None] | None = None,
    ):
        self.data = data
        self.issuer = issuer
        self._on_validate = on_validate
        self._on_cancel = on_cancel

    @classmethod
    def from_document(cls, document: Document, customer: Customer, issuer: IssuerInfo) -> "DocumentPreview":
        h = document.header
        data = PreviewData(
            kind=h.kind,
            customer=customer,
            lines=document.lines,
            pricing=h.pricing,
            totals=h.totals,
            date=h.date,
            status=h.status,
            payment_type=h.payment_type,
            validity_days=h.validity_days,
            number=h.number,
        )
        return cls(data, issuer)

    def validate(self):
        if self._on_validate is None:
            raise RuntimeError("This preview has nothing to validate.")
        return self._on_validate()

    def cancel(self) -> None:
        if self._on_cancel is not None:
            self._on_cancel()

    # ---------- layout ----------
    def header_lines(self) -> list[str]:
        d = self.data
        return [
            f"Date : {_display_date(d.date)}",
            f"{d.kind.heading.capitalize()} N° : {d.number or 'BROUILLON'}",
        ]

    def issuer_lines(self) -> list[str]:
        return [self.issuer.name, self.issuer.email, self.issuer.address]

    def recipient_lines(self) -> list[str]:
        c = self.data.customer
        out = [c.name, c.email, c.address]
        if c.fiscal_number:
            out.append(f"MF : {c.fiscal_number}")
        return out

    def item_rows(self) -> list[tuple[str, Decimal, int, Decimal]]:
        return [(line.name, line.unit_price, line.quantity, round_money(line.line_total)) for line in self.data.lines]

    def total_rows(self) -> list[tuple[str, Decimal]]:
        d = self.data
        rows = [("Total HT", d.totals.subtotal)]
        if d.totals.discount_amount:
            rows.append((f"Remise ({_pct(d.pricing.discount_percent)}%)", -d.totals.discount_amount))
            rows.append(("Net HT", d.totals.taxable_base))
        if d.pricing.vat_enabled:
            rows.append((f"TVA ({_pct(d.pricing.vat_percent)}%)", d.totals.vat_amount))
        rows.append(("Timbre fiscal", d.totals.stamp_duty))
        rows.append(("Total TTC", d.totals.total))
        return rows

    def payment_lines(self) -> list[str]:
        d = self.data
        out = []
        if d.payment_type:
            out.append(f"Type de paiement : {d.payment_type}")
            if d.payment_type == "virement":
                out.extend([
                    f"Banque : {self.issuer.bank_name}",
                    f"IBAN : {self.issuer.iban}",
                    f"BIC : {self.issuer.bic}",
                ])
        if d.validity_days:
            out.append(f"Validité : {d.validity_days} jours")
        return out

    def render_text(self) -> str:
        out = [self.data.kind.heading, ""]
        out.extend(self.header_lines())
        out.extend(["", "ÉMETTEUR :"])
        out.extend(self.issuer_lines())
        out.extend(["", "DESTINATAIRE :"])
        out.extend(self.recipient_lines())
        out.append("")
        out.append(f"{'Description':<34}{'Prix Unitaire':>16}{'Quantité':>10}{'Total':>16}")
        for name, price, qty, total in self.item_rows():
            out.append(f"{name[:33]:<34}{format_money(price):>16}{qty:>10}{format_money(total):>16}")
        out.append("")
        for label, amount in self.total_rows():
            out.append(f"{label + ' :':>60}{format_money(amount):>16}")
        payment = self.payment_lines()
        if payment:
            out.extend(["", "RÈGLEMENT :"])
            out.extend(payment)
        return "\n".join(out)

    def print_to(self, path: Path | str) -> Path:
        wb = Workbook()
        ws = wb.active
        ws.title = self.data.kind.heading[:31]

        bold = Font(bold=True)
        thin = Side(style="thin")
        boxed = Border(left=thin, right=thin, top=thin, bottom=thin)

        ws["A1"] = self.data.kind.heading
        ws["A1"].font = Font(bold=True, size=16, color="FFFFFF")
        ws["A1"].fill = PatternFill("solid", fgColor="000000")
        ws["A1"].alignment = Alignment(horizontal="center")
        ws.merge_cells("A1:D1")

        row = 3
        for text in self.header_lines():
            ws.cell(row=row, column=1, value=text)
            row += 1

        row += 1
        ws.cell(row=row, column=1, value="ÉMETTEUR :").font = bold
        ws.cell(row=row, column=3, value="DESTINATAIRE :").font = bold
        issuer, recipient = self.issuer_lines(), self.recipient_lines()
        for i in range(max(len(issuer), len(recipient))):
            row += 1
            if i < len(issuer):
                ws.cell(row=row, column=1, value=issuer[i])
            if i < len(recipient):
                ws.cell(row=row, column=3, value=recipient[i])

        row += 2
        for col, title in enumerate(("Description", "Prix Unitaire", "Quantité", "Total"), start=1):
            c = ws.cell(row=row, column=col, value=title)
            c.font = bold
            c.border = boxed
            c.fill = PatternFill("solid", fgColor="EEEEEE")
        for name, price, qty, total in self.item_rows():
            row += 1
            ws.cell(row=row, column=1, value=name).border = boxed
            for col, value in ((2, price), (3, qty), (4, total)):
                c = ws.cell(row=row, column=col, value=value)
                c.border = boxed
                if col != 3:
                    c.number_format = MONEY_FORMAT

        row += 1
        for label, amount in self.total_rows():
            row += 1
            ws.cell(row=row, column=3, value=label).alignment = Alignment(horizontal="right")
            c = ws.cell(row=row, column=4, value=amount)
            c.number_format = MONEY_FORMAT
            if label == "Total TTC":
                c.font = bold
                ws.cell(row=row, column=3).font = bold

        payment = self.payment_lines()
        if payment:
            row += 2
            ws.cell(row=row, column=1, value="RÈGLEMENT :").font = bold
            for text in payment:
                row += 1
                ws.cell(row=row, column=1, value=text)

        for col, width in (("A", 38), ("B", 16), ("C", 22), ("D", 16)):
            ws.column_dimensions[col].width = width

        ws.print_area = f"A1:D{row}"
        ws.page_setup.orientation = "portrait"
        ws.page_setup.paperSize = ws.PAPERSIZE_A4
        ws.page_setup.fitToWidth = 1
        ws.page_setup.fitToHeight = 0
        ws.sheet_properties.pageSetUpPr.fitToPage = True
        ws.print_options.horizontalCentered = True

        target = Path(path)
        wb.save(target)
        return target
