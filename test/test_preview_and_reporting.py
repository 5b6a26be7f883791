from decimal import Decimal
from pathlib import Path

import pytest
from openpyxl import load_workbook

from conftest import build_store

from bim.config import IssuerInfo
from bim.domain.models import DocumentKind, DocumentRequest, PricingParams, ProductLine, ServiceLine
from bim.domain.pricing import compute_totals
from bim.rendering.preview import DocumentPreview, PreviewData

ISSUER = IssuerInfo(
    name="Solaire SARL",
    email="contact@solaire.tn",
    address="Zone industrielle, Ben Arous",
    bank_name="Banque de Test",
    iban="TN59 1000 6035 1835 9847 8831",
    bic="BSTUTNTT",
)


def _data(customer, payment_type="virement", discount="10"):
    lines = (ProductLine(1, "Panneau 400W", Decimal("50.000"), 2), ServiceLine(2, "Pose", Decimal("30.000"), 1))
    pricing = PricingParams(discount_percent=Decimal(discount), stamp_duty=Decimal("1.000"))
    return PreviewData(
        kind=DocumentKind.INVOICE,
        customer=customer,
        lines=lines,
        pricing=pricing,
        totals=compute_totals(lines, pricing),
        date="2024-04-09 10:30:00",
        payment_type=payment_type,
    )


def test_text_preview_shows_parties_lines_and_breakdown(tmp_path: Path):
    _, customer, _, _ = build_store(tmp_path)
    text = DocumentPreview(_data(customer), ISSUER).render_text()

    assert text.startswith("FACTURE")
    assert "Date : 09/04/2024" in text
    assert "Facture N° : BROUILLON" in text
    assert "Solaire SARL" in text and "Société Test" in text
    assert "MF : 1234567/A/M/000" in text
    assert "Panneau 400W" in text
    for label, amount in (
        ("Total HT :", "130.000"),
        ("Remise (10%) :", "-13.000"),
        ("Net HT :", "117.000"),
        ("TVA (19%) :", "22.230"),
        ("Timbre fiscal :", "1.000"),
        ("Total TTC :", "140.230"),
    ):
        line = next(l for l in text.splitlines() if l.strip().startswith(label))
        assert line.strip().endswith(amount)


def test_bank_details_only_for_virement(tmp_path: Path):
    _, customer, _, _ = build_store(tmp_path)

    virement = DocumentPreview(_data(customer), ISSUER).payment_lines()
    cash = DocumentPreview(_data(customer, payment_type="espece", discount="0"), ISSUER)

    assert "IBAN : TN59 1000 6035 1835 9847 8831" in virement
    assert cash.payment_lines() == ["Type de paiement : espece"]
    assert not any(label.startswith("Remise") for label, _ in cash.total_rows())


def test_validate_and_cancel_call_back():
    calls = []
    preview = DocumentPreview(
        None, ISSUER, on_validate=lambda: calls.append("validate") or 42, on_cancel=lambda: calls.append("cancel")
    )

    assert preview.validate() == 42
    preview.cancel()
    assert calls == ["validate", "cancel"]

    with pytest.raises(RuntimeError):
        DocumentPreview(None, ISSUER).validate()


def test_print_to_writes_printable_workbook(tmp_path: Path):
    c, customer, product, service = build_store(tmp_path)
    header = c.documents.create_document(
        DocumentRequest(
            kind=DocumentKind.INVOICE,
            customer_id=customer.id,
            lines=(ProductLine(product.id, "", Decimal("100"), 2), ServiceLine(service.id, "", Decimal("30"), 1)),
            pricing=PricingParams(stamp_duty=Decimal("1.000")),
            payment_type="virement",
        )
    )
    preview = DocumentPreview.from_document(c.documents.get_document(header.id), customer, ISSUER)

    path = preview.print_to(tmp_path / "facture.xlsx")

    wb = load_workbook(path)
    ws = wb.active
    values = [cell for row in ws.iter_rows(values_only=True) for cell in row if cell is not None]
    assert ws["A1"].value == "FACTURE"
    assert f"Facture N° : FAC-{header.id}" in values
    assert "Produit A" in values and "Service B" in values
    assert "Total TTC" in values
    assert int(ws.page_setup.paperSize) == 9


def test_reporting_exports_summary_and_lines(tmp_path: Path):
    c, customer, product, service = build_store(tmp_path)
    for qty, status in ((1, "paid"), (2, "cancelled")):
        c.documents.create_document(
            DocumentRequest(
                kind=DocumentKind.INVOICE,
                customer_id=customer.id,
                lines=(ProductLine(product.id, "", Decimal("100"), qty),),
                pricing=PricingParams(vat_enabled=False, stamp_duty=Decimal("1.000")),
                status=status,
                payment_type="espece",
                date="2024-06-10",
            )
        )

    assert c.reporting.monthly_totals(DocumentKind.INVOICE) == [("2024-06", Decimal("101.000"))]

    out = tmp_path / "invoices.xlsx"
    c.reporting.export_documents_excel(str(out), DocumentKind.INVOICE, "2024-06-01", "2024-07-01")

    wb = load_workbook(out)
    summary = {row[0]: row[1] for row in wb["Summary"].iter_rows(min_row=5, values_only=True) if row[0]}
    assert summary["Documents"] == 2
    assert summary["Cancelled"] == 1
    assert Decimal(str(summary["Total"])) == Decimal("101")
    lines = list(wb["Lines"].iter_rows(min_row=2, values_only=True))
    assert len(lines) == 2
    assert {r[5] for r in lines} == {"Produit A"}
