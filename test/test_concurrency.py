import threading
from decimal import Decimal
from pathlib import Path

from conftest import build_store

from bim.domain.errors import InsufficientStockError
from bim.domain.models import DocumentKind, DocumentRequest, PricingParams, ProductLine


def test_two_concurrent_invoices_cannot_oversell(tmp_path: Path):
    c, customer, product, _ = build_store(tmp_path)
    request = DocumentRequest(
        kind=DocumentKind.INVOICE,
        customer_id=customer.id,
        lines=(ProductLine(product.id, "", Decimal("100.000"), 3),),
        pricing=PricingParams(stamp_duty=Decimal("1.000")),
        payment_type="espece",
    )

    barrier = threading.Barrier(2)
    results = []
    errors = []

    def worker():
        barrier.wait()
        try:
            results.append(c.documents.create_document(request))
        except InsufficientStockError as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(results) == 1
    assert len(errors) == 1
    assert c.catalog.get_product(product.id).stock == 2
    assert len(c.documents.list_documents(kind=DocumentKind.INVOICE)) == 1
