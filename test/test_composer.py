from decimal import Decimal
from pathlib import Path

import pytest

from conftest import build_store

from bim.composer.composer import ComposerState
from bim.composer.gateway import LocalDocumentGateway
from bim.domain.errors import InsufficientStockError, TransientFailure, ValidationError
from bim.domain.models import DocumentKind, DocumentRequest, ProductLine


class RecordingGateway:
    """Fails the first `failures` calls with the given error, then delegates."""

    def __init__(self, inner=None, failures=0, error=None):
        self.inner = inner
        self.failures = failures
        self.error = error or TransientFailure("Server error (502). Please retry.")
        self.calls = []

    def create_document(self, request):
        self.calls.append(("create", request))
        if self.failures:
            self.failures -= 1
            raise self.error
        return self.inner.create_document(request)

    def update_document(self, document_id, request):
        self.calls.append(("update", document_id, request))
        return self.inner.update_document(document_id, request)


def _composer(c, gateway=None, **kw):
    return c.new_composer(gateway=gateway or RecordingGateway(LocalDocumentGateway(c.documents)), **kw)


def _compose_invoice(composer, c, customer, product, qty=3):
    composer.set_customer(customer)
    composer.set_payment_type("virement")
    dialog = composer.open_selection("product", c.catalog.list_products())
    dialog.toggle(product.id)
    dialog.set_quantity(product.id, qty)
    composer.confirm_selection()


def test_compose_preview_validate_creates_invoice_and_resets(tmp_path: Path):
    c, customer, product, _ = build_store(tmp_path)
    submitted = []
    composer = _composer(c, on_submitted=submitted.append)

    assert composer.state is ComposerState.EMPTY
    _compose_invoice(composer, c, customer, product)
    assert composer.state is ComposerState.COMPOSED
    assert composer.totals.total == Decimal("358.000")

    preview = composer.request_preview()
    assert composer.state is ComposerState.PREVIEW_PENDING
    assert "358.000" in preview.render_text()

    header = preview.validate()

    assert header.total == Decimal("358.000")
    assert submitted == [header]
    assert composer.state is ComposerState.EMPTY
    assert composer.lines == [] and composer.customer is None
    assert c.catalog.get_product(product.id).stock == 2


def test_already_added_entries_are_disabled_in_selection(tmp_path: Path):
    c, customer, product, service = build_store(tmp_path)
    composer = _composer(c)
    _compose_invoice(composer, c, customer, product, qty=1)

    dialog = composer.open_selection("product", c.catalog.list_products())
    assert composer.state is ComposerState.SELECTING
    assert dialog.is_disabled(product.id)
    assert dialog.toggle(product.id) is False
    composer.confirm_selection()

    assert len(composer.lines) == 1
    services = composer.open_selection("service", c.catalog.list_services())
    assert not services.is_disabled(service.id)
    composer.cancel_selection()
    assert composer.state is ComposerState.COMPOSED


def test_selection_quantity_is_capped_by_stock(tmp_path: Path):
    c, customer, product, service = build_store(tmp_path)
    composer = _composer(c)

    products = composer.open_selection("product", c.catalog.list_products())
    assert products.set_quantity(product.id, 9) == 5
    assert products.set_quantity(product.id, 0) == 1
    composer.cancel_selection()

    services = composer.open_selection("service", c.catalog.list_services())
    assert services.set_quantity(service.id, 40) == 40
    with pytest.raises(ValidationError, match="Qty must be an integer"):
        services.set_quantity(service.id, "two")
    composer.cancel_selection()
    assert composer.state is ComposerState.EMPTY


def test_preview_without_lines_sends_nothing(tmp_path: Path):
    c, customer, _, _ = build_store(tmp_path)
    gateway = RecordingGateway(LocalDocumentGateway(c.documents))
    composer = _composer(c, gateway=gateway)
    composer.set_customer(customer)
    composer.set_payment_type("espece")

    with pytest.raises(ValidationError, match="at least one"):
        composer.request_preview()
    with pytest.raises(ValidationError):
        composer.submit()

    assert gateway.calls == []
    assert composer.state is ComposerState.COMPOSED


def test_cancel_preview_returns_to_composed(tmp_path: Path):
    c, customer, product, _ = build_store(tmp_path)
    composer = _composer(c)
    _compose_invoice(composer, c, customer, product)

    preview = composer.request_preview()
    with pytest.raises(ValidationError, match="Close the preview"):
        composer.set_discount_percent(10)
    preview.cancel()

    assert composer.state is ComposerState.COMPOSED
    composer.set_discount_percent(10)
    assert composer.totals.discount_amount == Decimal("30.000")
    assert c.documents.list_documents() == []


def test_transient_failure_keeps_composition_and_retry_reuses_key(tmp_path: Path):
    c, customer, product, _ = build_store(tmp_path)
    gateway = RecordingGateway(LocalDocumentGateway(c.documents), failures=1)
    composer = _composer(c, gateway=gateway)
    _compose_invoice(composer, c, customer, product)
    composer.request_preview()

    with pytest.raises(TransientFailure):
        composer.submit()

    assert composer.state is ComposerState.PREVIEW_PENDING
    assert isinstance(composer.last_error, TransientFailure)
    assert len(composer.lines) == 1 and composer.customer == customer
    assert composer.can_submit

    header = composer.submit()
    first_key = gateway.calls[0][1].idempotency_key
    assert first_key and gateway.calls[1][1].idempotency_key == first_key
    assert header.id > 0
    assert composer.state is ComposerState.EMPTY


def test_store_rejection_surfaces_typed_error(tmp_path: Path):
    c, customer, product, _ = build_store(tmp_path)
    composer = _composer(c)
    _compose_invoice(composer, c, customer, product, qty=5)
    composer.request_preview()

    # stock drained elsewhere between preview and submit
    c.documents.create_document(
        DocumentRequest(
            kind=DocumentKind.INVOICE,
            customer_id=customer.id,
            lines=(ProductLine(product.id, "", Decimal("100"), 5),),
            payment_type="espece",
        )
    )

    with pytest.raises(InsufficientStockError):
        composer.submit()
    assert composer.state is ComposerState.PREVIEW_PENDING


def test_submit_is_refused_while_in_flight(tmp_path: Path):
    c, customer, product, _ = build_store(tmp_path)
    seen = []

    class ReentrantGateway:
        def create_document(self, request):
            with pytest.raises(ValidationError, match="already in progress"):
                composer.submit()
            seen.append(composer.can_submit)
            return c.documents.create_document(request)

    composer = _composer(c, gateway=ReentrantGateway())
    _compose_invoice(composer, c, customer, product)
    composer.request_preview()
    composer.submit()

    assert seen == [False]
    assert len(c.documents.list_documents()) == 1


def test_edit_mode_seeds_lines_and_updates(tmp_path: Path):
    c, customer, product, _ = build_store(tmp_path)
    composer = _composer(c)
    _compose_invoice(composer, c, customer, product, qty=2)
    composer.request_preview()
    header = composer.submit()

    with pytest.raises(ValidationError, match="Remove and re-add"):
        composer.set_line_quantity("product", product.id, 3)

    composer.load_document(c.documents.get_document(header.id), customer)
    assert composer.editing and composer.state is ComposerState.COMPOSED
    composer.set_line_quantity("product", product.id, 4)
    preview = composer.request_preview()
    assert f"FAC-{header.id}" in preview.render_text()

    updated = preview.validate()

    assert updated.id == header.id
    assert [it.quantity for it in c.documents.get_document(header.id).items] == [4]
    assert c.catalog.get_product(product.id).stock == 1
    assert len(c.documents.list_documents()) == 1


def test_quote_composer_carries_validity(tmp_path: Path):
    c, customer, _, service = build_store(tmp_path)
    composer = _composer(c, kind=DocumentKind.QUOTE)
    composer.set_customer(customer)
    composer.set_vat_enabled(False)
    composer.set_validity_days(15)
    dialog = composer.open_selection("service", c.catalog.list_services())
    dialog.toggle(service.id)
    composer.confirm_selection()
    composer.request_preview()

    header = composer.submit()

    assert header.kind is DocumentKind.QUOTE
    assert header.validity_days == 15
    assert header.total == Decimal("31.000")
