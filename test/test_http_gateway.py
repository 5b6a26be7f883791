from decimal import Decimal

import pytest
import requests

from bim.composer.gateway import HttpDocumentGateway
from bim.domain.errors import InsufficientStockError, NotFoundError, TransientFailure, ValidationError
from bim.domain.models import DocumentKind, DocumentRequest, PricingParams, ProductLine, ServiceLine


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


CREATED = {
    "id": 7,
    "number": "AV-7",
    "kind": "credit_note",
    "customerId": 3,
    "date": "2024-05-02 10:00:00",
    "status": "pending",
    "paymentType": "cheque",
    "vatEnabled": True,
    "vatPercent": "19",
    "discountPercent": "0",
    "stampDuty": "1.000",
    "subtotal": "130.000",
    "discountAmount": "0.000",
    "vatAmount": "24.700",
    "total": "155.700",
    "validityDays": None,
    "createdAt": "2024-05-02 10:00:01",
}


def _request(**kw):
    return DocumentRequest(
        kind=DocumentKind.CREDIT_NOTE,
        customer_id=3,
        lines=(ProductLine(1, "A", Decimal("50.000"), 2), ServiceLine(2, "B", Decimal("30.000"), 1)),
        pricing=PricingParams(stamp_duty=Decimal("1.000")),
        payment_type="cheque",
        declared_total=Decimal("155.700"),
        **kw,
    )


def test_create_posts_camel_case_body_with_idempotency_key():
    session = FakeSession(FakeResponse(201, CREATED))
    gateway = HttpDocumentGateway("http://localhost:8000/", timeout=2.5, session=session)

    header = gateway.create_document(_request(idempotency_key="k-1"))

    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "http://localhost:8000/api/credit-notes"
    assert call["headers"] == {"Idempotency-Key": "k-1"}
    assert call["timeout"] == 2.5
    body = call["json"]
    assert body["document"]["customerId"] == 3
    assert body["document"]["paymentType"] == "cheque"
    assert body["document"]["total"] == "155.700"
    assert body["items"][0]["productId"] == 1 and body["items"][0]["serviceId"] is None
    assert body["items"][1]["serviceId"] == 2

    assert header.id == 7
    assert header.number == "AV-7"
    assert header.kind is DocumentKind.CREDIT_NOTE
    assert header.total == Decimal("155.700")


def test_update_puts_to_document_url():
    session = FakeSession(FakeResponse(200, CREATED))
    gateway = HttpDocumentGateway("http://api", session=session)

    gateway.update_document(7, _request())

    assert session.calls[0]["method"] == "PUT"
    assert session.calls[0]["url"] == "http://api/api/credit-notes/7"


@pytest.mark.parametrize(
    "status, payload, expected",
    [
        (400, {"detail": "Document has no line items.", "error_type": "ValidationError"}, ValidationError),
        (404, {"detail": "Customer not found: 3", "error_type": "NotFoundError"}, NotFoundError),
        (409, {"detail": "Not enough stock for A.", "error_type": "InsufficientStockError"}, InsufficientStockError),
        (422, {"detail": [{"msg": "Field required"}]}, ValidationError),
        (500, None, TransientFailure),
        (503, {"detail": "database is locked", "error_type": "TransientFailure"}, TransientFailure),
    ],
)
def test_error_statuses_map_to_domain_errors(status, payload, expected):
    gateway = HttpDocumentGateway("http://api", session=FakeSession(FakeResponse(status, payload)))

    with pytest.raises(expected):
        gateway.create_document(_request())


def test_client_error_keeps_server_message():
    payload = {"detail": "Not enough stock for A. Available: 1", "error_type": "InsufficientStockError"}
    gateway = HttpDocumentGateway("http://api", session=FakeSession(FakeResponse(409, payload)))

    with pytest.raises(InsufficientStockError, match="Available: 1"):
        gateway.create_document(_request())


def test_network_error_is_transient():
    session = FakeSession(error=requests.ConnectionError("connection refused"))
    gateway = HttpDocumentGateway("http://api", session=session)

    with pytest.raises(TransientFailure, match="Network error"):
        gateway.create_document(_request())
