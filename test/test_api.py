"""Tests for the FastAPI API."""

from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import build_store

from bim.api.app import create_app


@pytest.fixture
def store(tmp_path: Path):
    return build_store(tmp_path)


@pytest.fixture
def api_client(store):
    container = store[0]
    return TestClient(create_app(container))


def _invoice_body(customer_id, product_id, qty=3, total="358.000", key="invoice"):
    return {
        key: {
            "customerId": customer_id,
            "date": "2024-03-15",
            "status": "pending",
            "paymentType": "virement",
            "total": total,
        },
        "items": [{"productId": product_id, "quantity": qty, "price": "100.000"}],
    }


def test_health(api_client):
    response = api_client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}


def test_create_invoice_and_fetch_it(api_client, store):
    c, customer, product, _ = store

    response = api_client.post("/api/invoices", json=_invoice_body(customer.id, product.id))
    assert response.status_code == 201
    data = response.json()
    assert data["number"] == f"FAC-{data['id']}"
    assert Decimal(data["total"]) == Decimal("358.000")
    assert Decimal(data["vatAmount"]) == Decimal("57.000")
    assert data["customerId"] == customer.id

    detail = api_client.get(f"/api/invoices/{data['id']}").json()
    assert detail["items"][0]["productId"] == product.id
    assert detail["items"][0]["quantity"] == 3
    assert detail["items"][0]["name"] == "Produit A"
    assert Decimal(detail["items"][0]["lineTotal"]) == Decimal("300.000")

    listed = api_client.get("/api/invoices").json()
    assert [d["id"] for d in listed] == [data["id"]]
    assert c.catalog.get_product(product.id).stock == 2


def test_oversell_returns_409_and_keeps_stock(api_client, store):
    c, customer, product, _ = store

    response = api_client.post("/api/invoices", json=_invoice_body(customer.id, product.id, qty=6, total="715.000"))

    assert response.status_code == 409
    assert response.json()["error_type"] == "InsufficientStockError"
    assert c.catalog.get_product(product.id).stock == 5
    assert api_client.get("/api/invoices").json() == []


def test_domain_errors_map_to_status_codes(api_client, store):
    _, customer, product, _ = store

    missing_customer = api_client.post("/api/invoices", json=_invoice_body(999, product.id))
    assert missing_customer.status_code == 404
    assert missing_customer.json()["error_type"] == "NotFoundError"

    bad_total = api_client.post("/api/invoices", json=_invoice_body(customer.id, product.id, total="1.000"))
    assert bad_total.status_code == 400
    assert "does not match" in bad_total.json()["detail"]

    no_items = _invoice_body(customer.id, product.id)
    no_items["items"] = []
    assert api_client.post("/api/invoices", json=no_items).status_code == 400

    both_refs = _invoice_body(customer.id, product.id)
    both_refs["items"][0]["serviceId"] = 1
    assert api_client.post("/api/invoices", json=both_refs).status_code == 422

    assert api_client.get("/api/invoices/12345").status_code == 404


def test_item_totals_add_up_to_header_total_for_sub_millime_price(api_client, store):
    _, customer, _, service = store
    body = {
        "invoice": {"customerId": customer.id, "paymentType": "espece", "vatEnabled": False, "stampDuty": "0"},
        "items": [{"serviceId": service.id, "quantity": 10, "price": "1.0005"}],
    }

    created = api_client.post("/api/invoices", json=body).json()
    detail = api_client.get(f"/api/invoices/{created['id']}").json()

    assert Decimal(detail["items"][0]["lineTotal"]) == Decimal(created["total"]) == Decimal("10.010")


def test_idempotency_key_header_replays_create(api_client, store):
    c, customer, product, _ = store
    body = _invoice_body(customer.id, product.id, qty=1, total="120.000")
    headers = {"Idempotency-Key": "retry-1"}

    first = api_client.post("/api/invoices", json=body, headers=headers)
    second = api_client.post("/api/invoices", json=body, headers=headers)

    assert first.status_code == 201 and second.status_code == 201
    assert first.json()["id"] == second.json()["id"]
    assert c.catalog.get_product(product.id).stock == 4


def test_quote_uses_generic_document_key_and_put_edits(api_client, store):
    _, customer, _, service = store
    body = {
        "document": {"customerId": customer.id, "vatEnabled": False, "validityDays": 10},
        "items": [{"serviceId": service.id, "quantity": 2, "price": "30.000"}],
    }

    created = api_client.post("/api/quotes", json=body)
    assert created.status_code == 201
    quote = created.json()
    assert quote["number"].startswith("DEV-")
    assert quote["validityDays"] == 10
    assert Decimal(quote["total"]) == Decimal("61.000")

    body["items"][0]["quantity"] = 3
    updated = api_client.put(f"/api/quotes/{quote['id']}", json=body)
    assert updated.status_code == 200
    assert Decimal(updated.json()["total"]) == Decimal("91.000")

    # a quote id is not reachable under another kind
    assert api_client.put("/api/credit-notes/%s" % quote["id"], json=body).status_code == 404


def test_list_pagination(api_client, store):
    _, customer, _, service = store
    body = {
        "deliveryNote": {"customerId": customer.id},
        "items": [{"serviceId": service.id, "quantity": 1, "price": "30.000"}],
    }
    ids = [api_client.post("/api/delivery-notes", json=body).json()["id"] for _ in range(3)]

    page = api_client.get("/api/delivery-notes", params={"limit": 2, "offset": 1}).json()

    assert len(page) == 2
    assert set(d["id"] for d in page) <= set(ids)
    assert api_client.get("/api/delivery-notes", params={"limit": -1}).status_code == 422


def test_catalog_endpoints(api_client):
    created = api_client.post("/api/products", json={"name": "Onduleur", "price": "450.500", "stock": 2})
    assert created.status_code == 201
    pid = created.json()["id"]
    assert api_client.get(f"/api/products/{pid}").json()["name"] == "Onduleur"
    assert api_client.post("/api/products", json={"name": "X", "price": "-1"}).status_code == 422
    assert api_client.get("/api/products/999").status_code == 404

    service = api_client.post("/api/services", json={"name": "Maintenance", "price": "80"})
    assert service.status_code == 201
    assert any(s["name"] == "Maintenance" for s in api_client.get("/api/services").json())


def test_customer_multipart_with_documents(api_client, store):
    c = store[0]
    response = api_client.post(
        "/api/customers",
        data={
            "name": "Client Deux",
            "category": "particulier",
            "email": "deux@example.tn",
            "phone": "22 000 000",
            "address": "Sfax",
            "fiscalNumber": "MF-2",
        },
        files=[("documents", ("rne.pdf", b"%PDF-1.4 test", "application/pdf"))],
    )

    assert response.status_code == 201
    data = response.json()
    assert data["fiscalNumber"] == "MF-2"
    assert len(data["documents"]) == 1
    stored = c.customers.uploads_dir / data["documents"][0]
    assert stored.read_bytes() == b"%PDF-1.4 test"

    bad = api_client.post(
        "/api/customers",
        data={"name": "X", "category": "unknown", "email": "x@example.tn", "phone": "1", "address": "A"},
    )
    assert bad.status_code == 400


def test_expense_with_attachment(api_client):
    response = api_client.post(
        "/api/expenses",
        data={"description": "Carburant", "amount": "85.250", "category": "transport", "date": "2024-02-10"},
        files={"attachment": ("ticket.png", b"\x89PNG", "image/png")},
    )

    assert response.status_code == 201
    data = response.json()
    assert Decimal(data["amount"]) == Decimal("85.250")
    assert data["attachment"].endswith("ticket.png")
    assert [e["description"] for e in api_client.get("/api/expenses").json()] == ["Carburant"]


def test_suppliers_and_personnel(api_client):
    supplier = api_client.post("/api/suppliers", json={"name": "Fournisseur", "email": "f@example.tn"})
    assert supplier.status_code == 201
    assert api_client.get("/api/suppliers").json()[0]["name"] == "Fournisseur"

    employee = api_client.post(
        "/api/personnel",
        json={"name": "Amine", "position": "Technicien", "salary": "1200", "hireDate": "2023-09-01"},
    )
    assert employee.status_code == 201
    assert employee.json()["hireDate"] == "2023-09-01"
    assert api_client.post("/api/suppliers", json={"name": "Bad", "email": "nope"}).status_code == 400
