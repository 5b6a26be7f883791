"""FastAPI REST API over the invoicing services."""

import logging
import sqlite3
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bim.application.container import AppContainer
from bim.domain.errors import (
    AppError,
    InsufficientStockError,
    NotFoundError,
    TransientFailure,
    ValidationError,
)
from bim.domain.models import DocumentKind

from .schemas import (
    CustomerOut,
    DocumentDetailOut,
    DocumentOut,
    DocumentWriteRequest,
    EmployeeIn,
    EmployeeOut,
    ExpenseOut,
    ProductIn,
    ProductOut,
    ServiceIn,
    ServiceOut,
    SupplierIn,
    SupplierOut,
)

log = logging.getLogger("bim.api")

# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    NotFoundError: 404,
    InsufficientStockError: 409,
    TransientFailure: 503,
}


def _error_response(request: Request, status_code: int, exc: Exception, error_type: str) -> JSONResponse:
    log.warning(
        "api_error method=%s path=%s status=%s error=%s",
        request.method, request.url.path, status_code, error_type,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": error_type},
    )


def create_app(container: AppContainer) -> FastAPI:
    app = FastAPI(
        title="Business Invoicing Manager API",
        description="Customers, catalog, invoices, quotes, credit notes and delivery notes",
        version="1.0.0",
    )
    app.state.container = container

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """Map AppError subclasses to appropriate HTTP responses."""
        status_code = ERROR_STATUS_CODES.get(type(exc), 500)
        return _error_response(request, status_code, exc, type(exc).__name__)

    @app.exception_handler(sqlite3.OperationalError)
    async def store_error_handler(request: Request, exc: sqlite3.OperationalError) -> JSONResponse:
        # locked or unavailable database: the client may retry
        return _error_response(request, 503, exc, TransientFailure.__name__)

    # --- Health ---

    @app.get("/api/health")
    def health_check():
        result = container.repo.integrity_check()
        return {"status": "ok" if result == "ok" else "error", "database": result}

    # --- Customers ---

    @app.get("/api/customers", response_model=list[CustomerOut])
    def list_customers():
        return [CustomerOut.from_domain(c) for c in container.customers.list_customers()]

    @app.get("/api/customers/{customer_id}", response_model=CustomerOut)
    def get_customer(customer_id: int):
        return CustomerOut.from_domain(container.customers.get_customer(customer_id))

    @app.post("/api/customers", response_model=CustomerOut, status_code=201)
    def create_customer(
        name: str = Form(...),
        category: str = Form(...),
        email: str = Form(...),
        phone: str = Form(""),
        address: str = Form(""),
        fiscal_number: Optional[str] = Form(None, alias="fiscalNumber"),
        documents: Optional[list[UploadFile]] = File(None),
    ):
        files = [(f.filename or "document", f.file.read()) for f in (documents or [])]
        customer = container.customers.add_customer(
            name=name,
            category=category,
            email=email,
            phone=phone,
            address=address,
            fiscal_number=fiscal_number,
            documents=files,
        )
        return CustomerOut.from_domain(customer)

    # --- Catalog ---

    @app.get("/api/products", response_model=list[ProductOut])
    def list_products():
        return [ProductOut(**asdict(p)) for p in container.catalog.list_products()]

    @app.get("/api/products/{product_id}", response_model=ProductOut)
    def get_product(product_id: int):
        return ProductOut(**asdict(container.catalog.get_product(product_id)))

    @app.post("/api/products", response_model=ProductOut, status_code=201)
    def create_product(body: ProductIn):
        product = container.catalog.add_product(body.name, body.description, body.price, body.stock)
        return ProductOut(**asdict(product))

    @app.get("/api/services", response_model=list[ServiceOut])
    def list_services():
        return [ServiceOut(**asdict(s)) for s in container.catalog.list_services()]

    @app.get("/api/services/{service_id}", response_model=ServiceOut)
    def get_service(service_id: int):
        return ServiceOut(**asdict(container.catalog.get_service(service_id)))

    @app.post("/api/services", response_model=ServiceOut, status_code=201)
    def create_service(body: ServiceIn):
        service = container.catalog.add_service(body.name, body.description, body.price)
        return ServiceOut(**asdict(service))

    # --- Documents ---

    for kind in DocumentKind:
        _add_document_routes(app, container, kind)

    # --- Records ---

    @app.get("/api/expenses", response_model=list[ExpenseOut])
    def list_expenses():
        return [ExpenseOut(**asdict(e)) for e in container.expenses.list_expenses()]

    @app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
    def create_expense(
        description: str = Form(...),
        amount: str = Form(...),
        category: str = Form(...),
        date: Optional[str] = Form(None),
        attachment: Optional[UploadFile] = File(None),
    ):
        upload = None
        if attachment is not None:
            upload = (attachment.filename or "attachment", attachment.file.read())
        expense = container.expenses.add_expense(
            description=description,
            amount=amount,
            category=category,
            date=date,
            attachment=upload,
        )
        return ExpenseOut(**asdict(expense))

    @app.get("/api/suppliers", response_model=list[SupplierOut])
    def list_suppliers():
        return [SupplierOut(**asdict(s)) for s in container.suppliers.list_suppliers()]

    @app.post("/api/suppliers", response_model=SupplierOut, status_code=201)
    def create_supplier(body: SupplierIn):
        supplier = container.suppliers.add_supplier(
            body.name, body.email, body.phone, body.address, body.fiscal_number
        )
        return SupplierOut(**asdict(supplier))

    @app.get("/api/personnel", response_model=list[EmployeeOut])
    def list_personnel():
        return [EmployeeOut(**asdict(e)) for e in container.personnel.list_employees()]

    @app.post("/api/personnel", response_model=EmployeeOut, status_code=201)
    def create_employee(body: EmployeeIn):
        employee = container.personnel.add_employee(
            body.name, body.position, body.email, body.phone, body.salary, body.hire_date
        )
        return EmployeeOut(**asdict(employee))

    return app


def _add_document_routes(app: FastAPI, container: AppContainer, kind: DocumentKind) -> None:
    """GET list/detail, POST create and PUT update under /api/<kind slug>."""
    base = f"/api/{kind.slug}"
    name = kind.value

    def list_documents(
        limit: Optional[int] = Query(None, ge=0),
        offset: int = Query(0, ge=0),
    ):
        headers = container.documents.list_documents(kind=kind, limit=limit, offset=offset)
        return [DocumentOut.from_domain(h) for h in headers]

    def get_document(document_id: int):
        return DocumentDetailOut.from_document(container.documents.get_document(document_id, kind=kind))

    def create_document(
        body: DocumentWriteRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    ):
        request = body.to_domain(kind, container.documents.default_pricing(), idempotency_key)
        log.info("api_document_create kind=%s items=%s", name, len(body.items))
        return DocumentOut.from_domain(container.documents.create_document(request))

    def update_document(document_id: int, body: DocumentWriteRequest):
        request = body.to_domain(kind, container.documents.default_pricing())
        log.info("api_document_update kind=%s id=%s items=%s", name, document_id, len(body.items))
        return DocumentOut.from_domain(container.documents.update_document(document_id, request))

    app.add_api_route(
        base, list_documents, methods=["GET"], response_model=list[DocumentOut], name=f"list_{name}s"
    )
    app.add_api_route(
        base + "/{document_id}", get_document, methods=["GET"],
        response_model=DocumentDetailOut, name=f"get_{name}",
    )
    app.add_api_route(
        base, create_document, methods=["POST"], response_model=DocumentOut,
        status_code=201, name=f"create_{name}",
    )
    app.add_api_route(
        base + "/{document_id}", update_document, methods=["PUT"],
        response_model=DocumentOut, name=f"update_{name}",
    )
