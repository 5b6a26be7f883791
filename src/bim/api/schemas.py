"""Pydantic wire schemas shared by the REST API and the HTTP gateway.

JSON keys are camelCase (customerId, paymentType, productId, ...); money is
serialized as a decimal string with 3 places.
"""

from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from bim.domain.models import (
    Customer,
    Document,
    DocumentHeader,
    DocumentItem,
    DocumentKind,
    DocumentRequest,
    Employee,
    Expense,
    LineItem,
    PricingParams,
    Product,
    ProductLine,
    Service,
    ServiceLine,
    Supplier,
    Totals,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Catalog ---


class ProductIn(ApiModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: Decimal = Field(..., ge=0)
    stock: int = Field(0, ge=0)


class ProductOut(ApiModel):
    id: int
    name: str
    description: str
    price: Decimal
    stock: int


class ServiceIn(ApiModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: Decimal = Field(..., ge=0)


class ServiceOut(ApiModel):
    id: int
    name: str
    description: str
    price: Decimal


# --- Customers & records ---


class CustomerOut(ApiModel):
    id: int
    name: str
    category: str
    email: str
    phone: str
    address: str
    fiscal_number: Optional[str] = None
    documents: list[str] = []

    @classmethod
    def from_domain(cls, c: Customer) -> "CustomerOut":
        return cls(
            id=c.id,
            name=c.name,
            category=c.category,
            email=c.email,
            phone=c.phone,
            address=c.address,
            fiscal_number=c.fiscal_number,
            documents=list(c.documents),
        )


class SupplierIn(ApiModel):
    name: str
    email: str
    phone: str = ""
    address: str = ""
    fiscal_number: Optional[str] = None


class SupplierOut(ApiModel):
    id: int
    name: str
    email: str
    phone: str
    address: str
    fiscal_number: Optional[str] = None


class EmployeeIn(ApiModel):
    name: str
    position: str
    email: str = ""
    phone: str = ""
    salary: Decimal = Field(..., ge=0)
    hire_date: Optional[str] = None


class EmployeeOut(ApiModel):
    id: int
    name: str
    position: str
    email: str
    phone: str
    salary: Decimal
    hire_date: str


class ExpenseOut(ApiModel):
    id: int
    description: str
    amount: Decimal
    date: str
    category: str
    attachment: Optional[str] = None


# --- Documents ---


class ItemIn(ApiModel):
    """One line: exactly one of productId / serviceId."""

    product_id: Optional[int] = None
    service_id: Optional[int] = None
    name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)

    @model_validator(mode="after")
    def _exactly_one_reference(self) -> "ItemIn":
        if (self.product_id is None) == (self.service_id is None):
            raise ValueError("Each item needs exactly one of productId or serviceId.")
        return self

    def to_line(self) -> LineItem:
        if self.product_id is not None:
            return ProductLine(self.product_id, self.name or "", self.price, self.quantity)
        return ServiceLine(int(self.service_id), self.name or "", self.price, self.quantity)

    @classmethod
    def from_line(cls, line: LineItem) -> "ItemIn":
        if isinstance(line, ProductLine):
            return cls(product_id=line.product_id, name=line.name, quantity=line.quantity, price=line.unit_price)
        return cls(service_id=line.service_id, name=line.name, quantity=line.quantity, price=line.unit_price)


class HeaderIn(ApiModel):
    customer_id: int
    date: Optional[str] = None
    status: str = "pending"
    payment_type: Optional[str] = None
    total: Optional[Decimal] = None
    vat_enabled: bool = True
    vat_percent: Optional[Decimal] = Field(None, ge=0)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    stamp_duty: Optional[Decimal] = Field(None, ge=0)
    validity_days: Optional[int] = Field(None, ge=1)


class DocumentWriteRequest(ApiModel):
    document: HeaderIn = Field(
        validation_alias=AliasChoices("document", "invoice", "quote", "creditNote", "deliveryNote"),
        serialization_alias="document",
    )
    items: list[ItemIn]

    def to_domain(
        self,
        kind: DocumentKind,
        defaults: PricingParams,
        idempotency_key: Optional[str] = None,
    ) -> DocumentRequest:
        h = self.document
        pricing = PricingParams(
            vat_enabled=h.vat_enabled,
            vat_percent=h.vat_percent if h.vat_percent is not None else defaults.vat_percent,
            discount_percent=h.discount_percent,
            stamp_duty=h.stamp_duty if h.stamp_duty is not None else defaults.stamp_duty,
        )
        return DocumentRequest(
            kind=kind,
            customer_id=h.customer_id,
            lines=tuple(it.to_line() for it in self.items),
            pricing=pricing,
            date=h.date,
            status=h.status,
            payment_type=h.payment_type,
            validity_days=h.validity_days,
            declared_total=h.total,
            idempotency_key=idempotency_key,
        )

    @classmethod
    def from_domain(cls, request: DocumentRequest) -> "DocumentWriteRequest":
        p = request.pricing
        header = HeaderIn(
            customer_id=request.customer_id,
            date=request.date,
            status=request.status,
            payment_type=request.payment_type,
            total=request.declared_total,
            vat_enabled=p.vat_enabled,
            vat_percent=p.vat_percent,
            discount_percent=p.discount_percent,
            stamp_duty=p.stamp_duty,
            validity_days=request.validity_days,
        )
        return cls(document=header, items=[ItemIn.from_line(line) for line in request.lines])


class DocumentOut(ApiModel):
    id: int
    number: str
    kind: DocumentKind
    customer_id: int
    date: str
    status: str
    payment_type: Optional[str] = None
    vat_enabled: bool
    vat_percent: Decimal
    discount_percent: Decimal
    stamp_duty: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    vat_amount: Decimal
    total: Decimal
    validity_days: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def fields_from_domain(cls, h: DocumentHeader) -> dict:
        return dict(
            id=h.id,
            number=h.number,
            kind=h.kind,
            customer_id=h.customer_id,
            date=h.date,
            status=h.status,
            payment_type=h.payment_type,
            vat_enabled=h.pricing.vat_enabled,
            vat_percent=h.pricing.vat_percent,
            discount_percent=h.pricing.discount_percent,
            stamp_duty=h.totals.stamp_duty,
            subtotal=h.totals.subtotal,
            discount_amount=h.totals.discount_amount,
            vat_amount=h.totals.vat_amount,
            total=h.totals.total,
            validity_days=h.validity_days,
            created_at=h.created_at,
        )

    @classmethod
    def from_domain(cls, h: DocumentHeader) -> "DocumentOut":
        return cls(**cls.fields_from_domain(h))

    def to_domain(self) -> DocumentHeader:
        return DocumentHeader(
            id=self.id,
            kind=self.kind,
            customer_id=self.customer_id,
            date=self.date,
            status=self.status,
            payment_type=self.payment_type,
            pricing=PricingParams(
                vat_enabled=self.vat_enabled,
                vat_percent=self.vat_percent,
                discount_percent=self.discount_percent,
                stamp_duty=self.stamp_duty,
            ),
            totals=Totals(
                subtotal=self.subtotal,
                discount_amount=self.discount_amount,
                taxable_base=self.subtotal - self.discount_amount,
                vat_amount=self.vat_amount,
                stamp_duty=self.stamp_duty,
                total=self.total,
            ),
            validity_days=self.validity_days,
            created_at=self.created_at,
        )


class ItemOut(ApiModel):
    id: int
    document_id: int
    product_id: Optional[int] = None
    service_id: Optional[int] = None
    name: str
    quantity: int
    price: Decimal
    line_total: Decimal

    @classmethod
    def from_domain(cls, it: DocumentItem) -> "ItemOut":
        return cls(
            id=it.id,
            document_id=it.document_id,
            product_id=it.product_id,
            service_id=it.service_id,
            name=it.name,
            quantity=it.quantity,
            price=it.unit_price,
            line_total=it.line_total,
        )


class DocumentDetailOut(DocumentOut):
    items: list[ItemOut]

    @classmethod
    def from_document(cls, d: Document) -> "DocumentDetailOut":
        return cls(**cls.fields_from_domain(d.header), items=[ItemOut.from_domain(it) for it in d.items])


class ErrorResponse(BaseModel):
    detail: str
    error_type: str
