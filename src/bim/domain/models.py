from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional, Union

from bim.domain.errors import ValidationError
from bim.domain.money import ZERO, round_money, to_decimal

CUSTOMER_CATEGORIES = (
    "entreprise",
    "installateur",
    "particulier",
    "association",
    "industrie",
    "agricole",
    "etatique",
)

PAYMENT_TYPES = ("virement", "espece", "cheque", "traite")


class DocumentKind(str, Enum):
    INVOICE = "invoice"
    QUOTE = "quote"
    CREDIT_NOTE = "credit_note"
    DELIVERY_NOTE = "delivery_note"

    @property
    def statuses(self) -> tuple[str, ...]:
        return _STATUSES[self]

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]

    @property
    def heading(self) -> str:
        return _HEADINGS[self]

    @property
    def slug(self) -> str:
        return self.value.replace("_", "-") + "s"

    @property
    def decrements_stock(self) -> bool:
        return self is DocumentKind.INVOICE

    @property
    def requires_payment_type(self) -> bool:
        return self in (DocumentKind.INVOICE, DocumentKind.CREDIT_NOTE)


_STATUSES = {
    DocumentKind.INVOICE: ("pending", "paid", "cancelled"),
    DocumentKind.QUOTE: ("pending", "accepted", "refused"),
    DocumentKind.CREDIT_NOTE: ("pending", "refunded", "cancelled"),
    DocumentKind.DELIVERY_NOTE: ("pending", "delivered", "cancelled"),
}

_PREFIXES = {
    DocumentKind.INVOICE: "FAC",
    DocumentKind.QUOTE: "DEV",
    DocumentKind.CREDIT_NOTE: "AV",
    DocumentKind.DELIVERY_NOTE: "BL",
}

_HEADINGS = {
    DocumentKind.INVOICE: "FACTURE",
    DocumentKind.QUOTE: "DEVIS",
    DocumentKind.CREDIT_NOTE: "AVOIR",
    DocumentKind.DELIVERY_NOTE: "BON DE LIVRAISON",
}


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    description: str
    price: Decimal
    stock: int


@dataclass(frozen=True)
class Service:
    id: int
    name: str
    description: str
    price: Decimal


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    category: str
    email: str
    phone: str
    address: str
    fiscal_number: Optional[str] = None
    documents: tuple[str, ...] = ()


@dataclass(frozen=True)
class Supplier:
    id: int
    name: str
    email: str
    phone: str
    address: str
    fiscal_number: Optional[str] = None


@dataclass(frozen=True)
class Employee:
    id: int
    name: str
    position: str
    email: str
    phone: str
    salary: Decimal
    hire_date: str


@dataclass(frozen=True)
class Expense:
    id: int
    description: str
    amount: Decimal
    date: str
    category: str
    attachment: Optional[str] = None


def _check_line(quantity: int, unit_price: Decimal) -> Decimal:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Qty must be an integer.")
    if quantity < 1:
        raise ValidationError("Qty must be >= 1.")
    unit_price = to_decimal(unit_price, "Unit price")
    if unit_price < 0:
        raise ValidationError("Unit price must be >= 0.")
    return round_money(unit_price)


@dataclass(frozen=True)
class ProductLine:
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    kind: Literal["product"] = field(default="product", init=False)

    def __post_init__(self) -> None:
        # lines are priced in whole millimes, as they are stored
        object.__setattr__(self, "unit_price", _check_line(self.quantity, self.unit_price))

    @property
    def ref_id(self) -> int:
        return self.product_id

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class ServiceLine:
    service_id: int
    name: str
    unit_price: Decimal
    quantity: int
    kind: Literal["service"] = field(default="service", init=False)

    def __post_init__(self) -> None:
        # lines are priced in whole millimes, as they are stored
        object.__setattr__(self, "unit_price", _check_line(self.quantity, self.unit_price))

    @property
    def ref_id(self) -> int:
        return self.service_id

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


LineItem = Union[ProductLine, ServiceLine]


@dataclass(frozen=True)
class PricingParams:
    vat_enabled: bool = True
    vat_percent: Decimal = Decimal("19")
    discount_percent: Decimal = Decimal("0")
    stamp_duty: Decimal = ZERO


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    taxable_base: Decimal
    vat_amount: Decimal
    stamp_duty: Decimal
    total: Decimal


@dataclass(frozen=True)
class DocumentRequest:
    """What a caller asks the document store to persist.

    `declared_total` is the client's own computation; it is checked against
    the server-side totals and never stored as such.
    """

    kind: DocumentKind
    customer_id: int
    lines: tuple[LineItem, ...]
    pricing: PricingParams = PricingParams()
    date: Optional[str] = None
    status: str = "pending"
    payment_type: Optional[str] = None
    validity_days: Optional[int] = None
    declared_total: Optional[Decimal] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class DocumentHeader:
    id: int
    kind: DocumentKind
    customer_id: int
    date: str
    status: str
    payment_type: Optional[str]
    pricing: PricingParams
    totals: Totals
    validity_days: Optional[int] = None
    idempotency_key: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def number(self) -> str:
        return f"{self.kind.prefix}-{self.id}"

    @property
    def total(self) -> Decimal:
        return self.totals.total


@dataclass(frozen=True)
class DocumentItem:
    id: int
    document_id: int
    product_id: Optional[int]
    service_id: Optional[int]
    name: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)

    def to_line(self) -> LineItem:
        if self.product_id is not None:
            return ProductLine(self.product_id, self.name, self.unit_price, self.quantity)
        return ServiceLine(int(self.service_id), self.name, self.unit_price, self.quantity)


@dataclass(frozen=True)
class Document:
    header: DocumentHeader
    items: tuple[DocumentItem, ...]

    @property
    def lines(self) -> tuple[LineItem, ...]:
        return tuple(it.to_line() for it in self.items)


@dataclass(frozen=True)
class LedgerEntry:
    id: int
    datetime: str
    product_id: int
    qty_delta: int
    stock_after: int
    document_id: int
    notes: Optional[str]
