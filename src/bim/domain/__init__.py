from .models import (
    Customer,
    Document,
    DocumentHeader,
    DocumentItem,
    DocumentKind,
    DocumentRequest,
    PricingParams,
    Product,
    ProductLine,
    Service,
    ServiceLine,
    Totals,
)
from .errors import ValidationError, NotFoundError, InsufficientStockError, TransientFailure

__all__ = [
    "Customer",
    "Document",
    "DocumentHeader",
    "DocumentItem",
    "DocumentKind",
    "DocumentRequest",
    "PricingParams",
    "Product",
    "ProductLine",
    "Service",
    "ServiceLine",
    "Totals",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "TransientFailure",
]
