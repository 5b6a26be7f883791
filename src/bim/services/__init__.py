from .catalog_service import CatalogService
from .customer_service import CustomerService
from .document_service import DocumentService
from .expense_service import ExpenseService
from .supplier_service import SupplierService
from .personnel_service import PersonnelService
from .reporting_service import ReportingService

__all__ = [
    "CatalogService",
    "CustomerService",
    "DocumentService",
    "ExpenseService",
    "SupplierService",
    "PersonnelService",
    "ReportingService",
]
