from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from bim.composer.composer import DocumentComposer
from bim.composer.gateway import DocumentGateway, LocalDocumentGateway
from bim.config import Settings, load_settings
from bim.domain.models import DocumentKind
from bim.repositories.sqlite_repo import SqliteRepository
from bim.services.catalog_service import CatalogService
from bim.services.customer_service import CustomerService
from bim.services.document_service import DocumentService
from bim.services.expense_service import ExpenseService
from bim.services.personnel_service import PersonnelService
from bim.services.reporting_service import ReportingService
from bim.services.supplier_service import SupplierService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    settings: Settings
    catalog: CatalogService
    customers: CustomerService
    documents: DocumentService
    expenses: ExpenseService
    suppliers: SupplierService
    personnel: PersonnelService
    reporting: ReportingService

    def new_composer(
        self,
        kind: DocumentKind = DocumentKind.INVOICE,
        gateway: Optional[DocumentGateway] = None,
        on_submitted=None,
    ) -> DocumentComposer:
        return DocumentComposer(
            gateway or LocalDocumentGateway(self.documents),
            kind=kind,
            issuer=self.settings.issuer,
            defaults=self.documents.default_pricing(),
            on_submitted=on_submitted,
        )


def build_container(
    db_path: Path | str,
    settings: Optional[Settings] = None,
    uploads_dir: Path | str | None = None,
) -> AppContainer:
    settings = settings or load_settings()
    uploads = Path(uploads_dir) if uploads_dir is not None else Path(db_path).parent / "uploads"

    repo = SqliteRepository(db_path)
    repo.init_db()

    return AppContainer(
        repo=repo,
        settings=settings,
        catalog=CatalogService(repo),
        customers=CustomerService(repo, uploads),
        documents=DocumentService(repo, settings.pricing),
        expenses=ExpenseService(repo, uploads),
        suppliers=SupplierService(repo),
        personnel=PersonnelService(repo),
        reporting=ReportingService(repo),
    )
