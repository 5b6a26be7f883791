from __future__ import annotations

from typing import Optional, Protocol

from bim.domain.models import Customer, DocumentHeader, DocumentItem, DocumentKind, Product, Service


class CatalogRepository(Protocol):
    def get_product_by_id(self, product_id: int) -> Optional[Product]: ...
    def get_service_by_id(self, service_id: int) -> Optional[Service]: ...


class CustomerRepository(Protocol):
    def get_customer_by_id(self, customer_id: int) -> Optional[Customer]: ...


class DocumentRepository(CatalogRepository, CustomerRepository, Protocol):
    def get_document_header(self, document_id: int) -> Optional[DocumentHeader]: ...
    def find_document_by_idempotency_key(self, key: str) -> Optional[DocumentHeader]: ...
    def document_items_for_document(self, document_id: int) -> list[DocumentItem]: ...
    def list_documents(
        self,
        kind: Optional[DocumentKind] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
    ) -> list[DocumentHeader]: ...
