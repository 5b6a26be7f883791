from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Optional

from bim.config import PricingDefaults
from bim.domain.errors import AppError, InsufficientStockError, NotFoundError, ValidationError
from bim.domain.models import (
    PAYMENT_TYPES,
    Document,
    DocumentHeader,
    DocumentKind,
    DocumentRequest,
    LineItem,
    PricingParams,
    ProductLine,
    Totals,
)
from bim.domain.pricing import compute_totals, totals_match
from bim.repositories.contracts import DocumentRepository
from bim.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("bim.documents")

DEFAULT_QUOTE_VALIDITY_DAYS = 30


def _normalize_date(value: Optional[str]) -> str:
    if not value:
        return datetime.now().replace(microsecond=0).isoformat(sep=" ")
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value}") from e
    return parsed.replace(microsecond=0, tzinfo=None).isoformat(sep=" ")


class DocumentService:
    def __init__(
        self,
        repo: DocumentRepository,
        defaults: PricingDefaults | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.defaults = defaults or PricingDefaults()
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def default_pricing(self) -> PricingParams:
        return PricingParams(
            vat_enabled=True,
            vat_percent=self.defaults.vat_percent,
            stamp_duty=self.defaults.stamp_duty,
        )

    def create_document(self, request: DocumentRequest) -> DocumentHeader:
        if request.idempotency_key:
            existing = self.repo.find_document_by_idempotency_key(request.idempotency_key)
            if existing is not None:
                if existing.kind != request.kind:
                    raise ValidationError("Idempotency key already used for another document.")
                log.info("document_replayed kind=%s id=%s", existing.kind.value, existing.id)
                return existing

        try:
            date_iso, lines, totals, validity_days = self._prepare(request)
            with self.uow_factory() as uow:
                document_id = uow.create_document(
                    kind=request.kind,
                    customer_id=request.customer_id,
                    date_iso=date_iso,
                    status=request.status,
                    payment_type=request.payment_type,
                    pricing=request.pricing,
                    totals=totals,
                    validity_days=validity_days,
                    lines=lines,
                    idempotency_key=request.idempotency_key,
                )
        except AppError as e:
            log.warning(
                "document_rejected kind=%s error=%s items=%s reason=%s",
                request.kind.value, type(e).__name__, len(request.lines), e,
            )
            raise

        header = self.repo.get_document_header(document_id)
        if header is None:
            raise NotFoundError(f"Document not found: {document_id}")
        log.info(
            "document_created kind=%s id=%s customer=%s items=%s total=%s",
            header.kind.value, header.id, header.customer_id, len(lines), header.total,
        )
        return header

    def update_document(self, document_id: int, request: DocumentRequest) -> DocumentHeader:
        current = self.get_document(document_id, kind=request.kind)
        if current.header.status != "pending":
            raise ValidationError("Only pending documents can be edited.")

        # stock held by this document is given back before the new lines are checked
        released: Counter[int] = Counter()
        if request.kind.decrements_stock:
            for it in current.items:
                if it.product_id is not None:
                    released[it.product_id] += it.quantity

        try:
            date_iso, lines, totals, validity_days = self._prepare(request, released=released)
            with self.uow_factory() as uow:
                uow.update_document(
                    document_id=int(document_id),
                    kind=request.kind,
                    customer_id=request.customer_id,
                    date_iso=date_iso,
                    status=request.status,
                    payment_type=request.payment_type,
                    pricing=request.pricing,
                    totals=totals,
                    validity_days=validity_days,
                    lines=lines,
                )
        except AppError as e:
            log.warning(
                "document_update_rejected kind=%s id=%s error=%s reason=%s",
                request.kind.value, document_id, type(e).__name__, e,
            )
            raise

        header = self.repo.get_document_header(int(document_id))
        if header is None:
            raise NotFoundError(f"Document not found: {document_id}")
        log.info("document_updated kind=%s id=%s items=%s total=%s", header.kind.value, header.id, len(lines), header.total)
        return header

    def get_document(self, document_id: int, kind: Optional[DocumentKind] = None) -> Document:
        header = self.repo.get_document_header(int(document_id))
        if header is None or (kind is not None and header.kind != kind):
            raise NotFoundError(f"Document not found: {document_id}")
        items = self.repo.document_items_for_document(header.id)
        return Document(header=header, items=tuple(items))

    def list_documents(
        self,
        kind: Optional[DocumentKind] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[DocumentHeader]:
        if limit is not None and limit < 0:
            raise ValidationError("Limit must be >= 0.")
        if offset < 0:
            raise ValidationError("Offset must be >= 0.")
        return self.repo.list_documents(kind=kind, limit=limit, offset=offset)

    def _prepare(
        self,
        request: DocumentRequest,
        released: Counter[int] | None = None,
    ) -> tuple[str, list[LineItem], Totals, Optional[int]]:
        """Validate a request before anything is written.

        Returns the normalized date, the lines with catalog names snapshotted,
        the server-side totals and the effective quote validity.
        """
        kind = request.kind
        if not isinstance(kind, DocumentKind):
            raise ValidationError(f"Unknown document kind: {kind}")
        if not request.lines:
            raise ValidationError("Document has no line items.")
        if request.status not in kind.statuses:
            raise ValidationError(f"Invalid status '{request.status}' for {kind.value}.")
        if request.payment_type is not None and request.payment_type not in PAYMENT_TYPES:
            raise ValidationError(f"Invalid payment type: {request.payment_type}")
        if request.payment_type is None and kind.requires_payment_type:
            raise ValidationError("Payment type is required.")

        validity_days = request.validity_days
        if kind is DocumentKind.QUOTE:
            validity_days = DEFAULT_QUOTE_VALIDITY_DAYS if validity_days is None else int(validity_days)
            if validity_days < 1:
                raise ValidationError("Validity must be >= 1 day.")
        elif validity_days is not None:
            raise ValidationError("Validity only applies to quotes.")

        date_iso = _normalize_date(request.date)

        customer = self.repo.get_customer_by_id(int(request.customer_id))
        if not customer:
            raise NotFoundError(f"Customer not found: {request.customer_id}")

        released = released or Counter()
        seen: set[tuple[str, int]] = set()
        lines: list[LineItem] = []
        for line in request.lines:
            key = (line.kind, line.ref_id)
            if key in seen:
                raise ValidationError(f"Duplicate {line.kind} line: {line.ref_id}")
            seen.add(key)

            if isinstance(line, ProductLine):
                prod = self.repo.get_product_by_id(line.product_id)
                if not prod:
                    raise NotFoundError(f"Product not found: {line.product_id}")
                available = int(prod.stock) + released[prod.id]
                if kind.decrements_stock and line.quantity > available:
                    raise InsufficientStockError(f"Not enough stock for {prod.name}. Available: {available}")
                lines.append(dataclasses.replace(line, name=prod.name))
            else:
                svc = self.repo.get_service_by_id(line.service_id)
                if not svc:
                    raise NotFoundError(f"Service not found: {line.service_id}")
                lines.append(dataclasses.replace(line, name=svc.name))

        totals = compute_totals(lines, request.pricing)
        if request.declared_total is not None and not totals_match(request.declared_total, totals):
            raise ValidationError(
                f"Declared total {request.declared_total} does not match computed total {totals.total}."
            )
        return date_iso, lines, totals, validity_days
