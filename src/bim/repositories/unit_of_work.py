from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol

from bim.domain.models import DocumentKind, LineItem, PricingParams, Totals


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def create_document(
        self,
        kind: DocumentKind,
        customer_id: int,
        date_iso: str,
        status: str,
        payment_type: Optional[str],
        pricing: PricingParams,
        totals: Totals,
        validity_days: Optional[int],
        lines: Iterable[LineItem],
        idempotency_key: Optional[str] = None,
    ) -> int: ...
    def update_document(
        self,
        document_id: int,
        kind: DocumentKind,
        customer_id: int,
        date_iso: str,
        status: str,
        payment_type: Optional[str],
        pricing: PricingParams,
        totals: Totals,
        validity_days: Optional[int],
        lines: Iterable[LineItem],
    ) -> None: ...


def _now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


@dataclass
class RepositoryUnitOfWork:
    """Unit of Work adapter for transactional write use-cases.

    The repository methods own the SQL transaction (header, items and stock
    movements commit or roll back together). This class centralizes write
    orchestration so services stay persistence-agnostic.
    """

    repo: object

    def __enter__(self) -> "RepositoryUnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def create_document(
        self,
        kind: DocumentKind,
        customer_id: int,
        date_iso: str,
        status: str,
        payment_type: Optional[str],
        pricing: PricingParams,
        totals: Totals,
        validity_days: Optional[int],
        lines: Iterable[LineItem],
        idempotency_key: Optional[str] = None,
    ) -> int:
        return int(
            self.repo.create_document_with_items(
                kind=kind,
                customer_id=customer_id,
                date_iso=date_iso,
                status=status,
                payment_type=payment_type,
                pricing=pricing,
                totals=totals,
                validity_days=validity_days,
                lines=lines,
                created_at=_now_iso(),
                idempotency_key=idempotency_key,
            )
        )

    def update_document(
        self,
        document_id: int,
        kind: DocumentKind,
        customer_id: int,
        date_iso: str,
        status: str,
        payment_type: Optional[str],
        pricing: PricingParams,
        totals: Totals,
        validity_days: Optional[int],
        lines: Iterable[LineItem],
    ) -> None:
        self.repo.update_document_with_items(
            document_id=document_id,
            kind=kind,
            customer_id=customer_id,
            date_iso=date_iso,
            status=status,
            payment_type=payment_type,
            pricing=pricing,
            totals=totals,
            validity_days=validity_days,
            lines=lines,
            updated_at=_now_iso(),
        )
