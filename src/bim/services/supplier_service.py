from __future__ import annotations

from typing import Optional

from bim.domain.errors import ValidationError
from bim.domain.models import Supplier


class SupplierService:
    def __init__(self, repo):
        self.repo = repo

    def list_suppliers(self) -> list[Supplier]:
        return self.repo.list_suppliers()

    def add_supplier(
        self,
        name: str,
        email: str,
        phone: str,
        address: str,
        fiscal_number: Optional[str] = None,
    ) -> Supplier:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        email = (email or "").strip()
        if "@" not in email:
            raise ValidationError("A valid email is required.")
        sid = self.repo.add_supplier(
            name, email, (phone or "").strip(), (address or "").strip(), (fiscal_number or "").strip() or None
        )
        return next(s for s in self.repo.list_suppliers() if s.id == sid)
