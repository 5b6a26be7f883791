from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Optional

from bim.domain.errors import NotFoundError, ValidationError
from bim.domain.models import CUSTOMER_CATEGORIES, Customer

log = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\r\n\t]')


def safe_filename(name: str) -> str:
    cleaned = _UNSAFE_FILENAME.sub("_", Path(name or "").name).strip()
    if cleaned in ("", ".", ".."):
        return "document"
    return cleaned


def store_upload(target_dir: Path, filename: str, content: bytes) -> Path:
    """Write an upload without replacing an existing file; clashes get a numeric suffix."""
    name = Path(safe_filename(filename))
    target = target_dir / name
    n = 1
    while True:
        try:
            with open(target, "xb") as fh:
                fh.write(content)
            return target
        except FileExistsError:
            target = target_dir / f"{name.stem}_{n}{name.suffix}"
            n += 1


class CustomerService:
    def __init__(self, repo, uploads_dir: Path | str):
        self.repo = repo
        self.uploads_dir = Path(uploads_dir)

    def list_customers(self) -> list[Customer]:
        return self.repo.list_customers()

    def get_customer(self, customer_id: int) -> Customer:
        c = self.repo.get_customer_by_id(int(customer_id))
        if not c:
            raise NotFoundError("Customer not found.")
        return c

    def add_customer(
        self,
        name: str,
        category: str,
        email: str,
        phone: str,
        address: str,
        fiscal_number: Optional[str] = None,
        documents: Iterable[tuple[str, bytes]] = (),
    ) -> Customer:
        """
        documents: [(filename, content)] stored under uploads/customers/<id>/
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        if category not in CUSTOMER_CATEGORIES:
            raise ValidationError(f"Invalid customer category: {category}")
        email = (email or "").strip()
        if "@" not in email:
            raise ValidationError("A valid email is required.")
        phone = (phone or "").strip()
        address = (address or "").strip()
        if not phone or not address:
            raise ValidationError("Phone and address are required.")
        fiscal_number = (fiscal_number or "").strip() or None

        customer_id = self.repo.add_customer(name, category, email, phone, address, fiscal_number)

        documents = list(documents)
        if documents:
            target_dir = self.uploads_dir / "customers" / str(customer_id)
            target_dir.mkdir(parents=True, exist_ok=True)
            for filename, content in documents:
                target = store_upload(target_dir, filename, content)
                self.repo.add_customer_document(customer_id, str(target.relative_to(self.uploads_dir)))
            log.info("customer_documents_stored customer=%s count=%s", customer_id, len(documents))

        return self.get_customer(customer_id)
