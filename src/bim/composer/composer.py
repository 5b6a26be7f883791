"""Client-side document composer.

The composer holds an unsaved document (customer, header fields, lines),
derives its totals on every read, shows a preview and sends the result
through a DocumentGateway. Failed submissions keep everything composed so
the user can retry.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Literal, Optional, Union

from bim.composer.gateway import DocumentGateway
from bim.config import IssuerInfo
from bim.domain.errors import NotFoundError, ValidationError
from bim.domain.models import (
    PAYMENT_TYPES,
    Customer,
    Document,
    DocumentHeader,
    DocumentKind,
    DocumentRequest,
    LineItem,
    PricingParams,
    Product,
    ProductLine,
    Service,
    ServiceLine,
    Totals,
)
from bim.domain.money import round_money, to_decimal
from bim.domain.pricing import compute_totals, validate_params
from bim.rendering.preview import DocumentPreview, PreviewData

log = logging.getLogger(__name__)

LineKind = Literal["product", "service"]


def _to_int(value: object, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be an integer.") from e


class ComposerState(str, Enum):
    EMPTY = "empty"
    SELECTING = "selecting"
    COMPOSED = "composed"
    PREVIEW_PENDING = "preview_pending"
    SUBMITTED = "submitted"


@dataclass
class SelectionEntry:
    ref_id: int
    name: str
    unit_price: Decimal
    stock: Optional[int] = None
    disabled: bool = False
    selected: bool = False
    quantity: int = 1


class SelectionDialog:
    """Temporary pick list over the product or service catalog."""

    def __init__(self, kind: LineKind, entries: Iterable[SelectionEntry]):
        self.kind = kind
        self.entries: dict[int, SelectionEntry] = {e.ref_id: e for e in entries}

    def entry(self, ref_id: int) -> SelectionEntry:
        try:
            return self.entries[int(ref_id)]
        except KeyError:
            raise NotFoundError(f"Unknown {self.kind}: {ref_id}") from None

    def is_disabled(self, ref_id: int) -> bool:
        return self.entry(ref_id).disabled

    def toggle(self, ref_id: int, selected: Optional[bool] = None) -> bool:
        e = self.entry(ref_id)
        if e.disabled:
            return False
        e.selected = (not e.selected) if selected is None else bool(selected)
        return e.selected

    def set_quantity(self, ref_id: int, quantity: int) -> int:
        e = self.entry(ref_id)
        qty = max(1, _to_int(quantity, "Qty"))
        if e.stock is not None:
            qty = min(qty, e.stock)
        e.quantity = qty
        return qty

    def chosen_lines(self) -> list[LineItem]:
        out: list[LineItem] = []
        for e in self.entries.values():
            if not e.selected or e.disabled:
                continue
            if self.kind == "product":
                out.append(ProductLine(e.ref_id, e.name, e.unit_price, e.quantity))
            else:
                out.append(ServiceLine(e.ref_id, e.name, e.unit_price, e.quantity))
        return out


def _line_key(line: LineItem) -> tuple[str, int]:
    return line.kind, line.ref_id


class DocumentComposer:
    def __init__(
        self,
        gateway: DocumentGateway,
        kind: DocumentKind = DocumentKind.INVOICE,
        issuer: IssuerInfo | None = None,
        defaults: PricingParams | None = None,
        on_submitted: Callable[[DocumentHeader], None] | None = None,
    ):
        self.gateway = gateway
        self.kind = kind
        self.issuer = issuer or IssuerInfo()
        self.defaults = defaults or PricingParams()
        self.on_submitted = on_submitted
        self.in_flight = False
        self.last_error: Optional[Exception] = None
        self.reset()

    def reset(self) -> None:
        self.state = ComposerState.EMPTY
        self.customer: Optional[Customer] = None
        self.lines: list[LineItem] = []
        self.date: Optional[str] = None
        self.status = "pending"
        self.payment_type: Optional[str] = None
        self.pricing = self.defaults
        self.validity_days: Optional[int] = None
        self.editing_id: Optional[int] = None
        self.dialog: Optional[SelectionDialog] = None
        self.preview: Optional[DocumentPreview] = None
        self.idempotency_key = uuid.uuid4().hex

    @property
    def editing(self) -> bool:
        return self.editing_id is not None

    @property
    def totals(self) -> Totals:
        return compute_totals(self.lines, self.pricing)

    @property
    def can_submit(self) -> bool:
        return self.state is ComposerState.PREVIEW_PENDING and not self.in_flight

    def has_line(self, kind: LineKind, ref_id: int) -> bool:
        return (kind, int(ref_id)) in {_line_key(line) for line in self.lines}

    # ---------- header ----------
    def set_customer(self, customer: Customer) -> None:
        self._touch()
        self.customer = customer
        self._settle()

    def set_date(self, value: Optional[str]) -> None:
        self._touch()
        if value:
            try:
                datetime.fromisoformat(str(value).strip())
            except ValueError as e:
                raise ValidationError(f"Invalid date: {value}") from e
        self.date = value or None

    def set_status(self, status: str) -> None:
        if status not in self.kind.statuses:
            raise ValidationError(f"Invalid status '{status}' for {self.kind.value}.")
        self._touch()
        self.status = status

    def set_payment_type(self, payment_type: Optional[str]) -> None:
        if payment_type is not None and payment_type not in PAYMENT_TYPES:
            raise ValidationError(f"Invalid payment type: {payment_type}")
        self._touch()
        self.payment_type = payment_type

    def set_vat_enabled(self, enabled: bool) -> None:
        self._set_pricing(vat_enabled=bool(enabled))

    def set_vat_percent(self, value) -> None:
        self._set_pricing(vat_percent=to_decimal(value, "VAT rate"))

    def set_discount_percent(self, value) -> None:
        self._set_pricing(discount_percent=to_decimal(value, "Discount"))

    def set_stamp_duty(self, value) -> None:
        self._set_pricing(stamp_duty=round_money(to_decimal(value, "Stamp duty")))

    def set_validity_days(self, days: Optional[int]) -> None:
        if self.kind is not DocumentKind.QUOTE:
            raise ValidationError("Validity only applies to quotes.")
        if days is not None:
            days = _to_int(days, "Validity")
            if days < 1:
                raise ValidationError("Validity must be >= 1 day.")
        self._touch()
        self.validity_days = days

    def _set_pricing(self, **changes) -> None:
        pricing = dataclasses.replace(self.pricing, **changes)
        validate_params(pricing)
        self._touch()
        self.pricing = pricing

    # ---------- lines ----------
    def open_selection(self, kind: LineKind, catalog: Iterable[Union[Product, Service]]) -> SelectionDialog:
        if kind not in ("product", "service"):
            raise ValidationError(f"Unknown line kind: {kind}")
        self._touch()
        entries = []
        for item in catalog:
            stock = int(item.stock) if kind == "product" else None
            disabled = self.has_line(kind, item.id) or (stock is not None and stock < 1)
            entries.append(SelectionEntry(item.id, item.name, item.price, stock=stock, disabled=disabled))
        self.dialog = SelectionDialog(kind, entries)
        self.state = ComposerState.SELECTING
        return self.dialog

    def confirm_selection(self) -> list[LineItem]:
        if self.dialog is None:
            raise ValidationError("No selection in progress.")
        added = [line for line in self.dialog.chosen_lines() if not self.has_line(line.kind, line.ref_id)]
        self.lines.extend(added)
        self.dialog = None
        self._settle()
        return added

    def cancel_selection(self) -> None:
        self.dialog = None
        self._settle()

    def remove_line(self, kind: LineKind, ref_id: int) -> None:
        self._touch()
        key = (kind, int(ref_id))
        kept = [line for line in self.lines if _line_key(line) != key]
        if len(kept) == len(self.lines):
            raise NotFoundError(f"No {kind} line for {ref_id}.")
        self.lines = kept
        self._settle()

    def set_line_quantity(self, kind: LineKind, ref_id: int, quantity: int) -> None:
        if not self.editing:
            raise ValidationError("Remove and re-add the item to change its quantity.")
        self._touch()
        key = (kind, int(ref_id))
        for i, line in enumerate(self.lines):
            if _line_key(line) == key:
                self.lines[i] = dataclasses.replace(line, quantity=quantity)
                return
        raise NotFoundError(f"No {kind} line for {ref_id}.")

    # ---------- edit mode ----------
    def load_document(self, document: Document, customer: Customer) -> None:
        h = document.header
        if h.status != "pending":
            raise ValidationError("Only pending documents can be edited.")
        if customer.id != h.customer_id:
            raise ValidationError("Customer does not match the document.")
        self.reset()
        self.kind = h.kind
        self.editing_id = h.id
        self.customer = customer
        self.lines = list(document.lines)
        self.date = h.date
        self.status = h.status
        self.payment_type = h.payment_type
        self.pricing = h.pricing
        self.validity_days = h.validity_days
        self.state = ComposerState.COMPOSED

    # ---------- preview / submit ----------
    def request_preview(self) -> DocumentPreview:
        if self.state in (ComposerState.SELECTING, ComposerState.SUBMITTED):
            raise ValidationError("Finish the current step first.")
        if not self.lines:
            raise ValidationError("Add at least one product or service.")
        if self.customer is None:
            raise ValidationError("Select a customer.")
        if self.payment_type is None and self.kind.requires_payment_type:
            raise ValidationError("Payment type is required.")

        data = PreviewData(
            kind=self.kind,
            customer=self.customer,
            lines=tuple(self.lines),
            pricing=self.pricing,
            totals=self.totals,
            date=self.date or datetime.now().replace(microsecond=0).isoformat(sep=" "),
            status=self.status,
            payment_type=self.payment_type,
            validity_days=self._effective_validity(),
            number=f"{self.kind.prefix}-{self.editing_id}" if self.editing else None,
        )
        self.preview = DocumentPreview(data, self.issuer, on_validate=self.submit, on_cancel=self.cancel_preview)
        self.state = ComposerState.PREVIEW_PENDING
        return self.preview

    def cancel_preview(self) -> None:
        if self.state is not ComposerState.PREVIEW_PENDING:
            return
        self.preview = None
        self._settle()

    def build_request(self) -> DocumentRequest:
        if self.customer is None:
            raise ValidationError("Select a customer.")
        return DocumentRequest(
            kind=self.kind,
            customer_id=self.customer.id,
            lines=tuple(self.lines),
            pricing=self.pricing,
            date=self.date,
            status=self.status,
            payment_type=self.payment_type,
            validity_days=self._effective_validity(),
            declared_total=self.totals.total,
            idempotency_key=None if self.editing else self.idempotency_key,
        )

    def submit(self) -> DocumentHeader:
        if self.in_flight:
            raise ValidationError("A submission is already in progress.")
        if self.state is not ComposerState.PREVIEW_PENDING:
            raise ValidationError("Preview the document before submitting.")

        request = self.build_request()
        self.in_flight = True
        self.state = ComposerState.SUBMITTED
        try:
            if self.editing:
                header = self.gateway.update_document(int(self.editing_id), request)
            else:
                header = self.gateway.create_document(request)
        except Exception as e:
            self.state = ComposerState.PREVIEW_PENDING
            self.last_error = e
            log.warning("composer_submit_failed kind=%s error=%s", self.kind.value, type(e).__name__)
            raise
        finally:
            self.in_flight = False

        self.last_error = None
        self.reset()
        log.info("composer_submitted kind=%s id=%s", header.kind.value, header.id)
        if self.on_submitted is not None:
            self.on_submitted(header)
        return header

    # ---------- internals ----------
    def _effective_validity(self) -> Optional[int]:
        if self.kind is not DocumentKind.QUOTE:
            return None
        return self.validity_days

    def _touch(self) -> None:
        if self.state in (ComposerState.PREVIEW_PENDING, ComposerState.SUBMITTED):
            raise ValidationError("Close the preview before changing the document.")
        # a changed document must not replay an earlier attempt
        self.idempotency_key = uuid.uuid4().hex

    def _settle(self) -> None:
        if self.customer is not None or self.lines:
            self.state = ComposerState.COMPOSED
        else:
            self.state = ComposerState.EMPTY
