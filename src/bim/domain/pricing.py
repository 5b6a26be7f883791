"""Document pricing.

Totals are derived, never stored independently of their inputs:

    subtotal        = sum(unit_price * quantity)
    discount_amount = subtotal * discount_percent / 100
    taxable_base    = subtotal - discount_amount
    vat_amount      = taxable_base * vat_percent / 100   (0 when VAT is off)
    total           = taxable_base + vat_amount + stamp_duty

Discount always applies before VAT. Every derived amount is rounded half-up
to the millime.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from bim.domain.errors import ValidationError
from bim.domain.models import LineItem, PricingParams, Totals
from bim.domain.money import MILLIME, ZERO, round_money

HUNDRED = Decimal("100")
TOTAL_TOLERANCE = MILLIME


def validate_params(params: PricingParams) -> None:
    if params.vat_percent < 0:
        raise ValidationError("VAT rate must be >= 0.")
    if not (0 <= params.discount_percent <= HUNDRED):
        raise ValidationError("Discount must be between 0 and 100.")
    if params.stamp_duty < 0:
        raise ValidationError("Stamp duty must be >= 0.")


def compute_subtotal(lines: Iterable[LineItem]) -> Decimal:
    return round_money(sum((line.line_total for line in lines), ZERO))


def compute_totals(lines: Iterable[LineItem], params: PricingParams | None = None) -> Totals:
    params = params or PricingParams()
    validate_params(params)

    subtotal = compute_subtotal(lines)
    discount_amount = round_money(subtotal * params.discount_percent / HUNDRED)
    taxable_base = subtotal - discount_amount
    if params.vat_enabled:
        vat_amount = round_money(taxable_base * params.vat_percent / HUNDRED)
    else:
        vat_amount = ZERO
    stamp_duty = round_money(params.stamp_duty)

    return Totals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        taxable_base=taxable_base,
        vat_amount=vat_amount,
        stamp_duty=stamp_duty,
        total=taxable_base + vat_amount + stamp_duty,
    )


def totals_match(declared: Decimal, computed: Totals) -> bool:
    return abs(declared - computed.total) <= TOTAL_TOLERANCE
