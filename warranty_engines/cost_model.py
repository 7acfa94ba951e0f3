"""
warranty_engines.cost_model -- Pure dealer cost / retail / margin math.

Responsibility:
    Derive a dealer's cost basis from a product or pricing variant and
    turn it into a markup-adjusted retail price, margin and margin
    percentage. Also totals a remittance batch.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Cost basis is ``dealer_cost_cents`` when it is a finite number,
      else ``base_price_cents``; otherwise undefined (None). Undefined
      cost never becomes zero: downstream pricing fails closed.
    - Markup is clamped to ``[0, 200]`` on storage and again on use.
    - Rounding is half-up to whole cents.
    - Display values (retail, margin) are recomputed, never persisted.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from warranty_kernel.domain.markup import MARKUP_PCT_MAX, MARKUP_PCT_MIN
from warranty_kernel.domain.values import finite_number, round_half_up
from warranty_kernel.exceptions import PricingUnavailableError, ValidationError

_HUNDRED = Decimal("100")


class CostSource(Protocol):
    """Anything carrying the two cost fields (Product, PricingVariant, snapshot)."""

    dealer_cost_cents: Any
    base_price_cents: Any


@dataclass(frozen=True)
class PriceQuote:
    """Cost and derived display values for one dealer markup."""

    cost_cents: int
    retail_cents: int
    margin_cents: int
    margin_pct: Decimal | None
    markup_pct: Decimal | None


def clamp_markup_pct(value: Any) -> Decimal:
    """Clamp a markup percentage to [0, 200]; non-numeric values become 0."""
    if isinstance(value, str):
        try:
            value = Decimal(value.strip())
        except ArithmeticError:
            return MARKUP_PCT_MIN
    pct = finite_number(value)
    if pct is None:
        return MARKUP_PCT_MIN
    return max(MARKUP_PCT_MIN, min(MARKUP_PCT_MAX, pct))


def cost_basis(source: CostSource) -> int | None:
    """Dealer cost if numeric, else base price, else None."""
    dealer_cost = finite_number(getattr(source, "dealer_cost_cents", None))
    if dealer_cost is not None:
        return round_half_up(dealer_cost)
    base_price = finite_number(getattr(source, "base_price_cents", None))
    if base_price is not None:
        return round_half_up(base_price)
    return None


def require_cost_basis(source: CostSource, source_id: str) -> int:
    cost = cost_basis(source)
    if cost is None:
        raise PricingUnavailableError(source_id)
    return cost


def retail(cost_cents: int | None, markup_pct: Any) -> int | None:
    """Retail price for a cost under a dealer markup.

    ``None`` cost yields ``None``. ``None`` markup shows the dealer's true
    cost unchanged.
    """
    if cost_cents is None:
        return None
    if markup_pct is None:
        return cost_cents
    pct = clamp_markup_pct(markup_pct)
    return round_half_up(Decimal(cost_cents) * (1 + pct / _HUNDRED))


def margin(cost_cents: int | None, retail_cents: int | None) -> int | None:
    if cost_cents is None or retail_cents is None:
        return None
    return retail_cents - cost_cents


def margin_pct(cost_cents: int | None, retail_cents: int | None) -> Decimal | None:
    """Margin as a percentage of cost; undefined when cost is not positive."""
    if cost_cents is None or retail_cents is None:
        return None
    if cost_cents <= 0:
        return None
    return Decimal(retail_cents - cost_cents) / Decimal(cost_cents) * _HUNDRED


def quote(source: CostSource, markup_pct: Any) -> PriceQuote | None:
    """Full price quote, or None when the cost basis is undefined."""
    cost = cost_basis(source)
    if cost is None:
        return None
    retail_cents = retail(cost, markup_pct)
    return PriceQuote(
        cost_cents=cost,
        retail_cents=retail_cents,
        margin_cents=retail_cents - cost,
        margin_pct=margin_pct(cost, retail_cents),
        markup_pct=None if markup_pct is None else clamp_markup_pct(markup_pct),
    )


def batch_totals(costs: Iterable[int], tax_rate: Decimal) -> tuple[int, int, int]:
    """(subtotal, tax, total) cents for a remittance batch."""
    if not isinstance(tax_rate, Decimal) or not tax_rate.is_finite() or tax_rate < 0:
        raise ValidationError("tax_rate", f"must be a non-negative Decimal, got {tax_rate!r}")
    subtotal = sum(costs)
    tax = round_half_up(Decimal(subtotal) * tax_rate)
    return subtotal, tax, subtotal + tax
