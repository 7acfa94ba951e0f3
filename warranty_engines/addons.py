"""
warranty_engines.addons -- Pure add-on applicability and pricing.

Responsibility:
    Decide which of a product's add-ons may be sold with a pricing row
    and freeze the chosen ones into ``AddonSnapshot`` values priced
    under the dealer's markup.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Inactive add-ons are never offered or sold.
    - An add-on restricted to specific pricing rows applies only when
      one of those rows is the selected variant. A product sold without
      pricing rows carries only unrestricted add-ons.
    - Add-on cost follows the same cost basis rule as variants:
      ``dealer_cost_cents`` if numeric, else ``base_price_cents``.
    - Price bounds default to the base price (min) and the min (max).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any
from uuid import UUID

from warranty_engines.cost_model import require_cost_basis, retail
from warranty_kernel.domain.catalog import ProductAddon
from warranty_kernel.domain.contract import AddonSnapshot
from warranty_kernel.exceptions import ValidationError


def addon_applies(addon: ProductAddon, variant_id: UUID | None) -> bool:
    if not addon.active:
        return False
    if addon.applies_to_all_variants:
        return True
    return variant_id is not None and variant_id in addon.applicable_variant_ids


def applicable_addons(addons: Iterable[ProductAddon], variant_id: UUID | None) -> list[ProductAddon]:
    """Add-ons that may be sold with ``variant_id``, in stored order."""
    return [a for a in addons if addon_applies(a, variant_id)]


def price_addon(addon: ProductAddon, markup_pct: Any) -> AddonSnapshot:
    cost = require_cost_basis(addon, str(addon.id))
    min_price = addon.min_price_cents if addon.min_price_cents is not None else addon.base_price_cents
    max_price = addon.max_price_cents if addon.max_price_cents is not None else min_price
    return AddonSnapshot(
        addon_id=addon.id,
        name=addon.name,
        description=addon.description,
        pricing_type=addon.pricing_type.value,
        base_price_cents=addon.base_price_cents,
        min_price_cents=min_price,
        max_price_cents=max_price,
        cost_cents=cost,
        retail_cents=retail(cost, markup_pct),
    )


def addon_totals(snapshots: Iterable[AddonSnapshot]) -> tuple[int, int]:
    """(cost, retail) cents summed over sold add-ons."""
    cost = retail_total = 0
    for snapshot in snapshots:
        cost += snapshot.cost_cents
        retail_total += snapshot.retail_cents
    return cost, retail_total


def select_addons(
    addons: Sequence[ProductAddon],
    variant_id: UUID | None,
    addon_ids: Iterable[UUID],
    markup_pct: Any,
) -> tuple[AddonSnapshot, ...]:
    """
    Snapshot the requested add-ons for a sale.

    Requested ids keep their order; repeats are sold once.

    Raises:
        ValidationError: an id is not an add-on of the product, is
            inactive, or does not apply to the selected pricing row.
    """
    by_id = {a.id: a for a in addons}
    chosen: list[AddonSnapshot] = []
    seen: set[UUID] = set()
    for addon_id in addon_ids:
        if addon_id in seen:
            continue
        seen.add(addon_id)
        addon = by_id.get(addon_id)
        if addon is None:
            raise ValidationError("addon_ids", f"{addon_id} is not an add-on of this product")
        if not addon_applies(addon, variant_id):
            raise ValidationError("addon_ids", f"add-on {addon_id} is not available for this pricing row")
        chosen.append(price_addon(addon, markup_pct))
    return tuple(chosen)
