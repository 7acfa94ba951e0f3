"""
Pure calculation engines for warranty eligibility, pricing and lifecycle.

Engines take domain value objects and return results or raise typed
kernel exceptions. They never touch storage, clocks or logging.
"""

from warranty_engines.addons import (
    addon_applies,
    addon_totals,
    applicable_addons,
    price_addon,
    select_addons,
)
from warranty_engines.cost_model import (
    PriceQuote,
    batch_totals,
    clamp_markup_pct,
    cost_basis,
    margin,
    margin_pct,
    quote,
    require_cost_basis,
    retail,
)
from warranty_engines.eligibility import (
    EligibilityResult,
    evaluate_product_eligibility,
    is_product_eligible,
)
from warranty_engines.lifecycle import (
    apply_batch_patch,
    apply_contract_patch,
    check_batch_patch,
    check_contract_deletable,
    check_contract_patch,
    check_contract_transition,
    check_members_remittable,
    check_remittance_transition,
    next_contract_status,
    transition,
    transition_batch,
)
from warranty_engines.variant_resolver import (
    VariantConstraints,
    matching_variants,
    product_meets_constraints,
    require_variant,
    resolve_variant,
    select_primary_variant,
    variant_fits_vehicle,
    variant_meets_constraints,
)

__all__ = [
    "EligibilityResult",
    "PriceQuote",
    "VariantConstraints",
    "addon_applies",
    "addon_totals",
    "applicable_addons",
    "apply_batch_patch",
    "apply_contract_patch",
    "batch_totals",
    "check_batch_patch",
    "check_contract_deletable",
    "check_contract_patch",
    "check_contract_transition",
    "check_members_remittable",
    "check_remittance_transition",
    "clamp_markup_pct",
    "cost_basis",
    "evaluate_product_eligibility",
    "is_product_eligible",
    "margin",
    "margin_pct",
    "matching_variants",
    "next_contract_status",
    "price_addon",
    "product_meets_constraints",
    "quote",
    "require_cost_basis",
    "require_variant",
    "resolve_variant",
    "retail",
    "select_addons",
    "select_primary_variant",
    "transition",
    "transition_batch",
    "variant_fits_vehicle",
    "variant_meets_constraints",
]
