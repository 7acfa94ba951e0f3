"""SQLAlchemy ORM models. Importing this package registers every table."""

from warranty_kernel.models.audit_event import AuditEventModel
from warranty_kernel.models.catalog import PricingVariantModel, ProductAddonModel, ProductModel
from warranty_kernel.models.contract import ContractModel
from warranty_kernel.models.markup import DealerMarkupModel
from warranty_kernel.models.remittance import RemittanceBatchModel

__all__ = [
    "AuditEventModel",
    "ContractModel",
    "DealerMarkupModel",
    "PricingVariantModel",
    "ProductAddonModel",
    "ProductModel",
    "RemittanceBatchModel",
]
