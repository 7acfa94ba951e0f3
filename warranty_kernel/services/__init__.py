"""Services for the warranty kernel (imperative shell over the engines)."""

from warranty_kernel.services.audit_service import AuditService
from warranty_kernel.services.catalog_service import CatalogService
from warranty_kernel.services.contract_service import ContractService
from warranty_kernel.services.markup_service import MarkupService
from warranty_kernel.services.offer_service import Offer, OfferService, VinDecoder
from warranty_kernel.services.remittance_service import RemittanceService

__all__ = [
    "AuditService",
    "CatalogService",
    "ContractService",
    "MarkupService",
    "Offer",
    "OfferService",
    "RemittanceService",
    "VinDecoder",
]
