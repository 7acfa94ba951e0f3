"""
Warranty Kernel

Eligibility, tiered pricing and contract lifecycle for vehicle warranty
products:
- Published catalog matched against decoded vehicles
- Deterministic pricing-variant resolution and dealer markup
- Strictly linear contract lifecycle with attribution stamps
- Atomic remittance batches and an append-only audit trail
"""

__version__ = "0.1.0"
