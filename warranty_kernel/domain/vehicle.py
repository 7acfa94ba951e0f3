"""
Vehicle attributes -- the decoded vehicle snapshot a resolution runs against.

Ephemeral: not persisted by the kernel itself. A contract copies the
fields once the dealer decides on them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from warranty_kernel.domain.values import finite_number
from warranty_kernel.exceptions import ValidationError

_VIN_STRIP = re.compile(r"[^A-Z0-9]")
_NORMALIZE = re.compile(r"[^a-z0-9]+")

MIN_VIN_LENGTH = 10


def clean_vin(raw: str) -> str:
    """Uppercase a VIN and drop everything but letters and digits."""
    vin = _VIN_STRIP.sub("", (raw or "").strip().upper())
    if not vin:
        raise ValidationError("vin", "VIN is required")
    if len(vin) < MIN_VIN_LENGTH:
        raise ValidationError("vin", "VIN is too short")
    return vin


def normalize_label(value: str | None) -> str:
    """Case-fold and collapse whitespace/punctuation runs to single spaces."""
    return _NORMALIZE.sub(" ", (value or "").lower()).strip()


def parse_model_year(value: Any) -> int | None:
    """Model year as an int, or None when unknown or non-numeric."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text.isdigit():
        return None
    return int(text)


@dataclass(frozen=True)
class VehicleAttributes:
    """
    A decoded vehicle plus dealer-supplied mileage and class.

    ``mileage_km`` stays as supplied (int, float or Decimal) so that the
    resolver can reject unknown, non-finite or negative readings itself.
    """

    vin: str = ""
    model_year: int | None = None
    make: str | None = None
    model: str | None = None
    trim: str | None = None
    body_class: str | None = None
    engine: str | None = None
    transmission: str | None = None
    mileage_km: int | float | Decimal | None = None
    vehicle_class: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "model_year", parse_model_year(self.model_year))

    @property
    def valid_mileage_km(self) -> Decimal | None:
        """Mileage when known, finite and non-negative; otherwise None."""
        mileage = finite_number(self.mileage_km)
        if mileage is None or mileage < 0:
            return None
        return mileage

    def with_mileage(self, mileage_km: Any, vehicle_class: str | None = None) -> VehicleAttributes:
        return replace(
            self,
            mileage_km=mileage_km,
            vehicle_class=vehicle_class if vehicle_class is not None else self.vehicle_class,
        )
