"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Provides the small value types every other domain module builds on:
    ``TermLimit`` (a tagged term value that keeps "unlimited" and "unset"
    apart), ``MileageBand`` and the numeric coercion helpers used at
    input boundaries.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValidationError on construction with negative or non-integral
      limits, or an inverted mileage band.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from warranty_kernel.exceptions import ValidationError


def finite_number(value: Any) -> Decimal | None:
    """Return ``value`` as a Decimal if it is a finite real number, else None.

    Booleans and strings are not numbers here.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if math.isfinite(value) else None
    return None


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def integral_or_none(value: Any) -> int | None:
    """Coerce a finite number to the nearest integer (cents, km, months), else None."""
    number = finite_number(value)
    return None if number is None else round_half_up(number)


def require_cents(field: str, value: Any, *, allow_negative: bool = False) -> int:
    """Validate a required cents amount."""
    cents = integral_or_none(value)
    if cents is None:
        raise ValidationError(field, f"must be a finite number, got {value!r}")
    if cents < 0 and not allow_negative:
        raise ValidationError(field, "must not be negative")
    return cents


def optional_cents(field: str, value: Any) -> int | None:
    """Validate an optional cents amount (None passes through)."""
    if value is None:
        return None
    return require_cents(field, value)


def parse_decimal(field: str, value: Any) -> Decimal:
    """Parse a Decimal from numbers or numeric strings."""
    if isinstance(value, bool):
        raise ValidationError(field, "must be numeric")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(field, f"not a number: {value!r}") from None
    if not number.is_finite():
        raise ValidationError(field, "must be finite")
    return number


class TermKind(str, Enum):
    """Tag of a ``TermLimit``."""

    UNSET = "unset"          # Not provided
    UNLIMITED = "unlimited"  # Explicitly no limit
    BOUNDED = "bounded"      # A concrete number of months/km


@dataclass(frozen=True, slots=True)
class TermLimit:
    """
    A coverage term in months or kilometres.

    Contract:
        ``kind`` tags the value; ``value`` is set only for ``BOUNDED``.

    Guarantees:
        - BOUNDED values are non-negative integers.
        - UNLIMITED satisfies any minimum; UNSET satisfies only an absent
          minimum.
    """

    kind: TermKind
    value: int | None = None

    def __post_init__(self) -> None:
        if self.kind is TermKind.BOUNDED:
            if isinstance(self.value, bool) or not isinstance(self.value, int):
                raise ValidationError("term", f"bounded term needs an integer, got {self.value!r}")
            if self.value < 0:
                raise ValidationError("term", "must not be negative")
        elif self.value is not None:
            raise ValidationError("term", f"{self.kind.value} term cannot carry a value")

    @classmethod
    def unset(cls) -> TermLimit:
        return cls(TermKind.UNSET)

    @classmethod
    def unlimited(cls) -> TermLimit:
        return cls(TermKind.UNLIMITED)

    @classmethod
    def of(cls, value: int) -> TermLimit:
        return cls(TermKind.BOUNDED, value)

    @classmethod
    def from_nullable(cls, value: Any, *, null_means: TermKind = TermKind.UNLIMITED) -> TermLimit:
        """Build from a stored nullable number.

        Pricing rows store "unlimited" as NULL; product rows store "not
        provided" as NULL. ``null_means`` picks which.
        """
        if isinstance(value, TermLimit):
            return value
        if value is None:
            return cls(null_means)
        number = integral_or_none(value)
        if number is None:
            raise ValidationError("term", f"not a finite number: {value!r}")
        return cls.of(number)

    @property
    def is_unlimited(self) -> bool:
        return self.kind is TermKind.UNLIMITED

    @property
    def is_set(self) -> bool:
        return self.kind is not TermKind.UNSET

    def to_nullable(self) -> int | None:
        return self.value

    def satisfies_minimum(self, minimum: int | None) -> bool:
        if minimum is None:
            return True
        if self.kind is TermKind.UNLIMITED:
            return True
        if self.kind is TermKind.UNSET:
            return False
        return self.value >= minimum

    def __str__(self) -> str:
        if self.kind is TermKind.BOUNDED:
            return str(self.value)
        return self.kind.value


@dataclass(frozen=True, slots=True)
class MileageBand:
    """Inclusive vehicle-mileage range a pricing row applies to."""

    min_km: int = 0
    max_km: int | None = None

    def __post_init__(self) -> None:
        if self.min_km < 0:
            raise ValidationError("min_km", "must not be negative")
        if self.max_km is not None:
            if self.max_km < 0:
                raise ValidationError("max_km", "must not be negative")
            if self.max_km < self.min_km:
                raise ValidationError("max_km", f"{self.max_km} is below min_km {self.min_km}")

    @classmethod
    def from_nullable(cls, min_km: Any = None, max_km: Any = None) -> MileageBand:
        low = integral_or_none(min_km)
        high = integral_or_none(max_km)
        return cls(min_km=low if low is not None else 0, max_km=high)

    @property
    def is_bounded(self) -> bool:
        return self.max_km is not None

    def contains(self, mileage_km: Decimal | int) -> bool:
        if mileage_km < self.min_km:
            return False
        if self.max_km is not None and mileage_km > self.max_km:
            return False
        return True
