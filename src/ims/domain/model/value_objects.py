"""Value Objects shared across the domain.

Value Objects are immutable and compared by value, not identity.
They encapsulate validation so invalid values can never exist.
"""

from __future__ import annotations

from dataclasses import dataclass

from ims.domain.exceptions import ValidationError


@dataclass(frozen=True)
class Quantity:
    """A positive integer quantity of stock units.

    Enforces the invariant that you cannot reserve zero or negative units.
    """

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValidationError(
                f"Quantity must be an integer, got {type(self.value).__name__}"
            )
        if self.value <= 0:
            raise ValidationError("Quantity must be positive")

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Identifier:
    """A non-blank identifier (item id, SKU, reservation id)."""

    value: str
    label: str = "Identifier"

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValidationError(f"{self.label} must be a non-empty string")

    def __str__(self) -> str:
        return self.value
