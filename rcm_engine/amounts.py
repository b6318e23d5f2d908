"""
Fixed-point money helpers and the per-head tax amount type.

Every monetary value in the engine is a ``Decimal``. Rounding is always
ROUND_HALF_UP and happens at computation boundaries only:

- ``round_money``  -> paise (0.01), used for taxable base and tax amounts
- ``round_rupee``  -> whole rupee, used for interest and penalties
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterator

from rcm_engine.errors import ValidationError

ZERO = Decimal("0")
HEADS = ("igst", "cgst", "sgst")


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Coerce ints, strings and Decimals to Decimal. Floats go through str()."""
    if isinstance(value, Decimal):
        result = value
    elif value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required", field=field_name)
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(
                f"{field_name} is not a number: {value!r}", field=field_name
            ) from None
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite", field=field_name)
    return result


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def round_rupee(amount: Decimal) -> Decimal:
    return amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def tax_on(base: Decimal, rate_percent: Decimal) -> Decimal:
    """Tax at ``rate_percent`` on ``base``, rounded to paise."""
    return round_money(base * rate_percent / Decimal("100"))


@dataclass(frozen=True)
class TaxHeads:
    """Amounts split across the IGST, CGST and SGST heads."""

    igst: Decimal = ZERO
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO

    def __post_init__(self) -> None:
        for head in HEADS:
            object.__setattr__(self, head, to_decimal(getattr(self, head), head))

    @classmethod
    def from_dict(cls, data: dict) -> "TaxHeads":
        return cls(
            data.get("igst") or 0,
            data.get("cgst") or 0,
            data.get("sgst") or 0,
        )

    @property
    def total(self) -> Decimal:
        return self.igst + self.cgst + self.sgst

    def head(self, name: str) -> Decimal:
        if name not in HEADS:
            raise ValidationError(f"Unknown tax head: {name}", field="head")
        return getattr(self, name)

    def items(self) -> Iterator[tuple[str, Decimal]]:
        for head in HEADS:
            yield head, getattr(self, head)

    def as_dict(self) -> dict[str, Decimal]:
        return dict(self.items())

    def is_zero(self) -> bool:
        return all(v == ZERO for _, v in self.items())

    def has_negative(self) -> bool:
        return any(v < ZERO for _, v in self.items())

    def positive_part(self) -> "TaxHeads":
        return TaxHeads(*(max(v, ZERO) for _, v in self.items()))

    def negative_part(self) -> "TaxHeads":
        """Magnitudes of the negative heads, as non-negative amounts."""
        return TaxHeads(*(max(-v, ZERO) for _, v in self.items()))

    def __add__(self, other: "TaxHeads") -> "TaxHeads":
        return TaxHeads(
            self.igst + other.igst, self.cgst + other.cgst, self.sgst + other.sgst
        )

    def __sub__(self, other: "TaxHeads") -> "TaxHeads":
        return TaxHeads(
            self.igst - other.igst, self.cgst - other.cgst, self.sgst - other.sgst
        )

    def __neg__(self) -> "TaxHeads":
        return TaxHeads(-self.igst, -self.cgst, -self.sgst)


NO_TAX = TaxHeads()
