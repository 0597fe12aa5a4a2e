"""
Confidence Value Object

Single unification rule for confidence values that arrive as fractions,
percentages or strings:

- a float in [0, 1] is a fraction; percent = round(x * 100)
- a number above 1 is already a percentage; percent = round(x)
- an integer is always a percentage
- a string is parsed (integer literal -> int, otherwise float) and the
  same rule applies

Rounding is half-up. Everything that crosses a storage or display boundary
goes through ``Confidence.coerce``.
"""
from __future__ import annotations

import math
import numbers
import re
from dataclasses import dataclass
from typing import Any

from skinalyze.utils import ValidationError

_INT_LITERAL = re.compile(r"^[+-]?\d+$")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class Confidence:
    """Canonical confidence: fraction in [0, 1] plus integer percent in [0, 100]."""
    fraction: float
    percent: int

    @classmethod
    def coerce(cls, value: Any, field: str = "confidence") -> "Confidence":
        """
        Build a Confidence from any accepted encoding.

        Raises:
            ValidationError: negative, above 100, non-finite, boolean,
                missing or unparsable values
        """
        if isinstance(value, Confidence):
            return value
        if value is None or isinstance(value, bool):
            raise ValidationError(f"Invalid confidence value: {value!r}", field=field)

        if isinstance(value, str):
            text = value.strip().rstrip("%").strip()
            if _INT_LITERAL.match(text):
                return cls._from_percent_int(int(text), field)
            try:
                number = float(text)
            except ValueError:
                raise ValidationError(
                    f"Unparsable confidence string: {value!r}", field=field
                ) from None
            return cls._from_number(number, field)

        if isinstance(value, numbers.Integral):
            return cls._from_percent_int(int(value), field)
        if isinstance(value, numbers.Real):
            return cls._from_number(float(value), field)

        raise ValidationError(
            f"Unsupported confidence type: {type(value).__name__}", field=field
        )

    @classmethod
    def _from_percent_int(cls, value: int, field: str) -> "Confidence":
        if not 0 <= value <= 100:
            raise ValidationError(
                f"Confidence percentage out of range [0, 100]: {value}", field=field
            )
        return cls(fraction=value / 100.0, percent=value)

    @classmethod
    def _from_number(cls, value: float, field: str) -> "Confidence":
        if not math.isfinite(value) or value < 0:
            raise ValidationError(f"Invalid confidence value: {value}", field=field)
        if value <= 1.0:
            return cls(fraction=value, percent=_round_half_up(value * 100))
        if value <= 100.0:
            return cls(fraction=value / 100.0, percent=_round_half_up(value))
        raise ValidationError(
            f"Confidence percentage out of range [0, 100]: {value}", field=field
        )


def normalize_percent(value: Any) -> int:
    """Integer percentage for any accepted confidence encoding."""
    return Confidence.coerce(value).percent
