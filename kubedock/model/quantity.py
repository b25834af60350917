"""Parsing and canonical formatting of resource quantities such as 500m or 2Gi."""

from __future__ import annotations

import enum
import math
import re
from dataclasses import dataclass
from fractions import Fraction

_DECIMAL_SUFFIXES = {
    "n": -9,
    "u": -6,
    "m": -3,
    "": 0,
    "k": 3,
    "M": 6,
    "G": 9,
    "T": 12,
    "P": 15,
    "E": 18,
}
_BINARY_SUFFIXES = {"Ki": 10, "Mi": 20, "Gi": 30, "Ti": 40, "Pi": 50, "Ei": 60}
_DECIMAL_BY_EXP = {exp: suffix for suffix, exp in _DECIMAL_SUFFIXES.items()}
_BINARY_BY_EXP = {exp: suffix for suffix, exp in _BINARY_SUFFIXES.items()}

_MAX_DECIMAL_EXP = 18
_MAX_BINARY_EXP = 60
_NANO = 10**9

_PATTERN = re.compile(
    r"(?P<sign>[+-]?)"
    r"(?P<number>[0-9]+(?:\.[0-9]*)?|\.[0-9]+)"
    r"(?P<suffix>[eE][+-]?[0-9]+|[a-zA-Z]*)"
)


class QuantityError(ValueError):
    """Raised when a quantity string cannot be parsed."""


class QuantityFormat(enum.Enum):
    """How a quantity is written when turned back into a string."""

    DECIMAL_SI = "DecimalSI"
    BINARY_SI = "BinarySI"
    DECIMAL_EXPONENT = "DecimalExponent"


@dataclass(frozen=True)
class Quantity:
    """An exact amount, rounded up to nano precision, with its preferred format."""

    value: Fraction
    format: QuantityFormat = QuantityFormat.DECIMAL_SI

    def __str__(self) -> str:
        fmt = self.format
        if fmt is QuantityFormat.BINARY_SI and (
            -1024 < self.value < 1024 or self.value.denominator != 1
        ):
            fmt = QuantityFormat.DECIMAL_SI

        if fmt is QuantityFormat.BINARY_SI:
            amount = int(self.value)
            exp = 0
            while amount % 1024 == 0 and exp < _MAX_BINARY_EXP:
                amount //= 1024
                exp += 10
            return f"{amount}{_BINARY_BY_EXP.get(exp, '')}"

        amount = int(self.value * _NANO)
        if amount == 0:
            return "0"
        exp = -9
        while amount % 10 == 0:
            amount //= 10
            exp += 1
        while exp % 3:
            amount *= 10
            exp -= 1
        while exp > _MAX_DECIMAL_EXP:
            amount *= 1000
            exp -= 3

        if fmt is QuantityFormat.DECIMAL_EXPONENT:
            return f"{amount}e{exp}" if exp else str(amount)
        return f"{amount}{_DECIMAL_BY_EXP[exp]}"


def parse_quantity(text: str) -> Quantity:
    """Parse a quantity string; raise QuantityError if it is malformed."""
    match = _PATTERN.fullmatch(text)
    if match is None:
        raise QuantityError(f"quantities must match the regular expression: {text!r}")

    number = Fraction(match["number"])
    if match["sign"] == "-":
        number = -number

    suffix = match["suffix"]
    if suffix in _DECIMAL_SUFFIXES:
        fmt = QuantityFormat.DECIMAL_SI
        value = number * Fraction(10) ** _DECIMAL_SUFFIXES[suffix]
    elif suffix in _BINARY_SUFFIXES:
        fmt = QuantityFormat.BINARY_SI
        value = number * 2 ** _BINARY_SUFFIXES[suffix]
    elif suffix[:1] in ("e", "E") and len(suffix) > 1:
        fmt = QuantityFormat.DECIMAL_EXPONENT
        value = number * Fraction(10) ** int(suffix[1:])
    else:
        raise QuantityError(f"unable to parse quantity's suffix: {text!r}")

    scaled = value * _NANO
    if scaled.denominator != 1:
        value = Fraction(math.ceil(scaled), _NANO)
    return Quantity(value, fmt)