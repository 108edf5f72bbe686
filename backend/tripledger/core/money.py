"""
Fixed-point money arithmetic.

Amounts are held as an integer count of minor units (cents). Decimal strings,
``Decimal`` and ``int`` are accepted on the way in; binary floats are refused
so that no rounding error can enter the ledger.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from functools import total_ordering
from typing import Iterable, List, Sequence, Union

MINOR_UNITS = 100
CENT = Decimal("0.01")

# Where divide() places leftover cents
REMAINDER_FIRST = "first"
REMAINDER_LAST = "last"

MoneyLike = Union["Money", Decimal, int, str]


@total_ordering
class Money:
    """Immutable currency amount in minor units."""

    __slots__ = ("_cents",)

    def __init__(self, value: MoneyLike = 0):
        if isinstance(value, Money):
            cents = value.cents
        elif isinstance(value, bool):
            raise TypeError("Money cannot be built from a bool")
        elif isinstance(value, float):
            raise TypeError("Money cannot be built from a float; pass a decimal string")
        elif isinstance(value, int):
            cents = value * MINOR_UNITS
        elif isinstance(value, (Decimal, str)):
            cents = self._parse(value)
        else:
            raise TypeError(f"Unsupported money value: {value!r}")
        object.__setattr__(self, "_cents", cents)

    @staticmethod
    def _parse(value) -> int:
        try:
            amount = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation:
            raise ValueError(f"Invalid money amount: {value!r}") from None
        if not amount.is_finite():
            raise ValueError(f"Invalid money amount: {value!r}")
        if amount != amount.quantize(CENT):
            raise ValueError(f"Money amount has more than two decimal places: {value!r}")
        return int(amount.quantize(CENT) * MINOR_UNITS)

    @classmethod
    def from_cents(cls, cents: int) -> "Money":
        money = cls.__new__(cls)
        object.__setattr__(money, "_cents", int(cents))
        return money

    @classmethod
    def zero(cls) -> "Money":
        return cls.from_cents(0)

    @classmethod
    def total(cls, amounts: Iterable["Money"]) -> "Money":
        """Sum of an iterable of Money, zero when empty."""
        return cls.from_cents(sum(m.cents for m in amounts))

    def __setattr__(self, name, value):
        raise AttributeError("Money is immutable")

    @property
    def cents(self) -> int:
        return self._cents

    def to_decimal(self) -> Decimal:
        return (Decimal(self._cents) / MINOR_UNITS).quantize(CENT)

    # Arithmetic

    def add(self, other: "Money") -> "Money":
        return Money.from_cents(self._cents + _coerce(other).cents)

    def subtract(self, other: "Money") -> "Money":
        return Money.from_cents(self._cents - _coerce(other).cents)

    def multiply(self, scalar: Union[Decimal, int, str]) -> "Money":
        """Multiply by a decimal scalar, rounding half-up to the cent."""
        if isinstance(scalar, float):
            raise TypeError("Money cannot be multiplied by a float")
        product = Decimal(self._cents) * Decimal(scalar)
        return Money.from_cents(int(product.quantize(Decimal(1), rounding=ROUND_HALF_UP)))

    def divide(self, n: int, remainder_policy: str = REMAINDER_FIRST) -> List["Money"]:
        """
        Split into ``n`` parts that sum exactly to this amount.

        The remainder cents go one each to the first parts (``REMAINDER_FIRST``)
        or to the last parts (``REMAINDER_LAST``), so callers must order the
        recipients deterministically before zipping them with the result.
        """
        if n <= 0:
            raise ValueError("Cannot divide money into fewer than one part")
        if remainder_policy not in (REMAINDER_FIRST, REMAINDER_LAST):
            raise ValueError(f"Unknown remainder policy: {remainder_policy!r}")
        base, remainder = divmod(abs(self._cents), n)
        sign = -1 if self._cents < 0 else 1
        parts = [base + (1 if i < remainder else 0) for i in range(n)]
        if remainder_policy == REMAINDER_LAST:
            parts.reverse()
        return [Money.from_cents(sign * p) for p in parts]

    def allocate(self, weights: Sequence[Union[Decimal, int, str]]) -> List["Money"]:
        """
        Split proportionally to ``weights``.

        Each part is floored to the cent; leftover cents go one each to the
        first parts, like ``divide``.
        """
        if not weights:
            raise ValueError("Cannot allocate money over no weights")
        ratios = [Decimal(w) for w in weights]
        if any(r < 0 for r in ratios):
            raise ValueError("Allocation weights must not be negative")
        weight_sum = sum(ratios)
        if weight_sum <= 0:
            raise ValueError("Allocation weights must sum to a positive value")
        magnitude = abs(self._cents)
        parts = [int(Decimal(magnitude) * r / weight_sum) for r in ratios]
        remainder = magnitude - sum(parts)
        for i in range(remainder):
            parts[i % len(parts)] += 1
        sign = -1 if self._cents < 0 else 1
        return [Money.from_cents(sign * p) for p in parts]

    def abs(self) -> "Money":
        return Money.from_cents(abs(self._cents))

    def is_zero(self) -> bool:
        return self._cents == 0

    def is_positive(self) -> bool:
        return self._cents > 0

    def is_negative(self) -> bool:
        return self._cents < 0

    def compare(self, other: "Money") -> int:
        other_cents = _coerce(other).cents
        return (self._cents > other_cents) - (self._cents < other_cents)

    __add__ = add
    __sub__ = subtract

    def __radd__(self, other):
        # lets sum() start from 0
        if other == 0:
            return self
        return _coerce(other).add(self)

    def __neg__(self) -> "Money":
        return Money.from_cents(-self._cents)

    def __eq__(self, other) -> bool:
        if isinstance(other, Money):
            return self._cents == other._cents
        if isinstance(other, (int, Decimal, str)) and not isinstance(other, bool):
            try:
                return self._cents == Money(other).cents
            except (TypeError, ValueError):
                return False
        return NotImplemented

    def __lt__(self, other) -> bool:
        return self._cents < _coerce(other).cents

    def __hash__(self) -> int:
        return hash(self._cents)

    def __str__(self) -> str:
        return str(self.to_decimal())

    def __repr__(self) -> str:
        return f"Money('{self}')"


def _coerce(value: MoneyLike) -> Money:
    return value if isinstance(value, Money) else Money(value)
