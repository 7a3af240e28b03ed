"""Elements of the BLS12-381 scalar field."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

MODULUS = int(
    "52435875175126190479447740508185965837690552500527637822603658699938581184513"
)
REPR_SIZE = 32
_U64_LIMIT = 1 << 64


class ScalarTooLargeError(ValueError):
    """Raised when a scalar does not fit the requested integer type."""

    def __init__(self) -> None:
        super().__init__("scalar bigger than u64")


Operand = Union["ZkScalar", int]


def _value_of(other: Operand) -> int:
    if isinstance(other, ZkScalar):
        return other.value
    if isinstance(other, int) and not isinstance(other, bool):
        return other
    raise TypeError(f"cannot combine a field element with {other!r}")


@dataclass(frozen=True, order=False)
class ZkScalar:
    """An integer modulo the scalar-field modulus."""

    value: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"a field element is built from an int, not {self.value!r}")
        object.__setattr__(self, "value", self.value % MODULUS)

    @classmethod
    def from_bytes_le(cls, data: bytes) -> "ZkScalar":
        """Read a little-endian number of any length, reduced by the modulus."""
        return cls(int.from_bytes(bytes(data), "little"))

    def to_bytes_le(self) -> bytes:
        """The canonical 32-byte little-endian representation."""
        return self.value.to_bytes(REPR_SIZE, "little")

    def to_u64(self) -> int:
        """The value as an unsigned 64-bit integer."""
        if self.value >= _U64_LIMIT:
            raise ScalarTooLargeError()
        return self.value

    def is_zero(self) -> bool:
        """Whether this is the additive identity."""
        return self.value == 0

    def __int__(self) -> int:
        return self.value

    def __add__(self, other: Operand) -> "ZkScalar":
        return ZkScalar(self.value + _value_of(other))

    __radd__ = __add__

    def __sub__(self, other: Operand) -> "ZkScalar":
        return ZkScalar(self.value - _value_of(other))

    def __rsub__(self, other: Operand) -> "ZkScalar":
        return ZkScalar(_value_of(other) - self.value)

    def __mul__(self, other: Operand) -> "ZkScalar":
        return ZkScalar(self.value * _value_of(other))

    __rmul__ = __mul__

    def __neg__(self) -> "ZkScalar":
        return ZkScalar(-self.value)

    def __pow__(self, exponent: int) -> "ZkScalar":
        return ZkScalar(pow(self.value, exponent, MODULUS))

    def square(self) -> "ZkScalar":
        """This element multiplied by itself."""
        return self * self

    def __repr__(self) -> str:
        return f"ZkScalar({self.value})"

    def __str__(self) -> str:
        return str(self.value)