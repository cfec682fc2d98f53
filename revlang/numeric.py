"""Fixed-width integer domains.

Slots hold integers of one fixed width. Leaving the representable range is
always an error: wrap-around would let forward and backward runs agree only
by coincidence of width.
"""

from __future__ import annotations

from dataclasses import dataclass

from revlang.errors import Rule, raise_runtime


SIGNED_TYPE_NAMES: dict[str, int] = {
    "i8": 8, "i16": 16, "i32": 32, "i64": 64, "isize": 64,
    "int8": 8, "int16": 16, "int32": 32, "int64": 64,
}

UNSIGNED_TYPE_NAMES: dict[str, int] = {
    "u8": 8, "u16": 16, "u32": 32, "u64": 64, "usize": 64,
    "uint8": 8, "uint16": 16, "uint32": 32, "uint64": 64,
}


@dataclass(frozen=True)
class IntDomain:
    bits: int = 64
    signed: bool = True

    def __post_init__(self) -> None:
        if self.bits <= 0:
            raise ValueError(f"Integer width must be positive, got {self.bits}")

    @classmethod
    def from_name(cls, name: str) -> "IntDomain":
        if name in SIGNED_TYPE_NAMES:
            return cls(SIGNED_TYPE_NAMES[name], True)
        if name in UNSIGNED_TYPE_NAMES:
            return cls(UNSIGNED_TYPE_NAMES[name], False)
        raise ValueError(
            f"Unknown integer type '{name}'. "
            f"Known: {sorted(SIGNED_TYPE_NAMES) + sorted(UNSIGNED_TYPE_NAMES)}"
        )

    @property
    def name(self) -> str:
        return f"{'i' if self.signed else 'u'}{self.bits}"

    @property
    def min_value(self) -> int:
        return -(1 << (self.bits - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        return (1 << (self.bits - 1)) - 1 if self.signed else (1 << self.bits) - 1

    def contains(self, value: int) -> bool:
        return self.min_value <= value <= self.max_value

    def check(self, value: int) -> int:
        """Return ``value`` unchanged, or raise ArithmeticOverflow."""
        if not self.contains(value):
            raise_runtime(
                Rule.ARITHMETIC_OVERFLOW,
                f"Value {value} is outside the {self.name} domain "
                f"[{self.min_value}, {self.max_value}]",
                value=value,
                domain=self.name,
            )
        return value

    def __str__(self) -> str:
        return self.name


DEFAULT_DOMAIN = IntDomain(64, True)
