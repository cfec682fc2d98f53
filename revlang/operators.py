"""The reversible operator table.

Only three mutating operators exist. Each has a hard-coded inverse, which
keeps invertibility a closed, checkable property.
"""

from __future__ import annotations

from enum import Enum


class AssignOp(Enum):
    ADD = "+="
    SUB = "-="
    XOR = "^="

    @property
    def inverse(self) -> "AssignOp":
        return INVERSE_OPS[self]

    @property
    def symbol(self) -> str:
        return self.value

    def apply(self, current: int, operand: int) -> int:
        if self is AssignOp.ADD:
            return current + operand
        if self is AssignOp.SUB:
            return current - operand
        return current ^ operand

    @classmethod
    def is_legal(cls, symbol: str) -> bool:
        return symbol in _BY_SYMBOL

    @classmethod
    def from_symbol(cls, symbol: str) -> "AssignOp":
        try:
            return _BY_SYMBOL[symbol]
        except KeyError:
            raise ValueError(f"'{symbol}' is not a reversible operator") from None


INVERSE_OPS: dict[AssignOp, AssignOp] = {
    AssignOp.ADD: AssignOp.SUB,
    AssignOp.SUB: AssignOp.ADD,
    AssignOp.XOR: AssignOp.XOR,
}

_BY_SYMBOL: dict[str, AssignOp] = {op.value: op for op in AssignOp}


# Read-only operators allowed inside expressions.
BINARY_OPS = frozenset({
    "+", "-", "*", "/", "%",
    "&", "|", "^", "<<", ">>",
    "==", "!=", "<", "<=", ">", ">=",
    "&&", "||",
})

UNARY_OPS = frozenset({"-", "!", "~"})
