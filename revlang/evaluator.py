"""Pure expression evaluation.

The engine treats expression evaluation as an injected strategy: anything
implementing the ``Evaluator`` protocol can replace ``ExpressionEvaluator``.
Evaluators never write; when given a ``reads`` set they record every slot
they read, which is what the dynamic alias check compares against.
"""

from __future__ import annotations

from typing import Callable, Iterable, Mapping, Optional, Protocol, Union

from revlang.ast_nodes import (
    Expr, IntLiteral, BoolLiteral, Identifier, IndexExpr,
    BinaryOp, UnaryOp, FunctionCall, UpdateExpr,
)
from revlang.environment import Environment, SlotHandle
from revlang.errors import Rule, raise_runtime

Value = Union[int, bool]


class Evaluator(Protocol):
    def evaluate(self, expr: Expr, env: Environment,
                 reads: Optional[set[SlotHandle]] = None) -> Value: ...

    def is_pure_function(self, name: str) -> bool: ...


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _trunc_rem(a: int, b: int) -> int:
    return a - b * _trunc_div(a, b)


PURE_FUNCTIONS: dict[str, Callable[..., int]] = {
    "abs": abs,
    "min": min,
    "max": max,
}


_ARITH: dict[str, Callable[[int, int], Value]] = {
    "+": lambda l, r: l + r,
    "-": lambda l, r: l - r,
    "*": lambda l, r: l * r,
    "&": lambda l, r: l & r,
    "|": lambda l, r: l | r,
    "^": lambda l, r: l ^ r,
    "==": lambda l, r: l == r,
    "!=": lambda l, r: l != r,
    "<": lambda l, r: l < r,
    "<=": lambda l, r: l <= r,
    ">": lambda l, r: l > r,
    ">=": lambda l, r: l >= r,
}


def as_int(value: Value) -> int:
    return int(value)


def truthy(value: Value) -> bool:
    return value != 0


class ExpressionEvaluator:
    """Default evaluator over literals, variables, operators and pure host
    functions. Division and remainder truncate toward zero."""

    def __init__(self, functions: Optional[Mapping[str, Callable[..., int]]] = None,
                 builtins: Optional[Iterable[str]] = None):
        names = PURE_FUNCTIONS if builtins is None else builtins
        self.functions: dict[str, Callable[..., int]] = {n: PURE_FUNCTIONS[n] for n in names}
        if functions:
            self.functions.update(functions)

    def is_pure_function(self, name: str) -> bool:
        return name in self.functions

    def evaluate(self, expr: Expr, env: Environment,
                 reads: Optional[set[SlotHandle]] = None) -> Value:
        if isinstance(expr, IntLiteral):
            return expr.value

        if isinstance(expr, BoolLiteral):
            return expr.value

        if isinstance(expr, Identifier):
            slot = env.slot(expr.name)
            if reads is not None:
                reads.add(slot)
            return env.read(slot)

        if isinstance(expr, IndexExpr):
            slot = self.element(expr, env, reads)
            if reads is not None:
                reads.add(slot)
            return env.read(slot)

        if isinstance(expr, BinaryOp):
            return self._binary(expr, env, reads)

        if isinstance(expr, UnaryOp):
            operand = self.evaluate(expr.operand, env, reads)
            if expr.op == "-":
                return -as_int(operand)
            if expr.op == "!":
                return not truthy(operand)
            if expr.op == "~":
                return ~as_int(operand)
            raise ValueError(f"Unknown unary operator '{expr.op}'")

        if isinstance(expr, FunctionCall):
            fn = self.functions.get(expr.name)
            if fn is None:
                raise ValueError(f"'{expr.name}' is not a pure function")
            args = [as_int(self.evaluate(a, env, reads)) for a in expr.args]
            return fn(*args)

        if isinstance(expr, UpdateExpr):
            raise ValueError("Mutation inside an expression cannot be evaluated")

        raise TypeError(f"Cannot evaluate {type(expr).__name__}")

    def element(self, ref: IndexExpr, env: Environment,
                reads: Optional[set[SlotHandle]] = None) -> SlotHandle:
        """Resolve ``name[index]`` to its slot; index reads are recorded."""
        index = as_int(self.evaluate(ref.index, env, reads))
        return env.element(ref.name, index)

    def _binary(self, expr: BinaryOp, env: Environment,
                reads: Optional[set[SlotHandle]]) -> Value:
        op = expr.op
        left = self.evaluate(expr.left, env, reads)

        # Short-circuit forms read only what they evaluate.
        if op == "&&":
            return truthy(left) and truthy(self.evaluate(expr.right, env, reads))
        if op == "||":
            return truthy(left) or truthy(self.evaluate(expr.right, env, reads))

        right = self.evaluate(expr.right, env, reads)
        l, r = as_int(left), as_int(right)

        if op in ("/", "%"):
            if r == 0:
                raise_runtime(Rule.DIVISION_BY_ZERO, f"Division by zero in '{op}'",
                              procedure=env.procedure)
            return _trunc_div(l, r) if op == "/" else _trunc_rem(l, r)
        if op in ("<<", ">>"):
            bits = env.domain.bits
            if not 0 <= r < bits:
                raise_runtime(
                    Rule.INVALID_SHIFT,
                    f"Shift count {r} is outside [0, {bits}) in '{op}'",
                    procedure=env.procedure,
                    count=r,
                )
            return l << r if op == "<<" else l >> r

        fn = _ARITH.get(op)
        if fn is None:
            raise ValueError(f"Unknown binary operator '{op}'")
        return fn(l, r)
