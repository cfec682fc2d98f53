"""revlang AST node definitions.

A program is a list of reversible procedures. Procedure bodies contain only
reversible statements: compound assignment with ``+=``/``-=``/``^=``,
reversible conditionals, calls/uncalls, local/delocal pairs, reversible
loops, swaps and nested blocks. Expressions are read-only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from revlang.errors import SourceLocation


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

@dataclass
class Expr:
    location: Optional[SourceLocation] = field(default=None, compare=False)


@dataclass
class IntLiteral(Expr):
    value: int = 0


@dataclass
class BoolLiteral(Expr):
    value: bool = False


@dataclass
class Identifier(Expr):
    """Reads a scalar binding, or names a whole array when passed to a call."""
    name: str = ""


@dataclass
class IndexExpr(Expr):
    """One element of an array binding:  arr[i + 1]"""
    name: str = ""
    index: Expr = field(default_factory=Expr)


@dataclass
class BinaryOp(Expr):
    op: str = ""
    left: Expr = field(default_factory=Expr)
    right: Expr = field(default_factory=Expr)


@dataclass
class UnaryOp(Expr):
    op: str = ""
    operand: Expr = field(default_factory=Expr)


@dataclass
class FunctionCall(Expr):
    """Call of a pure host function inside an expression."""
    name: str = ""
    args: list[Expr] = field(default_factory=list)


@dataclass
class UpdateExpr(Expr):
    """A mutation in expression position. Never legal; kept so the
    validator can report it instead of the parser silently dropping it."""
    op: str = ""
    target: Expr = field(default_factory=Expr)
    value: Expr = field(default_factory=Expr)


VarRef = Union[Identifier, IndexExpr]


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

@dataclass
class Statement:
    location: Optional[SourceLocation] = field(default=None, compare=False)


@dataclass
class AssignStmt(Statement):
    """target op= value, with op one of += -= ^="""
    target: VarRef = field(default_factory=Identifier)
    op: str = "+="
    value: Expr = field(default_factory=Expr)


@dataclass
class IfStmt(Statement):
    guard: Expr = field(default_factory=Expr)
    then_body: list[Statement] = field(default_factory=list)
    else_body: list[Statement] = field(default_factory=list)
    assertion: Expr = field(default_factory=Expr)


@dataclass
class CallStmt(Statement):
    callee: str = ""
    args: list[VarRef] = field(default_factory=list)
    uncall: bool = False


@dataclass
class LocalStmt(Statement):
    name: str = ""
    value: Expr = field(default_factory=Expr)


@dataclass
class DelocalStmt(Statement):
    name: str = ""
    value: Expr = field(default_factory=Expr)


@dataclass
class LoopStmt(Statement):
    """from entry do do_body loop loop_body until exit"""
    entry: Expr = field(default_factory=Expr)
    do_body: list[Statement] = field(default_factory=list)
    loop_body: list[Statement] = field(default_factory=list)
    exit: Expr = field(default_factory=Expr)


@dataclass
class SwapStmt(Statement):
    left: VarRef = field(default_factory=Identifier)
    right: VarRef = field(default_factory=Identifier)


@dataclass
class BlockStmt(Statement):
    body: list[Statement] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Top level
# ---------------------------------------------------------------------------

@dataclass
class Parameter:
    name: str
    location: Optional[SourceLocation] = field(default=None, compare=False)


@dataclass
class ProcedureDef:
    name: str
    params: list[Parameter] = field(default_factory=list)
    body: list[Statement] = field(default_factory=list)
    location: Optional[SourceLocation] = field(default=None, compare=False)

    @property
    def param_names(self) -> list[str]:
        return [p.name for p in self.params]


@dataclass
class Program:
    procedures: list[ProcedureDef] = field(default_factory=list)
    filename: str = "<stdin>"

    def get(self, name: str) -> ProcedureDef:
        for proc in self.procedures:
            if proc.name == name:
                return proc
        raise KeyError(
            f"Unknown procedure '{name}'. "
            f"Defined: {[p.name for p in self.procedures]}"
        )


def procedure(name: str, params: list[str], body: list[Statement]) -> ProcedureDef:
    """Build a ProcedureDef from plain parameter names."""
    return ProcedureDef(name=name, params=[Parameter(p) for p in params], body=body)


def sub_statements(stmt: Statement) -> list[list[Statement]]:
    """Nested statement lists of a compound statement."""
    if isinstance(stmt, IfStmt):
        return [stmt.then_body, stmt.else_body]
    if isinstance(stmt, LoopStmt):
        return [stmt.do_body, stmt.loop_body]
    if isinstance(stmt, BlockStmt):
        return [stmt.body]
    return []


def iter_names(expr: Expr) -> list[str]:
    """All variable names referenced by an expression, in source order."""
    if isinstance(expr, Identifier):
        return [expr.name]
    if isinstance(expr, IndexExpr):
        return [expr.name] + iter_names(expr.index)
    if isinstance(expr, BinaryOp):
        return iter_names(expr.left) + iter_names(expr.right)
    if isinstance(expr, UnaryOp):
        return iter_names(expr.operand)
    if isinstance(expr, FunctionCall):
        names: list[str] = []
        for arg in expr.args:
            names.extend(iter_names(arg))
        return names
    if isinstance(expr, UpdateExpr):
        return iter_names(expr.target) + iter_names(expr.value)
    return []


def contains_subterm(expr: Expr, term: Expr) -> bool:
    """True if ``term`` occurs (structurally) inside ``expr``."""
    if expr == term:
        return True
    if isinstance(expr, IndexExpr):
        return contains_subterm(expr.index, term)
    if isinstance(expr, BinaryOp):
        return contains_subterm(expr.left, term) or contains_subterm(expr.right, term)
    if isinstance(expr, UnaryOp):
        return contains_subterm(expr.operand, term)
    if isinstance(expr, FunctionCall):
        return any(contains_subterm(a, term) for a in expr.args)
    if isinstance(expr, UpdateExpr):
        return contains_subterm(expr.target, term) or contains_subterm(expr.value, term)
    return False
