"""Program inversion.

Builds, for a procedure P, the procedure P⁻¹ whose forward run is P's
backward run. Every statement has a syntactic inverse, so inversion is a
plain AST rewrite: bodies are reversed and each statement is replaced by
its inverse.
"""

from __future__ import annotations

from typing import Optional

from revlang.ast_nodes import (
    Statement, ProcedureDef,
    AssignStmt, IfStmt, CallStmt, LocalStmt, DelocalStmt, LoopStmt,
    SwapStmt, BlockStmt,
)
from revlang.operators import AssignOp


def invert_body(body: list[Statement], renames: Optional[dict[str, str]] = None) -> list[Statement]:
    return [invert_statement(s, renames) for s in reversed(body)]


def invert_statement(stmt: Statement, renames: Optional[dict[str, str]] = None) -> Statement:
    """Inverse of one statement. Calls to a procedure in ``renames`` are
    redirected to the renamed (already inverted) procedure and keep their
    direction; every other call flips between call and uncall."""
    renames = renames or {}
    if isinstance(stmt, AssignStmt):
        op = AssignOp.from_symbol(stmt.op).inverse.symbol
        return AssignStmt(target=stmt.target, op=op, value=stmt.value, location=stmt.location)

    if isinstance(stmt, IfStmt):
        # The assertion becomes the guard and vice versa.
        return IfStmt(
            guard=stmt.assertion,
            then_body=invert_body(stmt.then_body, renames),
            else_body=invert_body(stmt.else_body, renames),
            assertion=stmt.guard,
            location=stmt.location,
        )

    if isinstance(stmt, CallStmt):
        if stmt.callee in renames:
            return CallStmt(callee=renames[stmt.callee], args=list(stmt.args),
                            uncall=stmt.uncall, location=stmt.location)
        return CallStmt(callee=stmt.callee, args=list(stmt.args),
                        uncall=not stmt.uncall, location=stmt.location)

    if isinstance(stmt, LocalStmt):
        return DelocalStmt(name=stmt.name, value=stmt.value, location=stmt.location)

    if isinstance(stmt, DelocalStmt):
        return LocalStmt(name=stmt.name, value=stmt.value, location=stmt.location)

    if isinstance(stmt, LoopStmt):
        return LoopStmt(
            entry=stmt.exit,
            do_body=invert_body(stmt.do_body, renames),
            loop_body=invert_body(stmt.loop_body, renames),
            exit=stmt.entry,
            location=stmt.location,
        )

    if isinstance(stmt, SwapStmt):
        return SwapStmt(left=stmt.left, right=stmt.right, location=stmt.location)

    if isinstance(stmt, BlockStmt):
        return BlockStmt(body=invert_body(stmt.body, renames), location=stmt.location)

    raise TypeError(f"Cannot invert {type(stmt).__name__}")


def invert_procedure(proc: ProcedureDef, name: Optional[str] = None) -> ProcedureDef:
    """Return the inverse of ``proc``, named ``name`` (default ``<proc>_inv``).

    Recursive calls go to the inverse itself; calls to other procedures are
    flipped between call and uncall and still target the originals.
    """
    new_name = name or f"{proc.name}_inv"
    return ProcedureDef(
        name=new_name,
        params=list(proc.params),
        body=invert_body(proc.body, {proc.name: new_name}),
        location=proc.location,
    )
