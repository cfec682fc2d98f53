"""Source rendering for revlang ASTs and errors.

``format_procedure`` emits the concrete syntax accepted by
``revlang.compiler.parser``, so ``parse(format_procedure(p))`` rebuilds ``p``.
``describe`` gives the one-line form used in error records.
"""

from __future__ import annotations

import os
import sys
from typing import Iterable

from revlang.ast_nodes import (
    Expr, IntLiteral, BoolLiteral, Identifier, IndexExpr,
    BinaryOp, UnaryOp, FunctionCall, UpdateExpr,
    Statement, AssignStmt, IfStmt, CallStmt, LocalStmt, DelocalStmt,
    LoopStmt, SwapStmt, BlockStmt, ProcedureDef, Program,
)
from revlang.errors import RevError, ErrorKind


# Binding strength of binary operators; higher binds tighter.
PRECEDENCE: dict[str, int] = {
    "||": 1,
    "&&": 2,
    "==": 3, "!=": 3, "<": 3, "<=": 3, ">": 3, ">=": 3,
    "|": 4,
    "^": 5,
    "&": 6,
    "<<": 7, ">>": 7,
    "+": 8, "-": 8,
    "*": 9, "/": 9, "%": 9,
}

_UNARY_PRECEDENCE = 10
INDENT = "    "


# ── Expressions ──────────────────────────────────────────────────────────

def format_expr(expr: Expr, parent_prec: int = 0, right: bool = False) -> str:
    if isinstance(expr, IntLiteral):
        text = str(expr.value)
        if expr.value < 0 and parent_prec >= _UNARY_PRECEDENCE:
            return f"({text})"
        return text

    if isinstance(expr, BoolLiteral):
        return "true" if expr.value else "false"

    if isinstance(expr, Identifier):
        return expr.name

    if isinstance(expr, IndexExpr):
        return f"{expr.name}[{format_expr(expr.index)}]"

    if isinstance(expr, BinaryOp):
        prec = PRECEDENCE.get(expr.op, 0)
        text = (f"{format_expr(expr.left, prec)} {expr.op} "
                f"{format_expr(expr.right, prec, right=True)}")
        if prec < parent_prec or (right and prec == parent_prec):
            return f"({text})"
        return text

    if isinstance(expr, UnaryOp):
        if expr.op == "-" and isinstance(expr.operand, IntLiteral):
            # "-5" reads back as a literal
            return f"-({expr.operand.value})"
        return f"{expr.op}{format_expr(expr.operand, _UNARY_PRECEDENCE)}"

    if isinstance(expr, FunctionCall):
        args = ", ".join(format_expr(a) for a in expr.args)
        return f"{expr.name}({args})"

    if isinstance(expr, UpdateExpr):
        return f"({format_expr(expr.target)} {expr.op} {format_expr(expr.value)})"

    return "<?>"


# ── Statements ───────────────────────────────────────────────────────────

def _block(body: list[Statement], depth: int) -> list[str]:
    lines: list[str] = []
    for stmt in body:
        lines.extend(format_statement_lines(stmt, depth + 1))
    return lines


def format_statement_lines(stmt: Statement, depth: int = 0) -> list[str]:
    pad = INDENT * depth

    if isinstance(stmt, IfStmt):
        lines = [f"{pad}if {format_expr(stmt.guard)} {{"]
        lines += _block(stmt.then_body, depth)
        if stmt.else_body:
            lines.append(f"{pad}}} else {{")
            lines += _block(stmt.else_body, depth)
        lines.append(f"{pad}}} assert {format_expr(stmt.assertion)}")
        return lines

    if isinstance(stmt, LoopStmt):
        header = f"{pad}from {format_expr(stmt.entry)}"
        lines: list[str] = []
        if stmt.do_body:
            lines.append(f"{header} do {{")
            lines += _block(stmt.do_body, depth)
            header = f"{pad}}}"
        if stmt.loop_body:
            lines.append(f"{header} loop {{")
            lines += _block(stmt.loop_body, depth)
            header = f"{pad}}}"
        lines.append(f"{header} until {format_expr(stmt.exit)}")
        return lines

    if isinstance(stmt, BlockStmt):
        return [f"{pad}{{"] + _block(stmt.body, depth) + [f"{pad}}}"]

    return [pad + describe(stmt)]


def describe(stmt: Statement) -> str:
    """One-line rendering of a statement; compound bodies are elided."""
    if isinstance(stmt, AssignStmt):
        return f"{format_expr(stmt.target)} {stmt.op} {format_expr(stmt.value)}"
    if isinstance(stmt, SwapStmt):
        return f"{format_expr(stmt.left)} <=> {format_expr(stmt.right)}"
    if isinstance(stmt, CallStmt):
        keyword = "uncall" if stmt.uncall else "call"
        args = ", ".join(format_expr(a) for a in stmt.args)
        return f"{keyword} {stmt.callee}({args})"
    if isinstance(stmt, LocalStmt):
        return f"local {stmt.name} = {format_expr(stmt.value)}"
    if isinstance(stmt, DelocalStmt):
        return f"delocal {stmt.name} = {format_expr(stmt.value)}"
    if isinstance(stmt, IfStmt):
        else_part = " else { ... }" if stmt.else_body else ""
        return (f"if {format_expr(stmt.guard)} {{ ... }}{else_part} "
                f"assert {format_expr(stmt.assertion)}")
    if isinstance(stmt, LoopStmt):
        return f"from {format_expr(stmt.entry)} ... until {format_expr(stmt.exit)}"
    if isinstance(stmt, BlockStmt):
        return "{ ... }"
    return f"<{type(stmt).__name__}>"


def format_procedure(proc: ProcedureDef) -> str:
    params = ", ".join(proc.param_names)
    lines = [f"procedure {proc.name}({params}) {{"]
    lines += _block(proc.body, 0)
    lines.append("}")
    return "\n".join(lines) + "\n"


def format_program(program: Program | Iterable[ProcedureDef]) -> str:
    procs = program.procedures if isinstance(program, Program) else list(program)
    return "\n".join(format_procedure(p) for p in procs)


# ── Error rendering ──────────────────────────────────────────────────────

_NO_COLOR = os.environ.get("NO_COLOR") is not None or not sys.stdout.isatty()


def _c(code: str, text: str) -> str:
    if _NO_COLOR:
        return text
    return f"\033[{code}m{text}\033[0m"


def red(t: str) -> str:
    return _c("31", t)


def yellow(t: str) -> str:
    return _c("33", t)


def bold(t: str) -> str:
    return _c("1", t)


def dim(t: str) -> str:
    return _c("2", t)


def render_error(error: RevError) -> str:
    """Human-friendly multi-line rendering of one error record."""
    colour = yellow if error.kind == ErrorKind.SYNTAX_ERROR else red
    head = f"{colour(bold(error.rule.value))}: {error.message}"
    lines = [head]
    if error.location:
        lines.append(dim(f"  --> {error.location}"))
    if error.procedure:
        lines.append(f"  in procedure {bold(error.procedure)}")
    if error.statement:
        lines.append(f"  | {error.statement}")
    return "\n".join(lines)
