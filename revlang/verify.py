"""Static verification of reversible-conditional assertions.

Each ``if`` statement is executed symbolically (Z3) from an unconstrained
entry state. Expressions are evaluated over mathematical integers, as the
interpreter does; every slot holds a value of the configured domain and a
write that leaves the domain ends the path, mirroring the runtime overflow
check. For each branch we ask:

  - can the assertion ever confirm the branch?  If the branch can complete
    but ``cond ∧ post(branch) ∧ assertion-matches`` is UNSAT, the assertion
    is provably wrong and registration fails with UnsatisfiableAssertion;
  - can it fail?  If a counterexample exists it is logged as a warning and
    the runtime check stays in charge.

Calls and loops havoc whatever they may modify, and operators without an
exact encoding yield fresh values, which keeps the analysis an
over-approximation: a rejection is always a real defect.

Gated behind ``verify_assertions`` / ``--verify`` for speed.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

import z3

from revlang.ast_nodes import (
    Statement, Expr, ProcedureDef,
    IntLiteral, BoolLiteral, Identifier, IndexExpr, BinaryOp, UnaryOp,
    FunctionCall, UpdateExpr,
    AssignStmt, IfStmt, CallStmt, LocalStmt, DelocalStmt, LoopStmt, SwapStmt,
    BlockStmt, sub_statements,
)
from revlang.errors import RevError, Rule, validation_error
from revlang.formatters import describe, format_expr
from revlang.numeric import DEFAULT_DOMAIN, IntDomain

logger = logging.getLogger(__name__)

SymState = dict[str, Any]


def _array_names(body: list[Statement]) -> set[str]:
    """Names used with an index anywhere in ``body``."""
    names: set[str] = set()

    def visit_expr(expr: Expr) -> None:
        if isinstance(expr, IndexExpr):
            names.add(expr.name)
            visit_expr(expr.index)
        elif isinstance(expr, BinaryOp):
            visit_expr(expr.left)
            visit_expr(expr.right)
        elif isinstance(expr, UnaryOp):
            visit_expr(expr.operand)
        elif isinstance(expr, FunctionCall):
            for a in expr.args:
                visit_expr(a)

    def visit(stmts: list[Statement]) -> None:
        for stmt in stmts:
            if isinstance(stmt, AssignStmt):
                visit_expr(stmt.target)
                visit_expr(stmt.value)
            elif isinstance(stmt, SwapStmt):
                visit_expr(stmt.left)
                visit_expr(stmt.right)
            elif isinstance(stmt, CallStmt):
                for a in stmt.args:
                    visit_expr(a)
            elif isinstance(stmt, (LocalStmt, DelocalStmt)):
                visit_expr(stmt.value)
            elif isinstance(stmt, IfStmt):
                visit_expr(stmt.guard)
                visit_expr(stmt.assertion)
            elif isinstance(stmt, LoopStmt):
                visit_expr(stmt.entry)
                visit_expr(stmt.exit)
            for nested in sub_statements(stmt):
                visit(nested)

    visit(body)
    return names


def _modified_refs(body: list[Statement]) -> list[Expr]:
    """Every reference a block may write to, nested blocks included."""
    refs: list[Expr] = []
    for stmt in body:
        if isinstance(stmt, AssignStmt):
            refs.append(stmt.target)
        elif isinstance(stmt, SwapStmt):
            refs.extend([stmt.left, stmt.right])
        elif isinstance(stmt, CallStmt):
            refs.extend(stmt.args)
        for nested in sub_statements(stmt):
            refs.extend(_modified_refs(nested))
    return refs


class AssertionVerifier:
    """Checks if-assertions of a procedure with the Z3 SMT solver."""

    def __init__(self, domain: IntDomain = DEFAULT_DOMAIN, timeout_ms: int = 5000):
        self.domain = domain
        self.timeout_ms = timeout_ms
        self.errors: list[RevError] = []
        self.warnings: list[str] = []
        self._arrays: set[str] = set()
        self._proc_name = ""
        self._params: SymState = {}
        self._fresh = itertools.count()
        self._pending: list[Any] = []

    def check_procedure(self, proc: ProcedureDef) -> list[RevError]:
        """Check every if-assertion of ``proc``. Returns list of errors."""
        self.errors = []
        self.warnings = []
        self._proc_name = proc.name
        self._arrays = _array_names(proc.body)
        state: SymState = {}
        pc: list[Any] = []
        for name in proc.param_names:
            state[name] = self._fresh_value(name, prefix=name)
            if name not in self._arrays:
                pc.append(self._in_range(state[name]))
        self._params = dict(state)
        try:
            self._exec_block(proc.body, state, pc)
        except z3.Z3Exception as exc:
            logger.warning("%s: assertions not verified, Z3 rejected the encoding: %s",
                           proc.name, exc)
        return self.errors

    # ── Symbolic values ──────────────────────────────────────────────────

    def _fresh_value(self, name: str, prefix: str = "") -> Any:
        label = prefix or f"{name}!{next(self._fresh)}"
        if name in self._arrays:
            return z3.Array(label, z3.IntSort(), z3.IntSort())
        return z3.Int(label)

    def _in_range(self, value: Any) -> Any:
        return z3.And(value >= self.domain.min_value, value <= self.domain.max_value)

    def _int(self, value: Any) -> Any:
        if z3.is_bool(value):
            return z3.If(value, z3.IntVal(1), z3.IntVal(0))
        return value

    def _bool(self, value: Any) -> Any:
        if z3.is_bool(value):
            return value
        return value != 0

    def _lookup(self, name: str, state: SymState) -> Any:
        if name not in state:
            state[name] = self._fresh_value(name)
            if name not in self._arrays:
                self._pending.append(self._in_range(state[name]))
        return state[name]

    # ── Expressions ──────────────────────────────────────────────────────

    def _eval(self, expr: Expr, state: SymState, pc: list[Any]) -> Any:
        """Encode ``expr``; facts every run past this point satisfies go to ``pc``."""
        self._pending = []
        value = self._expr(expr, state)
        pc.extend(self._pending)
        self._pending = []
        return value

    def _expr(self, expr: Expr, state: SymState) -> Any:
        if isinstance(expr, IntLiteral):
            return z3.IntVal(expr.value)
        if isinstance(expr, BoolLiteral):
            return z3.BoolVal(expr.value)
        if isinstance(expr, Identifier):
            return self._lookup(expr.name, state)
        if isinstance(expr, IndexExpr):
            element = z3.Select(self._lookup(expr.name, state),
                                self._int(self._expr(expr.index, state)))
            self._pending.append(self._in_range(element))
            return element
        if isinstance(expr, BinaryOp):
            return self._binary(expr, state)
        if isinstance(expr, UnaryOp):
            operand = self._expr(expr.operand, state)
            if expr.op == "!":
                return z3.Not(self._bool(operand))
            if expr.op == "-":
                return -self._int(operand)
            if expr.op == "~":
                return -self._int(operand) - 1
        if isinstance(expr, FunctionCall):
            args = [self._int(self._expr(a, state)) for a in expr.args]
            if expr.name == "abs" and len(args) == 1:
                return self._abs(args[0])
            if expr.name in ("min", "max") and args:
                result = args[0]
                for a in args[1:]:
                    if expr.name == "min":
                        result = z3.If(a < result, a, result)
                    else:
                        result = z3.If(result < a, a, result)
                return result
        if isinstance(expr, UpdateExpr):
            raise z3.Z3Exception("mutation inside an expression")
        # Unknown function: any value.
        return self._unknown()

    def _unknown(self) -> Any:
        return z3.Int(f"unknown!{next(self._fresh)}")

    @staticmethod
    def _abs(value: Any) -> Any:
        return z3.If(value >= 0, value, -value)

    def _binary(self, expr: BinaryOp, state: SymState) -> Any:
        op = expr.op
        left = self._expr(expr.left, state)
        right = self._expr(expr.right, state)

        if op == "&&":
            return z3.And(self._bool(left), self._bool(right))
        if op == "||":
            return z3.Or(self._bool(left), self._bool(right))
        if op in ("==", "!=") and z3.is_bool(left) and z3.is_bool(right):
            return left == right if op == "==" else left != right

        l, r = self._int(left), self._int(right)
        if op in ("/", "%"):
            # a zero divisor aborts the run
            self._pending.append(r != 0)
            q = self._abs(l) / self._abs(r)
            q = z3.If((l >= 0) == (r >= 0), q, -q)
            return q if op == "/" else l - r * q
        if op in ("<<", ">>"):
            self._pending.append(z3.And(r >= 0, r < self.domain.bits))
            return self._shift(op, l, r)
        if op in ("&", "|", "^"):
            return self._bitwise(op, l, r)

        ops = {
            "+": lambda: l + r,
            "-": lambda: l - r,
            "*": lambda: l * r,
            "==": lambda: l == r,
            "!=": lambda: l != r,
            "<": lambda: l < r,
            "<=": lambda: l <= r,
            ">": lambda: l > r,
            ">=": lambda: l >= r,
        }
        op_fn = ops.get(op)
        if op_fn is None:
            raise z3.Z3Exception(f"unsupported operator '{op}'")
        return op_fn()

    def _shift(self, op: str, l: Any, r: Any) -> Any:
        if not z3.is_int_value(r):
            return self._unknown()
        factor = 1 << r.as_long()
        return l * factor if op == "<<" else l / factor

    def _bitwise(self, op: str, l: Any, r: Any) -> Any:
        """Exact while both operands fit the domain width, unknown otherwise."""
        if z3.is_int_value(l) and z3.is_int_value(r):
            a, b = l.as_long(), r.as_long()
            return z3.IntVal(a & b if op == "&" else a | b if op == "|" else a ^ b)
        bits = self.domain.bits
        lb, rb = z3.Int2BV(l, bits), z3.Int2BV(r, bits)
        combined = lb & rb if op == "&" else lb | rb if op == "|" else lb ^ rb
        exact = z3.BV2Int(combined, is_signed=self.domain.signed)
        return z3.If(z3.And(self._in_range(l), self._in_range(r)), exact, self._unknown())

    # ── Statements ───────────────────────────────────────────────────────

    def _exec_block(self, body: list[Statement], state: SymState, pc: list[Any]) -> None:
        for stmt in body:
            self._exec(stmt, state, pc)

    def _exec(self, stmt: Statement, state: SymState, pc: list[Any]) -> None:
        if isinstance(stmt, AssignStmt):
            value = self._int(self._eval(stmt.value, state, pc))
            current = self._eval(stmt.target, state, pc)
            if stmt.op == "+=":
                updated = current + value
            elif stmt.op == "-=":
                updated = current - value
            else:
                updated = self._bitwise("^", current, value)
            self._write(stmt.target, updated, state, pc)

        elif isinstance(stmt, SwapStmt):
            lv = self._eval(stmt.left, state, pc)
            rv = self._eval(stmt.right, state, pc)
            self._write(stmt.left, rv, state, pc)
            self._write(stmt.right, lv, state, pc)

        elif isinstance(stmt, LocalStmt):
            value = self._int(self._eval(stmt.value, state, pc))
            pc.append(self._in_range(value))
            state[stmt.name] = value

        elif isinstance(stmt, DelocalStmt):
            # Runs past this point only when the delocal value matched.
            current = self._eval(Identifier(name=stmt.name), state, pc)
            pc.append(current == self._int(self._eval(stmt.value, state, pc)))
            del state[stmt.name]

        elif isinstance(stmt, CallStmt):
            for ref in stmt.args:
                self._havoc(ref, state, pc)

        elif isinstance(stmt, LoopStmt):
            for ref in _modified_refs(stmt.do_body + stmt.loop_body):
                if isinstance(ref, IndexExpr):
                    # the index varies across iterations
                    state[ref.name] = self._fresh_value(ref.name)
                else:
                    self._havoc(ref, state, pc)
            pc.append(self._bool(self._eval(stmt.exit, state, pc)))

        elif isinstance(stmt, BlockStmt):
            self._exec_block(stmt.body, state, pc)

        elif isinstance(stmt, IfStmt):
            self._exec_if(stmt, state, pc)

    def _write(self, ref: Expr, value: Any, state: SymState, pc: list[Any]) -> None:
        value = self._int(value)
        # a write outside the domain aborts the run
        pc.append(self._in_range(value))
        if isinstance(ref, IndexExpr):
            arr = self._lookup(ref.name, state)
            index = self._int(self._eval(ref.index, state, pc))
            state[ref.name] = z3.Store(arr, index, value)
        elif isinstance(ref, Identifier):
            state[ref.name] = value

    def _havoc(self, ref: Expr, state: SymState, pc: list[Any]) -> None:
        if isinstance(ref, IndexExpr):
            self._write(ref, z3.Int(f"{ref.name}!{next(self._fresh)}"), state, pc)
        elif isinstance(ref, Identifier):
            state[ref.name] = self._fresh_value(ref.name)
            if ref.name not in self._arrays:
                pc.append(self._in_range(state[ref.name]))

    def _exec_if(self, stmt: IfStmt, state: SymState, pc: list[Any]) -> None:
        guard = self._bool(self._eval(stmt.guard, state, pc))

        then_state, then_pc = dict(state), pc + [guard]
        self._exec_block(stmt.then_body, then_state, then_pc)
        then_assert = self._bool(self._eval(stmt.assertion, then_state, then_pc))
        self._check_branch(stmt, "then", then_pc, then_assert)

        else_state, else_pc = dict(state), pc + [z3.Not(guard)]
        self._exec_block(stmt.else_body, else_state, else_pc)
        else_assert = z3.Not(self._bool(self._eval(stmt.assertion, else_state, else_pc)))
        self._check_branch(stmt, "else", else_pc, else_assert)

        for name in set(then_state) | set(else_state):
            if name in then_state and name in else_state:
                state[name] = z3.If(guard, then_state[name], else_state[name])
            else:
                state.pop(name, None)
        pc.append(z3.Or(z3.And(*then_pc[len(pc):]), z3.And(*else_pc[len(pc):])))

    def _solver(self, constraints: list[Any]) -> z3.Solver:
        solver = z3.Solver()
        solver.set("timeout", self.timeout_ms)
        solver.add(*constraints)
        return solver

    def _check_branch(self, stmt: IfStmt, branch: str, pc: list[Any], confirms: Any) -> None:
        if self._solver(pc).check() != z3.sat:
            return

        if self._solver(pc + [confirms]).check() == z3.unsat:
            self.errors.append(validation_error(
                Rule.UNSATISFIABLE_ASSERTION,
                f"Assertion '{format_expr(stmt.assertion)}' can never confirm "
                f"the {branch} branch",
                procedure=self._proc_name,
                statement=describe(stmt),
                location=stmt.assertion.location or stmt.location,
                branch=branch,
            ))
            return

        solver = self._solver(pc + [z3.Not(confirms)])
        if solver.check() == z3.sat:
            model = solver.model()
            example = {
                name: str(model.evaluate(value, model_completion=True))
                for name, value in self._params.items()
                if name not in self._arrays
            }
            message = (f"{self._proc_name}: assertion '{format_expr(stmt.assertion)}' "
                       f"may not confirm the {branch} branch, e.g. {example}")
            self.warnings.append(message)
            logger.warning(message)
