"""Statement engine: the dual forward/backward interpreter.

Every statement has a forward and a backward meaning and the engine executes
whichever ``direction`` asks for. Blocks run in body order forward and in
reverse order backward. Backward execution never consults a trace; it only
uses the current environment and the static inverse of each statement.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional, Sequence

from revlang.ast_nodes import (
    Statement, Expr, ProcedureDef, Identifier, IndexExpr,
    AssignStmt, IfStmt, CallStmt, LocalStmt, DelocalStmt, LoopStmt,
    SwapStmt, BlockStmt,
)
from revlang.config import RevConfig
from revlang.environment import Binding, Environment, SlotHandle
from revlang.errors import ExecutionError, Rule, raise_runtime
from revlang.evaluator import Evaluator, ExpressionEvaluator, as_int, truthy
from revlang.formatters import describe, format_expr
from revlang.operators import AssignOp
from revlang.validator import (
    check_assignment_alias, check_distinct, check_index_independence,
)

logger = logging.getLogger(__name__)


class Direction(Enum):
    FORWARD = "forward"
    BACKWARD = "backward"

    @property
    def inverse(self) -> "Direction":
        return Direction.BACKWARD if self is Direction.FORWARD else Direction.FORWARD


class Branch(Enum):
    THEN = "then"
    ELSE = "else"

    @classmethod
    def of(cls, condition: bool) -> "Branch":
        return cls.THEN if condition else cls.ELSE


ProcedureLookup = Callable[[str], ProcedureDef]


class StatementEngine:
    """Executes statements over an Environment in either direction.

    ``lookup`` resolves callee names to procedure definitions; the engine
    keeps no state of its own between statements.
    """

    def __init__(self, lookup: ProcedureLookup, evaluator: Optional[Evaluator] = None,
                 config: Optional[RevConfig] = None):
        self.lookup = lookup
        self.config = config or RevConfig()
        self.evaluator: Evaluator = evaluator or ExpressionEvaluator(
            builtins=self.config.pure_functions)
        self.domain = self.config.domain

    # ── Procedures ───────────────────────────────────────────────────────

    def run_procedure(self, proc: ProcedureDef, args: Sequence[Binding],
                      direction: Direction, depth: int = 0) -> None:
        """Run ``proc`` with its parameters bound to ``args``."""
        if depth > self.config.max_call_depth:
            raise_runtime(
                Rule.CALL_DEPTH_EXCEEDED,
                f"Call depth {depth} exceeds the limit of {self.config.max_call_depth}",
                procedure=proc.name,
                depth=depth,
            )
        if len(args) != len(proc.params):
            raise TypeError(
                f"'{proc.name}' takes {len(proc.params)} argument(s), {len(args)} given"
            )

        env = Environment(proc.name, self.domain, depth)
        try:
            for param, binding in zip(proc.params, args):
                env.attach(param.name, binding)
            logger.debug("%s%s %s", "  " * depth, direction.value, proc.name)
            self.execute_block(proc.body, env, direction)
        finally:
            env.release()

    # ── Statements ───────────────────────────────────────────────────────

    def execute_block(self, body: Sequence[Statement], env: Environment,
                      direction: Direction) -> None:
        stmts = body if direction is Direction.FORWARD else reversed(body)
        for stmt in stmts:
            self.execute(stmt, env, direction)

    def execute(self, stmt: Statement, env: Environment, direction: Direction) -> None:
        if logger.isEnabledFor(logging.DEBUG) and not isinstance(stmt, BlockStmt):
            logger.debug("%s%s: %s", "  " * env.depth, env.procedure, describe(stmt))
        try:
            self._dispatch(stmt, env, direction)
        except ExecutionError as exc:
            exc.annotate(env.procedure, describe(stmt), stmt.location)
            raise

    def _dispatch(self, stmt: Statement, env: Environment, direction: Direction) -> None:
        if isinstance(stmt, AssignStmt):
            self._assign(stmt, env, direction)
        elif isinstance(stmt, IfStmt):
            self._if(stmt, env, direction)
        elif isinstance(stmt, CallStmt):
            self._call(stmt, env, direction)
        elif isinstance(stmt, LocalStmt):
            if direction is Direction.FORWARD:
                self._introduce(stmt.name, stmt.value, env)
            else:
                self._remove(stmt.name, stmt.value, env)
        elif isinstance(stmt, DelocalStmt):
            if direction is Direction.FORWARD:
                self._remove(stmt.name, stmt.value, env)
            else:
                self._introduce(stmt.name, stmt.value, env)
        elif isinstance(stmt, LoopStmt):
            self._loop(stmt, env, direction)
        elif isinstance(stmt, SwapStmt):
            self._swap(stmt, env)
        elif isinstance(stmt, BlockStmt):
            self.execute_block(stmt.body, env, direction)
        else:
            raise TypeError(f"Unknown statement type {type(stmt).__name__}")

    def _assign(self, stmt: AssignStmt, env: Environment, direction: Direction) -> None:
        op = AssignOp.from_symbol(stmt.op)
        if direction is Direction.BACKWARD:
            op = op.inverse
        reads: set[SlotHandle] = set()
        target = self._resolve(stmt.target, env, reads)
        value = as_int(self.evaluator.evaluate(stmt.value, env, reads))
        check_assignment_alias(target, reads, stmt.target.name, procedure=env.procedure)
        env.write(target, op.apply(env.read(target), value))

    def _if(self, stmt: IfStmt, env: Environment, direction: Direction) -> None:
        if direction is Direction.FORWARD:
            branch = Branch.of(self._test(stmt.guard, env))
            self.execute_block(self._branch_body(stmt, branch), env, direction)
            if Branch.of(self._test(stmt.assertion, env)) is not branch:
                raise_runtime(
                    Rule.ASSERTION_MISMATCH,
                    f"Assertion '{format_expr(stmt.assertion)}' does not confirm "
                    f"the {branch.value} branch",
                    procedure=env.procedure,
                    branch=branch.value,
                )
            return

        branch = Branch.of(self._test(stmt.assertion, env))
        self.execute_block(self._branch_body(stmt, branch), env, direction)
        if self.config.check_guard_on_backward:
            if Branch.of(self._test(stmt.guard, env)) is not branch:
                raise_runtime(
                    Rule.ASSERTION_MISMATCH,
                    f"Guard '{format_expr(stmt.guard)}' does not select "
                    f"the {branch.value} branch replayed backward",
                    procedure=env.procedure,
                    branch=branch.value,
                )

    @staticmethod
    def _branch_body(stmt: IfStmt, branch: Branch) -> list[Statement]:
        return stmt.then_body if branch is Branch.THEN else stmt.else_body

    def _call(self, stmt: CallStmt, env: Environment, direction: Direction) -> None:
        callee = self.lookup(stmt.callee)
        if stmt.uncall:
            direction = direction.inverse
        bindings: list[tuple[str, Binding]] = []
        index_reads: list[tuple[str, set[SlotHandle]]] = []
        for arg in stmt.args:
            reads: set[SlotHandle] = set()
            label = format_expr(arg)
            bindings.append((label, self._bind_argument(arg, env, reads)))
            index_reads.append((label, reads))
        check_distinct(bindings, procedure=env.procedure)
        check_index_independence(bindings, index_reads, procedure=env.procedure)
        self.run_procedure(callee, [b for _, b in bindings], direction, env.depth + 1)

    def _introduce(self, name: str, value: Expr, env: Environment) -> None:
        env.bind(name, as_int(self.evaluator.evaluate(value, env)))

    def _remove(self, name: str, value: Expr, env: Environment) -> None:
        expected = as_int(self.evaluator.evaluate(value, env))
        actual = env.read(env.slot(name))
        if actual != expected:
            raise_runtime(
                Rule.DELOCAL_MISMATCH,
                f"'{name}' is {actual} when released, expected {expected}",
                procedure=env.procedure,
                variable=name,
                actual=actual,
                expected=expected,
            )
        env.unbind(name)

    def _loop(self, stmt: LoopStmt, env: Environment, direction: Direction) -> None:
        # Backward execution swaps the roles of the two conditions.
        if direction is Direction.FORWARD:
            first, last = stmt.entry, stmt.exit
        else:
            first, last = stmt.exit, stmt.entry

        if not self._test(first, env):
            raise_runtime(
                Rule.LOOP_ASSERTION_FAILURE,
                f"'{format_expr(first)}' must hold when the loop is entered",
                procedure=env.procedure,
            )
        self.execute_block(stmt.do_body, env, direction)
        iterations = 0
        while not self._test(last, env):
            self.execute_block(stmt.loop_body, env, direction)
            if self._test(first, env):
                raise_runtime(
                    Rule.LOOP_ASSERTION_FAILURE,
                    f"'{format_expr(first)}' holds again after iteration {iterations + 1}",
                    procedure=env.procedure,
                    iteration=iterations + 1,
                )
            self.execute_block(stmt.do_body, env, direction)
            iterations += 1

    def _swap(self, stmt: SwapStmt, env: Environment) -> None:
        left_reads: set[SlotHandle] = set()
        right_reads: set[SlotHandle] = set()
        left = self._resolve(stmt.left, env, left_reads)
        right = self._resolve(stmt.right, env, right_reads)
        labels = format_expr(stmt.left), format_expr(stmt.right)
        operands = [(labels[0], left), (labels[1], right)]
        check_distinct(operands, procedure=env.procedure)
        check_index_independence(
            operands, [(labels[0], left_reads), (labels[1], right_reads)],
            procedure=env.procedure,
        )
        lv, rv = env.read(left), env.read(right)
        env.write(left, rv)
        env.write(right, lv)

    # ── References ───────────────────────────────────────────────────────

    def _test(self, expr: Expr, env: Environment) -> bool:
        return truthy(self.evaluator.evaluate(expr, env))

    def _resolve(self, ref: Expr, env: Environment, reads: set[SlotHandle]) -> SlotHandle:
        """Slot named by a scalar or element reference; index reads are recorded."""
        if isinstance(ref, IndexExpr):
            index = as_int(self.evaluator.evaluate(ref.index, env, reads))
            return env.element(ref.name, index)
        if isinstance(ref, Identifier):
            return env.slot(ref.name)
        raise TypeError(f"{type(ref).__name__} does not name a slot")

    def _bind_argument(self, ref: Expr, env: Environment, reads: set[SlotHandle]) -> Binding:
        if isinstance(ref, Identifier):
            return env.lookup(ref.name)
        return self._resolve(ref, env, reads)
