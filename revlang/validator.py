"""Legality validator.

Static pass: walks a procedure once, at registration, and collects every
construct that would break invertibility (illegal operators, self-aliased
assignments, calls to non-reversible routines, unbalanced locals).

Dynamic pass: cheap handle comparisons the engine runs before every
mutation, because aliasing through arrays and parameters only shows up once
concrete slots are known.
"""

from __future__ import annotations

from typing import Callable, Iterable, Mapping, Optional, Sequence

from revlang.ast_nodes import (
    Statement, Expr, AssignStmt, IfStmt, CallStmt, LocalStmt, DelocalStmt,
    LoopStmt, SwapStmt, BlockStmt, ProcedureDef,
    Identifier, IndexExpr, BinaryOp, UnaryOp, FunctionCall, UpdateExpr,
    contains_subterm, iter_names,
)
from revlang.environment import Binding, SlotHandle, binding_slots
from revlang.errors import (
    RevError, Rule, SourceLocation, ValidationError,
    validation_error, illegal_operator, self_aliased_assignment,
    non_reversible_call, raise_runtime,
)
from revlang.formatters import describe
from revlang.operators import AssignOp, BINARY_OPS, UNARY_OPS


def _is_ref(expr: Expr) -> bool:
    return isinstance(expr, (Identifier, IndexExpr))


class LegalityValidator:
    """Static reversibility checks for one procedure body."""

    def __init__(self, procedures: Mapping[str, int],
                 is_pure_function: Optional[Callable[[str], bool]] = None):
        # name -> parameter count, for every procedure a call may target
        self.procedures = dict(procedures)
        self.is_pure_function = is_pure_function or (lambda name: False)
        self.errors: list[RevError] = []
        self.scopes: list[set[str]] = []
        self._proc_name = ""
        self._stmt: Optional[Statement] = None

    # -------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------

    def _where(self, location: Optional[SourceLocation] = None) -> dict:
        stmt = self._stmt
        return {
            "procedure": self._proc_name,
            "statement": describe(stmt) if stmt is not None else None,
            "location": location or (stmt.location if stmt is not None else None),
        }

    def _report(self, error: RevError) -> None:
        self.errors.append(error)

    # -------------------------------------------------------------------
    # Scopes
    # -------------------------------------------------------------------

    def _visible(self, name: str) -> bool:
        return any(name in scope for scope in self.scopes)

    def _push_scope(self) -> None:
        self.scopes.append(set())

    def _pop_scope(self) -> None:
        self.scopes.pop()

    # -------------------------------------------------------------------
    # Walk AST
    # -------------------------------------------------------------------

    def check_procedure(self, proc: ProcedureDef) -> list[RevError]:
        self.errors = []
        self.scopes = []
        self._proc_name = proc.name
        self._stmt = None

        self._push_scope()
        for param in proc.params:
            if param.name in self.scopes[-1]:
                self._report(validation_error(
                    Rule.DUPLICATE_BINDING,
                    f"Parameter '{param.name}' is declared twice",
                    **self._where(param.location),
                    variable=param.name,
                ))
            self.scopes[-1].add(param.name)

        self._check_block(proc.body, new_scope=False)
        self._pop_scope()
        return self.errors

    def _check_block(self, body: list[Statement], new_scope: bool = True) -> None:
        if new_scope:
            self._push_scope()
        pending: list[LocalStmt] = []
        for stmt in body:
            self._stmt = stmt
            if isinstance(stmt, LocalStmt):
                self._check_local(stmt)
                pending.append(stmt)
            elif isinstance(stmt, DelocalStmt):
                match = next((l for l in pending if l.name == stmt.name), None)
                self._check_delocal(stmt, match is not None)
                if match is not None:
                    pending.remove(match)
            else:
                self._check_statement(stmt)
        for local in pending:
            self._stmt = local
            self._report(validation_error(
                Rule.UNBALANCED_LOCAL,
                f"Local '{local.name}' is never delocalised in its block",
                **self._where(),
                variable=local.name,
            ))
        if new_scope:
            self._pop_scope()

    def _check_statement(self, stmt: Statement) -> None:
        if isinstance(stmt, AssignStmt):
            self._check_assign(stmt)

        elif isinstance(stmt, SwapStmt):
            for ref in (stmt.left, stmt.right):
                self._check_ref(ref)
            if stmt.left == stmt.right:
                self._report(self_aliased_assignment(
                    self._ref_name(stmt.left), **self._where()))

        elif isinstance(stmt, IfStmt):
            self._check_expr(stmt.guard)
            self._check_expr(stmt.assertion)
            self._check_block(stmt.then_body)
            self._stmt = stmt
            self._check_block(stmt.else_body)

        elif isinstance(stmt, CallStmt):
            self._check_call(stmt)

        elif isinstance(stmt, LoopStmt):
            self._check_expr(stmt.entry)
            self._check_expr(stmt.exit)
            self._check_block(stmt.do_body)
            self._stmt = stmt
            self._check_block(stmt.loop_body)

        elif isinstance(stmt, BlockStmt):
            self._check_block(stmt.body)

        else:
            raise TypeError(f"Unknown statement type {type(stmt).__name__}")

    def _check_assign(self, stmt: AssignStmt) -> None:
        if not AssignOp.is_legal(stmt.op):
            self._report(illegal_operator(stmt.op, **self._where()))
        if not _is_ref(stmt.target):
            self._report(validation_error(
                Rule.ILLEGAL_OPERATOR,
                "Only variables and array elements can be updated",
                **self._where(),
            ))
            return
        self._check_ref(stmt.target)
        self._check_expr(stmt.value)
        if contains_subterm(stmt.value, stmt.target):
            self._report(self_aliased_assignment(
                self._ref_name(stmt.target), **self._where()))
        elif isinstance(stmt.target, Identifier) and stmt.target.name in iter_names(stmt.value):
            self._report(self_aliased_assignment(stmt.target.name, **self._where()))

    def _check_call(self, stmt: CallStmt) -> None:
        if stmt.callee not in self.procedures:
            reason = ("host functions cannot mutate their arguments"
                      if self.is_pure_function(stmt.callee)
                      else "it is not a registered reversible procedure")
            self._report(non_reversible_call(stmt.callee, reason, **self._where()))
        elif self.procedures[stmt.callee] != len(stmt.args):
            self._report(validation_error(
                Rule.ARITY_MISMATCH,
                f"'{stmt.callee}' takes {self.procedures[stmt.callee]} "
                f"argument(s), {len(stmt.args)} given",
                **self._where(),
                callee=stmt.callee,
            ))
        for arg in stmt.args:
            if not _is_ref(arg):
                self._report(non_reversible_call(
                    stmt.callee, "arguments must be variable references",
                    **self._where()))
                continue
            self._check_ref(arg)

    def _check_local(self, stmt: LocalStmt) -> None:
        self._check_expr(stmt.value)
        if self._visible(stmt.name):
            self._report(validation_error(
                Rule.DUPLICATE_BINDING,
                f"Local '{stmt.name}' shadows an existing binding",
                **self._where(),
                variable=stmt.name,
            ))
        self.scopes[-1].add(stmt.name)

    def _check_delocal(self, stmt: DelocalStmt, balanced: bool) -> None:
        self._check_expr(stmt.value)
        if not balanced:
            self._report(validation_error(
                Rule.UNBALANCED_LOCAL,
                f"Delocal of '{stmt.name}', which is not a local of this block",
                **self._where(),
                variable=stmt.name,
            ))
            return
        if stmt.name in iter_names(stmt.value):
            self._report(self_aliased_assignment(stmt.name, **self._where()))
        self.scopes[-1].discard(stmt.name)

    def _check_ref(self, ref: Expr) -> None:
        if isinstance(ref, IndexExpr):
            self._check_expr(ref.index)

    def _check_expr(self, expr: Expr) -> None:
        if isinstance(expr, BinaryOp):
            if expr.op not in BINARY_OPS:
                self._report(illegal_operator(expr.op, **self._where(expr.location)))
            self._check_expr(expr.left)
            self._check_expr(expr.right)

        elif isinstance(expr, UnaryOp):
            if expr.op not in UNARY_OPS:
                self._report(illegal_operator(expr.op, **self._where(expr.location)))
            self._check_expr(expr.operand)

        elif isinstance(expr, IndexExpr):
            self._check_expr(expr.index)

        elif isinstance(expr, FunctionCall):
            if not self.is_pure_function(expr.name):
                reason = ("reversible procedures cannot be used as values"
                          if expr.name in self.procedures
                          else "it is not a known pure function")
                self._report(non_reversible_call(
                    expr.name, reason, **self._where(expr.location)))
            for arg in expr.args:
                self._check_expr(arg)

        elif isinstance(expr, UpdateExpr):
            self._report(validation_error(
                Rule.ILLEGAL_OPERATOR,
                f"Mutation '{expr.op}' inside an expression",
                **self._where(expr.location),
                operator=expr.op,
            ))
            self._check_expr(expr.target)
            self._check_expr(expr.value)

    @staticmethod
    def _ref_name(ref: Expr) -> str:
        if isinstance(ref, (Identifier, IndexExpr)):
            return ref.name
        return "<expr>"


def validate_procedure(proc: ProcedureDef, procedures: Mapping[str, int],
                       is_pure_function: Optional[Callable[[str], bool]] = None) -> list[RevError]:
    """Run the static pass; ``procedures`` must include ``proc`` itself
    when it is allowed to recurse."""
    return LegalityValidator(procedures, is_pure_function).check_procedure(proc)


def raise_if_invalid(errors: list[RevError]) -> None:
    if errors:
        raise ValidationError.from_errors(errors)


# ---------------------------------------------------------------------------
# Dynamic pass
# ---------------------------------------------------------------------------

def check_assignment_alias(target: SlotHandle, reads: Iterable[SlotHandle],
                           name: str, **where) -> None:
    """The updated slot must not be among the slots read to compute the
    update (or to locate the target)."""
    if target in set(reads):
        raise_runtime(
            Rule.ALIAS_VIOLATION,
            f"'{name}' is read while computing its own update",
            variable=name,
            **where,
        )


def check_distinct(bindings: Sequence[tuple[str, Binding]], **where) -> None:
    """Arguments of one call (or operands of one swap) must not overlap."""
    seen: dict[SlotHandle, str] = {}
    for label, binding in bindings:
        for slot in binding_slots(binding):
            if slot in seen:
                raise_runtime(
                    Rule.ALIAS_VIOLATION,
                    f"'{seen[slot]}' and '{label}' denote the same storage",
                    variables=[seen[slot], label],
                    **where,
                )
            seen[slot] = label


def check_index_independence(bindings: Sequence[tuple[str, Binding]],
                             index_reads: Sequence[tuple[str, Iterable[SlotHandle]]],
                             **where) -> None:
    """A slot read to locate an element operand must not itself be an
    operand of the same call or swap."""
    operands: dict[SlotHandle, str] = {}
    for label, binding in bindings:
        for slot in binding_slots(binding):
            operands.setdefault(slot, label)
    for label, reads in index_reads:
        for slot in reads:
            if slot in operands:
                raise_runtime(
                    Rule.ALIAS_VIOLATION,
                    f"'{operands[slot]}' locates '{label}' and is modified "
                    f"by the same statement",
                    variables=[operands[slot], label],
                    **where,
                )
