"""Procedure registry and dispatcher.

The registry is the public entry point of the interpreter: procedures are
validated once when registered and are immutable afterwards. Invocations run
through ``Invocation`` objects, which own the READY → RUNNING → COMPLETED |
FAILED state machine and poison the stores of a failed run.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping, Optional, Sequence, Union

from revlang.ast_nodes import ProcedureDef, Program
from revlang.config import RevConfig
from revlang.engine import Direction, StatementEngine
from revlang.environment import Binding, Store, binding_slots
from revlang.errors import (
    ExecutionError, Rule, ValidationError, RevError, raise_runtime, validation_error,
)
from revlang.evaluator import Evaluator, ExpressionEvaluator
from revlang.validator import LegalityValidator
from revlang.verify import AssertionVerifier

logger = logging.getLogger(__name__)

ProcedureId = str
ArgValue = Union[int, Sequence[int]]


class InvocationState(Enum):
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Invocation:
    """One run of a registered procedure over caller-owned bindings."""

    def __init__(self, registry: "ProcedureRegistry", proc: ProcedureDef,
                 args: Sequence[Binding], direction: Direction):
        self.registry = registry
        self.procedure = proc
        self.args = list(args)
        self.direction = direction
        self.state = InvocationState.READY
        self.error: Optional[ExecutionError] = None

    def stores(self) -> list[Store]:
        seen: dict[int, Store] = {}
        for binding in self.args:
            for slot in binding_slots(binding):
                seen.setdefault(id(slot.store), slot.store)
        return list(seen.values())

    def run(self) -> None:
        if self.state is not InvocationState.READY:
            raise_runtime(
                Rule.INVOCATION_STATE,
                f"Invocation of '{self.procedure.name}' is {self.state.value}; "
                f"only a ready invocation can run",
                procedure=self.procedure.name,
                state=self.state.value,
            )
        poisoned = [s for s in self.stores() if s.poisoned]
        if poisoned:
            self.state = InvocationState.FAILED
            raise_runtime(
                Rule.INVOCATION_STATE,
                "Arguments live in a store left inconsistent by a failed "
                "invocation; restore a snapshot or clear the poison first",
                procedure=self.procedure.name,
            )

        self.state = InvocationState.RUNNING
        try:
            self.registry.engine.run_procedure(self.procedure, self.args, self.direction)
        except Exception as exc:
            self.state = InvocationState.FAILED
            for store in self.stores():
                store.poisoned = True
            if isinstance(exc, ExecutionError):
                self.error = exc
                reason = exc.error.rule.value
            else:
                reason = type(exc).__name__
            logger.info("%s %s failed: %s", self.direction.value, self.procedure.name, reason)
            raise
        self.state = InvocationState.COMPLETED

    def __repr__(self) -> str:
        return f"<Invocation {self.direction.value} {self.procedure.name}: {self.state.value}>"


class ProcedureRegistry:
    """Holds validated procedures and dispatches invocations."""

    def __init__(self, config: Optional[RevConfig] = None,
                 evaluator: Optional[Evaluator] = None):
        self.config = config or RevConfig()
        self.evaluator: Evaluator = evaluator or ExpressionEvaluator(
            builtins=self.config.pure_functions)
        self._procedures: dict[ProcedureId, ProcedureDef] = {}
        self.engine = StatementEngine(self.get, self.evaluator, self.config)

    # ── Registration ─────────────────────────────────────────────────────

    def register(self, proc: ProcedureDef) -> ProcedureId:
        """Validate and store one procedure. It may call itself and any
        procedure registered before it."""
        self._register_all([proc])
        return proc.name

    register_procedure = register

    def register_program(self, program: Union[Program, Sequence[ProcedureDef]]) -> list[ProcedureId]:
        """Validate procedures as one unit so they may call each other."""
        procs = program.procedures if isinstance(program, Program) else list(program)
        self._register_all(procs)
        return [p.name for p in procs]

    def _register_all(self, procs: Sequence[ProcedureDef]) -> None:
        errors: list[RevError] = []
        names: set[str] = set()
        for proc in procs:
            if proc.name in self._procedures or proc.name in names:
                errors.append(validation_error(
                    Rule.DUPLICATE_PROCEDURE,
                    f"Procedure '{proc.name}' is already registered",
                    procedure=proc.name,
                    location=proc.location,
                ))
            names.add(proc.name)
        if errors:
            raise ValidationError.from_errors(errors)

        arities = {name: len(p.params) for name, p in self._procedures.items()}
        arities.update({p.name: len(p.params) for p in procs})
        validator = LegalityValidator(arities, self.evaluator.is_pure_function)
        for proc in procs:
            errors.extend(validator.check_procedure(proc))

        if not errors and self.config.verify_assertions:
            verifier = AssertionVerifier(self.config.domain)
            for proc in procs:
                errors.extend(verifier.check_procedure(proc))

        if errors:
            raise ValidationError.from_errors(errors)

        for proc in procs:
            self._procedures[proc.name] = proc
            logger.info("registered procedure %s(%s)", proc.name, ", ".join(proc.param_names))

    # ── Lookup ───────────────────────────────────────────────────────────

    def get(self, name: ProcedureId) -> ProcedureDef:
        try:
            return self._procedures[name]
        except KeyError:
            raise KeyError(
                f"Unknown procedure '{name}'. Registered: {sorted(self._procedures)}"
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self._procedures

    def __len__(self) -> int:
        return len(self._procedures)

    @property
    def names(self) -> list[ProcedureId]:
        return list(self._procedures)

    # ── Dispatch ─────────────────────────────────────────────────────────

    def invoke(self, name: ProcedureId, args: Sequence[Binding],
               direction: Direction = Direction.FORWARD) -> Invocation:
        return Invocation(self, self.get(name), args, direction)

    def run_forward(self, name: ProcedureId, args: Sequence[Binding]) -> None:
        self.invoke(name, args, Direction.FORWARD).run()

    def run_backward(self, name: ProcedureId, args: Sequence[Binding]) -> None:
        self.invoke(name, args, Direction.BACKWARD).run()

    def forward(self, name: ProcedureId, values: Mapping[str, ArgValue]) -> dict[str, ArgValue]:
        """Run forward over fresh slots holding ``values``; return the
        final value of every parameter."""
        return self._run_values(name, values, Direction.FORWARD)

    def backward(self, name: ProcedureId, values: Mapping[str, ArgValue]) -> dict[str, ArgValue]:
        return self._run_values(name, values, Direction.BACKWARD)

    def _run_values(self, name: ProcedureId, values: Mapping[str, ArgValue],
                    direction: Direction) -> dict[str, ArgValue]:
        proc = self.get(name)
        missing = [p for p in proc.param_names if p not in values]
        extra = [k for k in values if k not in proc.param_names]
        if missing or extra:
            raise ValueError(
                f"'{name}' takes parameters {proc.param_names}; "
                f"missing {missing}, unexpected {extra}"
            )

        store = Store(self.config.domain)
        handles: list[Binding] = []
        for param in proc.param_names:
            value = values[param]
            if isinstance(value, int):
                handles.append(store.alloc(value))
            else:
                handles.append(store.alloc_array(value))

        self.invoke(name, handles, direction).run()

        result: dict[str, ArgValue] = {}
        for param, handle in zip(proc.param_names, handles):
            result[param] = handle.read()
        return result
