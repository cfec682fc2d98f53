"""Structured error objects for revlang.

Every error is machine-readable. A ``RevError`` record names the violated
rule, the procedure and the offending statement; exceptions carry one or
more records so callers can inspect or serialise them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, NoReturn, Optional


class ErrorKind(Enum):
    SYNTAX_ERROR = "syntax_error"
    VALIDATION_ERROR = "validation_error"
    RUNTIME_ERROR = "runtime_error"


class Rule(Enum):
    SYNTAX = "syntax"
    # registration time
    ILLEGAL_OPERATOR = "illegal_operator"
    SELF_ALIASED_ASSIGNMENT = "self_aliased_assignment"
    NON_REVERSIBLE_CALL = "non_reversible_call"
    ARITY_MISMATCH = "arity_mismatch"
    UNBALANCED_LOCAL = "unbalanced_local"
    DUPLICATE_BINDING = "duplicate_binding"
    DUPLICATE_PROCEDURE = "duplicate_procedure"
    UNSATISFIABLE_ASSERTION = "unsatisfiable_assertion"
    # invocation time
    ALIAS_VIOLATION = "alias_violation"
    ASSERTION_MISMATCH = "assertion_mismatch"
    UNBOUND_VARIABLE = "unbound_variable"
    ARITHMETIC_OVERFLOW = "arithmetic_overflow"
    DELOCAL_MISMATCH = "delocal_mismatch"
    LOOP_ASSERTION_FAILURE = "loop_assertion_failure"
    INDEX_OUT_OF_RANGE = "index_out_of_range"
    INVALID_REFERENCE = "invalid_reference"
    DIVISION_BY_ZERO = "division_by_zero"
    INVALID_SHIFT = "invalid_shift"
    CALL_DEPTH_EXCEEDED = "call_depth_exceeded"
    INVOCATION_STATE = "invocation_state"


@dataclass
class SourceLocation:
    line: int
    column: int
    file: str = "<stdin>"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass
class RevError:
    kind: ErrorKind
    rule: Rule
    message: str
    location: Optional[SourceLocation] = None
    procedure: Optional[str] = None
    statement: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "rule": self.rule.value,
            "message": self.message,
        }
        if self.location:
            d["location"] = {
                "file": self.location.file,
                "line": self.location.line,
                "column": self.location.column,
            }
        if self.procedure:
            d["procedure"] = self.procedure
        if self.statement:
            d["statement"] = self.statement
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __str__(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        where = f" in '{self.procedure}'" if self.procedure else ""
        return f"[{self.rule.value}]{loc}{where}: {self.message}"


# ---------------------------------------------------------------------------
# Record factories
# ---------------------------------------------------------------------------

def syntax_error(
    message: str,
    location: Optional[SourceLocation] = None,
) -> RevError:
    return RevError(
        kind=ErrorKind.SYNTAX_ERROR,
        rule=Rule.SYNTAX,
        message=message,
        location=location,
    )


def validation_error(
    rule: Rule,
    message: str,
    procedure: Optional[str] = None,
    statement: Optional[str] = None,
    location: Optional[SourceLocation] = None,
    **details: Any,
) -> RevError:
    return RevError(
        kind=ErrorKind.VALIDATION_ERROR,
        rule=rule,
        message=message,
        location=location,
        procedure=procedure,
        statement=statement,
        details=details,
    )


def runtime_error(
    rule: Rule,
    message: str,
    procedure: Optional[str] = None,
    statement: Optional[str] = None,
    location: Optional[SourceLocation] = None,
    **details: Any,
) -> RevError:
    return RevError(
        kind=ErrorKind.RUNTIME_ERROR,
        rule=rule,
        message=message,
        location=location,
        procedure=procedure,
        statement=statement,
        details=details,
    )


def illegal_operator(
    op: str,
    procedure: Optional[str] = None,
    statement: Optional[str] = None,
    location: Optional[SourceLocation] = None,
) -> RevError:
    return validation_error(
        Rule.ILLEGAL_OPERATOR,
        f"Operator '{op}' is not reversible",
        procedure, statement, location,
        operator=op,
    )


def self_aliased_assignment(
    variable: str,
    procedure: Optional[str] = None,
    statement: Optional[str] = None,
    location: Optional[SourceLocation] = None,
) -> RevError:
    return validation_error(
        Rule.SELF_ALIASED_ASSIGNMENT,
        f"'{variable}' is read by the expression that updates it",
        procedure, statement, location,
        variable=variable,
    )


def non_reversible_call(
    callee: str,
    reason: str,
    procedure: Optional[str] = None,
    statement: Optional[str] = None,
    location: Optional[SourceLocation] = None,
) -> RevError:
    return validation_error(
        Rule.NON_REVERSIBLE_CALL,
        f"Call to '{callee}' is not reversible: {reason}",
        procedure, statement, location,
        callee=callee,
    )


def unbound_variable(
    name: str,
    procedure: Optional[str] = None,
    statement: Optional[str] = None,
    location: Optional[SourceLocation] = None,
) -> RevError:
    return runtime_error(
        Rule.UNBOUND_VARIABLE,
        f"Undefined name '{name}'",
        procedure, statement, location,
        name=name,
    )


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RevlangError(Exception):
    """Exception wrapping one or more RevErrors."""

    def __init__(self, errors: list[RevError] | RevError):
        if isinstance(errors, RevError):
            errors = [errors]
        self.errors = errors
        super().__init__(self._format())

    @property
    def error(self) -> RevError:
        return self.errors[0]

    @property
    def rule(self) -> Rule:
        return self.error.rule

    def _format(self) -> str:
        return "\n".join(str(e) for e in self.errors)

    def annotate(self, procedure: Optional[str] = None, statement: Optional[str] = None,
                 location: Optional[SourceLocation] = None) -> None:
        """Fill in context missing from records raised below statement level."""
        for e in self.errors:
            if e.statement is None:
                e.statement = statement
                e.procedure = e.procedure or procedure
                e.location = e.location or location
        self.args = (self._format(),)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([e.to_dict() for e in self.errors], indent=indent)


class CompileError(RevlangError):
    """Raised by the front end on malformed source text."""


class _RuleDispatch(RevlangError):
    """Base for exception families where each subclass owns one rule."""

    rule_class: ClassVar[Optional[Rule]] = None
    _by_rule: ClassVar[dict[Rule, type]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.rule_class is not None:
            _RuleDispatch._by_rule[cls.rule_class] = cls

    @classmethod
    def from_errors(cls, errors: list[RevError] | RevError) -> "RevlangError":
        """Build the exception subclass matching the first error's rule."""
        if isinstance(errors, RevError):
            errors = [errors]
        exc_cls = _RuleDispatch._by_rule.get(errors[0].rule, cls)
        if not issubclass(exc_cls, cls):
            exc_cls = cls
        return exc_cls(errors)


class ValidationError(_RuleDispatch):
    """Registration-time rejection. Fatal to the registration only."""


class IllegalOperator(ValidationError):
    rule_class = Rule.ILLEGAL_OPERATOR


class SelfAliasedAssignment(ValidationError):
    rule_class = Rule.SELF_ALIASED_ASSIGNMENT


class NonReversibleCall(ValidationError):
    rule_class = Rule.NON_REVERSIBLE_CALL


class ArityMismatch(ValidationError):
    rule_class = Rule.ARITY_MISMATCH


class UnbalancedLocal(ValidationError):
    rule_class = Rule.UNBALANCED_LOCAL


class DuplicateBinding(ValidationError):
    rule_class = Rule.DUPLICATE_BINDING


class DuplicateProcedure(ValidationError):
    rule_class = Rule.DUPLICATE_PROCEDURE


class UnsatisfiableAssertion(ValidationError):
    rule_class = Rule.UNSATISFIABLE_ASSERTION


class ExecutionError(_RuleDispatch):
    """Invocation-time failure. Fatal to the whole invocation."""


class AliasViolation(ExecutionError):
    rule_class = Rule.ALIAS_VIOLATION


class AssertionMismatch(ExecutionError):
    rule_class = Rule.ASSERTION_MISMATCH


class UnboundVariable(ExecutionError):
    rule_class = Rule.UNBOUND_VARIABLE


class ArithmeticOverflow(ExecutionError):
    rule_class = Rule.ARITHMETIC_OVERFLOW


class DelocalMismatch(ExecutionError):
    rule_class = Rule.DELOCAL_MISMATCH


class LoopAssertionFailure(ExecutionError):
    rule_class = Rule.LOOP_ASSERTION_FAILURE


class IndexOutOfRange(ExecutionError):
    rule_class = Rule.INDEX_OUT_OF_RANGE


class InvalidReference(ExecutionError):
    rule_class = Rule.INVALID_REFERENCE


class DivisionByZero(ExecutionError):
    rule_class = Rule.DIVISION_BY_ZERO


class InvalidShift(ExecutionError):
    rule_class = Rule.INVALID_SHIFT


class CallDepthExceeded(ExecutionError):
    rule_class = Rule.CALL_DEPTH_EXCEEDED


class InvocationStateError(ExecutionError):
    rule_class = Rule.INVOCATION_STATE


def raise_runtime(rule: Rule, message: str, **kwargs: Any) -> NoReturn:
    """Raise the ExecutionError subclass registered for ``rule``."""
    raise ExecutionError.from_errors(runtime_error(rule, message, **kwargs))
