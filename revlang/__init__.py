"""revlang: a reversible imperative mini-language.

Procedures run forward to compute a result and backward to reconstruct their
input exactly.
"""

__version__ = "0.1.0"

from revlang.ast_nodes import Program, ProcedureDef, procedure
from revlang.compiler.parser import parse
from revlang.config import RevConfig, load_config
from revlang.engine import Branch, Direction, StatementEngine
from revlang.environment import ArrayHandle, Environment, SlotHandle, Store
from revlang.errors import (
    RevError, RevlangError, CompileError, ValidationError, ExecutionError,
)
from revlang.evaluator import Evaluator, ExpressionEvaluator
from revlang.formatters import format_procedure, format_program
from revlang.inversion import invert_procedure
from revlang.numeric import IntDomain
from revlang.operators import AssignOp, INVERSE_OPS
from revlang.registry import Invocation, InvocationState, ProcedureRegistry
