"""Shared fixtures: the example programs shipped in examples/."""

from pathlib import Path

import pytest

from revlang.compiler.parser import parse
from revlang.registry import ProcedureRegistry

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def load_example(name: str):
    path = EXAMPLES / name
    return parse(path.read_text(), filename=str(path))


@pytest.fixture
def fib_program():
    return load_example("fib.rev")


@pytest.fixture
def factor_program():
    return load_example("factor.rev")


@pytest.fixture
def registry():
    return ProcedureRegistry()


@pytest.fixture
def fib_registry(fib_program):
    reg = ProcedureRegistry()
    reg.register_program(fib_program)
    return reg


@pytest.fixture
def factor_registry(factor_program):
    reg = ProcedureRegistry()
    reg.register_program(factor_program)
    return reg
