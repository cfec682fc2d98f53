"""Z3 assertion verification tests - VER-001 through VER-004.

Tests for:
  - Assertions that can never confirm their branch are rejected
  - Assertions that may fail only produce warnings
  - Calls and loops are havocked, never trusted
  - Domain bounds, no wrap-around, truncating division
  - Registry integration behind verify_assertions
"""

import logging

import pytest

from revlang.compiler.parser import parse_procedure
from revlang.config import RevConfig
from revlang.errors import Rule, UnsatisfiableAssertion
from revlang.numeric import IntDomain
from revlang.registry import ProcedureRegistry
from revlang.verify import AssertionVerifier


def _check(source: str, domain: IntDomain = IntDomain()):
    verifier = AssertionVerifier(domain)
    errors = verifier.check_procedure(parse_procedure(source))
    return errors, verifier.warnings


# ===========================================================================
# VER-001: Rejections
# ===========================================================================

class TestVER001:
    """VER-001: A reachable branch the assertion can never confirm."""

    def test_then_branch_never_confirmed(self):
        errors, _ = _check("procedure p(x) { if x == 0 { x += 1 } assert x == 0 }")
        assert len(errors) == 1
        err = errors[0]
        assert err.rule is Rule.UNSATISFIABLE_ASSERTION
        assert err.details["branch"] == "then"
        assert err.procedure == "p"
        assert "can never confirm the then branch" in err.message

    def test_else_branch_never_confirmed(self):
        errors, _ = _check("procedure p(x, y) { if x > 0 { y += 1 } assert true }")
        assert [e.details["branch"] for e in errors] == ["else"]

    def test_nested_if(self):
        src = """procedure p(x, y) {
            if x == 0 {
                if y == 0 {
                    y += 2
                } assert y == 0
            } assert x == 0
        }"""
        errors, _ = _check(src)
        assert [e.details["branch"] for e in errors] == ["then"]


# ===========================================================================
# VER-002: Accepted procedures
# ===========================================================================

class TestVER002:
    """VER-002: Satisfiable assertions pass; possible failures warn."""

    def test_exact_assertion(self):
        errors, warnings = _check(
            "procedure p(x, f) { if x == 0 { f ^= 1 } assert x == 0 }")
        assert errors == []
        assert warnings == []

    def test_fib_warns_but_passes(self, fib_program, caplog):
        with caplog.at_level(logging.WARNING, logger="revlang.verify"):
            errors = AssertionVerifier().check_procedure(fib_program.get("fib"))
        assert errors == []
        assert "may not confirm" in caplog.text

    def test_factor_passes(self, factor_program):
        verifier = AssertionVerifier()
        for proc in factor_program.procedures:
            assert verifier.check_procedure(proc) == []

    def test_call_results_are_unknown(self):
        # after the call y may hold anything, so y == 5 stays possible
        errors, warnings = _check(
            "procedure p(x, y) { if x == 0 { call q(y) } else { y += 1 } assert y == 5 }")
        assert errors == []
        assert warnings

    def test_delocal_constrains_path(self):
        src = """procedure p(x) {
            local t = x
            delocal t = 3
            if x == 3 { } assert true
        }"""
        errors, _ = _check(src)
        assert errors == []


# ===========================================================================
# VER-003: Domains
# ===========================================================================

class TestVER003:
    """VER-003: Slots range over the configured domain; intermediates never wrap."""

    SRC = "procedure p(x) { if x == 0 { x -= 1 } assert x < 0 }"

    def test_signed(self):
        errors, _ = _check(self.SRC, IntDomain.from_name("i8"))
        assert errors == []

    def test_overflowing_branch_not_blamed_on_assertion(self):
        # every run through the then branch overflows before the assertion
        errors, _ = _check(self.SRC, IntDomain.from_name("u8"))
        assert errors == []

    @pytest.mark.parametrize("int_type,branches", [
        ("i8", ["then"]),
        ("u8", []),
        ("i16", []),
    ])
    def test_domain_bounds(self, int_type, branches):
        src = "procedure p(x, y) { if x > 100 { y += 1 } assert x > 150 }"
        errors, _ = _check(src, IntDomain.from_name(int_type))
        assert [e.details["branch"] for e in errors] == branches

    def test_intermediate_beyond_width(self):
        src = "procedure p(x, y) { if x > 100 { y += 1 } else { } assert x * 2 > 100 }"
        errors, warnings = _check(src, IntDomain.from_name("i8"))
        assert errors == []
        assert warnings

        reg = ProcedureRegistry(RevConfig(int_type="i8", verify_assertions=True))
        reg.register(parse_procedure(src))
        assert reg.forward("p", {"x": 101, "y": 0}) == {"x": 101, "y": 1}
        assert reg.backward("p", {"x": 101, "y": 1}) == {"x": 101, "y": 0}

    def test_division_truncates(self):
        src = "procedure p(x, y) { if x == -1 { y += 1 } assert x / 2 == 0 }"
        errors, _ = _check(src)
        assert errors == []


# ===========================================================================
# VER-004: Registry integration
# ===========================================================================

class TestVER004:
    """VER-004: verify_assertions gates the check at registration."""

    BAD = "procedure p(x) { if x == 0 { x += 1 } assert x == 0 }"

    def test_off_by_default(self):
        reg = ProcedureRegistry()
        reg.register(parse_procedure(self.BAD))
        assert "p" in reg

    def test_on(self):
        reg = ProcedureRegistry(RevConfig(verify_assertions=True))
        with pytest.raises(UnsatisfiableAssertion):
            reg.register(parse_procedure(self.BAD))
        assert "p" not in reg

    def test_examples_register_with_verification(self, fib_program, factor_program):
        reg = ProcedureRegistry(RevConfig(verify_assertions=True))
        reg.register_program(fib_program)
        reg.register_program(factor_program)
        assert reg.forward("fib", {"x1": 0, "x2": 0, "n": 3}) == {"x1": 3, "x2": 5, "n": 0}
