"""End-to-end scenarios - SCN-001 through SCN-006.

Tests for:
  - Reversible Fibonacci, forward and back
  - Trial-division factorisation and its inverse
  - Overflow is an error, never a wrap
  - Calls to non-reversible routines are rejected at registration
  - Array aliasing caught at invocation time
  - Assertion mismatches
"""

import pytest

from revlang.compiler.parser import parse_procedure
from revlang.config import RevConfig
from revlang.environment import Store
from revlang.errors import (
    AliasViolation, ArithmeticOverflow, AssertionMismatch, InvocationStateError,
    NonReversibleCall, Rule,
)
from revlang.registry import ProcedureRegistry


# ===========================================================================
# SCN-001: Fibonacci
# ===========================================================================

class TestSCN001:
    """SCN-001: fib runs forward to Fibonacci pairs and back to zero."""

    def test_forward(self, fib_registry):
        assert fib_registry.forward("fib", {"x1": 0, "x2": 0, "n": 10}) == {
            "x1": 89, "x2": 144, "n": 0}

    def test_backward(self, fib_registry):
        assert fib_registry.backward("fib", {"x1": 89, "x2": 144, "n": 0}) == {
            "x1": 0, "x2": 0, "n": 10}

    @pytest.mark.parametrize("n,pair", [(0, (1, 1)), (1, (1, 2)), (2, (2, 3)), (5, (8, 13))])
    def test_small_values(self, fib_registry, n, pair):
        out = fib_registry.forward("fib", {"x1": 0, "x2": 0, "n": n})
        assert (out["x1"], out["x2"]) == pair

    def test_backward_guard_check(self, fib_program):
        reg = ProcedureRegistry(RevConfig(check_guard_on_backward=True))
        reg.register_program(fib_program)
        with pytest.raises(AssertionMismatch):
            reg.backward("fib", {"x1": 1, "x2": 1, "n": 5})


# ===========================================================================
# SCN-002: Factorisation
# ===========================================================================

class TestSCN002:
    """SCN-002: factor splits a number into primes and multiplies it back."""

    def test_forward_840(self, factor_registry):
        out = factor_registry.forward("factor", {"num": 840, "fact": [0] * 20})
        assert out["num"] == 0
        assert out["fact"][:8] == [0, 2, 2, 2, 3, 5, 7, 0]
        assert out["fact"][8:] == [0] * 12

    def test_backward_840(self, factor_registry):
        fact = [0, 2, 2, 2, 3, 5, 7] + [0] * 13
        out = factor_registry.backward("factor", {"num": 0, "fact": fact})
        assert out == {"num": 840, "fact": [0] * 20}

    @pytest.mark.parametrize("num", [4, 12, 30, 97, 360])
    def test_round_trip(self, factor_registry, num):
        out = factor_registry.forward("factor", {"num": num, "fact": [0] * 20})
        product = 1
        for f in out["fact"]:
            if f:
                product *= f
        assert product == num
        assert factor_registry.backward("factor", out) == {"num": num, "fact": [0] * 20}

    def test_nexttry_sequence(self, factor_registry):
        seen = []
        values = {"tryf": 0}
        for _ in range(5):
            values = factor_registry.forward("nexttry", values)
            seen.append(values["tryf"])
        assert seen == [2, 3, 5, 7, 9]


# ===========================================================================
# SCN-003: Overflow
# ===========================================================================

class TestSCN003:
    """SCN-003: Leaving the integer domain fails the invocation."""

    SRC = "procedure add(a, b) { a += b }"

    def test_i64_max(self):
        reg = ProcedureRegistry()
        reg.register(parse_procedure(self.SRC))
        with pytest.raises(ArithmeticOverflow) as exc_info:
            reg.forward("add", {"a": 2 ** 63 - 1, "b": 1})
        err = exc_info.value.error
        assert err.procedure == "add"
        assert err.statement == "a += b"

    def test_i64_min_backward(self):
        reg = ProcedureRegistry()
        reg.register(parse_procedure(self.SRC))
        with pytest.raises(ArithmeticOverflow):
            reg.backward("add", {"a": -(2 ** 63), "b": 1})

    def test_narrow_domain(self):
        reg = ProcedureRegistry(RevConfig(int_type="u8"))
        reg.register(parse_procedure(self.SRC))
        assert reg.forward("add", {"a": 200, "b": 55}) == {"a": 255, "b": 55}
        with pytest.raises(ArithmeticOverflow):
            reg.forward("add", {"a": 200, "b": 56})
        with pytest.raises(ArithmeticOverflow):
            reg.backward("add", {"a": 0, "b": 1})

    def test_xor_stays_in_unsigned_domain(self):
        reg = ProcedureRegistry(RevConfig(int_type="u8"))
        reg.register(parse_procedure("procedure x(a, b) { a ^= b }"))
        assert reg.forward("x", {"a": 0xF0, "b": 0x0F}) == {"a": 0xFF, "b": 0x0F}


# ===========================================================================
# SCN-004: Non-reversible calls
# ===========================================================================

class TestSCN004:
    """SCN-004: A call to a routine outside the registry never registers."""

    def test_host_function_called_as_procedure(self):
        reg = ProcedureRegistry()
        with pytest.raises(NonReversibleCall) as exc_info:
            reg.register(parse_procedure("procedure p(x) { call max(x) }"))
        assert exc_info.value.error.details["callee"] == "max"
        assert "p" not in reg

    def test_undefined_routine(self):
        reg = ProcedureRegistry()
        with pytest.raises(NonReversibleCall):
            reg.register(parse_procedure("procedure p(x) { uncall print(x) }"))


# ===========================================================================
# SCN-005: Array aliasing
# ===========================================================================

class TestSCN005:
    """SCN-005: arr[42] -= arr[i] is legal until i == 42."""

    SRC = "procedure sub(arr, i) { arr[42] -= arr[i] }"

    def test_registers(self):
        reg = ProcedureRegistry()
        reg.register(parse_procedure(self.SRC))

    def test_distinct_slots(self):
        reg = ProcedureRegistry()
        reg.register(parse_procedure(self.SRC))
        arr = list(range(43))
        out = reg.forward("sub", {"arr": arr, "i": 3})
        assert out["arr"][42] == 39

    def test_same_slot(self):
        reg = ProcedureRegistry()
        reg.register(parse_procedure(self.SRC))
        with pytest.raises(AliasViolation) as exc_info:
            reg.forward("sub", {"arr": [7] * 43, "i": 42})
        assert exc_info.value.error.rule is Rule.ALIAS_VIOLATION


# ===========================================================================
# SCN-006: Assertion mismatch
# ===========================================================================

class TestSCN006:
    """SCN-006: A branch the assertion cannot confirm fails the invocation."""

    SRC = """procedure clamp(x, flag) {
        if x > 10 {
            flag += 1
        } assert flag == 1
    }"""

    def test_consistent(self):
        reg = ProcedureRegistry()
        reg.register(parse_procedure(self.SRC))
        assert reg.forward("clamp", {"x": 11, "flag": 0}) == {"x": 11, "flag": 1}
        assert reg.forward("clamp", {"x": 3, "flag": 0}) == {"x": 3, "flag": 0}

    def test_mismatch(self):
        reg = ProcedureRegistry()
        reg.register(parse_procedure(self.SRC))
        with pytest.raises(AssertionMismatch) as exc_info:
            reg.forward("clamp", {"x": 3, "flag": 1})
        assert exc_info.value.error.details["branch"] == "else"

    def test_invocation_stays_failed(self):
        reg = ProcedureRegistry()
        reg.register(parse_procedure(self.SRC))
        store = Store()
        x, flag = store.alloc(3), store.alloc(1)
        inv = reg.invoke("clamp", [x, flag])
        with pytest.raises(AssertionMismatch):
            inv.run()
        with pytest.raises(InvocationStateError):
            inv.run()
