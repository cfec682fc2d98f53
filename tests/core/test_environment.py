"""Value / environment model tests - ENV-001 through ENV-006.

Tests for:
  - Fixed-width integer domains
  - Store allocation, domain checks, release and snapshots
  - Handle identity and parameter aliasing
  - Environment lookup failures
"""

import pytest

from revlang.environment import ArrayHandle, Environment, SlotHandle, Store, binding_slots
from revlang.errors import (
    AliasViolation, ArithmeticOverflow, IndexOutOfRange, InvalidReference,
    Rule, UnboundVariable,
)
from revlang.numeric import IntDomain


# ===========================================================================
# ENV-001: Integer domains
# ===========================================================================

class TestENV001:
    """ENV-001: IntDomain bounds and names."""

    def test_default_is_signed_64(self):
        d = IntDomain()
        assert d.name == "i64"
        assert d.min_value == -(2 ** 63)
        assert d.max_value == 2 ** 63 - 1

    def test_from_name_unsigned(self):
        d = IntDomain.from_name("u8")
        assert (d.bits, d.signed) == (8, False)
        assert d.min_value == 0
        assert d.max_value == 255

    def test_usize_is_64_bits(self):
        assert IntDomain.from_name("usize") == IntDomain(64, False)

    def test_unknown_name_rejected(self):
        with pytest.raises(ValueError, match="Unknown integer type"):
            IntDomain.from_name("i128x")

    def test_check_raises_overflow(self):
        d = IntDomain.from_name("i8")
        assert d.check(127) == 127
        with pytest.raises(ArithmeticOverflow) as exc_info:
            d.check(128)
        assert exc_info.value.error.details["domain"] == "i8"


# ===========================================================================
# ENV-002: Store slots
# ===========================================================================

class TestENV002:
    """ENV-002: Slots hold in-domain integers and are never reused."""

    def test_alloc_read_write(self):
        store = Store()
        h = store.alloc(5)
        assert store.read(h) == 5
        store.write(h, -7)
        assert h.read() == -7

    def test_write_outside_domain_is_overflow(self):
        store = Store(IntDomain.from_name("u8"))
        h = store.alloc(200)
        with pytest.raises(ArithmeticOverflow):
            store.write(h, 256)
        assert store.read(h) == 200

    def test_negative_in_unsigned_domain_is_overflow(self):
        store = Store(IntDomain.from_name("u32"))
        with pytest.raises(ArithmeticOverflow):
            store.alloc(-1)

    def test_non_integer_rejected(self):
        store = Store()
        with pytest.raises(TypeError):
            store.alloc(True)

    def test_freed_slot_is_invalid(self):
        store = Store()
        h = store.alloc(3)
        assert store.free(h) == 3
        with pytest.raises(InvalidReference):
            store.read(h)
        h2 = store.alloc(4)
        assert h2 != h

    def test_foreign_handle_is_invalid(self):
        a, b = Store(), Store()
        h = a.alloc(1)
        with pytest.raises(InvalidReference):
            b.read(h)

    def test_snapshot_restore(self):
        store = Store()
        h = store.alloc(1)
        snap = store.snapshot()
        store.write(h, 99)
        extra = store.alloc(7)
        store.poisoned = True
        store.restore(snap)
        assert store.read(h) == 1
        assert not store.poisoned
        with pytest.raises(InvalidReference):
            store.read(extra)

    def test_len_counts_live_slots(self):
        store = Store()
        arr = store.alloc_array([1, 2, 3])
        store.free(arr[0])
        assert len(store) == 2


# ===========================================================================
# ENV-003: Handle identity
# ===========================================================================

class TestENV003:
    """ENV-003: Aliasing is decided by handle identity, not by value."""

    def test_equal_values_distinct_handles(self):
        store = Store()
        a, b = store.alloc(0), store.alloc(0)
        assert a != b

    def test_same_index_same_store_equal(self):
        store = Store()
        a = store.alloc(0)
        assert SlotHandle(store, a.index) == a
        assert hash(SlotHandle(store, a.index)) == hash(a)

    def test_same_index_different_store_distinct(self):
        a, b = Store(), Store()
        assert a.alloc(0) != b.alloc(0)

    def test_array_slots(self):
        store = Store()
        arr = store.alloc_array([4, 5])
        assert isinstance(arr, ArrayHandle)
        assert arr.read() == [4, 5]
        assert binding_slots(arr) == arr.slots
        assert binding_slots(arr[0]) == (arr[0],)


# ===========================================================================
# ENV-004: Parameter attachment
# ===========================================================================

class TestENV004:
    """ENV-004: No two bindings of one environment share a slot."""

    def test_attach_distinct(self):
        store = Store()
        env = Environment("p")
        env.attach("a", store.alloc(1))
        env.attach("b", store.alloc(2))
        assert env.values() == {"a": 1, "b": 2}

    def test_attach_same_slot_twice(self):
        store = Store()
        h = store.alloc(1)
        env = Environment("p")
        env.attach("a", h)
        with pytest.raises(AliasViolation) as exc_info:
            env.attach("b", h)
        assert exc_info.value.error.details["variables"] == ["a", "b"]

    def test_attach_element_of_attached_array(self):
        store = Store()
        arr = store.alloc_array([0, 0, 0])
        env = Environment("p")
        env.attach("arr", arr)
        with pytest.raises(AliasViolation):
            env.attach("x", arr[2])

    def test_rebinding_a_name_is_a_bug(self):
        env = Environment("p")
        env.bind("x")
        with pytest.raises(ValueError):
            env.bind("x")


# ===========================================================================
# ENV-005: Locals
# ===========================================================================

class TestENV005:
    """ENV-005: Locals live in the environment's own arena."""

    def test_bind_unbind(self):
        env = Environment("p")
        h = env.bind("t", 42)
        assert env.read(h) == 42
        assert env.unbind("t") == 42
        assert "t" not in env

    def test_unbind_parameter_rejected(self):
        store = Store()
        env = Environment("p")
        env.attach("a", store.alloc(1))
        with pytest.raises(ValueError):
            env.unbind("a")

    def test_release_drops_locals_keeps_caller_slots(self):
        store = Store()
        h = store.alloc(8)
        env = Environment("p")
        env.attach("a", h)
        env.bind("t", 1)
        env.release()
        assert env.names == []
        assert store.read(h) == 8

    def test_stores_lists_caller_stores(self):
        store = Store()
        env = Environment("p")
        env.attach("a", store.alloc(1))
        assert store in env.stores()


# ===========================================================================
# ENV-006: Lookup failures
# ===========================================================================

class TestENV006:
    """ENV-006: Lookup errors carry the rule and the procedure."""

    def test_unbound(self):
        env = Environment("proc")
        with pytest.raises(UnboundVariable) as exc_info:
            env.lookup("missing")
        err = exc_info.value.error
        assert err.rule is Rule.UNBOUND_VARIABLE
        assert err.procedure == "proc"

    def test_scalar_used_as_array(self):
        env = Environment("p")
        env.bind("x")
        with pytest.raises(InvalidReference):
            env.element("x", 0)

    def test_array_used_as_scalar(self):
        store = Store()
        env = Environment("p")
        env.attach("arr", store.alloc_array([1]))
        with pytest.raises(InvalidReference):
            env.slot("arr")

    def test_index_out_of_range(self):
        store = Store()
        env = Environment("p")
        env.attach("arr", store.alloc_array([1, 2]))
        assert env.read(env.element("arr", 1)) == 2
        with pytest.raises(IndexOutOfRange):
            env.element("arr", 2)
        with pytest.raises(IndexOutOfRange):
            env.element("arr", -1)
