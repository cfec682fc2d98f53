"""Value / environment model.

Storage is an arena of integer slots (``Store``). Every variable reference
resolves to a ``SlotHandle``; aliasing questions are answered by comparing
handles, never by comparing values. An ``Environment`` maps the names of one
procedure invocation to handles: parameters point into the caller's stores,
locals live in an arena the environment owns.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from revlang.errors import ExecutionError, Rule, raise_runtime, unbound_variable
from revlang.numeric import DEFAULT_DOMAIN, IntDomain


class SlotHandle:
    """Identity of one storage slot: the owning store plus an index."""

    __slots__ = ("store", "index")

    def __init__(self, store: "Store", index: int):
        self.store = store
        self.index = index

    def read(self) -> int:
        return self.store.read(self)

    def write(self, value: int) -> None:
        self.store.write(self, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SlotHandle):
            return NotImplemented
        return self.store is other.store and self.index == other.index

    def __hash__(self) -> int:
        return hash((id(self.store), self.index))

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        return f"<slot {self.index}@{id(self.store):#x}>"


@dataclass(frozen=True)
class ArrayHandle:
    """A fixed-length sequence of slots passed as one parameter."""
    slots: tuple[SlotHandle, ...]

    def __len__(self) -> int:
        return len(self.slots)

    def __getitem__(self, index: int) -> SlotHandle:
        return self.slots[index]

    def read(self) -> list[int]:
        return [s.read() for s in self.slots]


Binding = Union[SlotHandle, ArrayHandle]


def binding_slots(binding: Binding) -> tuple[SlotHandle, ...]:
    if isinstance(binding, ArrayHandle):
        return binding.slots
    return (binding,)


class Store:
    """Arena of fixed-width integer slots.

    Freed slots are never reused, so a stale handle can never alias a
    newer slot.
    """

    def __init__(self, domain: IntDomain = DEFAULT_DOMAIN):
        self.domain = domain
        self._values: list[Optional[int]] = []
        self.poisoned = False

    def alloc(self, value: int = 0) -> SlotHandle:
        self._check_domain(value)
        self._values.append(value)
        return SlotHandle(self, len(self._values) - 1)

    def alloc_array(self, values: Iterable[int]) -> ArrayHandle:
        return ArrayHandle(tuple(self.alloc(v) for v in values))

    def read(self, handle: SlotHandle) -> int:
        return self._values[self._index(handle)]  # type: ignore[return-value]

    def write(self, handle: SlotHandle, value: int) -> None:
        idx = self._index(handle)
        self._check_domain(value)
        self._values[idx] = value

    def free(self, handle: SlotHandle) -> int:
        idx = self._index(handle)
        value = self._values[idx]
        self._values[idx] = None
        return value  # type: ignore[return-value]

    def snapshot(self) -> tuple[Optional[int], ...]:
        return tuple(self._values)

    def restore(self, snapshot: tuple[Optional[int], ...]) -> None:
        """Reset every slot to a snapshot and clear the poisoned flag."""
        if len(snapshot) > len(self._values):
            raise ValueError("Snapshot does not belong to this store")
        self._values[:len(snapshot)] = list(snapshot)
        for idx in range(len(snapshot), len(self._values)):
            self._values[idx] = None
        self.poisoned = False

    def clear_poison(self) -> None:
        self.poisoned = False

    def __len__(self) -> int:
        return sum(1 for v in self._values if v is not None)

    def __repr__(self) -> str:
        state = " poisoned" if self.poisoned else ""
        return f"<Store: {len(self)} live {self.domain} slots{state}>"

    def _index(self, handle: SlotHandle) -> int:
        if handle.store is not self:
            raise_runtime(Rule.INVALID_REFERENCE, "Slot belongs to a different store")
        if not 0 <= handle.index < len(self._values) or self._values[handle.index] is None:
            raise_runtime(Rule.INVALID_REFERENCE, f"Slot {handle.index} has been released")
        return handle.index

    def _check_domain(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Slots hold integers, got {type(value).__name__}")
        self.domain.check(value)


class Environment:
    """Bindings of one procedure invocation."""

    def __init__(self, procedure: str = "<anonymous>", domain: IntDomain = DEFAULT_DOMAIN,
                 depth: int = 0):
        self.procedure = procedure
        self.domain = domain
        self.depth = depth
        self._bindings: dict[str, Binding] = {}
        self._locals = Store(domain)

    # -- binding -------------------------------------------------------------

    def attach(self, name: str, binding: Binding) -> None:
        """Bind a parameter to a caller-owned slot or array."""
        if name in self._bindings:
            raise ValueError(f"'{name}' is already bound in '{self.procedure}'")
        incoming = set(binding_slots(binding))
        for other_name, other in self._bindings.items():
            if incoming.intersection(binding_slots(other)):
                raise_runtime(
                    Rule.ALIAS_VIOLATION,
                    f"Parameters '{other_name}' and '{name}' denote the same storage",
                    procedure=self.procedure,
                    variables=[other_name, name],
                )
        self._bindings[name] = binding

    def bind(self, name: str, value: int = 0) -> SlotHandle:
        """Introduce a local variable in a fresh slot."""
        if name in self._bindings:
            raise ValueError(f"'{name}' is already bound in '{self.procedure}'")
        handle = self._locals.alloc(value)
        self._bindings[name] = handle
        return handle

    def unbind(self, name: str) -> int:
        """Remove a local variable and return its final value."""
        handle = self.slot(name)
        if handle.store is not self._locals:
            raise ValueError(f"'{name}' is not a local of '{self.procedure}'")
        del self._bindings[name]
        return self._locals.free(handle)

    def release(self) -> None:
        """Drop every binding; locals still alive are discarded."""
        for name in list(self._bindings):
            binding = self._bindings.pop(name)
            if isinstance(binding, SlotHandle) and binding.store is self._locals:
                self._locals.free(binding)

    # -- lookup --------------------------------------------------------------

    def lookup(self, name: str) -> Binding:
        binding = self._bindings.get(name)
        if binding is None:
            raise ExecutionError.from_errors(unbound_variable(name, self.procedure))
        return binding

    def slot(self, name: str) -> SlotHandle:
        binding = self.lookup(name)
        if isinstance(binding, ArrayHandle):
            raise_runtime(Rule.INVALID_REFERENCE,
                          f"'{name}' is an array and needs an index",
                          procedure=self.procedure, name=name)
        return binding  # type: ignore[return-value]

    def array(self, name: str) -> ArrayHandle:
        binding = self.lookup(name)
        if not isinstance(binding, ArrayHandle):
            raise_runtime(Rule.INVALID_REFERENCE,
                          f"'{name}' is not an array",
                          procedure=self.procedure, name=name)
        return binding  # type: ignore[return-value]

    def element(self, name: str, index: int) -> SlotHandle:
        arr = self.array(name)
        if not 0 <= index < len(arr):
            raise_runtime(Rule.INDEX_OUT_OF_RANGE,
                          f"Index {index} out of range for '{name}' of length {len(arr)}",
                          procedure=self.procedure, name=name, index=index)
        return arr[index]

    def __contains__(self, name: str) -> bool:
        return name in self._bindings

    @property
    def names(self) -> list[str]:
        return list(self._bindings)

    # -- slot access ---------------------------------------------------------

    def read(self, slot: SlotHandle) -> int:
        return slot.read()

    def write(self, slot: SlotHandle, value: int) -> None:
        slot.write(value)

    def stores(self) -> list[Store]:
        seen: dict[int, Store] = {id(self._locals): self._locals}
        for binding in self._bindings.values():
            for s in binding_slots(binding):
                seen.setdefault(id(s.store), s.store)
        return list(seen.values())

    def values(self) -> dict[str, Union[int, list[int]]]:
        out: dict[str, Union[int, list[int]]] = {}
        for name, binding in self._bindings.items():
            out[name] = binding.read()
        return out

    def __repr__(self) -> str:
        return f"<Environment {self.procedure}: {self.names}>"
