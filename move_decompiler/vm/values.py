"""Runtime values, references and global storage for the reference VMs."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, MutableSequence, Optional, Tuple, Union

from ..bytecode.types import PrimitiveType, Type, VectorType
from ..exceptions import VMAbort, VMError

__all__ = [
    "Integer",
    "Address",
    "Signer",
    "StructValue",
    "Ref",
    "Value",
    "GlobalStorage",
    "ResourceKey",
    "from_constant",
    "clone",
    "ARITHMETIC_ERROR",
    "MISSING_DATA",
    "RESOURCE_ALREADY_EXISTS",
    "INDEX_OUT_OF_BOUNDS",
    "check_index",
    "take",
    "read",
]

# Move VM status codes used as abort codes.
ARITHMETIC_ERROR = 4017
MISSING_DATA = 4008
RESOURCE_ALREADY_EXISTS = 4004
INDEX_OUT_OF_BOUNDS = 0x20000


@dataclass(frozen=True)
class Integer:
    bits: int
    value: int

    def __post_init__(self) -> None:
        if not 0 <= self.value < (1 << self.bits):
            raise VMAbort(ARITHMETIC_ERROR)


@dataclass(frozen=True)
class Address:
    value: int


@dataclass(frozen=True)
class Signer:
    address: int


@dataclass
class StructValue:
    definition: int
    fields: List[Any]
    type_arguments: Tuple[Type, ...] = ()


class Ref:
    """A reference to ``container[key]``.

    Containers are frame local lists, struct field lists, vectors, or the
    resource table of :class:`GlobalStorage`.
    """

    __slots__ = ("container", "key")

    def __init__(self, container: Any, key: Any) -> None:
        self.container = container
        self.key = key

    def get(self) -> Any:
        return self.container[self.key]

    def set(self, value: Any) -> None:
        self.container[self.key] = value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Ref):
            return self.get() == other.get()
        return NotImplemented

    def __repr__(self) -> str:
        return f"Ref({self.get()!r})"


Value = Union[bool, Integer, Address, Signer, StructValue, List[Any], Ref]


def clone(value: Any) -> Any:
    """Copy a value; references keep pointing at the same location."""

    if isinstance(value, Ref):
        return value
    if isinstance(value, list):
        return [clone(item) for item in value]
    if isinstance(value, StructValue):
        return StructValue(value.definition, [clone(f) for f in value.fields], value.type_arguments)
    return value


def from_constant(ty: Type, value: Any) -> Any:
    """Convert a decoded constant or literal into a runtime value."""

    if isinstance(ty, PrimitiveType):
        if ty.is_integer:
            return Integer(ty.bits, value)
        if ty.name == "bool":
            return bool(value)
        if ty.name == "address":
            return Address(value)
    if isinstance(ty, VectorType):
        return [from_constant(ty.element, item) for item in value]
    raise VMError(f"cannot materialise constant of type {ty!r}")


ResourceKey = Tuple[int, Tuple[Type, ...], int]


@dataclass
class GlobalStorage:
    """Resources published under account addresses.

    ``log`` records every ``move_to``/``move_from`` in execution order so
    two executions can be compared mutation by mutation.
    """

    resources: Dict[ResourceKey, StructValue] = field(default_factory=dict)
    log: List[Tuple[str, ResourceKey]] = field(default_factory=list)

    def exists(self, key: ResourceKey) -> bool:
        return key in self.resources

    def borrow(self, key: ResourceKey) -> Ref:
        if key not in self.resources:
            raise VMAbort(MISSING_DATA)
        return Ref(self.resources, key)

    def move_from(self, key: ResourceKey) -> StructValue:
        if key not in self.resources:
            raise VMAbort(MISSING_DATA)
        self.log.append(("move_from", key))
        return self.resources.pop(key)

    def move_to(self, key: ResourceKey, value: StructValue) -> None:
        if key in self.resources:
            raise VMAbort(RESOURCE_ALREADY_EXISTS)
        self.log.append(("move_to", key))
        self.resources[key] = value

    def snapshot(self) -> Dict[ResourceKey, StructValue]:
        return copy.deepcopy(self.resources)

    def clone(self) -> "GlobalStorage":
        return GlobalStorage(self.snapshot(), list(self.log))


def check_index(vector: MutableSequence[Any], index: int) -> None:
    if not 0 <= index < len(vector):
        raise VMAbort(INDEX_OUT_OF_BOUNDS)


def take(container: MutableSequence[Any], index: int) -> Any:
    """Move a value out of a local slot, leaving it empty."""

    value = container[index]
    if value is None:
        raise VMError(f"local {index} is unavailable")
    container[index] = None
    return value


def read(value: Optional[Any], index: int) -> Any:
    if value is None:
        raise VMError(f"local {index} is unavailable")
    return clone(value)
