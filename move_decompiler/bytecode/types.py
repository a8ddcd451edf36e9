"""Signature types and ability sets used by compiled modules."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Sequence, Tuple, Union

__all__ = [
    "Ability",
    "AbilitySet",
    "abilities",
    "PrimitiveType",
    "VectorType",
    "StructType",
    "ReferenceType",
    "TypeParameter",
    "Type",
    "INTEGER_WIDTHS",
    "BOOL",
    "U8",
    "U16",
    "U32",
    "U64",
    "U128",
    "U256",
    "ADDRESS",
    "SIGNER",
    "substitute",
]


class Ability(enum.Enum):
    """Struct capability flags, declared in canonical print order."""

    COPY = "copy"
    DROP = "drop"
    STORE = "store"
    KEY = "key"

    @property
    def rank(self) -> int:
        return _ABILITY_ORDER.index(self)


_ABILITY_ORDER = (Ability.COPY, Ability.DROP, Ability.STORE, Ability.KEY)

AbilitySet = FrozenSet[Ability]


def abilities(names: Iterable[str | Ability]) -> AbilitySet:
    """Return an ability set from names such as ``"copy"`` or ``"KEY"``."""

    result = set()
    for name in names:
        if isinstance(name, Ability):
            result.add(name)
        else:
            result.add(Ability(str(name).strip().lower()))
    return frozenset(result)


@dataclass(frozen=True)
class PrimitiveType:
    name: str

    @property
    def bits(self) -> int | None:
        return INTEGER_WIDTHS.get(self.name)

    @property
    def is_integer(self) -> bool:
        return self.name in INTEGER_WIDTHS


@dataclass(frozen=True)
class VectorType:
    element: "Type"


@dataclass(frozen=True)
class StructType:
    """Reference to a struct handle, possibly instantiated."""

    handle: int
    type_arguments: Tuple["Type", ...] = ()


@dataclass(frozen=True)
class ReferenceType:
    inner: "Type"
    mutable: bool = False


@dataclass(frozen=True)
class TypeParameter:
    index: int


Type = Union[PrimitiveType, VectorType, StructType, ReferenceType, TypeParameter]

INTEGER_WIDTHS = {
    "u8": 8,
    "u16": 16,
    "u32": 32,
    "u64": 64,
    "u128": 128,
    "u256": 256,
}

BOOL = PrimitiveType("bool")
U8 = PrimitiveType("u8")
U16 = PrimitiveType("u16")
U32 = PrimitiveType("u32")
U64 = PrimitiveType("u64")
U128 = PrimitiveType("u128")
U256 = PrimitiveType("u256")
ADDRESS = PrimitiveType("address")
SIGNER = PrimitiveType("signer")


def substitute(ty: Type, type_arguments: Sequence[Type]) -> Type:
    """Replace type parameters in *ty* with *type_arguments*."""

    if isinstance(ty, TypeParameter):
        if ty.index < len(type_arguments):
            return type_arguments[ty.index]
        return ty
    if isinstance(ty, VectorType):
        return VectorType(substitute(ty.element, type_arguments))
    if isinstance(ty, ReferenceType):
        return ReferenceType(substitute(ty.inner, type_arguments), ty.mutable)
    if isinstance(ty, StructType):
        return StructType(
            ty.handle,
            tuple(substitute(arg, type_arguments) for arg in ty.type_arguments),
        )
    return ty
