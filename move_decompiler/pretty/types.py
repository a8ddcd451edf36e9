"""Rendering of types, abilities, literals and synthetic names."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from ..bytecode.model import CompiledModule, StructHandle
from ..bytecode.types import (
    Ability,
    AbilitySet,
    PrimitiveType,
    ReferenceType,
    StructType,
    Type,
    TypeParameter,
    VectorType,
)
from ..lifter.ir import Literal

__all__ = [
    "format_address",
    "format_abilities",
    "type_parameter_name",
    "local_name",
    "TypePrinter",
]


def format_address(address: int) -> str:
    return f"0x{address:x}"


def format_abilities(abilities: Iterable[Ability]) -> str:
    """Abilities joined in canonical order: copy, drop, store, key."""

    return ", ".join(ability.value for ability in sorted(abilities, key=lambda a: a.rank))


def type_parameter_name(index: int) -> str:
    return f"T{index}"


def local_name(slot: int, parameter_count: int) -> str:
    """``arg<i>`` for parameters, ``l<slot>`` for the remaining local slots."""

    if slot < parameter_count:
        return f"arg{slot}"
    return f"l{slot}"


def _constraint(abilities: AbilitySet) -> str:
    if not abilities:
        return ""
    return ": " + " + ".join(a.value for a in sorted(abilities, key=lambda a: a.rank))


class TypePrinter:
    """Formats types relative to one module.

    Structs declared in the module print by bare name; others are qualified
    as ``0x<addr>::<module>::<Name>``.
    """

    def __init__(self, module: CompiledModule) -> None:
        self._module = module

    def struct_name(self, handle_index: int) -> str:
        handle: StructHandle = self._module.struct_handles[handle_index]
        if self._module.is_self_module(handle.module):
            return handle.name
        owner = self._module.module_handles[handle.module]
        return f"{format_address(owner.address)}::{owner.name}::{handle.name}"

    def type_arguments(self, types: Sequence[Type]) -> str:
        if not types:
            return ""
        return "<" + ", ".join(self.type(ty) for ty in types) + ">"

    def type(self, ty: Type) -> str:
        if isinstance(ty, PrimitiveType):
            return ty.name
        if isinstance(ty, VectorType):
            return f"vector<{self.type(ty.element)}>"
        if isinstance(ty, ReferenceType):
            prefix = "&mut " if ty.mutable else "&"
            return prefix + self.type(ty.inner)
        if isinstance(ty, TypeParameter):
            return type_parameter_name(ty.index)
        if isinstance(ty, StructType):
            return self.struct_name(ty.handle) + self.type_arguments(ty.type_arguments)
        raise TypeError(f"not a type: {ty!r}")

    def types(self, types: Sequence[Type]) -> str:
        return ", ".join(self.type(ty) for ty in types)

    def return_types(self, types: Sequence[Type]) -> str:
        if not types:
            return ""
        if len(types) == 1:
            return ": " + self.type(types[0])
        return ": (" + self.types(types) + ")"

    # ------------------------------------------------------------------
    # Type parameter lists
    # ------------------------------------------------------------------

    def function_type_parameters(self, constraints: Sequence[AbilitySet]) -> str:
        if not constraints:
            return ""
        parts = [type_parameter_name(i) + _constraint(c) for i, c in enumerate(constraints)]
        return "<" + ", ".join(parts) + ">"

    def struct_type_parameters(self, handle: StructHandle) -> str:
        if not handle.type_parameters:
            return ""
        parts = []
        for index, param in enumerate(handle.type_parameters):
            prefix = "phantom " if param.is_phantom else ""
            parts.append(prefix + type_parameter_name(index) + _constraint(param.constraints))
        return "<" + ", ".join(parts) + ">"

    # ------------------------------------------------------------------
    # Literals
    # ------------------------------------------------------------------

    def literal(self, literal: Literal) -> str:
        return self.value(literal.type, literal.value)

    def value(self, ty: Type, value: Any) -> str:
        if isinstance(ty, PrimitiveType):
            if ty.is_integer:
                return f"{value}{ty.name}"
            if ty.name == "bool":
                return "true" if value else "false"
            if ty.name == "address":
                return "@" + format_address(value)
        if isinstance(ty, VectorType):
            if ty.element == PrimitiveType("u8"):
                return 'x"' + bytes(value).hex() + '"'
            return "vector[" + ", ".join(self.value(ty.element, item) for item in value) + "]"
        return repr(value)
