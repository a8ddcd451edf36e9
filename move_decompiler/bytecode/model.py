"""In-memory table form of a compiled Move module.

The loader (:mod:`move_decompiler.io.loader`) produces these objects; every
pipeline stage treats them as read-only.  Cross references are plain indices
into the pools held by :class:`CompiledModule`, mirroring the binary format.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .opcodes import Opcode
from .types import AbilitySet, Type

__all__ = [
    "Visibility",
    "ModuleHandle",
    "StructTypeParameter",
    "StructHandle",
    "FieldDef",
    "StructDef",
    "FieldHandle",
    "FunctionHandle",
    "Instruction",
    "CodeUnit",
    "FunctionDef",
    "Constant",
    "StructInstantiation",
    "FunctionInstantiation",
    "FieldInstantiation",
    "CompiledModule",
]


class Visibility(enum.Enum):
    PRIVATE = "private"
    PUBLIC = "public"
    FRIEND = "friend"


@dataclass(frozen=True)
class ModuleHandle:
    address: int
    name: str


@dataclass(frozen=True)
class StructTypeParameter:
    constraints: AbilitySet = frozenset()
    is_phantom: bool = False


@dataclass(frozen=True)
class StructHandle:
    module: int
    name: str
    abilities: AbilitySet = frozenset()
    type_parameters: Tuple[StructTypeParameter, ...] = ()


@dataclass(frozen=True)
class FieldDef:
    name: str
    type: Type


@dataclass(frozen=True)
class StructDef:
    """A struct declared by this module; ``fields`` is ``None`` for natives."""

    handle: int
    fields: Optional[Tuple[FieldDef, ...]] = ()

    @property
    def is_native(self) -> bool:
        return self.fields is None


@dataclass(frozen=True)
class FieldHandle:
    owner: int
    field: int


@dataclass(frozen=True)
class FunctionHandle:
    module: int
    name: str
    parameters: int
    returns: int
    type_parameters: Tuple[AbilitySet, ...] = ()


@dataclass(frozen=True)
class Instruction:
    """One bytecode instruction: an opcode plus its raw operands."""

    opcode: Opcode
    operands: Tuple[int, ...] = ()

    @property
    def operand(self) -> int:
        return self.operands[0]

    def __str__(self) -> str:
        if not self.operands:
            return self.opcode.value
        args = ", ".join(str(op) for op in self.operands)
        return f"{self.opcode.value}({args})"


@dataclass(frozen=True)
class CodeUnit:
    locals: int
    instructions: Tuple[Instruction, ...] = ()


@dataclass(frozen=True)
class FunctionDef:
    function: int
    visibility: Visibility = Visibility.PRIVATE
    is_entry: bool = False
    acquires: Tuple[int, ...] = ()
    code: Optional[CodeUnit] = None

    @property
    def is_native(self) -> bool:
        return self.code is None


@dataclass(frozen=True)
class Constant:
    type: Type
    data: bytes


@dataclass(frozen=True)
class StructInstantiation:
    definition: int
    type_parameters: int


@dataclass(frozen=True)
class FunctionInstantiation:
    handle: int
    type_parameters: int


@dataclass(frozen=True)
class FieldInstantiation:
    handle: int
    type_parameters: int


@dataclass(frozen=True)
class CompiledModule:
    """Read-only view of one compiled module."""

    version: int
    module_handles: Tuple[ModuleHandle, ...]
    struct_handles: Tuple[StructHandle, ...] = ()
    field_handles: Tuple[FieldHandle, ...] = ()
    function_handles: Tuple[FunctionHandle, ...] = ()
    struct_defs: Tuple[StructDef, ...] = ()
    function_defs: Tuple[FunctionDef, ...] = ()
    signatures: Tuple[Tuple[Type, ...], ...] = ()
    constants: Tuple[Constant, ...] = ()
    address_identifiers: Tuple[int, ...] = ()
    struct_instantiations: Tuple[StructInstantiation, ...] = ()
    function_instantiations: Tuple[FunctionInstantiation, ...] = ()
    field_instantiations: Tuple[FieldInstantiation, ...] = ()
    friends: Tuple[ModuleHandle, ...] = field(default=())

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def self_handle(self) -> ModuleHandle:
        return self.module_handles[0]

    @property
    def address(self) -> int:
        return self.self_handle.address

    @property
    def name(self) -> str:
        return self.self_handle.name

    def is_self_module(self, module_index: int) -> bool:
        return self.module_handles[module_index] == self.self_handle

    # ------------------------------------------------------------------
    # Struct lookups
    # ------------------------------------------------------------------

    def struct_handle_for_def(self, def_index: int) -> StructHandle:
        return self.struct_handles[self.struct_defs[def_index].handle]

    def struct_name(self, def_index: int) -> str:
        return self.struct_handle_for_def(def_index).name

    def struct_def_for_handle(self, handle_index: int) -> Optional[int]:
        for index, sdef in enumerate(self.struct_defs):
            if sdef.handle == handle_index:
                return index
        return None

    def struct_instantiation(self, index: int) -> Tuple[int, Tuple[Type, ...]]:
        inst = self.struct_instantiations[index]
        return inst.definition, self.signatures[inst.type_parameters]

    def field(self, field_handle_index: int) -> Tuple[int, FieldDef]:
        handle = self.field_handles[field_handle_index]
        sdef = self.struct_defs[handle.owner]
        return handle.owner, (sdef.fields or ())[handle.field]

    def field_instantiation(self, index: int) -> Tuple[int, Tuple[Type, ...]]:
        inst = self.field_instantiations[index]
        return inst.handle, self.signatures[inst.type_parameters]

    # ------------------------------------------------------------------
    # Function lookups
    # ------------------------------------------------------------------

    def function_handle_for_def(self, fdef: FunctionDef) -> FunctionHandle:
        return self.function_handles[fdef.function]

    def function_name(self, fdef: FunctionDef) -> str:
        return self.function_handle_for_def(fdef).name

    def function_instantiation(self, index: int) -> Tuple[int, Tuple[Type, ...]]:
        inst = self.function_instantiations[index]
        return inst.handle, self.signatures[inst.type_parameters]

    def function_def_for_handle(self, handle_index: int) -> Optional[FunctionDef]:
        for fdef in self.function_defs:
            if fdef.function == handle_index:
                return fdef
        return None

    def parameters(self, fdef: FunctionDef) -> Tuple[Type, ...]:
        return self.signatures[self.function_handle_for_def(fdef).parameters]

    def returns(self, fdef: FunctionDef) -> Tuple[Type, ...]:
        return self.signatures[self.function_handle_for_def(fdef).returns]

    def local_types(self, fdef: FunctionDef) -> Tuple[Type, ...]:
        """Return the types of every local slot: parameters, then locals."""

        params = self.parameters(fdef)
        if fdef.code is None:
            return params
        return params + self.signatures[fdef.code.locals]
