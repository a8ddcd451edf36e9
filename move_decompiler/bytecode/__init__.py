"""Compiled-module data model, signature types and the opcode table."""

from .model import (
    CodeUnit,
    CompiledModule,
    Constant,
    FieldDef,
    FieldHandle,
    FieldInstantiation,
    FunctionDef,
    FunctionHandle,
    FunctionInstantiation,
    Instruction,
    ModuleHandle,
    StructDef,
    StructHandle,
    StructInstantiation,
    StructTypeParameter,
    Visibility,
)
from .opcodes import Opcode, stack_effect
from .types import Ability, Type

__all__ = [
    "Ability",
    "CodeUnit",
    "CompiledModule",
    "Constant",
    "FieldDef",
    "FieldHandle",
    "FieldInstantiation",
    "FunctionDef",
    "FunctionHandle",
    "FunctionInstantiation",
    "Instruction",
    "ModuleHandle",
    "Opcode",
    "StructDef",
    "StructHandle",
    "StructInstantiation",
    "StructTypeParameter",
    "Type",
    "Visibility",
    "stack_effect",
]
