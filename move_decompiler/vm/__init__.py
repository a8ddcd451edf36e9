"""Reference interpreters for raw bytecode and structured output."""

from .interpreter import BytecodeInterpreter
from .structured import StructuredInterpreter
from .values import Address, GlobalStorage, Integer, Signer, StructValue

__all__ = [
    "Address",
    "BytecodeInterpreter",
    "GlobalStorage",
    "Integer",
    "Signer",
    "StructValue",
    "StructuredInterpreter",
]
