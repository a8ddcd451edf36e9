"""Custom exception hierarchy for the decompiler."""

from __future__ import annotations

from typing import Optional


class DecompilerError(Exception):
    """Base class for all decompilation related errors."""


class LoadError(DecompilerError):
    """Raised when a module description cannot be turned into a module."""


class FunctionDecompileError(DecompilerError):
    """An error confined to a single function.

    ``function`` is filled in by the runner once the failing function is known;
    ``offset`` is the bytecode offset of the offending instruction, if any.
    """

    def __init__(self, message: str, offset: Optional[int] = None, function: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.offset = offset
        self.function = function

    def __str__(self) -> str:
        where = []
        if self.function:
            where.append(f"function {self.function}")
        if self.offset is not None:
            where.append(f"offset {self.offset}")
        if where:
            return f"{self.message} ({', '.join(where)})"
        return self.message


class UnsupportedInstruction(FunctionDecompileError):
    """Raised for opcodes the translator has no stack effect for."""

    def __init__(self, opcode: str, offset: Optional[int] = None, function: Optional[str] = None) -> None:
        super().__init__(f"unsupported instruction {opcode}", offset, function)
        self.opcode = opcode


class MalformedStackEffect(FunctionDecompileError):
    """Raised on abstract stack underflow or a non-empty stack at a block end."""


class InvalidControlFlow(FunctionDecompileError):
    """Raised for branch targets outside the code or code falling off its end."""


class VMError(DecompilerError):
    """Raised when a reference interpreter cannot continue."""


class VMAbort(VMError):
    """Execution aborted with a Move abort code."""

    def __init__(self, code: int) -> None:
        super().__init__(f"aborted with code {code}")
        self.code = code


__all__ = [
    "DecompilerError",
    "LoadError",
    "FunctionDecompileError",
    "UnsupportedInstruction",
    "MalformedStackEffect",
    "InvalidControlFlow",
    "VMError",
    "VMAbort",
]
