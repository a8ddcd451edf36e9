"""Stackless IR: named temporaries, statements and block terminators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

from ..bytecode.model import Instruction
from ..bytecode.types import Type

__all__ = [
    "Temp",
    "LocalRead",
    "Literal",
    "Operand",
    "Operation",
    "Expr",
    "Assign",
    "StoreLocal",
    "Effect",
    "Discard",
    "Statement",
    "Jump",
    "CondJump",
    "Return",
    "Abort",
    "BlockTerminator",
    "BlockCode",
    "TranslatedFunction",
]


@dataclass(frozen=True)
class Temp:
    """A temporary ``v<index>``, bound exactly once."""

    index: int

    def __str__(self) -> str:
        return f"v{self.index}"


@dataclass(frozen=True)
class LocalRead:
    """A ``copy(x)`` or ``move(x)`` of a local slot, kept inline."""

    local: int
    move: bool = False


@dataclass(frozen=True)
class Literal:
    type: Type
    value: Any


Operand = Union[Temp, LocalRead, Literal]


@dataclass(frozen=True)
class Operation:
    """One bytecode instruction applied to its operands in push order."""

    instruction: Instruction
    operands: Tuple[Operand, ...]
    offset: int


Expr = Union[Operation, Temp, LocalRead, Literal]


@dataclass(frozen=True)
class Assign:
    """``let (targets) = expr``; a ``None`` target is the discard ``_``."""

    targets: Tuple[Optional[Temp], ...]
    expr: Expr


@dataclass(frozen=True)
class StoreLocal:
    local: int
    value: Operand


@dataclass(frozen=True)
class Effect:
    """An operation with no results, kept for its side effects."""

    expr: Operation


@dataclass(frozen=True)
class Discard:
    value: Operand


Statement = Union[Assign, StoreLocal, Effect, Discard]


@dataclass(frozen=True)
class Jump:
    target: int


@dataclass(frozen=True)
class CondJump:
    condition: Operand
    true_target: int
    false_target: int


@dataclass(frozen=True)
class Return:
    values: Tuple[Operand, ...]


@dataclass(frozen=True)
class Abort:
    code: Operand


BlockTerminator = Union[Jump, CondJump, Return, Abort]


@dataclass
class BlockCode:
    block_id: int
    statements: List[Statement] = field(default_factory=list)
    terminator: Optional[BlockTerminator] = None


@dataclass
class TranslatedFunction:
    """Stackless form of one function, blocks in CFG order."""

    name: str
    blocks: List[BlockCode]
    temp_count: int
    parameter_count: int
    local_types: Tuple[Type, ...]

    def block(self, block_id: int) -> BlockCode:
        return self.blocks[block_id]
