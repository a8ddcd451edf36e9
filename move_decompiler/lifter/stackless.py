"""Translate stack bytecode into named-value statements, one block at a time.

Every block starts and ends with an empty abstract stack.  Local reads and
literal loads stay inline as operands; every other value-producing instruction
binds fresh temporaries in a single statement.  Inline local reads still on the
stack are bound to temporaries before any instruction that may overwrite the
local, which keeps every read in bytecode order.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..bytecode.bcs import decode_constant
from ..bytecode.model import CompiledModule, FunctionDef, Instruction
from ..bytecode.opcodes import (
    LOAD_LITERAL_WIDTHS,
    LOCAL_WRITING_OPCODES,
    TERMINATOR_OPCODES,
    Opcode,
    stack_effect,
)
from ..bytecode.types import BOOL, PrimitiveType
from ..exceptions import MalformedStackEffect
from .cfg import CFG, BasicBlock
from .ir import (
    Abort,
    Assign,
    BlockCode,
    CondJump,
    Discard,
    Effect,
    Jump,
    Literal,
    LocalRead,
    Operand,
    Operation,
    Return,
    StoreLocal,
    Temp,
    TranslatedFunction,
)

LOG = logging.getLogger(__name__)

__all__ = ["AbstractStack", "StacklessTranslator", "translate_function"]


class AbstractStack:
    """Operand stack of pending values inside one block."""

    def __init__(self) -> None:
        self._items: List[Operand] = []

    def __len__(self) -> int:
        return len(self._items)

    def push(self, value: Operand) -> None:
        self._items.append(value)

    def pop_many(self, count: int, offset: int) -> List[Operand]:
        """Pop ``count`` values, returned in push order."""

        if count > len(self._items):
            raise MalformedStackEffect(
                f"stack underflow: need {count} values, have {len(self._items)}", offset
            )
        if count == 0:
            return []
        values = self._items[-count:]
        del self._items[-count:]
        return values

    def replace(self, index: int, value: Operand) -> None:
        self._items[index] = value

    def items(self) -> List[Operand]:
        return list(self._items)


class StacklessTranslator:
    """Per-function translator; the temporary counter spans all blocks."""

    def __init__(self, module: CompiledModule, fdef: FunctionDef) -> None:
        self._module = module
        self._fdef = fdef
        self._returns = len(module.returns(fdef))
        self._next_temp = 0

    def translate(self, cfg: CFG) -> TranslatedFunction:
        blocks = [self._translate_block(block) for block in cfg.blocks]
        return TranslatedFunction(
            name=self._module.function_name(self._fdef),
            blocks=blocks,
            temp_count=self._next_temp,
            parameter_count=len(self._module.parameters(self._fdef)),
            local_types=self._module.local_types(self._fdef),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fresh(self) -> Temp:
        temp = Temp(self._next_temp)
        self._next_temp += 1
        return temp

    def _flush(self, stack: AbstractStack, code: BlockCode, local: Optional[int] = None) -> None:
        """Bind pending local reads (of ``local``, or all) to temporaries."""

        for index, value in enumerate(stack.items()):
            if isinstance(value, LocalRead) and (local is None or value.local == local):
                temp = self._fresh()
                code.statements.append(Assign((temp,), value))
                stack.replace(index, temp)

    def _literal(self, instr: Instruction) -> Optional[Literal]:
        opcode = instr.opcode
        width = LOAD_LITERAL_WIDTHS.get(opcode)
        if width is not None:
            return Literal(PrimitiveType(f"u{width}"), instr.operand)
        if opcode is Opcode.LD_TRUE:
            return Literal(BOOL, True)
        if opcode is Opcode.LD_FALSE:
            return Literal(BOOL, False)
        if opcode is Opcode.LD_CONST:
            constant = self._module.constants[instr.operand]
            return Literal(constant.type, decode_constant(constant.type, constant.data))
        return None

    def _discarded_pops(self, instructions: Sequence[Instruction], index: int, pushes: int) -> int:
        count = 0
        cursor = index + 1
        while count < pushes and cursor < len(instructions) and instructions[cursor].opcode is Opcode.POP:
            count += 1
            cursor += 1
        return count

    # ------------------------------------------------------------------
    # Block translation
    # ------------------------------------------------------------------

    def _translate_block(self, block: BasicBlock) -> BlockCode:
        code = BlockCode(block.id)
        stack = AbstractStack()
        instructions = block.instructions
        skip = 0
        for index, instr in enumerate(instructions):
            if skip:
                skip -= 1
                continue
            offset = block.start + index
            opcode = instr.opcode
            pops, pushes = stack_effect(
                self._module, instr, function_returns=self._returns, offset=offset
            )

            if opcode in (Opcode.COPY_LOC, Opcode.MOVE_LOC):
                stack.push(LocalRead(instr.operand, move=opcode is Opcode.MOVE_LOC))
                continue
            literal = self._literal(instr)
            if literal is not None:
                stack.push(literal)
                continue
            if opcode is Opcode.NOP:
                continue
            if opcode is Opcode.POP:
                (value,) = stack.pop_many(1, offset)
                if isinstance(value, LocalRead):
                    code.statements.append(Discard(value))
                continue
            if opcode is Opcode.ST_LOC:
                self._flush(stack, code, instr.operand)
                (value,) = stack.pop_many(1, offset)
                code.statements.append(StoreLocal(instr.operand, value))
                continue
            if opcode in LOCAL_WRITING_OPCODES:
                self._flush(stack, code)

            if opcode in TERMINATOR_OPCODES:
                operands = stack.pop_many(pops, offset)
                code.terminator = self._terminator(block, opcode, operands)
                if len(stack):
                    raise MalformedStackEffect(
                        f"{len(stack)} values left on the stack at block end", offset
                    )
                continue

            operands = tuple(stack.pop_many(pops, offset))
            operation = Operation(instr, operands, offset)
            if pushes == 0:
                code.statements.append(Effect(operation))
                continue
            dropped = self._discarded_pops(instructions, index, pushes)
            skip = dropped
            targets = []
            for position in range(pushes):
                if position >= pushes - dropped:
                    targets.append(None)
                else:
                    temp = self._fresh()
                    targets.append(temp)
                    stack.push(temp)
            code.statements.append(Assign(tuple(targets), operation))

        if code.terminator is None:
            # Implicit fall-through into the next block.
            if len(stack):
                raise MalformedStackEffect(
                    f"{len(stack)} values left on the stack at block end", block.end - 1
                )
            code.terminator = Jump(block.terminator.target)
        return code

    def _terminator(self, block: BasicBlock, opcode: Opcode, operands: List[Operand]):
        term = block.terminator
        if opcode is Opcode.BRANCH:
            return Jump(term.target)
        if opcode in (Opcode.BR_TRUE, Opcode.BR_FALSE):
            return CondJump(operands[0], term.true_target, term.false_target)
        if opcode is Opcode.RET:
            return Return(tuple(operands))
        return Abort(operands[0])


def translate_function(module: CompiledModule, fdef: FunctionDef, cfg: CFG) -> TranslatedFunction:
    """Translate every block of ``cfg`` into stackless statements."""

    translated = StacklessTranslator(module, fdef).translate(cfg)
    LOG.debug("Translated %s into %d temporaries", translated.name, translated.temp_count)
    return translated
