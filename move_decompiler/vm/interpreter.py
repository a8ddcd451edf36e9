"""Reference interpreter executing raw bytecode on an operand stack."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple, Union

from ..bytecode.model import CompiledModule, FunctionDef
from ..bytecode.opcodes import Opcode, stack_effect
from ..bytecode.types import Type
from ..exceptions import VMAbort, VMError
from .ops import Frame, apply
from .values import GlobalStorage, Integer, read, take

LOG = logging.getLogger(__name__)

__all__ = ["BytecodeInterpreter", "InterpreterBase", "DEFAULT_MAX_STEPS"]

DEFAULT_MAX_STEPS = 100_000


class InterpreterBase:
    """Function lookup and call dispatch shared by both interpreters."""

    def __init__(
        self,
        module: CompiledModule,
        storage: Optional[GlobalStorage] = None,
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        self.module = module
        self.storage = storage if storage is not None else GlobalStorage()
        self.max_steps = max_steps
        self.steps = 0

    def function_index(self, function: Union[int, str]) -> int:
        if isinstance(function, int):
            return function
        for index, fdef in enumerate(self.module.function_defs):
            if self.module.function_name(fdef) == function:
                return index
        raise VMError(f"no function named {function!r}")

    def run(
        self,
        function: Union[int, str],
        args: Sequence[Any],
        type_arguments: Tuple[Type, ...] = (),
    ) -> List[Any]:
        """Execute ``function`` with ``args`` and return its results."""

        index = self.function_index(function)
        self.steps = 0
        return self._invoke(index, type_arguments, list(args))

    def call(self, handle_index: int, type_arguments: Tuple[Type, ...], args: List[Any]) -> List[Any]:
        handle = self.module.function_handles[handle_index]
        if not self.module.is_self_module(handle.module):
            raise VMError(f"cannot call external function {handle.name}")
        for index, fdef in enumerate(self.module.function_defs):
            if fdef.function == handle_index:
                return self._invoke(index, type_arguments, args)
        raise VMError(f"function {handle.name} has no definition")

    def _new_frame(self, fdef: FunctionDef, type_arguments: Tuple[Type, ...], args: List[Any]) -> Frame:
        if fdef.code is None:
            raise VMError(f"cannot execute native function {self.module.function_name(fdef)}")
        slots = len(self.module.local_types(fdef))
        return Frame(list(args) + [None] * (slots - len(args)), tuple(type_arguments))

    def _tick(self) -> None:
        self.steps += 1
        if self.steps > self.max_steps:
            raise VMError(f"step limit of {self.max_steps} exceeded")

    def _invoke(self, index: int, type_arguments: Tuple[Type, ...], args: List[Any]) -> List[Any]:
        raise NotImplementedError


class BytecodeInterpreter(InterpreterBase):
    """Executes instructions one by one, exactly as the bytecode says."""

    def _invoke(self, index: int, type_arguments: Tuple[Type, ...], args: List[Any]) -> List[Any]:
        fdef = self.module.function_defs[index]
        frame = self._new_frame(fdef, type_arguments, args)
        instructions = fdef.code.instructions
        returns = len(self.module.returns(fdef))
        stack: List[Any] = []
        pc = 0
        while True:
            self._tick()
            instr = instructions[pc]
            opcode = instr.opcode
            pc += 1
            if opcode is Opcode.COPY_LOC:
                stack.append(read(frame.locals[instr.operand], instr.operand))
            elif opcode is Opcode.MOVE_LOC:
                stack.append(take(frame.locals, instr.operand))
            elif opcode is Opcode.ST_LOC:
                frame.locals[instr.operand] = stack.pop()
            elif opcode is Opcode.POP:
                stack.pop()
            elif opcode is Opcode.NOP:
                pass
            elif opcode is Opcode.BRANCH:
                pc = instr.operand
            elif opcode is Opcode.BR_TRUE:
                if stack.pop():
                    pc = instr.operand
            elif opcode is Opcode.BR_FALSE:
                if not stack.pop():
                    pc = instr.operand
            elif opcode is Opcode.RET:
                results = stack[len(stack) - returns:] if returns else []
                return results
            elif opcode is Opcode.ABORT:
                code: Integer = stack.pop()
                raise VMAbort(code.value)
            else:
                pops, _ = stack_effect(self.module, instr, function_returns=returns, offset=pc - 1)
                args_in = stack[len(stack) - pops:] if pops else []
                del stack[len(stack) - pops:]
                stack.extend(apply(self, frame, instr, args_in))
