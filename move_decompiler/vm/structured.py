"""Reference interpreter executing the structured region tree.

Running a function through this interpreter and through
:class:`~move_decompiler.vm.interpreter.BytecodeInterpreter` on the same
inputs must give the same results, the same aborts and the same storage.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..bytecode.model import CompiledModule
from ..bytecode.types import Type
from ..exceptions import VMAbort, VMError
from ..lifter.ir import (
    Abort,
    Assign,
    CondJump,
    Discard,
    Effect,
    Jump,
    Literal,
    LocalRead,
    Operation,
    Return,
    StoreLocal,
    Temp,
)
from ..lifter.runner import FunctionResult
from ..lifter.structurer import Break, Continue, If, LabeledBlock, Loop, Sequential, StructuredBody
from .interpreter import DEFAULT_MAX_STEPS, InterpreterBase
from .ops import Frame, apply
from .values import GlobalStorage, from_constant, read, take

__all__ = ["StructuredInterpreter"]


class _Return(Exception):
    def __init__(self, values: List[Any]) -> None:
        super().__init__("return")
        self.values = values


class _Break(Exception):
    def __init__(self, label: str) -> None:
        super().__init__(label)
        self.label = label


class _Continue(Exception):
    def __init__(self, label: str) -> None:
        super().__init__(label)
        self.label = label


class _Activation:
    def __init__(self, frame: Frame) -> None:
        self.frame = frame
        self.temps: Dict[int, Any] = {}


class StructuredInterpreter(InterpreterBase):
    """Executes :class:`StructuredBody` trees produced by the structurer."""

    def __init__(
        self,
        module: CompiledModule,
        bodies: Mapping[int, StructuredBody],
        storage: Optional[GlobalStorage] = None,
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        super().__init__(module, storage, max_steps=max_steps)
        self.bodies = dict(bodies)

    @classmethod
    def from_results(
        cls,
        module: CompiledModule,
        results: Sequence[FunctionResult],
        storage: Optional[GlobalStorage] = None,
        **kwargs: Any,
    ) -> "StructuredInterpreter":
        bodies = {r.index: r.body for r in results if r.body is not None}
        return cls(module, bodies, storage, **kwargs)

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def _invoke(self, index: int, type_arguments: Tuple[Type, ...], args: List[Any]) -> List[Any]:
        fdef = self.module.function_defs[index]
        body = self.bodies.get(index)
        if body is None:
            raise VMError(f"no structured body for {self.module.function_name(fdef)}")
        act = _Activation(self._new_frame(fdef, type_arguments, args))
        try:
            if body.structured:
                self._sequence(act, body.root)
            else:
                self._dispatch(act, body.root.items)
        except _Return as ret:
            return ret.values
        raise VMError(f"{self.module.function_name(fdef)} finished without returning")

    # ------------------------------------------------------------------
    # Operands and statements
    # ------------------------------------------------------------------

    def _operand(self, act: _Activation, value: Any) -> Any:
        if isinstance(value, Temp):
            return act.temps.pop(value.index)
        if isinstance(value, LocalRead):
            if value.move:
                return take(act.frame.locals, value.local)
            return read(act.frame.locals[value.local], value.local)
        if isinstance(value, Literal):
            return from_constant(value.type, value.value)
        raise VMError(f"not an operand: {value!r}")

    def _evaluate(self, act: _Activation, expr: Any) -> List[Any]:
        if isinstance(expr, Operation):
            args = [self._operand(act, op) for op in expr.operands]
            return apply(self, act.frame, expr.instruction, args)
        return [self._operand(act, expr)]

    def _statement(self, act: _Activation, stmt: Any) -> None:
        self._tick()
        if isinstance(stmt, Assign):
            values = self._evaluate(act, stmt.expr)
            for target, value in zip(stmt.targets, values):
                if target is not None:
                    act.temps[target.index] = value
        elif isinstance(stmt, StoreLocal):
            act.frame.locals[stmt.local] = self._operand(act, stmt.value)
        elif isinstance(stmt, Effect):
            self._evaluate(act, stmt.expr)
        elif isinstance(stmt, Discard):
            self._operand(act, stmt.value)
        elif isinstance(stmt, Return):
            raise _Return([self._operand(act, v) for v in stmt.values])
        elif isinstance(stmt, Abort):
            raise VMAbort(self._operand(act, stmt.code).value)
        else:
            raise VMError(f"unexpected statement {stmt!r}")

    # ------------------------------------------------------------------
    # Region tree
    # ------------------------------------------------------------------

    def _sequence(self, act: _Activation, seq: Sequential) -> None:
        for node in seq.items:
            self._node(act, node)

    def _node(self, act: _Activation, node: Any) -> None:
        if isinstance(node, Sequential):
            self._sequence(act, node)
        elif isinstance(node, If):
            if self._operand(act, node.condition):
                self._sequence(act, node.then)
            else:
                self._sequence(act, node.otherwise)
        elif isinstance(node, Loop):
            self._loop(act, node)
        elif isinstance(node, Break):
            raise _Break(node.label)
        elif isinstance(node, Continue):
            raise _Continue(node.label)
        else:
            self._statement(act, node)

    def _loop(self, act: _Activation, loop: Loop) -> None:
        while True:
            self._tick()
            try:
                if loop.guard is not None:
                    for stmt in loop.guard.prelude:
                        self._statement(act, stmt)
                    if bool(self._operand(act, loop.guard.condition)) == loop.guard.negated:
                        return
                self._sequence(act, loop.body)
            except _Break as exc:
                if exc.label != loop.label:
                    raise
                return
            except _Continue as exc:
                if exc.label != loop.label:
                    raise

    def _dispatch(self, act: _Activation, blocks: Sequence[LabeledBlock]) -> None:
        by_id = {block.block: block for block in blocks}
        current = blocks[0].block
        while True:
            self._tick()
            block = by_id[current]
            for stmt in block.statements:
                self._statement(act, stmt)
            term = block.terminator
            if isinstance(term, Jump):
                current = term.target
            elif isinstance(term, CondJump):
                current = term.true_target if self._operand(act, term.condition) else term.false_target
            else:
                self._statement(act, term)
