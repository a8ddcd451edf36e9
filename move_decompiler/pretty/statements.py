"""Rendering of stackless statements and expressions as source text."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from ..bytecode.model import CompiledModule, Instruction
from ..bytecode.opcodes import BINARY_OPERATORS, CAST_WIDTHS, Opcode
from ..bytecode.types import Type
from ..lifter.ir import (
    Abort,
    Assign,
    CondJump,
    Discard,
    Effect,
    Expr,
    Jump,
    Literal,
    LocalRead,
    Operand,
    Operation,
    Return,
    Statement,
    StoreLocal,
    Temp,
)
from .types import TypePrinter, format_address, local_name

__all__ = ["StatementRenderer", "block_label"]

_BORROW_GLOBAL = {
    Opcode.EXISTS: "exists",
    Opcode.EXISTS_GENERIC: "exists",
    Opcode.MUT_BORROW_GLOBAL: "borrow_global_mut",
    Opcode.MUT_BORROW_GLOBAL_GENERIC: "borrow_global_mut",
    Opcode.IMM_BORROW_GLOBAL: "borrow_global",
    Opcode.IMM_BORROW_GLOBAL_GENERIC: "borrow_global",
    Opcode.MOVE_FROM: "move_from",
    Opcode.MOVE_FROM_GENERIC: "move_from",
    Opcode.MOVE_TO: "move_to",
    Opcode.MOVE_TO_GENERIC: "move_to",
}

_VECTOR_CALLS = {
    Opcode.VEC_LEN: "length",
    Opcode.VEC_IMM_BORROW: "borrow",
    Opcode.VEC_MUT_BORROW: "borrow_mut",
    Opcode.VEC_PUSH_BACK: "push_back",
    Opcode.VEC_POP_BACK: "pop_back",
    Opcode.VEC_SWAP: "swap",
}

_GENERIC_STRUCT_OPS = {
    Opcode.PACK_GENERIC,
    Opcode.UNPACK_GENERIC,
    Opcode.EXISTS_GENERIC,
    Opcode.MUT_BORROW_GLOBAL_GENERIC,
    Opcode.IMM_BORROW_GLOBAL_GENERIC,
    Opcode.MOVE_FROM_GENERIC,
    Opcode.MOVE_TO_GENERIC,
}


def block_label(block_id: int) -> str:
    return f"b{block_id}"


class StatementRenderer:
    """Turns IR of one function into lines of source."""

    def __init__(self, module: CompiledModule, types: TypePrinter, parameter_count: int) -> None:
        self._module = module
        self._types = types
        self._parameter_count = parameter_count

    # ------------------------------------------------------------------
    # Operands
    # ------------------------------------------------------------------

    def local(self, slot: int) -> str:
        return local_name(slot, self._parameter_count)

    def operand(self, value: Operand) -> str:
        if isinstance(value, Temp):
            return str(value)
        if isinstance(value, LocalRead):
            kind = "move" if value.move else "copy"
            return f"{kind}({self.local(value.local)})"
        if isinstance(value, Literal):
            return self._types.literal(value)
        raise TypeError(f"not an operand: {value!r}")

    def _args(self, values: Sequence[Operand]) -> str:
        return ", ".join(self.operand(v) for v in values)

    # ------------------------------------------------------------------
    # Module references
    # ------------------------------------------------------------------

    def _struct(self, instr: Instruction) -> Tuple[str, Tuple[Type, ...], int]:
        def_index = instr.operand
        type_args: Tuple[Type, ...] = ()
        if instr.opcode in _GENERIC_STRUCT_OPS:
            def_index, type_args = self._module.struct_instantiation(instr.operand)
        handle_index = self._module.struct_defs[def_index].handle
        return self._types.struct_name(handle_index), type_args, def_index

    def _field(self, instr: Instruction) -> str:
        handle_index = instr.operand
        if instr.opcode in (Opcode.MUT_BORROW_FIELD_GENERIC, Opcode.IMM_BORROW_FIELD_GENERIC):
            handle_index, _ = self._module.field_instantiation(instr.operand)
        _, fdef = self._module.field(handle_index)
        return fdef.name

    def _callee(self, instr: Instruction) -> str:
        handle_index = instr.operand
        type_args: Tuple[Type, ...] = ()
        if instr.opcode is Opcode.CALL_GENERIC:
            handle_index, type_args = self._module.function_instantiation(instr.operand)
        handle = self._module.function_handles[handle_index]
        name = handle.name
        if not self._module.is_self_module(handle.module):
            owner = self._module.module_handles[handle.module]
            name = f"{format_address(owner.address)}::{owner.name}::{name}"
        return name + self._types.type_arguments(type_args)

    def _vector_element(self, instr: Instruction) -> str:
        signature = self._module.signatures[instr.operand]
        return self._types.type(signature[0]) if signature else "_"

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def expr(self, expr: Expr) -> str:
        if not isinstance(expr, Operation):
            return self.operand(expr)
        instr = expr.instruction
        opcode = instr.opcode
        ops = expr.operands

        operator = BINARY_OPERATORS.get(opcode)
        if operator is not None:
            return f"{self.operand(ops[0])} {operator} {self.operand(ops[1])}"
        width = CAST_WIDTHS.get(opcode)
        if width is not None:
            return f"({self.operand(ops[0])} as u{width})"
        if opcode is Opcode.NOT:
            return f"!{self.operand(ops[0])}"
        if opcode is Opcode.READ_REF:
            return f"*{self.operand(ops[0])}"
        if opcode is Opcode.WRITE_REF:
            return f"*{self.operand(ops[1])} = {self.operand(ops[0])}"
        if opcode is Opcode.FREEZE_REF:
            return f"freeze({self.operand(ops[0])})"
        if opcode is Opcode.MUT_BORROW_LOC:
            return f"&mut {self.local(instr.operand)}"
        if opcode is Opcode.IMM_BORROW_LOC:
            return f"&{self.local(instr.operand)}"
        if opcode in (Opcode.MUT_BORROW_FIELD, Opcode.MUT_BORROW_FIELD_GENERIC):
            return f"&mut {self.operand(ops[0])}.{self._field(instr)}"
        if opcode in (Opcode.IMM_BORROW_FIELD, Opcode.IMM_BORROW_FIELD_GENERIC):
            return f"&{self.operand(ops[0])}.{self._field(instr)}"
        if opcode in (Opcode.CALL, Opcode.CALL_GENERIC):
            return f"{self._callee(instr)}({self._args(ops)})"
        if opcode in (Opcode.PACK, Opcode.PACK_GENERIC):
            name, type_args, def_index = self._struct(instr)
            fields = self._module.struct_defs[def_index].fields or ()
            inner = ", ".join(f"{f.name}: {self.operand(v)}" for f, v in zip(fields, ops))
            head = name + self._types.type_arguments(type_args)
            return f"{head} {{ {inner} }}" if inner else f"{head} {{}}"
        if opcode in (Opcode.UNPACK, Opcode.UNPACK_GENERIC):
            # Only reached for a statement-less rendering; see ``statement``.
            return self.operand(ops[0])
        if opcode in _BORROW_GLOBAL:
            name, type_args, _ = self._struct(instr)
            head = _BORROW_GLOBAL[opcode] + "<" + name + self._types.type_arguments(type_args) + ">"
            return f"{head}({self._args(ops)})"
        if opcode is Opcode.VEC_PACK:
            return f"vector<{self._vector_element(instr)}>[{self._args(ops)}]"
        if opcode is Opcode.VEC_UNPACK:
            func = "destroy_empty" if instr.operands[1] == 0 else "unpack"
            return f"vector::{func}<{self._vector_element(instr)}>({self._args(ops)})"
        call = _VECTOR_CALLS.get(opcode)
        if call is not None:
            return f"vector::{call}<{self._vector_element(instr)}>({self._args(ops)})"
        return f"{opcode.value}({self._args(ops)})"

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _target(self, target: Optional[Temp]) -> str:
        return "_" if target is None else str(target)

    def statement(self, stmt: Statement) -> str:
        if isinstance(stmt, Assign):
            expr = stmt.expr
            if isinstance(expr, Operation) and expr.instruction.opcode in (
                Opcode.UNPACK,
                Opcode.UNPACK_GENERIC,
            ):
                return self._unpack(stmt, expr)
            if len(stmt.targets) == 1:
                lhs = self._target(stmt.targets[0])
            else:
                lhs = "(" + ", ".join(self._target(t) for t in stmt.targets) + ")"
            return f"let {lhs} = {self.expr(expr)};"
        if isinstance(stmt, StoreLocal):
            return f"{self.local(stmt.local)} = {self.operand(stmt.value)};"
        if isinstance(stmt, Effect):
            return f"{self.expr(stmt.expr)};"
        if isinstance(stmt, Discard):
            return f"_ = {self.operand(stmt.value)};"
        raise TypeError(f"not a statement: {stmt!r}")

    def _unpack(self, stmt: Assign, expr: Operation) -> str:
        name, type_args, def_index = self._struct(expr.instruction)
        fields = self._module.struct_defs[def_index].fields or ()
        inner = ", ".join(f"{f.name}: {self._target(t)}" for f, t in zip(fields, stmt.targets))
        head = name + self._types.type_arguments(type_args)
        pattern = f"{head} {{ {inner} }}" if inner else f"{head} {{}}"
        return f"let {pattern} = {self.operand(expr.operands[0])};"

    def terminal(self, node) -> str:
        if isinstance(node, Return):
            if not node.values:
                return "return;"
            if len(node.values) == 1:
                return f"return {self.operand(node.values[0])};"
            return f"return ({self._args(node.values)});"
        if isinstance(node, Abort):
            return f"abort {self.operand(node.code)};"
        if isinstance(node, Jump):
            return f"goto {block_label(node.target)};"
        if isinstance(node, CondJump):
            return (
                f"if ({self.operand(node.condition)}) goto {block_label(node.true_target)} "
                f"else goto {block_label(node.false_target)};"
            )
        raise TypeError(f"not a terminator: {node!r}")

    def condition(self, value: Operand, negated: bool = False) -> str:
        text = self.operand(value)
        return f"!{text}" if negated else text

    def lines(self, statements: Sequence[Statement]) -> List[str]:
        return [self.statement(stmt) for stmt in statements]
