from __future__ import annotations

import pytest

from conftest import SUM_LOOP, ModuleBuilder
from move_decompiler.bytecode.opcodes import Opcode
from move_decompiler.bytecode.types import BOOL, PrimitiveType, VectorType
from move_decompiler.exceptions import MalformedStackEffect, UnsupportedInstruction
from move_decompiler.lifter.cfg import build_cfg
from move_decompiler.lifter.ir import (
    Assign,
    CondJump,
    Discard,
    Effect,
    Jump,
    Literal,
    LocalRead,
    Return,
    StoreLocal,
    Temp,
)
from move_decompiler.lifter.stackless import AbstractStack, translate_function


def _translate(module, index=0):
    fdef = module.function_defs[index]
    return translate_function(module, fdef, build_cfg(fdef.code.instructions))


def test_local_reads_and_literals_stay_inline(sum_module):
    translated = _translate(sum_module)
    assert translated.parameter_count == 1
    entry, header, body, exit_ = translated.blocks
    assert entry.statements == [
        StoreLocal(1, Literal(PrimitiveType("u64"), 0)),
        StoreLocal(2, Literal(PrimitiveType("u64"), 0)),
    ]
    assert entry.terminator == Jump(1)

    (compare,) = header.statements
    assert compare.targets == (Temp(0),)
    assert compare.expr.instruction.opcode is Opcode.LT
    assert compare.expr.operands == (LocalRead(1), LocalRead(0))
    assert header.terminator == CondJump(Temp(0), 2, 3)

    assert [type(s) for s in body.statements] == [Assign, StoreLocal, Assign, StoreLocal]
    assert body.statements[0].expr.operands == (LocalRead(2, move=True), LocalRead(1))
    assert body.statements[2].expr.operands == (
        LocalRead(1, move=True),
        Literal(PrimitiveType("u64"), 1),
    )
    assert exit_.terminator == Return((LocalRead(2, move=True),))
    assert translated.temp_count == 3


def test_temporaries_are_bound_once_in_order(sum_module):
    translated = _translate(sum_module)
    bound = [
        target.index
        for block in translated.blocks
        for stmt in block.statements
        if isinstance(stmt, Assign)
        for target in stmt.targets
        if target is not None
    ]
    assert bound == list(range(translated.temp_count))


def test_store_flushes_pending_reads_of_the_same_local(builder: ModuleBuilder):
    # return (old x, x = 5) keeps reading the value before the store.
    builder.function(
        "swap_in",
        ["u64"],
        ["u64"],
        code=[["CopyLoc", 0], ["LdU64", 5], ["StLoc", 0], "Ret"],
    )
    (block,) = _translate(builder.build()).blocks
    assert block.statements == [
        Assign((Temp(0),), LocalRead(0)),
        StoreLocal(0, Literal(PrimitiveType("u64"), 5)),
    ]
    assert block.terminator == Return((Temp(0),))


def test_calls_flush_every_pending_read(builder: ModuleBuilder):
    callee = builder.function_handle("touch", ["&mut u64"], [])
    builder.function(
        "f",
        ["u64"],
        ["u64"],
        code=[["CopyLoc", 0], ["MutBorrowLoc", 0], ["Call", callee], "Ret"],
    )
    (block,) = _translate(builder.build()).blocks
    borrow, flushed, call = block.statements
    assert borrow.expr.instruction.opcode is Opcode.MUT_BORROW_LOC
    assert flushed == Assign((Temp(1),), LocalRead(0))
    assert isinstance(call, Effect)
    assert call.expr.operands == (Temp(0),)
    assert block.terminator == Return((Temp(1),))


def test_popped_results_become_discards(builder: ModuleBuilder):
    callee = builder.function_handle("pair", [], ["u64", "bool"])
    builder.function(
        "f",
        ["u64"],
        [],
        code=[["Call", callee], "Pop", "Pop", ["CopyLoc", 0], "Pop", ["LdTrue"], "Pop", "Ret"],
    )
    (block,) = _translate(builder.build()).blocks
    call, discard = block.statements
    assert call.targets == (None, None)
    assert discard == Discard(LocalRead(0))


def test_partially_popped_results_keep_the_rest(builder: ModuleBuilder):
    callee = builder.function_handle("pair", [], ["u64", "bool"])
    builder.function("f", [], ["u64"], code=[["Call", callee], "Pop", "Ret"])
    (block,) = _translate(builder.build()).blocks
    assert block.statements[0].targets == (Temp(0), None)
    assert block.terminator == Return((Temp(0),))


def test_constants_are_decoded_as_literals(builder: ModuleBuilder):
    builder.constant("vector<u8>", "026869")
    builder.function("f", [], ["vector<u8>"], code=[["LdConst", 0], "Ret"])
    (block,) = _translate(builder.build()).blocks
    assert block.terminator == Return((Literal(VectorType(PrimitiveType("u8")), [0x68, 0x69]),))


def test_bool_literal_condition(builder: ModuleBuilder):
    builder.function("f", code=[["LdFalse"], ["BrTrue", 3], "Ret", "Ret"])
    blocks = _translate(builder.build()).blocks
    assert blocks[0].terminator == CondJump(Literal(BOOL, False), 2, 1)


def test_stack_underflow_is_reported_with_offset(builder: ModuleBuilder):
    builder.function("f", code=["Add", "Pop", "Ret"])
    with pytest.raises(MalformedStackEffect) as info:
        _translate(builder.build())
    assert info.value.offset == 0


def test_values_left_at_block_end(builder: ModuleBuilder):
    builder.function("f", code=[["LdU8", 1], ["Branch", 2], "Ret"])
    with pytest.raises(MalformedStackEffect):
        _translate(builder.build())


def test_unsupported_opcode(builder: ModuleBuilder):
    builder.function("f", code=[["PackVariant", 0], "Pop", "Ret"])
    with pytest.raises(UnsupportedInstruction) as info:
        _translate(builder.build())
    assert info.value.opcode == "PackVariant"
    assert info.value.offset == 0


def test_abstract_stack_pops_in_push_order():
    stack = AbstractStack()
    for index in range(3):
        stack.push(Temp(index))
    assert stack.pop_many(2, 0) == [Temp(1), Temp(2)]
    assert len(stack) == 1
    assert stack.pop_many(0, 0) == []
