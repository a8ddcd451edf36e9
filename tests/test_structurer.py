from __future__ import annotations

import logging

from conftest import MAX_BRANCH, SUM_LOOP, ModuleBuilder, else_if_chain
from move_decompiler.lifter.cfg import build_cfg
from move_decompiler.lifter.ir import Abort, Assign, Return, StoreLocal
from move_decompiler.lifter.stackless import translate_function
from move_decompiler.lifter.structurer import (
    Break,
    Continue,
    If,
    LabeledBlock,
    Loop,
    MAX_NESTING,
    structure_function,
)

NESTED_LOOPS = [
    ["LdTrue"],
    ["StLoc", 2],
    ["CopyLoc", 0],
    ["BrFalse", 12],
    ["CopyLoc", 1],
    ["BrFalse", 10],
    ["CopyLoc", 2],
    ["BrTrue", 12],
    "Nop",
    ["Branch", 4],
    "Nop",
    ["Branch", 2],
    "Ret",
]

DO_WHILE = [
    ["LdU64", 0],
    ["StLoc", 1],
    ["MoveLoc", 1],
    ["LdU64", 1],
    "Add",
    ["StLoc", 1],
    ["CopyLoc", 1],
    ["CopyLoc", 0],
    "Lt",
    ["BrTrue", 2],
    ["MoveLoc", 1],
    "Ret",
]

IRREDUCIBLE = [
    ["CopyLoc", 0],
    ["BrTrue", 4],
    ["LdFalse"],
    ["BrFalse", 4],
    ["CopyLoc", 0],
    ["BrTrue", 2],
    "Ret",
]


def _structure(module, index=0):
    fdef = module.function_defs[index]
    cfg = build_cfg(fdef.code.instructions)
    return structure_function(cfg, translate_function(module, fdef, cfg))


def _walk(node):
    yield node
    for attr in ("items", "then", "otherwise", "body"):
        child = getattr(node, attr, None)
        if child is None:
            continue
        if isinstance(child, list):
            for item in child:
                yield from _walk(item)
        else:
            yield from _walk(child)


def test_counted_loop_becomes_one_guarded_loop(sum_module):
    body = _structure(sum_module)
    assert body.structured
    items = body.root.items
    assert [type(item) for item in items] == [StoreLocal, StoreLocal, Loop, Return]
    loop = items[2]
    assert loop.guard is not None and not loop.guard.negated
    assert len(loop.guard.prelude) == 1
    assert [type(s) for s in loop.body.items] == [Assign, StoreLocal, Assign, StoreLocal]
    assert not loop.labelled
    assert sum(isinstance(node, Loop) for node in _walk(body.root)) == 1


def test_branch_with_two_returns(builder: ModuleBuilder):
    builder.function("max", ["u64", "u64"], ["u64"], code=MAX_BRANCH)
    body = _structure(builder.build())
    assign, branch = body.root.items
    assert isinstance(branch, If)
    assert isinstance(branch.then.items[-1], Return)
    assert isinstance(branch.otherwise.items[-1], Return)


def test_diamond_continues_after_join(builder: ModuleBuilder):
    builder.function(
        "pick",
        ["bool"],
        ["u64"],
        locals=["u64"],
        code=[
            ["CopyLoc", 0],
            ["BrFalse", 5],
            ["LdU64", 1],
            ["StLoc", 1],
            ["Branch", 7],
            ["LdU64", 2],
            ["StLoc", 1],
            ["MoveLoc", 1],
            "Ret",
        ],
    )
    body = _structure(builder.build())
    branch, ret = body.root.items
    assert isinstance(branch, If)
    assert branch.then.items == [StoreLocal(1, branch.then.items[0].value)]
    assert len(branch.otherwise.items) == 1
    assert isinstance(ret, Return)


def test_abort_arm(counter_module):
    body = _structure(counter_module, 2)
    (exists_check, branch) = body.root.items
    assert isinstance(branch, If)
    assert isinstance(branch.otherwise.items[-1], Abort)


def test_break_out_of_outer_loop_is_labelled(builder: ModuleBuilder):
    builder.function("nested", ["bool", "bool"], [], locals=["bool"], code=NESTED_LOOPS)
    body = _structure(builder.build())
    assert body.structured
    outer = body.root.items[1]
    assert isinstance(outer, Loop) and outer.labelled
    (inner,) = outer.body.items
    assert isinstance(inner, Loop) and not inner.labelled
    (branch,) = inner.body.items
    assert branch.then.items == [Break(outer.label, labelled=True)]
    assert branch.otherwise.items == [Continue(inner.label, labelled=False)]
    assert isinstance(body.root.items[-1], Return)


def test_loop_with_exit_test_at_the_bottom(builder: ModuleBuilder):
    builder.function("count_up", ["u64"], ["u64"], locals=["u64"], code=DO_WHILE)
    body = _structure(builder.build())
    loop = body.root.items[1]
    assert isinstance(loop, Loop)
    assert len(loop.guard.prelude) == 3
    assert loop.body.items == []


def test_infinite_loop(builder: ModuleBuilder):
    builder.function("spin", code=[["Branch", 0]])
    body = _structure(builder.build())
    (loop,) = body.root.items
    assert isinstance(loop, Loop)
    assert loop.guard is None
    assert loop.body.items == []


def test_irreducible_graph_falls_back_to_labelled_blocks(builder: ModuleBuilder, caplog):
    builder.function("tangle", ["bool"], [], code=IRREDUCIBLE)
    with caplog.at_level(logging.INFO):
        body = _structure(builder.build())
    assert not body.structured
    assert body.reason == "irreducible control flow"
    assert all(isinstance(item, LabeledBlock) for item in body.root.items)
    assert [item.block for item in body.root.items] == [0, 1, 2, 3]
    assert "Falling back" in caplog.text


def test_shallow_else_if_chain_stays_structured(builder: ModuleBuilder):
    builder.function("classify", ["u64"], ["u64"], code=else_if_chain(10))
    body = _structure(builder.build())
    assert body.structured
    assert sum(isinstance(node, If) for node in _walk(body.root)) == 10


def test_deep_nesting_falls_back_to_labelled_blocks(builder: ModuleBuilder):
    builder.function("classify", ["u64"], ["u64"], code=else_if_chain(MAX_NESTING + 1))
    body = _structure(builder.build())
    assert not body.structured
    assert body.reason == f"regions nested deeper than {MAX_NESTING} levels"
    assert all(isinstance(item, LabeledBlock) for item in body.root.items)
